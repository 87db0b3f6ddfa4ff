"""Meaning-based matching: embeddings, domain synonyms and intent-guided name guesses."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from codematch.agents.base import ExtractionAgent
from codematch.index.registry import EntityRegistry
from codematch.models import EntityMatch, EntityType, MatchType
from codematch.query.context import QueryContext, QueryIntent, QueryType
from codematch.semantic.index import SemanticEntityIndex

logger = logging.getLogger(__name__)

MIN_SIMILARITY_THRESHOLD = 0.6
MAX_SEMANTIC_RESULTS = 15

CLASS_SUFFIXES = ("Service", "Controller", "Manager", "Handler", "Repository", "Entity")
IMPLEMENTATION_SUFFIXES = ("Impl", "Implementation", "Concrete")
FUNCTIONALITY_WORDS = ("process", "handle", "execute", "perform")
RELATIONSHIP_WORDS = ("call", "use", "depend", "extend")
PATTERN_SEARCH_WORDS = ("all", "list", "find", "search")

MATCH_TYPE_PRIORITY = {
    MatchType.EXACT: 1,
    MatchType.SEMANTIC: 2,
    MatchType.PREFIX: 3,
    MatchType.SUFFIX: 4,
    MatchType.PATTERN: 5,
    MatchType.FUZZY: 6,
    MatchType.ABBREVIATION: 7,
    MatchType.PHONETIC: 8,
    MatchType.LLM_SUGGESTED: 9,
}


def _capitalize(term: str) -> str:
    term = term.strip()
    return term[:1].upper() + term[1:].lower()


class SemanticMatchingAgent(ExtractionAgent):
    """
    Finds entities related in meaning to the query rather than by spelling.

    Every match it returns is a new SEMANTIC match built from a registry hit.
    The embedding layer is optional; without an embedding service (or when
    the service fails) the agent still runs its rule-based layers.
    """

    name = "SemanticMatchingAgent"

    def __init__(
        self,
        registry: EntityRegistry,
        semantic_index: Optional[SemanticEntityIndex] = None,
        embedding_service=None,
        min_similarity: float = MIN_SIMILARITY_THRESHOLD,
        embedding_search: bool = True,
        domain_terms: bool = True,
    ):
        super().__init__(registry)
        self.semantic_index = semantic_index or SemanticEntityIndex()
        self.embedding_service = embedding_service
        self.min_similarity = min_similarity
        self.embedding_search = embedding_search
        self.domain_terms = domain_terms

    def can_handle(self, context: QueryContext) -> bool:
        return (
            bool(context.domain_terms())
            or context.intent is not None
            or context.query_type in (QueryType.FUNCTIONALITY, QueryType.EXPLORATORY)
        )

    def get_handling_confidence(self, context: QueryContext) -> float:
        confidence = 0.4 + min(0.3, 0.1 * len(context.domain_terms()))
        if context.intent is not None:
            confidence += 0.2
        if context.query_type in (QueryType.EXPLORATORY, QueryType.FUNCTIONALITY):
            confidence += 0.2
        return min(1.0, confidence)

    def extract(self, context: QueryContext) -> List[EntityMatch]:
        matches: List[EntityMatch] = []
        if self.embedding_search:
            matches.extend(self._embedding_matches(context))
        if self.domain_terms:
            matches.extend(self._domain_term_matches(context))
            matches.extend(self._business_context_matches(context))
        matches.extend(self._cluster_matches(context))
        matches.extend(self._intent_guided_matches(context))
        matches.extend(self._type_guided_matches(context))
        return self._filter_and_rank(matches)

    # ========================================================================
    # Layers
    # ========================================================================

    def _embedding_matches(self, context: QueryContext) -> List[EntityMatch]:
        if self.embedding_service is None or not context.normalized_query.strip():
            return []
        try:
            vector = self.embedding_service.embed(context.normalized_query)
        except Exception as e:
            logger.warning(f"Embedding lookup failed for '{context.normalized_query}': {e}")
            return []
        if not vector:
            return []

        matches = []
        for similar in self.semantic_index.find_similar(vector, self.min_similarity):
            matches.extend(
                self._semantic(
                    self.registry.find_exact_matches_ignore_case(similar.entity_name),
                    similar.similarity,
                    f"embedding similarity: {similar.similarity:.2f}",
                )
            )
        return matches

    def _domain_term_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for token in context.domain_terms():
            for related in sorted(self.semantic_index.get_domain_terms(token.value)):
                matches.extend(
                    self._semantic(
                        self.registry.find_entities_with_term(related),
                        0.65,
                        f"domain term expansion: {token.value} -> {related}",
                    )
                )
        return matches

    def _business_context_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for token in context.domain_terms():
            for related in sorted(self.semantic_index.get_business_context_terms(token.value)):
                matches.extend(
                    self._semantic(
                        self.registry.find_entities_with_term(related),
                        0.6,
                        f"business context: {token.value} -> {related}",
                    )
                )
        return matches

    def _cluster_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for token in context.identifier_tokens():
            for member in sorted(self.semantic_index.find_semantic_cluster(token.value)):
                if member == token.value.lower():
                    continue
                matches.extend(
                    self._semantic(
                        self.registry.find_exact_matches_ignore_case(member),
                        0.7,
                        f"semantic cluster member: {token.value} -> {member}",
                    )
                )
        return matches

    def _intent_guided_matches(self, context: QueryContext) -> List[EntityMatch]:
        intent = context.intent
        if intent == QueryIntent.FIND_CLASS:
            return self._suffixed_term_matches(context, CLASS_SUFFIXES, 0.75, "class pattern", classes_only=True)
        if intent == QueryIntent.FIND_METHOD:
            matches = []
            for token in context.action_words():
                methods = [
                    m for m in self.registry.find_by_prefix(token.value)
                    if m.entity_type == EntityType.METHOD
                ]
                matches.extend(self._semantic(methods, 0.7, f"action pattern: {token.value}*"))
            return matches
        if intent == QueryIntent.FIND_IMPLEMENTATION:
            return self._suffixed_term_matches(context, IMPLEMENTATION_SUFFIXES, 0.8, "implementation pattern")
        if intent == QueryIntent.FIND_RELATED:
            terms = set()
            for token in context.domain_terms():
                terms.add(token.value)
                terms.update(self.semantic_index.get_domain_terms(token.value))
            matches = []
            for term in sorted(terms):
                matches.extend(
                    self._semantic(
                        self.registry.find_entities_with_term(term), 0.55, f"related domain term: {term}"
                    )
                )
            return matches
        return []

    def _type_guided_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        if context.query_type == QueryType.FUNCTIONALITY:
            for token in context.tokens:
                value = token.normalized_value
                if any(word in value for word in FUNCTIONALITY_WORDS):
                    methods = [
                        m for m in self.registry.find_by_prefix(value)
                        if m.entity_type == EntityType.METHOD
                    ]
                    matches.extend(self._semantic(methods, 0.6, f"functionality pattern: {value}"))
        elif context.query_type == QueryType.RELATIONSHIP:
            for token in context.tokens:
                value = token.normalized_value
                if any(word in value for word in RELATIONSHIP_WORDS):
                    for related in sorted(self.semantic_index.get_domain_terms(value)):
                        matches.extend(
                            self._semantic(
                                self.registry.find_entities_with_term(related),
                                0.5,
                                f"relationship pattern: {value} -> {related}",
                            )
                        )
        elif context.query_type == QueryType.PATTERN_SEARCH:
            for token in context.tokens:
                value = token.normalized_value
                if any(word in value for word in PATTERN_SEARCH_WORDS):
                    for domain_token in context.domain_terms():
                        matches.extend(
                            self._semantic(
                                self.registry.find_entities_with_term(domain_token.value),
                                0.45,
                                f"pattern search: {value} + {domain_token.value}",
                            )
                        )
        return matches

    # ========================================================================
    # Helpers
    # ========================================================================

    def _suffixed_term_matches(
        self,
        context: QueryContext,
        suffixes: Iterable[str],
        confidence: float,
        label: str,
        classes_only: bool = False,
    ) -> List[EntityMatch]:
        matches = []
        for token in context.domain_terms():
            for suffix in suffixes:
                hits = self.registry.find_exact_matches(_capitalize(token.value) + suffix)
                if classes_only:
                    hits = [h for h in hits if h.entity_type == EntityType.CLASS]
                matches.extend(self._semantic(hits, confidence, f"{label}: {token.value} + {suffix}"))
        return matches

    def _semantic(self, hits: Iterable[EntityMatch], confidence: float, reason: str) -> List[EntityMatch]:
        return self.annotate(hits, reason, confidence=confidence, match_type=MatchType.SEMANTIC)

    def _filter_and_rank(self, matches: List[EntityMatch]) -> List[EntityMatch]:
        best = {}
        for match in matches:
            if match.confidence < self.min_similarity:
                continue
            current = best.get(match.entity_id)
            if current is None or match.confidence > current.confidence:
                best[match.entity_id] = match
        ranked = sorted(
            best.values(),
            key=lambda m: (-m.confidence, MATCH_TYPE_PRIORITY.get(m.match_type, 10)),
        )
        return ranked[:MAX_SEMANTIC_RESULTS]
