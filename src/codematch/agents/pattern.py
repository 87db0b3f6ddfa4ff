"""Deterministic name-pattern matching."""

from __future__ import annotations

import logging
from typing import List

from codematch.agents.base import ExtractionAgent, keep_best_by_id
from codematch.models import EntityMatch, EntityType
from codematch.query.context import PatternType, QueryContext, TokenType

logger = logging.getLogger(__name__)

COMPONENT_SUFFIXES = ("Service", "Controller", "Manager", "Handler", "Repository", "Impl")


class PatternMatchingAgent(ExtractionAgent):
    """Exact, wildcard, domain-term, compound and camelCase-component rules."""

    name = "PatternMatchingAgent"

    def can_handle(self, context: QueryContext) -> bool:
        return bool(context.identifier_tokens() or context.patterns or context.domain_terms())

    def get_handling_confidence(self, context: QueryContext) -> float:
        confidence = 0.5
        for pattern in context.patterns:
            if pattern.type in (PatternType.WILDCARD_PATTERN, PatternType.METHOD_SIGNATURE):
                confidence += 0.2
        confidence += min(0.3, 0.1 * len(context.identifier_tokens()))
        return min(1.0, confidence)

    def extract(self, context: QueryContext) -> List[EntityMatch]:
        matches: List[EntityMatch] = []
        matches.extend(self._exact_matches(context))
        matches.extend(self._prefix_matches(context))
        matches.extend(self._suffix_matches(context))
        matches.extend(self._compound_matches(context))
        matches.extend(self._component_matches(context))

        unique = keep_best_by_id(matches)
        unique.sort(key=lambda m: -m.confidence)
        logger.debug(f"Pattern matching found {len(unique)} unique matches")
        return unique

    def _exact_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for token in context.identifier_tokens():
            matches.extend(
                self.annotate(
                    self.registry.find_exact_matches(token.value),
                    f"exact name match for token: {token.value}",
                )
            )
        return matches

    def _prefix_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for pattern in context.patterns_of_type(PatternType.WILDCARD_PATTERN):
            raw = pattern.pattern
            if raw.endswith("*") and len(raw) > 1:
                prefix = raw[:-1]
                matches.extend(
                    self.annotate(
                        self.registry.find_by_prefix(prefix),
                        f"prefix pattern match: {prefix}*",
                        confidence=0.8,
                    )
                )

        for token in context.action_words():
            methods = [
                m for m in self.registry.find_by_prefix(token.value)
                if m.entity_type == EntityType.METHOD
            ]
            matches.extend(self.annotate(methods, f"action word prefix: {token.value}", confidence=0.7))
        return matches

    def _suffix_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for pattern in context.patterns_of_type(PatternType.WILDCARD_PATTERN):
            raw = pattern.pattern
            if raw.startswith("*") and len(raw) > 1:
                suffix = raw[1:]
                matches.extend(
                    self.annotate(
                        self.registry.find_by_suffix(suffix),
                        f"suffix pattern match: *{suffix}",
                        confidence=0.8,
                    )
                )

        for token in context.domain_terms():
            term = token.value.lower()
            for suffix in self.registry.vocabulary.pattern_suffixes:
                hits = [
                    m for m in self.registry.find_by_suffix(suffix)
                    if term in m.entity_name.lower()
                ]
                matches.extend(
                    self.annotate(hits, f"domain term + suffix: {token.value} + {suffix}", confidence=0.6)
                )
        return matches

    def _compound_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for pattern in context.patterns_of_type(PatternType.COMPOUND_TERM):
            components = [c for c in pattern.components if c and c.strip()]
            if len(components) != len(pattern.components) or not components:
                continue
            matches.extend(
                self.annotate(
                    self.registry.find_by_compound(*components),
                    f"compound term match: {' + '.join(components)}",
                    confidence=0.75,
                )
            )

        domain_tokens = context.domain_terms()
        for i, first in enumerate(domain_tokens):
            for second in domain_tokens[i + 1:]:
                matches.extend(
                    self.annotate(
                        self.registry.find_by_compound(first.value, second.value),
                        f"inferred compound: {first.value} + {second.value}",
                        confidence=0.6,
                    )
                )
        return matches

    def _component_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for pattern in context.patterns_of_type(PatternType.CAMEL_CASE_SPLIT):
            components = [c for c in pattern.components if c]
            if not components:
                continue
            for candidate in generate_potential_names(components):
                matches.extend(
                    self.annotate(
                        self.registry.find_exact_matches(candidate),
                        f"component pattern match from: {pattern.pattern}",
                        confidence=0.7,
                    )
                )

        for pattern in context.patterns_of_type(PatternType.METHOD_SIGNATURE):
            if not pattern.components or not pattern.components[0]:
                continue
            methods = [
                m for m in self.registry.find_exact_matches(pattern.components[0])
                if m.entity_type == EntityType.METHOD
            ]
            matches.extend(
                self.annotate(methods, f"method signature pattern: {pattern.pattern}", confidence=0.9)
            )
        return matches


def generate_potential_names(components: List[str]) -> List[str]:
    """camelCase and PascalCase joins of ``components``, plus PascalCase with common suffixes."""
    pascal = "".join(c[:1].upper() + c[1:].lower() for c in components)
    camel = pascal[:1].lower() + pascal[1:]
    names = [camel, pascal]
    names.extend(pascal + suffix for suffix in COMPONENT_SUFFIXES if not pascal.endswith(suffix))
    return names
