"""Rule-based query analysis.

Turns free text such as ``"find the PaymentService class"`` or ``"get* methods
in user management"`` into a :class:`QueryContext` the extraction agents can
consume: classified tokens, detected code patterns, query type, intent,
constraints and an overall confidence.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from codematch.models import tokenize_name
from codematch.query.context import (
    CodePattern,
    PatternType,
    QueryConstraints,
    QueryContext,
    QueryIntent,
    QueryToken,
    QueryType,
    TokenType,
)

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does",
    "did", "will", "would", "could", "should", "may", "might", "can", "i", "you", "we",
    "they", "it", "this", "that", "these", "those", "what", "where", "when", "why", "how",
})

JAVA_KEYWORDS = frozenset({
    "public", "private", "protected", "static", "final", "abstract", "synchronized",
    "volatile", "transient", "native", "strictfp", "extends", "implements", "throws",
    "return", "void", "int", "long", "double", "float", "boolean", "char", "byte",
    "short", "string", "object",
})

CLASS_HINTS = frozenset({"class", "interface", "enum", "annotation"})
METHOD_HINTS = frozenset({"method", "function"})

ACTION_WORDS = frozenset({
    "get", "set", "create", "delete", "update", "find", "search", "process",
    "handle", "execute", "run", "start", "stop", "build", "make", "generate",
    "validate", "check", "verify", "save", "load", "fetch", "retrieve",
})

DOMAIN_TERMS = frozenset({
    "user", "customer", "account", "payment", "transaction", "order", "product",
    "service", "manager", "controller", "repository", "entity", "model",
    "config", "security", "auth", "validation", "notification", "email",
})

TECHNICAL_TERMS = frozenset({
    "api", "rest", "http", "json", "xml", "database", "sql", "cache",
    "queue", "thread", "async", "sync", "batch", "stream", "lambda",
    "reflection", "proxy", "factory", "singleton",
})

TOKEN_WEIGHTS = {
    TokenType.IDENTIFIER: 1.0,
    TokenType.CAMEL_CASE: 1.0,
    TokenType.SNAKE_CASE: 1.0,
    TokenType.PACKAGE_NAME: 0.9,
    TokenType.CLASS_HINT: 0.9,
    TokenType.METHOD_HINT: 0.9,
    TokenType.DOMAIN_TERM: 0.8,
    TokenType.TECHNICAL_TERM: 0.8,
    TokenType.ACTION_WORD: 0.7,
    TokenType.MODIFIER: 0.6,
    TokenType.STOP_WORD: 0.1,
}

# First matching rule wins
QUERY_TYPE_RULES = [
    (re.compile(r"\b(class|interface|enum)\b"), QueryType.SPECIFIC_ENTITY),
    (re.compile(r"\b(method|function)\b"), QueryType.SPECIFIC_ENTITY),
    (re.compile(r"\b(how|implement|logic|algorithm)\b"), QueryType.FUNCTIONALITY),
    (re.compile(r"\b(what calls|who uses|depends|relationship)\b"), QueryType.RELATIONSHIP),
    (re.compile(r"\b(all|list|show|find all)\b"), QueryType.PATTERN_SEARCH),
    (re.compile(r"\b(why|error|bug|issue|problem)\b"), QueryType.DEBUGGING),
]

INTENT_RULES = [
    (re.compile(r"\bclass\b"), QueryIntent.FIND_CLASS),
    (re.compile(r"\b(method|function)\b"), QueryIntent.FIND_METHOD),
    (re.compile(r"\bpackage\b"), QueryIntent.FIND_PACKAGE),
    (re.compile(r"\b(implementation|how.*implement)\b"), QueryIntent.FIND_IMPLEMENTATION),
    (re.compile(r"\b(usage|who.*use|what.*call)\b"), QueryIntent.FIND_USAGE),
    (re.compile(r"\b(related|similar)\b"), QueryIntent.FIND_RELATED),
    (re.compile(r"\b(flow|process|sequence)\b"), QueryIntent.UNDERSTAND_FLOW),
    (re.compile(r"\b(debug|error|why|issue)\b"), QueryIntent.DEBUG_ISSUE),
]

NEGATION_WORDS = ("not", "exclude", "except", "without", "ignore")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_PACKAGE_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*(\.[A-Za-z_$][A-Za-z0-9_$]*)+$")
_SNAKE_RE = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)+$")
_METHOD_SIG_RE = re.compile(r"\b([A-Za-z_$][A-Za-z0-9_$]*)\(\)")
_WILDCARD_RE = re.compile(r"(?<![\w*])(\*[A-Za-z]+|[A-Za-z]+\*)(?![\w*])")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9\s.()*_$\-]")


def is_camel_case(word: str) -> bool:
    """camelCase or PascalCase: a valid identifier mixing upper and lower case."""
    if len(word) < 2 or word == word.lower() or word == word.upper():
        return False
    return bool(_IDENTIFIER_RE.match(word))


def is_snake_case(word: str) -> bool:
    return bool(_SNAKE_RE.match(word))


class QueryAnalyzer:
    """Stateless analyzer; one instance can be shared across threads."""

    def analyze(self, query: Optional[str]) -> QueryContext:
        """
        Build a QueryContext for ``query``.

        Args:
            query: Raw user text

        Returns:
            QueryContext (empty tokens for blank input)
        """
        original = query or ""
        normalized = self.normalize(original)
        tokens = self.tokenize(normalized)
        patterns = self.detect_patterns(tokens, normalized)

        lowered = normalized.lower()
        query_type = self.classify_query_type(lowered, has_question_mark="?" in original)
        intent = self.classify_intent(lowered)
        constraints = self.extract_constraints(tokens, lowered)
        confidence = self.calculate_confidence(tokens, patterns, query_type, intent)

        logger.debug(
            f"Analyzed query '{original}': {len(tokens)} tokens, {len(patterns)} patterns, "
            f"type={query_type.value}, intent={intent.value}, confidence={confidence:.2f}"
        )
        return QueryContext(
            original_query=original,
            normalized_query=normalized,
            tokens=tokens,
            patterns=patterns,
            query_type=query_type,
            intent=intent,
            constraints=constraints,
            confidence=confidence,
        )

    # ========================================================================
    # Tokens
    # ========================================================================

    def normalize(self, query: str) -> str:
        """Trim, drop characters that never appear in code names, collapse whitespace.

        Case is preserved so camelCase identifiers survive.
        """
        cleaned = _DISALLOWED_RE.sub(" ", query.strip())
        return re.sub(r"\s+", " ", cleaned).strip()

    def tokenize(self, normalized: str) -> List[QueryToken]:
        tokens = []
        for position, word in enumerate(normalized.split()):
            tokens.append(
                QueryToken(
                    value=word,
                    normalized_value=word.lower(),
                    type=self.classify_token(word),
                    position=position,
                    confidence=self.token_confidence(word),
                )
            )
        return tokens

    def classify_token(self, word: str) -> TokenType:
        lower = word.lower()
        if lower in STOP_WORDS:
            return TokenType.STOP_WORD
        if lower in CLASS_HINTS:
            return TokenType.CLASS_HINT
        if lower in METHOD_HINTS:
            return TokenType.METHOD_HINT
        if lower in JAVA_KEYWORDS:
            return TokenType.MODIFIER
        if "." in word and _PACKAGE_RE.match(word):
            return TokenType.PACKAGE_NAME
        if is_camel_case(word):
            return TokenType.CAMEL_CASE
        if is_snake_case(word):
            return TokenType.SNAKE_CASE
        if lower in ACTION_WORDS:
            return TokenType.ACTION_WORD
        if lower in DOMAIN_TERMS:
            return TokenType.DOMAIN_TERM
        if lower in TECHNICAL_TERMS:
            return TokenType.TECHNICAL_TERM
        if _IDENTIFIER_RE.match(word):
            return TokenType.IDENTIFIER
        return TokenType.STOP_WORD

    def token_confidence(self, word: str) -> float:
        lower = word.lower()
        if lower in STOP_WORDS:
            return 0.1
        if is_camel_case(word) or is_snake_case(word):
            return 0.9
        if lower in ACTION_WORDS:
            return 0.8
        if lower in DOMAIN_TERMS:
            return 0.7
        return 0.6

    # ========================================================================
    # Patterns
    # ========================================================================

    def detect_patterns(self, tokens: List[QueryToken], normalized: str) -> List[CodePattern]:
        patterns: List[CodePattern] = []

        for token in tokens:
            if token.type == TokenType.CAMEL_CASE:
                components = tokenize_name(token.value)
                if len(components) > 1:
                    patterns.append(
                        CodePattern(token.value, PatternType.CAMEL_CASE_SPLIT, tuple(components), 0.9)
                    )

        compound_types = {
            TokenType.IDENTIFIER,
            TokenType.DOMAIN_TERM,
            TokenType.TECHNICAL_TERM,
            TokenType.ACTION_WORD,
        }
        for first, second in zip(tokens, tokens[1:]):
            if first.type in compound_types and second.type in compound_types:
                patterns.append(
                    CodePattern(
                        f"{first.value} {second.value}",
                        PatternType.COMPOUND_TERM,
                        (first.value, second.value),
                        0.8,
                    )
                )

        for match in _METHOD_SIG_RE.finditer(normalized):
            patterns.append(
                CodePattern(match.group(0), PatternType.METHOD_SIGNATURE, (match.group(1),), 0.95)
            )

        for match in _WILDCARD_RE.finditer(normalized):
            raw = match.group(1)
            patterns.append(
                CodePattern(raw, PatternType.WILDCARD_PATTERN, (raw.replace("*", ""),), 0.9)
            )

        for token in tokens:
            if token.type == TokenType.PACKAGE_NAME:
                patterns.append(
                    CodePattern(token.value, PatternType.PACKAGE_NOTATION, tuple(token.value.split(".")), 0.85)
                )

        return patterns

    # ========================================================================
    # Classification
    # ========================================================================

    def classify_query_type(self, lowered: str, has_question_mark: bool = False) -> QueryType:
        for pattern, query_type in QUERY_TYPE_RULES:
            if pattern.search(lowered):
                return query_type
        if "*" in lowered or "all" in lowered or "list" in lowered:
            return QueryType.PATTERN_SEARCH
        if has_question_mark or "what" in lowered or "how" in lowered:
            return QueryType.EXPLORATORY
        return QueryType.SPECIFIC_ENTITY

    def classify_intent(self, lowered: str) -> QueryIntent:
        for pattern, intent in INTENT_RULES:
            if pattern.search(lowered):
                return intent
        if "explore" in lowered or "understand" in lowered:
            return QueryIntent.EXPLORE_DOMAIN
        return QueryIntent.FIND_CLASS

    def extract_constraints(self, tokens: List[QueryToken], lowered: str) -> QueryConstraints:
        split = lowered.split()
        # A word right after a negation is an exclusion, never a requirement
        words = {w for i, w in enumerate(split) if i == 0 or split[i - 1] not in NEGATION_WORDS}
        constraints = QueryConstraints()
        for required in ("interface", "abstract", "enum"):
            if required in words:
                constraints.required_types.add(required)
        for modifier in ("public", "private", "static"):
            if modifier in words:
                constraints.required_modifiers.add(modifier)
        constraints.package_scopes = [t.value for t in tokens if t.type == TokenType.PACKAGE_NAME]
        constraints.exclude_patterns = self._exclusion_patterns(lowered)
        constraints.include_deprecated = "not deprecated" not in lowered
        constraints.include_private = "private" in words or "all" in words
        return constraints

    def _exclusion_patterns(self, lowered: str) -> List[str]:
        words = lowered.split()
        found: List[str] = []
        for word, following in zip(words, words[1:]):
            if word not in NEGATION_WORDS:
                continue
            if following in ("test", "tests"):
                pattern = "*Test*"
            elif following == "deprecated":
                pattern = "*Deprecated*"
            elif following == "private":
                pattern = "*private*"
            elif following == "abstract":
                pattern = "*Abstract*"
            elif following in ("interface", "interfaces"):
                pattern = "*interface*"
            elif len(following) > 2:
                pattern = f"*{following.capitalize()}*"
            else:
                continue
            if pattern not in found:
                found.append(pattern)
        return found

    # ========================================================================
    # Confidence
    # ========================================================================

    def calculate_confidence(
        self,
        tokens: List[QueryToken],
        patterns: List[CodePattern],
        query_type: QueryType,
        intent: QueryIntent,
    ) -> float:
        confidence = 0.3
        confidence += self._token_quality(tokens) * 0.4
        if patterns:
            confidence += sum(p.confidence for p in patterns) / len(patterns) * 0.2
        if query_type != QueryType.EXPLORATORY and self._is_intent_coherent(query_type, intent):
            confidence += 0.1
        if self._has_conflicting_signals(tokens, intent):
            confidence -= 0.15
        return max(0.1, min(1.0, confidence))

    def _token_quality(self, tokens: List[QueryToken]) -> float:
        if not tokens:
            return 0.0
        total_weight = sum(TOKEN_WEIGHTS[t.type] for t in tokens)
        weighted = sum(TOKEN_WEIGHTS[t.type] * t.confidence for t in tokens)
        return weighted / total_weight if total_weight else 0.0

    def _is_intent_coherent(self, query_type: QueryType, intent: QueryIntent) -> bool:
        if query_type == QueryType.SPECIFIC_ENTITY:
            return intent in (QueryIntent.FIND_CLASS, QueryIntent.FIND_METHOD, QueryIntent.FIND_PACKAGE)
        if query_type == QueryType.FUNCTIONALITY:
            return intent in (QueryIntent.FIND_IMPLEMENTATION, QueryIntent.UNDERSTAND_FLOW)
        if query_type == QueryType.RELATIONSHIP:
            return intent in (QueryIntent.FIND_USAGE, QueryIntent.FIND_RELATED)
        if query_type == QueryType.DEBUGGING:
            return intent == QueryIntent.DEBUG_ISSUE
        return True

    def _has_conflicting_signals(self, tokens: List[QueryToken], intent: QueryIntent) -> bool:
        types = {t.type for t in tokens}
        if TokenType.CLASS_HINT in types and TokenType.METHOD_HINT in types:
            return intent in (QueryIntent.FIND_CLASS, QueryIntent.FIND_METHOD)
        return False
