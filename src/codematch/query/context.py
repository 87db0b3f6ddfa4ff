"""Normalized, tokenized representation of a user's code search query."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set


class TokenType(str, Enum):
    IDENTIFIER = "IDENTIFIER"
    CAMEL_CASE = "CAMEL_CASE"
    SNAKE_CASE = "SNAKE_CASE"
    PACKAGE_NAME = "PACKAGE_NAME"
    CLASS_HINT = "CLASS_HINT"
    METHOD_HINT = "METHOD_HINT"
    ACTION_WORD = "ACTION_WORD"
    DOMAIN_TERM = "DOMAIN_TERM"
    TECHNICAL_TERM = "TECHNICAL_TERM"
    MODIFIER = "MODIFIER"
    STOP_WORD = "STOP_WORD"


class PatternType(str, Enum):
    CAMEL_CASE_SPLIT = "CAMEL_CASE_SPLIT"
    COMPOUND_TERM = "COMPOUND_TERM"
    METHOD_SIGNATURE = "METHOD_SIGNATURE"
    PACKAGE_NOTATION = "PACKAGE_NOTATION"
    WILDCARD_PATTERN = "WILDCARD_PATTERN"
    REGEX_PATTERN = "REGEX_PATTERN"


class QueryType(str, Enum):
    SPECIFIC_ENTITY = "SPECIFIC_ENTITY"
    FUNCTIONALITY = "FUNCTIONALITY"
    RELATIONSHIP = "RELATIONSHIP"
    PATTERN_SEARCH = "PATTERN_SEARCH"
    EXPLORATORY = "EXPLORATORY"
    DEBUGGING = "DEBUGGING"
    IMPLEMENTATION = "IMPLEMENTATION"


class QueryIntent(str, Enum):
    FIND_CLASS = "FIND_CLASS"
    FIND_METHOD = "FIND_METHOD"
    FIND_PACKAGE = "FIND_PACKAGE"
    FIND_IMPLEMENTATION = "FIND_IMPLEMENTATION"
    FIND_USAGE = "FIND_USAGE"
    FIND_RELATED = "FIND_RELATED"
    UNDERSTAND_FLOW = "UNDERSTAND_FLOW"
    DEBUG_ISSUE = "DEBUG_ISSUE"
    EXPLORE_DOMAIN = "EXPLORE_DOMAIN"


IDENTIFIER_TYPES = frozenset({TokenType.IDENTIFIER, TokenType.CAMEL_CASE, TokenType.SNAKE_CASE})
DOMAIN_TYPES = frozenset({TokenType.DOMAIN_TERM, TokenType.TECHNICAL_TERM})


@dataclass(frozen=True)
class QueryToken:
    value: str
    normalized_value: str
    type: TokenType
    position: int = 0
    confidence: float = 0.6


@dataclass(frozen=True)
class CodePattern:
    """A structural pattern spotted in the query (``get*``, ``save()``, ``userService``)."""

    pattern: str
    type: PatternType
    components: tuple = ()
    confidence: float = 0.8


@dataclass
class QueryConstraints:
    required_types: Set[str] = field(default_factory=set)
    required_modifiers: Set[str] = field(default_factory=set)
    package_scopes: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    max_results: int = 50
    include_deprecated: bool = False
    include_private: bool = True

    def is_empty(self) -> bool:
        return not (
            self.required_types
            or self.required_modifiers
            or self.package_scopes
            or self.exclude_patterns
        )


@dataclass
class QueryContext:
    """Everything the extraction agents know about one query."""

    original_query: str
    normalized_query: str = ""
    tokens: List[QueryToken] = field(default_factory=list)
    patterns: List[CodePattern] = field(default_factory=list)
    query_type: QueryType = QueryType.SPECIFIC_ENTITY
    intent: Optional[QueryIntent] = None
    constraints: QueryConstraints = field(default_factory=QueryConstraints)
    confidence: float = 0.5

    def tokens_of_type(self, *types: TokenType) -> List[QueryToken]:
        return [t for t in self.tokens if t.type in types]

    def identifier_tokens(self) -> List[QueryToken]:
        return [t for t in self.tokens if t.type in IDENTIFIER_TYPES]

    def domain_terms(self) -> List[QueryToken]:
        return [t for t in self.tokens if t.type in DOMAIN_TYPES]

    def action_words(self) -> List[QueryToken]:
        return self.tokens_of_type(TokenType.ACTION_WORD)

    def patterns_of_type(self, *types: PatternType) -> List[CodePattern]:
        return [p for p in self.patterns if p.type in types]

    def has_identifiers(self) -> bool:
        return bool(self.identifier_tokens())
