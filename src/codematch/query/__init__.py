"""Query analysis: raw text to QueryContext."""

from codematch.query.analyzer import QueryAnalyzer
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

__all__ = [
    "CodePattern",
    "PatternType",
    "QueryAnalyzer",
    "QueryConstraints",
    "QueryContext",
    "QueryIntent",
    "QueryToken",
    "QueryType",
    "TokenType",
]
