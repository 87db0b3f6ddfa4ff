"""Extraction agents."""

from codematch.agents.base import ExtractionAgent, keep_best_by_id
from codematch.agents.fuzzy import FuzzyMatchingAgent
from codematch.agents.pattern import PatternMatchingAgent
from codematch.agents.semantic import SemanticMatchingAgent

__all__ = [
    "ExtractionAgent",
    "FuzzyMatchingAgent",
    "PatternMatchingAgent",
    "SemanticMatchingAgent",
    "keep_best_by_id",
]
