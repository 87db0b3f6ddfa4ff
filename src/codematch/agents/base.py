"""Common interface of the extraction agents."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

from codematch.index.registry import EntityRegistry
from codematch.models import EntityMatch
from codematch.query.context import QueryContext


class ExtractionAgent(ABC):
    """
    One entity-matching strategy.

    Agents are pure functions of the query context and the registry state
    installed at call time: they hold no per-query mutable state, and they
    never mutate a match returned by the registry.
    """

    name: str = "ExtractionAgent"

    def __init__(self, registry: EntityRegistry):
        self.registry = registry

    @abstractmethod
    def can_handle(self, context: QueryContext) -> bool:
        """Whether this agent has anything to work with for ``context``."""

    @abstractmethod
    def get_handling_confidence(self, context: QueryContext) -> float:
        """How well suited this agent is to ``context``, in [0, 1]."""

    @abstractmethod
    def extract(self, context: QueryContext) -> List[EntityMatch]:
        """Produce scored matches for ``context``."""

    def annotate(self, matches: Iterable[EntityMatch], reason: str, confidence: float = None, **changes) -> List[EntityMatch]:
        """Fresh copies of ``matches`` attributed to this agent."""
        annotated = []
        for match in matches:
            updates = dict(changes, source=self.name, match_reason=reason)
            if confidence is not None:
                updates["confidence"] = confidence
            annotated.append(match.with_updates(**updates))
        return annotated


def keep_best_by_id(matches: Iterable[EntityMatch]) -> List[EntityMatch]:
    """Deduplicate by entity id, keeping the highest-confidence match (first wins ties)."""
    best: Dict[str, EntityMatch] = {}
    for match in matches:
        current = best.get(match.entity_id)
        if current is None or match.confidence > current.confidence:
            best[match.entity_id] = match
    return list(best.values())
