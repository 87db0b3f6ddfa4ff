"""
Multi-agent entity extraction.

A query runs through ANALYZE -> SELECT_AGENTS -> EXECUTE_PARALLEL -> COMBINE
-> RANK_FILTER -> BUILD_RESULT. Nothing raises out of ``extract``: agent
failures are isolated to their AgentResult and pipeline failures become an
``error`` result.
"""

import fnmatch
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence

from codematch.agents.base import ExtractionAgent
from codematch.agents.pattern import PatternMatchingAgent
from codematch.extraction.breaker import AgentCircuitBreaker
from codematch.extraction.toggles import AgentToggleConfig
from codematch.index.registry import EntityRegistry
from codematch.models import (
    STATUS_OK,
    AgentResult,
    EntityMatch,
    EntityType,
    ExtractedEntities,
    MatchType,
)
from codematch.query.analyzer import QueryAnalyzer
from codematch.query.context import QueryConstraints, QueryContext, QueryIntent

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.3
DEFAULT_MAX_RESULTS = 50
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_WORKERS = 5

INTENT_BOOST = 0.1
CONSTRAINT_BOOST = 0.05

MATCH_TYPE_PRIORITY = {
    MatchType.EXACT: 1,
    MatchType.PREFIX: 2,
    MatchType.SUFFIX: 3,
    MatchType.PATTERN: 4,
    MatchType.SEMANTIC: 5,
    MatchType.FUZZY: 6,
    MatchType.PHONETIC: 7,
    MatchType.ABBREVIATION: 8,
}

INTENT_ENTITY_TYPES = {
    QueryIntent.FIND_CLASS: EntityType.CLASS,
    QueryIntent.FIND_IMPLEMENTATION: EntityType.CLASS,
    QueryIntent.FIND_METHOD: EntityType.METHOD,
    QueryIntent.FIND_USAGE: EntityType.METHOD,
    QueryIntent.FIND_PACKAGE: EntityType.PACKAGE,
}


def match_type_priority(match_type: MatchType) -> int:
    return MATCH_TYPE_PRIORITY.get(match_type, 9)


class ExtractionOrchestrator:
    """
    Runs the enabled agents for a query and fuses their matches.

    The orchestrator owns a bounded worker pool; call ``close()`` (or use it
    as a context manager) to shut the pool down.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        agents: Sequence[ExtractionAgent],
        analyzer: Optional[QueryAnalyzer] = None,
        toggles: Optional[AgentToggleConfig] = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        max_results: int = DEFAULT_MAX_RESULTS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_workers: int = DEFAULT_MAX_WORKERS,
        circuit_breaker: Optional[AgentCircuitBreaker] = None,
    ):
        """
        Args:
            registry: Entity registry shared by all agents
            agents: Candidate agents; the first PatternMatchingAgent is the fallback
            analyzer: Query analyzer (a default one when omitted)
            toggles: Per-agent enable flags and priorities
            min_confidence: Matches below this are dropped
            max_results: Cap on the final ranked list
            timeout_seconds: Budget for the parallel agent stage
            max_workers: Size of the worker pool
            circuit_breaker: Guard against repeated pipeline failures
        """
        self.registry = registry
        self.agents = list(agents)
        self.analyzer = analyzer or QueryAnalyzer()
        self.toggles = toggles or AgentToggleConfig()
        self.min_confidence = min_confidence
        self.max_results = max_results
        self.timeout_seconds = timeout_seconds
        self.circuit_breaker = circuit_breaker or AgentCircuitBreaker()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="codematch-agent")
        self._fallback = next((a for a in self.agents if isinstance(a, PatternMatchingAgent)), None)
        if self._fallback is None:
            self._fallback = PatternMatchingAgent(registry)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ========================================================================
    # Entry points
    # ========================================================================

    def extract(self, raw_query: Optional[str]) -> ExtractedEntities:
        """
        Extract code entities mentioned by a natural-language query.

        Args:
            raw_query: User text, e.g. ``"where is payment processed"``

        Returns:
            ExtractedEntities with status ``ok``, ``empty`` or ``error``
        """
        if not raw_query or not raw_query.strip():
            return ExtractedEntities.empty()
        try:
            context = self.analyzer.analyze(raw_query)
        except Exception as e:
            logger.error(f"Query analysis failed for '{raw_query}': {e}")
            self.circuit_breaker.record_failure()
            return ExtractedEntities.failed(str(e))
        return self.extract_with_context(context)

    def extract_matches(self, raw_query: Optional[str]) -> List[EntityMatch]:
        """Ranked matches for ``raw_query`` before bucketing."""
        return self.extract(raw_query).matches

    def extract_with_context(self, context: QueryContext) -> ExtractedEntities:
        """Run the pipeline on an already-analyzed query."""
        if not context.tokens and not context.normalized_query.strip():
            return ExtractedEntities.empty()
        if not self.circuit_breaker.allow_execution():
            logger.warning("Extraction rejected: circuit open")
            return ExtractedEntities.failed("circuit open")

        start = time.time()
        try:
            agents = self.select_agents(context)
            results = self.execute_agents(agents, context)
            combined = self.combine_results(results)
            ranked = self.rank_and_filter(combined, context)
            extracted = self.build_result(ranked)
        except Exception as e:
            logger.error(f"Extraction failed for '{context.original_query}': {e}")
            self.circuit_breaker.record_failure()
            return ExtractedEntities.failed(str(e))

        if results and not any(r.success for r in results):
            self.circuit_breaker.record_failure()
        else:
            self.circuit_breaker.record_success()

        logger.info(
            f"🔎 Extracted {len(ranked)} matches for '{context.original_query}' "
            f"from {len(agents)} agents in {(time.time() - start) * 1000:.0f}ms"
        )
        return extracted

    # ========================================================================
    # Stages
    # ========================================================================

    def select_agents(self, context: QueryContext) -> List[ExtractionAgent]:
        """Enabled agents that can handle ``context``, best first; never empty."""
        selected = [
            agent for agent in self.agents
            if self.toggles.is_enabled(agent.name) and agent.can_handle(context)
        ]
        if not selected:
            logger.debug("No agent applicable, falling back to pattern matching")
            return [self._fallback]

        handling = {id(agent): agent.get_handling_confidence(context) for agent in selected}
        selected.sort(key=lambda a: (self.toggles.priority_of(a.name), -handling[id(a)]))
        return selected

    def execute_agents(self, agents: Sequence[ExtractionAgent], context: QueryContext) -> List[AgentResult]:
        """Run ``agents`` concurrently within the time budget."""
        futures = {self._executor.submit(self._run_agent, agent, context): agent for agent in agents}
        done, not_done = wait(futures, timeout=self.timeout_seconds)

        results = []
        for future, agent in futures.items():
            if future in not_done:
                future.cancel()
                logger.warning(f"Agent {agent.name} timed out after {self.timeout_seconds}s")
                results.append(AgentResult.failure(agent.name, "timed out", self.timeout_seconds * 1000))
            else:
                results.append(future.result())
        return results

    def _run_agent(self, agent: ExtractionAgent, context: QueryContext) -> AgentResult:
        start = time.time()
        try:
            matches = agent.extract(context)
        except Exception as e:
            elapsed = (time.time() - start) * 1000
            logger.warning(f"Agent {agent.name} failed: {e}")
            return AgentResult.failure(agent.name, str(e), elapsed)
        return AgentResult(
            agent_name=agent.name,
            matches=list(matches),
            execution_time_ms=(time.time() - start) * 1000,
            success=True,
            confidence=agent.get_handling_confidence(context),
        )

    def combine_results(self, results: Sequence[AgentResult]) -> List[EntityMatch]:
        """Merge matches by entity id; the winner absorbs the loser's reason."""
        merged: Dict[str, EntityMatch] = {}
        for result in results:
            if not result.success:
                continue
            for match in result.matches:
                current = merged.get(match.entity_id)
                if current is None:
                    merged[match.entity_id] = match
                    continue
                winner, loser = (match, current) if match.confidence > current.confidence else (current, match)
                merged[match.entity_id] = winner.with_updates(
                    match_reason=f"{winner.match_reason}; {loser.match_reason}"
                )
        return list(merged.values())

    def rank_and_filter(self, matches: Sequence[EntityMatch], context: QueryContext) -> List[EntityMatch]:
        """Threshold, boost, exclude, sort deterministically and truncate."""
        ranked = []
        for match in matches:
            if match.confidence < self.min_confidence:
                continue
            if self._is_excluded(match, context.constraints):
                continue
            boost = 0.0
            if context.intent is not None and INTENT_ENTITY_TYPES.get(context.intent) == match.entity_type:
                boost += INTENT_BOOST
            if self._satisfies_constraints(match, context.constraints):
                boost += CONSTRAINT_BOOST
            if boost:
                match = match.with_updates(confidence=min(1.0, match.confidence + boost))
            ranked.append(match)

        ranked.sort(key=lambda m: (-m.confidence, match_type_priority(m.match_type), m.entity_name))
        return ranked[: self.max_results]

    def build_result(self, matches: Sequence[EntityMatch]) -> ExtractedEntities:
        extracted = ExtractedEntities(matches=list(matches))
        buckets = {
            EntityType.CLASS: extracted.classes,
            EntityType.METHOD: extracted.methods,
            EntityType.PACKAGE: extracted.packages,
        }
        for match in matches:
            bucket = buckets.get(match.entity_type, extracted.terms)
            if match.entity_name not in bucket:
                bucket.append(match.entity_name)
        if matches:
            extracted.status = STATUS_OK
        return extracted

    # ========================================================================
    # Constraint helpers
    # ========================================================================

    def _is_excluded(self, match: EntityMatch, constraints: QueryConstraints) -> bool:
        name = match.entity_name.lower()
        return any(fnmatch.fnmatchcase(name, pattern.lower()) for pattern in constraints.exclude_patterns)

    def _satisfies_constraints(self, match: EntityMatch, constraints: QueryConstraints) -> bool:
        if not constraints.required_types and not constraints.required_modifiers:
            return False

        entity = self.registry.get_by_id(match.entity_id)
        modifiers = {m.lower() for m in getattr(entity, "modifiers", ())}

        if constraints.required_types:
            kinds = {match.entity_type.value.lower()}
            class_type = getattr(entity, "class_type", None)
            if class_type is not None:
                kinds.add(class_type.value.lower())
            if "abstract" in modifiers:
                kinds.add("abstract")
            if not constraints.required_types & kinds:
                return False

        if constraints.required_modifiers and not constraints.required_modifiers <= modifiers:
            return False
        return True
