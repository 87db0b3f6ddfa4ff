"""Agent selection, parallel execution and result fusion."""

from codematch.extraction.breaker import AgentCircuitBreaker
from codematch.extraction.orchestrator import ExtractionOrchestrator
from codematch.extraction.toggles import AgentToggleConfig

__all__ = ["AgentCircuitBreaker", "AgentToggleConfig", "ExtractionOrchestrator"]
