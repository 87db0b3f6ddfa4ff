"""Wire a registry, agents and orchestrator together from a Config."""

import logging
from typing import Any, Dict, List, Optional

from codematch.agents import FuzzyMatchingAgent, PatternMatchingAgent, SemanticMatchingAgent
from codematch.agents.base import ExtractionAgent
from codematch.config import Config
from codematch.extraction.orchestrator import ExtractionOrchestrator
from codematch.extraction.toggles import AgentToggleConfig
from codematch.index.loader import Neo4jEntitySource
from codematch.index.registry import EntityRegistry
from codematch.index.vocabulary import Vocabulary
from codematch.models import ExtractedEntities
from codematch.semantic import EmbeddingService, SemanticEntityIndex

logger = logging.getLogger(__name__)


def create_registry(config: Config, source=None) -> EntityRegistry:
    """
    Build an (unloaded) registry for ``config``.

    Args:
        config: Repository config
        source: Entity source; a Neo4jEntitySource from the config when omitted
    """
    if source is None:
        neo4j_cfg = config.get_neo4j_config()
        registry_cfg = config.get_registry_config()
        source = Neo4jEntitySource(
            uri=neo4j_cfg["uri"],
            user=neo4j_cfg["user"],
            password=neo4j_cfg["password"],
            class_limit=registry_cfg.get("class_limit", 10000),
            method_limit=registry_cfg.get("method_limit", 50000),
        )
    vocabulary = Vocabulary.from_config(config.get_vocabulary_config())
    return EntityRegistry(source=source, vocabulary=vocabulary)


def create_embedding_service(config: Config) -> Optional[EmbeddingService]:
    """OpenAI embedding service, or None when no API key is configured."""
    api_key = config.get_openai_key()
    if not api_key:
        logger.info("No OpenAI API key configured; semantic agent runs without embeddings")
        return None
    return EmbeddingService(api_key=api_key, model=config.get_embedding_model())


def create_agents(
    registry: EntityRegistry,
    toggles: AgentToggleConfig,
    semantic_index: SemanticEntityIndex,
    embedding_service: Optional[EmbeddingService] = None,
) -> List[ExtractionAgent]:
    fuzzy = toggles.options_of("fuzzy")
    semantic = toggles.options_of("semantic")
    return [
        PatternMatchingAgent(registry),
        FuzzyMatchingAgent(
            registry,
            semantic_index=semantic_index,
            max_edit_distance=fuzzy.get("max_edit_distance", 2),
            phonetic_matching=fuzzy.get("phonetic_matching", True),
            abbreviation_expansion=fuzzy.get("abbreviation_expansion", True),
            typo_correction=fuzzy.get("typo_correction", True),
        ),
        SemanticMatchingAgent(
            registry,
            semantic_index=semantic_index,
            embedding_service=embedding_service,
            min_similarity=semantic.get("min_similarity_threshold", 0.6),
            embedding_search=semantic.get("embedding_search", True),
            domain_terms=semantic.get("domain_terms", True),
        ),
    ]


class MatchingService:
    """
    Registry, semantic index and orchestrator for one repository.

    ``refresh()`` reloads the registry and re-indexes the semantic index so
    the agents see matching state.
    """

    def __init__(
        self,
        config: Config,
        source=None,
        embedding_service: Optional[EmbeddingService] = None,
        use_embeddings: bool = True,
    ):
        self.config = config
        self.registry = create_registry(config, source)
        self.semantic_index = SemanticEntityIndex()
        if embedding_service is None and use_embeddings:
            embedding_service = create_embedding_service(config)
        self.embedding_service = embedding_service
        self.toggles = AgentToggleConfig.from_config(config.get_agents_config())
        self.registry.add_refresh_listener(self._reindex)

        extraction_cfg = config.get_extraction_config()
        self.orchestrator = ExtractionOrchestrator(
            self.registry,
            create_agents(self.registry, self.toggles, self.semantic_index, self.embedding_service),
            toggles=self.toggles,
            min_confidence=extraction_cfg.get("min_confidence", 0.3),
            max_results=extraction_cfg.get("max_results", 50),
            timeout_seconds=extraction_cfg.get("timeout_seconds", 5.0),
            max_workers=extraction_cfg.get("max_workers", 5),
        )

    def refresh(self) -> bool:
        """Reload entities; False when the previous state was kept."""
        return self.registry.refresh()

    def _reindex(self, registry: EntityRegistry) -> None:
        self.semantic_index.index_registry(registry, self.embedding_service)

    def start_periodic_refresh(self) -> None:
        interval = self.config.get_registry_config().get("refresh_interval_seconds", 3600)
        self.registry.start_periodic_refresh(interval)

    def extract(self, query: str) -> ExtractedEntities:
        return self.orchestrator.extract(query)

    def stats(self) -> Dict[str, Any]:
        stats = self.registry.stats()
        stats["semantic_entities"] = self.semantic_index.entity_count
        stats["circuit_state"] = self.orchestrator.circuit_breaker.state
        stats["enabled_agents"] = self.toggles.enabled_agents()
        return stats

    def close(self) -> None:
        self.registry.stop_periodic_refresh()
        self.orchestrator.close()
        source = self.registry.source
        if hasattr(source, "close"):
            source.close()
