"""Tests for the semantic matching agent and semantic index."""

from unittest.mock import Mock

import pytest

from codematch.agents.semantic import MAX_SEMANTIC_RESULTS, SemanticMatchingAgent
from codematch.config import Config
from codematch.extraction.factory import MatchingService
from codematch.index.loader import StaticEntitySource
from codematch.models import EntityType, MatchType
from codematch.query import QueryAnalyzer
from codematch.semantic import SemanticEntityIndex, soundex
from codematch.semantic.index import cosine_similarity

from conftest import CLASS_ROWS

pytestmark = [pytest.mark.unit]

VECTORS = {
    "PaymentService": [1.0, 0.0],
    "PaymentController": [0.9, 0.1],
    "UserService": [0.0, 1.0],
}


@pytest.fixture
def analyzer():
    return QueryAnalyzer()


@pytest.fixture
def semantic_index():
    index = SemanticEntityIndex()
    for name, vector in VECTORS.items():
        index.add_entity_embedding(name, vector)
    return index


@pytest.fixture
def embedding_service():
    service = Mock()
    service.embed.return_value = [1.0, 0.0]
    return service


def _by_name(matches):
    return {m.entity_name: m for m in matches}


class TestSemanticMatchingAgent:
    def test_embedding_matches(self, registry, semantic_index, embedding_service, analyzer):
        agent = SemanticMatchingAgent(registry, semantic_index, embedding_service)

        matches = _by_name(agent.extract(analyzer.analyze("payment")))

        assert matches["PaymentService"].confidence == 1.0
        assert matches["PaymentService"].match_reason == "embedding similarity: 1.00"
        assert matches["PaymentController"].confidence == pytest.approx(cosine_similarity([1, 0], [0.9, 0.1]))
        assert "UserService" not in matches
        assert all(m.match_type == MatchType.SEMANTIC for m in matches.values())
        assert all(m.source == "SemanticMatchingAgent" for m in matches.values())
        embedding_service.embed.assert_called_once_with("payment")

    def test_embedding_failure_is_contained(self, registry, semantic_index, embedding_service, analyzer):
        embedding_service.embed.side_effect = RuntimeError("api down")
        agent = SemanticMatchingAgent(registry, semantic_index, embedding_service)

        matches = _by_name(agent.extract(analyzer.analyze("payment")))

        assert matches["PaymentService"].confidence == 0.75
        assert matches["PaymentService"].match_reason == "class pattern: payment + Service"

    def test_without_embedding_service(self, registry, analyzer):
        agent = SemanticMatchingAgent(registry)

        matches = _by_name(agent.extract(analyzer.analyze("payment")))

        assert {"PaymentService", "PaymentController"} <= set(matches)

    def test_embedding_search_disabled(self, registry, semantic_index, embedding_service, analyzer):
        agent = SemanticMatchingAgent(registry, semantic_index, embedding_service, embedding_search=False)

        agent.extract(analyzer.analyze("payment"))

        embedding_service.embed.assert_not_called()

    def test_method_intent(self, registry, analyzer):
        agent = SemanticMatchingAgent(registry)

        matches = _by_name(agent.extract(analyzer.analyze("method to validate payment")))

        assert matches["validatePayment"].entity_type == EntityType.METHOD
        assert matches["validatePayment"].confidence == 0.7

    def test_cluster_members(self, registry, semantic_index, analyzer):
        semantic_index.build_semantic_clusters(0.8)
        agent = SemanticMatchingAgent(registry, semantic_index)

        matches = agent.extract(analyzer.analyze("PaymentService"))

        assert [(m.entity_name, m.confidence) for m in matches] == [("PaymentController", 0.7)]
        assert matches[0].match_reason == "semantic cluster member: PaymentService -> paymentcontroller"

    def test_results_filtered_and_capped(self, registry, semantic_index, embedding_service, analyzer):
        agent = SemanticMatchingAgent(registry, semantic_index, embedding_service)

        matches = agent.extract(analyzer.analyze("list all payment user order service"))

        assert len(matches) <= MAX_SEMANTIC_RESULTS
        assert all(m.confidence >= 0.6 for m in matches)
        assert len({m.entity_id for m in matches}) == len(matches)
        confidences = [m.confidence for m in matches]
        assert confidences == sorted(confidences, reverse=True)

    def test_can_handle_and_confidence(self, registry, analyzer):
        agent = SemanticMatchingAgent(registry)

        assert agent.can_handle(analyzer.analyze("payment"))
        assert agent.get_handling_confidence(analyzer.analyze("payment")) == pytest.approx(0.7)
        assert agent.get_handling_confidence(analyzer.analyze("how does payment work")) == pytest.approx(0.9)


class TestSemanticEntityIndex:
    def test_find_similar_sorted_above_threshold(self, semantic_index):
        results = semantic_index.find_similar([1.0, 0.0], 0.6)

        assert [r.entity_name for r in results] == ["paymentservice", "paymentcontroller"]

    def test_domain_terms(self):
        index = SemanticEntityIndex()

        related = index.get_domain_terms("billing")

        assert "payment" in related
        assert "invoice" in related
        assert "billing" not in related

    def test_business_context(self):
        related = SemanticEntityIndex().get_business_context_terms("cart")

        assert {"checkout", "order"} <= related

    def test_abbreviations_and_phonetics(self, semantic_index):
        assert semantic_index.expand_abbreviation("SVC") == {"service"}
        assert "PaymentService" in semantic_index.find_phonetic_matches("Paymint")

    def test_soundex(self):
        assert soundex("Robert") == "R163"
        assert soundex("Rupert") == "R163"
        assert soundex("") == "0000"

    def test_clusters(self, semantic_index):
        assert semantic_index.build_semantic_clusters(0.8) == 1
        assert semantic_index.find_semantic_cluster("PaymentService") == {"paymentservice", "paymentcontroller"}

    def test_update_domain_terms(self):
        index = SemanticEntityIndex()

        index.update_domain_terms({"ledger": {"journal": 7, "noise": 1}})

        assert "journal" in index.get_domain_terms("ledger")
        assert "noise" not in index.get_domain_terms("ledger")

    def test_index_registry_with_embeddings(self, registry):
        service = Mock()
        service.embed_batch.side_effect = lambda names: [[float(len(n)), 1.0] for n in names]
        index = SemanticEntityIndex()

        embedded = index.index_registry(registry, service, batch_size=4)

        assert embedded == registry.class_count()
        assert index.has_embedding("PaymentService")
        assert service.embed_batch.call_count == 2

    def test_cosine_similarity_edge_cases(self):
        assert cosine_similarity([0, 0], [1, 0]) == 0.0
        assert cosine_similarity([1, 0], [1, 0, 0]) == 0.0


class TestReindexOnRefresh:
    """The semantic index follows the registry through MatchingService.refresh()."""

    LEGACY_ROW = {"id": "c9", "name": "LegacyService", "fullName": "com.shop.legacy.LegacyService",
                  "packageName": "com.shop.legacy", "labels": ["Class"]}

    @pytest.fixture
    def embedder(self):
        service = Mock()
        service.embed_batch.side_effect = lambda names: [[1.0, 0.0] for _ in names]
        return service

    def _service(self, tmp_path, source, embedder):
        return MatchingService(Config(tmp_path), source=source, embedding_service=embedder)

    def test_refresh_builds_clusters(self, tmp_path, embedder):
        service = self._service(tmp_path, StaticEntitySource(classes=CLASS_ROWS[:2]), embedder)
        try:
            assert service.refresh()

            index = service.semantic_index
            assert index.cluster_count == 1
            assert index.find_semantic_cluster("PaymentService") == {"paymentservice", "paymentcontroller"}
        finally:
            service.close()

    def test_refresh_drops_removed_names(self, tmp_path, embedder):
        source = StaticEntitySource(classes=[self.LEGACY_ROW, CLASS_ROWS[0]])
        service = self._service(tmp_path, source, embedder)
        try:
            assert service.refresh()
            assert service.semantic_index.has_embedding("LegacyService")

            source.classes = [CLASS_ROWS[0]]
            assert service.refresh()

            index = service.semantic_index
            assert not index.has_embedding("LegacyService")
            assert index.has_embedding("PaymentService")
            assert index.entity_count == 1
            assert index.cluster_count == 0
            assert "LegacyService" not in index.find_phonetic_matches("LegacyService")
        finally:
            service.close()

    def test_refresh_reuses_existing_embeddings(self, tmp_path, embedder):
        source = StaticEntitySource(classes=[CLASS_ROWS[0]])
        service = self._service(tmp_path, source, embedder)
        try:
            assert service.refresh()
            source.classes = CLASS_ROWS[:2]
            assert service.refresh()

            embedded = [call.args[0] for call in embedder.embed_batch.call_args_list]
            assert embedded == [["PaymentService"], ["PaymentController"]]
            assert service.semantic_index.entity_count == 2
        finally:
            service.close()
