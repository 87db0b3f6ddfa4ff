"""Tests for the Neo4j bulk loader and the in-memory source."""

from unittest.mock import MagicMock, Mock

import pytest

from codematch.index.loader import (
    CLASSES_QUERY,
    METHODS_QUERY,
    PACKAGES_QUERY,
    Neo4jEntitySource,
    StaticEntitySource,
)
from codematch.index.registry import EntityRegistry

pytestmark = [pytest.mark.unit]


class TestNeo4jEntitySource:
    """Test suite for Cypher bulk loading."""

    @pytest.fixture
    def mock_session(self):
        return MagicMock()

    @pytest.fixture
    def source(self, mock_session):
        driver = Mock()
        driver.session.return_value.__enter__ = Mock(return_value=mock_session)
        driver.session.return_value.__exit__ = Mock(return_value=None)
        return Neo4jEntitySource(
            uri="bolt://localhost:7687",
            user="neo4j",
            password="password",
            class_limit=100,
            method_limit=200,
            driver=driver,
        )

    def test_load_classes_passes_limit(self, source, mock_session):
        mock_session.run.return_value = [{"id": "c1", "name": "PaymentService"}]

        rows = source.load_classes()

        assert rows == [{"id": "c1", "name": "PaymentService"}]
        mock_session.run.assert_called_once_with(CLASSES_QUERY, limit=100)

    def test_load_methods_passes_limit(self, source, mock_session):
        mock_session.run.return_value = []

        assert source.load_methods() == []
        mock_session.run.assert_called_once_with(METHODS_QUERY, limit=200)

    def test_load_packages(self, source, mock_session):
        mock_session.run.return_value = [{"packageName": "com.shop", "classes": ["A", "B"]}]

        rows = source.load_packages()

        assert rows[0]["classes"] == ["A", "B"]
        mock_session.run.assert_called_once_with(PACKAGES_QUERY)

    def test_close(self, source):
        source.close()

        source.driver.close.assert_called_once()

    def test_registry_refresh_from_neo4j_rows(self, source, mock_session):
        mock_session.run.side_effect = [
            [{"id": "c1", "name": "PaymentService", "packageName": "com.shop", "labels": ["Class"]}],
            [{"id": "m1", "name": "processPayment", "className": "PaymentService"}],
            [{"packageName": "com.shop", "classes": ["PaymentService"]}],
        ]
        registry = EntityRegistry(source=source)

        assert registry.refresh()
        assert registry.has_class("PaymentService")
        assert registry.has_methods("processPayment")
        assert registry.find_package("com.shop").class_names == ("PaymentService",)


class TestStaticEntitySource:
    def test_packages_derived_from_classes(self):
        source = StaticEntitySource(
            classes=[
                {"id": "c1", "name": "B", "packageName": "p.two"},
                {"id": "c2", "name": "A", "packageName": "p.one"},
                {"id": "c3", "name": "C", "packageName": "p.two"},
                {"id": "c4", "name": "D"},
            ]
        )

        assert source.load_packages() == [
            {"packageName": "p.one", "classes": ["A"]},
            {"packageName": "p.two", "classes": ["B", "C"]},
        ]

    def test_explicit_packages_win(self):
        packages = [{"packageName": "x", "classes": []}]

        assert StaticEntitySource(packages=packages).load_packages() == packages

    def test_returns_copies(self):
        source = StaticEntitySource(classes=[{"id": "c1", "name": "A"}])

        source.load_classes().clear()

        assert len(source.load_classes()) == 1


@pytest.mark.integration
class TestNeo4jIntegration:
    """Integration tests requiring actual Neo4j instance."""

    @pytest.fixture(scope="class")
    def neo4j_source(self):
        """Create a source connected to real Neo4j (if available)."""
        import os

        uri = os.getenv("NEO4J_URI", "bolt://localhost:7687")
        user = os.getenv("NEO4J_USER", "neo4j")
        password = os.getenv("NEO4J_PASSWORD", "test")

        try:
            source = Neo4jEntitySource(uri, user, password)
            source.driver.verify_connectivity()
        except Exception as e:
            pytest.skip(f"Neo4j not available: {e}")
        yield source
        source.close()

    def test_bulk_queries_run(self, neo4j_source):
        """The Cypher bulk queries are valid against a live database."""
        assert isinstance(neo4j_source.load_classes(), list)
        assert isinstance(neo4j_source.load_methods(), list)
        assert isinstance(neo4j_source.load_packages(), list)

    def test_registry_refresh_never_raises(self, neo4j_source):
        registry = EntityRegistry(source=neo4j_source)

        assert registry.refresh() in (True, False)
