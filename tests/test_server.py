"""Tests for the MCP server and tools."""

import pytest
from unittest.mock import Mock, patch

from codematch.config import Config
from codematch.extraction.factory import MatchingService
from codematch.index.loader import StaticEntitySource
from codematch.models import EntityMatch, EntityType, ExtractedEntities, MatchType
from codematch.server.tools import Toolkit

from conftest import CLASS_ROWS, METHOD_ROWS

pytestmark = [pytest.mark.unit]


@pytest.fixture
def matching_service(tmp_path):
    """Service over the in-memory sample graph, without embeddings."""
    service = MatchingService(
        Config(tmp_path),
        source=StaticEntitySource(classes=CLASS_ROWS, methods=METHOD_ROWS),
        use_embeddings=False,
    )
    assert service.refresh()
    yield service
    service.close()


class TestToolkit:
    """Test suite for the Toolkit class."""

    @pytest.fixture
    def mock_service(self):
        """Create a mock matching service."""
        return Mock()

    @pytest.fixture
    def toolkit(self, mock_service):
        """Create a Toolkit with a mocked service."""
        return Toolkit(mock_service)

    def test_extract_entities_formats_buckets(self, toolkit, mock_service):
        """Test extraction results render as markdown."""
        match = EntityMatch(
            entity_id="c1",
            entity_name="PaymentService",
            entity_type=EntityType.CLASS,
            confidence=0.95,
            match_type=MatchType.EXACT,
            match_reason="exact name match",
            package_name="com.shop.payment",
        )
        mock_service.extract.return_value = ExtractedEntities(
            classes=["PaymentService"], matches=[match], status="ok"
        )

        result = toolkit.extract_entities("payment")

        assert "### Found 1 entities for 'payment':" in result
        assert "**Classes:** PaymentService" in result
        assert "1. **PaymentService** (class, EXACT, 0.95) `com.shop.payment`" in result
        assert "   - exact name match" in result
        mock_service.extract.assert_called_once_with("payment")

    def test_extract_entities_empty(self, toolkit, mock_service):
        """Test extraction with no results."""
        mock_service.extract.return_value = ExtractedEntities.empty()

        assert toolkit.extract_entities("nothing") == "No code entities found for 'nothing'."

    def test_extract_entities_error(self, toolkit, mock_service):
        """Test a failed extraction is reported, not raised."""
        mock_service.extract.return_value = ExtractedEntities.failed("circuit open")

        assert toolkit.extract_entities("payment") == "❌ Extraction failed: circuit open"

    def test_find_similar_entities_empty(self, toolkit, mock_service):
        mock_service.registry.find_similar.return_value = []

        result = toolkit.find_similar_entities("zzz", 1)

        assert result == "No entities within 1 edits of 'zzz'."
        mock_service.registry.find_similar.assert_called_once_with("zzz", 1)

    def test_refresh_failure(self, toolkit, mock_service):
        mock_service.refresh.return_value = False

        assert toolkit.refresh_registry().startswith("⚠️ Refresh did not install")

    def test_method_display_name(self):
        match = EntityMatch(
            entity_id="m1",
            entity_name="processPayment",
            entity_type=EntityType.METHOD,
            confidence=0.7,
            match_type=MatchType.PREFIX,
            match_reason="prefix match: process",
            class_name="PaymentService",
        )

        assert Toolkit.format_matches([match]).startswith("1. **PaymentService.processPayment** (method")


class TestToolkitWithService:
    """Toolkit over a real service and registry."""

    def test_extract_payment(self, matching_service):
        result = Toolkit(matching_service).extract_entities("payment")

        assert "PaymentService" in result
        assert "PaymentController" in result

    def test_limit_caps_listed_matches(self, matching_service):
        result = Toolkit(matching_service).extract_entities("payment", limit=1)

        assert "1. **" in result
        assert "\n2. **" not in result

    def test_find_similar_typo(self, matching_service):
        result = Toolkit(matching_service).find_similar_entities("PaymentServce", 2)

        assert "### Entities similar to 'PaymentServce'" in result
        assert "**PaymentService**" in result

    def test_registry_status(self, matching_service):
        result = Toolkit(matching_service).registry_status()

        assert "**Classes:** 6" in result
        assert "**Methods:** 5" in result
        assert "**Enabled Agents:** pattern, fuzzy, semantic" in result
        assert "**Circuit:** CLOSED" in result

    def test_refresh_registry(self, matching_service):
        result = Toolkit(matching_service).refresh_registry()

        assert result.startswith("✅ Registry refreshed.")


class TestMCPServerTools:
    """Test MCP server tool decorators and setup."""

    def test_mcp_initialization(self):
        """Test that MCP server can be initialized."""
        from codematch.server.app import mcp, service

        assert mcp is not None
        assert service is None

    def test_validate_tool_output(self):
        from codematch.server.app import validate_tool_output

        assert validate_tool_output("") == "❌ Tool returned invalid output"
        truncated = validate_tool_output("x" * 20, max_length=10)
        assert truncated.startswith("x" * 10)
        assert "[Output truncated: 10 chars omitted]" in truncated


class TestExtractEntitiesTool:
    """Test the extract_entities MCP tool."""

    def test_extract_entities_success(self, matching_service):
        with patch("codematch.server.app.service", matching_service):
            from codematch.server.app import extract_entities
            result = extract_entities("  payment  ")

        assert "### Found" in result
        assert "'payment'" in result

    def test_extract_entities_blank_query(self, matching_service):
        with patch("codematch.server.app.service", matching_service):
            from codematch.server.app import extract_entities
            result = extract_entities("   ")

        assert result == "❌ Query must not be empty."

    def test_service_unavailable(self):
        with patch("codematch.server.app.service", None), \
                patch("codematch.server.app.init_service", side_effect=RuntimeError("no neo4j")):
            from codematch.server.app import extract_entities, registry_status
            assert extract_entities("payment").startswith("❌ Matching service not initialized")
            assert registry_status().startswith("❌ Matching service not initialized")


class TestFindSimilarEntitiesTool:
    """Test the find_similar_entities MCP tool."""

    def test_distance_clamped(self):
        mock_service = Mock()
        mock_service.registry.find_similar.return_value = []
        with patch("codematch.server.app.service", mock_service):
            from codematch.server.app import find_similar_entities
            find_similar_entities("Paymnt", max_distance=9)

        mock_service.registry.find_similar.assert_called_once_with("Paymnt", 3)

    def test_blank_term(self):
        with patch("codematch.server.app.service", Mock()):
            from codematch.server.app import find_similar_entities
            assert find_similar_entities(" ") == "❌ Term must not be empty."


class TestRegistryTools:
    """Test the registry status and refresh MCP tools."""

    def test_registry_status(self, matching_service):
        with patch("codematch.server.app.service", matching_service):
            from codematch.server.app import registry_status
            result = registry_status()

        assert result.startswith("### Entity Registry")

    def test_refresh_registry(self, matching_service):
        with patch("codematch.server.app.service", matching_service):
            from codematch.server.app import refresh_registry
            result = refresh_registry()

        assert "✅ Registry refreshed." in result
