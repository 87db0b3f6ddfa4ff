from typing import List
import logging

from codematch.extraction.factory import MatchingService
from codematch.models import STATUS_ERROR, EntityMatch

logger = logging.getLogger(__name__)


class Toolkit:
    """
    Markdown rendering of extraction results.
    Separated from the Server so it can be tested or used in CLI/Scripts directly.
    """
    def __init__(self, service: MatchingService):
        self.service = service

    def extract_entities(self, query: str, limit: int = 10) -> str:
        """
        Extracts code entities for a query and formats them for the Agent.
        """
        result = self.service.extract(query)
        if result.status == STATUS_ERROR:
            return f"❌ Extraction failed: {result.error}"
        if not result.matches:
            return f"No code entities found for '{query}'."

        matches = result.matches[:limit]
        report = f"### Found {len(result.matches)} entities for '{query}':\n\n"
        if result.classes:
            report += f"**Classes:** {', '.join(result.classes)}\n"
        if result.methods:
            report += f"**Methods:** {', '.join(result.methods)}\n"
        if result.packages:
            report += f"**Packages:** {', '.join(result.packages)}\n"
        if result.terms:
            report += f"**Terms:** {', '.join(result.terms)}\n"
        report += "\n" + self.format_matches(matches)
        return report

    def find_similar_entities(self, term: str, max_distance: int = 2) -> str:
        """
        Returns registry entities within ``max_distance`` edits of ``term``.
        """
        matches = self.service.registry.find_similar(term, max_distance)
        if not matches:
            return f"No entities within {max_distance} edits of '{term}'."
        report = f"### Entities similar to '{term}' (max distance {max_distance}):\n\n"
        return report + self.format_matches(matches)

    def registry_status(self) -> str:
        stats = self.service.stats()
        last_refresh = stats.get("last_refresh") or "never"
        return (
            "### Entity Registry\n"
            f"**Classes:** {stats['classes']}\n"
            f"**Methods:** {stats['methods']}\n"
            f"**Packages:** {stats['packages']}\n"
            f"**Skipped Records:** {stats['skipped_records']}\n"
            f"**Last Refresh:** {last_refresh}\n"
            f"**Embedded Names:** {stats['semantic_entities']}\n"
            f"**Enabled Agents:** {', '.join(stats['enabled_agents']) or 'none'}\n"
            f"**Circuit:** {stats['circuit_state']}"
        )

    def refresh_registry(self) -> str:
        if not self.service.refresh():
            return "⚠️ Refresh did not install new data; previous registry kept."
        return "✅ Registry refreshed.\n\n" + self.registry_status()

    @staticmethod
    def format_matches(matches: List[EntityMatch]) -> str:
        lines = []
        for i, match in enumerate(matches, 1):
            line = (
                f"{i}. **{match.display_name}** ({match.entity_type.value.lower()}, "
                f"{match.match_type.value}, {match.confidence:.2f})"
            )
            if match.package_name:
                line += f" `{match.package_name}`"
            lines.append(line)
            lines.append(f"   - {match.match_reason}")
        return "\n".join(lines)
