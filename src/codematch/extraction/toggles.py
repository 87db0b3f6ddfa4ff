"""Per-agent enable flags, priorities and strategy options."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

AGENT_KEYS = {
    "PatternMatchingAgent": "pattern",
    "FuzzyMatchingAgent": "fuzzy",
    "SemanticMatchingAgent": "semantic",
}

DEFAULT_PRIORITIES = {"pattern": 1, "fuzzy": 2, "semantic": 3}
UNKNOWN_PRIORITY = 100


def agent_key(name: str) -> str:
    """Short config key for an agent (``"FuzzyMatchingAgent"`` -> ``"fuzzy"``)."""
    return AGENT_KEYS.get(name, name.lower())


@dataclass
class AgentToggle:
    enabled: bool = True
    priority: int = UNKNOWN_PRIORITY
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentToggleConfig:
    """
    Which agents the orchestrator may run, and in what order.

    Lower priority numbers run (and rank) first. Agents that are not
    configured at all are treated as enabled with the lowest priority.
    """

    agents: Dict[str, AgentToggle] = field(
        default_factory=lambda: {
            key: AgentToggle(enabled=True, priority=priority)
            for key, priority in DEFAULT_PRIORITIES.items()
        }
    )

    @classmethod
    def from_config(cls, agents_config: Optional[Dict[str, Any]]) -> "AgentToggleConfig":
        """
        Build toggles from the ``agents`` section of the config file.

        Args:
            agents_config: Mapping of agent key to ``{"enabled", "priority", ...options}``

        Returns:
            AgentToggleConfig (defaults when ``agents_config`` is empty)
        """
        toggles = cls()
        for key, section in (agents_config or {}).items():
            if not isinstance(section, dict):
                continue
            options = {k: v for k, v in section.items() if k not in ("enabled", "priority")}
            toggles.agents[agent_key(key)] = AgentToggle(
                enabled=bool(section.get("enabled", True)),
                priority=int(section.get("priority", DEFAULT_PRIORITIES.get(agent_key(key), UNKNOWN_PRIORITY))),
                options=copy.deepcopy(options),
            )
        return toggles

    def enable_all(self) -> None:
        for toggle in self.agents.values():
            toggle.enabled = True

    def disable_all(self) -> None:
        for toggle in self.agents.values():
            toggle.enabled = False

    def enable_only(self, *names: str) -> None:
        """Enable exactly the named agents, disabling the rest."""
        wanted = {agent_key(name) for name in names}
        for key, toggle in self.agents.items():
            toggle.enabled = key in wanted
        for key in wanted - set(self.agents):
            self.agents[key] = AgentToggle(enabled=True, priority=DEFAULT_PRIORITIES.get(key, UNKNOWN_PRIORITY))

    def is_any_enabled(self) -> bool:
        return any(toggle.enabled for toggle in self.agents.values())

    def is_enabled(self, name: str) -> bool:
        toggle = self.agents.get(agent_key(name))
        return toggle.enabled if toggle else True

    def priority_of(self, name: str) -> int:
        toggle = self.agents.get(agent_key(name))
        return toggle.priority if toggle else UNKNOWN_PRIORITY

    def options_of(self, name: str) -> Dict[str, Any]:
        toggle = self.agents.get(agent_key(name))
        return dict(toggle.options) if toggle else {}

    def enabled_agents(self) -> List[str]:
        return sorted(
            (key for key, toggle in self.agents.items() if toggle.enabled),
            key=lambda key: (self.agents[key].priority, key),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: dict(toggle.options, enabled=toggle.enabled, priority=toggle.priority)
            for key, toggle in self.agents.items()
        }
