"""
Configuration management for codematch.

Handles per-repository configuration stored in .codematch/ directory.
"""

import os
import json
import copy
from pathlib import Path
from typing import Optional, Dict, Any

from codematch.index.vocabulary import (
    DEFAULT_CLASS_SUFFIXES,
    DEFAULT_METHOD_PREFIXES,
    DEFAULT_METHOD_SUFFIXES,
    DEFAULT_PATTERN_SUFFIXES,
    DEFAULT_VERB_PREFIXES,
)

DEFAULT_CONFIG = {
    "neo4j": {
        "uri": "bolt://localhost:7687",
        "user": "neo4j",
        "password": "password",
    },
    "openai": {
        "api_key": "",  # Empty means will use env var
        "embedding_model": "text-embedding-3-large",
    },
    "registry": {
        "refresh_interval_seconds": 3600,
        "class_limit": 10000,
        "method_limit": 50000,
    },
    "extraction": {
        "min_confidence": 0.3,
        "max_results": 50,
        "timeout_seconds": 5.0,
        "max_workers": 5,
    },
    "agents": {
        "pattern": {"enabled": True, "priority": 1},
        "fuzzy": {
            "enabled": True,
            "priority": 2,
            "max_edit_distance": 2,
            "phonetic_matching": True,
            "abbreviation_expansion": True,
            "typo_correction": True,
        },
        "semantic": {
            "enabled": True,
            "priority": 3,
            "embedding_search": True,
            "domain_terms": True,
            "min_similarity_threshold": 0.6,
        },
    },
    "vocabulary": {
        "class_suffixes": list(DEFAULT_CLASS_SUFFIXES),
        "verb_prefixes": list(DEFAULT_VERB_PREFIXES),
        "method_prefixes": list(DEFAULT_METHOD_PREFIXES),
        "method_suffixes": list(DEFAULT_METHOD_SUFFIXES),
        "pattern_suffixes": list(DEFAULT_PATTERN_SUFFIXES),
    },
}


class Config:
    """Manages codematch configuration for a repository."""

    def __init__(self, repo_root: Path):
        """
        Initialize config for a repository.

        Args:
            repo_root: Path to the repository root
        """
        self.repo_root = repo_root
        self.config_dir = repo_root / ".codematch"
        self.config_file = self.config_dir / "config.json"

    def exists(self) -> bool:
        """Check if config exists for this repo."""
        return self.config_file.exists()

    def load(self) -> Dict[str, Any]:
        """Load config from file, or return defaults if not exists."""
        if not self.exists():
            return copy.deepcopy(DEFAULT_CONFIG)

        try:
            with open(self.config_file, "r") as f:
                config = json.load(f)
                # Merge with defaults to handle missing keys
                return self._merge_defaults(config)
        except (json.JSONDecodeError, IOError) as e:
            raise RuntimeError(f"Failed to load config from {self.config_file}: {e}")

    def save(self, config: Dict[str, Any]) -> None:
        """Save config to file."""
        self.config_dir.mkdir(exist_ok=True)
        payload = copy.deepcopy(config)

        # Don't save empty api_key - let it fall back to env var
        if payload.get("openai", {}).get("api_key") == "":
            payload["openai"]["api_key"] = None

        with open(self.config_file, "w") as f:
            json.dump(payload, f, indent=2)

    def _merge_defaults(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Merge user config with defaults."""
        return self._deep_merge_dicts(copy.deepcopy(DEFAULT_CONFIG), config)

    def _deep_merge_dicts(self, base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge nested dictionaries."""
        for key, value in overrides.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                base[key] = self._deep_merge_dicts(base[key], value)
            else:
                base[key] = value
        return base

    def get_neo4j_config(self) -> Dict[str, str]:
        """Get Neo4j connection config, with env var fallbacks."""
        config = self.load()
        neo4j = config["neo4j"]
        return {
            "uri": os.getenv("NEO4J_URI", neo4j["uri"]),
            "user": os.getenv("NEO4J_USER", neo4j["user"]),
            "password": os.getenv("NEO4J_PASSWORD", neo4j["password"]),
        }

    def get_openai_key(self) -> Optional[str]:
        """Get OpenAI API key, with env var fallback."""
        config = self.load()
        # Priority: config file > env var
        key = config["openai"].get("api_key")
        if key:
            return key
        return os.getenv("OPENAI_API_KEY")

    def get_embedding_model(self) -> str:
        """Get the embedding model name."""
        return self.load()["openai"].get("embedding_model") or DEFAULT_CONFIG["openai"]["embedding_model"]

    def get_registry_config(self) -> Dict[str, Any]:
        """Get registry loading/refresh configuration."""
        return self.load()["registry"]

    def get_extraction_config(self) -> Dict[str, Any]:
        """Get orchestrator thresholds and pool settings."""
        return self.load()["extraction"]

    def get_agents_config(self) -> Dict[str, Any]:
        """Get per-agent toggles and priorities."""
        return self.load()["agents"]

    def get_vocabulary_config(self) -> Dict[str, Any]:
        """Get naming vocabularies used by the registry indexes."""
        return self.load()["vocabulary"]

    def save_agents_config(self, agents_config: Dict[str, Any]) -> None:
        """Merge and persist agent toggle configuration."""
        config = self.load()
        config["agents"] = self._deep_merge_dicts(config.get("agents", {}), agents_config)
        self.save(config)


def find_repo_root(start_path: Path = None) -> Optional[Path]:
    """
    Find the repository root by looking for .codematch directory.

    Args:
        start_path: Path to start searching from (defaults to cwd)

    Returns:
        Path to repo root, or None if not found
    """
    start_path = start_path or Path.cwd()
    current = start_path.resolve()

    # Walk up directories looking for .codematch
    while current != current.parent:
        if (current / ".codematch").exists():
            return current
        current = current.parent

    # Not found, check if current dir is a git repo
    current = start_path.resolve()
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent

    # Fallback to current directory
    return start_path.resolve()


def load_config_for_current_dir() -> Optional[Config]:
    """
    Load config for the current directory.

    Returns:
        Config object, or None if not in a codematch-initialized repo
    """
    repo_root = find_repo_root()
    if not (repo_root / ".codematch").exists():
        return None

    return Config(repo_root)
