"""Tests for per-repository configuration."""

import json

import pytest

from codematch.config import DEFAULT_CONFIG, Config, find_repo_root, load_config_for_current_dir

pytestmark = [pytest.mark.unit]


def test_defaults_when_missing(tmp_path):
    """A repo without a config file gets a copy of the defaults."""
    config = Config(tmp_path)

    loaded = config.load()

    assert not config.exists()
    assert loaded == DEFAULT_CONFIG
    loaded["neo4j"]["uri"] = "changed"
    assert DEFAULT_CONFIG["neo4j"]["uri"] == "bolt://localhost:7687"


def test_partial_file_merged_with_defaults(tmp_path):
    """Nested sections missing from the file fall back to defaults."""
    (tmp_path / ".codematch").mkdir()
    (tmp_path / ".codematch" / "config.json").write_text(
        json.dumps({"agents": {"fuzzy": {"enabled": False}}, "extraction": {"max_results": 5}})
    )
    config = Config(tmp_path)

    agents = config.get_agents_config()

    assert agents["fuzzy"]["enabled"] is False
    assert agents["fuzzy"]["max_edit_distance"] == 2
    assert agents["pattern"]["enabled"] is True
    assert config.get_extraction_config()["max_results"] == 5
    assert config.get_extraction_config()["min_confidence"] == 0.3


def test_invalid_json_raises(tmp_path):
    (tmp_path / ".codematch").mkdir()
    (tmp_path / ".codematch" / "config.json").write_text("{not json")

    with pytest.raises(RuntimeError, match="Failed to load config"):
        Config(tmp_path).load()


def test_save_blanks_api_key(tmp_path):
    """An empty API key is stored as null so the env var is used."""
    config = Config(tmp_path)

    config.save(DEFAULT_CONFIG)

    saved = json.loads(config.config_file.read_text())
    assert saved["openai"]["api_key"] is None
    assert DEFAULT_CONFIG["openai"]["api_key"] == ""


def test_env_var_fallbacks(tmp_path, monkeypatch):
    monkeypatch.setenv("NEO4J_URI", "bolt://graph:7687")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    config = Config(tmp_path)

    assert config.get_neo4j_config()["uri"] == "bolt://graph:7687"
    assert config.get_openai_key() == "sk-env"


def test_config_key_beats_env(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    config = Config(tmp_path)
    payload = json.loads(json.dumps(DEFAULT_CONFIG))
    payload["openai"]["api_key"] = "sk-file"
    config.save(payload)

    assert config.get_openai_key() == "sk-file"


def test_save_agents_config_merges(tmp_path):
    config = Config(tmp_path)

    config.save_agents_config({"semantic": {"enabled": False}})

    agents = config.get_agents_config()
    assert agents["semantic"]["enabled"] is False
    assert agents["semantic"]["min_similarity_threshold"] == 0.6


def test_find_repo_root_prefers_config_dir(tmp_path):
    (tmp_path / ".codematch").mkdir()
    nested = tmp_path / "src" / "pkg"
    nested.mkdir(parents=True)

    assert find_repo_root(nested) == tmp_path.resolve()


def test_find_repo_root_falls_back_to_git(tmp_path):
    (tmp_path / ".git").mkdir()
    nested = tmp_path / "a"
    nested.mkdir()

    assert find_repo_root(nested) == tmp_path.resolve()


def test_load_config_for_current_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".git").mkdir()
    assert load_config_for_current_dir() is None

    (tmp_path / ".codematch").mkdir()
    config = load_config_for_current_dir()
    assert config is not None
    assert config.repo_root == tmp_path.resolve()
