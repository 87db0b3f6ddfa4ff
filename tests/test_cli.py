"""Tests for CLI command behavior and JSON output contracts."""

import copy
import json
import sys

import pytest

from codematch import cli
from codematch.config import DEFAULT_CONFIG, Config
from codematch.extraction.factory import MatchingService
from codematch.index.loader import StaticEntitySource

from conftest import CLASS_ROWS, METHOD_ROWS

pytestmark = [pytest.mark.unit]


def _run(monkeypatch, *argv):
    """Invoke the CLI entry point with ``argv``."""
    monkeypatch.setattr(sys, "argv", ["codematch", *argv])
    cli.main()


def _parse_json_stdout(capsys):
    """Parse JSON output from stdout."""
    stdout = capsys.readouterr().out.strip()
    assert stdout, "expected JSON on stdout"
    return json.loads(stdout)


@pytest.fixture
def repo(tmp_path, monkeypatch):
    """An initialized repository as the working directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CODEMATCH_REPO", raising=False)
    Config(tmp_path).save(copy.deepcopy(DEFAULT_CONFIG))
    return tmp_path


@pytest.fixture
def sample_service(monkeypatch):
    """Route the CLI's MatchingService to the in-memory sample graph."""
    created = []

    def _factory(config, use_embeddings=True):
        service = MatchingService(
            config,
            source=StaticEntitySource(classes=CLASS_ROWS, methods=METHOD_ROWS),
            use_embeddings=False,
        )
        created.append(service)
        return service

    monkeypatch.setattr(cli, "MatchingService", _factory)
    return created


@pytest.fixture
def empty_service(monkeypatch):
    """A MatchingService whose source has no entities."""
    def _factory(config, use_embeddings=True):
        return MatchingService(config, source=StaticEntitySource(), use_embeddings=False)

    monkeypatch.setattr(cli, "MatchingService", _factory)


def test_init_defaults_writes_config(tmp_path, monkeypatch, capsys):
    """init --defaults saves the default config without prompting."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("builtins.input", lambda prompt: pytest.fail("unexpected prompt"))

    _run(monkeypatch, "init", "--defaults")

    saved = json.loads((tmp_path / ".codematch" / "config.json").read_text())
    assert saved["neo4j"]["uri"] == DEFAULT_CONFIG["neo4j"]["uri"]
    assert saved["agents"]["fuzzy"]["max_edit_distance"] == 2
    assert "✅ Configuration saved" in capsys.readouterr().out


def test_init_prompts_for_connection(tmp_path, monkeypatch):
    """Interactive init stores the answers it was given."""
    monkeypatch.chdir(tmp_path)
    answers = iter(["bolt://graph:7687", "", "secret", "sk-test"])
    monkeypatch.setattr("builtins.input", lambda prompt: next(answers))

    _run(monkeypatch, "init")

    saved = json.loads((tmp_path / ".codematch" / "config.json").read_text())
    assert saved["neo4j"] == {"uri": "bolt://graph:7687", "user": "neo4j", "password": "secret"}
    assert saved["openai"]["api_key"] == "sk-test"


def test_init_twice_keeps_config(repo, monkeypatch, capsys):
    (repo / ".codematch" / "config.json").write_text('{"neo4j": {"uri": "bolt://kept:7687"}}')

    _run(monkeypatch, "init", "--defaults")

    assert "already initialized" in capsys.readouterr().out
    assert "bolt://kept:7687" in (repo / ".codematch" / "config.json").read_text()


def test_extract_requires_init(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".git").mkdir()

    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "extract", "payment")

    assert exc.value.code == 1
    assert "not initialized" in capsys.readouterr().out


def test_extract_json_envelope(repo, sample_service, monkeypatch, capsys):
    """extract --json prints the full result as a single JSON document."""
    _run(monkeypatch, "extract", "payment", "--json")

    payload = _parse_json_stdout(capsys)
    assert payload["status"] == "ok"
    assert payload["error"] is None
    assert {"PaymentService", "PaymentController"} <= set(payload["classes"])
    assert all(0.0 <= m["confidence"] <= 1.0 for m in payload["matches"])


def test_extract_text_output(repo, sample_service, monkeypatch, capsys):
    _run(monkeypatch, "extract", "payment", "--limit", "2")

    out = capsys.readouterr().out
    assert "match(es)" in out
    assert "1. **" in out
    assert "3. **" not in out
    assert "Classes: " in out


def test_extract_selected_agents(repo, sample_service, monkeypatch, capsys):
    """--agents restricts the run to the named agents."""
    _run(monkeypatch, "extract", "PaymentServce", "--agents", "fuzzy", "--json")

    payload = _parse_json_stdout(capsys)
    assert payload["classes"][0] == "PaymentService"
    assert {m["source"] for m in payload["matches"]} == {"FuzzyMatchingAgent"}
    assert sample_service[0].toggles.enabled_agents() == ["fuzzy"]


def test_extract_no_matches(repo, sample_service, monkeypatch, capsys):
    _run(monkeypatch, "extract", "zzzzzzzz")

    assert "No code entities found." in capsys.readouterr().out


def test_extract_exits_when_registry_empty(repo, empty_service, monkeypatch, capsys):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "extract", "payment")

    assert exc.value.code == 1
    assert "Could not load entities" in capsys.readouterr().out


def test_similar(repo, sample_service, monkeypatch, capsys):
    _run(monkeypatch, "similar", "UserServise", "--distance", "1")

    out = capsys.readouterr().out
    assert "**UserService**" in out


def test_similar_none(repo, sample_service, monkeypatch, capsys):
    _run(monkeypatch, "similar", "Qqqqqq", "-d", "1")

    assert "No entities within 1 edits of 'Qqqqqq'." in capsys.readouterr().out


def test_refresh_reports_counts(repo, sample_service, monkeypatch, capsys):
    _run(monkeypatch, "refresh")

    out = capsys.readouterr().out
    assert "✅ Registry loaded" in out
    assert "Classes:        6" in out
    assert "Methods:        5" in out


@pytest.mark.parametrize(
    "argv,expected",
    [
        (["extract", "payment"], False),
        (["extract", "payment", "--embeddings"], True),
        (["refresh"], False),
        (["refresh", "--embeddings"], True),
    ],
)
def test_embeddings_are_opt_in(repo, monkeypatch, capsys, argv, expected):
    """One-shot commands only call OpenAI when --embeddings is given."""
    requested = []

    def _factory(config, use_embeddings=True):
        requested.append(use_embeddings)
        return MatchingService(
            config,
            source=StaticEntitySource(classes=CLASS_ROWS, methods=METHOD_ROWS),
            use_embeddings=False,
        )

    monkeypatch.setattr(cli, "MatchingService", _factory)

    _run(monkeypatch, *argv)

    assert requested == [expected]


def test_status(repo, sample_service, monkeypatch, capsys):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    _run(monkeypatch, "status")

    out = capsys.readouterr().out
    assert "📊 codematch Status" in out
    assert "Agents:     pattern, fuzzy, semantic" in out
    assert "Embeddings: disabled (no OpenAI key)" in out
    assert "Classes:  6" in out


def test_status_without_graph(repo, empty_service, monkeypatch, capsys):
    _run(monkeypatch, "status")

    assert "Could not load entities" in capsys.readouterr().out


def test_no_command_prints_help(monkeypatch, capsys):
    _run(monkeypatch)

    assert "Quick Start" in capsys.readouterr().out
