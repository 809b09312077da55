from __future__ import annotations

import json

import pytest

import run_fetch
from feed_engine.config import get_settings


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("FEED_URL", "")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def invoke(monkeypatch, *argv):
    monkeypatch.setattr("sys.argv", ["run_fetch.py", *argv])
    return run_fetch.main()


def test_status(cli_env, monkeypatch, capsys):
    assert invoke(monkeypatch, "status") == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {"running": False, "jobs": 0, "ai_enabled": False, "feed_configured": False}


def test_run_without_feed_is_skipped(cli_env, monkeypatch, capsys):
    assert invoke(monkeypatch, "run") == 0
    assert json.loads(capsys.readouterr().out) == {"skipped": True}


def test_manual_then_facts(cli_env, monkeypatch, capsys):
    code = invoke(
        monkeypatch, "manual",
        "--title", "Chauffeur SPL",
        "--company", "Transports Martin",
        "--url", "https://example.com/apply",
        "--description", "<p>CDD, basé à Lyon. Salaire de 28000 à 35000 € par an.</p>",
    )
    assert code == 0
    posting = json.loads(capsys.readouterr().out)

    assert invoke(monkeypatch, "facts", posting["slug"]) == 0
    facts = json.loads(capsys.readouterr().out)
    assert facts["employment_type"] == "CONTRACTOR"
    assert facts["location"] == {"country": "FR", "city": "Lyon"}
    assert facts["salary"] == {"currency": "EUR", "min_value": 28000, "max_value": 35000, "unit": "YEAR"}


def test_facts_unknown_slug(cli_env, monkeypatch, capsys):
    assert invoke(monkeypatch, "facts", "nope") == 1
    assert "No posting with slug" in capsys.readouterr().err
