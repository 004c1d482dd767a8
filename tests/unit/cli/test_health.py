"""Tests for docqa health."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from docqa.cli.main import app

runner = CliRunner()

_ACOMPLETION = "docqa.adapters.llm.litellm.acompletion"


def _completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_health_all_components_ok(cli_env, tmp_path):
    with patch(_ACOMPLETION, new=AsyncMock(return_value=_completion("OK"))):
        result = runner.invoke(app, ["health", "--sandbox", "--db", str(tmp_path / "h.db")])

    assert result.exit_code == 0, result.output
    assert "Document store" in result.output
    assert "Generation model" in result.output
    assert "failed" not in result.output


def test_health_reports_unreachable_generator(cli_env, tmp_path):
    with patch(_ACOMPLETION, new=AsyncMock(side_effect=RuntimeError("connection refused"))):
        result = runner.invoke(app, ["health", "--sandbox", "--db", str(tmp_path / "h.db")])

    assert result.exit_code == 1
    assert "Unhealthy" in result.output


def test_health_requires_generation_key(cli_env, tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    result = runner.invoke(app, ["health", "--sandbox", "--db", str(tmp_path / "h.db")])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output
