"""Tests for the LiteLLM generator adapter and API key validation."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from docqa.adapters.llm import LiteLLMGenerator, validate_api_key, validate_messages
from docqa.errors import MISSING_API_KEY, ConfigurationError, InputError

_ACOMPLETION = "docqa.adapters.llm.litellm.acompletion"


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY") as exc_info:
        validate_api_key("openai/gpt-4o-mini")
    assert exc_info.value.code == MISSING_API_KEY
    assert exc_info.value.details == {"provider": "openai", "env_var": "OPENAI_API_KEY"}


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o-mini")  # should not raise


def test_validate_api_key_anthropic(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
        validate_api_key("anthropic/claude-3-5-haiku-20241022")


def test_validate_api_key_bare_model_is_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        validate_api_key("gpt-4o-mini")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama3")


# ------------------------------------------------------------------
# validate_messages
# ------------------------------------------------------------------


def test_validate_messages_accepts_chat():
    validate_messages([{"role": "system", "content": "s"}, {"role": "user", "content": "u"}])


@pytest.mark.parametrize(
    "messages",
    [
        [],
        [{"role": "tool", "content": "x"}],
        [{"role": "user", "content": "  "}],
        [{"role": "user", "content": "x" * 100_001}],
    ],
)
def test_validate_messages_rejects_malformed(messages):
    with pytest.raises(InputError):
        validate_messages(messages)


# ------------------------------------------------------------------
# LiteLLMGenerator
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_generate_calls_litellm_without_retries():
    mock = AsyncMock(return_value=_completion("## Summary\nDone."))
    generator = LiteLLMGenerator("openai/gpt-4o-mini", max_tokens=500)
    with patch(_ACOMPLETION, new=mock):
        text = await generator.generate(
            [{"role": "user", "content": "hi"}], temperature=0.2, top_p=0.8
        )

    assert text == "## Summary\nDone."
    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["max_tokens"] == 500
    assert kwargs["temperature"] == 0.2
    assert kwargs["top_p"] == 0.8
    assert kwargs["num_retries"] == 0


@pytest.mark.asyncio
async def test_generate_returns_empty_string_for_missing_content():
    with patch(_ACOMPLETION, new=AsyncMock(return_value=_completion(None))):
        text = await LiteLLMGenerator("openai/gpt-4o-mini").generate(
            [{"role": "user", "content": "hi"}]
        )
    assert text == ""


@pytest.mark.asyncio
async def test_generate_propagates_provider_errors():
    with patch(_ACOMPLETION, new=AsyncMock(side_effect=RuntimeError("rate limited"))):
        with pytest.raises(RuntimeError, match="rate limited"):
            await LiteLLMGenerator("openai/gpt-4o-mini").generate(
                [{"role": "user", "content": "hi"}]
            )


def test_generator_reports_model_and_budget():
    generator = LiteLLMGenerator("openai/gpt-4o-mini", max_tokens=900)
    assert generator.get_model() == "openai/gpt-4o-mini"
    assert generator.get_max_tokens() == 900
