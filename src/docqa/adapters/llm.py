"""LiteLLM-backed Generator with API key validation.

LiteLLM's own retry is disabled (num_retries=0); attempt budget, timeout and
backoff are owned by docqa.rag.llm_client.GenerationClient.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import litellm

from docqa.adapters.base import MAX_TEXT_LENGTH
from docqa.errors import MISSING_API_KEY, ConfigurationError, InputError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_VALID_ROLES = frozenset(["system", "user", "assistant"])


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        ConfigurationError: MISSING_API_KEY if the key is absent.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise ConfigurationError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable.",
            MISSING_API_KEY,
            details={"provider": provider, "env_var": env_var},
        )


def validate_messages(messages: list[dict[str, str]]) -> None:
    """Reject malformed chat message lists before they reach the provider."""
    if not messages:
        raise InputError("Messages must be a non-empty list")
    for i, message in enumerate(messages):
        role = message.get("role")
        content = message.get("content")
        if role not in _VALID_ROLES:
            raise InputError(f"Message {i} has invalid role '{role}'")
        if not isinstance(content, str) or not content.strip():
            raise InputError(f"Message {i} has empty content")
        if len(content) > MAX_TEXT_LENGTH:
            raise InputError(
                f"Message {i} too long: {len(content)} characters (max {MAX_TEXT_LENGTH})"
            )


class LiteLLMGenerator:
    """Generator backed by ``litellm.acompletion``."""

    def __init__(self, model: str, max_tokens: int = 1500) -> None:
        self.model = model
        self.max_tokens = max_tokens

    async def generate(self, messages: list[dict[str, str]], **params: Any) -> str:
        """Call litellm.acompletion() once. Returns the content string.

        Args:
            messages: OpenAI-style message list.
            **params: max_tokens, temperature, top_p.

        Returns:
            The text content of the first choice ("" if the provider sent none).
        """
        validate_messages(messages)
        response = await litellm.acompletion(
            model=self.model,
            messages=messages,
            max_tokens=params.get("max_tokens", self.max_tokens),
            temperature=params.get("temperature", 0.1),
            top_p=params.get("top_p", 0.9),
            num_retries=0,
        )
        content = response.choices[0].message.content or ""
        logger.debug("Generated %d characters with %s", len(content), self.model)
        return content

    def get_model(self) -> str:
        return self.model

    def get_max_tokens(self) -> int:
        return self.max_tokens
