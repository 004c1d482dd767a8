"""Generation client: bounded-retry model calls plus answer post-processing.

generate() makes up to ``retries + 1`` attempts. Each attempt is raced
against ``timeout_ms``; a failed attempt is followed by a ``2 ** attempt``
second backoff. Every failure is retried the same way except
ConfigurationError and InputError, which cannot succeed on retry and
propagate immediately. Exhaustion raises GenerationError carrying the
attempt count and the last underlying error.

The parse/validate/clean helpers are pure functions over the answer text
and never raise.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from docqa.adapters.base import Generator
from docqa.errors import (
    LLM_GENERATION_ERROR,
    LLM_GENERATION_FAILED,
    ConfigurationError,
    GenerationError,
    InputError,
    RAGError,
)
from docqa.log import truncate

logger = logging.getLogger(__name__)

# Logged for observability only; never changes control flow.
_REFUSAL_PATTERNS = (
    "Create a fallback response",
    "I cannot",
    "I don't have",
    "No information available",
    "Unable to process",
)

_PLACEHOLDERS = ("TODO", "TBD", "[placeholder]", "...")
_ERROR_INDICATORS = ("I cannot", "I don't know", "error occurred")

_STEP_VERBS = (
    "navigate to",
    "click on",
    "select",
    "enter",
    "choose",
    "go to",
    "open",
    "access",
    "configure",
    "set up",
)

_NUMBERED_ITEM_RE = re.compile(r"^[ \t]*(\d+)\.[ \t]*(.+)$", re.MULTILINE)
_BULLET_ITEM_RE = re.compile(r"^[ \t]*[-*][ \t]*(.+)$", re.MULTILINE)
_SUMMARY_RE = re.compile(r"##\s*Summary\s*\n\n?(.+?)(?=\n##|\n\n|$)", re.IGNORECASE | re.DOTALL)
_FIRST_SENTENCE_RE = re.compile(r"^([^.!?]*[.!?])")


@dataclass
class GenerationOptions:
    max_tokens: int = 1500
    temperature: float = 0.1
    top_p: float = 0.9
    retries: int = 2
    timeout_ms: int = 30_000


@dataclass
class GenerationResult:
    response: str
    generation_time_ms: int
    token_count: int
    model: str
    attempts: int = 1


@dataclass
class ParsedResponse:
    summary: str
    full_answer: str
    steps: list[str] | None = None


@dataclass
class QualityReport:
    valid: bool
    issues: list[str] = field(default_factory=list)


class GenerationClient:
    """Run a Generator with timeout, retry and backoff.

    Args:
        generator: Underlying model adapter.
        sleep: Awaitable used for backoff waits; tests pass a no-op.
    """

    def __init__(
        self,
        generator: Generator,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.generator = generator
        self._sleep = sleep

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        opts = options or GenerationOptions()
        model = self.generator.get_model()
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        total = opts.retries + 1
        start = time.perf_counter()
        logger.debug(
            "Generating with %s (max_tokens=%d, retries=%d, timeout=%dms)",
            model,
            opts.max_tokens,
            opts.retries,
            opts.timeout_ms,
        )

        try:
            response: str | None = None
            last_error: BaseException | None = None
            attempts = 0

            for attempt in range(total):
                attempts = attempt + 1
                try:
                    text = await asyncio.wait_for(
                        self.generator.generate(
                            messages,
                            max_tokens=opts.max_tokens,
                            temperature=opts.temperature,
                            top_p=opts.top_p,
                        ),
                        timeout=opts.timeout_ms / 1000,
                    )
                    if not text or not text.strip():
                        raise ValueError("Model returned an empty response")
                    response = text
                    break
                except (ConfigurationError, InputError):
                    raise
                except Exception as exc:
                    last_error = (
                        TimeoutError(f"LLM request timed out after {opts.timeout_ms}ms")
                        if isinstance(exc, asyncio.TimeoutError)
                        else exc
                    )
                    logger.warning(
                        "Generation attempt %d/%d failed: %s", attempts, total, last_error
                    )
                    if attempt < opts.retries:
                        await self._sleep(2**attempt)

            if response is None:
                logger.error("All %d generation attempts failed (%s)", total, model)
                raise GenerationError(
                    f"LLM generation failed after {total} attempts: {last_error}",
                    LLM_GENERATION_FAILED,
                    attempts=total,
                    last_error=last_error,
                    details={"model": model},
                )
        except RAGError:
            raise
        except Exception as exc:
            raise GenerationError(
                f"LLM generation error: {exc}",
                LLM_GENERATION_ERROR,
                attempts=attempts,
                last_error=exc,
                details={"model": model},
            ) from exc

        elapsed = int((time.perf_counter() - start) * 1000)
        lowered = response.lower()
        for pattern in _REFUSAL_PATTERNS:
            if pattern.lower() in lowered:
                logger.warning(
                    "Refusal-like response (%r): %s", pattern, truncate(response, 300)
                )

        logger.debug("Generated %d characters in %d ms", len(response), elapsed)
        return GenerationResult(
            response=response.strip(),
            generation_time_ms=elapsed,
            token_count=math.ceil(len(response) / 4),
            model=model,
            attempts=attempts,
        )

    def get_adapter_info(self) -> dict[str, object]:
        return {
            "model": self.generator.get_model(),
            "max_tokens": self.generator.get_max_tokens(),
        }


# ------------------------------------------------------------------
# Post-processing
# ------------------------------------------------------------------


def _looks_like_step(text: str) -> bool:
    lowered = text.lower()
    return any(verb in lowered for verb in _STEP_VERBS)


def parse_steps(response: str) -> list[str]:
    """Numbered list items; else bullet items that read like instructions."""
    steps = [m.group(2).strip() for m in _NUMBERED_ITEM_RE.finditer(response)]
    steps = [s for s in steps if s]
    if steps:
        return steps
    bullets = (m.group(1).strip() for m in _BULLET_ITEM_RE.finditer(response))
    return [b for b in bullets if b and _looks_like_step(b)]


def parse_summary(response: str) -> str:
    """The Summary section body, else the first sentence, else a 200-char prefix."""
    match = _SUMMARY_RE.search(response)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _FIRST_SENTENCE_RE.match(response)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return response[:200].strip() + "..."


def parse_response(response: str) -> ParsedResponse:
    steps = parse_steps(response)
    return ParsedResponse(
        summary=parse_summary(response),
        full_answer=response,
        steps=steps or None,
    )


def validate_response(response: str, min_length: int = 50) -> QualityReport:
    """Flag short, heading-less, placeholder-laden or refusal-like answers."""
    issues: list[str] = []
    lowered = response.lower()

    if len(response) < min_length:
        issues.append(f"Response too short ({len(response)} chars, minimum {min_length})")
    if "#" not in response:
        issues.append("Response lacks proper markdown headings")
    for placeholder in _PLACEHOLDERS:
        if placeholder.lower() in lowered:
            issues.append(f"Response contains placeholder text: {placeholder}")
    for indicator in _ERROR_INDICATORS:
        if indicator.lower() in lowered:
            issues.append(f"Response indicates generation issues: {indicator}")

    return QualityReport(valid=not issues, issues=issues)


def clean_response(response: str) -> str:
    """Normalize blank lines, heading depth and numbered-list spacing."""
    text = re.sub(r"\n{3,}", "\n\n", response)
    text = re.sub(r"#{4,}", "###", text)
    text = re.sub(r"([^\n])\n(#+)", r"\1\n\n\2", text)
    text = re.sub(r"^[ \t]*(\d+)\.[ \t]+", r"\1. ", text, flags=re.MULTILINE)
    return text.strip()
