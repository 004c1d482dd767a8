"""Embedder implementations.

``LiteLLMEmbedder`` calls a hosted embedding model through LiteLLM.
``LocalEmbedder`` derives a deterministic vector from a hash of the text; it
needs no credentials and is what ``--sandbox`` runs use.
"""

from __future__ import annotations

import hashlib
import logging

import litellm

from docqa.adapters.base import (
    l2_normalize,
    preprocess_text,
    validate_batch,
    validate_text,
)
from docqa.errors import (
    EMBEDDING_DIMENSION_MISMATCH,
    EMBEDDING_FAILED,
    ConfigurationError,
    RAGError,
    RetrievalError,
)

logger = logging.getLogger(__name__)


def _postprocess(vector: list[float], dimensions: int, model: str) -> list[float]:
    """Dimension-check then L2-normalize one raw embedding."""
    if len(vector) != dimensions:
        raise ConfigurationError(
            f"Embedding dimension mismatch for {model}: "
            f"expected {dimensions}, got {len(vector)}",
            EMBEDDING_DIMENSION_MISMATCH,
            details={"expected": dimensions, "actual": len(vector), "model": model},
        )
    try:
        return l2_normalize(vector)
    except ValueError as exc:
        raise RetrievalError(str(exc), EMBEDDING_FAILED) from exc


class LiteLLMEmbedder:
    """Embedder backed by ``litellm.aembedding``."""

    def __init__(self, model: str, dimensions: int) -> None:
        self.model = model
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        validate_text(text)
        return (await self._call([preprocess_text(text)]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in a single provider call, preserving order."""
        validate_batch(texts)
        return await self._call([preprocess_text(t) for t in texts])

    async def _call(self, inputs: list[str]) -> list[list[float]]:
        try:
            response = await litellm.aembedding(model=self.model, input=inputs, num_retries=0)
        except RAGError:
            raise
        except Exception as exc:
            raise RetrievalError(
                f"Embedding call to {self.model} failed: {exc}",
                EMBEDDING_FAILED,
            ) from exc

        vectors = [item["embedding"] for item in response.data]
        logger.debug("Embedded %d text(s) with %s", len(vectors), self.model)
        return [_postprocess(v, self.dimensions, self.model) for v in vectors]


class LocalEmbedder:
    """Deterministic, credential-free embedder.

    The same text always maps to the same unit vector. Similar texts do not
    map to similar vectors, so retrieval quality is meaningless; this is for
    sandbox runs and tests only.
    """

    model = "local/hash"

    def __init__(self, dimensions: int = 1536) -> None:
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        validate_text(text)
        return self._vector(preprocess_text(text))

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        validate_batch(texts)
        return [self._vector(preprocess_text(t)) for t in texts]

    def _vector(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        values: list[float] = []
        for _ in range(self.dimensions):
            # 64-bit LCG (Knuth MMIX constants)
            seed = (seed * 6364136223846793005 + 1442695040888963407) % 2**64
            values.append((seed / 2**64) * 2 - 1)
        return _postprocess(values, self.dimensions, self.model)
