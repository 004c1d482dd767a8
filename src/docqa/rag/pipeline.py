"""RAG pipeline orchestrator: Retriever → PromptBuilder → GenerationClient.

process() stages run strictly in sequence for one query:

  retrieve  → (hybrid fallback on zero results) → build_context
  → build_prompt → generate → parse → validate → clean

Zero results after the hybrid fallback routes to the fixed no-data answer;
generation is never called on that path. RAGError subclasses propagate
unchanged; anything else is wrapped as PIPELINE_FAILED.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from docqa.adapters.base import Embedder, Generator, VectorStore
from docqa.config import DocqaConfig
from docqa.errors import PIPELINE_FAILED, RAGError
from docqa.log import truncate
from docqa.models import AskResponse, Citation, DebugInfo, RetrievedDoc, SearchResult
from docqa.rag.llm_client import (
    GenerationClient,
    GenerationOptions,
    clean_response,
    parse_response,
    validate_response,
)
from docqa.rag.prompt_builder import PromptBuilder, PromptOptions
from docqa.rag.retriever import RetrievalOptions, Retriever

logger = logging.getLogger(__name__)

# Fallback reasons reported in DebugInfo.fallback_reason
HYBRID_SEARCH_ALSO_EMPTY = "HYBRID_SEARCH_ALSO_EMPTY"
HYBRID_SEARCH_FAILED = "HYBRID_SEARCH_FAILED"
EMPTY_RETRIEVAL_RESULTS = "EMPTY_RETRIEVAL_RESULTS"

_EXCERPT_LENGTH = 200


@dataclass
class PipelineOptions:
    prefer_steps: bool = False
    include_references: bool = True
    top_k: int = 10
    similarity_threshold: float = 0.3
    content_types: list[str] = field(default_factory=list)
    sections: list[str] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)
    context_window_tokens: int = 3000
    use_hybrid: bool = False
    vector_weight: float = 0.7
    text_weight: float = 0.3
    generation: GenerationOptions = field(default_factory=GenerationOptions)

    @classmethod
    def from_config(cls, cfg: DocqaConfig) -> PipelineOptions:
        """Options seeded from the retrieval, prompt and generation config sections."""
        return cls(
            prefer_steps=cfg.prompt.prefer_steps,
            include_references=cfg.prompt.include_references,
            top_k=cfg.retrieval.top_k,
            similarity_threshold=cfg.retrieval.similarity_threshold,
            context_window_tokens=cfg.retrieval.context_window_tokens,
            use_hybrid=cfg.retrieval.use_hybrid,
            vector_weight=cfg.retrieval.vector_weight,
            text_weight=cfg.retrieval.text_weight,
            generation=GenerationOptions(
                max_tokens=cfg.generation.max_tokens,
                temperature=cfg.generation.temperature,
                top_p=cfg.generation.top_p,
                retries=cfg.generation.retries,
                timeout_ms=cfg.generation.timeout_ms,
            ),
        )

    def retrieval(self) -> RetrievalOptions:
        return RetrievalOptions(
            top_k=self.top_k,
            similarity_threshold=self.similarity_threshold,
            content_types=list(self.content_types),
            sections=list(self.sections),
            collections=list(self.collections),
        )


@dataclass
class HealthReport:
    status: str  # healthy | unhealthy
    components: dict[str, bool]
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


def create_excerpt(content: str, max_length: int = _EXCERPT_LENGTH) -> str:
    """Shorten *content*, preferring a sentence end, then a word boundary."""
    if len(content) <= max_length:
        return content.strip()
    truncated = content[:max_length]
    sentence_end = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))
    if sentence_end > max_length * 0.6:
        return truncated[: sentence_end + 1].strip()
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space].strip() + "..."
    return truncated.strip() + "..."


def format_retrieved_docs(results: list[SearchResult]) -> list[RetrievedDoc]:
    return [
        RetrievedDoc(id=r.id, score=round(r.score, 3), excerpt=create_excerpt(r.content))
        for r in results
    ]


class RAGPipeline:
    """Answer one question at a time against a vector store.

    Args:
        embedder: Query embedder.
        store: Vector store seeded with the same embedding model.
        generator: Text generation adapter.
        prompt_builder: Defaults to PromptBuilder() with stock wording.
        sandbox_mode: Let retrieval fall back to a random query vector when
            embedding fails. Results are flagged ``used_mock_embedding``.
        sleep: Backoff sleep handed to GenerationClient.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        generator: Generator,
        prompt_builder: PromptBuilder | None = None,
        sandbox_mode: bool = False,
        *,
        search_timeout_s: float = 10.0,
        embed_timeout_s: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.generator = generator
        self.retriever = Retriever(
            embedder,
            store,
            allow_mock_embedding=sandbox_mode,
            embed_timeout_s=embed_timeout_s,
            search_timeout_s=search_timeout_s,
        )
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.llm_client = GenerationClient(generator, sleep=sleep)

    async def process(self, query: str, options: PipelineOptions | None = None) -> AskResponse:
        opts = options or PipelineOptions()
        start = time.perf_counter()
        debug = DebugInfo()

        try:
            # 1. Retrieve
            retrieval_opts = opts.retrieval()
            if opts.use_hybrid:
                retrieval = await self.retriever.hybrid_retrieve(
                    query,
                    retrieval_opts,
                    vector_weight=opts.vector_weight,
                    text_weight=opts.text_weight,
                )
            else:
                retrieval = await self.retriever.retrieve(query, retrieval_opts)
            results = retrieval.results
            debug.pipeline_stage = "retrieval_completed"
            debug.documents_found = len(results)
            debug.used_mock_embedding = retrieval.used_mock_embedding

            if not results:
                if opts.use_hybrid or not hasattr(self.store, "hybrid_search"):
                    return self._no_data(query, start, EMPTY_RETRIEVAL_RESULTS, debug)
                logger.debug("No vector results for %r; trying hybrid fallback", truncate(query))
                try:
                    hybrid = await self.retriever.hybrid_retrieve(
                        query, retrieval_opts, vector_weight=0.5, text_weight=0.5
                    )
                except RAGError as exc:
                    logger.warning("Hybrid fallback failed: [%s] %s", exc.code, exc.message)
                    return self._no_data(query, start, HYBRID_SEARCH_FAILED, debug)
                if not hybrid.results:
                    return self._no_data(query, start, HYBRID_SEARCH_ALSO_EMPTY, debug)
                results = hybrid.results
                debug.documents_found = len(results)
                debug.used_mock_embedding = debug.used_mock_embedding or hybrid.used_mock_embedding
                debug.pipeline_stage = "hybrid_search_fallback"

            # 2. Context
            context = self.retriever.build_context(results, opts.context_window_tokens)
            debug.pipeline_stage = "context_built"

            # 3. Prompt
            prompt_opts = PromptOptions(
                prefer_steps=opts.prefer_steps,
                max_tokens=opts.generation.max_tokens,
                include_references=opts.include_references,
            )
            prompt = self.prompt_builder.build_prompt(
                query, context.context, context.used_results, prompt_opts
            )

            # 4. Generate
            debug.pipeline_stage = "generation"
            generated = await self.llm_client.generate(
                prompt.system_prompt, prompt.user_prompt, opts.generation
            )

            # 5. Parse, validate, clean
            parsed = parse_response(generated.response)
            issues = self.prompt_builder.validate_response(generated.response, prompt_opts).issues
            issues += validate_response(generated.response).issues
            if issues:
                logger.warning("Response quality issues for %r: %s", truncate(query), issues)
            answer = clean_response(generated.response)

            debug.pipeline_stage = "completed"
            debug.processing_time_ms = _elapsed_ms(start)
            logger.debug(
                "Pipeline completed in %d ms (%d docs used, %d context tokens, %d attempt(s))",
                debug.processing_time_ms,
                len(context.used_results),
                context.token_count,
                generated.attempts,
            )
            return AskResponse(
                answer=answer,
                summary=parsed.summary,
                steps=parsed.steps,
                citations=prompt.citations,
                retrieved_docs=format_retrieved_docs(context.used_results),
                debug_info=debug,
                issues=issues,
            )
        except RAGError as exc:
            debug.processing_time_ms = _elapsed_ms(start)
            exc.details.setdefault("debug_info", asdict(debug))
            logger.error("Pipeline failed at %s: [%s] %s", debug.pipeline_stage, exc.code, exc.message)
            raise
        except Exception as exc:
            debug.processing_time_ms = _elapsed_ms(start)
            logger.error("Pipeline failed at %s: %s", debug.pipeline_stage, exc)
            raise RAGError(
                f"RAG pipeline failed: {exc}",
                PIPELINE_FAILED,
                details={"query": truncate(query), "debug_info": asdict(debug)},
            ) from exc

    def _no_data(self, query: str, start: float, reason: str, debug: DebugInfo) -> AskResponse:
        debug.is_fallback = True
        debug.fallback_reason = reason
        debug.pipeline_stage = "fallback"
        debug.processing_time_ms = _elapsed_ms(start)
        logger.warning("No documentation found for %r (%s)", truncate(query), reason)

        builder = self.prompt_builder
        if reason == HYBRID_SEARCH_ALSO_EMPTY:
            summary = f'No matching documentation found for "{query}" using advanced search methods.'
        elif reason == HYBRID_SEARCH_FAILED:
            summary = f'Search temporarily unavailable for "{query}" - please try again.'
        else:
            summary = (
                f'I couldn\'t find a documented answer for "{query}" '
                f"in the {builder.docs_name} documentation."
            )
        return AskResponse(
            answer=builder.build_no_data_response(query),
            summary=summary,
            citations=[
                Citation(title=f"{builder.vendor} Support", url=builder.support_url),
                Citation(title=f"{builder.vendor} Community", url=builder.community_url),
            ],
            retrieved_docs=[],
            debug_info=debug,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def health_check(self) -> HealthReport:
        """Check store, embedder and generator concurrently."""
        store_ok, embedding, reply = await asyncio.gather(
            self.store.health(),
            self.embedder.embed("test query"),
            self.generator.generate(
                [{"role": "user", "content": 'Say "OK" if you can process this message.'}],
                max_tokens=10,
            ),
            return_exceptions=True,
        )
        components = {
            "vector_store": store_ok is True,
            "embedding": isinstance(embedding, list),
            "llm": isinstance(reply, str),
        }
        details: dict[str, Any] = {
            "embedding_dimensions": len(embedding) if isinstance(embedding, list) else 0,
            "llm_model": self.generator.get_model(),
        }
        for name, outcome in zip(components, (store_ok, embedding, reply)):
            if isinstance(outcome, BaseException):
                details[f"{name}_error"] = str(outcome)
        status = "healthy" if all(components.values()) else "unhealthy"
        return HealthReport(status=status, components=components, details=details)

    def get_stats(self) -> dict[str, Any]:
        info = self.llm_client.get_adapter_info()
        return {
            "embedding_model": self.embedder.model,
            "embedding_dimensions": self.embedder.dimensions,
            "llm_model": info["model"],
            "llm_max_tokens": info["max_tokens"],
        }


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
