"""Shared wiring for CLI commands: config, embedder, store, generator."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from docqa.adapters.embedding import LiteLLMEmbedder, LocalEmbedder
from docqa.adapters.llm import LiteLLMGenerator, validate_api_key
from docqa.adapters.sqlite_store import SqliteVectorStore
from docqa.cli.errors import err_config, err_memory_backend, err_rag
from docqa.config import ConfigError, DocqaConfig, load_config
from docqa.errors import RAGError
from docqa.rag.prompt_builder import PromptBuilder

console = Console()


def load_cfg() -> DocqaConfig:
    """load_config() or print an actionable error and exit 1."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def build_embedder(cfg: DocqaConfig, sandbox: bool) -> LiteLLMEmbedder | LocalEmbedder:
    if sandbox:
        return LocalEmbedder(dimensions=cfg.embedding.dimensions)
    _require_key(cfg.embedding.model)
    return LiteLLMEmbedder(cfg.embedding.model, cfg.embedding.dimensions)


def build_generator(cfg: DocqaConfig) -> LiteLLMGenerator:
    _require_key(cfg.generation.model)
    return LiteLLMGenerator(cfg.generation.model, cfg.generation.max_tokens)


def open_store(
    cfg: DocqaConfig, embedder: LiteLLMEmbedder | LocalEmbedder, db: Path | None
) -> SqliteVectorStore:
    """Open the SQLite store for *embedder*'s model; --db overrides store.path.

    store.backend: memory is rejected since it would not outlive the command.
    """
    if db is None and cfg.store.backend == "memory":
        console.print(err_memory_backend())
        raise typer.Exit(1)
    path = db if db is not None else Path(cfg.store.path)
    try:
        return SqliteVectorStore(path, embedder.dimensions, embedder.model)
    except RAGError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1)


def build_prompt_builder(cfg: DocqaConfig) -> PromptBuilder:
    p = cfg.prompt
    return PromptBuilder(
        product_name=p.product_name,
        docs_name=p.docs_name,
        vendor=p.vendor,
        support_url=p.support_url,
        community_url=p.community_url,
    )


def close_store(store: SqliteVectorStore) -> None:
    store.close()


def _require_key(model: str) -> None:
    try:
        validate_api_key(model)
    except RAGError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1)
