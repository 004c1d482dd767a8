"""docqa health: check the document store, embedder and generator."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from docqa.cli.runtime import (
    build_embedder,
    build_generator,
    close_store,
    load_cfg,
    open_store,
)
from docqa.rag.pipeline import RAGPipeline

console = Console()

_LABELS = {
    "vector_store": "Document store",
    "embedding": "Embedding model",
    "llm": "Generation model",
}


def health_cmd(
    sandbox: Annotated[
        bool,
        typer.Option("--sandbox", help="Check local embeddings instead of the hosted model."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the document store."),
    ] = None,
) -> None:
    """Check that every pipeline component is reachable."""
    cfg = load_cfg()
    sandbox = sandbox or cfg.retrieval.sandbox_mode
    embedder = build_embedder(cfg, sandbox)
    generator = build_generator(cfg)
    store = open_store(cfg, embedder, db)
    pipeline = RAGPipeline(embedder, store, generator, sandbox_mode=sandbox)

    try:
        report = asyncio.run(pipeline.health_check())
        count = asyncio.run(store.count())
    finally:
        close_store(store)

    stats = pipeline.get_stats()
    table = Table(title="docqa health", show_header=True, header_style="bold")
    table.add_column("Component")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")
    details = {
        "vector_store": f"{count} document(s)",
        "embedding": f"{stats['embedding_model']} ({stats['embedding_dimensions']} dims)",
        "llm": f"{stats['llm_model']} (max {stats['llm_max_tokens']} tokens)",
    }
    for name, ok in report.components.items():
        detail = report.details.get(f"{name}_error", details[name])
        status = "[green]✓ ok[/]" if ok else "[red]✗ failed[/]"
        table.add_row(_LABELS[name], status, str(detail))
    console.print(table)

    if not report.healthy:
        console.print("[red]Unhealthy.[/] Fix the failed component(s) above and rerun:  docqa health")
        raise typer.Exit(1)
