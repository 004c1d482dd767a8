"""docqa ingest: chunk, embed and store crawled documents.

Input is a JSON list of documents:
  [{"url": ..., "title": ..., "content": ..., "raw_html": ..., "metadata": {...}}]

Documents over --max-length characters are split with ContentChunker; each
chunk is stored as "{url}#chunk-{i}" titled "{title} (Part i/n)".
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from docqa.cli.errors import err_rag
from docqa.cli.runtime import build_embedder, close_store, load_cfg, open_store
from docqa.errors import RAGError
from docqa.ingest.chunker import ContentChunker
from docqa.ingest.seeder import DocumentSeeder, load_documents

console = Console()


def ingest_cmd(
    source: Annotated[
        Path,
        typer.Argument(help="JSON file of crawled documents."),
    ],
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection tag for every stored chunk."),
    ] = None,
    max_length: Annotated[
        int | None,
        typer.Option("--max-length", min=1, help="Maximum characters per chunk."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the document store (created if missing)."),
    ] = None,
    sandbox: Annotated[
        bool,
        typer.Option("--sandbox", help="Local embeddings; no embedding credentials needed."),
    ] = False,
) -> None:
    """Ingest crawled documents into the document store."""
    if not source.exists():
        console.print(f"[red]Error:[/] File not found: '{source}'.\n  Pass a JSON file of documents.")
        raise typer.Exit(1)

    cfg = load_cfg()
    sandbox = sandbox or cfg.retrieval.sandbox_mode

    try:
        documents = load_documents(source)
    except RAGError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1)

    if not documents:
        console.print("[yellow]No documents found to ingest.[/]")
        raise typer.Exit(0)

    embedder = build_embedder(cfg, sandbox)
    store = open_store(cfg, embedder, db)
    seeder = DocumentSeeder(
        embedder,
        store,
        chunker=ContentChunker(max_length or cfg.chunking.max_length),
        collection=collection,
    )

    console.print(f"\n[bold]→ {source}[/] ({len(documents)} documents)")
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as prog:
            task = prog.add_task("Embedding…", total=len(documents))
            result = asyncio.run(
                seeder.seed(documents, on_batch=lambda done, _: prog.update(task, completed=done))
            )
        total = asyncio.run(store.count())
    except RAGError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1)
    finally:
        close_store(store)

    console.print(
        f"  [green]✓[/] {result.documents_processed} document(s) → "
        f"{result.chunks_inserted} chunk(s) in {result.duration_ms} ms "
        f"([dim]{total} stored[/])"
    )
    if result.failed:
        console.print(f"  [yellow]⚠ {result.failed} document(s) failed:[/]")
        for line in result.errors[:5]:
            console.print(f"    - {line}")
        if len(result.errors) > 5:
            console.print(f"    … and {len(result.errors) - 5} more")
