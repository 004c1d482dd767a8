"""docqa ask: answer a question from the ingested documentation.

Usage:
  docqa ask "How do I add a new student?" [--steps] [--top-k 5] [--json]

Flags:
  --steps            Ask for numbered step-by-step instructions
  --top-k N          Maximum documents retrieved
  --threshold F      Minimum similarity score (default from config)
  --collection C     Restrict to a collection (repeatable)
  --content-type T   Restrict to a content type (repeatable)
  --hybrid           Vector + full-text search
  --sandbox          Local embeddings, no embedding credentials needed
  --db PATH          Document store (default: store.path from config)
  --json             Print the response as JSON
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from docqa.cli.errors import err_no_db, err_rag
from docqa.cli.runtime import (
    build_embedder,
    build_generator,
    build_prompt_builder,
    close_store,
    load_cfg,
    open_store,
)
from docqa.errors import RAGError
from docqa.models import AskResponse
from docqa.rag.pipeline import PipelineOptions, RAGPipeline

console = Console()


def ask_cmd(
    query: Annotated[str, typer.Argument(help="The question to answer.")],
    steps: Annotated[
        bool,
        typer.Option("--steps", help="Ask for numbered step-by-step instructions."),
    ] = False,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Maximum documents retrieved."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=0.0, max=1.0, help="Minimum similarity score."),
    ] = None,
    collection: Annotated[
        list[str] | None,
        typer.Option("--collection", "-c", help="Restrict to a collection (repeatable)."),
    ] = None,
    content_type: Annotated[
        list[str] | None,
        typer.Option("--content-type", help="Restrict to a content type (repeatable)."),
    ] = None,
    hybrid: Annotated[
        bool,
        typer.Option("--hybrid", help="Combine vector and full-text search."),
    ] = False,
    sandbox: Annotated[
        bool,
        typer.Option("--sandbox", help="Local embeddings; mock-embedding fallback enabled."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the document store."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the response as JSON."),
    ] = False,
) -> None:
    """Answer a question from the ingested documentation."""
    if not query.strip():
        console.print("[red]Error:[/] Query is empty.\n  Pass a question: docqa ask \"...\"")
        raise typer.Exit(1)

    cfg = load_cfg()
    sandbox = sandbox or cfg.retrieval.sandbox_mode
    if db is not None and not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    embedder = build_embedder(cfg, sandbox)
    generator = build_generator(cfg)
    store = open_store(cfg, embedder, db)

    options = PipelineOptions.from_config(cfg)
    options.prefer_steps = steps or options.prefer_steps
    options.use_hybrid = hybrid or options.use_hybrid
    if top_k is not None:
        options.top_k = top_k
    if threshold is not None:
        options.similarity_threshold = threshold
    options.collections = list(collection or [])
    options.content_types = list(content_type or [])

    pipeline = RAGPipeline(
        embedder,
        store,
        generator,
        prompt_builder=build_prompt_builder(cfg),
        sandbox_mode=sandbox,
        search_timeout_s=cfg.retrieval.search_timeout_ms / 1000,
        embed_timeout_s=cfg.embedding.timeout_ms / 1000,
    )

    try:
        if as_json:
            response = asyncio.run(pipeline.process(query, options))
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("Retrieving and generating…", total=None)
                response = asyncio.run(pipeline.process(query, options))
    except RAGError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1)
    finally:
        close_store(store)

    if as_json:
        typer.echo(json.dumps(response.to_dict(), indent=2))
        return
    _print_response(response)


def _print_response(response: AskResponse) -> None:
    console.print(Markdown(response.answer))

    if response.citations:
        table = Table(title="Sources", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Title")
        table.add_column("URL", overflow="fold")
        for i, citation in enumerate(response.citations, start=1):
            table.add_row(str(i), citation.title, citation.url)
        console.print(table)

    debug = response.debug_info
    if debug.is_fallback:
        console.print(f"[yellow]No matching documentation ({debug.fallback_reason}).[/]")
    if debug.used_mock_embedding:
        console.print("[yellow]Warning:[/] query embedding failed; results used a random vector.")
    for issue in response.issues:
        console.print(f"  [yellow]⚠[/] {issue}")
    console.print(
        f"[dim]{debug.documents_found} document(s) · {debug.processing_time_ms} ms · "
        f"stage {debug.pipeline_stage}[/]"
    )
