"""docqa rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from docqa.cli.errors import err_rag
    console.print(err_rag(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from docqa import errors
from docqa.errors import RAGError


def err_no_api_key(provider: str, env_var: str | None = None) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = env_var or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or run with --sandbox to embed locally without credentials."
    )


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix docqa.yaml (or ~/.docqa/config.yaml) and retry."
    )


def err_no_db(db_path: str) -> str:
    """No document store at *db_path*."""
    return (
        f"[red]Error:[/] No document store found at '{db_path}'.\n"
        "  Run:  docqa ingest documents.json"
    )


def err_memory_backend() -> str:
    """store.backend is memory, which does not outlive one CLI command."""
    return (
        "[red]Error:[/] store.backend 'memory' keeps documents only for one process;\n"
        "  ingested documents would be gone before the next docqa command.\n"
        "  Set store.backend: sqlite in docqa.yaml, or pass --db PATH."
    )


def err_dimension_mismatch(message: str) -> str:
    """Embedding dimension differs between model, config and store."""
    return (
        f"[red]Error:[/] Embedding dimension mismatch.\n"
        f"  {message}\n"
        "  Set embedding.dimensions in docqa.yaml to match the model, "
        "or re-ingest into a fresh --db."
    )


def err_input(message: str) -> str:
    """Client input was rejected."""
    return f"[red]Error:[/] {message}\n  Check the input and retry."


def err_retrieval(message: str) -> str:
    """Embedding or search failed."""
    return (
        f"[red]Error:[/] Retrieval failed: {message}\n"
        "  Check network access and API credentials, then retry.\n"
        "  Run:  docqa health"
    )


def err_generation(message: str, attempts: int) -> str:
    """Generation exhausted its retry budget."""
    return (
        f"[red]Error:[/] Answer generation failed after {attempts} attempt(s).\n"
        f"  {message}\n"
        "  Raise generation.timeout_ms or generation.retries in docqa.yaml, "
        "or try again later."
    )


def err_rag(exc: RAGError) -> str:
    """Map a RAGError to its actionable message by code."""
    if exc.code == errors.MISSING_API_KEY:
        return err_no_api_key(
            str(exc.details.get("provider", "unknown")), exc.details.get("env_var")
        )
    if exc.code == errors.EMBEDDING_DIMENSION_MISMATCH:
        return err_dimension_mismatch(exc.message)
    if exc.code in (errors.INVALID_INPUT, errors.BATCH_TOO_LARGE, errors.INVALID_DOCUMENT):
        return err_input(exc.message)
    if exc.code in (
        errors.RETRIEVAL_FAILED,
        errors.EMBEDDING_FAILED,
        errors.HYBRID_RETRIEVAL_FAILED,
        errors.SEARCH_TIMEOUT,
    ):
        return err_retrieval(exc.message)
    if isinstance(exc, errors.GenerationError):
        return err_generation(exc.message, exc.attempts)
    return f"[red]Error:[/] [{exc.code}] {exc.message}"
