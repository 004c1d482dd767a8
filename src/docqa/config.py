"""docqa configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (DOCQA_GENERATION_MODEL, DOCQA_EMBEDDING_MODEL,
                             DOCQA_SANDBOX_MODE, DOCQA_STORE_PATH)
  3. Per-project docqa.yaml  (current working directory)
  4. Global ~/.docqa/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".docqa"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "docqa.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s). Leaves max_tokens, top_k alone.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chunking", "prompt", "dedup", "store"]
)

_STORE_BACKENDS: frozenset[str] = frozenset(["sqlite", "memory"])

_TRUTHY = {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (docqa.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout_ms: int = 10_000


@dataclass
class GenerationCfg:
    """LLM generation configuration (docqa.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 1500
    temperature: float = 0.1
    top_p: float = 0.9
    retries: int = 2
    timeout_ms: int = 30_000


@dataclass
class RetrievalCfg:
    """Retrieval configuration (docqa.yaml: retrieval:).

    Attributes:
        similarity_threshold: Minimum cosine score. Defaults higher than the
            Retriever's own 0.3 so deployments favour precision.
        sandbox_mode: Allow a random query vector when embedding fails.
            Results are flagged with ``used_mock_embedding``.
    """

    top_k: int = 10
    similarity_threshold: float = 0.5
    context_window_tokens: int = 3_000
    use_hybrid: bool = False
    vector_weight: float = 0.7
    text_weight: float = 0.3
    sandbox_mode: bool = False
    search_timeout_ms: int = 10_000


@dataclass
class ChunkingCfg:
    """Ingestion chunk size (docqa.yaml: chunking:)."""

    max_length: int = 4_000


@dataclass
class PromptCfg:
    """Answer template wording (docqa.yaml: prompt:)."""

    product_name: str = "PowerSchool PSSIS-Admin"
    docs_name: str = "PSSIS-Admin"
    vendor: str = "PowerSchool"
    support_url: str = "https://support.powerschool.com/"
    community_url: str = "https://community.powerschool.com/"
    prefer_steps: bool = False
    include_references: bool = True


@dataclass
class DedupCfg:
    """Ingress request deduplication (docqa.yaml: dedup:)."""

    window_ms: int = 3_000
    processing_timeout_ms: int = 30_000
    cleanup_interval_ms: int = 30_000


@dataclass
class StoreCfg:
    """Vector store backend (docqa.yaml: store:)."""

    backend: str = "sqlite"  # sqlite | memory
    path: str = ".docqa.db"
    max_documents: int = 10_000


@dataclass
class DocqaConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    prompt: PromptCfg = field(default_factory=PromptCfg)
    dedup: DedupCfg = field(default_factory=DedupCfg)
    store: StoreCfg = field(default_factory=StoreCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: DocqaConfig) -> None:
    """Reject values the pipeline cannot run with."""
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.generation.retries < 0:
        raise ConfigError(f"generation.retries must be >= 0, got {cfg.generation.retries}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if not 0.0 <= cfg.retrieval.similarity_threshold <= 1.0:
        raise ConfigError(
            "retrieval.similarity_threshold must be in [0.0, 1.0], "
            f"got {cfg.retrieval.similarity_threshold}"
        )
    if cfg.chunking.max_length < 1:
        raise ConfigError(f"chunking.max_length must be >= 1, got {cfg.chunking.max_length}")
    if cfg.store.backend not in _STORE_BACKENDS:
        raise ConfigError(
            f"store.backend must be one of {sorted(_STORE_BACKENDS)}, got '{cfg.store.backend}'"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _cfg_from_dict(data: dict[str, Any]) -> DocqaConfig:
    """Build a *DocqaConfig* from a merged raw YAML dict."""
    cfg = DocqaConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            timeout_ms=int(e.get("timeout_ms", cfg.embedding.timeout_ms)),
        )

    if "generation" in data:
        g = data["generation"]
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            top_p=float(g.get("top_p", cfg.generation.top_p)),
            retries=int(g.get("retries", cfg.generation.retries)),
            timeout_ms=int(g.get("timeout_ms", cfg.generation.timeout_ms)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            similarity_threshold=float(
                r.get("similarity_threshold", cfg.retrieval.similarity_threshold)
            ),
            context_window_tokens=int(
                r.get("context_window_tokens", cfg.retrieval.context_window_tokens)
            ),
            use_hybrid=_as_bool(r.get("use_hybrid", cfg.retrieval.use_hybrid)),
            vector_weight=float(r.get("vector_weight", cfg.retrieval.vector_weight)),
            text_weight=float(r.get("text_weight", cfg.retrieval.text_weight)),
            sandbox_mode=_as_bool(r.get("sandbox_mode", cfg.retrieval.sandbox_mode)),
            search_timeout_ms=int(r.get("search_timeout_ms", cfg.retrieval.search_timeout_ms)),
        )

    if "chunking" in data:
        c = data["chunking"]
        cfg.chunking = ChunkingCfg(max_length=int(c.get("max_length", cfg.chunking.max_length)))

    if "prompt" in data:
        p = data["prompt"]
        cfg.prompt = PromptCfg(
            product_name=str(p.get("product_name", cfg.prompt.product_name)),
            docs_name=str(p.get("docs_name", cfg.prompt.docs_name)),
            vendor=str(p.get("vendor", cfg.prompt.vendor)),
            support_url=str(p.get("support_url", cfg.prompt.support_url)),
            community_url=str(p.get("community_url", cfg.prompt.community_url)),
            prefer_steps=_as_bool(p.get("prefer_steps", cfg.prompt.prefer_steps)),
            include_references=_as_bool(
                p.get("include_references", cfg.prompt.include_references)
            ),
        )

    if "dedup" in data:
        d = data["dedup"]
        cfg.dedup = DedupCfg(
            window_ms=int(d.get("window_ms", cfg.dedup.window_ms)),
            processing_timeout_ms=int(
                d.get("processing_timeout_ms", cfg.dedup.processing_timeout_ms)
            ),
            cleanup_interval_ms=int(d.get("cleanup_interval_ms", cfg.dedup.cleanup_interval_ms)),
        )

    if "store" in data:
        s = data["store"]
        cfg.store = StoreCfg(
            backend=str(s.get("backend", cfg.store.backend)),
            path=str(s.get("path", cfg.store.path)),
            max_documents=int(s.get("max_documents", cfg.store.max_documents)),
        )

    return cfg


def _apply_env_overrides(cfg: DocqaConfig) -> DocqaConfig:
    """Apply DOCQA_* environment variable overrides."""
    if model := os.environ.get("DOCQA_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("DOCQA_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if sandbox := os.environ.get("DOCQA_SANDBOX_MODE"):
        cfg.retrieval.sandbox_mode = _as_bool(sandbox)
    if path := os.environ.get("DOCQA_STORE_PATH"):
        cfg.store.path = path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DocqaConfig:
    """Load and return a merged *DocqaConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *docqa.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
