"""Logging configuration for docqa entry points.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO
_NOISY = ("LiteLLM", "litellm", "httpx", "httpcore", "urllib3")


def configure_logging(level: int | str = logging.WARNING) -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)


def truncate(text: str, limit: int = 100) -> str:
    """Shorten *text* for log lines."""
    return text if len(text) <= limit else text[:limit] + "…"
