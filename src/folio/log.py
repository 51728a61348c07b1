"""Logging setup: stdlib loggers rendered through a rich console handler.

Modules log via ``logging.getLogger(__name__)``; the CLI calls
``init_logging()`` once with the configured level.
"""

from __future__ import annotations

import logging
from threading import RLock

import litellm
from rich.console import Console
from rich.logging import RichHandler

_lock = RLock()
_handler: RichHandler | None = None

# Third-party loggers that are chatty at INFO.
_NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "urllib3")


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.WARNING)


def init_logging(level: str | int = "WARNING", console: Console | None = None) -> None:
    """Install a RichHandler on the root logger.

    Idempotent: a second call only adjusts the level.
    """
    global _handler
    parsed = _parse_level(level)

    with _lock:
        root = logging.getLogger()
        if _handler is None:
            _handler = RichHandler(
                console=console or Console(stderr=True),
                rich_tracebacks=True,
                show_path=False,
                markup=False,
                log_time_format="%Y-%m-%d %H:%M:%S",
            )
            _handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
            root.addHandler(_handler)
        _handler.setLevel(parsed)
        root.setLevel(parsed)

        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(parsed, logging.WARNING))
        litellm.suppress_debug_info = True


def shutdown_logging() -> None:
    """Remove the handler installed by init_logging(), intended for tests."""
    global _handler
    with _lock:
        if _handler is not None:
            logging.getLogger().removeHandler(_handler)
            _handler = None
