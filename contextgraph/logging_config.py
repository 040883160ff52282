"""Logging setup and sync-run correlation IDs."""

from __future__ import annotations

import contextvars
import logging

_sync_run_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "sync_run_id", default=None
)


def set_sync_run_id(value: str | None) -> contextvars.Token:
    """Set the sync run ID for the current context."""
    return _sync_run_id_var.set(value)


def reset_sync_run_id(token: contextvars.Token) -> None:
    """Restore the sync run ID that was active before ``set_sync_run_id``."""
    _sync_run_id_var.reset(token)


def get_sync_run_id() -> str | None:
    """Get the sync run ID for the current context."""
    return _sync_run_id_var.get()


class SyncRunFilter(logging.Filter):
    """Attach the active sync run ID to every record as ``sync_run_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.sync_run_id = get_sync_run_id() or "-"
        return True


def configure_logging(log_level: str = "INFO") -> None:
    """Initialize root logging with the sync run ID in every line."""
    handler = logging.StreamHandler()
    handler.addFilter(SyncRunFilter())
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(sync_run_id)s] %(message)s"
        )
    )
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


__all__ = [
    "SyncRunFilter",
    "configure_logging",
    "get_sync_run_id",
    "reset_sync_run_id",
    "set_sync_run_id",
]
