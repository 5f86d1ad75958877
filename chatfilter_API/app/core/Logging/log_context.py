"""
Logging helpers for the filter engine: structured context, audit records, sinks.

Usage:

    from chatfilter_API.app.core.Logging.log_context import get_audit_logger, log_context

    with log_context(admin=name, command="add") as log:
        log.debug("Dispatching console command")

    get_audit_logger(name, "add").info(f"filter: {name} added 'foo' to blacklist")

Audit records are ordinary loguru records bound with `audit=True`, so they reach
every sink and can additionally be routed to a dedicated audit file.
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from loguru import logger

AUDIT_FIELD = "audit"

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
_AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {extra[admin]} | {extra[command]} | {message}"


@contextmanager
def log_context(**fields: Any) -> Iterator[Any]:
    """Context manager that sets structured logging fields and yields a bound logger.

    - Adds fields to the logger context (via logger.contextualize) so that any
      logs emitted inside the context inherit them.
    - Yields a logger bound with the same fields for direct use.
    """
    clean = {k: v for k, v in fields.items() if v is not None}
    with logger.contextualize(**clean):
        bound = logger.bind(**clean)
        yield bound


def get_audit_logger(admin: str, command: str):
    """Return a logger whose records are marked as audit entries for `admin`."""
    return logger.bind(**{AUDIT_FIELD: True, "admin": admin, "command": command})


def is_audit_record(record: dict) -> bool:
    return bool(record["extra"].get(AUDIT_FIELD))


def configure_logging(level: str = "INFO", audit_log_file: Optional[str] = None, quiet: bool = False) -> List[int]:
    """Replace loguru's default handler with the filter's sinks; returns the sink ids."""
    logger.remove()
    sink_ids: List[int] = []
    if not quiet:
        sink_ids.append(logger.add(sys.stderr, level=level.upper(), format=_CONSOLE_FORMAT))
    if audit_log_file:
        sink_ids.append(
            logger.add(
                audit_log_file,
                level="INFO",
                format=_AUDIT_FORMAT,
                filter=is_audit_record,
                encoding="utf-8",
            )
        )
    return sink_ids
