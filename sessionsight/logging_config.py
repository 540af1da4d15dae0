"""
Logging setup for the extraction pipeline.

structlog renders every entry: JSON lines in production, colored console
output everywhere else. Entries logged while a note is being processed
carry that note's ``trace_id`` and ``session_id``; see
``bind_note_context``.

Clinical text never reaches a log line verbatim. Keys listed in
``NOTE_TEXT_KEYS`` are replaced with a short hash and length, enough to
correlate repeated inputs.

Usage:
    from sessionsight.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("risk_recheck_started", session_id="abc-123", fields=["self_harm"])
"""

from __future__ import annotations

import hashlib
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog

from sessionsight.config import get_settings

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
session_id_var: ContextVar[str] = ContextVar("session_id", default="")

NOTE_TEXT_KEYS = frozenset({"note_text", "session_text", "prior_clinical_history", "raw_response"})

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "asyncio")


def generate_trace_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def bind_note_context(session_id: str) -> Iterator[str]:
    """
    Tag every log entry in this block with a fresh trace id and the session id.

    Tasks spawned inside the block inherit the values, and they are reset on
    exit, so notes processed concurrently never share ids. Yields the trace id.
    """
    trace_id = generate_trace_id()
    trace_token = trace_id_var.set(trace_id)
    session_token = session_id_var.set(session_id)
    try:
        yield trace_id
    finally:
        session_id_var.reset(session_token)
        trace_id_var.reset(trace_token)


def mask_text(text: Any) -> str:
    normalized = str(text or "").strip()
    if not normalized:
        return "<empty>"
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]
    return f"<sha256={digest} len={len(normalized)}>"


def _add_note_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id
    session_id = session_id_var.get()
    if session_id:
        # An explicit session_id on the call wins.
        event_dict.setdefault("session_id", session_id)
    return event_dict


def _mask_note_text(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in NOTE_TEXT_KEYS.intersection(event_dict):
        event_dict[key] = mask_text(event_dict[key])
    return event_dict


def setup_logging() -> None:
    settings = get_settings()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_note_context,
        _mask_note_text,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if settings.is_production:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # httpx and supabase log through stdlib; give them the same renderer.
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
