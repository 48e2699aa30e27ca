"""Structured logging for a machine-parseable audit trail of indexing and retrieval."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from structlog.processors import JSONRenderer
from structlog.typing import Processor

_configured = False
_logger: structlog.BoundLogger | None = None

AUDIT_LOG_NAME = "audit.jsonl"


def configure_audit_logging(log_dir: str) -> None:
    """One-time setup at startup. Writes JSON lines to {log_dir}/audit.jsonl."""
    global _configured, _logger
    if _configured:
        return
    audit_path = Path(log_dir) / AUDIT_LOG_NAME
    audit_path.parent.mkdir(parents=True, exist_ok=True)
    file_handle = open(audit_path, "a", encoding="utf-8")

    def _file_logger_factory(*args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file_handle)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        JSONRenderer(),
    ]
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=_file_logger_factory,
        cache_logger_on_first_use=True,
    )
    _configured = True
    _logger = structlog.get_logger()


def bind_owner(owner_id: str) -> None:
    """Bind owner context so every audit line includes owner_id."""
    structlog.contextvars.bind_contextvars(owner_id=owner_id)


def log_index_event(
    document_id: str,
    status: str,
    *,
    chunk_count: int | None = None,
    embedded: int | None = None,
    total_tokens: int | None = None,
    latency_ms: int | None = None,
    error: str | None = None,
) -> None:
    """Log an indexing run."""
    payload: dict[str, Any] = {"document_id": document_id, "status": status}
    if chunk_count is not None:
        payload["chunk_count"] = chunk_count
    if embedded is not None:
        payload["embedded"] = embedded
    if total_tokens is not None:
        payload["total_tokens"] = total_tokens
    if latency_ms is not None:
        payload["latency_ms"] = latency_ms
    if error is not None:
        payload["error"] = error
    if _logger is not None:
        _logger.info("index", **payload)


def log_retrieval_event(
    mode: str,
    results: int,
    *,
    query_chars: int | None = None,
    fallback: str | None = None,
    source_breakdown: dict[str, int] | None = None,
    latency_ms: int | None = None,
) -> None:
    """Log a search or retrieval call. Query text itself is never written."""
    payload: dict[str, Any] = {"mode": mode, "results": results}
    if query_chars is not None:
        payload["query_chars"] = query_chars
    if fallback is not None:
        payload["fallback"] = fallback
    if source_breakdown is not None:
        payload["source_breakdown"] = source_breakdown
    if latency_ms is not None:
        payload["latency_ms"] = latency_ms
    if _logger is not None:
        _logger.info("retrieval", **payload)


def log_embedding_fallback(provider: str, error: str) -> None:
    if _logger is not None:
        _logger.warning("embedding_fallback", provider=provider, error=error)


def log_citation_event(session_id: str, count: int) -> None:
    if _logger is not None:
        _logger.info("citations", session_id=session_id, count=count)


def load_events_from_jsonl(path: str) -> list[dict[str, Any]]:
    """Read an audit.jsonl file, skipping lines that fail to parse."""
    events: list[dict[str, Any]] = []
    audit_path = Path(path)
    if not audit_path.exists():
        return events
    with audit_path.open("r", encoding="utf-8") as file_obj:
        for line in file_obj:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                events.append(entry)
    return events
