import pytest
import structlog

from knowledge_rag.utils import structured_log
from knowledge_rag.utils.structured_log import (
    configure_audit_logging,
    load_events_from_jsonl,
    log_citation_event,
    log_index_event,
    log_retrieval_event,
)


@pytest.fixture
def audit_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(structured_log, "_configured", False)
    monkeypatch.setattr(structured_log, "_logger", None)
    configure_audit_logging(str(tmp_path))
    yield tmp_path
    structlog.reset_defaults()


def test_events_are_noops_until_configured(monkeypatch) -> None:
    monkeypatch.setattr(structured_log, "_logger", None)
    log_index_event("doc1", "indexed", chunk_count=2)
    log_retrieval_event("semantic", 0)


def test_index_and_retrieval_events_written_as_json(audit_dir) -> None:
    log_index_event("doc1", "indexed", chunk_count=3, embedded=3, total_tokens=350, latency_ms=12)
    log_retrieval_event("multi_source", 4, query_chars=15, source_breakdown={"documents": 2})
    log_citation_event("session-1", 2)

    events = load_events_from_jsonl(str(audit_dir / "audit.jsonl"))
    assert [e["event"] for e in events] == ["index", "retrieval", "citations"]
    assert events[0]["document_id"] == "doc1"
    assert events[0]["total_tokens"] == 350
    assert "error" not in events[0]
    assert events[1]["source_breakdown"] == {"documents": 2}
    assert events[2]["count"] == 2
    assert all("timestamp" in e for e in events)


def test_load_events_skips_garbage(tmp_path) -> None:
    path = tmp_path / "audit.jsonl"
    path.write_text('{"event": "index"}\nnot json\n\n[1, 2]\n{"event": "retrieval"}\n')
    assert [e["event"] for e in load_events_from_jsonl(str(path))] == ["index", "retrieval"]
    assert load_events_from_jsonl(str(tmp_path / "missing.jsonl")) == []
