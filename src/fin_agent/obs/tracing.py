"""Request timing, per-request diagnostics and in-memory trace storage."""

from __future__ import annotations

import time
import uuid
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from fin_agent.types import TemplateTrace


@dataclass(slots=True)
class DiagnosticsContext:
    """Routing and execution facts gathered while handling one request."""

    data_mode: str = "mock"
    router_domain: str | None = None
    router_confidence: float | None = None
    router_source: str = "classifier"
    rewrite: dict[str, Any] | None = None
    topic_domain: str | None = None
    template_id: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    defaults_used: dict[str, Any] = field(default_factory=dict)
    template_traces: list[TemplateTrace] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)

    def record_template(self, trace: TemplateTrace) -> None:
        self.template_traces.append(trace)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_ACTIVE: ContextVar[DiagnosticsContext | None] = ContextVar("fin_agent_diagnostics", default=None)


@contextmanager
def active_diagnostics(diagnostics: DiagnosticsContext) -> Iterator[DiagnosticsContext]:
    """Bind `diagnostics` as the collector for template traces in this context."""
    token = _ACTIVE.set(diagnostics)
    try:
        yield diagnostics
    finally:
        _ACTIVE.reset(token)


def record_template_trace(trace: TemplateTrace) -> None:
    diagnostics = _ACTIVE.get()
    if diagnostics is not None:
        diagnostics.record_template(trace)


@dataclass(slots=True)
class ChatTrace:
    trace_id: str
    timestamp_utc: str
    message: str
    mode: str
    tag: str | None
    template_id: str | None
    latency_ms: float
    diagnostics: dict[str, Any]


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, max_records: int = 1000) -> None:
        self._records: dict[str, ChatTrace] = {}
        self._max_records = max_records

    def create_record(
        self,
        *,
        message: str,
        mode: str,
        tag: str | None,
        template_id: str | None,
        latency_ms: float,
        diagnostics: dict[str, Any],
    ) -> ChatTrace:
        record = ChatTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            message=message,
            mode=mode,
            tag=tag,
            template_id=template_id,
            latency_ms=latency_ms,
            diagnostics=diagnostics,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> ChatTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[ChatTrace]:
        return list(self._records.values())[-limit:]

    def __len__(self) -> int:
        return len(self._records)

    def summary(self) -> dict[str, Any]:
        """Aggregate request counts and latency for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "modes": {},
                "templates": {},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "modes": dict(Counter(record.mode for record in records)),
            "templates": dict(Counter(record.template_id for record in records if record.template_id)),
        }


class Timer:
    """Simple context timer used by the pipeline and executor."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
