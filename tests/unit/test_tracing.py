import pytest

from fin_agent.obs.tracing import (
    DiagnosticsContext,
    Timer,
    TraceStore,
    active_diagnostics,
    record_template_trace,
)
from fin_agent.types import TemplateTrace


def _trace(template_id: str = "monthly_gross_trend_v1") -> TemplateTrace:
    return TemplateTrace(
        template_id=template_id,
        data_mode="mock",
        params={},
        tag="TEMPLATE_RUN",
        source="mock",
        latency_ms=1.5,
    )


def test_template_traces_collected_only_inside_active_context() -> None:
    diagnostics = DiagnosticsContext()

    record_template_trace(_trace("outside_v1"))
    with active_diagnostics(diagnostics):
        record_template_trace(_trace())
    record_template_trace(_trace("after_v1"))

    assert [trace.template_id for trace in diagnostics.template_traces] == ["monthly_gross_trend_v1"]
    assert diagnostics.to_dict()["template_traces"][0]["tag"] == "TEMPLATE_RUN"


def test_trace_store_lookup_and_summary() -> None:
    store = TraceStore()
    assert store.summary()["total_requests"] == 0

    first = store.create_record(
        message="Top counterparties YTD",
        mode="strict",
        tag="TEMPLATE_RUN",
        template_id="top_counterparties_gross_v1",
        latency_ms=10.0,
        diagnostics={},
    )
    store.create_record(
        message="",
        mode="nodata",
        tag="NO_MESSAGE",
        template_id=None,
        latency_ms=30.0,
        diagnostics={},
    )

    assert store.get(first.trace_id) is first
    summary = store.summary()
    assert summary["total_requests"] == 2
    assert summary["avg_latency_ms"] == 20.0
    assert summary["modes"] == {"strict": 1, "nodata": 1}
    assert summary["templates"] == {"top_counterparties_gross_v1": 1}

    with pytest.raises(KeyError):
        store.get("missing")


def test_trace_store_evicts_oldest() -> None:
    store = TraceStore(max_records=2)
    ids = [
        store.create_record(
            message=str(index), mode="strict", tag=None, template_id=None, latency_ms=0.0, diagnostics={}
        ).trace_id
        for index in range(3)
    ]

    assert len(store) == 2
    assert [record.trace_id for record in store.list_recent()] == ids[1:]


def test_timer_measures_elapsed() -> None:
    with Timer() as timer:
        sum(range(1000))

    assert timer.elapsed_ms >= 0.0
