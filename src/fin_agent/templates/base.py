"""Shared helpers for template modules: run context, live fallback policy, formatting."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fin_agent.services.warehouse import QueryExecutor, QueryResponse
from fin_agent.types import ProvenanceTag

logger = logging.getLogger(__name__)

NO_DATA_TEXT = "No data was returned for this request."

RawResult = dict[str, Any]


@dataclass(slots=True)
class RunContext:
    """Per-run collaborators and flags handed to template runners."""

    data_mode: str = "mock"
    warehouse: QueryExecutor | None = None
    allow_mock_fallback: bool = False
    page_size: int = 8


def run_live(
    ctx: RunContext,
    template_id: str,
    query_params: dict[str, Any],
    *,
    build: Callable[[list[dict[str, Any]]], RawResult],
    mock: Callable[[], RawResult],
) -> RawResult:
    """Query the warehouse and build a result from its rows.

    A failed query, an empty row set or rows that cannot be shaped all count
    as a live failure. With `allow_mock_fallback` the deterministic mock is
    returned tagged `BQ_ERROR_FALLBACK`; otherwise an empty result with
    `source="bq"` carries the diagnostics and is later tagged `NO_DATA`.
    """

    response = _query(ctx, template_id, query_params)
    diagnostics = {**response.diagnostics, "rows": len(response.rows)}

    failure = response.error
    if failure is None and not response.rows:
        failure = "no rows"
    if failure is None:
        try:
            result = build(response.rows)
        except (KeyError, TypeError, ValueError) as exc:
            failure = f"unexpected row shape: {exc}"
        else:
            provenance = result.setdefault("provenance", {})
            provenance.setdefault("source", "bq")
            provenance["bq"] = diagnostics
            return result

    diagnostics["message"] = failure
    if ctx.allow_mock_fallback:
        logger.warning("live run failed template=%s (%s); serving mock", template_id, failure)
        result = mock()
        provenance = result.setdefault("provenance", {})
        provenance.update(source="mock", tag=ProvenanceTag.BQ_ERROR_FALLBACK.value, bq=diagnostics)
        return result

    logger.info("live run empty template=%s (%s)", template_id, failure)
    return empty_result(template_id, diagnostics, error=response.error)


def empty_result(
    template_id: str,
    diagnostics: dict[str, Any],
    *,
    error: str | None = None,
) -> RawResult:
    provenance: dict[str, Any] = {"source": "bq", "template": template_id, "bq": diagnostics}
    if error:
        provenance["error_msg"] = error
    return {
        "template_output": {"text": NO_DATA_TEXT, "widgets": None},
        "kpi_summary": [],
        "meta": {},
        "provenance": provenance,
    }


def _query(ctx: RunContext, template_id: str, params: dict[str, Any]) -> QueryResponse:
    if ctx.warehouse is None:
        return QueryResponse(success=False, error="warehouse not configured")
    try:
        return ctx.warehouse.execute_query(template_id, params)
    except Exception as exc:
        logger.exception("warehouse query raised template=%s", template_id)
        return QueryResponse(success=False, error=str(exc) or type(exc).__name__)


def fnv1a(text: str) -> int:
    """32-bit FNV-1a hash used to seed deterministic mock values."""

    value = 2166136261
    for char in text:
        value = ((value ^ ord(char)) * 16777619) & 0xFFFFFFFF
    return value


def default_year(now: datetime | None = None) -> int:
    return (now or datetime.now(timezone.utc)).year - 1


def as_int(value: Any, default: int | None = None) -> int | None:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_metric(value: Any, default: str = "revenue") -> str:
    metric = str(value or default).strip().lower()
    return "costs" if metric in {"expense", "expenses", "cost"} else metric


def metric_name(metric: str) -> str:
    return {"revenue": "Revenue", "costs": "Costs", "gross": "Gross"}.get(metric, "Revenue")


def format_eur(value: float) -> str:
    if abs(value) >= 1_000_000:
        return f"€{value / 1_000_000:.2f}M"
    if abs(value) >= 1_000:
        return f"€{value / 1_000:.0f}K"
    return f"€{value:.0f}"


def pct(numerator: float, denominator: float) -> float:
    return round(numerator / denominator * 100, 1) if denominator else 0.0


def source_for(data_mode: str) -> str:
    return "bq" if data_mode == "live" else "mock"
