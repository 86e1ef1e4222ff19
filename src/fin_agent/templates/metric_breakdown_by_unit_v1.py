"""Metric split across business units with share of total."""

from __future__ import annotations

from typing import Any

from fin_agent.routing.aliases import unit_label
from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext, as_int, format_eur, metric_name, normalize_metric
from fin_agent.types import ProvenanceTag

TEMPLATE_ID = "metric_breakdown_by_unit_v1"
DOMAIN = "metrics"
DESCRIPTION = "Revenue, costs or gross by business unit, top N or all."
PERIOD_POLICY = "last_12m"
REQUIRED = ("metric",)

DEFAULT_TOP = 8
LIVE_ALL_LIMIT = 100


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    items = [(code, float(value), share) for code, value, share in mock_data.BU_BREAKDOWN]
    result = _build(items, params, total=len(items))
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    metric = normalize_metric(params.get("metric"))
    top = _top(params)
    query_params: dict[str, Any] = {
        "metric": metric,
        "top": LIVE_ALL_LIMIT if top is None else top,
    }
    for key in ("from", "to", "year"):
        if params.get(key) is not None:
            query_params[key] = params[key]

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        items = [
            (str(row["bu_code"]).upper(), float(row.get("value") or 0), float(row.get("share") or 0))
            for row in rows
        ]
        total = as_int(rows[0].get("total_count"), len(items)) or len(items)
        return _build(items, params, total=total)

    return base.run_live(ctx, TEMPLATE_ID, query_params, build=build, mock=lambda: run_mock(params))


def period_description(params: dict[str, Any]) -> str:
    if params.get("year") and not params.get("from"):
        return f"FY {params['year']}"
    if params.get("from") and params.get("to"):
        return f"{params['from']} to {params['to']}"
    return "Last 12 Months"


def _top(params: dict[str, Any]) -> int | None:
    if str(params.get("top", "")).lower() == "all":
        return None
    return as_int(params.get("top"), DEFAULT_TOP) or DEFAULT_TOP


def _build(items: list[tuple[str, float, float]], params: dict[str, Any], *, total: int) -> dict[str, Any]:
    metric = normalize_metric(params.get("metric"))
    name = metric_name(metric)
    period = period_description(params)
    top = _top(params)
    shown_items = items if top is None else items[:top]
    shown = len(shown_items)

    provenance: dict[str, Any] = {"template": TEMPLATE_ID, "domain": DOMAIN, "metric": metric}
    if shown < total:
        provenance["tag"] = ProvenanceTag.COVERAGE_NOTE.value

    meta: dict[str, Any] = {"coverage": {"shown": shown, "total": total}}
    if not params.get("unit") or params.get("unit") == "ALL":
        meta["assumptions"] = {"unit": "ALL"}

    return {
        "template_output": {
            "title": f"{name} by Business Unit — {period}",
            "text": (
                f"{name} breakdown across business units for {period}. "
                f"Showing {shown} of {total} business units."
            ),
            "widgets": [
                {
                    "type": "table",
                    "columns": ["Business Unit", name, "Share"],
                    "rows": [
                        [unit_label(code), format_eur(value), f"{share * 100:.0f}%"]
                        for code, value, share in shown_items
                    ],
                }
            ],
        },
        "kpi_summary": [{"label": name, "value": sum(value for _, value, _ in items)}],
        "meta": meta,
        "provenance": provenance,
    }
