"""Six-month gross trend."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext

TEMPLATE_ID = "monthly_gross_trend_v1"
DOMAIN = "performance"
DESCRIPTION = "Gross amount for the last six months."
SUMMARY = "performance_summary"


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    series = [
        {"x": month, "y": 1_000_000 + index * 125_000}
        for index, month in enumerate(mock_data.TREND_MONTHS)
    ]
    result = _build(series)
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        series = [{"x": str(row["yyyymm"]), "y": float(row.get("gross_amount") or 0)} for row in rows[-6:]]
        return _build(sorted(series, key=lambda point: point["x"]))

    return base.run_live(ctx, TEMPLATE_ID, params, build=build, mock=lambda: run_mock(params))


def _build(series: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "template_output": {
            "text": f"Last {len(series)} months gross trend.",
            "widgets": {"type": "line", "series": [{"name": "Gross", "data": series}]},
        },
        "kpi_summary": [
            {"label": "Months", "value": len(series)},
            {"label": "LatestGross", "value": series[-1]["y"] if series else 0},
        ],
        "meta": {},
        "provenance": {"template": TEMPLATE_ID},
    }
