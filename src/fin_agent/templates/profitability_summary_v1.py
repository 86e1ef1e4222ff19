"""Margin summary across business units. Served from demo data only."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import mock_data
from fin_agent.templates.base import RunContext, pct

TEMPLATE_ID = "profitability_summary_v1"
DOMAIN = "profitability"
DESCRIPTION = "Revenue, margin and best/weakest business unit by margin %."
SUMMARY = "profitability_summary"


def run(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    data = mock_data.PROFITABILITY
    units = sorted(
        ((code, revenue, margin, pct(margin, revenue)) for code, revenue, margin in data["units"]),
        key=lambda unit: unit[3],
        reverse=True,
    )
    revenue = sum(unit[1] for unit in units)
    margin = sum(unit[2] for unit in units)
    margin_pct = pct(margin, revenue)
    top, bottom = units[0], units[-1]

    text = (
        f"Profitability ({data['min_month']} → {data['max_month']}). "
        f"Revenue €{revenue:,}, Margin €{margin:,} ({margin_pct}%). "
        f"Best: {top[0]} ({top[3]}%). Weakest: {bottom[0]} ({bottom[3]}%)."
    )
    return {
        "text": text,
        "widgets": {
            "type": "table",
            "columns": ["Business Unit", "Revenue", "Margin", "Margin %"],
            "rows": [[code, rev, mar, mpct] for code, rev, mar, mpct in units],
        },
        "kpis": [
            {"label": "Revenue", "value": revenue, "unit": "EUR"},
            {"label": "Margin", "value": margin, "unit": "EUR"},
            {"label": "Margin %", "value": margin_pct, "unit": "%"},
            {"label": "Top BU (margin%)", "value": f"{top[0]} ({top[3]}%)"},
            {"label": "Bottom BU (margin%)", "value": f"{bottom[0]} ({bottom[3]}%)"},
        ],
        "coverage": {"time_range": {"start": data["min_month"], "end": data["max_month"]}},
        "provenance": {
            "source": "mock",
            "snapshot": mock_data.SNAPSHOT_DATE,
            "template_id": TEMPLATE_ID,
            "filters": dict(params),
        },
    }
