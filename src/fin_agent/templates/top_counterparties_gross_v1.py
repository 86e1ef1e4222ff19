"""Largest counterparties by gross, year to date."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext, as_int

TEMPLATE_ID = "top_counterparties_gross_v1"
DOMAIN = "counterparties"
DESCRIPTION = "Top counterparties by gross amount, year to date."
SUMMARY = "counterparty_summary"

DEFAULT_TOP = 5


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    rows = [(name, gross) for name, gross, _ in mock_data.COUNTERPARTIES]
    result = _build(rows)
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    top = as_int(params.get("top"), DEFAULT_TOP) or DEFAULT_TOP

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        return _build(
            [(str(row["counterparty_name"]), float(row.get("gross_amount") or 0)) for row in rows[:top]]
        )

    return base.run_live(
        ctx,
        TEMPLATE_ID,
        {**params, "top": top},
        build=build,
        mock=lambda: run_mock(params),
    )


def _build(rows: list[tuple[str, float]]) -> dict[str, Any]:
    return {
        "template_output": {
            "text": f"Top {len(rows)} counterparties YTD.",
            "widgets": {
                "type": "table",
                "columns": ["counterparty", "gross"],
                "rows": [[name, gross] for name, gross in rows],
            },
        },
        "kpi_summary": [
            {"label": "TopN", "value": len(rows)},
            {"label": "TotalGross", "value": sum(gross for _, gross in rows)},
        ],
        "meta": {},
        "provenance": {"template": TEMPLATE_ID},
    }
