"""Regional gross year over year. Served from demo data only."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import mock_data
from fin_agent.templates.base import RunContext, pct

TEMPLATE_ID = "regional_performance_v1"
DOMAIN = "regional"
DESCRIPTION = "Gross by region, 2025 against 2024, with leader and laggard."
SUMMARY = "regional_summary"


def run(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    data = mock_data.REGIONAL
    regions = sorted(
        ((name, prev, cur, pct(cur - prev, prev)) for name, prev, cur in data["regions"]),
        key=lambda region: region[3],
        reverse=True,
    )
    overall = pct(sum(r[2] for r in regions) - sum(r[1] for r in regions), sum(r[1] for r in regions))
    top, bottom = regions[0], regions[-1]

    text = (
        f"Regional performance ({data['min_month']} → {data['max_month']}). Overall {overall}%. "
        f"Top: {top[0]} ({top[3]}%). Laggard: {bottom[0]} ({bottom[3]}%)."
    )
    return {
        "text": text,
        "widgets": {
            "type": "table",
            "columns": ["Region", "Gross 2024", "Gross 2025", "YoY %"],
            "rows": [list(region) for region in regions],
        },
        "kpis": [
            {"label": "Overall YoY", "value": overall, "unit": "%"},
            {"label": "Top Region", "value": f"{top[0]} ({top[3]}%)"},
            {"label": "Laggard", "value": f"{bottom[0]} ({bottom[3]}%)"},
        ],
        "coverage": {"time_range": {"start": data["min_month"], "end": data["max_month"]}},
        "provenance": {
            "source": "mock",
            "snapshot": mock_data.SNAPSHOT_DATE,
            "template_id": TEMPLATE_ID,
            "filters": dict(params),
        },
    }
