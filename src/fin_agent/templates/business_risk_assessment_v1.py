"""Business risk factors ranked by financial impact."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext, as_int, default_year, format_eur

TEMPLATE_ID = "business_risk_assessment_v1"
DOMAIN = "risk"
DESCRIPTION = "Current risk factors with severity and estimated impact."
PERIOD_POLICY = "complete_year"
SUMMARY = "risk_summary"

_SEVERITY_ORDER = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}


def run(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    limit = as_int(params.get("limit"), 10) or 10
    year = as_int(params.get("year")) or default_year()

    def mock() -> dict[str, Any]:
        return _build(list(mock_data.RISK_FACTORS), limit, year, source="mock")

    if ctx.data_mode != "live":
        return mock()

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        factors = [
            (str(row["factor"]), str(row.get("severity") or "LOW").upper(), float(row.get("impact") or 0))
            for row in rows
        ]
        return _build(factors, limit, year, source="bq")

    return base.run_live(ctx, TEMPLATE_ID, {"year": year, "limit": limit}, build=build, mock=mock)


def _build(factors: list[tuple[str, str, float]], limit: int, year: int, *, source: str) -> dict[str, Any]:
    ranked = sorted(factors, key=lambda f: (_SEVERITY_ORDER.get(f[1], 3), -f[2]))[:limit]
    lines = [f"## Current Risk Assessment ({year})", ""]
    lines.extend(f"* {name}: {severity} (Impact: {format_eur(impact)})" for name, severity, impact in ranked)
    return {
        "text": "\n".join(lines),
        "widgets": {
            "type": "table",
            "columns": ["Risk factor", "Severity", "Impact"],
            "rows": [list(factor) for factor in ranked],
        },
        "kpis": [
            {"label": "Risk factors", "value": len(ranked)},
            {"label": "High severity", "value": sum(1 for f in ranked if f[1] == "HIGH")},
            {"label": "Total impact", "value": sum(f[2] for f in ranked), "unit": "EUR"},
        ],
        "provenance": {"source": source, "template_id": TEMPLATE_ID, "year": year},
    }
