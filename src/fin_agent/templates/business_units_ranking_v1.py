"""Top or bottom business units ranked by a metric."""

from __future__ import annotations

from typing import Any

from fin_agent.routing.aliases import labelize_unit
from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext, as_int, default_year, format_eur, metric_name, normalize_metric

TEMPLATE_ID = "business_units_ranking_v1"
DOMAIN = "business_units"
DESCRIPTION = "Rank business units by revenue, costs or gross for a complete year."
PERIOD_POLICY = "complete_year"


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    metric = normalize_metric(params.get("metric"))
    factor = mock_data.METRIC_FACTORS.get(metric, 1.0)
    rows = [(code, round(value * factor)) for code, value, _ in mock_data.BU_BREAKDOWN]
    result = _build(rows, params, metric)
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    metric = normalize_metric(params.get("metric"))
    year = as_int(params.get("year")) or default_year()

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        ranked = [(str(row["bu_code"]).upper(), float(row.get("value") or 0)) for row in rows]
        return _build(ranked, params, metric)

    return base.run_live(
        ctx,
        TEMPLATE_ID,
        {"metric": metric, "year": year},
        build=build,
        mock=lambda: run_mock(params),
    )


def _build(rows: list[tuple[str, float]], params: dict[str, Any], metric: str) -> dict[str, Any]:
    limit = as_int(params.get("limit"), 3) or 3
    ascending = str(params.get("sort", "desc")).lower() == "asc"
    year = as_int(params.get("year")) or default_year()
    ranked = sorted(rows, key=lambda row: row[1], reverse=not ascending)[:limit]
    name = metric_name(metric)

    heading = "Bottom" if ascending else "Top"
    lines = [f"{heading} {len(ranked)} business units by {name.lower()} ({year}):"]
    lines.extend(
        f"{rank}. {labelize_unit(code)}: {format_eur(value)}" for rank, (code, value) in enumerate(ranked, start=1)
    )

    return {
        "template_output": {
            "text": "\n".join(lines),
            "widgets": {
                "type": "table",
                "columns": ["Business Unit", name],
                "rows": [[code, value] for code, value in ranked],
            },
        },
        "kpi_summary": [{"label": f"{heading} {name}", "value": ranked[0][1] if ranked else 0}],
        "meta": {"rows": len(ranked)},
        "provenance": {
            "template": TEMPLATE_ID,
            "metric": metric,
            "year": year,
            "context_request": params.get("context_request", "top_performers"),
        },
    }
