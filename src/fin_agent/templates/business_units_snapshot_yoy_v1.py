"""Year-over-year revenue snapshot for one business unit."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext, as_int, default_year

TEMPLATE_ID = "business_units_snapshot_yoy_v1"
DOMAIN = "business_units"
DESCRIPTION = "Revenue for a business unit against the prior year, with invoices and AR days."
PERIOD_POLICY = "complete_year"
REQUIRED = ("unit",)


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    unit = str(params.get("unit") or "Z001").upper()
    year = as_int(params.get("year")) or default_year()
    current = round(mock_data.SNAPSHOT_REVENUE_MEUR * 1_000_000)
    previous = round(mock_data.SNAPSHOT_PREVIOUS_MEUR * 1_000_000)

    result = _build(unit, year, params.get("month"), current, previous)
    result["kpi_summary"].extend(
        [
            {"label": "Invoices", "value": mock_data.SNAPSHOT_INVOICES},
            {"label": "AR Days", "value": mock_data.SNAPSHOT_AR_DAYS},
        ]
    )
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    unit = str(params["unit"]).upper() if params.get("unit") else None
    year = as_int(params.get("year")) or default_year()
    query_params: dict[str, Any] = {"year": year}
    if unit:
        query_params["unit"] = unit

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        if unit:
            row = next((r for r in rows if str(r.get("business_unit", "")).upper() == unit), None)
            if row is None:
                raise ValueError(f"no row for business unit {unit}")
        else:
            row = max(rows, key=lambda r: float(r.get("revenue_this_year") or 0))

        current = float(row.get("revenue_this_year") or 0)
        previous = float(row.get("revenue_last_year") or 0)
        chosen = unit or str(row.get("business_unit") or "BU")
        result = _build(chosen, year, params.get("month"), current, previous, row.get("yoy_growth_pct"))
        for key, label in (("invoices", "Invoices"), ("ar_days", "AR Days")):
            if isinstance(row.get(key), (int, float)):
                result["kpi_summary"].append({"label": label, "value": row[key]})
        return result

    return base.run_live(
        ctx,
        TEMPLATE_ID,
        query_params,
        build=build,
        mock=lambda: run_mock({**params, "year": year}),
    )


def _build(
    unit: str,
    year: int,
    month: str | None,
    current: float,
    previous: float,
    yoy_pct: float | None = None,
) -> dict[str, Any]:
    if yoy_pct is None:
        yoy_pct = (current - previous) / max(previous, 1) * 100
    yoy_pct = round(float(yoy_pct), 1)
    current_m = current / 1_000_000
    previous_m = previous / 1_000_000
    delta_m = current_m - previous_m
    period = f"{str(month).capitalize()} {year}" if month else str(year)
    sign = "+" if yoy_pct >= 0 else ""

    text = "\n".join(
        [
            f"## {unit} — {period} snapshot (YoY)",
            "",
            f"* Revenue (year): €{current_m:.2f}M (prev: €{previous_m:.2f}M)",
            f"* YoY Δ: €{delta_m:.2f}M ({sign}{yoy_pct:.1f}%)",
        ]
    )
    provenance: dict[str, Any] = {"template": TEMPLATE_ID, "unit": unit, "year": year}
    if month:
        provenance["month"] = month
    return {
        "template_output": {"text": text, "widgets": None},
        "kpi_summary": [
            {"label": "Revenue (year)", "value": round(current)},
            {"label": "YoY Δ %", "value": yoy_pct},
        ],
        "meta": {},
        "provenance": provenance,
    }
