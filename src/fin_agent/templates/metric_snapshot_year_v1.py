"""Full-year value of one metric against the previous year."""

from __future__ import annotations

from typing import Any

from fin_agent.templates import base
from fin_agent.templates.base import RunContext, as_int, default_year, fnv1a, normalize_metric

TEMPLATE_ID = "metric_snapshot_year_v1"
DOMAIN = "metrics"
DESCRIPTION = "Revenue, costs or gross for a complete year, optionally per unit."
PERIOD_POLICY = "complete_year"
REQUIRED = ("metric",)


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    metric, year, unit, currency = _resolve(params)
    base_value = fnv1a(f"{metric}:{year}:{unit or ''}") % 500 + 1500
    value = round(float(base_value), 2)
    previous = round(base_value * 0.88, 2)
    result = _build(metric, year, unit, currency or "€", value, previous)
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    metric, year, unit, currency = _resolve(params)
    query_params: dict[str, Any] = {"metric": metric, "year": year}
    if unit:
        query_params["unit"] = unit

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        row = rows[0]
        return _build(
            metric,
            year,
            unit,
            str(currency or row.get("currency") or "€"),
            float(row.get("value") or 0),
            float(row.get("prev_value") or 0),
        )

    return base.run_live(
        ctx,
        TEMPLATE_ID,
        query_params,
        build=build,
        mock=lambda: run_mock({**params, "metric": metric, "year": year}),
    )


def _resolve(params: dict[str, Any]) -> tuple[str, int, str | None, str | None]:
    metric = normalize_metric(params.get("metric"), default="costs")
    year = as_int(params.get("year")) or default_year()
    unit = str(params["unit"]).upper() if params.get("unit") else None
    currency = str(params["currency"]) if params.get("currency") else None
    return metric, year, unit, currency


def _build(
    metric: str,
    year: int,
    unit: str | None,
    currency: str,
    value: float,
    previous: float,
) -> dict[str, Any]:
    yoy_abs = round(value - previous, 2)
    yoy_pct = round(yoy_abs / previous, 4) if previous else 0.0
    prefix = f"{unit} — " if unit else ""
    sign = "+" if yoy_abs >= 0 else ""

    text = "\n".join(
        [
            f"{prefix}{year} {metric} snapshot",
            f"- {currency}{value:.2f} (prev: {previous:.2f})",
            f"- YoY change: {sign}{yoy_abs:.2f} ({yoy_pct * 100:.2f}%)",
        ]
    )
    provenance: dict[str, Any] = {"template": TEMPLATE_ID, "metric": metric, "year": year, "currency": currency}
    if unit:
        provenance["unit"] = unit
    return {
        "template_output": {"text": text, "widgets": None},
        "kpi_summary": [
            {"label": "Value", "value": value},
            {"label": "Prev", "value": previous},
            {"label": "YoY Δ", "value": yoy_abs},
            {"label": "YoY %", "value": round(yoy_pct * 100, 2)},
            {"label": "Currency", "value": currency},
        ],
        "meta": {},
        "provenance": provenance,
    }
