"""Metric over a period at month, quarter or year granularity."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fin_agent.templates import base
from fin_agent.templates.base import RunContext, fnv1a, normalize_metric

TEMPLATE_ID = "metric_timeseries_v1"
DOMAIN = "metrics"
DESCRIPTION = "Revenue, costs or gross trend between two periods."
PERIOD_POLICY = "last_12m"
REQUIRED = ("metric", "unit")

GRANULARITIES = ("month", "quarter", "year")


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    metric, start, end, granularity, unit, currency = _resolve(params)
    labels = period_labels(start, end, granularity)
    seed = fnv1a(f"{metric}:{start}:{end}:{granularity}:{unit or ''}") % 1000
    base_value = 1000 + seed % 400
    step = seed % 13 - 6
    series = [{"x": label, "y": round(float(base_value + index * step), 2)} for index, label in enumerate(labels)]

    result = _build(series, metric, start, end, granularity, unit, currency or "€")
    result["provenance"]["source"] = "mock"
    return result


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    metric, start, end, granularity, unit, currency = _resolve(params)
    query_params: dict[str, Any] = {"metric": metric, "from": start, "to": end, "granularity": granularity}
    if unit and unit != "ALL":
        query_params["unit"] = unit

    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        series = [{"x": str(row["period"]), "y": float(row.get("value") or 0)} for row in rows]
        return _build(series, metric, start, end, granularity, unit, currency or "€")

    return base.run_live(
        ctx,
        TEMPLATE_ID,
        query_params,
        build=build,
        mock=lambda: run_mock(params),
    )


def period_labels(start: str, end: str, granularity: str) -> list[str]:
    """Labels from `start` to `end` inclusive; both are `YYYY` or `YYYY-MM`."""

    start_year, start_month = _parse_period(start, default_month=1)
    end_year, end_month = _parse_period(end, default_month=12)

    if granularity == "year":
        return [str(year) for year in range(start_year, end_year + 1)]

    labels: list[str] = []
    year, month = start_year, start_month
    while (year, month) <= (end_year, end_month):
        if granularity == "quarter":
            label = f"{year}-Q{(month - 1) // 3 + 1}"
            if label not in labels:
                labels.append(label)
        else:
            labels.append(f"{year}{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return labels


def _parse_period(value: str, *, default_month: int) -> tuple[int, int]:
    parts = str(value).split("-")
    year = int(parts[0])
    month = int(parts[1]) if len(parts) > 1 and parts[1] else default_month
    return year, min(max(month, 1), 12)


def _resolve(params: dict[str, Any]) -> tuple[str, str, str, str, str | None, str | None]:
    metric = normalize_metric(params.get("metric"), default="costs")
    start = str(params.get("from") or "2020-01")
    end = str(params.get("to") or datetime.now(timezone.utc).strftime("%Y-%m"))
    granularity = params.get("granularity") if params.get("granularity") in GRANULARITIES else "month"
    unit = str(params["unit"]).upper() if params.get("unit") else None
    currency = str(params["currency"]) if params.get("currency") else None
    return metric, start, end, granularity, unit, currency


def _build(
    series: list[dict[str, Any]],
    metric: str,
    start: str,
    end: str,
    granularity: str,
    unit: str | None,
    currency: str,
) -> dict[str, Any]:
    slope = (series[-1]["y"] - series[0]["y"]) / (len(series) - 1) if len(series) > 1 else 0.0
    low = min(series, key=lambda point: point["y"]) if series else {"x": "—"}
    high = max(series, key=lambda point: point["y"]) if series else {"x": "—"}
    prefix = f"{unit} — " if unit and unit != "ALL" else ""

    text = "\n".join(
        [
            f"{prefix}{metric} {granularity} trend {start}→{end}",
            f"- slope: {'up' if slope >= 0 else 'down'} ({slope:.2f})",
            f"- min/max: {low['x']} / {high['x']}",
        ]
    )
    provenance: dict[str, Any] = {
        "template": TEMPLATE_ID,
        "metric": metric,
        "from": start,
        "to": end,
        "granularity": granularity,
        "currency": currency,
    }
    if unit:
        provenance["unit"] = unit
    return {
        "template_output": {
            "text": text,
            "widgets": {"type": "line", "series": [{"name": metric, "data": series}]},
        },
        "kpi_summary": [
            {"label": "Slope", "value": round(slope, 2)},
            {"label": "Min", "value": str(low["x"])},
            {"label": "Max", "value": str(high["x"])},
            {"label": "Currency", "value": currency},
        ],
        "meta": {},
        "provenance": provenance,
    }
