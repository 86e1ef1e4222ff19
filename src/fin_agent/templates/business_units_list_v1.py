"""Paginated business-unit catalog."""

from __future__ import annotations

from typing import Any

from fin_agent.routing.aliases import UNIT_LABELS, labelize_unit
from fin_agent.templates import base, mock_data
from fin_agent.templates.base import RunContext, as_int, format_eur
from fin_agent.types import ProvenanceTag

TEMPLATE_ID = "business_units_list_v1"
DOMAIN = "business_units"
DESCRIPTION = "List business units with optional paging and performance lines."

DEFAULT_LIMIT = 8


def run_mock(params: dict[str, Any]) -> dict[str, Any]:
    units = list(UNIT_LABELS)
    values = {code: value for code, value, _ in mock_data.BU_BREAKDOWN}
    return _build(units, params, values, source="mock")


def run_live(params: dict[str, Any], ctx: RunContext) -> dict[str, Any]:
    def build(rows: list[dict[str, Any]]) -> dict[str, Any]:
        units: list[str] = []
        values: dict[str, float] = {}
        for row in rows:
            raw = row.get("bu_code") or row.get("unit") or row.get("code")
            code = str(raw or "").upper()
            if not code or code in units:
                continue
            units.append(code)
            if row.get("revenue") is not None:
                values[code] = float(row["revenue"])
        if not units:
            raise ValueError("no business unit codes in rows")
        return _build(units, params, values, source="bq")

    return base.run_live(ctx, TEMPLATE_ID, {}, build=build, mock=lambda: run_mock(params))


def _build(
    units: list[str],
    params: dict[str, Any],
    values: dict[str, float],
    *,
    source: str,
) -> dict[str, Any]:
    total = len(units)
    limit = as_int(params.get("limit"), DEFAULT_LIMIT) or DEFAULT_LIMIT
    offset = max(as_int(params.get("page_token"), 0) or 0, 0)
    page = units[offset : offset + limit]
    next_offset = offset + len(page)
    next_token = str(next_offset) if next_offset < total else None

    lines = [f"Business units ({total}): {', '.join(page) if page else 'None found.'}"]
    if params.get("includePerformance"):
        lines.extend(
            f"* {labelize_unit(code)}: {format_eur(values[code])}" for code in page if code in values
        )
    truncated = len(page) < total
    if truncated:
        lines.append(f"Showing {len(page)} of {total}.")

    provenance: dict[str, Any] = {"source": source, "template": TEMPLATE_ID, "domain": DOMAIN}
    if truncated:
        provenance["tag"] = ProvenanceTag.COVERAGE_NOTE.value

    return {
        "template_output": {"text": "\n".join(lines), "widgets": {"type": "list", "items": page}},
        "kpi_summary": [{"label": "Units", "value": total}],
        "meta": {
            "coverage": {"shown": len(page), "total": total},
            "paging": {"limit": limit, "page_token": str(offset), "next_page_token": next_token},
        },
        "provenance": provenance,
    }
