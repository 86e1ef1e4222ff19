"""Per-template slot filling: hint reuse, policy defaults and clarify requests."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fin_agent.agent.executor import TemplateExecutor
from fin_agent.agent.registry import TemplateRegistry
from fin_agent.routing.aliases import labelize_unit
from fin_agent.types import Chip, ClarifyRequest, ClientHints, ProvenanceTag, TopicRoute

logger = logging.getLogger(__name__)

BREAKDOWN_TEMPLATE = "metric_breakdown_by_unit_v1"
UNIT_LISTING_TEMPLATE = "business_units_list_v1"

PERIOD_KEYS = ("from", "to", "year", "time_window", "period")

METRIC_OPTIONS: tuple[tuple[str, str], ...] = (
    ("revenue", "Revenue"),
    ("costs", "Costs"),
    ("gross", "Gross Profit"),
)
DEFAULT_UNIT_CHIPS: tuple[str, ...] = ("ALL", "Z001", "Z002", "Z003")

BREAKDOWN_METRIC_TEXT = "Which metric would you like to break down by business unit?"
METRIC_TEXT = "Which metric should I use?"
UNIT_TEXT = "Which business unit should I use for the monthly gross trend?"
COVERAGE_TEXT = " Found {total} business units; showing {shown}."

_LISTING_OK = {ProvenanceTag.TEMPLATE_RUN, ProvenanceTag.COVERAGE_NOTE, ProvenanceTag.BQ_ERROR_FALLBACK}


@dataclass(slots=True)
class FillResult:
    params: dict[str, Any]
    defaults_used: dict[str, Any] = field(default_factory=dict)
    clarify: ClarifyRequest | None = None


def last_12_complete_months(now: datetime) -> tuple[str, str]:
    """`(from, to)` as `YYYY-MM`, ending the month before `now` (UTC)."""

    end_year, end_month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
    index = end_year * 12 + (end_month - 1) - 11
    start_year, start_month = divmod(index, 12)
    return f"{start_year}-{start_month + 1:02d}", f"{end_year}-{end_month:02d}"


def last_complete_month(now: datetime) -> str:
    return last_12_complete_months(now)[1]


class SlotFiller:
    """Completes template params before execution.

    Re-running `fill` on its own output is a no-op: values already present
    are never overwritten and produce no `defaults_used` entries.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        executor: TemplateExecutor | None = None,
        *,
        default_top: int = 8,
        page_size: int = 8,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.default_top = default_top
        self.page_size = page_size
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def fill(
        self,
        route: TopicRoute,
        params: dict[str, Any] | None = None,
        client_hints: ClientHints | None = None,
    ) -> FillResult:
        result = FillResult(params=dict(params or {}))
        spec = self.registry.get(route.template_id) if route.template_id else None
        if spec is None:
            return result

        values = result.params
        hints = client_hints or ClientHints()
        if values.get("metric") in {"expense", "expenses", "cost"}:
            values["metric"] = "costs"

        now = self.clock()
        if spec.slots.period == "last_12m":
            self._apply_last_12m(values, result.defaults_used, now)
        elif spec.slots.period == "complete_year" and values.get("year") in (None, ""):
            values["year"] = now.year - 1
            result.defaults_used["year"] = values["year"]

        if route.template_id == BREAKDOWN_TEMPLATE:
            if values.get("showAllUnits") in (True, "true", "1", 1):
                values["top"] = "all"
            elif values.get("top") in (None, ""):
                values["top"] = self.default_top
                result.defaults_used["top"] = self.default_top

        for slot in spec.slots.required:
            if values.get(slot) not in (None, ""):
                continue
            hinted = hints.prev_params.get(slot)
            if hinted not in (None, ""):
                values[slot] = hinted
                logger.info("slot %s reused from previous turn: %s", slot, hinted)
                continue
            result.clarify = self._clarify(slot, route)
            logger.info("clarify required template=%s slot=%s", route.template_id, slot)
            break

        return result

    def _apply_last_12m(self, values: dict[str, Any], defaults_used: dict[str, Any], now: datetime) -> None:
        if not any(values.get(key) not in (None, "") for key in PERIOD_KEYS):
            start, end = last_12_complete_months(now)
            values["from"], values["to"] = start, end
            defaults_used["period"] = "last_12m"
            if values.get("granularity") in (None, ""):
                values["granularity"] = "month"
                defaults_used["granularity"] = "month"
        elif values.get("from") not in (None, "") and values.get("to") in (None, ""):
            values["to"] = last_complete_month(now)
            defaults_used["to"] = values["to"]

    def _clarify(self, slot: str, route: TopicRoute) -> ClarifyRequest:
        if slot == "metric":
            text = BREAKDOWN_METRIC_TEXT if route.template_id == BREAKDOWN_TEMPLATE else METRIC_TEXT
            chips = [Chip(id=f"metric:{key}", label=label, params={"metric": key}) for key, label in METRIC_OPTIONS]
            return ClarifyRequest(missing=["metric"], suggestions={"metric": chips}, text=text)
        if slot == "unit":
            return self.unit_clarify()
        return ClarifyRequest(missing=[slot], suggestions={slot: []}, text=f"Please provide a value for {slot}.")

    def unit_clarify(self) -> ClarifyRequest:
        """Unit chips from the BU listing; static chips whenever that fails."""

        listing = self._unit_listing()
        if listing is None:
            chips = [_unit_chip(code) for code in DEFAULT_UNIT_CHIPS]
            return ClarifyRequest(missing=["unit"], suggestions={"unit": chips}, text=UNIT_TEXT)

        units, coverage, next_token = listing
        chips = [_unit_chip("ALL")] + [_unit_chip(code) for code in units]
        if next_token:
            chips.append(Chip(id="unit:more", label="Show more", params={"page_token": next_token}))
        text = UNIT_TEXT
        if coverage and coverage.get("total", 0) > coverage.get("shown", 0):
            text += COVERAGE_TEXT.format(total=coverage["total"], shown=coverage["shown"])
        return ClarifyRequest(missing=["unit"], suggestions={"unit": chips}, text=text, coverage=coverage)

    def _unit_listing(self) -> tuple[list[str], dict[str, Any] | None, str | None] | None:
        if self.executor is None:
            return None
        try:
            result = self.executor.run(UNIT_LISTING_TEMPLATE, {"limit": self.page_size})
            widgets = result.template_output.widgets
            items = widgets.get("items") if isinstance(widgets, dict) else None
            if result.provenance.tag not in _LISTING_OK or not items:
                return None
            paging = result.meta.get("paging") or {}
            return [str(code) for code in items], result.meta.get("coverage"), paging.get("next_page_token")
        except Exception:
            logger.exception("unit listing for clarify chips failed")
            return None


def _unit_chip(code: str) -> Chip:
    label = "All BUs" if code == "ALL" else labelize_unit(code)
    return Chip(id=f"unit:{code}", label=label, params={"unit": code})
