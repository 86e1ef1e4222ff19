from datetime import datetime, timezone

import pytest

from fin_agent.agent.executor import TemplateExecutor
from fin_agent.agent.registry import TemplateRegistry, register_builtin_templates
from fin_agent.agent.slots import (
    BREAKDOWN_METRIC_TEXT,
    METRIC_TEXT,
    SlotFiller,
    last_12_complete_months,
)
from fin_agent.types import ClientHints, TopicRoute

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def registry() -> TemplateRegistry:
    registry = TemplateRegistry()
    register_builtin_templates(registry)
    return registry


def _filler(registry: TemplateRegistry, **kwargs) -> SlotFiller:
    return SlotFiller(registry, clock=lambda: NOW, **kwargs)


def test_last_12_complete_months() -> None:
    assert last_12_complete_months(NOW) == ("2025-10", "2026-09")
    assert last_12_complete_months(datetime(2026, 1, 5, tzinfo=timezone.utc)) == ("2025-01", "2025-12")


def test_last_12m_policy_fills_window(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_timeseries_v1", {"metric": "revenue", "unit": "Z001"})
    result = _filler(registry).fill(route, route.params)

    assert result.clarify is None
    assert result.params == {
        "metric": "revenue",
        "unit": "Z001",
        "from": "2025-10",
        "to": "2026-09",
        "granularity": "month",
    }
    assert result.defaults_used == {"period": "last_12m", "granularity": "month"}


def test_open_ended_window_gets_end_month(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_timeseries_v1", {})
    result = _filler(registry).fill(route, {"metric": "revenue", "unit": "Z001", "from": "2024-01"})

    assert result.params["to"] == "2026-09"
    assert result.defaults_used == {"to": "2026-09"}


def test_complete_year_policy(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_snapshot_year_v1", {"metric": "revenue"})
    result = _filler(registry).fill(route, route.params)

    assert result.params["year"] == 2025
    assert result.defaults_used == {"year": 2025}


def test_fill_is_idempotent(registry: TemplateRegistry) -> None:
    filler = _filler(registry)
    route = TopicRoute("metrics", "metric_breakdown_by_unit_v1", {"unit": "ALL", "metric": "gross"})
    first = filler.fill(route, route.params)
    second = filler.fill(route, first.params)

    assert second.params == first.params
    assert second.defaults_used == {}
    assert first.params["top"] == 8


def test_show_all_units(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_breakdown_by_unit_v1", {})
    result = _filler(registry).fill(route, {"metric": "revenue", "showAllUnits": True})

    assert result.params["top"] == "all"
    assert "top" not in result.defaults_used


def test_metric_aliases_are_normalized(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_snapshot_year_v1", {})
    result = _filler(registry).fill(route, {"metric": "expenses", "year": 2024})

    assert result.params == {"metric": "costs", "year": 2024}


def test_breakdown_metric_clarify(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_breakdown_by_unit_v1", {"unit": "ALL"})
    result = _filler(registry).fill(route, route.params)

    assert result.clarify is not None
    assert result.clarify.missing == ["metric"]
    assert result.clarify.text == BREAKDOWN_METRIC_TEXT
    labels = [chip.label for chip in result.clarify.suggestions["metric"]]
    assert labels == ["Revenue", "Costs", "Gross Profit"]


def test_generic_metric_clarify_text(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_snapshot_year_v1", {})
    result = _filler(registry).fill(route, {})

    assert result.clarify is not None
    assert result.clarify.text == METRIC_TEXT


def test_required_slot_reused_from_hints(registry: TemplateRegistry) -> None:
    route = TopicRoute("metrics", "metric_snapshot_year_v1", {})
    hints = ClientHints(prev_template="metric_snapshot_year_v1", prev_params={"metric": "gross"})
    result = _filler(registry).fill(route, {}, hints)

    assert result.clarify is None
    assert result.params["metric"] == "gross"


def test_unit_clarify_uses_listing(registry: TemplateRegistry) -> None:
    executor = TemplateExecutor(registry)
    route = TopicRoute("metrics", "metric_timeseries_v1", {"metric": "revenue"})
    result = _filler(registry, executor=executor).fill(route, route.params)

    chips = result.clarify.suggestions["unit"]
    assert result.clarify.missing == ["unit"]
    assert chips[0].label == "All BUs"
    assert chips[0].params == {"unit": "ALL"}
    assert chips[1].label == "Z001 — Liferafts"
    assert len(chips) == 9


def test_unit_clarify_pages_listing(registry: TemplateRegistry) -> None:
    executor = TemplateExecutor(registry)
    filler = _filler(registry, executor=executor, page_size=3)
    clarify = filler.unit_clarify()

    chips = clarify.suggestions["unit"]
    assert [chip.params for chip in chips[1:4]] == [{"unit": "Z001"}, {"unit": "Z002"}, {"unit": "Z003"}]
    assert chips[-1].label == "Show more"
    assert chips[-1].params == {"page_token": "3"}
    assert clarify.text.endswith("Found 8 business units; showing 3.")
    assert clarify.coverage == {"shown": 3, "total": 8}


def test_unit_clarify_static_fallback(registry: TemplateRegistry) -> None:
    clarify = _filler(registry).unit_clarify()

    assert [chip.id for chip in clarify.suggestions["unit"]] == ["unit:ALL", "unit:Z001", "unit:Z002", "unit:Z003"]


def test_unknown_template_is_left_untouched(registry: TemplateRegistry) -> None:
    result = _filler(registry).fill(TopicRoute("none", "", {}), {"a": 1})

    assert result.params == {"a": 1}
    assert result.clarify is None
