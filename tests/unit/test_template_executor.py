from types import ModuleType

import pytest

from fin_agent.agent.executor import TemplateExecutor, normalize_result
from fin_agent.agent.registry import TemplateRegistry, register_builtin_templates
from fin_agent.services.warehouse import QueryResponse
from fin_agent.templates.base import NO_DATA_TEXT
from fin_agent.types import ProvenanceTag, TemplateResult


class FakeWarehouse:
    def __init__(self, response: QueryResponse) -> None:
        self.response = response
        self.calls: list[tuple[str, dict]] = []

    def execute_query(self, template_id, params) -> QueryResponse:
        self.calls.append((template_id, dict(params)))
        return self.response


@pytest.fixture()
def registry() -> TemplateRegistry:
    registry = TemplateRegistry()
    register_builtin_templates(registry)
    return registry


def _module(name: str, run) -> ModuleType:
    module = ModuleType(name)
    module.TEMPLATE_ID = f"{name}_v1"
    module.DOMAIN = "test"
    module.run = run
    return module


def test_unknown_template(registry: TemplateRegistry) -> None:
    result = TemplateExecutor(registry).run("missing_v1")

    assert result.provenance.tag is ProvenanceTag.TEMPLATE_NOT_FOUND
    assert result.template_output.text == "Template not found: missing_v1"


def test_mock_run_has_complete_provenance(registry: TemplateRegistry) -> None:
    result = TemplateExecutor(registry).run("top_counterparties_gross_v1")

    provenance = result.provenance
    assert provenance.tag is ProvenanceTag.TEMPLATE_RUN
    assert provenance.source == "mock"
    assert provenance.template == "top_counterparties_gross_v1"
    assert provenance.domain == "counterparties"
    assert provenance.ms is not None and provenance.ms >= 0.0
    assert result.template_output.text == "Top 5 counterparties YTD."


def test_truncated_listing_carries_coverage_note(registry: TemplateRegistry) -> None:
    result = TemplateExecutor(registry).run("business_units_list_v1", {"limit": 3})

    assert result.provenance.tag is ProvenanceTag.COVERAGE_NOTE
    assert result.meta["coverage"] == {"shown": 3, "total": 8}
    assert result.meta["paging"]["next_page_token"] == "3"


def test_live_failure_with_fallback_serves_mock(registry: TemplateRegistry) -> None:
    warehouse = FakeWarehouse(QueryResponse(success=False, error="boom"))
    executor = TemplateExecutor(registry, data_mode="live", warehouse=warehouse, allow_mock_fallback=True)

    result = executor.run("monthly_gross_trend_v1")

    assert result.provenance.tag is ProvenanceTag.BQ_ERROR_FALLBACK
    assert result.provenance.source == "mock"
    assert result.provenance.extra["bq"]["message"] == "boom"
    assert result.has_payload()


def test_raising_warehouse_still_falls_back(registry: TemplateRegistry) -> None:
    class RaisingWarehouse:
        def execute_query(self, template_id, params):
            raise ConnectionError("socket closed")

    executor = TemplateExecutor(
        registry, data_mode="live", warehouse=RaisingWarehouse(), allow_mock_fallback=True
    )
    result = executor.run("top_counterparties_gross_v1")

    assert result.provenance.tag is ProvenanceTag.BQ_ERROR_FALLBACK
    assert result.provenance.extra["bq"]["message"] == "socket closed"


def test_live_failure_without_fallback_is_honest(registry: TemplateRegistry) -> None:
    warehouse = FakeWarehouse(QueryResponse(success=False, error="boom"))
    executor = TemplateExecutor(registry, data_mode="live", warehouse=warehouse)

    result = executor.run("monthly_gross_trend_v1")

    assert result.provenance.tag is ProvenanceTag.NO_DATA
    assert result.provenance.source == "bq"
    assert result.provenance.extra["error_msg"] == "boom"
    assert result.template_output.text == NO_DATA_TEXT


def test_live_empty_rows_is_no_data(registry: TemplateRegistry) -> None:
    warehouse = FakeWarehouse(QueryResponse(success=True, rows=[]))
    result = TemplateExecutor(registry, data_mode="live", warehouse=warehouse).run("monthly_gross_trend_v1")

    assert result.provenance.tag is ProvenanceTag.NO_DATA
    assert "error_msg" not in result.provenance.extra


def test_live_success(registry: TemplateRegistry) -> None:
    rows = [{"yyyymm": f"20250{month}", "gross_amount": 100.0 * month} for month in range(1, 8)]
    warehouse = FakeWarehouse(QueryResponse(success=True, rows=rows))

    result = TemplateExecutor(registry, data_mode="live", warehouse=warehouse).run("monthly_gross_trend_v1")

    assert result.provenance.tag is ProvenanceTag.TEMPLATE_RUN
    assert result.provenance.source == "bq"
    assert result.template_output.text == "Last 6 months gross trend."
    assert warehouse.calls == [("monthly_gross_trend_v1", {})]


@pytest.mark.parametrize(
    ("allow_mock_fallback", "tag"),
    [(False, ProvenanceTag.NO_DATA), (True, ProvenanceTag.BQ_ERROR_FALLBACK)],
)
def test_snapshot_for_missing_unit_is_not_another_units_row(
    registry: TemplateRegistry, allow_mock_fallback: bool, tag: ProvenanceTag
) -> None:
    rows = [{"business_unit": "Z001", "revenue_this_year": 9_000_000.0, "revenue_last_year": 8_000_000.0}]
    warehouse = FakeWarehouse(QueryResponse(success=True, rows=rows))
    executor = TemplateExecutor(
        registry, data_mode="live", warehouse=warehouse, allow_mock_fallback=allow_mock_fallback
    )

    result = executor.run("business_units_snapshot_yoy_v1", {"unit": "Z003", "year": 2025})

    assert result.provenance.tag is tag
    assert "9.00M" not in result.template_output.text


def test_module_exception_becomes_server_error() -> None:
    def _explode(params, ctx):
        raise RuntimeError("kaput")

    registry = TemplateRegistry()
    registry.register_module(_module("explode", _explode))

    result = TemplateExecutor(registry).run("explode_v1")

    assert result.provenance.tag is ProvenanceTag.SERVER_ERROR
    assert result.provenance.extra["error_msg"] == "kaput"
    assert result.provenance.domain == "test"


def test_mock_only_module_failure_reports_mock_source() -> None:
    def _explode(params):
        raise RuntimeError("kaput")

    module = ModuleType("legacy")
    module.TEMPLATE_ID = "legacy_v1"
    module.DOMAIN = "test"
    module.run_mock = _explode
    registry = TemplateRegistry()
    registry.register_module(module)

    result = TemplateExecutor(registry, data_mode="live").run("legacy_v1")

    assert result.provenance.tag is ProvenanceTag.SERVER_ERROR
    assert result.provenance.source == "mock"


def test_module_receives_params_copy() -> None:
    def _mutate(params, ctx):
        params["touched"] = True
        return {"text": "ok"}

    registry = TemplateRegistry()
    registry.register_module(_module("mutate", _mutate))
    params = {"a": 1}

    TemplateExecutor(registry).run("mutate_v1", params)

    assert params == {"a": 1}


def test_unsupported_return_shape_becomes_server_error() -> None:
    registry = TemplateRegistry()
    registry.register_module(_module("number", lambda params, ctx: 42))

    result = TemplateExecutor(registry).run("number_v1")

    assert result.provenance.tag is ProvenanceTag.SERVER_ERROR


def test_unknown_module_tag_is_kept_aside() -> None:
    registry = TemplateRegistry()
    registry.register_module(
        _module("custom", lambda params, ctx: {"text": "ok", "provenance": {"tag": "CUSTOM"}})
    )

    result = TemplateExecutor(registry).run("custom_v1")

    assert result.provenance.tag is ProvenanceTag.TEMPLATE_RUN
    assert result.provenance.extra["module_tag"] == "CUSTOM"


def test_observer_receives_template_trace(registry: TemplateRegistry) -> None:
    observed = []
    registry.set_observer(observed.append)
    TemplateExecutor(registry).run("monthly_gross_trend_v1", {"x": 1})
    registry.set_observer(None)

    assert len(observed) == 1
    assert observed[0].template_id == "monthly_gross_trend_v1"
    assert observed[0].params == {"x": 1}
    assert observed[0].tag == "TEMPLATE_RUN"
    assert observed[0].latency_ms >= 0.0


def test_normalize_flat_result() -> None:
    result = normalize_result(
        {
            "text": "Regional view",
            "widgets": [{"type": "table", "rows": [[1]]}],
            "kpis": [{"label": "Regions", "value": 4}],
            "coverage": {"shown": 4, "total": 4},
            "provenance": {"source": "mock", "template_id": "regional_performance_v1"},
        }
    )

    assert isinstance(result, TemplateResult)
    assert result.meta["coverage"] == {"shown": 4, "total": 4}
    assert result.provenance.template == "regional_performance_v1"
    assert result.kpi_summary[0].value == 4


def test_normalize_rejects_unknown_types() -> None:
    with pytest.raises(TypeError):
        normalize_result(3.14)
