import pytest

from fin_agent.routing.classifier import NO_DOMAIN
from fin_agent.routing.topic_router import TopicRouter, is_greeting, route_domain, route_message
from fin_agent.types import RouteResult, TopicRoute


@pytest.mark.parametrize(
    ("message", "template_id", "params"),
    [
        ("Z001 June snapshot", "business_units_snapshot_yoy_v1", {"unit": "Z001", "month": "june"}),
        ("Z001 2024", "business_units_snapshot_yoy_v1", {"unit": "Z001", "year": 2024}),
        ("Top counterparties YTD", "top_counterparties_gross_v1", {"range": "ytd"}),
        ("Monthly gross trend", "monthly_gross_trend_v1", {}),
        ("Show monthly revenue trend", "metric_timeseries_v1", {"metric": "revenue"}),
        ("Monthly costs trend", "metric_timeseries_v1", {"metric": "costs"}),
        ("List business units", "business_units_list_v1", {}),
        ("Break down by business unit", "metric_breakdown_by_unit_v1", {"unit": "ALL"}),
        (
            "Break down revenue by business unit",
            "metric_breakdown_by_unit_v1",
            {"unit": "ALL", "metric": "revenue"},
        ),
        ("Revenue trend since 2023", "metric_timeseries_v1", {"metric": "revenue", "from": "2023-01"}),
        (
            "Costs by quarter 2023 to 2024",
            "metric_timeseries_v1",
            {"metric": "costs", "from": "2023-01", "to": "2024-12", "granularity": "quarter"},
        ),
        ("Revenue 2024", "metric_snapshot_year_v1", {"metric": "revenue", "year": 2024}),
        ("Expenses", "metric_snapshot_year_v1", {"metric": "costs"}),
        (
            "Which are the top business units by revenue?",
            "business_units_ranking_v1",
            {"metric": "revenue", "limit": 3, "sort": "desc", "context_request": "top_performers"},
        ),
        ("What are the biggest risks facing our business?", "business_risk_assessment_v1", {"limit": 10}),
    ],
)
def test_rule_table(message: str, template_id: str, params: dict) -> None:
    route = route_message(message)

    assert route is not None
    assert route.template_id == template_id
    assert route.params == params


def test_unmatched_message_has_no_template() -> None:
    route = TopicRouter().route("asdkjasd random text")

    assert route == TopicRoute(NO_DOMAIN, "", {})
    assert not route.grounded


def test_router_never_fills_period_defaults() -> None:
    route = route_message("Revenue")

    assert route is not None
    assert "year" not in route.params


def test_advisory_domain_used_when_no_rule_fires() -> None:
    route = TopicRouter().route("clients", RouteResult(domain="counterparties", confidence=0.3))

    assert route.template_id == "top_counterparties_gross_v1"


def test_unknown_domain_maps_by_convention() -> None:
    assert route_domain("forecasting") == TopicRoute("forecasting", "forecasting_v1", {})
    assert route_domain(NO_DOMAIN, "geographic spread").template_id == "regional_performance_v1"


def test_routing_is_deterministic() -> None:
    router = TopicRouter()

    assert router.route("Z003 March snapshot") == router.route("Z003 March snapshot")


def test_greeting_detection() -> None:
    assert is_greeting("Hello there")
    assert is_greeting("what can you do?")
    assert not is_greeting("Revenue 2024")
