"""Deterministic topic routing from a message to a template id and params."""

from __future__ import annotations

import logging
import re
from typing import Any

from fin_agent.routing.aliases import extract_tokens
from fin_agent.routing.classifier import NO_DOMAIN, DomainClassifier
from fin_agent.types import RouteResult, TopicRoute

logger = logging.getLogger(__name__)

METRIC_ALIASES: dict[str, str] = {
    "revenue": "revenue",
    "revenues": "revenue",
    "sales": "revenue",
    "turnover": "revenue",
    "cost": "costs",
    "costs": "costs",
    "expense": "costs",
    "expenses": "costs",
    "gross": "gross",
}

DOMAIN_TEMPLATES: dict[str, str] = {
    "performance": "monthly_gross_trend_v1",
    "counterparties": "top_counterparties_gross_v1",
    "risk": "business_risk_assessment_v1",
    "profitability": "profitability_summary_v1",
    "regional": "regional_performance_v1",
    "metrics": "metric_snapshot_year_v1",
    "business_units": "business_units_list_v1",
}

GREETING_PATTERN = re.compile(
    r"\b(hi|hello|hey|yo|howdy|greetings|good\s+(morning|afternoon|evening)|help|start"
    r"|get(ting)?\s+started|what\s+can\s+you\s+do)\b",
    flags=re.IGNORECASE,
)

_METRIC = re.compile(r"\b(" + "|".join(sorted(METRIC_ALIASES, key=len, reverse=True)) + r")\b")
_YEARS = re.compile(r"\b((?:19|20)\d{2})\b")
_SINCE_YEAR = re.compile(r"\bsince\s+(?:19|20)\d{2}\b")
_TREND = re.compile(
    r"\b(trend|trending|trajectory|history|historical|since|over\s+time|m/m|mom|monthly"
    r"|quarterly|yearly|by\s+month|by\s+quarter|by\s+year)\b"
)
_QUARTER = re.compile(r"\b(quarter|quarterly|q[1-4])\b")
_ANNUAL = re.compile(r"\b(yearly|annual|annually|by\s+year)\b")
_BREAKDOWN = re.compile(r"\b(break\s*down|by\s+bu|by\s+business\s+units?|split\s+by\s+bu)\b")
_SNAPSHOT_CUE = re.compile(r"\b(snapshot|overview|performance|summary)\b")
_RANK_BEST = re.compile(
    r"\b(most\s+important|top|best|largest|biggest|highest|main|primary|key|critical"
    r"|strategic|valuable)\b"
)
_RANK_WORST = re.compile(r"\b(least|worst|lowest|smallest|weakest|poorest|underperforming)\b")
_BU_SUBJECT = re.compile(r"\b(business\s+units?|divisions?|bus?|lobs?|departments?|segments?)\b")
_PROFIT_METRIC = re.compile(r"\b(profit|profitable|margin|revenue|earning|earnings|income)\b")
_BU_LIST = re.compile(r"\b(business\s+units?|divisions?|lines?\s+of\s+business|lobs?)\b")
_REGIONAL = ("regional", "by region", "amba", "patagonia", "buenos aires", "cordoba", "córdoba", "mendoza")
_RISK = re.compile(
    r"\b(risks?|weak|weakness(es)?|threats?|concerns?|problems?|issues?|challenges?"
    r"|struggling|underperform\w*|exposure|vulnerabilit\w*)\b"
)
_ORGANIZATION = re.compile(r"\b(business|company|organi[sz]ation|enterprise)\b")
_STRATEGIC = re.compile(r"\b(where|what|how)\b.*\b(start|focus|prioriti[sz]e|attention|look|address)\b")
_GENERIC_TREND = ("trajectory", "run-rate", "run rate", "last 6 months", "last six months", "trend")


def route_message(message: str | None) -> TopicRoute | None:
    """Evaluate the canonical-prompt rule table; `None` when no rule fires."""

    m = (message or "").strip().lower()
    if not m:
        return None

    tokens = extract_tokens(message)
    metric = _metric(m)
    years = [int(year) for year in _YEARS.findall(m)][:2]
    wants_trend = bool(_TREND.search(m))

    if _BREAKDOWN.search(m):
        params: dict[str, Any] = {"unit": "ALL"}
        if metric:
            params["metric"] = metric
        if years:
            params["year"] = years[0]
        return TopicRoute("metrics", "metric_breakdown_by_unit_v1", params)

    if _wants_counterparties(m):
        return TopicRoute("counterparties", "top_counterparties_gross_v1", {"range": "ytd"})

    monthly_gross = "monthly" in m and metric in (None, "gross") and ("gross" in m or "trend" in m)
    if monthly_gross and not tokens.unit and not years:
        return TopicRoute("performance", "monthly_gross_trend_v1", {})

    if tokens.unit and (tokens.month or _SNAPSHOT_CUE.search(m) or (years and not metric)):
        params = {"unit": tokens.unit}
        if tokens.month:
            params["month"] = tokens.month
        if years:
            params["year"] = years[0]
        return TopicRoute("business_units", "business_units_snapshot_yoy_v1", params)

    ranking = _ranking(m)
    if ranking is not None:
        return ranking

    if any(cue in m for cue in _REGIONAL):
        return TopicRoute("regional", "regional_performance_v1", {"window": "24m"})

    if "profitability" in m or "margin" in m:
        return TopicRoute("profitability", "profitability_summary_v1", {})

    if metric and wants_trend:
        params = {"metric": metric}
        params.update(_trend_window(m, years))
        if _QUARTER.search(m):
            params["granularity"] = "quarter"
        elif _ANNUAL.search(m):
            params["granularity"] = "year"
        if tokens.unit:
            params["unit"] = tokens.unit
        return TopicRoute("metrics", "metric_timeseries_v1", params)

    if metric:
        params = {"metric": metric}
        if years:
            params["year"] = years[0]
        if tokens.unit:
            params["unit"] = tokens.unit
        return TopicRoute("metrics", "metric_snapshot_year_v1", params)

    if any(cue in m for cue in _GENERIC_TREND):
        return TopicRoute("performance", "monthly_gross_trend_v1", {})

    if _BU_LIST.search(m) or ("list" in m and "units" in m):
        return TopicRoute("business_units", "business_units_list_v1", {})

    risk_hit = _RISK.search(m)
    if risk_hit and _ORGANIZATION.search(m):
        return TopicRoute("risk", "business_risk_assessment_v1", {"limit": 10})

    if _STRATEGIC.search(m) and not risk_hit:
        return TopicRoute("business_units", "business_units_list_v1", {"includePerformance": True})

    return None


def is_greeting(message: str | None) -> bool:
    return bool(GREETING_PATTERN.search((message or "").strip()))


class TopicRouter:
    """Authoritative router: rule table first, advisory domain second.

    The router is pure. It never reads the clock; period and year defaults
    are applied later by the slot filler.
    """

    def __init__(self, classifier: DomainClassifier | None = None) -> None:
        self.classifier = classifier or DomainClassifier()

    def route(self, message: str | None, route_result: RouteResult | None = None) -> TopicRoute:
        deterministic = route_message(message)
        if deterministic is not None:
            return deterministic

        result = route_result or self.classifier.classify(message)
        return route_domain(result.domain, message)


def route_domain(domain: str, message: str | None = None) -> TopicRoute:
    """Map an advisory domain to a template id by convention."""

    m = (message or "").lower()
    if domain in DOMAIN_TEMPLATES:
        params: dict[str, Any] = {"window": "24m"} if domain == "regional" else {}
        return TopicRoute(domain, DOMAIN_TEMPLATES[domain], params)

    if "region" in m or "geograph" in m:
        return TopicRoute("regional", DOMAIN_TEMPLATES["regional"], {"window": "24m"})
    if "profitab" in m or "margin" in m:
        return TopicRoute("profitability", DOMAIN_TEMPLATES["profitability"], {})

    if not domain or domain == NO_DOMAIN:
        return TopicRoute(NO_DOMAIN, "", {})
    return TopicRoute(domain, f"{domain}_v1", {})


def _metric(m: str) -> str | None:
    match = _METRIC.search(m)
    return METRIC_ALIASES[match.group(1)] if match else None


def _wants_counterparties(m: str) -> bool:
    if "counterparties" in m and ("ytd" in m or "year to date" in m):
        return True
    if "top counterparties" in m or "top 3 counterparties" in m:
        return True
    return any(cue in m for cue in ("top customers", "largest accounts", "concentration"))


def _ranking(m: str) -> TopicRoute | None:
    best = bool(_RANK_BEST.search(m))
    worst = bool(_RANK_WORST.search(m))
    if not (best or worst):
        return None
    if not (_BU_SUBJECT.search(m) or (_PROFIT_METRIC.search(m) and "margin by" not in m)):
        return None

    sort_metric = "revenue"
    if "profit" in m or "margin" in m:
        sort_metric = "gross"
    elif "cost" in m or "expense" in m:
        sort_metric = "costs"

    return TopicRoute(
        "business_units",
        "business_units_ranking_v1",
        {
            "metric": sort_metric,
            "limit": 3,
            "sort": "desc" if best else "asc",
            "context_request": "top_performers" if best else "underperformers",
        },
    )


def _trend_window(m: str, years: list[int]) -> dict[str, str]:
    if _SINCE_YEAR.search(m) and years:
        return {"from": f"{years[0]}-01"}
    if len(years) >= 2:
        low, high = sorted(years)
        return {"from": f"{low}-01", "to": f"{high}-12"}
    if len(years) == 1:
        return {"from": f"{years[0]}-01"}
    return {}
