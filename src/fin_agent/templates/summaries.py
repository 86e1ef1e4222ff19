"""One-line grounding summaries, looked up by name from registry metadata."""

from __future__ import annotations

from collections.abc import Callable

from fin_agent.templates import mock_data


def performance_summary() -> str:
    return "Business Units: Navigation +2.7% YoY, Liferafts -1.5% YoY, Overall +0.4% YoY (mock data)."


def counterparty_summary() -> str:
    top = ", ".join(f"{name} (€{gross / 1_000_000:.1f}M)" for name, gross, _ in mock_data.COUNTERPARTIES[:3])
    return f"Top counterparties: {top} (mock data)."


def risk_summary() -> str:
    factors = ", ".join(f"{name} ({severity.lower()})" for name, severity, _ in mock_data.RISK_FACTORS[:3])
    return f"Current risk factors: {factors} (mock data)."


def profitability_summary() -> str:
    data = mock_data.PROFITABILITY
    return f"Profitability by business unit, {data['min_month']} to {data['max_month']} (mock data)."


def regional_summary() -> str:
    regions = ", ".join(name for name, _, _ in mock_data.REGIONAL["regions"])
    return f"Regional gross for {regions} (mock data)."


SUMMARY_FUNCTIONS: dict[str, Callable[[], str]] = {
    "performance_summary": performance_summary,
    "counterparty_summary": counterparty_summary,
    "risk_summary": risk_summary,
    "profitability_summary": profitability_summary,
    "regional_summary": regional_summary,
}
