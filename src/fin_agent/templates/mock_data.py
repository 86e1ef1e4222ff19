"""Deterministic demo data served in mock mode and as live fallback."""

from __future__ import annotations

SNAPSHOT_DATE = "2025-08-16"

# (code, value, share) for the trailing-twelve-month metric breakdown.
BU_BREAKDOWN: tuple[tuple[str, int, float], ...] = (
    ("Z001", 1_200_000, 0.32),
    ("Z002", 950_000, 0.25),
    ("Z003", 750_000, 0.20),
    ("Z004", 350_000, 0.09),
    ("Z005", 250_000, 0.07),
    ("Z006", 150_000, 0.04),
    ("Z007", 75_000, 0.02),
    ("Z008", 50_000, 0.01),
)

# Fraction of revenue reported for the other ranking metrics.
METRIC_FACTORS: dict[str, float] = {"revenue": 1.0, "costs": 0.62, "gross": 0.38}

COUNTERPARTIES: tuple[tuple[str, int, float], ...] = (
    ("ACME Corp", 2_100_000, 18.1),
    ("Globex Marine", 1_800_000, 15.5),
    ("Oceanic Partners", 1_300_000, 11.2),
    ("SeaSecure Ltd", 900_000, 7.8),
    ("MarineMax Inc", 700_000, 6.0),
)

TREND_MONTHS: tuple[str, ...] = ("202401", "202402", "202403", "202404", "202405", "202406")

SNAPSHOT_REVENUE_MEUR = 2.40
SNAPSHOT_PREVIOUS_MEUR = 2.10
SNAPSHOT_INVOICES = 310
SNAPSHOT_AR_DAYS = 38

# (factor, severity, impact in EUR)
RISK_FACTORS: tuple[tuple[str, str, int], ...] = (
    ("Supply chain delays", "HIGH", 500_000),
    ("Market volatility", "MEDIUM", 300_000),
    ("Regulatory changes", "LOW", 100_000),
    ("Contract disputes", "LOW", 100_000),
    ("Currency fluctuations", "MEDIUM", 200_000),
)

PROFITABILITY = {
    "min_month": "2024-07",
    "max_month": "2025-06",
    "units": (
        ("Z001", 1_200_000, 456_000),
        ("Z002", 950_000, 304_000),
        ("Z003", 750_000, 292_500),
        ("Z004", 350_000, 84_000),
        ("Z005", 250_000, 70_000),
    ),
}

REGIONAL = {
    "min_month": "2024-01",
    "max_month": "2025-06",
    # (region, gross 2024, gross 2025)
    "regions": (
        ("AMBA", 1_450_000, 1_560_000),
        ("Patagonia", 620_000, 598_000),
        ("Córdoba", 540_000, 585_000),
        ("Mendoza", 410_000, 402_000),
    ),
}
