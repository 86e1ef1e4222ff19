"""Static keyword table used by the advisory domain classifier.

Scan order matters: on equal scores the earlier domain wins.
"""

from __future__ import annotations

DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "performance": (
        "performance",
        "yoy",
        "growth",
        "business units",
        "snapshot",
        "overview",
        "summary",
        "monthly gross",
        "monthly trend",
        "revenue trend",
    ),
    "counterparties": (
        "counterparties",
        "clients",
        "partners",
        "buyers",
        "top counterparties",
        "top clients",
        "ytd",
        "year to date",
    ),
    "risk": ("risk", "exposure", "vulnerabilities", "loss"),
    "profitability": (
        "profit",
        "margin",
        "gross margin",
        "profitability",
        "costs",
        "cogs",
        "earnings",
        "business units list",
        "list business units",
        "bu list",
    ),
    "regional": (
        "region",
        "by region",
        "regional",
        "geography",
        "amba",
        "patagonia",
        "buenos aires",
        "córdoba",
        "cordoba",
        "mendoza",
    ),
}
