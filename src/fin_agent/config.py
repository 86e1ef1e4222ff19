"""Configuration models for the financial chat assistant."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

_TRUE_VALUES = {"1", "true", "yes", "y"}


class DataConfig(BaseModel):
    """Configures where template data comes from and listing limits."""

    data_mode: Literal["mock", "live"] = "mock"
    allow_mock_fallback: bool = False
    page_size: int = Field(default=8, ge=1, le=100)
    default_top: int = Field(default=8, ge=1, le=100)
    sql_dir: str = "sql"
    bq_project: str | None = None
    bq_location: str = "US"


class RoutingConfig(BaseModel):
    """Configures the optional rewrite pre-pass and narrative polish."""

    narrative_mode: Literal["heuristic", "llm"] = "heuristic"
    rewrite_min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    rewrite_heuristic_min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    rewrite_timeout_ms: int = Field(default=1500, ge=50)
    classifier_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    polish_narrative: bool = False


class Settings(BaseModel):
    """Top-level settings bundle consumed by the API layer."""

    data: DataConfig = Field(default_factory=DataConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        raw_mode = env.get("DATA_MODE", "mock").strip().lower()
        data = DataConfig(
            data_mode="live" if raw_mode in {"bq", "live"} else "mock",
            allow_mock_fallback=_env_flag(env.get("ALLOW_MOCK_FALLBACK")),
            page_size=_env_int(env.get("BU_LIST_LIMIT"), 8, high=100),
            default_top=_env_int(env.get("DEFAULT_TOP_N"), 8, high=100),
            sql_dir=env.get("SQL_TEMPLATE_DIR", "sql"),
            bq_project=env.get("GOOGLE_PROJECT_ID") or None,
            bq_location=env.get("BQ_LOCATION", "US"),
        )

        raw_narrative = env.get("NARRATIVE_MODE", "heuristic").strip().lower()
        routing = RoutingConfig(
            narrative_mode="llm" if raw_narrative == "llm" else "heuristic",
            rewrite_min_confidence=_env_float(env.get("REWRITE_MIN_CONFIDENCE"), 0.6),
            rewrite_timeout_ms=_env_int(env.get("LLM_REWRITE_TIMEOUT_MS"), 1500, low=50),
            polish_narrative=_env_flag(env.get("POLISH_NARRATIVE")),
        )
        return cls(data=data, routing=routing)


def _env_flag(value: str | None) -> bool:
    return str(value or "").strip().lower() in _TRUE_VALUES


def _env_int(value: str | None, default: int, *, low: int = 1, high: int | None = None) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if parsed <= 0:
        return default
    parsed = max(parsed, low)
    return parsed if high is None else min(parsed, high)


def _env_float(value: str | None, default: float) -> float:
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return min(max(parsed, 0.0), 1.0)
