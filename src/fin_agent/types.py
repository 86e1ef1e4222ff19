"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProvenanceTag(str, Enum):
    """Closed set of tags explaining how a response was produced."""

    TEMPLATE_RUN = "TEMPLATE_RUN"
    NO_DATA = "NO_DATA"
    SERVER_ERROR = "SERVER_ERROR"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    BQ_ERROR_FALLBACK = "BQ_ERROR_FALLBACK"
    COVERAGE_NOTE = "COVERAGE_NOTE"
    CLARIFY_REQUIRED = "CLARIFY_REQUIRED"
    NO_GROUNDING = "NO_GROUNDING"
    NO_MESSAGE = "NO_MESSAGE"
    MISSING_ENV = "MISSING_ENV"
    SERVER_FALLBACK_GREETING = "SERVER_FALLBACK_GREETING"
    UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"
    POLISHED = "POLISHED"
    POLISH_SKIPPED_OFF = "POLISH_SKIPPED_OFF"
    POLISH_SKIPPED_LIST_ONLY = "POLISH_SKIPPED_LIST_ONLY"
    POLISH_REJECTED_NUMBERS = "POLISH_REJECTED_NUMBERS"
    POLISH_ERROR = "POLISH_ERROR"


class ResponseMode(str, Enum):
    STRICT = "strict"
    CLARIFY = "clarify"
    ABSTAIN = "abstain"
    NO_DATA = "no_data"
    NODATA = "nodata"


@dataclass(slots=True)
class TokenSet:
    """Deterministic tokens extracted from a user message."""

    unit: str | None = None
    year: str | None = None
    month: str | None = None


@dataclass(slots=True)
class RouteResult:
    """Advisory domain classification."""

    domain: str
    confidence: float


@dataclass(frozen=True, slots=True)
class TopicRoute:
    """Authoritative routing decision. Empty `template_id` means no grounding."""

    domain: str
    template_id: str = ""
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def grounded(self) -> bool:
        return bool(self.template_id)


@dataclass(slots=True)
class Chip:
    id: str
    label: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "label": self.label}
        if self.params:
            payload["params"] = dict(self.params)
        return payload


@dataclass(slots=True)
class ClarifyRequest:
    """One unresolved required slot with suggested options."""

    missing: list[str]
    suggestions: dict[str, list[Chip]]
    text: str = ""
    coverage: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "missing": list(self.missing),
            "suggestions": {
                name: [chip.to_dict() for chip in chips]
                for name, chips in self.suggestions.items()
            },
        }


@dataclass(slots=True)
class ClientHints:
    """Previous-turn context supplied by the UI for stateless follow-ups."""

    prev_domain: str | None = None
    prev_template: str | None = None
    prev_params: dict[str, Any] = field(default_factory=dict)
    prev_top: int | None = None


@dataclass(slots=True)
class Kpi:
    label: str
    value: Any
    unit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"label": self.label, "value": self.value}
        if self.unit is not None:
            payload["unit"] = self.unit
        return payload


@dataclass(slots=True)
class TemplateOutput:
    text: str
    widgets: Any = None
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text, "widgets": self.widgets}
        if self.title:
            payload["title"] = self.title
        return payload


@dataclass(slots=True)
class Provenance:
    """Where a result's data came from and how the request was handled."""

    source: str | None = None
    tag: ProvenanceTag | None = None
    template: str | None = None
    domain: str | None = None
    ms: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update(
            {
                "source": self.source,
                "tag": self.tag.value if self.tag is not None else None,
                "template": self.template,
                "domain": self.domain,
                "ms": self.ms,
            }
        )
        return payload


@dataclass(slots=True)
class TemplateResult:
    """Uniform shape of every template run, mock or live."""

    template_output: TemplateOutput
    kpi_summary: list[Kpi] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    provenance: Provenance = field(default_factory=Provenance)

    def has_payload(self) -> bool:
        if self.kpi_summary or self.meta.get("rows"):
            return True
        return _widgets_have_content(self.template_output.widgets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_output": self.template_output.to_dict(),
            "kpi_summary": [kpi.to_dict() for kpi in self.kpi_summary],
            "meta": dict(self.meta),
            "provenance": self.provenance.to_dict(),
        }


@dataclass(slots=True)
class TemplateTrace:
    """Trace record for an executed template run."""

    template_id: str
    data_mode: str
    params: dict[str, Any]
    tag: str | None
    source: str | None
    latency_ms: float


def _widgets_have_content(widgets: Any) -> bool:
    if not widgets:
        return False
    if isinstance(widgets, list):
        return any(_widgets_have_content(widget) for widget in widgets)
    if isinstance(widgets, dict):
        for key in ("items", "rows", "series", "data"):
            if widgets.get(key):
                return True
        return False
    return True
