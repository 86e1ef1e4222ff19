"""Template registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from importlib import import_module
from types import ModuleType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from fin_agent.templates.base import RunContext, source_for
from fin_agent.templates.summaries import SUMMARY_FUNCTIONS
from fin_agent.types import TemplateTrace

BUILTIN_TEMPLATE_MODULES: tuple[str, ...] = (
    "business_units_list_v1",
    "business_units_snapshot_yoy_v1",
    "business_units_ranking_v1",
    "top_counterparties_gross_v1",
    "monthly_gross_trend_v1",
    "metric_snapshot_year_v1",
    "metric_timeseries_v1",
    "metric_breakdown_by_unit_v1",
    "profitability_summary_v1",
    "regional_performance_v1",
    "business_risk_assessment_v1",
)


@dataclass(frozen=True, slots=True)
class UnifiedRunner:
    """`run(params, ctx)` serving every data mode."""

    run: Callable[[dict[str, Any], RunContext], Any]

    def resolve(self, data_mode: str) -> tuple[Callable[[dict[str, Any], RunContext], Any], str]:
        return self.run, source_for(data_mode)


@dataclass(frozen=True, slots=True)
class LegacyRunner:
    """Separate `run_mock(params)` / `run_live(params, ctx)` functions.

    When only one is present it serves both modes.
    """

    mock: Callable[[dict[str, Any]], Any] | None = None
    live: Callable[[dict[str, Any], RunContext], Any] | None = None

    def resolve(self, data_mode: str) -> tuple[Callable[[dict[str, Any], RunContext], Any], str]:
        if self.live is not None and (data_mode == "live" or self.mock is None):
            return self.live, "bq"
        mock = self.mock
        if mock is None:
            raise ValueError("LegacyRunner has neither mock nor live function")
        return (lambda params, ctx: mock(params)), "mock"


Runner = UnifiedRunner | LegacyRunner


class SlotPolicy(BaseModel):
    """Required slots and period defaults applied before a template runs."""

    period: Literal["last_12m", "complete_year"] | None = None
    required: tuple[str, ...] = ()


class TemplateSpec(BaseModel):
    """Declarative template specification for registration and dispatch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    template_id: str = Field(min_length=1)
    domain: str
    description: str = ""
    summary_fn: str | None = None
    slots: SlotPolicy = Field(default_factory=SlotPolicy)
    runner: Runner

    @classmethod
    def from_module(cls, module: ModuleType) -> "TemplateSpec":
        run = getattr(module, "run", None)
        run_mock = getattr(module, "run_mock", None)
        run_live = getattr(module, "run_live", None)
        if callable(run):
            runner: Runner = UnifiedRunner(run=run)
        elif callable(run_mock) or callable(run_live):
            runner = LegacyRunner(mock=run_mock, live=run_live)
        else:
            raise ValueError(f"Template module has no runner: {module.__name__}")

        return cls(
            template_id=module.TEMPLATE_ID,
            domain=module.DOMAIN,
            description=getattr(module, "DESCRIPTION", ""),
            summary_fn=getattr(module, "SUMMARY", None),
            slots=SlotPolicy(
                period=getattr(module, "PERIOD_POLICY", None),
                required=tuple(getattr(module, "REQUIRED", ())),
            ),
            runner=runner,
        )


class TemplateRegistry:
    """Stores template specs; process-wide and read-only once populated."""

    def __init__(self, specs: Iterable[TemplateSpec] = ()) -> None:
        self._templates: dict[str, TemplateSpec] = {}
        self._observer: Callable[[TemplateTrace], None] | None = None
        for spec in specs:
            self.register(spec)

    def register(self, spec: TemplateSpec) -> None:
        if spec.template_id in self._templates:
            raise ValueError(f"Template already registered: {spec.template_id}")
        self._templates[spec.template_id] = spec

    def register_module(self, module: ModuleType) -> TemplateSpec:
        spec = TemplateSpec.from_module(module)
        self.register(spec)
        return spec

    def set_observer(self, observer: Callable[[TemplateTrace], None] | None) -> None:
        """Set an optional callback invoked after each template execution."""
        self._observer = observer

    def get(self, template_id: str) -> TemplateSpec | None:
        return self._templates.get(template_id)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def specs(self) -> list[TemplateSpec]:
        return list(self._templates.values())

    def domain_of(self, template_id: str) -> str | None:
        spec = self._templates.get(template_id)
        return spec.domain if spec is not None else None

    def summary(self, template_id: str) -> str | None:
        spec = self._templates.get(template_id)
        if spec is None or spec.summary_fn is None:
            return None
        summary_fn = SUMMARY_FUNCTIONS.get(spec.summary_fn)
        return summary_fn() if summary_fn is not None else None

    def record(self, trace: TemplateTrace) -> None:
        if self._observer is not None:
            self._observer(trace)


def register_builtin_templates(registry: TemplateRegistry) -> None:
    for name in BUILTIN_TEMPLATE_MODULES:
        registry.register_module(import_module(f"fin_agent.templates.{name}"))
