"""Per-request chat pipeline: route, fill slots, execute, assemble the envelope."""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fin_agent.agent.executor import TemplateExecutor
from fin_agent.agent.narrative import NarrativePolisher
from fin_agent.agent.registry import TemplateRegistry
from fin_agent.agent.slots import SlotFiller
from fin_agent.obs.tracing import (
    DiagnosticsContext,
    Timer,
    TraceStore,
    active_diagnostics,
    record_template_trace,
)
from fin_agent.routing.aliases import labelize_unit
from fin_agent.routing.classifier import NO_DOMAIN, DomainClassifier
from fin_agent.routing.rewriter import CanonicalRewriter
from fin_agent.routing.topic_router import TopicRouter, is_greeting
from fin_agent.templates.base import source_for
from fin_agent.types import (
    ClarifyRequest,
    ClientHints,
    Provenance,
    ProvenanceTag,
    ResponseMode,
    RouteResult,
    TemplateResult,
    TopicRoute,
)

logger = logging.getLogger(__name__)

GREETING_TEMPLATE = "business_units_list_v1"

NO_MESSAGE_TEXT = "Please type a question to get started."
MISSING_ENV_TEXT = "Live data is not configured. Set the warehouse project and credentials, or switch DATA_MODE to mock."
NO_DOMAIN_TEXT = "Try asking about Business Units (YoY), Top Counterparties, or Monthly Gross Trend."
ABSTAIN_TEXT = "I don't have the data you're looking for right now."
MOCK_PROTEST_TEXT = (
    "You're viewing demo data with fictional companies. Switch to live BigQuery data by enabling "
    "DATA_MODE=bq and configuring BigQuery credentials in your environment variables."
)
UNHANDLED_TEXT = "Something went wrong while preparing this answer."

MOCK_PROTEST_PATTERN = re.compile(
    r"\b(wrong|incorrect|not correct|not our|not ours|doesn't exist|does not exist|that company|fake"
    r"|made up|fictional|that's not|invalid|nonexistent|isn't real|is not real|acme|globex|oceanic"
    r"|seasecure|marinemax)\b",
    flags=re.IGNORECASE,
)
FOLLOW_UP_PATTERN = re.compile(
    r"^\s*(show\s+(me\s+)?(more|all)(\s+units)?|all\s+units|more|next(\s+page)?)\s*[.!?]*\s*$",
    flags=re.IGNORECASE,
)

_MODE_BY_TAG: dict[ProvenanceTag, ResponseMode] = {
    ProvenanceTag.TEMPLATE_RUN: ResponseMode.STRICT,
    ProvenanceTag.BQ_ERROR_FALLBACK: ResponseMode.STRICT,
    ProvenanceTag.COVERAGE_NOTE: ResponseMode.STRICT,
    ProvenanceTag.NO_DATA: ResponseMode.NO_DATA,
    ProvenanceTag.SERVER_ERROR: ResponseMode.NO_DATA,
    ProvenanceTag.TEMPLATE_NOT_FOUND: ResponseMode.ABSTAIN,
}


class RouterContext(BaseModel):
    domain: str = NO_DOMAIN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ClientHintsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prev_domain: str | None = Field(default=None, alias="prevDomain")
    prev_template: str | None = Field(default=None, alias="prevTemplate")
    prev_params: dict[str, Any] = Field(default_factory=dict, alias="prevParams")
    prev_top: int | None = Field(default=None, alias="prevTop")

    def to_hints(self) -> ClientHints:
        return ClientHints(
            prev_domain=self.prev_domain,
            prev_template=self.prev_template,
            prev_params=dict(self.prev_params),
            prev_top=self.prev_top,
        )


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    history: list[dict[str, Any]] = Field(default_factory=list)
    router: RouterContext | None = None
    template: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    client_hints: ClientHintsModel | None = Field(default=None, alias="clientHints")


def mode_for_tag(tag: ProvenanceTag | None) -> ResponseMode:
    return _MODE_BY_TAG.get(tag, ResponseMode.NO_DATA) if tag is not None else ResponseMode.NO_DATA


def labelize_widgets(widgets: Any) -> Any:
    """Render business-unit codes in list widgets as `Z001 — Liferafts`."""

    if isinstance(widgets, list):
        return [labelize_widgets(widget) for widget in widgets]
    if isinstance(widgets, dict) and widgets.get("type") == "list" and isinstance(widgets.get("items"), list):
        return {
            **widgets,
            "items": [labelize_unit(item) if isinstance(item, str) else item for item in widgets["items"]],
        }
    return widgets


class ChatPipeline:
    """Deterministic request handler.

    Every call returns an envelope; failures become `no_data` or `abstain`
    responses rather than exceptions.
    """

    def __init__(
        self,
        *,
        registry: TemplateRegistry,
        executor: TemplateExecutor,
        trace_store: TraceStore,
        classifier: DomainClassifier | None = None,
        router: TopicRouter | None = None,
        rewriter: CanonicalRewriter | None = None,
        slot_filler: SlotFiller | None = None,
        polisher: NarrativePolisher | None = None,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.trace_store = trace_store
        self.classifier = classifier or DomainClassifier()
        self.router = router or TopicRouter(self.classifier)
        self.rewriter = rewriter or CanonicalRewriter()
        self.slot_filler = slot_filler or SlotFiller(registry, executor)
        self.polisher = polisher or NarrativePolisher()
        self.registry.set_observer(record_template_trace)

    @property
    def data_mode(self) -> str:
        return self.executor.data_mode

    def handle(self, request: ChatRequest) -> dict[str, Any]:
        diagnostics = DiagnosticsContext(data_mode=self.data_mode)
        with active_diagnostics(diagnostics), Timer() as timer:
            try:
                envelope = self._handle(request, diagnostics)
            except Exception as exc:
                logger.exception("unhandled error while handling chat request")
                envelope = _envelope(
                    ResponseMode.NO_DATA,
                    UNHANDLED_TEXT,
                    provenance=Provenance(
                        source=source_for(self.data_mode),
                        tag=ProvenanceTag.UNHANDLED_EXCEPTION,
                        extra={"error_msg": str(exc)},
                    ),
                    meta={"domain": diagnostics.topic_domain, "grounding_type": "none"},
                )

        provenance = envelope["provenance"]
        record = self.trace_store.create_record(
            message=request.message,
            mode=envelope["mode"],
            tag=provenance.get("tag"),
            template_id=provenance.get("template"),
            latency_ms=timer.elapsed_ms,
            diagnostics=diagnostics.to_dict(),
        )
        envelope["diagnostics"] = record.diagnostics
        envelope["trace_id"] = record.trace_id
        envelope["latency_ms"] = record.latency_ms
        return envelope

    def _handle(self, request: ChatRequest, diagnostics: DiagnosticsContext) -> dict[str, Any]:
        message = (request.message or "").strip()
        source = source_for(self.data_mode)
        if not message:
            return _envelope(
                ResponseMode.NODATA,
                NO_MESSAGE_TEXT,
                provenance=Provenance(source=source, tag=ProvenanceTag.NO_MESSAGE),
                meta={"grounding_type": "none"},
                extra={"reason": "missing_message"},
            )

        if self.data_mode == "live" and self.executor.warehouse is None:
            return _envelope(
                ResponseMode.NO_DATA,
                MISSING_ENV_TEXT,
                provenance=Provenance(source="bq", tag=ProvenanceTag.MISSING_ENV),
                meta={"grounding_type": "none"},
                extra={"reason": "missing_env"},
            )

        route_result = self._classify(request, message, diagnostics)
        hints = request.client_hints.to_hints() if request.client_hints else None
        route = self._route(request, message, route_result, hints, diagnostics)

        greeting = False
        if not route.grounded and is_greeting(message):
            route = TopicRoute("business_units", GREETING_TEMPLATE, {})
            greeting = True
            diagnostics.fallbacks.append(ProvenanceTag.SERVER_FALLBACK_GREETING.value)

        diagnostics.topic_domain = route.domain
        diagnostics.template_id = route.template_id or None

        params: dict[str, Any] = {}
        if hints and hints.prev_template and hints.prev_template == route.template_id:
            params.update(hints.prev_params)
        params.update(route.params)
        params.update(request.params)

        fill = self.slot_filler.fill(route, params, hints)
        diagnostics.params = dict(fill.params)
        diagnostics.defaults_used = dict(fill.defaults_used)
        meta: dict[str, Any] = {
            "domain": route.domain,
            "confidence": route_result.confidence,
            "grounding_type": "template" if route.grounded else "none",
        }
        if fill.defaults_used:
            meta["defaults_used"] = dict(fill.defaults_used)

        if fill.clarify is not None:
            return self._clarify_envelope(fill.clarify, route, meta, source)

        if not route.grounded:
            return self._abstain_envelope(message, route_result, meta, source)

        result = self.executor.run(route.template_id, fill.params, self.data_mode)
        return self._result_envelope(message, route, result, meta, greeting)

    def _classify(
        self,
        request: ChatRequest,
        message: str,
        diagnostics: DiagnosticsContext,
    ) -> RouteResult:
        if request.router is not None:
            route_result = RouteResult(domain=request.router.domain, confidence=request.router.confidence)
            diagnostics.router_source = "request"
        else:
            route_result = self.classifier.classify(message)
        diagnostics.router_domain = route_result.domain
        diagnostics.router_confidence = route_result.confidence
        return route_result

    def _route(
        self,
        request: ChatRequest,
        message: str,
        route_result: RouteResult,
        hints: ClientHints | None,
        diagnostics: DiagnosticsContext,
    ) -> TopicRoute:
        if request.template:
            domain = self.registry.domain_of(request.template) or route_result.domain
            return TopicRoute(domain, request.template, {})

        route = self.router.route(message, route_result)
        if route.grounded:
            return route

        if hints and hints.prev_template and FOLLOW_UP_PATTERN.match(message):
            return _follow_up_route(message, hints, self.slot_filler.default_top)

        rewrite = self.rewriter.rewrite(message)
        if rewrite is None:
            return route
        diagnostics.rewrite = {
            "canonical": rewrite.canonical,
            "confidence": rewrite.confidence,
            "source": rewrite.source,
        }
        rewritten = self.router.route(rewrite.canonical)
        return rewritten if rewritten.grounded else route

    def _clarify_envelope(
        self,
        clarify: ClarifyRequest,
        route: TopicRoute,
        meta: dict[str, Any],
        source: str,
    ) -> dict[str, Any]:
        if clarify.coverage:
            meta["coverage"] = clarify.coverage
        return _envelope(
            ResponseMode.CLARIFY,
            clarify.text,
            provenance=Provenance(
                source=source,
                tag=ProvenanceTag.CLARIFY_REQUIRED,
                template=route.template_id,
                domain=route.domain,
            ),
            meta=meta,
            extra={"clarify": clarify.to_dict()},
        )

    def _abstain_envelope(
        self,
        message: str,
        route_result: RouteResult,
        meta: dict[str, Any],
        source: str,
    ) -> dict[str, Any]:
        if self._is_mock_protest(message):
            text, reason = MOCK_PROTEST_TEXT, "mock_data_explanation"
        elif route_result.domain == NO_DOMAIN:
            text, reason = NO_DOMAIN_TEXT, "no_domain"
        else:
            text, reason = ABSTAIN_TEXT, "no_grounding_data"
        return _envelope(
            ResponseMode.ABSTAIN,
            text,
            provenance=Provenance(source=source, tag=ProvenanceTag.NO_GROUNDING, domain=meta.get("domain")),
            meta=meta,
            extra={"abstain_reason": reason},
        )

    def _is_mock_protest(self, message: str) -> bool:
        return self.data_mode == "mock" and MOCK_PROTEST_PATTERN.search(message) is not None

    def _result_envelope(
        self,
        message: str,
        route: TopicRoute,
        result: TemplateResult,
        meta: dict[str, Any],
        greeting: bool,
    ) -> dict[str, Any]:
        run_tag = result.provenance.tag
        mode = mode_for_tag(run_tag)
        provenance = result.provenance
        meta["domain"] = provenance.domain or route.domain
        for key in ("coverage", "paging", "assumptions"):
            if result.meta.get(key) is not None:
                meta[key] = result.meta[key]

        extra: dict[str, Any] = {}
        text = result.template_output.text
        if mode is ResponseMode.ABSTAIN:
            if self._is_mock_protest(message):
                text, extra["abstain_reason"] = MOCK_PROTEST_TEXT, "mock_data_explanation"
            else:
                text, extra["abstain_reason"] = ABSTAIN_TEXT, "template_not_found"
            meta["grounding_type"] = "none"
        elif mode is ResponseMode.STRICT:
            if self.data_mode == "mock":
                summary = self.registry.summary(route.template_id)
                if summary:
                    meta["summary"] = summary
            outcome = self.polisher.polish(result)
            text = outcome.text
            provenance.extra["narrative"] = outcome.tag.value

        if greeting:
            provenance.extra["run_tag"] = run_tag.value if run_tag is not None else None
            provenance.tag = ProvenanceTag.SERVER_FALLBACK_GREETING

        if result.template_output.title:
            meta["title"] = result.template_output.title

        return _envelope(
            mode,
            text,
            provenance=provenance,
            meta=meta,
            widgets=labelize_widgets(result.template_output.widgets),
            kpis=[kpi.to_dict() for kpi in result.kpi_summary],
            extra=extra,
        )


def _follow_up_route(message: str, hints: ClientHints, default_top: int) -> TopicRoute:
    params: dict[str, Any] = {}
    if re.search(r"\ball\b", message, flags=re.IGNORECASE):
        params["showAllUnits"] = True
    else:
        params["top"] = (hints.prev_top or default_top) + default_top
    return TopicRoute(hints.prev_domain or "", hints.prev_template or "", params)


def _envelope(
    mode: ResponseMode,
    text: str,
    *,
    provenance: Provenance,
    meta: dict[str, Any],
    widgets: Any = None,
    kpis: list[dict[str, Any]] | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "mode": mode.value,
        "text": text,
        "widgets": widgets,
        "kpis": kpis or [],
        "meta": meta,
        "provenance": provenance.to_dict(),
    }
    envelope.update(extra or {})
    return envelope
