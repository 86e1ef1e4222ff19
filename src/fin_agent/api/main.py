"""FastAPI entrypoint for chat/template/trace endpoints."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException

from fin_agent.agent.executor import TemplateExecutor
from fin_agent.agent.narrative import NarrativePolisher
from fin_agent.agent.pipeline import ChatPipeline, ChatRequest
from fin_agent.agent.registry import TemplateRegistry, register_builtin_templates
from fin_agent.agent.slots import SlotFiller
from fin_agent.config import Settings
from fin_agent.obs.tracing import TraceStore
from fin_agent.routing.classifier import DomainClassifier
from fin_agent.routing.rewriter import CanonicalRewriter
from fin_agent.routing.topic_router import TopicRouter
from fin_agent.services.llm import TextCompleter, create_completer
from fin_agent.services.warehouse import BigQueryExecutor, QueryExecutor

logger = logging.getLogger(__name__)


def _create_warehouse(settings: Settings) -> QueryExecutor | None:
    data = settings.data
    if data.data_mode != "live" or not data.bq_project:
        return None
    return BigQueryExecutor(project=data.bq_project, location=data.bq_location, sql_dir=data.sql_dir)


def build_pipeline(
    settings: Settings,
    *,
    warehouse: QueryExecutor | None = None,
    completer: TextCompleter | None = None,
    trace_store: TraceStore | None = None,
) -> ChatPipeline:
    registry = TemplateRegistry()
    register_builtin_templates(registry)

    executor = TemplateExecutor(
        registry,
        data_mode=settings.data.data_mode,
        warehouse=warehouse,
        allow_mock_fallback=settings.data.allow_mock_fallback,
        page_size=settings.data.page_size,
    )
    classifier = DomainClassifier(threshold=settings.routing.classifier_threshold)
    return ChatPipeline(
        registry=registry,
        executor=executor,
        trace_store=trace_store if trace_store is not None else TraceStore(),
        classifier=classifier,
        router=TopicRouter(classifier),
        rewriter=CanonicalRewriter(completer, settings.routing),
        slot_filler=SlotFiller(
            registry,
            executor,
            default_top=settings.data.default_top,
            page_size=settings.data.page_size,
        ),
        polisher=NarrativePolisher(completer, enabled=settings.routing.polish_narrative),
    )


app = FastAPI(title="Financial Chat Assistant", version="0.1.0")

_settings = Settings.from_env()
_completer = create_completer()
_trace_store = TraceStore()
_pipeline = build_pipeline(
    _settings,
    warehouse=_create_warehouse(_settings),
    completer=_completer,
    trace_store=_trace_store,
)
logger.info(
    "chat pipeline ready data_mode=%s narrative_mode=%s templates=%d",
    _settings.data.data_mode,
    _settings.routing.narrative_mode,
    len(_pipeline.registry),
)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "data_mode": _settings.data.data_mode,
        "allow_mock_fallback": _settings.data.allow_mock_fallback,
        "narrative_mode": _settings.routing.narrative_mode,
        "llm_configured": _completer is not None,
        "template_count": len(_pipeline.registry),
        "trace_count": len(_trace_store),
    }


@app.post("/chat")
def chat(request: ChatRequest) -> dict[str, Any]:
    return _pipeline.handle(request)


@app.get("/templates")
def templates() -> dict[str, Any]:
    return {
        "items": [
            {
                "template_id": spec.template_id,
                "domain": spec.domain,
                "description": spec.description,
                "period": spec.slots.period,
                "required": list(spec.slots.required),
            }
            for spec in _pipeline.registry.specs()
        ]
    }


@app.get("/traces")
def traces(limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()
