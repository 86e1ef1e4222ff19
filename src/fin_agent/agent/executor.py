"""Template execution with provenance stamping and result normalization."""

from __future__ import annotations

import logging
from typing import Any

from fin_agent.agent.registry import TemplateRegistry
from fin_agent.obs.tracing import Timer
from fin_agent.services.warehouse import QueryExecutor
from fin_agent.templates.base import RunContext, source_for
from fin_agent.types import (
    Kpi,
    Provenance,
    ProvenanceTag,
    TemplateOutput,
    TemplateResult,
    TemplateTrace,
)

logger = logging.getLogger(__name__)

NOT_FOUND_TEXT = "Template not found: {template_id}"
SERVER_ERROR_TEXT = "Data is temporarily unavailable for this request."

_PROVENANCE_FIELDS = {"source", "tag", "template", "template_id", "domain", "ms"}


class TemplateExecutor:
    """Runs registered templates and returns a uniform `TemplateResult`.

    `run` never raises: unknown ids and module failures come back as tagged
    results (`TEMPLATE_NOT_FOUND`, `SERVER_ERROR`).
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        *,
        data_mode: str = "mock",
        warehouse: QueryExecutor | None = None,
        allow_mock_fallback: bool = False,
        page_size: int = 8,
    ) -> None:
        self.registry = registry
        self.data_mode = data_mode
        self.warehouse = warehouse
        self.allow_mock_fallback = allow_mock_fallback
        self.page_size = page_size

    def run(
        self,
        template_id: str,
        params: dict[str, Any] | None = None,
        data_mode: str | None = None,
    ) -> TemplateResult:
        params = dict(params or {})
        mode = data_mode or self.data_mode
        spec = self.registry.get(template_id)
        if spec is None:
            logger.info("template not found: %s", template_id)
            result = TemplateResult(
                template_output=TemplateOutput(text=NOT_FOUND_TEXT.format(template_id=template_id)),
                provenance=Provenance(
                    source=source_for(mode),
                    tag=ProvenanceTag.TEMPLATE_NOT_FOUND,
                    template=template_id,
                    ms=0.0,
                ),
            )
            self._record(result, params, mode)
            return result

        ctx = RunContext(
            data_mode=mode,
            warehouse=self.warehouse,
            allow_mock_fallback=self.allow_mock_fallback,
            page_size=self.page_size,
        )
        # Replaced by the runner's own source once it resolves.
        source = source_for(mode)
        failure: Exception | None = None
        with Timer() as timer:
            try:
                function, source = spec.runner.resolve(mode)
                result = normalize_result(function(dict(params), ctx))
            except Exception as exc:
                logger.exception("template %s failed", template_id)
                failure = exc
        logger.debug("template=%s source=%s ms=%.1f", template_id, source, timer.elapsed_ms)

        if failure is not None:
            result = TemplateResult(
                template_output=TemplateOutput(text=SERVER_ERROR_TEXT),
                provenance=Provenance(
                    source=source,
                    tag=ProvenanceTag.SERVER_ERROR,
                    template=template_id,
                    domain=spec.domain,
                    ms=timer.elapsed_ms,
                    extra={"error_msg": str(failure) or type(failure).__name__},
                ),
            )
            self._record(result, params, mode)
            return result

        provenance = result.provenance
        provenance.template = provenance.template or spec.template_id
        provenance.domain = provenance.domain or spec.domain
        provenance.source = provenance.source or source
        provenance.ms = timer.elapsed_ms
        if provenance.tag is None:
            provenance.tag = assign_tag(result)

        self._record(result, params, mode)
        return result

    def _record(self, result: TemplateResult, params: dict[str, Any], data_mode: str) -> None:
        provenance = result.provenance
        self.registry.record(
            TemplateTrace(
                template_id=provenance.template or "",
                data_mode=data_mode,
                params=params,
                tag=provenance.tag.value if provenance.tag is not None else None,
                source=provenance.source,
                latency_ms=provenance.ms or 0.0,
            )
        )


def assign_tag(result: TemplateResult) -> ProvenanceTag:
    """Tag for a result whose module did not set one."""

    if result.provenance.source == "bq" and not result.has_payload():
        return ProvenanceTag.NO_DATA
    return ProvenanceTag.TEMPLATE_RUN


def normalize_result(raw: Any) -> TemplateResult:
    """Coerce legacy and unified module return shapes into `TemplateResult`.

    Accepted shapes: a `TemplateResult`; a dict with `template_output`
    (or `templateOutput`) plus `kpi_summary`/`meta`/`provenance`; a flat dict
    with `text`/`widgets`/`kpis`/`coverage`/`provenance`; a bare string.
    """

    if isinstance(raw, TemplateResult):
        return raw
    if isinstance(raw, str):
        return TemplateResult(template_output=TemplateOutput(text=raw))
    if not isinstance(raw, dict):
        raise TypeError(f"Unsupported template result: {type(raw).__name__}")

    output = raw.get("template_output", raw.get("templateOutput"))
    meta = dict(raw.get("meta") or {})
    if output is not None:
        if isinstance(output, str):
            output = {"text": output}
        template_output = TemplateOutput(
            text=str(output.get("text") or ""),
            widgets=output.get("widgets"),
            title=output.get("title"),
        )
        kpis = raw.get("kpi_summary", raw.get("kpiSummary"))
    else:
        template_output = TemplateOutput(
            text=str(raw.get("text") or ""),
            widgets=raw.get("widgets"),
            title=raw.get("title"),
        )
        kpis = raw.get("kpis")
        if raw.get("coverage") is not None:
            meta.setdefault("coverage", raw["coverage"])

    return TemplateResult(
        template_output=template_output,
        kpi_summary=_normalize_kpis(kpis),
        meta=meta,
        provenance=_normalize_provenance(raw.get("provenance")),
    )


def _normalize_kpis(kpis: Any) -> list[Kpi]:
    if not kpis:
        return []
    if isinstance(kpis, dict):
        kpis = [kpis]
    normalized: list[Kpi] = []
    for item in kpis:
        if isinstance(item, Kpi):
            normalized.append(item)
        elif isinstance(item, dict) and "label" in item:
            normalized.append(Kpi(label=str(item["label"]), value=item.get("value"), unit=item.get("unit")))
    return normalized


def _normalize_provenance(raw: Any) -> Provenance:
    if isinstance(raw, Provenance):
        return raw
    data = dict(raw or {})
    extra = {key: value for key, value in data.items() if key not in _PROVENANCE_FIELDS}

    tag: ProvenanceTag | None = None
    raw_tag = data.get("tag")
    if raw_tag:
        try:
            tag = ProvenanceTag(raw_tag)
        except ValueError:
            extra["module_tag"] = raw_tag

    return Provenance(
        source=data.get("source"),
        tag=tag,
        template=data.get("template") or data.get("template_id"),
        domain=data.get("domain"),
        extra=extra,
    )
