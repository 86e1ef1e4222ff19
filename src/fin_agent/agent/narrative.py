"""Optional polish of deterministic template text, guarded against new numbers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from fin_agent.services.llm import TextCompleter
from fin_agent.types import ProvenanceTag, TemplateResult

logger = logging.getLogger(__name__)

POLISH_SYSTEM_PROMPT = "\n".join(
    [
        "You rewrite a short financial report for an executive reader.",
        "Keep every figure exactly as written. Do not add, round or derive numbers.",
        "Do not add facts that are not in the report. Answer with the rewritten text only.",
    ]
)

_NUMBER = re.compile(r"[-+]?\d[\d,]*(?:\.\d+)?%?")
_ALWAYS_ALLOWED = {"0", "1", "2", "3", "100%"}


@dataclass(slots=True)
class PolishOutcome:
    text: str
    tag: ProvenanceTag


class NarrativePolisher:
    """Rewrites template text through a completion collaborator when enabled."""

    def __init__(self, completer: TextCompleter | None = None, *, enabled: bool = False) -> None:
        self.completer = completer
        self.enabled = enabled

    def polish(self, result: TemplateResult) -> PolishOutcome:
        text = result.template_output.text
        if not self.enabled or self.completer is None:
            return PolishOutcome(text, ProvenanceTag.POLISH_SKIPPED_OFF)
        if is_list_only(result.template_output.widgets):
            return PolishOutcome(text, ProvenanceTag.POLISH_SKIPPED_LIST_ONLY)

        try:
            polished = self.completer.complete(text, POLISH_SYSTEM_PROMPT).strip()
        except Exception:
            logger.exception("narrative polish failed")
            return PolishOutcome(text, ProvenanceTag.POLISH_ERROR)

        if not polished or not numbers_are_grounded(polished, result):
            logger.info("polished text rejected by numeric guard")
            return PolishOutcome(text, ProvenanceTag.POLISH_REJECTED_NUMBERS)
        return PolishOutcome(polished, ProvenanceTag.POLISHED)


def is_list_only(widgets: Any) -> bool:
    if not widgets:
        return False
    items = widgets if isinstance(widgets, list) else [widgets]
    return all(isinstance(item, dict) and item.get("type") == "list" for item in items)


def numbers_are_grounded(text: str, result: TemplateResult) -> bool:
    """True when every number in `text` appears in the template text or KPIs."""

    allowed = set(_ALWAYS_ALLOWED)
    allowed.update(_tokens(result.template_output.text))
    for kpi in result.kpi_summary:
        allowed.update(_value_forms(kpi.value))
    return all(token in allowed or token.rstrip("%") in allowed for token in _tokens(text))


def _tokens(text: str) -> set[str]:
    return {_canonical(token) for token in _NUMBER.findall(text or "")}


def _canonical(token: str) -> str:
    return token.lstrip("+").replace(",", "")


def _value_forms(value: Any) -> set[str]:
    if isinstance(value, bool) or value is None:
        return set()
    if isinstance(value, (int, float)):
        forms = {_canonical(str(value)), f"{value:.2f}", f"{value:.1f}", f"{round(value)}"}
        if float(value).is_integer():
            forms.add(str(int(value)))
        return forms
    return _tokens(str(value))
