"""Optional rewrite of free-form asks into canonical router prompts."""

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass

from pydantic import BaseModel, Field, ValidationError

from fin_agent.config import RoutingConfig
from fin_agent.routing.aliases import extract_tokens
from fin_agent.services.llm import TextCompleter

logger = logging.getLogger(__name__)

CANONICAL_PROMPTS: tuple[str, ...] = (
    "Monthly gross trend",
    "Top counterparties YTD",
    "List business units",
)

REWRITE_SYSTEM_PROMPT = "\n".join(
    [
        "You convert executive free-form asks into ONE canonical prompt the router understands.",
        "Allowed canonicals (exact strings):",
        *(f"- {canonical}" for canonical in CANONICAL_PROMPTS),
        "- <UNIT> <MONTH> snapshot   (e.g., 'Z001 June snapshot')",
        "- <UNIT> <YEAR>             (e.g., 'Z001 2024')",
        "If UNIT/MONTH/YEAR appear, KEEP them in the canonical.",
        'Respond ONLY with strict JSON: {"canonical":"...","confidence":0..1}',
    ]
)

_TOP_N = re.compile(r"(top|largest|biggest)\s+(customers?|counterpart(y|ies))|concentration", re.I)
_TREND = re.compile(r"(trend|trajectory|run[- ]?rate|last\s+(3|6|12)\s+months|m/m|\bmom\b)", re.I)
_LIST = re.compile(r"(list|show|display)\s+(business\s*)?units\b|\bunits\b", re.I)
_JSON_OBJECT = re.compile(r"\{.*\}", re.S)


@dataclass(slots=True)
class Rewrite:
    canonical: str
    confidence: float
    source: str


class _RewritePayload(BaseModel):
    canonical: str = Field(min_length=1)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class CanonicalRewriter:
    """Collaborator stage, then heuristic stage, then pass-through.

    `rewrite` returns `None` when the message should be routed unmodified:
    rewriting disabled, no stage produced a candidate, or the candidate fell
    below the acceptance threshold.
    """

    def __init__(
        self,
        completer: TextCompleter | None = None,
        config: RoutingConfig | None = None,
    ) -> None:
        self.completer = completer
        self.config = config or RoutingConfig()

    @property
    def enabled(self) -> bool:
        return self.config.narrative_mode == "llm"

    @property
    def min_confidence(self) -> float:
        if self.completer is not None:
            return self.config.rewrite_min_confidence
        return self.config.rewrite_heuristic_min_confidence

    def rewrite(self, message: str | None) -> Rewrite | None:
        if not self.enabled or not message or not message.strip():
            return None

        candidate = self._collaborator_rewrite(message) or heuristic_rewrite(message)
        if candidate is None:
            return None
        if candidate.confidence < self.min_confidence:
            logger.info(
                "rewrite rejected canonical=%r confidence=%.2f", candidate.canonical, candidate.confidence
            )
            return None

        logger.info("rewrite accepted source=%s canonical=%r", candidate.source, candidate.canonical)
        return candidate

    def _collaborator_rewrite(self, message: str) -> Rewrite | None:
        if self.completer is None:
            return None

        timeout_s = self.config.rewrite_timeout_ms / 1000.0
        # One worker per call: a hung completion only ever holds its own thread.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rewrite")
        future = pool.submit(self.completer.complete, f'Message: "{message}"', REWRITE_SYSTEM_PROMPT)
        try:
            raw = future.result(timeout=timeout_s)
        except FutureTimeout:
            logger.warning("rewrite timed out after %sms", self.config.rewrite_timeout_ms)
            return None
        except Exception:
            logger.exception("rewrite collaborator failed")
            return None
        finally:
            pool.shutdown(wait=False)

        payload = parse_rewrite_payload(raw)
        if payload is None:
            return None
        return Rewrite(
            canonical=reinject_tokens(message, payload.canonical),
            confidence=payload.confidence,
            source="llm",
        )


def parse_rewrite_payload(raw: str | None) -> _RewritePayload | None:
    match = _JSON_OBJECT.search(raw or "")
    if not match:
        return None
    try:
        return _RewritePayload.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError):
        logger.info("rewrite payload rejected: %r", (raw or "")[:200])
        return None


def reinject_tokens(message: str, canonical: str) -> str:
    """Put back any unit/month/year token the rewrite dropped."""

    original = extract_tokens(message)
    rewritten = extract_tokens(canonical)
    canonical = canonical.strip()
    if original.unit and rewritten.unit != original.unit:
        canonical = f"{original.unit} {canonical}"
    if original.month and rewritten.month != original.month:
        canonical = f"{canonical} {original.month}"
    if original.year and rewritten.year != original.year:
        canonical = f"{canonical} {original.year}"
    return canonical


def heuristic_rewrite(message: str) -> Rewrite | None:
    tokens = extract_tokens(message)

    if _TOP_N.search(message):
        return Rewrite("Top counterparties YTD", 0.65, "heuristic")
    if _TREND.search(message):
        return Rewrite("Monthly gross trend", 0.65, "heuristic")
    if _LIST.search(message):
        return Rewrite("List business units", 0.6, "heuristic")
    if tokens.unit:
        if tokens.month:
            return Rewrite(f"{tokens.unit} {tokens.month} snapshot", 0.6, "heuristic")
        if tokens.year:
            return Rewrite(f"{tokens.unit} {tokens.year}", 0.6, "heuristic")
        return Rewrite(f"{tokens.unit} snapshot", 0.55, "heuristic")
    return None
