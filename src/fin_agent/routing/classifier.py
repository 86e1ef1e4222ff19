"""Keyword-scored advisory domain classification."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from fin_agent.routing.keywords import DOMAIN_KEYWORDS
from fin_agent.types import RouteResult

logger = logging.getLogger(__name__)

NO_DOMAIN = "none"


class DomainClassifier:
    """Scores a message against per-domain keyword sets.

    Scoring per domain keyword:
    - +0.2 when the whole phrase occurs in the lower-cased message;
    - otherwise +0.1 for every constituent word longer than 3 characters
      that occurs in the message.

    Scores are accumulated in integer tenths so threshold comparisons at 0.3
    are exact. The result is advisory: the topic router decides execution.
    """

    def __init__(
        self,
        keywords: Mapping[str, Sequence[str]] | None = None,
        *,
        threshold: float = 0.3,
    ) -> None:
        self._keywords = keywords or DOMAIN_KEYWORDS
        self._threshold_tenths = round(threshold * 10)

    def classify(self, message: str | None) -> RouteResult:
        if not message:
            return RouteResult(domain=NO_DOMAIN, confidence=0.0)

        text = str(message).lower()
        best_domain = NO_DOMAIN
        best_tenths = 0
        for domain, keywords in self._keywords.items():
            tenths = sum(_keyword_tenths(keyword.lower(), text) for keyword in keywords)
            if tenths > best_tenths:
                best_domain, best_tenths = domain, tenths

        confidence = best_tenths / 10
        if best_tenths < self._threshold_tenths:
            return RouteResult(domain=NO_DOMAIN, confidence=confidence)

        logger.debug("classified domain=%s confidence=%.1f", best_domain, confidence)
        return RouteResult(domain=best_domain, confidence=confidence)

    def scores(self, message: str) -> dict[str, float]:
        text = message.lower()
        return {
            domain: sum(_keyword_tenths(keyword.lower(), text) for keyword in keywords) / 10
            for domain, keywords in self._keywords.items()
        }


def _keyword_tenths(keyword: str, text: str) -> int:
    if keyword in text:
        return 2
    return sum(1 for word in keyword.split() if len(word) > 3 and word in text)
