import threading

from fin_agent.config import RoutingConfig
from fin_agent.routing.rewriter import (
    CanonicalRewriter,
    heuristic_rewrite,
    parse_rewrite_payload,
    reinject_tokens,
)

LLM_MODE = RoutingConfig(narrative_mode="llm")


class FakeCompleter:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[tuple[str, str | None]] = []

    def complete(self, prompt, system_prompt=None, history=None) -> str:
        self.prompts.append((prompt, system_prompt))
        return self.reply


class FailingCompleter:
    def complete(self, prompt, system_prompt=None, history=None) -> str:
        raise RuntimeError("upstream unavailable")


class BlockingCompleter:
    def __init__(self) -> None:
        self.release = threading.Event()

    def complete(self, prompt, system_prompt=None, history=None) -> str:
        self.release.wait(timeout=2)
        return '{"canonical": "Monthly gross trend", "confidence": 0.9}'


def test_rewrite_disabled_outside_llm_mode() -> None:
    rewriter = CanonicalRewriter(FakeCompleter('{"canonical": "List business units", "confidence": 1}'))

    assert not rewriter.enabled
    assert rewriter.rewrite("show me units") is None


def test_heuristic_stage_without_collaborator() -> None:
    rewrite = CanonicalRewriter(config=LLM_MODE).rewrite("who are our biggest customers")

    assert rewrite is not None
    assert rewrite.canonical == "Top counterparties YTD"
    assert rewrite.source == "heuristic"
    assert rewrite.confidence == 0.65


def test_collaborator_payload_is_used() -> None:
    completer = FakeCompleter('{"canonical": "Monthly gross trend", "confidence": 0.9}')
    rewrite = CanonicalRewriter(completer, LLM_MODE).rewrite("how is gross moving lately")

    assert rewrite is not None
    assert rewrite.canonical == "Monthly gross trend"
    assert rewrite.source == "llm"
    assert completer.prompts[0][0] == 'Message: "how is gross moving lately"'


def test_collaborator_rewrite_keeps_message_tokens() -> None:
    completer = FakeCompleter('{"canonical": "snapshot", "confidence": 0.8}')
    rewrite = CanonicalRewriter(completer, LLM_MODE).rewrite("how did liferafts do in june")

    assert rewrite is not None
    assert rewrite.canonical == "Z001 snapshot june"


def test_malformed_payload_falls_back_to_heuristic() -> None:
    rewrite = CanonicalRewriter(FakeCompleter("not json at all"), LLM_MODE).rewrite("list units")

    assert rewrite is not None
    assert rewrite.canonical == "List business units"
    assert rewrite.source == "heuristic"


def test_collaborator_error_falls_back_to_heuristic() -> None:
    rewrite = CanonicalRewriter(FailingCompleter(), LLM_MODE).rewrite("revenue trajectory")

    assert rewrite is not None
    assert rewrite.canonical == "Monthly gross trend"


def test_low_confidence_rewrite_is_rejected() -> None:
    completer = FakeCompleter('{"canonical": "List business units", "confidence": 0.3}')

    assert CanonicalRewriter(completer, LLM_MODE).rewrite("something vague") is None


def test_threshold_is_stricter_with_collaborator() -> None:
    message = "numbers for Z001"

    assert CanonicalRewriter(config=LLM_MODE).rewrite(message).canonical == "Z001 snapshot"
    assert CanonicalRewriter(FakeCompleter("{}"), LLM_MODE).rewrite(message) is None


def test_timeout_abandons_collaborator() -> None:
    completer = BlockingCompleter()
    config = RoutingConfig(narrative_mode="llm", rewrite_timeout_ms=50)
    try:
        assert CanonicalRewriter(completer, config).rewrite("qwerty") is None
    finally:
        completer.release.set()


def test_hung_collaborators_do_not_starve_later_rewrites() -> None:
    blocked = BlockingCompleter()
    config = RoutingConfig(narrative_mode="llm", rewrite_timeout_ms=50)
    fast = FakeCompleter('{"canonical": "List business units", "confidence": 0.9}')
    try:
        for _ in range(5):
            assert CanonicalRewriter(blocked, config).rewrite("qwerty") is None

        rewrite = CanonicalRewriter(fast, LLM_MODE).rewrite("qwerty")
    finally:
        blocked.release.set()

    assert rewrite is not None
    assert rewrite.canonical == "List business units"
    assert rewrite.source == "llm"


def test_parse_rewrite_payload() -> None:
    payload = parse_rewrite_payload('Sure: {"canonical": "List business units", "confidence": 0.7}')

    assert payload is not None
    assert payload.canonical == "List business units"
    assert parse_rewrite_payload("no braces") is None
    assert parse_rewrite_payload('{"canonical": "x", "confidence": 1.5}') is None


def test_reinject_tokens_appends_missing_tokens() -> None:
    assert reinject_tokens("Z001 in June 2024 please", "snapshot") == "Z001 snapshot june 2024"
    assert reinject_tokens("Z001 June", "Z001 June snapshot") == "Z001 June snapshot"


def test_heuristic_rewrite_cases() -> None:
    assert heuristic_rewrite("Z002 in march").canonical == "Z002 march snapshot"
    assert heuristic_rewrite("Z002 for 2024").canonical == "Z002 2024"
    assert heuristic_rewrite("qwerty") is None
