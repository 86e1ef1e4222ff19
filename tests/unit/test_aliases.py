from fin_agent.routing.aliases import extract_tokens, labelize_unit, month_number, resolve_unit
from fin_agent.types import TokenSet


def test_extract_tokens_from_snapshot_prompt() -> None:
    tokens = extract_tokens("Z001 June snapshot")

    assert tokens == TokenSet(unit="Z001", year=None, month="june")


def test_extract_tokens_handles_empty_input() -> None:
    assert extract_tokens(None) == TokenSet()
    assert extract_tokens("") == TokenSet()


def test_alias_resolves_before_literal_code() -> None:
    assert resolve_unit("how are liferafts doing in 2024") == "Z001"
    assert resolve_unit("Z005 navigation numbers") == "Z003"
    assert resolve_unit("z004 please") == "Z004"
    assert resolve_unit("nothing to see") is None


def test_year_and_abbreviated_month() -> None:
    tokens = extract_tokens("Fleet management, Sept 2024")

    assert tokens.unit == "Z007"
    assert tokens.month == "september"
    assert tokens.year == "2024"
    assert month_number("Sept") == 9


def test_labelize_unit_known_and_unknown() -> None:
    assert labelize_unit("Z001") == "Z001 — Liferafts"
    assert labelize_unit("Z999") == "Z999"
