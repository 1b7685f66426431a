from __future__ import annotations

from decimal import Decimal

from courtbatch.core.cnj import contains_cnj, is_cnj, normalize_whitespace, parse_brl_amount


def test_cnj_detection() -> None:
    assert is_cnj("1000001-23.2024.8.26.0100")
    assert not is_cnj("Processo 1000001-23.2024.8.26.0100")
    assert contains_cnj("Processo 1000001-23.2024.8.26.0100")
    assert not contains_cnj("1000001-23.2024")


def test_parse_brl_amount() -> None:
    assert parse_brl_amount("R$ 1.234,56") == Decimal("1234.56")
    assert parse_brl_amount("R$ 250.000,00") == Decimal("250000.00")
    assert parse_brl_amount("0,50") == Decimal("0.50")


def test_parse_brl_amount_returns_none_for_non_numeric_input() -> None:
    assert parse_brl_amount(None) is None
    assert parse_brl_amount("   ") is None
    assert parse_brl_amount("R$") is None
    assert parse_brl_amount("não informado") is None


def test_normalize_whitespace() -> None:
    assert normalize_whitespace("  Foro Central \n  Cível ") == "Foro Central Cível"
