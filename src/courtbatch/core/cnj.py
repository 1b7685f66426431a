from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

CNJ_PATTERN = re.compile(r"\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4}")


def contains_cnj(text: str) -> bool:
    return CNJ_PATTERN.search(text) is not None


def is_cnj(text: str) -> bool:
    """True when ``text`` is exactly one CNJ-formatted process number."""
    return CNJ_PATTERN.fullmatch(text) is not None


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text.replace("\u00a0", " ")).strip()


def parse_brl_amount(raw: str | None) -> Decimal | None:
    """Convert a pt-BR currency string like ``R$ 1.234,56`` to a Decimal.

    Returns None when nothing numeric is left after cleanup.
    """
    if raw is None:
        return None
    text = normalize_whitespace(raw).replace("R$", "").replace(" ", "")
    text = text.replace(".", "").replace(",", ".")
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None
