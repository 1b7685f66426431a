from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

RESPONDENT_NOT_FOUND = "Requerido não encontrado"
PROCESS_NOT_FOUND = "Processo não encontrado"


@dataclass(slots=True)
class ScrapeResult:
    """Outcome of parsing one court page.

    ``retry`` marks the "record not ready" answer; respondent and amount are
    meaningless in that case.
    """

    respondent: str
    amount: Decimal
    retry: bool = False
    not_found: bool = False

    @classmethod
    def retry_later(cls) -> ScrapeResult:
        return cls(respondent="", amount=Decimal("0"), retry=True)

    @classmethod
    def missing_process(cls) -> ScrapeResult:
        return cls(respondent=PROCESS_NOT_FOUND, amount=Decimal("0"), not_found=True)
