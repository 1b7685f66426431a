from __future__ import annotations

from decimal import Decimal
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from courtbatch.core.cnj import normalize_whitespace, parse_brl_amount
from courtbatch.core.errors import SiteStructuralError
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.domain.models.scrape import RESPONDENT_NOT_FOUND, ScrapeResult
from courtbatch.infrastructure.sites.base import SiteFetcher

ESAJ_SEARCH_URL = "https://esaj.tjsp.jus.br/cpopg/search.do"


class EsajAdapter:
    system = SourceSystem.ESAJ
    encoding = "iso-8859-1"

    def __init__(self, fetcher: SiteFetcher | None = None) -> None:
        self.fetcher = fetcher or SiteFetcher()

    def build_url(self, process_number: str) -> str:
        parts = process_number.split(".")
        params = {
            "cbPesquisa": "NUMPROC",
            "numeroDigitoAnoUnificado": ".".join(parts[:2]),
            "foroNumeroUnificado": parts[2] if len(parts) > 2 else "",
            "dadosConsulta.valorConsultaNuUnificado": process_number,
            "dadosConsulta.tipoNuProcesso": "UNIFICADO",
        }
        return f"{ESAJ_SEARCH_URL}?{urlencode(params)}"

    def fetch(self, process_number: str) -> ScrapeResult:
        url = self.build_url(process_number)
        return self.fetcher.fetch_with_retry(
            process_number,
            lambda: self.parse_html(self.fetcher.get_html(url, encoding=self.encoding)),
        )

    def parse_html(self, html: str) -> ScrapeResult:
        soup = BeautifulSoup(html, "html.parser")

        # Letters rogatory pages render before the case data is ready.
        if soup.select_one("#PRECATORIA") is not None:
            return ScrapeResult.retry_later()

        parties = soup.select(".nomeParteEAdvogado")
        amount_el = soup.select_one("#valorAcaoProcesso")
        if not parties and amount_el is None:
            raise SiteStructuralError("Neither parties nor case amount found in returned page")

        respondent = normalize_whitespace(parties[1].get_text(" ")) if len(parties) > 1 else ""
        amount = parse_brl_amount(amount_el.get_text(" ")) if amount_el is not None else None

        return ScrapeResult(
            respondent=respondent or RESPONDENT_NOT_FOUND,
            amount=amount if amount is not None else Decimal("0"),
        )
