from __future__ import annotations

from decimal import Decimal
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from courtbatch.core.cnj import normalize_whitespace, parse_brl_amount
from courtbatch.core.errors import SiteStructuralError
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.domain.models.scrape import RESPONDENT_NOT_FOUND, ScrapeResult
from courtbatch.infrastructure.sites.base import SiteFetcher, TokenProvider

EPROC_CONTROLLER_URL = "https://eproc1g-consulta.tjsp.jus.br/eproc/externo_controlador.php"
NOT_FOUND_MARKER = "Processo não encontrado."


class EprocAdapter:
    system = SourceSystem.EPROC
    encoding = "iso-8859-1"

    def __init__(self, session_store: TokenProvider, fetcher: SiteFetcher | None = None) -> None:
        self.session_store = session_store
        self.fetcher = fetcher or SiteFetcher()

    def build_url(self, process_number: str) -> str:
        params = {
            "acao": "processo_seleciona_publica",
            "acao_origem": "processo_seleciona_publica",
            "acao_retorno": "processo_consulta_publica",
            "num_processo": process_number,
            "num_chave": "",
            "num_chave_documento": "",
        }
        return f"{EPROC_CONTROLLER_URL}?{urlencode(params)}"

    def auth_headers(self) -> dict[str, str]:
        token = self.session_store.get_token(self.system.value)
        return {"Cookie": f"PHPSESSID={token}"}

    def fetch(self, process_number: str) -> ScrapeResult:
        url = self.build_url(process_number)

        def attempt() -> ScrapeResult:
            html = self.fetcher.get_html(url, extra_headers=self.auth_headers(), encoding=self.encoding)
            return self.parse_html(html)

        return self.fetcher.fetch_with_retry(process_number, attempt)

    def parse_html(self, html: str) -> ScrapeResult:
        soup = BeautifulSoup(html, "html.parser")

        exception_block = soup.select_one("#divInfraExcecao")
        if exception_block is not None:
            if NOT_FOUND_MARKER in exception_block.get_text(" "):
                return ScrapeResult.missing_process()
            raise SiteStructuralError(
                f"Exception block in returned page: {normalize_whitespace(exception_block.get_text(' '))[:200]}"
            )

        cells = soup.select("#fldInformacoesAdicionais td")
        if len(cells) < 2 or not cells[1].get_text(strip=True):
            raise SiteStructuralError("Additional information table not found in returned page")

        outer = cells[1].find(True)
        inner = outer.find(True) if outer is not None else None
        raw_amount = inner.get_text(strip=True) if inner is not None else ""
        if not raw_amount:
            raise SiteStructuralError("Case amount not found in returned page")

        respondent = ""
        rows = soup.select("#fldPartes table tr")
        if len(rows) > 1:
            row_cells = rows[1].find_all("td")
            if len(row_cells) > 1:
                respondent = normalize_whitespace(row_cells[1].get_text(" "))

        amount = parse_brl_amount(raw_amount)
        return ScrapeResult(
            respondent=respondent or RESPONDENT_NOT_FOUND,
            amount=amount if amount is not None else Decimal("0"),
        )
