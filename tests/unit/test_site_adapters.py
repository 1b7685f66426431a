from __future__ import annotations

from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from courtbatch.core.config import ScrapeSettings
from courtbatch.core.errors import (
    RetrySentinelExhaustedError,
    SessionExpiredError,
    SiteStructuralError,
    TransientNetworkError,
)
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.domain.models.scrape import PROCESS_NOT_FOUND, RESPONDENT_NOT_FOUND
from courtbatch.infrastructure.sites.base import SiteFetcher
from courtbatch.infrastructure.sites.eproc import EprocAdapter
from courtbatch.infrastructure.sites.esaj import EsajAdapter
from courtbatch.infrastructure.sites.registry import build_site_adapter

ESAJ_PAGE = """
<html><body>
  <table id="tablePartesPrincipais">
    <tr><td><span class="nomeParteEAdvogado">Banco Exemplo S/A</span></td></tr>
    <tr><td><span class="nomeParteEAdvogado">  Maria
        da Silva </span></td></tr>
  </table>
  <div id="valorAcaoProcesso">R$         12.345,67</div>
</body></html>
"""

ESAJ_PRECATORIA = '<html><body><div id="PRECATORIA">Carta precatória</div></body></html>'

EPROC_PAGE = """
<html><body>
  <fieldset id="fldPartes"><table>
    <tr><th>Autor</th><th>Réu</th></tr>
    <tr><td>Fazenda Nacional</td><td>Empresa Devedora Ltda</td></tr>
  </table></fieldset>
  <fieldset id="fldInformacoesAdicionais"><table><tr>
    <td>Valor da causa:</td><td><span><b>R$ 1.500,00</b></span></td>
  </tr></table></fieldset>
</body></html>
"""

EPROC_NOT_FOUND = '<div id="divInfraExcecao"><span>Processo não encontrado.</span></div>'
EPROC_OTHER_EXCEPTION = '<div id="divInfraExcecao"><span>Acesso negado.</span></div>'


class FakeResponse:
    def __init__(self, body: str, status_code: int = 200) -> None:
        self.content = body.encode("iso-8859-1")
        self.status_code = status_code


class FakeSession:
    def __init__(self, responses: list[object]) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []
        self.max_redirects = 30

    def get(self, url: str, **kwargs):
        self.calls.append({"url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeTokens:
    def __init__(self, token: str | None = "abc123") -> None:
        self.token = token
        self.requested: list[str] = []

    def get_token(self, system: str) -> str:
        self.requested.append(system)
        if self.token is None:
            raise SessionExpiredError("expired")
        return self.token


def _fetcher(responses: list[object], sleeps: list[float] | None = None) -> SiteFetcher:
    recorded = sleeps if sleeps is not None else []
    return SiteFetcher(ScrapeSettings(), session=FakeSession(responses), sleep=recorded.append)


def test_esaj_url_splits_process_number() -> None:
    url = EsajAdapter(_fetcher([])).build_url("1000001-23.2024.8.26.0100")
    query = parse_qs(urlparse(url).query)

    assert url.startswith("https://esaj.tjsp.jus.br/cpopg/search.do?")
    assert query["numeroDigitoAnoUnificado"] == ["1000001-23.2024"]
    assert query["foroNumeroUnificado"] == ["8"]
    assert query["dadosConsulta.valorConsultaNuUnificado"] == ["1000001-23.2024.8.26.0100"]


def test_esaj_parses_second_party_and_amount() -> None:
    result = EsajAdapter(_fetcher([])).parse_html(ESAJ_PAGE)

    assert result.respondent == "Maria da Silva"
    assert result.amount == Decimal("12345.67")
    assert result.retry is False


def test_esaj_defaults_when_fields_are_missing() -> None:
    page = '<html><body><span class="nomeParteEAdvogado">Banco Exemplo S/A</span></body></html>'

    result = EsajAdapter(_fetcher([])).parse_html(page)

    assert result.respondent == RESPONDENT_NOT_FOUND
    assert result.amount == Decimal("0")


def test_esaj_rejects_pages_without_case_data() -> None:
    page = "<html><head><title>503 Service Unavailable</title></head><body><h1>Service Unavailable</h1></body></html>"

    with pytest.raises(SiteStructuralError):
        EsajAdapter(_fetcher([])).parse_html(page)


def test_esaj_fetch_surfaces_error_pages_as_failures() -> None:
    fetcher = _fetcher([FakeResponse("<html><body>Sistema em manutenção</body></html>", status_code=503)])

    with pytest.raises(SiteStructuralError):
        EsajAdapter(fetcher).fetch("1000001-23.2024.8.26.0100")


def test_esaj_fetch_retries_not_ready_pages_with_growing_backoff() -> None:
    sleeps: list[float] = []
    fetcher = _fetcher([FakeResponse(ESAJ_PRECATORIA), FakeResponse(ESAJ_PRECATORIA), FakeResponse(ESAJ_PAGE)], sleeps)

    result = EsajAdapter(fetcher).fetch("1000001-23.2024.8.26.0100")

    assert result.respondent == "Maria da Silva"
    assert sleeps == [1.0, 2.0]


def test_esaj_fetch_gives_up_after_retry_cap() -> None:
    sleeps: list[float] = []
    fetcher = _fetcher([FakeResponse(ESAJ_PRECATORIA)] * 3, sleeps)

    with pytest.raises(RetrySentinelExhaustedError):
        EsajAdapter(fetcher).fetch("1000001-23.2024.8.26.0100")
    assert sleeps == [1.0, 2.0]


def test_fetcher_reads_error_status_bodies() -> None:
    fetcher = _fetcher([FakeResponse(ESAJ_PAGE, status_code=500)])
    assert "valorAcaoProcesso" in fetcher.get_html("https://example.test/")


def test_fetcher_sends_browser_headers_and_maps_network_errors() -> None:
    session = FakeSession([requests.ConnectionError("boom")])
    fetcher = SiteFetcher(ScrapeSettings(max_redirects=5), session=session)

    with pytest.raises(TransientNetworkError):
        fetcher.get_html("https://example.test/", extra_headers={"Cookie": "PHPSESSID=x"})

    assert session.max_redirects == 5
    headers = session.calls[0]["headers"]
    assert headers["Cookie"] == "PHPSESSID=x"
    assert headers["Accept-Language"].startswith("pt-BR")
    assert "User-Agent" in headers


def test_fetcher_maps_timeouts() -> None:
    fetcher = _fetcher([requests.Timeout("slow")])
    with pytest.raises(TransientNetworkError):
        fetcher.get_html("https://example.test/")


def test_eproc_parses_respondent_and_amount() -> None:
    result = EprocAdapter(FakeTokens(), _fetcher([])).parse_html(EPROC_PAGE)

    assert result.respondent == "Empresa Devedora Ltda"
    assert result.amount == Decimal("1500.00")


def test_eproc_not_found_page_is_a_result() -> None:
    result = EprocAdapter(FakeTokens(), _fetcher([])).parse_html(EPROC_NOT_FOUND)

    assert result.not_found is True
    assert result.respondent == PROCESS_NOT_FOUND
    assert result.amount == Decimal("0")


def test_eproc_structural_failures_raise() -> None:
    adapter = EprocAdapter(FakeTokens(), _fetcher([]))
    with pytest.raises(SiteStructuralError):
        adapter.parse_html(EPROC_OTHER_EXCEPTION)
    with pytest.raises(SiteStructuralError):
        adapter.parse_html("<html><body><p>login</p></body></html>")


def test_eproc_fetch_sends_session_cookie() -> None:
    session = FakeSession([FakeResponse(EPROC_PAGE)])
    tokens = FakeTokens("tok-1")
    adapter = EprocAdapter(tokens, SiteFetcher(ScrapeSettings(), session=session))

    result = adapter.fetch("5000001-23.2024.4.03.6100")

    assert result.respondent == "Empresa Devedora Ltda"
    assert tokens.requested == ["EPROC"]
    call = session.calls[0]
    assert call["headers"]["Cookie"] == "PHPSESSID=tok-1"
    assert parse_qs(urlparse(call["url"]).query)["num_processo"] == ["5000001-23.2024.4.03.6100"]


def test_eproc_fetch_propagates_expired_session_without_requesting() -> None:
    session = FakeSession([])
    adapter = EprocAdapter(FakeTokens(None), SiteFetcher(ScrapeSettings(), session=session))

    with pytest.raises(SessionExpiredError):
        adapter.fetch("5000001-23.2024.4.03.6100")
    assert session.calls == []


def test_registry_builds_adapter_per_system() -> None:
    tokens = FakeTokens()
    assert isinstance(build_site_adapter(SourceSystem.ESAJ, session_store=tokens), EsajAdapter)
    eproc = build_site_adapter(SourceSystem.EPROC, session_store=tokens, settings=ScrapeSettings())
    assert isinstance(eproc, EprocAdapter)
    assert eproc.system is SourceSystem.EPROC
