from __future__ import annotations

from courtbatch.core.config import ScrapeSettings
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.infrastructure.sites.base import SiteAdapter, SiteFetcher, TokenProvider
from courtbatch.infrastructure.sites.eproc import EprocAdapter
from courtbatch.infrastructure.sites.esaj import EsajAdapter


def build_site_adapter(
    system: SourceSystem,
    *,
    session_store: TokenProvider,
    settings: ScrapeSettings | None = None,
) -> SiteAdapter:
    fetcher = SiteFetcher(settings or ScrapeSettings.from_env())
    if system is SourceSystem.ESAJ:
        return EsajAdapter(fetcher)
    return EprocAdapter(session_store, fetcher)
