from __future__ import annotations

import logging
import random
import time
from typing import Callable, Protocol

import requests

from courtbatch.core.config import ScrapeSettings
from courtbatch.core.errors import RetrySentinelExhaustedError, TransientNetworkError
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.domain.models.scrape import ScrapeResult

logger = logging.getLogger(__name__)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Firefox/121.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Firefox/120.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}


class SiteAdapter(Protocol):
    """What the batch worker needs from one external court site."""

    system: SourceSystem

    def build_url(self, process_number: str) -> str: ...

    def fetch(self, process_number: str) -> ScrapeResult: ...


class SiteFetcher:
    """HTTP GET with browser-like headers that never rejects on status code.

    4xx/5xx bodies are returned for inspection like any other page.
    """

    def __init__(
        self,
        settings: ScrapeSettings | None = None,
        *,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or ScrapeSettings()
        self.session = session or requests.Session()
        self.session.max_redirects = self.settings.max_redirects
        self._rng = rng or random.Random()
        self._sleep = sleep

    def random_user_agent(self) -> str:
        return self._rng.choice(USER_AGENTS)

    def get_html(self, url: str, *, extra_headers: dict[str, str] | None = None, encoding: str = "iso-8859-1") -> str:
        headers = {"User-Agent": self.random_user_agent(), **(extra_headers or {}), **BROWSER_HEADERS}
        try:
            response = self.session.get(
                url,
                headers=headers,
                timeout=self.settings.timeout_seconds,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise TransientNetworkError(f"Timed out fetching {url}") from exc
        except requests.RequestException as exc:
            raise TransientNetworkError(f"Request to {url} failed: {exc}") from exc

        if response.status_code >= 400:
            logger.debug("HTTP %s from %s, inspecting body anyway", response.status_code, url)
        return response.content.decode(encoding, errors="replace")

    def fetch_with_retry(
        self,
        process_number: str,
        attempt: Callable[[], ScrapeResult],
    ) -> ScrapeResult:
        """Run ``attempt`` until it stops answering "not ready".

        Attempt ``n`` (0-based) waits ``n * retry_backoff_seconds`` first.
        """
        attempts = max(self.settings.retry_attempts, 1)
        for tries in range(attempts):
            if tries:
                logger.info("%s not ready yet, retry %d/%d", process_number, tries, attempts - 1)
                self._sleep(tries * self.settings.retry_backoff_seconds)
            result = attempt()
            if not result.retry:
                return result
        raise RetrySentinelExhaustedError(
            f"{process_number} still not available after {attempts} attempt(s)"
        )


class TokenProvider(Protocol):
    def get_token(self, system: str) -> str: ...
