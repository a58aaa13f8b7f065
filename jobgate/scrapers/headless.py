"""Headless-browser sources (the expensive tier).

A `HeadlessScraper` launches Chromium through one of the proxies that
passed health validation, installs the request resource filter on every
page it opens, and hands the page to `extract()`. Subclasses only implement
`extract()`; browser lifecycle, proxy rotation and error isolation live here.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote_plus

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from jobgate.config import PipelineConfig, SourceConfig
from jobgate.interception import ensure_request_interception
from jobgate.models import JobListing, SearchQuery, SourceTier
from jobgate.proxies import to_playwright_proxy

logger = logging.getLogger(__name__)


class HeadlessScraper(ABC):
    tier = SourceTier.HEADLESS

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        self.source_config = source_config
        self.pipeline_config = pipeline_config
        self.navigation_timeout_ms = int(
            float(source_config.params.get("navigation_timeout_seconds", 30)) * 1000
        )
        self._proxy_cycle: Optional[itertools.cycle] = None
        self._proxy_pool: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.source_config.name

    @abstractmethod
    async def extract(self, page: Any, query: SearchQuery) -> list[JobListing]:
        """Collect listings from an intercepted page."""
        ...

    def next_proxy(self, proxies: list[str]) -> Optional[str]:
        """Round-robin over the healthy pool; None means a direct connection."""
        if not proxies:
            return None
        if tuple(proxies) != self._proxy_pool:
            self._proxy_pool = tuple(proxies)
            self._proxy_cycle = itertools.cycle(self._proxy_pool)
        return next(self._proxy_cycle)

    async def new_page(self, context: Any, using_paid_proxy: bool) -> Any:
        page = await context.new_page()
        page.set_default_navigation_timeout(self.navigation_timeout_ms)
        await ensure_request_interception(page, using_paid_proxy)
        return page

    async def scrape(
        self,
        query: SearchQuery,
        proxies: list[str],
        using_paid_proxy: bool = False,
    ) -> list[JobListing]:
        proxy_url = self.next_proxy(proxies)
        launch_args: dict[str, Any] = {"headless": True}
        if proxy_url:
            launch_args["proxy"] = to_playwright_proxy(proxy_url)

        logger.info(
            "[%s] Launching headless browser (%s)",
            self.name, "proxied" if proxy_url else "direct",
        )

        try:
            async with async_playwright() as pw:
                browser = await pw.chromium.launch(**launch_args)
                try:
                    context = await browser.new_context(
                        user_agent=self.pipeline_config.user_agent
                    )
                    page = await self.new_page(context, using_paid_proxy)
                    jobs = await self.extract(page, query)
                finally:
                    await browser.close()
        except PlaywrightError as exc:
            logger.error("[%s] Headless crawl failed: %s", self.name, exc)
            return []

        logger.info("[%s] Headless crawl returned %d jobs", self.name, len(jobs))
        return jobs[: query.max_results] if query.max_results > 0 else jobs


class LinkListHeadlessScraper(HeadlessScraper):
    """Opens a rendered search page and collects the matching job links.

    Config params:
      search_url     URL template with {keywords} / {location} placeholders
      link_selector  CSS selector matching one anchor per job posting
    """

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        self.search_url = source_config.params.get("search_url") or source_config.url
        self.link_selector = source_config.params.get("link_selector", "a")
        self.source_key = source_config.params.get("source_key", source_config.name)
        if not self.search_url:
            raise ValueError(
                f"Headless source '{source_config.name}' requires params.search_url"
            )

    def search_url_for(self, query: SearchQuery) -> str:
        return self.search_url.replace(
            "{keywords}", quote_plus(query.keywords)
        ).replace("{location}", quote_plus(query.location))

    async def extract(self, page: Any, query: SearchQuery) -> list[JobListing]:
        await page.goto(self.search_url_for(query), wait_until="domcontentloaded")
        links = await page.eval_on_selector_all(
            self.link_selector,
            "els => els.map(e => ({href: e.href, text: (e.innerText || '').trim()}))",
        )

        jobs: list[JobListing] = []
        for link in links:
            href = (link.get("href") or "").strip()
            title = (link.get("text") or "").strip()
            if not href or not title:
                continue
            jobs.append(
                JobListing(
                    title=title,
                    company=self.source_config.company,
                    url=href,
                    source=self.source_key,
                    source_tier=self.tier.value,
                )
            )
        return jobs
