"""Generic RSS/Atom feed source (RSS tier).

The feed URL is configured per source and may contain `{keywords}` and
`{location}` placeholders, filled in (URL-encoded) from the query:

    - name: jobicy
      source_type: rss
      params:
        feed_url: "https://jobicy.com/?feed=job_feed&search_keywords={keywords}"

Feeds without server-side search are filtered locally on the keywords.
"""

from __future__ import annotations

import logging
from urllib.parse import quote_plus

import feedparser
from bs4 import BeautifulSoup

from jobgate.config import PipelineConfig, SourceConfig
from jobgate.models import JobListing, SearchQuery, SourceTier
from jobgate.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)


class RssFeedScraper(BaseScraper):
    """Reads one RSS/Atom feed per query."""

    tier = SourceTier.RSS

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        self.feed_url = source_config.params.get("feed_url") or source_config.url
        if not self.feed_url:
            raise ValueError(
                f"RSS source '{source_config.name}' requires params.feed_url in config"
            )
        self.source_key = source_config.params.get("source_key", source_config.name)
        self.server_side_search = "{keywords}" in self.feed_url

    def feed_url_for(self, query: SearchQuery) -> str:
        return self.feed_url.replace(
            "{keywords}", quote_plus(query.keywords)
        ).replace("{location}", quote_plus(query.location))

    def scrape(self, query: SearchQuery) -> list[JobListing]:
        url = self.feed_url_for(query)
        try:
            resp = self._get(url)
        except Exception as exc:
            logger.error("[%s] Failed to fetch feed %s: %s", self.name, url, exc)
            return []

        feed = feedparser.parse(resp.content)
        if feed.bozo and not feed.entries:
            logger.warning("[%s] Malformed feed %s: %s", self.name, url, feed.get("bozo_exception"))
            return []

        jobs: list[JobListing] = []
        for entry in feed.entries:
            job = self._parse_entry(entry)
            if job is None:
                continue
            if not self.server_side_search and not self._matches_keywords(job.title, query):
                continue
            jobs.append(job)

        logger.info("[%s] Parsed %d jobs from feed", self.name, len(jobs))
        return self._limit(jobs, query)

    def _parse_entry(self, entry) -> JobListing | None:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            return None

        # Many job feeds title entries "Company: Role"
        company = (entry.get("author") or "").strip()
        if not company and ":" in title:
            company, title = [part.strip() for part in title.split(":", 1)]

        summary = entry.get("summary") or entry.get("description") or ""
        description = BeautifulSoup(summary, "html.parser").get_text(" ", strip=True)

        guid = entry.get("id") or ""
        platform_job_id = guid if guid and guid != link else None

        return JobListing(
            title=title,
            company=company,
            url=link,
            source=self.source_key,
            location=(entry.get("location") or "").strip(),
            description=description,
            platform_job_id=platform_job_id,
            posted_date=entry.get("published") or entry.get("updated") or None,
            source_tier=self.tier.value,
        )
