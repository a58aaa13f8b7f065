"""Discovery orchestrator: runs the source tiers under resource governance.

Per query:
  1. Run every cheap-tier source (RSS, API) concurrently, each isolated so
     a failing source only contributes an empty result
  2. Dedup the cheap-tier listings against the run's fingerprint set
     (seeded with previously stored listings when enabled)
  3. Decide whether the headless tier must run at all
  4. If it must: validate the proxy pool once per run, then run the
     headless sources through the healthy proxies
  5. Dedup the headless listings against the same set
  6. Log ALL raw listings, duplicates included, to the discovery log
  7. Enqueue one persistence write per unique listing and drain the queue
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from jobgate.config import PipelineConfig
from jobgate.escalation import HeadlessLaunchDecision, decide_headless_launch
from jobgate.fingerprint import create_fingerprint_set, dedupe_jobs_with_stats
from jobgate.models import JobListing, SearchQuery, SourceResult, SourceTier
from jobgate.persistence import PersistenceQueue
from jobgate.proxies import ProxyHealthValidator, detect_paid_proxy
from jobgate.scrapers.base import BaseScraper
from jobgate.scrapers.greenhouse import GreenhouseScraper
from jobgate.scrapers.headless import HeadlessScraper, LinkListHeadlessScraper
from jobgate.scrapers.remotive import RemotiveScraper
from jobgate.scrapers.rss import RssFeedScraper
from jobgate.storage import (
    append_listing,
    atomic_write_json,
    init_store,
    load_stored_listings,
    log_discovered_jobs,
)

logger = logging.getLogger(__name__)

Scraper = Union[BaseScraper, HeadlessScraper]

# Map source_type strings to classes
SOURCE_REGISTRY: dict[str, type] = {
    "rss": RssFeedScraper,
    "greenhouse": GreenhouseScraper,
    "remotive": RemotiveScraper,
    "headless_links": LinkListHeadlessScraper,
}


@dataclass
class DiscoveryReport:
    """Summary of one query's run through every tier."""

    query: SearchQuery
    run_id: str
    total_raw: int = 0
    stored: int = 0
    duplicates_skipped: int = 0
    tier_breakdown: dict[str, dict[str, int]] = field(default_factory=dict)
    decision: Optional[HeadlessLaunchDecision] = None
    healthy_proxies: list[str] = field(default_factory=list)
    persistence_failures: int = 0
    duration_ms: int = 0
    listings: list[JobListing] = field(default_factory=list)
    source_results: list[SourceResult] = field(default_factory=list)


class DiscoveryPipeline:
    """Orchestrates tiered collection across all configured sources."""

    def __init__(
        self,
        config: PipelineConfig,
        data_dir: str | Path | None = None,
        scrapers: Optional[list[Scraper]] = None,
        validator: Optional[ProxyHealthValidator] = None,
        queue: Optional[PersistenceQueue] = None,
    ):
        self.config = config
        self.run_id = datetime.now(timezone.utc).isoformat()

        self.data_dir = Path(data_dir) if data_dir else Path(config.data_dir)
        init_store(self.data_dir)

        self.cheap_scrapers: list[BaseScraper] = []
        self.headless_scrapers: list[HeadlessScraper] = []
        if scrapers is None:
            self._build_scrapers()
        else:
            for scraper in scrapers:
                self._register(scraper)

        self.validator = validator or ProxyHealthValidator(
            probe_url=config.proxy_probe_url,
            timeout=config.proxy_probe_timeout_seconds,
        )
        self.queue = queue or PersistenceQueue(config.persist_concurrency)
        self.using_paid_proxy = detect_paid_proxy(config.proxy_urls)

        # Run-scoped dedup context; never shared between pipelines.
        self._seen: set[str] = set()
        self._history_loaded = False
        self._healthy_proxies: Optional[list[str]] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _build_scrapers(self) -> None:
        """Instantiate scrapers for each enabled source in config."""
        for source in self.config.enabled_sources:
            scraper_cls = SOURCE_REGISTRY.get(source.source_type)
            if not scraper_cls:
                logger.warning(
                    "Unknown source type '%s' for source '%s', skipping",
                    source.source_type,
                    source.name,
                )
                continue

            try:
                scraper = scraper_cls(source, self.config)
            except Exception as exc:
                logger.error("Failed to initialize source '%s': %s", source.name, exc)
                continue

            self._register(scraper)
            logger.info("Initialized source: %s (%s)", source.name, source.source_type)

    def _register(self, scraper: Scraper) -> None:
        if scraper.tier is SourceTier.HEADLESS:
            self.headless_scrapers.append(scraper)
        else:
            self.cheap_scrapers.append(scraper)

    def load_history(self) -> int:
        """Seed the run's fingerprint set with previously stored listings."""
        if self._history_loaded:
            return len(self._seen)
        self._history_loaded = True

        if not self.config.seed_from_history:
            return 0

        history = load_stored_listings(self.data_dir)
        self._seen.update(create_fingerprint_set(history))
        logger.info("Seeded dedup set with %d stored listings", len(history))
        return len(history)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def _run_cheap_source(self, scraper: BaseScraper, query: SearchQuery) -> SourceResult:
        start = time.monotonic()
        try:
            jobs = await asyncio.to_thread(scraper.scrape, query)
            error = None
        except Exception as exc:
            logger.error("  → %s: FAILED: %s", scraper.name, exc)
            jobs, error = [], str(exc)

        return SourceResult(
            source=scraper.name,
            tier=scraper.tier,
            jobs=list(jobs),
            duration_ms=int((time.monotonic() - start) * 1000),
            error=error,
        )

    async def _run_headless_source(
        self, scraper: HeadlessScraper, query: SearchQuery, proxies: list[str]
    ) -> SourceResult:
        start = time.monotonic()
        try:
            jobs = await scraper.scrape(query, proxies, self.using_paid_proxy)
            error = None
        except Exception as exc:
            logger.error("  → %s: FAILED: %s", scraper.name, exc)
            jobs, error = [], str(exc)

        return SourceResult(
            source=scraper.name,
            tier=SourceTier.HEADLESS,
            jobs=list(jobs),
            duration_ms=int((time.monotonic() - start) * 1000),
            error=error,
        )

    async def healthy_proxies(self) -> list[str]:
        """Validate the configured proxy pool, once per pipeline run."""
        if self._healthy_proxies is None:
            self._healthy_proxies = await self.validator.validate(self.config.proxy_urls)
        return self._healthy_proxies

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run_query(self, query: SearchQuery) -> DiscoveryReport:
        """Run one query through every tier and persist the unique listings."""
        start = time.monotonic()
        self.load_history()
        report = DiscoveryReport(query=query, run_id=self.run_id)
        failures_before = self.queue.failures

        logger.info(
            "Query %r: running %d cheap sources", query.keywords, len(self.cheap_scrapers)
        )
        cheap_results = await asyncio.gather(
            *(self._run_cheap_source(s, query) for s in self.cheap_scrapers)
        )
        report.source_results.extend(cheap_results)

        cheap_jobs = [job for r in cheap_results for job in r.jobs]
        cheap = dedupe_jobs_with_stats(cheap_jobs, seen=self._seen)
        report.tier_breakdown["cheap"] = {
            "raw": len(cheap_jobs), "unique": len(cheap.unique_jobs),
        }

        decision = decide_headless_launch(
            len(cheap.unique_jobs), self.config.headless_skip_threshold
        )
        report.decision = decision
        logger.info("Headless decision for %r: %s", query.keywords, decision.reason)

        headless_jobs: list[JobListing] = []
        if decision.should_launch and self.headless_scrapers:
            headless_jobs = await self._run_headless_tier(query, report)
        headless = dedupe_jobs_with_stats(headless_jobs, seen=self._seen)
        report.tier_breakdown["headless"] = {
            "raw": len(headless_jobs), "unique": len(headless.unique_jobs),
        }

        raw_jobs = cheap_jobs + headless_jobs
        if raw_jobs:
            log_discovered_jobs(raw_jobs, self.run_id, self.data_dir)

        report.listings = cheap.unique_jobs + headless.unique_jobs
        report.total_raw = len(raw_jobs)
        report.duplicates_skipped = cheap.duplicate_count + headless.duplicate_count

        for job in report.listings:
            self.queue.enqueue(self._persist_task(job))
        await self.queue.drain()

        report.persistence_failures = self.queue.failures - failures_before
        report.stored = len(report.listings) - report.persistence_failures
        report.duration_ms = int((time.monotonic() - start) * 1000)
        self._log_report(report)
        return report

    async def _run_headless_tier(
        self, query: SearchQuery, report: DiscoveryReport
    ) -> list[JobListing]:
        if self.config.proxy_urls:
            proxies = await self.healthy_proxies()
            report.healthy_proxies = list(proxies)
            if not proxies:
                logger.warning("No healthy proxies, skipping headless tier")
                return []
        else:
            proxies = []

        results = await asyncio.gather(
            *(self._run_headless_source(s, query, proxies) for s in self.headless_scrapers)
        )
        report.source_results.extend(results)
        return [job for r in results for job in r.jobs]

    def _persist_task(self, job: JobListing):
        return lambda: asyncio.to_thread(append_listing, job, self.data_dir)

    async def run_async(self, queries: list[SearchQuery]) -> list[DiscoveryReport]:
        logger.info(
            "Starting discovery with %d cheap and %d headless sources (run_id=%s)",
            len(self.cheap_scrapers), len(self.headless_scrapers), self.run_id,
        )
        reports = []
        for query in queries:
            reports.append(await self.run_query(query))
        await self.queue.drain()
        return reports

    def run(self, queries: Optional[list[SearchQuery]] = None) -> list[DiscoveryReport]:
        """Run every query (default: the configured ones) to completion."""
        return asyncio.run(self.run_async(queries if queries is not None else self.config.queries))

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _log_report(self, report: DiscoveryReport) -> None:
        logger.info("=== Discovery Summary: %r ===", report.query.keywords)
        for result in report.source_results:
            status = f"ERROR: {result.error}" if result.error else f"{len(result.jobs)} jobs"
            logger.info("  [%s/%s] %s (%dms)", result.tier.value, result.source, status, result.duration_ms)
        logger.info(
            "  raw=%d unique=%d duplicates=%d persist_failures=%d",
            report.total_raw, len(report.listings),
            report.duplicates_skipped, report.persistence_failures,
        )

    def save_results(self, listings: list[JobListing], output_dir: str | None = None) -> Path:
        """Save listings to a timestamped JSON file and return its path."""
        out_dir = Path(output_dir or self.config.output_dir)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        out_path = out_dir / f"jobs_{timestamp}.json"

        atomic_write_json(
            out_path,
            {
                "run_id": self.run_id,
                "total_jobs": len(listings),
                "jobs": [job.to_dict() for job in listings],
            },
        )
        logger.info("Results saved to %s", out_path)
        return out_path
