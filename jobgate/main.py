"""Entry point for the job ingestion pipeline.

Usage:
    python -m jobgate.main                        # use default config.yaml
    python -m jobgate.main --config my.yaml       # use custom config
    python -m jobgate.main --query "data engineer" --query "sre"
    python -m jobgate.main --dry-run              # validate config without crawling
    python -m jobgate.main --check-proxies        # probe the proxy pool and exit
    python -m jobgate.main --budget               # show today's LLM spend and exit
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from jobgate.config import load_config
from jobgate.cost_guard import CostGuard, JsonBudgetStore
from jobgate.discovery import DiscoveryPipeline
from jobgate.models import SearchQuery
from jobgate.proxies import ProxyHealthValidator, detect_paid_proxy
from jobgate.storage import BUDGET_FILE


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job ingestion pipeline: collect listings from RSS, API and "
        "headless sources with dedup, tier escalation and budget guards."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--query", "-q",
        action="append",
        default=None,
        help="Search keywords; repeat for several queries (default: from config)",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Override output directory (default: from config)",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory for the discovery log, listings and budget ledger",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and list sources without actually crawling",
    )
    parser.add_argument(
        "--check-proxies",
        action="store_true",
        help="Probe every configured proxy, print the healthy ones and exit",
    )
    parser.add_argument(
        "--budget",
        action="store_true",
        help="Print today's LLM spend for the configured provider and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug-level logging",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Load config
    config = load_config(args.config)
    log_level = "DEBUG" if args.verbose else config.log_level
    setup_logging(log_level)

    logger = logging.getLogger(__name__)
    logger.info("Loaded config with %d sources", len(config.sources))

    if args.data_dir:
        config.data_dir = args.data_dir

    if args.budget:
        guard = CostGuard(
            JsonBudgetStore(Path(config.data_dir) / BUDGET_FILE),
            daily_limit_usd=config.llm_daily_budget_usd,
        )
        spend = guard.get_daily_spend(config.llm_provider)
        verdict = guard.check_budget(config.llm_provider)
        print(
            f"{config.llm_provider}: {spend['tokens']} tokens, "
            f"${spend['costUSD']:.4f} of ${verdict.limit_usd:.2f}"
            f"{' (EXCEEDED)' if verdict.exceeded else ''}"
        )
        return 0

    if args.check_proxies:
        if not config.proxy_urls:
            logger.warning("No proxies configured (set PROXY_URLS or proxy_urls)")
            return 0
        validator = ProxyHealthValidator(
            probe_url=config.proxy_probe_url,
            timeout=config.proxy_probe_timeout_seconds,
        )
        healthy = validator.validate_sync(config.proxy_urls)
        for url in healthy:
            print(url)
        logger.info(
            "%d of %d proxies healthy (paid=%s)",
            len(healthy), len(config.proxy_urls), detect_paid_proxy(config.proxy_urls),
        )
        return 0 if healthy else 1

    if args.query:
        config.queries = [SearchQuery(keywords=q) for q in args.query if q.strip()]
    if not config.queries:
        logger.error("No queries configured. Pass --query or add queries to config.yaml")
        return 1

    # Dry run, just list what would run
    if args.dry_run:
        logger.info("=== Dry Run ===")
        for src in config.sources:
            logger.info(
                "  [%s] %s (type=%s)",
                "ON" if src.enabled else "OFF",
                src.name,
                src.source_type,
            )
        for query in config.queries:
            logger.info("  query: %r (location=%r)", query.keywords, query.location)
        logger.info(
            "  persist_concurrency=%d headless_skip_threshold=%d proxies=%d budget=$%.2f",
            config.persist_concurrency,
            config.headless_skip_threshold,
            len(config.proxy_urls),
            config.llm_daily_budget_usd,
        )
        logger.info("Dry run complete, no crawling performed.")
        return 0

    # Run the pipeline
    pipeline = DiscoveryPipeline(config)
    reports = pipeline.run()
    listings = [job for report in reports for job in report.listings]

    if not listings:
        logger.warning("No new jobs discovered. Check your config and network.")
        return 0

    out_path = pipeline.save_results(listings, args.output_dir)
    logger.info("Done! %d jobs saved to %s", len(listings), out_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
