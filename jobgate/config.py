"""Configuration loader for the job ingestion pipeline.

Reads config.yaml into typed configuration objects, then layers the
environment-style settings on top:

  PERSIST_CONCURRENCY      max concurrent persistence writes (default 15)
  LLM_DAILY_BUDGET_USD     daily LLM spend ceiling, <= 0 means unlimited
  PROXY_URLS               comma-separated proxy URLs
  HEADLESS_SKIP_THRESHOLD  cheap-tier yield that makes the headless tier
                           unnecessary (default 25)
  LLM_PROVIDER             provider key used for budget accounting

Bad values never raise: they are replaced with the documented defaults.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from jobgate.models import SearchQuery

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

DEFAULT_PERSIST_CONCURRENCY = 15
DEFAULT_HEADLESS_SKIP_THRESHOLD = 25
DEFAULT_DAILY_BUDGET_USD = 1.0
DEFAULT_PROXY_PROBE_URL = "https://httpbin.org/ip"


# ── Value parsing ──────────────────────────────────────────────────────────

def parse_positive_int(value: Any, default: int) -> int:
    """Parse a strictly positive integer, falling back to `default`."""
    if value is None or isinstance(value, bool):
        return default

    parsed: int | None = None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if math.isfinite(value):
            parsed = int(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text)
        except ValueError:
            try:
                as_float = float(text)
            except ValueError:
                as_float = math.nan
            if math.isfinite(as_float):
                parsed = int(as_float)

    if parsed is None or parsed <= 0:
        return default
    return parsed


def parse_float(value: Any, default: float) -> float:
    """Parse a finite float, falling back to `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) else default


def parse_proxy_urls(raw: Any) -> list[str]:
    """Split a comma-separated proxy list (or a YAML list) into clean URLs.

    Order is preserved and repeated entries are dropped.
    """
    if not raw:
        return []
    items = raw.split(",") if isinstance(raw, str) else [str(item) for item in raw]

    urls: list[str] = []
    for item in items:
        url = item.strip()
        if url and url not in urls:
            urls.append(url)
    return urls


# ── Config objects ─────────────────────────────────────────────────────────

@dataclass
class SourceConfig:
    """Configuration for a single source adapter."""

    name: str
    source_type: str  # "rss", "greenhouse", "remotive", "headless_links"
    enabled: bool = True
    url: str = ""
    company: str = ""
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    queries: list[SearchQuery] = field(default_factory=list)
    output_dir: str = "output"
    data_dir: str = "data"
    log_level: str = "INFO"
    request_timeout_seconds: float = 20.0
    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Resource governance
    persist_concurrency: int = DEFAULT_PERSIST_CONCURRENCY
    llm_daily_budget_usd: float = DEFAULT_DAILY_BUDGET_USD
    llm_provider: str = "ollama"
    proxy_urls: list[str] = field(default_factory=list)
    proxy_probe_url: str = DEFAULT_PROXY_PROBE_URL
    proxy_probe_timeout_seconds: float = 5.0
    headless_skip_threshold: int = DEFAULT_HEADLESS_SKIP_THRESHOLD
    seed_from_history: bool = True

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> PipelineConfig:
    """Load the pipeline configuration from YAML, then apply env overrides."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
        return apply_env_overrides(PipelineConfig(), env)

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return apply_env_overrides(PipelineConfig(), env)

    sources = []
    for src in raw.get("sources", []) or []:
        sources.append(
            SourceConfig(
                name=src["name"],
                source_type=src["source_type"],
                enabled=src.get("enabled", True),
                url=src.get("url", ""),
                company=src.get("company", ""),
                params=src.get("params", {}) or {},
            )
        )

    queries = []
    for q in raw.get("queries", []) or []:
        if isinstance(q, str):
            queries.append(SearchQuery(keywords=q))
        else:
            queries.append(
                SearchQuery(
                    keywords=q.get("keywords", ""),
                    location=q.get("location", ""),
                    max_results=parse_positive_int(q.get("max_results"), 50),
                )
            )

    defaults = PipelineConfig()
    config = PipelineConfig(
        sources=sources,
        queries=queries,
        output_dir=raw.get("output_dir", defaults.output_dir),
        data_dir=raw.get("data_dir", defaults.data_dir),
        log_level=raw.get("log_level", defaults.log_level),
        request_timeout_seconds=parse_float(
            raw.get("request_timeout_seconds"), defaults.request_timeout_seconds
        ),
        user_agent=raw.get("user_agent", defaults.user_agent),
        persist_concurrency=parse_positive_int(
            raw.get("persist_concurrency"), DEFAULT_PERSIST_CONCURRENCY
        ),
        llm_daily_budget_usd=parse_float(
            raw.get("llm_daily_budget_usd"), DEFAULT_DAILY_BUDGET_USD
        ),
        llm_provider=str(raw.get("llm_provider") or defaults.llm_provider).strip().lower(),
        proxy_urls=parse_proxy_urls(raw.get("proxy_urls")),
        proxy_probe_url=raw.get("proxy_probe_url", DEFAULT_PROXY_PROBE_URL),
        proxy_probe_timeout_seconds=parse_float(
            raw.get("proxy_probe_timeout_seconds"),
            defaults.proxy_probe_timeout_seconds,
        ),
        headless_skip_threshold=parse_positive_int(
            raw.get("headless_skip_threshold"), DEFAULT_HEADLESS_SKIP_THRESHOLD
        ),
        seed_from_history=bool(raw.get("seed_from_history", True)),
    )
    return apply_env_overrides(config, env)


def apply_env_overrides(
    config: PipelineConfig, environ: Mapping[str, str]
) -> PipelineConfig:
    """Override governance settings from environment variables, in place."""
    if "PERSIST_CONCURRENCY" in environ:
        config.persist_concurrency = parse_positive_int(
            environ["PERSIST_CONCURRENCY"], DEFAULT_PERSIST_CONCURRENCY
        )
    if "LLM_DAILY_BUDGET_USD" in environ:
        config.llm_daily_budget_usd = parse_float(
            environ["LLM_DAILY_BUDGET_USD"], DEFAULT_DAILY_BUDGET_USD
        )
    if environ.get("PROXY_URLS"):
        config.proxy_urls = parse_proxy_urls(environ["PROXY_URLS"])
    if "HEADLESS_SKIP_THRESHOLD" in environ:
        config.headless_skip_threshold = parse_positive_int(
            environ["HEADLESS_SKIP_THRESHOLD"], DEFAULT_HEADLESS_SKIP_THRESHOLD
        )
    if environ.get("LLM_PROVIDER"):
        config.llm_provider = environ["LLM_PROVIDER"].strip().lower()
    return config
