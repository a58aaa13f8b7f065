"""Data models for the job ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SourceTier(str, Enum):
    """Cost/reliability class of a data source."""

    RSS = "rss"
    API = "api"
    HEADLESS = "headless"

    @property
    def is_cheap(self) -> bool:
        return self is not SourceTier.HEADLESS


@dataclass(frozen=True)
class JobListing:
    """A single raw job listing as produced by a source adapter.

    Listings are immutable once created. They are not globally unique by
    themselves: the same posting can be returned by several sources, or by
    the same source on different runs. See `jobgate.fingerprint` for how
    duplicates are detected.
    """

    title: str
    company: str
    url: str
    source: str  # platform key, e.g. "remotive", "greenhouse:acme", "jobicy"
    description: str = ""
    location: str = ""
    platform_job_id: Optional[str] = None
    posted_date: Optional[str] = None
    source_tier: Optional[str] = None  # "rss", "api", "headless"
    discovered_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        """Serialize to a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobListing":
        """Build a listing from a stored dict, ignoring unknown keys."""
        known = set(cls.__dataclass_fields__)
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs.setdefault("title", "")
        kwargs.setdefault("company", "")
        kwargs.setdefault("url", "")
        kwargs.setdefault("source", "")
        return cls(**kwargs)

    def __repr__(self) -> str:
        return (
            f"JobListing(title={self.title!r}, company={self.company!r}, "
            f"source={self.source!r}, url={self.url!r})"
        )


@dataclass(frozen=True)
class SearchQuery:
    """One search issued against every configured source."""

    keywords: str
    location: str = ""
    max_results: int = 50


@dataclass
class SourceResult:
    """Outcome of running one source for one query."""

    source: str
    tier: SourceTier
    jobs: list[JobListing] = field(default_factory=list)
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
