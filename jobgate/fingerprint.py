"""Fingerprinting and deduplication of raw job listings.

No source guarantees a stable global ID, so duplicates are detected with a
key derived from three fields of the listing:

    <source slug>::<normalized url>::<dedup id>

- The source slug is the source name lowercased, with every run of
  non-alphanumeric characters collapsed to a single hyphen.
- The normalized URL drops the query string and fragment, lowercases the
  host and strips trailing slashes.
- The dedup id is the platform's own job ID when the adapter knows it,
  otherwise a job-ID query parameter from the original URL, otherwise the
  last path segment.

Everything here is pure: the same listing always yields the same key, no
matter how much whitespace, case or tracking noise surrounds it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import parse_qs, urlsplit

from jobgate.models import JobListing

logger = logging.getLogger(__name__)

FINGERPRINT_DELIMITER = "::"

# Query parameters that commonly carry a job board's posting ID, in
# priority order (Indeed uses jk/vjk).
JOB_ID_QUERY_PARAMS = ("id", "jobid", "jobId", "jk", "vjk")

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


# ── Normalization ──────────────────────────────────────────────────────────

def normalize_token(value: str | None) -> str:
    """Trim, lowercase and collapse inner whitespace."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value).strip().lower())


def normalize_source_slug(source: str | None) -> str:
    return _NON_ALNUM_RE.sub("-", normalize_token(source))


def normalize_url(url: str | None) -> str:
    """Reduce a URL to scheme://host/path for dedup comparison.

    Unparseable input falls back to the trimmed, lowercased raw string.
    """
    raw = normalize_token(url)
    if not raw:
        return ""

    try:
        parts = urlsplit(raw)
        hostname = parts.hostname
    except ValueError:
        return raw

    if not parts.scheme or not hostname:
        return raw

    netloc = hostname
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is not None:
        netloc = f"{hostname}:{port}"

    path = parts.path.rstrip("/") or "/"
    return f"{parts.scheme}://{netloc}{path}"


def _extract_url_job_id(url: str | None) -> str:
    """Pull a job ID from the original URL's query string or path."""
    raw = (url or "").strip()
    if not raw:
        return ""

    try:
        parts = urlsplit(raw)
    except ValueError:
        return ""

    params = parse_qs(parts.query, keep_blank_values=False)
    for name in JOB_ID_QUERY_PARAMS:
        for value in params.get(name, []):
            token = normalize_token(value)
            if token:
                return token

    segments = [normalize_token(seg) for seg in parts.path.split("/")]
    segments = [seg for seg in segments if seg]
    return segments[-1] if segments else ""


def get_job_dedup_id(job: JobListing) -> str:
    """Return the platform job ID if known, else one derived from the URL."""
    from_platform = normalize_token(job.platform_job_id)
    if from_platform:
        return from_platform
    return _extract_url_job_id(job.url)


def _sanitize_part(part: str) -> str:
    # A part may never contain the delimiter, nor start or end with ":",
    # otherwise "a:" + "::" + "b" would be ambiguous.
    while FINGERPRINT_DELIMITER in part:
        part = part.replace(FINGERPRINT_DELIMITER, ":")
    return part.strip(":")


# ── Fingerprints ───────────────────────────────────────────────────────────

def build_job_fingerprint(job: JobListing) -> str:
    """Build the dedup key for a listing."""
    parts = (
        normalize_source_slug(job.source),
        normalize_url(job.url),
        get_job_dedup_id(job),
    )
    return FINGERPRINT_DELIMITER.join(_sanitize_part(p) for p in parts)


def create_fingerprint_set(existing: Iterable[JobListing] = ()) -> set[str]:
    """Create a fingerprint set pre-seeded with already-known listings."""
    return {build_job_fingerprint(job) for job in existing}


def add_unique_job(
    job: JobListing,
    target: list[JobListing],
    seen_fingerprints: set[str],
) -> bool:
    """Append `job` to `target` unless its fingerprint was already seen.

    Returns True when the job was added.
    """
    fp = build_job_fingerprint(job)
    if fp in seen_fingerprints:
        return False
    seen_fingerprints.add(fp)
    target.append(job)
    return True


# ── Batch dedup ────────────────────────────────────────────────────────────

@dataclass
class DedupeStats:
    """Report for one dedup pass. Not persisted."""

    unique_jobs: list[JobListing] = field(default_factory=list)
    duplicate_count: int = 0
    lookup_count: int = 0
    dedup_hit_ratio: float = 0.0


def dedupe_jobs_with_stats(
    jobs: Iterable[JobListing],
    seed_jobs: Iterable[JobListing] = (),
    *,
    seen: Optional[set[str]] = None,
) -> DedupeStats:
    """Drop duplicates from `jobs`, keeping first occurrences in input order.

    `seed_jobs` (e.g. listings stored by previous runs) pre-populate the
    fingerprint set, so any incoming job matching one of them counts as a
    duplicate. Each incoming job costs exactly one set lookup.

    Pass `seen` to continue a running dedup context (one crawl run): the set
    is updated in place with the fingerprints of the unique jobs.
    """
    if seen is None:
        seen = set()
    seen.update(build_job_fingerprint(job) for job in seed_jobs)
    stats = DedupeStats()

    for job in jobs:
        fp = build_job_fingerprint(job)
        stats.lookup_count += 1
        if fp in seen:
            stats.duplicate_count += 1
            continue
        seen.add(fp)
        stats.unique_jobs.append(job)

    if stats.lookup_count:
        stats.dedup_hit_ratio = stats.duplicate_count / stats.lookup_count

    logger.debug(
        "Dedup pass: %d in, %d unique, %d duplicates (ratio %.3f)",
        stats.lookup_count,
        len(stats.unique_jobs),
        stats.duplicate_count,
        stats.dedup_hit_ratio,
    )
    return stats
