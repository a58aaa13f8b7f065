"""Storage module for the job ingestion pipeline.

Manages the files under the data directory:

1. **Discovery log** (`data/discovery_log.jsonl`)
   - Append-only log of every listing encountered, every run, every tier
   - JSON Lines format (one JSON object per line)
   - Never deduplicated or pruned

2. **Listings store** (`data/listings.jsonl`)
   - One line per unique listing, appended by persistence tasks
   - Loaded at the start of a run to seed cross-run deduplication

3. **Budget ledger** (`data/cost-guard.json`)
   - Owned by `jobgate.cost_guard`; written with the atomic helper below

JSON documents are written atomically:
  1. Write to .tmp file
  2. fsync
  3. Rename to target (atomic on POSIX)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from jobgate.models import JobListing

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

DISCOVERY_LOG = "discovery_log.jsonl"
LISTINGS_FILE = "listings.jsonl"
BUDGET_FILE = "cost-guard.json"

# Appends from concurrent persistence tasks run in worker threads.
_append_lock = threading.Lock()


# ── Initialization ─────────────────────────────────────────────────────────

def init_store(data_dir: str | Path = DEFAULT_DATA_DIR) -> None:
    """Ensure the data directory and the JSONL files exist.

    Safe to call multiple times.
    """
    d = Path(data_dir)
    d.mkdir(parents=True, exist_ok=True)

    for name in (DISCOVERY_LOG, LISTINGS_FILE):
        path = d / name
        if not path.exists():
            path.touch()
            logger.info("Created %s", path)


# ── Discovery Log ──────────────────────────────────────────────────────────

def log_discovered_jobs(
    jobs: Iterable[JobListing],
    run_id: str,
    data_dir: str | Path = DEFAULT_DATA_DIR,
) -> int:
    """Append every discovered listing to discovery_log.jsonl.

    Called with the raw batch, so duplicates are logged too. Returns the
    number of lines written.
    """
    log_path = Path(data_dir) / DISCOVERY_LOG
    scraped_at = datetime.now(timezone.utc).isoformat()

    count = 0
    with _append_lock, open(log_path, "a") as f:
        for job in jobs:
            entry = {
                "run_id": run_id,
                "scraped_at": scraped_at,
                "title": job.title,
                "company": job.company,
                "url": job.url,
                "location": job.location,
                "source": job.source,
                "source_tier": job.source_tier,
                "platform_job_id": job.platform_job_id,
                "date_posted": job.posted_date,
                "description_snippet": (job.description or "")[:200],
            }
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
            count += 1

    logger.debug("Appended %d entries to discovery log (run_id=%s)", count, run_id)
    return count


# ── Listings Store ─────────────────────────────────────────────────────────

def append_listing(job: JobListing, data_dir: str | Path = DEFAULT_DATA_DIR) -> None:
    """Durably append one listing to listings.jsonl."""
    path = Path(data_dir) / LISTINGS_FILE
    line = json.dumps(job.to_dict(), ensure_ascii=False) + "\n"

    with _append_lock, open(path, "a") as f:
        f.write(line)
        f.flush()
        os.fsync(f.fileno())


def load_stored_listings(data_dir: str | Path = DEFAULT_DATA_DIR) -> list[JobListing]:
    """Load every stored listing, skipping lines that fail to parse."""
    path = Path(data_dir) / LISTINGS_FILE
    if not path.exists():
        return []

    listings: list[JobListing] = []
    skipped = 0
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                listings.append(JobListing.from_dict(json.loads(line)))
            except (json.JSONDecodeError, TypeError, AttributeError):
                skipped += 1

    if skipped:
        logger.warning("Skipped %d corrupt lines in %s", skipped, path)
    return listings


# ── JSON helpers ───────────────────────────────────────────────────────────

def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON data atomically using temp file + rename.

    1. Write to .tmp file in the same directory
    2. fsync the temp file
    3. Rename temp to target (atomic on POSIX)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.replace(path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise
