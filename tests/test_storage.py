"""Tests for the data directory files."""

import json

from jobgate.models import JobListing
from jobgate.storage import (
    DISCOVERY_LOG,
    LISTINGS_FILE,
    append_listing,
    atomic_write_json,
    init_store,
    load_stored_listings,
    log_discovered_jobs,
)


def make_job(i):
    return JobListing(
        title=f"Engineer {i}",
        company="Acme",
        url=f"https://example.com/jobs/{i}",
        source="test",
        description="x" * 500,
    )


def test_init_store_is_idempotent(tmp_path):
    data_dir = tmp_path / "data"
    init_store(data_dir)
    (data_dir / LISTINGS_FILE).write_text("keep\n")
    init_store(data_dir)

    assert (data_dir / DISCOVERY_LOG).exists()
    assert (data_dir / LISTINGS_FILE).read_text() == "keep\n"


def test_discovery_log_keeps_duplicates(tmp_path):
    init_store(tmp_path)
    written = log_discovered_jobs([make_job(1), make_job(1)], "run-1", tmp_path)

    lines = (tmp_path / DISCOVERY_LOG).read_text().splitlines()
    assert written == 2
    assert len(lines) == 2
    entry = json.loads(lines[0])
    assert entry["run_id"] == "run-1"
    assert entry["url"] == "https://example.com/jobs/1"
    assert len(entry["description_snippet"]) == 200


def test_listings_round_trip_skips_corrupt_lines(tmp_path):
    init_store(tmp_path)
    append_listing(make_job(1), tmp_path)
    with open(tmp_path / LISTINGS_FILE, "a") as f:
        f.write("{truncated\n")
    append_listing(make_job(2), tmp_path)

    listings = load_stored_listings(tmp_path)
    assert [j.url for j in listings] == [
        "https://example.com/jobs/1",
        "https://example.com/jobs/2",
    ]


def test_load_stored_listings_missing_file(tmp_path):
    assert load_stored_listings(tmp_path / "nowhere") == []


def test_atomic_write_json(tmp_path):
    path = tmp_path / "nested" / "out.json"
    atomic_write_json(path, {"a": 1})
    atomic_write_json(path, {"a": 2})

    assert json.loads(path.read_text()) == {"a": 2}
    assert not path.with_suffix(".json.tmp").exists()
