"""Tier escalation: decide whether the headless-browser tier must run.

Headless crawls are the most expensive tier (browser launches, proxy
bandwidth), so they only run when the cheap tiers (RSS, API) under-deliver
for a query. The decision is a pure function of the cheap-tier yield and
the skip threshold, so it can be evaluated speculatively at no cost.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from jobgate.config import DEFAULT_HEADLESS_SKIP_THRESHOLD

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class HeadlessLaunchDecision:
    should_launch: bool
    partial_collection: bool
    reason: str
    pre_collected_jobs: int
    threshold: int


def _sanitize_non_negative_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return max(0, fallback)
    if isinstance(value, (int, float)):
        if math.isfinite(value):
            return max(0, math.floor(value))
        return max(0, fallback)
    if isinstance(value, str):
        # Leading integer only: "3.7" -> 3, "12abc" -> 12.
        match = _LEADING_INT.match(value)
        if match:
            return max(0, int(match.group(1)))
    return max(0, fallback)


def resolve_headless_skip_threshold(
    value: Any, fallback: int = DEFAULT_HEADLESS_SKIP_THRESHOLD
) -> int:
    """Return a positive threshold; zero, negative or garbage -> `fallback`."""
    threshold = _sanitize_non_negative_int(value, fallback)
    return threshold if threshold > 0 else fallback


def decide_headless_launch(
    pre_collected_jobs: Any, skip_threshold: Any
) -> HeadlessLaunchDecision:
    """Launch the headless tier iff the cheap tiers collected < threshold.

    A launch after a partial cheap-tier yield (some, but not enough jobs) is
    reported separately from a cold start (no jobs at all), since the two
    imply different expected headless yields.
    """
    collected = _sanitize_non_negative_int(pre_collected_jobs, 0)
    threshold = resolve_headless_skip_threshold(skip_threshold)
    should_launch = collected < threshold

    if not should_launch:
        return HeadlessLaunchDecision(
            should_launch=False,
            partial_collection=False,
            reason=f"skip-threshold-reached ({collected} >= {threshold})",
            pre_collected_jobs=collected,
            threshold=threshold,
        )

    partial = collected > 0
    if partial:
        reason = f"partial-api-collection ({collected}/{threshold})"
    else:
        reason = f"no-api-jobs-collected (threshold={threshold})"

    return HeadlessLaunchDecision(
        should_launch=True,
        partial_collection=partial,
        reason=reason,
        pre_collected_jobs=collected,
        threshold=threshold,
    )
