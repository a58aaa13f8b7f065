"""Budget-gated LLM enrichment.

The extractor itself (prompting, parsing the model's answer) lives outside
this package; it is passed in as a callable returning the extracted fields
and the number of tokens the call consumed. `BudgetedEnricher` makes sure
the Cost Guard is consulted before every call and charged after it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from jobgate.cost_guard import CostGuard
from jobgate.models import JobListing

logger = logging.getLogger(__name__)

Extractor = Callable[[JobListing], "tuple[dict[str, Any], int]"]


class BudgetExceededError(RuntimeError):
    """Raised by enrich_or_raise() when today's LLM budget is spent."""


@dataclass
class EnrichmentResult:
    listing: JobListing
    fields: dict[str, Any] = field(default_factory=dict)
    tokens: int = 0
    skipped: bool = False
    budget_exceeded: bool = False
    reason: str = ""


class BudgetedEnricher:
    """Runs an LLM extractor only while the daily budget allows it."""

    def __init__(self, cost_guard: CostGuard, provider: str, extract: Extractor):
        self.cost_guard = cost_guard
        self.provider = provider
        self.extract = extract

    def enrich(self, listing: JobListing) -> EnrichmentResult:
        verdict = self.cost_guard.check_budget(self.provider)
        if verdict.exceeded:
            return EnrichmentResult(
                listing, skipped=True, budget_exceeded=True, reason=verdict.message
            )

        try:
            fields, tokens = self.extract(listing)
        except Exception as exc:
            logger.error("[Enrichment] Extraction failed for %r: %s", listing.url, exc)
            return EnrichmentResult(listing, skipped=True, reason=f"extraction failed: {exc}")

        self.cost_guard.record_token_usage(self.provider, tokens)
        return EnrichmentResult(listing, fields=dict(fields), tokens=tokens)

    def enrich_or_raise(self, listing: JobListing) -> EnrichmentResult:
        result = self.enrich(listing)
        if result.budget_exceeded:
            raise BudgetExceededError(result.reason)
        return result

    def enrich_many(self, listings: Iterable[JobListing]) -> list[EnrichmentResult]:
        """Enrich listings in order; once the budget trips, skip the rest."""
        results: list[EnrichmentResult] = []
        exhausted_reason = ""

        for listing in listings:
            if exhausted_reason:
                results.append(
                    EnrichmentResult(
                        listing,
                        skipped=True,
                        budget_exceeded=True,
                        reason=exhausted_reason,
                    )
                )
                continue

            result = self.enrich(listing)
            if result.budget_exceeded:
                exhausted_reason = result.reason
                logger.info("[Enrichment] Budget reached, skipping remaining listings")
            results.append(result)

        return results
