"""Daily spend ledger gating paid LLM extraction.

Every LLM call reports its token usage here; before each call the caller
asks whether today's budget for the active provider is already spent.

State is one `BudgetState` per (UTC day, provider). A state loaded for a
different day or a different provider is stale and starts again from zero.
Persistence goes through a `BudgetStore`; the default `JsonBudgetStore`
keeps the most recent state in a single JSON file:

    {"date": "2026-02-21", "totalTokens": 1200, "estimatedCostUSD": 0.006,
     "provider": "openrouter"}

Known limitation: record_token_usage() is a read-modify-write of that file
and is not atomic across processes. Two crawls sharing a provider can lose
each other's increments.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from jobgate.config import DEFAULT_DAILY_BUDGET_USD, parse_float
from jobgate.storage import atomic_write_json

logger = logging.getLogger(__name__)

BUDGET_ENV_VAR = "LLM_DAILY_BUDGET_USD"

# USD per million tokens (blended input/output estimate).
COST_PER_1M_TOKENS: dict[str, float] = {
    "anthropic": 10.0,
    "openai": 12.0,
    "google": 3.5,
    "groq": 0.27,
    "cerebras": 0.6,
    "openrouter": 5.0,
    "mistral": 8.0,
    "xai": 5.0,
    "zai": 3.0,
    "moonshot": 3.0,
    # Self-hosted engines
    "ollama": 0.0,
    "lmstudio": 0.0,
}
DEFAULT_COST_PER_1M_TOKENS = 5.0


def normalize_provider(provider: str) -> str:
    """Provider keys are case- and whitespace-insensitive."""
    return (provider or "").strip().lower()


def cost_per_million(provider: str) -> float:
    return COST_PER_1M_TOKENS.get(normalize_provider(provider), DEFAULT_COST_PER_1M_TOKENS)


def estimate_cost_usd(provider: str, tokens: int) -> float:
    return tokens * cost_per_million(provider) / 1_000_000


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _sanitize_tokens(value: Any) -> int:
    """Finite non-negative numbers count (truncated); anything else is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


@dataclass
class BudgetState:
    date: str
    provider: str
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0

    def to_json(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "totalTokens": self.total_tokens,
            "estimatedCostUSD": self.estimated_cost_usd,
            "provider": self.provider,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "BudgetState":
        return cls(
            date=str(data["date"]),
            provider=str(data["provider"]),
            total_tokens=int(data.get("totalTokens", 0)),
            estimated_cost_usd=float(data.get("estimatedCostUSD", 0.0)),
        )


@dataclass(frozen=True)
class BudgetVerdict:
    exceeded: bool
    spent_usd: float
    limit_usd: float
    message: str = ""


class BudgetStore(Protocol):
    def load(self, provider: str) -> Optional[BudgetState]: ...

    def save(self, state: BudgetState) -> None: ...


class JsonBudgetStore:
    """Single-file ledger holding the most recently active (day, provider)."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self, provider: str) -> Optional[BudgetState]:
        # The file only ever holds one provider; the caller checks it.
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                return BudgetState.from_json(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("[CostGuard] Ignoring unreadable ledger %s: %s", self.path, exc)
            return None

    def save(self, state: BudgetState) -> None:
        atomic_write_json(self.path, state.to_json())


class CostGuard:
    """Tracks token spend per day and provider against a daily USD ceiling."""

    def __init__(
        self,
        store: BudgetStore,
        daily_limit_usd: Any = DEFAULT_DAILY_BUDGET_USD,
        today: Callable[[], date] = _utc_today,
    ):
        self.store = store
        self.daily_limit_usd = parse_float(daily_limit_usd, DEFAULT_DAILY_BUDGET_USD)
        self._today = today

    def _today_key(self) -> str:
        return self._today().isoformat()

    def _load_state(self, provider: str) -> BudgetState:
        today = self._today_key()
        state = self.store.load(provider)
        if (
            state is not None
            and state.date == today
            and normalize_provider(state.provider) == provider
        ):
            state.provider = provider
            return state
        return BudgetState(date=today, provider=provider)

    def record_token_usage(self, provider: str, total_tokens: Any) -> BudgetState:
        """Add `total_tokens` (and its estimated cost) to today's ledger."""
        provider = normalize_provider(provider)
        tokens = _sanitize_tokens(total_tokens)

        state = self._load_state(provider)
        state.total_tokens += tokens
        state.estimated_cost_usd += estimate_cost_usd(provider, tokens)
        self.store.save(state)

        logger.debug(
            "[CostGuard] %s: +%d tokens, today %d tokens / $%.4f",
            provider, tokens, state.total_tokens, state.estimated_cost_usd,
        )
        return state

    def check_budget(self, provider: str) -> BudgetVerdict:
        """Compare today's spend with the ceiling; <= 0 means unlimited."""
        provider = normalize_provider(provider)
        limit = self.daily_limit_usd
        if limit <= 0:
            return BudgetVerdict(exceeded=False, spent_usd=0.0, limit_usd=limit)

        spent = self._load_state(provider).estimated_cost_usd
        if spent < limit:
            return BudgetVerdict(exceeded=False, spent_usd=spent, limit_usd=limit)

        message = (
            f"Daily budget exceeded for {provider}. "
            f"Spent: ${spent:.4f} / Limit: ${limit:.2f}. "
            f"LLM extraction paused for today. Set {BUDGET_ENV_VAR} to adjust."
        )
        logger.warning("[CostGuard] %s", message)
        return BudgetVerdict(exceeded=True, spent_usd=spent, limit_usd=limit, message=message)

    def is_budget_exceeded(self, provider: str) -> bool:
        return self.check_budget(provider).exceeded

    def get_daily_spend(self, provider: str) -> dict[str, float]:
        provider = normalize_provider(provider)
        state = self._load_state(provider)
        return {"tokens": state.total_tokens, "costUSD": state.estimated_cost_usd}
