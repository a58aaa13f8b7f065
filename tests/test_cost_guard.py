"""Tests for the daily LLM spend ledger."""

import json
from datetime import date

from jobgate.cost_guard import (
    CostGuard,
    JsonBudgetStore,
    cost_per_million,
    estimate_cost_usd,
)


class FakeClock:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


def make_guard(tmp_path, limit=1.0, day=date(2026, 2, 21)):
    clock = FakeClock(day)
    store = JsonBudgetStore(tmp_path / "cost-guard.json")
    return CostGuard(store, daily_limit_usd=limit, today=clock), clock


def test_cost_table():
    assert cost_per_million("openrouter") == 5.0
    assert cost_per_million("OpenAI") == 12.0
    assert cost_per_million("ollama") == 0.0
    assert cost_per_million("unknown-provider") == 5.0
    assert estimate_cost_usd("openrouter", 200_000) == 1.0


def test_budget_exceeded_exactly_at_limit(tmp_path):
    guard, _ = make_guard(tmp_path, limit=1.0)
    guard.record_token_usage("openrouter", 200_000)

    verdict = guard.check_budget("openrouter")
    assert verdict.exceeded is True
    assert verdict.spent_usd == 1.0
    assert verdict.limit_usd == 1.0
    assert "Daily budget exceeded for openrouter" in verdict.message
    assert "LLM_DAILY_BUDGET_USD" in verdict.message
    assert guard.is_budget_exceeded("openrouter") is True


def test_budget_not_exceeded_just_below_limit(tmp_path):
    guard, _ = make_guard(tmp_path, limit=1.0)
    guard.record_token_usage("openrouter", 199_999)

    verdict = guard.check_budget("openrouter")
    assert verdict.exceeded is False
    assert verdict.message == ""


def test_unknown_provider_uses_default_rate(tmp_path):
    guard, _ = make_guard(tmp_path, limit=1.0)
    guard.record_token_usage("some-new-llm", 200_000)
    assert guard.is_budget_exceeded("some-new-llm") is True


def test_zero_or_negative_limit_means_unlimited(tmp_path):
    for limit in (0, -1, "0"):
        guard, _ = make_guard(tmp_path / str(limit), limit=limit)
        guard.record_token_usage("anthropic", 50_000_000)
        assert guard.is_budget_exceeded("anthropic") is False


def test_invalid_limit_uses_default(tmp_path):
    guard, _ = make_guard(tmp_path, limit="lots")
    assert guard.daily_limit_usd == 1.0


def test_spend_accumulates_and_persists(tmp_path):
    guard, clock = make_guard(tmp_path)
    guard.record_token_usage("openrouter", 1_000)
    guard.record_token_usage("openrouter", 2_000)

    # A fresh guard over the same file sees the same totals.
    other = CostGuard(JsonBudgetStore(tmp_path / "cost-guard.json"), today=clock)
    spend = other.get_daily_spend("openrouter")
    assert spend["tokens"] == 3_000
    assert abs(spend["costUSD"] - 0.015) < 1e-12

    saved = json.loads((tmp_path / "cost-guard.json").read_text())
    assert saved["date"] == "2026-02-21"
    assert saved["provider"] == "openrouter"
    assert saved["totalTokens"] == 3_000


def test_new_day_resets_spend(tmp_path):
    guard, clock = make_guard(tmp_path)
    guard.record_token_usage("openrouter", 500_000)
    assert guard.is_budget_exceeded("openrouter") is True

    clock.day = date(2026, 2, 22)
    assert guard.is_budget_exceeded("openrouter") is False
    assert guard.get_daily_spend("openrouter") == {"tokens": 0, "costUSD": 0.0}


def test_switching_provider_resets_spend(tmp_path):
    guard, _ = make_guard(tmp_path)
    guard.record_token_usage("openrouter", 500_000)

    assert guard.is_budget_exceeded("groq") is False
    state = guard.record_token_usage("groq", 1_000)
    assert state.total_tokens == 1_000
    assert state.provider == "groq"


def test_self_hosted_provider_costs_nothing(tmp_path):
    guard, _ = make_guard(tmp_path)
    state = guard.record_token_usage("ollama", 10_000_000)
    assert state.estimated_cost_usd == 0.0
    assert guard.is_budget_exceeded("ollama") is False


def test_invalid_token_counts_are_ignored(tmp_path):
    guard, _ = make_guard(tmp_path)
    for value in (-100, -0.5, "500", None, True, float("nan"), float("inf")):
        guard.record_token_usage("openrouter", value)
    assert guard.get_daily_spend("openrouter")["tokens"] == 0


def test_corrupt_ledger_is_treated_as_empty(tmp_path):
    (tmp_path / "cost-guard.json").write_text("{not json")
    guard, _ = make_guard(tmp_path)

    assert guard.get_daily_spend("openrouter") == {"tokens": 0, "costUSD": 0.0}
    state = guard.record_token_usage("openrouter", 10)
    assert state.total_tokens == 10


def test_float_token_counts_are_recorded(tmp_path):
    guard, _ = make_guard(tmp_path)
    guard.record_token_usage("openrouter", 1500.0)
    guard.record_token_usage("openrouter", 99.9)
    assert guard.get_daily_spend("openrouter")["tokens"] == 1_599


def test_provider_keys_are_case_insensitive(tmp_path):
    guard, _ = make_guard(tmp_path, limit=1.0)
    guard.record_token_usage("OpenAI", 200_000)

    assert guard.is_budget_exceeded("openai") is True
    assert guard.is_budget_exceeded(" OPENAI ") is True
    assert guard.get_daily_spend("openai")["tokens"] == 200_000

    state = guard.record_token_usage("openai", 1_000)
    assert state.total_tokens == 201_000
    assert state.provider == "openai"


def test_mixed_case_ledger_entry_still_counts(tmp_path):
    (tmp_path / "cost-guard.json").write_text(json.dumps({
        "date": "2026-02-21",
        "totalTokens": 300_000,
        "estimatedCostUSD": 1.5,
        "provider": "OpenRouter",
    }))
    guard, _ = make_guard(tmp_path, limit=1.0)

    assert guard.is_budget_exceeded("openrouter") is True
