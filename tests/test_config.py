"""Tests for configuration loading."""

from pathlib import Path

import yaml

from jobgate.config import (
    PipelineConfig,
    apply_env_overrides,
    load_config,
    parse_float,
    parse_positive_int,
    parse_proxy_urls,
)


def test_load_default_config():
    """Loading the project's config.yaml should work."""
    config = load_config(environ={})
    assert isinstance(config, PipelineConfig)
    assert len(config.sources) > 0
    assert len(config.queries) > 0
    assert config.persist_concurrency == 15
    assert config.headless_skip_threshold == 25


def test_load_missing_file():
    """Missing config file returns defaults."""
    config = load_config("/nonexistent/path.yaml", environ={})
    assert isinstance(config, PipelineConfig)
    assert config.sources == []
    assert config.llm_daily_budget_usd == 1.0


def test_enabled_sources_filter():
    """Only enabled sources are returned by enabled_sources."""
    config = load_config(environ={})
    config.sources[0].enabled = False
    assert config.sources[0] not in config.enabled_sources


def test_custom_config(tmp_path):
    """A custom config with one source and mixed queries should parse correctly."""
    data = {
        "output_dir": "test_output",
        "log_level": "DEBUG",
        "persist_concurrency": 4,
        "headless_skip_threshold": "10",
        "proxy_urls": ["http://a:1", "http://b:2", "http://a:1"],
        "queries": [
            "data engineer",
            {"keywords": "sre", "location": "remote", "max_results": 5},
        ],
        "sources": [
            {
                "name": "test-greenhouse",
                "source_type": "greenhouse",
                "enabled": True,
                "company": "TestCo",
                "params": {"board_token": "testco"},
            }
        ],
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))

    config = load_config(path, environ={})
    assert config.output_dir == "test_output"
    assert config.log_level == "DEBUG"
    assert config.persist_concurrency == 4
    assert config.headless_skip_threshold == 10
    assert config.proxy_urls == ["http://a:1", "http://b:2"]
    assert [q.keywords for q in config.queries] == ["data engineer", "sre"]
    assert config.queries[1].location == "remote"
    assert config.queries[1].max_results == 5
    assert config.sources[0].source_type == "greenhouse"
    assert config.sources[0].params["board_token"] == "testco"


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    config = load_config(path, environ={})
    assert config.sources == []
    assert config.queries == []


def test_yaml_provider_is_lowercased(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"llm_provider": " OpenRouter "}))
    config = load_config(path, environ={})
    assert config.llm_provider == "openrouter"


def test_env_overrides():
    env = {
        "PERSIST_CONCURRENCY": "8",
        "LLM_DAILY_BUDGET_USD": "2.5",
        "PROXY_URLS": " http://p1:80 , http://p2:80,,",
        "HEADLESS_SKIP_THRESHOLD": "40",
        "LLM_PROVIDER": " OpenRouter ",
    }
    config = apply_env_overrides(PipelineConfig(), env)
    assert config.persist_concurrency == 8
    assert config.llm_daily_budget_usd == 2.5
    assert config.proxy_urls == ["http://p1:80", "http://p2:80"]
    assert config.headless_skip_threshold == 40
    assert config.llm_provider == "openrouter"


def test_bad_env_values_fall_back_to_defaults():
    env = {
        "PERSIST_CONCURRENCY": "0",
        "LLM_DAILY_BUDGET_USD": "cheap",
        "HEADLESS_SKIP_THRESHOLD": "-2",
    }
    config = PipelineConfig(persist_concurrency=3, headless_skip_threshold=7)
    apply_env_overrides(config, env)
    assert config.persist_concurrency == 15
    assert config.llm_daily_budget_usd == 1.0
    assert config.headless_skip_threshold == 25


def test_zero_budget_is_kept():
    config = apply_env_overrides(PipelineConfig(), {"LLM_DAILY_BUDGET_USD": "0"})
    assert config.llm_daily_budget_usd == 0.0


def test_value_parsers():
    assert parse_positive_int("12", 5) == 12
    assert parse_positive_int("3.7", 5) == 3
    assert parse_positive_int("nan", 5) == 5
    assert parse_positive_int(False, 5) == 5
    assert parse_float("inf", 1.0) == 1.0
    assert parse_float(" 0.25 ", 1.0) == 0.25
    assert parse_proxy_urls("") == []
    assert parse_proxy_urls("http://a:1,http://a:1") == ["http://a:1"]


def test_default_config_path_is_repo_root():
    from jobgate.config import DEFAULT_CONFIG_PATH

    assert DEFAULT_CONFIG_PATH == Path(__file__).resolve().parent.parent / "config.yaml"
