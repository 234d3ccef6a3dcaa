import pytest
from pydantic import ValidationError

from knowledge_search.core.config import SearchConfig, Settings
from knowledge_search.domain.models import DEFAULT_RATE_LIMITS, RateLimitRule, WindowUnit


def test_defaults():
    config = SearchConfig()

    assert (config.semantic_weight, config.keyword_weight) == (0.7, 0.3)
    assert (config.memory_weight, config.chunk_weight) == (0.6, 0.4)
    assert config.rate_limits == DEFAULT_RATE_LIMITS
    assert config.verification_enabled is False


def test_partial_rate_limits_keep_other_defaults():
    config = SearchConfig(rate_limits={"search": RateLimitRule(limit=5, window=WindowUnit.HOUR)})

    assert config.rate_limits["search"].limit == 5
    assert config.rate_limits["search"].window_seconds == 3_600
    assert config.rate_limits["embed"] == DEFAULT_RATE_LIMITS["embed"]


def test_weights_are_bounded():
    with pytest.raises(ValidationError):
        SearchConfig(semantic_weight=1.5)


def test_config_is_frozen():
    with pytest.raises(ValidationError):
        SearchConfig().rerank_enabled = False


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("SEARCH__SEMANTIC_WEIGHT", "0.8")
    monkeypatch.setenv("SEARCH__RERANK_ENABLED", "false")
    monkeypatch.setenv("VOYAGE_API_KEY", "pa-test")

    settings = Settings(_env_file=None)

    assert settings.search_config().semantic_weight == 0.8
    assert settings.search_config().rerank_enabled is False
    assert settings.rerank_configured


def test_rerank_not_configured_without_key(monkeypatch):
    monkeypatch.delenv("VOYAGE_API_KEY", raising=False)
    assert not Settings(_env_file=None).rerank_configured
