"""Tests for configuration loading, logging helpers and clocks."""

from datetime import timedelta

import pytest

from src.tiered_router.utils import (
    ConfigurationError,
    ManualClock,
    generate_id,
    get_config,
    reset_config,
    sanitize_for_logging,
)


class TestConfiguration:
    def test_defaults(self):
        config = get_config()
        assert config["TIER_DIRECT_MAX"] == 3.5
        assert config["TIER_1_MAX"] == 6.5
        assert config["TIER_2_MAX"] == 8.5
        assert config["MAX_ESCALATION_HOPS"] == 3
        assert config["CACHE_TTL_DAYS_NORMAL"] == 3
        assert config["QUALITY_ACCEPTABLE_THRESHOLD"] == 0.75
        assert config["PATTERN_LIBRARY_SIZE"] == 500
        assert config["PROPOSAL_HISTORY_SIZE"] == 20

    def test_config_is_cached_until_reset(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("CACHE_MAX_SIZE", "5")
        assert get_config() is first
        reset_config()
        assert get_config()["CACHE_MAX_SIZE"] == 5

    def test_invalid_number_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("MAX_ESCALATION_HOPS", "many")
        monkeypatch.setenv("SIMILARITY_THRESHOLD", "high")
        config = get_config()
        assert config["MAX_ESCALATION_HOPS"] == 3
        assert config["SIMILARITY_THRESHOLD"] == 0.7

    def test_non_increasing_boundaries_rejected(self, monkeypatch):
        monkeypatch.setenv("TIER_1_MAX", "3.0")
        with pytest.raises(ConfigurationError):
            get_config()

    def test_equal_boundaries_rejected(self, monkeypatch):
        monkeypatch.setenv("TIER_2_MAX", "6.5")
        with pytest.raises(ConfigurationError):
            get_config()

    def test_non_positive_timeout_rejected(self, monkeypatch):
        monkeypatch.setenv("CONSULTATION_TIMEOUT_SECONDS", "0")
        with pytest.raises(ConfigurationError):
            get_config()

    def test_quality_thresholds_must_be_ordered(self, monkeypatch):
        monkeypatch.setenv("QUALITY_ACCEPTABLE_THRESHOLD", "0.95")
        monkeypatch.setenv("QUALITY_EXCELLENT_THRESHOLD", "0.9")
        with pytest.raises(ConfigurationError):
            get_config()


class TestHelpers:
    def test_generate_id_prefix(self):
        value = generate_id("proposal")
        assert value.startswith("proposal_")
        assert generate_id() != generate_id()

    def test_sanitize_masks_tokens_and_braces(self):
        text = "Use key sk-abc123 in {config}"
        sanitized = sanitize_for_logging(text)
        assert "sk-abc123" not in sanitized
        assert "[REDACTED]" in sanitized
        assert "{" not in sanitized and "}" not in sanitized

    def test_sanitize_truncates(self):
        assert sanitize_for_logging("a b " * 100, max_length=10).endswith("...")
        assert sanitize_for_logging("") == ""


class TestManualClock:
    def test_advance(self):
        clock = ManualClock()
        start = clock.now()
        clock.advance(hours=2)
        assert clock.now() - start == timedelta(hours=2)
