"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest

from config import DEFAULT_FINANCE_SYMBOLS, Config, parse_clock_time


class TestLoad:
    def test_defaults(self, monkeypatch):
        for key in ("LLM_API_KEY", "FALLBACK_MODELS", "CHECKPOINT_TIMES", "DATA_DIR", "DEV_MODE"):
            monkeypatch.delenv(key, raising=False)

        config = Config.load()

        assert config.summary_model == "z-ai/glm-4.5-air:free"
        assert config.checkpoint_times == ["23:05", "23:30", "23:50"]
        assert config.finance_symbols == DEFAULT_FINANCE_SYMBOLS
        assert config.summary_file == Path("data") / "daily-summaries.json"
        assert config.dev_mode is False

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("LLM_API_KEY", "key")
        monkeypatch.setenv("FALLBACK_MODELS", "a, b ,,c")
        monkeypatch.setenv("COUNTRY", "gb")
        monkeypatch.setenv("DEV_MODE", "yes")
        monkeypatch.setenv("MANUAL_TIMEOUT_SECONDS", "30.5")
        monkeypatch.setenv("DATA_DIR", "/tmp/digest")

        config = Config.load()

        assert config.fallback_models == ["a", "b", "c"]
        assert config.country == "GB"
        assert config.dev_mode is True
        assert config.manual_timeout_seconds == 30.5
        assert config.refresh_marker_file == Path("/tmp/digest/refresh-markers.json")

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")

        with pytest.raises(ValueError, match="PORT"):
            Config.load()


class TestValidate:
    def test_valid(self, config):
        assert config.validate() is None

    @pytest.mark.parametrize("field, value, fragment", [
        ("llm_api_key", "", "LLM_API_KEY"),
        ("market_timezone", "Mars/Olympus", "MARKET_TIMEZONE"),
        ("daily_run_time", "11pm", "Invalid time"),
        ("checkpoint_times", ["23:05", "24:00"], "Invalid time"),
        ("manual_timeout_seconds", 0, "MANUAL_TIMEOUT_SECONDS"),
        ("finance_symbols", [], "FINANCE_SYMBOLS"),
        ("log_format", "xml", "LOG_FORMAT"),
    ])
    def test_invalid(self, config, field, value, fragment):
        setattr(config, field, value)

        assert fragment in config.validate()


class TestParseClockTime:
    @pytest.mark.parametrize("value, expected", [("23:00", (23, 0)), ("00:05", (0, 5)), (" 09:30 ", (9, 30))])
    def test_valid(self, value, expected):
        assert parse_clock_time(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "9:30", "23:60", "noon"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_clock_time(value)
