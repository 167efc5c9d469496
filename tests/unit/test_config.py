"""Tests for Settings loading and validation."""

import logging
from pathlib import Path

from pydantic import ValidationError
import pytest

from hister.config import DEFAULT_SENSITIVE_CONTENT_PATTERNS, Settings
from hister.observability.logging import JsonFormatter


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = Settings(data_dir=tmp_path)
        assert settings.index_path == tmp_path / "index.db"
        assert settings.scratch_index_path == tmp_path / "tmp_index.db"
        assert settings.rules_path == tmp_path / "rules.json"
        assert settings.favicon_timeout == 10.0
        assert settings.iterate_page_size == 20
        assert settings.sensitive_content_patterns == DEFAULT_SENSITIVE_CONTENT_PATTERNS

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HISTER_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("HISTER_SEARCH_LIMIT", "25")
        monkeypatch.setenv("HISTER_USE_READABILITY", "true")

        settings = Settings()

        assert settings.data_dir == tmp_path
        assert settings.search_limit == 25
        assert settings.use_readability is True

    def test_data_dir_expands_user(self):
        settings = Settings(data_dir="~/hister-data")
        assert settings.data_dir == Path.home() / "hister-data"

    def test_invalid_pattern_rejected(self):
        with pytest.raises(ValidationError):
            Settings(sensitive_content_patterns={"broken": "(unclosed"})

    def test_invalid_pattern_name_rejected(self):
        with pytest.raises(ValidationError):
            Settings(sensitive_content_patterns={"bad-name": "x"})

    def test_base_url_normalized_and_validated(self):
        assert Settings(base_url="https://hister.example/").base_url == "https://hister.example"
        with pytest.raises(ValidationError):
            Settings(base_url="not a url")

    def test_is_own_url(self):
        settings = Settings(base_url="http://localhost:4433")
        assert settings.is_own_url("http://localhost:4433/search?q=x")
        assert settings.is_own_url("http://localhost:4433")
        assert not settings.is_own_url("http://localhost:44330/")

    def test_ensure_data_dir(self, tmp_path):
        settings = Settings(data_dir=tmp_path / "nested" / "dir")
        assert settings.ensure_data_dir().is_dir()

    def test_inline_flag_patterns_accepted(self):
        patterns = {"generic_api_key": r"(?i)(api|token)[\s:=]+[a-z0-9]{32,}", "ticket": r"SEC-\d+"}
        settings = Settings(sensitive_content_patterns=patterns)
        assert settings.sensitive_content_patterns == patterns

    def test_default_patterns_compile_together(self):
        settings = Settings()
        assert {"generic_api_key", "credit_card", "twitter_api_key"} <= set(settings.sensitive_content_patterns)


def test_setup_logging_uses_settings(restore_root_logger):
    Settings(log_level="warning", log_json=True).setup_logging()

    assert restore_root_logger.level == logging.WARNING
    assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)
