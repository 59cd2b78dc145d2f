"""Tests for configuration loading."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from citekit import CitekitConfig, RateLimit, SourceSettings, load_config


class TestSourceSettings:
    """Tests for per-source defaults."""

    @pytest.mark.parametrize(
        "source,ttl,delay",
        [("doi", 7 * 86400, 0.1), ("pubmed", 7 * 86400, 0.2), ("isbn", 30 * 86400, 0.1), ("url_scraper", 86400, 0.5)],
    )
    def test_defaults(self, source, ttl, delay):
        settings = SourceSettings.default(source)
        assert settings.cache_ttl == ttl
        assert settings.bulk_delay == delay

    def test_rate_limit(self):
        assert SourceSettings.default("doi").rate_limit == RateLimit(50, 1000)


class TestCitekitConfig:
    """Tests for CitekitConfig."""

    def test_defaults(self):
        config = CitekitConfig()
        assert config.timeout == 30.0
        assert config.fallback_on_error is True
        assert set(config.sources) == {"doi", "pubmed", "isbn", "url_scraper"}

    def test_from_dict_merges_source_overrides(self):
        config = CitekitConfig.from_dict({"timeout": 5, "sources": {"pubmed": {"requests_per_minute": 600}}})
        assert config.timeout == 5.0
        assert config.source("pubmed").requests_per_minute == 600
        assert config.source("pubmed").requests_per_hour == 600
        assert config.rate_limits()["pubmed"] == RateLimit(600, 600)

    def test_round_trip(self):
        config = CitekitConfig(contact_email="me@example.org", cache_path="/tmp/c.json")
        assert CitekitConfig.from_dict(config.to_dict()) == config

    def test_polite_user_agent(self):
        assert CitekitConfig().polite_user_agent() == "citekit/0.1"
        assert CitekitConfig(contact_email="me@example.org").polite_user_agent() == "citekit/0.1 (mailto:me@example.org)"

    def test_with_env_fills_missing_only(self):
        env = {"GOOGLE_BOOKS_API_KEY": "gb", "NCBI_API_KEY": "ncbi", "CITEKIT_CONTACT_EMAIL": "env@example.org"}
        with patch.dict("os.environ", env, clear=True):
            config = CitekitConfig(ncbi_api_key="explicit").with_env()
        assert config.google_books_api_key == "gb"
        assert config.ncbi_api_key == "explicit"
        assert config.contact_email == "env@example.org"


class TestLoadConfig:
    """Tests for YAML loading."""

    def test_no_path_gives_defaults(self):
        assert load_config(None) == CitekitConfig()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "citekit.yaml"
        path.write_text(
            "contact_email: me@example.org\n"
            "fallback_on_error: false\n"
            "sources:\n"
            "  url_scraper:\n"
            "    bulk_delay: 2.0\n"
            "    timeout: 15\n"
        )
        config = load_config(str(path))
        assert config.contact_email == "me@example.org"
        assert config.fallback_on_error is False
        assert config.source("url_scraper").bulk_delay == 2.0
        assert config.source("url_scraper").timeout == 15

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == CitekitConfig()
