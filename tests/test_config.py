from __future__ import annotations

import pytest

from contact_crawler.config import BreakConditions, CrawlConfig, Settings, SiteResult


class TestCrawlConfig:
    @pytest.mark.parametrize("kwargs", [{"max_depth": -1}, {"max_depth": 4}, {"timeout_ms": 4999}])
    def test_ranges(self, kwargs):
        with pytest.raises(ValueError):
            CrawlConfig(**kwargs)


class TestSettings:
    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("SCRAPE_ENGINE", "http")
        monkeypatch.setenv("REQUEST_DELAY", "0.5")
        monkeypatch.setenv("MAX_CRITICAL_ERRORS", "2")

        settings = Settings.from_env()

        assert settings.port == 8080
        assert settings.engine == "http"
        assert settings.request_delay_s == 0.5
        assert settings.break_conditions == BreakConditions(max_critical_errors=2)


class TestSiteResult:
    def test_optional_fields_are_omitted(self):
        data = SiteResult(website="acme.com", emails=["a@acme.com"]).to_dict()
        assert data == {
            "website": "acme.com",
            "emails": ["a@acme.com"],
            "socialLinks": {},
            "phoneNumbers": [],
            "addresses": [],
        }

    def test_flags_survive_round_trip(self):
        original = SiteResult(
            website="down.example",
            error="boom",
            is_critical_error=False,
            skipped=True,
            original_data={"company": "Down"},
        )
        assert SiteResult.from_dict(original.to_dict()) == original

    def test_failed_follows_criticality_verdict(self):
        blocked = SiteResult(website="b.com", error="Website blocked by Cloudflare security")
        broken = SiteResult(website="c.com", error="Failed to scrape", is_critical_error=False)
        assert blocked.failed is False
        assert broken.failed is True
