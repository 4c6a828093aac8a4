from __future__ import annotations

import pytest

from contact_crawler.api import (
    RequestValidationError,
    parse_scrape_request,
    parse_verify_request,
)
from contact_crawler.config import CrawlConfig


class TestScrapeRequest:
    def test_defaults(self):
        request = parse_scrape_request({"urls": ["acme.com"]})
        assert request.urls == ["acme.com"]
        assert request.csv_data is None
        assert request.config() == CrawlConfig()

    def test_options_map_to_config(self):
        request = parse_scrape_request(
            {
                "urls": ["https://acme.com"],
                "csvData": [{"company": "Acme"}],
                "options": {
                    "maxDepth": 1,
                    "timeout": 15000,
                    "followRedirects": False,
                    "extractPhoneNumbers": True,
                    "smartCrawling": False,
                },
            }
        )
        assert request.csv_data == [{"company": "Acme"}]
        assert request.config() == CrawlConfig(
            max_depth=1,
            timeout_ms=15000,
            follow_redirects=False,
            extract_phone_numbers=True,
            smart_crawling=False,
        )

    def test_string_flags_are_parsed(self):
        request = parse_scrape_request(
            {"urls": ["acme.com"], "options": {"smartCrawling": "false", "maxDepth": "1"}}
        )
        assert request.config().smart_crawling is False
        assert request.config().max_depth == 1

    def test_invalid_url_reports_location(self):
        with pytest.raises(RequestValidationError) as excinfo:
            parse_scrape_request({"urls": ["acme.com", "not a url"]})

        details = excinfo.value.details
        assert len(details) == 1
        assert details[0]["loc"] == ["urls", 1]
        assert "Invalid URL format" in details[0]["msg"]
        body = excinfo.value.to_dict()
        assert body["success"] is False
        assert body["message"] == "Invalid request data"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"urls": []},
            {"urls": [f"site{n}.com" for n in range(101)]},
            {"urls": ["acme.com"], "options": {"maxDepth": 4}},
            {"urls": ["acme.com"], "options": {"timeout": 1000}},
            {"urls": ["acme.com"], "options": {"timeout": 60001}},
            {"urls": ["acme.com"], "options": {"depth": 1}},
        ],
    )
    def test_rejected_payloads(self, payload):
        with pytest.raises(RequestValidationError):
            parse_scrape_request(payload)


class TestVerifyRequest:
    def test_accepts_list(self):
        assert parse_verify_request({"emails": ["a@acme.com"]}).emails == ["a@acme.com"]

    def test_requires_emails(self):
        with pytest.raises(RequestValidationError) as excinfo:
            parse_verify_request({"emails": []})
        assert excinfo.value.details[0]["loc"] == ["emails"]
