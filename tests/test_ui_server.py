from __future__ import annotations

import threading

import pytest
import requests

from contact_crawler.config import Settings
from contact_crawler.ui_server import RateLimiter, ScrapeService, make_server


@pytest.fixture
def settings(tmp_path):
    return Settings(host="127.0.0.1", port=0, output_dir=str(tmp_path / "output"))


@pytest.fixture
def service(settings, page, fake_fetcher, factory_probe, sleeper):
    fetcher = fake_fetcher(
        {"https://acme.com": page("https://acme.com", "<p>hello@acme.com</p>")}
    )
    return ScrapeService(settings, fetcher_factory=factory_probe(fetcher), sleep=sleeper)


class TestScrapeService:
    def test_scrape_runs_batch_and_exports(self, service, settings, tmp_path):
        status, body = service.scrape({"urls": ["acme.com", "gone.example"]})

        assert status == 200
        assert body["success"] is True
        assert body["message"] == "Scraping completed successfully"
        assert body["duration"].endswith("ms")
        assert body["statistics"]["successfulUrls"] == 1
        assert body["statistics"]["errorUrls"] == 1
        assert body["errorBreakInfo"] is None
        assert body["results"][0] == {
            "website": "acme.com",
            "emails": ["hello@acme.com"],
            "socialLinks": {},
            "phoneNumbers": [],
            "addresses": [],
            "optimizationNote": "Skipped deep crawling - found 1 email(s) on homepage",
        }
        output = tmp_path / "output"
        assert (output / body["files"]["json"]).exists()
        assert (output / body["files"]["csv"]).exists()

    def test_invalid_request(self, service):
        status, body = service.scrape({"urls": []})
        assert status == 400
        assert body["message"] == "Invalid request data"
        assert body["details"][0]["loc"] == ["urls"]

    def test_busy_batch_is_rejected(self, service):
        service.tracker.start(5)
        status, body = service.scrape({"urls": ["acme.com"]})
        assert status == 409
        assert body["success"] is False

    def test_aborted_batch(self, settings, fake_fetcher, factory_probe, sleeper):
        probe = factory_probe(fake_fetcher({}), fail_on_enter=RuntimeError("chromium missing"))
        service = ScrapeService(settings, fetcher_factory=probe, sleep=sleeper)

        status, body = service.scrape({"urls": ["acme.com"]})

        assert status == 500
        assert body == {
            "success": False,
            "message": "An error occurred during scraping",
            "error": "chromium missing",
        }
        assert service.tracker.is_active is False

    def test_status_before_any_batch(self, service):
        status, body = service.status()
        assert status == 200
        assert body["isActive"] is False
        assert body["completedUrls"] == []

    def test_verify_requires_emails(self, service):
        status, body = service.verify({})
        assert status == 400
        assert body["message"] == "emails[] is required"

    def test_health(self, service):
        status, body = service.health()
        assert status == 200
        assert body["status"] == "OK"
        assert body["version"] == "2.0.0"


class TestHttpServer:
    @pytest.fixture
    def base_url(self, settings, service):
        server = make_server(settings, service)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        yield f"http://127.0.0.1:{server.server_address[1]}"
        server.shutdown()
        server.server_close()

    def test_scrape_then_status(self, base_url):
        response = requests.post(f"{base_url}/api/scrape", json={"urls": ["acme.com"]}, timeout=10)
        assert response.status_code == 200
        assert response.json()["results"][0]["emails"] == ["hello@acme.com"]
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"

        status = requests.get(f"{base_url}/api/scraping-status", timeout=10).json()
        assert status["isComplete"] is True
        assert status["completedUrls"][0]["status"] == "success"

    def test_bad_json(self, base_url):
        response = requests.post(
            f"{base_url}/api/scrape",
            data="{not json",
            headers={"Content-Type": "application/json"},
            timeout=10,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON body"

    def test_unknown_route(self, base_url):
        response = requests.get(f"{base_url}/api/nothing", timeout=10)
        assert response.status_code == 404

    def test_preflight(self, base_url):
        response = requests.options(f"{base_url}/api/scrape", timeout=10)
        assert response.status_code == 204
        assert "POST" in response.headers["Access-Control-Allow-Methods"]


class TestRateLimiter:
    def test_window_per_client(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=2, window_s=60.0, clock=lambda: now[0])

        assert limiter.allow("10.0.0.1")
        assert limiter.allow("10.0.0.1")
        assert not limiter.allow("10.0.0.1")
        assert limiter.allow("10.0.0.2")

        now[0] = 60.0
        assert limiter.allow("10.0.0.1")

    def test_server_answers_429_when_budget_is_spent(self, tmp_path):
        settings = Settings(
            host="127.0.0.1",
            port=0,
            output_dir=str(tmp_path / "output"),
            rate_limit_max=2,
        )
        server = make_server(settings, ScrapeService(settings))
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        base_url = f"http://127.0.0.1:{server.server_address[1]}"
        try:
            codes = [
                requests.get(f"{base_url}/api/health", timeout=10).status_code for _ in range(3)
            ]
            last = requests.get(f"{base_url}/api/health", timeout=10)
        finally:
            server.shutdown()
            server.server_close()

        assert codes == [200, 200, 429]
        assert last.json() == {"error": "Too many requests from this IP, please try again later."}
