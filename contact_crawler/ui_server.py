from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections import defaultdict, deque
from datetime import datetime, timezone
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

from contact_crawler.api import RequestValidationError, parse_scrape_request, parse_verify_request
from contact_crawler.config import FetchPolicy, Settings
from contact_crawler.errors import BatchAlreadyRunningError
from contact_crawler.exporter import export_results
from contact_crawler.fetcher import Sleep, make_fetcher_factory
from contact_crawler.logging_setup import configure_logging
from contact_crawler.orchestrator import BatchOrchestrator, FetcherFactory
from contact_crawler.progress import ProgressTracker
from contact_crawler.verification import verify_emails

logger = logging.getLogger(__name__)

VERSION = "2.0.0"
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

Reply = tuple[int, dict[str, Any]]


class ScrapeService:
    def __init__(
        self,
        settings: Settings,
        fetcher_factory: FetcherFactory | None = None,
        tracker: ProgressTracker | None = None,
        policy: FetchPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.tracker = tracker or ProgressTracker()
        policy = policy or FetchPolicy()
        self.orchestrator = BatchOrchestrator(
            fetcher_factory or make_fetcher_factory(settings.engine, policy),
            tracker=self.tracker,
            conditions=settings.break_conditions,
            policy=policy,
            request_delay_s=settings.request_delay_s,
            sleep=sleep,
        )

    def scrape(self, payload: Any) -> Reply:
        try:
            request = parse_scrape_request(payload)
        except RequestValidationError as exc:
            return HTTPStatus.BAD_REQUEST, exc.to_dict()

        busy = {"success": False, "message": "A scraping batch is already running"}
        if self.tracker.is_active:
            return HTTPStatus.CONFLICT, busy

        try:
            outcome = asyncio.run(
                self.orchestrator.run_batch(request.urls, request.csv_data, request.config())
            )
            outcome.files = export_results(
                outcome.results, self.settings.output_dir, len(request.urls)
            )
        except BatchAlreadyRunningError:
            return HTTPStatus.CONFLICT, busy
        except Exception as exc:
            logger.error("Scraping error: %s", exc)
            return HTTPStatus.INTERNAL_SERVER_ERROR, {
                "success": False,
                "message": "An error occurred during scraping",
                "error": str(exc),
            }
        return HTTPStatus.OK, outcome.to_dict()

    def status(self) -> Reply:
        return HTTPStatus.OK, self.tracker.to_dict()

    def verify(self, payload: Any) -> Reply:
        try:
            request = parse_verify_request(payload)
        except RequestValidationError as exc:
            return HTTPStatus.BAD_REQUEST, {
                "success": False,
                "message": "emails[] is required",
                "details": exc.details,
            }
        started = time.monotonic()
        try:
            results = asyncio.run(verify_emails(request.emails))
        except Exception as exc:
            logger.error("Verification error: %s", exc)
            return HTTPStatus.INTERNAL_SERVER_ERROR, {
                "success": False,
                "message": "Verification failed",
                "error": str(exc),
            }
        return HTTPStatus.OK, {
            "success": True,
            "total": len(results),
            "durationMs": int((time.monotonic() - started) * 1000),
            "results": results,
        }

    def health(self) -> Reply:
        return HTTPStatus.OK, {
            "success": True,
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        }


class RateLimiter:
    """Sliding-window request budget per client address."""

    def __init__(
        self,
        max_requests: int = 100,
        window_s: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def allow(self, client: str) -> bool:
        now = self._clock()
        with self._lock:
            hits = self._hits[client]
            while hits and now - hits[0] >= self.window_s:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True


class ContactCrawlerServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        service: ScrapeService,
        limiter: RateLimiter | None = None,
    ) -> None:
        super().__init__(address, RequestHandler)
        self.service = service
        self.limiter = limiter or RateLimiter(
            service.settings.rate_limit_max, service.settings.rate_limit_window_s
        )


class RequestHandler(BaseHTTPRequestHandler):
    server: ContactCrawlerServer

    def _cors_headers(self) -> None:
        self.send_header("Access-Control-Allow-Origin", self.server.service.settings.frontend_url)
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def _send_json(self, payload: dict[str, Any], status: int = 200) -> None:
        data = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self._cors_headers()
        self.end_headers()
        self.wfile.write(data)

    def _read_json(self) -> Any:
        length = int(self.headers.get("Content-Length", "0"))
        if not length:
            return {}
        return json.loads(self.rfile.read(length) or b"{}")

    def _throttled(self) -> bool:
        if not self.path.startswith("/api/"):
            return False
        client = self.client_address[0]
        if self.server.limiter.allow(client):
            return False
        logger.warning("Rate limit exceeded for %s", client)
        self._send_json({"error": RATE_LIMIT_MESSAGE}, HTTPStatus.TOO_MANY_REQUESTS)
        return True

    def do_OPTIONS(self) -> None:  # noqa: N802
        self.send_response(HTTPStatus.NO_CONTENT)
        self._cors_headers()
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802
        if self._throttled():
            return
        service = self.server.service
        routes = {"/api/scraping-status": service.status, "/api/health": service.health}
        handler = routes.get(self.path)
        if handler is None:
            self._send_json({"success": False, "message": "Not found"}, HTTPStatus.NOT_FOUND)
            return
        status, body = handler()
        self._send_json(body, status)

    def do_POST(self) -> None:  # noqa: N802
        if self._throttled():
            return
        service = self.server.service
        routes = {"/api/scrape": service.scrape, "/api/verify": service.verify}
        handler = routes.get(self.path)
        if handler is None:
            self._send_json({"success": False, "message": "Not found"}, HTTPStatus.NOT_FOUND)
            return
        try:
            payload = self._read_json()
        except json.JSONDecodeError as exc:
            self._send_json(
                {"success": False, "message": "Invalid JSON body", "error": str(exc)},
                HTTPStatus.BAD_REQUEST,
            )
            return
        status, body = handler(payload)
        self._send_json(body, status)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(settings: Settings, service: ScrapeService | None = None) -> ContactCrawlerServer:
    return ContactCrawlerServer((settings.host, settings.port), service or ScrapeService(settings))


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_dir, settings.log_level)
    server = make_server(settings)
    logger.info("API running on http://%s:%d", settings.host, server.server_address[1])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
