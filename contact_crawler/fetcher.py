from __future__ import annotations

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, AsyncIterator, Awaitable, Callable, Protocol

import requests
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route, async_playwright

from contact_crawler.config import CrawlConfig, FetchPolicy
from contact_crawler.extractor import extract_links

logger = logging.getLogger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:127.0) Gecko/20100101 Firefox/127.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36 Edg/126.0.0.0",
)

HTTP_HEADERS: dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}

BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font", "stylesheet", "manifest"})

BROWSER_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--disable-extensions",
    "--disable-blink-features=AutomationControlled",
]

VIEWPORT = {"width": 1920, "height": 1080}

Sleep = Callable[[float], Awaitable[Any]]


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


@dataclass
class PageContent:
    url: str
    html: str
    text: str
    links: list[str] = field(default_factory=list)


class Fetcher(Protocol):
    async def fetch(
        self,
        url: str,
        timeout_ms: int,
        *,
        attempts: int | None = None,
        settle_ms: int | None = None,
    ) -> PageContent: ...


async def navigate_with_retry(
    navigate: Callable[[str, int], Awaitable[Any]],
    url: str,
    attempts: int,
    timeout_ms: int,
    backoff_ms: int,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await navigate(url, timeout_ms)
        except Exception as exc:
            last_error = exc
            if attempt < attempts:
                logger.warning(
                    "Navigation attempt %d failed for %s (timeout: %dms), retrying: %s",
                    attempt,
                    url,
                    timeout_ms,
                    exc,
                )
                await sleep(backoff_ms * attempt / 1000)
    assert last_error is not None
    raise last_error


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserFetcher:
    def __init__(self, page: Page, policy: FetchPolicy | None = None) -> None:
        self._page = page
        self.policy = policy or FetchPolicy()

    @classmethod
    @asynccontextmanager
    async def launch(
        cls,
        policy: FetchPolicy | None = None,
        headless: bool = True,
    ) -> AsyncIterator[BrowserFetcher]:
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=headless, args=BROWSER_ARGS)
            try:
                context = await browser.new_context(
                    viewport=VIEWPORT,
                    extra_http_headers=HTTP_HEADERS,
                )
                page = await context.new_page()
                await page.route("**/*", _block_heavy_resources)
                logger.info("Browser session started")
                yield cls(page, policy)
            finally:
                await browser.close()
                logger.info("Browser session closed")

    async def _navigate(self, url: str, timeout_ms: int) -> None:
        await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    async def _read_content(self, url: str) -> tuple[str, str]:
        try:
            html = await self._page.content()
            text = await self._page.evaluate("() => document.body.innerText")
        except PlaywrightError as exc:
            logger.warning("Failed to get page content for %s, using fallback: %s", url, exc)
            html = await self._page.evaluate("() => document.documentElement.outerHTML")
            text = await self._page.evaluate("() => document.documentElement.innerText || ''")
        return html or "", text or ""

    async def fetch(
        self,
        url: str,
        timeout_ms: int,
        *,
        attempts: int | None = None,
        settle_ms: int | None = None,
    ) -> PageContent:
        await self._page.set_extra_http_headers(
            {**HTTP_HEADERS, "User-Agent": random_user_agent()}
        )
        await navigate_with_retry(
            self._navigate,
            url,
            attempts or self.policy.attempts,
            min(timeout_ms, self.policy.attempt_timeout_cap_ms),
            self.policy.backoff_ms,
        )
        settle = self.policy.settle_ms if settle_ms is None else settle_ms
        await self._page.wait_for_timeout(settle)

        html, text = await self._read_content(url)
        final_url = self._page.url or url
        return PageContent(url=final_url, html=html, text=text, links=extract_links(html, final_url))


class HttpFetcher:
    """Plain HTTP engine for sites that do not need JavaScript rendering."""

    def __init__(
        self,
        session: requests.Session,
        policy: FetchPolicy | None = None,
        follow_redirects: bool = True,
    ) -> None:
        self._session = session
        self.policy = policy or FetchPolicy()
        self.follow_redirects = follow_redirects

    @classmethod
    @asynccontextmanager
    async def launch(
        cls,
        policy: FetchPolicy | None = None,
        follow_redirects: bool = True,
    ) -> AsyncIterator[HttpFetcher]:
        session = requests.Session()
        session.headers.update(HTTP_HEADERS)
        try:
            yield cls(session, policy, follow_redirects)
        finally:
            session.close()

    def _get(self, url: str, timeout_ms: int) -> requests.Response:
        response = self._session.get(
            url,
            headers={"User-Agent": random_user_agent()},
            timeout=timeout_ms / 1000,
            allow_redirects=self.follow_redirects,
        )
        response.raise_for_status()
        return response

    async def _navigate(self, url: str, timeout_ms: int) -> requests.Response:
        return await asyncio.to_thread(self._get, url, timeout_ms)

    async def fetch(
        self,
        url: str,
        timeout_ms: int,
        *,
        attempts: int | None = None,
        settle_ms: int | None = None,
    ) -> PageContent:
        response = await navigate_with_retry(
            self._navigate,
            url,
            attempts or self.policy.attempts,
            min(timeout_ms, self.policy.attempt_timeout_cap_ms),
            self.policy.backoff_ms,
        )
        html = response.text
        text = BeautifulSoup(html, "html.parser").get_text("\n", strip=True)
        return PageContent(url=response.url, html=html, text=text, links=extract_links(html, response.url))


ENGINES = ("browser", "http")


def make_fetcher_factory(
    engine: str = "browser",
    policy: FetchPolicy | None = None,
) -> Callable[[CrawlConfig], AsyncContextManager[Fetcher]]:
    if engine not in ENGINES:
        raise ValueError(f"Unknown engine {engine!r}, expected one of {', '.join(ENGINES)}")

    def factory(config: CrawlConfig) -> AsyncContextManager[Fetcher]:
        if engine == "http":
            return HttpFetcher.launch(policy, follow_redirects=config.follow_redirects)
        return BrowserFetcher.launch(policy)

    return factory
