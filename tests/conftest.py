from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from bs4 import BeautifulSoup

from contact_crawler.extractor import extract_links
from contact_crawler.fetcher import PageContent


def make_page(url: str, html: str, text: str | None = None) -> PageContent:
    if text is None:
        text = BeautifulSoup(html, "html.parser").get_text("\n", strip=True)
    return PageContent(url=url, html=html, text=text, links=extract_links(html, url))


class FakeFetcher:
    """Serves canned pages and records every fetch."""

    def __init__(self, pages: dict[str, PageContent | Exception]) -> None:
        self.pages = pages
        self.calls: list[str] = []
        self.kwargs: list[dict] = []

    async def fetch(self, url, timeout_ms, *, attempts=None, settle_ms=None):
        self.calls.append(url)
        self.kwargs.append({"timeout_ms": timeout_ms, "attempts": attempts, "settle_ms": settle_ms})
        page = self.pages.get(url)
        if page is None:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        if isinstance(page, Exception):
            raise page
        return page


class FactoryProbe:
    def __init__(self, fetcher: FakeFetcher, fail_on_enter: Exception | None = None) -> None:
        self.fetcher = fetcher
        self.fail_on_enter = fail_on_enter
        self.entered = 0
        self.exited = 0

    def __call__(self, config):
        return self._session(config)

    @asynccontextmanager
    async def _session(self, config):
        if self.fail_on_enter is not None:
            raise self.fail_on_enter
        self.entered += 1
        try:
            yield self.fetcher
        finally:
            self.exited += 1


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def page():
    return make_page


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def factory_probe():
    return FactoryProbe


@pytest.fixture
def sleeper():
    return SleepRecorder()
