from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Callable, Sequence

from contact_crawler.config import BreakConditions, CrawlConfig, FetchPolicy, SiteResult
from contact_crawler.crawler import crawl_site, normalize_url
from contact_crawler.errors import ErrorStats, should_break
from contact_crawler.fetcher import Fetcher, Sleep
from contact_crawler.progress import CompletedUrl, ProgressTracker

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[CrawlConfig], AsyncContextManager[Fetcher]]

PRE_CHECK_SKIP = "Skipped due to error break condition: {reason}"
CRITICAL_SKIP = "Skipped due to critical error: {reason}"


@dataclass
class BatchStatistics:
    total_urls: int
    processed_urls: int
    successful_urls: int
    error_urls: int
    skipped_urls: int
    consecutive_errors: int
    critical_errors: int

    @property
    def error_rate(self) -> str:
        if not self.processed_urls:
            return "0%"
        return f"{self.error_urls / self.processed_urls * 100:.1f}%"

    @classmethod
    def from_results(
        cls, total_urls: int, results: Sequence[SiteResult], stats: ErrorStats
    ) -> BatchStatistics:
        crawled = [r for r in results if not r.skipped]
        return cls(
            total_urls=total_urls,
            processed_urls=len(results),
            successful_urls=sum(1 for r in crawled if not r.failed),
            error_urls=sum(1 for r in crawled if r.failed),
            skipped_urls=len(results) - len(crawled),
            consecutive_errors=stats.consecutive_errors,
            critical_errors=stats.critical_errors,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalUrls": self.total_urls,
            "processedUrls": self.processed_urls,
            "successfulUrls": self.successful_urls,
            "errorUrls": self.error_urls,
            "skippedUrls": self.skipped_urls,
            "errorRate": self.error_rate,
            "consecutiveErrors": self.consecutive_errors,
            "criticalErrors": self.critical_errors,
        }


@dataclass
class BatchOutcome:
    results: list[SiteResult]
    statistics: BatchStatistics
    error_stats: ErrorStats
    duration_ms: int
    files: dict[str, str] = field(default_factory=dict)

    @property
    def broken(self) -> bool:
        return self.error_stats.should_break

    @property
    def success(self) -> bool:
        return not self.broken or self.statistics.successful_urls > 0

    @property
    def message(self) -> str:
        if self.broken:
            return (
                "Scraping stopped early due to error conditions: "
                f"{self.error_stats.break_reason}"
            )
        return "Scraping completed successfully"

    @property
    def error_break_info(self) -> dict[str, Any] | None:
        if not self.broken:
            return None
        return {
            "broken": True,
            "reason": self.error_stats.break_reason,
            "breakPoint": self.statistics.processed_urls,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "duration": f"{self.duration_ms}ms",
            "statistics": self.statistics.to_dict(),
            "errorBreakInfo": self.error_break_info,
            "results": [result.to_dict() for result in self.results],
            "files": dict(self.files),
        }


class BatchOrchestrator:
    """Runs one batch of seed URLs strictly one after another.

    Error counters assume sequential attribution, so sites are never crawled
    concurrently and a single fetcher session serves the whole batch.
    """

    def __init__(
        self,
        fetcher_factory: FetcherFactory,
        tracker: ProgressTracker | None = None,
        conditions: BreakConditions | None = None,
        policy: FetchPolicy | None = None,
        request_delay_s: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.fetcher_factory = fetcher_factory
        self.tracker = tracker or ProgressTracker()
        self.conditions = conditions or BreakConditions()
        self.policy = policy or FetchPolicy()
        self.request_delay_s = request_delay_s
        self._sleep = sleep

    async def run_batch(
        self,
        urls: Sequence[str],
        original_rows: Sequence[dict[str, Any] | None] | None = None,
        config: CrawlConfig | None = None,
    ) -> BatchOutcome:
        config = config or CrawlConfig()
        rows = list(original_rows or [])
        started = time.monotonic()
        stats = ErrorStats()
        results: list[SiteResult] = []

        logger.info("Starting scraping for %d URLs", len(urls))
        self.tracker.start(len(urls))
        try:
            async with self.fetcher_factory(config) as fetcher:
                await self._process(fetcher, list(urls), rows, config, stats, results)
        except Exception:
            logger.exception("Scraping batch aborted")
            self.tracker.fail()
            raise

        self.tracker.finish(results, stats)
        duration_ms = int((time.monotonic() - started) * 1000)
        statistics = BatchStatistics.from_results(len(urls), results, stats)
        logger.info(
            "Scraping finished in %dms: %d ok, %d errors, %d skipped",
            duration_ms,
            statistics.successful_urls,
            statistics.error_urls,
            statistics.skipped_urls,
        )
        return BatchOutcome(
            results=results,
            statistics=statistics,
            error_stats=stats,
            duration_ms=duration_ms,
        )

    async def _process(
        self,
        fetcher: Fetcher,
        urls: list[str],
        rows: list[dict[str, Any] | None],
        config: CrawlConfig,
        stats: ErrorStats,
        results: list[SiteResult],
    ) -> None:
        total = len(urls)
        for index, url in enumerate(urls):
            self.tracker.set_current(index, url)
            logger.info("Scraping %d/%d: %s", index + 1, total, url)

            decision = should_break(stats, index, total, self.conditions)
            if decision.should_break:
                logger.error("Breaking scraping process: %s", decision.reason)
                stats.mark_break(decision.reason)
                self._skip_from(
                    index, urls, rows, PRE_CHECK_SKIP.format(reason=decision.reason), results
                )
                break

            try:
                result = await crawl_site(fetcher, normalize_url(url), config, self.policy)
            except Exception as exc:
                message = str(exc)
                logger.error("Error scraping %s: %s", url, message)
                critical = stats.record_failure(message)
                results.append(
                    SiteResult(
                        website=url,
                        error=message,
                        is_critical_error=critical,
                        original_data=_row_at(rows, index),
                    )
                )
                self.tracker.add_completed(
                    CompletedUrl(
                        index=index,
                        url=url,
                        status="error",
                        error=message,
                        duration=self.tracker.elapsed_ms(),
                    ),
                    results,
                )
                if critical:
                    decision = should_break(stats, index, total, self.conditions)
                    if decision.should_break:
                        logger.error("Breaking due to critical error: %s", decision.reason)
                        stats.mark_break(decision.reason)
                        self._skip_from(
                            index + 1,
                            urls,
                            rows,
                            CRITICAL_SKIP.format(reason=decision.reason),
                            results,
                        )
                        break
            else:
                result.website = url
                result.original_data = _row_at(rows, index)
                results.append(result)
                stats.record_success()
                self.tracker.add_completed(
                    CompletedUrl(
                        index=index,
                        url=url,
                        status="success",
                        emails=list(result.emails),
                        duration=self.tracker.elapsed_ms(),
                    ),
                    results,
                )
                logger.info(
                    "Found %d emails and %d social links on %s",
                    len(result.emails),
                    len(result.social_links),
                    url,
                )

            if index < total - 1 and not stats.should_break:
                await self._sleep(self.request_delay_s)

    def _skip_from(
        self,
        start: int,
        urls: list[str],
        rows: list[dict[str, Any] | None],
        message: str,
        results: list[SiteResult],
    ) -> None:
        for index in range(start, len(urls)):
            results.append(
                SiteResult(
                    website=urls[index],
                    error=message,
                    skipped=True,
                    original_data=_row_at(rows, index),
                )
            )
            self.tracker.add_completed(
                CompletedUrl(index=index, url=urls[index], status="skipped", error=message),
                results,
            )


def _row_at(rows: list[dict[str, Any] | None], index: int) -> dict[str, Any] | None:
    if index < len(rows):
        return rows[index]
    return None
