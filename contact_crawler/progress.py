from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from contact_crawler.config import SiteResult
from contact_crawler.errors import BatchAlreadyRunningError, ErrorStats


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CompletedUrl:
    index: int
    url: str
    status: str
    emails: list[str] = field(default_factory=list)
    error: str | None = None
    duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "index": self.index,
            "url": self.url,
            "status": self.status,
            "emails": list(self.emails),
            "duration": self.duration,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchProgress:
    is_active: bool = False
    current_url: str | None = None
    current_index: int = 0
    total_urls: int = 0
    completed_urls: list[CompletedUrl] = field(default_factory=list)
    results: list[SiteResult] = field(default_factory=list)
    is_complete: bool = False
    start_time: int | None = None
    error_stats: ErrorStats | None = None


class ProgressTracker:
    """Holds the progress of the one batch the process tracks at a time.

    Only the batch loop writes; status readers may live on other threads, so
    every access goes through the lock and readers get plain dicts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._progress = BatchProgress()

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._progress.is_active

    def start(self, total_urls: int) -> None:
        with self._lock:
            if self._progress.is_active:
                raise BatchAlreadyRunningError("A scraping batch is already running")
            self._progress = BatchProgress(
                is_active=True,
                total_urls=total_urls,
                start_time=now_ms(),
            )

    def elapsed_ms(self) -> int:
        with self._lock:
            start = self._progress.start_time or now_ms()
        return now_ms() - start

    def set_current(self, index: int, url: str) -> None:
        with self._lock:
            self._progress.current_index = index
            self._progress.current_url = url

    def add_completed(self, entry: CompletedUrl, results: list[SiteResult]) -> None:
        with self._lock:
            self._progress.completed_urls.append(entry)
            self._progress.results = list(results)

    def finish(self, results: list[SiteResult], error_stats: ErrorStats) -> None:
        with self._lock:
            self._progress.is_active = False
            self._progress.is_complete = True
            self._progress.current_url = None
            self._progress.results = list(results)
            self._progress.error_stats = copy.copy(error_stats)

    def fail(self) -> None:
        with self._lock:
            self._progress.is_active = False
            self._progress.is_complete = False
            self._progress.current_url = None

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            progress = self._progress
            return {
                "isActive": progress.is_active,
                "currentUrl": progress.current_url,
                "currentIndex": progress.current_index,
                "totalUrls": progress.total_urls,
                "completedUrls": [entry.to_dict() for entry in progress.completed_urls],
                "results": [result.to_dict() for result in progress.results],
                "isComplete": progress.is_complete,
                "startTime": progress.start_time,
                "errorStats": progress.error_stats.to_dict() if progress.error_stats else None,
            }
