from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NamedTuple

from contact_crawler.config import BreakConditions

logger = logging.getLogger(__name__)

# Expected website-level failures; these never count as critical.
NON_CRITICAL_PATTERNS: tuple[str, ...] = (
    "cloudflare",
    "blocked",
    "403",
    "404",
    "500",
    "502",
    "503",
    "504",
    "timeout",
    "timed out",
    "econnrefused",
    "enotfound",
    "etimedout",
    "navigation timeout",
    "page crashed",
    "net::err_",
    "this website is using a security service",
    "access denied",
    "forbidden",
    "not found",
    "server error",
    "service unavailable",
    "gateway timeout",
    "too many requests",
    "rate limit",
)

CRITICAL_PATTERNS: tuple[str, ...] = (
    "browser has been closed",
    "target page, context or browser has been closed",
    "protocol error",
    "net::err_internet_disconnected",
    "net::err_network_changed",
    "net::err_connection_reset",
    "cannot access",
    "referenceerror",
    "typeerror",
    "syntaxerror",
)

SUCCESSES_BEFORE_DECAY = 5


class ScrapeError(Exception):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to scrape {url}: {reason}")
        self.url = url
        self.reason = reason


class BatchAlreadyRunningError(RuntimeError):
    pass


def is_critical_error(message: str | None) -> bool:
    lowered = (message or "").lower()
    if any(pattern in lowered for pattern in NON_CRITICAL_PATTERNS):
        return False
    return any(pattern in lowered for pattern in CRITICAL_PATTERNS)


@dataclass
class ErrorStats:
    consecutive_errors: int = 0
    total_errors: int = 0
    critical_errors: int = 0
    success_count: int = 0
    should_break: bool = False
    break_reason: str | None = None

    def record_success(self) -> None:
        self.consecutive_errors = 0
        self.success_count += 1
        if self.success_count >= SUCCESSES_BEFORE_DECAY:
            self.critical_errors = 0
            self.success_count = 0
            logger.info(
                "Error stats reset after %d successful scrapes", SUCCESSES_BEFORE_DECAY
            )

    def record_failure(self, message: str | None) -> bool:
        self.consecutive_errors += 1
        self.total_errors += 1
        critical = is_critical_error(message)
        if critical:
            self.critical_errors += 1
            logger.warning(
                "Critical error detected: %s (critical=%d total=%d consecutive=%d)",
                message,
                self.critical_errors,
                self.total_errors,
                self.consecutive_errors,
            )
        else:
            logger.info(
                "Non-critical error: %s (critical=%d total=%d consecutive=%d)",
                message,
                self.critical_errors,
                self.total_errors,
                self.consecutive_errors,
            )
        return critical

    def mark_break(self, reason: str) -> None:
        self.should_break = True
        self.break_reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "consecutiveErrors": self.consecutive_errors,
            "totalErrors": self.total_errors,
            "criticalErrors": self.critical_errors,
            "successCount": self.success_count,
            "shouldBreak": self.should_break,
            "breakReason": self.break_reason,
        }


class BreakDecision(NamedTuple):
    should_break: bool
    reason: str | None = None


def should_break(
    stats: ErrorStats,
    current_index: int,
    total_urls: int,
    conditions: BreakConditions | None = None,
) -> BreakDecision:
    conditions = conditions or BreakConditions()
    error_rate = stats.total_errors / (current_index + 1) if current_index > 0 else 0.0

    if stats.consecutive_errors >= conditions.max_consecutive_errors:
        return BreakDecision(True, f"Too many consecutive errors ({stats.consecutive_errors})")
    if stats.total_errors >= conditions.max_total_errors:
        return BreakDecision(True, f"Too many total errors ({stats.total_errors})")
    if (
        error_rate >= conditions.max_error_rate
        and current_index >= conditions.min_urls_for_rate
    ):
        return BreakDecision(True, f"Error rate too high ({error_rate * 100:.1f}%)")
    if stats.critical_errors >= conditions.max_critical_errors:
        return BreakDecision(
            True, f"Too many critical system errors ({stats.critical_errors})"
        )
    return BreakDecision(False)
