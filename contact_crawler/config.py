from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from dotenv import load_dotenv

SOCIAL_PLATFORMS: tuple[str, ...] = (
    "facebook",
    "twitter",
    "linkedin",
    "instagram",
    "youtube",
    "tiktok",
    "pinterest",
    "snapchat",
    "reddit",
    "telegram",
    "whatsapp",
    "discord",
)

MIN_DEPTH, MAX_DEPTH = 0, 3
MIN_TIMEOUT_MS, MAX_TIMEOUT_MS = 5000, 60000


@dataclass(frozen=True)
class CrawlConfig:
    max_depth: int = 2
    timeout_ms: int = 30000
    follow_redirects: bool = True
    extract_phone_numbers: bool = False
    extract_addresses: bool = False
    smart_crawling: bool = True

    def __post_init__(self) -> None:
        if not MIN_DEPTH <= self.max_depth <= MAX_DEPTH:
            raise ValueError(f"max_depth must be between {MIN_DEPTH} and {MAX_DEPTH}")
        if not MIN_TIMEOUT_MS <= self.timeout_ms <= MAX_TIMEOUT_MS:
            raise ValueError(
                f"timeout_ms must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS}"
            )


@dataclass(frozen=True)
class BreakConditions:
    max_consecutive_errors: int = 10
    max_total_errors: int = 25
    max_error_rate: float = 0.8
    max_critical_errors: int = 5
    min_urls_for_rate: int = 5

    @classmethod
    def from_env(cls) -> BreakConditions:
        defaults = cls()
        return cls(
            max_consecutive_errors=int(
                os.getenv("MAX_CONSECUTIVE_ERRORS", defaults.max_consecutive_errors)
            ),
            max_total_errors=int(os.getenv("MAX_TOTAL_ERRORS", defaults.max_total_errors)),
            max_error_rate=float(os.getenv("MAX_ERROR_RATE", defaults.max_error_rate)),
            max_critical_errors=int(
                os.getenv("MAX_CRITICAL_ERRORS", defaults.max_critical_errors)
            ),
        )


@dataclass(frozen=True)
class FetchPolicy:
    attempts: int = 2
    attempt_timeout_cap_ms: int = 30000
    backoff_ms: int = 1000
    settle_ms: int = 1000
    link_timeout_ms: int = 15000
    link_settle_ms: int = 500
    max_contact_links: int = 5
    max_fallback_links: int = 5
    max_links: int = 8


@dataclass(frozen=True)
class Settings:
    port: int = 5000
    host: str = "0.0.0.0"
    frontend_url: str = "http://localhost:3000"
    output_dir: str = "output"
    log_dir: str = "logs"
    log_level: str = "INFO"
    engine: str = "browser"
    request_delay_s: float = 2.0
    rate_limit_max: int = 100
    rate_limit_window_s: float = 900.0
    break_conditions: BreakConditions = field(default_factory=BreakConditions)

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv()
        defaults = cls()
        return cls(
            port=int(os.getenv("PORT", defaults.port)),
            host=os.getenv("HOST", defaults.host),
            frontend_url=os.getenv("FRONTEND_URL", defaults.frontend_url),
            output_dir=os.getenv("OUTPUT_DIR", defaults.output_dir),
            log_dir=os.getenv("LOG_DIR", defaults.log_dir),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            engine=os.getenv("SCRAPE_ENGINE", defaults.engine),
            request_delay_s=float(os.getenv("REQUEST_DELAY", defaults.request_delay_s)),
            rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", defaults.rate_limit_max)),
            rate_limit_window_s=float(
                os.getenv("RATE_LIMIT_WINDOW", defaults.rate_limit_window_s)
            ),
            break_conditions=BreakConditions.from_env(),
        )


@dataclass
class SiteResult:
    website: str
    emails: list[str] = field(default_factory=list)
    social_links: dict[str, str] = field(default_factory=dict)
    phone_numbers: list[str] = field(default_factory=list)
    addresses: list[str] = field(default_factory=list)
    optimization_note: str | None = None
    error: str | None = None
    is_critical_error: bool | None = None
    skipped: bool | None = None
    original_data: dict[str, Any] | None = None

    @property
    def failed(self) -> bool:
        # failures always carry a criticality verdict; block notices on a
        # crawled site only fill ``error``
        return self.is_critical_error is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "website": self.website,
            "emails": list(self.emails),
            "socialLinks": dict(self.social_links),
            "phoneNumbers": list(self.phone_numbers),
            "addresses": list(self.addresses),
        }
        if self.optimization_note:
            data["optimizationNote"] = self.optimization_note
        if self.error:
            data["error"] = self.error
        if self.is_critical_error is not None:
            data["isCriticalError"] = self.is_critical_error
        if self.skipped is not None:
            data["skipped"] = self.skipped
        if self.original_data is not None:
            data["originalData"] = self.original_data
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SiteResult:
        return cls(
            website=data["website"],
            emails=list(data.get("emails", [])),
            social_links=dict(data.get("socialLinks", {})),
            phone_numbers=list(data.get("phoneNumbers", [])),
            addresses=list(data.get("addresses", [])),
            optimization_note=data.get("optimizationNote"),
            error=data.get("error"),
            is_critical_error=data.get("isCriticalError"),
            skipped=data.get("skipped"),
            original_data=data.get("originalData"),
        )
