from __future__ import annotations

from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from contact_crawler.config import CrawlConfig


class RequestValidationError(ValueError):
    def __init__(self, details: list[dict[str, Any]]) -> None:
        super().__init__("Invalid request data")
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "message": "Invalid request data", "details": self.details}


def validate_seed_url(value: str) -> str:
    candidate = value.strip()
    normalized = candidate if candidate.startswith("http") else f"https://{candidate}"
    parsed = urlparse(normalized)
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in parsed.netloc:
        raise ValueError("Invalid URL format")
    return value


SeedUrl = Annotated[str, AfterValidator(validate_seed_url)]


class ScrapeOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    max_depth: int = Field(2, ge=0, le=3, alias="maxDepth")
    timeout: int = Field(30000, ge=5000, le=60000)
    follow_redirects: bool = Field(True, alias="followRedirects")
    extract_phone_numbers: bool = Field(False, alias="extractPhoneNumbers")
    extract_addresses: bool = Field(False, alias="extractAddresses")
    smart_crawling: bool = Field(True, alias="smartCrawling")

    def to_config(self) -> CrawlConfig:
        return CrawlConfig(
            max_depth=self.max_depth,
            timeout_ms=self.timeout,
            follow_redirects=self.follow_redirects,
            extract_phone_numbers=self.extract_phone_numbers,
            extract_addresses=self.extract_addresses,
            smart_crawling=self.smart_crawling,
        )


class ScrapeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    urls: list[SeedUrl] = Field(min_length=1, max_length=100)
    csv_data: list[dict[str, Any]] | None = Field(None, alias="csvData")
    options: ScrapeOptions | None = None

    def config(self) -> CrawlConfig:
        return (self.options or ScrapeOptions()).to_config()


class VerifyRequest(BaseModel):
    emails: list[str] = Field(min_length=1, max_length=200)


def _details(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors(include_url=False)
    ]


def parse_scrape_request(payload: Any) -> ScrapeRequest:
    try:
        return ScrapeRequest.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(_details(exc)) from exc


def parse_verify_request(payload: Any) -> VerifyRequest:
    try:
        return VerifyRequest.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(_details(exc)) from exc
