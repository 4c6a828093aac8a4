from __future__ import annotations

import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from contact_crawler.config import SOCIAL_PLATFORMS, SiteResult

logger = logging.getLogger(__name__)

BASE_FIELDS: list[str] = [
    "website",
    "emails",
    *SOCIAL_PLATFORMS,
    "phoneNumbers",
    "addresses",
    "optimizationNote",
    "isCriticalError",
    "skipped",
    "error",
]

SEED_COLUMNS = ("website", "url")


def _is_seed_column(key: str) -> bool:
    return key.lower() in SEED_COLUMNS


def _yes_no(value: bool | None) -> str:
    return "Yes" if value else "No"


def original_columns(results: Iterable[SiteResult]) -> list[str]:
    columns: list[str] = []
    for result in results:
        for key in (result.original_data or {}):
            if not _is_seed_column(key) and key not in columns:
                columns.append(key)
    return columns


def csv_row(result: SiteResult) -> dict[str, Any]:
    row: dict[str, Any] = {
        "website": result.website,
        "emails": "; ".join(result.emails),
        "phoneNumbers": "; ".join(result.phone_numbers),
        "addresses": "; ".join(result.addresses),
        "optimizationNote": result.optimization_note or "",
        "isCriticalError": _yes_no(result.is_critical_error),
        "skipped": _yes_no(result.skipped),
        "error": result.error or "",
    }
    for platform in SOCIAL_PLATFORMS:
        row[platform] = result.social_links.get(platform, "")
    for key, value in (result.original_data or {}).items():
        if not _is_seed_column(key):
            row[f"original_{key}"] = value
    return row


def write_csv(results: list[SiteResult], output_csv: str | Path) -> None:
    fieldnames = [f"original_{column}" for column in original_columns(results)] + BASE_FIELDS
    with open(output_csv, "w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        for result in results:
            writer.writerow(csv_row(result))


def write_json(results: list[SiteResult], output_json: str | Path, total_urls: int) -> None:
    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "totalUrls": total_urls,
        "results": [result.to_dict() for result in results],
    }
    with open(output_json, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)


def read_json(path: str | Path) -> list[SiteResult]:
    with open(path, encoding="utf-8") as handle:
        payload = json.load(handle)
    return [SiteResult.from_dict(item) for item in payload.get("results", [])]


def export_results(
    results: list[SiteResult],
    output_dir: str | Path,
    total_urls: int,
) -> dict[str, str]:
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stem = "scraping-results-" + datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    json_name, csv_name = f"{stem}.json", f"{stem}.csv"

    write_json(results, directory / json_name, total_urls)
    write_csv(results, directory / csv_name)
    logger.info("Results saved to %s and %s", directory / json_name, directory / csv_name)
    return {"json": json_name, "csv": csv_name}


def read_seed_csv(path: str | Path) -> tuple[list[str], list[dict[str, Any]]]:
    """Read seed URLs from the ``website`` or ``url`` column of an input CSV."""
    urls: list[str] = []
    rows: list[dict[str, Any]] = []
    with open(path, newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        seed_column = next(
            (name for name in (reader.fieldnames or []) if _is_seed_column(name)), None
        )
        if seed_column is None:
            raise ValueError(f"{path} has no 'website' or 'url' column")
        for row in reader:
            url = (row.get(seed_column) or "").strip()
            if url:
                urls.append(url)
                rows.append(dict(row))
    return urls, rows
