from __future__ import annotations

import argparse
import asyncio
from typing import Any

from contact_crawler.config import BreakConditions, CrawlConfig, FetchPolicy, Settings
from contact_crawler.exporter import export_results, read_seed_csv
from contact_crawler.fetcher import ENGINES, make_fetcher_factory
from contact_crawler.logging_setup import configure_logging
from contact_crawler.orchestrator import BatchOrchestrator


def build_parser() -> argparse.ArgumentParser:
    defaults = CrawlConfig()
    breaks = BreakConditions()
    parser = argparse.ArgumentParser(description="Crawl websites for contact details.")
    parser.add_argument("urls", nargs="*", help="Websites to crawl.")
    parser.add_argument(
        "--input",
        help="CSV file with a 'website' or 'url' column; other columns are carried through.",
    )
    parser.add_argument("--max-depth", type=int, default=defaults.max_depth)
    parser.add_argument(
        "--timeout",
        type=int,
        default=defaults.timeout_ms,
        help="Navigation timeout in milliseconds.",
    )
    parser.add_argument("--no-smart-crawling", action="store_true")
    parser.add_argument("--no-follow-redirects", action="store_true")
    parser.add_argument("--phones", action="store_true", help="Also extract phone numbers.")
    parser.add_argument("--addresses", action="store_true", help="Also extract addresses.")
    parser.add_argument("--engine", choices=ENGINES, default=None)
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Delay in seconds between sites.",
    )
    parser.add_argument("--output-dir", default=None)
    parser.add_argument("--max-consecutive-errors", type=int, default=breaks.max_consecutive_errors)
    parser.add_argument("--max-total-errors", type=int, default=breaks.max_total_errors)
    parser.add_argument("--max-error-rate", type=float, default=breaks.max_error_rate)
    parser.add_argument("--max-critical-errors", type=int, default=breaks.max_critical_errors)
    parser.add_argument("--log-level", default=None)
    return parser


def load_seeds(args: argparse.Namespace) -> tuple[list[str], list[dict[str, Any] | None]]:
    urls: list[str] = []
    rows: list[dict[str, Any] | None] = []
    if args.input:
        csv_urls, csv_rows = read_seed_csv(args.input)
        urls.extend(csv_urls)
        rows.extend(csv_rows)
    urls.extend(args.urls)
    return urls, rows


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_dir, args.log_level or settings.log_level)

    urls, rows = load_seeds(args)
    if not urls:
        parser.error("no URLs given")

    config = CrawlConfig(
        max_depth=args.max_depth,
        timeout_ms=args.timeout,
        follow_redirects=not args.no_follow_redirects,
        extract_phone_numbers=args.phones,
        extract_addresses=args.addresses,
        smart_crawling=not args.no_smart_crawling,
    )
    conditions = BreakConditions(
        max_consecutive_errors=args.max_consecutive_errors,
        max_total_errors=args.max_total_errors,
        max_error_rate=args.max_error_rate,
        max_critical_errors=args.max_critical_errors,
    )
    policy = FetchPolicy()
    orchestrator = BatchOrchestrator(
        make_fetcher_factory(args.engine or settings.engine, policy),
        conditions=conditions,
        policy=policy,
        request_delay_s=settings.request_delay_s if args.delay is None else args.delay,
    )

    outcome = asyncio.run(orchestrator.run_batch(urls, rows, config))
    files = export_results(outcome.results, args.output_dir or settings.output_dir, len(urls))

    for index, result in enumerate(outcome.results, start=1):
        if result.skipped:
            print(f"[{index}/{len(urls)}] {result.website} -> SKIPPED")
        elif result.failed:
            print(f"[{index}/{len(urls)}] {result.website} -> ERROR: {result.error}")
        else:
            print(
                f"[{index}/{len(urls)}] {result.website} -> {len(result.emails)} emails, "
                f"{len(result.social_links)} social links",
            )
    print(outcome.message)
    print(f"Done. Wrote {files['json']} and {files['csv']}")
    return 0 if outcome.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
