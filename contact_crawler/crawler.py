from __future__ import annotations

import logging

from contact_crawler.blocking import detect_region_block, merge_block_message
from contact_crawler.config import CrawlConfig, FetchPolicy, SiteResult
from contact_crawler.errors import ScrapeError
from contact_crawler.extractor import (
    extract_addresses,
    extract_emails,
    extract_emails_from_html,
    extract_phone_numbers,
    extract_social_links,
    find_contact_like_links,
    merge_extraction,
)
from contact_crawler.fetcher import Fetcher, PageContent

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    trimmed = (url or "").strip()
    if not trimmed:
        raise ValueError("URL must not be empty")
    if not trimmed.startswith("http"):
        return f"https://{trimmed}"
    return trimmed


def page_emails(page: PageContent) -> list[str]:
    emails = extract_emails(page.text)
    for email in extract_emails_from_html(page.html):
        if email not in emails:
            emails.append(email)
    return emails


def candidate_links(homepage: PageContent, base_url: str, policy: FetchPolicy) -> list[str]:
    prioritized = find_contact_like_links(homepage.html, base_url, limit=policy.max_contact_links)
    fallback = [link for link in homepage.links if link.startswith("http")]
    links: list[str] = []
    for link in prioritized + fallback[: policy.max_fallback_links]:
        if link not in links:
            links.append(link)
    return links[: policy.max_links]


def wants_deep_crawl(result: SiteResult, config: CrawlConfig) -> bool:
    if config.max_depth == 0:
        return False
    return not (result.emails and config.smart_crawling)


async def crawl_links(
    fetcher: Fetcher,
    links: list[str],
    result: SiteResult,
    policy: FetchPolicy,
) -> SiteResult:
    for link in links:
        try:
            page = await fetcher.fetch(
                link,
                policy.link_timeout_ms,
                attempts=1,
                settle_ms=policy.link_settle_ms,
            )
        except Exception as exc:
            logger.warning("Error scraping link %s: %s", link, exc)
            continue

        block_message = detect_region_block(page.html, link)
        if block_message:
            logger.warning(block_message)
            result.error = merge_block_message(result.error, block_message)
            continue

        merge_extraction(result, page_emails(page), extract_social_links(page.text, page.html))
    return result


async def crawl_site(
    fetcher: Fetcher,
    seed_url: str,
    config: CrawlConfig,
    policy: FetchPolicy | None = None,
) -> SiteResult:
    policy = policy or FetchPolicy()
    try:
        homepage = await fetcher.fetch(seed_url, config.timeout_ms)
    except Exception as exc:
        raise ScrapeError(seed_url, str(exc)) from exc

    result = SiteResult(
        website=seed_url,
        emails=page_emails(homepage),
        social_links=extract_social_links(homepage.text, homepage.html),
    )
    if config.extract_phone_numbers:
        result.phone_numbers = extract_phone_numbers(homepage.text)
    if config.extract_addresses:
        result.addresses = extract_addresses(homepage.text)

    if wants_deep_crawl(result, config):
        if not config.smart_crawling:
            logger.info("Smart crawling disabled for %s, proceeding with deep crawling", seed_url)
        else:
            logger.info(
                "No emails found on homepage %s, proceeding with deep crawling (depth: %d)",
                seed_url,
                config.max_depth,
            )
        links = candidate_links(homepage, seed_url, policy)
        await crawl_links(fetcher, links, result, policy)
    elif config.max_depth == 0:
        logger.info("No deep crawling requested for %s (maxDepth: 0)", seed_url)
    else:
        logger.info(
            "Emails found on homepage %s (%d emails), skipping deep crawling",
            seed_url,
            len(result.emails),
        )
        result.optimization_note = (
            f"Skipped deep crawling - found {len(result.emails)} email(s) on homepage"
        )
    return result
