from __future__ import annotations

import logging
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from contact_crawler.config import SOCIAL_PLATFORMS, SiteResult

logger = logging.getLogger(__name__)

EMAIL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}"),
    re.compile(
        r"[a-zA-Z0-9._%+\-]+\s*\[at\]\s*[a-zA-Z0-9.\-]+\s*\[dot\]\s*[a-zA-Z]{2,}",
        flags=re.IGNORECASE,
    ),
    re.compile(
        r"[a-zA-Z0-9._%+\-]+\s*\(at\)\s*[a-zA-Z0-9.\-]+\s*\(dot\)\s*[a-zA-Z]{2,}",
        flags=re.IGNORECASE,
    ),
    # at least one blank next to the "@", otherwise a sentence-ending period
    # would glue the following word onto a plain address
    re.compile(
        r"[a-zA-Z0-9._%+\-]+(?:\s+@\s*|\s*@\s+)[a-zA-Z0-9.\-]+\s*\.\s*[a-zA-Z]{2,}"
    ),
    re.compile(r"[a-zA-Z0-9._%+\-]+\s*\[@\]\s*[a-zA-Z0-9.\-]+\s*\[\.\]\s*[a-zA-Z]{2,}"),
    re.compile(
        r"[a-zA-Z0-9._%+\-]+\s*\{at\}\s*[a-zA-Z0-9.\-]+\s*\{dot\}\s*[a-zA-Z]{2,}",
        flags=re.IGNORECASE,
    ),
)

OBFUSCATION_SUBSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\s*\[at\]\s*", flags=re.IGNORECASE), "@"),
    (re.compile(r"\s*\[dot\]\s*", flags=re.IGNORECASE), "."),
    (re.compile(r"\s*\(at\)\s*", flags=re.IGNORECASE), "@"),
    (re.compile(r"\s*\(dot\)\s*", flags=re.IGNORECASE), "."),
    (re.compile(r"\s*@\s*"), "@"),
    (re.compile(r"\s*\.\s*"), "."),
    (re.compile(r"\s*\[@\]\s*"), "@"),
    (re.compile(r"\s*\[\.\]\s*"), "."),
    (re.compile(r"\s*\{at\}\s*", flags=re.IGNORECASE), "@"),
    (re.compile(r"\s*\{dot\}\s*", flags=re.IGNORECASE), "."),
)

EMAIL_SHAPE_RE = re.compile(
    r"(?P<local>[A-Za-z0-9!#$%&'*+/=?^_`{|}~\-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~\-]+)*)"
    r"@(?P<domain>(?:[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63})"
)

SOCIAL_PATTERNS: dict[str, re.Pattern[str]] = {
    "facebook": re.compile(
        r"(?:https?://)?(?:www\.)?(?:facebook\.com|fb\.com)/[a-zA-Z0-9._\-]+", re.IGNORECASE
    ),
    "twitter": re.compile(
        r"(?:https?://)?(?:www\.)?(?:twitter\.com|x\.com)/[a-zA-Z0-9._\-]+", re.IGNORECASE
    ),
    "linkedin": re.compile(
        r"(?:https?://)?(?:www\.)?linkedin\.com/(?:company/[a-zA-Z0-9._\-]+|in/[a-zA-Z0-9._\-]+)",
        re.IGNORECASE,
    ),
    "instagram": re.compile(
        r"(?:https?://)?(?:www\.)?instagram\.com/[a-zA-Z0-9._\-]+", re.IGNORECASE
    ),
    "youtube": re.compile(
        r"(?:https?://)?(?:www\.)?(?:youtube\.com|youtu\.be)/"
        r"(?:channel/[a-zA-Z0-9._\-]+|c/[a-zA-Z0-9._\-]+|user/[a-zA-Z0-9._\-]+|@[a-zA-Z0-9._\-]+)",
        re.IGNORECASE,
    ),
    "tiktok": re.compile(r"(?:https?://)?(?:www\.)?tiktok\.com/@[a-zA-Z0-9._\-]+", re.IGNORECASE),
    "pinterest": re.compile(
        r"(?:https?://)?(?:www\.)?pinterest\.com/[a-zA-Z0-9._\-]+", re.IGNORECASE
    ),
    "snapchat": re.compile(
        r"(?:https?://)?(?:www\.)?snapchat\.com/add/[a-zA-Z0-9._\-]+", re.IGNORECASE
    ),
    "reddit": re.compile(r"(?:https?://)?(?:www\.)?reddit\.com/r/[a-zA-Z0-9._\-]+", re.IGNORECASE),
    "telegram": re.compile(r"(?:https?://)?t\.me/[a-zA-Z0-9._\-]+", re.IGNORECASE),
    "whatsapp": re.compile(r"(?:https?://)?wa\.me/[0-9]+", re.IGNORECASE),
    "discord": re.compile(
        r"(?:https?://)?(?:discord\.gg|discord\.com)/[a-zA-Z0-9._\-]+", re.IGNORECASE
    ),
}

# anchor hosts checked in markup, only for the platforms people usually link
SOCIAL_HREF_HOSTS: dict[str, tuple[str, ...]] = {
    "facebook": ("facebook.com", "fb.com"),
    "twitter": ("twitter.com", "x.com"),
    "linkedin": ("linkedin.com",),
    "instagram": ("instagram.com",),
    "youtube": ("youtube.com", "youtu.be"),
    "tiktok": ("tiktok.com",),
}

PHONE_RE = re.compile(r"(\+?1[-.]?)?\(?([0-9]{3})\)?[-.]?([0-9]{3})[-.]?([0-9]{4})")
ADDRESS_RE = re.compile(
    r"\d+\s+[A-Za-z\s]+(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr"
    r"|Court|Ct|Place|Pl|Way|Terrace|Ter|Circle|Cir|Square|Sq)",
    flags=re.IGNORECASE,
)
CONTACT_HINTS_RE = re.compile(
    r"(contact|about|support|help|customer|reach|get\s*in\s*touch|kontakt)",
    flags=re.IGNORECASE,
)


def _unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    deduped: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            deduped.append(value)
    return deduped


def is_valid_email(email: str) -> bool:
    if not email or len(email) > 254:
        return False
    match = EMAIL_SHAPE_RE.fullmatch(email)
    if not match:
        return False
    return len(match.group("local")) <= 64


def clean_email(raw: str) -> str:
    cleaned = raw
    for pattern, replacement in OBFUSCATION_SUBSTITUTIONS:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned.strip()


def extract_emails(text: str) -> list[str]:
    emails: list[str] = []
    if not text:
        return emails
    for pattern in EMAIL_PATTERNS:
        for match in pattern.finditer(text):
            email = clean_email(match.group(0))
            if is_valid_email(email):
                emails.append(email.lower())
    return _unique(emails)


def extract_emails_from_html(html: str) -> list[str]:
    emails: list[str] = []
    if not html:
        return emails
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not href.lower().startswith("mailto:"):
            continue
        address = href[len("mailto:"):].split("?")[0].strip()
        if address and is_valid_email(address):
            emails.append(address.lower())
    return _unique(emails)


def _with_scheme(url: str) -> str:
    return url if url.startswith("http") else f"https://{url}"


def _on_domain(host: str, domains: tuple[str, ...]) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def _absolute_hrefs(html: str) -> list[tuple[str, str]]:
    """(url, host) pairs for anchors that point at another site."""
    soup = BeautifulSoup(html, "html.parser")
    pairs: list[tuple[str, str]] = []
    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        parsed = urlparse(href)
        if not parsed.hostname or parsed.scheme not in ("", "http", "https"):
            continue
        pairs.append((href if parsed.scheme else f"https:{href}", parsed.hostname))
    return pairs


def extract_social_links(text: str, html: str | None = None) -> dict[str, str]:
    social_links: dict[str, str] = {}

    for platform in SOCIAL_PLATFORMS:
        match = SOCIAL_PATTERNS[platform].search(text or "")
        if match:
            social_links[platform] = _with_scheme(match.group(0))

    if html:
        hrefs = _absolute_hrefs(html)
        for platform, domains in SOCIAL_HREF_HOSTS.items():
            if platform in social_links:
                continue
            for url, host in hrefs:
                if _on_domain(host, domains):
                    social_links[platform] = url
                    break

    return social_links


def extract_phone_numbers(text: str) -> list[str]:
    return _unique([match.group(0) for match in PHONE_RE.finditer(text or "")])


def extract_addresses(text: str) -> list[str]:
    return _unique([match.group(0) for match in ADDRESS_RE.finditer(text or "")])


def find_contact_like_links(html: str, base_url: str, limit: int = 5) -> list[str]:
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    candidates: list[str] = []
    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        text = (anchor.get_text() or "").strip()
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            continue
        if CONTACT_HINTS_RE.search(href) or CONTACT_HINTS_RE.search(text):
            candidates.append(urljoin(base_url, href))
    return _unique(candidates)[:limit]


def extract_links(html: str, base_url: str) -> list[str]:
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not href:
            continue
        absolute = urljoin(base_url, href)
        parsed = urlparse(absolute)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            links.append(absolute)
    return _unique(links)


def merge_extraction(
    target: SiteResult,
    emails: list[str],
    social_links: dict[str, str],
) -> SiteResult:
    """Fold a secondary page's findings into ``target`` without replacing anything."""
    for email in emails:
        if email not in target.emails:
            target.emails.append(email)
    for platform, url in social_links.items():
        if not target.social_links.get(platform):
            target.social_links[platform] = url
    return target
