from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import dns.asyncresolver
import dns.exception

from contact_crawler.extractor import is_valid_email

logger = logging.getLogger(__name__)

DISPOSABLE_DOMAINS = frozenset(
    {
        "mailinator.com",
        "10minutemail.com",
        "guerrillamail.com",
        "temp-mail.org",
        "yopmail.com",
        "trashmail.com",
        "tempmailo.com",
        "getnada.com",
        "sharklasers.com",
        "dispostable.com",
    }
)

MAX_EMAILS = 200
SMTP_PORT = 25
SMTP_TIMEOUT_S = 4.0
VERIFY_PAUSE_S = 0.05

MxResolver = Callable[[str], Awaitable[list[str]]]
SmtpProbe = Callable[[str], Awaitable[bool]]


async def resolve_mx_records(domain: str) -> list[str]:
    try:
        answer = await dns.asyncresolver.resolve(domain, "MX")
    except dns.exception.DNSException as exc:
        logger.debug("MX lookup failed for %s: %s", domain, exc)
        return []
    records = sorted(answer, key=lambda record: record.preference)
    return [record.exchange.to_text().rstrip(".") for record in records]


async def smtp_greets(host: str, timeout_s: float = SMTP_TIMEOUT_S) -> bool:
    """Connect to port 25 and wait for a 220 greeting; nothing is sent."""
    writer = None
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, SMTP_PORT), timeout=timeout_s
        )
        line = await asyncio.wait_for(reader.readline(), timeout=timeout_s)
        return line.decode("utf-8", errors="replace").startswith("220")
    except (OSError, asyncio.TimeoutError) as exc:
        logger.debug("SMTP probe to %s failed: %s", host, exc)
        return False
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                logger.debug("Closing SMTP connection to %s failed: %s", host, exc)


def score_result(result: dict[str, Any]) -> tuple[int, str]:
    score = 0
    if result["isValidSyntax"]:
        score += 2
    if result["hasMxRecords"]:
        score += 3
    if result["smtpConnectable"]:
        score += 2
    if result["isDisposable"]:
        score -= 3
    if score >= 5:
        return score, "deliverable"
    if score >= 3:
        return score, "risky"
    return score, "undeliverable"


async def verify_email(
    email: str,
    resolver: MxResolver = resolve_mx_records,
    smtp_probe: SmtpProbe = smtp_greets,
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "email": email,
        "isValidSyntax": False,
        "isDisposable": False,
        "hasMxRecords": False,
        "smtpConnectable": False,
        "score": 0,
        "status": "unknown",
        "notes": [],
    }

    result["isValidSyntax"] = is_valid_email(email or "")
    if not result["isValidSyntax"]:
        result["status"] = "invalid"
        result["notes"].append("Invalid email syntax")
        return result

    domain = email.split("@", 1)[1].lower()
    if domain in DISPOSABLE_DOMAINS:
        result["isDisposable"] = True
        result["notes"].append("Disposable domain")

    exchanges = await resolver(domain)
    if exchanges:
        result["hasMxRecords"] = True
        result["smtpConnectable"] = await smtp_probe(exchanges[0])
        if result["smtpConnectable"]:
            result["notes"].append(f"SMTP reachable at {exchanges[0]}")
    else:
        result["notes"].append("No MX records")

    result["score"], result["status"] = score_result(result)
    return result


async def verify_emails(
    emails: list[str],
    resolver: MxResolver = resolve_mx_records,
    smtp_probe: SmtpProbe = smtp_greets,
    pause_s: float = VERIFY_PAUSE_S,
) -> list[dict[str, Any]]:
    unique: list[str] = []
    for email in emails:
        cleaned = str(email or "").strip()
        if cleaned and cleaned not in unique:
            unique.append(cleaned)

    results: list[dict[str, Any]] = []
    for email in unique[:MAX_EMAILS]:
        try:
            results.append(await verify_email(email, resolver, smtp_probe))
        except Exception as exc:
            logger.warning("Verification failed for %s: %s", email, exc)
            results.append({"email": email, "status": "error", "error": str(exc) or "verify error"})
        await asyncio.sleep(pause_s)
    return results
