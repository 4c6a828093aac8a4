from __future__ import annotations

BLOCK_INDICATORS: tuple[str, ...] = (
    "sorry, you have been blocked",
    "you are unable to access",
    "attention required! | cloudflare",
    "checking your browser before accessing",
    "please wait while we check your browser",
    "cloudflare ray id",
    "cf-ray",
    "var cf_chl_opt",
    "cloudflare security check",
    "access denied",
    "blocked by cloudflare",
    "cloudflare protection",
    "security check failed",
    "cf-error-details",
    "cf-wrapper cf-header cf-error-overview",
    "blocked_why_headline",
    "blocked_resolve_headline",
    "this website is using a security service",
    "the action you just performed triggered",
    "performance & security by cloudflare",
    "cf-footer-item",
    "cf-error-footer",
    "cloudflare",
)

CLOUDFLARE_CONTEXT: tuple[str, ...] = (
    "blocked",
    "access denied",
    "security check",
    "attention required",
    "checking your browser",
)

BLOCK_PHRASES: tuple[str, ...] = ("sorry, you have been blocked", "you are unable to access")

VPN_HINT = "VPN"


def _indicator_present(indicator: str, body: str) -> bool:
    if indicator == "cloudflare":
        return "cloudflare" in body and any(word in body for word in CLOUDFLARE_CONTEXT)
    return indicator in body


def has_block_structure(body: str) -> bool:
    return (
        "cf-error-details" in body
        and "cf-wrapper cf-header cf-error-overview" in body
        and any(phrase in body for phrase in BLOCK_PHRASES)
    )


def detect_region_block(html: str | None, url: str) -> str | None:
    if not html:
        return None
    body = html.lower()
    blocked = any(_indicator_present(indicator, body) for indicator in BLOCK_INDICATORS)
    if blocked or has_block_structure(body):
        return (
            f"Website blocked by Cloudflare security for {url}. This site is not accessible "
            f"from your current IP/region. Try using a {VPN_HINT} or different network to "
            "access this website."
        )
    return None


def merge_block_message(existing: str | None, message: str) -> str:
    if not existing:
        return message
    if VPN_HINT in existing:
        return existing
    return f"{existing} | {message}"
