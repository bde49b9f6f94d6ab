"""URL cleaning and referral-link rules for submitted program URLs."""

import re
from typing import List
from urllib.parse import urlsplit, urlunsplit

SHORTENER_HOSTS = (
    "bit.ly", "goo.gl", "t.co", "tinyurl.com", "is.gd", "buff.ly", "ow.ly",
    "rebrand.ly", "cutt.ly", "shorturl.at", "bl.ink", "kl.am", "short.io",
)

BLOCKED_PATH_SEGMENTS = ("/ref/", "/r/", "/invite/", "/referral/", "/join/")

BLOCKED_SUBDOMAINS = {"join", "invite", "r", "refer", "referral", "friend", "bonus"}

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)


class UrlValidationError(ValueError):
    """Raised when a submitted URL is malformed or points at a referral/shortener link."""


def _is_shortener(host: str) -> bool:
    return any(host == s or host.endswith("." + s) for s in SHORTENER_HOSTS)


def _looks_like_referral_code(segment: str) -> bool:
    # Personal codes are short, unseparated, and carry digits or capitals
    if not 5 <= len(segment) <= 12:
        return False
    if "-" in segment or "_" in segment:
        return False
    return bool(re.search(r"[0-9A-Z]", segment))


def clean_and_validate_url(url: str) -> str:
    """
    Normalize a submitted URL and reject shortened or referral links.

    Prepends ``https://`` when the scheme is missing, lowercases the host and
    strips query string and fragment. No network access happens here.

    Args:
        url: Raw URL as typed by the user

    Returns:
        Cleaned URL

    Raises:
        UrlValidationError: with a human readable reason
    """
    url = (url or "").strip()
    if not url:
        raise UrlValidationError("URL is required")

    if not _HTTP_RE.match(url):
        if _SCHEME_RE.match(url):
            raise UrlValidationError("Only http and https URLs are allowed")
        url = "https://" + url

    try:
        parsed = urlsplit(url)
        host = (parsed.hostname or "").lower()
        port = parsed.port
    except ValueError:
        raise UrlValidationError("Invalid URL format")

    if not host or "." not in host or " " in url:
        raise UrlValidationError("Invalid URL format")

    if _is_shortener(host):
        raise UrlValidationError("Shortened URLs are not allowed. Please use the direct official link.")

    path = parsed.path or "/"

    if any(segment in path for segment in BLOCKED_PATH_SEGMENTS):
        raise UrlValidationError("Referral links are not allowed. Please link to the main affiliate program page.")

    host_parts = host.split(".")
    if len(host_parts) >= 3 and host_parts[0] in BLOCKED_SUBDOMAINS:
        raise UrlValidationError("Please link to the main domain, not an invite page.")

    segments = [s for s in path.split("/") if s]
    if segments and _looks_like_referral_code(segments[-1]):
        raise UrlValidationError("This looks like a personal referral code. Please link to the main program page.")

    netloc = f"{host}:{port}" if port else host
    return urlunsplit((parsed.scheme.lower(), netloc, path, "", ""))


def url_variations(url: str) -> List[str]:
    """
    Equivalent spellings of a URL for duplicate lookups.

    Covers the raw value, the cleaned form, with and without ``www.``, and
    with and without a trailing slash.
    """
    raw = (url or "").strip()
    variations = {raw} if raw else set()

    try:
        cleaned = clean_and_validate_url(raw)
    except UrlValidationError:
        cleaned = raw if _HTTP_RE.match(raw) else ("https://" + raw if raw else "")

    if not cleaned:
        return sorted(variations)

    parsed = urlsplit(cleaned)
    host = (parsed.hostname or "").lower()
    hosts = {host, host[4:] if host.startswith("www.") else "www." + host}

    for scheme in ("https", "http"):
        for h in hosts:
            base = urlunsplit((scheme, h, parsed.path.rstrip("/"), "", ""))
            variations.add(base)
            variations.add(base + "/")

    return sorted(v for v in variations if v)
