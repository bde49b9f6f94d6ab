"""
Utility functions for AffiliateBase.

Provides slug generation, request fingerprinting helpers, and user agent parsing.
"""

import hashlib
import re
import unicodedata
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

# Bot user agents; generic words use word boundaries to avoid matching real browsers
BOT_PATTERNS = [re.compile(pattern, re.IGNORECASE) for pattern in (
    r"googlebot", r"bingbot", r"yandexbot", r"baiduspider", r"duckduckbot",
    r"facebookexternalhit", r"twitterbot", r"linkedinbot", r"slackbot", r"discordbot",
    r"whatsapp", r"telegrambot", r"pinterest", r"redditbot",
    r"ahrefs", r"semrush", r"moz\.com", r"screaming frog", r"majestic", r"dotbot",
    r"headless", r"phantom", r"puppeteer", r"playwright", r"selenium", r"webdriver",
    r"lighthouse", r"pagespeed", r"gtmetrix", r"pingdom", r"uptimerobot",
    r"embedly", r"quora link preview", r"outbrain", r"flipboard", r"bitlybot",
    r"skypeuripreview", r"nuzzel",
    r"^curl/", r"^wget/", r"python-requests", r"python-httpx", r"go-http-client", r"node-fetch",
    r"^axios/", r"httpie", r"^okhttp", r"java/",
    r"\bbot\b", r"\bcrawler\b", r"\bspider\b", r"\bscraper\b",
    r"applebot", r"adsbot-google", r"mediapartners-google",
)]

CLIENT_IP_HEADERS = ("cf-connecting-ip", "x-real-ip", "x-forwarded-for")
COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country")


def slugify(text: str, max_length: int = 80) -> str:
    """
    Convert text to URL-safe slug.

    Args:
        text: Text to convert
        max_length: Maximum slug length

    Returns:
        URL-safe slug
    """
    if not text:
        return ""

    # Normalize unicode and remove accents
    normalized = unicodedata.normalize('NFKD', text)
    ascii_only = normalized.encode('ascii', 'ignore').decode('ascii')

    # Replace spaces and punctuation with hyphens
    slug = re.sub(r'[^a-z0-9]+', '-', ascii_only.lower()).strip('-')

    if len(slug) > max_length:
        slug = slug[:max_length].rstrip('-')

    return slug or "program"


def hash_ip(ip: Optional[str], salt: str) -> Optional[str]:
    """Salted SHA-256 of the client IP, truncated to 32 hex chars."""
    if not ip:
        return None
    return hashlib.sha256(f"{ip}{salt}".encode("utf-8")).hexdigest()[:32]


def get_client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> Optional[str]:
    """Resolve the visitor IP from proxy headers, most trusted first."""
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header)
        if value:
            # x-forwarded-for holds a chain; the first hop is the client
            return value.split(",")[0].strip()
    return fallback


def get_country(headers: Mapping[str, str]) -> Optional[str]:
    for header in COUNTRY_HEADERS:
        value = headers.get(header)
        if value:
            return value.upper()[:8]
    return None


def is_bot(user_agent: Optional[str]) -> bool:
    """Check a user agent against known crawler and automation patterns."""
    if not user_agent:
        return False
    return any(pattern.search(user_agent) for pattern in BOT_PATTERNS)


def parse_user_agent(user_agent: Optional[str]) -> Dict[str, str]:
    """Coarse OS and device class for analytics breakdowns."""
    if not user_agent:
        return {"os": "Other", "device": "Desktop"}

    ua = user_agent.lower()

    if "windows" in ua:
        os_name = "Windows"
    elif "mac os x" in ua:
        os_name = "iOS" if ("iphone" in ua or "ipad" in ua) else "macOS"
    elif "android" in ua:
        os_name = "Android"
    elif "linux" in ua:
        os_name = "Linux"
    elif "ios" in ua or "iphone" in ua:
        os_name = "iOS"
    else:
        os_name = "Other"

    if "mobile" in ua or "iphone" in ua:
        device = "Mobile"
    elif "ipad" in ua or "tablet" in ua or "android" in ua:
        device = "Tablet"
    else:
        device = "Desktop"

    return {"os": os_name, "device": device}


def referrer_host(referrer: Optional[str]) -> str:
    """Host part of a referrer URL, ``Direct`` when absent."""
    if not referrer:
        return "Direct"
    host = urlparse(referrer).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host or "Direct"
