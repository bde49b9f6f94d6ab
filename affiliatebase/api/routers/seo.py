"""robots.txt and sitemap.xml."""

from typing import List, Tuple
from xml.etree import ElementTree

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import get_app_settings
from affiliatebase.core.db import get_db
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import isoformat, utc_now
from affiliatebase.ranking.listing import list_sitemap_slugs

router = APIRouter(tags=["seo"])

DISALLOWED_PATHS = ("/admin/", "/private/", "/api/auth/")

# (path, change frequency, priority)
STATIC_PAGES: List[Tuple[str, str, str]] = [
    ("", "daily", "1.0"),
    ("/advertise", "monthly", "0.8"),
    ("/submit", "monthly", "0.7"),
]

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


@router.get("/robots.txt", response_class=PlainTextResponse)
async def robots(settings: Settings = Depends(get_app_settings)):
    base_url = settings.site_url.rstrip("/")
    lines = ["User-agent: *", "Allow: /"]
    lines += [f"Disallow: {path}" for path in DISALLOWED_PATHS]
    lines += ["", f"Sitemap: {base_url}/sitemap.xml"]
    return "\n".join(lines) + "\n"


def _add_url(root: ElementTree.Element, loc: str, lastmod: str, changefreq: str, priority: str) -> None:
    url = ElementTree.SubElement(root, "url")
    ElementTree.SubElement(url, "loc").text = loc
    ElementTree.SubElement(url, "lastmod").text = lastmod
    ElementTree.SubElement(url, "changefreq").text = changefreq
    ElementTree.SubElement(url, "priority").text = priority


@router.get("/sitemap.xml")
async def sitemap(session: AsyncSession = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    """Static pages plus one entry per approved program."""
    base_url = settings.site_url.rstrip("/")
    now = isoformat(utc_now())

    root = ElementTree.Element("urlset", xmlns=SITEMAP_NS)
    for path, changefreq, priority in STATIC_PAGES:
        _add_url(root, f"{base_url}{path}", now, changefreq, priority)

    for slug, updated_at in await list_sitemap_slugs(session):
        if slug:
            _add_url(root, f"{base_url}/programs/{slug}", isoformat(updated_at) or now, "weekly", "0.8")

    body = ElementTree.tostring(root, encoding="unicode")
    return Response(content='<?xml version="1.0" encoding="UTF-8"?>\n' + body, media_type="application/xml")
