"""Sitemap tool - find a site's sitemap and collect its page URLs."""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

FetchText = Callable[[str], Awaitable[str]]


@dataclass
class SitemapDocument:
    """A parsed sitemap: either an index of child sitemaps or a url-set."""

    is_index: bool
    urls: list[str] = field(default_factory=list)


@dataclass
class SitemapResult:
    """Pages discovered from a sitemap."""

    sitemap_url: str
    page_urls: list[str]


def normalize_url(url: str, base: str | None = None) -> str:
    """Resolve against base and strip the fragment."""
    if base:
        url = urljoin(base, url)
    return url.split("#", 1)[0]


def parse_robots(text: str) -> Optional[str]:
    """First ``Sitemap:`` directive in robots.txt, matched case-insensitively."""
    for line in text.splitlines():
        line = line.strip()
        if line.lower().startswith("sitemap:"):
            value = line.split(":", 1)[1].strip()
            if value:
                return value
    return None


def parse_sitemap(xml: str) -> SitemapDocument:
    """Parse a sitemap-index or url-set document; locations keep document order."""
    soup = BeautifulSoup(xml, "xml")
    sitemap_tags = soup.find_all("sitemap")
    if soup.find("sitemapindex") is not None or sitemap_tags:
        locs = [s.find("loc") for s in sitemap_tags]
        return SitemapDocument(is_index=True, urls=[loc.get_text(strip=True) for loc in locs if loc])

    urls: list[str] = []
    seen: set[str] = set()
    for url_tag in soup.find_all("url"):
        loc = url_tag.find("loc")
        if not loc:
            continue
        u = normalize_url(loc.get_text(strip=True))
        if u and u not in seen:
            seen.add(u)
            urls.append(u)
    return SitemapDocument(is_index=False, urls=urls)


async def load_sitemap_pages(sitemap_url: str, fetch_text: FetchText) -> list[str]:
    """
    Fetch a sitemap and return its page URLs.
    A sitemap index is followed to its first child only, one hop deep.
    """
    doc = parse_sitemap(await fetch_text(sitemap_url))
    if doc.is_index:
        if not doc.urls:
            return []
        child_url = normalize_url(doc.urls[0], sitemap_url)
        logger.info("Sitemap index %s lists %d sitemaps; following %s",
                    sitemap_url, len(doc.urls), child_url)
        child = parse_sitemap(await fetch_text(child_url))
        return [] if child.is_index else child.urls
    return doc.urls


async def _try_sitemap(sitemap_url: str, fetch_text: FetchText) -> Optional[SitemapResult]:
    try:
        pages = await load_sitemap_pages(sitemap_url, fetch_text)
    except Exception as e:
        logger.debug("Sitemap %s unavailable: %s", sitemap_url, e)
        return None
    if not pages:
        logger.debug("Sitemap %s lists no pages", sitemap_url)
        return None
    return SitemapResult(sitemap_url=sitemap_url, page_urls=pages)


async def discover_sitemap(origin: str, fetch_text: FetchText) -> Optional[SitemapResult]:
    """
    Resolve a site's sitemap: robots.txt directive first, then /sitemap.xml.
    Any failure means "no sitemap"; nothing is raised.
    """
    declared: Optional[str] = None
    try:
        declared = parse_robots(await fetch_text(urljoin(origin, "/robots.txt")))
    except Exception as e:
        logger.debug("robots.txt unavailable for %s: %s", origin, e)

    if declared:
        result = await _try_sitemap(normalize_url(declared, origin), fetch_text)
        if result:
            logger.info("Found sitemap via robots.txt: %s (%d pages)", result.sitemap_url, len(result.page_urls))
            return result

    default_url = urljoin(origin, "/sitemap.xml")
    if declared and normalize_url(declared, origin) == default_url:
        return None
    result = await _try_sitemap(default_url, fetch_text)
    if result:
        logger.info("Found sitemap at %s (%d pages)", default_url, len(result.page_urls))
    else:
        logger.info("No sitemap found for %s", origin)
    return result
