"""Extract tool - turn captures, markup, or literal URLs into asset references."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup
from pydantic import ValidationError

from ..errors import ParseError, ValidationFailure
from ..models.asset_reference import (
    AssetReference,
    AssetSource,
    CaptureEntry,
    LiteralUrl,
    MarkupElement,
)
from .classify_tool import classify_url

logger = logging.getLogger(__name__)

MEDIA_TAGS = ["img", "source", "video"]
SOURCE_ATTRIBUTES = ("src", "srcset", "data-src", "data-srcset", "poster")

MEDIA_URL_RE = re.compile(
    r"\.(png|jpe?g|gif|webp|avif|svg|bmp|tiff?|heic|mp4|webm|mov|m4v|ogv)(\?|#|$)",
    re.I,
)
EXCLUDED_URL_RE = re.compile(
    r"google-analytics\.com|googletagmanager\.com|doubleclick\.net|googlesyndication\.com"
    r"|adservice\.google|facebook\.com/tr|bat\.bing\.com|hotjar\.com|segment\.(io|com)"
    r"|/pixel(\b|/|\?)|/collect(\?|$)|/beacon(\b|/|\?)",
    re.I,
)
EXCLUDED_EXTENSION_RE = re.compile(r"\.(js|css|json|woff2?|ttf|otf|eot|map|ico)(\?|#|$)", re.I)

CDN_SERVER_TOKEN = "cloudinary"
CDN_HEADER_PREFIX = "x-cld-"
CACHE_CONTROL_HEADER = "cache-control"


@dataclass
class Extraction:
    """Asset references plus the number of requests/elements examined."""

    references: list[AssetReference]
    total_requests: int


def is_excluded_url(url: str) -> bool:
    """Tracking, analytics, ad endpoints, non-media static files, and data URIs."""
    if url.lower().startswith("data:"):
        return True
    path = urlsplit(url).path if "://" in url else url
    return bool(EXCLUDED_URL_RE.search(url) or EXCLUDED_EXTENSION_RE.search(path))


def is_media(url: str, mime_type: str = "") -> bool:
    mime = (mime_type or "").lower()
    return mime.startswith(("image/", "video/")) or bool(MEDIA_URL_RE.search(url))


def has_cdn_signature(headers: dict[str, str]) -> bool:
    """Response headers that mark the CDN as the origin of the bytes."""
    for name, value in headers.items():
        lname = name.lower()
        if lname.startswith(CDN_HEADER_PREFIX):
            return True
        if lname == "server" and CDN_SERVER_TOKEN in (value or "").lower():
            return True
    return False


def header_value(headers: dict[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def reference_from_source(source: AssetSource) -> Optional[AssetReference]:
    """
    Classify one input entry.

    Returns a CDN reference, a non-CDN media reference (no descriptor),
    or None when the entry is not media worth reporting.
    """
    descriptor = classify_url(source.url)

    if isinstance(source, LiteralUrl):
        if descriptor is None:
            raise ParseError(f"Not a recognizable CDN delivery URL: {source.url}")
        return AssetReference(url=source.url, descriptor=descriptor)

    if isinstance(source, CaptureEntry):
        if descriptor and (has_cdn_signature(source.headers) or descriptor.transformation_set):
            return AssetReference(
                url=source.url,
                descriptor=descriptor,
                cache_control=header_value(source.headers, CACHE_CONTROL_HEADER),
            )
        if is_media(source.url, source.mime_type) and not is_excluded_url(source.url):
            return AssetReference(url=source.url)
        return None

    if isinstance(source, MarkupElement):
        if descriptor:
            return AssetReference(url=source.url, descriptor=descriptor, source_page=source.page_url)
        if is_excluded_url(source.url):
            return None
        return AssetReference(url=source.url, source_page=source.page_url)

    raise TypeError(f"Unsupported asset source: {type(source).__name__}")


def _header_map(headers: Any) -> dict[str, str]:
    """HAR headers are a list of {name, value}; some exporters use a dict."""
    if headers is None:
        return {}
    if isinstance(headers, dict):
        return {str(k): str(v) for k, v in headers.items()}
    if not isinstance(headers, list):
        raise ParseError("Capture entry response.headers must be a list or an object")
    result: dict[str, str] = {}
    for h in headers:
        if isinstance(h, dict) and h.get("name"):
            result[str(h["name"])] = str(h.get("value") or "")
    return result


def _capture_entry(e: Any) -> Optional[CaptureEntry]:
    """One HAR entry, or None when it carries no request URL."""
    if not isinstance(e, dict):
        return None
    request = e.get("request")
    url = request.get("url") if isinstance(request, dict) else None
    if not url:
        return None
    if not isinstance(url, str):
        raise ParseError(f"Capture entry request url must be a string, got {type(url).__name__}")

    response = e.get("response") or {}
    if not isinstance(response, dict):
        raise ParseError(f"Capture entry response for {url} must be an object")
    content = response.get("content") or {}
    if not isinstance(content, dict):
        raise ParseError(f"Capture entry response.content for {url} must be an object")
    try:
        return CaptureEntry(
            url=url,
            mime_type=str(content.get("mimeType") or ""),
            headers=_header_map(response.get("headers")),
        )
    except ValidationError as ve:
        raise ParseError(f"Malformed capture entry for {url}: {ve}") from ve


def capture_entries(document: dict | str) -> list[CaptureEntry]:
    """Parse a HAR document into capture entries."""
    if isinstance(document, (str, bytes)):
        if not document.strip():
            raise ValidationFailure("Capture document is empty")
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise ParseError(f"Capture document is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise ParseError("Capture document must be a JSON object")
    log = document.get("log")
    entries = log.get("entries") if isinstance(log, dict) else None
    if not isinstance(entries, list):
        raise ParseError("Capture document has no log.entries list")
    return [entry for entry in (_capture_entry(e) for e in entries) if entry is not None]


def _first_candidate(value: str) -> str:
    parts = str(value).split()
    return parts[0] if parts else ""


def markup_elements(html: str, page_url: str | None = None) -> tuple[list[MarkupElement], int]:
    """
    Find media elements in markup.
    Returns the elements that carry a source URL and the number of elements scanned.
    """
    if not isinstance(html, str):
        raise ParseError("Markup must be a string")
    soup = BeautifulSoup(html, "lxml")
    tags = soup.find_all(MEDIA_TAGS)
    elements: list[MarkupElement] = []
    for tag in tags:
        raw = next((tag.get(a) for a in SOURCE_ATTRIBUTES if tag.get(a)), "")
        url = _first_candidate(raw)
        if not url:
            continue
        if page_url and not url.lower().startswith("data:"):
            url = urljoin(page_url, url)
        elements.append(MarkupElement(url=url, tag=tag.name, page_url=page_url))
    return elements, len(tags)


def extract_from_capture(document: dict | str) -> Extraction:
    """Capture mode: classify every request in a HAR document."""
    entries = capture_entries(document)
    refs = [r for r in (reference_from_source(e) for e in entries) if r is not None]
    logger.debug("Capture: %d entries, %d media references", len(entries), len(refs))
    return Extraction(references=refs, total_requests=len(entries))


def extract_from_markup(html: str, page_url: str | None = None) -> Extraction:
    """Markup mode: classify the first source URL of each media element."""
    if isinstance(html, str) and not html.strip():
        raise ValidationFailure("Markup is empty")
    elements, scanned = markup_elements(html, page_url)
    refs = [r for r in (reference_from_source(el) for el in elements) if r is not None]
    logger.debug("Markup%s: %d elements, %d media references",
                 f" ({page_url})" if page_url else "", scanned, len(refs))
    return Extraction(references=refs, total_requests=scanned)


def extract_from_url(url: str) -> Extraction:
    """Literal-URL mode: exactly one URL, which must classify."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationFailure("Delivery URL is empty")
    ref = reference_from_source(LiteralUrl(url=url.strip()))
    return Extraction(references=[ref], total_requests=1)
