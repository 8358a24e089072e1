"""Analyze tool - single-shot analysis modes."""

import logging

from ..config.loader import Config
from ..models.analysis_result import AnalysisResult
from .extract_tool import Extraction, extract_from_capture, extract_from_markup, extract_from_url
from .fetch_tool import RelayClient, validate_site_url
from .score_tool import finalize

logger = logging.getLogger(__name__)


def _finalize(extraction: Extraction, config: Config | None) -> AnalysisResult:
    policy = (config or Config()).scoring
    return finalize(extraction.references, extraction.total_requests, policy=policy)


def analyze_capture(document: dict | str, config: Config | None = None) -> AnalysisResult:
    """Analyze a HAR capture (dict or JSON text)."""
    return _finalize(extract_from_capture(document), config)


def analyze_markup(html: str, config: Config | None = None, page_url: str | None = None) -> AnalysisResult:
    """Analyze a markup string."""
    return _finalize(extract_from_markup(html, page_url), config)


def analyze_delivery_url(url: str, config: Config | None = None) -> AnalysisResult:
    """Analyze one delivery URL; raises ParseError if it is not one."""
    return _finalize(extract_from_url(url), config)


async def analyze_site_page(site_url: str, relay: RelayClient, config: Config | None = None) -> AnalysisResult:
    """
    Fetch one page through the relay and analyze its markup.
    Network failures propagate with a status-specific message.
    """
    url = validate_site_url(site_url)
    logger.info("Fetching %s", url)
    page = await relay.fetch(url)
    return analyze_markup(page.html, config, page_url=url)
