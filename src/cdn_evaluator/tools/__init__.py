"""Tools for the CDN evaluator pipeline."""

from .classify_tool import classify_url
from .extract_tool import extract_from_capture, extract_from_markup, extract_from_url
from .score_tool import finalize
from .sitemap_tool import discover_sitemap
from .fetch_tool import RelayClient
from .probe_tool import probe_asset_size, estimate_savings
from .analyze_tool import (
    analyze_capture,
    analyze_markup,
    analyze_delivery_url,
    analyze_site_page,
)

__all__ = [
    "classify_url",
    "extract_from_capture",
    "extract_from_markup",
    "extract_from_url",
    "finalize",
    "discover_sitemap",
    "RelayClient",
    "probe_asset_size",
    "estimate_savings",
    "analyze_capture",
    "analyze_markup",
    "analyze_delivery_url",
    "analyze_site_page",
]
