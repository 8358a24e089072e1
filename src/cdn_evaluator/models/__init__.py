"""Data models for the CDN evaluator."""

from .cdn_descriptor import CdnDescriptor, ResourceType, DeliveryType
from .asset_reference import (
    AssetReference,
    AssetSource,
    CaptureEntry,
    MarkupElement,
    LiteralUrl,
)
from .analysis_result import (
    AnalysisResult,
    AnalyzedAsset,
    CacheFinding,
    CoverageStats,
    IssueCode,
    PageFailure,
    SamplingInfo,
)
from .crawl_state import CrawlState, CrawlPhase, TERMINAL_PHASES

__all__ = [
    "CdnDescriptor",
    "ResourceType",
    "DeliveryType",
    "AssetReference",
    "AssetSource",
    "CaptureEntry",
    "MarkupElement",
    "LiteralUrl",
    "AnalysisResult",
    "AnalyzedAsset",
    "CacheFinding",
    "CoverageStats",
    "IssueCode",
    "PageFailure",
    "SamplingInfo",
    "CrawlState",
    "CrawlPhase",
    "TERMINAL_PHASES",
]
