"""Analysis output produced by the score engine."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .cdn_descriptor import CdnDescriptor


class IssueCode(str, Enum):
    """Per-asset optimization issues."""

    ENABLE_AUTO_FORMAT = "enable-auto-format"
    ENABLE_AUTO_QUALITY = "enable-auto-quality"
    ADD_RESPONSIVE_SIZING = "add-responsive-sizing"


class AnalyzedAsset(BaseModel):
    """A CDN asset together with the issues found on it."""

    model_config = ConfigDict(frozen=True)

    url: str
    descriptor: CdnDescriptor
    issues: tuple[IssueCode, ...] = ()
    page_url: Optional[str] = None


class CoverageStats(BaseModel):
    """Counts behind the score."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(0, ge=0)
    cdn: int = Field(0, ge=0)
    non_cdn: int = Field(0, ge=0)
    auto_format: int = Field(0, ge=0)
    auto_quality: int = Field(0, ge=0)
    optimizable: int = Field(0, ge=0)
    fully_optimized: int = Field(0, ge=0)
    missing_sizing: int = Field(0, ge=0)


class PageFailure(BaseModel):
    """A sampled page that could not be fetched or parsed."""

    model_config = ConfigDict(frozen=True)

    url: str
    error: str


class CacheFinding(BaseModel):
    """A CDN response whose Cache-Control carries no max-age."""

    model_config = ConfigDict(frozen=True)

    url: str
    note: str


class SamplingInfo(BaseModel):
    """How a crawl sampled the site."""

    model_config = ConfigDict(frozen=True)

    pages_sampled: int = Field(0, ge=0)
    total_pages_in_sitemap: int = Field(0, ge=0)
    percentage: str = "0.0"
    sitemap_url: Optional[str] = None
    sampled_pages: tuple[str, ...] = ()
    failed_pages: tuple[PageFailure, ...] = ()


class AnalysisResult(BaseModel):
    """Immutable result of one analysis."""

    model_config = ConfigDict(frozen=True)

    total_requests: int = Field(0, ge=0)
    per_asset: tuple[AnalyzedAsset, ...] = ()
    non_cdn_media_assets: tuple[str, ...] = ()
    score: int = Field(0, ge=0, le=100)
    suggestions: tuple[str, ...] = ()
    cache_findings: tuple[CacheFinding, ...] = ()
    coverage: CoverageStats = Field(default_factory=CoverageStats)
    sampling: Optional[SamplingInfo] = None

    @computed_field
    @property
    def cloud_names(self) -> list[str]:
        """Distinct cloud names seen across CDN assets."""
        names = {a.descriptor.cloud_name for a in self.per_asset if a.descriptor.cloud_name}
        return sorted(names)

    @computed_field
    @property
    def problem_urls(self) -> list[str]:
        """CDN assets with at least one issue."""
        return [a.url for a in self.per_asset if a.issues]

    @computed_field
    @property
    def correct_urls(self) -> list[str]:
        return [a.url for a in self.per_asset if not a.issues]
