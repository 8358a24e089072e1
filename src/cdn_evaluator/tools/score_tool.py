"""Score tool - reduce asset references into an analysis result."""

import logging
import math
import re
from typing import Iterable, Optional

from ..config.loader import ScoringPolicy
from ..models.analysis_result import (
    AnalysisResult,
    AnalyzedAsset,
    CacheFinding,
    CoverageStats,
    IssueCode,
    SamplingInfo,
)
from ..models.asset_reference import AssetReference
from ..models.cdn_descriptor import CdnDescriptor

logger = logging.getLogger(__name__)

SUGGEST_AUTO_FORMAT = "Adopt f_auto broadly (WebP/AVIF)"
SUGGEST_AUTO_QUALITY = "Adopt q_auto for balanced quality vs bytes"
SUGGEST_MIGRATE = "Migrate non-CDN media to the CDN for optimization & delivery"
SUGGEST_RESIZE = "Add responsive sizing (w_/h_) to {count} asset(s)"
SUGGEST_CACHE = "Tune Cache-Control (longer max-age on versioned URLs)"

MAX_AGE_RE = re.compile(r"max-age=", re.I)


def asset_issues(descriptor: CdnDescriptor) -> tuple[IssueCode, ...]:
    """Per-asset issues, in fixed order. Exempt assets have none."""
    if descriptor.is_exempt:
        return ()
    issues: list[IssueCode] = []
    if not descriptor.has_auto_format:
        issues.append(IssueCode.ENABLE_AUTO_FORMAT)
    if not descriptor.has_auto_quality:
        issues.append(IssueCode.ENABLE_AUTO_QUALITY)
    if not descriptor.has_sizing:
        issues.append(IssueCode.ADD_RESPONSIVE_SIZING)
    return tuple(issues)


def cache_findings(references: Iterable[AssetReference]) -> list[CacheFinding]:
    """CDN responses that declare Cache-Control without a max-age, sorted by url."""
    findings = {
        CacheFinding(url=r.url, note=f"Cache-Control suboptimal: {r.cache_control}")
        for r in references
        if r.descriptor is not None and r.cache_control and not MAX_AGE_RE.search(r.cache_control)
    }
    return sorted(findings, key=lambda f: (f.url, f.note))


def compute_score(cdn_count: int, total_count: int, fully_optimized: int) -> int:
    """
    Half coverage, half optimization, rounded half-up and clamped to [0, 100].
    Zero CDN assets or zero assets scores 0.
    """
    if cdn_count <= 0 or total_count <= 0:
        return 0
    raw = 0.5 * (cdn_count / total_count * 100) + 0.5 * (fully_optimized / cdn_count * 100)
    return max(0, min(100, math.floor(raw + 0.5)))


def sampling_info(
    sampled_pages: list[str],
    total_discovered: int,
    sitemap_url: Optional[str] = None,
    failed_pages: Iterable = (),
) -> SamplingInfo:
    """Sampling metadata with the sampled share rounded to one decimal."""
    pct = (len(sampled_pages) / total_discovered * 100) if total_discovered else 0.0
    return SamplingInfo(
        pages_sampled=len(sampled_pages),
        total_pages_in_sitemap=total_discovered,
        percentage=f"{pct:.1f}",
        sitemap_url=sitemap_url,
        sampled_pages=tuple(sampled_pages),
        failed_pages=tuple(failed_pages),
    )


def finalize(
    references: Iterable[AssetReference],
    total_requests: Optional[int] = None,
    sampling: Optional[SamplingInfo] = None,
    policy: Optional[ScoringPolicy] = None,
) -> AnalysisResult:
    """
    Build the analysis result for a collection of asset references.

    Pure and order-independent: the same references in any order yield
    the same result.
    """
    policy = policy or ScoringPolicy()
    refs = list(references)

    analyzed = sorted(
        (
            AnalyzedAsset(
                url=r.url,
                descriptor=r.descriptor,
                issues=asset_issues(r.descriptor),
                page_url=r.source_page,
            )
            for r in refs
            if r.descriptor is not None
        ),
        key=lambda a: (a.url, a.page_url or ""),
    )
    non_cdn = sorted(r.url for r in refs if r.descriptor is None)

    cdn_count = len(analyzed)
    total_assets = cdn_count + len(non_cdn)
    optimizable = [a for a in analyzed if not a.descriptor.is_exempt]
    auto_format = sum(1 for a in optimizable if a.descriptor.has_auto_format)
    auto_quality = sum(1 for a in optimizable if a.descriptor.has_auto_quality)
    missing_sizing = sum(1 for a in optimizable if IssueCode.ADD_RESPONSIVE_SIZING in a.issues)
    fully_optimized = sum(1 for a in analyzed if a.descriptor.is_fully_optimized)

    suggestions: list[str] = []
    if optimizable:
        if auto_format / len(optimizable) < policy.adoption_threshold:
            suggestions.append(SUGGEST_AUTO_FORMAT)
        if auto_quality / len(optimizable) < policy.adoption_threshold:
            suggestions.append(SUGGEST_AUTO_QUALITY)
    if non_cdn:
        suggestions.append(SUGGEST_MIGRATE)
    if missing_sizing:
        suggestions.append(SUGGEST_RESIZE.format(count=missing_sizing))

    # Advisory only; the score ignores caching
    caching = cache_findings(refs)
    if caching:
        suggestions.append(SUGGEST_CACHE)

    score = compute_score(cdn_count, total_assets, fully_optimized)
    logger.debug("Scored %d CDN / %d total assets: %d", cdn_count, total_assets, score)

    return AnalysisResult(
        total_requests=len(refs) if total_requests is None else total_requests,
        per_asset=tuple(analyzed),
        non_cdn_media_assets=tuple(non_cdn),
        score=score,
        suggestions=tuple(dict.fromkeys(suggestions)),
        cache_findings=tuple(caching),
        coverage=CoverageStats(
            total=len(refs) if total_requests is None else total_requests,
            cdn=cdn_count,
            non_cdn=len(non_cdn),
            auto_format=auto_format,
            auto_quality=auto_quality,
            optimizable=len(optimizable),
            fully_optimized=fully_optimized,
            missing_sizing=missing_sizing,
        ),
        sampling=sampling,
    )
