"""Probe tool - best-effort asset sizes and advisory savings estimates.

Nothing here feeds the score. Sizes come from declared headers, and
savings are policy percentages applied to those sizes.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from ..config.loader import Config, ScoringPolicy
from ..models.analysis_result import AnalyzedAsset

logger = logging.getLogger(__name__)

CONTENT_RANGE_RE = re.compile(r"/\s*(\d+)\s*$")


@dataclass
class AssetSize:
    """Declared size of an asset; ``known`` is False when probing failed."""

    url: str
    bytes: Optional[int] = None
    content_type: Optional[str] = None
    known: bool = False


@dataclass
class SavingsEstimate:
    """Estimated bytes saved by fixing an asset's issues."""

    url: str
    original_bytes: int
    estimated_savings_bytes: int
    savings_ratio: float


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if value and value.isdigit() and int(value) > 0:
        return int(value)
    return None


def _content_range_total(response: httpx.Response) -> Optional[int]:
    m = CONTENT_RANGE_RE.search(response.headers.get("content-range", ""))
    return int(m.group(1)) if m else None


async def probe_asset_size(
    url: str,
    client: httpx.AsyncClient,
    fallback_delay: float = 0.25,
) -> AssetSize:
    """HEAD the asset; if no length is declared, retry as a one-byte ranged GET."""
    try:
        head = await client.head(url)
        content_type = head.headers.get("content-type")
        size = _content_length(head) if head.is_success else None
        if size is None:
            await asyncio.sleep(fallback_delay)
            ranged = await client.get(url, headers={"Range": "bytes=0-0"})
            content_type = ranged.headers.get("content-type") or content_type
            if ranged.status_code == 206:
                size = _content_range_total(ranged)
            elif ranged.is_success:
                size = _content_length(ranged)
    except httpx.HTTPError as e:
        logger.debug("Size probe failed for %s: %s", url, e)
        return AssetSize(url=url)
    if size is None:
        return AssetSize(url=url, content_type=content_type)
    return AssetSize(url=url, bytes=size, content_type=content_type, known=True)


async def probe_sizes(urls: Iterable[str], config: Config) -> dict[str, AssetSize]:
    """Probe distinct URLs one at a time, up to the configured cap."""
    sizes: dict[str, AssetSize] = {}
    probe = config.probe
    async with httpx.AsyncClient(
        timeout=probe.timeout_seconds,
        follow_redirects=True,
        trust_env=False,
        headers={"User-Agent": config.user_agent},
    ) as client:
        for url in dict.fromkeys(urls):
            if len(sizes) >= probe.max_assets:
                break
            sizes[url] = await probe_asset_size(url, client, probe.range_fallback_delay_seconds)
    return sizes


def estimate_savings(
    asset: AnalyzedAsset,
    size: AssetSize,
    policy: ScoringPolicy | None = None,
) -> Optional[SavingsEstimate]:
    """Apply the policy's per-issue percentages to a known size."""
    if not size.known or size.bytes is None:
        return None
    policy = policy or ScoringPolicy()
    ratio = min(1.0, sum(policy.savings_estimates.get(issue.value, 0.0) for issue in asset.issues))
    return SavingsEstimate(
        url=asset.url,
        original_bytes=size.bytes,
        estimated_savings_bytes=int(size.bytes * ratio),
        savings_ratio=ratio,
    )
