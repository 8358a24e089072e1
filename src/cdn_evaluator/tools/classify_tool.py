"""Classify tool - recognize CDN delivery URLs."""

import logging
from typing import Optional
from urllib.parse import urlsplit

from ..models.cdn_descriptor import CdnDescriptor, DeliveryType, ResourceType
from .transform_tokens import (
    VIDEO_EXTENSIONS,
    file_extension,
    has_file_extension,
    is_transformation_segment,
    scan_transformations,
    tokens_from_segments,
)

logger = logging.getLogger(__name__)

RESOURCE_ALIASES = {
    "image": ResourceType.IMAGE,
    "images": ResourceType.IMAGE,
    "video": ResourceType.VIDEO,
    "raw": ResourceType.RAW,
}
DELIVERY_TYPES = {d.value: d for d in DeliveryType}


def _split_url(url: str) -> tuple[Optional[str], list[str]] | None:
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return None
    if parts.scheme and parts.scheme.lower() not in ("http", "https"):
        return None
    segments = [s for s in parts.path.split("/") if s]
    return hostname, segments


def _descriptor(
    cloud_name: Optional[str],
    resource_type: ResourceType,
    delivery_type: DeliveryType,
    transformations: list[str],
    remainder: list[str],
) -> Optional[CdnDescriptor]:
    public_id = "/".join(remainder)
    if not public_id:
        return None
    return CdnDescriptor(
        cloud_name=cloud_name,
        resource_type=resource_type,
        delivery_type=delivery_type,
        public_id=public_id,
        transformation_set=tokens_from_segments(transformations),
        raw_transformations="/".join(transformations),
    )


def match_canonical(segments: list[str], hostname: Optional[str] = None) -> Optional[CdnDescriptor]:
    """Match ``[cloud/]{resource}/{delivery}/[transformations/]public_id``."""
    for i, seg in enumerate(segments):
        resource_type = RESOURCE_ALIASES.get(seg.lower())
        if resource_type is None or i + 1 >= len(segments):
            continue
        following = segments[i + 1]
        if following.lower() in DELIVERY_TYPES:
            delivery_type = DELIVERY_TYPES[following.lower()]
            rest = segments[i + 2:]
        elif is_transformation_segment(following):
            # implicit upload: /image/w_500/sample.jpg
            delivery_type = DeliveryType.UPLOAD
            rest = segments[i + 1:]
        else:
            continue
        if not rest:
            continue
        scan = scan_transformations(rest, single=resource_type is ResourceType.RAW)
        cloud_name = segments[i - 1] if i > 0 else hostname
        descriptor = _descriptor(cloud_name, resource_type, delivery_type, scan.segments, scan.remainder)
        if descriptor:
            return descriptor
    return None


def match_heuristic(segments: list[str], hostname: Optional[str] = None) -> Optional[CdnDescriptor]:
    """Recognize custom-domain URLs by their first transformation segment."""
    for k, seg in enumerate(segments):
        if not is_transformation_segment(seg):
            continue
        if k + 1 >= len(segments):
            return None
        scan = scan_transformations(segments[k:])
        remainder = "/".join(scan.remainder)
        if not scan.segments or not has_file_extension(remainder):
            return None
        ext = file_extension(remainder)
        resource_type = ResourceType.VIDEO if ext in VIDEO_EXTENSIONS else ResourceType.IMAGE
        return _descriptor(hostname, resource_type, DeliveryType.UPLOAD, scan.segments, scan.remainder)
    return None


def classify_url(url: str) -> Optional[CdnDescriptor]:
    """
    Classify a URL as a CDN delivery URL.

    Returns a descriptor, or None when the URL is not recognized.
    Never raises.
    """
    if not isinstance(url, str) or not url.strip():
        return None
    split = _split_url(url)
    if split is None:
        return None
    hostname, segments = split
    if not segments:
        return None
    descriptor = match_canonical(segments, hostname) or match_heuristic(segments, hostname)
    if descriptor is None:
        logger.debug("Not a CDN delivery URL: %s", url)
    return descriptor
