"""Transformation token matcher for delivery URL path segments."""

import re
from typing import NamedTuple, Optional

# letters '_' (keyword | number), with optional ':'-qualified parameters
TOKEN_RE = re.compile(
    r"^[a-z]+_(?:-?\d+(?:\.\d+)?|[a-z][a-z0-9_]*)(?::[a-z0-9_.\-]+)*$",
    re.IGNORECASE,
)
VERSION_RE = re.compile(r"^v\d+$")
EXTENSION_RE = re.compile(r"\.([a-z][a-z0-9]{1,4})$", re.IGNORECASE)

VIDEO_EXTENSIONS = frozenset(
    {"mp4", "webm", "mov", "m4v", "ogv", "avi", "mkv", "flv", "m3u8", "mpd"}
)


class TransformationScan(NamedTuple):
    """Transformation segments taken from the front of a path, and what follows."""

    segments: list[str]
    remainder: list[str]


def split_tokens(segment: str) -> list[str]:
    """Comma-split a segment, dropping empty parts."""
    return [t for t in segment.split(",") if t]


def is_transformation_token(token: str) -> bool:
    return bool(TOKEN_RE.match(token))


def is_transformation_segment(segment: str) -> bool:
    """True when every comma-joined part of the segment is a transformation token."""
    tokens = split_tokens(segment)
    return bool(tokens) and all(is_transformation_token(t) for t in tokens)


def is_version_marker(segment: str) -> bool:
    return bool(VERSION_RE.match(segment))


def file_extension(path: str) -> Optional[str]:
    """Lowercased file extension of the last path component, if any."""
    m = EXTENSION_RE.search(path)
    return m.group(1).lower() if m else None


def has_file_extension(path: str) -> bool:
    return file_extension(path) is not None


def scan_transformations(segments: list[str], single: bool = False) -> TransformationScan:
    """
    Take leading transformation segments off a path.

    Scanning stops at a version marker, at a segment with a file extension,
    or at the first segment that is not a transformation. The last segment is
    never taken so a public id always remains. With ``single`` the scan stops
    after the first transformation segment. A version marker directly after
    the transformations is dropped from the remainder.
    """
    taken: list[str] = []
    i = 0
    while i < len(segments) - 1:
        seg = segments[i]
        if is_version_marker(seg) or has_file_extension(seg) or not is_transformation_segment(seg):
            break
        taken.append(seg)
        i += 1
        if single:
            break
    if i < len(segments) - 1 and is_version_marker(segments[i]):
        i += 1
    return TransformationScan(taken, segments[i:])


def tokens_from_segments(segments: list[str]) -> frozenset[str]:
    return frozenset(t for seg in segments for t in split_tokens(seg))
