"""
Request path canonicalization

Policies, upstream mounts and the forwarded URL are all derived from one
canonical path: dot segments resolved, empty segments dropped and every
segment re-encoded the same way.
"""

from dataclasses import dataclass
from urllib.parse import quote, unquote

from fastapi import Request

from shared.utils.errors import NotFoundError

DOT_SEGMENTS = (".", "..")

# RFC 3986 pchar characters other than "/" and "%"
SEGMENT_SAFE = "!$&'()*+,;=:@-._~"


@dataclass(frozen=True)
class CanonicalPath:
    decoded: str  # matched against policies and mounts
    encoded: str  # forwarded upstream


def canonicalize_path(raw_path: str) -> CanonicalPath:
    """
    Canonicalize a percent-encoded request path

    Args:
        raw_path: Path exactly as received, without the query string

    Returns:
        CanonicalPath whose decoded and encoded forms name the same segments

    Raises:
        NotFoundError: If a segment hides dot segments behind an encoded slash
    """
    raw_segments = raw_path.split("/")
    segments = []
    for raw_segment in raw_segments:
        segment = unquote(raw_segment)
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        if "/" in segment and any(part in DOT_SEGMENTS for part in segment.split("/")):
            raise NotFoundError(f"Not found - {raw_path}")
        segments.append(segment)

    # "/a/b/" and "/a/b/.." both keep their trailing slash
    trailing = "/" if segments and (
        raw_path.endswith("/") or unquote(raw_segments[-1]) in DOT_SEGMENTS
    ) else ""

    return CanonicalPath(
        decoded="/" + "/".join(segments) + trailing,
        encoded="/" + "/".join(quote(segment, safe=SEGMENT_SAFE) for segment in segments) + trailing,
    )


def get_request_path(request: Request) -> CanonicalPath:
    """Canonical form of the path the client actually sent"""
    raw = request.scope.get("raw_path")
    if raw is None:
        return canonicalize_path(quote(request.url.path, safe="/" + SEGMENT_SAFE))

    # latin-1 round trip turns any non-ASCII bytes back into %XX escapes
    raw_path = raw.decode("latin-1").partition("?")[0]
    return canonicalize_path(quote(raw_path, safe="/%" + SEGMENT_SAFE, encoding="latin-1"))
