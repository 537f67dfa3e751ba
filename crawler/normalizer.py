"""
URL -> filesystem path mapping for snapshot storage.
Pure functions only: the same URL always maps to the same relative path.
"""

import re
from urllib.parse import urlparse, urlunparse, unquote, quote

# Every page and asset lives under this subdirectory of the snapshot root,
# so the landing index.html at the root never collides with a captured path.
BASE_DIR = "_"

# Off-origin assets are kept apart from the site's own paths
EXTERNAL_DIR = "_ext"

INDEX_FILE = "index.html"
PLACEHOLDER = "_"
MAX_SEGMENT_LENGTH = 200

INVALID_FILENAME_CHARS_RE = re.compile(r'[/\\?%*:|"<>\x00-\x1f\x7f]')
WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com\d|lpt\d)(\..*)?$", re.IGNORECASE)


def to_host(url: str) -> str:
    """Host (with port, if any) of a URL, lower-cased."""
    return urlparse(url).netloc.lower()


def strip_fragment(url: str) -> str:
    p = urlparse(url)
    return urlunparse((p.scheme, p.netloc, p.path, p.params, p.query, ""))


def sanitize_segment(segment: str) -> str:
    """
    Make one path segment safe as a single file or directory name.
    '.' and '..' never survive, so a segment cannot climb out of its parent.
    """
    name = INVALID_FILENAME_CHARS_RE.sub("_", segment)
    name = name.rstrip(". ")
    if not name or set(name) == {"."}:
        return PLACEHOLDER
    if WINDOWS_RESERVED_RE.match(name):
        name = "_" + name
    return name[:MAX_SEGMENT_LENGTH]


def _path_segments(url: str):
    path = urlparse(url).path or "/"
    if path.endswith("/"):
        path += INDEX_FILE
    # Split before decoding so an encoded %2F stays inside its segment
    return [sanitize_segment(unquote(seg)) for seg in path.lstrip("/").split("/")]


def normalize_path_for_disk(url: str) -> str:
    """
    Relative snapshot path for a URL, e.g.
    https://example.com/           -> _/index.html
    https://example.com/img/a.png  -> _/img/a.png
    https://example.com/blog/      -> _/blog/index.html
    Query strings and fragments do not take part in the mapping.
    """
    return "/".join([BASE_DIR] + _path_segments(url))


def external_path_for_disk(url: str) -> str:
    """Relative snapshot path for an asset fetched from another origin."""
    host = sanitize_segment(to_host(url))
    return "/".join([EXTERNAL_DIR, host] + _path_segments(url))


def to_href(relative_path: str) -> str:
    """Percent-encode a relative disk path for use inside an HTML attribute."""
    return quote(relative_path, safe="/")
