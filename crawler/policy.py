"""
Centralized URL policy for origin checks and asset classification.

All extension and scope rules live here. Other modules should import and
use URLPolicy instead of duplicating extension lists or ad-hoc checks.
"""

from urllib.parse import urlparse
from typing import Dict, Optional, Tuple
from threading import Lock


class URLPolicy:
    """
    Central policy for URL filtering and classification.

    Methods:
    - is_http(url): True for http/https
    - origin(url): (scheme, host, port) tuple, default ports filled in
    - is_same_origin(a, b): scheme + host + port match exactly
    - is_asset(url): True for image/style/script/font/icon extensions
    - eval(url, seed_url): single gate used by the crawl engine to decide enqueue
    """

    # Static assets an in-scope page needs to render
    ASSET_EXTENSIONS = (
        # Images
        ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp", ".avif",
        # Icons
        ".ico",
        # Styles/Scripts
        ".css", ".js", ".mjs",
        # Fonts
        ".woff", ".woff2", ".ttf", ".otf", ".eot",
    )

    DEFAULT_PORTS = {"http": 80, "https": 443}

    # Stats with thread-safety
    _lock: Lock = Lock()
    _stats: Dict[str, int] = {
        "evaluations": 0,
        "allowed_page": 0,
        "allowed_asset": 0,
        "blocked_non_http": 0,
        "blocked_off_origin": 0,
    }

    @staticmethod
    def is_http(url: str) -> bool:
        try:
            scheme = urlparse(url).scheme
            return scheme in ("http", "https") and bool(urlparse(url).netloc)
        except ValueError:
            return False

    @classmethod
    def origin(cls, url: str) -> Optional[Tuple[str, str, int]]:
        try:
            parsed = urlparse(url)
            scheme = parsed.scheme.lower()
            host = (parsed.hostname or "").lower()
            port = parsed.port or cls.DEFAULT_PORTS.get(scheme)
        except ValueError:
            return None
        if not scheme or not host:
            return None
        return scheme, host, port

    @classmethod
    def is_same_origin(cls, url_a: str, url_b: str) -> bool:
        origin_a = cls.origin(url_a)
        return origin_a is not None and origin_a == cls.origin(url_b)

    @classmethod
    def is_asset(cls, url: str) -> bool:
        try:
            path = urlparse(url).path.lower()
        except ValueError:
            return False
        return path.endswith(cls.ASSET_EXTENSIONS)

    @classmethod
    def eval(cls, url: str, seed_url: str):
        """
        Evaluate a discovered URL against the crawl scope of seed_url.
        Returns (allowed: bool, reason: str) where reason is one of the stats keys.
        Same-origin URLs are pages to navigate; off-origin URLs are admitted only as assets.
        """
        with cls._lock:
            cls._stats["evaluations"] += 1

        if not cls.is_http(url):
            reason = "blocked_non_http"
        elif cls.is_same_origin(seed_url, url):
            reason = "allowed_page"
        elif cls.is_asset(url):
            reason = "allowed_asset"
        else:
            reason = "blocked_off_origin"

        with cls._lock:
            cls._stats[reason] += 1
        return reason.startswith("allowed"), reason

    @classmethod
    def get_stats(cls) -> Dict[str, int]:
        with cls._lock:
            return dict(cls._stats)

    @classmethod
    def reset_stats(cls) -> None:
        with cls._lock:
            for k in cls._stats:
                cls._stats[k] = 0
