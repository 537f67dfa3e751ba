"""
Exception taxonomy shared by the crawl, snapshot and archive phases.
"""


class WaybackError(Exception):
    """Base exception for every failure raised by this package."""
    pass


class ValidationError(WaybackError):
    """Raised when a request is rejected before any crawl starts."""
    pass


class FetchError(WaybackError):
    """Raised on network timeout, non-2xx status or a crashed fetch backend."""

    def __init__(self, url, reason):
        super().__init__(f"fetch failed for {url}: {reason}")
        self.url = url
        self.reason = reason


class BackendUnavailableError(FetchError):
    """Raised when the headless browser cannot be started (or died)."""

    def __init__(self, reason, url=None):
        super().__init__(url or "<browser>", reason)


class StorageError(WaybackError):
    """Raised on any filesystem failure while persisting a snapshot."""

    def __init__(self, path, reason):
        super().__init__(f"storage failure at {path}: {reason}")
        self.path = str(path)
        self.reason = reason
