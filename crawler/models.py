from dataclasses import dataclass, field, asdict
from typing import List


@dataclass(frozen=True)
class FetchResult:
    """
    Output of one Fetch Backend call.
    Both strategies return this exact shape so the Crawl Engine stays strategy-agnostic.
    """
    url: str
    content_type: str
    body: bytes
    outbound_links: List[str] = field(default_factory=list)

    def is_html(self) -> bool:
        return "text/html" in (self.content_type or "").lower()


@dataclass(frozen=True)
class Resource:
    """
    One fetched unit handed from the Crawl Engine to the persistence phase.
    INVARIANT: Immutable once fetched.
    """
    source_url: str
    content_type: str
    body: bytes

    @classmethod
    def from_fetch(cls, result: FetchResult) -> "Resource":
        return cls(source_url=result.url, content_type=result.content_type, body=result.body)

    def is_html(self) -> bool:
        return "text/html" in (self.content_type or "").lower()

    def is_css(self) -> bool:
        return "text/css" in (self.content_type or "").lower()


@dataclass(frozen=True)
class ProgressEvent:
    """Ephemeral pipeline advancement record. Never persisted."""
    phase: str  # "crawl" | "save"
    page_count: int
    total: int
    url: str

    def to_dict(self):
        data = asdict(self)
        return {
            "phase": data["phase"],
            "pageCount": data["page_count"],
            "total": data["total"],
            "url": data["url"],
        }
