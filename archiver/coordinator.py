"""
FILE DESCRIPTION: Pipeline coordinator wiring crawl -> rewrite -> save -> finalize -> record for one archive request.
KEY FUNCTIONS/CLASSES: PipelineState, ArchiveRequest, ArchiveResult, ArchiveCoordinator
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from crawler.core import CRAWL_CONCURRENCY, DEFAULT_MAX_PAGES, MAX_PAGES_LIMIT, logger
from crawler.engine import CrawlEngine
from crawler.errors import FetchError, ValidationError
from crawler.models import ProgressEvent, Resource
from crawler.policy import URLPolicy
from rewriting.engine import rewrite_css, rewrite_html
from snapshot.storage import SnapshotStore


class PipelineState(Enum):
    PENDING = "PENDING"
    RESERVING = "RESERVING"
    CRAWLING = "CRAWLING"
    REWRITING_AND_SAVING = "REWRITING_AND_SAVING"
    FINALIZING = "FINALIZING"
    RECORDED = "RECORDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ArchiveRequest:
    """Trigger input for one capture."""
    url: str
    max_pages: int = DEFAULT_MAX_PAGES
    progress_id: Optional[str] = None


@dataclass(frozen=True)
class ArchiveResult:
    host: str
    timestamp: str
    base_prefix: str
    resource_count: int

    def to_dict(self):
        return {
            "host": self.host,
            "ts": self.timestamp,
            "base": self.base_prefix,
            "count": self.resource_count,
        }


def validate_request(request: ArchiveRequest) -> None:
    if not request.url or not isinstance(request.url, str):
        raise ValidationError("url is required")
    if not URLPolicy.is_http(request.url):
        raise ValidationError(f"url must be an absolute http(s) URL: {request.url!r}")
    if isinstance(request.max_pages, bool) or not isinstance(request.max_pages, int):
        raise ValidationError(f"maxPages must be an integer, got {request.max_pages!r}")
    if not 1 <= request.max_pages <= MAX_PAGES_LIMIT:
        raise ValidationError(f"maxPages must be between 1 and {MAX_PAGES_LIMIT}, got {request.max_pages}")


def _charset(content_type):
    for part in (content_type or "").split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip("\"' ")
    return "utf-8"


def _decode(resource: Resource) -> str:
    try:
        return resource.body.decode(_charset(resource.content_type), errors="replace")
    except LookupError:
        return resource.body.decode("utf-8", errors="replace")


class ArchiveCoordinator:
    """
    State machine per request:
        RESERVING -> CRAWLING -> REWRITING_AND_SAVING -> FINALIZING -> RECORDED
    Any stage raising moves straight to FAILED and the originating error propagates to the caller.
    Files already written by a failed run stay on disk; the landing page is only produced
    after every resource has been saved.
    """

    def __init__(self, store: SnapshotStore, engine: Optional[CrawlEngine] = None,
                 registry=None, concurrency: int = CRAWL_CONCURRENCY):
        self.store = store
        self.engine = engine or CrawlEngine()
        self.registry = registry
        self.concurrency = concurrency
        self.state = PipelineState.PENDING

    def _transition(self, state: PipelineState, url: str):
        logger.info(f"[PIPELINE] {url}: {self.state.value} -> {state.value}")
        self.state = state

    def _publish(self, progress_id, event: ProgressEvent):
        if self.registry is not None and progress_id:
            self.registry.publish(progress_id, event)

    def _on_progress(self, progress_id):
        if self.registry is None or not progress_id:
            return None
        return self.registry.sink(progress_id)

    def transform(self, resource: Resource, base_prefix: str) -> bytes:
        """Bytes to persist for a resource: rewritten HTML/CSS, raw bytes otherwise."""
        if resource.is_html():
            return rewrite_html(_decode(resource), resource.source_url, base_prefix).encode("utf-8")
        if resource.is_css():
            return rewrite_css(_decode(resource), resource.source_url, base_prefix).encode("utf-8")
        return resource.body

    def run(self, request: ArchiveRequest) -> ArchiveResult:
        validate_request(request)
        url = request.url
        self.state = PipelineState.PENDING
        try:
            self._transition(PipelineState.RESERVING, url)
            snapshot = self.store.reserve(url, self.store.allocate_timestamp(url))
            timestamp = snapshot.timestamp

            self._transition(PipelineState.CRAWLING, url)
            resources = self.engine.crawl(
                url,
                max_pages=request.max_pages,
                concurrency=self.concurrency,
                on_progress=self._on_progress(request.progress_id),
            )
            if not resources:
                raise FetchError(url, "nothing could be captured from the seed URL")

            self._transition(PipelineState.REWRITING_AND_SAVING, url)
            landing = self.store.landing_resource(snapshot, resources)
            landing_data = None
            for index, resource in enumerate(resources, start=1):
                data = self.transform(resource, snapshot.base_prefix)
                self.store.write(snapshot, resource, data)
                if resource is landing:
                    # Later writes may replace the landing file with a directory
                    landing_data = data
                self._publish(request.progress_id,
                              ProgressEvent("save", min(index, request.max_pages), request.max_pages, resource.source_url))

            self._transition(PipelineState.FINALIZING, url)
            self.store.finalize(snapshot, resources, landing_data)
            self.store.record(url, timestamp)
            self._transition(PipelineState.RECORDED, url)
        except Exception as e:
            self._transition(PipelineState.FAILED, url)
            logger.error(f"[PIPELINE] archive of {url} failed: {e}")
            raise
        finally:
            if self.registry is not None and request.progress_id:
                self.registry.close(request.progress_id)

        result = ArchiveResult(
            host=snapshot.host,
            timestamp=timestamp,
            base_prefix=snapshot.base_prefix,
            resource_count=len(resources),
        )
        logger.info(f"[PIPELINE] archived {url}: {result.resource_count} resources at {result.base_prefix}")
        return result
