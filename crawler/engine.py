"""
FILE DESCRIPTION: Crawl orchestration. Breadth-first, same-origin, batch-bounded traversal from a seed URL.
KEY FUNCTIONS/CLASSES: CrawlEngine, build_backend
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional

from crawler.core import (
    CRAWL_CONCURRENCY,
    DEFAULT_MAX_PAGES,
    FETCH_FALLBACK,
    FETCH_STRATEGY,
    logger,
)
from crawler.errors import BackendUnavailableError, FetchError, ValidationError
from crawler.fetcher import FetchBackend, HttpFetcher
from crawler.frontier import Frontier
from crawler.js_renderer import BrowserFetcher
from crawler.models import FetchResult, ProgressEvent, Resource
from crawler.policy import URLPolicy

STRATEGIES: Dict[str, Callable[[], FetchBackend]] = {
    "http": HttpFetcher,
    "browser": BrowserFetcher,
}


def build_backend(name: str) -> FetchBackend:
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ValidationError(f"unknown fetch strategy: {name!r} (expected one of {sorted(STRATEGIES)})")


class CrawlEngine:
    """
    FLOW: Seeds a Frontier -> drains up to `concurrency` URLs per batch -> fetches the batch in parallel ->
    waits for the whole batch -> enqueues in-scope links of every fetched HTML page -> repeats until the
    frontier is empty or the page budget is spent.
    Exactly one strategy is tried first; if it fails outright the whole crawl is run once more with the other.
    """

    def __init__(self, strategy: str = FETCH_STRATEGY, fallback: bool = FETCH_FALLBACK,
                 backend_factory: Callable[[str], FetchBackend] = build_backend):
        if strategy not in STRATEGIES:
            raise ValidationError(f"unknown fetch strategy: {strategy!r}")
        self.strategy = strategy
        self.fallback = fallback
        self.backend_factory = backend_factory

    def strategy_order(self) -> List[str]:
        order = [self.strategy]
        if self.fallback:
            order.extend(name for name in STRATEGIES if name != self.strategy)
        return order

    def crawl(self, seed_url: str, max_pages: int = DEFAULT_MAX_PAGES,
              concurrency: int = CRAWL_CONCURRENCY,
              on_progress: Optional[Callable[[ProgressEvent], None]] = None) -> List[Resource]:
        if not URLPolicy.is_http(seed_url):
            raise ValidationError(f"seed URL must be an absolute http(s) URL: {seed_url!r}")
        if max_pages < 1:
            raise ValidationError(f"max_pages must be at least 1, got {max_pages}")
        if concurrency < 1:
            raise ValidationError(f"concurrency must be at least 1, got {concurrency}")

        order = self.strategy_order()
        for attempt, name in enumerate(order):
            is_last = attempt == len(order) - 1
            try:
                resources = self._crawl_with(self.backend_factory(name), seed_url, max_pages,
                                             concurrency, on_progress)
            except BackendUnavailableError as e:
                if is_last:
                    raise
                logger.warning(f"[CRAWL] strategy '{name}' unavailable ({e.reason}); restarting crawl with '{order[attempt + 1]}'")
                continue

            if resources or is_last:
                return resources
            logger.warning(f"[CRAWL] strategy '{name}' captured nothing from {seed_url}; restarting crawl with '{order[attempt + 1]}'")
        return []

    def _crawl_with(self, backend: FetchBackend, seed_url, max_pages, concurrency, on_progress):
        frontier = Frontier(max_pages)
        frontier.enqueue(seed_url)
        resources = []
        completed = 0

        logger.info(f"[CRAWL] start {seed_url} strategy={backend.name} max_pages={max_pages} concurrency={concurrency}")
        with backend, ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="fetch") as executor:
            while not frontier.is_exhausted():
                batch = frontier.next_batch(concurrency)
                if not batch:
                    break

                futures = {executor.submit(backend.fetch, url): url for url in batch}
                for future in as_completed(futures):
                    url = futures[future]
                    completed += 1
                    try:
                        result = future.result()
                    except BackendUnavailableError:
                        raise
                    except FetchError as e:
                        logger.warning(f"[CRAWL] skipping {url}: {e.reason}")
                    else:
                        resources.append(Resource.from_fetch(result))
                        if result.is_html() and URLPolicy.is_same_origin(seed_url, url):
                            self._discover(frontier, seed_url, result)
                    self._emit(on_progress, ProgressEvent("crawl", completed, max_pages, url))

        stats = frontier.get_stats()
        logger.info(f"[CRAWL] done {seed_url}: {len(resources)} resources, {stats['visited_count']} visited, {stats['queue_size']} left queued")
        return resources

    @staticmethod
    def _discover(frontier: Frontier, seed_url: str, result: FetchResult):
        for link in result.outbound_links:
            allowed, reason = URLPolicy.eval(link, seed_url)
            if not allowed:
                logger.debug(f"[CRAWL] rejected {link}: {reason}")
                continue
            if frontier.enqueue(link) == "budget":
                logger.debug(f"[CRAWL] page budget allocated; ignoring remaining links on {result.url}")
                return

    @staticmethod
    def _emit(on_progress, event):
        if on_progress is None:
            return
        try:
            on_progress(event)
        except Exception as e:
            # Observers are fire-and-forget
            logger.debug(f"[PROGRESS] observer failed for {event.url}: {e}")
