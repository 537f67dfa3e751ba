"""
Frontier for a single crawl.
Manages the FIFO queue of discovered URLs and the visited set, and enforces the page budget.
Owned by one CrawlEngine invocation and only mutated between fetch batches, so no lock is needed.
"""

from collections import deque

from crawler.core import logger
from crawler.normalizer import strip_fragment


class Frontier:
    """
    FIFO frontier with a visited set and a queued set.
    INVARIANT: a URL enters `visited` at most once and `visited` never shrinks.
    INVARIANT: len(visited) + len(queued) never exceeds max_pages.
    """

    def __init__(self, max_pages):
        self.max_pages = max_pages
        self.queue = deque()
        self.queued = set()
        self.visited = set()

    @staticmethod
    def _key(url):
        return strip_fragment(url)

    def remaining_budget(self):
        return self.max_pages - len(self.visited) - len(self.queued)

    def enqueue(self, url):
        """
        Returns:
        - "enqueued" if successful
        - "duplicate" if already visited or queued
        - "budget" if the page budget is already fully allocated
        """
        key = self._key(url)
        if key in self.visited or key in self.queued:
            return "duplicate"
        if self.remaining_budget() <= 0:
            return "budget"
        self.queue.append(key)
        self.queued.add(key)
        logger.debug(f"[CRAWL] enqueued {key} qsize={len(self.queue)} visited={len(self.visited)}")
        return "enqueued"

    def next_batch(self, size):
        """
        Drain up to `size` URLs and mark each visited before it is dispatched,
        so the same URL is never fetched twice concurrently.
        """
        batch = []
        while self.queue and len(batch) < size and len(self.visited) < self.max_pages:
            url = self.queue.popleft()
            self.queued.discard(url)
            if url in self.visited:
                continue
            self.visited.add(url)
            batch.append(url)
        return batch

    def is_exhausted(self):
        return not self.queue or len(self.visited) >= self.max_pages

    def get_stats(self):
        return {
            "queue_size": len(self.queue),
            "visited_count": len(self.visited),
            "max_pages": self.max_pages,
        }
