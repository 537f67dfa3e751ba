"""
HTTP fetching module for the crawler.
Defines the Fetch Backend contract shared by both strategies and the
lightweight requests-based implementation.
"""

import time
from abc import ABC, abstractmethod

import requests
from bs4 import BeautifulSoup
from urllib.parse import urljoin

from crawler.core import USER_AGENT, REQUEST_TIMEOUT, logger
from crawler.errors import FetchError
from crawler.models import FetchResult
from crawler.normalizer import strip_fragment
from crawler.policy import URLPolicy


class FetchBackend(ABC):
    """
    Abstraction for one way of retrieving a URL.
    Contractual Requirements for Implementers:
    - MUST return content type, raw bytes and absolute outbound links.
    - MUST raise FetchError on timeout, non-2xx status or backend crash.
    - MUST be safe to call from several crawl threads at once.
    """
    name = "abstract"

    def open(self) -> None:
        """Acquire long-lived resources. Called once per crawl."""
        pass

    def close(self) -> None:
        """Release whatever open() acquired, even after failures."""
        pass

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @abstractmethod
    def fetch(self, url: str) -> FetchResult:
        pass


# === LINK EXTRACTOR ===

class LinkExtractor:
    """
    FLOW: Parses HTML using BeautifulSoup -> Collects every href/src attribute and srcset candidate ->
    Resolves each against the page URL -> Returns de-duplicated absolute http(s) URLs in document order.
    """
    @staticmethod
    def parse_srcset(value):
        candidates = []
        for entry in (value or "").split(","):
            parts = entry.strip().split()
            if parts:
                candidates.append(parts[0])
        return candidates

    @staticmethod
    def extract_urls(html, base_url):
        soup = BeautifulSoup(html, "html.parser")
        found = []

        for tag in soup.find_all(True):
            raw = []
            for attr in ("href", "src"):
                value = tag.get(attr)
                if isinstance(value, str):
                    raw.append(value)
            if tag.get("srcset"):
                raw.extend(LinkExtractor.parse_srcset(tag["srcset"]))

            for ref in raw:
                ref = ref.strip()
                if not ref or ref.startswith("#"):
                    continue
                try:
                    absolute = strip_fragment(urljoin(base_url, ref))
                except ValueError:
                    continue
                if URLPolicy.is_http(absolute):
                    found.append(absolute)

        return list(dict.fromkeys(found))


# === PAGE FETCHER ===

class HttpFetcher(FetchBackend):
    """
    FLOW: Issues one GET with a fixed timeout and declared user agent ->
    Rejects non-2xx responses -> Parses links only when the body is HTML.
    No script execution and no per-URL retries.
    """
    name = "http"

    def __init__(self, timeout=REQUEST_TIMEOUT, user_agent=USER_AGENT):
        self.timeout = timeout
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }

    def fetch(self, url: str) -> FetchResult:
        start_time = time.time()
        try:
            r = requests.get(url, timeout=self.timeout, headers=self.headers, allow_redirects=True)
        except requests.exceptions.Timeout as e:
            raise FetchError(url, f"timeout after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise FetchError(url, str(e)) from e

        fetch_time_ms = int((time.time() - start_time) * 1000)
        if not 200 <= r.status_code < 300:
            raise FetchError(url, f"http error: {r.status_code}")

        content_type = r.headers.get("Content-Type", "")
        body = r.content
        links = []
        if "text/html" in content_type.lower():
            # Resolve against the final URL so relative links survive redirects
            links = LinkExtractor.extract_urls(r.text, r.url or url)

        logger.info(f"[FETCH] {url} -> {r.status_code} {content_type or '-'} {len(body)}B in {fetch_time_ms}ms ({len(links)} links)")
        return FetchResult(url=url, content_type=content_type, body=body, outbound_links=links)
