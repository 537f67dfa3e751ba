"""
Full-browser fetch strategy using Playwright.
Uses a DEDICATED THREAD to handle all Playwright operations, avoiding
greenlet/thread-switching errors when called from ThreadPoolExecutor workers.
"""

import threading
import queue
from playwright.sync_api import sync_playwright

from crawler.core import (
    JS_GOTO_TIMEOUT,
    JS_LAUNCH_TIMEOUT,
    BROWSER_USER_AGENT,
    logger,
)
from crawler.errors import FetchError, BackendUnavailableError
from crawler.fetcher import FetchBackend
from crawler.models import FetchResult
from crawler.normalizer import strip_fragment
from crawler.policy import URLPolicy

# Live DOM link enumeration: anchors for navigation, plus the assets the page loads
_LINKS_SCRIPT = """
() => {
    const out = [];
    document.querySelectorAll('a[href], area[href], link[href]').forEach(el => out.push(el.href));
    document.querySelectorAll('[src]').forEach(el => out.push(el.src));
    return out;
}
"""


# ------------------------------------------------------------
# Internal Protocol
# ------------------------------------------------------------
class RenderRequest:
    def __init__(self, url):
        self.url = url
        self.result_queue = queue.Queue()


class RenderResult:
    def __init__(self, content_type=None, body=None, links=None, error=None):
        self.content_type = content_type
        self.body = body
        self.links = links or []
        self.error = error


class BrowserFetcher(FetchBackend):
    """
    FLOW: open() starts the render thread and waits for the browser to launch ->
    fetch() hands a RenderRequest to that thread and blocks on its reply ->
    every navigation gets a fresh page which is closed whatever happens ->
    close() sends the poison pill and joins the thread.
    """
    name = "browser"

    def __init__(self, goto_timeout=JS_GOTO_TIMEOUT, launch_timeout=JS_LAUNCH_TIMEOUT,
                 user_agent=BROWSER_USER_AGENT):
        self.goto_timeout = goto_timeout
        self.launch_timeout = launch_timeout
        self.user_agent = user_agent
        self._requests = queue.Queue()
        self._ready = queue.Queue()
        self._thread = None
        self._init_lock = threading.Lock()

    # ------------------------------------------------------------
    # The Render Thread Loop
    # ------------------------------------------------------------
    def _render_loop(self):
        """
        Runs in a dedicated thread. Owns the Playwright instance.
        """
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=True,
                    args=[
                        "--disable-gpu",
                        "--no-sandbox",
                        "--disable-dev-shm-usage",
                    ],
                )
                try:
                    # One isolated context per crawl
                    context = browser.new_context(user_agent=self.user_agent)
                    self._ready.put(None)
                    logger.info("[JS-RENDER] Dedicated render thread started.")

                    while True:
                        req = self._requests.get()
                        if req is None:  # Poison pill
                            break
                        req.result_queue.put(self._render(context, req.url))
                finally:
                    browser.close()
        except Exception as e:
            logger.critical(f"[JS-RENDER] Fatal thread error: {e}")
            self._ready.put(e)
            self._fail_pending(e)

    def _render(self, context, url):
        page = context.new_page()
        try:
            response = page.goto(url, wait_until="networkidle", timeout=self.goto_timeout * 1000)
            if response is None:
                return RenderResult(error=FetchError(url, "no response"))
            if not response.ok:
                return RenderResult(error=FetchError(url, f"http error: {response.status}"))

            content_type = response.headers.get("content-type", "")
            if "html" in content_type.lower():
                body = page.content().encode("utf-8")
                links = page.evaluate(_LINKS_SCRIPT) or []
            else:
                body = response.body()
                links = []
            return RenderResult(content_type=content_type, body=body, links=links)
        except Exception as e:
            return RenderResult(error=FetchError(url, str(e)))
        finally:
            try:
                page.close()
            except Exception as e:
                logger.warning(f"[JS-RENDER] page.close failed for {url}: {e}")

    def _fail_pending(self, error):
        """Unblock callers still waiting when the render thread dies."""
        while True:
            try:
                req = self._requests.get_nowait()
            except queue.Empty:
                return
            if req is not None:
                req.result_queue.put(RenderResult(error=BackendUnavailableError(str(error), url=req.url)))

    # ------------------------------------------------------------
    # Public API (Blocking)
    # ------------------------------------------------------------
    def open(self):
        with self._init_lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._render_loop, daemon=True, name="RenderWorker")
            self._thread.start()
            try:
                outcome = self._ready.get(timeout=self.launch_timeout)
            except queue.Empty:
                # The pill is read once a late launch finishes, so the browser still gets closed
                self._stop()
                raise BackendUnavailableError(f"browser did not start within {self.launch_timeout}s")
            if outcome is not None:
                self._stop()
                raise BackendUnavailableError(str(outcome)) from outcome

    def _stop(self):
        """Send the poison pill and wait briefly for the render thread. Caller holds _init_lock."""
        if self._thread is None:
            return
        self._requests.put(None)
        self._thread.join(timeout=self.launch_timeout)
        self._thread = None
        logger.info("[JS-RENDER] Render thread stopped.")

    def close(self):
        with self._init_lock:
            self._stop()

    def fetch(self, url: str) -> FetchResult:
        """
        Prevents thread mismatch errors by delegating to the dedicated render thread.
        """
        if self._thread is None or not self._thread.is_alive():
            raise BackendUnavailableError("render thread is not running", url=url)

        req = RenderRequest(url)
        self._requests.put(req)

        # BLOCK until result, bounded in case the thread dies between put() and get()
        try:
            result = req.result_queue.get(timeout=self.goto_timeout * 2)
        except queue.Empty:
            raise BackendUnavailableError("render thread stopped responding", url=url)
        if result.error:
            raise result.error

        links = [strip_fragment(link) for link in result.links if URLPolicy.is_http(link)]
        logger.info(f"[JS-RENDER] {url} -> {result.content_type or '-'} {len(result.body)}B ({len(links)} links)")
        return FetchResult(
            url=url,
            content_type=result.content_type,
            body=result.body,
            outbound_links=list(dict.fromkeys(links)),
        )
