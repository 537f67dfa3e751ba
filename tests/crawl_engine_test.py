"""
Crawl engine against an in-memory site: budget, containment, dedup, failures and strategy fallback.
"""

import unittest

from crawler.engine import CrawlEngine
from crawler.errors import BackendUnavailableError, ValidationError
from fakes import FakeSite, html_page

SEED = "https://example.com/"


def engine_for(*sites, strategy="http", fallback=True):
    """Engine whose strategies resolve to the given fake sites, in strategy order."""
    by_name = dict(zip(CrawlEngine(strategy=strategy, fallback=fallback).strategy_order(), sites))
    return CrawlEngine(strategy=strategy, fallback=fallback, backend_factory=lambda name: by_name[name])


class TestCrawlEngine(unittest.TestCase):
    def test_single_page(self):
        site = FakeSite({SEED: html_page()})
        resources = engine_for(site).crawl(SEED, max_pages=5)
        self.assertEqual([r.source_url for r in resources], [SEED])
        self.assertTrue(site.opened and site.closed)

    def test_follows_same_origin_links(self):
        site = FakeSite({
            SEED: html_page("https://example.com/about", "https://example.com/contact"),
            "https://example.com/about": html_page(SEED),
            "https://example.com/contact": html_page("https://example.com/about"),
        })
        resources = engine_for(site).crawl(SEED, max_pages=10)
        self.assertEqual(sorted(r.source_url for r in resources), [
            SEED, "https://example.com/about", "https://example.com/contact",
        ])
        self.assertEqual(len(site.fetched), 3)

    def test_page_budget_is_a_hard_cap(self):
        links = [f"https://example.com/p{i}" for i in range(5)]
        pages = {SEED: html_page(*links)}
        pages.update({link: html_page(*links) for link in links})
        site = FakeSite(pages)

        resources = engine_for(site).crawl(SEED, max_pages=3, concurrency=2)

        self.assertEqual(len(resources), 3)
        self.assertEqual(len(site.fetched), 3)
        self.assertEqual([r.source_url for r in resources][0], SEED)

    def test_off_origin_pages_never_fetched(self):
        site = FakeSite({
            SEED: html_page("https://other.org/page", "http://example.com/insecure",
                            "https://cdn.other.org/logo.png"),
            "https://cdn.other.org/logo.png": ("image/png", b"\x89PNG", []),
        })
        resources = engine_for(site).crawl(SEED, max_pages=10)

        self.assertNotIn("https://other.org/page", site.fetched)
        self.assertNotIn("http://example.com/insecure", site.fetched)
        self.assertIn("https://cdn.other.org/logo.png", [r.source_url for r in resources])

    def test_links_on_off_origin_html_are_not_followed(self):
        site = FakeSite({
            SEED: html_page("https://cdn.other.org/frame.svg"),
            "https://cdn.other.org/frame.svg": ("text/html", b"<a href='/x'>", ["https://cdn.other.org/x.png"]),
        })
        engine_for(site).crawl(SEED, max_pages=10)
        self.assertNotIn("https://cdn.other.org/x.png", site.fetched)

    def test_per_url_failure_is_skipped(self):
        site = FakeSite({
            SEED: html_page("https://example.com/broken", "https://example.com/ok"),
            "https://example.com/ok": html_page(),
        })
        resources = engine_for(site).crawl(SEED, max_pages=10)
        self.assertEqual(sorted(r.source_url for r in resources), [SEED, "https://example.com/ok"])
        self.assertIn("https://example.com/broken", site.fetched)

    def test_fragments_are_deduplicated(self):
        site = FakeSite({
            SEED: html_page("https://example.com/a#one", "https://example.com/a#two", "https://example.com/a"),
            "https://example.com/a": html_page(SEED + "#top"),
        })
        engine_for(site).crawl(SEED, max_pages=10)
        self.assertEqual(sorted(site.fetched), [SEED, "https://example.com/a"])

    def test_fallback_when_seed_fails(self):
        """Scenario: primary strategy captures nothing, the other strategy gets the site."""
        primary = FakeSite({}, fail=[SEED])
        secondary = FakeSite({SEED: html_page()})

        resources = engine_for(primary, secondary).crawl(SEED, max_pages=5)

        self.assertEqual([r.source_url for r in resources], [SEED])
        self.assertEqual(primary.fetched, [SEED])
        self.assertEqual(secondary.fetched, [SEED])

    def test_fallback_when_backend_unavailable(self):
        """Scenario: browser cannot launch, crawl restarts over plain HTTP."""
        browser = FakeSite({SEED: html_page()}, unavailable=True)
        http = FakeSite({SEED: html_page()})

        resources = engine_for(browser, http, strategy="browser").crawl(SEED, max_pages=5)

        self.assertEqual(len(resources), 1)
        self.assertEqual(browser.fetched, [])

    def test_no_fallback_returns_empty(self):
        primary = FakeSite({}, fail=[SEED])
        self.assertEqual(engine_for(primary, fallback=False).crawl(SEED, max_pages=5), [])

    def test_every_strategy_unavailable_raises(self):
        first = FakeSite({}, unavailable=True)
        second = FakeSite({}, unavailable=True)
        with self.assertRaises(BackendUnavailableError):
            engine_for(first, second).crawl(SEED, max_pages=5)

    def test_progress_events(self):
        links = [f"https://example.com/p{i}" for i in range(4)]
        site = FakeSite({SEED: html_page(*links), **{link: html_page() for link in links}})
        events = []

        engine_for(site).crawl(SEED, max_pages=4, concurrency=2, on_progress=events.append)

        self.assertEqual(len(events), 4)
        counts = [e.page_count for e in events]
        self.assertEqual(counts, sorted(counts))
        for event in events:
            self.assertEqual(event.phase, "crawl")
            self.assertEqual(event.total, 4)
            self.assertLessEqual(event.page_count, event.total)

    def test_failing_observer_does_not_stop_crawl(self):
        def observer(event):
            raise RuntimeError("subscriber went away")

        site = FakeSite({SEED: html_page("https://example.com/a"), "https://example.com/a": html_page()})
        resources = engine_for(site).crawl(SEED, max_pages=5, on_progress=observer)
        self.assertEqual(len(resources), 2)

    def test_invalid_input(self):
        engine = engine_for(FakeSite({}))
        with self.assertRaises(ValidationError):
            engine.crawl("ftp://example.com/", max_pages=5)
        with self.assertRaises(ValidationError):
            engine.crawl(SEED, max_pages=0)
        with self.assertRaises(ValidationError):
            engine.crawl(SEED, max_pages=5, concurrency=0)
        with self.assertRaises(ValidationError):
            CrawlEngine(strategy="carrier-pigeon")


if __name__ == "__main__":
    unittest.main()
