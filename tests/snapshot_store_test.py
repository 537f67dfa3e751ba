"""
Snapshot store: layout, collision handling, landing page, manifest and lookups.
"""

import json
import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from crawler.errors import StorageError, ValidationError
from crawler.models import Resource
from snapshot.manifest import Manifest
from snapshot.storage import SnapshotStore

SEED = "https://example.com/"
TS = "20240101000000"


def page(url, body=b"<html></html>"):
    return Resource(source_url=url, content_type="text/html", body=body)


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp, ignore_errors=True)
        self.store = SnapshotStore(self.tmp)


class TestLayout(StoreTestCase):
    def test_init_creates_snapshots_dir_and_manifest(self):
        self.assertTrue((Path(self.tmp) / "snapshots").is_dir())
        self.assertEqual(json.loads((Path(self.tmp) / "manifest.json").read_text()), {})

    def test_reserve(self):
        snapshot = self.store.reserve(SEED, TS)
        self.assertEqual(snapshot.host, "example.com")
        self.assertEqual(snapshot.base_prefix, f"/snapshots/example.com/{TS}/")
        self.assertTrue(snapshot.directory.is_dir())
        self.assertEqual(snapshot.directory, Path(self.tmp) / "snapshots" / "example.com" / TS)

    def test_reserve_rejects_bad_timestamp(self):
        for ts in ("2024", "../../etc", "2024010100000x"):
            with self.assertRaises(ValidationError):
                self.store.reserve(SEED, ts)

    def test_write_same_origin_and_external(self):
        snapshot = self.store.reserve(SEED, TS)
        rel = self.store.write(snapshot, page("https://example.com/img/a.png"), b"png")
        ext = self.store.write(snapshot, page("https://cdn.other.org/lib/x.js"), b"js")

        self.assertEqual(rel, "_/img/a.png")
        self.assertEqual(ext, "_ext/cdn.other.org/lib/x.js")
        self.assertEqual((snapshot.directory / rel).read_bytes(), b"png")
        self.assertEqual((snapshot.directory / ext).read_bytes(), b"js")

    def test_file_then_directory(self):
        """Scenario: /about saved as a file, then /about/team needs /about as a directory."""
        snapshot = self.store.reserve(SEED, TS)
        self.store.write(snapshot, page("https://example.com/about"), b"about")
        self.store.write(snapshot, page("https://example.com/about/team"), b"team")

        self.assertTrue((snapshot.directory / "_" / "about").is_dir())
        self.assertEqual((snapshot.directory / "_/about/team").read_bytes(), b"team")

    def test_directory_then_file(self):
        """Scenario: /about/team saved first, then /about itself arrives as a file."""
        snapshot = self.store.reserve(SEED, TS)
        self.store.write(snapshot, page("https://example.com/about/team"), b"team")
        self.store.write(snapshot, page("https://example.com/about"), b"about")

        self.assertEqual((snapshot.directory / "_/about").read_bytes(), b"about")

    def test_write_failure_is_storage_error(self):
        snapshot = self.store.reserve(SEED, TS)
        with patch("pathlib.Path.write_bytes", side_effect=PermissionError("read-only")):
            with self.assertRaises(StorageError):
                self.store.write(snapshot, page(SEED), b"x")


class TestFinalize(StoreTestCase):
    def test_copies_seed_page_to_root(self):
        snapshot = self.store.reserve(SEED, TS)
        resources = [page("https://example.com/about", b"about"), page(SEED, b"home")]
        for resource in resources:
            self.store.write(snapshot, resource, resource.body)

        target = self.store.finalize(snapshot, resources)

        self.assertEqual(target, snapshot.directory / "index.html")
        self.assertEqual(target.read_bytes(), b"home")
        self.assertEqual((snapshot.directory / "_/index.html").read_bytes(), b"home")

    def test_falls_back_to_first_html_page(self):
        """Scenario: the seed redirected away, so only another page was captured."""
        snapshot = self.store.reserve(SEED, TS)
        css = Resource("https://example.com/site.css", "text/css", b"css")
        other = page("https://example.com/home", b"home")
        for resource in (css, other):
            self.store.write(snapshot, resource, resource.body)

        self.store.finalize(snapshot, [css, other])
        self.assertEqual((snapshot.directory / "index.html").read_bytes(), b"home")

    def test_landing_bytes_survive_seed_path_becoming_directory(self):
        """Scenario: seed /docs saved as a file, then /docs/intro turns _/docs into a directory."""
        seed = "https://example.com/docs"
        snapshot = self.store.reserve(seed, TS)
        resources = [page(seed, b"docs"), page("https://example.com/docs/intro", b"intro")]
        for resource in resources:
            self.store.write(snapshot, resource, resource.body)
        self.assertTrue((snapshot.directory / "_/docs").is_dir())

        self.store.finalize(snapshot, resources, b"docs")
        self.assertEqual((snapshot.directory / "index.html").read_bytes(), b"docs")

        with self.assertRaises(StorageError):
            self.store.finalize(snapshot, resources)

    def test_nothing_to_land_on(self):
        snapshot = self.store.reserve(SEED, TS)
        with self.assertRaises(StorageError):
            self.store.finalize(snapshot, [])


class TestTimestampsAndListing(StoreTestCase):
    def test_allocate_timestamp_skips_taken_seconds(self):
        now = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        self.assertEqual(self.store.allocate_timestamp(SEED, now=now), TS)
        self.store.reserve(SEED, TS)
        self.store.reserve(SEED, "20240101000001")
        self.assertEqual(self.store.allocate_timestamp(SEED, now=now), "20240101000002")

    def test_same_second_reservations_get_distinct_directories(self):
        """Scenario: two captures allocate the same second before either reserves it."""
        now = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        first_ts = self.store.allocate_timestamp(SEED, now=now)
        second_ts = self.store.allocate_timestamp(SEED, now=now)
        self.assertEqual(first_ts, second_ts)

        first = self.store.reserve(SEED, first_ts)
        second = self.store.reserve(SEED, second_ts)

        self.assertEqual(first.timestamp, TS)
        self.assertEqual(second.timestamp, "20240101000001")
        self.assertNotEqual(first.directory, second.directory)
        self.assertTrue(second.directory.is_dir())

    def test_list_by_host_sorted_and_filtered(self):
        for ts in ("20240301000000", "20240101000000", "20240201000000"):
            self.store.reserve(SEED, ts)
        host_dir = Path(self.tmp) / "snapshots" / "example.com"
        (host_dir / "notes").mkdir()
        (host_dir / "20240401000000").write_text("not a directory")

        self.assertEqual(self.store.list_by_host("https://example.com/any/page"),
                         ["20240101000000", "20240201000000", "20240301000000"])
        self.assertEqual(self.store.list_by_host("https://never-captured.org/"), [])

    def test_hosts_are_kept_apart(self):
        self.store.reserve(SEED, TS)
        self.store.reserve("https://example.com:8080/", "20240102000000")
        self.assertEqual(self.store.list_by_host(SEED), [TS])
        self.assertEqual(self.store.list_by_host("https://example.com:8080/"), ["20240102000000"])


class TestManifest(StoreTestCase):
    def test_record_appends_in_order_without_duplicates(self):
        self.assertTrue(self.store.record(SEED, "20240101000000"))
        self.assertTrue(self.store.record(SEED, "20240102000000"))
        self.assertFalse(self.store.record(SEED, "20240101000000"))
        self.store.record("https://other.org/", "20240103000000")
        self.assertEqual(self.store.manifest_store.timestamps("example.com"), ["20240101000000", "20240102000000"])

        self.assertEqual(self.store.manifest(), {
            "example.com": ["20240101000000", "20240102000000"],
            "other.org": ["20240103000000"],
        })

    def test_survives_reopen(self):
        self.store.record(SEED, TS)
        self.assertEqual(SnapshotStore(self.tmp).manifest(), {"example.com": [TS]})

    def test_corrupt_manifest_is_storage_error(self):
        path = Path(self.tmp) / "manifest.json"
        path.write_text("{not json")
        with self.assertRaises(StorageError):
            Manifest(path).load()

        path.write_text("[]")
        with self.assertRaises(StorageError):
            Manifest(path).load()


class TestReadRaw(StoreTestCase):
    def test_reads_stored_bytes(self):
        snapshot = self.store.reserve(SEED, TS)
        self.store.write(snapshot, page("https://example.com/a.css"), b"body{}")
        self.assertEqual(self.store.read_raw("example.com", TS, "_/a.css"), b"body{}")
        self.assertEqual(self.store.read_raw("example.com", TS, "/_/a.css"), b"body{}")

    def test_missing_is_none(self):
        self.store.reserve(SEED, TS)
        self.assertIsNone(self.store.read_raw("example.com", TS, "_/nope.css"))

    def test_traversal_rejected(self):
        self.store.reserve(SEED, TS)
        with self.assertRaises(ValidationError):
            self.store.read_raw("example.com", TS, "../../../manifest.json")
        with self.assertRaises(ValidationError):
            self.store.read_raw("..", TS, "x")
        with self.assertRaises(ValidationError):
            self.store.read_raw("example.com", "..", "x")


if __name__ == "__main__":
    unittest.main()
