"""
Entry point for Wayback-Lite.
Captures a site into a timestamped snapshot, lists and diffs captures, or serves the HTTP API.
"""

import argparse
import json
import sys

from archiver.coordinator import ArchiveCoordinator, ArchiveRequest
from crawler.core import CRAWL_CONCURRENCY, DEFAULT_MAX_PAGES, FETCH_FALLBACK, FETCH_STRATEGY, PORT, logger
from crawler.engine import STRATEGIES, CrawlEngine
from crawler.errors import WaybackError
from snapshot.diff import diff_resource
from snapshot.storage import SnapshotStore


def build_parser():
    parser = argparse.ArgumentParser(prog="wayback-lite", description="Offline snapshots of websites")
    sub = parser.add_subparsers(dest="command", required=True)

    p_archive = sub.add_parser("archive", help="capture a site into a new snapshot")
    p_archive.add_argument("url")
    p_archive.add_argument("--max-pages", type=int, default=DEFAULT_MAX_PAGES)
    p_archive.add_argument("--concurrency", type=int, default=CRAWL_CONCURRENCY)
    p_archive.add_argument("--strategy", choices=sorted(STRATEGIES), default=FETCH_STRATEGY)
    p_archive.add_argument("--no-fallback", action="store_true", default=not FETCH_FALLBACK,
                           help="do not retry the crawl with the other fetch strategy")

    p_list = sub.add_parser("list", help="list snapshot timestamps for a URL's host")
    p_list.add_argument("url")

    sub.add_parser("manifest", help="print the capture manifest")

    p_diff = sub.add_parser("diff", help="diff one resource between two snapshots")
    p_diff.add_argument("host")
    p_diff.add_argument("ts_a")
    p_diff.add_argument("ts_b")
    p_diff.add_argument("path")

    p_serve = sub.add_parser("serve", help="run the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=PORT)
    return parser


def run(args, store=None):
    store = store or SnapshotStore()

    if args.command == "archive":
        engine = CrawlEngine(strategy=args.strategy, fallback=not args.no_fallback)
        coordinator = ArchiveCoordinator(store, engine=engine, concurrency=args.concurrency)
        result = coordinator.run(ArchiveRequest(url=args.url, max_pages=args.max_pages))
        print(json.dumps(result.to_dict(), indent=2))
    elif args.command == "list":
        for timestamp in store.list_by_host(args.url):
            print(timestamp)
    elif args.command == "manifest":
        print(json.dumps(store.manifest(), indent=2))
    elif args.command == "diff":
        sys.stdout.writelines(diff_resource(store, args.host, args.ts_a, args.ts_b, args.path))
    elif args.command == "serve":
        from app import app
        app.run(host=args.host, port=args.port, threaded=True)
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except WaybackError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
