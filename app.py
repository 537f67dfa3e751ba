"""
Flask API for Wayback-Lite
Triggers captures, lists snapshots, streams progress and serves captured files.
"""

import json
import queue
import time
import uuid

from flask import Flask, Response, abort, jsonify, request, send_from_directory

from archiver.coordinator import ArchiveCoordinator, ArchiveRequest
from archiver.progress import CLOSED, ProgressRegistry
from crawler.core import DEFAULT_MAX_PAGES, PORT, PROGRESS_IDLE_TIMEOUT, logger
from crawler.engine import CrawlEngine
from crawler.errors import ValidationError, WaybackError
from crawler.normalizer import INDEX_FILE, to_host
from snapshot.diff import diff_resource
from snapshot.models import is_timestamp
from snapshot.storage import SnapshotStore

# Seconds between keep-alive comments on an idle progress stream
PROGRESS_KEEPALIVE = 15

app = Flask(__name__)

registry = ProgressRegistry()
_store = None


def get_store():
    """Shared SnapshotStore, created on first use."""
    global _store
    if _store is None:
        _store = SnapshotStore()
    return _store


def make_coordinator():
    """One coordinator per request; they share the store and the progress registry."""
    return ArchiveCoordinator(get_store(), engine=CrawlEngine(), registry=registry)


def _snapshot_dir(host, ts):
    if host in (".", "..") or not is_timestamp(ts):
        abort(404)
    return get_store().snapshots_dir / host / ts


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(WaybackError)
def handle_wayback_error(e):
    return jsonify({"error": str(e)}), 500


# ============================================================
# HEALTH
# ============================================================

@app.route('/api/health')
def health():
    return jsonify({"ok": True})


# ============================================================
# CAPTURE
# ============================================================

@app.route('/api/archive', methods=['POST'])
def archive():
    """Run one capture synchronously and report where it was stored."""
    body = request.get_json(silent=True) or {}
    url = body.get("url")
    if not url:
        return jsonify({"error": "url is required"}), 400

    progress_id = body.get("progressId") or str(uuid.uuid4())
    archive_request = ArchiveRequest(
        url=url,
        max_pages=body.get("maxPages", DEFAULT_MAX_PAGES),
        progress_id=progress_id,
    )
    logger.info(f"[API] archive requested for {url} (progress {progress_id})")
    result = make_coordinator().run(archive_request)
    return jsonify(result.to_dict())


@app.route('/api/progress/<progress_id>')
def progress(progress_id):
    """
    Server-sent events for one capture. Events published before subscribing are not replayed,
    and a stream that sees no event for PROGRESS_IDLE_TIMEOUT seconds (an unknown or
    already finished capture) ends with a timeout event.
    """
    channel = registry.subscribe(progress_id)

    def stream():
        last_event = time.monotonic()
        try:
            while True:
                try:
                    event = channel.get(timeout=PROGRESS_KEEPALIVE)
                except queue.Empty:
                    if registry.subscriber_count(progress_id) == 0:
                        return
                    if time.monotonic() - last_event >= PROGRESS_IDLE_TIMEOUT:
                        logger.info(f"[API] progress stream {progress_id} idle, closing")
                        yield "event: timeout\ndata: {}\n\n"
                        return
                    yield ": keep-alive\n\n"
                    continue
                last_event = time.monotonic()
                if event is CLOSED:
                    yield "event: done\ndata: {}\n\n"
                    return
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        finally:
            registry.unsubscribe(progress_id, channel)

    return Response(stream(), mimetype='text/event-stream', headers={"Cache-Control": "no-cache"})


# ============================================================
# LISTING / RETRIEVAL
# ============================================================

@app.route('/api/archives')
def archives():
    url = request.args.get("url")
    if not url:
        return jsonify({"error": "url is required"}), 400
    return jsonify({"host": to_host(url), "snapshots": get_store().list_by_host(url)})


@app.route('/api/manifest')
def manifest():
    return jsonify(get_store().manifest())


@app.route('/api/raw')
def raw():
    """Stored bytes verbatim, for diff tooling."""
    host, ts, rel = request.args.get("host"), request.args.get("ts"), request.args.get("path")
    if not host or not ts or not rel:
        return jsonify({"error": "host, ts, path required"}), 400
    data = get_store().read_raw(host, ts, rel)
    if data is None:
        return "Not found", 404
    return Response(data, mimetype="application/octet-stream")


@app.route('/api/diff')
def diff():
    args = request.args
    host, ts_a, ts_b, rel = args.get("host"), args.get("a"), args.get("b"), args.get("path")
    if not host or not ts_a or not ts_b or not rel:
        return jsonify({"error": "host, a, b, path required"}), 400
    lines = diff_resource(get_store(), host, ts_a, ts_b, rel)
    return jsonify({"host": host, "a": ts_a, "b": ts_b, "path": rel, "diff": "".join(lines)})


# ============================================================
# SNAPSHOT VIEWING
# ============================================================

@app.route('/snapshots/<host>/<ts>/<path:rel>')
def snapshot_file(host, ts, rel):
    # Extension-less captures such as /about are pages
    if "." not in rel.rsplit("/", 1)[-1]:
        return send_from_directory(_snapshot_dir(host, ts), rel, mimetype="text/html")
    return send_from_directory(_snapshot_dir(host, ts), rel)


@app.route('/view/<host>/<ts>')
def view(host, ts):
    directory = _snapshot_dir(host, ts)
    if not (directory / INDEX_FILE).is_file():
        abort(404, description="Snapshot index not found")
    return send_from_directory(directory, INDEX_FILE)


if __name__ == "__main__":
    logger.info(f"[API] Wayback-Lite server running http://localhost:{PORT}")
    app.run(host="0.0.0.0", port=PORT, threaded=True)
