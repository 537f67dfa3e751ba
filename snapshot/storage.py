"""
FILE DESCRIPTION: On-disk snapshot layout and capture bookkeeping.
Layout:
    <DATA_DIR>/snapshots/<host>/<timestamp>/index.html         landing page
    <DATA_DIR>/snapshots/<host>/<timestamp>/_/<path>           same-origin resources
    <DATA_DIR>/snapshots/<host>/<timestamp>/_ext/<host>/<path> off-origin assets
    <DATA_DIR>/manifest.json                                   host -> [timestamp, ...]
KEY FUNCTIONS/CLASSES: SnapshotStore
"""

import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from crawler.core import DATA_DIR, logger
from crawler.errors import StorageError, ValidationError
from crawler.models import Resource
from crawler.normalizer import (
    INDEX_FILE,
    external_path_for_disk,
    normalize_path_for_disk,
    strip_fragment,
    to_host,
)
from crawler.policy import URLPolicy
from snapshot.manifest import Manifest
from snapshot.models import Snapshot, is_timestamp, new_timestamp, next_timestamp


UNSAFE_HOST_RE = re.compile(r"[/\\\x00-\x1f]")


def _valid_host(host: str) -> bool:
    return bool(host) and host not in (".", "..") and not UNSAFE_HOST_RE.search(host)


class SnapshotStore:
    """
    FLOW: reserve() a timestamped directory -> write() every resource at its normalized path,
    reconciling file/directory conflicts first -> finalize() writes the seed page to the root ->
    record() appends the capture to the manifest.
    """

    def __init__(self, root=DATA_DIR):
        self.root = Path(root)
        self.snapshots_dir = self.root / "snapshots"
        self.manifest_store = Manifest(self.root / "manifest.json")
        try:
            self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(self.snapshots_dir, str(e)) from e
        self.manifest_store.ensure()

    # -------------------------------
    # HOST / PATH HELPERS
    # -------------------------------
    @staticmethod
    def host_for(target_url: str) -> str:
        host = to_host(target_url)
        if not _valid_host(host):
            raise ValidationError(f"cannot derive a snapshot host from {target_url!r}")
        return host

    def host_dir(self, host: str) -> Path:
        return self.snapshots_dir / host

    def _contained(self, base: Path, rel_path: str) -> Path:
        target = (base / rel_path).resolve()
        if not target.is_relative_to(base.resolve()) or target == base.resolve():
            raise ValidationError(f"path escapes snapshot directory: {rel_path!r}")
        return target

    def relative_path_for(self, snapshot: Snapshot, url: str) -> str:
        if URLPolicy.is_same_origin(snapshot.seed_url, url):
            return normalize_path_for_disk(url)
        return external_path_for_disk(url)

    # -------------------------------
    # CAPTURE LIFECYCLE
    # -------------------------------
    def allocate_timestamp(self, target_url: str, now=None) -> str:
        """
        Current UTC timestamp, moved forward one second at a time until no
        snapshot directory for the host uses it.
        """
        host_dir = self.host_dir(self.host_for(target_url))
        timestamp = new_timestamp(now)
        while (host_dir / timestamp).exists():
            timestamp = next_timestamp(timestamp)
        return timestamp

    def reserve(self, target_url: str, timestamp: str) -> Snapshot:
        """
        Create the snapshot directory. mkdir is the claim: if another capture
        already owns <host>/<timestamp>, the next free second is taken instead,
        so the returned Snapshot's timestamp may be later than the one asked for.
        """
        if not is_timestamp(timestamp):
            raise ValidationError(f"timestamp must be 14 digits (YYYYMMDDHHmmss), got {timestamp!r}")
        host = self.host_for(target_url)
        while True:
            directory = self.host_dir(host) / timestamp
            try:
                directory.mkdir(parents=True, exist_ok=False)
                break
            except FileExistsError:
                timestamp = next_timestamp(timestamp)
            except OSError as e:
                raise StorageError(directory, str(e)) from e
        logger.info(f"[SNAPSHOT] reserved {directory}")
        return Snapshot(host=host, timestamp=timestamp, directory=directory, seed_url=target_url)

    def _reconcile(self, base: Path, target: Path) -> None:
        """
        /about and /about/section cannot both be files: whichever of the two
        is in the way of this write is removed first.
        """
        for ancestor in reversed(target.parents):
            if not ancestor.is_relative_to(base) or ancestor == base:
                continue
            if ancestor.exists() and not ancestor.is_dir():
                logger.info(f"[SNAPSHOT] replacing file {ancestor} with a directory")
                ancestor.unlink()
        if target.is_dir():
            logger.info(f"[SNAPSHOT] replacing directory {target} with a file")
            shutil.rmtree(target)

    def write(self, snapshot: Snapshot, resource: Resource, data: bytes) -> str:
        rel_path = self.relative_path_for(snapshot, resource.source_url)
        target = self._contained(snapshot.directory, rel_path)
        try:
            self._reconcile(snapshot.directory.resolve(), target)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(target, str(e)) from e
        logger.debug(f"[SNAPSHOT] wrote {rel_path} ({len(data)}B)")
        return rel_path

    def landing_resource(self, snapshot: Snapshot, resources: Sequence[Resource]) -> Optional[Resource]:
        seed = strip_fragment(snapshot.seed_url)
        for resource in resources:
            if strip_fragment(resource.source_url) == seed:
                return resource
        for resource in resources:
            if resource.is_html() and URLPolicy.is_same_origin(snapshot.seed_url, resource.source_url):
                return resource
        return None

    def finalize(self, snapshot: Snapshot, resources: Sequence[Resource],
                 landing_data: Optional[bytes] = None) -> Path:
        """
        Write the landing page to <snapshot>/index.html.
        landing_data is the landing page as it was saved. Without it the saved
        file is copied, which fails if a deeper path has since turned it into a directory.
        """
        landing = self.landing_resource(snapshot, resources)
        if landing is None:
            raise StorageError(snapshot.directory, "no landing page among captured resources")
        target = snapshot.directory / INDEX_FILE
        try:
            if landing_data is None:
                source = snapshot.directory / self.relative_path_for(snapshot, landing.source_url)
                landing_data = source.read_bytes()
            target.write_bytes(landing_data)
        except OSError as e:
            raise StorageError(target, str(e)) from e
        logger.info(f"[SNAPSHOT] landing page {landing.source_url} -> {target}")
        return target

    # -------------------------------
    # QUERIES
    # -------------------------------
    def list_by_host(self, target_url: str) -> List[str]:
        host_dir = self.host_dir(self.host_for(target_url))
        if not host_dir.is_dir():
            return []
        try:
            return sorted(p.name for p in host_dir.iterdir() if p.is_dir() and is_timestamp(p.name))
        except OSError as e:
            raise StorageError(host_dir, str(e)) from e

    def record(self, target_url: str, timestamp: str) -> bool:
        return self.manifest_store.record(self.host_for(target_url), timestamp)

    def manifest(self) -> Dict[str, List[str]]:
        return self.manifest_store.load()

    def read_raw(self, host: str, timestamp: str, rel_path: str) -> Optional[bytes]:
        """Stored bytes of one resource, verbatim, or None when it was not captured."""
        if not _valid_host(host) or not is_timestamp(timestamp):
            raise ValidationError(f"invalid snapshot reference {host!r}/{timestamp!r}")
        base = self.host_dir(host) / timestamp
        target = self._contained(base, rel_path.lstrip("/"))
        if not target.is_file():
            return None
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(target, str(e)) from e
