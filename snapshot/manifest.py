"""
Manifest persistence.
A single JSON document mapping host -> timestamps, in capture order, without duplicates.
"""

import json
import os
from pathlib import Path
from threading import Lock
from typing import Dict, List

from crawler.core import logger
from crawler.errors import StorageError


class Manifest:
    """
    Append-only host -> [timestamp, ...] index backed by one JSON file.
    Writes go through a temp file and os.replace so readers never see half a document.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = Lock()

    def ensure(self) -> None:
        with self._lock:
            if not self.path.exists():
                self._write({})

    def load(self) -> Dict[str, List[str]]:
        with self._lock:
            return self._read()

    def timestamps(self, host: str) -> List[str]:
        return list(self.load().get(host, []))

    def record(self, host: str, timestamp: str) -> bool:
        """Append timestamp for host. Returns False when it was already recorded."""
        with self._lock:
            data = self._read()
            entries = data.setdefault(host, [])
            if timestamp in entries:
                logger.info(f"[MANIFEST] {host} {timestamp} already recorded")
                return False
            entries.append(timestamp)
            self._write(data)
        logger.info(f"[MANIFEST] recorded {host} {timestamp} ({len(entries)} captures)")
        return True

    def _read(self):
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise StorageError(self.path, str(e)) from e
        except json.JSONDecodeError as e:
            raise StorageError(self.path, f"manifest is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(self.path, "manifest must be a JSON object")
        return data

    def _write(self, data):
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(self.path, str(e)) from e
