import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
TIMESTAMP_RE = re.compile(r"^\d{14}$")


def new_timestamp(now: Optional[datetime] = None) -> str:
    """14-digit UTC capture time; lexicographic order is chronological order."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(TIMESTAMP_FORMAT)


def next_timestamp(timestamp: str) -> str:
    return (datetime.strptime(timestamp, TIMESTAMP_FORMAT) + timedelta(seconds=1)).strftime(TIMESTAMP_FORMAT)


def is_timestamp(name: str) -> bool:
    return bool(TIMESTAMP_RE.match(name))


@dataclass(frozen=True)
class Snapshot:
    """
    One timestamped capture of a host.
    INVARIANT: never mutated by a later crawl; a new crawl always gets a new timestamp.
    """
    host: str
    timestamp: str
    directory: Path
    seed_url: str

    @property
    def base_prefix(self) -> str:
        return f"/snapshots/{self.host}/{self.timestamp}/"
