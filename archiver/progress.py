"""
Progress-subscriber registry.
Maps a progress id to the live channels of its subscribers. Publishing is fire-and-forget:
nothing is buffered for late subscribers and a full or abandoned channel never blocks the pipeline.
"""

import queue
from threading import Lock
from typing import Dict, List

from crawler.core import logger
from crawler.models import ProgressEvent

# Marks the end of a progress stream
CLOSED = None


class ProgressRegistry:

    def __init__(self, channel_size: int = 256):
        self.channel_size = channel_size
        self._lock = Lock()
        self._channels: Dict[str, List[queue.Queue]] = {}

    def subscribe(self, progress_id: str) -> queue.Queue:
        channel = queue.Queue(maxsize=self.channel_size)
        with self._lock:
            self._channels.setdefault(progress_id, []).append(channel)
        logger.info(f"[PROGRESS] subscriber attached to {progress_id}")
        return channel

    def unsubscribe(self, progress_id: str, channel: queue.Queue) -> None:
        with self._lock:
            channels = self._channels.get(progress_id, [])
            if channel in channels:
                channels.remove(channel)
            if not channels:
                self._channels.pop(progress_id, None)
        logger.info(f"[PROGRESS] subscriber detached from {progress_id}")

    def subscriber_count(self, progress_id: str) -> int:
        with self._lock:
            return len(self._channels.get(progress_id, []))

    def _deliver(self, progress_id, item):
        with self._lock:
            channels = list(self._channels.get(progress_id, []))
        for channel in channels:
            try:
                channel.put_nowait(item)
            except queue.Full:
                logger.debug(f"[PROGRESS] dropped event for slow subscriber of {progress_id}")

    def publish(self, progress_id: str, event: ProgressEvent) -> None:
        if progress_id:
            self._deliver(progress_id, event)

    def close(self, progress_id: str) -> None:
        """Signal end-of-stream to every subscriber and forget the id."""
        if not progress_id:
            return
        self._deliver(progress_id, CLOSED)
        with self._lock:
            self._channels.pop(progress_id, None)

    def sink(self, progress_id: str):
        """Callable suitable as an on_progress hook for one pipeline run."""
        def _publish(event: ProgressEvent) -> None:
            self.publish(progress_id, event)
        return _publish
