"""Local cache of pods recently bound to nodes, kept for load-aware scoring."""

from __future__ import annotations

import bisect
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from schedplugins.api import Pod

log = logging.getLogger(__name__)

# The longest time load metrics may be stale.
CACHE_CLEANUP_INTERVAL = 5 * 60.0
# Seconds between two ingestions of the metrics agent.
METRICS_AGENT_REPORTING_INTERVAL = 60.0


@dataclass
class ScheduledPod:
    """A pod bound to a node and the time it was added to the cache."""

    pod: Pod
    timestamp: float = 0.0


class PodAssignEventHandler:
    """Watches assigned pods and keeps them per node for a short while."""

    def __init__(self, cleanup_interval: float = CACHE_CLEANUP_INTERVAL) -> None:
        self.scheduled_pods_cache: dict[str, list[ScheduledPod]] = {}
        self.lock = threading.RLock()
        self._cleanup_interval = cleanup_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self) -> "PodAssignEventHandler":
        self.start_cleanup()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def on_add(self, pod: Pod) -> None:
        self._update_cache(pod)

    def on_update(self, old_pod: Pod, new_pod: Pod) -> None:
        if old_pod.node_name != new_pod.node_name:
            self._update_cache(new_pod)

    def on_delete(self, pod: Pod) -> None:
        with self.lock:
            cache = self.scheduled_pods_cache.get(pod.node_name)
            if cache is None:
                return
            for index, entry in enumerate(cache):
                if entry.pod.uid == pod.uid:
                    log.debug("deleting pod %s", entry.pod.name)
                    del cache[index]
                    break

    def _update_cache(self, pod: Pod) -> None:
        if not pod.node_name:
            return
        with self.lock:
            self.scheduled_pods_cache.setdefault(pod.node_name, []).append(
                ScheduledPod(pod=pod, timestamp=time.time())
            )

    def cleanup_cache(self, now: Optional[float] = None) -> None:
        """Drop entries older than the metrics reporting interval.

        A node whose entries are all stale is left untouched.
        """
        if now is None:
            now = time.time()
        with self.lock:
            for node_name, cache in list(self.scheduled_pods_cache.items()):
                index = bisect.bisect_right(
                    cache, now, key=lambda entry: entry.timestamp + METRICS_AGENT_REPORTING_INTERVAL
                )
                if index == len(cache):
                    continue
                remaining = cache[index:]
                if remaining:
                    self.scheduled_pods_cache[node_name] = remaining
                else:
                    del self.scheduled_pods_cache[node_name]

    def start_cleanup(self) -> None:
        """Start cleaning the cache periodically in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_cleanup, name="pod-cache-cleanup", daemon=True
        )
        self._thread.start()

    def _run_cleanup(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            self.cleanup_cache()

    def stop(self) -> None:
        """Stop the background cleanup, if running."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None