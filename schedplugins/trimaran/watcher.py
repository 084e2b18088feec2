"""Load watcher metrics and the client that fetches them over HTTP."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import urlsplit

CPU = "CPU"
MEMORY = "Memory"
AVERAGE = "AVG"
STD = "STD"
LATEST = "Latest"

WATCHER_PATH = "/watcher"
DEFAULT_TIMEOUT = 55.0


class WatcherError(Exception):
    """The load watcher could not deliver metrics."""


@dataclass(frozen=True)
class Metric:
    name: str = ""
    type: str = ""
    operator: str = ""
    rollup: str = ""
    value: float = 0.0

    @classmethod
    def _from_dict(cls, data: dict) -> "Metric":
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            operator=str(data.get("operator", "")),
            rollup=str(data.get("rollup", "")),
            value=float(data.get("value", 0.0)),
        )

    def _to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "operator": self.operator,
            "rollup": self.rollup,
            "value": self.value,
        }


@dataclass(frozen=True)
class Window:
    duration: str = ""
    start: int = 0
    end: int = 0


@dataclass
class WatcherMetrics:
    """Metrics of all nodes; a map of None means none were ever reported."""

    timestamp: int = 0
    window: Window = field(default_factory=Window)
    source: str = ""
    node_metrics_map: Optional[dict[str, list[Metric]]] = None

    @classmethod
    def from_dict(cls, data: dict) -> "WatcherMetrics":
        """Build metrics from the watcher's JSON document."""
        if not isinstance(data, dict):
            raise TypeError("watcher metrics must be a JSON object")
        window = data.get("window") or {}
        nodes = (data.get("data") or {}).get("NodeMetricsMap")
        node_metrics_map = None
        if nodes is not None:
            node_metrics_map = {
                name: [Metric._from_dict(m) for m in (entry or {}).get("metrics") or []]
                for name, entry in nodes.items()
            }
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            window=Window(
                duration=str(window.get("duration", "")),
                start=int(window.get("start", 0)),
                end=int(window.get("end", 0)),
            ),
            source=str(data.get("source", "")),
            node_metrics_map=node_metrics_map,
        )

    def to_dict(self) -> dict:
        """The watcher's JSON document for these metrics."""
        nodes: Any = None
        if self.node_metrics_map is not None:
            nodes = {}
            for name, metrics in self.node_metrics_map.items():
                entry: dict = {}
                if metrics:
                    entry["metrics"] = [m._to_dict() for m in metrics]
                nodes[name] = entry
        return {
            "timestamp": self.timestamp,
            "window": {
                "duration": self.window.duration,
                "start": self.window.start,
                "end": self.window.end,
            },
            "source": self.source,
            "data": {"NodeMetricsMap": nodes},
        }


class MetricsClient(Protocol):
    def latest_metrics(self) -> WatcherMetrics: ...


class ServiceClient:
    """Fetches the latest metrics from a load watcher service."""

    def __init__(self, address: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        parts = urlsplit(address)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"invalid watcher address: {address!r}")
        self.address = address.rstrip("/")
        self.timeout = timeout

    def latest_metrics(self) -> WatcherMetrics:
        url = self.address + WATCHER_PATH
        request = urllib.request.Request(url, headers={"Accept": "application/json"})
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as exc:
            raise WatcherError(f"watcher at {url} returned status {exc.code}") from exc
        except OSError as exc:
            raise WatcherError(f"cannot reach watcher at {url}: {exc}") from exc
        try:
            return WatcherMetrics.from_dict(json.loads(body))
        except (ValueError, TypeError, AttributeError) as exc:
            raise WatcherError(f"invalid response from watcher at {url}: {exc}") from exc