"""Collector of load watcher metrics for load variation risk balancing."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from schedplugins.trimaran.watcher import (
    Metric,
    MetricsClient,
    ServiceClient,
    WatcherError,
    WatcherMetrics,
)

log = logging.getLogger(__name__)

METRICS_UPDATE_INTERVAL = 30.0


class MetricProviderType(str, Enum):
    KUBERNETES_METRICS_SERVER = "KubernetesMetricsServer"
    PROMETHEUS = "Prometheus"
    SIGNAL_FX = "SignalFx"


@dataclass
class LoadVariationRiskBalancingArgs:
    watcher_address: str = ""
    metric_provider_type: str = MetricProviderType.KUBERNETES_METRICS_SERVER.value
    metric_provider_address: str = ""
    metric_provider_token: str = ""
    safe_variance_margin: float = 1.0
    safe_variance_sensitivity: float = 1.0


def validate_args(args: object) -> LoadVariationRiskBalancingArgs:
    """Check the plugin arguments and return them."""
    if not isinstance(args, LoadVariationRiskBalancingArgs):
        raise TypeError(
            f"want args to be of type LoadVariationRiskBalancingArgs, got {type(args).__name__}"
        )
    if not args.watcher_address:
        try:
            MetricProviderType(args.metric_provider_type)
        except ValueError:
            raise ValueError(
                f"invalid MetricProvider.Type, got {args.metric_provider_type!r}"
            ) from None
    return args


class Collector:
    """Holds the latest load watcher metrics and refreshes them periodically."""

    def __init__(
        self,
        args: LoadVariationRiskBalancingArgs,
        client: Optional[MetricsClient] = None,
        update_interval: float = METRICS_UPDATE_INTERVAL,
    ) -> None:
        self.args = validate_args(args)
        if client is None:
            if not args.watcher_address:
                raise ValueError("a metrics client is required when no watcher address is set")
            client = ServiceClient(args.watcher_address)
        self._client = client
        self._metrics = WatcherMetrics()
        self._lock = threading.Lock()
        self._update_interval = update_interval
        self._stop_event = threading.Event()
        try:
            self.update_metrics()
        except WatcherError as exc:
            log.error("unable to populate metrics initially: %s", exc)
        self._thread = threading.Thread(target=self._run, name="metrics-updater", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self._update_interval):
            try:
                self.update_metrics()
            except WatcherError as exc:
                log.error("unable to update metrics: %s", exc)

    def __enter__(self) -> "Collector":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def all_metrics(self) -> WatcherMetrics:
        with self._lock:
            return self._metrics

    def node_metrics(self, node_name: str) -> Optional[list[Metric]]:
        """The node's metrics, or None when none are known for it."""
        metrics = self.all_metrics()
        if metrics.node_metrics_map is None:
            log.error("metrics not available from watcher")
            return None
        node_metrics = metrics.node_metrics_map.get(node_name)
        if node_metrics is None:
            log.error("unable to find metrics for node %s", node_name)
            return None
        return list(node_metrics)

    def update_metrics(self) -> None:
        """Fetch the latest metrics; raises WatcherError when the fetch fails."""
        try:
            metrics = self._client.latest_metrics()
        except WatcherError as exc:
            log.error("load watcher client failed: %s", exc)
            raise
        with self._lock:
            self._metrics = metrics

    def stop(self) -> None:
        """Stop the periodic updates."""
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join()