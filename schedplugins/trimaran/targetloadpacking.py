"""Score plugin packing pods onto nodes around a target CPU utilisation."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Optional

from schedplugins.api import (
    MIN_NODE_SCORE,
    RESOURCE_CPU,
    ZERO,
    Container,
    NodeScore,
    Pod,
    Quantity,
    Snapshot,
)
from schedplugins.trimaran.collector import MetricProviderType
from schedplugins.trimaran.handler import PodAssignEventHandler
from schedplugins.trimaran.watcher import (
    AVERAGE,
    CPU,
    LATEST,
    MetricsClient,
    ServiceClient,
    WatcherError,
    WatcherMetrics,
)

log = logging.getLogger(__name__)

NAME = "TargetLoadPacking"
LOAD_WATCHER_SERVICE_CLIENT_NAME = "load-watcher"
METRICS_AGENT_REPORTING_INTERVAL_SECONDS = 60
METRICS_UPDATE_INTERVAL = 30.0

DEFAULT_TARGET_UTILIZATION_PERCENT = 40
DEFAULT_REQUESTS_MILLI_CORES = 1000
DEFAULT_REQUESTS_MULTIPLIER = "1.5"


def _default_requests() -> dict[str, Quantity]:
    return {RESOURCE_CPU: Quantity.from_milli(DEFAULT_REQUESTS_MILLI_CORES)}


@dataclass
class TargetLoadPackingArgs:
    target_utilization: int = DEFAULT_TARGET_UTILIZATION_PERCENT
    default_requests: dict[str, Quantity] = field(default_factory=_default_requests)
    default_requests_multiplier: str = DEFAULT_REQUESTS_MULTIPLIER
    watcher_address: str = ""
    metric_provider_type: str = MetricProviderType.KUBERNETES_METRICS_SERVER.value
    metric_provider_address: str = ""
    metric_provider_token: str = ""


def validate_args(args: object) -> TargetLoadPackingArgs:
    """Check the plugin arguments and return them."""
    if not isinstance(args, TargetLoadPackingArgs):
        raise TypeError(
            f"want args to be of type TargetLoadPackingArgs, got {type(args).__name__}"
        )
    if not args.watcher_address:
        try:
            MetricProviderType(args.metric_provider_type)
        except ValueError:
            raise ValueError(
                f"invalid MetricProvider.Type, got {args.metric_provider_type!r}"
            ) from None
    try:
        float(args.default_requests_multiplier)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"unable to parse DefaultRequestsMultiplier: {exc}") from None
    return args


def _round_half_away(value: float) -> int:
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def _cpu_milli(resources: Optional[dict[str, Quantity]]) -> int:
    if not resources:
        return 0
    return resources.get(RESOURCE_CPU, ZERO).milli_value()


class TargetLoadPacking:
    """Best-fit bin packing on CPU utilisation around a target load."""

    name = NAME

    def __init__(
        self,
        args: TargetLoadPackingArgs,
        snapshot: Snapshot,
        client: Optional[MetricsClient] = None,
        event_handler: Optional[PodAssignEventHandler] = None,
        update_interval: float = METRICS_UPDATE_INTERVAL,
    ) -> None:
        args = validate_args(args)
        self.target_utilization = args.target_utilization
        self.requests_milli_cores = _cpu_milli(args.default_requests)
        self.requests_multiplier = float(args.default_requests_multiplier)
        if client is None:
            if not args.watcher_address:
                raise ValueError("a metrics client is required when no watcher address is set")
            client = ServiceClient(args.watcher_address)
        self._client = client
        self._snapshot = snapshot
        self._metrics = WatcherMetrics()
        self._lock = threading.Lock()
        self._owns_handler = event_handler is None
        if event_handler is None:
            event_handler = PodAssignEventHandler()
            event_handler.start_cleanup()
        self.event_handler = event_handler

        try:
            self.update_metrics()
        except WatcherError as exc:
            log.error("unable to populate metrics initially: %s", exc)
        self._update_interval = update_interval
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="metrics-updater", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self._update_interval):
            try:
                self.update_metrics()
            except WatcherError as exc:
                log.error("unable to update metrics: %s", exc)

    def __enter__(self) -> "TargetLoadPacking":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def update_metrics(self) -> None:
        """Fetch the latest metrics; raises WatcherError when the fetch fails."""
        metrics = self._client.latest_metrics()
        with self._lock:
            self._metrics = metrics

    def stop(self) -> None:
        """Stop the periodic metrics updates and the cache cleanup this plugin started."""
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join()
        if self._owns_handler:
            self.event_handler.stop()

    def predict_utilisation(self, container: Container) -> int:
        """Predicted CPU use of a container in millicores, from its limits or requests."""
        if RESOURCE_CPU in container.limits:
            return container.limits[RESOURCE_CPU].milli_value()
        if RESOURCE_CPU in container.requests:
            return _round_half_away(
                container.requests[RESOURCE_CPU].milli_value() * self.requests_multiplier
            )
        return self.requests_milli_cores

    def _pod_usage(self, pod: Pod) -> int:
        return sum(self.predict_utilisation(c) for c in pod.containers)

    def score(self, pod: Pod, node_name: str) -> int:
        """Score a node by the CPU utilisation predicted after placing the pod."""
        node_info = self._snapshot.get(node_name)
        with self._lock:
            metrics = self._metrics

        if metrics.node_metrics_map is None:
            log.error("metrics not available from watcher, scoring node %s minimum", node_name)
            return MIN_NODE_SCORE
        node_metrics = metrics.node_metrics_map.get(node_name)
        if node_metrics is None:
            log.info("unable to find metrics for node %s", node_name)
            return MIN_NODE_SCORE

        cur_pod_usage = self._pod_usage(pod)
        if pod.overhead is not None:
            cur_pod_usage += _cpu_milli(pod.overhead)

        util_percent = 0.0
        found = False
        for metric in node_metrics:
            if metric.type == CPU and metric.operator in (AVERAGE, LATEST):
                util_percent = metric.value
                found = True
        if not found:
            log.error("cpu metric not found in metrics of node %s", node_name)
            return MIN_NODE_SCORE

        cap_millis = float(node_info.node.capacity.get(RESOURCE_CPU, ZERO).milli_value())
        util_millis = (util_percent / 100) * cap_millis

        missing = 0
        end = metrics.window.end
        with self.event_handler.lock:
            for info in self.event_handler.scheduled_pods_cache.get(node_name, ()):
                stamp = math.floor(info.timestamp)
                # Pods bound after the metrics window, or shortly before its end,
                # are not reflected in the metrics yet.
                if stamp > end or (end - stamp) < METRICS_AGENT_REPORTING_INTERVAL_SECONDS:
                    missing += self._pod_usage(info.pod) + _cpu_milli(info.pod.overhead)
        log.debug("missing utilisation for node %s: %d", node_name, missing)

        predicted = 0.0
        if cap_millis != 0:
            predicted = 100 * (util_millis + cur_pod_usage + missing) / cap_millis

        target = float(self.target_utilization)
        if predicted > target:
            if predicted > 100:
                return MIN_NODE_SCORE
            penalised = _round_half_away(50 * (100 - predicted) / (100 - target))
            log.debug("penalised score for node %s: %d", node_name, penalised)
            return penalised

        score = _round_half_away((100 - target) * predicted / target + target)
        log.debug("score for node %s: %d", node_name, score)
        return score

    def normalize_score(self, pod: Optional[Pod], scores: list[NodeScore]) -> None:
        """Scores are already on the framework's range; nothing is changed."""
        return None