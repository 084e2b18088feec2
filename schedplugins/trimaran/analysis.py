"""Risk scoring of a node's resources from measured load statistics."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from schedplugins.api import (
    MAX_NODE_SCORE,
    RESOURCE_CPU,
    RESOURCE_MEMORY,
    ZERO,
    Node,
    Pod,
    Resource,
)
from schedplugins.trimaran.watcher import AVERAGE, LATEST, STD, Metric

log = logging.getLogger(__name__)

MEGA_FACTOR = 1.0 / 1024.0 / 1024.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(min(value, high), low)


@dataclass
class ResourceStats:
    """Usage statistics of one resource on a node, in absolute units."""

    used_avg: float = 0.0
    used_stdev: float = 0.0
    req: float = 0.0
    capacity: float = 0.0

    def compute_score(self, margin: float, sensitivity: float) -> float:
        """Score from the risk ``(average + margin * stdev^(1/sensitivity)) / 2``."""
        if self.capacity <= 0:
            log.error("invalid resource capacity: %s", self.capacity)
            return 0.0
        req = max(self.req, 0.0)
        used_avg = _clamp(self.used_avg, 0.0, self.capacity)
        used_stdev = _clamp(self.used_stdev, 0.0, self.capacity)

        mu = _clamp((used_avg + req) / self.capacity, 0.0, 1.0)

        sigma = _clamp(used_stdev / self.capacity, 0.0, 1.0)
        if sensitivity >= 0:
            exponent = math.inf if sensitivity == 0 else 1 / sensitivity
            sigma = math.pow(sigma, exponent)
        sigma = _clamp(sigma * margin, 0.0, 1.0)

        risk = (mu + sigma) / 2
        log.debug(
            "risk factor: mu=%s sigma=%s margin=%s sensitivity=%s risk=%s",
            mu, sigma, margin, sensitivity, risk,
        )
        return (1.0 - risk) * MAX_NODE_SCORE


def resource_data(
    metrics: Iterable[Metric], resource_type: str
) -> Optional[tuple[float, float]]:
    """Average and standard deviation of a resource, or None without any metric for it.

    A metric without operator, or a latest value, stands for the average
    unless an explicit average is present.
    """
    avg = 0.0
    std = 0.0
    found = False
    avg_found = False
    for metric in metrics:
        if metric.type != resource_type:
            continue
        if metric.operator == AVERAGE:
            avg = metric.value
            avg_found = True
        elif metric.operator == STD:
            std = metric.value
        elif metric.operator in ("", LATEST) and not avg_found:
            avg = metric.value
        found = True
    return (avg, std) if found else None


def create_resource_stats(
    metrics: Iterable[Metric],
    node: Node,
    pod_request: Resource,
    resource_name: str,
    watcher_type: str,
) -> Optional[ResourceStats]:
    """Absolute usage statistics of a resource on a node, or None without data."""
    data = resource_data(metrics, watcher_type)
    if data is None:
        log.debug("no valid usage statistics for node %s", node.name)
        return None
    node_util, node_std = data
    allocatable = node.allocatable.get(resource_name, ZERO)
    if resource_name == RESOURCE_CPU:
        capacity = float(allocatable.milli_value())
        req = float(pod_request.milli_cpu)
    else:
        capacity = float(allocatable.value()) * MEGA_FACTOR
        req = float(pod_request.memory) * MEGA_FACTOR
    stats = ResourceStats(
        used_avg=node_util * capacity / 100,
        used_stdev=node_std * capacity / 100,
        req=req,
        capacity=capacity,
    )
    log.debug("usage statistics for node %s: %s", node.name, stats)
    return stats


def resource_requested(pod: Pod) -> Resource:
    """CPU and memory demand of a pod, taking init containers and overhead into account."""
    result = Resource()
    for container in pod.containers:
        result.add(container.requests)
    for container in pod.init_containers:
        for name, quantity in container.requests.items():
            if name == RESOURCE_CPU:
                result.milli_cpu = max(result.milli_cpu, quantity.milli_value())
            elif name == RESOURCE_MEMORY:
                result.memory = max(result.memory, quantity.value())
    if pod.overhead is not None:
        result.add(pod.overhead)
    return result