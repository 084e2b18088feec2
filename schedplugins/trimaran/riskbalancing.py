"""Score plugin that balances the risk of load variation across nodes.

Risk combines the average and the standard deviation of the measured load,
so nodes with a steady load are preferred over nodes with an erratic one.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from schedplugins.api import (
    MIN_NODE_SCORE,
    RESOURCE_CPU,
    RESOURCE_MEMORY,
    NodeScore,
    Pod,
    Snapshot,
)
from schedplugins.trimaran.analysis import create_resource_stats, resource_requested
from schedplugins.trimaran.collector import Collector, LoadVariationRiskBalancingArgs
from schedplugins.trimaran.handler import PodAssignEventHandler
from schedplugins.trimaran.watcher import CPU, MEMORY, MetricsClient

log = logging.getLogger(__name__)

NAME = "LoadVariationRiskBalancing"


def _round_half_away(value: float) -> int:
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def is_assigned(pod: Pod) -> bool:
    """Whether the pod is bound to a node."""
    return bool(pod.node_name)


class LoadVariationRiskBalancing:
    """Scores nodes by the risk derived from their measured CPU and memory load."""

    name = NAME

    def __init__(
        self,
        args: LoadVariationRiskBalancingArgs,
        snapshot: Snapshot,
        client: Optional[MetricsClient] = None,
        event_handler: Optional[PodAssignEventHandler] = None,
    ) -> None:
        log.debug("creating new instance of the %s plugin", NAME)
        self.collector = Collector(args, client)
        self._snapshot = snapshot
        self._owns_handler = event_handler is None
        if event_handler is None:
            event_handler = PodAssignEventHandler()
            event_handler.start_cleanup()
        self.event_handler = event_handler

    def __enter__(self) -> "LoadVariationRiskBalancing":
        return self

    def __exit__(self, *exc_info) -> None:
        self.collector.stop()
        if self._owns_handler:
            self.event_handler.stop()

    def score(self, pod: Pod, node_name: str) -> int:
        """Score a node; the minimum score when no metrics are known for it."""
        node_info = self._snapshot.get(node_name)
        metrics = self.collector.node_metrics(node_name)
        if metrics is None:
            log.info("failed to get metrics for node %s; using minimum score", node_name)
            return MIN_NODE_SCORE
        request = resource_requested(pod)
        node = node_info.node
        args = self.collector.args
        margin = args.safe_variance_margin
        sensitivity = args.safe_variance_sensitivity

        cpu_stats = create_resource_stats(metrics, node, request, RESOURCE_CPU, CPU)
        cpu_score = 0.0 if cpu_stats is None else cpu_stats.compute_score(margin, sensitivity)
        log.debug("cpu score for node %s: %s", node_name, cpu_score)

        memory_stats = create_resource_stats(metrics, node, request, RESOURCE_MEMORY, MEMORY)
        memory_score = (
            0.0 if memory_stats is None else memory_stats.compute_score(margin, sensitivity)
        )
        log.debug("memory score for node %s: %s", node_name, memory_score)

        if cpu_stats is not None and memory_stats is not None:
            total = min(cpu_score, memory_score)
        else:
            total = max(cpu_score, memory_score)
        score = _round_half_away(total)
        log.debug("total score for node %s: %d", node_name, score)
        return score

    def normalize_score(self, pod: Optional[Pod], scores: list[NodeScore]) -> None:
        """Scores are already on the framework's range; nothing is changed."""
        return None