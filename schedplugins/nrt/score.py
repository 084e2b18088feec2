"""Scoring of a node by the fit of a pod on its NUMA zones."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from schedplugins.api import Pod, Quantity
from schedplugins.nrt.filter import _sum_requests
from schedplugins.nrt.strategies import ResourceWeights, ScoreStrategy
from schedplugins.nrt.topology import NUMANode, Zone, create_numa_node_list

log = logging.getLogger(__name__)


def score_for_each_numa_node(
    requested: Mapping[str, Quantity],
    numa_nodes: Iterable[NUMANode],
    strategy: ScoreStrategy,
    weights: ResourceWeights,
) -> int:
    """The lowest non-zero score of all NUMA nodes, or 0 when none scores."""
    numa_scores: dict[int, int] = {}
    min_score = 0
    for numa in numa_nodes:
        numa_score = strategy(requested, numa.resources, weights)
        # A zone scoring 0 does not fit at all and is never chosen by the kubelet.
        if min_score == 0 or (numa_score != 0 and numa_score < min_score):
            min_score = numa_score
        numa_scores[numa.numa_id] = numa_score
    log.debug("score for NUMA nodes: %s, node score: %d", numa_scores, min_score)
    return min_score


def pod_scope_score(
    pod: Pod, zones: Iterable[Zone], strategy: ScoreStrategy, weights: ResourceWeights
) -> int:
    """Score the summed requests of all the pod's containers."""
    return score_for_each_numa_node(
        _sum_requests(pod), create_numa_node_list(zones), strategy, weights
    )


def container_scope_score(
    pod: Pod, zones: Iterable[Zone], strategy: ScoreStrategy, weights: ResourceWeights
) -> int:
    """The mean, truncated, of every container's own score; 0 without containers."""
    containers = pod.all_containers
    if not containers:
        return 0
    numa_nodes = create_numa_node_list(zones)
    scores = [
        score_for_each_numa_node(container.requests, numa_nodes, strategy, weights)
        for container in containers
    ]
    return int(sum(scores) / len(scores))