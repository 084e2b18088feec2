"""Filtering that mimics the kubelet topology manager's single-NUMA-node admission."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from schedplugins.api import (
    HUGEPAGES_PREFIX,
    RESOURCE_CPU,
    RESOURCE_MEMORY,
    ZERO,
    Code,
    NodeInfo,
    Pod,
    QOSClass,
    Quantity,
    Status,
    pod_qos,
)
from schedplugins.nrt.topology import MAX_NUMA_ID, NUMANode, Zone, create_numa_node_list
from schedplugins.util import resource_list

log = logging.getLogger(__name__)

_ALL_NUMA_IDS = frozenset(range(MAX_NUMA_ID + 1))


def _sum_requests(pod: Pod) -> dict[str, Quantity]:
    """Requests of init and regular containers added up per resource."""
    totals: dict[str, Quantity] = {}
    for container in pod.all_containers:
        for name, quantity in container.requests.items():
            previous = totals.get(name)
            totals[name] = quantity if previous is None else quantity + previous
    return totals


def resource_found_on_node(name: str, quantity: Quantity, node_info: NodeInfo) -> bool:
    """Whether the node itself offers the resource in at least the given amount."""
    available = resource_list(node_info.allocatable).get(name)
    return available is not None and available >= quantity


def _alignable(
    name: str,
    quantity: Quantity,
    numa_quantity: Quantity,
    qos: QOSClass,
) -> bool:
    return (
        name == RESOURCE_MEMORY
        or name.startswith(HUGEPAGES_PREFIX)
        or (name == RESOURCE_CPU and qos is not QOSClass.GUARANTEED)
        or quantity == ZERO
        or numa_quantity >= quantity
    )


def res_match_numa_nodes(
    numa_nodes: Iterable[NUMANode],
    resources: Mapping[str, Quantity],
    qos: QOSClass,
    node_info: NodeInfo,
) -> bool:
    """True when the resources cannot be aligned on any single NUMA node."""
    numa_nodes = list(numa_nodes)
    candidates = set(_ALL_NUMA_IDS)
    for name, quantity in resources.items():
        fitting = set()
        for numa in numa_nodes:
            numa_quantity = numa.resources.get(name)
            if (
                numa_quantity is None
                and quantity != ZERO
                and not resource_found_on_node(name, quantity, node_info)
            ):
                continue
            if _alignable(name, quantity, ZERO if numa_quantity is None else numa_quantity, qos):
                fitting.add(numa.numa_id)
        candidates &= fitting
        if not candidates:
            return True
    return not candidates


def single_numa_container_level_handler(
    pod: Pod, zones: Iterable[Zone], node_info: NodeInfo
) -> Optional[Status]:
    """Reject the pod when any of its containers fits on no single NUMA node."""
    log.debug("single NUMA node handler")
    nodes = create_numa_node_list(zones)
    qos = pod_qos(pod)
    for container in pod.all_containers:
        if res_match_numa_nodes(nodes, container.requests, qos, node_info):
            return Status(Code.UNSCHEDULABLE, f"cannot align container: {container.name}")
    return None


def single_numa_pod_level_handler(
    pod: Pod, zones: Iterable[Zone], node_info: NodeInfo
) -> Optional[Status]:
    """Reject the pod when its summed requests fit on no single NUMA node."""
    log.debug("pod level resource handler")
    if res_match_numa_nodes(create_numa_node_list(zones), _sum_requests(pod), pod_qos(pod), node_info):
        return Status(Code.UNSCHEDULABLE, f"cannot align pod: {pod.name}")
    return None