"""Node resource topology objects, their store and NUMA helpers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional

from schedplugins.api import Container, Pod, Quantity

log = logging.getLogger(__name__)

NUMA_ZONE_TYPE = "Node"
MAX_NUMA_ID = 63

_NUMA_ZONE_NAME = re.compile(r"node-\s*([+-]?\d+)")


class TopologyPolicy(str, Enum):
    """Topology manager policies a node may report."""

    SINGLE_NUMA_NODE_CONTAINER_LEVEL = "SingleNUMANodeContainerLevel"
    SINGLE_NUMA_NODE_POD_LEVEL = "SingleNUMANodePodLevel"
    RESTRICTED_CONTAINER_LEVEL = "RestrictedContainerLevel"
    RESTRICTED_POD_LEVEL = "RestrictedPodLevel"
    BEST_EFFORT_CONTAINER_LEVEL = "BestEffortContainerLevel"
    BEST_EFFORT_POD_LEVEL = "BestEffortPodLevel"
    NONE = "None"


@dataclass
class ResourceInfo:
    name: str
    capacity: Quantity
    available: Quantity


@dataclass
class Zone:
    name: str
    type: str = ""
    resources: list[ResourceInfo] = field(default_factory=list)


@dataclass
class NodeResourceTopology:
    name: str
    namespace: str = "default"
    topology_policies: list[str] = field(default_factory=list)
    zones: list[Zone] = field(default_factory=list)


@dataclass
class NUMANode:
    numa_id: int
    resources: dict[str, Quantity] = field(default_factory=dict)


class TopologyNotFoundError(LookupError):
    """Raised when a store holds no topology of the requested name."""


class TopologyStore:
    """Node resource topologies kept by namespace and node name."""

    def __init__(self, topologies: Iterable[NodeResourceTopology] = ()) -> None:
        self._items: dict[tuple[str, str], NodeResourceTopology] = {}
        for topology in topologies:
            self.add(topology)

    def add(self, topology: NodeResourceTopology) -> None:
        """Add or replace a topology."""
        self._items[(topology.namespace, topology.name)] = topology

    def get(self, namespace: str, name: str) -> NodeResourceTopology:
        try:
            return self._items[(namespace, name)]
        except KeyError:
            raise TopologyNotFoundError(
                f"noderesourcetopology {name!r} not found in namespace {namespace!r}"
            ) from None

    def __len__(self) -> int:
        return len(self._items)


def find_node_topology(
    node_name: str, store: TopologyStore, namespaces: Iterable[str]
) -> Optional[NodeResourceTopology]:
    """Return the first topology for the node found among the namespaces."""
    for namespace in namespaces:
        try:
            return store.get(namespace, node_name)
        except TopologyNotFoundError as exc:
            log.debug("cannot get node topology: %s", exc)
    return None


def extract_resources(zone: Zone) -> dict[str, Quantity]:
    """The available amount of every resource in a zone."""
    return {info.name: info.available for info in zone.resources}


def create_numa_node_list(zones: Iterable[Zone]) -> list[NUMANode]:
    """NUMA nodes from the zones of type ``Node`` with a valid ``node-<id>`` name."""
    nodes = []
    for zone in zones:
        if zone.type != NUMA_ZONE_TYPE:
            continue
        match = _NUMA_ZONE_NAME.match(zone.name)
        if match is None:
            log.error("invalid zone format: %s", zone.name)
            continue
        numa_id = int(match[1])
        if not 0 <= numa_id <= MAX_NUMA_ID:
            log.error("invalid NUMA id range: %d", numa_id)
            continue
        nodes.append(NUMANode(numa_id=numa_id, resources=extract_resources(zone)))
    return nodes


def make_resource_list_from_zones(zones: Iterable[Zone]) -> dict[str, Quantity]:
    """Sum the available resources of all zones."""
    result: dict[str, Quantity] = {}
    for zone in zones:
        for info in zone.resources:
            previous = result.get(info.name)
            result[info.name] = info.available if previous is None else info.available + previous
    return result


def make_topology_res_info(name: str, capacity: str, available: str) -> ResourceInfo:
    """A resource entry with capacity and availability parsed from text."""
    return ResourceInfo(
        name=name,
        capacity=Quantity.parse(capacity),
        available=Quantity.parse(available),
    )


def make_pod_by_resource_list_with_many_containers(
    resources: Mapping[str, Quantity], container_count: int
) -> Pod:
    """A pod whose containers each request and limit the given resources."""
    return Pod(
        containers=[
            Container(requests=dict(resources), limits=dict(resources))
            for _ in range(container_count)
        ]
    )


def make_pod_by_resource_list(resources: Mapping[str, Quantity]) -> Pod:
    """A pod with one container requesting and limiting the given resources."""
    return make_pod_by_resource_list_with_many_containers(resources, 1)