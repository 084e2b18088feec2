"""The NodeResourceTopologyMatch filter and score plugin."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Flag, auto
from typing import Callable, Iterable, Mapping, NamedTuple, Optional, Union

from schedplugins.api import Code, NodeInfo, Pod, QOSClass, Status
from schedplugins.api import pod_qos
from schedplugins.nrt.filter import single_numa_container_level_handler, single_numa_pod_level_handler
from schedplugins.nrt.score import container_scope_score, pod_scope_score
from schedplugins.nrt.strategies import (
    ResourceWeights,
    ScoreStrategy,
    ScoringStrategyType,
    scoring_strategy_function,
)
from schedplugins.nrt.topology import TopologyPolicy, TopologyStore, find_node_topology

log = logging.getLogger(__name__)

NAME = "NodeResourceTopologyMatch"

FilterHandler = Callable[[Pod, list, NodeInfo], Optional[Status]]
ScoreHandler = Callable[[Pod, list, ScoreStrategy, ResourceWeights], int]


@dataclass(frozen=True)
class ScopeHandler:
    """The filter and score functions for one topology manager scope."""

    filter: FilterHandler
    score: ScoreHandler


def new_policy_handler_map() -> dict[TopologyPolicy, ScopeHandler]:
    """Handlers for the topology policies the plugin understands."""
    return {
        TopologyPolicy.SINGLE_NUMA_NODE_POD_LEVEL: ScopeHandler(
            single_numa_pod_level_handler, pod_scope_score
        ),
        TopologyPolicy.SINGLE_NUMA_NODE_CONTAINER_LEVEL: ScopeHandler(
            single_numa_container_level_handler, container_scope_score
        ),
    }


class ActionType(Flag):
    ADD = auto()
    DELETE = auto()
    UPDATE_NODE_ALLOCATABLE = auto()


class ClusterEvent(NamedTuple):
    resource: str
    action_type: ActionType


class TopologyMatch:
    """A simplified topology manager admit handler run at scheduling time."""

    name = NAME

    def __init__(
        self,
        store: TopologyStore,
        namespaces: Iterable[str] = ("default",),
        scoring_strategy: Optional[Union[ScoringStrategyType, str]] = None,
        resource_weights: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.store = store
        self.namespaces = list(namespaces)
        self.policy_handlers = new_policy_handler_map()
        self.scorer: Optional[ScoreStrategy] = (
            None if scoring_strategy is None else scoring_strategy_function(scoring_strategy)
        )
        self.resource_weights = ResourceWeights(resource_weights or {})

    def _handler_for(self, policy_name: str) -> Optional[ScopeHandler]:
        try:
            policy = TopologyPolicy(policy_name)
        except ValueError:
            policy = None
        handler = self.policy_handlers.get(policy) if policy is not None else None
        if handler is None:
            log.debug("policy handler not found: %s", policy_name)
        return handler

    def filter(self, pod: Pod, node_info: NodeInfo) -> Optional[Status]:
        """None when the pod fits, otherwise the status that rejects it."""
        if node_info.node is None:
            return Status(Code.ERROR, "node not found")
        if pod_qos(pod) is QOSClass.BEST_EFFORT:
            return None
        topology = find_node_topology(node_info.node.name, self.store, self.namespaces)
        if topology is None:
            return None
        for policy_name in topology.topology_policies:
            handler = self._handler_for(policy_name)
            if handler is None:
                continue
            status = handler.filter(pod, topology.zones, node_info)
            if status is not None:
                return status
        return None

    def score(self, pod: Pod, node_name: str) -> int:
        """Score the node by the first policy the plugin has a handler for."""
        topology = find_node_topology(node_name, self.store, self.namespaces)
        if topology is None:
            return 0
        for policy_name in topology.topology_policies:
            handler = self._handler_for(policy_name)
            if handler is None:
                continue
            if self.scorer is None:
                raise RuntimeError("no scoring strategy configured")
            return handler.score(pod, topology.zones, self.scorer, self.resource_weights)
        return 0

    def events_to_register(self) -> list[ClusterEvent]:
        """Cluster events that may make a rejected pod schedulable."""
        return [
            ClusterEvent("Pod", ActionType.DELETE),
            ClusterEvent("Node", ActionType.ADD | ActionType.UPDATE_NODE_ALLOCATABLE),
        ]