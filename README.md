# schedplugins

Node-scoring, filtering and queue-sorting plugins for a cluster scheduler,
usable as a plain Python library. It depends on the standard library only.

## What is inside

- `schedplugins.api` — the object model the plugins work on: `Quantity`
  (exact resource amounts parsed from text such as `"500m"`, `"2Gi"` or
  `"1e3"`), `Container`, `Pod`, `Node`, `NodeInfo`, `Resource`, `Code`,
  `Status`, `NodeScore`, `QOSClass` and an in-memory `Snapshot` of node infos
  and nominated pods, plus `pod_qos` and `pod_priority`.
- `schedplugins.util` — pod-group helpers (`pod_group_label`,
  `pod_group_full_name`, `wait_time_duration`), `create_merge_patch` (a JSON
  merge patch between two objects, returned as bytes), `resource_list`, and
  the exceptions `NotMatchedError`, `WaitingError` and
  `ResourceNotEnoughError`.
- `schedplugins.qos` — `QOSSort`, whose `less(pod1, pod2)` orders pods by
  priority and breaks ties on QoS class (Guaranteed, then Burstable, then
  BestEffort).
- `schedplugins.podstate` — `PodState`, which scores a node by its
  terminating pods minus the pods nominated to it; `normalize_score`
  rescales a list of `NodeScore` in place onto 0–100.
- `schedplugins.nrt` — NUMA-aware topology matching:
  - `nrt.topology`: `NodeResourceTopology`, `Zone`, `ResourceInfo`,
    `TopologyPolicy`, `NUMANode`, `TopologyStore` and helpers such as
    `create_numa_node_list` and `make_topology_res_info`;
  - `nrt.strategies`: `ScoringStrategyType` (most-allocated,
    least-allocated, balanced-allocation), `ResourceWeights` and
    `scoring_strategy_function`;
  - `nrt.filter` and `nrt.score`: single-NUMA-node admission per container
    or per pod, and per-NUMA-zone scoring;
  - `nrt.plugin`: `TopologyMatch`, whose `filter(pod, node_info)` returns
    `None` when the pod can be aligned and an unschedulable `Status`
    otherwise, and whose `score(pod, node_name)` scores the node with the
    configured strategy.
- `schedplugins.trimaran` — load-aware scoring from load-watcher metrics:
  - `trimaran.watcher`: `WatcherMetrics`, `Metric`, `Window`, `WatcherError`
    and `ServiceClient`, which fetches metrics over HTTP;
  - `trimaran.handler`: `PodAssignEventHandler`, a per-node cache of recently
    bound pods with a background cleanup (`start_cleanup()` / `stop()`);
  - `trimaran.analysis` and `trimaran.collector`: risk computation from
    mean and standard deviation, and the `Collector` that refreshes metrics;
  - `trimaran.targetloadpacking`: `TargetLoadPacking`, which packs nodes
    towards a target CPU utilisation;
  - `trimaran.riskbalancing`: `LoadVariationRiskBalancing`, which balances
    the risk of load variation across nodes.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Queue sorting by QoS class:

```python
from schedplugins.api import Container, Pod, Quantity
from schedplugins.qos import QOSSort

guaranteed = Pod(
    name="db",
    containers=[
        Container(
            name="db",
            requests={"cpu": Quantity.parse("100m"), "memory": Quantity.parse("100Mi")},
            limits={"cpu": Quantity.parse("100m"), "memory": Quantity.parse("100Mi")},
        )
    ],
)
best_effort = Pod(name="batch", containers=[Container(name="batch")])

assert QOSSort().less(guaranteed, best_effort)
```

Scoring a node by its NUMA zones:

```python
from schedplugins.api import Quantity
from schedplugins.nrt.plugin import TopologyMatch
from schedplugins.nrt.topology import (
    NodeResourceTopology,
    TopologyStore,
    Zone,
    make_pod_by_resource_list,
    make_topology_res_info,
)

zones = [
    Zone(f"node-{i}", "Node", [
        make_topology_res_info("cpu", "4", "4"),
        make_topology_res_info("memory", "500Mi", "500Mi"),
    ])
    for i in range(2)
]
store = TopologyStore([
    NodeResourceTopology(
        name="node1",
        topology_policies=["SingleNUMANodeContainerLevel"],
        zones=zones,
    )
])
plugin = TopologyMatch(store, scoring_strategy="LeastAllocated")
pod = make_pod_by_resource_list(
    {"cpu": Quantity.from_int(2), "memory": Quantity.from_int(20 * 1024 * 1024)}
)
assert plugin.score(pod, "node1") == 73
```

The load-aware plugins take a `Snapshot` and either a watcher address or any
object with a `latest_metrics()` method returning `WatcherMetrics`. They
start background threads: call `TargetLoadPacking.stop()` when done, and use
`LoadVariationRiskBalancing` as a context manager so that its collector and
cache cleanup are stopped on exit.

## What this package does not do

It is a library of plugin logic, not a running scheduler. There is no
command, no scheduling loop, and no connection to a cluster API: node
snapshots, nominated pods and node resource topologies are built and handed
in by the caller (`Snapshot`, `TopologyStore`), and bound-pod events are fed
to `PodAssignEventHandler` by calling its `on_add`, `on_update` and
`on_delete` methods. Metrics are obtained only from a load-watcher service
through `ServiceClient` or from a client the caller supplies; the metric
provider fields of the plugin arguments are validated but no provider is
queried directly.