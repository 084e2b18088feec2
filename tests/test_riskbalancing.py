import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from schedplugins.api import (
    MIN_NODE_SCORE,
    Container,
    Node,
    NodeInfo,
    NodeScore,
    Pod,
    Quantity,
    Snapshot,
)
from schedplugins.api import NodeNotFoundError
from schedplugins.trimaran.collector import LoadVariationRiskBalancingArgs
from schedplugins.trimaran.riskbalancing import NAME, LoadVariationRiskBalancing, is_assigned
from schedplugins.trimaran.watcher import AVERAGE, CPU, MEMORY, STD, Metric, WatcherMetrics

MEGA = 1024 * 1024


class _FakeClient:
    def __init__(self, metrics):
        self.metrics = metrics

    def latest_metrics(self):
        return self.metrics


def _node_snapshot(name="node-1"):
    res = {"cpu": Quantity.parse("1000m"), "memory": Quantity.parse("1Gi")}
    return Snapshot([NodeInfo(node=Node(name=name, capacity=dict(res), allocatable=dict(res)))])


def _pod_with_containers_and_overhead(overhead, init_cpu, init_mem, cpu_reqs, mem_reqs):
    init = Container(
        name="test-init",
        requests={"cpu": Quantity.from_milli(init_cpu), "memory": Quantity.from_int(init_mem)},
    )
    containers = []
    for i, (cpu, mem) in enumerate(zip(cpu_reqs, mem_reqs)):
        res = {"cpu": Quantity.from_milli(cpu), "memory": Quantity.from_int(mem)}
        containers.append(Container(name=f"test-container-{i}", requests=dict(res), limits=dict(res)))
    return Pod(
        containers=containers,
        init_containers=[init],
        overhead={"cpu": Quantity.from_milli(overhead)},
    )


def _metrics(*metrics):
    return WatcherMetrics(node_metrics_map={"node-1": list(metrics)})


SCORE_CASES = [
    ("new node", Pod(name="p"), _metrics(Metric(type=CPU, operator=AVERAGE, value=50)), 75),
    ("hot node", Pod(name="p"), _metrics(Metric(type=CPU, operator=AVERAGE, value=100)), 50),
    (
        "average and stDev metrics",
        _pod_with_containers_and_overhead(0, 0, 0, [200], [256 * MEGA]),
        _metrics(
            Metric(type=CPU, operator=AVERAGE, value=30),
            Metric(type=CPU, operator=STD, value=16),
        ),
        67,
    ),
    (
        "CPU and Memory metrics",
        _pod_with_containers_and_overhead(0, 0, 0, [100], [512 * MEGA]),
        _metrics(
            Metric(type=CPU, operator=AVERAGE, value=40),
            Metric(type=CPU, operator=STD, value=16),
            Metric(type=MEMORY, operator=AVERAGE, value=50),
            Metric(type=MEMORY, operator=STD, value=10),
        ),
        45,
    ),
    (
        "pick worst case: CPU or Memory",
        _pod_with_containers_and_overhead(0, 0, 0, [100], [512 * MEGA]),
        _metrics(
            Metric(type=CPU, operator=AVERAGE, value=80),
            Metric(type=CPU, operator=STD, value=20),
            Metric(type=MEMORY, operator=AVERAGE, value=25),
            Metric(type=MEMORY, operator=STD, value=15),
        ),
        45,
    ),
    ("404 resp from watcher", Pod(name="p"), WatcherMetrics(), MIN_NODE_SCORE),
]


@pytest.mark.parametrize("pod,metrics,expected", [c[1:] for c in SCORE_CASES], ids=[c[0] for c in SCORE_CASES])
def test_score(pod, metrics, expected):
    args = LoadVariationRiskBalancingArgs(watcher_address="http://watcher.example.com:2020")
    with LoadVariationRiskBalancing(args, _node_snapshot(), client=_FakeClient(metrics)) as plugin:
        assert plugin.score(pod, "node-1") == expected


def test_score_unknown_node_in_snapshot_raises():
    args = LoadVariationRiskBalancingArgs(watcher_address="http://watcher.example.com:2020")
    client = _FakeClient(_metrics(Metric(type=CPU, operator=AVERAGE, value=50)))
    with LoadVariationRiskBalancing(args, _node_snapshot(), client=client) as plugin:
        with pytest.raises(NodeNotFoundError):
            plugin.score(Pod(name="p"), "node-2")


def test_score_node_without_metrics_gets_minimum():
    args = LoadVariationRiskBalancingArgs(watcher_address="http://watcher.example.com:2020")
    client = _FakeClient(
        WatcherMetrics(node_metrics_map={"other": [Metric(type=CPU, operator=AVERAGE, value=10)]})
    )
    with LoadVariationRiskBalancing(args, _node_snapshot(), client=client) as plugin:
        assert plugin.score(Pod(name="p"), "node-1") == MIN_NODE_SCORE


def test_normalize_score_leaves_scores_unchanged():
    args = LoadVariationRiskBalancingArgs(watcher_address="http://watcher.example.com:2020")
    with LoadVariationRiskBalancing(args, _node_snapshot(), client=_FakeClient(WatcherMetrics())) as plugin:
        scores = [NodeScore("node-1", 30), NodeScore("node-2", 70)]
        plugin.normalize_score(None, scores)
        assert [s.score for s in scores] == [30, 70]


def test_is_assigned():
    assert is_assigned(Pod(node_name="node-1")) is True
    assert is_assigned(Pod()) is False


def test_invalid_args_type_rejected():
    with pytest.raises(TypeError):
        LoadVariationRiskBalancing(object(), _node_snapshot())


class _WatcherHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = self.server.payload
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture
def watcher_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _WatcherHandler)
    server.payload = json.dumps(
        _metrics(Metric(type=CPU, operator=AVERAGE, value=50)).to_dict()
    ).encode()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


@pytest.mark.parametrize(
    "margin,sensitivity",
    [(1.0, 1.0), (-5.0, 1.0), (-5.0, -1.0)],
)
def test_new_with_watcher_service(watcher_server, margin, sensitivity):
    args = LoadVariationRiskBalancingArgs(
        watcher_address=watcher_server,
        safe_variance_margin=margin,
        safe_variance_sensitivity=sensitivity,
    )
    with LoadVariationRiskBalancing(args, _node_snapshot()) as plugin:
        assert plugin.name == NAME
        assert plugin.score(Pod(name="p"), "node-1") == 75