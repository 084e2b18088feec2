import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from schedplugins.trimaran.collector import (
    Collector,
    LoadVariationRiskBalancingArgs,
    MetricProviderType,
    validate_args,
)
from schedplugins.trimaran.watcher import (
    AVERAGE,
    CPU,
    MEMORY,
    STD,
    Metric,
    WatcherError,
    WatcherMetrics,
)

NODE_METRICS = {
    "node-1": [
        Metric(type=CPU, operator=AVERAGE, value=80),
        Metric(type=CPU, operator=STD, value=16),
        Metric(type=MEMORY, operator=AVERAGE, value=25),
        Metric(type=MEMORY, operator=STD, value=6.25),
    ]
}
WATCHER_RESPONSE = WatcherMetrics(node_metrics_map=NODE_METRICS)


@pytest.fixture
def server_url():
    payload = json.dumps(WATCHER_RESPONSE.to_dict()).encode()

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            self.send_response(200)
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        def log_message(self, *args):
            pass

    server = HTTPServer(("127.0.0.1", 0), Handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def collectors():
    made = []
    yield made
    for collector in made:
        collector.stop()


def closed_port_address():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"


class SequenceClient:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def latest_metrics(self):
        self.calls += 1
        result = self.results[min(self.calls - 1, len(self.results) - 1)]
        if isinstance(result, Exception):
            raise result
        return result


def test_new_collector_with_unreachable_watcher(collectors):
    args = LoadVariationRiskBalancingArgs(watcher_address=closed_port_address(), safe_variance_margin=1)
    collector = Collector(args)
    collectors.append(collector)
    assert collector.all_metrics().node_metrics_map is None
    assert collector.node_metrics("node-1") is None


def test_all_metrics(server_url, collectors):
    collector = Collector(LoadVariationRiskBalancingArgs(watcher_address=server_url))
    collectors.append(collector)
    assert collector.all_metrics().node_metrics_map == NODE_METRICS


def test_update_metrics(server_url, collectors):
    collector = Collector(LoadVariationRiskBalancingArgs(watcher_address=server_url))
    collectors.append(collector)
    collector.update_metrics()
    assert collector.all_metrics() == WATCHER_RESPONSE


def test_node_metrics(server_url, collectors):
    collector = Collector(LoadVariationRiskBalancingArgs(watcher_address=server_url))
    collectors.append(collector)
    assert collector.node_metrics("node-1") == NODE_METRICS["node-1"]
    assert collector.node_metrics("node-2") is None


def test_update_replaces_metrics(collectors):
    client = SequenceClient(WatcherMetrics(), WATCHER_RESPONSE)
    collector = Collector(LoadVariationRiskBalancingArgs(), client=client, update_interval=3600)
    collectors.append(collector)
    assert collector.node_metrics("node-1") is None
    collector.update_metrics()
    assert collector.node_metrics("node-1") == NODE_METRICS["node-1"]


def test_failed_update_keeps_previous_metrics(collectors):
    client = SequenceClient(WATCHER_RESPONSE, WatcherError("down"))
    collector = Collector(LoadVariationRiskBalancingArgs(), client=client, update_interval=3600)
    collectors.append(collector)
    with pytest.raises(WatcherError):
        collector.update_metrics()
    assert collector.all_metrics() == WATCHER_RESPONSE


def test_periodic_updates(collectors):
    client = SequenceClient(WATCHER_RESPONSE)
    collector = Collector(LoadVariationRiskBalancingArgs(), client=client, update_interval=0.01)
    collectors.append(collector)
    deadline = time.time() + 5
    while time.time() < deadline and client.calls < 3:
        time.sleep(0.01)
    collector.stop()
    assert client.calls >= 3


def test_collector_requires_client_without_address():
    with pytest.raises(ValueError):
        Collector(LoadVariationRiskBalancingArgs())


def test_validate_args_wrong_type():
    with pytest.raises(TypeError):
        validate_args(object())


def test_validate_args_invalid_provider():
    with pytest.raises(ValueError):
        validate_args(LoadVariationRiskBalancingArgs(metric_provider_type="Graphite"))


def test_validate_args_watcher_address_skips_provider_check():
    args = LoadVariationRiskBalancingArgs(watcher_address="http://localhost:2020", metric_provider_type="Graphite")
    assert validate_args(args) is args


@pytest.mark.parametrize("provider", list(MetricProviderType))
def test_validate_args_known_providers(provider):
    args = LoadVariationRiskBalancingArgs(metric_provider_type=provider.value)
    assert validate_args(args) is args