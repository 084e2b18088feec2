import time

import pytest

from schedplugins.api import Pod
from schedplugins.trimaran.handler import PodAssignEventHandler, ScheduledPod

TEST_NODE = "node-1"


def names(handler, node=TEST_NODE):
    return [entry.pod.name for entry in handler.scheduled_pods_cache[node]]


@pytest.mark.parametrize(
    "entries, pod_to_update, expected",
    [
        (
            [ScheduledPod(Pod(name="Pod-1")), ScheduledPod(Pod(name="Pod-2")), ScheduledPod(Pod(name="Pod-3"))],
            "Pod-4",
            ["Pod-4"],
        ),
        (
            [
                ScheduledPod(Pod(name="Pod-1")),
                ScheduledPod(Pod(name="Pod-2")),
                ScheduledPod(Pod(name="Pod-3")),
                ScheduledPod(Pod(name="Pod-4"), time.time()),
            ],
            "Pod-5",
            ["Pod-4", "Pod-5"],
        ),
        (
            [
                ScheduledPod(Pod(name="Pod-1"), time.time() - 300),
                ScheduledPod(Pod(name="Pod-2"), time.time() - 10),
                ScheduledPod(Pod(name="Pod-3"), time.time() - 5),
            ],
            "",
            ["Pod-2", "Pod-3"],
        ),
    ],
)
def test_cache_cleanup(entries, pod_to_update, expected):
    handler = PodAssignEventHandler()
    handler.scheduled_pods_cache.setdefault(TEST_NODE, []).extend(entries)
    if pod_to_update:
        new_pod = Pod(name=pod_to_update, node_name=TEST_NODE)
        old_pod = Pod(name=pod_to_update)
        handler.on_update(old_pod, new_pod)
    handler.cleanup_cache()
    assert len(handler.scheduled_pods_cache[TEST_NODE]) == len(expected)
    assert names(handler) == expected


def test_on_add_skips_unassigned_pod():
    handler = PodAssignEventHandler()
    handler.on_add(Pod(name="p"))
    assert handler.scheduled_pods_cache == {}


def test_on_add_caches_assigned_pod():
    handler = PodAssignEventHandler()
    before = time.time()
    handler.on_add(Pod(name="p", node_name=TEST_NODE))
    entry = handler.scheduled_pods_cache[TEST_NODE][0]
    assert entry.pod.name == "p"
    assert entry.timestamp >= before


def test_on_update_same_node_is_ignored():
    handler = PodAssignEventHandler()
    handler.on_update(Pod(name="p", node_name=TEST_NODE), Pod(name="p", node_name=TEST_NODE))
    assert TEST_NODE not in handler.scheduled_pods_cache


def test_on_delete_removes_matching_uid():
    handler = PodAssignEventHandler()
    for name in ("a", "b", "c"):
        handler.on_add(Pod(name=name, uid=name, node_name=TEST_NODE))
    handler.on_delete(Pod(name="b", uid="b", node_name=TEST_NODE))
    assert names(handler) == ["a", "c"]


def test_on_delete_unknown_node_leaves_cache():
    handler = PodAssignEventHandler()
    handler.on_add(Pod(name="a", uid="a", node_name=TEST_NODE))
    handler.on_delete(Pod(name="a", uid="a", node_name="other"))
    assert names(handler) == ["a"]


def test_cleanup_keeps_node_when_all_entries_are_stale():
    handler = PodAssignEventHandler()
    handler.scheduled_pods_cache[TEST_NODE] = [ScheduledPod(Pod(name="old"), 0.0)]
    handler.cleanup_cache(now=1000.0)
    assert names(handler) == ["old"]


def test_cleanup_with_explicit_time():
    handler = PodAssignEventHandler()
    handler.scheduled_pods_cache[TEST_NODE] = [
        ScheduledPod(Pod(name="a"), 100.0),
        ScheduledPod(Pod(name="b"), 950.0),
    ]
    handler.cleanup_cache(now=1000.0)
    assert names(handler) == ["b"]


def test_background_cleanup():
    handler = PodAssignEventHandler(cleanup_interval=0.01)
    handler.scheduled_pods_cache[TEST_NODE] = [
        ScheduledPod(Pod(name="old"), 0.0),
        ScheduledPod(Pod(name="new"), time.time()),
    ]
    with handler:
        deadline = time.time() + 5
        while time.time() < deadline and len(handler.scheduled_pods_cache[TEST_NODE]) != 1:
            time.sleep(0.01)
    assert names(handler) == ["new"]