import pytest

from schedplugins.api import Container, Pod, Quantity
from schedplugins.qos import QOSSort, compare_qos


def _res(cpu, memory):
    return {"cpu": Quantity.parse(cpu), "memory": Quantity.parse(memory)}


def _pod(name, priority, requests=None, limits=None):
    return Pod(
        name=name,
        priority=priority,
        containers=[Container(name=name, requests=requests or {}, limits=limits or {})],
    )


GUARANTEED = (_res("100m", "100Mi"), _res("100m", "100Mi"))
BURSTABLE = (_res("100m", "100Mi"), _res("200m", "200Mi"))
BEST_EFFORT = (None, None)


@pytest.mark.parametrize(
    "pod1,pod2,want",
    [
        (_pod("p1", 100), _pod("p2", 50), True),
        (_pod("p1", 50), _pod("p2", 80), False),
        (_pod("p1", 0, *BEST_EFFORT), _pod("p2", 0, *BEST_EFFORT), True),
        (_pod("p1", 0, *BEST_EFFORT), _pod("p2", 0, *GUARANTEED), False),
        (_pod("p1", 0, *BURSTABLE), _pod("p2", 0, *GUARANTEED), False),
        (_pod("p1", 0, *BURSTABLE), _pod("p2", 0, *BURSTABLE), True),
        (_pod("p1", 0, *GUARANTEED), _pod("p2", 0, *BURSTABLE), True),
        (_pod("p1", 0, *GUARANTEED), _pod("p2", 0, *GUARANTEED), True),
    ],
    ids=[
        "p1 priority greater",
        "p1 priority less",
        "both best effort",
        "best effort vs guaranteed",
        "burstable vs guaranteed",
        "both burstable",
        "guaranteed vs burstable",
        "both guaranteed",
    ],
)
def test_sort_less(pod1, pod2, want):
    assert QOSSort().less(pod1, pod2) is want


def test_compare_qos_burstable_beats_best_effort():
    assert compare_qos(_pod("a", 0, *BURSTABLE), _pod("b", 0)) is True
    assert compare_qos(_pod("b", 0), _pod("a", 0, *BURSTABLE)) is False