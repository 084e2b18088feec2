"""Queue sort plugin ordering pods by priority, then by QoS class."""

from __future__ import annotations

from schedplugins.api import Pod, QOSClass, pod_priority, pod_qos

NAME = "QOSSort"


class QOSSort:
    """Sorts pods by priority and breaks ties with the pods' QoS classes."""

    name = NAME

    def less(self, pod1: Pod, pod2: Pod) -> bool:
        """Whether ``pod1`` should be scheduled before ``pod2``."""
        p1, p2 = pod_priority(pod1), pod_priority(pod2)
        return p1 > p2 or (p1 == p2 and compare_qos(pod1, pod2))


def compare_qos(pod1: Pod, pod2: Pod) -> bool:
    """Whether ``pod1``'s QoS class ranks at least as high as ``pod2``'s."""
    qos1, qos2 = pod_qos(pod1), pod_qos(pod2)
    if qos1 is QOSClass.GUARANTEED:
        return True
    if qos1 is QOSClass.BURSTABLE:
        return qos2 is not QOSClass.GUARANTEED
    return qos2 is QOSClass.BEST_EFFORT