"""Core scheduling data model: quantities, pods, nodes, statuses and snapshots."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from fractions import Fraction
from typing import Iterable, Mapping, Optional

MAX_NODE_SCORE = 100
MIN_NODE_SCORE = 0

RESOURCE_CPU = "cpu"
RESOURCE_MEMORY = "memory"
RESOURCE_PODS = "pods"
RESOURCE_EPHEMERAL_STORAGE = "ephemeral-storage"
HUGEPAGES_PREFIX = "hugepages-"

_BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}
_DECIMAL_SUFFIXES = {
    "n": Fraction(1, 10**9),
    "u": Fraction(1, 10**6),
    "m": Fraction(1, 10**3),
    "": Fraction(1),
    "k": Fraction(10**3),
    "M": Fraction(10**6),
    "G": Fraction(10**9),
    "T": Fraction(10**12),
    "P": Fraction(10**15),
    "E": Fraction(10**18),
}
_QUANTITY_PATTERN = re.compile(
    r"(?P<number>[+-]?(?:\d+\.?\d*|\.\d+))"
    r"(?P<suffix>[eE][+-]?\d+|[KMGTPE]i|[numkMGTPE]?)"
)


@dataclass(frozen=True, order=True)
class Quantity:
    """An exact resource amount, as written in resource requests and limits."""

    amount: Fraction = Fraction(0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Fraction(self.amount))

    @classmethod
    def parse(cls, text: str) -> "Quantity":
        """Parse a quantity such as ``"100m"``, ``"2Gi"`` or ``"1e3"``."""
        match = _QUANTITY_PATTERN.fullmatch(text.strip())
        if match is None:
            raise ValueError(f"quantities must match the regular expression: {text!r}")
        try:
            number = Fraction(Decimal(match["number"]))
        except InvalidOperation as exc:
            raise ValueError(f"invalid quantity: {text!r}") from exc
        suffix = match["suffix"]
        if suffix in _BINARY_SUFFIXES:
            scale = Fraction(_BINARY_SUFFIXES[suffix])
        elif suffix in _DECIMAL_SUFFIXES:
            scale = _DECIMAL_SUFFIXES[suffix]
        else:
            scale = Fraction(10) ** int(suffix[1:])
        return cls(number * scale)

    @classmethod
    def from_int(cls, value: int) -> "Quantity":
        return cls(Fraction(value))

    @classmethod
    def from_milli(cls, value: int) -> "Quantity":
        return cls(Fraction(value, 1000))

    def value(self) -> int:
        """The amount as an integer, rounded up."""
        return math.ceil(self.amount)

    def milli_value(self) -> int:
        """The amount in thousandths, rounded up."""
        return math.ceil(self.amount * 1000)

    def __add__(self, other: "Quantity") -> "Quantity":
        if not isinstance(other, Quantity):
            return NotImplemented
        return Quantity(self.amount + other.amount)

    def __str__(self) -> str:
        if self.amount.denominator == 1:
            return str(self.amount.numerator)
        for suffix, factor in (("m", 10**3), ("u", 10**6), ("n", 10**9)):
            scaled = self.amount * factor
            if scaled.denominator == 1:
                return f"{scaled.numerator}{suffix}"
        return f"{math.ceil(self.amount * 10**9)}n"


ZERO = Quantity()

ResourceList = dict


@dataclass
class Container:
    name: str = ""
    requests: dict[str, Quantity] = field(default_factory=dict)
    limits: dict[str, Quantity] = field(default_factory=dict)


@dataclass
class Pod:
    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    containers: list[Container] = field(default_factory=list)
    init_containers: list[Container] = field(default_factory=list)
    priority: Optional[int] = None
    overhead: Optional[dict[str, Quantity]] = None
    node_name: str = ""
    deletion_timestamp: Optional[float] = None
    nominated_node_name: str = ""

    @property
    def all_containers(self) -> list[Container]:
        """Init containers followed by regular containers."""
        return [*self.init_containers, *self.containers]


@dataclass
class Node:
    name: str = ""
    capacity: dict[str, Quantity] = field(default_factory=dict)
    allocatable: dict[str, Quantity] = field(default_factory=dict)


def _is_scalar_resource(name: str) -> bool:
    return name.startswith(HUGEPAGES_PREFIX) or "/" in name


@dataclass
class Resource:
    """Aggregated compute resources in scheduler units."""

    milli_cpu: int = 0
    memory: int = 0
    ephemeral_storage: int = 0
    allowed_pod_number: int = 0
    scalar_resources: dict[str, int] = field(default_factory=dict)

    def add(self, resources: Optional[Mapping[str, Quantity]]) -> None:
        """Add every quantity of a resource list to this resource."""
        if not resources:
            return
        for name, quantity in resources.items():
            if name == RESOURCE_CPU:
                self.milli_cpu += quantity.milli_value()
            elif name == RESOURCE_MEMORY:
                self.memory += quantity.value()
            elif name == RESOURCE_PODS:
                self.allowed_pod_number += quantity.value()
            elif name == RESOURCE_EPHEMERAL_STORAGE:
                self.ephemeral_storage += quantity.value()
            elif _is_scalar_resource(name):
                self.scalar_resources[name] = self.scalar_resources.get(name, 0) + quantity.value()


@dataclass
class NodeInfo:
    node: Optional[Node] = None
    pods: list[Pod] = field(default_factory=list)

    @property
    def allocatable(self) -> Resource:
        result = Resource()
        if self.node is not None:
            result.add(self.node.allocatable)
        return result


class Code(Enum):
    SUCCESS = "Success"
    ERROR = "Error"
    UNSCHEDULABLE = "Unschedulable"
    UNSCHEDULABLE_AND_UNRESOLVABLE = "UnschedulableAndUnresolvable"
    WAIT = "Wait"
    SKIP = "Skip"


@dataclass(frozen=True)
class Status:
    code: Code = Code.SUCCESS
    message: str = ""

    def is_success(self) -> bool:
        return self.code is Code.SUCCESS


@dataclass
class NodeScore:
    name: str
    score: int = 0


class QOSClass(Enum):
    GUARANTEED = "Guaranteed"
    BURSTABLE = "Burstable"
    BEST_EFFORT = "BestEffort"


class NodeNotFoundError(LookupError):
    """Raised when a snapshot holds no node of the requested name."""


class Snapshot:
    """Node infos by name, together with the pods nominated to each node."""

    def __init__(self, node_infos: Iterable[NodeInfo] = ()) -> None:
        self._node_infos = {info.node.name: info for info in node_infos if info.node is not None}
        self._nominated: dict[str, list[Pod]] = {}

    def get(self, node_name: str) -> NodeInfo:
        try:
            return self._node_infos[node_name]
        except KeyError:
            raise NodeNotFoundError(f"nodeinfo not found for node name {node_name!r}") from None

    def __iter__(self):
        return iter(self._node_infos.values())

    def __len__(self) -> int:
        return len(self._node_infos)

    def add_nominated_pod(self, pod: Pod, node_name: str) -> None:
        """Nominate a pod to a node, replacing any earlier nomination of it."""
        for pods in self._nominated.values():
            pods[:] = [p for p in pods if not _same_pod(p, pod)]
        self._nominated.setdefault(node_name, []).append(pod)

    def nominated_pods_for_node(self, node_name: str) -> list[Pod]:
        return list(self._nominated.get(node_name, ()))


def _same_pod(a: Pod, b: Pod) -> bool:
    if a.uid or b.uid:
        return a.uid == b.uid
    return a is b


_QOS_RESOURCES = frozenset({RESOURCE_CPU, RESOURCE_MEMORY})


def pod_qos(pod: Pod) -> QOSClass:
    """Compute the QoS class of a pod from its containers' requests and limits."""
    requests: dict[str, Quantity] = {}
    limits: dict[str, Quantity] = {}
    guaranteed = True
    for container in pod.all_containers:
        for name, quantity in container.requests.items():
            if name in _QOS_RESOURCES and quantity > ZERO:
                requests[name] = requests.get(name, ZERO) + quantity
        found = set()
        for name, quantity in container.limits.items():
            if name in _QOS_RESOURCES and quantity > ZERO:
                found.add(name)
                limits[name] = limits.get(name, ZERO) + quantity
        if not found >= _QOS_RESOURCES:
            guaranteed = False
    if not requests and not limits:
        return QOSClass.BEST_EFFORT
    if guaranteed and any(limits.get(name) != quantity for name, quantity in requests.items()):
        guaranteed = False
    if guaranteed and len(requests) == len(limits):
        return QOSClass.GUARANTEED
    return QOSClass.BURSTABLE


def pod_priority(pod: Pod) -> int:
    """The pod's priority, or 0 when none is set."""
    return pod.priority if pod.priority is not None else 0