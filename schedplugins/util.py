"""Shared helpers: pod-group labels, wait times, merge patches and resource lists."""

from __future__ import annotations

import dataclasses
import json
from datetime import timedelta
from enum import Enum
from typing import Any, Optional

from schedplugins.api import (
    RESOURCE_CPU,
    RESOURCE_EPHEMERAL_STORAGE,
    RESOURCE_MEMORY,
    RESOURCE_PODS,
    Pod,
    Quantity,
    Resource,
)

POD_GROUP_LABEL = "pod-group.scheduling.sigs.k8s.io"
DEFAULT_WAIT_TIME = timedelta(seconds=60)


class CoschedulingError(Exception):
    """Base class for coscheduling outcomes."""

    default_message = ""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class NotMatchedError(CoschedulingError):
    """The pod does not take part in coscheduling."""

    default_message = "not match coscheduling"


class WaitingError(CoschedulingError):
    """Fewer pods than the group's minimum are present."""

    default_message = "waiting"


class ResourceNotEnoughError(CoschedulingError):
    """The cluster has too few resources for the group."""

    default_message = "resource not enough"


def _encode(obj: Any) -> Any:
    if isinstance(obj, Quantity):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def _to_json_object(obj: Any) -> dict:
    value = json.loads(json.dumps(obj, default=_encode))
    if not isinstance(value, dict):
        raise ValueError("merge patches can only be made between JSON objects")
    return value


def _diff(original: dict, new: dict) -> dict:
    patch: dict = {}
    for key, value in new.items():
        if key not in original:
            patch[key] = value
            continue
        old = original[key]
        if isinstance(old, dict) and isinstance(value, dict):
            sub = _diff(old, value)
            if sub:
                patch[key] = sub
        elif old != value:
            patch[key] = value
    for key in original.keys() - new.keys():
        patch[key] = None
    return patch


def create_merge_patch(original: Any, new: Any) -> bytes:
    """Return the JSON merge patch that turns ``original`` into ``new``."""
    patch = _diff(_to_json_object(original), _to_json_object(new))
    return json.dumps(patch, sort_keys=True, separators=(",", ":")).encode()


def pod_group_label(pod: Pod) -> str:
    """The pod group named in the pod's labels, or an empty string."""
    return pod.labels.get(POD_GROUP_LABEL, "")


def pod_group_full_name(pod: Pod) -> str:
    """The namespaced pod group name, or an empty string when there is none."""
    name = pod_group_label(pod)
    if not name:
        return ""
    return f"{pod.namespace}/{name}"


def wait_time_duration(
    pod_group_timeout_seconds: Optional[int], schedule_timeout: Optional[timedelta]
) -> timedelta:
    """Pick the group's own timeout, then the given one, then the default."""
    if pod_group_timeout_seconds is not None:
        return timedelta(seconds=pod_group_timeout_seconds)
    if schedule_timeout:
        return schedule_timeout
    return DEFAULT_WAIT_TIME


def resource_list(resource: Resource) -> dict[str, Quantity]:
    """Express a Resource as a resource list of quantities."""
    result = {
        RESOURCE_CPU: Quantity.from_milli(resource.milli_cpu),
        RESOURCE_MEMORY: Quantity.from_int(resource.memory),
        RESOURCE_PODS: Quantity.from_int(resource.allowed_pod_number),
        RESOURCE_EPHEMERAL_STORAGE: Quantity.from_int(resource.ephemeral_storage),
    }
    for name, amount in resource.scalar_resources.items():
        result[name] = Quantity.from_int(amount)
    return result