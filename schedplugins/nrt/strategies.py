"""Per-NUMA-zone scoring strategies."""

from __future__ import annotations

from enum import Enum
from statistics import variance
from typing import Callable, Mapping, Union

from schedplugins.api import MAX_NODE_SCORE, ZERO, Quantity

DEFAULT_WEIGHT = 1

ResourceMap = Mapping[str, Quantity]


class ScoringStrategyType(str, Enum):
    MOST_ALLOCATED = "MostAllocated"
    LEAST_ALLOCATED = "LeastAllocated"
    BALANCED_ALLOCATION = "BalancedAllocation"


class ResourceWeights(dict):
    """Resource name to scoring weight."""

    def weight(self, name: str) -> int:
        """The resource's weight, or the default when unset or below one."""
        value = self.get(name)
        if value is None or value < 1:
            return DEFAULT_WEIGHT
        return value


ScoreStrategy = Callable[[ResourceMap, ResourceMap, ResourceWeights], int]


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def fraction_of_capacity(requested: Quantity, capacity: Quantity) -> float:
    """Requested over capacity; 1 when the capacity is zero."""
    if capacity.value() == 0:
        return 1.0
    return requested.value() / capacity.value()


def balanced_allocation_score(
    requested: ResourceMap, allocatable: ResourceMap, weights: ResourceWeights
) -> int:
    """Higher for zones where the requested fractions are evenly spread.

    A zone that cannot hold some requested resource scores 0. With fewer than
    two resources there is no spread, so the variance is taken as 0.
    """
    fractions = []
    for name, quantity in requested.items():
        fraction = fraction_of_capacity(quantity, allocatable.get(name, ZERO))
        if fraction > 1:
            return 0
        fractions.append(fraction)
    spread = variance(fractions) if len(fractions) >= 2 else 0.0
    return int((1 - spread) * MAX_NODE_SCORE)


def least_allocated_score(requested: Quantity, capacity: Quantity) -> int:
    """Higher the less of the capacity is requested."""
    if capacity.amount == 0 or requested > capacity:
        return 0
    return _trunc_div((capacity.value() - requested.value()) * MAX_NODE_SCORE, capacity.value())


def most_allocated_score(requested: Quantity, capacity: Quantity) -> int:
    """Higher the more of the capacity is requested."""
    if capacity.amount == 0 or requested > capacity:
        return 0
    return _trunc_div(requested.value() * MAX_NODE_SCORE, capacity.value())


def _weighted_score(
    per_resource: Callable[[Quantity, Quantity], int],
    requested: ResourceMap,
    allocatable: ResourceMap,
    weights: ResourceWeights,
) -> int:
    total = 0
    weight_sum = 0
    for name, quantity in requested.items():
        weight = weights.weight(name)
        total += per_resource(quantity, allocatable.get(name, ZERO)) * weight
        weight_sum += weight
    if weight_sum == 0:
        raise ZeroDivisionError("no requested resources to score")
    return _trunc_div(total, weight_sum)


def least_allocated_score_strategy(
    requested: ResourceMap, allocatable: ResourceMap, weights: ResourceWeights
) -> int:
    """Weighted mean of the least-allocated scores of the requested resources."""
    return _weighted_score(least_allocated_score, requested, allocatable, weights)


def most_allocated_score_strategy(
    requested: ResourceMap, allocatable: ResourceMap, weights: ResourceWeights
) -> int:
    """Weighted mean of the most-allocated scores of the requested resources."""
    return _weighted_score(most_allocated_score, requested, allocatable, weights)


_STRATEGIES: dict[ScoringStrategyType, ScoreStrategy] = {
    ScoringStrategyType.MOST_ALLOCATED: most_allocated_score_strategy,
    ScoringStrategyType.LEAST_ALLOCATED: least_allocated_score_strategy,
    ScoringStrategyType.BALANCED_ALLOCATION: balanced_allocation_score,
}


def scoring_strategy_function(strategy: Union[ScoringStrategyType, str]) -> ScoreStrategy:
    """The scoring function for a strategy type."""
    try:
        return _STRATEGIES[ScoringStrategyType(strategy)]
    except ValueError:
        raise ValueError("illegal scoring strategy found") from None