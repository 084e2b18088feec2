"""Score plugin favouring nodes with terminating pods over nominated ones."""

from __future__ import annotations

from typing import Optional

from schedplugins.api import MAX_NODE_SCORE, MIN_NODE_SCORE, NodeScore, Pod, Snapshot

NAME = "PodState"


class PodState:
    """Scores a node by its terminating pods minus the pods nominated to it."""

    name = NAME

    def __init__(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot

    def score(self, pod: Optional[Pod], node_name: str) -> int:
        """Raw score: terminating pods minus nominated pods on the node."""
        node_info = self._snapshot.get(node_name)
        nominated = len(self._snapshot.nominated_pods_for_node(node_info.node.name))
        terminating = sum(1 for p in node_info.pods if p.deletion_timestamp is not None)
        return terminating - nominated

    def normalize_score(self, pod: Optional[Pod], scores: list[NodeScore]) -> None:
        """Rescale the scores in place onto the framework's score range."""
        if not scores:
            return
        highest = max(s.score for s in scores)
        lowest = min(s.score for s in scores)
        old_range = highest - lowest
        new_range = MAX_NODE_SCORE - MIN_NODE_SCORE
        for entry in scores:
            if old_range == 0:
                entry.score = MIN_NODE_SCORE
            else:
                entry.score = (entry.score - lowest) * new_range // old_range + MIN_NODE_SCORE