"""
POPC refinement engine.

Greedy local search: every record is offered to every other live cluster and
moved to the best one when that strictly increases the concentration score.
Passes repeat until one makes no move.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .cluster import Cluster, Clustering, MemberCursor
from .dataset import Dataset
from .errors import EmptyClusteringError
from .scoring import DEFAULT_MULTIPLIER, DEFAULT_POWER, compute_delta

STOP_CONVERGED = "converged"
STOP_MAX_PASSES = "max_passes"
STOP_DEADLINE = "deadline"
STOP_CANCELLED = "cancelled"


class RefinementObserver:
    """Receives progress notifications from the engine. Methods are no-ops by default."""

    def on_pass_start(self, pass_num: int, num_clusters: int) -> None:
        pass

    def on_move(self, instance_num: int, source: Cluster, target: Cluster, gain: float) -> None:
        pass

    def on_cluster_removed(self, cluster: Cluster, num_clusters: int) -> None:
        pass

    def on_pass_end(self, pass_num: int, moves: int, num_clusters: int) -> None:
        pass


@dataclass
class RefinementResult:
    """Outcome of a refinement run."""

    labels: np.ndarray
    passes: int
    moves: int
    stop_reason: str
    num_clusters: int

    @property
    def converged(self) -> bool:
        return self.stop_reason == STOP_CONVERGED


def find_best_move(
    dataset: Dataset,
    clusters: list[Cluster],
    source: Cluster,
    instance_num: int,
    multiplier: float = DEFAULT_MULTIPLIER,
    power: float = DEFAULT_POWER,
) -> tuple[Optional[Cluster], float]:
    """
    Best destination for a record currently in source.

    Ties go to the earliest cluster in live order.

    Returns:
        (target, gain); target is None when source is the only live cluster
    """
    num_clusters = len(clusters)
    base = compute_delta(dataset, source, instance_num, num_clusters, multiplier, power, added=False)

    best_target = None
    best_gain = -math.inf
    for candidate in clusters:
        if candidate is source:
            continue
        gain = base + compute_delta(dataset, candidate, instance_num, num_clusters, multiplier, power, added=True)
        if gain > best_gain:
            best_gain = gain
            best_target = candidate

    return best_target, best_gain


def move_instance(
    dataset: Dataset,
    source: Cluster,
    cursor: MemberCursor,
    target: Cluster,
) -> Optional[MemberCursor]:
    """Move the record at cursor from source to target; returns the next cursor in source."""
    instance_num = cursor.instance
    following = source.remove_instance_at(cursor)
    target.add_instance(instance_num)
    for attribute_num in dataset.attributes_set(instance_num):
        source.decrement_attribute_count(attribute_num)
        target.increment_attribute_count(attribute_num)
    return following


def run_pass(
    dataset: Dataset,
    clustering: Clustering,
    multiplier: float = DEFAULT_MULTIPLIER,
    power: float = DEFAULT_POWER,
    observer: Optional[RefinementObserver] = None,
) -> int:
    """
    One scan over all live clusters and their members.

    A cluster that is empty once its members have been scanned is removed
    from the collection immediately.

    Returns:
        Number of moves made
    """
    observer = observer or RefinementObserver()
    clusters = clustering.clusters
    moves = 0

    index = 0
    while index < len(clusters):
        cluster = clusters[index]
        cursor = cluster.first
        while cursor is not None:
            instance_num = cursor.instance
            target, gain = find_best_move(dataset, clusters, cluster, instance_num, multiplier, power)
            if target is not None and gain > 0:
                cursor = move_instance(dataset, cluster, cursor, target)
                moves += 1
                observer.on_move(instance_num, cluster, target, gain)
            else:
                cursor = cursor.next

        if cluster.is_empty():
            del clusters[index]
            observer.on_cluster_removed(cluster, len(clusters))
        else:
            index += 1

    return moves


def refine(
    dataset: Dataset,
    clustering: Clustering,
    multiplier: float = DEFAULT_MULTIPLIER,
    power: float = DEFAULT_POWER,
    max_passes: Optional[int] = None,
    deadline: Optional[float] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    observer: Optional[RefinementObserver] = None,
    check_invariants: bool = False,
) -> RefinementResult:
    """
    Refine a clustering in place until no single-record move helps.

    Args:
        dataset: Source dataset
        clustering: Initial clustering, mutated in place
        multiplier: M, positive
        power: P, positive
        max_passes: Stop after this many passes (None = unbounded)
        deadline: time.monotonic() value after which no new pass starts
        should_stop: Polled before every pass; True cancels the run
        observer: Receives pass/move/removal notifications
        check_invariants: Verify partition and counts after every pass

    Returns:
        RefinementResult with final labels in live-cluster order

    Raises:
        ValueError: On non-positive parameters
        EmptyClusteringError: If there is no non-empty cluster to refine
    """
    if not multiplier > 0:
        raise ValueError(f"multiplier must be positive, got {multiplier}")
    if not power > 0:
        raise ValueError(f"power must be positive, got {power}")
    if max_passes is not None and max_passes < 1:
        raise ValueError(f"max_passes must be at least 1, got {max_passes}")

    clustering.drop_empty()
    if not clustering.clusters:
        raise EmptyClusteringError("refinement needs at least one non-empty cluster")

    observer = observer or RefinementObserver()
    passes = 0
    total_moves = 0

    while True:
        if max_passes is not None and passes >= max_passes:
            stop_reason = STOP_MAX_PASSES
            break
        if deadline is not None and time.monotonic() >= deadline:
            stop_reason = STOP_DEADLINE
            break
        if should_stop is not None and should_stop():
            stop_reason = STOP_CANCELLED
            break

        passes += 1
        observer.on_pass_start(passes, len(clustering))
        moves = run_pass(dataset, clustering, multiplier, power, observer)
        total_moves += moves
        observer.on_pass_end(passes, moves, len(clustering))

        if check_invariants:
            clustering.check_invariants(dataset)

        if moves == 0:
            stop_reason = STOP_CONVERGED
            break

    return RefinementResult(
        labels=clustering.labels(dataset.num_instances),
        passes=passes,
        moves=total_moves,
        stop_reason=stop_reason,
        num_clusters=len(clustering),
    )
