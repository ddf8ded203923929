"""
Concentration score for POPC.

For attribute a in a cluster with count c, over K live clusters:

    score(a) = ((c * M + 1) / (positive_count(a) * M + K)) ** P

M (multiplier) smooths towards the dataset base rate, P (power) sharpens the
reward for concentrating an attribute in one cluster.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from .cluster import Cluster
from .dataset import Dataset
from .errors import InvariantViolation

DEFAULT_MULTIPLIER = 1000.0
DEFAULT_POWER = 10.0


def _denominators(totals: np.ndarray, num_clusters: int, multiplier: float) -> np.ndarray:
    if num_clusters < 1:
        raise InvariantViolation(f"num_clusters must be at least 1, got {num_clusters}")
    denom = totals.astype(np.float64) * multiplier + num_clusters
    if np.any(denom <= 0):
        raise InvariantViolation("score denominator is not positive")
    return denom


def attribute_score(
    count: int,
    total: int,
    num_clusters: int,
    multiplier: float = DEFAULT_MULTIPLIER,
    power: float = DEFAULT_POWER,
) -> float:
    """Score of one attribute with the given in-cluster and dataset counts."""
    denom = _denominators(np.array([total]), num_clusters, multiplier)[0]
    return float(((count * multiplier + 1) / denom) ** power)


def compute_delta(
    dataset: Dataset,
    cluster: Cluster,
    instance_num: int,
    num_clusters: int,
    multiplier: float = DEFAULT_MULTIPLIER,
    power: float = DEFAULT_POWER,
    added: bool = True,
) -> float:
    """
    Score change from adding (added=True) or removing a record.

    Only attributes the record has set contribute; a record with no
    attributes set always gives exactly 0.0.

    Args:
        dataset: Source dataset
        cluster: Cluster the record would join or leave
        instance_num: Record index
        num_clusters: Current number of live clusters (K)
        multiplier: M
        power: P
        added: Direction of the hypothetical move

    Returns:
        Sum over set attributes of new_score - old_score
    """
    attributes = dataset.attributes_set(instance_num)
    if attributes.size == 0:
        return 0.0

    denom = _denominators(dataset.positive_counts[attributes], num_clusters, multiplier)
    counts = cluster.attribute_counts[attributes].astype(np.float64)
    step = 1.0 if added else -1.0

    old_score = ((counts * multiplier + 1) / denom) ** power
    new_score = (((counts + step) * multiplier + 1) / denom) ** power
    return float(np.sum(new_score - old_score))


def total_score(
    dataset: Dataset,
    clusters: Iterable[Cluster],
    multiplier: float = DEFAULT_MULTIPLIER,
    power: float = DEFAULT_POWER,
) -> float:
    """Objective summed over every live cluster and every attribute."""
    clusters = list(clusters)
    if not clusters:
        return 0.0
    denom = _denominators(dataset.positive_counts, len(clusters), multiplier)
    score = 0.0
    for cluster in clusters:
        counts = cluster.attribute_counts.astype(np.float64)
        score += float(np.sum(((counts * multiplier + 1) / denom) ** power))
    return score
