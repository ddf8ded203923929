"""
Initial partitions for POPC refinement.

Either k-means over the binary rows or labels read from a file,
one integer per line.
"""

from __future__ import annotations

from typing import Optional, TextIO

import numpy as np
from sklearn.cluster import KMeans

from .dataset import Dataset
from .errors import FormatError


def default_num_clusters(num_instances: int) -> int:
    """Initial cluster count: half the records, at least one."""
    return max(1, num_instances // 2)


def kmeans_partition(
    dataset: Dataset,
    num_clusters: Optional[int] = None,
    random_state: Optional[int] = None,
) -> np.ndarray:
    """
    Assign records to initial clusters with k-means.

    Centroids are seeded from randomly sampled records.

    Args:
        dataset: Dataset to cluster
        num_clusters: Number of clusters (default: default_num_clusters)
        random_state: Seed for reproducible runs

    Returns:
        Label per record in [0, num_clusters)
    """
    if num_clusters is None:
        num_clusters = default_num_clusters(dataset.num_instances)
    if not 1 <= num_clusters <= dataset.num_instances:
        raise ValueError(
            f"num_clusters must be in [1, {dataset.num_instances}], got {num_clusters}"
        )

    if num_clusters == 1:
        return np.zeros(dataset.num_instances, dtype=np.intp)

    clusterer = KMeans(
        n_clusters=num_clusters,
        init="random",
        n_init=1,
        random_state=random_state,
    )
    labels = clusterer.fit_predict(dataset.matrix.astype(np.float64))
    return labels.astype(np.intp)


def read_partition(stream: TextIO, num_instances: int, num_clusters: int) -> np.ndarray:
    """
    Read pre-generated cluster assignments.

    Args:
        stream: One non-negative integer per line, ordered like the dataset rows
        num_instances: Expected number of lines
        num_clusters: Exclusive upper bound for cluster ids

    Returns:
        Label per record

    Raises:
        FormatError: On bad lines, ids out of range or a line count mismatch
    """
    labels = np.empty(num_instances, dtype=np.intp)
    count = 0

    for line_num, line in enumerate(stream, start=1):
        text = line.strip()
        if not text:
            continue
        if count >= num_instances:
            raise FormatError(
                "too many lines in cluster file for the number of instances read in data file"
            )
        if not (text.isascii() and text.isdigit()):
            raise FormatError(f"unexpected character in cluster file at line {line_num}: {text!r}")
        cluster_num = int(text)
        if cluster_num >= num_clusters:
            raise FormatError(
                f"cluster identifier {cluster_num} at line {line_num} exceeds "
                f"permitted number of clusters ({num_clusters})"
            )
        labels[count] = cluster_num
        count += 1

    if count != num_instances:
        raise FormatError(
            f"cluster file has {count} assignments, data file has {num_instances} instances"
        )
    return labels
