"""
Cluster data structures for POPC refinement.

A Cluster keeps its members in a doubly linked list so a member can be
removed at a cursor while the list is being scanned, and keeps per-attribute
positive counts that are updated one attribute at a time.
"""

from __future__ import annotations

from typing import Iterator, Optional, Sequence

import numpy as np

from .dataset import Dataset
from .errors import InvariantViolation


class MemberCursor:
    """Position of one record in a cluster's membership list."""

    __slots__ = ("instance", "next", "prev", "owner")

    def __init__(self, instance: int, owner: Cluster):
        self.instance = instance
        self.next: Optional[MemberCursor] = None
        self.prev: Optional[MemberCursor] = None
        self.owner: Optional[Cluster] = owner

    def __repr__(self) -> str:
        return f"MemberCursor(instance={self.instance})"


class Cluster:
    """Mutable membership plus per-attribute positive counts."""

    def __init__(self, num_attributes: int):
        if num_attributes < 1:
            raise InvariantViolation(f"num_attributes must be positive, got {num_attributes}")
        self._counts = np.zeros(num_attributes, dtype=np.int64)
        self._head: Optional[MemberCursor] = None
        self._tail: Optional[MemberCursor] = None
        self._size = 0

    @property
    def num_attributes(self) -> int:
        return self._counts.shape[0]

    def is_empty(self) -> bool:
        return self._size == 0

    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    @property
    def first(self) -> Optional[MemberCursor]:
        """Cursor at the first member, None if empty."""
        return self._head

    def __iter__(self) -> Iterator[int]:
        cursor = self._head
        while cursor is not None:
            yield cursor.instance
            cursor = cursor.next

    @property
    def members(self) -> list[int]:
        return list(self)

    def add_instance(self, instance_num: int) -> None:
        """
        Append a record to the membership.

        Attribute counts are left untouched; the caller increments them for
        every attribute the record has set.
        """
        if instance_num < 0:
            raise InvariantViolation(f"instance {instance_num} is negative")
        cursor = MemberCursor(instance_num, self)
        if self._tail is None:
            self._head = cursor
        else:
            self._tail.next = cursor
            cursor.prev = self._tail
        self._tail = cursor
        self._size += 1

    def remove_instance_at(self, cursor: MemberCursor) -> Optional[MemberCursor]:
        """
        Unlink the member at cursor.

        Returns:
            Cursor of the following member (None at the end), so a scan can
            continue without skipping or revisiting anything
        """
        if cursor.owner is not self:
            raise InvariantViolation(f"{cursor!r} does not belong to this cluster")

        following = cursor.next
        if cursor.prev is None:
            self._head = following
        else:
            cursor.prev.next = following
        if following is None:
            self._tail = cursor.prev
        else:
            following.prev = cursor.prev

        cursor.next = cursor.prev = None
        cursor.owner = None
        self._size -= 1
        return following

    def _check_attribute(self, attribute_num: int) -> None:
        if not 0 <= attribute_num < self._counts.shape[0]:
            raise InvariantViolation(
                f"attribute {attribute_num} out of range [0, {self._counts.shape[0]})"
            )

    def increment_attribute_count(self, attribute_num: int) -> None:
        self._check_attribute(attribute_num)
        self._counts[attribute_num] += 1

    def decrement_attribute_count(self, attribute_num: int) -> None:
        self._check_attribute(attribute_num)
        if self._counts[attribute_num] == 0:
            raise InvariantViolation(f"count for attribute {attribute_num} is already zero")
        self._counts[attribute_num] -= 1

    def attribute_count(self, attribute_num: int) -> int:
        self._check_attribute(attribute_num)
        return int(self._counts[attribute_num])

    @property
    def attribute_counts(self) -> np.ndarray:
        """Read-only view of all attribute counts."""
        view = self._counts.view()
        view.setflags(write=False)
        return view

    def __repr__(self) -> str:
        return f"Cluster(size={self._size})"


class Clustering:
    """
    Ordered collection of live clusters.

    Order is insertion order and is what the move tie-break and the final
    label numbering follow. The collection only ever shrinks.
    """

    def __init__(self, clusters: Optional[list[Cluster]] = None):
        self.clusters: list[Cluster] = list(clusters or [])

    @classmethod
    def from_labels(
        cls,
        dataset: Dataset,
        labels: Sequence[int],
        num_clusters: Optional[int] = None,
    ) -> Clustering:
        """
        Build clusters from an initial label per record.

        Ids in [0, num_clusters) that no record uses produce no cluster.

        Args:
            dataset: Dataset the labels refer to
            labels: Initial cluster id for each record
            num_clusters: Id bound (default: max label + 1)
        """
        labels = np.asarray(labels)
        if labels.shape != (dataset.num_instances,):
            raise InvariantViolation(
                f"expected {dataset.num_instances} labels, got shape {labels.shape}"
            )
        if labels.size and not np.issubdtype(labels.dtype, np.integer):
            raise InvariantViolation(f"labels must be integers, got dtype {labels.dtype}")
        if labels.size and labels.min() < 0:
            raise InvariantViolation("labels must be non-negative")

        if num_clusters is None:
            num_clusters = int(labels.max()) + 1 if labels.size else 0
        elif labels.size and labels.max() >= num_clusters:
            raise InvariantViolation(
                f"label {int(labels.max())} out of range [0, {num_clusters})"
            )

        clusters = [Cluster(dataset.num_attributes) for _ in range(num_clusters)]
        for instance_num, label in enumerate(labels):
            cluster = clusters[label]
            cluster.add_instance(instance_num)
            for attribute_num in dataset.attributes_set(instance_num):
                cluster.increment_attribute_count(attribute_num)

        clustering = cls(clusters)
        clustering.drop_empty()
        return clustering

    def __len__(self) -> int:
        return len(self.clusters)

    def __iter__(self) -> Iterator[Cluster]:
        return iter(self.clusters)

    def drop_empty(self) -> int:
        """Remove empty clusters, returning how many were dropped."""
        before = len(self.clusters)
        self.clusters = [c for c in self.clusters if not c.is_empty()]
        return before - len(self.clusters)

    def labels(self, num_instances: int) -> np.ndarray:
        """Label each record by the position of its cluster in live order."""
        labels = np.full(num_instances, -1, dtype=np.intp)
        for cluster_index, cluster in enumerate(self.clusters):
            for instance_num in cluster:
                if not 0 <= instance_num < num_instances:
                    raise InvariantViolation(
                        f"instance {instance_num} out of range [0, {num_instances})"
                    )
                labels[instance_num] = cluster_index
        missing = np.flatnonzero(labels < 0)
        if missing.size:
            raise InvariantViolation(f"instances without a cluster: {missing[:10].tolist()}")
        return labels

    def check_invariants(self, dataset: Dataset, allow_empty: bool = False) -> None:
        """
        Verify the partition and count invariants.

        Args:
            dataset: Dataset the clusters refer to
            allow_empty: Accept empty clusters (mid-pass, before removal)

        Raises:
            InvariantViolation: If a record is missing or duplicated, a live
                cluster is empty, or a cluster's counts disagree with its members
        """
        seen = np.zeros(dataset.num_instances, dtype=np.bool_)
        for cluster_index, cluster in enumerate(self.clusters):
            if cluster.is_empty() and not allow_empty:
                raise InvariantViolation(f"live cluster {cluster_index} is empty")

            members = cluster.members
            if len(members) != cluster.size():
                raise InvariantViolation(
                    f"cluster {cluster_index} size {cluster.size()} != {len(members)} members"
                )
            for instance_num in members:
                if not 0 <= instance_num < dataset.num_instances:
                    raise InvariantViolation(f"instance {instance_num} out of range")
                if seen[instance_num]:
                    raise InvariantViolation(f"instance {instance_num} is in more than one cluster")
                seen[instance_num] = True

            expected = dataset.matrix[members].sum(axis=0, dtype=np.int64)
            if not np.array_equal(expected, cluster.attribute_counts):
                bad = np.flatnonzero(expected != cluster.attribute_counts)
                raise InvariantViolation(
                    f"cluster {cluster_index} attribute counts out of sync at {bad[:10].tolist()}"
                )

        if not seen.all():
            raise InvariantViolation(
                f"instances without a cluster: {np.flatnonzero(~seen)[:10].tolist()}"
            )
