"""
POPC runner.

Pipeline: read dataset → initial partition → refine → labels.
Progress goes to stderr (stdout is reserved for labels), gated by verbosity.
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

import numpy as np

from .cluster import Cluster, Clustering
from .config import PopcConfig, VERBOSITY_LEVELS
from .dataset import Dataset, read_dataset
from .engine import RefinementObserver, RefinementResult, refine
from .initial import default_num_clusters, kmeans_partition, read_partition
from .logger import Logger


class _RunObserver(RefinementObserver):
    """Prints pass summaries and forwards events to the run log."""

    def __init__(self, runner: PopcRunner):
        self.runner = runner

    def on_pass_start(self, pass_num: int, num_clusters: int) -> None:
        if self.runner.logger:
            self.runner.logger.on_pass_start(pass_num, num_clusters)

    def on_move(self, instance_num: int, source: Cluster, target: Cluster, gain: float) -> None:
        if self.runner.logger:
            self.runner.logger.on_move(instance_num, source, target, gain)

    def on_cluster_removed(self, cluster: Cluster, num_clusters: int) -> None:
        if self.runner.logger:
            self.runner.logger.on_cluster_removed(cluster, num_clusters)

    def on_pass_end(self, pass_num: int, moves: int, num_clusters: int) -> None:
        self.runner.message(
            f"Pass {pass_num}: {moves} moves, {num_clusters} clusters", "debug"
        )
        if self.runner.logger:
            self.runner.logger.on_pass_end(pass_num, moves, num_clusters)


class PopcRunner:
    """Runs POPC end to end for one dataset."""

    def __init__(
        self,
        config: Optional[PopcConfig] = None,
        logger: Optional[Logger] = None,
        stream: Optional[TextIO] = None,
    ):
        self.config = config or PopcConfig()
        self.config.validate()
        self.logger = logger
        self.stream = stream if stream is not None else sys.stderr
        self._timers: list[float] = []

    def message(self, text: str, level: str = "info") -> None:
        """Print a timestamped progress line if verbosity allows."""
        if self.config.verbosity_level < VERBOSITY_LEVELS[level]:
            return
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        indent = "\t" * len(self._timers)
        print(f"{indent}{stamp} - {text}", file=self.stream)

    @contextmanager
    def timed(self, text: str, level: str = "info"):
        """Print text, run the block, then print DONE with elapsed seconds."""
        self.message(text, level)
        self._timers.append(time.perf_counter())
        try:
            yield
        finally:
            elapsed = time.perf_counter() - self._timers.pop()
        if self.config.verbosity_level >= VERBOSITY_LEVELS[level]:
            indent = "\t" * len(self._timers)
            print(f"{indent}DONE ({elapsed:.6f} seconds)", file=self.stream)

    def load_dataset(self, data_path: Optional[Path] = None) -> Dataset:
        """Read the dataset from a file, or stdin when no path is given."""
        with self.timed("Reading data..."):
            if data_path is None:
                self.message("Reading from standard input...", "debug")
                dataset = read_dataset(sys.stdin, self.config.delimiter)
            else:
                self.message(f"FILE = {data_path}", "debug")
                with open(data_path, newline="") as f:
                    dataset = read_dataset(f, self.config.delimiter)
        self.message(
            f"{dataset.num_instances} instances, {dataset.num_attributes} attributes", "debug"
        )
        return dataset

    def initial_labels(
        self,
        dataset: Dataset,
        partition_path: Optional[Path] = None,
    ) -> tuple[np.ndarray, int]:
        """
        Initial partition from a cluster file, or k-means when none is given.

        Returns:
            (labels, num_clusters)
        """
        num_clusters = self.config.num_clusters or default_num_clusters(dataset.num_instances)

        if partition_path is not None:
            with self.timed("Reading clustering assignments..."):
                with open(partition_path) as f:
                    labels = read_partition(f, dataset.num_instances, num_clusters)
        else:
            with self.timed("Performing k-means..."):
                labels = kmeans_partition(
                    dataset,
                    num_clusters=num_clusters,
                    random_state=self.config.random_state,
                )
        return labels, num_clusters

    def refine(
        self,
        dataset: Dataset,
        labels: np.ndarray,
        num_clusters: Optional[int] = None,
    ) -> RefinementResult:
        """Build clusters from labels and run the refinement engine."""
        with self.timed("Processing cluster assignments..."):
            clustering = Clustering.from_labels(dataset, labels, num_clusters)
        self.message(f"{len(clustering)} non-empty initial clusters", "debug")

        if self.logger:
            self.logger.log_run_start(
                self.config.to_dict(),
                dataset.num_instances,
                dataset.num_attributes,
                len(clustering),
            )

        deadline = None
        if self.config.time_limit is not None:
            deadline = time.monotonic() + self.config.time_limit

        start = time.perf_counter()
        with self.timed("Executing POPC algorithm..."):
            result = refine(
                dataset,
                clustering,
                multiplier=self.config.multiplier,
                power=self.config.power,
                max_passes=self.config.max_passes,
                deadline=deadline,
                observer=_RunObserver(self),
                check_invariants=self.config.check_invariants,
            )
        elapsed = time.perf_counter() - start

        if not result.converged:
            self.message(
                f"warning: stopped before convergence ({result.stop_reason}) "
                f"after {result.passes} passes",
                "warning",
            )
        if self.logger:
            self.logger.log_run_end(result, elapsed)
        return result

    def run(
        self,
        data_path: Optional[Path] = None,
        partition_path: Optional[Path] = None,
    ) -> RefinementResult:
        """Full pipeline from input files to a refinement result."""
        dataset = self.load_dataset(data_path)
        labels, num_clusters = self.initial_labels(dataset, partition_path)
        return self.refine(dataset, labels, num_clusters)
