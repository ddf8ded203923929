"""
Test the POPC refinement engine.

Covers the reference scenarios, bookkeeping invariants after every move,
monotonic improvement, termination, idempotence and the stop safeguards.
"""

import time
from unittest.mock import Mock, call

import numpy as np
import pytest

from src.popc.cluster import Cluster, Clustering
from src.popc.dataset import Dataset
from src.popc.engine import (
    RefinementObserver,
    find_best_move,
    refine,
    run_pass,
)
from src.popc.errors import EmptyClusteringError
from src.popc.scoring import total_score


class CheckingObserver(RefinementObserver):
    """Verifies invariants and score bookkeeping at every engine event."""

    def __init__(self, dataset, clustering, multiplier=1000.0, power=10.0):
        self.dataset = dataset
        self.clustering = clustering
        self.multiplier = multiplier
        self.power = power
        self.score = None
        self.moves = []
        self.removals = 0

    def _score(self):
        return total_score(self.dataset, self.clustering, self.multiplier, self.power)

    def on_pass_start(self, pass_num, num_clusters):
        assert num_clusters == len(self.clustering)
        self.clustering.check_invariants(self.dataset)
        self.score = self._score()

    def on_move(self, instance_num, source, target, gain):
        assert gain > 0
        assert source is not target
        assert instance_num in list(target)
        assert instance_num not in list(source)
        self.clustering.check_invariants(self.dataset, allow_empty=True)

        new_score = self._score()
        assert new_score - self.score == pytest.approx(gain, rel=1e-6, abs=1e-9)
        assert new_score >= self.score - 1e-9
        self.score = new_score
        self.moves.append(instance_num)

    def on_cluster_removed(self, cluster, num_clusters):
        assert cluster.is_empty()
        assert all(c is not cluster for c in self.clustering)
        assert num_clusters == len(self.clustering)
        # K changed, so later moves are measured against the new baseline
        self.score = self._score()
        self.removals += 1

    def on_pass_end(self, pass_num, moves, num_clusters):
        self.clustering.check_invariants(self.dataset)


def _random_case(seed, num_instances=30, num_attributes=8, num_clusters=10, density=0.3):
    rng = np.random.default_rng(seed)
    matrix = rng.random((num_instances, num_attributes)) < density
    ds = Dataset(matrix)
    labels = rng.integers(0, num_clusters, size=num_instances)
    return ds, labels


def test_scenario_split_pairs():
    """Records with identical rows end up together."""
    print("Testing scenario: [1,0],[1,0],[0,1],[0,1] from a crossed partition...")

    ds = Dataset.from_rows([[1, 0], [1, 0], [0, 1], [0, 1]])
    clustering = Clustering.from_labels(ds, [0, 1, 0, 1])
    observer = CheckingObserver(ds, clustering)

    result = refine(ds, clustering, 1000.0, 10.0, observer=observer)
    labels = result.labels.tolist()

    assert result.converged
    assert labels[0] == labels[1]
    assert labels[2] == labels[3]
    print(f"  ✓ Labels: {labels}")

    # Both records of the first cluster leave for the second one, which then
    # holds everything: one pass with moves, one confirming pass
    assert labels == [0, 0, 0, 0]
    assert observer.moves == [0, 2]
    assert result.moves == 2
    assert result.passes == 2
    assert result.num_clusters == 1
    print(f"  ✓ Converged in {result.passes} passes, {result.moves} moves")


@pytest.mark.parametrize("initial", [
    [0, 1, 2],
    [2, 1, 0],
    [0, 0, 1],
    [1, 0, 1],
    [0, 0, 0],
])
def test_scenario_identical_rows_merge(initial):
    """Identical rows always collapse into a single cluster."""
    ds = Dataset.from_rows([[1, 1], [1, 1], [1, 1]])
    clustering = Clustering.from_labels(ds, initial)

    result = refine(ds, clustering, observer=CheckingObserver(ds, clustering))

    assert result.converged
    assert result.num_clusters == 1
    assert result.labels.tolist() == [0, 0, 0]


def test_scenario_empty_record_never_moves():
    """A record with no attributes set has zero gain everywhere."""
    ds = Dataset.from_rows([[0, 0], [1, 0], [1, 0]])
    clustering = Clustering.from_labels(ds, [0, 0, 1])
    observer = CheckingObserver(ds, clustering)

    result = refine(ds, clustering, observer=observer)

    assert result.converged
    assert 0 not in observer.moves
    assert observer.moves == [1]
    assert result.labels.tolist() == [0, 1, 1]


def test_tie_break_first_in_live_order():
    """Equal gains go to the earliest candidate cluster."""
    ds = Dataset.from_rows([[1], [1], [1]])

    clustering = Clustering.from_labels(ds, [0, 1, 2])
    clusters = clustering.clusters
    target, gain = find_best_move(ds, clusters, clusters[0], 0)
    assert target is clusters[1]
    assert gain > 0

    # Record 0 now sits in the last cluster; both candidates tie again
    clustering = Clustering.from_labels(ds, [2, 1, 0])
    clusters = clustering.clusters
    target, _ = find_best_move(ds, clusters, clusters[2], 0)
    assert target is clusters[0]


def test_single_cluster_has_no_move():
    ds = Dataset.from_rows([[1, 0], [0, 1]])
    clustering = Clustering.from_labels(ds, [0, 0])

    target, gain = find_best_move(ds, clustering.clusters, clustering.clusters[0], 0)
    assert target is None
    assert gain == -np.inf
    assert run_pass(ds, clustering) == 0


def test_random_datasets_converge_with_invariants():
    """Partition, counts and monotonic score hold on random inputs; all runs terminate."""
    print("Testing termination on random datasets...")

    for seed in range(12):
        ds, labels = _random_case(seed)
        clustering = Clustering.from_labels(ds, labels)
        observer = CheckingObserver(ds, clustering)

        result = refine(ds, clustering, observer=observer, max_passes=100)

        assert result.converged, f"seed {seed}: no convergence in 100 passes (cycling?)"
        assert result.moves == len(observer.moves)
        assert sorted(np.unique(result.labels).tolist()) == list(range(result.num_clusters))
        clustering.check_invariants(ds)
    print("  ✓ 12 random datasets converged")


def test_other_parameters_converge():
    """Non-default multiplier and power keep the same guarantees."""
    for multiplier, power in [(1.0, 1.0), (10.0, 3.0), (250.0, 0.5)]:
        ds, labels = _random_case(42, num_instances=20, num_attributes=6, num_clusters=6)
        clustering = Clustering.from_labels(ds, labels)
        observer = CheckingObserver(ds, clustering, multiplier, power)

        result = refine(ds, clustering, multiplier, power, observer=observer, max_passes=100)
        assert result.converged


def test_idempotent_at_convergence():
    """Another run on a converged clustering changes nothing."""
    ds, labels = _random_case(7)
    clustering = Clustering.from_labels(ds, labels)
    first = refine(ds, clustering, max_passes=100)
    assert first.converged

    assert run_pass(ds, clustering) == 0

    second = refine(ds, clustering)
    assert second.passes == 1
    assert second.moves == 0
    assert np.array_equal(first.labels, second.labels)


def test_observer_events():
    """Observer sees pass boundaries, moves and removals in order."""
    ds = Dataset.from_rows([[1, 0], [1, 0], [0, 1], [0, 1]])
    clustering = Clustering.from_labels(ds, [0, 1, 0, 1])
    observer = Mock(spec=RefinementObserver)

    refine(ds, clustering, observer=observer)

    assert observer.on_pass_start.call_args_list == [call(1, 2), call(2, 1)]
    assert observer.on_pass_end.call_args_list == [call(1, 2, 1), call(2, 0, 1)]
    assert observer.on_move.call_count == 2
    assert [c.args[0] for c in observer.on_move.call_args_list] == [0, 2]
    assert observer.on_cluster_removed.call_count == 1


def test_max_passes_stops_early():
    ds = Dataset.from_rows([[1, 0], [1, 0], [0, 1], [0, 1]])
    clustering = Clustering.from_labels(ds, [0, 1, 0, 1])

    result = refine(ds, clustering, max_passes=1)

    assert result.passes == 1
    assert result.stop_reason == "max_passes"
    assert not result.converged
    clustering.check_invariants(ds)


def test_deadline_and_cancellation():
    """Deadline and should_stop are polled before each pass."""
    ds = Dataset.from_rows([[1, 0], [1, 0], [0, 1], [0, 1]])

    clustering = Clustering.from_labels(ds, [0, 1, 0, 1])
    result = refine(ds, clustering, deadline=time.monotonic() - 1.0)
    assert result.passes == 0
    assert result.stop_reason == "deadline"
    assert result.labels.tolist() == [0, 1, 0, 1]

    clustering = Clustering.from_labels(ds, [0, 1, 0, 1])
    should_stop = Mock(side_effect=[False, True])
    result = refine(ds, clustering, should_stop=should_stop)
    assert result.passes == 1
    assert result.stop_reason == "cancelled"
    assert should_stop.call_count == 2


def test_check_invariants_option():
    ds, labels = _random_case(3)
    clustering = Clustering.from_labels(ds, labels)
    result = refine(ds, clustering, check_invariants=True)
    assert result.converged


def test_empty_clustering_rejected():
    ds = Dataset.from_rows([[1, 0]])

    with pytest.raises(EmptyClusteringError):
        refine(ds, Clustering())
    with pytest.raises(EmptyClusteringError):
        refine(ds, Clustering([Cluster(2), Cluster(2)]))


def test_empty_clusters_filtered_before_first_pass():
    ds = Dataset.from_rows([[1, 0], [0, 1]])
    clustering = Clustering([Cluster(2)])
    clustering.clusters.extend(Clustering.from_labels(ds, [0, 1]).clusters)
    assert len(clustering) == 3

    observer = Mock(spec=RefinementObserver)
    refine(ds, clustering, observer=observer)
    assert observer.on_pass_start.call_args_list[0] == call(1, 2)


def test_invalid_parameters():
    ds = Dataset.from_rows([[1, 0]])
    for kwargs in ({"multiplier": 0.0}, {"power": -1.0}, {"max_passes": 0}):
        with pytest.raises(ValueError):
            refine(ds, Clustering.from_labels(ds, [0]), **kwargs)


def run_all_tests():
    """Run all engine tests."""
    print("=" * 60)
    print("ENGINE VALIDATION")
    print("=" * 60)
    print()

    test_scenario_split_pairs()
    for initial in ([0, 1, 2], [2, 1, 0], [0, 0, 1], [1, 0, 1], [0, 0, 0]):
        test_scenario_identical_rows_merge(initial)
    test_scenario_empty_record_never_moves()
    test_tie_break_first_in_live_order()
    test_single_cluster_has_no_move()
    test_random_datasets_converge_with_invariants()
    test_other_parameters_converge()
    test_idempotent_at_convergence()
    test_observer_events()
    test_max_passes_stops_early()
    test_deadline_and_cancellation()
    test_check_invariants_option()
    test_empty_clustering_rejected()
    test_empty_clusters_filtered_before_first_pass()
    test_invalid_parameters()

    print()
    print("=" * 60)
    print("✅ ALL ENGINE TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    run_all_tests()
