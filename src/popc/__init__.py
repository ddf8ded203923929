"""
POPC - pattern-concentration refinement of binary data clusterings.

Refines an initial partition of 0/1 records by greedy single-record moves
until no move increases the concentration score.
"""

from .errors import PopcError, FormatError, InvariantViolation, EmptyClusteringError
from .dataset import Dataset, read_dataset
from .cluster import Cluster, Clustering, MemberCursor
from .scoring import (
    DEFAULT_MULTIPLIER,
    DEFAULT_POWER,
    attribute_score,
    compute_delta,
    total_score,
)
from .engine import (
    RefinementObserver,
    RefinementResult,
    find_best_move,
    move_instance,
    run_pass,
    refine,
)
from .initial import default_num_clusters, kmeans_partition, read_partition
from .config import PopcConfig
from .logger import Logger
from .runner import PopcRunner

__version__ = "0.2.0"

__all__ = [
    # Errors
    "PopcError",
    "FormatError",
    "InvariantViolation",
    "EmptyClusteringError",
    # Data
    "Dataset",
    "read_dataset",
    "Cluster",
    "Clustering",
    "MemberCursor",
    # Scoring
    "DEFAULT_MULTIPLIER",
    "DEFAULT_POWER",
    "attribute_score",
    "compute_delta",
    "total_score",
    # Engine
    "RefinementObserver",
    "RefinementResult",
    "find_best_move",
    "move_instance",
    "run_pass",
    "refine",
    # Initial partition
    "default_num_clusters",
    "kmeans_partition",
    "read_partition",
    # Running
    "PopcConfig",
    "Logger",
    "PopcRunner",
]
