"""
Structured run log for POPC.

Single JSONL file with typed events for streaming and analysis.

Event types:
- run_start: Config, dataset shape, initial cluster count
- pass_start: Pass number, live clusters
- move: Record moved and its gain (only when log_moves is set)
- cluster_removed: Live clusters left after a cluster emptied
- pass_end: Moves in the pass
- run_end: Summary of the result
- error: Failures that aborted a run
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .cluster import Cluster
from .engine import RefinementObserver, RefinementResult


class Logger(RefinementObserver):
    def __init__(self, output_dir: Path, log_moves: bool = False):
        """
        Initialize logger for a run.

        Args:
            output_dir: Directory for log files
            log_moves: Also write one event per accepted move
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.output_dir / "popc.jsonl"
        self.log_moves = log_moves

        self._pass_num = 0

        # Open file in append mode
        self.file_handle = open(self.log_file, 'a')

    def _write_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Write typed event to JSONL log."""
        event = {
            "type": event_type,
            "timestamp": datetime.now().isoformat(),
            **data
        }
        self.file_handle.write(json.dumps(event) + '\n')
        self.file_handle.flush()

    def log_run_start(
        self,
        config: dict[str, Any],
        num_instances: int,
        num_attributes: int,
        num_clusters: int,
    ) -> None:
        """
        Log run initialization.

        Args:
            config: Run configuration
            num_instances: Records in the dataset
            num_attributes: Attributes in the dataset
            num_clusters: Live clusters in the initial partition
        """
        self._write_event("run_start", {
            "config": config,
            "num_instances": num_instances,
            "num_attributes": num_attributes,
            "num_clusters": num_clusters,
        })

    def on_pass_start(self, pass_num: int, num_clusters: int) -> None:
        self._pass_num = pass_num
        self._write_event("pass_start", {
            "pass": pass_num,
            "num_clusters": num_clusters,
        })

    def on_move(self, instance_num: int, source: Cluster, target: Cluster, gain: float) -> None:
        if not self.log_moves:
            return
        self._write_event("move", {
            "pass": self._pass_num,
            "instance": int(instance_num),
            "source_size": source.size(),
            "target_size": target.size(),
            "gain": float(gain),
        })

    def on_cluster_removed(self, cluster: Cluster, num_clusters: int) -> None:
        self._write_event("cluster_removed", {
            "pass": self._pass_num,
            "num_clusters": num_clusters,
        })

    def on_pass_end(self, pass_num: int, moves: int, num_clusters: int) -> None:
        self._write_event("pass_end", {
            "pass": pass_num,
            "moves": moves,
            "num_clusters": num_clusters,
        })

    def log_run_end(self, result: RefinementResult, elapsed_s: Optional[float] = None) -> None:
        """Log run completion."""
        data = {
            "passes": result.passes,
            "moves": result.moves,
            "num_clusters": result.num_clusters,
            "stop_reason": result.stop_reason,
            "converged": result.converged,
        }
        if elapsed_s is not None:
            data["elapsed_s"] = elapsed_s
        self._write_event("run_end", data)

    def log_error(self, message: str, error_type: str = "error") -> None:
        """
        Log error event.

        Args:
            message: Error description
            error_type: Error category (error, warning, abort)
        """
        self._write_event("error", {
            "message": message,
            "error_type": error_type,
        })

    def close(self) -> None:
        """Close log file."""
        if hasattr(self, 'file_handle') and self.file_handle:
            self.file_handle.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
