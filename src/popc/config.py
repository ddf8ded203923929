"""
Configuration for POPC runs.
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

import yaml

from .scoring import DEFAULT_MULTIPLIER, DEFAULT_POWER

__all__ = [
    "PopcConfig",
    "VERBOSITY_LEVELS",
    "parse_verbosity",
]

# Name -> level; messages at or below the configured level are shown
VERBOSITY_LEVELS = {
    "quiet": 0,
    "warning": 1,
    "info": 2,
    "debug": 3,
}


def parse_verbosity(value) -> str:
    """Accept a level name or its number (0-3) and return the name."""
    text = str(value).strip().lower()
    if text in VERBOSITY_LEVELS:
        return text
    for name, level in VERBOSITY_LEVELS.items():
        if text == str(level):
            return name
    raise ValueError(
        f"verbosity must be one of {{0,1,2,3,quiet,warning,info,debug}}, got {value!r}"
    )


@dataclass
class PopcConfig:
    """Configuration for a POPC run."""

    # Score
    multiplier: float = DEFAULT_MULTIPLIER
    power: float = DEFAULT_POWER

    # Input
    delimiter: str = "\t"

    # Initial partition - None = half the records
    num_clusters: Optional[int] = None
    random_state: Optional[int] = None

    # Termination safeguards - None = disabled
    max_passes: Optional[int] = None
    time_limit: Optional[float] = None  # Seconds

    # Diagnostics
    check_invariants: bool = False
    log_moves: bool = False  # Write one event per move to the run log
    verbosity: str = "warning"

    def validate(self) -> None:
        """Raise ValueError on out-of-range settings."""
        if not self.multiplier > 0:
            raise ValueError(f"multiplier must be positive, got {self.multiplier}")
        if not self.power > 0:
            raise ValueError(f"power must be positive, got {self.power}")
        if len(self.delimiter) != 1:
            raise ValueError(f"delimiter must be a single character, got {self.delimiter!r}")
        if self.num_clusters is not None and self.num_clusters < 1:
            raise ValueError(f"num_clusters must be at least 1, got {self.num_clusters}")
        if self.max_passes is not None and self.max_passes < 1:
            raise ValueError(f"max_passes must be at least 1, got {self.max_passes}")
        if self.time_limit is not None and not self.time_limit > 0:
            raise ValueError(f"time_limit must be positive, got {self.time_limit}")
        self.verbosity = parse_verbosity(self.verbosity)

    @property
    def verbosity_level(self) -> int:
        return VERBOSITY_LEVELS[parse_verbosity(self.verbosity)]

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PopcConfig":
        """Create from dict, filtering out unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        config = cls(**filtered)
        config.validate()
        return config

    @classmethod
    def load(cls, path: Path) -> "PopcConfig":
        """Load from a YAML file; missing keys keep their defaults."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")
        return cls.from_dict(data)
