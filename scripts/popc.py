#!/usr/bin/env python3
"""
POPC CLI - refine a clustering of binary data.

Input is tabular 0/1 data separated by TAB (or --delimiter), preceded by a
single header line naming the columns, read from FILE or standard input.
Output is one integer cluster assignment per line, in input row order.

Usage:
    python scripts/popc.py data.tsv
    python scripts/popc.py -c kmeans.txt -m 500 -p 8 data.tsv
    cat data.csv | python scripts/popc.py -t , -v info
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.popc import __version__
from src.popc.config import PopcConfig, parse_verbosity
from src.popc.errors import PopcError
from src.popc.logger import Logger
from src.popc.runner import PopcRunner


def delimiter_arg(value: str) -> str:
    """Single character, or the two-character escape \\t."""
    if value == "\\t":
        return "\t"
    if len(value) != 1:
        raise argparse.ArgumentTypeError("must be a single character")
    return value


def verbosity_arg(value: str) -> str:
    try:
        return parse_verbosity(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="popc",
        description="Generate POPC cluster assignments from 0/1 tabular input.",
    )
    parser.add_argument("file", nargs="?", type=Path,
                        help="Input data (default: standard input)")
    parser.add_argument("-t", "--delimiter", type=delimiter_arg,
                        help="Field separator (default: TAB)")
    parser.add_argument("-c", "--clusters", type=Path,
                        help="Pre-generated cluster assignments, one per line in instance order")
    parser.add_argument("-m", "--multiplier", type=float,
                        help="Multiplying constant (default: 1000.0)")
    parser.add_argument("-p", "--power", type=float,
                        help="Power constant (default: 10.0)")
    parser.add_argument("-v", "--verbosity", type=verbosity_arg,
                        help="One of {0,1,2,3,quiet,warning,info,debug} (default: warning)")
    parser.add_argument("-k", "--num-clusters", type=int,
                        help="Initial clusters (default: half the instances)")
    parser.add_argument("--seed", type=int, dest="random_state",
                        help="Random seed for k-means")
    parser.add_argument("--max-passes", type=int,
                        help="Stop after this many refinement passes")
    parser.add_argument("--time-limit", type=float,
                        help="Stop starting new passes after this many seconds")
    parser.add_argument("--check-invariants", action="store_true", default=None,
                        help="Verify cluster bookkeeping after every pass")
    parser.add_argument("--config", type=Path,
                        help="YAML config file; command-line options override it")
    parser.add_argument("--log-dir", type=Path,
                        help="Write a JSONL run log (popc.jsonl) to this directory")
    parser.add_argument("--log-moves", action="store_true", default=None,
                        help="Include one event per move in the run log")
    parser.add_argument("-V", "--version", action="version",
                        version=f"POPC v{__version__}")
    return parser


OVERRIDES = (
    "delimiter",
    "multiplier",
    "power",
    "verbosity",
    "num_clusters",
    "random_state",
    "max_passes",
    "time_limit",
    "check_invariants",
    "log_moves",
)


def load_config(args) -> PopcConfig:
    """Config file (if any) with command-line overrides applied."""
    data = PopcConfig.load(args.config).to_dict() if args.config else {}
    for key in OVERRIDES:
        value = getattr(args, key)
        if value is not None:
            data[key] = value
    return PopcConfig.from_dict(data)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except (ValueError, OSError, TypeError) as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    logger = Logger(args.log_dir, log_moves=config.log_moves) if args.log_dir else None
    runner = PopcRunner(config, logger=logger)

    try:
        result = runner.run(args.file, args.clusters)
    except (PopcError, ValueError, OSError) as e:
        if logger:
            logger.log_error(str(e), error_type="abort")
        print(f"error: {e}", file=sys.stderr)
        return 2
    finally:
        if logger:
            logger.close()

    with runner.timed("Outputting results..."):
        sys.stdout.write("".join(f"{label}\n" for label in result.labels))
        sys.stdout.flush()

    return 0


if __name__ == "__main__":
    sys.exit(main())
