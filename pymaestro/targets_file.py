"""Flat-file source of target values for the set multiple targets command.

Targets are integers in quarter-microseconds separated by whitespace or
newlines. Lines starting with ``#`` are comments.
"""

from typing import List, Sequence
import logging
from pathlib import Path

import numpy as np

from .maestro_exceptions import InvalidArgumentError
from .maestro_protocol import MAX_14BIT

logger = logging.getLogger(__name__)


def load_targets(path) -> List[int]:
    """Read an ordered list of targets from a text file

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidArgumentError: If a value is not an integer or is out of range
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Targets file not found: {path}")

    # Lines may hold any number of values; the file is one flat sequence
    tokens = []
    with open(path) as f:
        for line in f:
            tokens.extend(line.split("#", 1)[0].split())

    try:
        values = np.array(tokens, dtype=np.float64)
    except ValueError as e:
        raise InvalidArgumentError(f"Malformed targets file {path}: {e}") from e

    if not np.all(np.equal(np.mod(values, 1), 0)):
        raise InvalidArgumentError(f"Targets in {path} must be integers")

    targets = values.astype(np.int64)
    out_of_range = targets[(targets < 0) | (targets > MAX_14BIT)]
    if out_of_range.size:
        raise InvalidArgumentError(
            f"Targets must be 0-{MAX_14BIT}, got {out_of_range.tolist()}"
        )

    logger.info(f"Loaded {targets.size} targets from {path}")
    return targets.tolist()


def require_targets(targets: Sequence[int], count: int) -> Sequence[int]:
    """Check that at least count targets are available

    Raises:
        InvalidArgumentError: If fewer than count targets are given
    """
    if len(targets) < count:
        raise InvalidArgumentError(
            f"Expected at least {count} targets, got {len(targets)}"
        )
    return targets
