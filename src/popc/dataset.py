"""
Binary dataset for POPC.

Dense 0/1 matrix plus per-attribute positive counts over the whole dataset.
Immutable once constructed.
"""

from __future__ import annotations

from typing import Iterable, Optional, TextIO

import numpy as np

from .errors import FormatError, InvariantViolation


class Dataset:
    """
    Read-only binary attribute matrix.

    Rows are records (instances), columns are attributes. The set attributes
    of every row are precomputed so scoring never rescans zero columns.
    """

    def __init__(self, matrix: np.ndarray, names: Optional[list[str]] = None):
        """
        Initialize Dataset.

        Args:
            matrix: 2-D array of 0/1 (or bool) values, one row per record
            names: Optional attribute names (default: attr_0, attr_1, ...)

        Raises:
            FormatError: If the matrix is not a non-empty 2-D 0/1 array
        """
        try:
            array = np.asarray(matrix)
        except ValueError as exc:
            raise FormatError(f"matrix is malformed: {exc}") from exc

        if array.ndim != 2:
            raise FormatError(f"matrix must be 2-D, got {array.ndim} dimension(s)")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise FormatError(f"matrix must be non-empty, got shape {array.shape}")
        if array.dtype != np.bool_:
            if not np.isin(array, (0, 1)).all():
                raise FormatError("matrix values must be 0 or 1")
            array = array.astype(np.bool_)

        if names is None:
            names = [f"attr_{a}" for a in range(array.shape[1])]
        elif len(names) != array.shape[1]:
            raise FormatError(
                f"got {len(names)} attribute names for {array.shape[1]} columns"
            )

        self._data = array.copy()
        self._data.setflags(write=False)
        self._names = list(names)

        self._positive_counts = self._data.sum(axis=0, dtype=np.int64)
        self._positive_counts.setflags(write=False)

        self._rows: list[np.ndarray] = []
        for row in self._data:
            present = np.flatnonzero(row)
            present.setflags(write=False)
            self._rows.append(present)

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Iterable[int]],
        names: Optional[list[str]] = None,
    ) -> Dataset:
        """Create from nested sequences of 0/1 values."""
        rows = [list(row) for row in rows]
        widths = {len(row) for row in rows}
        if len(widths) > 1:
            raise FormatError(f"ragged matrix: row lengths {sorted(widths)}")
        return cls(np.array(rows), names)

    @property
    def num_instances(self) -> int:
        return self._data.shape[0]

    @property
    def num_attributes(self) -> int:
        return self._data.shape[1]

    @property
    def names(self) -> list[str]:
        return list(self._names)

    @property
    def matrix(self) -> np.ndarray:
        """Read-only view of the boolean matrix."""
        return self._data

    def _check_instance(self, instance_num: int) -> None:
        if not 0 <= instance_num < self.num_instances:
            raise InvariantViolation(
                f"instance {instance_num} out of range [0, {self.num_instances})"
            )

    def _check_attribute(self, attribute_num: int) -> None:
        if not 0 <= attribute_num < self.num_attributes:
            raise InvariantViolation(
                f"attribute {attribute_num} out of range [0, {self.num_attributes})"
            )

    def value(self, instance_num: int, attribute_num: int) -> bool:
        self._check_instance(instance_num)
        self._check_attribute(attribute_num)
        return bool(self._data[instance_num, attribute_num])

    def positive_count(self, attribute_num: int) -> int:
        """Number of records with the attribute set, over the whole dataset."""
        self._check_attribute(attribute_num)
        return int(self._positive_counts[attribute_num])

    @property
    def positive_counts(self) -> np.ndarray:
        """Read-only array of positive counts, one per attribute."""
        return self._positive_counts

    def attributes_set(self, instance_num: int) -> np.ndarray:
        """Ascending attribute indices where the record's value is 1."""
        self._check_instance(instance_num)
        return self._rows[instance_num]

    def attribute_name(self, attribute_num: int) -> str:
        self._check_attribute(attribute_num)
        return self._names[attribute_num]

    def __repr__(self) -> str:
        return f"Dataset(num_instances={self.num_instances}, num_attributes={self.num_attributes})"


def read_dataset(stream: TextIO, delimiter: str = "\t") -> Dataset:
    """
    Parse a delimited 0/1 table with a header line of attribute names.

    Line numbers in error messages are 1-based and count the header.

    Args:
        stream: Text stream to read from
        delimiter: Single-character field separator

    Returns:
        Parsed Dataset

    Raises:
        FormatError: On any structural or value error
    """
    if len(delimiter) != 1:
        raise ValueError(f"delimiter must be a single character, got {delimiter!r}")

    header = stream.readline()
    if not header.endswith("\n"):
        raise FormatError("missing required newline after header")

    names = [name for name in header.rstrip("\r\n").split(delimiter) if name]
    if not names:
        raise FormatError("header names no attributes")

    rows: list[list[bool]] = []
    blank_line: Optional[int] = None

    for line_num, line in enumerate(stream, start=2):
        line = line.rstrip("\r\n")
        if not line:
            if blank_line is None:
                blank_line = line_num
            continue
        if blank_line is not None:
            raise FormatError(f"unexpected empty line at line {blank_line}")

        fields = line.split(delimiter)
        row = []
        for column, field in enumerate(fields, start=1):
            if field == "":
                raise FormatError(
                    f"unexpected delimiter detected at line {line_num} column {column}"
                )
            if field == "1":
                row.append(True)
            elif field == "0":
                row.append(False)
            else:
                raise FormatError(
                    f"invalid character for attribute value at line {line_num} "
                    f"for column {column} - must be 0 or 1"
                )
        if len(row) != len(names):
            raise FormatError(
                f"inconsistent number of columns on line {line_num}: "
                f"expected {len(names)}, got {len(row)}"
            )
        rows.append(row)

    if not rows:
        raise FormatError("no data rows after header")

    return Dataset(np.array(rows, dtype=np.bool_), names)
