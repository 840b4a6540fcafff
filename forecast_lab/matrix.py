"""
matrix.py - Immutable Dense Vectors and Matrices

This module provides the linear-algebra substrate used by the decomposition,
optimization and model layers:
- Vector: Fixed-length immutable sequence of floats
- Matrix: Immutable ``nrow x ncol`` matrix stored row-major
- IdentityBuilder / MatrixBuilder: Single-use staging objects for
  cell-by-cell construction

Storage:
-------
Every container keeps its values in a read-only numpy array, so instances
can be shared between threads freely. Arithmetic always returns a new
object. Data supplied column-major is normalized to row-major on ingestion.

Example Usage:
-------------
    >>> from forecast_lab.matrix import Matrix, IdentityBuilder, Vector
    >>> from forecast_lab.types import Order
    >>>
    >>> A = Matrix.create(2, 2, [1.0, 2.0, 3.0, 4.0])
    >>> B = Matrix.from_2d([[1.0, 3.0], [2.0, 4.0]], Order.BY_COLUMN)
    >>> A == B
    True
    >>> A.times(IdentityBuilder(2).build()) == A
    True
    >>> A.times(Vector([1.0, 1.0])).elements()
    array([3., 7.])
"""

from __future__ import annotations

import operator
from typing import Iterator, Sequence, Union

import numpy as np

from .exceptions import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidDimensionError,
)
from .types import Order


def _read_only(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


def _check_index(index, size: int, axis: str) -> int:
    try:
        i = operator.index(index)
    except TypeError:
        raise IndexOutOfRangeError(
            f"{axis} index must be an integer, got {type(index).__name__}"
        ) from None
    if not 0 <= i < size:
        raise IndexOutOfRangeError(
            f"{axis} index {i} out of range for size {size}"
        )
    return i


# =============================================================================
# VECTOR
# =============================================================================

class Vector:
    """
    An immutable, fixed-length sequence of real numbers.

    Parameters
    ----------
    elements : sequence of float, optional
        Values of the vector. Empty input produces a zero-length vector,
        which can be constructed and inspected but not used in arithmetic.

    Raises
    ------
    InvalidDimensionError
        If ``elements`` is not one-dimensional.
    """

    __slots__ = ("_data",)

    def __init__(self, elements: Union[Sequence[float], np.ndarray] = ()):
        data = np.array(elements, dtype=float)
        if data.ndim != 1:
            raise InvalidDimensionError(
                f"Vector data must be 1D, got shape {data.shape}"
            )
        self._data = _read_only(data)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def elements(self) -> np.ndarray:
        """Return a writable copy of the vector's values."""
        return self._data.copy()

    def to_numpy(self) -> np.ndarray:
        """Return a read-only view of the vector's values (no copy)."""
        return self._data

    def at(self, i: int) -> float:
        """Element ``i``; raises IndexOutOfRangeError if out of range."""
        return float(self._data[_check_index(i, len(self._data), "element")])

    def __getitem__(self, i: int) -> float:
        return self.at(i)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[float]:
        return iter(self._data.tolist())

    # -------------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------------

    def _require_non_empty(self, op: str) -> None:
        if len(self._data) == 0:
            raise InvalidDimensionError(f"cannot {op} a zero-length vector")

    def _check_same_length(self, other: "Vector", op: str) -> None:
        self._require_non_empty(op)
        if len(self) != len(other):
            raise DimensionMismatchError(
                f"cannot {op} vectors of length {len(self)} and {len(other)}"
            )

    def plus(self, other: "Vector") -> "Vector":
        self._check_same_length(other, "add")
        return type(self)(self._data + other._data)

    def minus(self, other: "Vector") -> "Vector":
        self._check_same_length(other, "subtract")
        return type(self)(self._data - other._data)

    def scaled_by(self, c: float) -> "Vector":
        self._require_non_empty("scale")
        return type(self)(self._data * c)

    def dot(self, other: "Vector") -> float:
        self._check_same_length(other, "take the dot product of")
        return float(self._data @ other._data)

    def norm(self) -> float:
        """Euclidean norm."""
        self._require_non_empty("take the norm of")
        return float(np.linalg.norm(self._data))

    def sum(self) -> float:
        self._require_non_empty("sum")
        return float(self._data.sum())

    def __add__(self, other: "Vector") -> "Vector":
        return self.plus(other)

    def __sub__(self, other: "Vector") -> "Vector":
        return self.minus(other)

    def __mul__(self, c: float) -> "Vector":
        return self.scaled_by(c)

    __rmul__ = __mul__

    # -------------------------------------------------------------------------
    # Value semantics
    # -------------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vector):
            return NotImplemented
        return np.array_equal(self._data, other._data)

    def __hash__(self) -> int:
        return hash((len(self._data), tuple(self._data.tolist())))

    def __repr__(self) -> str:
        return f"Vector({self._data.tolist()})"


# =============================================================================
# MATRIX
# =============================================================================

class Matrix:
    """
    An immutable ``nrow x ncol`` matrix of real numbers.

    Values are stored in a single row-major buffer regardless of how the
    matrix was constructed. All arithmetic returns a new Matrix.

    Parameters
    ----------
    nrow, ncol : int
        Dimensions of the matrix.
    data : sequence of float
        ``nrow * ncol`` values in row-major order.

    Raises
    ------
    InvalidDimensionError
        If ``nrow * ncol`` differs from the number of values supplied, or
        either dimension is negative.

    Examples
    --------
    >>> A = Matrix(2, 3, [1, 2, 3, 4, 5, 6])
    >>> A.transpose().nrow
    3
    >>> A.get(1, 2)
    6.0
    """

    __slots__ = ("_nrow", "_ncol", "_data")

    def __init__(
        self,
        nrow: int,
        ncol: int,
        data: Union[Sequence[float], np.ndarray],
    ):
        if nrow < 0 or ncol < 0:
            raise InvalidDimensionError(
                f"dimensions must be non-negative, got ({nrow}, {ncol})"
            )
        values = np.array(data, dtype=float).reshape(-1)
        if nrow * ncol != values.size:
            raise InvalidDimensionError(
                "The dimensions do not match the amount of data provided. "
                f"There were {values.size} data points provided but the number "
                f"of rows and columns were {nrow} and {ncol} respectively."
            )
        self._nrow = int(nrow)
        self._ncol = int(ncol)
        self._data = _read_only(values.reshape(self._nrow, self._ncol))

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        nrow: int,
        ncol: int,
        data: Union[Sequence[float], np.ndarray],
    ) -> "Matrix":
        """Create a matrix from ``nrow * ncol`` row-major values."""
        return cls(nrow, ncol, data)

    @classmethod
    def fill(cls, nrow: int, ncol: int, value: float) -> "Matrix":
        """Create a matrix with every entry equal to ``value``."""
        if nrow < 0 or ncol < 0:
            raise InvalidDimensionError(
                f"dimensions must be non-negative, got ({nrow}, {ncol})"
            )
        return cls(nrow, ncol, np.full(nrow * ncol, value, dtype=float))

    @classmethod
    def from_2d(
        cls,
        values: Union[Sequence[Sequence[float]], np.ndarray],
        order: Order = Order.BY_ROW,
    ) -> "Matrix":
        """
        Create a matrix from nested sequences.

        Parameters
        ----------
        values : sequence of sequences
            Rows (``Order.BY_ROW``) or columns (``Order.BY_COLUMN``).
        order : Order, default=Order.BY_ROW
            How to interpret the outer sequence.

        Returns
        -------
        Matrix
            Row-major matrix. Empty input gives a 0 x 0 matrix.

        Raises
        ------
        InvalidDimensionError
            If the inner sequences have different lengths.
        """
        if len(values) == 0:
            return cls(0, 0, [])

        lengths = {len(inner) for inner in values}
        if len(lengths) != 1:
            raise InvalidDimensionError(
                f"2D data must be rectangular, got inner lengths {sorted(lengths)}"
            )

        arr = np.array([list(inner) for inner in values], dtype=float)
        if order == Order.BY_COLUMN:
            arr = arr.T
        return cls(arr.shape[0], arr.shape[1], arr)

    @classmethod
    def identity(cls, n: int) -> "Matrix":
        """The ``n x n`` identity matrix."""
        return IdentityBuilder(n).build()

    @classmethod
    def _wrap(cls, arr: np.ndarray) -> "Matrix":
        return cls(arr.shape[0], arr.shape[1], arr)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def nrow(self) -> int:
        return self._nrow

    @property
    def ncol(self) -> int:
        return self._ncol

    @property
    def shape(self) -> tuple:
        return (self._nrow, self._ncol)

    def get(self, i: int, j: int) -> float:
        """Element in row ``i``, column ``j``."""
        i = _check_index(i, self._nrow, "row")
        j = _check_index(j, self._ncol, "column")
        return float(self._data[i, j])

    def is_square(self) -> bool:
        return self._nrow == self._ncol

    def diagonal(self) -> np.ndarray:
        """Main diagonal, of length ``min(nrow, ncol)``."""
        return np.diagonal(self._data).copy()

    def data(self) -> np.ndarray:
        """Row-major copy of all values as a flat array."""
        return self._data.reshape(-1).copy()

    def data_2d(self, order: Order = Order.BY_ROW) -> np.ndarray:
        """
        Materialize a 2-D copy of the values.

        ``Order.BY_ROW`` returns an ``(nrow, ncol)`` array whose entries are
        rows; ``Order.BY_COLUMN`` returns an ``(ncol, nrow)`` array whose
        entries are columns.
        """
        if order == Order.BY_COLUMN:
            return self._data.T.copy()
        return self._data.copy()

    def to_numpy(self) -> np.ndarray:
        """Read-only ``(nrow, ncol)`` view (no copy)."""
        return self._data

    # -------------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------------

    def _check_same_shape(self, other: "Matrix", op: str) -> None:
        if self.shape != other.shape:
            raise DimensionMismatchError(
                f"cannot {op} matrices of different dimensions. This matrix has "
                f"dimension {self.shape} and the other matrix has dimension "
                f"{other.shape}"
            )

    def plus(self, other: "Matrix") -> "Matrix":
        self._check_same_shape(other, "add")
        return Matrix._wrap(self._data + other._data)

    def minus(self, other: "Matrix") -> "Matrix":
        self._check_same_shape(other, "subtract")
        return Matrix._wrap(self._data - other._data)

    def times(self, other: Union["Matrix", Vector]) -> Union["Matrix", Vector]:
        """
        Matrix-matrix or matrix-vector product.

        Raises
        ------
        DimensionMismatchError
            If ``self.ncol`` differs from the rows of ``other`` (or the
            vector's length).
        """
        if isinstance(other, Vector):
            if self._ncol != len(other):
                raise DimensionMismatchError(
                    f"The columns of this matrix must equal the length of the "
                    f"vector. This matrix has {self._ncol} columns and the "
                    f"vector has {len(other)} elements."
                )
            return Vector(self._data @ other.to_numpy())

        if self._ncol != other._nrow:
            raise DimensionMismatchError(
                f"The columns of this matrix must equal the rows of the other "
                f"matrix. This matrix has {self._ncol} columns and the other "
                f"matrix has {other._nrow} rows."
            )
        return Matrix._wrap(self._data @ other._data)

    def scaled_by(self, c: float) -> "Matrix":
        return Matrix._wrap(self._data * c)

    def transpose(self) -> "Matrix":
        return Matrix._wrap(self._data.T)

    def __add__(self, other: "Matrix") -> "Matrix":
        return self.plus(other)

    def __sub__(self, other: "Matrix") -> "Matrix":
        return self.minus(other)

    def __matmul__(self, other):
        return self.times(other)

    def __mul__(self, c: float) -> "Matrix":
        return self.scaled_by(c)

    __rmul__ = __mul__

    # -------------------------------------------------------------------------
    # Value semantics
    # -------------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and np.array_equal(self._data, other._data)

    def __hash__(self) -> int:
        return hash((self._nrow, self._ncol, tuple(self._data.reshape(-1).tolist())))

    def __repr__(self) -> str:
        return f"Matrix(nrow={self._nrow}, ncol={self._ncol}, data={self._data.tolist()})"


# =============================================================================
# BUILDERS
# =============================================================================

class _SquareBuilder:
    """Mutable staging area for an ``n x n`` matrix; single use."""

    def __init__(self, n: int, seed: np.ndarray):
        self.n = n
        self._data = seed
        self._built = False

    def set(self, i: int, j: int, value: float):
        """
        Set one cell.

        Returns
        -------
        Self, for method chaining.

        Raises
        ------
        IndexOutOfRangeError
            If ``(i, j)`` lies outside the matrix.
        RuntimeError
            If ``build()`` has already been called.
        """
        self._ensure_open()
        i = _check_index(i, self.n, "row")
        j = _check_index(j, self.n, "column")
        self._data[i, j] = value
        return self

    def build(self) -> Matrix:
        """Produce the immutable matrix and retire this builder."""
        self._ensure_open()
        self._built = True
        result = Matrix(self.n, self.n, self._data)
        self._data = None
        return result

    def _ensure_open(self) -> None:
        if self._built:
            raise RuntimeError(
                f"{type(self).__name__} already built. Create a new builder."
            )


class IdentityBuilder(_SquareBuilder):
    """
    Builder seeded with the ``n x n`` identity matrix.

    Examples
    --------
    >>> m = IdentityBuilder(3).set(0, 1, 5.0).build()
    >>> m.get(0, 1), m.get(0, 0), m.get(1, 0)
    (5.0, 1.0, 0.0)
    """

    def __init__(self, n: int):
        if n < 0:
            raise InvalidDimensionError(f"size must be non-negative, got {n}")
        super().__init__(n, np.eye(n))


class MatrixBuilder(_SquareBuilder):
    """Builder seeded with the ``n x n`` zero matrix."""

    def __init__(self, n: int):
        if n < 0:
            raise InvalidDimensionError(f"size must be non-negative, got {n}")
        super().__init__(n, np.zeros((n, n)))
