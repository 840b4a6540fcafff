"""
decomposition.py - Linear Solves and Curvature Estimates
========================================================

LU and Cholesky decompositions (LAPACK via scipy.linalg) with explicit
singularity detection, normal-equations regression, and finite-difference
Hessians used for convergence diagnostics and parameter covariance.

A system is treated as singular when a pivot is no larger than
``epsilon * max|A|``; the solvers raise SingularMatrixError instead of
returning NaN or Inf.
"""

from __future__ import annotations

import warnings
from typing import TYPE_CHECKING, Optional, Union

import numpy as np
import scipy.linalg
from loguru import logger

from .exceptions import (
    DimensionMismatchError,
    InvalidDimensionError,
    SingularMatrixError,
)
from .matrix import Matrix, Vector

if TYPE_CHECKING:
    from .objective import ObjectiveFunction

ArrayLike = Union[Matrix, Vector, np.ndarray]

DEFAULT_EPSILON = 1e-12


# =============================================================================
# HELPERS
# =============================================================================

def _as_array(x: ArrayLike) -> np.ndarray:
    if isinstance(x, (Matrix, Vector)):
        return x.to_numpy()
    return np.asarray(x, dtype=float)


def _like(template: ArrayLike, values: np.ndarray) -> ArrayLike:
    """Return ``values`` in the container type of ``template``."""
    if isinstance(template, Vector):
        return Vector(values)
    if isinstance(template, Matrix):
        return Matrix(values.shape[0], values.shape[1], values)
    return values


def _square_array(matrix: ArrayLike) -> np.ndarray:
    A = _as_array(matrix)
    if A.ndim != 2:
        raise InvalidDimensionError(f"expected a 2D matrix, got shape {A.shape}")
    if A.shape[0] != A.shape[1]:
        raise DimensionMismatchError(
            f"decomposition requires a square matrix, got shape {A.shape}"
        )
    if A.shape[0] == 0:
        raise InvalidDimensionError("cannot decompose an empty matrix")
    if not np.all(np.isfinite(A)):
        raise ValueError("matrix contains NaN or infinite values")
    return A


def _check_rhs(n: int, b: np.ndarray) -> None:
    if b.ndim not in (1, 2) or b.shape[0] != n:
        raise DimensionMismatchError(
            f"right-hand side has shape {b.shape}, expected {n} rows"
        )


# =============================================================================
# LU DECOMPOSITION
# =============================================================================

class LUDecomposition:
    """
    LU decomposition with partial pivoting, ``P A = L U``.

    Parameters
    ----------
    matrix : Matrix or np.ndarray
        Square matrix to factor.
    epsilon : float, default=1e-12
        Relative singularity tolerance. A pivot ``|U_ii| <= epsilon * max|A|``
        marks the matrix as singular.

    Raises
    ------
    DimensionMismatchError
        If the matrix is not square.
    SingularMatrixError
        If the matrix is singular at the given tolerance.

    Examples
    --------
    >>> lu = LUDecomposition(Matrix.create(2, 2, [4.0, 3.0, 6.0, 3.0]))
    >>> lu.solve(Vector([10.0, 12.0]))
    Vector([1.0, 2.0])
    """

    def __init__(self, matrix: ArrayLike, epsilon: float = DEFAULT_EPSILON):
        A = _square_array(matrix)
        self.n = A.shape[0]
        self.epsilon = epsilon

        with warnings.catch_warnings():
            # Exactly singular input warns; we report it ourselves below.
            warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
            self._lu, self._piv = scipy.linalg.lu_factor(A, check_finite=False)

        scale = np.max(np.abs(A))
        pivots = np.abs(np.diag(self._lu))
        smallest = pivots.min()
        if scale == 0.0 or smallest <= epsilon * scale:
            raise SingularMatrixError(
                f"matrix is singular: smallest pivot {smallest:.3e} "
                f"<= {epsilon:.1e} * scale {scale:.3e}"
            )

    def solve(self, b: ArrayLike) -> ArrayLike:
        """Solve ``A x = b`` for a vector or matrix right-hand side."""
        rhs = _as_array(b)
        _check_rhs(self.n, rhs)
        x = scipy.linalg.lu_solve((self._lu, self._piv), rhs, check_finite=False)
        return _like(b, x)

    def determinant(self) -> float:
        swaps = np.count_nonzero(self._piv != np.arange(self.n))
        sign = -1.0 if swaps % 2 else 1.0
        return float(sign * np.prod(np.diag(self._lu)))

    def inverse(self) -> Matrix:
        return self.solve(Matrix.identity(self.n))


# =============================================================================
# CHOLESKY DECOMPOSITION
# =============================================================================

class CholeskyDecomposition:
    """
    Cholesky factorization ``A = L L.T`` of a symmetric positive-definite
    matrix.

    Raises
    ------
    ValueError
        If the matrix is not symmetric.
    SingularMatrixError
        If the matrix is not positive definite at the given tolerance.
    """

    def __init__(self, matrix: ArrayLike, epsilon: float = DEFAULT_EPSILON):
        A = _square_array(matrix)
        scale = np.max(np.abs(A))
        if not np.allclose(A, A.T, rtol=1e-10, atol=1e-12 * max(scale, 1.0)):
            raise ValueError("Cholesky decomposition requires a symmetric matrix")

        self.n = A.shape[0]
        self.epsilon = epsilon
        try:
            self._factor = scipy.linalg.cho_factor(A, lower=True, check_finite=False)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(
                f"matrix is not positive definite: {e}"
            ) from e

        diag = np.diag(self._factor[0])
        if scale == 0.0 or diag.min() ** 2 <= epsilon * scale:
            raise SingularMatrixError(
                "matrix is numerically singular: smallest Cholesky pivot "
                f"{diag.min() ** 2:.3e} <= {epsilon:.1e} * scale {scale:.3e}"
            )

    @property
    def lower(self) -> Matrix:
        """The lower-triangular factor ``L``."""
        return Matrix.create(self.n, self.n, np.tril(self._factor[0]))

    def solve(self, b: ArrayLike) -> ArrayLike:
        rhs = _as_array(b)
        _check_rhs(self.n, rhs)
        return _like(b, scipy.linalg.cho_solve(self._factor, rhs, check_finite=False))

    def inverse(self) -> Matrix:
        return self.solve(Matrix.identity(self.n))


# =============================================================================
# CONVENIENCE SOLVERS
# =============================================================================

def solve(A: ArrayLike, b: ArrayLike, epsilon: float = DEFAULT_EPSILON) -> ArrayLike:
    """Solve ``A x = b`` by LU decomposition."""
    return LUDecomposition(A, epsilon).solve(b)


def inverse(A: ArrayLike, epsilon: float = DEFAULT_EPSILON) -> Matrix:
    """Inverse of ``A`` by LU decomposition."""
    return LUDecomposition(A, epsilon).inverse()


def least_squares(
    X: Matrix,
    y: Vector,
    epsilon: float = DEFAULT_EPSILON,
) -> Vector:
    """
    Ordinary least squares by the normal equations ``(X.T X) beta = X.T y``.

    Parameters
    ----------
    X : Matrix
        Design matrix with shape (n, k).
    y : Vector
        Response of length n.
    epsilon : float
        Singularity tolerance passed to the decompositions.

    Returns
    -------
    Vector
        Coefficients ``beta`` of length k.

    Raises
    ------
    DimensionMismatchError
        If ``X`` and ``y`` disagree on the number of observations.
    SingularMatrixError
        If ``X.T X`` is singular (collinear regressors).

    Notes
    -----
    ``X.T X`` is factored by Cholesky; when rounding breaks positive
    definiteness the LU path is tried before giving up.
    """
    if X.nrow != len(y):
        raise DimensionMismatchError(
            f"design matrix has {X.nrow} rows, response has {len(y)} values"
        )
    Xt = X.transpose()
    xtx = Xt.times(X)
    xty = Xt.times(y)
    try:
        return CholeskyDecomposition(xtx, epsilon).solve(xty)
    except SingularMatrixError:
        logger.debug("Normal equations not positive definite; retrying with LU")
        return LUDecomposition(xtx, epsilon).solve(xty)


# =============================================================================
# CURVATURE
# =============================================================================

def _default_steps(x: np.ndarray) -> np.ndarray:
    # eps ** (1/4) balances truncation and rounding error for second differences
    return np.finfo(float).eps ** 0.25 * np.maximum(1.0, np.abs(x))


def numerical_hessian(
    objective: "ObjectiveFunction",
    point: Union[Vector, np.ndarray],
    step: Optional[float] = None,
    value: Optional[float] = None,
    lower: Optional[np.ndarray] = None,
    upper: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Central finite-difference Hessian of ``objective`` at ``point``.

    Parameters
    ----------
    objective : ObjectiveFunction
        Function to differentiate. Every evaluation goes through
        ``objective.at`` and is counted.
    point : Vector or np.ndarray
        Location of the estimate.
    step : float, optional
        Absolute step for every coordinate. Defaults to
        ``eps**0.25 * max(1, |x_i|)`` per coordinate.
    value : float, optional
        ``objective.at(point)`` if already known; saves one evaluation.
    lower, upper : np.ndarray, optional
        Box bounds that stencil points must respect. Near an active bound
        the stencil is shifted inward, and the step shrinks to fit a box
        narrower than two steps. A coordinate fixed by its bounds gets a
        zero row and column.

    Returns
    -------
    np.ndarray
        Symmetric (n, n) Hessian estimate.
    """
    x = np.array(_as_array(point), dtype=float).reshape(-1)
    n = x.size
    h = np.full(n, step, dtype=float) if step is not None else _default_steps(x)

    lo = np.full(n, -np.inf) if lower is None else np.asarray(lower, dtype=float)
    hi = np.full(n, np.inf) if upper is None else np.asarray(upper, dtype=float)
    h = np.minimum(h, 0.5 * (hi - lo))
    centre = np.clip(x, lo + h, hi - h)

    if value is None or not np.array_equal(centre, x):
        f0 = objective.at(centre)
    else:
        f0 = value

    H = np.zeros((n, n))
    free = [i for i in range(n) if h[i] > 0.0]
    for a, i in enumerate(free):
        ei = np.zeros(n)
        ei[i] = h[i]
        f_plus = objective.at(centre + ei)
        f_minus = objective.at(centre - ei)
        H[i, i] = (f_plus - 2.0 * f0 + f_minus) / h[i] ** 2

        for j in free[:a]:
            ej = np.zeros(n)
            ej[j] = h[j]
            f_pp = objective.at(centre + ei + ej)
            f_pm = objective.at(centre + ei - ej)
            f_mp = objective.at(centre - ei + ej)
            f_mm = objective.at(centre - ei - ej)
            H[i, j] = H[j, i] = (f_pp - f_pm - f_mp + f_mm) / (4.0 * h[i] * h[j])

    logger.debug(f"Hessian estimated at {n}-dimensional point")
    return H


def covariance_from_hessian(
    hessian: ArrayLike,
    scale: float = 1.0,
    epsilon: float = DEFAULT_EPSILON,
) -> np.ndarray:
    """
    Covariance estimate ``scale * H^-1`` from a curvature matrix.

    Raises
    ------
    SingularMatrixError
        If the (symmetrized) Hessian is not positive definite, meaning the
        point is not a strict local minimum.
    """
    H = _as_array(hessian)
    H = 0.5 * (H + H.T)
    cov = CholeskyDecomposition(H, epsilon).inverse().to_numpy() * scale
    return 0.5 * (cov + cov.T)
