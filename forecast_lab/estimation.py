"""
estimation.py - Starting Values for ARMA Parameter Searches
===========================================================

Produces the initial point handed to the optimizer when fitting an ARMA
model to a (differenced) series, using the Hannan-Rissanen two-stage
regression:

1. Fit a long autoregression by least squares and keep its residuals as
   proxies for the unobserved innovations.
2. Regress the series on its own lags and the lagged proxy innovations.

Both regressions solve the normal equations through the decomposition
layer. When the parameter search is bounded, stage 2 becomes a box-
constrained least-squares problem solved with CVXPY so the starting point
already respects the bounds.
"""

from __future__ import annotations

from typing import Optional

import cvxpy as cp
import numpy as np
from loguru import logger

from .decomposition import least_squares
from .exceptions import SingularMatrixError
from .matrix import Matrix, Vector


# =============================================================================
# HELPERS
# =============================================================================

def lag_matrix(x: np.ndarray, lags: int, start: int) -> np.ndarray:
    """
    Columns ``x[t-1], ..., x[t-lags]`` for rows ``t = start .. len(x)-1``.
    """
    n = len(x)
    return np.column_stack(
        [x[start - k:n - k] for k in range(1, lags + 1)]
    ) if lags > 0 else np.empty((n - start, 0))


def _ols(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    return least_squares(
        Matrix.create(X.shape[0], X.shape[1], X), Vector(y)
    ).elements()


def bounded_least_squares(
    X: np.ndarray,
    y: np.ndarray,
    lower: np.ndarray,
    upper: np.ndarray,
    solver: Optional[str] = None,
) -> Optional[np.ndarray]:
    """
    Minimize ``||X b - y||^2`` subject to ``lower <= b <= upper``.

    Parameters
    ----------
    X : np.ndarray
        Design matrix with shape (n, k).
    y : np.ndarray
        Response with shape (n,).
    lower, upper : np.ndarray
        Bounds with shape (k,); infinite entries are left unconstrained.
    solver : str, optional
        CVXPY solver name. If None, CVXPY auto-selects.

    Returns
    -------
    np.ndarray or None
        Optimal coefficients, or None if the solver did not reach an
        optimal solution.
    """
    beta = cp.Variable(X.shape[1], name="coefficients")
    constraints = []
    finite_low = np.isfinite(lower)
    finite_high = np.isfinite(upper)
    if finite_low.any():
        constraints.append(beta[finite_low] >= lower[finite_low])
    if finite_high.any():
        constraints.append(beta[finite_high] <= upper[finite_high])

    problem = cp.Problem(cp.Minimize(cp.sum_squares(X @ beta - y)), constraints)
    try:
        if solver:
            problem.solve(solver=solver)
        else:
            problem.solve()
    except cp.SolverError:
        logger.exception("Bounded least-squares solver crashed")
        return None

    if problem.status != cp.OPTIMAL:
        logger.warning(f"Bounded least squares finished with status: {problem.status}")
        return None
    return np.asarray(beta.value, dtype=float)


# =============================================================================
# HANNAN-RISSANEN
# =============================================================================

def hannan_rissanen(
    w: np.ndarray,
    p: int,
    q: int,
    lower: Optional[np.ndarray] = None,
    upper: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Starting AR and MA coefficients for a demeaned series.

    Parameters
    ----------
    w : np.ndarray
        Demeaned (and already differenced) series.
    p, q : int
        AR and MA orders.
    lower, upper : np.ndarray, optional
        Bounds on the ``p + q`` coefficients. If any is finite the final
        regression is solved with box constraints.

    Returns
    -------
    np.ndarray
        ``[phi_1..phi_p, theta_1..theta_q]``. Zeros are returned when the
        regressions are singular or the series is too short.
    """
    k = p + q
    if k == 0:
        return np.empty(0)

    n = len(w)
    m = max(p, q) + max(p, q, 1) * 2  # long AR order for stage 1
    if n - m - q <= k + 1:
        logger.warning(
            f"Series of length {n} too short for Hannan-Rissanen; starting from zeros"
        )
        return np.zeros(k)

    try:
        if q > 0:
            long_ar = _ols(lag_matrix(w, m, m), w[m:])
            innovations = np.zeros(n)
            innovations[m:] = w[m:] - lag_matrix(w, m, m) @ long_ar
            start = m + q
            X = np.hstack([lag_matrix(w, p, start), lag_matrix(innovations, q, start)])
        else:
            start = p
            X = lag_matrix(w, p, start)
        y = w[start:]

        bounded = (lower is not None and np.isfinite(lower).any()) or (
            upper is not None and np.isfinite(upper).any()
        )
        if bounded:
            lo = np.full(k, -np.inf) if lower is None else lower
            hi = np.full(k, np.inf) if upper is None else upper
            coefs = bounded_least_squares(X, y, lo, hi)
            coefs = np.clip(_ols(X, y) if coefs is None else coefs, lo, hi)
        else:
            coefs = _ols(X, y)
    except SingularMatrixError:
        logger.warning("Starting-value regression is singular; starting from zeros")
        return np.zeros(k)

    logger.debug(f"Hannan-Rissanen starting values: {np.round(coefs, 4).tolist()}")
    return coefs
