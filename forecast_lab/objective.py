"""
objective.py - Scalar Objective Functions with Evaluation Counting

This module provides the interface the optimizers minimize:
- ObjectiveFunction: Abstract base; ``at(point)`` evaluates and counts
- Function: Wraps an arbitrary user closure
- Sphere, Rosenbrock, Rastrigin, AbsoluteValue, ExpSin: Canonical test
  functions (smooth, narrow-valley, multimodal, kinked, univariate)
- numerical_gradient: Finite-difference gradient that evaluates through
  ``at`` so every call is counted

Evaluation Counting:
-------------------
Each instance counts the calls made to ``at`` over its lifetime, including
the ones an optimizer makes internally for line searches, gradients and
Hessians. The counter is plain instance state: an objective belongs to one
optimization run at a time and must not be evaluated from several threads.

Example Usage:
-------------
    >>> from forecast_lab.objective import Function, ExpSin
    >>>
    >>> f = Function(lambda x: (x[0] - 3.0) ** 2 + x[1] ** 2, dimension=2)
    >>> f.at([3.0, 1.0])
    1.0
    >>> f.evaluations
    1
    >>> ExpSin().at(0.0)
    -0.0
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

import numpy as np

from .exceptions import DimensionMismatchError, InvalidDimensionError
from .matrix import Vector
from .types import PointLike


def as_point(point: PointLike) -> np.ndarray:
    """Coerce a float, sequence or Vector into a 1-D float array (copy)."""
    if isinstance(point, Vector):
        return point.elements()
    x = np.array(point, dtype=float)
    if x.ndim > 1:
        raise InvalidDimensionError(f"point must be 1D, got shape {x.shape}")
    return x.reshape(-1)


# =============================================================================
# BASE CLASS
# =============================================================================

class ObjectiveFunction(ABC):
    """
    A scalar function of a real vector that counts its evaluations.

    Subclasses implement ``_evaluate``; callers always go through ``at``.

    Parameters
    ----------
    dimension : int, optional
        Expected length of the points. If given, ``at`` rejects points of
        any other length.
    """

    def __init__(self, dimension: Optional[int] = None):
        if dimension is not None and dimension <= 0:
            raise InvalidDimensionError(
                f"dimension must be positive, got {dimension}"
            )
        self.dimension = dimension
        self._evaluations = 0

    @property
    def evaluations(self) -> int:
        """Number of calls to ``at`` since construction."""
        return self._evaluations

    def at(self, point: PointLike) -> float:
        """
        Evaluate the function at ``point``.

        The counter is incremented exactly once per call, before the
        underlying function runs, so evaluations that raise are counted too.

        Returns
        -------
        float
            Function value. May be NaN or infinite; deciding what to do with
            a non-finite value is the caller's business.
        """
        x = as_point(point)
        if self.dimension is not None and x.size != self.dimension:
            raise DimensionMismatchError(
                f"{type(self).__name__} expects points of length "
                f"{self.dimension}, got {x.size}"
            )
        x.setflags(write=False)
        self._evaluations += 1

        value = np.asarray(self._evaluate(x), dtype=float)
        if value.size != 1:
            raise ValueError(
                f"objective must return a scalar, got shape {value.shape}"
            )
        return value.item()

    __call__ = at

    @abstractmethod
    def _evaluate(self, x: np.ndarray) -> float:
        """The mathematical function itself. ``x`` is read-only."""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(dimension={self.dimension}, "
            f"evaluations={self._evaluations})"
        )


class Function(ObjectiveFunction):
    """
    Objective backed by a user-supplied closure.

    Parameters
    ----------
    fn : callable
        ``fn(x) -> float`` where ``x`` is a read-only 1-D array, or a float
        when ``univariate`` is set.
    dimension : int, optional
        Expected point length.
    univariate : bool, default=False
        Call ``fn`` with the single coordinate as a float.

    Examples
    --------
    >>> square = Function(lambda x: x * x, univariate=True)
    >>> square.at(3.0)
    9.0
    """

    def __init__(
        self,
        fn: Callable[..., float],
        dimension: Optional[int] = None,
        univariate: bool = False,
    ):
        if univariate:
            if dimension not in (None, 1):
                raise InvalidDimensionError(
                    f"univariate functions have dimension 1, got {dimension}"
                )
            dimension = 1
        super().__init__(dimension)
        self._fn = fn
        self._univariate = univariate

    def _evaluate(self, x: np.ndarray) -> float:
        if self._univariate:
            return self._fn(float(x[0]))
        return self._fn(x)


# =============================================================================
# TEST FUNCTIONS
# =============================================================================

class Sphere(ObjectiveFunction):
    """Sum of squares; smooth and convex. Minimum 0 at the origin."""

    def _evaluate(self, x: np.ndarray) -> float:
        return float(np.dot(x, x))

    def minimum(self, dim: int) -> Tuple[np.ndarray, float]:
        return np.zeros(dim), 0.0


class Rosenbrock(ObjectiveFunction):
    """
    Rosenbrock's banana function.

    ``f(x) = sum(100 (x[i+1] - x[i]^2)^2 + (1 - x[i])^2)``

    Smooth, with a narrow curved valley that defeats naive descent.
    Minimum 0 at ``(1, ..., 1)``. Requires at least two dimensions.
    """

    def _evaluate(self, x: np.ndarray) -> float:
        if x.size < 2:
            raise InvalidDimensionError("Rosenbrock needs at least 2 dimensions")
        return float(np.sum(100.0 * (x[1:] - x[:-1] ** 2) ** 2 + (1.0 - x[:-1]) ** 2))

    def minimum(self, dim: int) -> Tuple[np.ndarray, float]:
        return np.ones(dim), 0.0


class Rastrigin(ObjectiveFunction):
    """
    Rastrigin's function, ``10 n + sum(x^2 - 10 cos(2 pi x))``.

    Highly multimodal with local minima near every integer lattice point.
    Global minimum 0 at the origin.
    """

    def _evaluate(self, x: np.ndarray) -> float:
        return float(10.0 * x.size + np.sum(x ** 2 - 10.0 * np.cos(2.0 * np.pi * x)))

    def minimum(self, dim: int) -> Tuple[np.ndarray, float]:
        return np.zeros(dim), 0.0


class AbsoluteValue(ObjectiveFunction):
    """L1 norm; continuous with a discontinuous gradient at every axis."""

    def _evaluate(self, x: np.ndarray) -> float:
        return float(np.sum(np.abs(x)))

    def minimum(self, dim: int) -> Tuple[np.ndarray, float]:
        return np.zeros(dim), 0.0


class ExpSin(ObjectiveFunction):
    """
    Univariate ``f(x) = -exp(-x) sin(x)``.

    On ``[0, 2 pi]`` the minimum lies at ``x = pi / 4`` with value
    ``-exp(-pi/4) / sqrt(2)``.
    """

    def __init__(self):
        super().__init__(dimension=1)

    def _evaluate(self, x: np.ndarray) -> float:
        return -np.exp(-x[0]) * np.sin(x[0])

    def minimum(self, dim: int = 1) -> Tuple[np.ndarray, float]:
        x = np.pi / 4.0
        return np.array([x]), float(-np.exp(-x) * np.sin(x))


# =============================================================================
# GRADIENT
# =============================================================================

def numerical_gradient(
    objective: ObjectiveFunction,
    point: PointLike,
    step: Optional[float] = None,
    lower: Optional[np.ndarray] = None,
    upper: Optional[np.ndarray] = None,
    value: Optional[float] = None,
) -> np.ndarray:
    """
    Finite-difference gradient of ``objective`` at ``point``.

    Central differences are used where possible. When a central stencil
    would leave the box ``[lower, upper]`` a one-sided difference is used
    instead, which needs ``f(point)``; pass it as ``value`` to save an
    evaluation.

    Parameters
    ----------
    objective : ObjectiveFunction
        Function to differentiate. All evaluations are counted.
    point : array-like
        Location of the estimate.
    step : float, optional
        Absolute step. Defaults to ``eps**(1/3) * max(1, |x_i|)``.
    lower, upper : np.ndarray, optional
        Box bounds that stencil points must respect.
    value : float, optional
        Known ``objective.at(point)``.

    Returns
    -------
    np.ndarray
        Gradient estimate with the same length as ``point``.
    """
    x = as_point(point)
    n = x.size
    if step is None:
        h = np.finfo(float).eps ** (1.0 / 3.0) * np.maximum(1.0, np.abs(x))
    else:
        h = np.full(n, step, dtype=float)
    lo = np.full(n, -np.inf) if lower is None else lower
    hi = np.full(n, np.inf) if upper is None else upper

    grad = np.empty(n)
    f0 = value
    for i in range(n):
        e = np.zeros(n)
        e[i] = h[i]
        can_forward = x[i] + h[i] <= hi[i]
        can_backward = x[i] - h[i] >= lo[i]

        if can_forward and can_backward:
            grad[i] = (objective.at(x + e) - objective.at(x - e)) / (2.0 * h[i])
            continue

        if f0 is None:
            f0 = objective.at(x)
        if can_forward:
            grad[i] = (objective.at(x + e) - f0) / h[i]
        elif can_backward:
            grad[i] = (f0 - objective.at(x - e)) / h[i]
        else:
            # Box narrower than the step: coordinate is effectively fixed.
            grad[i] = 0.0
    return grad
