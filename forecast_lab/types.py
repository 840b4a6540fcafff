"""
types.py - Core Value Objects and Type Definitions for forecast_lab

This module defines the small immutable structures passed between the
numerical layers:
- Order: Row-major / column-major layout of 2-D data
- OptimizerStatus: States of an optimization run
- FitMethod: Objective used to fit a time-series model
- OptimizerConfig: Validated optimizer settings (tolerance, limits, bounds)
- OptimizationResult: Outcome of one optimization run
- Forecast: Point forecasts with confidence bounds

Design Principles:
-----------------
1. Immutability for value objects (frozen dataclasses, read-only arrays)
2. Validation at construction time (fail-fast)
3. Numpy-style docstrings throughout

Example Usage:
-------------
    >>> from forecast_lab.types import OptimizerConfig
    >>>
    >>> config = OptimizerConfig(tolerance=1e-6, bounds=[(0.0, 6.3)])
    >>> config.lower_bounds(1)
    array([0.])
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import InvalidConfidenceLevelError, InvalidDimensionError


# =============================================================================
# TYPE ALIASES
# =============================================================================

# A bound is (low, high); None on either side means unbounded.
Bound = Tuple[Optional[float], Optional[float]]
PointLike = Union[float, Sequence[float], np.ndarray]


def _frozen_array(values: Any) -> np.ndarray:
    """Copy values into a 1-D float array that cannot be written to."""
    arr = np.array(values, dtype=float).reshape(-1)
    arr.setflags(write=False)
    return arr


# =============================================================================
# ENUMS
# =============================================================================

class Order(Enum):
    """
    Layout of two-dimensional input or output data.

    BY_ROW: outer sequence holds rows.
    BY_COLUMN: outer sequence holds columns.
    """
    BY_ROW = auto()
    BY_COLUMN = auto()


class OptimizerStatus(str, Enum):
    """
    Lifecycle of an optimization run.

    An optimizer starts INITIALIZED, moves to ITERATING on the first call to
    ``minimize`` and ends in exactly one of the four terminal states.
    """
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (OptimizerStatus.INITIALIZED, OptimizerStatus.ITERATING)


class FitMethod(str, Enum):
    """Objective minimized when fitting a time-series model."""
    CSS = "css"  # Conditional sum of squares
    ML = "ml"    # Concentrated Gaussian negative log-likelihood


# =============================================================================
# OPTIMIZER CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class OptimizerConfig:
    """
    Settings shared by all optimizers.

    Parameters
    ----------
    tolerance : float, default=1e-8
        Convergence threshold on the change in objective value between
        iterations and on the norm of the parameter step.
    max_iterations : int, default=1000
        Iteration limit. Reaching it ends the run as MAX_ITERATIONS_EXCEEDED.
    max_evaluations : int, default=20000
        Objective evaluation limit, treated like ``max_iterations``.
    bounds : sequence of (low, high), optional
        Box bounds per dimension. ``None`` for a whole entry or either side
        of it means unbounded.
    initial_step : float, default=0.1
        Size of the initial simplex (Nelder-Mead) relative to each starting
        coordinate; absolute when the coordinate is zero.
    epsilon : float, default=1e-12
        Relative tolerance used to detect singular curvature matrices.
    compute_hessian : bool, default=True
        Estimate the Hessian at the optimum by finite differences, when the
        remaining evaluation budget allows it.

    Raises
    ------
    ValueError
        If any limit is non-positive or a bound has low > high.
    """
    tolerance: float = 1e-8
    max_iterations: int = 1000
    max_evaluations: int = 20000
    bounds: Optional[Tuple[Optional[Bound], ...]] = None
    initial_step: float = 0.1
    epsilon: float = 1e-12
    compute_hessian: bool = True

    def __post_init__(self):
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.max_iterations <= 0:
            raise ValueError(
                f"max_iterations must be positive, got {self.max_iterations}"
            )
        if self.max_evaluations <= 0:
            raise ValueError(
                f"max_evaluations must be positive, got {self.max_evaluations}"
            )
        if not self.initial_step > 0:
            raise ValueError(
                f"initial_step must be positive, got {self.initial_step}"
            )
        if not self.epsilon > 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")

        if self.bounds is not None:
            normalized = tuple(
                (None, None) if b is None else (b[0], b[1]) for b in self.bounds
            )
            for i, (low, high) in enumerate(normalized):
                if low is not None and high is not None and low > high:
                    raise ValueError(
                        f"bound {i}: low ({low}) must be <= high ({high})"
                    )
            object.__setattr__(self, "bounds", normalized)

    def _check_dimension(self, dim: int) -> None:
        if self.bounds is not None and len(self.bounds) != dim:
            raise InvalidDimensionError(
                f"bounds cover {len(self.bounds)} dimensions, point has {dim}"
            )

    def lower_bounds(self, dim: int) -> np.ndarray:
        """Lower bounds as an array of length ``dim`` (-inf if unbounded)."""
        self._check_dimension(dim)
        if self.bounds is None:
            return np.full(dim, -np.inf)
        return np.array(
            [-np.inf if low is None else low for low, _ in self.bounds], dtype=float
        )

    def upper_bounds(self, dim: int) -> np.ndarray:
        """Upper bounds as an array of length ``dim`` (+inf if unbounded)."""
        self._check_dimension(dim)
        if self.bounds is None:
            return np.full(dim, np.inf)
        return np.array(
            [np.inf if high is None else high for _, high in self.bounds], dtype=float
        )

    def project(self, point: np.ndarray) -> np.ndarray:
        """Clip ``point`` into the box. Returns a new array."""
        if self.bounds is None:
            return np.array(point, dtype=float)
        dim = len(point)
        return np.clip(point, self.lower_bounds(dim), self.upper_bounds(dim))


# =============================================================================
# OPTIMIZATION RESULT
# =============================================================================

@dataclass(frozen=True)
class OptimizationResult:
    """
    Outcome of a single optimization run.

    Parameters
    ----------
    point : np.ndarray
        Best point found (read-only).
    value : float
        Objective value at ``point``.
    status : OptimizerStatus
        CONVERGED or MAX_ITERATIONS_EXCEEDED. Failed and cancelled runs
        raise instead of returning a result.
    iterations : int
        Iterations performed.
    evaluations : int
        Objective evaluations performed by this run, including those used
        for gradients, line searches and the final Hessian.
    hessian : np.ndarray, optional
        Finite-difference Hessian at ``point`` when requested.
    message : str
        Human-readable reason the run stopped.
    metadata : Dict[str, Any]
        Method-specific details (method name, final step norm, ...).

    Examples
    --------
    >>> result = optimizer.minimize([1.0, 1.0])
    >>> if not result.converged:
    ...     print(f"Stopped early: {result.message}")
    """
    point: np.ndarray
    value: float
    status: OptimizerStatus
    iterations: int
    evaluations: int
    hessian: Optional[np.ndarray] = None
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.status.is_terminal:
            raise ValueError(f"result status must be terminal, got {self.status}")
        object.__setattr__(self, "point", _frozen_array(self.point))
        if self.hessian is not None:
            hess = np.array(self.hessian, dtype=float)
            hess.setflags(write=False)
            object.__setattr__(self, "hessian", hess)

    @property
    def converged(self) -> bool:
        """True only if the convergence criterion was met."""
        return self.status == OptimizerStatus.CONVERGED


# =============================================================================
# FORECAST
# =============================================================================

@dataclass(frozen=True)
class Forecast:
    """
    Point forecasts with ``(1 - alpha)`` confidence bounds.

    Parameters
    ----------
    point : np.ndarray
        Point forecasts, one per step ahead.
    lower : np.ndarray
        Lower interval bounds.
    upper : np.ndarray
        Upper interval bounds.
    standard_errors : np.ndarray
        Forecast standard errors used to build the bounds.
    alpha : float
        Significance level; the bounds cover ``1 - alpha``.

    Raises
    ------
    InvalidDimensionError
        If the arrays do not all have the same length.
    """
    point: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    standard_errors: np.ndarray
    alpha: float

    def __post_init__(self):
        for name in ("point", "lower", "upper", "standard_errors"):
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))

        n = len(self.point)
        for name in ("lower", "upper", "standard_errors"):
            if len(getattr(self, name)) != n:
                raise InvalidDimensionError(
                    f"{name} has {len(getattr(self, name))} values, "
                    f"expected {n} (one per forecast step)"
                )

    @property
    def steps(self) -> int:
        """Forecast horizon."""
        return len(self.point)

    @property
    def confidence(self) -> float:
        """Nominal coverage of the interval, ``1 - alpha``."""
        return 1.0 - self.alpha

    def __repr__(self) -> str:
        return (
            f"Forecast(steps={self.steps}, alpha={self.alpha}, "
            f"point=[{self.point[0]:.4g} .. {self.point[-1]:.4g}])"
            if self.steps
            else f"Forecast(steps=0, alpha={self.alpha})"
        )


def validate_alpha(alpha: float) -> None:
    """Raise InvalidConfidenceLevelError unless 0 < alpha < 1."""
    if not (isinstance(alpha, (int, float)) and math.isfinite(alpha) and 0.0 < alpha < 1.0):
        raise InvalidConfidenceLevelError(
            f"alpha must lie strictly between 0 and 1, got {alpha}"
        )
