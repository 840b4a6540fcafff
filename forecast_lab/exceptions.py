"""
exceptions.py - Error Taxonomy for forecast_lab

Construction-time validation errors (bad dimensions, bad indices, bad
horizons) subclass the matching builtin (``ValueError``, ``IndexError``) so
callers can catch them either way. Numerical failures raised while
optimizing carry enough context (last valid point, iteration count) to
diagnose the run.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


class ForecastLabError(Exception):
    """Base class for all errors raised by forecast_lab."""


# =============================================================================
# SUBSTRATE ERRORS
# =============================================================================

class InvalidDimensionError(ForecastLabError, ValueError):
    """Declared dimensions do not match the amount of data supplied."""


class DimensionMismatchError(ForecastLabError, ValueError):
    """Operands of a binary operation have incompatible shapes."""


class IndexOutOfRangeError(ForecastLabError, IndexError):
    """An element index lies outside the container."""


class SingularMatrixError(ForecastLabError, ArithmeticError):
    """A linear system is singular (or nearly so) at the requested tolerance."""


# =============================================================================
# OPTIMIZATION ERRORS
# =============================================================================

class _RunError(ForecastLabError, RuntimeError):
    """Error that remembers where an iterative run stopped."""

    def __init__(
        self,
        message: str,
        point: Optional[np.ndarray] = None,
        iterations: int = 0,
    ):
        super().__init__(message)
        self.point = None if point is None else np.array(point, dtype=float)
        self.iterations = iterations


class ObjectiveEvaluationError(_RunError):
    """
    The objective raised or produced a non-finite value.

    Attributes
    ----------
    point : np.ndarray or None
        Last point at which the objective evaluated to a finite value.
    value : float or None
        Objective value at ``point``.
    iterations : int
        Iterations completed before the failure.
    """

    def __init__(
        self,
        message: str,
        point: Optional[np.ndarray] = None,
        value: Optional[float] = None,
        iterations: int = 0,
    ):
        super().__init__(message, point=point, iterations=iterations)
        self.value = value


class CancelledError(_RunError):
    """An optimization run observed its cancellation signal."""


class ModelFitError(_RunError):
    """Fitting a model failed; ``__cause__`` holds the underlying error."""


# =============================================================================
# FORECAST ERRORS
# =============================================================================

class InvalidHorizonError(ForecastLabError, ValueError):
    """Forecast horizon must be a positive number of steps."""


class InvalidConfidenceLevelError(ForecastLabError, ValueError):
    """Significance level alpha must lie strictly between 0 and 1."""
