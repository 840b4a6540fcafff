"""
optimization.py - Iterative Minimizers for Scalar Objectives

This module provides the optimization engine used to fit model parameters:
- NelderMeadOptimizer: Derivative-free downhill simplex
- BFGSOptimizer: Quasi-Newton descent with finite-difference gradients
- minimize: Convenience entry point selecting a method by name

Run Lifecycle:
-------------
Each optimizer instance performs one run and walks the state machine

    INITIALIZED -> ITERATING -> CONVERGED
                             -> MAX_ITERATIONS_EXCEEDED
                             -> FAILED      (raises ObjectiveEvaluationError)
                             -> CANCELLED   (raises CancelledError)

MAX_ITERATIONS_EXCEEDED is a normal outcome: the result carries the best
point found and ``result.converged`` is False. Exhausting
``max_evaluations`` ends the run the same way.

The final Hessian counts against ``max_evaluations`` and keeps its stencil
inside the bounds. It is omitted when the remaining budget cannot cover it.

Non-finite Values:
-----------------
NaN (or -inf) from the objective fails the run. +inf at a trial point is
read as "outside the feasible region" and the trial is rejected, so an
objective may return ``np.inf`` to steer the search away from invalid
parameters. The starting point must evaluate to a finite value.

Example Usage:
-------------
    >>> from forecast_lab.objective import ExpSin
    >>> from forecast_lab.optimization import minimize
    >>> from forecast_lab.types import OptimizerConfig
    >>>
    >>> config = OptimizerConfig(tolerance=1e-8, bounds=[(0.0, 2 * np.pi)])
    >>> result = minimize(ExpSin(), [1.0], method="bfgs", config=config)
    >>> result.converged, round(result.point[0], 4)
    (True, 0.7854)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Protocol, Tuple, Type

import numpy as np
from loguru import logger

from .decomposition import numerical_hessian
from .exceptions import (
    CancelledError,
    DimensionMismatchError,
    InvalidDimensionError,
    ObjectiveEvaluationError,
)
from .objective import ObjectiveFunction, as_point, numerical_gradient
from .types import OptimizationResult, OptimizerConfig, OptimizerStatus, PointLike


class CancelSignal(Protocol):
    """Anything with ``is_set()``; ``threading.Event`` qualifies."""

    def is_set(self) -> bool: ...


class _EvaluationBudgetExhausted(Exception):
    """Internal: ``max_evaluations`` reached mid-iteration."""


def _rank_key(value: float, point: np.ndarray) -> Tuple[float, float]:
    # Equal values are ordered by the smaller parameter norm.
    return (value, float(np.linalg.norm(point)))


# =============================================================================
# BASE OPTIMIZER
# =============================================================================

class Optimizer(ABC):
    """
    Shared machinery for single-run minimizers.

    Parameters
    ----------
    objective : ObjectiveFunction
        Function to minimize. It is owned by this run while ``minimize``
        executes; its evaluation counter is read to report usage.
    config : OptimizerConfig, optional
        Tolerance, limits and bounds. Defaults to ``OptimizerConfig()``.
    cancel_event : CancelSignal, optional
        Checked between iterations; once set, the run stops with
        CancelledError.

    Attributes
    ----------
    status : OptimizerStatus
        Current state of the run.
    iterations : int
        Iterations completed so far.
    """

    method: str = "abstract"

    def __init__(
        self,
        objective: ObjectiveFunction,
        config: Optional[OptimizerConfig] = None,
        cancel_event: Optional[CancelSignal] = None,
    ):
        self.objective = objective
        self.config = config if config is not None else OptimizerConfig()
        self.cancel_event = cancel_event
        self.status = OptimizerStatus.INITIALIZED
        self.iterations = 0

        self._start_evaluations = 0
        self._best_point: Optional[np.ndarray] = None
        self._best_value: Optional[float] = None
        self._lower: Optional[np.ndarray] = None
        self._upper: Optional[np.ndarray] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def evaluations(self) -> int:
        """Objective evaluations made by this run so far."""
        return self.objective.evaluations - self._start_evaluations

    def minimize(self, initial_point: PointLike) -> OptimizationResult:
        """
        Run the minimizer from ``initial_point``.

        Parameters
        ----------
        initial_point : array-like
            Starting point. Projected into the bounds if it lies outside.

        Returns
        -------
        OptimizationResult
            Best point, value, status (CONVERGED or MAX_ITERATIONS_EXCEEDED),
            iteration and evaluation counts, and optionally the Hessian.

        Raises
        ------
        ObjectiveEvaluationError
            If the objective raises or returns NaN/-inf (FAILED).
        CancelledError
            If the cancel signal was set (CANCELLED).
        RuntimeError
            If this optimizer has already been used.
        """
        if self.status != OptimizerStatus.INITIALIZED:
            raise RuntimeError(
                f"{type(self).__name__} has already run (status={self.status.value}). "
                "Create a new optimizer for each run."
            )

        x0 = as_point(initial_point)
        if x0.size == 0:
            raise InvalidDimensionError("initial point must have at least one element")
        dim = x0.size
        self._lower = self.config.lower_bounds(dim)
        self._upper = self.config.upper_bounds(dim)
        x0 = self._project(x0)

        self.status = OptimizerStatus.ITERATING
        self._start_evaluations = self.objective.evaluations
        logger.info(
            f"Starting {self.method} minimization: dim={dim}, "
            f"tol={self.config.tolerance:g}, max_iter={self.config.max_iterations}"
        )

        try:
            status, message, metadata = self._run(x0)
        except _EvaluationBudgetExhausted:
            status = OptimizerStatus.MAX_ITERATIONS_EXCEEDED
            message = f"evaluation limit ({self.config.max_evaluations}) reached"
            metadata = {}
        except ObjectiveEvaluationError as e:
            self.status = OptimizerStatus.FAILED
            logger.error(f"{self.method} failed after {self.iterations} iterations: {e}")
            raise
        except CancelledError:
            self.status = OptimizerStatus.CANCELLED
            logger.warning(f"{self.method} cancelled after {self.iterations} iterations")
            raise

        hessian = self._final_hessian() if self.config.compute_hessian else None

        self.status = status
        result = OptimizationResult(
            point=self._best_point,
            value=self._best_value,
            status=status,
            iterations=self.iterations,
            evaluations=self.evaluations,
            hessian=hessian,
            message=message,
            metadata={"method": self.method, **metadata},
        )

        if result.converged:
            logger.success(
                f"{self.method} converged in {self.iterations} iterations "
                f"({result.evaluations} evaluations), f={result.value:.6g}"
            )
        else:
            logger.warning(f"{self.method} did not converge: {message}")
        return result

    # -------------------------------------------------------------------------
    # Hooks for subclasses
    # -------------------------------------------------------------------------

    @abstractmethod
    def _run(self, x0: np.ndarray) -> Tuple[OptimizerStatus, str, Dict]:
        """Iterate from ``x0``; return (terminal status, message, metadata)."""

    def _project(self, x: np.ndarray) -> np.ndarray:
        return self.config.project(x)

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancelledError(
                f"{self.method} cancelled",
                point=self._best_point,
                iterations=self.iterations,
            )

    def _evaluate(
        self,
        x: np.ndarray,
        candidate: bool = True,
        allow_infinite: bool = True,
    ) -> float:
        """
        Evaluate the objective through the run's bookkeeping.

        Parameters
        ----------
        x : np.ndarray
            Point to evaluate.
        candidate : bool
            Whether ``x`` competes for the best point (gradient stencil
            points do not).
        allow_infinite : bool
            Accept ``+inf`` as a rejected trial instead of failing.
        """
        if self.evaluations >= self.config.max_evaluations:
            raise _EvaluationBudgetExhausted()

        try:
            value = self.objective.at(x)
        except (InvalidDimensionError, DimensionMismatchError):
            raise
        except Exception as e:
            raise self._failure(f"objective raised {type(e).__name__}: {e}") from e

        if math.isnan(value) or value == -math.inf:
            raise self._failure(f"objective returned {value} at {x.tolist()}")
        if value == math.inf and not allow_infinite:
            raise self._failure(f"objective is infinite at {x.tolist()}")

        if candidate and math.isfinite(value):
            if self._best_value is None or _rank_key(value, x) < _rank_key(
                self._best_value, self._best_point
            ):
                self._best_point = np.array(x, dtype=float)
                self._best_value = value
        return value

    def _gradient(self, x: np.ndarray, value: float) -> np.ndarray:
        grad = numerical_gradient(
            _CheckedObjective(self), x, lower=self._lower, upper=self._upper, value=value
        )
        if not np.all(np.isfinite(grad)):
            raise self._failure(f"gradient is not finite at {x.tolist()}")
        return grad

    def _failure(self, message: str) -> ObjectiveEvaluationError:
        return ObjectiveEvaluationError(
            message,
            point=self._best_point,
            value=self._best_value,
            iterations=self.iterations,
        )

    def _final_hessian(self) -> Optional[np.ndarray]:
        n = self._best_point.size
        # shifted centre + 2 per axis + 4 per off-diagonal pair
        cost = 1 + 2 * n * n
        if self.evaluations + cost > self.config.max_evaluations:
            logger.warning(
                f"evaluation limit leaves no room for the Hessian ({cost} evaluations); "
                "omitting it"
            )
            return None

        try:
            hessian = numerical_hessian(
                self.objective,
                self._best_point,
                value=self._best_value,
                lower=self._lower,
                upper=self._upper,
            )
        except (InvalidDimensionError, DimensionMismatchError):
            raise
        except Exception as e:
            self.status = OptimizerStatus.FAILED
            raise self._failure(
                f"objective raised {type(e).__name__} while estimating the Hessian: {e}"
            ) from e

        if not np.all(np.isfinite(hessian)):
            logger.warning("Hessian at the optimum is not finite; omitting it")
            return None
        return hessian


class _CheckedObjective(ObjectiveFunction):
    """Routes gradient stencil evaluations through the optimizer's checks."""

    def __init__(self, optimizer: Optimizer):
        super().__init__()
        self._optimizer = optimizer

    def _evaluate(self, x: np.ndarray) -> float:
        return self._optimizer._evaluate(np.array(x), candidate=False)


# =============================================================================
# NELDER-MEAD
# =============================================================================

class NelderMeadOptimizer(Optimizer):
    """
    Downhill simplex method of Nelder and Mead.

    Uses the standard coefficients (reflection 1, expansion 2, contraction
    0.5, shrink 0.5). Vertices are ranked by objective value, with ties
    broken by smaller parameter norm so runs are reproducible. Bounds are
    enforced by projecting every trial vertex into the box.

    Convergence: the spread of objective values across the simplex is at
    most ``tolerance * max(1, |f_best|)``, or the simplex diameter is at
    most ``tolerance``.

    Examples
    --------
    >>> from forecast_lab.objective import Rosenbrock
    >>> opt = NelderMeadOptimizer(Rosenbrock(), OptimizerConfig(tolerance=1e-10))
    >>> result = opt.minimize([-1.2, 1.0])
    >>> np.allclose(result.point, [1.0, 1.0], atol=1e-3)
    True
    """

    method = "nelder-mead"

    REFLECT = 1.0
    EXPAND = 2.0
    CONTRACT = 0.5
    SHRINK = 0.5

    def _initial_simplex(self, x0: np.ndarray) -> List[np.ndarray]:
        step = self.config.initial_step
        vertices = [x0]
        for i in range(x0.size):
            delta = step * abs(x0[i]) if x0[i] != 0.0 else step
            v = x0.copy()
            v[i] = x0[i] + delta
            if v[i] > self._upper[i]:
                v[i] = x0[i] - delta
            v = self._project(v)
            if np.array_equal(v, x0):
                raise InvalidDimensionError(
                    f"cannot build a simplex: dimension {i} has no room inside its bounds"
                )
            vertices.append(v)
        return vertices

    def _run(self, x0: np.ndarray) -> Tuple[OptimizerStatus, str, Dict]:
        tol = self.config.tolerance
        points = self._initial_simplex(x0)
        values = [self._evaluate(points[0], allow_infinite=False)]
        values += [self._evaluate(p) for p in points[1:]]

        while True:
            order = sorted(
                range(len(points)), key=lambda k: _rank_key(values[k], points[k])
            )
            points = [points[k] for k in order]
            values = [values[k] for k in order]

            spread = values[-1] - values[0]
            diameter = max(np.linalg.norm(p - points[0]) for p in points[1:])
            metadata = {"value_spread": spread, "simplex_diameter": diameter}
            if spread <= tol * max(1.0, abs(values[0])):
                return OptimizerStatus.CONVERGED, "objective spread below tolerance", metadata
            if diameter <= tol:
                return OptimizerStatus.CONVERGED, "simplex size below tolerance", metadata
            if self.iterations >= self.config.max_iterations:
                return (
                    OptimizerStatus.MAX_ITERATIONS_EXCEEDED,
                    f"iteration limit ({self.config.max_iterations}) reached",
                    metadata,
                )

            self._check_cancelled()
            self._step(points, values)
            self.iterations += 1
            logger.trace(f"{self.method} iter {self.iterations}: f={values[0]:.10g}")

    def _step(self, points: List[np.ndarray], values: List[float]) -> None:
        """One reflect/expand/contract/shrink move; updates lists in place."""
        best, worst, second_worst = values[0], values[-1], values[-2]
        centroid = np.mean(points[:-1], axis=0)

        reflected = self._project(centroid + self.REFLECT * (centroid - points[-1]))
        f_reflected = self._evaluate(reflected)

        if f_reflected < best:
            expanded = self._project(centroid + self.EXPAND * (centroid - points[-1]))
            f_expanded = self._evaluate(expanded)
            if f_expanded < f_reflected:
                points[-1], values[-1] = expanded, f_expanded
            else:
                points[-1], values[-1] = reflected, f_reflected
            return

        if f_reflected < second_worst:
            points[-1], values[-1] = reflected, f_reflected
            return

        if f_reflected < worst:
            # Outside contraction
            contracted = self._project(
                centroid + self.CONTRACT * (reflected - centroid)
            )
            f_contracted = self._evaluate(contracted)
            if f_contracted <= f_reflected:
                points[-1], values[-1] = contracted, f_contracted
                return
        else:
            # Inside contraction
            contracted = self._project(
                centroid + self.CONTRACT * (points[-1] - centroid)
            )
            f_contracted = self._evaluate(contracted)
            if f_contracted < worst:
                points[-1], values[-1] = contracted, f_contracted
                return

        for k in range(1, len(points)):
            points[k] = self._project(points[0] + self.SHRINK * (points[k] - points[0]))
            values[k] = self._evaluate(points[k])


# =============================================================================
# BFGS
# =============================================================================

class BFGSOptimizer(Optimizer):
    """
    Broyden-Fletcher-Goldfarb-Shanno quasi-Newton method.

    Gradients are central finite differences (one-sided at active bounds),
    so each gradient costs ``2 n`` evaluations. Steps come from a
    backtracking Armijo line search along the quasi-Newton direction, with
    trial points projected into the bounds. The inverse-Hessian update is
    skipped when the curvature condition ``s.y > 0`` fails.

    Convergence: successive objective values differ by at most
    ``tolerance * max(1, |f|)``, the step norm is at most ``tolerance``,
    or the projected gradient norm is at most ``tolerance``.
    """

    method = "bfgs"

    ARMIJO = 1e-4
    BACKTRACK = 0.5

    def _projected_gradient_norm(self, x: np.ndarray, g: np.ndarray) -> float:
        return float(np.linalg.norm(self._project(x - g) - x))

    def _run(self, x0: np.ndarray) -> Tuple[OptimizerStatus, str, Dict]:
        tol = self.config.tolerance
        n = x0.size
        x = x0
        f = self._evaluate(x, allow_infinite=False)
        g = self._gradient(x, f)
        H_inv = np.eye(n)
        step_norm = np.inf

        while True:
            grad_norm = self._projected_gradient_norm(x, g)
            metadata = {"gradient_norm": grad_norm, "step_norm": step_norm}
            if grad_norm <= tol:
                return OptimizerStatus.CONVERGED, "gradient norm below tolerance", metadata
            if self.iterations >= self.config.max_iterations:
                return (
                    OptimizerStatus.MAX_ITERATIONS_EXCEEDED,
                    f"iteration limit ({self.config.max_iterations}) reached",
                    metadata,
                )

            self._check_cancelled()

            direction = -H_inv @ g
            if g @ direction >= 0.0:
                # Not a descent direction; restart from steepest descent.
                H_inv = np.eye(n)
                direction = -g
            if self.iterations == 0:
                direction = direction / max(1.0, float(np.linalg.norm(direction)))

            x_new, f_new = self._line_search(x, f, g, direction)
            self.iterations += 1
            s = x_new - x
            step_norm = float(np.linalg.norm(s))
            logger.trace(
                f"{self.method} iter {self.iterations}: f={f_new:.10g}, step={step_norm:.3g}"
            )

            if f_new >= f or step_norm <= tol:
                metadata["step_norm"] = step_norm
                return OptimizerStatus.CONVERGED, "step size below tolerance", metadata

            g_new = self._gradient(x_new, f_new)
            converged = abs(f - f_new) <= tol * max(1.0, abs(f))

            y = g_new - g
            sy = float(s @ y)
            if sy > 1e-10 * np.linalg.norm(s) * np.linalg.norm(y):
                rho = 1.0 / sy
                identity = np.eye(n)
                H_inv = (identity - rho * np.outer(s, y)) @ H_inv @ (
                    identity - rho * np.outer(y, s)
                ) + rho * np.outer(s, s)

            x, f, g = x_new, f_new, g_new
            if converged:
                metadata["step_norm"] = step_norm
                return (
                    OptimizerStatus.CONVERGED,
                    "objective change below tolerance",
                    metadata,
                )

    def _line_search(
        self,
        x: np.ndarray,
        f: float,
        g: np.ndarray,
        direction: np.ndarray,
    ) -> Tuple[np.ndarray, float]:
        """
        Backtrack from a unit step until the Armijo condition holds.

        Returns ``(x, f)`` unchanged when the step shrinks below tolerance
        without sufficient decrease.
        """
        t = 1.0
        while True:
            x_trial = self._project(x + t * direction)
            s = x_trial - x
            if np.linalg.norm(s) <= self.config.tolerance:
                return x, f
            f_trial = self._evaluate(x_trial)
            if f_trial <= f + self.ARMIJO * float(g @ s):
                return x_trial, f_trial
            t *= self.BACKTRACK


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

OPTIMIZERS: Dict[str, Type[Optimizer]] = {
    NelderMeadOptimizer.method: NelderMeadOptimizer,
    BFGSOptimizer.method: BFGSOptimizer,
}


def minimize(
    objective: ObjectiveFunction,
    initial_point: PointLike,
    method: str = "nelder-mead",
    config: Optional[OptimizerConfig] = None,
    cancel_event: Optional[CancelSignal] = None,
) -> OptimizationResult:
    """
    Minimize ``objective`` from ``initial_point`` with the named method.

    Parameters
    ----------
    objective : ObjectiveFunction
        Function to minimize.
    initial_point : array-like
        Starting point.
    method : {"nelder-mead", "bfgs"}, default="nelder-mead"
        Optimization algorithm.
    config : OptimizerConfig, optional
        Tolerance, limits and bounds.
    cancel_event : CancelSignal, optional
        Cooperative cancellation signal.

    Returns
    -------
    OptimizationResult

    Raises
    ------
    ValueError
        If ``method`` is unknown.

    Examples
    --------
    >>> from forecast_lab.objective import Sphere
    >>> result = minimize(Sphere(), [3.0, -4.0], method="bfgs")
    >>> result.converged
    True
    """
    try:
        optimizer_cls = OPTIMIZERS[method]
    except KeyError:
        raise ValueError(
            f"Unknown method: '{method}'. Valid methods are: {sorted(OPTIMIZERS)}"
        ) from None
    return optimizer_cls(objective, config=config, cancel_event=cancel_event).minimize(
        initial_point
    )
