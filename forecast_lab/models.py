"""
models.py - Time Series Models: Fitting and Forecasting

This module provides:
- Model: Interface shared by fitted time-series models
- ArimaOrder: Validated (p, d, q) order
- ArimaObjective: Fit criterion (CSS or Gaussian likelihood) closing over
  a series
- ArimaModel: Fitted ARIMA model with fitted values, residuals and
  forecasts with confidence bounds
- fit_arima: Convenience entry point

Model Form:
----------
With ``w = (1 - B)^d y`` the differenced series,

    (w_t - mu) = sum_i phi_i (w_{t-i} - mu) + e_t + sum_j theta_j e_{t-j}

where ``e_t`` are i.i.d. N(0, sigma^2) innovations and ``mu`` is the mean of
the differenced series (omitted when ``constant=False``). Estimation is
conditional on the first ``p`` differenced values, with pre-sample
innovations set to zero.

Parameters are packed as ``[phi_1..phi_p, theta_1..theta_q, mu]``.

Example Usage:
-------------
    >>> from forecast_lab import ArimaOrder, fit_arima, simulate_arima
    >>>
    >>> y = simulate_arima(ArimaOrder(1, 0, 0), ar=[0.6], n=300, rng=rng)
    >>> model = fit_arima(y, ArimaOrder(1, 0, 0))
    >>> fc = model.forecast(10)
    >>> fc.steps, fc.alpha
    (10, 0.05)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import numpy as np
import scipy.signal
import scipy.stats
from loguru import logger

from .decomposition import covariance_from_hessian, numerical_hessian
from .estimation import hannan_rissanen
from .exceptions import (
    InvalidDimensionError,
    InvalidHorizonError,
    ModelFitError,
    ObjectiveEvaluationError,
    SingularMatrixError,
)
from .matrix import Matrix
from .objective import ObjectiveFunction
from .optimization import OPTIMIZERS, CancelSignal
from .timeseries import TimeSeries, integrate, integration_weights
from .types import (
    FitMethod,
    Forecast,
    OptimizationResult,
    OptimizerConfig,
    validate_alpha,
)


# =============================================================================
# MODEL INTERFACE
# =============================================================================

class Model(ABC):
    """
    A fitted time-series model.

    Implementations hold the observed series, the in-sample one-step-ahead
    predictions computed at fit time, and whatever parameters they need to
    forecast.
    """

    @abstractmethod
    def forecast(self, steps: int, alpha: float = 0.05) -> Forecast:
        """
        Forecast ``steps`` periods ahead with ``(1 - alpha)`` bounds.

        Raises
        ------
        InvalidHorizonError
            If ``steps <= 0``.
        InvalidConfidenceLevelError
            If ``alpha`` is not strictly between 0 and 1.
        """

    @abstractmethod
    def time_series(self) -> TimeSeries:
        """The observations the model was fitted to."""

    @abstractmethod
    def fitted_series(self) -> TimeSeries:
        """In-sample one-step-ahead predictions."""

    def prediction_errors(self) -> TimeSeries:
        """Observed minus fitted values; recomputed on each call."""
        return self.time_series().minus(self.fitted_series())


# =============================================================================
# ARIMA ORDER
# =============================================================================

@dataclass(frozen=True)
class ArimaOrder:
    """
    Order of an ARIMA(p, d, q) model.

    Parameters
    ----------
    p : int
        Autoregressive order.
    d : int
        Number of differences.
    q : int
        Moving-average order.
    constant : bool, default=True
        Estimate the mean of the differenced series (a drift when d > 0).
    """
    p: int = 0
    d: int = 0
    q: int = 0
    constant: bool = True

    def __post_init__(self):
        for name in ("p", "d", "q"):
            value = getattr(self, name)
            if not isinstance(value, (int, np.integer)) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    @property
    def n_params(self) -> int:
        """Number of estimated coefficients (excludes sigma^2)."""
        return self.p + self.q + int(self.constant)

    def parameter_names(self) -> List[str]:
        names = [f"ar{i}" for i in range(1, self.p + 1)]
        names += [f"ma{j}" for j in range(1, self.q + 1)]
        if self.constant:
            names.append("mean")
        return names

    def unpack(self, params: np.ndarray):
        """Split a packed parameter vector into ``(phi, theta, mu)``."""
        phi = params[: self.p]
        theta = params[self.p : self.p + self.q]
        mu = float(params[-1]) if self.constant else 0.0
        return phi, theta, mu

    def __str__(self) -> str:
        return f"ARIMA({self.p},{self.d},{self.q})"


# =============================================================================
# RECURSIONS
# =============================================================================

def arma_residuals(w: np.ndarray, order: ArimaOrder, params: np.ndarray) -> np.ndarray:
    """
    Conditional innovations ``e_t`` for ``t >= p``; earlier entries are 0.

    Explosive MA parameters can overflow; the caller checks finiteness.
    """
    phi, theta, mu = order.unpack(params)
    z = w - mu
    p = order.p
    u = z[p:].copy()
    for i in range(p):
        u -= phi[i] * z[p - 1 - i : len(z) - 1 - i]

    e = np.zeros(len(w))
    with np.errstate(over="ignore", invalid="ignore"):
        if order.q > 0:
            # e_t + theta_1 e_{t-1} + ... = u_t
            e[p:] = scipy.signal.lfilter([1.0], np.r_[1.0, theta], u)
        else:
            e[p:] = u
    return e


def psi_weights(phi: np.ndarray, theta: np.ndarray, d: int, n: int) -> np.ndarray:
    """
    First ``n`` MA(infinity) weights of the integrated ARMA process.

    The AR polynomial is ``phi(B) (1 - B)^d``.
    """
    ar_poly = np.r_[1.0, -np.asarray(phi, dtype=float)]
    for _ in range(d):
        ar_poly = np.convolve(ar_poly, [1.0, -1.0])
    ar_star = -ar_poly[1:]

    psi = np.zeros(n)
    psi[0] = 1.0
    for j in range(1, n):
        value = theta[j - 1] if j <= len(theta) else 0.0
        for i in range(1, min(j, len(ar_star)) + 1):
            value += ar_star[i - 1] * psi[j - i]
        psi[j] = value
    return psi


# =============================================================================
# OBJECTIVE
# =============================================================================

class ArimaObjective(ObjectiveFunction):
    """
    Fit criterion for an ARIMA model over a fixed differenced series.

    CSS returns the conditional sum of squared innovations. ML returns the
    concentrated Gaussian negative log-likelihood
    ``n/2 * (log(2 pi SSR / n) + 1)``. Parameters whose innovations
    overflow evaluate to ``+inf`` so the optimizer rejects them.

    Parameters
    ----------
    w : np.ndarray
        Differenced series.
    order : ArimaOrder
        Model order.
    method : FitMethod
        CSS or ML.
    """

    def __init__(self, w: np.ndarray, order: ArimaOrder, method: FitMethod):
        super().__init__(dimension=order.n_params)
        self.w = np.asarray(w, dtype=float)
        self.order = order
        self.method = FitMethod(method)
        self.n_effective = len(self.w) - order.p

    def sum_of_squares(self, params: np.ndarray) -> float:
        e = arma_residuals(self.w, self.order, params)
        with np.errstate(over="ignore", invalid="ignore"):
            ssr = float(np.dot(e, e))
        return ssr if math.isfinite(ssr) else math.inf

    def _evaluate(self, x: np.ndarray) -> float:
        ssr = self.sum_of_squares(x)
        if self.method == FitMethod.CSS or ssr == math.inf:
            return ssr
        n = self.n_effective
        # log(0) gives -inf for a perfect fit, which fails the run.
        with np.errstate(divide="ignore"):
            return 0.5 * n * (float(np.log(2.0 * np.pi * ssr / n)) + 1.0)


# =============================================================================
# ARIMA MODEL
# =============================================================================

class ArimaModel(Model):
    """
    A fitted ARIMA(p, d, q) model.

    Use ``ArimaModel.fit`` (or ``fit_arima``) to create one.

    Attributes
    ----------
    order : ArimaOrder
        Model order.
    method : FitMethod
        Criterion the parameters minimize.
    params : np.ndarray
        Packed parameters ``[phi.., theta.., mu]`` (read-only).
    sigma2 : float
        Innovation variance estimate ``SSR / n_effective``.
    covariance : np.ndarray
        Parameter covariance from the curvature at the optimum.
    optimization_result : OptimizationResult or None
        Optimizer outcome; None when the model has no free parameters.
    converged : bool
        False if the optimizer stopped at its iteration or evaluation limit.
    """

    def __init__(
        self,
        series: TimeSeries,
        order: ArimaOrder,
        params: np.ndarray,
        method: FitMethod,
        covariance: np.ndarray,
        optimization_result: Optional[OptimizationResult] = None,
    ):
        self._series = series
        self.order = order
        self.method = FitMethod(method)
        self.params = np.array(params, dtype=float)
        self.params.setflags(write=False)
        self.covariance = np.array(covariance, dtype=float).reshape(
            order.n_params, order.n_params
        )
        self.covariance.setflags(write=False)
        self.optimization_result = optimization_result

        y = series.to_numpy()
        self._w = np.diff(y, n=order.d) if order.d > 0 else y
        self._residuals = arma_residuals(self._w, order, self.params)
        self.n_effective = len(self._w) - order.p
        tail = self._residuals[order.p:]
        self.sigma2 = float(np.dot(tail, tail)) / self.n_effective
        self._fitted = TimeSeries(self._compute_fitted(y))

    # -------------------------------------------------------------------------
    # Fitting
    # -------------------------------------------------------------------------

    @classmethod
    def fit(
        cls,
        series: Union[TimeSeries, np.ndarray, List[float]],
        order: ArimaOrder,
        method: Union[FitMethod, str] = FitMethod.CSS,
        optimizer: str = "bfgs",
        config: Optional[OptimizerConfig] = None,
        cancel_event: Optional[CancelSignal] = None,
    ) -> "ArimaModel":
        """
        Fit an ARIMA model by minimizing the chosen criterion.

        Parameters
        ----------
        series : TimeSeries or array-like
            Observations, oldest first.
        order : ArimaOrder
            Model order.
        method : FitMethod or str, default=FitMethod.CSS
            "css" (sum of squares) or "ml" (Gaussian likelihood).
        optimizer : {"bfgs", "nelder-mead"}, default="bfgs"
            Optimization algorithm.
        config : OptimizerConfig, optional
            Optimizer settings. Bounds, if given, apply to the packed
            parameter vector and also constrain the starting values.
        cancel_event : CancelSignal, optional
            Cooperative cancellation signal, checked between iterations.

        Returns
        -------
        ArimaModel
            The fitted model. Check ``converged`` before trusting it.

        Raises
        ------
        InvalidDimensionError
            If the series is too short for the order.
        ModelFitError
            If the objective fails during optimization or the curvature at
            the optimum is singular.
        CancelledError
            If ``cancel_event`` was set during the run.
        """
        if not isinstance(series, TimeSeries):
            series = TimeSeries(series)
        method = FitMethod(method)
        if optimizer not in OPTIMIZERS:
            raise ValueError(
                f"Unknown optimizer: '{optimizer}'. Valid optimizers are: {sorted(OPTIMIZERS)}"
            )
        config = config if config is not None else OptimizerConfig()

        n_required = order.d + order.p + order.n_params + 2
        if len(series) < n_required:
            raise InvalidDimensionError(
                f"{order} needs at least {n_required} observations, got {len(series)}"
            )

        logger.info(f"Fitting {order} by {method.value.upper()} to {len(series)} observations")

        y = series.to_numpy()
        w = np.diff(y, n=order.d) if order.d > 0 else y
        if order.n_params == 0:
            logger.info(f"{order} without constant has no free parameters")
            return cls(series, order, np.empty(0), method, np.empty((0, 0)))

        objective = ArimaObjective(w, order, method)
        x0 = cls._starting_values(w, order, config)
        result = cls._optimize(objective, x0, optimizer, config, cancel_event)
        covariance = cls._parameter_covariance(objective, result, config)

        model = cls(series, order, result.point, method, covariance, result)
        if model.converged:
            logger.success(
                f"{order} fitted: sigma2={model.sigma2:.4g}, aic={model.aic:.2f}"
            )
        else:
            logger.warning(
                f"{order} installed non-converged parameters: {result.message}"
            )
        return model

    @staticmethod
    def _starting_values(
        w: np.ndarray, order: ArimaOrder, config: OptimizerConfig
    ) -> np.ndarray:
        k = order.n_params
        lower = config.lower_bounds(k)
        upper = config.upper_bounds(k)
        mu0 = float(np.mean(w)) if order.constant else 0.0
        n_coef = order.p + order.q

        coefs = hannan_rissanen(
            w - mu0, order.p, order.q, lower[:n_coef], upper[:n_coef]
        )
        x0 = np.r_[coefs, [mu0]] if order.constant else coefs
        return np.clip(x0, lower, upper)

    @staticmethod
    def _optimize(
        objective: ArimaObjective,
        x0: np.ndarray,
        optimizer: str,
        config: OptimizerConfig,
        cancel_event: Optional[CancelSignal],
    ) -> OptimizationResult:
        runner = OPTIMIZERS[optimizer](objective, config=config, cancel_event=cancel_event)
        try:
            return runner.minimize(x0)
        except ObjectiveEvaluationError as e:
            logger.error(f"{objective.order} fit failed: {e}")
            raise ModelFitError(
                f"{objective.order} fit failed after {e.iterations} iterations: {e}",
                point=e.point,
                iterations=e.iterations,
            ) from e

    @staticmethod
    def _parameter_covariance(
        objective: ArimaObjective,
        result: OptimizationResult,
        config: OptimizerConfig,
    ) -> np.ndarray:
        hessian = result.hessian
        if hessian is None:
            k = result.point.size
            hessian = numerical_hessian(
                objective,
                result.point,
                value=result.value,
                lower=config.lower_bounds(k),
                upper=config.upper_bounds(k),
            )

        if objective.method == FitMethod.CSS:
            # SSR = 2 sigma^2 * (negative log-likelihood) near the optimum
            scale = 2.0 * objective.sum_of_squares(result.point) / objective.n_effective
        else:
            scale = 1.0

        try:
            return covariance_from_hessian(hessian, scale=scale, epsilon=config.epsilon)
        except (SingularMatrixError, ValueError) as e:
            logger.error(f"{objective.order} curvature at the optimum is singular")
            raise ModelFitError(
                f"{objective.order} parameter covariance unavailable: {e}",
                point=result.point,
                iterations=result.iterations,
            ) from e

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def time_series(self) -> TimeSeries:
        return self._series

    def fitted_series(self) -> TimeSeries:
        return self._fitted

    @property
    def converged(self) -> bool:
        return self.optimization_result is None or self.optimization_result.converged

    @property
    def coefficients(self) -> Dict[str, float]:
        """Estimated coefficients keyed by name (``ar1``, ``ma1``, ``mean``)."""
        return dict(zip(self.order.parameter_names(), self.params.tolist()))

    @property
    def standard_errors(self) -> Dict[str, float]:
        se = np.sqrt(np.maximum(np.diag(self.covariance), 0.0))
        return dict(zip(self.order.parameter_names(), se.tolist()))

    @property
    def log_likelihood(self) -> float:
        """Conditional Gaussian log-likelihood at the estimates."""
        n = self.n_effective
        return -0.5 * n * (math.log(2.0 * math.pi * self.sigma2) + 1.0)

    @property
    def aic(self) -> float:
        """Akaike information criterion (sigma^2 counted as a parameter)."""
        return -2.0 * self.log_likelihood + 2.0 * (self.order.n_params + 1)

    def residuals(self) -> np.ndarray:
        """Innovations on the differenced scale (zero during warm-up)."""
        return self._residuals.copy()

    # -------------------------------------------------------------------------
    # Fitted values
    # -------------------------------------------------------------------------

    def _compute_fitted(self, y: np.ndarray) -> np.ndarray:
        """
        One-step-ahead predictions on the original scale.

        The first ``d`` observations cannot be predicted and are reproduced
        as observed; the next ``p`` use the estimated mean of the
        differenced series.
        """
        order = self.order
        _, _, mu = order.unpack(self.params)
        w_hat = self._w - self._residuals
        w_hat[: order.p] = mu

        d = order.d
        fitted = y.astype(float).copy()
        if d == 0:
            return w_hat

        weights = integration_weights(d)
        for t in range(d, len(y)):
            fitted[t] = w_hat[t - d] + sum(weights[k] * y[t - 1 - k] for k in range(d))
        return fitted

    # -------------------------------------------------------------------------
    # Forecasting
    # -------------------------------------------------------------------------

    def _point_forecast(self, params: np.ndarray, steps: int) -> np.ndarray:
        order = self.order
        phi, theta, mu = order.unpack(params)
        w = self._w
        e = arma_residuals(w, order, params)

        n = len(w)
        z = np.r_[w - mu, np.zeros(steps)]
        e = np.r_[e, np.zeros(steps)]
        for h in range(steps):
            t = n + h
            value = sum(phi[i] * z[t - 1 - i] for i in range(order.p))
            value += sum(theta[j] * e[t - 1 - j] for j in range(order.q) if t - 1 - j < n)
            z[t] = value

        w_forecast = z[n:] + mu
        return integrate(self._series.to_numpy(), w_forecast, order.d)

    def _parameter_variance(self, steps: int) -> np.ndarray:
        """Delta-method variance of each point forecast from parameter error."""
        k = self.order.n_params
        if k == 0:
            return np.zeros(steps)

        h = np.finfo(float).eps ** (1.0 / 3.0) * np.maximum(1.0, np.abs(self.params))
        gradient = np.empty((steps, k))
        for i in range(k):
            delta = np.zeros(k)
            delta[i] = h[i]
            with np.errstate(over="ignore", invalid="ignore"):
                up = self._point_forecast(self.params + delta, steps)
                down = self._point_forecast(self.params - delta, steps)
            gradient[:, i] = (up - down) / (2.0 * h[i])

        G = Matrix.create(steps, k, gradient)
        S = Matrix.create(k, k, self.covariance)
        variance = G.times(S).times(G.transpose()).diagonal()
        if not np.all(np.isfinite(variance)):
            logger.warning("Parameter contribution to forecast variance is not finite; ignoring it")
            return np.zeros(steps)
        return np.maximum(variance, 0.0)

    def forecast(self, steps: int, alpha: float = 0.05) -> Forecast:
        """
        Forecast ``steps`` periods past the end of the series.

        Interval variance combines innovation uncertainty,
        ``sigma^2 * sum(psi_j^2)`` over the integrated process, with the
        delta-method contribution of parameter uncertainty,
        ``g' Cov g`` where ``g`` is the gradient of the point forecast.

        Parameters
        ----------
        steps : int
            Forecast horizon, at least 1.
        alpha : float, default=0.05
            Significance level; bounds cover ``1 - alpha``.

        Returns
        -------
        Forecast
        """
        if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)) or steps <= 0:
            raise InvalidHorizonError(f"steps must be a positive integer, got {steps!r}")
        validate_alpha(alpha)

        steps = int(steps)
        phi, theta, _ = self.order.unpack(self.params)
        point = self._point_forecast(self.params, steps)

        psi = psi_weights(phi, theta, self.order.d, steps)
        innovation_var = self.sigma2 * np.cumsum(psi ** 2)
        se = np.sqrt(innovation_var + self._parameter_variance(steps))

        z = scipy.stats.norm.ppf(1.0 - alpha / 2.0)
        logger.debug(f"{self.order} forecast: steps={steps}, alpha={alpha}")
        return Forecast(
            point=point,
            lower=point - z * se,
            upper=point + z * se,
            standard_errors=se,
            alpha=float(alpha),
        )

    def __repr__(self) -> str:
        coefs = ", ".join(f"{k}={v:.4f}" for k, v in self.coefficients.items())
        return f"ArimaModel({self.order}, {coefs}, sigma2={self.sigma2:.4g})"


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def fit_arima(
    series: Union[TimeSeries, np.ndarray, List[float]],
    order: ArimaOrder,
    method: Union[FitMethod, str] = FitMethod.CSS,
    optimizer: str = "bfgs",
    config: Optional[OptimizerConfig] = None,
    cancel_event: Optional[CancelSignal] = None,
) -> ArimaModel:
    """
    Fit an ARIMA model. See ``ArimaModel.fit`` for details.

    Examples
    --------
    >>> model = fit_arima(series, ArimaOrder(1, 1, 1), method="ml")
    >>> fc = model.forecast(12, alpha=0.1)
    """
    return ArimaModel.fit(
        series,
        order,
        method=method,
        optimizer=optimizer,
        config=config,
        cancel_event=cancel_event,
    )
