"""
simulation.py - Monte Carlo Simulation of ARIMA Processes

This module provides tools for generating synthetic series from a known
ARIMA model:
- ArimaSimulator: Seeded generator with burn-in
- simulate_arima: Convenience function

Mathematical Background:
-----------------------
Given an ARIMA(p, d, q) model with mean ``mu`` on the differenced scale,

    (w_t - mu) = sum_i phi_i (w_{t-i} - mu) + e_t + sum_j theta_j e_{t-j}

with ``e_t ~ N(0, sigma^2)``, we simulate by:
1. Drawing ``n + burn`` innovations
2. Filtering them through ``theta(B) / phi(B)`` (scipy.signal.lfilter)
3. Discarding the first ``burn`` values so start-up effects die out
4. Adding ``mu`` and cumulatively summing ``d`` times

Example Usage:
-------------
    >>> from forecast_lab.simulation import ArimaSimulator
    >>> from forecast_lab.models import ArimaOrder
    >>>
    >>> rng = np.random.default_rng(42)
    >>> simulator = ArimaSimulator(ArimaOrder(1, 1, 1), ar=[0.5], ma=[0.3], rng=rng)
    >>> y = simulator.simulate(500)
    >>> len(y)
    500
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import scipy.signal
from loguru import logger

from .exceptions import InvalidDimensionError
from .models import ArimaOrder
from .timeseries import TimeSeries


# =============================================================================
# ARIMA SIMULATOR
# =============================================================================

class ArimaSimulator:
    """
    Generator of synthetic ARIMA series.

    Parameters
    ----------
    order : ArimaOrder
        Model order. ``ar`` and ``ma`` must have lengths ``p`` and ``q``.
    ar : sequence of float, optional
        AR coefficients ``phi_1..phi_p``.
    ma : sequence of float, optional
        MA coefficients ``theta_1..theta_q``.
    mean : float, default=0.0
        Mean of the differenced series (a drift when d > 0).
    sigma : float, default=1.0
        Innovation standard deviation.
    rng : np.random.Generator, optional
        Random number generator. If None, creates a new default RNG.

    Notes
    -----
    Stationarity is not checked. An explosive AR polynomial produces a
    series that grows without bound.
    """

    def __init__(
        self,
        order: ArimaOrder,
        ar: Optional[Sequence[float]] = None,
        ma: Optional[Sequence[float]] = None,
        mean: float = 0.0,
        sigma: float = 1.0,
        rng: Optional[np.random.Generator] = None,
    ):
        self.order = order
        self.ar = np.asarray(ar if ar is not None else [], dtype=float)
        self.ma = np.asarray(ma if ma is not None else [], dtype=float)
        self.mean = float(mean)
        self.sigma = float(sigma)
        self.rng = rng if rng is not None else np.random.default_rng()

        if self.ar.shape != (order.p,):
            raise InvalidDimensionError(
                f"{order} needs {order.p} AR coefficients, got {self.ar.size}"
            )
        if self.ma.shape != (order.q,):
            raise InvalidDimensionError(
                f"{order} needs {order.q} MA coefficients, got {self.ma.size}"
            )
        if not self.sigma > 0:
            raise ValueError(f"sigma must be positive, got {sigma}")

    def simulate(self, n: int, burn: int = 100) -> TimeSeries:
        """
        Simulate ``n`` observations.

        Parameters
        ----------
        n : int
            Number of observations to return.
        burn : int, default=100
            Number of leading values generated and discarded.

        Returns
        -------
        TimeSeries
            The simulated series on the original (undifferenced) scale.
        """
        if n <= 0:
            raise ValueError(f"n must be positive, got {n}")
        if burn < 0:
            raise ValueError(f"burn must be non-negative, got {burn}")

        e = self.rng.normal(0.0, self.sigma, size=n + burn)
        w = scipy.signal.lfilter(np.r_[1.0, self.ma], np.r_[1.0, -self.ar], e)[burn:]
        y = w + self.mean
        for _ in range(self.order.d):
            y = np.cumsum(y)

        logger.debug(f"Simulated {n} observations from {self.order} (burn={burn})")
        return TimeSeries(y)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def simulate_arima(
    order: ArimaOrder,
    n: int,
    ar: Optional[Sequence[float]] = None,
    ma: Optional[Sequence[float]] = None,
    mean: float = 0.0,
    sigma: float = 1.0,
    rng: Optional[np.random.Generator] = None,
    burn: int = 100,
) -> TimeSeries:
    """
    Convenience function to simulate an ARIMA series.

    Examples
    --------
    >>> y = simulate_arima(ArimaOrder(2, 0, 0), 300, ar=[0.5, -0.2], rng=rng)
    """
    simulator = ArimaSimulator(order, ar=ar, ma=ma, mean=mean, sigma=sigma, rng=rng)
    return simulator.simulate(n, burn=burn)
