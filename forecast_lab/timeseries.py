"""
timeseries.py - Immutable Time Series Values

A TimeSeries is a Vector of observations in time order. Arithmetic between
series returns a series, so ``observed - fitted`` stays a TimeSeries.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np
from scipy.special import comb

from .exceptions import InvalidDimensionError
from .matrix import Vector


class TimeSeries(Vector):
    """
    Observations of a single variable, oldest first.

    Parameters
    ----------
    observations : sequence of float
        The observed values.

    Examples
    --------
    >>> y = TimeSeries([1.0, 3.0, 6.0, 10.0])
    >>> y.difference().observations()
    array([2., 3., 4.])
    >>> y.difference(times=2).observations()
    array([1., 1.])
    """

    __slots__ = ()

    def __init__(self, observations: Union[Sequence[float], np.ndarray, Vector] = ()):
        if isinstance(observations, Vector):
            observations = observations.to_numpy()
        super().__init__(observations)

    def observations(self) -> np.ndarray:
        """Copy of the observed values."""
        return self.elements()

    def mean(self) -> float:
        self._require_non_empty("average")
        return float(self.to_numpy().mean())

    def variance(self) -> float:
        """Sample variance (``n - 1`` denominator)."""
        if len(self) < 2:
            raise InvalidDimensionError("variance needs at least 2 observations")
        return float(np.var(self.to_numpy(), ddof=1))

    def difference(self, lag: int = 1, times: int = 1) -> "TimeSeries":
        """
        Apply the lag-``lag`` difference operator ``times`` times.

        Each application shortens the series by ``lag`` observations.

        Raises
        ------
        ValueError
            If ``lag`` or ``times`` is negative, or ``lag`` is zero.
        InvalidDimensionError
            If the series is too short to difference.
        """
        if lag <= 0:
            raise ValueError(f"lag must be positive, got {lag}")
        if times < 0:
            raise ValueError(f"times must be non-negative, got {times}")
        if len(self) <= lag * times:
            raise InvalidDimensionError(
                f"series of length {len(self)} is too short to difference "
                f"{times} time(s) at lag {lag}"
            )

        values = self.to_numpy()
        for _ in range(times):
            values = values[lag:] - values[:-lag]
        return TimeSeries(values)

    def __repr__(self) -> str:
        return f"TimeSeries(n={len(self)})"


def integration_weights(d: int) -> np.ndarray:
    """
    Weights ``c_k`` with ``y_t = w_t + sum_k c_k y_{t-k}`` for ``w = (1-B)^d y``.

    ``c_k = (-1)^(k+1) * C(d, k)`` for ``k = 1..d``.

    >>> integration_weights(2)
    array([ 2., -1.])
    """
    k = np.arange(1, d + 1)
    return (-1.0) ** (k + 1) * comb(d, k)


def integrate(history: np.ndarray, differenced: np.ndarray, d: int) -> np.ndarray:
    """
    Undo ``d``-fold differencing for values that follow ``history``.

    Parameters
    ----------
    history : np.ndarray
        Observed series up to the forecast origin (at least ``d`` values).
    differenced : np.ndarray
        Values on the differenced scale for the periods after ``history``.
    d : int
        Order of differencing.

    Returns
    -------
    np.ndarray
        Values on the original scale, same length as ``differenced``.
    """
    if d == 0:
        return np.array(differenced, dtype=float)
    if len(history) < d:
        raise InvalidDimensionError(
            f"need at least {d} past observations to integrate, got {len(history)}"
        )

    weights = integration_weights(d)
    extended = list(history[-d:])
    out = np.empty(len(differenced))
    for h, w in enumerate(differenced):
        value = w + sum(weights[k] * extended[-1 - k] for k in range(d))
        extended.append(value)
        out[h] = value
    return out
