"""
test_simulation.py - Tests for ARIMA Simulation

Tests cover:
- Output length and type
- Reproducibility with seeded generators
- Sample moments of stationary processes
- Integration (d > 0) and drift
- Argument validation
"""

import pytest
import numpy as np

from forecast_lab import (
    ArimaOrder,
    ArimaSimulator,
    InvalidDimensionError,
    TimeSeries,
    simulate_arima,
)


class TestArimaSimulator:
    """Tests for ArimaSimulator."""

    def test_length_and_type(self, rng):
        y = ArimaSimulator(ArimaOrder(1, 0, 1), ar=[0.5], ma=[0.2], rng=rng).simulate(250)

        assert isinstance(y, TimeSeries)
        assert len(y) == 250

    def test_reproducible(self):
        order = ArimaOrder(2, 0, 0)
        a = simulate_arima(order, 100, ar=[0.5, -0.2], rng=np.random.default_rng(7))
        b = simulate_arima(order, 100, ar=[0.5, -0.2], rng=np.random.default_rng(7))

        assert a == b

    def test_white_noise_moments(self, rng):
        y = simulate_arima(ArimaOrder(0, 0, 0), 5000, mean=2.0, sigma=3.0, rng=rng)

        assert y.mean() == pytest.approx(2.0, abs=0.15)
        assert np.sqrt(y.variance()) == pytest.approx(3.0, rel=0.05)

    def test_ar1_lag_one_correlation(self, rng):
        y = simulate_arima(ArimaOrder(1, 0, 0), 5000, ar=[0.7], rng=rng).observations()
        r1 = np.corrcoef(y[1:], y[:-1])[0, 1]

        assert r1 == pytest.approx(0.7, abs=0.05)

    def test_integrated_differences_are_stationary(self, rng):
        """Differencing a simulated ARIMA(0,1,0) gives back white noise."""
        y = simulate_arima(ArimaOrder(0, 1, 0), 3000, mean=0.5, rng=rng)
        w = y.difference()

        assert w.mean() == pytest.approx(0.5, abs=0.1)
        assert w.variance() == pytest.approx(1.0, rel=0.1)

    def test_twice_integrated(self, rng):
        y = simulate_arima(ArimaOrder(0, 2, 0), 50, rng=rng)
        assert len(y.difference(times=2)) == 48

    def test_no_burn(self, rng):
        y = ArimaSimulator(ArimaOrder(0, 0, 0), rng=rng).simulate(10, burn=0)
        assert len(y) == 10


class TestValidation:
    """Tests for argument validation."""

    def test_wrong_ar_length(self, rng):
        with pytest.raises(InvalidDimensionError, match="AR"):
            ArimaSimulator(ArimaOrder(2, 0, 0), ar=[0.5], rng=rng)

    def test_wrong_ma_length(self, rng):
        with pytest.raises(InvalidDimensionError, match="MA"):
            ArimaSimulator(ArimaOrder(0, 0, 1), rng=rng)

    def test_non_positive_sigma(self, rng):
        with pytest.raises(ValueError, match="sigma"):
            ArimaSimulator(ArimaOrder(0, 0, 0), sigma=0.0, rng=rng)

    def test_invalid_length(self, rng):
        simulator = ArimaSimulator(ArimaOrder(0, 0, 0), rng=rng)
        with pytest.raises(ValueError, match="positive"):
            simulator.simulate(0)
        with pytest.raises(ValueError, match="burn"):
            simulator.simulate(10, burn=-1)
