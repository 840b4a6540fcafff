"""
test_timeseries.py - Tests for TimeSeries and Integration Helpers

Tests cover:
- TimeSeries as an immutable Vector
- Differencing at any lag and order
- Integration weights and undoing differences
"""

import pytest
import numpy as np

from forecast_lab import TimeSeries, Vector, InvalidDimensionError
from forecast_lab.timeseries import integrate, integration_weights


class TestTimeSeries:
    """Tests for TimeSeries."""

    def test_is_vector(self):
        y = TimeSeries([1.0, 2.0])
        assert isinstance(y, Vector)
        assert len(y) == 2

    def test_from_vector(self):
        y = TimeSeries(Vector([1.0, 2.0, 3.0]))
        assert np.array_equal(y.observations(), [1.0, 2.0, 3.0])

    def test_arithmetic_keeps_type(self):
        """observed - fitted stays a TimeSeries."""
        diff = TimeSeries([3.0, 4.0]) - TimeSeries([1.0, 1.0])

        assert isinstance(diff, TimeSeries)
        assert np.array_equal(diff.observations(), [2.0, 3.0])

    def test_mean_and_variance(self, short_series):
        values = short_series.observations()

        assert short_series.mean() == pytest.approx(values.mean())
        assert short_series.variance() == pytest.approx(values.var(ddof=1))

    def test_variance_needs_two(self):
        with pytest.raises(InvalidDimensionError):
            TimeSeries([1.0]).variance()

    def test_empty_mean(self):
        with pytest.raises(InvalidDimensionError):
            TimeSeries([]).mean()


class TestDifference:
    """Tests for TimeSeries.difference."""

    def test_first_difference(self):
        y = TimeSeries([1.0, 3.0, 6.0, 10.0])
        assert np.array_equal(y.difference().observations(), [2.0, 3.0, 4.0])

    def test_second_difference(self):
        y = TimeSeries([1.0, 3.0, 6.0, 10.0])
        assert np.array_equal(y.difference(times=2).observations(), [1.0, 1.0])

    def test_seasonal_lag(self):
        y = TimeSeries([1.0, 2.0, 3.0, 5.0, 7.0, 9.0])
        assert np.array_equal(y.difference(lag=3).observations(), [4.0, 5.0, 6.0])

    def test_zero_times_is_identity(self, short_series):
        assert short_series.difference(times=0) == short_series

    def test_too_short(self):
        with pytest.raises(InvalidDimensionError, match="too short"):
            TimeSeries([1.0, 2.0]).difference(times=2)

    def test_invalid_arguments(self, short_series):
        with pytest.raises(ValueError, match="lag"):
            short_series.difference(lag=0)
        with pytest.raises(ValueError, match="times"):
            short_series.difference(times=-1)


class TestIntegration:
    """Tests for integration_weights and integrate."""

    def test_weights(self):
        assert np.array_equal(integration_weights(1), [1.0])
        assert np.array_equal(integration_weights(2), [2.0, -1.0])
        assert np.array_equal(integration_weights(3), [3.0, -3.0, 1.0])

    @pytest.mark.parametrize("d", [0, 1, 2])
    def test_undoes_difference(self, rng, d):
        """Integrating the tail of the differences rebuilds the tail of y."""
        y = np.cumsum(rng.normal(size=30))
        w = np.diff(y, n=d) if d else y
        split = 20

        rebuilt = integrate(y[:split], w[split - d:], d)

        assert np.allclose(rebuilt, y[split:])

    def test_needs_history(self):
        with pytest.raises(InvalidDimensionError):
            integrate(np.array([1.0]), np.array([0.5]), 2)
