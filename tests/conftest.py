"""
conftest.py - Pytest Configuration and Shared Fixtures

This file contains fixtures used across all test modules. Fixtures are
organized by category:
- Random number generators (for reproducibility)
- Matrices and vectors
- Simulated time series
- Tolerances
"""

import pytest
import numpy as np

from forecast_lab import (
    ArimaOrder,
    Matrix,
    TimeSeries,
    simulate_arima,
)


# =============================================================================
# RANDOM NUMBER GENERATORS
# =============================================================================

@pytest.fixture
def rng():
    """
    Provide a seeded random number generator for reproducible tests.

    All tests should use this fixture (or derive from it) to ensure
    reproducibility across runs.
    """
    return np.random.default_rng(seed=42)


# =============================================================================
# LINEAR ALGEBRA
# =============================================================================

@pytest.fixture
def square_matrix():
    """A well-conditioned, non-symmetric 3x3 matrix."""
    return Matrix.from_2d([
        [4.0, 1.0, 2.0],
        [1.0, 5.0, 3.0],
        [2.0, 0.0, 6.0],
    ])


@pytest.fixture
def spd_matrix(rng):
    """A random symmetric positive definite 4x4 matrix."""
    A = rng.normal(size=(4, 4))
    return Matrix.from_2d(A @ A.T + 4.0 * np.eye(4))


# =============================================================================
# TIME SERIES
# =============================================================================

@pytest.fixture
def ar1_series(rng):
    """
    400 observations of a stationary AR(1) with phi = 0.6, mean 5.

    Structure:
    - Innovation sd: 1.0
    - Burn-in: 100
    """
    return simulate_arima(ArimaOrder(1, 0, 0), 400, ar=[0.6], mean=5.0, rng=rng)


@pytest.fixture
def arima111_series(rng):
    """500 observations of an ARIMA(1,1,1) with phi = 0.5, theta = 0.3."""
    return simulate_arima(ArimaOrder(1, 1, 1), 500, ar=[0.5], ma=[0.3], rng=rng)


@pytest.fixture
def short_series():
    """A short hand-written series for exact checks."""
    return TimeSeries([1.0, 3.0, 2.0, 5.0, 4.0, 6.0, 5.5, 7.0, 6.5, 8.0, 7.0, 9.0])


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def tolerance():
    """Standard numerical tolerance for float comparisons."""
    return {"rtol": 1e-5, "atol": 1e-8}
