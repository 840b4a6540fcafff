"""
test_decomposition.py - Tests for LU/Cholesky Solves and Curvature

Tests cover:
- LU solve, determinant and inverse against numpy
- Singularity detection with the relative tolerance
- Cholesky factor, solve and rejection of non-SPD input
- Normal-equations least squares
- Finite-difference Hessian and covariance from curvature
"""

import pytest
import numpy as np

from forecast_lab import (
    LUDecomposition,
    CholeskyDecomposition,
    Matrix,
    Vector,
    solve,
    inverse,
    least_squares,
    Function,
    SingularMatrixError,
    DimensionMismatchError,
    InvalidDimensionError,
)
from forecast_lab.decomposition import covariance_from_hessian, numerical_hessian


class TestLUDecomposition:
    """Tests for LUDecomposition."""

    def test_solve_vector(self, square_matrix, tolerance):
        b = Vector([1.0, 2.0, 3.0])
        x = LUDecomposition(square_matrix).solve(b)

        assert isinstance(x, Vector)
        assert np.allclose(square_matrix.times(x).elements(), b.elements(), **tolerance)

    def test_solve_matrix_rhs(self, square_matrix, tolerance):
        B = Matrix.create(3, 2, [1.0, 0.0, 0.0, 1.0, 1.0, 1.0])
        X = LUDecomposition(square_matrix).solve(B)

        assert isinstance(X, Matrix)
        assert np.allclose(square_matrix.times(X).to_numpy(), B.to_numpy(), **tolerance)

    def test_solve_ndarray(self, square_matrix):
        x = solve(square_matrix.to_numpy(), np.array([1.0, 2.0, 3.0]))
        assert isinstance(x, np.ndarray)

    def test_determinant(self, square_matrix, tolerance):
        det = LUDecomposition(square_matrix).determinant()
        assert np.isclose(det, np.linalg.det(square_matrix.to_numpy()), **tolerance)

    def test_determinant_with_row_swap(self):
        m = Matrix.from_2d([[0.0, 1.0], [1.0, 0.0]])
        assert LUDecomposition(m).determinant() == pytest.approx(-1.0)

    def test_inverse(self, square_matrix, tolerance):
        inv = inverse(square_matrix)
        product = square_matrix.times(inv)

        assert np.allclose(product.to_numpy(), np.eye(3), **tolerance)

    def test_singular_raises(self):
        m = Matrix.from_2d([[1.0, 2.0], [2.0, 4.0]])
        with pytest.raises(SingularMatrixError, match="singular"):
            LUDecomposition(m)

    def test_zero_matrix_is_singular(self):
        with pytest.raises(SingularMatrixError):
            LUDecomposition(Matrix.fill(3, 3, 0.0))

    def test_relative_tolerance(self):
        """Scaling a well-conditioned matrix down does not make it singular."""
        m = Matrix.from_2d([[2.0, 1.0], [1.0, 3.0]]).scaled_by(1e-20)
        x = LUDecomposition(m).solve(Vector([1e-20, 1e-20]))
        assert np.all(np.isfinite(x.elements()))

    def test_non_square_raises(self):
        with pytest.raises(DimensionMismatchError, match="square"):
            LUDecomposition(Matrix.fill(2, 3, 1.0))

    def test_empty_raises(self):
        with pytest.raises(InvalidDimensionError):
            LUDecomposition(Matrix.from_2d([]))

    def test_rhs_mismatch(self, square_matrix):
        with pytest.raises(DimensionMismatchError):
            LUDecomposition(square_matrix).solve(Vector([1.0, 2.0]))


class TestCholeskyDecomposition:
    """Tests for CholeskyDecomposition."""

    def test_lower_factor_reconstructs(self, spd_matrix, tolerance):
        L = CholeskyDecomposition(spd_matrix).lower

        assert np.allclose(np.triu(L.to_numpy(), k=1), 0.0)
        assert np.allclose((L @ L.transpose()).to_numpy(), spd_matrix.to_numpy(), **tolerance)

    def test_solve(self, spd_matrix, tolerance):
        b = Vector([1.0, -1.0, 2.0, 0.5])
        x = CholeskyDecomposition(spd_matrix).solve(b)

        assert np.allclose(spd_matrix.times(x).elements(), b.elements(), **tolerance)

    def test_inverse_matches_lu(self, spd_matrix, tolerance):
        chol = CholeskyDecomposition(spd_matrix).inverse()
        lu = LUDecomposition(spd_matrix).inverse()

        assert np.allclose(chol.to_numpy(), lu.to_numpy(), **tolerance)

    def test_not_symmetric(self, square_matrix):
        with pytest.raises(ValueError, match="symmetric"):
            CholeskyDecomposition(square_matrix)

    def test_indefinite_raises(self):
        m = Matrix.from_2d([[1.0, 2.0], [2.0, 1.0]])
        with pytest.raises(SingularMatrixError, match="positive definite"):
            CholeskyDecomposition(m)


class TestLeastSquares:
    """Tests for least_squares."""

    def test_recovers_coefficients(self, rng):
        X = rng.normal(size=(200, 3))
        beta = np.array([1.5, -2.0, 0.5])
        y = X @ beta

        fitted = least_squares(Matrix.create(200, 3, X), Vector(y))

        assert np.allclose(fitted.elements(), beta, atol=1e-10)

    def test_matches_numpy_lstsq(self, rng, tolerance):
        X = rng.normal(size=(50, 2))
        y = rng.normal(size=50)
        expected = np.linalg.lstsq(X, y, rcond=None)[0]

        fitted = least_squares(Matrix.create(50, 2, X), Vector(y))

        assert np.allclose(fitted.elements(), expected, **tolerance)

    def test_collinear_raises(self):
        X = Matrix.from_2d([[1.0, 2.0], [2.0, 4.0], [3.0, 6.0]])
        with pytest.raises(SingularMatrixError):
            least_squares(X, Vector([1.0, 2.0, 3.0]))

    def test_row_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            least_squares(Matrix.fill(3, 2, 1.0), Vector([1.0, 2.0]))


class TestCurvature:
    """Tests for numerical_hessian and covariance_from_hessian."""

    def test_quadratic_hessian(self):
        """The Hessian of x'Ax is 2A."""
        A = np.array([[3.0, 1.0], [1.0, 2.0]])
        f = Function(lambda x: float(x @ A @ x), dimension=2)

        H = numerical_hessian(f, np.array([0.3, -0.7]))

        assert np.allclose(H, 2 * A, atol=1e-5)
        assert np.allclose(H, H.T)

    def test_evaluations_counted(self):
        f = Function(lambda x: float(x @ x), dimension=2)
        numerical_hessian(f, np.zeros(2))

        # centre + 2 per axis + 4 per off-diagonal pair
        assert f.evaluations == 1 + 4 + 4

    def test_stencil_respects_bounds(self):
        """At a lower bound the stencil shifts inward instead of leaving the box."""
        seen = []

        def f(x):
            seen.append(x.copy())
            if x[0] < 0.0:
                raise ValueError("outside domain")
            return float(x[0] ** 2 + 3.0 * x[1] ** 2)

        H = numerical_hessian(
            Function(f, dimension=2),
            np.array([0.0, 0.5]),
            lower=np.array([0.0, -np.inf]),
            upper=np.array([np.inf, np.inf]),
        )

        assert np.allclose(H, np.diag([2.0, 6.0]), atol=1e-4)
        assert all(p[0] >= 0.0 for p in seen)

    def test_fixed_coordinate(self):
        """A coordinate pinned by equal bounds gets a zero row and column."""
        f = Function(lambda x: float(x[0] ** 2 + x[0] * x[1] + x[1] ** 2), dimension=2)
        H = numerical_hessian(
            f, np.array([1.0, 0.0]), lower=np.array([1.0, -1.0]), upper=np.array([1.0, 1.0])
        )

        assert np.allclose(H[0], 0.0)
        assert np.allclose(H[:, 0], 0.0)
        assert H[1, 1] == pytest.approx(2.0, abs=1e-4)

    def test_covariance_from_hessian(self, tolerance):
        H = np.array([[4.0, 0.0], [0.0, 0.5]])
        cov = covariance_from_hessian(H, scale=2.0)

        assert np.allclose(cov, np.diag([0.5, 4.0]), **tolerance)

    def test_singular_hessian(self):
        with pytest.raises(SingularMatrixError):
            covariance_from_hessian(np.array([[0.0, 0.0], [0.0, 1.0]]))
