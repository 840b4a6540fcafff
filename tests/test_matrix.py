"""
test_matrix.py - Tests for Vector, Matrix and the Builders

Tests cover:
- Construction and dimension validation
- Row-major storage and 2-D views in both orders
- Arithmetic and algebraic identities
- Immutability and value semantics
- IdentityBuilder / MatrixBuilder single-use behavior
"""

import pytest
import numpy as np

from forecast_lab import (
    Vector,
    Matrix,
    IdentityBuilder,
    MatrixBuilder,
    Order,
    InvalidDimensionError,
    DimensionMismatchError,
    IndexOutOfRangeError,
)


class TestVector:
    """Tests for Vector."""

    def test_elements_is_a_copy(self):
        """Mutating elements() does not change the vector."""
        v = Vector([1.0, 2.0, 3.0])
        values = v.elements()
        values[0] = 100.0

        assert v.at(0) == 1.0

    def test_backing_array_is_read_only(self):
        v = Vector([1.0, 2.0])
        with pytest.raises(ValueError):
            v.to_numpy()[0] = 5.0

    def test_arithmetic(self):
        a = Vector([1.0, 2.0, 3.0])
        b = Vector([4.0, 5.0, 6.0])

        assert a.plus(b) == Vector([5.0, 7.0, 9.0])
        assert b - a == Vector([3.0, 3.0, 3.0])
        assert 2 * a == Vector([2.0, 4.0, 6.0])
        assert a.dot(b) == 32.0
        assert a.sum() == 6.0
        assert np.isclose(Vector([3.0, 4.0]).norm(), 5.0)

    def test_empty_vector_constructs(self):
        """A zero-length vector can be built and inspected."""
        v = Vector([])
        assert len(v) == 0
        assert v.elements().shape == (0,)

    def test_empty_vector_arithmetic_raises(self):
        v = Vector([])
        with pytest.raises(InvalidDimensionError):
            v.sum()
        with pytest.raises(InvalidDimensionError):
            v.norm()
        with pytest.raises(InvalidDimensionError):
            v.plus(Vector([]))

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            Vector([1.0, 2.0]).plus(Vector([1.0]))

    def test_index_out_of_range(self):
        v = Vector([1.0, 2.0])
        with pytest.raises(IndexOutOfRangeError):
            v.at(2)
        with pytest.raises(IndexOutOfRangeError):
            v[-1]

    def test_two_dimensional_input_rejected(self):
        with pytest.raises(InvalidDimensionError, match="1D"):
            Vector([[1.0, 2.0], [3.0, 4.0]])

    def test_value_semantics(self):
        """Equal contents compare and hash equal."""
        a = Vector([1.0, 2.0])
        b = Vector(np.array([1.0, 2.0]))

        assert a == b
        assert hash(a) == hash(b)
        assert a != Vector([1.0, 2.5])


class TestMatrixConstruction:
    """Tests for Matrix factories and storage."""

    def test_create_row_major(self):
        m = Matrix.create(2, 3, [1, 2, 3, 4, 5, 6])

        assert m.shape == (2, 3)
        assert m.get(0, 2) == 3.0
        assert m.get(1, 0) == 4.0

    def test_create_size_mismatch(self):
        with pytest.raises(InvalidDimensionError, match="dimensions do not match"):
            Matrix.create(2, 2, [1.0, 2.0, 3.0])

    def test_negative_dimensions(self):
        with pytest.raises(InvalidDimensionError):
            Matrix.fill(-1, 2, 0.0)

    def test_from_2d_by_column(self):
        """Column-major input is stored row-major."""
        m = Matrix.from_2d([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]], Order.BY_COLUMN)

        assert m.shape == (2, 3)
        assert np.array_equal(m.data(), [1.0, 3.0, 5.0, 2.0, 4.0, 6.0])

    def test_from_2d_empty(self):
        m = Matrix.from_2d([])
        assert m.shape == (0, 0)

    def test_from_2d_ragged(self):
        with pytest.raises(InvalidDimensionError, match="rectangular"):
            Matrix.from_2d([[1.0, 2.0], [3.0]])

    def test_data_2d_orders(self):
        rows = [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]
        m = Matrix.from_2d(rows)

        assert np.array_equal(m.data_2d(Order.BY_ROW), rows)
        assert np.array_equal(m.data_2d(Order.BY_COLUMN), np.array(rows).T)

    def test_fill(self):
        m = Matrix.fill(2, 3, 7.5)
        assert np.all(m.data() == 7.5)

    def test_get_out_of_range(self, square_matrix):
        with pytest.raises(IndexOutOfRangeError):
            square_matrix.get(3, 0)
        with pytest.raises(IndexOutOfRangeError):
            square_matrix.get(0, 3)

    def test_is_square(self, square_matrix):
        assert square_matrix.is_square()
        assert not Matrix.fill(2, 3, 0.0).is_square()
        assert Matrix.fill(0, 0, 0.0).is_square()

    def test_immutable(self, square_matrix):
        with pytest.raises(ValueError):
            square_matrix.to_numpy()[0, 0] = 0.0
        copy = square_matrix.data_2d()
        copy[0, 0] = -1.0
        assert square_matrix.get(0, 0) == 4.0


class TestMatrixArithmetic:
    """Tests for Matrix arithmetic and identities."""

    def test_double_transpose(self, rng):
        m = Matrix.create(3, 5, rng.normal(size=15))
        assert m.transpose().transpose() == m

    def test_transpose_shape(self):
        m = Matrix.create(2, 3, np.arange(6))
        t = m.transpose()

        assert t.shape == (3, 2)
        assert t.get(2, 1) == m.get(1, 2)

    def test_add_then_subtract(self, rng, tolerance):
        A = Matrix.create(3, 4, rng.normal(size=12))
        B = Matrix.create(3, 4, rng.normal(size=12))

        assert np.allclose((A + B - B).data(), A.data(), **tolerance)

    def test_multiply_by_identity(self, square_matrix):
        assert square_matrix.times(Matrix.identity(3)) == square_matrix
        assert Matrix.identity(3) @ square_matrix == square_matrix

    def test_rectangular_product(self):
        """A non-square product matches numpy, including the shape."""
        A = Matrix.from_2d([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        B = Matrix.from_2d([[1.0, 0.0], [0.0, 1.0], [2.0, -1.0]])
        C = A.times(B)

        assert C.shape == (2, 2)
        assert np.allclose(C.to_numpy(), A.to_numpy() @ B.to_numpy())

    def test_matrix_vector_product(self, square_matrix):
        v = square_matrix.times(Vector([1.0, 0.0, -1.0]))

        assert isinstance(v, Vector)
        assert v == Vector([2.0, -2.0, -4.0])

    def test_product_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError, match="columns"):
            Matrix.fill(2, 3, 1.0).times(Matrix.fill(2, 3, 1.0))
        with pytest.raises(DimensionMismatchError):
            Matrix.fill(2, 3, 1.0).times(Vector([1.0, 2.0]))

    def test_shape_mismatch_add(self):
        with pytest.raises(DimensionMismatchError, match="different dimensions"):
            Matrix.fill(2, 2, 1.0).plus(Matrix.fill(2, 3, 1.0))

    def test_scaled_by(self, square_matrix):
        assert np.allclose((square_matrix * 0.5).data(), square_matrix.data() / 2)

    def test_diagonal(self, square_matrix):
        assert np.array_equal(square_matrix.diagonal(), [4.0, 5.0, 6.0])


class TestBuilders:
    """Tests for IdentityBuilder and MatrixBuilder."""

    def test_identity_builder_defaults(self):
        """Unset cells keep identity values."""
        m = IdentityBuilder(3).build()

        for i in range(3):
            for j in range(3):
                assert m.get(i, j) == (1.0 if i == j else 0.0)

    def test_identity_builder_set_chains(self):
        m = IdentityBuilder(3).set(0, 1, 5.0).set(2, 2, -1.0).build()

        assert m.get(0, 1) == 5.0
        assert m.get(2, 2) == -1.0
        assert m.get(1, 1) == 1.0
        assert m.get(1, 0) == 0.0

    def test_matrix_builder_starts_at_zero(self):
        m = MatrixBuilder(2).set(1, 0, 3.0).build()
        assert np.array_equal(m.data(), [0.0, 0.0, 3.0, 0.0])

    def test_builder_single_use(self):
        builder = IdentityBuilder(2)
        m = builder.build()

        with pytest.raises(RuntimeError, match="already built"):
            builder.build()
        with pytest.raises(RuntimeError, match="already built"):
            builder.set(0, 0, 2.0)
        assert m == Matrix.identity(2)

    def test_builder_index_checked(self):
        with pytest.raises(IndexOutOfRangeError):
            MatrixBuilder(2).set(2, 0, 1.0)
