"""
Unit tests for layout operations: broadcast_to, transpose, reshape, sum and
sum_to_shape.
"""

import unittest

import numpy as np

from difftensor.domain._errors import InvalidParameterError, ShapeMismatchError
from difftensor.infrastructure import _functional as F
from difftensor.infrastructure._array import Array
from difftensor.infrastructure._autodiff import grad
from difftensor.infrastructure._gradcheck import check_grads


def _arr(a) -> Array:
    return Array.from_numpy(np.asarray(a))


class TestBroadcastTo(unittest.TestCase):
    def test_view_with_zero_strides(self):
        x = _arr(np.array([[1.0], [2.0]]))
        y = F.broadcast_to(x, (3, 2, 4))
        self.assertEqual(y.dims, (3, 2, 4))
        self.assertEqual(y.shape.strides, (0, 1, 0))
        y.materialize()
        self.assertIs(y.buffer.real_storage, x.buffer.real_storage)
        self.assertFalse(y.buffer.owns_storage)
        np.testing.assert_array_equal(
            y.to_numpy(), np.broadcast_to(np.array([[1.0], [2.0]]), (3, 2, 4))
        )

    def test_complex_view(self):
        z = np.array([1 + 2j, 3 - 1j])
        y = F.broadcast_to(_arr(z), (2, 2))
        np.testing.assert_array_equal(y.to_numpy(), np.broadcast_to(z, (2, 2)))

    def test_invalid_target(self):
        x = _arr(np.zeros((2, 3)))
        with self.assertRaises(ShapeMismatchError):
            F.broadcast_to(x, (3,))
        with self.assertRaises(ShapeMismatchError):
            F.broadcast_to(x, (4, 3))
        with self.assertRaises(InvalidParameterError):
            F.broadcast_to(x, (2, -3))

    def test_gradient_sums_broadcast_axes(self):
        x = np.array([[1.0], [2.0]])
        g = grad(lambda v: (F.broadcast_to(v, (3, 2, 4)) * 2.0).sum())(_arr(x))
        np.testing.assert_allclose(g.to_numpy(), np.full((2, 1), 24.0))
        check_grads(lambda v: F.broadcast_to(v, (3, 2, 4)), [x])


class TestTranspose(unittest.TestCase):
    def setUp(self):
        self.x = np.arange(24.0).reshape(2, 3, 4)

    def test_permutes_strides(self):
        y = F.transpose(_arr(self.x), (2, 0, 1))
        self.assertEqual(y.dims, (4, 2, 3))
        self.assertEqual(y.shape.strides, (1, 12, 4))
        np.testing.assert_array_equal(y.to_numpy(), self.x.transpose(2, 0, 1))

    def test_default_and_negative_axes(self):
        ax = _arr(self.x)
        np.testing.assert_array_equal(ax.T.to_numpy(), self.x.T)
        np.testing.assert_array_equal(
            F.transpose(ax, (0, -1, -2)).to_numpy(), self.x.transpose(0, 2, 1)
        )

    def test_transpose_of_transpose_is_identity(self):
        ax = _arr(self.x)
        y = F.transpose(F.transpose(ax, (1, 2, 0)), (2, 0, 1))
        self.assertEqual(y.shape.strides, ax.shape.strides)
        np.testing.assert_array_equal(y.to_numpy(), self.x)

    def test_invalid_permutation(self):
        with self.assertRaises(InvalidParameterError):
            F.transpose(_arr(self.x), (0, 0, 1))

    def test_gradients(self):
        check_grads(lambda v: F.transpose(v, (1, 2, 0)), [self.x])


class TestReshape(unittest.TestCase):
    def test_reshape_with_inferred_axis(self):
        x = np.arange(12.0)
        y = F.reshape(_arr(x), (3, -1))
        self.assertEqual(y.dims, (3, 4))
        self.assertTrue(y.shape.is_contiguous)
        np.testing.assert_array_equal(y.to_numpy(), x.reshape(3, 4))

    def test_unchanged_dims_returns_operand(self):
        x = _arr(np.zeros((2, 3)))
        self.assertIs(F.reshape(x, (2, 3)), x)

    def test_reshape_of_transposed_view(self):
        x = np.arange(6.0).reshape(2, 3)
        y = _arr(x).T.reshape(6)
        np.testing.assert_array_equal(y.to_numpy(), x.T.reshape(6))

    def test_reshape_errors(self):
        x = _arr(np.zeros(6))
        with self.assertRaises(ShapeMismatchError):
            F.reshape(x, (4, 2))
        with self.assertRaises(ShapeMismatchError):
            F.reshape(x, (4, -1))
        with self.assertRaises(InvalidParameterError):
            F.reshape(x, (-1, -1))

    def test_gradients(self):
        z = np.arange(6.0).reshape(2, 3) * (1 + 0.5j)
        check_grads(lambda v: F.reshape(v, (3, 2)), [z])


class TestSum(unittest.TestCase):
    def setUp(self):
        self.x = np.random.default_rng(0).standard_normal((2, 3, 4))

    def test_axes_and_keepdims(self):
        ax = _arr(self.x)
        for axis in (None, 0, -1, (0, 2)):
            for keepdims in (False, True):
                with self.subTest(axis=axis, keepdims=keepdims):
                    out = F.sum(ax, axis=axis, keepdims=keepdims)
                    np.testing.assert_allclose(
                        out.to_numpy(), np.sum(self.x, axis=axis, keepdims=keepdims)
                    )

    def test_sum_of_strided_view(self):
        out = _arr(self.x).T.sum(axis=0)
        np.testing.assert_allclose(out.to_numpy(), self.x.T.sum(axis=0))

    def test_complex_sum(self):
        z = self.x + 1j * self.x[::-1]
        np.testing.assert_allclose(F.sum(_arr(z), axis=1).to_numpy(), z.sum(axis=1))

    def test_invalid_axes(self):
        with self.assertRaises(InvalidParameterError):
            F.sum(_arr(self.x), axis=3)
        with self.assertRaises(InvalidParameterError):
            F.sum(_arr(self.x), axis=(1, 1))

    def test_gradients(self):
        for axis, keepdims in ((None, False), (1, False), ((0, 2), True)):
            with self.subTest(axis=axis, keepdims=keepdims):
                check_grads(lambda v: F.sum(v, axis=axis, keepdims=keepdims), [self.x])


class TestSumToShape(unittest.TestCase):
    def test_reduces_leading_and_unit_axes(self):
        x = np.random.default_rng(1).standard_normal((5, 2, 3))
        out = F.sum_to_shape(_arr(x), (2, 1))
        self.assertEqual(out.dims, (2, 1))
        np.testing.assert_allclose(out.to_numpy(), x.sum(axis=(0, 2))[:, None])

    def test_same_dims_is_identity(self):
        x = _arr(np.zeros((2, 3)))
        self.assertIs(F.sum_to_shape(x, (2, 3)), x)

    def test_reduce_axes_helper(self):
        axes, pad = F._sum_to_shape_reduce_axes((4, 2, 3), (1, 3))
        self.assertEqual(axes, (0, 1))
        self.assertEqual(pad, 1)

    def test_incompatible_targets(self):
        x = _arr(np.zeros((2, 3)))
        with self.assertRaises(ShapeMismatchError):
            F.sum_to_shape(x, (1, 2, 3))
        with self.assertRaises(ShapeMismatchError):
            F.sum_to_shape(x, (2,))


if __name__ == "__main__":
    unittest.main()
