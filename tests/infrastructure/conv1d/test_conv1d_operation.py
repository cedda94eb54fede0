"""
Unit tests for the Conv1D operation family ("conv1d", "conv1d_input_grad",
"conv1d_weight_grad").

Covers:
- output shapes and values against a NumPy reference
- group isolation
- validation (all failures raise before any node exists)
- first- and second-order derivatives against finite differences
- worker-count independence
"""

import unittest

import numpy as np

from difftensor.domain._errors import (
    InvalidParameterError,
    ShapeMismatchError,
    UnsupportedOperandKindError,
)
from difftensor.infrastructure import _functional as F
from difftensor.infrastructure._array import Array
from difftensor.infrastructure._autodiff import grad, value_and_grad, vjp
from difftensor.infrastructure._config import config_scope
from difftensor.infrastructure._gradcheck import check_grads, check_jvp, check_vjp
from difftensor.infrastructure.ops.conv1d_cpu import conv1d_output_length


def conv1d_reference(x, w, b=None, stride=1, padding=0, dilation=1, groups=1):
    c_out, cin_g, k = w.shape
    cout_g = c_out // groups
    xp = np.pad(x, ((0, 0), (0, 0), (padding, padding)))
    out_len = conv1d_output_length(x.shape[2], k, stride, padding, dilation)
    y = np.zeros((x.shape[0], c_out, out_len))
    for co in range(c_out):
        g = co // cout_g
        xs = xp[:, g * cin_g : (g + 1) * cin_g, :]
        for o in range(out_len):
            taps = xs[:, :, o * stride : o * stride + dilation * (k - 1) + 1 : dilation]
            y[:, co, o] = np.sum(taps * w[co][None], axis=(1, 2))
    if b is not None:
        y += b[None, :, None]
    return y


def _arr(a) -> Array:
    return Array.from_numpy(np.asarray(a))


class TestConv1dForward(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(0)

    def test_output_length_example(self):
        x = _arr(self.rng.standard_normal((1, 1, 10)))
        w = _arr(self.rng.standard_normal((1, 1, 3)))
        y = F.conv1d(x, w, stride=2, padding=1)
        self.assertEqual(y.dims, (1, 1, 5))

    def test_matches_reference(self):
        x = self.rng.standard_normal((2, 6, 9))
        w = self.rng.standard_normal((4, 3, 3))
        b = self.rng.standard_normal(4)
        y = F.conv1d(_arr(x), _arr(w), _arr(b), stride=2, padding=2, dilation=2, groups=2)
        expected = conv1d_reference(x, w, b, stride=2, padding=2, dilation=2, groups=2)
        np.testing.assert_allclose(y.to_numpy(), expected, rtol=1e-12, atol=1e-12)

    def test_known_values(self):
        x = _arr(np.arange(1.0, 6.0).reshape(1, 1, 5))
        w = _arr(np.array([[[1.0, 0.0, -1.0]]]))
        y = F.conv1d(x, w, padding=1)
        np.testing.assert_allclose(y.to_numpy(), [[[-2.0, -2.0, -2.0, -2.0, 4.0]]])

    def test_groups_are_isolated(self):
        x = self.rng.standard_normal((1, 4, 6))
        w = self.rng.standard_normal((2, 2, 3))
        base = F.conv1d(_arr(x), _arr(w), groups=2).to_numpy()

        changed = x.copy()
        changed[:, 2:, :] += 10.0
        out = F.conv1d(_arr(changed), _arr(w), groups=2).to_numpy()
        np.testing.assert_array_equal(out[:, 0], base[:, 0])
        self.assertFalse(np.allclose(out[:, 1], base[:, 1]))

    def test_zeroing_one_group_leaves_the_other_unchanged(self):
        x = self.rng.standard_normal((2, 4, 7))
        w = self.rng.standard_normal((4, 2, 3))
        base = F.conv1d(_arr(x), _arr(w), groups=2).to_numpy()

        zeroed = x.copy()
        zeroed[:, :2, :] = 0.0
        out = F.conv1d(_arr(zeroed), _arr(w), groups=2).to_numpy()
        self.assertEqual(out.shape, (2, 4, 5))
        np.testing.assert_array_equal(out[:, 2], base[:, 2])
        np.testing.assert_array_equal(out[:, 3], base[:, 3])
        np.testing.assert_array_equal(out[:, :2], np.zeros((2, 2, 5)))

    def test_strided_input(self):
        x = self.rng.standard_normal((2, 7, 3))
        w = self.rng.standard_normal((2, 3, 2))
        xt = F.transpose(_arr(x), (0, 2, 1))
        y = F.conv1d(xt, _arr(w))
        np.testing.assert_allclose(
            y.to_numpy(), conv1d_reference(np.transpose(x, (0, 2, 1)), w), rtol=1e-12
        )

    def test_worker_count_does_not_change_results(self):
        x = _arr(self.rng.standard_normal((5, 2, 8)))
        w = _arr(self.rng.standard_normal((3, 2, 3)))
        serial = F.conv1d(x, w, padding=1).to_numpy()
        with config_scope(num_workers=3):
            threaded = F.conv1d(x, w, padding=1).to_numpy()
            gw = grad(lambda v: F.conv1d(x, v, padding=1).sum())(w).to_numpy()
        np.testing.assert_array_equal(serial, threaded)
        np.testing.assert_allclose(
            gw, grad(lambda v: F.conv1d(x, v, padding=1).sum())(w).to_numpy()
        )


class TestConv1dValidation(unittest.TestCase):
    def setUp(self):
        self.x = _arr(np.zeros((1, 4, 10)))
        self.w = _arr(np.zeros((2, 4, 3)))

    def test_shape_errors(self):
        cases = [
            (lambda: F.conv1d(_arr(np.zeros((4, 10))), self.w), "rank"),
            (lambda: F.conv1d(self.x, _arr(np.zeros((2, 3, 3)))), "channels"),
            (lambda: F.conv1d(self.x, _arr(np.zeros((3, 2, 3))), groups=2), "groups"),
            (lambda: F.conv1d(self.x, self.w, _arr(np.zeros(3))), "bias"),
            (lambda: F.conv1d(self.x, _arr(np.zeros((2, 4, 11)))), "too short"),
            (lambda: F.conv1d(self.x, _arr(np.zeros((2, 4, 0)))), "empty kernel"),
        ]
        for build, label in cases:
            with self.subTest(case=label):
                with self.assertRaises(ShapeMismatchError):
                    build()

    def test_parameter_errors(self):
        for kwargs in (
            {"stride": 0},
            {"padding": -1},
            {"dilation": 0},
            {"groups": 0},
            {"stride": 1.5},
            {"stride": True},
        ):
            with self.subTest(**{k: repr(v) for k, v in kwargs.items()}):
                with self.assertRaises(InvalidParameterError):
                    F.conv1d(self.x, self.w, **kwargs)

    def test_complex_rejected(self):
        w = _arr(np.zeros((2, 4, 3)) + 1j)
        with self.assertRaises(UnsupportedOperandKindError):
            F.conv1d(self.x, w)

    def test_gradient_companions_validate(self):
        gy = _arr(np.zeros((1, 2, 8)))
        with self.assertRaises(ShapeMismatchError):
            F.conv1d_input_grad(gy, self.w, 12)
        with self.assertRaises(ShapeMismatchError):
            F.conv1d_weight_grad(gy, self.x, 4)
        self.assertEqual(F.conv1d_input_grad(gy, self.w, 10).dims, (1, 4, 10))
        self.assertEqual(F.conv1d_weight_grad(gy, self.x, 3).dims, (2, 4, 3))


class TestConv1dDerivatives(unittest.TestCase):
    CONFIGS = [
        dict(stride=1, padding=0, dilation=1, groups=1),
        dict(stride=2, padding=1, dilation=1, groups=1),
        dict(stride=1, padding=2, dilation=2, groups=2),
    ]

    def setUp(self):
        self.rng = np.random.default_rng(7)

    def _case(self, groups):
        x = self.rng.standard_normal((2, 4, 7))
        w = self.rng.standard_normal((4, 4 // groups, 3))
        b = self.rng.standard_normal(4)
        return x, w, b

    def test_first_order(self):
        for cfg in self.CONFIGS:
            with self.subTest(**cfg):
                x, w, b = self._case(cfg["groups"])
                check_grads(lambda x_, w_, b_: F.conv1d(x_, w_, b_, **cfg), [x, w, b])

    def test_gradients_match_reference_formulas(self):
        x, w, b = self._case(1)
        gx, gw, gb = grad(
            lambda x_, w_, b_: F.conv1d(x_, w_, b_, padding=1).sum(), argnums=(0, 1, 2)
        )(_arr(x), _arr(w), _arr(b))
        np.testing.assert_allclose(gb.to_numpy(), np.full(4, 2.0 * 7))

        eps = 1e-6
        numeric = np.zeros_like(w)
        for idx in np.ndindex(*w.shape):
            d = np.zeros_like(w)
            d[idx] = eps
            plus = conv1d_reference(x, w + d, b, padding=1).sum()
            minus = conv1d_reference(x, w - d, b, padding=1).sum()
            numeric[idx] = (plus - minus) / (2 * eps)
        np.testing.assert_allclose(gw.to_numpy(), numeric, rtol=1e-6, atol=1e-6)
        self.assertEqual(gx.dims, x.shape)

    def test_gradient_companions(self):
        for cfg in self.CONFIGS:
            with self.subTest(**cfg):
                x, w, _ = self._case(cfg["groups"])
                out_len = F.conv1d(_arr(x), _arr(w), **cfg).dims[2]
                gy = self.rng.standard_normal((2, 4, out_len))
                check_grads(
                    lambda g_, w_: F.conv1d_input_grad(g_, w_, 7, **cfg), [gy, w]
                )
                check_grads(
                    lambda g_, x_: F.conv1d_weight_grad(g_, x_, 3, **cfg), [gy, x]
                )

    def test_second_order(self):
        x, w, _ = self._case(2)

        def loss(x_, w_):
            y = F.conv1d(x_, w_, padding=1, groups=2)
            return (y * y).sum()

        def grad_w(x_, w_):
            return grad(loss, argnums=1)(x_, w_)

        check_jvp(grad_w, [x, w])
        check_vjp(grad_w, [x, w])

    def test_pullback_builds_companion_nodes(self):
        x, w, _ = self._case(1)
        out, pullback = vjp(lambda x_, w_: F.conv1d(x_, w_, stride=2), _arr(x), _arr(w))
        gx, gw = pullback(np.ones(out.dims))
        self.assertEqual(gx.op.name, "conv1d_input_grad")
        self.assertEqual(gw.op.name, "conv1d_weight_grad")

    def test_value_and_grad_of_loss(self):
        x, w, b = self._case(1)
        value, gb = value_and_grad(
            lambda b_: F.conv1d(_arr(x), _arr(w), b_).sum()
        )(_arr(b))
        np.testing.assert_allclose(value.item(), conv1d_reference(x, w, b).sum())
        np.testing.assert_allclose(gb.to_numpy(), np.full(4, 2.0 * 5))


if __name__ == "__main__":
    unittest.main()
