"""
Unit tests for unary elementwise operations.

Forward values are compared against NumPy for real and complex inputs
(including non-contiguous operands and lane widths that do not divide the
size). Derivatives are checked against central differences and for
JVP / VJP duality.
"""

import unittest

import numpy as np

from difftensor.domain._errors import ExecutionError, UnsupportedOperandKindError
from difftensor.domain._operation import NO_GRADIENT
from difftensor.infrastructure import _functional as F
from difftensor.infrastructure._array import Array
from difftensor.infrastructure._autodiff import grad, jvp, vjp
from difftensor.infrastructure._config import config_scope
from difftensor.infrastructure._gradcheck import check_jvp, check_vjp


def _arr(a) -> Array:
    return Array.from_numpy(np.asarray(a))


REAL_CASES = [
    ("neg", F.neg, np.negative),
    ("exp", F.exp, np.exp),
    ("sin", F.sin, np.sin),
    ("cos", F.cos, np.cos),
    ("tanh", F.tanh, np.tanh),
    ("atan", F.atan, np.arctan),
    ("sign", F.sign, np.sign),
    ("abs", F.absolute, np.abs),
    ("conj", F.conj, np.conj),
    ("real", F.real, np.real),
]

COMPLEX_CASES = [
    ("neg", F.neg, np.negative),
    ("exp", F.exp, np.exp),
    ("log", F.log, np.log),
    ("sin", F.sin, np.sin),
    ("cos", F.cos, np.cos),
    ("tanh", F.tanh, np.tanh),
    ("conj", F.conj, np.conj),
    ("real", F.real, np.real),
]


class TestUnaryForward(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(0)
        self.x = rng.standard_normal((3, 5))
        self.z = rng.standard_normal((3, 5)) + 1j * rng.standard_normal((3, 5))

    def test_real_matches_numpy(self):
        for name, fn, ref in REAL_CASES:
            with self.subTest(op=name):
                np.testing.assert_allclose(fn(_arr(self.x)).to_numpy(), ref(self.x), rtol=1e-12)

    def test_positive_domain_ops(self):
        x = np.abs(self.x) + 0.1
        np.testing.assert_allclose(F.log(_arr(x)).to_numpy(), np.log(x), rtol=1e-12)
        np.testing.assert_allclose(F.sqrt(_arr(x)).to_numpy(), np.sqrt(x), rtol=1e-12)
        np.testing.assert_allclose(
            F.pow_scalar(_arr(x), 2.5).to_numpy(), x**2.5, rtol=1e-12
        )

    def test_complex_matches_numpy(self):
        for name, fn, ref in COMPLEX_CASES:
            with self.subTest(op=name):
                out = fn(_arr(self.z))
                np.testing.assert_allclose(out.to_numpy(), ref(self.z), rtol=1e-10, atol=1e-12)

    def test_real_op_result_is_real(self):
        out = F.real(_arr(self.z))
        self.assertFalse(out.requires_complex)
        self.assertTrue(F.exp(_arr(self.z)).requires_complex)

    def test_lane_width_does_not_change_results(self):
        expected = np.tanh(self.x)
        for width in (1, 4, 7, 64):
            with self.subTest(width=width), config_scope(lane_width=width):
                np.testing.assert_allclose(F.tanh(_arr(self.x)).to_numpy(), expected)

    def test_complex_tanh_large_real_part(self):
        z = np.array([400.0 + 0.5j, -400.0 + 0.1j, 30.0 - 2.0j])
        out = F.tanh(_arr(z)).to_numpy()
        self.assertTrue(np.all(np.isfinite(out)))
        np.testing.assert_allclose(out, np.tanh(z), rtol=1e-12, atol=1e-300)
        np.testing.assert_allclose(out[:2], [1.0, -1.0])
        _, t = jvp(F.tanh, [z], [np.ones(3, dtype=complex)])
        self.assertTrue(np.all(np.isfinite(t.to_numpy())))

    def test_strided_operand(self):
        xt = F.transpose(_arr(self.x))
        np.testing.assert_allclose(F.exp(xt).to_numpy(), np.exp(self.x.T))

    def test_real_only_ops_reject_complex(self):
        for fn in (F.atan, F.sqrt, F.absolute, F.sign):
            with self.subTest(op=fn.__name__):
                with self.assertRaises(UnsupportedOperandKindError):
                    fn(_arr(self.z))
        with self.assertRaises(UnsupportedOperandKindError):
            F.pow_scalar(_arr(self.z), 2.0)

    def test_pow_scalar_rejects_bad_exponent(self):
        with self.assertRaises(ValueError):
            F.pow_scalar(_arr(self.x), "2")

    def test_float32_preserved(self):
        out = F.exp(_arr(self.x.astype(np.float32)))
        self.assertEqual(out.dtype, np.float32)
        self.assertEqual(out.to_numpy().dtype, np.float32)

    def test_floating_point_policy(self):
        x = _arr(np.array([-1.0, 4.0]))
        self.assertTrue(np.isnan(F.sqrt(x).to_numpy()[0]))
        with config_scope(floating_point_errors="raise"):
            with self.assertRaises(ExecutionError) as ctx:
                F.sqrt(x).materialize()
        self.assertIsInstance(ctx.exception.__cause__, FloatingPointError)


class TestUnaryDerivatives(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(1)
        self.x = rng.standard_normal((2, 4))
        self.pos = np.abs(self.x) + 0.5
        self.z = rng.standard_normal((2, 4)) + 1j * rng.standard_normal((2, 4))

    def test_finite_differences_real(self):
        cases = [
            (F.neg, self.x),
            (F.exp, self.x),
            (F.sin, self.x),
            (F.cos, self.x),
            (F.tanh, self.x),
            (F.atan, self.x),
            (F.absolute, self.x),
            (F.log, self.pos),
            (F.sqrt, self.pos),
            (lambda x: F.pow_scalar(x, 3.0), self.x),
            (lambda x: F.pow_scalar(x, -1.5), self.pos),
        ]
        for fn, x in cases:
            with self.subTest(fn=getattr(fn, "__name__", "lambda")):
                check_jvp(fn, [x])
                check_vjp(fn, [x])

    def test_finite_differences_complex(self):
        for fn in (F.exp, F.sin, F.cos, F.tanh, F.log, F.neg, F.conj, F.real):
            with self.subTest(fn=fn.__name__):
                check_jvp(fn, [self.z])
                check_vjp(fn, [self.z])

    def test_holomorphic_vjp_is_unconjugated(self):
        z = np.array([0.3 + 0.7j])
        _, pullback = vjp(F.exp, _arr(z))
        (g,) = pullback(_arr(np.array([1.0 + 0.0j])))
        np.testing.assert_allclose(g.to_numpy(), np.exp(z))

    def test_atan_derivative_and_second_derivative(self):
        x = np.array([-2.0, 0.0, 0.5, 3.0])
        d1 = grad(lambda v: F.atan(v).sum())
        np.testing.assert_allclose(d1(_arr(x)).to_numpy(), 1.0 / (1.0 + x**2))
        d2 = grad(lambda v: d1(v).sum())
        np.testing.assert_allclose(d2(_arr(x)).to_numpy(), -2.0 * x / (1.0 + x**2) ** 2)

    def test_sign_has_no_gradient(self):
        x = _arr(np.array([-1.0, 2.0]))
        y = F.sign(x)
        self.assertIs(y.op.jvp((x,), (x,), y), NO_GRADIENT)
        self.assertEqual(y.op.vjp((x,), y, y), (NO_GRADIENT,))
        _, t = jvp(F.sign, [x], [np.ones(2)])
        np.testing.assert_array_equal(t.to_numpy(), [0.0, 0.0])
        np.testing.assert_array_equal(grad(lambda v: F.sign(v).sum())(x).to_numpy(), [0.0, 0.0])

    def test_pow_zero_exponent_gradient_is_zero(self):
        x = _arr(np.array([0.0, 2.0]))
        g = grad(lambda v: F.pow_scalar(v, 0.0).sum())(x).to_numpy()
        np.testing.assert_array_equal(g, [0.0, 0.0])

    def test_tangent_is_lazy_node(self):
        x = _arr(self.x)
        _, t = jvp(F.exp, [x], [np.ones_like(self.x)])
        self.assertIsInstance(t, Array)
        np.testing.assert_allclose(t.to_numpy(), np.exp(self.x))


if __name__ == "__main__":
    unittest.main()
