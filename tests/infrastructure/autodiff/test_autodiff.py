"""
Unit tests for the differentiation drivers (jvp / vjp / grad /
value_and_grad) and the pass-through rules.
"""

import unittest

import numpy as np

from difftensor.domain._array_shape import ArrayShape
from difftensor.domain._errors import ShapeMismatchError
from difftensor.domain._operation import NO_GRADIENT, Operation
from difftensor.infrastructure import _functional as F
from difftensor.infrastructure._array import Array
from difftensor.infrastructure._autodiff import (
    grad,
    jvp,
    passthrough_jvp,
    passthrough_vjp,
    value_and_grad,
    vjp,
)
from difftensor.infrastructure._gradcheck import check_grads, numerical_jvp
from difftensor.infrastructure._harness import apply


def _arr(a) -> Array:
    return Array.from_numpy(np.asarray(a))


class _AddAllOp(Operation):
    """Sum of any number of same-dims operands, differentiated by pass-through."""

    name = "add_all"

    def infer_shape(self, operand_shapes, params):
        dims = operand_shapes[0].dims
        for s in operand_shapes[1:]:
            if s.dims != dims:
                raise ShapeMismatchError(self.name, "operands must share dims")
        return ArrayShape.contiguous(dims, params, self.name)

    def forward(self, output, operands):
        out = output.raw_buffer.real_flat()
        for o in operands:
            out += o.buffer.real_flat()

    jvp = staticmethod(passthrough_jvp)
    vjp = staticmethod(passthrough_vjp)


class _WrongTangentOp(_AddAllOp):
    name = "wrong_tangent"

    @staticmethod
    def jvp(primals, tangents, output):
        return F.sum(tangents[0])


class TestGrad(unittest.TestCase):
    def test_grad_of_quadratic(self):
        x = np.array([1.0, -2.0, 0.5])
        g = grad(lambda v: (v * v).sum())(_arr(x))
        np.testing.assert_allclose(g.to_numpy(), 2.0 * x)

    def test_accepts_numpy_arguments(self):
        g = grad(lambda v: F.exp(v).sum())(np.array([0.0, 1.0]))
        np.testing.assert_allclose(g.to_numpy(), np.exp([0.0, 1.0]))

    def test_value_and_grad(self):
        x = np.array([0.1, 0.2])
        value, g = value_and_grad(lambda v: F.sin(v).sum())(_arr(x))
        self.assertAlmostEqual(value.item(), float(np.sin(x).sum()))
        np.testing.assert_allclose(g.to_numpy(), np.cos(x))

    def test_argnums(self):
        a, b = np.array([2.0, 3.0]), np.array([5.0, 7.0])
        f = lambda x, y: (x * y * y).sum()  # noqa: E731
        ga, gb = grad(f, argnums=(0, 1))(_arr(a), _arr(b))
        np.testing.assert_allclose(ga.to_numpy(), b * b)
        np.testing.assert_allclose(gb.to_numpy(), 2.0 * a * b)
        np.testing.assert_allclose(grad(f, argnums=-1)(_arr(a), _arr(b)).to_numpy(), 2.0 * a * b)
        with self.assertRaises(ValueError):
            grad(f, argnums=2)(_arr(a), _arr(b))

    def test_disconnected_input_gets_zeros(self):
        a, b = _arr(np.array([1.0, 2.0])), _arr(np.array([3.0]))
        gb = grad(lambda x, y: x.sum(), argnums=1)(a, b)
        np.testing.assert_array_equal(gb.to_numpy(), [0.0])

    def test_same_array_passed_twice(self):
        a = _arr(np.array([1.0, 2.0]))
        ga, gb = grad(lambda x, y: (x * 3.0 + y).sum(), argnums=(0, 1))(a, a)
        np.testing.assert_allclose(ga.to_numpy(), [3.0, 3.0])
        np.testing.assert_allclose(gb.to_numpy(), [1.0, 1.0])

    def test_non_scalar_output_rejected(self):
        with self.assertRaises(TypeError):
            grad(lambda v: v * 2.0)(_arr(np.ones(3)))

    def test_complex_output_rejected(self):
        with self.assertRaises(TypeError):
            grad(lambda v: F.exp(v).sum())(_arr(np.array([1j])))

    def test_non_array_result_rejected(self):
        with self.assertRaises(TypeError):
            grad(lambda v: 1.0)(_arr(np.ones(1)))

    def test_gradient_is_lazy_and_differentiable(self):
        x = np.array([0.3, 1.2])
        g = grad(lambda v: (F.tanh(v) * v).sum())
        first = g(_arr(x))
        self.assertIsNotNone(first.op)
        h = grad(lambda v: g(v).sum())(_arr(x)).to_numpy()
        t = np.tanh(x)
        s = 1.0 - t**2
        np.testing.assert_allclose(h, 2.0 * s - 2.0 * x * t * s, rtol=1e-10)

    def test_real_loss_of_complex_input(self):
        z = np.array([1.0 + 2.0j, -0.5 + 0.3j])
        g = grad(lambda v: F.real(v * F.conj(v)).sum())(_arr(z))
        # d|z|^2 along v is 2 Re(conj(z) v), paired as Re(sum(g * v)).
        np.testing.assert_allclose(g.to_numpy(), 2.0 * np.conj(z))


class TestForwardMode(unittest.TestCase):
    def test_jvp_matches_finite_differences(self):
        x = np.array([0.2, -0.7, 1.5])
        v = np.array([1.0, 0.5, -2.0])
        f = lambda a: F.exp(F.sin(a)) * a  # noqa: E731
        out, t = jvp(f, [x], [v])
        np.testing.assert_allclose(out.to_numpy(), np.exp(np.sin(x)) * x)
        np.testing.assert_allclose(t.to_numpy(), numerical_jvp(f, [x], [v]), rtol=1e-6)

    def test_tangent_dims_checked(self):
        with self.assertRaises(ShapeMismatchError):
            jvp(F.exp, [np.zeros(3)], [np.zeros(2)])

    def test_tangent_count_checked(self):
        with self.assertRaises(ValueError):
            jvp(F.exp, [np.zeros(3)], [])

    def test_output_independent_of_inputs(self):
        c = _arr(np.array([4.0, 5.0]))
        _, t = jvp(lambda x: F.exp(c), [np.zeros(2)], [np.ones(2)])
        np.testing.assert_array_equal(t.to_numpy(), [0.0, 0.0])

    def test_rule_returning_wrong_dims(self):
        x = _arr(np.ones((2, 2)))
        with self.assertRaises(ShapeMismatchError):
            jvp(lambda a: apply(_WrongTangentOp(), (a,)), [x], [np.ones((2, 2))])


class TestPullback(unittest.TestCase):
    def test_pullback_reusable(self):
        x = np.array([1.0, 2.0])
        out, pullback = vjp(lambda a: a * a, _arr(x))
        first = pullback(np.array([1.0, 0.0]))[0].to_numpy()
        second = pullback(np.array([0.0, 1.0]))[0].to_numpy()
        np.testing.assert_allclose(first, [2.0, 0.0])
        np.testing.assert_allclose(second, [0.0, 4.0])

    def test_complex_cotangent_for_real_output(self):
        rng = np.random.default_rng(3)
        x = _arr(rng.standard_normal((1, 2, 6)))
        w = _arr(rng.standard_normal((3, 2, 2)))
        out, pullback = vjp(lambda a, b: F.conv1d(a, b), x, w)
        self.assertFalse(out.requires_complex)
        ct = np.ones(out.dims)
        gx, gw = pullback((1.0 + 1.0j) * ct)
        rx, rw = pullback(ct)
        self.assertFalse(gx.requires_complex)
        np.testing.assert_allclose(gx.to_numpy(), rx.to_numpy())
        np.testing.assert_allclose(gw.to_numpy(), rw.to_numpy())

    def test_cotangent_dims_checked(self):
        _, pullback = vjp(F.exp, _arr(np.zeros(3)))
        with self.assertRaises(ShapeMismatchError):
            pullback(np.zeros(4))


class TestPassthroughRules(unittest.TestCase):
    def test_custom_op_differentiates(self):
        op = _AddAllOp()
        a, b, c = (np.arange(3.0) + k for k in range(3))
        f = lambda x, y, z: apply(op, (x, y, z))  # noqa: E731
        np.testing.assert_allclose(f(_arr(a), _arr(b), _arr(c)).to_numpy(), a + b + c)
        check_grads(f, [a, b, c])
        gs = grad(lambda x, y, z: f(x, y, z).sum(), argnums=(0, 1, 2))(
            _arr(a), _arr(b), _arr(c)
        )
        for g in gs:
            np.testing.assert_array_equal(g.to_numpy(), np.ones(3))

    def test_passthrough_skips_missing_tangents(self):
        x = _arr(np.ones((2, 3)))
        y = _arr(np.ones((3,)))
        out = F.add(x, y)
        t = passthrough_jvp((x, y), (NO_GRADIENT, _arr(np.arange(3.0))), out)
        self.assertEqual(t.dims, (2, 3))
        np.testing.assert_array_equal(t.to_numpy(), np.tile(np.arange(3.0), (2, 1)))
        self.assertIs(passthrough_jvp((x,), (NO_GRADIENT,), out), NO_GRADIENT)

    def test_passthrough_vjp_reduces(self):
        x = _arr(np.ones((2, 3)))
        y = _arr(np.ones((3,)))
        out = F.add(x, y)
        gx, gy = passthrough_vjp((x, y), _arr(np.ones((2, 3))), out)
        np.testing.assert_array_equal(gy.to_numpy(), [2.0, 2.0, 2.0])
        self.assertEqual(gx.dims, (2, 3))


if __name__ == "__main__":
    unittest.main()
