"""
Unit tests for the operation protocol defaults and the operation registry.
"""

import pickle
import unittest

from difftensor.domain._array_shape import ArrayShape
from difftensor.domain._operation import (
    NO_GRADIENT,
    NoGradient,
    Operation,
    default_jvp,
    default_vjp,
)
from difftensor.domain.utils._registry import create_operation_registry


class _IdentityShapeOp(Operation):
    def infer_shape(self, operand_shapes, params):
        return ArrayShape.contiguous(operand_shapes[0].dims, params, self.name)

    def forward(self, output, operands):
        pass


class TestNoGradient(unittest.TestCase):
    def test_singleton(self):
        self.assertIs(NoGradient(), NO_GRADIENT)

    def test_falsy_and_repr(self):
        self.assertFalse(NO_GRADIENT)
        self.assertEqual(repr(NO_GRADIENT), "NO_GRADIENT")

    def test_pickle_preserves_identity(self):
        self.assertIs(pickle.loads(pickle.dumps(NO_GRADIENT)), NO_GRADIENT)


class TestDefaultRules(unittest.TestCase):
    def test_default_jvp(self):
        self.assertIs(default_jvp(("a", "b"), (None, None), "out"), NO_GRADIENT)

    def test_default_vjp_one_entry_per_primal(self):
        self.assertEqual(default_vjp(("a", "b", "c"), "g", "out"), (NO_GRADIENT,) * 3)

    def test_operation_inherits_defaults(self):
        op = _IdentityShapeOp()
        self.assertIs(op.jvp(("x",), ("t",), "out"), NO_GRADIENT)
        self.assertEqual(op.vjp(("x", "y"), "g", "out"), (NO_GRADIENT, NO_GRADIENT))

    def test_result_is_complex_defaults_to_any(self):
        op = _IdentityShapeOp()
        self.assertFalse(op.result_is_complex([False, False]))
        self.assertTrue(op.result_is_complex([False, True]))

    def test_abstract_operation_cannot_instantiate(self):
        with self.assertRaises(TypeError):
            Operation()  # type: ignore[abstract]


class TestOperationRegistry(unittest.TestCase):
    def setUp(self):
        self.registry = create_operation_registry()

    def test_register_sets_name_and_shares_instance(self):
        @self.registry.register("ident")
        class Ident(_IdentityShapeOp):
            pass

        op = self.registry.resolve("ident")
        self.assertIsInstance(op, Ident)
        self.assertEqual(Ident.name, "ident")
        self.assertIs(self.registry.resolve("ident"), op)
        self.assertIn("ident", self.registry)
        self.assertEqual(len(self.registry), 1)

    def test_duplicate_name_raises(self):
        self.registry.register("dup")(type("A", (_IdentityShapeOp,), {}))
        with self.assertRaises(ValueError):
            self.registry.register("dup")(type("B", (_IdentityShapeOp,), {}))

    def test_replace_allows_override(self):
        self.registry.register("dup")(type("A", (_IdentityShapeOp,), {}))
        B = self.registry.register("dup", replace=True)(type("B", (_IdentityShapeOp,), {}))
        self.assertIsInstance(self.registry.resolve("dup"), B)

    def test_non_operation_rejected(self):
        with self.assertRaises(TypeError):
            self.registry.register("bad")(object)

    def test_empty_name_rejected(self):
        with self.assertRaises(ValueError):
            self.registry.register("")

    def test_resolve_unknown_raises_key_error(self):
        with self.assertRaises(KeyError):
            self.registry.resolve("missing")

    def test_registries_are_independent(self):
        other = create_operation_registry()
        self.registry.register("only_here")(type("A", (_IdentityShapeOp,), {}))
        self.assertNotIn("only_here", other)

    def test_iteration_sorted(self):
        for name in ("b", "a", "c"):
            self.registry.register(name)(type(name.upper(), (_IdentityShapeOp,), {}))
        self.assertEqual(list(self.registry), ["a", "b", "c"])


if __name__ == "__main__":
    unittest.main()
