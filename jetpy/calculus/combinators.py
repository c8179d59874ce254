"""
Combinators
===========

Building smooth functions from smooth functions. Every combinator is a
``DiffFunction`` whose analytic derivative is the textbook first-order
formula, expressed again with combinators, so derivatives of every order
unfold from it lazily:

    (f + g)'        = f' + g'
    (−f)'           = −f'
    (c·f)'          = c·f'
    B(u, v)'        = B(u', v) + B(u, v')                  (Leibniz)
    (u·v)'          = u'·v + u·v'                          (B = MUL)
    (g ∘ f)'        = COMPOSE(g' ∘ f, f')                  (chain rule)
    (1/f)'          = −(1/f)²·f'                           where f ≠ 0
    (A⁻¹)'          = −A⁻¹ (DA) A⁻¹                         where A invertible

Bilinear maps:
    A ``BilinearMap`` is a function ``combine(P, Q)`` bilinear in two
    tensors, with a bound ‖B‖ such that ‖B(P, Q)‖ ≤ ‖B‖·‖P‖·‖Q‖ for
    Hilbert–Schmidt norms. ``lift_left`` / ``lift_right`` apply it
    slice-wise when one argument carries an extra trailing direction axis.

Closed forms:
    D^m(f + g) = D^m f + D^m g,  D^m(−f) = −D^m f,  D^m(c·f) = c·D^m f
    hold exactly at every order and are provided as direct tower
    queries (``iterated_fderiv_within_add`` and friends).

Contracts:
    Composition requires g to be C^n on a set containing f(S). That image
    inclusion is a caller obligation and is not checked.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from jetpy.algebra.multilinear import MultilinearMap
from jetpy.algebra.order import OrderLike, as_order
from jetpy.calculus.functions import DiffFunction, Reshaped
from jetpy.runtime.parallel import ParallelReducer
from jetpy.topology.domains import Domain
from jetpy.utils.helpers import as_point, shape_size

logger = logging.getLogger(__name__)


# ---------- Bilinear maps ----------

class BilinearMap:
    """
    A bounded bilinear map on tensors.

    Usage:
        >>> MUL.combine(np.array(2.0), np.array([1.0, 3.0]))
        array([2., 6.])
        >>> MUL.lift_left(np.array([1.0, 0.0]), np.array(5.0))   # direction axis last
        array([5., 0.])
    """

    def __init__(self, combine: Callable, norm_bound: float = 1.0, name: str = "B"):
        if norm_bound < 0:
            raise ValueError(f"norm_bound must be non-negative, got {norm_bound}")
        self._combine = combine
        self.norm_bound = float(norm_bound)
        self.name = name

    def combine(self, left, right) -> np.ndarray:
        return np.asarray(self._combine(np.asarray(left, dtype=float), np.asarray(right, dtype=float)))

    __call__ = combine

    def norm(self) -> float:
        return self.norm_bound

    def output_shape(self, left_shape, right_shape):
        return self.combine(np.zeros(left_shape), np.zeros(right_shape)).shape

    def lift_left(self, left, right) -> np.ndarray:
        """B applied to each slice left[..., j]; the direction axis stays last."""
        left = np.asarray(left, dtype=float)
        return np.stack([self.combine(left[..., j], right) for j in range(left.shape[-1])], axis=-1)

    def lift_right(self, left, right) -> np.ndarray:
        right = np.asarray(right, dtype=float)
        return np.stack([self.combine(left, right[..., j]) for j in range(right.shape[-1])], axis=-1)

    def lifted_left(self) -> 'BilinearMap':
        return BilinearMap(self.lift_left, self.norm_bound, f"{self.name}↑L")

    def lifted_right(self) -> 'BilinearMap':
        return BilinearMap(self.lift_right, self.norm_bound, f"{self.name}↑R")

    @classmethod
    def from_tensor(cls, tensor, name: str = "B") -> 'BilinearMap':
        """(u, v) ↦ T(u, v) for a tensor T of shape out + (p, q)."""
        tensor = np.asarray(tensor, dtype=float)
        if tensor.ndim < 2:
            raise ValueError("a bilinear tensor needs at least two axes")

        def combine(u, v):
            return np.tensordot(np.tensordot(tensor, v, axes=([-1], [0])), u, axes=([-1], [0]))

        return cls(combine, float(np.linalg.norm(tensor.ravel())), name)

    def __repr__(self):
        return f"BilinearMap({self.name}, ‖B‖ ≤ {self.norm_bound:g})"


def _compose_linear(outer, inner):
    return np.tensordot(outer, inner, axes=1)


def _left_matmul(p, q):
    return np.tensordot(p, q, axes=([1], [0]))


def _right_matmul(p, q):
    return np.einsum('imj,ml->ilj', p, q)


MUL = BilinearMap(np.multiply, 1.0, "mul")
COMPOSE = BilinearMap(_compose_linear, 1.0, "compose")
INNER = BilinearMap(lambda u, v: np.dot(u, v), 1.0, "inner")
LEFT_MATMUL = BilinearMap(_left_matmul, 1.0, "left_matmul")
RIGHT_MATMUL = BilinearMap(_right_matmul, 1.0, "right_matmul")


# ---------- Linear combinators ----------

def _check_same_signature(functions: Sequence[DiffFunction]):
    first = functions[0]
    for g in functions[1:]:
        if (g.dim, g.out_shape) != (first.dim, first.out_shape):
            raise ValueError(
                f"cannot combine {first.name}: R^{first.dim} → {first.out_shape} "
                f"with {g.name}: R^{g.dim} → {g.out_shape}"
            )


class Sum(DiffFunction):
    """f₁ + ... + f_k."""

    def __init__(self, *terms: DiffFunction):
        if not terms:
            raise ValueError("Sum needs at least one term")
        _check_same_signature(terms)
        super().__init__(terms[0].dim, terms[0].out_shape, " + ".join(t.name for t in terms))
        self.terms = list(terms)

    def evaluate(self, x):
        total = self.terms[0](x)
        for t in self.terms[1:]:
            total = total + t(x)
        return total

    def _make_derivative(self):
        derivs = [t.derivative for t in self.terms]
        if any(d is None for d in derivs):
            return None
        return Sum(*derivs)

    def is_differentiable_at(self, x) -> bool:
        return self.derivative is not None and all(t.is_differentiable_at(x) for t in self.terms)


class Negation(DiffFunction):
    def __init__(self, inner: DiffFunction):
        super().__init__(inner.dim, inner.out_shape, f"-{inner.name}")
        self.inner = inner

    def evaluate(self, x):
        return -self.inner(x)

    def _make_derivative(self):
        d = self.inner.derivative
        return None if d is None else Negation(d)

    def is_differentiable_at(self, x) -> bool:
        return self.inner.is_differentiable_at(x)


class ScalarMultiple(DiffFunction):
    def __init__(self, scalar: float, inner: DiffFunction):
        super().__init__(inner.dim, inner.out_shape, f"{scalar:g}·{inner.name}")
        self.scalar = float(scalar)
        self.inner = inner

    def evaluate(self, x):
        return self.scalar * self.inner(x)

    def _make_derivative(self):
        d = self.inner.derivative
        return None if d is None else ScalarMultiple(self.scalar, d)

    def is_differentiable_at(self, x) -> bool:
        return self.inner.is_differentiable_at(x)


# ---------- Bilinear combinators ----------

class BilinearApplication(DiffFunction):
    """x ↦ B(u(x), v(x)), differentiated by the Leibniz rule."""

    def __init__(self, bilinear: BilinearMap, left: DiffFunction, right: DiffFunction):
        if left.dim != right.dim:
            raise ValueError(f"operands on R^{left.dim} and R^{right.dim}")
        out_shape = bilinear.output_shape(left.out_shape, right.out_shape)
        super().__init__(left.dim, out_shape, f"{bilinear.name}({left.name}, {right.name})")
        self.bilinear = bilinear
        self.left = left
        self.right = right

    def evaluate(self, x):
        return self.bilinear.combine(self.left(x), self.right(x))

    def _make_derivative(self):
        dl, dr = self.left.derivative, self.right.derivative
        if dl is None or dr is None:
            return None
        return Sum(
            BilinearApplication(self.bilinear.lifted_left(), dl, self.right),
            BilinearApplication(self.bilinear.lifted_right(), self.left, dr),
        )

    def is_differentiable_at(self, x) -> bool:
        return (
            self.derivative is not None
            and self.left.is_differentiable_at(x)
            and self.right.is_differentiable_at(x)
        )


class Product(BilinearApplication):
    """Pointwise product u·v (scalars broadcast against tensors)."""

    def __init__(self, left: DiffFunction, right: DiffFunction):
        super().__init__(MUL, left, right)
        self.name = f"({left.name})·({right.name})"


class Composition(DiffFunction):
    """
    x ↦ g(f(x)), differentiated by the chain rule through COMPOSE.

    A scalar-valued inner function is viewed as R^1-valued.
    """

    def __init__(self, outer: DiffFunction, inner: DiffFunction):
        if shape_size(inner.out_shape) != outer.dim:
            raise ValueError(
                f"cannot compose {outer.name} on R^{outer.dim} after {inner.name} "
                f"valued in {inner.out_shape}"
            )
        if inner.out_shape != (outer.dim,):
            inner = Reshaped(inner, (outer.dim,))
        super().__init__(inner.dim, outer.out_shape, f"{outer.name}∘{inner.name}")
        self.outer = outer
        self.inner = inner

    def evaluate(self, x):
        return self.outer(self.inner(x))

    def _make_derivative(self):
        d_outer, d_inner = self.outer.derivative, self.inner.derivative
        if d_outer is None or d_inner is None:
            return None
        return BilinearApplication(COMPOSE, Composition(d_outer, self.inner), d_inner)

    def is_differentiable_at(self, x) -> bool:
        if self.derivative is None or not self.inner.is_differentiable_at(x):
            return False
        return self.outer.is_differentiable_at(self.inner(x))


class Inverse(DiffFunction):
    """x ↦ 1/f(x) for scalar f; the value at zeros of f is 0."""

    def __init__(self, inner: DiffFunction):
        if inner.out_shape != ():
            raise ValueError(f"Inverse needs a scalar function, got {inner.out_shape}")
        super().__init__(inner.dim, (), f"1/{inner.name}")
        self.inner = inner

    def evaluate(self, x):
        value = float(self.inner(x))
        return 0.0 if value == 0.0 else 1.0 / value

    def _make_derivative(self):
        d = self.inner.derivative
        if d is None:
            return None
        return Negation(Product(Product(self, self), d))

    def is_differentiable_at(self, x) -> bool:
        return (
            self.derivative is not None
            and self.inner.is_differentiable_at(x)
            and float(self.inner(x)) != 0.0
        )


class MatrixInverse(DiffFunction):
    """x ↦ A(x)⁻¹ for square-matrix valued A; zero where A is singular."""

    def __init__(self, inner: DiffFunction):
        shape = inner.out_shape
        if len(shape) != 2 or shape[0] != shape[1]:
            raise ValueError(f"MatrixInverse needs a square-matrix function, got {shape}")
        super().__init__(inner.dim, shape, f"inv({inner.name})")
        self.inner = inner

    def _invert(self, x) -> Optional[np.ndarray]:
        try:
            return np.linalg.inv(self.inner(x))
        except np.linalg.LinAlgError:
            return None

    def evaluate(self, x):
        result = self._invert(x)
        return np.zeros(self.out_shape) if result is None else result

    def _make_derivative(self):
        d = self.inner.derivative
        if d is None:
            return None
        # −A⁻¹ (∂A) A⁻¹ along every direction
        right = BilinearApplication(RIGHT_MATMUL, d, self)
        return Negation(BilinearApplication(LEFT_MATMUL, self, right))

    def is_differentiable_at(self, x) -> bool:
        return (
            self.derivative is not None
            and self.inner.is_differentiable_at(x)
            and self._invert(x) is not None
        )


# ---------- Constructors ----------

def add(f: DiffFunction, g: DiffFunction) -> DiffFunction:
    return Sum(f, g)


def sum_of(functions: Sequence[DiffFunction]) -> DiffFunction:
    return Sum(*functions)


def neg(f: DiffFunction) -> DiffFunction:
    return Negation(f)


def sub(f: DiffFunction, g: DiffFunction) -> DiffFunction:
    return Sum(f, Negation(g))


def smul(c: float, f: DiffFunction) -> DiffFunction:
    return ScalarMultiple(c, f)


def mul(f: DiffFunction, g: DiffFunction) -> DiffFunction:
    return Product(f, g)


def product_of(functions: Sequence[DiffFunction]) -> DiffFunction:
    functions = list(functions)
    if not functions:
        raise ValueError("product_of needs at least one factor")
    result = functions[0]
    for g in functions[1:]:
        result = Product(result, g)
    return result


def inv(f: DiffFunction) -> DiffFunction:
    return Inverse(f)


def matrix_inv(f: DiffFunction) -> DiffFunction:
    return MatrixInverse(f)


def compose(outer: DiffFunction, inner: DiffFunction) -> DiffFunction:
    return Composition(outer, inner)


def bilinear_apply(bilinear: BilinearMap, left: DiffFunction, right: DiffFunction) -> DiffFunction:
    return BilinearApplication(bilinear, left, right)


# ---------- Closed forms ----------

def iterated_fderiv_within_add(engine, f, g, n, domain, x) -> MultilinearMap:
    return engine.iterated_fderiv_within(f, n, domain, x) + engine.iterated_fderiv_within(g, n, domain, x)


def iterated_fderiv_within_sum(engine, functions, n, domain, x, reducer: Optional[ParallelReducer] = None) -> MultilinearMap:
    reducer = reducer or ParallelReducer(workers=engine.config.parallel_workers,
                                         min_parallel_size=engine.config.min_parallel_size)
    return reducer.sum(lambda f: engine.iterated_fderiv_within(f, n, domain, x), list(functions))


def iterated_fderiv_within_neg(engine, f, n, domain, x) -> MultilinearMap:
    return -engine.iterated_fderiv_within(f, n, domain, x)


def iterated_fderiv_within_sub(engine, f, g, n, domain, x) -> MultilinearMap:
    return engine.iterated_fderiv_within(f, n, domain, x) - engine.iterated_fderiv_within(g, n, domain, x)


def iterated_fderiv_within_const_smul(engine, c, f, n, domain, x) -> MultilinearMap:
    return float(c) * engine.iterated_fderiv_within(f, n, domain, x)


# ---------- Verification ----------

@dataclass
class CombinatorReport:
    """Preconditions and postcondition of a smoothness-preservation rule."""
    rule: str
    order: object
    combined: DiffFunction
    preconditions: Dict[str, bool] = field(default_factory=dict)
    postcondition: bool = False

    @property
    def premises_hold(self) -> bool:
        return all(self.preconditions.values())

    @property
    def implication_holds(self) -> bool:
        return not self.premises_hold or self.postcondition


class CombinatorVerifier:
    """
    Check that combinators preserve C^n at a point.

    Usage:
        >>> verifier = CombinatorVerifier(SmoothnessChecker())
        >>> report = verifier.verify("mul", [f, g], 2, Universe(1), [0.5])
        >>> report.implication_holds
        True
    """

    RULES = ("add", "sum", "neg", "sub", "smul", "mul", "product", "inv", "matrix_inv", "bilinear")

    def __init__(self, checker):
        self.checker = checker

    def _build(self, rule: str, functions: List[DiffFunction], scalar, bilinear) -> DiffFunction:
        if rule == "add":
            return add(*functions)
        if rule == "sum":
            return sum_of(functions)
        if rule == "neg":
            return neg(*functions)
        if rule == "sub":
            return sub(*functions)
        if rule == "smul":
            return smul(scalar, *functions)
        if rule == "mul":
            return mul(*functions)
        if rule == "product":
            return product_of(functions)
        if rule == "inv":
            return inv(*functions)
        if rule == "matrix_inv":
            return matrix_inv(*functions)
        if rule == "bilinear":
            return bilinear_apply(bilinear, *functions)
        raise ValueError(f"unknown rule {rule!r}; expected one of {self.RULES}")

    def verify(
        self,
        rule: str,
        functions: Sequence[DiffFunction],
        n: OrderLike,
        domain: Domain,
        x,
        scalar: float = 1.0,
        bilinear: Optional[BilinearMap] = None,
    ) -> CombinatorReport:
        functions = list(functions)
        order = as_order(n)
        combined = self._build(rule, functions, scalar, bilinear)
        x = as_point(x, combined.dim)
        report = CombinatorReport(rule, order, combined)

        for i, f in enumerate(functions):
            report.preconditions[f"{i}:{f.name} is C^{order}"] = bool(
                self.checker.cont_diff_within_at(f, order, domain, x)
            )
        if rule == "inv":
            report.preconditions["nonzero"] = float(functions[0](x)) != 0.0
        if rule == "matrix_inv":
            report.preconditions["invertible"] = MatrixInverse(functions[0])._invert(x) is not None

        report.postcondition = bool(self.checker.cont_diff_within_at(combined, order, domain, x))
        logger.debug(f"{rule} at {x}: premises {report.preconditions}, conclusion {report.postcondition}")
        return report

    def verify_composition(
        self,
        outer: DiffFunction,
        inner: DiffFunction,
        n: OrderLike,
        domain: Domain,
        outer_domain: Domain,
        x,
    ) -> CombinatorReport:
        """g C^n within T at f(x) and f C^n within S at x ⟹ g∘f C^n within S at x."""
        order = as_order(n)
        combined = compose(outer, inner)
        x = as_point(x, inner.dim)
        y = as_point(inner(x), outer.dim)
        report = CombinatorReport("compose", order, combined)
        report.preconditions[f"{outer.name} is C^{order} at f(x)"] = bool(
            self.checker.cont_diff_within_at(outer, order, outer_domain, y)
        )
        report.preconditions[f"{inner.name} is C^{order}"] = bool(
            self.checker.cont_diff_within_at(inner, order, domain, x)
        )
        report.postcondition = bool(self.checker.cont_diff_within_at(combined, order, domain, x))
        return report
