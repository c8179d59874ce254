"""
Differentiable Functions
========================

``DiffFunction`` is the "function f" the calculus core works with: a map
f: R^d → F, F a tensor space of shape ``out_shape``, optionally carrying

    - an *analytic derivative*: another DiffFunction f' with output shape
      ``out_shape + (d,)`` whose last axis is the differentiation
      direction, so that f'(x)[..., j] = ∂f/∂x_j (x);
    - a differentiability predicate ``is_differentiable_at(x)``, a
      sufficient condition for f' to be the derivative at x (and on a
      neighborhood of x).

Derivative chains f, f', f'', ... are built lazily and cached, so a
function can expose derivatives of every order without materializing
them. Functions without an analytic derivative are differentiated by the
numerical primitive in ``jetpy.calculus.derivative``.

Library:
    ConstantFunction, LinearFunction, IdentityFunction
    PolynomialMap (multivariate, tensor-valued), polynomial(coeffs)
    ElementwiseFunction: exp_map, sin_map, cos_map
    absolute_value (kink at 0)
    FunctionWrapper (any callable, numerical derivatives)
    Reshaped (linear reshaping of the output)

Operators build combinators (see ``jetpy.calculus.combinators``):
    f + g, f - g, -f, c * f, f * g, f / g, g @ f  (g ∘ f)
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from jetpy.algebra.multilinear import MultilinearMap
from jetpy.utils.helpers import as_point, shape_size


_UNSET = object()


class DiffFunction:
    """A map R^d → F with an optional analytic derivative."""

    def __init__(self, dim: int, out_shape: Tuple[int, ...] = (), name: Optional[str] = None):
        if dim < 1:
            raise ValueError(f"dim must be positive, got {dim}")
        self.dim = int(dim)
        self.out_shape = tuple(int(s) for s in out_shape)
        self.name = name or type(self).__name__
        self._derivative_cache = _UNSET

    # ---- Evaluation ----

    def evaluate(self, x: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def __call__(self, x) -> np.ndarray:
        point = as_point(x, self.dim)
        value = np.asarray(self.evaluate(point), dtype=float)
        if value.shape != self.out_shape:
            if value.size != shape_size(self.out_shape):
                raise ValueError(
                    f"{self.name} returned shape {value.shape}, expected {self.out_shape}"
                )
            value = value.reshape(self.out_shape)
        return value

    # ---- Derivatives ----

    def _make_derivative(self) -> Optional['DiffFunction']:
        return None

    @property
    def derivative(self) -> Optional['DiffFunction']:
        """The analytic derivative f', or None when only numerical derivatives exist."""
        if self._derivative_cache is _UNSET:
            self._derivative_cache = self._make_derivative()
        return self._derivative_cache

    @property
    def has_analytic_derivative(self) -> bool:
        return self.derivative is not None

    def is_differentiable_at(self, x) -> bool:
        return self.derivative is not None

    def derivative_chain(self, order: int) -> Optional[List['DiffFunction']]:
        """[f, f', ..., f^(order)] or None if some analytic derivative is missing."""
        chain = [self]
        for _ in range(order):
            nxt = chain[-1].derivative
            if nxt is None:
                return None
            chain.append(nxt)
        return chain

    # ---- Combinators ----

    def __add__(self, other):
        from jetpy.calculus.combinators import add
        if not isinstance(other, DiffFunction):
            return NotImplemented
        return add(self, other)

    def __sub__(self, other):
        from jetpy.calculus.combinators import sub
        if not isinstance(other, DiffFunction):
            return NotImplemented
        return sub(self, other)

    def __neg__(self):
        from jetpy.calculus.combinators import neg
        return neg(self)

    def __mul__(self, other):
        from jetpy.calculus.combinators import mul, smul
        if isinstance(other, DiffFunction):
            return mul(self, other)
        if np.isscalar(other):
            return smul(float(other), self)
        return NotImplemented

    def __rmul__(self, other):
        from jetpy.calculus.combinators import smul
        if np.isscalar(other):
            return smul(float(other), self)
        return NotImplemented

    def __truediv__(self, other):
        from jetpy.calculus.combinators import inv, mul, smul
        if isinstance(other, DiffFunction):
            return mul(self, inv(other))
        if np.isscalar(other):
            return smul(1.0 / float(other), self)
        return NotImplemented

    def __matmul__(self, other):
        """g @ f is the composition g ∘ f."""
        from jetpy.calculus.combinators import compose
        if not isinstance(other, DiffFunction):
            return NotImplemented
        return compose(self, other)

    def __repr__(self):
        return f"{self.name}(R^{self.dim} → {self.out_shape})"


class FunctionWrapper(DiffFunction):
    """
    Wrap a plain callable.

    ``derivative`` may be a DiffFunction or a callable returning the
    ``out_shape + (dim,)`` Jacobian tensor; without one, derivatives are
    taken numerically. ``differentiable`` optionally restricts where the
    supplied derivative is valid.
    """

    def __init__(
        self,
        func: Callable,
        dim: int,
        out_shape: Tuple[int, ...] = (),
        derivative=None,
        differentiable: Optional[Callable] = None,
        name: Optional[str] = None,
    ):
        super().__init__(dim, out_shape, name or getattr(func, '__name__', 'function'))
        self._func = func
        self._given_derivative = derivative
        self._differentiable = differentiable

    def evaluate(self, x):
        return self._func(x)

    def _make_derivative(self):
        given = self._given_derivative
        if given is None or isinstance(given, DiffFunction):
            return given
        return FunctionWrapper(given, self.dim, self.out_shape + (self.dim,), name=f"{self.name}'")

    def is_differentiable_at(self, x) -> bool:
        if self.derivative is None:
            return False
        if self._differentiable is None:
            return True
        return bool(self._differentiable(as_point(x, self.dim)))


class ConstantFunction(DiffFunction):
    """x ↦ c."""

    def __init__(self, value, dim: int, name: Optional[str] = None):
        value = np.array(value, dtype=float)
        super().__init__(dim, value.shape, name or "const")
        value.setflags(write=False)
        self.value = value

    def evaluate(self, x):
        return self.value

    def _make_derivative(self):
        return ConstantFunction(np.zeros(self.out_shape + (self.dim,)), self.dim, f"{self.name}'")

    def is_differentiable_at(self, x) -> bool:
        return True


class LinearFunction(DiffFunction):
    """x ↦ L x for a linear map L."""

    def __init__(self, linear, name: Optional[str] = None):
        if not isinstance(linear, MultilinearMap):
            linear = MultilinearMap.linear(linear)
        if linear.order != 1:
            raise ValueError("LinearFunction needs a map of order 1")
        super().__init__(linear.dim, linear.out_shape, name or "linear")
        self.linear = linear

    def evaluate(self, x):
        return self.linear(x)

    def _make_derivative(self):
        return ConstantFunction(self.linear.tensor, self.dim, f"{self.name}'")

    def is_differentiable_at(self, x) -> bool:
        return True


class IdentityFunction(LinearFunction):
    def __init__(self, dim: int):
        super().__init__(MultilinearMap.identity(dim), name="id")


class PolynomialMap(DiffFunction):
    """
    A polynomial map x ↦ Σ_α c_α · x^α with tensor coefficients.

    ``terms`` maps exponent tuples α (length d) to coefficients of shape
    ``out_shape``. The derivative is again a PolynomialMap, so the chain
    is exact at every order and vanishes beyond the degree.

    Usage:
        >>> # f(x, y) = (x·y, x + y²)
        >>> f = PolynomialMap(2, {(1, 1): [1, 0], (1, 0): [0, 1], (0, 2): [0, 1]}, (2,))
    """

    def __init__(
        self,
        dim: int,
        terms: Dict[Tuple[int, ...], object],
        out_shape: Tuple[int, ...] = (),
        name: Optional[str] = None,
    ):
        super().__init__(dim, out_shape, name or "poly")
        self.terms: Dict[Tuple[int, ...], np.ndarray] = {}
        for alpha, coeff in terms.items():
            alpha = tuple(int(a) for a in alpha)
            if len(alpha) != dim or any(a < 0 for a in alpha):
                raise ValueError(f"invalid exponent {alpha} for dimension {dim}")
            c = np.array(coeff, dtype=float)
            if c.size != shape_size(self.out_shape):
                raise ValueError(f"coefficient for {alpha} has shape {c.shape}, expected {self.out_shape}")
            c = c.reshape(self.out_shape)
            if alpha in self.terms:
                self.terms[alpha] = self.terms[alpha] + c
            else:
                self.terms[alpha] = c

    @property
    def degree(self) -> int:
        nonzero = [sum(a) for a, c in self.terms.items() if np.any(c != 0)]
        return max(nonzero) if nonzero else 0

    def evaluate(self, x):
        total = np.zeros(self.out_shape)
        for alpha, coeff in self.terms.items():
            total = total + coeff * float(np.prod(x ** np.array(alpha, dtype=float)))
        return total

    def _make_derivative(self):
        d = self.dim
        new_terms: Dict[Tuple[int, ...], np.ndarray] = {}
        for alpha, coeff in self.terms.items():
            for j in range(d):
                if alpha[j] == 0:
                    continue
                lowered = list(alpha)
                lowered[j] -= 1
                lowered = tuple(lowered)
                c = np.zeros(self.out_shape + (d,))
                c[..., j] = alpha[j] * coeff
                new_terms[lowered] = new_terms[lowered] + c if lowered in new_terms else c
        return PolynomialMap(d, new_terms, self.out_shape + (d,), name=f"{self.name}'")

    def is_differentiable_at(self, x) -> bool:
        return True


def polynomial(coefficients: Sequence[float], name: Optional[str] = None) -> PolynomialMap:
    """Scalar polynomial on R: coefficients c₀, c₁, ... of 1, x, x², ..."""
    return PolynomialMap(1, {(k,): c for k, c in enumerate(coefficients)}, (), name=name)


class ElementwiseFunction(DiffFunction):
    """
    x ↦ (φ(x₁), ..., φ(x_d)) for a smooth scalar φ, or its k-th derivative.

    The k-th derivative is the diagonal tensor T with
    T[i, i, ..., i] = φ^(k)(xᵢ), of shape (d,) + (d,) * k.
    ``scalar_derivative(k, values)`` returns φ^(k) applied elementwise.
    """

    def __init__(
        self,
        dim: int,
        scalar_derivative: Callable[[int, np.ndarray], np.ndarray],
        order: int = 0,
        name: str = "φ",
    ):
        super().__init__(dim, (dim,) * (order + 1), name if order == 0 else f"{name}^({order})")
        self.scalar_derivative = scalar_derivative
        self.order = order
        self._base_name = name

    def evaluate(self, x):
        values = np.asarray(self.scalar_derivative(self.order, x), dtype=float)
        out = np.zeros(self.out_shape)
        for i in range(self.dim):
            out[(i,) * (self.order + 1)] = values[i]
        return out

    def _make_derivative(self):
        return ElementwiseFunction(self.dim, self.scalar_derivative, self.order + 1, self._base_name)

    def is_differentiable_at(self, x) -> bool:
        return True


def _exp_derivative(k, x):
    return np.exp(x)


def _sin_derivative(k, x):
    return [np.sin, np.cos, lambda v: -np.sin(v), lambda v: -np.cos(v)][k % 4](x)


def _cos_derivative(k, x):
    return [np.cos, lambda v: -np.sin(v), lambda v: -np.cos(v), np.sin][k % 4](x)


def exp_map(dim: int = 1) -> ElementwiseFunction:
    return ElementwiseFunction(dim, _exp_derivative, name="exp")


def sin_map(dim: int = 1) -> ElementwiseFunction:
    return ElementwiseFunction(dim, _sin_derivative, name="sin")


def cos_map(dim: int = 1) -> ElementwiseFunction:
    return ElementwiseFunction(dim, _cos_derivative, name="cos")


class Reshaped(DiffFunction):
    """x ↦ f(x) viewed with a different output shape of the same size."""

    def __init__(self, inner: DiffFunction, out_shape: Tuple[int, ...]):
        if shape_size(tuple(out_shape)) != shape_size(inner.out_shape):
            raise ValueError(f"cannot reshape {inner.out_shape} into {tuple(out_shape)}")
        super().__init__(inner.dim, out_shape, inner.name)
        self.inner = inner

    def evaluate(self, x):
        return self.inner(x).reshape(self.out_shape)

    def _make_derivative(self):
        d = self.inner.derivative
        if d is None:
            return None
        return Reshaped(d, self.out_shape + (self.dim,))

    def is_differentiable_at(self, x) -> bool:
        return self.inner.is_differentiable_at(x)


class _Sign(DiffFunction):
    """sign(x) on R, viewed as the linear map v ↦ sign(x)·v (shape (1,))."""

    def __init__(self):
        super().__init__(1, (1,), "sign")

    def evaluate(self, x):
        return np.sign(x)

    def _make_derivative(self):
        return ConstantFunction(np.zeros((1, 1)), 1, "sign'")

    def is_differentiable_at(self, x) -> bool:
        return float(as_point(x, 1)[0]) != 0.0


class _Abs(DiffFunction):
    def __init__(self):
        super().__init__(1, (), "abs")

    def evaluate(self, x):
        return np.abs(x[0])

    def _make_derivative(self):
        return _Sign()

    def is_differentiable_at(self, x) -> bool:
        return float(as_point(x, 1)[0]) != 0.0


def absolute_value() -> DiffFunction:
    """|x| on R: smooth away from 0, not differentiable at 0."""
    return _Abs()
