"""
Continuous Multilinear Maps
===========================

Bounded m-ary multilinear operators M: E^m → F with E = R^d and F a tensor
space of shape ``out_shape``.

Representation:
    A map is an immutable tensor T of shape ``out_shape + (d,) * m``.
    Argument i contracts with axis ``len(out_shape) + i``:

        M(v₁, ..., vₘ)[o] = Σ T[o, j₁, ..., jₘ] · v₁[j₁] ··· vₘ[jₘ]

    A 0-ary map encodes a single point value (T itself), and a linear map
    E → G is the 1-ary case with ``out_shape`` = shape of G. A linear map
    into m-ary maps therefore has ``out_shape = F + (d,) * m``.

Norm:
    ``norm()`` is the Hilbert–Schmidt norm ‖T‖₂ (Frobenius norm of the
    tensor). It dominates the operator norm, and the two load-bearing
    inequalities hold for it exactly:

        ‖L ∘ M‖           ≤ ‖L‖ · ‖M‖
        ‖M(L·, ..., L·)‖  ≤ ‖M‖ · ‖L‖^m

    Since the norm only depends on the multiset of tensor entries, every
    currying isomorphism below is an isometry.

Currying:
    curry_left   : L^{m+1}(E; F) → L(E; L^m(E; F))     M ↦ (v ↦ M(v, ·))
    uncurry_left : inverse of curry_left
    curry_right  : L^{m+1}(E; F) → L^m(E; L(E; F))     M ↦ (w ↦ (v ↦ M(w, v)))
    uncurry_right: inverse of curry_right

    They are realised as axis moves, so round-trips are exact.
"""

from typing import Optional, Tuple

import numpy as np

from jetpy.utils.helpers import shape_size, tensors_close


class MultilinearMap:
    """
    An immutable continuous multilinear map E^m → F.

    Usage:
        >>> B = MultilinearMap(np.eye(2), order=2)      # (u, v) ↦ u·v
        >>> B(np.array([1.0, 2.0]), np.array([3.0, 4.0]))
        array(11.)
    """

    __slots__ = ('_tensor', '_order', '_dim')

    def __init__(self, tensor, order: int, dim: Optional[int] = None):
        if order < 0:
            raise ValueError(f"order must be non-negative, got {order}")
        data = np.array(tensor, dtype=float)
        if order == 0:
            if dim is None:
                raise ValueError("dim is required for a 0-ary map")
        else:
            if data.ndim < order:
                raise ValueError(
                    f"tensor of shape {data.shape} cannot carry {order} arguments"
                )
            inferred = data.shape[-1]
            if dim is None:
                dim = inferred
            if data.shape[data.ndim - order:] != (dim,) * order:
                raise ValueError(
                    f"trailing axes {data.shape[data.ndim - order:]} do not match "
                    f"{order} arguments of dimension {dim}"
                )
        data.setflags(write=False)
        self._tensor = data
        self._order = int(order)
        self._dim = int(dim)

    # ---- Constructors ----

    @classmethod
    def zero(cls, dim: int, order: int, out_shape: Tuple[int, ...] = ()) -> 'MultilinearMap':
        """The designated zero map (the engine's "no derivative" sentinel)."""
        return cls(np.zeros(tuple(out_shape) + (dim,) * order), order=order, dim=dim)

    @classmethod
    def constant(cls, value, dim: int) -> 'MultilinearMap':
        """The 0-ary map encoding a point value."""
        return cls(value, order=0, dim=dim)

    @classmethod
    def linear(cls, matrix) -> 'MultilinearMap':
        """A linear map from a tensor whose last axis is the input."""
        return cls(matrix, order=1)

    @classmethod
    def identity(cls, dim: int) -> 'MultilinearMap':
        return cls(np.eye(dim), order=1, dim=dim)

    # ---- Accessors ----

    @property
    def tensor(self) -> np.ndarray:
        return self._tensor

    @property
    def order(self) -> int:
        return self._order

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def out_shape(self) -> Tuple[int, ...]:
        return self._tensor.shape[:self._tensor.ndim - self._order]

    def value(self) -> np.ndarray:
        """The point value of a 0-ary map."""
        if self._order != 0:
            raise ValueError(f"value() needs a 0-ary map, this one has order {self._order}")
        return self._tensor

    # ---- Evaluation ----

    def apply(self, *args) -> np.ndarray:
        if len(args) != self._order:
            raise ValueError(f"expected {self._order} arguments, got {len(args)}")
        result = self._tensor
        # Contract the last argument axis first so earlier axes keep their position
        for v in reversed(args):
            v = np.asarray(v, dtype=float)
            if v.shape != (self._dim,):
                raise ValueError(f"argument of shape {v.shape}, expected ({self._dim},)")
            result = np.tensordot(result, v, axes=([-1], [0]))
        return np.asarray(result)

    __call__ = apply

    def norm(self) -> float:
        """Hilbert–Schmidt norm, an upper bound of the operator norm."""
        return float(np.linalg.norm(self._tensor.ravel()))

    # ---- Currying ----

    def curry_left(self) -> 'MultilinearMap':
        """(m+1)-ary map → linear map v ↦ M(v, ·, ..., ·)."""
        if self._order < 1:
            raise ValueError("curry_left needs a map of order at least 1")
        k = len(self.out_shape)
        return MultilinearMap(np.moveaxis(self._tensor, k, -1), order=1, dim=self._dim)

    def uncurry_left(self, inner_order: int) -> 'MultilinearMap':
        """Linear map into ``inner_order``-ary maps → (inner_order+1)-ary map."""
        if self._order != 1:
            raise ValueError(f"uncurry_left needs a linear map, this one has order {self._order}")
        codomain = self.out_shape
        if inner_order < 0 or len(codomain) < inner_order:
            raise ValueError(f"codomain {codomain} cannot hold {inner_order} arguments")
        base = len(codomain) - inner_order
        if codomain[base:] != (self._dim,) * inner_order:
            raise ValueError(
                f"codomain {codomain} does not end in {inner_order} axes of size {self._dim}"
            )
        return MultilinearMap(
            np.moveaxis(self._tensor, -1, base), order=inner_order + 1, dim=self._dim
        )

    def curry_right(self) -> 'MultilinearMap':
        """(m+1)-ary map → m-ary map into linear maps, peeling the last argument."""
        if self._order < 1:
            raise ValueError("curry_right needs a map of order at least 1")
        k = len(self.out_shape)
        return MultilinearMap(
            np.moveaxis(self._tensor, -1, k), order=self._order - 1, dim=self._dim
        )

    def uncurry_right(self) -> 'MultilinearMap':
        """m-ary map into linear maps → (m+1)-ary map."""
        codomain = self.out_shape
        if not codomain or codomain[-1] != self._dim:
            raise ValueError(f"codomain {codomain} is not a space of linear maps on R^{self._dim}")
        k = len(codomain) - 1
        return MultilinearMap(
            np.moveaxis(self._tensor, k, -1), order=self._order + 1, dim=self._dim
        )

    # ---- Composition with linear maps ----

    def postcompose(self, linear: 'MultilinearMap') -> 'MultilinearMap':
        """L ∘ M for a linear L defined on the flattened codomain of M."""
        if linear.order != 1:
            raise ValueError("postcompose needs a linear map")
        size = shape_size(self.out_shape)
        if linear.dim != size:
            raise ValueError(f"linear map acts on R^{linear.dim}, codomain has size {size}")
        flat = self._tensor.reshape((size,) + (self._dim,) * self._order)
        return MultilinearMap(
            np.tensordot(linear.tensor, flat, axes=([-1], [0])),
            order=self._order,
            dim=self._dim,
        )

    def precompose(self, linear: 'MultilinearMap') -> 'MultilinearMap':
        """(w₁, ..., wₘ) ↦ M(L w₁, ..., L wₘ) for a linear L: R^{d'} → R^d."""
        if linear.order != 1 or linear.out_shape != (self._dim,):
            raise ValueError(f"precompose needs a linear map into R^{self._dim}")
        k = len(self.out_shape)
        result = self._tensor
        # Each contraction appends the new axis last; the next argument axis moves to k
        for _ in range(self._order):
            result = np.tensordot(result, linear.tensor, axes=([k], [0]))
        return MultilinearMap(result, order=self._order, dim=linear.dim)

    def compose_linear(self, linear: 'MultilinearMap', side: str = "post") -> 'MultilinearMap':
        if side == "post":
            return self.postcompose(linear)
        if side == "pre":
            return self.precompose(linear)
        raise ValueError(f"side must be 'post' or 'pre', got {side!r}")

    # ---- Vector-space structure ----

    def _check_compatible(self, other: 'MultilinearMap'):
        if not isinstance(other, MultilinearMap):
            raise TypeError(f"expected MultilinearMap, got {type(other).__name__}")
        if (other.order, other.dim, other.tensor.shape) != (self._order, self._dim, self._tensor.shape):
            raise ValueError("multilinear maps of different signatures")

    def __add__(self, other: 'MultilinearMap') -> 'MultilinearMap':
        self._check_compatible(other)
        return MultilinearMap(self._tensor + other.tensor, self._order, self._dim)

    def __sub__(self, other: 'MultilinearMap') -> 'MultilinearMap':
        self._check_compatible(other)
        return MultilinearMap(self._tensor - other.tensor, self._order, self._dim)

    def __neg__(self) -> 'MultilinearMap':
        return MultilinearMap(-self._tensor, self._order, self._dim)

    def __mul__(self, scalar) -> 'MultilinearMap':
        if isinstance(scalar, MultilinearMap):
            return NotImplemented
        return MultilinearMap(float(scalar) * self._tensor, self._order, self._dim)

    __rmul__ = __mul__

    def __eq__(self, other):
        if not isinstance(other, MultilinearMap):
            return NotImplemented
        return (
            self._order == other.order
            and self._dim == other.dim
            and self._tensor.shape == other.tensor.shape
            and bool(np.array_equal(self._tensor, other.tensor))
        )

    __hash__ = None

    def allclose(self, other: 'MultilinearMap', rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        if self._order != other.order or self._dim != other.dim:
            return False
        return tensors_close(self._tensor, other.tensor, rtol=rtol, atol=atol)

    def __repr__(self):
        return (
            f"MultilinearMap(order={self._order}, dim={self._dim}, "
            f"out_shape={self.out_shape}, norm={self.norm():.6g})"
        )
