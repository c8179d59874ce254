"""
Formal Series and Tower Witnesses
=================================

A formal series assigns to every point x a sequence of multilinear maps

    p(x) = (p_0(x), p_1(x), p_2(x), ...)      p_m(x) ∈ L^m(E; F)

realised lazily: ``term(m, x)`` computes only what is asked for.

A ``TowerWitness`` of order n claims that p is a Taylor series of f on S
up to order n:

    (a) zero-term agreement     p_0(x) = f(x)                        x ∈ S
    (b) derivative step         D_S(p_m)(x) = curry_left(p_{m+1}(x))  m < n
    (c) continuity              p_m is continuous on S                m ≤ n

Theory:
    "For every x in S" is checked on a deterministic probe set: the
    witness anchors plus ``config.sample_count`` seeded samples of S.
    Derivatives in (b) are finite-difference estimates along the
    directions tangent to S, taken with the step of nesting level m + 1
    (terms of a canonical series are themselves nested estimates), and
    (b) is vacuous at isolated points.
    For order ∞ the checks run lazily for m = 0..infinite_order_horizon.

Usage:
    >>> series = FormalSeries.from_callables(1, (), [f, df, d2f])
    >>> witness = TowerWitness(2, f, series, Box([-1.0], [1.0]))
    >>> witness.holds()
    True
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from jetpy.algebra.multilinear import MultilinearMap
from jetpy.algebra.order import Order, OrderLike, as_order
from jetpy.calculus.derivative import FiniteDifferenceOracle
from jetpy.calculus.functions import DiffFunction, FunctionWrapper
from jetpy.config import NumericsConfig, resolve_config
from jetpy.topology.domains import Domain
from jetpy.utils.helpers import as_point, max_abs, point_key, tensors_close

logger = logging.getLogger(__name__)


class FormalSeries:
    """
    A lazily evaluated sequence of multilinear-map valued functions.

    ``term_fn(m, x)`` returns p_m(x) as a MultilinearMap of order m or as
    a tensor of shape ``out_shape + (dim,) * m``.
    """

    def __init__(
        self,
        dim: int,
        out_shape: Tuple[int, ...],
        term_fn: Callable[[int, np.ndarray], object],
        name: str = "p",
        cache: bool = True,
        cache_size: int = 4096,
    ):
        self.dim = int(dim)
        self.out_shape = tuple(out_shape)
        self.name = name
        self._term_fn = term_fn
        self._cache: Optional[Dict[Tuple[int, bytes], MultilinearMap]] = {} if cache else None
        self._cache_size = cache_size

    # ---- Evaluation ----

    def term(self, m: int, x) -> MultilinearMap:
        if m < 0:
            raise ValueError(f"term order must be non-negative, got {m}")
        x = as_point(x, self.dim)
        key = (m, point_key(x))
        if self._cache is not None and key in self._cache:
            return self._cache[key]

        raw = self._term_fn(m, x)
        if isinstance(raw, MultilinearMap):
            value = raw
        else:
            value = MultilinearMap(raw, order=m, dim=self.dim)
        expected = self.out_shape + (self.dim,) * m
        if value.order != m or value.tensor.shape != expected:
            raise ValueError(
                f"term {m} of {self.name} has shape {value.tensor.shape}, expected {expected}"
            )

        if self._cache is not None:
            if len(self._cache) >= self._cache_size:
                self._cache.clear()
            self._cache[key] = value
        return value

    def terms(self, x, upto: int) -> List[MultilinearMap]:
        return [self.term(m, x) for m in range(upto + 1)]

    def value(self, x) -> np.ndarray:
        return self.term(0, x).value()

    def term_function(self, m: int) -> DiffFunction:
        """x ↦ p_m(x) as a function valued in tensors."""
        return FunctionWrapper(
            lambda x: self.term(m, x).tensor,
            self.dim,
            self.out_shape + (self.dim,) * m,
            name=f"{self.name}_{m}",
        )

    # ---- Structural operations ----

    def shift(self) -> 'FormalSeries':
        """Drop order 0; the result is a series for x ↦ p_1(x) valued in L(E; F)."""
        return FormalSeries(
            self.dim,
            self.out_shape + (self.dim,),
            lambda m, x: self.term(m + 1, x).curry_right(),
            name=f"shift({self.name})",
        )

    def unshift(self, value: Callable) -> 'FormalSeries':
        """
        Prepend ``value`` as the new order-0 term.

        Requires a series valued in L(E; G); the result is valued in G.
        """
        if not self.out_shape or self.out_shape[-1] != self.dim:
            raise ValueError(f"unshift needs a series valued in linear maps, got {self.out_shape}")
        base_shape = self.out_shape[:-1]

        def term_fn(m, x):
            if m == 0:
                return MultilinearMap.constant(np.asarray(value(x), dtype=float).reshape(base_shape), self.dim)
            return self.term(m - 1, x).uncurry_right()

        return FormalSeries(self.dim, base_shape, term_fn, name=f"unshift({self.name})")

    def truncate(self, n: int) -> 'FormalSeries':
        """Keep terms of order ≤ n, zero beyond."""
        def term_fn(m, x):
            if m > n:
                return MultilinearMap.zero(self.dim, m, self.out_shape)
            return self.term(m, x)

        return FormalSeries(self.dim, self.out_shape, term_fn, name=f"{self.name}|≤{n}")

    # ---- Vector-space structure ----

    def _check_compatible(self, other: 'FormalSeries'):
        if not isinstance(other, FormalSeries):
            raise TypeError(f"expected FormalSeries, got {type(other).__name__}")
        if (self.dim, self.out_shape) != (other.dim, other.out_shape):
            raise ValueError("series of different signatures")

    def __add__(self, other: 'FormalSeries') -> 'FormalSeries':
        self._check_compatible(other)
        return FormalSeries(
            self.dim, self.out_shape,
            lambda m, x: self.term(m, x) + other.term(m, x),
            name=f"({self.name} + {other.name})",
        )

    def __sub__(self, other: 'FormalSeries') -> 'FormalSeries':
        self._check_compatible(other)
        return FormalSeries(
            self.dim, self.out_shape,
            lambda m, x: self.term(m, x) - other.term(m, x),
            name=f"({self.name} - {other.name})",
        )

    def __neg__(self) -> 'FormalSeries':
        return FormalSeries(self.dim, self.out_shape, lambda m, x: -self.term(m, x), name=f"-{self.name}")

    def __mul__(self, scalar) -> 'FormalSeries':
        if not np.isscalar(scalar):
            return NotImplemented
        c = float(scalar)
        return FormalSeries(self.dim, self.out_shape, lambda m, x: c * self.term(m, x), name=f"{c}·{self.name}")

    __rmul__ = __mul__

    # ---- Constructors ----

    @classmethod
    def from_callables(
        cls,
        dim: int,
        out_shape: Tuple[int, ...],
        functions: Sequence[Callable],
        name: str = "p",
    ) -> 'FormalSeries':
        """Series whose m-th term is ``functions[m](x)``; zero beyond the list."""
        functions = list(functions)
        out_shape = tuple(out_shape)

        def term_fn(m, x):
            if m >= len(functions):
                return MultilinearMap.zero(dim, m, out_shape)
            return np.asarray(functions[m](x), dtype=float).reshape(out_shape + (dim,) * m)

        return cls(dim, out_shape, term_fn, name=name)

    @classmethod
    def zero(cls, dim: int, out_shape: Tuple[int, ...] = ()) -> 'FormalSeries':
        return cls(dim, tuple(out_shape), lambda m, x: MultilinearMap.zero(dim, m, tuple(out_shape)), name="0")

    def __repr__(self):
        return f"FormalSeries({self.name}: R^{self.dim} → {self.out_shape})"


@dataclass
class TowerCheckReport:
    """Outcome of every check performed by a TowerWitness."""
    order: Order
    points: int
    zero_term: bool
    derivative_steps: Dict[int, bool] = field(default_factory=dict)
    continuity: Dict[int, bool] = field(default_factory=dict)

    @property
    def holds(self) -> bool:
        return (
            self.zero_term
            and all(self.derivative_steps.values())
            and all(self.continuity.values())
        )


class TowerWitness:
    """
    Evidence that ``series`` is a Taylor series of ``func`` on ``domain``
    up to ``order``.

    Usage:
        >>> w = TowerWitness(2, f, series, Box([-1.0], [1.0]))
        >>> w.holds()
        True
        >>> w.lower_order(1).holds()
        True
    """

    def __init__(
        self,
        order: OrderLike,
        func: DiffFunction,
        series: FormalSeries,
        domain: Domain,
        config: Optional[NumericsConfig] = None,
        oracle: Optional[FiniteDifferenceOracle] = None,
        anchors: Sequence = (),
    ):
        if (func.dim, func.out_shape) != (series.dim, series.out_shape):
            raise ValueError(
                f"function {func.out_shape} and series {series.out_shape} have different signatures"
            )
        if domain.dim != func.dim:
            raise ValueError(f"domain of dimension {domain.dim} for a function on R^{func.dim}")
        self.order = as_order(order)
        self.func = func
        self.series = series
        self.domain = domain
        self.config = resolve_config(config)
        self.oracle = oracle or FiniteDifferenceOracle(self.config)
        self.anchors = [as_point(a, func.dim) for a in anchors]
        self._points: Optional[List[np.ndarray]] = None

    @property
    def top_order(self) -> int:
        """Highest finite order actually examined."""
        if self.order.is_finite:
            return self.order.count
        return self.config.infinite_order_horizon

    def sample_points(self) -> List[np.ndarray]:
        if self._points is None:
            rng = np.random.default_rng(self.config.seed)
            points = [a for a in self.anchors if self.domain.contains(a)]
            points.extend(self.domain.sample(self.config.sample_count, rng))
            self._points = points
        return self._points

    def _close(self, a, b) -> bool:
        return tensors_close(a, b, rtol=self.config.check_rtol, atol=self.config.check_atol)

    # ---- The three invariants ----

    def zero_check(self) -> bool:
        for p in self.sample_points():
            if not self._close(self.series.term(0, p).tensor, self.func(p)):
                logger.debug(f"Zero-term mismatch for {self.func.name} at {p}")
                return False
        return True

    def derivative_step_check(self, m: int) -> bool:
        if m < 0 or not self.order.covers(m + 1):
            raise ValueError(f"derivative step {m} is outside a witness of order {self.order}")
        term = self.series.term_function(m)
        for p in self.sample_points():
            if self.domain.is_isolated(p):
                continue
            columns = self.oracle.partials_within(term, self.domain, p, level=m + 1)
            if columns is None:
                logger.debug(f"Term {m} of {self.series.name} is not differentiable at {p}")
                return False
            expected = self.series.term(m + 1, p).curry_left().tensor
            for j, column in columns.items():
                if not self._close(column, expected[..., j]):
                    logger.debug(f"Derivative step {m} fails at {p} along e{j}")
                    return False
        return True

    def continuity_check(self, m: int) -> bool:
        if m < 0 or not self.order.covers(m):
            raise ValueError(f"continuity of term {m} is outside a witness of order {self.order}")
        cfg = self.config
        radii = [cfg.continuity_radius * 2.0 ** -k for k in range(cfg.continuity_levels)]
        for p in self.sample_points():
            center = self.series.term(m, p).tensor
            scale = max(1.0, max_abs(center))
            for u in self.domain.probe_directions():
                gaps = []
                for k, r in enumerate(radii):
                    q = p + r * u
                    if self.domain.contains(q):
                        gaps.append((k, max_abs(self.series.term(m, q).tensor - center)))
                if len(gaps) < 2:
                    continue
                (k_first, g_first), (k_last, g_last) = gaps[0], gaps[-1]
                ratio = cfg.continuity_ratio ** ((k_last - k_first) / (cfg.continuity_levels - 1))
                if g_last > ratio * g_first + cfg.check_atol * scale:
                    logger.debug(
                        f"Term {m} of {self.series.name} jumps at {p}: "
                        f"gap {g_first:.3e} -> {g_last:.3e}"
                    )
                    return False
        return True

    # ---- Aggregate ----

    def holds(self) -> bool:
        if not self.zero_check():
            return False
        for m in range(self.top_order + 1):
            if not self.continuity_check(m):
                return False
            if m < self.top_order and not self.derivative_step_check(m):
                return False
        return True

    def __bool__(self):
        return self.holds()

    def report(self) -> TowerCheckReport:
        report = TowerCheckReport(self.order, len(self.sample_points()), self.zero_check())
        for m in range(self.top_order + 1):
            report.continuity[m] = self.continuity_check(m)
            if m < self.top_order:
                report.derivative_steps[m] = self.derivative_step_check(m)
        return report

    # ---- Derived witnesses ----

    def _derive(self, order, func, series, domain, anchors) -> 'TowerWitness':
        return TowerWitness(order, func, series, domain, self.config, self.oracle, anchors)

    def restrict_to(self, subset: Domain) -> 'TowerWitness':
        """The same series on a subset of the domain."""
        anchors = [a for a in self.anchors if subset.contains(a)]
        return self._derive(self.order, self.func, self.series, subset, anchors)

    def lower_order(self, m: OrderLike) -> 'TowerWitness':
        m = as_order(m)
        if m > self.order:
            raise ValueError(f"cannot raise a witness of order {self.order} to {m}")
        return self._derive(m, self.func, self.series, self.domain, self.anchors)

    def shift(self) -> 'TowerWitness':
        """Witness of order n − 1 for the derivative x ↦ p_1(x)."""
        if self.order == 0:
            raise ValueError("cannot shift a witness of order 0")
        shifted = self.series.shift()
        order = self.order if self.order.is_infinite else Order.finite(self.order.count - 1)
        func = shifted.term_function(0)
        return self._derive(order, func, shifted, self.domain, self.anchors)

    def unshift(self, func: DiffFunction) -> 'TowerWitness':
        """Witness of order n + 1 for a function whose derivative this witness describes."""
        series = self.series.unshift(func)
        return self._derive(self.order.succ(), func, series, self.domain, self.anchors)

    def __repr__(self):
        return (
            f"TowerWitness(order={self.order}, func={self.func.name}, "
            f"series={self.series.name}, domain={self.domain!r})"
        )
