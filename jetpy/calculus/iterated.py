"""
Iterated Derivative Engine
==========================

The canonical derivative tower of f within S:

    D^0_S f(x)     = constant(f(x))
    D^{m+1}_S f(x) = uncurry_left( D_S(y ↦ D^m_S f(y))(x) )

so that D^{m+1}_S f(x)(v, w₁, ..., wₘ) = [D_S(D^m_S f)(x) v](w₁, ..., wₘ):
the newest direction is the first argument.

Totality:
    When the within-S derivative of the order-m term does not exist at x,
    the order-(m+1) value is the zero map. The query never raises; the
    fallback is logged at debug level. Callers that need a meaningful
    value check the differentiability class first (see
    ``SmoothnessChecker.checked_iterated_fderiv_within``).

Analytic chains:
    When f carries analytic derivatives f', f'', ..., every term function
    carries one too, so towers of polynomials, elementwise maps and their
    combinators are exact at every order. Otherwise each level is one
    finite-difference derivative of the level below; the recursion depth
    equals the requested order, and the step grows with the nesting level
    so that roundoff does not compound.

Usage:
    >>> engine = IteratedDerivativeEngine()
    >>> f = polynomial([0, 0, 0, 1])               # x³
    >>> engine.iterated_fderiv(f, 2, [2.0]).tensor
    array([[12.]])
"""

import logging
from collections import OrderedDict
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from jetpy.algebra.multilinear import MultilinearMap
from jetpy.calculus.derivative import DerivativeOracle
from jetpy.calculus.functions import DiffFunction
from jetpy.calculus.series import FormalSeries, TowerWitness
from jetpy.config import NumericsConfig, resolve_config
from jetpy.topology.domains import Domain, Universe
from jetpy.utils.helpers import as_point, point_key

logger = logging.getLogger(__name__)


class PermutedAxes(DiffFunction):
    """
    x ↦ transpose(inner(x), perm) where ``perm`` acts on the axes after
    ``lead`` output axes. The derivative keeps the new direction last.
    """

    def __init__(self, inner: DiffFunction, lead: int, perm: Tuple[int, ...]):
        self.inner = inner
        self.lead = lead
        self.perm = tuple(perm)
        self._full = tuple(range(lead)) + tuple(lead + p for p in self.perm)
        shape = tuple(inner.out_shape[a] for a in self._full)
        super().__init__(inner.dim, shape, inner.name)

    def evaluate(self, x):
        return np.transpose(self.inner(x), self._full)

    def _make_derivative(self):
        d = self.inner.derivative
        if d is None:
            return None
        return PermutedAxes(d, self.lead, self.perm + (len(self.perm),))

    def is_differentiable_at(self, x) -> bool:
        return self.inner.is_differentiable_at(x)


class IteratedTerm(DiffFunction):
    """The order-m term x ↦ D^m_S f(x) as a tensor-valued function."""

    def __init__(self, engine: 'IteratedDerivativeEngine', func: DiffFunction, m: int, domain: Domain):
        super().__init__(func.dim, func.out_shape + (func.dim,) * m, f"D^{m}{func.name}")
        self.engine = engine
        self.func = func
        self.m = m
        self.domain = domain
        self._values: Dict[bytes, np.ndarray] = {}

    def evaluate(self, x):
        key = point_key(x)
        cached = self._values.get(key)
        if cached is not None:
            return cached

        if self.m == 0:
            value = self.func(x)
        else:
            below = self.engine.term_function(self.func, self.m - 1, self.domain)
            step = self.engine.oracle.derivative_within(below, self.domain, x, level=self.m)
            if step is None:
                logger.debug(
                    f"No derivative of order {self.m} for {self.func.name} at {x}; using zero map"
                )
                value = np.zeros(self.out_shape)
            else:
                value = step.uncurry_left(self.m - 1).tensor

        if len(self._values) >= self.engine.config.cache_size:
            self._values.clear()
        self._values[key] = value
        return value

    def _make_derivative(self):
        chain = self.func.derivative_chain(self.m + 1)
        if chain is None:
            return None
        # Analytic chains stack directions oldest-first; terms store them newest-first
        perm = tuple(range(self.m - 1, -1, -1)) + (self.m,)
        return PermutedAxes(chain[self.m + 1], len(self.func.out_shape), perm)

    def is_differentiable_at(self, x) -> bool:
        chain = self.func.derivative_chain(self.m + 1)
        if chain is None:
            return False
        return all(g.is_differentiable_at(x) for g in chain[:self.m + 1])


class IteratedDerivativeEngine:
    """
    Canonical iterated derivatives within a set.

    Term functions are memoised per (function, order, domain), so repeated
    queries on the same tower share evaluations. The memo holds at most
    ``cache_size`` entries; the least recently used one is evicted first.
    """

    def __init__(
        self,
        oracle: Optional[DerivativeOracle] = None,
        config: Optional[NumericsConfig] = None,
    ):
        self.config = resolve_config(config)
        self.oracle = oracle or DerivativeOracle(self.config)
        self._terms: OrderedDict = OrderedDict()
        self.config.apply_logging()

    def term_function(self, func: DiffFunction, n: int, domain: Domain) -> IteratedTerm:
        if n < 0:
            raise ValueError(f"order must be non-negative, got {n}")
        if domain.dim != func.dim:
            raise ValueError(f"domain of dimension {domain.dim} for a function on R^{func.dim}")
        key = (id(func), n, id(domain))
        entry = self._terms.get(key)
        if entry is not None:
            self._terms.move_to_end(key)
            return entry[2]
        # Keep func and domain alive so their ids stay unique
        entry = (func, domain, IteratedTerm(self, func, n, domain))
        self._terms[key] = entry
        while len(self._terms) > self.config.cache_size:
            self._terms.popitem(last=False)
        return entry[2]

    def cache_info(self) -> Dict[str, int]:
        return {'terms': len(self._terms), 'limit': self.config.cache_size}

    def iterated_fderiv_within(self, func: DiffFunction, n: int, domain: Domain, x) -> MultilinearMap:
        x = as_point(x, func.dim)
        tensor = self.term_function(func, n, domain)(x)
        return MultilinearMap(tensor, order=n, dim=func.dim)

    def iterated_fderiv(self, func: DiffFunction, n: int, x) -> MultilinearMap:
        return self.iterated_fderiv_within(func, n, Universe(func.dim), x)

    def ftaylor_series_within(self, func: DiffFunction, domain: Domain) -> FormalSeries:
        return FormalSeries(
            func.dim,
            func.out_shape,
            lambda m, x: self.iterated_fderiv_within(func, m, domain, x),
            name=f"ftaylor({func.name})",
            cache_size=self.config.cache_size,
        )

    def ftaylor_series(self, func: DiffFunction) -> FormalSeries:
        return self.ftaylor_series_within(func, Universe(func.dim))

    def tower(self, func: DiffFunction, n: int, domain: Domain, x) -> Sequence[MultilinearMap]:
        """[D^0_S f(x), ..., D^n_S f(x)]."""
        return [self.iterated_fderiv_within(func, m, domain, x) for m in range(n + 1)]

    def is_local_at(self, func: DiffFunction, n: int, domain: Domain, x, neighborhood: Domain) -> bool:
        """
        True when the tower up to order n on S ∩ U agrees with the tower on S.

        ``neighborhood`` must be a neighborhood of x; otherwise the
        answer is False.
        """
        x = as_point(x, func.dim)
        if not neighborhood.interior_contains(x):
            return False
        restricted = domain.intersect(neighborhood)
        for m in range(n + 1):
            local = self.iterated_fderiv_within(func, m, restricted, x)
            full = self.iterated_fderiv_within(func, m, domain, x)
            if not local.allclose(full, rtol=self.config.check_rtol, atol=self.config.check_atol):
                logger.debug(f"Order {m} of {func.name} at {x} depends on points outside the neighborhood")
                return False
        return True

    def witness_matches_canonical(self, witness: TowerWitness, m: int, x) -> bool:
        """
        On a set with unique derivatives at x, a valid witness of order
        ≥ m agrees with the canonical tower at order m.
        """
        x = as_point(x, witness.func.dim)
        if not witness.order.covers(m):
            raise ValueError(f"order {m} exceeds the witness order {witness.order}")
        if not witness.domain.is_unique_diff_at(x):
            return True
        if not witness.holds():
            return True
        canonical = self.iterated_fderiv_within(witness.func, m, witness.domain, x)
        return witness.series.term(m, x).allclose(
            canonical, rtol=self.config.check_rtol, atol=self.config.check_atol
        )
