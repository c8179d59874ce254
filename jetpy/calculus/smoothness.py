"""
Differentiability Classes
=========================

C^n predicates in four flavors:

    cont_diff_within_at(f, n, S, x)   C^n at x within S
    cont_diff_on(f, n, S)             C^n within S at every point of S
    cont_diff_at(f, n, x)             C^n at x (S = whole space)
    cont_diff(f, n)                   C^n everywhere

Theory:
    f is C^n at x within S when for every finite m ≤ n there is a
    neighborhood U of x within S and a formal series p with a valid
    tower witness of order m for f on U.

    Witnesses are constructive: U = insert(x, S ∩ Ball(x, r)) with the
    canonical series of f on U, searching r, r/2, r/4, ... up to
    ``max_shrink`` halvings. For a finite n only the top order is
    checked, since a witness of order n restricts to every m ≤ n. For
    n = ∞ the orders m = 0, 1, 2, ... are checked lazily up to
    ``infinite_order_horizon`` and the result is flagged as truncated.

Usage:
    >>> checker = SmoothnessChecker()
    >>> checker.cont_diff_at(absolute_value(), 0, [0.0]).holds
    True
    >>> checker.cont_diff_at(absolute_value(), 1, [0.0]).holds
    False
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from jetpy.algebra.multilinear import MultilinearMap
from jetpy.algebra.order import Order, OrderLike, as_order
from jetpy.calculus.functions import DiffFunction
from jetpy.calculus.iterated import IteratedDerivativeEngine
from jetpy.calculus.series import FormalSeries, TowerWitness
from jetpy.config import NumericsConfig, resolve_config
from jetpy.topology.domains import Domain, Universe
from jetpy.utils.helpers import as_point

logger = logging.getLogger(__name__)

# Headroom over the largest sampled derivative norm when no constant is given
_LIPSCHITZ_SLACK = 1.25
# Rim probes sit just inside the ball when fitting a given constant
_LIPSCHITZ_RIM = 0.999


@dataclass
class SmoothnessWitness:
    """A neighborhood and a validated tower witness of a given order."""
    order: Order
    point: np.ndarray
    neighborhood: Domain
    series: FormalSeries
    tower: TowerWitness
    radius: float

    def lower_order(self, m: OrderLike) -> 'SmoothnessWitness':
        m = as_order(m)
        return SmoothnessWitness(m, self.point, self.neighborhood, self.series,
                                 self.tower.lower_order(m), self.radius)


@dataclass
class ContDiffResult:
    """Outcome of a C^n query at a point. Truthy iff the class holds."""
    holds: bool
    order: Order
    point: np.ndarray
    witnesses: Dict[int, SmoothnessWitness] = field(default_factory=dict)
    checked_orders: List[int] = field(default_factory=list)
    failed_order: Optional[int] = None
    truncated: bool = False

    def __bool__(self):
        return self.holds

    def of_le(self, m: OrderLike) -> 'ContDiffResult':
        """C^n implies C^m for m ≤ n; reuses the witness of order ≥ m."""
        m = as_order(m)
        if m > self.order:
            raise ValueError(f"order {m} exceeds {self.order}")
        if not self.holds:
            raise ValueError("cannot weaken a failed smoothness result")
        if not m.is_finite:
            return self
        candidates = [k for k in self.witnesses if k >= m.count]
        if not candidates:
            raise ValueError(f"order {m} was not examined (checked {self.checked_orders})")
        witness = self.witnesses[min(candidates)].lower_order(m)
        return ContDiffResult(True, m, self.point, {m.count: witness}, [m.count])


@dataclass
class ContDiffOnResult:
    """Outcome of a C^n query over a set of probe points."""
    holds: bool
    order: Order
    results: List[ContDiffResult] = field(default_factory=list)
    failed_point: Optional[np.ndarray] = None

    def __bool__(self):
        return self.holds


@dataclass
class SuccessorUnfolding:
    """
    C^{n+1} at x within S unfolded one step: a neighborhood U, the
    derivative f' on U, and whether f' is C^n at x within U.
    """
    order: Order
    holds: bool
    neighborhood: Optional[Domain] = None
    derivative: Optional[DiffFunction] = None
    has_derivative_on: bool = False
    derivative_result: Optional[ContDiffResult] = None

    def __bool__(self):
        return self.holds


@dataclass
class LipschitzCertificate:
    """f is K-Lipschitz on ``neighborhood`` (a ball of ``radius`` around x)."""
    point: np.ndarray
    radius: float
    neighborhood: Domain
    constant: float
    observed_slope: float

    def holds_for(self, f: DiffFunction, p, q) -> bool:
        p = as_point(p, f.dim)
        q = as_point(q, f.dim)
        gap = float(np.linalg.norm((f(p) - f(q)).ravel()))
        return gap <= self.constant * float(np.linalg.norm(p - q)) * (1.0 + 1e-9) + 1e-12


class SmoothnessChecker:
    """
    Decide differentiability classes with constructive witnesses.

    Usage:
        >>> checker = SmoothnessChecker()
        >>> result = checker.cont_diff_within_at(f, 2, Box([0.0], [1.0]), [0.0])
        >>> result.holds, result.witnesses[2].radius
        (True, 0.25)
    """

    def __init__(
        self,
        engine: Optional[IteratedDerivativeEngine] = None,
        config: Optional[NumericsConfig] = None,
    ):
        self.config = resolve_config(config if config is not None else getattr(engine, 'config', None))
        self.engine = engine or IteratedDerivativeEngine(config=self.config)

    # ---- Witness search ----

    def witness_within_at(
        self,
        func: DiffFunction,
        m: OrderLike,
        domain: Domain,
        x,
    ) -> Optional[SmoothnessWitness]:
        order = as_order(m)
        x = as_point(x, func.dim)
        radius = self.config.neighborhood_radius
        for _ in range(self.config.max_shrink + 1):
            neighborhood = domain.neighborhood_within(x, radius)
            series = self.engine.ftaylor_series_within(func, neighborhood)
            tower = TowerWitness(order, func, series, neighborhood, self.config, anchors=[x])
            if tower.holds():
                return SmoothnessWitness(order, x, neighborhood, series, tower, radius)
            logger.debug(
                f"No order-{order} witness for {func.name} at {x} with radius {radius:.4g}; shrinking"
            )
            radius /= 2.0
        return None

    # ---- The four flavors ----

    def cont_diff_within_at(self, func: DiffFunction, n: OrderLike, domain: Domain, x) -> ContDiffResult:
        order = as_order(n)
        x = as_point(x, func.dim)

        if order.is_finite:
            witness = self.witness_within_at(func, order, domain, x)
            if witness is None:
                return ContDiffResult(False, order, x, checked_orders=[order.count],
                                      failed_order=order.count)
            return ContDiffResult(True, order, x, {order.count: witness}, [order.count])

        result = ContDiffResult(True, order, x, truncated=True)
        for m in order.finite_orders(self.config.infinite_order_horizon):
            result.checked_orders.append(m)
            witness = self.witness_within_at(func, m, domain, x)
            if witness is None:
                result.holds = False
                result.failed_order = m
                result.truncated = False
                break
            result.witnesses[m] = witness
        return result

    def _probe_points(self, domain: Domain, points: Optional[Sequence]) -> List[np.ndarray]:
        if points is not None:
            return [as_point(p, domain.dim) for p in points]
        rng = np.random.default_rng(self.config.seed)
        return domain.sample(self.config.sample_count, rng)

    def cont_diff_on(
        self,
        func: DiffFunction,
        n: OrderLike,
        domain: Domain,
        points: Optional[Sequence] = None,
    ) -> ContDiffOnResult:
        order = as_order(n)
        outcome = ContDiffOnResult(True, order)
        for p in self._probe_points(domain, points):
            result = self.cont_diff_within_at(func, order, domain, p)
            outcome.results.append(result)
            if not result:
                outcome.holds = False
                outcome.failed_point = p
                break
        return outcome

    def cont_diff_at(self, func: DiffFunction, n: OrderLike, x) -> ContDiffResult:
        return self.cont_diff_within_at(func, n, Universe(func.dim), x)

    def cont_diff(self, func: DiffFunction, n: OrderLike, points: Optional[Sequence] = None) -> ContDiffOnResult:
        return self.cont_diff_on(func, n, Universe(func.dim), points)

    # ---- Successor unfolding ----

    def successor_unfolding(self, func: DiffFunction, n: OrderLike, domain: Domain, x) -> SuccessorUnfolding:
        """
        C^{n+1} at x within S iff on some neighborhood U of x within S, f
        has a derivative f'(y) within U at every y ∈ U and f' is C^n at x
        within U.
        """
        order = as_order(n)
        x = as_point(x, func.dim)
        rng = np.random.default_rng(self.config.seed)
        radius = self.config.neighborhood_radius
        last = SuccessorUnfolding(order, False)
        for _ in range(self.config.max_shrink + 1):
            neighborhood = domain.neighborhood_within(x, radius)
            derivative = self.engine.term_function(func, 1, neighborhood)
            probes = [x] + neighborhood.sample(self.config.sample_count, rng)
            has_derivative = all(
                self.engine.oracle.has_derivative_within(func, neighborhood, y) for y in probes
            )
            if has_derivative:
                result = self.cont_diff_within_at(derivative, order, neighborhood, x)
                last = SuccessorUnfolding(order, bool(result), neighborhood, derivative, True, result)
                if result:
                    return last
            radius /= 2.0
        return last

    # ---- Lipschitz neighborhoods ----

    def lipschitz_neighborhood(
        self,
        func: DiffFunction,
        domain: Domain,
        x,
        constant: Optional[float] = None,
    ) -> Optional[LipschitzCertificate]:
        """
        A C^1 witness at x yields a neighborhood on which f is K-Lipschitz.

        Without a constant, K bounds the order-1 term on the witness
        neighborhood with some headroom. A given K must exceed ‖Df(x)‖;
        the radius is then halved until ‖p_1‖ ≤ K at every probe of the
        smaller ball, which exists by continuity of p_1.
        """
        x = as_point(x, func.dim)
        witness = self.witness_within_at(func, 1, domain, x)
        if witness is None:
            return None

        cfg = self.config
        if constant is None:
            points = witness.tower.sample_points()
            norms = [witness.series.term(1, p).norm() for p in points]
            constant = _LIPSCHITZ_SLACK * max(norms, default=0.0) + cfg.check_atol
            return self._lipschitz_certificate(func, x, witness.radius, witness.neighborhood,
                                               points, constant)
        if constant < 0:
            raise ValueError(f"Lipschitz constant must be non-negative, got {constant}")

        at_x = witness.series.term(1, x).norm()
        if at_x >= constant:
            logger.debug(f"‖Df(x)‖ = {at_x:.4g} leaves no room under Lipschitz constant {constant:.4g}")
            return None

        rng = np.random.default_rng(cfg.seed)
        radius = witness.radius
        for _ in range(cfg.lipschitz_max_shrink + 1):
            neighborhood = domain.neighborhood_within(x, radius)
            rim = [x + _LIPSCHITZ_RIM * radius * u for u in domain.probe_directions()]
            points = [x] + [p for p in rim if neighborhood.contains(p)]
            points.extend(neighborhood.sample(cfg.sample_count, rng, x, radius))
            largest = max(witness.series.term(1, p).norm() for p in points)
            if largest <= constant:
                certificate = self._lipschitz_certificate(func, x, radius, neighborhood, points, constant)
                if certificate is not None:
                    return certificate
            logger.debug(
                f"Constant {constant:.4g} does not hold within radius {radius:.4g} "
                f"(largest derivative norm {largest:.4g}); shrinking"
            )
            radius /= 2.0
        return None

    def _lipschitz_certificate(
        self,
        func: DiffFunction,
        x: np.ndarray,
        radius: float,
        neighborhood: Domain,
        points: Sequence[np.ndarray],
        constant: float,
    ) -> Optional[LipschitzCertificate]:
        slope = 0.0
        for p, q in itertools.combinations(points, 2):
            dist = float(np.linalg.norm(p - q))
            if dist > 0:
                slope = max(slope, float(np.linalg.norm((func(p) - func(q)).ravel())) / dist)
        if slope > constant * (1.0 + self.config.check_rtol) + self.config.check_atol:
            logger.debug(f"Observed slope {slope:.4g} exceeds Lipschitz constant {constant:.4g}")
            return None
        return LipschitzCertificate(x, radius, neighborhood, float(constant), slope)

    # ---- Public boundary ----

    def checked_iterated_fderiv_within(self, func: DiffFunction, n: int, domain: Domain, x) -> MultilinearMap:
        """
        D^n_S f(x). In strict mode the C^n class is verified first and a
        ``ValueError`` is raised when it fails; otherwise the engine value
        (possibly the zero map) is returned as is.
        """
        if self.config.strict and not self.cont_diff_within_at(func, n, domain, x):
            raise ValueError(f"{func.name} is not C^{n} within {domain!r} at {x}")
        return self.engine.iterated_fderiv_within(func, n, domain, x)
