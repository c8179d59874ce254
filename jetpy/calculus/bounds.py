"""
Composition Bound Engine
========================

Quantitative Faà di Bruno bound: if at the relevant points

    ‖D^i g‖ ≤ C        for 0 ≤ i ≤ n
    ‖D^i f‖ ≤ D^i      for 1 ≤ i ≤ n

then ‖D^n (g ∘ f)(x)‖ ≤ n! · C · D^n.

Theory:
    D(g ∘ f) = COMPOSE(Dg ∘ f, Df) with ‖COMPOSE‖ ≤ 1, so the Leibniz
    bound for bilinear maps

        ‖D^k B(u, v)‖ ≤ ‖B‖ · Σ_{i=0}^{k} C(k, i) ‖D^i u‖ ‖D^{k−i} v‖

    applied with u = Dg ∘ f (whose derivatives obey the same hypotheses
    with the same C) and v = Df gives the recursion

        b_0 = C
        b_{k+1} = Σ_{i=0}^{k} C(k, i) · b_i · D^{k+1−i}

    and by induction b_k ≤ k! · C · D^k, since Σ_{j=0}^{k} k!/j! ≤ (k+1)!.

    The Leibniz bound itself is proved by induction through the binomial
    convolution identity

        Σ_{i=0}^{n+1} C(n+1, i) t(i, n+1−i)
            = Σ_{i=0}^{n} C(n, i) t(i+1, n−i) + Σ_{i=0}^{n} C(n, i) t(i, n+1−i)

    which ``convolution_split`` evaluates on both sides.

Usage:
    >>> engine = BoundEngine()
    >>> engine.composition_bound(3, 2.0, 0.5)
    1.5
    >>> print(engine.derive_composition_bound(3, 2.0, 0.5).to_certificate())
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, List, Optional, Sequence, Tuple

from jetpy.calculus.combinators import BilinearMap, bilinear_apply, compose
from jetpy.calculus.functions import DiffFunction
from jetpy.calculus.iterated import IteratedDerivativeEngine
from jetpy.config import NumericsConfig, resolve_config
from jetpy.runtime.parallel import ParallelReducer
from jetpy.utils.helpers import as_point, binomial

logger = logging.getLogger(__name__)


class BoundStatus(Enum):
    VERIFIED = auto()
    VIOLATED = auto()


@dataclass
class BoundStep:
    """
    One induction step: the recursive value against the closed form,
    plus the residual of any identity the step relies on.
    """
    order: int
    recursive: float
    closed_form: float
    identity_gap: float = 0.0

    @property
    def ok(self) -> bool:
        scale = max(1.0, abs(self.recursive), abs(self.closed_form))
        if self.identity_gap > 1e-9 * scale:
            return False
        return self.recursive <= self.closed_form * (1.0 + 1e-12) + 1e-300


@dataclass
class BoundCertificate:
    """An inductive derivation of a derivative-norm bound."""
    kind: str
    order: int
    parameters: dict
    steps: List[BoundStep] = field(default_factory=list)
    bound: float = 0.0

    @property
    def sharp_bound(self) -> float:
        """The recursive value at the top order, never above ``bound``."""
        return self.steps[-1].recursive if self.steps else self.bound

    @property
    def status(self) -> BoundStatus:
        return BoundStatus.VERIFIED if all(s.ok for s in self.steps) else BoundStatus.VIOLATED

    @property
    def valid(self) -> bool:
        return self.status is BoundStatus.VERIFIED

    def to_certificate(self) -> str:
        """Generate a human-readable bound certificate."""
        params = ", ".join(f"{k}={v:g}" for k, v in self.parameters.items())
        lines = [
            "╔══════════════════════════════════════════════════╗",
            "║        DERIVATIVE NORM BOUND CERTIFICATE         ║",
            "╠══════════════════════════════════════════════════╣",
            f"║  Rule:            {self.kind:>29s}  ║",
            f"║  Status:          {self.status.name:>29s}  ║",
            f"║  Order n:         {self.order:>29d}  ║",
            f"║  Parameters:      {params:>29s}  ║",
            f"║  Closed form:     {self.bound:>29.6g}  ║",
            f"║  Recursive value: {self.sharp_bound:>29.6g}  ║",
            "╠══════════════════════════════════════════════════╣",
        ]
        for step in self.steps:
            mark = "ok" if step.ok else "FAIL"
            lines.append(
                f"║  k={step.order:<3d} b_k={step.recursive:<12.6g} ≤ {step.closed_form:<12.6g} {mark:>5s}  ║"
            )
        lines.extend([
            "╠══════════════════════════════════════════════════╣",
            "║  THEOREM (Faà di Bruno bound):                   ║",
            "║  ‖D^i g‖ ≤ C and ‖D^i f‖ ≤ D^i for i ≤ n imply   ║",
            "║  ‖D^n (g ∘ f)‖ ≤ n! · C · D^n.                   ║",
            "╚══════════════════════════════════════════════════╝",
        ])
        return "\n".join(lines)


@dataclass
class BoundCheck:
    """A bound compared with the true derivative norm at a point."""
    order: int
    actual: float
    bound: float
    assumptions_hold: bool
    holds: bool

    def __bool__(self):
        return self.holds


def _check_order(n: int):
    if not isinstance(n, int) or n < 0:
        raise ValueError(f"order must be a non-negative int, got {n!r}")


class BoundEngine:
    """
    Per-order derivative-norm bounds through composition and bilinear maps.

    Usage:
        >>> engine = BoundEngine()
        >>> check = engine.check_composition(polynomial([0, 0, 1]), identity, 2, [0.3], C=2.0, D=1.0)
        >>> check.actual, check.bound
        (2.0, 4.0)
    """

    def __init__(
        self,
        config: Optional[NumericsConfig] = None,
        reducer: Optional[ParallelReducer] = None,
        engine: Optional[IteratedDerivativeEngine] = None,
    ):
        self.config = resolve_config(config)
        self.reducer = reducer or ParallelReducer(
            workers=self.config.parallel_workers,
            min_parallel_size=self.config.min_parallel_size,
        )
        self.engine = engine or IteratedDerivativeEngine(config=self.config)

    # ---- Closed forms ----

    def composition_bound(self, n: int, C: float, D: float) -> float:
        _check_order(n)
        if C < 0 or D < 0:
            raise ValueError(f"bounds must be non-negative, got C={C}, D={D}")
        return math.factorial(n) * C * D ** n

    def bilinear_bound(
        self,
        norm_b: float,
        u_norms: Sequence[float],
        v_norms: Sequence[float],
        n: int,
    ) -> float:
        """‖B‖ · Σ_{i=0}^{n} C(n, i) · u_i · v_{n−i}."""
        _check_order(n)
        if len(u_norms) <= n or len(v_norms) <= n:
            raise IndexError(f"need norms up to order {n}")
        if norm_b < 0 or any(a < 0 for a in u_norms[:n + 1]) or any(b < 0 for b in v_norms[:n + 1]):
            raise ValueError("norms must be non-negative")
        total = self.reducer.sum(
            lambda i: binomial(n, i) * u_norms[i] * v_norms[n - i], range(n + 1), start=0.0
        )
        return norm_b * total

    def convolution_split(self, n: int, term: Callable[[int, int], float]) -> Tuple[float, float]:
        """Both sides of the binomial convolution identity at n."""
        _check_order(n)
        lhs = self.reducer.sum(lambda i: binomial(n + 1, i) * term(i, n + 1 - i), range(n + 2), start=0.0)
        first = self.reducer.sum(lambda i: binomial(n, i) * term(i + 1, n - i), range(n + 1), start=0.0)
        second = self.reducer.sum(lambda i: binomial(n, i) * term(i, n + 1 - i), range(n + 1), start=0.0)
        return lhs, first + second

    # ---- Inductive derivations ----

    def derive_composition_bound(self, n: int, C: float, D: float) -> BoundCertificate:
        bound = self.composition_bound(n, C, D)
        cert = BoundCertificate("composition", n, {"C": C, "D": D}, bound=bound)
        b = [float(C)]
        cert.steps.append(BoundStep(0, b[0], self.composition_bound(0, C, D)))
        for k in range(n):
            nxt = self.reducer.sum(
                lambda i: binomial(k, i) * b[i] * D ** (k + 1 - i), range(k + 1), start=0.0
            )
            b.append(nxt)
            step = BoundStep(k + 1, nxt, self.composition_bound(k + 1, C, D))
            cert.steps.append(step)
            logger.debug(f"Composition bound step {k + 1}: {nxt:.6g} ≤ {step.closed_form:.6g}")
        return cert

    def derive_bilinear_bound(
        self,
        norm_b: float,
        u_norms: Sequence[float],
        v_norms: Sequence[float],
        n: int,
    ) -> BoundCertificate:
        """
        Leibniz bound built by induction on the order. The product rule
        D^{k+1} B(u, v) = D^k B(Du, v) + D^k B(u, Dv) gives

            L_{k+1}(a, b) = L_k(a+1, b) + L_k(a, b+1),   L_0(a, b) = u_a · v_b

        where (a, b) counts derivatives already taken off u and v. Step k
        compares ‖B‖ · L_k(0, 0) with the closed form, and records the gap
        of the convolution identity that carries the induction from k − 1.
        """
        bound = self.bilinear_bound(norm_b, u_norms, v_norms, n)
        cert = BoundCertificate("bilinear", n, {"norm_B": norm_b}, bound=bound)

        def term(i, j):
            return u_norms[i] * v_norms[j]

        # level[(a, b)] = L_k(a, b) for a + b ≤ n − k
        level = {(a, b): term(a, b) for a in range(n + 1) for b in range(n + 1 - a)}
        for k in range(n + 1):
            if k > 0:
                level = {
                    (a, b): level[(a + 1, b)] + level[(a, b + 1)]
                    for a in range(n - k + 1) for b in range(n - k + 1 - a)
                }
            recursive = norm_b * level[(0, 0)]
            closed = self.bilinear_bound(norm_b, u_norms, v_norms, k)
            gap = 0.0
            if k > 0:
                lhs, rhs = self.convolution_split(k - 1, term)
                gap = norm_b * abs(lhs - rhs)
            step = BoundStep(k, recursive, closed, identity_gap=gap)
            cert.steps.append(step)
            logger.debug(f"Bilinear bound step {k}: {recursive:.6g} ≤ {closed:.6g} (gap {gap:.3g})")
        return cert

    # ---- Checks against true towers ----

    def _norms(self, func: DiffFunction, n: int, x) -> List[float]:
        return [self.engine.iterated_fderiv(func, m, x).norm() for m in range(n + 1)]

    def _within_tolerance(self, actual: float, bound: float) -> bool:
        return actual <= bound * (1.0 + self.config.check_rtol) + self.config.check_atol

    def check_composition(
        self,
        outer: DiffFunction,
        inner: DiffFunction,
        n: int,
        x,
        C: Optional[float] = None,
        D: Optional[float] = None,
    ) -> BoundCheck:
        """
        Compare ‖D^n (g ∘ f)(x)‖ with n!·C·D^n. Missing constants are taken
        as the smallest values satisfying the hypotheses at x.
        """
        _check_order(n)
        x = as_point(x, inner.dim)
        y = as_point(inner(x), outer.dim)
        g_norms = self._norms(outer, n, y)
        f_norms = self._norms(inner, n, x)

        if C is None:
            C = max(g_norms)
        if D is None:
            D = max([f_norms[i] ** (1.0 / i) for i in range(1, n + 1)], default=0.0)

        assumptions = all(self._within_tolerance(a, C) for a in g_norms) and all(
            self._within_tolerance(f_norms[i], D ** i) for i in range(1, n + 1)
        )
        bound = self.composition_bound(n, C, D)
        actual = self.engine.iterated_fderiv(compose(outer, inner), n, x).norm()
        return BoundCheck(n, actual, bound, assumptions, self._within_tolerance(actual, bound))

    def check_bilinear(
        self,
        bilinear: BilinearMap,
        left: DiffFunction,
        right: DiffFunction,
        n: int,
        x,
    ) -> BoundCheck:
        _check_order(n)
        x = as_point(x, left.dim)
        bound = self.bilinear_bound(bilinear.norm(), self._norms(left, n, x), self._norms(right, n, x), n)
        actual = self.engine.iterated_fderiv(bilinear_apply(bilinear, left, right), n, x).norm()
        return BoundCheck(n, actual, bound, True, self._within_tolerance(actual, bound))
