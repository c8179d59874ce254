"""
First-Order Derivative Primitive
================================

``derivative_within(f, S, x)`` returns the Fréchet derivative of f at x
within the set S as a linear map, or ``None`` when it does not exist.

Resolution order:
    1. x isolated in S: every linear map is a derivative there, and the
       zero map is returned as the deterministic choice.
    2. f carries an analytic derivative that is valid at x: it is used.
    3. Otherwise the derivative is estimated by finite differences.

Finite differences:
    For each coordinate direction e_j the trial step is

        h = fd_step · fd_level_growth^(level−1) · max(1, |x_j|)

    where ``level`` counts how many numeric derivatives are nested (the
    engine differentiates the order-(m−1) term at level m, so roundoff
    does not compound as 1/h^m). The step is halved until the stencil
    fits in S:

        central   (both sides in S)   R = (4·D(h/2) − D(h)) / 3
        forward   (only x + h e_j)    R = 2·F(h/2) − F(h)
        backward  (only x − h e_j)    R = 2·B(h/2) − B(h)

    where D, F and B are the central, forward and backward quotients, so
    all three estimates are Richardson-extrapolated. A central stencil is
    preferred down to the base step, then the largest one-sided stencil
    that fits is used. A direction with no feasible side down to
    ``fd_min_step`` is not tangent to S and gets a zero column.

    Kink detection: for a differentiable f the gap |F(h) − B(h)| is O(h).
    When both sides are feasible and the gap does not shrink as h halves,
    the one-sided derivatives disagree and the derivative does not exist.

Sets without unique derivatives:
    Where S does not determine the derivative at x (a segment in the
    plane, say), the result is projected onto the tangent coordinate
    directions: non-tangent columns are zero whether the value comes from
    an analytic derivative or from finite differences.

Usage:
    >>> oracle = DerivativeOracle()
    >>> oracle.derivative_within(absolute_value(), Box([0.0], [1.0]), [0.0]).tensor
    array([1.])
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from jetpy.algebra.multilinear import MultilinearMap
from jetpy.calculus.functions import DiffFunction
from jetpy.config import NumericsConfig, resolve_config
from jetpy.topology.domains import Domain, Universe
from jetpy.utils.helpers import as_point, basis_vector, max_abs

logger = logging.getLogger(__name__)


class FiniteDifferenceOracle:
    """Numerical partial derivatives within a domain."""

    def __init__(self, config: Optional[NumericsConfig] = None):
        self.config = resolve_config(config)

    def step_for(self, x: np.ndarray, j: int, level: int = 1) -> float:
        if level < 1:
            raise ValueError(f"nesting level must be at least 1, got {level}")
        growth = self.config.fd_level_growth ** (level - 1)
        return self.config.fd_step * growth * max(1.0, abs(float(x[j])))

    def feasible_step(
        self,
        domain: Domain,
        x: np.ndarray,
        j: int,
        level: int = 1,
    ) -> Optional[Tuple[float, bool, bool]]:
        """
        ``(h, forward_ok, backward_ok)`` for the stencil along e_j, or None
        when e_j is not tangent at x.

        Halving from the trial step, the first central stencil that fits
        is taken. Failing that down to the base step, the largest
        one-sided stencil seen is taken; below the base step, the first
        stencil of either kind.
        """
        e = basis_vector(len(x), j)
        scale = max(1.0, abs(float(x[j])))
        base = self.step_for(x, j) * (1.0 + 1e-12)
        floor = self.config.fd_min_step * scale
        one_sided = None
        h = self.step_for(x, j, level)
        while h >= floor:
            forward_ok = domain.contains(x + h * e) and domain.contains(x + 0.5 * h * e)
            backward_ok = domain.contains(x - h * e) and domain.contains(x - 0.5 * h * e)
            if forward_ok and backward_ok:
                return h, True, True
            if one_sided is None and (forward_ok or backward_ok):
                one_sided = (h, forward_ok, backward_ok)
            if one_sided is not None and h <= base:
                return one_sided
            h *= 0.5
        return None

    def tangent_directions(self, domain: Domain, x) -> List[int]:
        """Coordinate directions along which S reaches away from x."""
        x = as_point(x, domain.dim)
        return [j for j in range(domain.dim) if self.feasible_step(domain, x, j) is not None]

    def partials_within(
        self,
        f: DiffFunction,
        domain: Domain,
        x,
        level: int = 1,
    ) -> Optional[Dict[int, np.ndarray]]:
        """
        Partial derivatives ∂f/∂x_j at x along the directions tangent to S.

        Returns a dict ``j -> column`` (columns have f's output shape), or
        None when a kink or a non-finite value is detected.
        """
        x = as_point(x, f.dim)
        f0 = f(x)
        if not np.all(np.isfinite(f0)):
            return None

        columns: Dict[int, np.ndarray] = {}
        for j in range(f.dim):
            found = self.feasible_step(domain, x, j, level)
            if found is None:
                continue
            h, forward_ok, backward_ok = found
            e = basis_vector(f.dim, j)

            values = {}
            for sign, ok in ((1.0, forward_ok), (-1.0, backward_ok)):
                if not ok:
                    continue
                for frac in (1.0, 0.5):
                    v = f(x + sign * frac * h * e)
                    if not np.all(np.isfinite(v)):
                        logger.debug(f"Non-finite value of {f.name} near {x} along e{j}")
                        return None
                    values[(sign, frac)] = v

            if forward_ok and backward_ok:
                fwd_h = (values[(1.0, 1.0)] - f0) / h
                fwd_h2 = (values[(1.0, 0.5)] - f0) / (0.5 * h)
                bwd_h = (f0 - values[(-1.0, 1.0)]) / h
                bwd_h2 = (f0 - values[(-1.0, 0.5)]) / (0.5 * h)

                gap_h = max_abs(fwd_h - bwd_h)
                gap_h2 = max_abs(fwd_h2 - bwd_h2)
                scale = 1.0 + max(max_abs(fwd_h2), max_abs(bwd_h2))
                if gap_h2 > self.config.kink_shrink_ratio * gap_h + self.config.kink_atol * scale:
                    logger.debug(
                        f"Kink in {f.name} at {x} along e{j}: "
                        f"one-sided gap {gap_h:.3e} -> {gap_h2:.3e}"
                    )
                    return None

                central_h = 0.5 * (fwd_h + bwd_h)
                central_h2 = 0.5 * (fwd_h2 + bwd_h2)
                columns[j] = (4.0 * central_h2 - central_h) / 3.0
            elif forward_ok:
                fwd_h = (values[(1.0, 1.0)] - f0) / h
                fwd_h2 = (values[(1.0, 0.5)] - f0) / (0.5 * h)
                columns[j] = 2.0 * fwd_h2 - fwd_h
            else:
                bwd_h = (f0 - values[(-1.0, 1.0)]) / h
                bwd_h2 = (f0 - values[(-1.0, 0.5)]) / (0.5 * h)
                columns[j] = 2.0 * bwd_h2 - bwd_h

        return columns

    def derivative_within(self, f: DiffFunction, domain: Domain, x, level: int = 1) -> Optional[MultilinearMap]:
        columns = self.partials_within(f, domain, x, level)
        if columns is None:
            return None
        tensor = np.zeros(f.out_shape + (f.dim,))
        for j, column in columns.items():
            tensor[..., j] = column
        return MultilinearMap(tensor, order=1, dim=f.dim)


class DerivativeOracle:
    """
    The first-order derivative within a set, with analytic derivatives
    preferred over finite differences.

    Usage:
        >>> oracle = DerivativeOracle()
        >>> oracle.derivative(polynomial([0, 0, 1]), [3.0]).tensor
        array([6.])
    """

    def __init__(
        self,
        config: Optional[NumericsConfig] = None,
        fallback: Optional[FiniteDifferenceOracle] = None,
    ):
        self.config = resolve_config(config)
        self.fallback = fallback or FiniteDifferenceOracle(self.config)

    def derivative_within(self, f: DiffFunction, domain: Domain, x, level: int = 1) -> Optional[MultilinearMap]:
        """
        ``level`` is the nesting depth of numeric derivatives and only
        affects the finite-difference step.
        """
        x = as_point(x, f.dim)

        if domain.is_isolated(x):
            return MultilinearMap.zero(f.dim, 1, f.out_shape)

        analytic = f.derivative
        if analytic is not None and f.is_differentiable_at(x):
            tensor = np.array(analytic(x), dtype=float)
            if not domain.is_unique_diff_at(x):
                tangent = set(self.fallback.tangent_directions(domain, x))
                for j in range(f.dim):
                    if j not in tangent:
                        tensor[..., j] = 0.0
            return MultilinearMap(tensor, order=1, dim=f.dim)

        return self.fallback.derivative_within(f, domain, x, level)

    def derivative(self, f: DiffFunction, x) -> Optional[MultilinearMap]:
        """Derivative on the whole space."""
        return self.derivative_within(f, Universe(f.dim), x)

    def has_derivative_within(self, f: DiffFunction, domain: Domain, x) -> bool:
        return self.derivative_within(f, domain, x) is not None
