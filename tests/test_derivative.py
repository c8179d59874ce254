"""
Tests for the first-order derivative primitive.
"""

import numpy as np
import pytest
from jetpy.calculus.derivative import DerivativeOracle, FiniteDifferenceOracle
from jetpy.calculus.functions import FunctionWrapper, PolynomialMap, absolute_value, polynomial
from jetpy.topology.domains import Ball, Box, FiniteSet, Universe


class TestDerivativeOracle:
    def setup_method(self):
        self.oracle = DerivativeOracle()

    def test_analytic_derivative(self):
        d = self.oracle.derivative(polynomial([0.0, 0.0, 1.0]), [3.0])
        assert d.order == 1
        assert np.allclose(d.tensor, [6.0])

    def test_isolated_point_gives_zero_map(self):
        f = polynomial([0.0, 1.0])
        d = self.oracle.derivative_within(f, FiniteSet([[0.0], [1.0]]), [0.0])
        assert d is not None
        assert d.norm() == 0.0

    def test_kink_has_no_derivative(self):
        assert self.oracle.derivative(absolute_value(), [0.0]) is None
        assert not self.oracle.has_derivative_within(absolute_value(), Universe(1), [0.0])

    def test_one_sided_at_boundary(self):
        d = self.oracle.derivative_within(absolute_value(), Box([0.0], [1.0]), [0.0])
        assert d is not None
        assert np.isclose(d.tensor[0], 1.0, atol=1e-8)
        d = self.oracle.derivative_within(absolute_value(), Box([-1.0], [0.0]), [0.0])
        assert np.isclose(d.tensor[0], -1.0, atol=1e-8)

    def test_numeric_fallback(self):
        f = FunctionWrapper(lambda x: np.sin(x[0]) * x[1], dim=2)
        x = np.array([0.4, 2.0])
        d = self.oracle.derivative(f, x)
        assert np.allclose(d.tensor, [np.cos(0.4) * 2.0, np.sin(0.4)], atol=1e-8)


class TestFiniteDifferenceOracle:
    def setup_method(self):
        self.fd = FiniteDifferenceOracle()

    def test_vector_valued(self):
        f = FunctionWrapper(lambda x: np.array([x[0] ** 2, x[0] * x[1]]), dim=2, out_shape=(2,))
        d = self.fd.derivative_within(f, Universe(2), [1.0, 2.0])
        assert d.tensor.shape == (2, 2)
        assert np.allclose(d.tensor, [[2.0, 0.0], [2.0, 1.0]], atol=1e-8)

    def test_non_tangent_direction_gets_zero_column(self):
        # A segment in the plane: only e0 is tangent
        segment = Box([0.0, 1.0], [1.0, 1.0])
        f = FunctionWrapper(lambda x: x[0] + 5.0 * x[1], dim=2)
        partials = self.fd.partials_within(f, segment, [0.5, 1.0])
        assert set(partials) == {0}
        d = self.fd.derivative_within(f, segment, [0.5, 1.0])
        assert np.allclose(d.tensor, [1.0, 0.0])

    def test_non_finite_values(self):
        f = FunctionWrapper(lambda x: 1.0 / x[0], dim=1)
        assert self.fd.derivative_within(f, Universe(1), [0.0]) is None

    def test_step_scales_with_point(self):
        assert self.fd.step_for(np.array([100.0]), 0) == pytest.approx(0.1)
        assert self.fd.step_for(np.array([0.01]), 0) == pytest.approx(1e-3)

    def test_nesting_level_grows_step(self):
        assert self.fd.step_for(np.array([0.0]), 0, level=3) == pytest.approx(1.6e-2)
        with pytest.raises(ValueError):
            self.fd.step_for(np.array([0.0]), 0, level=0)


class TestNarrowDomains:
    def setup_method(self):
        self.oracle = DerivativeOracle()
        self.fd = self.oracle.fallback
        self.sin = FunctionWrapper(lambda x: np.sin(x[0]), dim=1)

    def test_step_shrinks_to_fit_a_small_ball(self):
        # The ball is narrower than the base step of 1e-3
        narrow = Box([-1.0], [1.0]).intersect(Ball([0.3], 5e-4))
        d = self.oracle.derivative_within(self.sin, narrow, [0.3])
        assert np.allclose(d.tensor, [np.cos(0.3)], atol=1e-8)

    def test_step_shrinks_at_the_edge_of_a_small_ball(self):
        narrow = Box([-1.0], [1.0]).intersect(Ball([-1.0], 5e-4))
        d = self.oracle.derivative_within(self.sin, narrow, [-1.0])
        assert np.allclose(d.tensor, [np.cos(-1.0)], atol=1e-6)

    def test_feasible_step(self):
        x = np.array([0.3])
        assert self.fd.feasible_step(Universe(1), x, 0) == (pytest.approx(1e-3), True, True)
        h, forward_ok, backward_ok = self.fd.feasible_step(Ball([0.3], 5e-4), x, 0)
        assert h <= 5e-4
        assert forward_ok and backward_ok
        assert self.fd.feasible_step(Box([0.0, 1.0], [1.0, 1.0]), np.array([0.5, 1.0]), 1) is None

    def test_nested_level_prefers_central_stencil(self):
        # Level 2 starts at 4e-3; a central stencil wins over a longer one-sided one
        h, forward_ok, backward_ok = self.fd.feasible_step(Ball([0.0], 3e-3), np.array([0.0]), 0, level=2)
        assert h == pytest.approx(2e-3)
        assert forward_ok and backward_ok
        h, forward_ok, backward_ok = self.fd.feasible_step(Box([0.0], [1.0]), np.array([0.0]), 0, level=2)
        assert h == pytest.approx(4e-3)
        assert forward_ok and not backward_ok
        h, forward_ok, backward_ok = self.fd.feasible_step(Box([-2.5e-3], [1.0]), np.array([0.0]), 0, level=2)
        assert h == pytest.approx(2e-3)
        assert forward_ok and backward_ok


class TestNonUniqueSets:
    def setup_method(self):
        self.oracle = DerivativeOracle()
        self.segment = Box([0.0, 1.0], [1.0, 1.0])

    def test_tangent_directions(self):
        assert self.oracle.fallback.tangent_directions(self.segment, [0.5, 1.0]) == [0]
        assert self.oracle.fallback.tangent_directions(Universe(2), [0.5, 1.0]) == [0, 1]

    def test_analytic_and_numeric_agree_on_a_segment(self):
        analytic = PolynomialMap(2, {(1, 0): 1.0, (0, 1): 5.0})
        numeric = FunctionWrapper(lambda x: x[0] + 5.0 * x[1], dim=2)
        a = self.oracle.derivative_within(analytic, self.segment, [0.5, 1.0])
        b = self.oracle.derivative_within(numeric, self.segment, [0.5, 1.0])
        assert np.allclose(a.tensor, [1.0, 0.0])
        assert np.allclose(a.tensor, b.tensor, atol=1e-8)

    def test_unique_set_keeps_analytic_value(self):
        analytic = PolynomialMap(2, {(1, 0): 1.0, (0, 1): 5.0})
        d = self.oracle.derivative_within(analytic, Box([0.0, 0.0], [1.0, 1.0]), [0.5, 1.0])
        assert np.allclose(d.tensor, [1.0, 5.0])
