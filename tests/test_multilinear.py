"""
Tests for continuous multilinear maps.
"""

import numpy as np
import pytest
from jetpy.algebra.multilinear import MultilinearMap


def random_map(rng, dim, order, out_shape=()):
    return MultilinearMap(rng.normal(size=tuple(out_shape) + (dim,) * order), order=order, dim=dim)


class TestConstruction:
    def test_shape_validation(self):
        with pytest.raises(ValueError):
            MultilinearMap(np.zeros((2, 3)), order=2)
        with pytest.raises(ValueError):
            MultilinearMap(np.zeros(3), order=-1)

    def test_zero_ary_needs_dim(self):
        with pytest.raises(ValueError):
            MultilinearMap(np.array(1.0), order=0)
        c = MultilinearMap.constant([1.0, 2.0], dim=3)
        assert c.order == 0
        assert c.out_shape == (2,)
        assert np.array_equal(c.value(), [1.0, 2.0])

    def test_read_only(self):
        m = MultilinearMap.identity(2)
        with pytest.raises(ValueError):
            m.tensor[0, 0] = 5.0

    def test_zero(self):
        z = MultilinearMap.zero(3, 2, (2,))
        assert z.tensor.shape == (2, 3, 3)
        assert z.norm() == 0.0


class TestEvaluation:
    def test_bilinear_dot(self):
        b = MultilinearMap(np.eye(2), order=2)
        assert float(b(np.array([1.0, 2.0]), np.array([3.0, 4.0]))) == 11.0

    def test_argument_order(self):
        t = np.zeros((2, 2))
        t[0, 1] = 1.0
        b = MultilinearMap(t, order=2)
        u, v = np.array([1.0, 0.0]), np.array([0.0, 1.0])
        assert float(b(u, v)) == 1.0
        assert float(b(v, u)) == 0.0

    def test_wrong_argument_count(self):
        with pytest.raises(ValueError):
            MultilinearMap.identity(2)(np.ones(2), np.ones(2))

    def test_norm_bounds_operator_norm(self):
        rng = np.random.default_rng(1)
        m = random_map(rng, 3, 2)
        for _ in range(10):
            u, v = rng.normal(size=3), rng.normal(size=3)
            assert abs(float(m(u, v))) <= m.norm() * np.linalg.norm(u) * np.linalg.norm(v) + 1e-12


class TestCurrying:
    def test_curry_left_semantics(self):
        rng = np.random.default_rng(2)
        m = random_map(rng, 2, 3, (2,))
        u, v, w = rng.normal(size=(3, 2))
        curried = m.curry_left()
        inner = MultilinearMap(curried(u), order=2, dim=2)
        assert np.allclose(inner(v, w), m(u, v, w))

    def test_curry_right_semantics(self):
        rng = np.random.default_rng(3)
        m = random_map(rng, 2, 3)
        u, v, w = rng.normal(size=(3, 2))
        curried = m.curry_right()
        linear = MultilinearMap(curried(u, v), order=1, dim=2)
        assert np.allclose(linear(w), m(u, v, w))

    def test_round_trips_up_to_order_five(self):
        rng = np.random.default_rng(4)
        for order in range(1, 6):
            m = random_map(rng, 2, order, (3,))
            left = m.curry_left()
            assert left.uncurry_left(order - 1) == m
            assert m.curry_right().uncurry_right() == m
            assert np.isclose(left.norm(), m.norm())
            assert np.isclose(m.curry_right().norm(), m.norm())

    def test_uncurry_left_rejects_bad_codomain(self):
        with pytest.raises(ValueError):
            MultilinearMap.identity(3).uncurry_left(2)
        with pytest.raises(ValueError):
            MultilinearMap(np.zeros((2, 2)), order=2).uncurry_left(1)

    def test_curry_needs_an_argument(self):
        with pytest.raises(ValueError):
            MultilinearMap.constant(1.0, dim=2).curry_left()


class TestLinearComposition:
    def test_postcompose(self):
        rng = np.random.default_rng(5)
        m = random_map(rng, 2, 2, (3,))
        linear = MultilinearMap(rng.normal(size=(4, 3)), order=1)
        composed = m.postcompose(linear)
        u, v = rng.normal(size=(2, 2))
        assert np.allclose(composed(u, v), linear.tensor @ m(u, v))
        assert composed.norm() <= linear.norm() * m.norm() + 1e-12

    def test_precompose(self):
        rng = np.random.default_rng(6)
        m = random_map(rng, 3, 2)
        linear = MultilinearMap(rng.normal(size=(3, 2)), order=1)
        composed = m.precompose(linear)
        u, v = rng.normal(size=(2, 2))
        assert composed.dim == 2
        assert np.isclose(float(composed(u, v)), float(m(linear(u), linear(v))))
        assert composed.norm() <= m.norm() * linear.norm() ** 2 + 1e-12

    def test_compose_linear_dispatch(self):
        m = MultilinearMap.identity(2)
        assert m.compose_linear(MultilinearMap.identity(2), side="pre") == m
        with pytest.raises(ValueError):
            m.compose_linear(m, side="middle")


class TestVectorSpace:
    def test_arithmetic(self):
        a = MultilinearMap(np.eye(2), order=2)
        b = MultilinearMap(np.ones((2, 2)), order=2)
        assert (a + b) - b == a
        assert -a == (-1) * a
        assert (2 * a).allclose(a + a)

    def test_incompatible(self):
        with pytest.raises(ValueError):
            MultilinearMap.identity(2) + MultilinearMap.identity(3)
        with pytest.raises(TypeError):
            MultilinearMap.identity(2) + 1.0
