"""
Tests for extended orders.
"""

import math

import pytest
from jetpy.algebra.order import INFINITY, Order, OrderKind, as_order, holds_for_all_finite


class TestOrder:
    def test_finite_construction(self):
        o = Order.finite(3)
        assert o.is_finite
        assert o.count == 3
        assert int(o) == 3

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            Order.finite(-1)

    def test_total_order(self):
        assert Order.finite(2) < Order.finite(5)
        assert Order.finite(1000) < INFINITY
        assert INFINITY <= INFINITY
        assert not INFINITY < INFINITY
        assert Order.finite(3) == 3
        assert Order.finite(3) <= 4

    def test_successor(self):
        assert Order.finite(2).succ() == Order.finite(3)
        assert INFINITY.succ() == INFINITY
        assert INFINITY + 5 == INFINITY
        assert 2 + Order.finite(1) == 3

    def test_covers(self):
        assert Order.finite(2).covers(2)
        assert not Order.finite(2).covers(3)
        assert INFINITY.covers(10 ** 6)

    def test_hash_consistent_with_eq(self):
        assert hash(Order.finite(4)) == hash(as_order(4))
        assert len({INFINITY, as_order("inf"), Order(OrderKind.INFINITE)}) == 1

    def test_int_of_infinity(self):
        with pytest.raises(OverflowError):
            int(INFINITY)

    def test_str(self):
        assert str(INFINITY) == "∞"
        assert str(Order.finite(7)) == "7"


class TestAsOrder:
    def test_coercions(self):
        assert as_order(4) == Order.finite(4)
        assert as_order(math.inf) is INFINITY
        assert as_order("∞") is INFINITY
        assert as_order(" Infinity ") is INFINITY
        assert as_order(2.0) == 2

    def test_rejections(self):
        with pytest.raises(TypeError):
            as_order(True)
        with pytest.raises(ValueError):
            as_order(1.5)
        with pytest.raises(TypeError):
            as_order("seven")


class TestFiniteOrders:
    def test_finite_enumeration(self):
        assert list(Order.finite(3).finite_orders(horizon=10)) == [0, 1, 2, 3]

    def test_infinite_is_capped(self):
        assert list(INFINITY.finite_orders(horizon=4)) == [0, 1, 2, 3, 4]

    def test_lazy_short_circuit(self):
        seen = []

        def predicate(m):
            seen.append(m)
            return m < 2

        assert not holds_for_all_finite(INFINITY, predicate, horizon=100)
        assert seen == [0, 1, 2]

    def test_holds_for_all_finite(self):
        assert holds_for_all_finite(5, lambda m: m <= 5, horizon=0)
        assert holds_for_all_finite("inf", lambda m: True, horizon=3)
