"""
Smoothness Orders
=================

The extended natural numbers ℕ∞ = {0, 1, 2, ...} ∪ {∞} used to index
differentiability classes.

An order is a tagged value: ``Finite(count)`` or ``Infinite``. Orders are
totally ordered with every finite order strictly below ``INFINITY``, and
closed under successor (``∞ + 1 = ∞``).

Properties stated "for every finite order m ≤ n" are never materialized
eagerly. ``finite_orders`` yields them one at a time and, for ``INFINITY``,
stops at a caller-supplied horizon, so checks always terminate:

    >>> all_ok = holds_for_all_finite(INFINITY, lambda m: m < 10, horizon=4)
"""

import functools
import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Iterator, Union


class OrderKind(Enum):
    FINITE = auto()
    INFINITE = auto()


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Order:
    """An element of ℕ∞."""
    kind: OrderKind
    count: int = 0

    def __post_init__(self):
        if self.kind is OrderKind.FINITE and self.count < 0:
            raise ValueError(f"Order must be non-negative, got {self.count}")

    @classmethod
    def finite(cls, count: int) -> 'Order':
        return cls(OrderKind.FINITE, int(count))

    @property
    def is_finite(self) -> bool:
        return self.kind is OrderKind.FINITE

    @property
    def is_infinite(self) -> bool:
        return self.kind is OrderKind.INFINITE

    def succ(self) -> 'Order':
        return self + 1

    def covers(self, m: int) -> bool:
        """True when the finite order ``m`` satisfies m ≤ self."""
        return self.is_infinite or m <= self.count

    def finite_orders(self, horizon: int) -> Iterator[int]:
        """Lazily yield the finite orders m ≤ self (capped at ``horizon`` for ∞)."""
        top = self.count if self.is_finite else horizon
        m = 0
        while m <= top:
            yield m
            m += 1

    def __add__(self, k: int) -> 'Order':
        if not isinstance(k, int) or k < 0:
            return NotImplemented
        if self.is_infinite:
            return self
        return Order.finite(self.count + k)

    __radd__ = __add__

    def _key(self):
        return (1, 0) if self.is_infinite else (0, self.count)

    def __eq__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __int__(self):
        if self.is_infinite:
            raise OverflowError("cannot convert infinite order to int")
        return self.count

    def __repr__(self):
        return "Order(∞)" if self.is_infinite else f"Order({self.count})"

    def __str__(self):
        return "∞" if self.is_infinite else str(self.count)


INFINITY = Order(OrderKind.INFINITE)

OrderLike = Union[Order, int, float, str]


def _coerce(value):
    try:
        return as_order(value)
    except (TypeError, ValueError):
        return None


def as_order(value: OrderLike) -> Order:
    """
    Coerce ints, ``math.inf`` and the strings ``"inf"``/``"∞"`` into an Order.
    """
    if isinstance(value, Order):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not an order")
    if isinstance(value, int):
        return Order.finite(value)
    if isinstance(value, float):
        if math.isinf(value) and value > 0:
            return INFINITY
        if value.is_integer():
            return Order.finite(int(value))
        raise ValueError(f"Order must be a whole number, got {value}")
    if isinstance(value, str) and value.strip().lower() in ("inf", "infinity", "∞"):
        return INFINITY
    raise TypeError(f"Cannot interpret {value!r} as an order")


def holds_for_all_finite(
    order: OrderLike,
    predicate: Callable[[int], bool],
    horizon: int,
) -> bool:
    """
    Check ``predicate(m)`` for every finite m ≤ order, one order at a time.

    Short-circuits on the first failure. For ``INFINITY`` only the orders
    0..horizon are examined.
    """
    return all(predicate(m) for m in as_order(order).finite_orders(horizon))
