"""Orders and multilinear maps."""

from jetpy.algebra.order import INFINITY, Order, OrderKind, as_order, holds_for_all_finite
from jetpy.algebra.multilinear import MultilinearMap
