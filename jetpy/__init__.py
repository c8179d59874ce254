"""
JetPy: Higher-Order Derivative Towers and Composition Bounds
============================================================

JetPy represents, validates, computes and composes formal Taylor series
of functions R^d → F, and propagates per-order derivative-norm bounds
through composition.

Core Components:
    - algebra: extended orders ℕ∞ and continuous multilinear maps
    - topology: domains consumed through membership/uniqueness predicates
    - calculus: derivative towers, C^n classes, combinators, bounds
    - runtime: deterministic parallel reduction

Usage:
    >>> import jetpy
    >>> f = jetpy.polynomial([0, 0, 1])                  # x²
    >>> engine = jetpy.IteratedDerivativeEngine()
    >>> engine.iterated_fderiv(f, 2, [1.0]).tensor
    array([[2.]])

    >>> checker = jetpy.SmoothnessChecker()
    >>> bool(checker.cont_diff_at(jetpy.sin_map() @ f, jetpy.INFINITY, [0.5]))
    True
"""

__version__ = "1.0.0"
__author__ = "JetPy Research Team"

from jetpy.config import NumericsConfig, DEFAULT_CONFIG
from jetpy.algebra.order import Order, OrderKind, INFINITY, as_order, holds_for_all_finite
from jetpy.algebra.multilinear import MultilinearMap
from jetpy.topology.domains import Domain, Universe, Box, Ball, FiniteSet, Intersection, Inserted
from jetpy.runtime.parallel import ParallelReducer, ParallelStats

from jetpy.calculus import (
    DiffFunction,
    FunctionWrapper,
    ConstantFunction,
    LinearFunction,
    IdentityFunction,
    PolynomialMap,
    polynomial,
    ElementwiseFunction,
    exp_map,
    sin_map,
    cos_map,
    absolute_value,
    DerivativeOracle,
    FiniteDifferenceOracle,
    FormalSeries,
    TowerWitness,
    IteratedDerivativeEngine,
    SmoothnessChecker,
    ContDiffResult,
    BilinearMap,
    MUL,
    COMPOSE,
    compose,
    add,
    sub,
    neg,
    smul,
    mul,
    inv,
    matrix_inv,
    CombinatorVerifier,
    BoundEngine,
)

__all__ = [
    # Configuration
    'NumericsConfig', 'DEFAULT_CONFIG',
    # Algebra
    'Order', 'OrderKind', 'INFINITY', 'as_order', 'holds_for_all_finite', 'MultilinearMap',
    # Domains
    'Domain', 'Universe', 'Box', 'Ball', 'FiniteSet', 'Intersection', 'Inserted',
    # Functions
    'DiffFunction', 'FunctionWrapper', 'ConstantFunction', 'LinearFunction',
    'IdentityFunction', 'PolynomialMap', 'polynomial', 'ElementwiseFunction',
    'exp_map', 'sin_map', 'cos_map', 'absolute_value',
    # Calculus
    'DerivativeOracle', 'FiniteDifferenceOracle', 'FormalSeries', 'TowerWitness',
    'IteratedDerivativeEngine', 'SmoothnessChecker', 'ContDiffResult',
    # Combinators
    'BilinearMap', 'MUL', 'COMPOSE', 'compose', 'add', 'sub', 'neg', 'smul', 'mul',
    'inv', 'matrix_inv', 'CombinatorVerifier',
    # Bounds
    'BoundEngine',
    # Runtime
    'ParallelReducer', 'ParallelStats',
]
