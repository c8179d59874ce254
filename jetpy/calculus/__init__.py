"""
Higher-Order Calculus
=====================

Derivative towers of functions between normed spaces:

1. **Functions** with optional analytic derivatives, and a first-order
   derivative primitive within sets (analytic or finite differences).

2. **Formal series and tower witnesses**: Taylor-series claims checked by
   zero-term agreement, derivative steps and continuity.

3. **Iterated derivatives**: the canonical tower D^n_S f(x), total by
   construction (zero map where no derivative exists).

4. **Differentiability classes** C^n with constructive witnesses, and
   **combinators** that preserve them.

5. **Bounds**: the Faà di Bruno estimate ‖D^n(g∘f)‖ ≤ n!·C·D^n.
"""

from jetpy.calculus.functions import (
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
    Reshaped,
)
from jetpy.calculus.derivative import DerivativeOracle, FiniteDifferenceOracle
from jetpy.calculus.series import FormalSeries, TowerWitness, TowerCheckReport
from jetpy.calculus.iterated import IteratedDerivativeEngine, IteratedTerm
from jetpy.calculus.smoothness import (
    SmoothnessChecker,
    SmoothnessWitness,
    ContDiffResult,
    ContDiffOnResult,
    SuccessorUnfolding,
    LipschitzCertificate,
)
from jetpy.calculus.combinators import (
    BilinearMap,
    MUL,
    COMPOSE,
    INNER,
    LEFT_MATMUL,
    RIGHT_MATMUL,
    Sum,
    Negation,
    ScalarMultiple,
    BilinearApplication,
    Product,
    Composition,
    Inverse,
    MatrixInverse,
    add,
    sum_of,
    neg,
    sub,
    smul,
    mul,
    product_of,
    inv,
    matrix_inv,
    compose,
    bilinear_apply,
    iterated_fderiv_within_add,
    iterated_fderiv_within_sum,
    iterated_fderiv_within_neg,
    iterated_fderiv_within_sub,
    iterated_fderiv_within_const_smul,
    CombinatorVerifier,
    CombinatorReport,
)
from jetpy.calculus.bounds import BoundEngine, BoundCertificate, BoundCheck, BoundStatus
