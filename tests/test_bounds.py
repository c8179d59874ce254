"""
Tests for the composition bound engine.
"""

import math

import numpy as np
import pytest
from jetpy.calculus.bounds import BoundEngine, BoundStatus, BoundStep
from jetpy.calculus.combinators import INNER, MUL
from jetpy.calculus.functions import IdentityFunction, exp_map, polynomial, sin_map
from jetpy.runtime.parallel import ParallelReducer


class TestCompositionBound:
    def setup_method(self):
        self.engine = BoundEngine()

    def test_closed_form(self):
        assert self.engine.composition_bound(3, 2.0, 0.5) == pytest.approx(1.5)
        assert self.engine.composition_bound(4, 1.0, 1.0) == 24.0

    def test_order_zero_is_C(self):
        assert self.engine.composition_bound(0, 3.5, 10.0) == 3.5

    def test_zero_D(self):
        assert self.engine.composition_bound(2, 5.0, 0.0) == 0.0

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            self.engine.composition_bound(-1, 1.0, 1.0)
        with pytest.raises(ValueError):
            self.engine.composition_bound(2, -1.0, 1.0)
        with pytest.raises(ValueError):
            self.engine.composition_bound(2, 1.0, -0.5)

    def test_monotone_in_constants(self):
        for n in range(5):
            assert self.engine.composition_bound(n, 1.0, 2.0) <= self.engine.composition_bound(n, 2.0, 2.0)
            assert self.engine.composition_bound(n, 1.0, 1.0) <= self.engine.composition_bound(n, 1.0, 1.5)

    def test_recursion_values(self):
        cert = self.engine.derive_composition_bound(3, 1.0, 1.0)
        assert [s.recursive for s in cert.steps] == [1.0, 1.0, 2.0, 5.0]
        assert [s.closed_form for s in cert.steps] == [1.0, 1.0, 2.0, 6.0]
        assert cert.valid
        assert cert.status is BoundStatus.VERIFIED
        assert cert.sharp_bound == 5.0
        assert cert.bound == 6.0

    def test_recursion_scales_with_constants(self):
        C, D = 3.0, 0.5
        cert = self.engine.derive_composition_bound(3, C, D)
        for step, factor in zip(cert.steps, (1, 1, 2, 5)):
            assert step.recursive == pytest.approx(factor * C * D ** step.order)
            assert step.recursive <= math.factorial(step.order) * C * D ** step.order

    def test_recursion_never_exceeds_closed_form(self):
        cert = self.engine.derive_composition_bound(10, 2.0, 1.3)
        assert all(s.ok for s in cert.steps)

    def test_certificate_text(self):
        text = self.engine.derive_composition_bound(2, 2.0, 1.0).to_certificate()
        assert "DERIVATIVE NORM BOUND CERTIFICATE" in text
        assert "composition" in text
        assert "VERIFIED" in text
        assert "n! · C · D^n" in text


class TestBilinearBound:
    def setup_method(self):
        self.engine = BoundEngine()

    def test_leibniz_sum(self):
        assert self.engine.bilinear_bound(2.0, [1.0, 2.0, 3.0], [1.0, 1.0, 1.0], 2) == pytest.approx(16.0)

    def test_short_norm_lists(self):
        with pytest.raises(IndexError):
            self.engine.bilinear_bound(1.0, [1.0], [1.0, 1.0], 1)

    def test_negative_norms(self):
        with pytest.raises(ValueError):
            self.engine.bilinear_bound(-1.0, [1.0], [1.0], 0)

    def test_convolution_identity(self):
        def term(i, j):
            return 2.0 ** i * 3.0 ** j

        for n in range(6):
            lhs, rhs = self.engine.convolution_split(n, term)
            assert lhs == pytest.approx(rhs)

    def test_derivation_records_identity_gaps(self):
        cert = self.engine.derive_bilinear_bound(1.0, [1.0, 0.5, 0.25, 2.0], [2.0, 1.0, 1.0, 1.0], 3)
        assert len(cert.steps) == 4
        assert all(s.identity_gap == pytest.approx(0.0) for s in cert.steps)
        assert cert.bound == pytest.approx(cert.steps[-1].recursive)

    def test_derivation_is_inductive(self):
        # (uv)' = u'v + uv' applied twice, not the binomial sum read off at each order
        u, v = [1.0, 2.0, 3.0], [1.0, 1.0, 1.0]
        cert = self.engine.derive_bilinear_bound(2.0, u, v, 2)
        assert [s.recursive for s in cert.steps] == pytest.approx([2.0, 6.0, 16.0])
        assert [s.closed_form for s in cert.steps] == pytest.approx(
            [self.engine.bilinear_bound(2.0, u, v, k) for k in range(3)]
        )
        assert cert.valid

    def test_step_with_identity_gap_fails(self):
        assert BoundStep(1, 3.0, 3.0).ok
        assert not BoundStep(1, 3.0, 3.0, identity_gap=0.5).ok
        assert not BoundStep(1, 3.5, 3.0).ok

    def test_tampered_derivation_is_violated(self):
        cert = self.engine.derive_bilinear_bound(1.0, [1.0, 1.0, 1.0], [1.0, 1.0, 1.0], 2)
        assert cert.status is BoundStatus.VERIFIED
        cert.steps[1] = BoundStep(1, 2.0, 2.0, identity_gap=1e-3)
        assert cert.status is BoundStatus.VIOLATED
        assert "FAIL" in cert.to_certificate()

    def test_parallel_reducer_matches_sequential(self):
        u = [float(k + 1) for k in range(40)]
        v = [1.0 / (k + 1) for k in range(40)]
        sequential = BoundEngine(reducer=ParallelReducer(workers=1))
        parallel = BoundEngine(reducer=ParallelReducer(workers=4, min_parallel_size=1, chunk_size=3))
        assert sequential.bilinear_bound(1.0, u, v, 39) == parallel.bilinear_bound(1.0, u, v, 39)


class TestChecks:
    def setup_method(self):
        self.engine = BoundEngine()

    def test_square_after_identity(self):
        check = self.engine.check_composition(polynomial([0.0, 0.0, 1.0]), IdentityFunction(1), 2, [0.3], C=2.0, D=1.0)
        assert check.assumptions_hold
        assert check.actual == pytest.approx(2.0)
        assert check.bound == pytest.approx(4.0)
        assert check

    def test_inferred_constants(self):
        check = self.engine.check_composition(sin_map(), polynomial([0.0, 2.0]), 2, [0.3])
        assert check.assumptions_hold
        assert check.actual == pytest.approx(4.0 * np.sin(0.6))
        assert check.bound == pytest.approx(2.0 * np.cos(0.6) * 4.0)
        assert check.holds

    def test_composition_bound_at_several_orders(self):
        for n in range(4):
            assert self.engine.check_composition(exp_map(), polynomial([0.1, 0.5, 0.2]), n, [0.4])

    def test_failed_assumption_is_reported(self):
        check = self.engine.check_composition(polynomial([0.0, 0.0, 1.0]), IdentityFunction(1), 2, [0.3], C=1.0, D=1.0)
        assert not check.assumptions_hold

    def test_bilinear(self):
        assert self.engine.check_bilinear(MUL, sin_map(), exp_map(), 3, [0.2])
        u = IdentityFunction(2)
        check = self.engine.check_bilinear(INNER, u, u, 2, [0.5, -0.5])
        assert check.actual == pytest.approx(2.0 * np.sqrt(2.0))
        assert check.holds
