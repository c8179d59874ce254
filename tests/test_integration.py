"""
Integration tests for JetPy.

End-to-end flows through the public package:
  Functions -> Derivative towers -> C^n classes -> Combinators -> Bounds
"""

import numpy as np
import pytest

import jetpy
from jetpy import (
    INFINITY,
    BoundEngine,
    Box,
    CombinatorVerifier,
    FormalSeries,
    IteratedDerivativeEngine,
    NumericsConfig,
    SmoothnessChecker,
    TowerWitness,
    Universe,
    compose,
    mul,
    polynomial,
    sin_map,
)


# ---------- Realistic Workloads ----------

def gaussian_bump():
    """exp(−x²) built from combinators."""
    return compose(jetpy.exp_map(), polynomial([0.0, 0.0, -1.0]))


def gaussian_bump_derivatives(x):
    e = np.exp(-x * x)
    return [
        e,
        -2 * x * e,
        (4 * x * x - 2) * e,
        (-8 * x ** 3 + 12 * x) * e,
    ]


class TestPublicPackage:
    def test_version(self):
        assert jetpy.__version__ == "1.0.0"

    def test_exports(self):
        for name in jetpy.__all__:
            assert hasattr(jetpy, name), name

    def test_quickstart(self):
        f = jetpy.polynomial([0, 0, 1])
        engine = jetpy.IteratedDerivativeEngine()
        assert np.allclose(engine.iterated_fderiv(f, 2, [1.0]).tensor, [[2.0]])
        checker = jetpy.SmoothnessChecker()
        assert bool(checker.cont_diff_at(jetpy.sin_map() @ f, jetpy.INFINITY, [0.5]))


class TestTowerPipeline:
    def setup_method(self):
        self.engine = IteratedDerivativeEngine()
        self.f = gaussian_bump()

    def test_tower_matches_closed_form(self):
        for x in (-0.8, 0.0, 0.35):
            expected = gaussian_bump_derivatives(x)
            for m, value in enumerate(expected):
                d = self.engine.iterated_fderiv(self.f, m, [x])
                assert np.allclose(d.tensor.ravel(), [value], atol=1e-10)

    def test_canonical_series_witnesses_smoothness(self):
        domain = Box([-1.0], [1.0])
        series = self.engine.ftaylor_series_within(self.f, domain)
        witness = TowerWitness(3, self.f, series, domain)
        assert witness.holds()
        assert witness.shift().holds()

    def test_numeric_and_analytic_agree(self):
        numeric = jetpy.FunctionWrapper(lambda x: np.exp(-x[0] ** 2), dim=1)
        for m in range(3):
            a = self.engine.iterated_fderiv(self.f, m, [0.4]).tensor.ravel()
            b = self.engine.iterated_fderiv(numeric, m, [0.4]).tensor.ravel()
            assert np.allclose(a, b, atol=1e-5)

    def test_hand_written_series(self):
        series = FormalSeries.from_callables(1, (1,), [
            lambda x: [np.exp(-x[0] ** 2)],
            lambda x: [[-2 * x[0] * np.exp(-x[0] ** 2)]],
        ])
        assert TowerWitness(1, self.f, series, Universe(1), anchors=[[0.0]]).holds()


class TestSmoothnessPipeline:
    def setup_method(self):
        self.checker = SmoothnessChecker()
        self.verifier = CombinatorVerifier(self.checker)

    def test_product_of_smooth_functions_is_smooth(self):
        f, g = sin_map(), gaussian_bump()
        report = self.verifier.verify("mul", [f, g], 2, Universe(1), [0.2])
        assert report.premises_hold and report.postcondition
        assert self.checker.cont_diff_at(mul(f, g), INFINITY, [0.2])

    def test_kink_propagates_through_composition(self):
        h = compose(sin_map(), jetpy.absolute_value())
        assert self.checker.cont_diff_at(h, 0, [0.0])
        assert not self.checker.cont_diff_at(h, 1, [0.0])
        assert self.checker.cont_diff_within_at(h, 1, Box([0.0], [1.0]), [0.0])

    def test_strict_queries(self):
        strict = SmoothnessChecker(config=NumericsConfig(strict=True))
        d = strict.checked_iterated_fderiv_within(gaussian_bump(), 2, Universe(1), [0.0])
        assert np.allclose(d.tensor, [[-2.0]])


class TestBoundPipeline:
    def test_bound_dominates_tower(self):
        engine = BoundEngine()
        for n in range(4):
            check = engine.check_composition(sin_map(), polynomial([0.0, 0.0, -1.0]), n, [0.6])
            assert check.assumptions_hold
            assert check.holds

    def test_certificate_for_gaussian(self):
        engine = BoundEngine()
        cert = engine.derive_composition_bound(3, 1.0, 2.0)
        assert cert.valid
        assert cert.sharp_bound == pytest.approx(5.0 * 8.0)


class TestConfiguration:
    def test_defaults(self):
        config = NumericsConfig()
        assert config.infinite_order_horizon == 4
        assert not config.strict
        assert jetpy.DEFAULT_CONFIG == config

    def test_overrides_copy(self):
        config = NumericsConfig()
        strict = config.with_overrides(strict=True, sample_count=2)
        assert strict.strict and strict.sample_count == 2
        assert not config.strict

    def test_validation(self):
        with pytest.raises(ValueError):
            NumericsConfig(fd_step=0.0)
        with pytest.raises(ValueError):
            NumericsConfig(continuity_levels=1)

    def test_engines_share_config(self):
        config = NumericsConfig(infinite_order_horizon=2)
        checker = SmoothnessChecker(IteratedDerivativeEngine(config=config))
        result = checker.cont_diff_at(sin_map(), INFINITY, [0.0])
        assert result.checked_orders == [0, 1, 2]
