"""
Tests for the measure backend.

These tests verify:
1. Extended-real arithmetic saturates (inf + x = inf, inf * 0 = 0)
2. Coordinate sets and coordinate measures agree on simple sets
3. Piecewise-constant integrands are integrated exactly through breakpoints
4. Configuration is read strictly from the environment
5. Certificate commitments reject float payloads
"""

import math
from fractions import Fraction

import pytest

from measure_backend import (
    INF,
    CoordinateMeasure,
    DiscreteMeasure,
    DomainError,
    Everything,
    ExtensionConfig,
    ExtensionError,
    FiniteSet,
    Interval,
    InvariantViolation,
    IntervalMeasure,
    MeasurabilityError,
    as_extended,
    coordinate_subset,
    ext_add,
    ext_close,
    ext_mul,
    ext_sum,
    fair_coin,
    geometric,
    is_probability,
    lebesgue_unit,
    render_extended,
    sha256_hex_of_certificate,
    uniform_finite,
)


# =============================================================================
# EXTENDED REALS
# =============================================================================

class TestExtendedReals:
    """Saturating arithmetic on [0, inf]."""

    def test_infinity_absorbs_addition(self):
        assert ext_add(INF, Fraction(3)) == INF
        assert ext_add(Fraction(1, 2), Fraction(1, 4)) == Fraction(3, 4)

    def test_infinity_times_zero_is_zero(self):
        assert ext_mul(INF, 0) == 0
        assert ext_mul(0, INF) == 0
        assert ext_mul(INF, Fraction(1, 2)) == INF

    def test_sum_of_nothing_is_zero(self):
        assert ext_sum([]) == 0

    def test_ints_become_fractions(self):
        value = as_extended(3)
        assert isinstance(value, Fraction)
        assert value == 3

    def test_negative_value_rejected(self):
        with pytest.raises(MeasurabilityError):
            as_extended(Fraction(-1, 2))

    def test_nan_rejected(self):
        with pytest.raises(MeasurabilityError):
            as_extended(float("nan"))

    def test_non_numeric_rejected(self):
        with pytest.raises(MeasurabilityError):
            as_extended("1")

    def test_close_compares_infinities_exactly(self):
        assert ext_close(INF, INF, 1e-8)
        assert not ext_close(INF, Fraction(10 ** 9), 1e-8)

    def test_render_is_float_free_for_fractions(self):
        assert render_extended(Fraction(1, 8)) == "1/8"
        assert render_extended(INF) == "inf"


# =============================================================================
# COORDINATE SETS
# =============================================================================

class TestCoordinateSets:
    """Membership, intersection and structural inclusion."""

    def test_open_and_closed_ends(self):
        s = Interval(0, 1, closed_low=False)
        assert 0 not in s
        assert Fraction(1, 2) in s
        assert 1 in s

    def test_interval_rejects_non_numbers(self):
        assert "a" not in Interval(0, 1)

    def test_interval_intersection(self):
        meet = Interval(0, 1).intersect(Interval(Fraction(1, 2), 2))
        assert meet == Interval(Fraction(1, 2), 1)

    def test_empty_interval(self):
        assert Interval(1, 0).is_empty()
        assert Interval(1, 1, closed_high=False).is_empty()
        assert not Interval(1, 1).is_empty()

    def test_finite_set_intersection(self):
        assert FiniteSet({0, 1, 2}).intersect(Interval(1, 5)) == FiniteSet({1, 2})

    def test_structural_inclusion(self):
        assert coordinate_subset(Interval(3, INF), Interval(2, INF)) is True
        assert coordinate_subset(Interval(1, INF), Interval(2, INF)) is False
        assert coordinate_subset(FiniteSet({0}), Everything()) is True


# =============================================================================
# COORDINATE MEASURES
# =============================================================================

class TestCoordinateMeasures:
    """mu_n on finite, countable and interval spaces."""

    def test_fair_coin_is_probability(self):
        assert is_probability(fair_coin(), config=ExtensionConfig())
        assert fair_coin().measure(FiniteSet({0})) == Fraction(1, 2)

    def test_uniform_finite(self):
        mu = uniform_finite(["a", "b", "c", "d"])
        assert mu.measure(FiniteSet({"a", "c"})) == Fraction(1, 2)

    def test_negative_weight_rejected(self):
        with pytest.raises(InvariantViolation):
            DiscreteMeasure({0: Fraction(3, 2), 1: Fraction(-1, 2)})

    def test_geometric_tail(self):
        mu = geometric()
        assert mu.measure(Interval(3, INF)) == Fraction(1, 8)
        assert mu.measure(FiniteSet({0})) == Fraction(1, 2)
        assert mu.measure(Interval(1, 2)) == Fraction(1, 4) + Fraction(1, 8)

    def test_geometric_piecewise_integral_is_exact(self):
        mu = geometric()
        value = mu.integrate(lambda k: 1 if k >= 2 else 0, breakpoints=(2,), config=ExtensionConfig())
        assert value == Fraction(1, 4)

    def test_geometric_truncated_sum(self):
        mu = geometric()
        value = mu.integrate(lambda k: 1, config=ExtensionConfig())
        assert abs(value - 1) <= ExtensionConfig().tail_tolerance

    def test_lebesgue_box_side(self):
        assert lebesgue_unit().measure(Interval(Fraction(1, 4), Fraction(3, 4))) == Fraction(1, 2)
        assert lebesgue_unit().measure(Interval(2, 3)) == 0
        assert lebesgue_unit().measure(FiniteSet({Fraction(1, 2)})) == 0

    def test_lebesgue_piecewise_integral_is_exact(self):
        mu = lebesgue_unit()
        third = Fraction(1, 3)
        value = mu.integrate(lambda t: 1 if t <= third else 0, breakpoints=(third,), config=ExtensionConfig())
        assert value == third

    def test_lebesgue_quadrature(self):
        value = lebesgue_unit().integrate(lambda t: t, config=ExtensionConfig())
        assert value == pytest.approx(0.5)

    def test_scaled_interval_is_normalised(self):
        mu = IntervalMeasure(0, 4)
        assert mu.measure(Interval(0, 1)) == Fraction(1, 4)

    def test_average_over_null_interval_rejected(self):
        with pytest.raises(DomainError):
            lebesgue_unit().average(lambda t: 1, Fraction(1, 2), Fraction(1, 2))

    def test_degenerate_interval_measure_rejected(self):
        with pytest.raises(InvariantViolation):
            IntervalMeasure(1, 1)

    def test_abstract_measure_has_no_support(self):
        with pytest.raises(DomainError):
            list(CoordinateMeasure().candidates())


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestConfiguration:
    """ExtensionConfig defaults and strict environment parsing."""

    def test_defaults(self, monkeypatch):
        for name in ("KOLMOGOROV_HORIZON", "KOLMOGOROV_BISECTION_DEPTH", "KOLMOGOROV_MAX_CANDIDATES",
                     "KOLMOGOROV_TAIL_TOLERANCE", "KOLMOGOROV_QUAD_LIMIT", "KOLMOGOROV_PROJECTIVITY_DEPTH"):
            monkeypatch.delenv(name, raising=False)
        cfg = ExtensionConfig.from_env()
        assert cfg == ExtensionConfig()
        assert cfg.tolerance == pytest.approx(math.sqrt(cfg.eps))

    def test_horizon_from_env(self, monkeypatch):
        monkeypatch.setenv("KOLMOGOROV_HORIZON", "7")
        assert ExtensionConfig.from_env().horizon == 7

    def test_projectivity_depth_from_env(self, monkeypatch):
        monkeypatch.setenv("KOLMOGOROV_PROJECTIVITY_DEPTH", "5")
        assert ExtensionConfig.from_env().projectivity_depth == 5

    def test_projectivity_depth_must_be_positive(self):
        with pytest.raises(ValueError):
            ExtensionConfig(projectivity_depth=0)

    def test_tail_tolerance_from_env(self, monkeypatch):
        monkeypatch.setenv("KOLMOGOROV_TAIL_TOLERANCE", "1/1024")
        assert ExtensionConfig.from_env().tail_tolerance == Fraction(1, 1024)

    def test_invalid_env_value_raises(self, monkeypatch):
        monkeypatch.setenv("KOLMOGOROV_HORIZON", "many")
        with pytest.raises(ValueError):
            ExtensionConfig.from_env()

    def test_env_value_below_minimum_raises(self, monkeypatch):
        monkeypatch.setenv("KOLMOGOROV_HORIZON", "0")
        with pytest.raises(ValueError):
            ExtensionConfig.from_env()

    def test_invalid_field_raises(self):
        with pytest.raises(ValueError):
            ExtensionConfig(horizon=0)


# =============================================================================
# CERTIFICATE COMMITMENTS
# =============================================================================

class TestCommitments:

    def test_commitment_is_deterministic(self):
        a = sha256_hex_of_certificate({"b": [1, "x"], "a": Fraction(1, 3)})
        b = sha256_hex_of_certificate({"a": Fraction(1, 3), "b": [1, "x"]})
        assert a == b

    def test_float_payload_rejected(self):
        with pytest.raises(ExtensionError):
            sha256_hex_of_certificate({"value": 0.5})
