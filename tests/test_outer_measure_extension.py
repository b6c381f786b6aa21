"""
Tests for the outer-measure extension (measure_produit).

These tests verify:
1. The extended measure agrees with content on cylinders
2. Countable additivity on a geometric partition (residuals vanish)
3. An incomplete partition is refuted by a witness in every residual
4. Over-additive contents and non-probabilities raise ExtensionError
5. Outer measure over supplied covers and monotone limits of unions
"""

from fractions import Fraction

import pytest

from content_function import ContentFunction
from cylinder_algebra import CylinderSequence, box_cylinder, whole_space
from measure_backend import (
    INF,
    DiscreteMeasure,
    DomainError,
    ExtensionConfig,
    ExtensionError,
    FiniteSet,
    Interval,
    InvariantViolation,
    fair_coin,
    geometric,
)
from measurable_functions import MeasurableCallable
from outer_measure_extension import OuterMeasureExtension, ProductMeasure
from projective_family import ProductFamily


def geometric_measure(horizon=32):
    family = ProductFamily.iid(geometric(), config=ExtensionConfig(horizon=horizon))
    return OuterMeasureExtension(ContentFunction(family)).extend()


def coin_measure(horizon=6):
    family = ProductFamily.iid(fair_coin(), config=ExtensionConfig(horizon=horizon))
    return OuterMeasureExtension(ContentFunction(family)).extend()


def atom(i):
    return box_cylinder({0: FiniteSet({i})})


def first_one_at(i):
    sides = {j: FiniteSet({0}) for j in range(i)}
    sides[i] = FiniteSet({1})
    return box_cylinder(sides)


class InflatedContent(ContentFunction):
    """Reports content 1 for one chosen cylinder."""

    def __init__(self, family, inflated):
        super().__init__(family)
        self.inflated = inflated

    def content(self, c):
        if c is self.inflated:
            return Fraction(1)
        return super().content(c)

    __call__ = content


class HalvedContent(ContentFunction):

    def content(self, c):
        return super().content(c) / 2

    __call__ = content


# =============================================================================
# AGREEMENT WITH CONTENT
# =============================================================================

class TestProductMeasure:

    def test_agrees_with_content(self):
        mu = geometric_measure()
        c = box_cylinder({0: Interval(2, INF), 3: FiniteSet({0})})
        assert mu(c) == mu.content(c) == Fraction(1, 8)

    def test_total_mass(self):
        assert coin_measure().total_mass() == 1

    def test_projection(self):
        mu = coin_measure()
        p = mu.project({0, 1})
        assert p.measure(atom(0).reindex({0, 1}).base) == Fraction(1, 2)
        f = MeasurableCallable(lambda y: y[0] * y[1], window={0, 1}, label="x0*x1")
        assert p.integrate(f) == Fraction(1, 4)

    def test_projection_rejects_foreign_integrand(self):
        p = coin_measure().project({0})
        with pytest.raises(DomainError):
            p.integrate(MeasurableCallable(lambda y: 1, window={1}))

    def test_probes_are_checked_on_release(self):
        family = ProductFamily.iid(geometric(), config=ExtensionConfig())
        tails = CylinderSequence(lambda N: box_cylinder({0: Interval(N, INF)}), claimed_empty=True)
        mu = OuterMeasureExtension(ContentFunction(family)).extend([tails])
        assert len(mu.certificates) == 1
        assert mu.certificates[0].vanishes

    def test_non_probability_content_rejected(self):
        family = ProductFamily.iid(fair_coin(), config=ExtensionConfig(horizon=4))
        with pytest.raises(ExtensionError):
            OuterMeasureExtension(HalvedContent(family)).extend()

    def test_extension_needs_content(self):
        with pytest.raises(TypeError):
            OuterMeasureExtension(ProductFamily.iid(fair_coin()))


# =============================================================================
# COUNTABLE ADDITIVITY
# =============================================================================

class TestCountableAdditivity:

    def test_geometric_partition(self):
        mu = geometric_measure()
        target = box_cylinder({0: Interval(0, INF)})
        cert = mu.verify_countable_additivity(target, (atom(i) for i in range(100)))
        assert cert.target_content == 1
        assert cert.partial_sums[0] == Fraction(1, 2)
        assert cert.residual == Fraction(1, 2 ** 32)
        assert cert.continuity.vanishes

    def test_exact_finite_partition(self):
        mu = coin_measure()
        cert = mu.verify_countable_additivity(whole_space(), [atom(0), atom(1)])
        assert cert.partial_sums == (Fraction(1, 2), 1)
        assert cert.residual == 0
        assert cert.continuity.vanishes
        assert cert.continuity.contents == (1, Fraction(1, 2), 0)

    def test_truncated_partition_not_certified(self):
        mu = geometric_measure(horizon=4)
        target = box_cylinder({0: Interval(0, INF)})
        with pytest.raises(ExtensionError):
            mu.verify_countable_additivity(target, (atom(i) for i in range(100)))

    def test_uncovered_point_detected(self):
        mu = coin_measure(horizon=6)
        with pytest.raises(InvariantViolation):
            mu.verify_countable_additivity(whole_space(), [first_one_at(i) for i in range(6)])

    def test_overlapping_pieces_rejected(self):
        mu = coin_measure()
        with pytest.raises(DomainError):
            mu.verify_countable_additivity(whole_space(), [atom(0), box_cylinder({1: FiniteSet({0})})])

    def test_piece_outside_target_rejected(self):
        mu = coin_measure()
        with pytest.raises(DomainError):
            mu.verify_countable_additivity(atom(0), [atom(1)])

    def test_over_additive_content_rejected(self):
        family = ProductFamily.iid(geometric(), config=ExtensionConfig(horizon=4))
        pieces = [atom(0), atom(1)]
        mu = ProductMeasure(InflatedContent(family, pieces[1]))
        target = box_cylinder({0: FiniteSet({0, 1})})
        with pytest.raises(ExtensionError):
            mu.verify_countable_additivity(target, pieces)


# =============================================================================
# UNIONS, DECREASING SEQUENCES, COVERS
# =============================================================================

class TestLimits:

    def test_union_of_atoms(self):
        mu = geometric_measure()
        assert mu.measure_of_union(atom(i) for i in range(1000)) == 1 - Fraction(1, 2 ** 32)

    def test_decreasing_tails(self):
        mu = geometric_measure(horizon=10)
        assert mu.measure_of_decreasing([box_cylinder({0: Interval(N, INF)}) for N in range(10)]) == Fraction(1, 2 ** 9)

    def test_outer_measure_takes_best_cover(self):
        mu = geometric_measure()
        target = box_cylinder({0: FiniteSet({0, 1})})
        covers = [[atom(0), atom(1), atom(2)], [atom(0), atom(1)]]
        assert mu.outer_measure(covers, target=target) == Fraction(3, 4)

    def test_outer_measure_rejects_non_cover(self):
        mu = geometric_measure()
        target = box_cylinder({0: FiniteSet({0, 1})})
        with pytest.raises(DomainError):
            mu.outer_measure([[atom(0)]], target=target)

    def test_outer_measure_needs_a_cover(self):
        with pytest.raises(DomainError):
            geometric_measure().outer_measure([])

    def test_unit_mass_coordinate_required(self):
        family = ProductFamily([DiscreteMeasure({0: Fraction(1, 2)})], config=ExtensionConfig(horizon=4))
        with pytest.raises(InvariantViolation):
            ProductMeasure(ContentFunction(family)).measure(atom(0))
