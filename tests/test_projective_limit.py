"""
Tests for the projective limit check and the public surface.

These tests verify:
1. Pushforwards of measure_produit reproduce every marginal mu_S
2. Mismatches raise InvariantViolation
3. build() accepts coordinate measures, callables and families, and is idempotent
4. The smoke acceptance run is reproducible
"""

from fractions import Fraction

import pytest

import kolmogorov_extension
from content_function import ContentFunction
from cylinder_algebra import Box, CylinderSequence, box_cylinder
from kolmogorov_extension import build, project
from measure_backend import (
    INF,
    DomainError,
    ExtensionConfig,
    FiniteSet,
    Interval,
    InvariantViolation,
    fair_coin,
    geometric,
    lebesgue_unit,
)
from outer_measure_extension import ProductMeasure
from projective_family import ExplicitFamily, MarkovChainFamily, ProductFamily
from projective_limit import canonical_test_sets, check_projective_limit


CONFIG = ExtensionConfig(horizon=6)


class HalvedOffWindow(ContentFunction):
    """Halves every content except on the empty window."""

    def content(self, c):
        value = super().content(c)
        return value if not c.window else value / 2

    __call__ = content


# =============================================================================
# PROJECTIVE LIMIT
# =============================================================================

class TestProjectiveLimit:

    def test_lebesgue_limit(self):
        mu = build(ProductFamily.iid(lebesgue_unit(), config=CONFIG))
        cert = check_projective_limit(mu, [{0}, {0, 1}], super_windows={frozenset({0}): [{0, 2}]})
        assert len(cert.entries) == 6
        assert all(e.pushforward == e.marginal for e in cert.entries)

    def test_explicit_test_sets(self):
        mu = build(ProductFamily.iid(geometric(), config=CONFIG))
        sets = {frozenset({1}): [Box({1}, {1: Interval(2, INF)})]}
        cert = check_projective_limit(mu, [{1}], sets)
        assert cert.entries[0].marginal == Fraction(1, 4)

    def test_markov_limit(self):
        chain = MarkovChainFamily([0.25, 0.75], [[0.5, 0.5], [0.1, 0.9]], config=CONFIG)
        cert = check_projective_limit(build(chain), [{0}, {1, 3}], super_windows={frozenset({1, 3}): [{0, 1, 2, 3}]})
        assert cert.to_dict()["checks"] == len(cert.entries)

    def test_commitment_is_reproducible(self):
        mu = build(ProductFamily.iid(fair_coin(), config=CONFIG))
        a = check_projective_limit(mu, [{0, 1}])
        b = check_projective_limit(mu, [{0, 1}])
        assert a.commitment == b.commitment

    def test_mismatch_detected(self):
        family = ProductFamily.iid(fair_coin(), config=CONFIG)
        mu = ProductMeasure(HalvedOffWindow(family))
        with pytest.raises(InvariantViolation):
            check_projective_limit(mu, [{0}])

    def test_super_window_must_contain_window(self):
        mu = build(ProductFamily.iid(fair_coin(), config=CONFIG))
        with pytest.raises(DomainError):
            check_projective_limit(mu, [{0}], super_windows={frozenset({0}): [{1}]})

    def test_canonical_sets_on_countable_space(self):
        family = ProductFamily.iid(geometric(), config=CONFIG)
        sets = canonical_test_sets(family, {0, 2})
        assert sets[1].side(0) == FiniteSet({0})

    def test_needs_product_measure(self):
        with pytest.raises(DomainError):
            check_projective_limit("mu", [{0}])


# =============================================================================
# PUBLIC SURFACE
# =============================================================================

class TestBuild:

    def test_build_from_coordinate_measures(self):
        mu = build(fair_coin(), lebesgue_unit(), config=CONFIG)
        c = box_cylinder({0: FiniteSet({1}), 1: Interval(0, Fraction(1, 4))})
        assert mu(c) == Fraction(1, 8)

    def test_finite_family_has_no_later_coordinates(self):
        mu = build(fair_coin(), fair_coin(), config=CONFIG)
        with pytest.raises(DomainError):
            mu(box_cylinder({2: FiniteSet({0})}))

    def test_build_from_callable(self):
        mu = build(lambda n: fair_coin() if n % 2 == 0 else geometric(), config=CONFIG)
        assert mu(box_cylinder({1: Interval(1, INF), 2: FiniteSet({0})})) == Fraction(1, 4)

    def test_build_is_idempotent(self):
        family = ProductFamily.iid(geometric(), config=CONFIG)
        c = box_cylinder({0: Interval(3, INF), 4: FiniteSet({0, 1})})
        assert build(family)(c) == build(family)(c) == Fraction(1, 8) * Fraction(3, 4)

    def test_build_with_probes(self):
        family = ProductFamily.iid(geometric(), config=ExtensionConfig())
        probe = CylinderSequence(lambda N: box_cylinder({0: Interval(N, INF)}))
        mu = build(family, probes=[probe])
        assert mu.certificates[0].vanishes

    def test_inconsistent_family_not_extended(self):
        def law(S):
            if S == frozenset({0}):
                return {(0,): Fraction(1, 2), (1,): Fraction(1, 2)}
            return {tuple(0 for _ in S): Fraction(1)}

        with pytest.raises(InvariantViolation):
            build(ExplicitFamily(law, config=CONFIG))

    def test_build_needs_arguments(self):
        with pytest.raises(DomainError):
            build()
        with pytest.raises(DomainError):
            build(fair_coin(), "not a measure")

    def test_project(self):
        mu = build(fair_coin(), fair_coin(), config=CONFIG)
        assert project(mu, {1}).measure(Box({1}, {1: FiniteSet({0})})) == Fraction(1, 2)
        with pytest.raises(DomainError):
            project("mu", {0})

    def test_smoke_main(self):
        assert kolmogorov_extension.main() == 0
