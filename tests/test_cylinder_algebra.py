"""
Tests for windows, measurable functions and the cylinder algebra.

These tests verify:
1. Windows and partial assignments behave as finite index sets
2. Bare callables are never accepted as measurable
3. Cylinder membership only looks at the cylinder's window
4. reindex grows windows and never shrinks them
5. Boolean operations on cylinders stay cylinders
"""

from fractions import Fraction

import pytest

from cylinder_algebra import (
    Box,
    Cylinder,
    CylinderSequence,
    PredicateSet,
    box_cylinder,
    cylinder,
    reindex,
    same_cylinder,
    whole_space,
)
from measure_backend import (
    INF,
    CoordinatePredicate,
    DomainError,
    FiniteSet,
    Interval,
    MeasurabilityError,
)
from measurable_functions import (
    ConstantFunction,
    CoordinateIndicator,
    MeasurableCallable,
    ProductFunction,
    icc,
    prefix,
    require_measurable,
    restrict,
    update,
    window,
)


def zero_at(i: int) -> Cylinder:
    return box_cylinder({i: FiniteSet({0})})


# =============================================================================
# WINDOWS AND ASSIGNMENTS
# =============================================================================

class TestWindows:

    def test_window_spellings_agree(self):
        assert window(1, 2) == window([1, 2]) == window(frozenset({1, 2}))

    def test_negative_index_rejected(self):
        with pytest.raises(DomainError):
            window(-1)

    def test_icc_and_prefix(self):
        assert icc(2, 4) == frozenset({2, 3, 4})
        assert icc(3, 2) == frozenset()
        assert prefix(3) == icc(0, 2)

    def test_update_takes_window_from_y(self):
        assert update({0: "a", 1: "b"}, {1}, {1: "c"}) == {0: "a", 1: "c"}

    def test_update_missing_index_rejected(self):
        with pytest.raises(DomainError):
            update({0: "a"}, {1, 2}, {1: "c"})

    def test_restrict_list_point(self):
        assert restrict([5, 6, 7], {0, 2}) == {0: 5, 2: 7}

    def test_restrict_short_point_rejected(self):
        with pytest.raises(DomainError):
            restrict([5], {3})


# =============================================================================
# MEASURABLE FUNCTIONS
# =============================================================================

class TestMeasurableFunctions:

    def test_bare_callable_rejected(self):
        with pytest.raises(MeasurabilityError):
            require_measurable(lambda x: 1, context="test")

    def test_declared_callable_accepted(self):
        f = MeasurableCallable(lambda y: y[0] + y[1], window={0, 1}, label="sum")
        assert require_measurable(f, context="test") is f
        assert f({0: 1, 1: 2, 5: 9}) == 3

    def test_non_measurable_declaration_rejected(self):
        with pytest.raises(MeasurabilityError):
            MeasurableCallable(lambda y: 1, window={0}, measurable=False)

    def test_negative_evaluation_rejected(self):
        f = MeasurableCallable(lambda y: -1, window={0})
        with pytest.raises(MeasurabilityError):
            f({0: 0})

    def test_missing_coordinate_rejected(self):
        f = MeasurableCallable(lambda y: 1, window={3})
        with pytest.raises(DomainError):
            f({0: 0})

    def test_product_function(self):
        f = ProductFunction({0: CoordinateIndicator(FiniteSet({1})), 2: CoordinateIndicator(Interval(0, 1))},
                            scale=Fraction(1, 2))
        assert f.window == frozenset({0, 2})
        assert f.bound == Fraction(1, 2)
        assert f({0: 1, 1: 99, 2: Fraction(1, 3)}) == Fraction(1, 2)
        assert f({0: 0, 2: Fraction(1, 3)}) == 0
        assert f.breakpoints(1) == ()

    def test_constant_function(self):
        c = ConstantFunction(2)
        assert c.window == frozenset()
        assert c({}) == 2


# =============================================================================
# CYLINDERS
# =============================================================================

class TestCylinders:

    def test_membership_uses_window_only(self):
        c = cylinder({1}, Box({1}, {1: FiniteSet({0})}))
        assert [5, 0] in c
        assert [0, 1] not in c
        assert {1: 0} in c

    def test_bare_predicate_rejected(self):
        with pytest.raises(MeasurabilityError):
            cylinder({0}, lambda y: y[0] == 0)

    def test_predicate_set_accepted(self):
        c = cylinder({0, 1}, PredicateSet({0, 1}, lambda y: y[0] == y[1]))
        assert [3, 3] in c
        assert [3, 4] not in c

    def test_window_mismatch_rejected(self):
        with pytest.raises(DomainError):
            cylinder({0, 1}, Box({0}))

    def test_box_side_outside_window_rejected(self):
        with pytest.raises(DomainError):
            Box({0}, {1: FiniteSet({0})})

    def test_box_side_must_be_coordinate_set(self):
        with pytest.raises(MeasurabilityError):
            Box({0}, {0: lambda v: v == 0})
        Box({0}, {0: CoordinatePredicate(lambda v: v == 0, label="zero")})

    def test_reindex_grows_window(self):
        A = Box({0}, {0: FiniteSet({0})})
        B = reindex({0}, A, {0, 3})
        assert B.window == frozenset({0, 3})
        assert B.contains({0: 0, 3: 7})

    def test_reindex_shrink_rejected(self):
        with pytest.raises(DomainError):
            reindex({0, 1}, Box({0, 1}), {0})

    def test_same_cylinder_across_windows(self):
        c1 = zero_at(0)
        c2 = c1.reindex({0, 3})
        assert same_cylinder(c1, c2)
        assert not same_cylinder(c1, zero_at(1))

    def test_same_cylinder_with_full_sides(self):
        c1 = box_cylinder({0: FiniteSet({0}), 1: FiniteSet({0, 1})})
        c2 = zero_at(0)
        assert not same_cylinder(c1, c2)
        assert same_cylinder(c1, c2, covers=lambda i, side: side == FiniteSet({0, 1}))

    def test_intersection_of_boxes_is_box(self):
        meet = box_cylinder({0: Interval(0, 2)}) & box_cylinder({0: Interval(1, 3), 1: FiniteSet({0})})
        assert isinstance(meet.base, Box)
        assert meet.base.side(0) == Interval(1, 2)

    def test_union_and_difference(self):
        u = zero_at(0) | zero_at(1)
        assert [0, 1] in u and [1, 0] in u
        assert [1, 1] not in u
        d = zero_at(0) - zero_at(1)
        assert [0, 1] in d
        assert [0, 0] not in d

    def test_complement(self):
        c = zero_at(0).complement()
        assert [1] in c
        assert [0] not in c

    def test_whole_space_contains_everything(self):
        assert [] in whole_space()
        assert whole_space().max_index == -1

    def test_structural_inclusion(self):
        small = box_cylinder({0: Interval(3, INF)})
        big = box_cylinder({0: Interval(2, INF)})
        assert small.is_subset_of(big) is True
        assert big.is_subset_of(small) is False
        assert zero_at(0).is_subset_of(whole_space()) is True


# =============================================================================
# CYLINDER SEQUENCES
# =============================================================================

class TestCylinderSequence:

    def test_callable_terms_are_materialised_once(self):
        calls = []

        def term(n):
            calls.append(n)
            return box_cylinder({0: Interval(n, INF)})

        seq = CylinderSequence(term)
        assert len(seq.terms(3)) == 3
        assert len(seq.terms(2)) == 2
        assert calls == [0, 1, 2]

    def test_finite_generator(self):
        seq = CylinderSequence(zero_at(i) for i in range(2))
        assert len(seq.terms(5)) == 2

    def test_exhausted_within_horizon(self):
        assert CylinderSequence([zero_at(0), zero_at(0)]).exhausted_within(2)
        assert not CylinderSequence([zero_at(0), zero_at(0)]).exhausted_within(1)
        assert CylinderSequence(zero_at(i) for i in range(2)).exhausted_within(3)
        assert not CylinderSequence(zero_at).exhausted_within(4)

    def test_non_cylinder_term_rejected(self):
        with pytest.raises(DomainError):
            CylinderSequence([zero_at(0), "A_1"]).terms(2)
