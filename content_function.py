#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Content of cylinders
====================
    content(cylinder(S, A)) = mu_S(A)

  Well defined because the family is projective:
    content(cylinder(S, A)) = content(cylinder(T, reindex(S, A, T)))
  Finitely additive on disjoint cylinders (reindex both onto S ∪ T, then use
  additivity of mu_{S ∪ T}).  Countable additivity is not assumed here; it
  is what the witness extractor establishes.
"""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import List, Optional

from cylinder_algebra import Box, Cylinder, CylinderSequence, same_cylinder, whole_space
from marginalizer import Marginalizer
from measure_backend import (
    INF,
    CoordinateSet,
    DomainError,
    Extended,
    ExtensionConfig,
    Interval,
    InvariantViolation,
    coordinate_subset,
    ext_add,
    ext_close,
    render_extended,
    resolve_config,
)
from projective_family import ProjectiveFamily

logger = logging.getLogger(__name__)


class ContentFunction:
    def __init__(self, family: ProjectiveFamily, *, config: Optional[ExtensionConfig] = None):
        if not isinstance(family, ProjectiveFamily):
            raise TypeError(f"family must be a ProjectiveFamily, got {type(family).__name__}")
        self.family = family
        self.config = resolve_config(config) if config is not None else family.config
        self.marginalizer = Marginalizer(family, config=self.config)

    def content(self, c: Cylinder) -> Extended:
        if not isinstance(c, Cylinder):
            raise DomainError(f"content is defined on cylinders, got {type(c).__name__}")
        return self.family.marginal(c.window).measure(c.base)

    __call__ = content

    def via_marginal(self, c: Cylinder) -> Extended:
        """marginal(S, 1_A) evaluated anywhere: the same number as content(c)."""
        return self.marginalizer.marginal(c.window, c.indicator())({})

    def normalisation(self) -> Extended:
        total = self.content(whole_space())
        if not ext_close(total, Fraction(1), self.config.tolerance):
            raise InvariantViolation(f"content of the whole space is {render_extended(total)}, expected 1")
        return total

    def is_null(self, c: Cylinder) -> bool:
        return self.content(c) <= self.config.tolerance

    def disjoint(self, c1: Cylinder, c2: Cylinder) -> bool:
        meet = c1 & c2
        if isinstance(meet.base, Box) and meet.base.is_empty():
            return True
        return self.is_null(meet)

    def check_finite_additivity(self, c1: Cylinder, c2: Cylinder) -> Extended:
        if not self.disjoint(c1, c2):
            raise DomainError("finite additivity is stated for disjoint cylinders")
        union = self.content(c1 | c2)
        total = ext_add(self.content(c1), self.content(c2))
        if not ext_close(union, total, self.config.tolerance):
            raise InvariantViolation(
                f"content is not additive: content(c1 ∪ c2) = {render_extended(union)} "
                f"!= {render_extended(total)}"
            )
        return union

    def covers_coordinate(self, i: int, side: CoordinateSet) -> bool:
        """side ⊇ X_i, decided from the support of the i-th coordinate law."""
        mu = self.family.coordinate(i)
        if mu.kind == "finite":
            return all(v in side for v, _ in mu.candidates())
        if mu.kind == "interval":
            return coordinate_subset(Interval(mu.low, mu.high), side) is True
        if mu.kind == "countable":
            return coordinate_subset(Interval(0, INF), side) is True
        return False

    def check_representation(self, c1: Cylinder, c2: Cylinder) -> Extended:
        """Two representations of one cylinder must carry the same content."""
        if not same_cylinder(c1, c2, covers=self.covers_coordinate):
            raise DomainError("the two cylinders are different sets")
        a, b = self.content(c1), self.content(c2)
        if not ext_close(a, b, self.config.tolerance):
            raise InvariantViolation(
                f"content depends on the representation: {render_extended(a)} != {render_extended(b)}",
                analysis={"windows": [sorted(c1.window), sorted(c2.window)]},
            )
        return a

    def check_antitone(self, sequence: CylinderSequence, horizon: Optional[int] = None) -> List[Extended]:
        """
        Check A_{n+1} ⊆ A_n (structurally, else up to a null set) and return
        content(A_n) for the inspected terms.
        """
        horizon = horizon or self.config.horizon
        terms = sequence.terms(horizon)
        contents: List[Extended] = []
        for n, c in enumerate(terms):
            contents.append(self.content(c))
            if n == 0:
                continue
            prev = terms[n - 1]
            if c.is_subset_of(prev) is True:
                continue
            excess = self.content(c - prev)
            if excess > self.config.tolerance:
                raise InvariantViolation(
                    f"{sequence.label} is not decreasing at n={n}: content(A_n \\ A_(n-1)) = {render_extended(excess)}",
                    analysis={"n": n, "excess": render_extended(excess)},
                )
        logger.debug("[Content] %s antitone over %s terms, last=%s", sequence.label, len(contents),
                     render_extended(contents[-1]) if contents else "-")
        return contents
