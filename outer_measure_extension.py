#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Outer-measure extension of the cylinder content (measure_produit)
=================================================================
  content is finitely additive on the cylinder semiring and continuous at ∅
  (witness_extractor.continuity_at_empty), hence sigma-additive; the
  Carathéodory outer measure

      mu*(E) = inf { sum_i content(C_i) : E ⊆ ⋃_i C_i,  C_i cylinders }

  then restricts to a probability measure on the product sigma-algebra that
  agrees with content on cylinders.  ProductMeasure evaluates that measure
  on cylinders, on countable unions / decreasing intersections of cylinders
  and on explicitly supplied covers.

Redlines:
  - a cover sum below the content of a covered cylinder, or a partition
    whose partial sums overshoot the target, is an ExtensionError (the
    content would not be sigma-subadditive / additive).
  - probes passed to extend() are continuity-checked before the measure is
    released.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from content_function import ContentFunction
from cylinder_algebra import Cylinder, CylinderSequence, MeasurableSet, cylinder, whole_space
from measure_backend import (
    DomainError,
    Extended,
    ExtensionError,
    InvariantViolation,
    ext_add,
    ext_close,
    ext_min,
    ext_sum,
    render_extended,
    sha256_hex_of_certificate,
)
from measurable_functions import prefix, require_measurable, window
from projective_family import validate_projectivity
from witness_extractor import ContinuityCertificate, continuity_at_empty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdditivityCertificate:
    VERSION = "additivity/1"

    target_content: Extended
    partial_sums: Tuple[Extended, ...]
    continuity: ContinuityCertificate

    @property
    def residual(self) -> Extended:
        return self.target_content - self.partial_sums[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "target_content": render_extended(self.target_content),
            "partial_sums": [render_extended(s) for s in self.partial_sums],
            "residual": render_extended(self.residual),
            "continuity": self.continuity.to_dict(),
        }

    @property
    def commitment(self) -> str:
        return sha256_hex_of_certificate(self.to_dict())


class ProjectedMeasure:
    """Pushforward of the product measure onto the finite window S."""

    def __init__(self, parent: "ProductMeasure", S: Iterable[int]):
        self.parent = parent
        self.window = window(S)

    def __repr__(self) -> str:
        return f"ProjectedMeasure({sorted(self.window)})"

    def measure(self, A: MeasurableSet) -> Extended:
        return self.parent.measure(cylinder(self.window, A))

    def integrate(self, f: Any) -> Extended:
        f = require_measurable(f, context="ProjectedMeasure.integrate")
        if not f.window <= self.window:
            raise DomainError(f"integrand depends on {sorted(f.window)}, outside window {sorted(self.window)}")
        return self.parent.content.marginalizer.integral(f)


class ProductMeasure:
    """measure_produit on prod_n X_n."""

    def __init__(
        self,
        content: ContentFunction,
        *,
        certificates: Sequence[ContinuityCertificate] = (),
    ):
        self.content = content
        self.family = content.family
        self.config = content.config
        self.certificates = tuple(certificates)

    def __repr__(self) -> str:
        return f"ProductMeasure({self.family!r})"

    def measure(self, c: Cylinder) -> Extended:
        return self.content(c)

    __call__ = measure

    def total_mass(self) -> Extended:
        return self.content(whole_space())

    def project(self, S: Iterable[int]) -> ProjectedMeasure:
        return ProjectedMeasure(self, S)

    def _horizon(self, cylinders: Iterable[Cylinder]) -> List[Cylinder]:
        terms = list(itertools.islice(iter(cylinders), self.config.horizon))
        for n, c in enumerate(terms):
            if not isinstance(c, Cylinder):
                raise DomainError(f"term {n} is not a Cylinder ({type(c).__name__})")
        if not terms:
            raise DomainError("empty family of cylinders")
        return terms

    def measure_of_union(self, cylinders: Iterable[Cylinder]) -> Extended:
        """mu(⋃ C_i) as the monotone limit of content(C_0 ∪ ... ∪ C_n)."""
        tol = self.config.tolerance
        acc: Optional[Cylinder] = None
        previous: Extended = Fraction(0)
        for c in self._horizon(cylinders):
            acc = c if acc is None else acc | c
            value = self.content(acc)
            if value < previous - tol:
                raise ExtensionError(
                    f"content of growing unions decreased: {render_extended(previous)} -> {render_extended(value)}"
                )
            previous = value
        return previous

    def measure_of_decreasing(self, cylinders: Iterable[Cylinder]) -> Extended:
        """mu(⋂ A_n) = lim content(A_n) for decreasing A_n (finite measure)."""
        seq = cylinders if isinstance(cylinders, CylinderSequence) else CylinderSequence(self._horizon(cylinders))
        contents = self.content.check_antitone(seq, self.config.horizon)
        return contents[-1]

    def outer_measure(self, covers: Iterable[Iterable[Cylinder]], *, target: Optional[Cylinder] = None) -> Extended:
        """
        inf over the supplied covers of sum_i content(C_i).  When `target` is
        a cylinder the infimum may not drop below content(target).
        """
        tol = self.config.tolerance
        sums: List[Extended] = []
        for cover in covers:
            pieces = self._horizon(cover)
            if target is not None:
                uncovered = self.content(target - self._union(pieces))
                if uncovered > tol:
                    raise DomainError(f"cover misses a set of content {render_extended(uncovered)} of the target")
            sums.append(ext_sum(self.content(c) for c in pieces))
        if not sums:
            raise DomainError("outer_measure needs at least one cover")
        best = ext_min(sums)
        if target is not None:
            t = self.content(target)
            if best < t - tol:
                raise ExtensionError(
                    f"content is not sigma-subadditive: cover sum {render_extended(best)} < {render_extended(t)}"
                )
        return best

    @staticmethod
    def _union(pieces: Sequence[Cylinder]) -> Cylinder:
        acc = pieces[0]
        for c in pieces[1:]:
            acc = acc | c
        return acc

    def verify_countable_additivity(self, target: Cylinder, pieces: Iterable[Cylinder]) -> AdditivityCertificate:
        """
        content(target) = sum_i content(P_i) for disjoint P_i with ⋃ P_i = target.

        Uses continuity at ∅ on the residuals R_n = target \\ (P_0 ∪ ... ∪ P_{n-1}),
        n = 0..m, which decrease to ∅ exactly when the pieces cover the target.
        A residual that keeps positive content is a refuting witness only when
        all pieces fit within the horizon.
        """
        tol = self.config.tolerance
        supplied = list(itertools.islice(iter(pieces), self.config.horizon + 1))
        complete = len(supplied) <= self.config.horizon
        pieces = self._horizon(supplied)
        t = self.content(target)
        for i, p in enumerate(pieces):
            if not self.content.is_null(p - target):
                raise DomainError(f"piece {i} is not contained in the target")
            for j in range(i):
                if not self.content.disjoint(pieces[j], p):
                    raise DomainError(f"pieces {j} and {i} overlap")

        partial: List[Extended] = []
        running: Extended = Fraction(0)
        for i, p in enumerate(pieces):
            running = ext_add(running, self.content(p))
            if running > t + tol:
                raise ExtensionError(
                    f"partial sum {render_extended(running)} of {i + 1} disjoint pieces exceeds "
                    f"content(target) = {render_extended(t)}"
                )
            partial.append(running)

        residuals = [target]
        acc: Optional[Cylinder] = None
        for p in pieces:
            acc = p if acc is None else acc | p
            residuals.append(target - acc)
        # a truncated family of pieces only determines a prefix of the residuals
        cert = continuity_at_empty(
            self.family,
            CylinderSequence(residuals if complete else iter(residuals), label="residuals"),
            content=self.content,
            config=replace(self.config, horizon=len(residuals)),
        )
        if cert.witness is not None:
            raise InvariantViolation(
                f"pieces do not cover the target: {cert.witness!r} lies in every residual",
                analysis={"witness": [repr(z) for z in cert.witness]},
            )
        if not cert.vanishes:
            raise ExtensionError(
                f"residual content {render_extended(cert.epsilon)} after {len(pieces)} pieces does not vanish; "
                f"countable additivity is not certified within the horizon"
            )
        last_residual = cert.contents[-1]
        expected = t - partial[-1]
        if not ext_close(last_residual, expected, tol):
            raise ExtensionError(
                f"residual content {render_extended(last_residual)} != content(target) - partial sum "
                f"{render_extended(expected)}"
            )
        logger.info(
            "[Extension] countable additivity: target=%s sum=%s pieces=%s",
            render_extended(t), render_extended(partial[-1]), len(pieces),
        )
        return AdditivityCertificate(target_content=t, partial_sums=tuple(partial), continuity=cert)


class OuterMeasureExtension:
    def __init__(self, content: ContentFunction):
        if not isinstance(content, ContentFunction):
            raise TypeError(f"content must be a ContentFunction, got {type(content).__name__}")
        self.content = content

    def extend(self, probes: Iterable[Any] = ()) -> ProductMeasure:
        """
        Release measure_produit once the content is normalised and every probe
        (a decreasing cylinder sequence) passes the continuity check.
        """
        cfg = self.content.config
        try:
            self.content.normalisation()
        except InvariantViolation as e:
            raise ExtensionError(f"cannot extend a content that is not a probability: {e}") from e
        family = self.content.family
        if not family.is_product:
            validate_projectivity(family, [(prefix(n), prefix(n + 1)) for n in range(cfg.projectivity_depth)])
        certificates: List[ContinuityCertificate] = []
        for probe in probes:
            seq = probe if isinstance(probe, CylinderSequence) else CylinderSequence(probe, label="probe")
            certificates.append(continuity_at_empty(self.content.family, seq, content=self.content, config=cfg))
        logger.info(
            "[Extension] measure_produit released: family=%r probes=%s",
            self.content.family, len(certificates),
        )
        return ProductMeasure(self.content, certificates=certificates)
