#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Projective limit check
======================
    (pi_S)_* measure_produit = mu_S          for every finite window S

  For each window S and test set A on S the pushforward value
  measure(cylinder(S, A)) is compared with the family marginal mu_S(A);
  the same A is also pulled back to every listed super-window T ⊇ S and
  compared there, so representation changes are covered as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from cylinder_algebra import Box, MeasurableSet, cylinder, reindex
from measure_backend import (
    DomainError,
    Extended,
    Everything,
    FiniteSet,
    Interval,
    InvariantViolation,
    ext_close,
    render_extended,
    sha256_hex_of_certificate,
)
from measurable_functions import Window, window
from outer_measure_extension import ProductMeasure
from projective_family import AtomicMarginal, ProjectiveFamily

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectiveLimitEntry:
    window: Tuple[int, ...]
    through: Tuple[int, ...]
    label: str
    pushforward: Extended
    marginal: Extended

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window": list(self.window),
            "through": list(self.through),
            "set": self.label,
            "pushforward": render_extended(self.pushforward),
            "marginal": render_extended(self.marginal),
        }


@dataclass(frozen=True)
class ProjectiveLimitCertificate:
    VERSION = "projective_limit/1"

    family: str
    entries: Tuple[ProjectiveLimitEntry, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "family": self.family,
            "checks": int(len(self.entries)),
            "entries": [e.to_dict() for e in self.entries],
        }

    @property
    def commitment(self) -> str:
        return sha256_hex_of_certificate(self.to_dict())


def canonical_test_sets(family: ProjectiveFamily, S: Iterable[int]) -> List[MeasurableSet]:
    """
    A few sets on S derived from the coordinate spaces: the whole window,
    and per coordinate either a single atom (enumerable spaces) or the left
    half (interval spaces).
    """
    S = window(S)
    out: List[MeasurableSet] = [Box(S)]
    if not S:
        return out
    if isinstance(family.marginal(S), AtomicMarginal):
        atoms = family.marginal(S).atoms
        for key in sorted(atoms, key=repr)[:2]:
            out.append(Box(S, {i: FiniteSet({v}) for i, v in zip(sorted(S), key)}))
        return out
    sides = {}
    for i in sorted(S):
        mu = family.coordinate(i)
        if mu.kind == "interval":
            sides[i] = Interval(mu.low, (mu.low + mu.high) / 2)
        elif mu.kind in ("finite", "countable"):
            value, _ = next(iter(mu.candidates()))
            sides[i] = FiniteSet({value})
        else:
            sides[i] = Everything()
    out.append(Box(S, sides))
    return out


def _label(A: MeasurableSet) -> str:
    if isinstance(A, Box):
        return "box(" + ", ".join(f"{i}:{type(side).__name__}" for i, side in A.sides) + ")"
    return type(A).__name__


def check_projective_limit(
    measure: ProductMeasure,
    windows: Iterable[Iterable[int]],
    test_sets: Optional[Mapping[Window, Sequence[MeasurableSet]]] = None,
    *,
    super_windows: Optional[Mapping[Window, Sequence[Iterable[int]]]] = None,
) -> ProjectiveLimitCertificate:
    if not isinstance(measure, ProductMeasure):
        raise DomainError(f"expected ProductMeasure, got {type(measure).__name__}")
    family = measure.family
    tol = measure.config.tolerance
    entries: List[ProjectiveLimitEntry] = []
    for S in windows:
        S = window(S)
        sets = (test_sets or {}).get(S)
        if sets is None:
            sets = canonical_test_sets(family, S)
        supers = [window(T) for T in (super_windows or {}).get(S, ())]
        mu_S = family.marginal(S)
        for A in sets:
            expected = mu_S.measure(A)
            for T in [S] + supers:
                if not S <= T:
                    raise DomainError(f"super-window {sorted(T)} does not contain {sorted(S)}")
                value = measure.measure(cylinder(T, reindex(S, A, T)))
                if not ext_close(value, expected, tol):
                    raise InvariantViolation(
                        f"projective limit fails on {sorted(S)} (through {sorted(T)}): "
                        f"pushforward {render_extended(value)} != marginal {render_extended(expected)}",
                        analysis={"window": sorted(S), "through": sorted(T), "set": _label(A)},
                    )
                entries.append(
                    ProjectiveLimitEntry(
                        window=tuple(sorted(S)),
                        through=tuple(sorted(T)),
                        label=_label(A),
                        pushforward=value,
                        marginal=expected,
                    )
                )
    if not entries:
        raise DomainError("check_projective_limit needs at least one window")
    logger.info("[Limit] projective limit verified: family=%r checks=%s", family, len(entries))
    return ProjectiveLimitCertificate(family=repr(family), entries=tuple(entries))
