#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Cylinder algebra on prod_n X_n
==============================
  cylinder(S, A) = { x : x|_S in A },   A measurable in prod_{n in S} X_n

  Two representations (S, A) and (T, B) denote the same cylinder iff their
  pull-backs to S ∪ T coincide.  reindex(S, A, T) is that pull-back:
        reindex(S, A, T) = pi_{T->S}^{-1}(A)          (S ⊆ T)

  Boxes prod_{i in S} B_i are the semiring generators; intersections,
  unions, complements and differences of cylinders are again cylinders
  (over the union window).

Redlines:
  - reindex only grows a window; S ⊄ T raises DomainError.
  - A set whose window differs from the declared window raises DomainError.
  - A bare predicate is not a measurable set (MeasurabilityError).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from measure_backend import (
    CoordinateSet,
    DomainError,
    Everything,
    MeasurabilityError,
    coordinate_subset,
    merge_breakpoints,
)
from measurable_functions import (
    CoordinateIndicator,
    IndicatorFunction,
    MeasurableFunction,
    ProductFunction,
    Window,
    _as_index,
    restrict,
    window,
)


# ===========================================================
# Section 1: measurable sets of a finite window
# ===========================================================

class MeasurableSet:
    """Measurable subset of prod_{i in window} X_i; subclasses carry a `window` field."""

    def contains(self, x: Any) -> bool:
        raise NotImplementedError

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        if i not in self.window:
            return ()
        return None

    def indicator(self) -> MeasurableFunction:
        return IndicatorFunction(self)


@dataclass(frozen=True)
class Box(MeasurableSet):
    """prod_{i in window} B_i; unconstrained coordinates are omitted from `sides`."""

    window: Window
    sides: Tuple[Tuple[int, CoordinateSet], ...] = ()

    def __init__(self, S: Iterable[int], sides: Optional[Mapping[int, CoordinateSet]] = None):
        S = window(S)
        normalised: Dict[int, CoordinateSet] = {}
        for i, side in dict(sides or {}).items():
            i = _as_index(i)
            if i not in S:
                raise DomainError(f"Box: side {i} outside window {sorted(S)}")
            if not isinstance(side, CoordinateSet):
                raise MeasurabilityError(
                    f"Box: side {i} must be a CoordinateSet (wrap predicates in CoordinatePredicate), "
                    f"got {type(side).__name__}"
                )
            if not isinstance(side, Everything):
                normalised[i] = side
        object.__setattr__(self, "window", S)
        object.__setattr__(self, "sides", tuple(sorted(normalised.items())))

    def side(self, i: int) -> CoordinateSet:
        return dict(self.sides).get(i, Everything())

    def contains(self, x: Any) -> bool:
        return all(x[i] in side for i, side in self.sides)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        return self.side(i).breakpoints()

    def is_empty(self) -> bool:
        return any(side.is_empty() for _, side in self.sides)

    def indicator(self) -> MeasurableFunction:
        return ProductFunction({i: CoordinateIndicator(side) for i, side in self.sides})

    def meet(self, other: "Box") -> "Box":
        S = self.window | other.window
        sides = dict(self.sides)
        for i, side in other.sides:
            sides[i] = sides[i].intersect(side) if i in sides else side
        return Box(S, sides)


@dataclass(frozen=True)
class PredicateSet(MeasurableSet):
    """{y in prod_S X_i : predicate(y)}; measurability is declared by the caller."""

    window: Window
    predicate: Callable[[Dict[int, Any]], bool]
    grid: Optional[Tuple[Tuple[int, Tuple[Any, ...]], ...]] = None
    label: str = "predicate"

    def __init__(
        self,
        S: Iterable[int],
        predicate: Callable[[Dict[int, Any]], bool],
        *,
        measurable: bool = True,
        breakpoints: Optional[Mapping[int, Tuple[Any, ...]]] = None,
        label: str = "predicate",
    ):
        if not callable(predicate):
            raise MeasurabilityError(f"{label}: predicate must be callable")
        if not measurable:
            raise MeasurabilityError(f"{label}: set declared non-measurable")
        object.__setattr__(self, "window", window(S))
        object.__setattr__(self, "predicate", predicate)
        object.__setattr__(
            self, "grid", tuple(sorted((int(i), tuple(b)) for i, b in breakpoints.items())) if breakpoints else None
        )
        object.__setattr__(self, "label", label)

    def contains(self, x: Any) -> bool:
        return bool(self.predicate(restrict(x, self.window)))

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        if i not in self.window:
            return ()
        if self.grid is None:
            return None
        return dict(self.grid).get(i, ())


@dataclass(frozen=True)
class PreimageSet(MeasurableSet):
    """pi_{T->S}^{-1}(base) for base on S ⊆ T."""

    base: MeasurableSet
    window: Window

    def contains(self, x: Any) -> bool:
        return self.base.contains(x)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        return self.base.breakpoints(i)


@dataclass(frozen=True)
class IntersectionSet(MeasurableSet):
    parts: Tuple[MeasurableSet, ...]
    window: Window

    def contains(self, x: Any) -> bool:
        return all(p.contains(x) for p in self.parts)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        return merge_breakpoints(p.breakpoints(i) for p in self.parts)


@dataclass(frozen=True)
class UnionSet(MeasurableSet):
    parts: Tuple[MeasurableSet, ...]
    window: Window

    def contains(self, x: Any) -> bool:
        return any(p.contains(x) for p in self.parts)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        return merge_breakpoints(p.breakpoints(i) for p in self.parts)


@dataclass(frozen=True)
class ComplementSet(MeasurableSet):
    base: MeasurableSet
    window: Window

    def contains(self, x: Any) -> bool:
        return not self.base.contains(x)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        return self.base.breakpoints(i)


def reindex(S: Iterable[int], A: MeasurableSet, T: Iterable[int]) -> MeasurableSet:
    """Rewrite A (on S) over the larger window T; cylinder(S, A) == cylinder(T, result)."""
    S, T = window(S), window(T)
    _require_set(A, S, context="reindex")
    if not S <= T:
        raise DomainError(f"reindex must grow the window: {sorted(S)} is not a subset of {sorted(T)}")
    if S == T:
        return A
    if isinstance(A, Box):
        return Box(T, dict(A.sides))
    if isinstance(A, PreimageSet):
        return PreimageSet(A.base, T)
    return PreimageSet(A, T)


def _require_set(A: Any, S: Window, *, context: str) -> MeasurableSet:
    if not isinstance(A, MeasurableSet):
        if callable(A):
            raise MeasurabilityError(
                f"{context}: a bare predicate is not a measurable set; use PredicateSet(S, predicate)"
            )
        raise MeasurabilityError(f"{context}: expected MeasurableSet, got {type(A).__name__}")
    if A.window != S:
        raise DomainError(f"{context}: set lives on window {sorted(A.window)}, not on {sorted(S)}")
    return A


# ===========================================================
# Section 2: cylinders
# ===========================================================

@dataclass(frozen=True)
class Cylinder:
    """The set of full points whose restriction to `window` lies in `base`."""

    window: Window
    base: MeasurableSet

    def __contains__(self, point: Any) -> bool:
        return self.base.contains(restrict(point, self.window))

    @property
    def max_index(self) -> int:
        return max(self.window, default=-1)

    def indicator(self) -> MeasurableFunction:
        return self.base.indicator()

    def reindex(self, T: Iterable[int]) -> "Cylinder":
        T = window(T)
        return Cylinder(T, reindex(self.window, self.base, T))

    def _common(self, other: "Cylinder") -> Tuple[Window, MeasurableSet, MeasurableSet]:
        if not isinstance(other, Cylinder):
            raise DomainError(f"expected Cylinder, got {type(other).__name__}")
        U = self.window | other.window
        return U, reindex(self.window, self.base, U), reindex(other.window, other.base, U)

    def __and__(self, other: "Cylinder") -> "Cylinder":
        U, a, b = self._common(other)
        if isinstance(a, Box) and isinstance(b, Box):
            return Cylinder(U, a.meet(b))
        return Cylinder(U, IntersectionSet((a, b), U))

    def __or__(self, other: "Cylinder") -> "Cylinder":
        U, a, b = self._common(other)
        return Cylinder(U, UnionSet((a, b), U))

    def complement(self) -> "Cylinder":
        return Cylinder(self.window, ComplementSet(self.base, self.window))

    def __sub__(self, other: "Cylinder") -> "Cylinder":
        return self & other.complement()

    def is_subset_of(self, other: "Cylinder") -> Optional[bool]:
        """Structural inclusion for boxes; None when it can only be decided by measure."""
        U, a, b = self._common(other)
        if not (isinstance(a, Box) and isinstance(b, Box)):
            return None
        if a.is_empty():
            return True
        verdicts = [coordinate_subset(a.side(i), side) for i, side in b.sides]
        if all(v is True for v in verdicts):
            return True
        if any(v is False for v in verdicts):
            return False
        return None


def cylinder(S: Iterable[int], A: MeasurableSet) -> Cylinder:
    S = window(S)
    return Cylinder(S, _require_set(A, S, context="cylinder"))


def whole_space() -> Cylinder:
    return Cylinder(frozenset(), Box(()))


def box_cylinder(sides: Mapping[int, CoordinateSet], S: Optional[Iterable[int]] = None) -> Cylinder:
    """Cylinder of a box; the window defaults to the constrained coordinates."""
    S = window(S) if S is not None else window(sides.keys())
    return Cylinder(S, Box(S, sides))


def _unwrap(A: MeasurableSet) -> MeasurableSet:
    while isinstance(A, PreimageSet):
        A = A.base
    return A


def same_cylinder(
    c1: Cylinder,
    c2: Cylinder,
    *,
    covers: Optional[Callable[[int, CoordinateSet], bool]] = None,
) -> bool:
    """
    Decide whether two representations denote the same cylinder by pulling
    both back to the common window.  Decided structurally for boxes and for
    reindexings of one and the same set; anything else raises DomainError.

    Without `covers` box sides are compared syntactically.  `covers(i, side)`
    reports that side contains all of X_i; such sides count as unconstrained.
    """
    U, a, b = c1._common(c2)
    if isinstance(a, Box) and isinstance(b, Box):
        if a.is_empty() or b.is_empty():
            return a.is_empty() and b.is_empty()
        if covers is not None:
            a, b = (Box(U, {i: s for i, s in box.sides if not covers(i, s)}) for box in (a, b))
        return a.sides == b.sides
    if _unwrap(a) is _unwrap(b) or _unwrap(a) == _unwrap(b):
        return True
    raise DomainError("cylinder equality is only decided structurally for boxes and reindexed sets")


# ===========================================================
# Section 3: decreasing cylinder sequences
# ===========================================================

class CylinderSequence:
    """
    A_0 ⊇ A_1 ⊇ ...  given as a list, an iterator or a callable n -> A_n.

    Terms are materialised on demand, once, in order; only a finite horizon
    is ever inspected.  `claimed_empty` records that the caller asserts
    ⋂ A_n = ∅.
    """

    def __init__(
        self,
        terms: Union[Sequence[Cylinder], Iterable[Cylinder], Callable[[int], Cylinder]],
        *,
        claimed_empty: bool = False,
        label: str = "sequence",
    ):
        self._cache: List[Cylinder] = []
        self._finite: Optional[int] = None
        self._source: Optional[Callable[[int], Cylinder]] = None
        self._iter: Optional[Iterator[Cylinder]] = None
        if isinstance(terms, Sequence):
            self._cache = list(terms)
            self._finite = len(self._cache)
        elif callable(terms):
            self._source = terms
        else:
            self._iter = iter(terms)
        self.claimed_empty = bool(claimed_empty)
        self.label = label

    def _check(self, n: int, c: Any) -> Cylinder:
        if not isinstance(c, Cylinder):
            raise DomainError(f"{self.label}[{n}] is not a Cylinder ({type(c).__name__})")
        return c

    def terms(self, horizon: int) -> List[Cylinder]:
        while len(self._cache) < horizon:
            n = len(self._cache)
            if self._source is not None:
                c = self._source(n)
            elif self._iter is not None:
                try:
                    c = next(self._iter)
                except StopIteration:
                    self._finite = n
                    self._iter = None
                    break
            else:
                break
            self._cache.append(self._check(n, c))
        return [self._check(n, c) for n, c in enumerate(self._cache[:horizon])]

    def exhausted_within(self, horizon: int) -> bool:
        """True when the sequence is finite and all of its terms lie below `horizon`."""
        self.terms(horizon)
        return self._finite is not None and self._finite <= horizon
