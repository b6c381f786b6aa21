#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Windows and non-negative measurable functions on the countable product
=====================================================================
  A window is a finite set of indices.  A measurable function here always
  depends on finitely many coordinates (its window) and is evaluated on a
  partial assignment {index: value} covering that window.

  Every function may declare, per coordinate, the breakpoints of a product
  grid on whose cells it is constant.  Marginalising preserves that grid, so
  indicators of boxes and of their boolean combinations integrate exactly.

Redlines:
  - A bare callable is never accepted as measurable: it has to be wrapped in
    MeasurableCallable (explicit declaration) or built from measurable sets.
  - Evaluation outside [0, inf] raises MeasurabilityError.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from measure_backend import (
    INF,
    CoordinateSet,
    DomainError,
    Extended,
    MeasurabilityError,
    as_extended,
    ext_mul,
)

Window = FrozenSet[int]


# ===========================================================
# Section 1: windows
# ===========================================================

def _as_index(i: Any) -> int:
    if isinstance(i, bool) or not isinstance(i, int):
        raise DomainError(f"index must be a non-negative int, got {i!r}")
    if i < 0:
        raise DomainError(f"index must be non-negative, got {i}")
    return int(i)


def window(*indices: Any) -> Window:
    """window(1, 2), window([1, 2]) and window(frozenset({1, 2})) are the same window."""
    if len(indices) == 1 and not isinstance(indices[0], int):
        indices = tuple(indices[0])
    return frozenset(_as_index(i) for i in indices)


def icc(a: int, b: int) -> Window:
    """Closed index interval {a, ..., b}; empty when b < a."""
    a = _as_index(a)
    if b < a:
        return frozenset()
    return frozenset(range(a, int(b) + 1))


def prefix(n: int) -> Window:
    """{0, ..., n-1}."""
    return frozenset(range(_as_index(n)))


def update(x: Mapping[int, Any], S: Iterable[int], y: Mapping[int, Any]) -> Dict[int, Any]:
    """Coordinates of S taken from y, every other coordinate from x."""
    S = window(S)
    out = {i: v for i, v in x.items() if i not in S}
    for i in S:
        if i not in y:
            raise DomainError(f"update: assignment for window {sorted(S)} misses index {i}")
        out[i] = y[i]
    return out


def restrict(x: Any, S: Iterable[int]) -> Dict[int, Any]:
    """Partial assignment of x on S; x is a Mapping or any int-indexable full point."""
    out: Dict[int, Any] = {}
    for i in sorted(window(S)):
        try:
            out[i] = x[i]
        except (KeyError, IndexError) as e:
            raise DomainError(f"point has no coordinate {i}") from e
    return out


# ===========================================================
# Section 2: measurable functions
# ===========================================================

class MeasurableFunction:
    """Non-negative measurable function depending on the coordinates in `window`."""

    window: Window = frozenset()
    bound: Extended = INF

    def __call__(self, x: Mapping[int, Any]) -> Extended:
        value = self._evaluate(x)
        return as_extended(value, context=f"{type(self).__name__} on window {sorted(self.window)}")

    def _evaluate(self, x: Mapping[int, Any]) -> Any:
        raise NotImplementedError

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        """Grid breakpoints along coordinate i; () when independent of i, None when unknown."""
        if i not in self.window:
            return ()
        return None

    def _arg(self, x: Mapping[int, Any], i: int) -> Any:
        try:
            return x[i]
        except (KeyError, IndexError) as e:
            raise DomainError(f"{type(self).__name__}: missing coordinate {i}") from e


def require_measurable(f: Any, *, context: str) -> MeasurableFunction:
    if isinstance(f, MeasurableFunction):
        return f
    if callable(f):
        raise MeasurabilityError(
            f"{context}: {getattr(f, '__name__', type(f).__name__)} is not a declared measurable "
            f"function; wrap it in MeasurableCallable(fn, window=...)"
        )
    raise MeasurabilityError(f"{context}: expected MeasurableFunction, got {type(f).__name__}")


class ConstantFunction(MeasurableFunction):
    def __init__(self, value: Any):
        self.value = as_extended(value, context="ConstantFunction")
        self.window = frozenset()
        self.bound = self.value

    def __repr__(self) -> str:
        return f"ConstantFunction({self.value})"

    def _evaluate(self, x: Mapping[int, Any]) -> Any:
        return self.value


class CoordinateIndicator:
    """1_B on a single coordinate."""

    def __init__(self, coordinate_set: CoordinateSet):
        self.coordinate_set = coordinate_set

    def __call__(self, v: Any) -> Fraction:
        return Fraction(1) if v in self.coordinate_set else Fraction(0)

    def breakpoints(self) -> Optional[Tuple[Any, ...]]:
        return self.coordinate_set.breakpoints()


class ProductFunction(MeasurableFunction):
    """
    scale * prod_i g_i(x_i)   (one factor per coordinate)

    Indicators of boxes are ProductFunctions; over a product family they are
    integrated factor by factor (Fubini) instead of coordinate by coordinate.
    """

    def __init__(self, factors: Mapping[int, Any], *, scale: Any = Fraction(1), bound: Any = None):
        self.factors: Dict[int, Any] = {_as_index(i): g for i, g in factors.items()}
        for i, g in self.factors.items():
            if not callable(g):
                raise MeasurabilityError(f"ProductFunction: factor {i} is not callable")
        self.scale = as_extended(scale, context="ProductFunction.scale")
        self.window = frozenset(self.factors)
        if bound is None:
            bound = self.scale if all(isinstance(g, CoordinateIndicator) for g in self.factors.values()) else INF
        self.bound = as_extended(bound, context="ProductFunction.bound")

    def __repr__(self) -> str:
        return f"ProductFunction(window={sorted(self.window)}, scale={self.scale})"

    def _evaluate(self, x: Mapping[int, Any]) -> Any:
        value = self.scale
        for i in sorted(self.factors):
            if value == 0:
                break
            value = ext_mul(value, as_extended(self.factors[i](self._arg(x, i)), context=f"factor {i}"))
        return value

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        g = self.factors.get(i)
        if g is None:
            return ()
        bp = getattr(g, "breakpoints", None)
        return bp() if callable(bp) else None


class IndicatorFunction(MeasurableFunction):
    """1_A for a measurable set A of some window."""

    def __init__(self, measurable_set: Any):
        self.measurable_set = measurable_set
        self.window = frozenset(measurable_set.window)
        self.bound = Fraction(1)

    def __repr__(self) -> str:
        return f"IndicatorFunction({self.measurable_set!r})"

    def _evaluate(self, x: Mapping[int, Any]) -> Any:
        return Fraction(1) if self.measurable_set.contains(x) else Fraction(0)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        return self.measurable_set.breakpoints(i)


class MeasurableCallable(MeasurableFunction):
    """
    Caller-declared measurable function of the coordinates in `window`.

    fn receives the partial assignment {i: x_i for i in window}.
    """

    def __init__(
        self,
        fn: Callable[[Dict[int, Any]], Any],
        *,
        window: Iterable[int],
        bound: Any = INF,
        breakpoints: Optional[Mapping[int, Tuple[Any, ...]]] = None,
        measurable: bool = True,
        label: str = "callable",
    ):
        if not callable(fn):
            raise MeasurabilityError(f"{label}: fn must be callable")
        if not measurable:
            raise MeasurabilityError(f"{label}: function declared non-measurable")
        self.fn = fn
        self.window = frozenset(_as_index(i) for i in window)
        self.bound = as_extended(bound, context=f"{label}.bound")
        self._breakpoints = dict(breakpoints) if breakpoints is not None else None
        self.label = label

    def __repr__(self) -> str:
        return f"MeasurableCallable({self.label}, window={sorted(self.window)})"

    def _evaluate(self, x: Mapping[int, Any]) -> Any:
        return self.fn({i: self._arg(x, i) for i in sorted(self.window)})

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        if i not in self.window:
            return ()
        if self._breakpoints is None:
            return None
        return self._breakpoints.get(i)
