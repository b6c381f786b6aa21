#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Measure backend for countable product spaces
=============================================
  Coordinate spaces X_n and their probability measures mu_n, the extended
  non-negative reals [0, inf] and the numerical integral operator used by
  every other layer (cylinders, content, marginalisation, witness search).

Core conventions:
    extended value : Fraction (exact) | float (quadrature) | math.inf
    inf + x = inf,  inf * 0 = 0        (saturating, never raises)

    integral of a piecewise-constant integrand (declared via breakpoints)
    is computed cell by cell, exactly:
        int g dmu = sum_cells mu(cell) * g(representative(cell))
    anything else falls back to scipy.integrate.quad (intervals) or to a
    truncated sum whose dropped tail mass is <= tail_tolerance (counting
    spaces).

Redlines:
  - Precondition failures raise immediately (DomainError,
    MeasurabilityError, InvariantViolation); no silent default value.
  - Tolerances are derived from machine precision, not hard-coded.
  - Config comes from the environment with strict parsing; an invalid value
    is a deployment error and must raise.
"""

from __future__ import annotations

import hashlib
import logging
import math
import os
import warnings
from dataclasses import dataclass, field
from fractions import Fraction
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Hashable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

import numpy as np
from scipy import integrate as _integrate

logger = logging.getLogger(__name__)

Extended = Union[int, Fraction, float]
INF = math.inf


# ===========================================================
# Section 0: strict error model (no silent downgrade)
# ===========================================================

class KolmogorovError(RuntimeError):
    """Base error of the product-measure construction."""


class DomainError(KolmogorovError):
    """Index / window / reindexing request outside its domain."""


class MeasurabilityError(KolmogorovError):
    """A set or function was not declared measurable, or evaluated to a non-measure value."""


class InvariantViolation(KolmogorovError):
    """Projectivity, normalisation, boundedness or antitonicity precondition failed."""

    def __init__(self, message: str, *, analysis: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.analysis: Dict[str, Any] = dict(analysis or {})


class ExtensionError(KolmogorovError):
    """The content failed sigma-(sub)additivity; signals an internal bug."""


class WitnessSearchError(ExtensionError):
    """The witness search could not produce a point although its invariant held."""


# ===========================================================
# Section 1: configuration (environment, strict)
# ===========================================================

def _env_int(name: str, *, default: int, minimum: int = 0) -> int:
    """
    Read an env var as int (base-10), strict.
    """
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return int(default)
    try:
        value = int(str(raw).strip(), 10)
    except Exception as e:
        raise ValueError(f"{name} must be an integer (base-10), got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_fraction(name: str, *, default: Fraction) -> Fraction:
    """
    Read an env var as an exact positive rational ("1/1024" or "0.001").
    """
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return Fraction(default)
    try:
        value = Fraction(str(raw).strip())
    except Exception as e:
        raise ValueError(f"{name} must be a rational number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class ExtensionConfig:
    """
    Numerical knobs of the construction.

    horizon            : number of terms of a countable sequence that are inspected
    bisection_depth    : halvings performed by the interval witness search
    max_candidates     : cap on enumerated support points per witness level
    tail_tolerance     : dropped tail mass allowed when summing over a counting space
    quad_limit         : subinterval limit passed to scipy.integrate.quad
    projectivity_depth : prefix windows icc(0, n) ⊆ icc(0, n+1), n < depth, checked
                         before a non-product family is extended

    Comparison tolerance is sqrt(eps_mach) of the dtype, the same scale used
    for convergence tests elsewhere.
    """

    horizon: int = 32
    bisection_depth: int = 48
    max_candidates: int = 4096
    tail_tolerance: Fraction = Fraction(1, 2 ** 40)
    quad_limit: int = 200
    projectivity_depth: int = 3
    dtype: np.dtype = field(default=np.dtype(np.float64))

    def __post_init__(self) -> None:
        for name in ("horizon", "bisection_depth", "max_candidates", "quad_limit", "projectivity_depth"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int) or v < 1:
                raise ValueError(f"{name} must be a positive int, got {v!r}")
        if not isinstance(self.tail_tolerance, Fraction) or self.tail_tolerance <= 0:
            raise ValueError(f"tail_tolerance must be a positive Fraction, got {self.tail_tolerance!r}")

    @property
    def eps(self) -> float:
        return float(np.finfo(self.dtype).eps)

    @property
    def tolerance(self) -> float:
        return math.sqrt(self.eps)

    @classmethod
    def from_env(cls) -> "ExtensionConfig":
        return cls(
            horizon=_env_int("KOLMOGOROV_HORIZON", default=32, minimum=1),
            bisection_depth=_env_int("KOLMOGOROV_BISECTION_DEPTH", default=48, minimum=1),
            max_candidates=_env_int("KOLMOGOROV_MAX_CANDIDATES", default=4096, minimum=1),
            tail_tolerance=_env_fraction("KOLMOGOROV_TAIL_TOLERANCE", default=Fraction(1, 2 ** 40)),
            quad_limit=_env_int("KOLMOGOROV_QUAD_LIMIT", default=200, minimum=1),
            projectivity_depth=_env_int("KOLMOGOROV_PROJECTIVITY_DEPTH", default=3, minimum=1),
        )


def resolve_config(config: Optional[ExtensionConfig]) -> ExtensionConfig:
    if config is None:
        return ExtensionConfig.from_env()
    if not isinstance(config, ExtensionConfig):
        raise TypeError(f"config must be ExtensionConfig, got {type(config).__name__}")
    return config


# ===========================================================
# Section 2: extended non-negative reals
# ===========================================================

def as_extended(value: Any, *, context: str = "value") -> Extended:
    """Validate a value of [0, inf]; ints become Fractions, floats stay floats."""
    if isinstance(value, (bool, np.bool_)):
        return Fraction(int(value))
    if isinstance(value, (int, np.integer)):
        value = Fraction(int(value))
    if isinstance(value, Fraction):
        if value < 0:
            raise MeasurabilityError(f"{context}: negative value {value}")
        return value
    if isinstance(value, (float, np.floating)):
        v = float(value)
        if math.isnan(v):
            raise MeasurabilityError(f"{context}: NaN is not a measure value")
        if v < 0:
            raise MeasurabilityError(f"{context}: negative value {v!r}")
        return v
    raise MeasurabilityError(f"{context}: non-numeric value {value!r} ({type(value).__name__})")


def ext_add(a: Extended, b: Extended) -> Extended:
    if a == INF or b == INF:
        return INF
    return a + b


def ext_mul(a: Extended, b: Extended) -> Extended:
    # inf * 0 = 0
    if a == 0 or b == 0:
        return Fraction(0)
    if a == INF or b == INF:
        return INF
    return a * b


def ext_sum(values) -> Extended:
    total: Extended = Fraction(0)
    for v in values:
        total = ext_add(total, v)
    return total


def ext_min(values) -> Extended:
    out: Optional[Extended] = None
    for v in values:
        if out is None or v < out:
            out = v
    if out is None:
        return INF
    return out


def ext_close(a: Extended, b: Extended, tol: float) -> bool:
    if a == INF or b == INF:
        return a == b
    return abs(a - b) <= tol


def render_extended(x: Extended) -> str:
    """Float-free rendering used in certificates."""
    if x == INF:
        return "inf"
    if isinstance(x, Fraction):
        return f"{x.numerator}/{x.denominator}"
    return repr(float(x))


def _assert_no_float(obj: Any, *, path: str = "root") -> None:
    """
    Redline guard: forbid float/complex contamination in certificate payloads.
    """
    if obj is None or isinstance(obj, (str, bytes, bool, int, Fraction)):
        return
    if isinstance(obj, (float, complex)):
        raise ExtensionError(f"float contamination at {path}: {obj!r}")
    if isinstance(obj, dict):
        for k, v in obj.items():
            _assert_no_float(k, path=f"{path}.<key>")
            _assert_no_float(v, path=f"{path}[{k!r}]")
        return
    if isinstance(obj, (list, tuple)):
        for i, v in enumerate(obj):
            _assert_no_float(v, path=f"{path}[{i}]")
        return
    raise ExtensionError(f"unsupported certificate type at {path}: {type(obj).__name__}")


def sha256_hex_of_certificate(d: Dict[str, Any]) -> str:
    """
    Deterministic SHA-256 commitment of a certificate dict (sorted keys, typed scalars).
    """
    _assert_no_float(d)

    def _serialize(obj: Any) -> str:
        if obj is None:
            return "null"
        if isinstance(obj, bool):
            return "true" if obj else "false"
        if isinstance(obj, int):
            return f"int:{obj}"
        if isinstance(obj, str):
            return f"str:{obj}"
        if isinstance(obj, Fraction):
            return f"frac:{obj.numerator}/{obj.denominator}"
        if isinstance(obj, (list, tuple)):
            return f"list:[{','.join(_serialize(x) for x in obj)}]"
        if isinstance(obj, dict):
            items = sorted(obj.items(), key=lambda kv: str(kv[0]))
            return "dict:{" + ",".join(f"{_serialize(k)}:{_serialize(v)}" for k, v in items) + "}"
        raise TypeError(f"unserializable certificate value {obj!r}")

    return hashlib.sha256(_serialize(d).encode("utf-8")).hexdigest()


# ===========================================================
# Section 3: coordinate sets (subsets of a single X_n)
# ===========================================================

def _exact(x: Any) -> Any:
    """ints -> Fraction so endpoint arithmetic stays exact; floats untouched."""
    if isinstance(x, bool):
        raise TypeError("bool is not a coordinate bound")
    if isinstance(x, (int, np.integer)):
        return Fraction(int(x))
    return x


class CoordinateSet:
    """Measurable subset of one coordinate space."""

    def __contains__(self, x: Any) -> bool:
        raise NotImplementedError

    def breakpoints(self) -> Optional[Tuple[Any, ...]]:
        """Finite points where membership may change; None when unknown."""
        return None

    def intersect(self, other: "CoordinateSet") -> "CoordinateSet":
        if isinstance(other, Everything):
            return self
        return MeetSet((self, other))

    def is_empty(self) -> bool:
        return False


@dataclass(frozen=True)
class Everything(CoordinateSet):
    def __contains__(self, x: Any) -> bool:
        return True

    def breakpoints(self) -> Tuple[Any, ...]:
        return ()

    def intersect(self, other: CoordinateSet) -> CoordinateSet:
        return other


@dataclass(frozen=True)
class Interval(CoordinateSet):
    """
    {x : low <= x <= high} with optional open ends.
    On a counting space Interval(N, inf) is the tail {x >= N}.
    """

    low: Any = -INF
    high: Any = INF
    closed_low: bool = True
    closed_high: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "low", _exact(self.low))
        object.__setattr__(self, "high", _exact(self.high))
        for name in ("low", "high"):
            v = getattr(self, name)
            if isinstance(v, float) and math.isnan(v):
                raise DomainError(f"Interval.{name} is NaN")

    def __contains__(self, x: Any) -> bool:
        if isinstance(x, bool) or not isinstance(x, (int, float, Fraction, np.integer, np.floating)):
            return False
        if x < self.low or x > self.high:
            return False
        if x == self.low and not self.closed_low:
            return False
        if x == self.high and not self.closed_high:
            return False
        return True

    def breakpoints(self) -> Tuple[Any, ...]:
        return tuple(b for b in (self.low, self.high) if b not in (INF, -INF))

    def is_empty(self) -> bool:
        if self.low > self.high:
            return True
        if self.low == self.high:
            return not (self.closed_low and self.closed_high)
        return False

    def intersect(self, other: CoordinateSet) -> CoordinateSet:
        if isinstance(other, Interval):
            if self.low > other.low:
                low, cl = self.low, self.closed_low
            elif self.low < other.low:
                low, cl = other.low, other.closed_low
            else:
                low, cl = self.low, self.closed_low and other.closed_low
            if self.high < other.high:
                high, ch = self.high, self.closed_high
            elif self.high > other.high:
                high, ch = other.high, other.closed_high
            else:
                high, ch = self.high, self.closed_high and other.closed_high
            return Interval(low, high, cl, ch)
        if isinstance(other, (Everything, FiniteSet)):
            return other.intersect(self)
        return super().intersect(other)


@dataclass(frozen=True)
class FiniteSet(CoordinateSet):
    values: FrozenSet[Hashable] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", frozenset(self.values))

    def __contains__(self, x: Any) -> bool:
        try:
            return x in self.values
        except TypeError:
            return False

    def breakpoints(self) -> Optional[Tuple[Any, ...]]:
        if all(isinstance(v, (int, float, Fraction)) and not isinstance(v, bool) for v in self.values):
            return tuple(sorted(self.values))
        return None

    def is_empty(self) -> bool:
        return not self.values

    def intersect(self, other: CoordinateSet) -> CoordinateSet:
        return FiniteSet(frozenset(v for v in self.values if v in other))


@dataclass(frozen=True)
class CoordinatePredicate(CoordinateSet):
    """Arbitrary membership test; the caller vouches for measurability."""

    predicate: Callable[[Any], bool]
    measurable: bool = True
    label: str = "predicate"
    points: Optional[Tuple[Any, ...]] = None

    def __post_init__(self) -> None:
        if not callable(self.predicate):
            raise MeasurabilityError(f"{self.label}: predicate must be callable")
        if not self.measurable:
            raise MeasurabilityError(f"{self.label}: predicate declared non-measurable")

    def __contains__(self, x: Any) -> bool:
        return bool(self.predicate(x))

    def breakpoints(self) -> Optional[Tuple[Any, ...]]:
        return self.points


@dataclass(frozen=True)
class Complement(CoordinateSet):
    base: CoordinateSet

    def __contains__(self, x: Any) -> bool:
        return x not in self.base

    def breakpoints(self) -> Optional[Tuple[Any, ...]]:
        return self.base.breakpoints()


@dataclass(frozen=True)
class MeetSet(CoordinateSet):
    parts: Tuple[CoordinateSet, ...]

    def __contains__(self, x: Any) -> bool:
        return all(x in p for p in self.parts)

    def breakpoints(self) -> Optional[Tuple[Any, ...]]:
        return merge_breakpoints(p.breakpoints() for p in self.parts)


def merge_breakpoints(groups) -> Optional[Tuple[Any, ...]]:
    """Union of breakpoint tuples; None as soon as one group is unknown."""
    out = set()
    for g in groups:
        if g is None:
            return None
        out.update(g)
    return tuple(sorted(out))


def coordinate_subset(a: CoordinateSet, b: CoordinateSet) -> Optional[bool]:
    """Decide a ⊆ b structurally; None when it depends on the coordinate space."""
    if isinstance(b, Everything) or a == b or a.is_empty():
        return True
    if isinstance(a, FiniteSet):
        return all(v in b for v in a.values)
    if isinstance(a, Interval) and isinstance(b, Interval):
        if b.is_empty():
            return False
        if a.low < b.low or (a.low == b.low and a.closed_low and not b.closed_low):
            return False
        if a.high > b.high or (a.high == b.high and a.closed_high and not b.closed_high):
            return False
        return True
    return None


# ===========================================================
# Section 4: coordinate probability measures mu_n on X_n
# ===========================================================

def _restrict(g: Callable[[Any], Any], within: Optional[CoordinateSet]):
    if within is None:
        return g
    return lambda v: g(v) if v in within else Fraction(0)


class CoordinateMeasure:
    """Probability measure on one coordinate space."""

    kind = "abstract"

    def total_mass(self) -> Extended:
        raise NotImplementedError

    def contains(self, x: Any) -> bool:
        raise NotImplementedError

    def measure(self, s: CoordinateSet) -> Extended:
        if isinstance(s, Everything):
            return self.total_mass()
        return self.integrate(lambda v: Fraction(1) if v in s else Fraction(0), breakpoints=s.breakpoints())

    def integrate(
        self,
        g: Callable[[Any], Any],
        *,
        breakpoints: Optional[Tuple[Any, ...]] = None,
        within: Optional[CoordinateSet] = None,
        config: Optional[ExtensionConfig] = None,
    ) -> Extended:
        raise NotImplementedError

    def candidates(self) -> Iterator[Tuple[Any, Extended]]:
        """Support points with their weight, in a fixed order (enumerable spaces only)."""
        raise DomainError(f"{type(self).__name__} has no enumerable support")


class DiscreteMeasure(CoordinateMeasure):
    """Finite support, exact weights."""

    kind = "finite"

    def __init__(self, weights: Mapping[Hashable, Any], *, label: str = "discrete"):
        if not isinstance(weights, Mapping) or not weights:
            raise InvariantViolation(f"{label}: weights must be a non-empty Mapping")
        atoms: List[Tuple[Hashable, Extended]] = []
        for value, w in weights.items():
            try:
                atoms.append((value, as_extended(w, context=f"{label}[{value!r}]")))
            except MeasurabilityError as e:
                raise InvariantViolation(f"{label}: invalid weight for {value!r}: {e}") from e
        self._atoms: Tuple[Tuple[Hashable, Extended], ...] = tuple(atoms)
        self._index = dict(atoms)
        self.label = label

    def __repr__(self) -> str:
        return f"DiscreteMeasure({self.label}, atoms={len(self._atoms)})"

    def total_mass(self) -> Extended:
        return ext_sum(w for _, w in self._atoms)

    def contains(self, x: Any) -> bool:
        try:
            return x in self._index
        except TypeError:
            return False

    def measure(self, s: CoordinateSet) -> Extended:
        return ext_sum(w for v, w in self._atoms if v in s)

    def integrate(self, g, *, breakpoints=None, within=None, config=None) -> Extended:
        h = _restrict(g, within)
        return ext_sum(
            ext_mul(w, as_extended(h(v), context=f"{self.label} integrand at {v!r}"))
            for v, w in self._atoms
            if w != 0
        )

    def candidates(self) -> Iterator[Tuple[Any, Extended]]:
        for v, w in self._atoms:
            if w != 0:
                yield v, w


def fair_coin() -> DiscreteMeasure:
    return DiscreteMeasure({0: Fraction(1, 2), 1: Fraction(1, 2)}, label="fair_coin")


def uniform_finite(values) -> DiscreteMeasure:
    values = list(values)
    if not values:
        raise InvariantViolation("uniform_finite: empty support")
    w = Fraction(1, len(values))
    return DiscreteMeasure({v: w for v in values}, label=f"uniform[{len(values)}]")


class CountableMeasure(CoordinateMeasure):
    """
    Measure on N = {0, 1, 2, ...} given by exact atom weights and exact tails:
        weight(k) = mu({k}),   tail(k) = mu({k, k+1, ...})
    """

    kind = "countable"

    def __init__(
        self,
        weight: Callable[[int], Any],
        tail: Callable[[int], Any],
        *,
        label: str = "countable",
    ):
        if not callable(weight) or not callable(tail):
            raise InvariantViolation(f"{label}: weight and tail must be callables")
        self._weight = weight
        self._tail = tail
        self.label = label

    def __repr__(self) -> str:
        return f"CountableMeasure({self.label})"

    def weight(self, k: int) -> Extended:
        return as_extended(self._weight(int(k)), context=f"{self.label}.weight({k})")

    def tail(self, k: int) -> Extended:
        if k <= 0:
            k = 0
        return as_extended(self._tail(int(k)), context=f"{self.label}.tail({k})")

    def total_mass(self) -> Extended:
        return self.tail(0)

    def contains(self, x: Any) -> bool:
        return isinstance(x, (int, np.integer)) and not isinstance(x, bool) and x >= 0

    def measure(self, s: CoordinateSet) -> Extended:
        if isinstance(s, Interval):
            if s.is_empty():
                return Fraction(0)
            lo = 0 if s.low == -INF else math.ceil(s.low)
            if s.low == lo and not s.closed_low:
                lo += 1
            lo = max(lo, 0)
            if s.high == INF:
                return self.tail(lo)
            hi = math.floor(s.high)
            if s.high == hi and not s.closed_high:
                hi -= 1
            if hi < lo:
                return Fraction(0)
            return self.tail(lo) - self.tail(hi + 1)
        if isinstance(s, FiniteSet):
            return ext_sum(self.weight(v) for v in s.values if self.contains(v))
        return super().measure(s)

    def integrate(self, g, *, breakpoints=None, within=None, config=None) -> Extended:
        cfg = resolve_config(config)
        h = _restrict(g, within)
        if within is not None:
            breakpoints = merge_breakpoints((breakpoints, within.breakpoints())) if breakpoints is not None else None
        if breakpoints is not None:
            # membership only changes across integer cuts floor(b), floor(b)+1
            cuts = {0}
            for b in breakpoints:
                if b in (INF, -INF):
                    continue
                fb = math.floor(b)
                cuts.update(c for c in (fb, fb + 1) if c >= 0)
            cuts = sorted(cuts)
            total: Extended = Fraction(0)
            for j, c in enumerate(cuts):
                upper = self.tail(cuts[j + 1]) if j + 1 < len(cuts) else Fraction(0)
                mass = self.tail(c) - upper
                if mass == 0:
                    continue
                total = ext_add(total, ext_mul(mass, as_extended(h(c), context=f"{self.label} integrand at {c}")))
            return total
        total = Fraction(0)
        k = 0
        while self.tail(k) > cfg.tail_tolerance:
            if k >= cfg.max_candidates:
                logger.warning(
                    "[Backend] %s: truncated sum stopped at k=%s with tail=%s",
                    self.label, k, render_extended(self.tail(k)),
                )
                break
            w = self.weight(k)
            if w != 0:
                total = ext_add(total, ext_mul(w, as_extended(h(k), context=f"{self.label} integrand at {k}")))
            k += 1
        return total

    def candidates(self) -> Iterator[Tuple[Any, Extended]]:
        k = 0
        while True:
            w = self.weight(k)
            if w != 0:
                yield k, w
            k += 1


def geometric(p: Any = Fraction(1, 2)) -> CountableMeasure:
    """mu(k) = p (1-p)^k; p = 1/2 gives 2^{-(k+1)}."""
    p = _exact(p)
    if not (0 < p <= 1):
        raise InvariantViolation(f"geometric: p must lie in (0, 1], got {p!r}")
    q = 1 - p
    return CountableMeasure(lambda k: p * q ** k, lambda k: q ** k, label=f"geometric({p})")


class IntervalMeasure(CoordinateMeasure):
    """Normalised Lebesgue measure on [low, high]."""

    kind = "interval"

    def __init__(self, low: Any = 0, high: Any = 1, *, label: str = "lebesgue"):
        low, high = _exact(low), _exact(high)
        if low in (INF, -INF) or high in (INF, -INF) or not (low < high):
            raise InvariantViolation(f"{label}: need finite low < high, got [{low!r}, {high!r}]")
        self.low = low
        self.high = high
        self.width = high - low
        self.label = label

    def __repr__(self) -> str:
        return f"IntervalMeasure([{self.low}, {self.high}])"

    def total_mass(self) -> Extended:
        return Fraction(1)

    def contains(self, x: Any) -> bool:
        return Interval(self.low, self.high).__contains__(x)

    def measure(self, s: CoordinateSet) -> Extended:
        if isinstance(s, Interval):
            clipped = s.intersect(Interval(self.low, self.high))
            if clipped.is_empty():
                return Fraction(0)
            return (clipped.high - clipped.low) / self.width
        if isinstance(s, FiniteSet):
            return Fraction(0)
        return super().measure(s)

    def _domain(self, within: Optional[CoordinateSet]) -> Optional[Tuple[Any, Any]]:
        if within is None:
            return self.low, self.high
        clipped = Interval(self.low, self.high).intersect(within)
        if not isinstance(clipped, Interval):
            return None
        if clipped.is_empty():
            return clipped.low, clipped.low
        return clipped.low, clipped.high

    def integrate(self, g, *, breakpoints=None, within=None, config=None) -> Extended:
        cfg = resolve_config(config)
        domain = self._domain(within)
        if domain is None:
            # non-interval restriction: fold it into the integrand
            g = _restrict(g, within)
            breakpoints = merge_breakpoints((breakpoints, within.breakpoints())) if breakpoints is not None else None
            domain = (self.low, self.high)
        a, b = domain
        if not (a < b):
            return Fraction(0)
        if breakpoints is not None:
            cuts = sorted({a, b} | {p for p in breakpoints if p not in (INF, -INF) and a < p < b})
            total: Extended = Fraction(0)
            for c0, c1 in zip(cuts, cuts[1:]):
                if not (c0 < c1):
                    continue
                mid = (c0 + c1) / 2
                value = as_extended(g(mid), context=f"{self.label} integrand at {mid}")
                total = ext_add(total, ext_mul((c1 - c0) / self.width, value))
            return total

        def _integrand(t: float) -> float:
            return float(as_extended(g(t), context=f"{self.label} integrand at {t}"))

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            value, abserr = _integrate.quad(_integrand, float(a), float(b), limit=cfg.quad_limit)
        for w in caught:
            logger.warning("[Backend] quad on %s: %s (abserr=%s)", self.label, w.message, abserr)
        if math.isnan(value) or math.isinf(value):
            # divergent integral of a non-negative integrand saturates
            return INF
        return max(0.0, float(value)) / float(self.width)

    def average(self, g, low: Any, high: Any, *, breakpoints=None, config=None) -> Extended:
        """(1 / mu(J)) int_J g dmu over J = [low, high]."""
        J = Interval(low, high)
        mass = self.measure(J)
        if mass == 0:
            raise DomainError(f"{self.label}: average over null interval [{low}, {high}]")
        integral = self.integrate(g, breakpoints=breakpoints, within=J, config=config)
        if integral == INF:
            return INF
        return integral / mass


def lebesgue_unit() -> IntervalMeasure:
    return IntervalMeasure(0, 1, label="lebesgue[0,1]")


def is_probability(mu: CoordinateMeasure, *, config: Optional[ExtensionConfig] = None) -> bool:
    cfg = resolve_config(config)
    return ext_close(mu.total_mass(), Fraction(1), cfg.tolerance)
