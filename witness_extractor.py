#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Witness extraction: downward continuity of the content at ∅
===========================================================

Setting:
    f_n >= 0 measurable, depending only on icc(0, N(n)), f_n <= C < inf,
    antitone in n after marginalising any suffix, and a threshold eps > 0 with

        eps <= marginal(icc(k, N(n)), f_n)(y)      for every n           (I_k)

    at the current prefix y = (z_0, ..., z_{k-1}).

Inductive step (level k -> k+1):
    F_n(x)  = marginal(icc(k+1, N(n)), f_n)(x)          (antitone in n)
    l'(x)   = lim_n F_n(x) = inf_n F_n(x)
    ∫ l'(y ⧺ t) dmu_k(t) >= eps  and  l' <= C
        =>  some t = z_k has l'(y ⧺ z_k) >= eps,  i.e. (I_{k+1}) holds.

  The choice of z_k is made by a deterministic selection strategy:
    EnumerationStrategy : finite / countable spaces, scan support with early exit
    BisectionStrategy   : intervals, keep the half whose average stays >= eps
    OracleStrategy      : caller-supplied candidates for abstract spaces

firstLemma (continuity_at_empty):
    A_n decreasing cylinders, content(A_n) >= eps > 0 for all n
        => the recursion with f_n = 1_{A_n} yields z in every A_n.
    Contrapositive: ⋂ A_n = ∅  =>  content(A_n) -> 0.

Only the terms n < horizon of a countable family are ever inspected.  A
point of the inspected terms is a witness of ⋂ A_n only when the sequence
ends within the horizon.

Redlines:
  - uniform bound / antitonicity / level-0 threshold are validated on
    construction (InvariantViolation), never assumed.
  - each witness coordinate is chosen once and never revised.
  - a search that fails although its invariant holds is an internal error
    (WitnessSearchError).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from content_function import ContentFunction
from cylinder_algebra import Cylinder, CylinderSequence
from marginalizer import Marginalizer
from measure_backend import (
    INF,
    CoordinateMeasure,
    DomainError,
    Extended,
    ExtensionConfig,
    InvariantViolation,
    IntervalMeasure,
    WitnessSearchError,
    as_extended,
    ext_add,
    ext_min,
    ext_mul,
    merge_breakpoints,
    render_extended,
    resolve_config,
    sha256_hex_of_certificate,
)
from measurable_functions import MeasurableFunction, icc, require_measurable
from projective_family import ProjectiveFamily

logger = logging.getLogger(__name__)

Score = Callable[[Any], Extended]


# ===========================================================
# Section 1: selection strategies (replace the non-constructive choice)
# ===========================================================

class SelectionStrategy:
    def select(
        self,
        measure: CoordinateMeasure,
        score: Score,
        epsilon: Extended,
        *,
        bound: Extended,
        breakpoints: Optional[Tuple[Any, ...]],
        level: int,
        prefix: Mapping[int, Any],
        config: ExtensionConfig,
    ) -> Any:
        raise NotImplementedError


class EnumerationStrategy(SelectionStrategy):
    """
    Scan the support in order; return the first point with score >= eps.

    Stops with InvariantViolation as soon as the scanned part plus
    bound * (unscanned mass) can no longer reach eps: then ∫ l' dmu_k < eps.
    """

    def select(self, measure, score, epsilon, *, bound, breakpoints, level, prefix, config):
        threshold = epsilon - config.tolerance
        total = measure.total_mass()
        seen_mass: Extended = Fraction(0)
        seen_integral: Extended = Fraction(0)
        for count, (value, weight) in enumerate(measure.candidates()):
            if count >= config.max_candidates:
                raise WitnessSearchError(
                    f"level {level}: no witness among the first {config.max_candidates} support points"
                )
            s = score(value)
            if s >= threshold:
                return value
            seen_mass = ext_add(seen_mass, weight)
            seen_integral = ext_add(seen_integral, ext_mul(weight, s))
            reachable = ext_add(seen_integral, ext_mul(bound, max(total - seen_mass, 0)))
            if reachable < threshold:
                raise InvariantViolation(
                    f"level {level}: the eps-average invariant fails (at most {render_extended(reachable)} "
                    f"< eps = {render_extended(epsilon)})",
                    analysis={"level": level, "scanned": count + 1, "reachable": render_extended(reachable)},
                )
        raise InvariantViolation(
            f"level {level}: support exhausted without a point of score >= eps = {render_extended(epsilon)}",
            analysis={"level": level},
        )


class BisectionStrategy(SelectionStrategy):
    """
    Interval spaces: the average of l' over [low, high] is >= eps; one half
    keeps an average >= eps, so halve `depth` times and probe the final bracket.
    """

    def __init__(self, depth: Optional[int] = None):
        if depth is not None and (isinstance(depth, bool) or not isinstance(depth, int) or depth < 1):
            raise ValueError(f"depth must be a positive int, got {depth!r}")
        self.depth = depth

    def select(self, measure, score, epsilon, *, bound, breakpoints, level, prefix, config):
        if not isinstance(measure, IntervalMeasure):
            raise DomainError(f"level {level}: bisection needs an IntervalMeasure, got {measure!r}")
        threshold = epsilon - config.tolerance
        lo, hi = measure.low, measure.high
        avg = measure.average(score, lo, hi, breakpoints=breakpoints, config=config)
        if avg < threshold:
            raise InvariantViolation(
                f"level {level}: average {render_extended(avg)} over [{lo}, {hi}] is below eps = "
                f"{render_extended(epsilon)}",
                analysis={"level": level, "average": render_extended(avg)},
            )
        for _ in range(self.depth or config.bisection_depth):
            mid = (lo + hi) / 2
            left = measure.average(score, lo, mid, breakpoints=breakpoints, config=config)
            if left >= threshold:
                hi = mid
            else:
                lo = mid
        width = hi - lo
        for t in ((lo + hi) / 2, lo + width / 4, hi - width / 4, lo, hi):
            if score(t) >= threshold:
                return t
        raise WitnessSearchError(
            f"level {level}: bisection bracket [{lo}, {hi}] has average >= eps but no probe point reaches it"
        )


class OracleStrategy(SelectionStrategy):
    """candidates(level, prefix, measure) -> iterable of points to try, in order."""

    def __init__(self, candidates: Callable[[int, Mapping[int, Any], CoordinateMeasure], Iterable[Any]]):
        if not callable(candidates):
            raise TypeError("OracleStrategy needs a callable")
        self.candidates = candidates

    def select(self, measure, score, epsilon, *, bound, breakpoints, level, prefix, config):
        threshold = epsilon - config.tolerance
        for count, value in enumerate(self.candidates(level, dict(prefix), measure)):
            if count >= config.max_candidates:
                break
            if not measure.contains(value):
                raise DomainError(f"level {level}: oracle proposed {value!r} outside the coordinate space")
            if score(value) >= threshold:
                return value
        raise WitnessSearchError(f"level {level}: oracle produced no point with score >= eps")


def default_strategy(measure: CoordinateMeasure) -> SelectionStrategy:
    if measure.kind in ("finite", "countable"):
        return EnumerationStrategy()
    if measure.kind == "interval":
        return BisectionStrategy()
    raise DomainError(f"no default selection strategy for {measure!r}; supply an OracleStrategy")


# ===========================================================
# Section 2: the lazy witness point
# ===========================================================

class WitnessSequence:
    """
    z_0, z_1, ... produced on demand by step(k, prefix).

    Append-only and non-restartable: iterating continues where the last
    access stopped and every coordinate is computed exactly once.
    """

    def __init__(self, step: Callable[[int, Dict[int, Any]], Any]):
        self._step = step
        self._prefix: List[Any] = []

    def __repr__(self) -> str:
        return f"WitnessSequence(materialised={len(self._prefix)})"

    def __iter__(self) -> "WitnessSequence":
        return self

    def __next__(self) -> Any:
        k = len(self._prefix)
        value = self._step(k, dict(enumerate(self._prefix)))
        self._prefix.append(value)
        return value

    def __getitem__(self, k: int) -> Any:
        if isinstance(k, bool) or not isinstance(k, int) or k < 0:
            raise DomainError(f"witness index must be a non-negative int, got {k!r}")
        while len(self._prefix) <= k:
            next(self)
        return self._prefix[k]

    @property
    def materialised(self) -> int:
        return len(self._prefix)

    def prefix(self, n: int) -> Tuple[Any, ...]:
        if n > 0:
            self[n - 1]
        return tuple(self._prefix[:n])


# ===========================================================
# Section 3: the extractor (inductive step + recursion)
# ===========================================================

class WitnessExtractor:
    def __init__(
        self,
        family: ProjectiveFamily,
        functions: Sequence[MeasurableFunction],
        horizons: Sequence[int],
        *,
        bound: Any,
        epsilon: Any,
        strategies: Optional[Mapping[int, SelectionStrategy]] = None,
        fallback: Optional[SelectionStrategy] = None,
        config: Optional[ExtensionConfig] = None,
    ):
        if not getattr(family, "is_product", False):
            raise DomainError("witness extraction is defined for product families")
        self.family = family
        self.config = resolve_config(config) if config is not None else family.config
        tol = self.config.tolerance
        functions = list(functions)[: self.config.horizon]
        horizons = [int(h) for h in list(horizons)[: len(functions)]]
        if not functions:
            raise DomainError("witness extraction needs at least one function")
        if len(horizons) != len(functions):
            raise DomainError(f"{len(functions)} functions but {len(horizons)} window bounds")
        self.functions = [require_measurable(f, context=f"f_{n}") for n, f in enumerate(functions)]
        for n, (f, N) in enumerate(zip(self.functions, horizons)):
            if not f.window <= icc(0, N):
                raise DomainError(f"f_{n} depends on {sorted(f.window)}, outside icc(0, {N})")
        self.horizons = horizons

        self.bound = as_extended(bound, context="uniform bound")
        if self.bound == INF or self.bound <= 0:
            raise InvariantViolation(f"uniform bound must be finite and positive, got {render_extended(self.bound)}")
        for n, f in enumerate(self.functions):
            if f.bound != INF and f.bound > self.bound + tol:
                raise InvariantViolation(
                    f"f_{n} is bounded by {render_extended(f.bound)} > {render_extended(self.bound)}",
                    analysis={"n": n},
                )
        self.epsilon = as_extended(epsilon, context="epsilon")
        if not (0 < self.epsilon <= self.bound):
            raise InvariantViolation(
                f"epsilon must lie in (0, bound], got {render_extended(self.epsilon)}"
            )

        self.marginalizer = Marginalizer(family, config=self.config)
        self.strategies = dict(strategies or {})
        self.fallback = fallback
        self._levels: Dict[int, List[MeasurableFunction]] = {}

        level0 = [F({}) for F in self._partial_marginals(0)]
        for n, v in enumerate(level0):
            if v < self.epsilon - tol:
                raise InvariantViolation(
                    f"level-0 bound fails: marginal of f_{n} is {render_extended(v)} < eps = "
                    f"{render_extended(self.epsilon)}",
                    analysis={"n": n, "value": render_extended(v), "epsilon": render_extended(self.epsilon)},
                )
            if n and v > level0[n - 1] + tol:
                raise InvariantViolation(
                    f"f_n is not antitone: level-0 marginal rises from {render_extended(level0[n - 1])} "
                    f"to {render_extended(v)} at n={n}",
                    analysis={"n": n},
                )
        self.level0 = level0
        logger.debug(
            "[Witness] extractor ready: terms=%s eps=%s bound=%s",
            len(self.functions), render_extended(self.epsilon), render_extended(self.bound),
        )

    def _partial_marginals(self, k: int) -> List[MeasurableFunction]:
        """[marginal(icc(k, N(n)), f_n) for each inspected n], memoised per level."""
        out = self._levels.get(k)
        if out is None:
            out = [self.marginalizer.marginal(icc(k, N), f) for f, N in zip(self.functions, self.horizons)]
            self._levels[k] = out
        return out

    def score(self, k: int, prefix: Mapping[int, Any], value: Any) -> Extended:
        """inf_n marginal(icc(k+1, N(n)), f_n)(prefix ⧺ value): the limit l' at the candidate."""
        x = dict(prefix)
        x[k] = value
        tol = self.config.tolerance
        values: List[Extended] = []
        for n, F in enumerate(self._partial_marginals(k + 1)):
            v = F(x)
            if v > self.bound + tol:
                raise InvariantViolation(
                    f"marginal of f_{n} exceeds the uniform bound at level {k + 1}: {render_extended(v)}",
                    analysis={"n": n, "level": k + 1},
                )
            if values and v > values[-1] + tol:
                raise InvariantViolation(
                    f"f_n is not antitone at level {k + 1}: n={n} rises to {render_extended(v)}",
                    analysis={"n": n, "level": k + 1},
                )
            values.append(v)
        return ext_min(values)

    def _strategy_for(self, k: int, measure: CoordinateMeasure) -> SelectionStrategy:
        if k in self.strategies:
            return self.strategies[k]
        if self.fallback is not None:
            return self.fallback
        return default_strategy(measure)

    def step(self, k: int, prefix: Mapping[int, Any]) -> Any:
        """The inductive step: extend a prefix satisfying (I_k) by z_k satisfying (I_{k+1})."""
        if sorted(prefix) != list(range(k)):
            raise DomainError(f"step({k}) needs the prefix 0..{k - 1}, got indices {sorted(prefix)}")
        measure = self.family.coordinate(k)
        breakpoints = merge_breakpoints(F.breakpoints(k) for F in self._partial_marginals(k + 1))
        value = self._strategy_for(k, measure).select(
            measure,
            lambda t: self.score(k, prefix, t),
            self.epsilon,
            bound=self.bound,
            breakpoints=breakpoints,
            level=k,
            prefix=prefix,
            config=self.config,
        )
        logger.debug("[Witness] level=%s z=%r", k, value)
        return value

    def witness(self) -> WitnessSequence:
        return WitnessSequence(self.step)


# ===========================================================
# Section 4: firstLemma: continuity of the content at ∅
# ===========================================================

@dataclass(frozen=True)
class ContinuityCertificate:
    """
    vanishes=True  : content(A_n) fell below tolerance within the horizon.
    vanishes=False : `inspected_prefix` lies in every inspected A_n.  It is a
                     `witness` of ⋂ A_n only when the sequence ends within the
                     horizon; otherwise the certificate is inconclusive.
    """

    VERSION = "continuity/2"

    label: str
    contents: Tuple[Extended, ...]
    epsilon: Extended
    vanishes: bool
    witness: Optional[Tuple[Any, ...]] = None
    claimed_empty: bool = False
    inspected_prefix: Optional[Tuple[Any, ...]] = None

    @property
    def conclusive(self) -> bool:
        return self.vanishes or self.witness is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "label": str(self.label),
            "horizon": int(len(self.contents)),
            "contents": [render_extended(c) for c in self.contents],
            "epsilon": render_extended(self.epsilon),
            "vanishes": bool(self.vanishes),
            "witness": None if self.witness is None else [repr(z) for z in self.witness],
            "inspected_prefix": None if self.inspected_prefix is None else [repr(z) for z in self.inspected_prefix],
            "claimed_empty": bool(self.claimed_empty),
        }

    @property
    def commitment(self) -> str:
        return sha256_hex_of_certificate(self.to_dict())


def continuity_at_empty(
    family: ProjectiveFamily,
    sequence: Union[CylinderSequence, Sequence[Cylinder], Iterable[Cylinder]],
    *,
    content: Optional[ContentFunction] = None,
    strategies: Optional[Mapping[int, SelectionStrategy]] = None,
    claimed_empty: Optional[bool] = None,
    config: Optional[ExtensionConfig] = None,
) -> ContinuityCertificate:
    """
    Either content(A_n) -> 0 along the horizon, or a point of every inspected
    A_n is built.

    The point belongs to ⋂ A_n only if the sequence is finite and fully
    inspected.  With claimed_empty the caller asserts ⋂ A_n = ∅; such a
    witness refutes the claim (InvariantViolation).  A point of a longer
    sequence refutes nothing and is returned as `inspected_prefix`.
    """
    cfg = resolve_config(config) if config is not None else family.config
    seq = sequence if isinstance(sequence, CylinderSequence) else CylinderSequence(sequence)
    if claimed_empty is None:
        claimed_empty = seq.claimed_empty
    content = content or ContentFunction(family, config=cfg)
    terms = seq.terms(cfg.horizon)
    if not terms:
        raise DomainError(f"{seq.label}: empty sequence")
    contents = tuple(content.check_antitone(seq, cfg.horizon))
    epsilon = contents[-1]

    if epsilon <= cfg.tolerance:
        logger.info(
            "[Continuity] %s: content vanishes (n=%s, content=%s)",
            seq.label, len(contents), render_extended(epsilon),
        )
        return ContinuityCertificate(
            label=seq.label, contents=contents, epsilon=epsilon, vanishes=True, claimed_empty=bool(claimed_empty)
        )

    extractor = WitnessExtractor(
        family,
        [c.indicator() for c in terms],
        [c.max_index for c in terms],
        bound=Fraction(1),
        epsilon=epsilon,
        strategies=strategies,
        config=cfg,
    )
    depth = max(c.max_index for c in terms) + 1
    point = extractor.witness().prefix(depth)
    for n, c in enumerate(terms):
        if point not in c:
            raise WitnessSearchError(f"{seq.label}: witness {point!r} misses A_{n}")

    if not seq.exhausted_within(cfg.horizon):
        logger.warning(
            "[Continuity] %s: content still %s after %s terms; %r lies in the inspected A_n only (inconclusive)",
            seq.label, render_extended(epsilon), len(contents), point,
        )
        return ContinuityCertificate(
            label=seq.label,
            contents=contents,
            epsilon=epsilon,
            vanishes=False,
            claimed_empty=bool(claimed_empty),
            inspected_prefix=point,
        )

    logger.info(
        "[Continuity] %s: content stays >= %s; witness prefix of length %s lies in every A_n",
        seq.label, render_extended(epsilon), depth,
    )
    if claimed_empty:
        raise InvariantViolation(
            f"{seq.label}: claimed empty intersection, but {point!r} lies in every A_n",
            analysis={"witness": [repr(z) for z in point], "epsilon": render_extended(epsilon)},
        )
    return ContinuityCertificate(
        label=seq.label,
        contents=contents,
        epsilon=epsilon,
        vanishes=False,
        witness=point,
        claimed_empty=False,
        inspected_prefix=point,
    )
