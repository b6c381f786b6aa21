#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Projective families of finite-dimensional marginals
===================================================
  A family assigns to every window S a probability measure mu_S on
  prod_{n in S} X_n such that, for S ⊆ T,

        (pi_{T->S})_* mu_T = mu_S                     (projectivity)

  ProductFamily     : mu_S = ⊗_{n in S} mu_n         (the case extended to a measure)
  ExplicitFamily    : finite joint laws given atom by atom
  MarkovChainFamily : path marginals of a finite Markov chain (numpy matrix powers)

Redlines:
  - every coordinate measure must have total mass 1 (InvariantViolation)
  - projectivity is checked, not assumed, for families given atom by atom
  - the family is immutable; marginals are memoised per window
"""

from __future__ import annotations

import itertools
import logging
from fractions import Fraction
from typing import Any, Callable, Dict, Hashable, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from cylinder_algebra import Box, MeasurableSet, reindex
from measure_backend import (
    CoordinateMeasure,
    DiscreteMeasure,
    DomainError,
    Extended,
    ExtensionConfig,
    InvariantViolation,
    ext_add,
    ext_close,
    ext_mul,
    ext_sum,
    is_probability,
    render_extended,
    resolve_config,
    as_extended,
)
from measurable_functions import Window, _as_index, window

logger = logging.getLogger(__name__)

Breakpoints = Optional[Callable[[int], Optional[Tuple[Any, ...]]]]


# ===========================================================
# Section 1: finite-dimensional marginals mu_S
# ===========================================================

class FiniteMarginal:
    """mu_S: integrates functions of an assignment over the window S."""

    window: Window = frozenset()

    def integrate(self, g: Callable[[Dict[int, Any]], Any], *, breakpoints: Breakpoints = None) -> Extended:
        raise NotImplementedError

    def measure(self, A: MeasurableSet) -> Extended:
        A = self._on_window(A)
        return self.integrate(lambda y: Fraction(1) if A.contains(y) else Fraction(0), breakpoints=A.breakpoints)

    def _on_window(self, A: MeasurableSet) -> MeasurableSet:
        if not isinstance(A, MeasurableSet):
            raise DomainError(f"expected MeasurableSet, got {type(A).__name__}")
        if A.window == self.window:
            return A
        # sets on a sub-window are pulled back; anything else is a domain error
        return reindex(A.window, A, self.window)


class ProductMarginal(FiniteMarginal):
    """⊗_{n in S} mu_n, integrated coordinate by coordinate (Fubini)."""

    def __init__(self, family: "ProductFamily", S: Window):
        self.family = family
        self.window = window(S)
        self._order = tuple(sorted(self.window))
        for i in self._order:
            family.coordinate(i)

    def __repr__(self) -> str:
        return f"ProductMarginal({list(self._order)})"

    def integrate(self, g, *, breakpoints: Breakpoints = None) -> Extended:
        cfg = self.family.config
        order = self._order

        def _inner(pos: int, partial: Dict[int, Any]) -> Extended:
            if pos == len(order):
                return as_extended(g(dict(partial)), context=f"integrand on {list(order)}")
            i = order[pos]
            mu = self.family.coordinate(i)

            def _slice(v: Any) -> Extended:
                partial[i] = v
                try:
                    return _inner(pos + 1, partial)
                finally:
                    del partial[i]

            return mu.integrate(_slice, breakpoints=breakpoints(i) if breakpoints else None, config=cfg)

        return _inner(0, {})

    def measure(self, A: MeasurableSet) -> Extended:
        A = self._on_window(A)
        if isinstance(A, Box):
            value: Extended = Fraction(1)
            for i, side in A.sides:
                value = ext_mul(value, self.family.coordinate(i).measure(side))
                if value == 0:
                    break
            return value
        return super().measure(A)


class AtomicMarginal(FiniteMarginal):
    """Finitely many atoms {assignment tuple (sorted window order): weight}."""

    def __init__(self, S: Window, atoms: Mapping[Tuple[Hashable, ...], Any], *, label: str = "atomic"):
        self.window = window(S)
        self._order = tuple(sorted(self.window))
        checked: Dict[Tuple[Hashable, ...], Extended] = {}
        for key, w in atoms.items():
            key = tuple(key)
            if len(key) != len(self._order):
                raise DomainError(f"{label}: atom {key!r} does not match window {list(self._order)}")
            checked[key] = ext_add(checked.get(key, Fraction(0)), as_extended(w, context=f"{label}{key!r}"))
        self.atoms = checked
        self.label = label

    def __repr__(self) -> str:
        return f"AtomicMarginal({list(self._order)}, atoms={len(self.atoms)})"

    def integrate(self, g, *, breakpoints: Breakpoints = None) -> Extended:
        return ext_sum(
            ext_mul(w, as_extended(g(dict(zip(self._order, key))), context=f"{self.label} integrand"))
            for key, w in self.atoms.items()
            if w != 0
        )

    def pushforward(self, S: Iterable[int]) -> Dict[Tuple[Hashable, ...], Extended]:
        S = window(S)
        if not S <= self.window:
            raise DomainError(f"pushforward onto {sorted(S)} needs a sub-window of {list(self._order)}")
        keep = [pos for pos, i in enumerate(self._order) if i in S]
        out: Dict[Tuple[Hashable, ...], Extended] = {}
        for key, w in self.atoms.items():
            k = tuple(key[p] for p in keep)
            out[k] = ext_add(out.get(k, Fraction(0)), w)
        return out


# ===========================================================
# Section 2: families
# ===========================================================

class ProjectiveFamily:
    is_product = False

    def __init__(self, *, config: Optional[ExtensionConfig] = None):
        self.config = resolve_config(config)
        self._marginals: Dict[Window, FiniteMarginal] = {}

    def marginal(self, S: Iterable[int]) -> FiniteMarginal:
        S = window(S)
        m = self._marginals.get(S)
        if m is None:
            m = self._build_marginal(S)
            self._marginals[S] = m
        return m

    def _build_marginal(self, S: Window) -> FiniteMarginal:
        raise NotImplementedError

    def coordinate(self, n: int) -> CoordinateMeasure:
        raise NotImplementedError


class ProductFamily(ProjectiveFamily):
    """
    mu_S = ⊗_{n in S} mu_n.

    `measures` is either a Sequence (coordinates 0..len-1 only) or a callable
    n -> mu_n describing the whole countable family.
    """

    is_product = True

    def __init__(
        self,
        measures: Union[Sequence[CoordinateMeasure], Callable[[int], CoordinateMeasure]],
        *,
        config: Optional[ExtensionConfig] = None,
        label: str = "product",
    ):
        super().__init__(config=config)
        if isinstance(measures, CoordinateMeasure):
            raise DomainError("ProductFamily: pass a sequence or a callable n -> mu_n (see ProductFamily.iid)")
        if isinstance(measures, Sequence):
            self._fixed: Optional[Tuple[CoordinateMeasure, ...]] = tuple(measures)
            self._source: Optional[Callable[[int], CoordinateMeasure]] = None
            if not self._fixed:
                raise DomainError("ProductFamily: empty sequence of coordinate measures")
        elif callable(measures):
            self._fixed = None
            self._source = measures
        else:
            raise DomainError(f"ProductFamily: unsupported measures {type(measures).__name__}")
        self._coordinates: Dict[int, CoordinateMeasure] = {}
        self.label = label

    @classmethod
    def iid(cls, measure: CoordinateMeasure, *, config: Optional[ExtensionConfig] = None) -> "ProductFamily":
        return cls(lambda n: measure, config=config, label=f"iid[{measure!r}]")

    def __repr__(self) -> str:
        size = "inf" if self._fixed is None else len(self._fixed)
        return f"ProductFamily({self.label}, size={size})"

    def coordinate(self, n: int) -> CoordinateMeasure:
        n = _as_index(n)
        mu = self._coordinates.get(n)
        if mu is not None:
            return mu
        if self._fixed is not None:
            if n >= len(self._fixed):
                raise DomainError(f"{self.label}: no coordinate space for index {n} (family has {len(self._fixed)})")
            mu = self._fixed[n]
        else:
            mu = self._source(n)
        if not isinstance(mu, CoordinateMeasure):
            raise DomainError(f"{self.label}: mu_{n} is not a CoordinateMeasure ({type(mu).__name__})")
        if not is_probability(mu, config=self.config):
            raise InvariantViolation(
                f"{self.label}: mu_{n} has total mass {render_extended(mu.total_mass())}, expected 1",
                analysis={"index": n, "total_mass": render_extended(mu.total_mass())},
            )
        self._coordinates[n] = mu
        return mu

    def _build_marginal(self, S: Window) -> FiniteMarginal:
        return ProductMarginal(self, S)


class ExplicitFamily(ProjectiveFamily):
    """
    law(S) -> {assignment tuple in sorted(S) order: weight}; each law must be a
    probability. Projectivity is checked by validate_projectivity.
    """

    def __init__(
        self,
        law: Callable[[Window], Mapping[Tuple[Hashable, ...], Any]],
        *,
        config: Optional[ExtensionConfig] = None,
        label: str = "explicit",
    ):
        super().__init__(config=config)
        if not callable(law):
            raise DomainError(f"{label}: law must be callable")
        self._law = law
        self.label = label

    def __repr__(self) -> str:
        return f"ExplicitFamily({self.label})"

    def _build_marginal(self, S: Window) -> FiniteMarginal:
        m = AtomicMarginal(S, self._law(S), label=f"{self.label}{sorted(S)}")
        total = ext_sum(m.atoms.values())
        if not ext_close(total, Fraction(1), self.config.tolerance):
            raise InvariantViolation(
                f"{self.label}: marginal on {sorted(S)} has total mass {render_extended(total)}",
                analysis={"window": sorted(S), "total_mass": render_extended(total)},
            )
        return m

    def coordinate(self, n: int) -> CoordinateMeasure:
        n = _as_index(n)
        atoms = self.marginal({n}).atoms
        return DiscreteMeasure({key[0]: w for key, w in atoms.items()}, label=f"{self.label}[{n}]")


class MarkovChainFamily(ExplicitFamily):
    """
    Path marginals of a time-homogeneous chain on finitely many states:

        P(X_{s1}=a1, ..., X_{sm}=am) = (pi P^{s1})[a1] * prod_j P^{s_{j+1}-s_j}[a_j, a_{j+1}]
    """

    def __init__(
        self,
        initial: Sequence[float],
        transition: Sequence[Sequence[float]],
        *,
        states: Optional[Sequence[Hashable]] = None,
        config: Optional[ExtensionConfig] = None,
    ):
        pi = np.asarray(initial, dtype=np.float64)
        P = np.asarray(transition, dtype=np.float64)
        n = pi.shape[0]
        if P.shape != (n, n):
            raise DomainError(f"transition must be {n}x{n}, got {P.shape}")
        cfg = resolve_config(config)
        tol = cfg.tolerance * n
        if np.any(pi < 0) or abs(float(pi.sum()) - 1.0) > tol:
            raise InvariantViolation("initial distribution must be a probability vector")
        if np.any(P < 0) or np.any(np.abs(P.sum(axis=1) - 1.0) > tol):
            raise InvariantViolation(
                "transition matrix must be row-stochastic",
                analysis={"row_sums": [repr(float(s)) for s in P.sum(axis=1)]},
            )
        self.states: Tuple[Hashable, ...] = tuple(states) if states is not None else tuple(range(n))
        if len(self.states) != n:
            raise DomainError(f"states has {len(self.states)} labels for {n} states")
        self._pi = pi
        self._P = P
        super().__init__(self._path_law, config=cfg, label="markov")

    def _path_law(self, S: Window) -> Dict[Tuple[Hashable, ...], float]:
        order = sorted(S)
        n = len(self.states)
        if not order:
            return {(): 1.0}
        first = self._pi @ np.linalg.matrix_power(self._P, order[0])
        steps = [np.linalg.matrix_power(self._P, b - a) for a, b in zip(order, order[1:])]
        out: Dict[Tuple[Hashable, ...], float] = {}
        for path in itertools.product(range(n), repeat=len(order)):
            p = float(first[path[0]])
            for j, step in enumerate(steps):
                if p == 0.0:
                    break
                p *= float(step[path[j], path[j + 1]])
            if p > 0.0:
                out[tuple(self.states[s] for s in path)] = p
        return out


# ===========================================================
# Section 3: projectivity check
# ===========================================================

def validate_projectivity(
    family: ProjectiveFamily,
    pairs: Iterable[Tuple[Iterable[int], Iterable[int]]],
    *,
    test_sets: Optional[Mapping[Window, Sequence[MeasurableSet]]] = None,
) -> int:
    """
    For each (S, T) with S ⊆ T check (pi_{T->S})_* mu_T = mu_S.

    Atomic marginals are compared atom by atom; otherwise every test set A
    on S is compared through mu_T(reindex(S, A, T)) = mu_S(A).  Product
    families are projective as soon as each mu_n is a probability.
    Returns the number of comparisons performed.
    """
    tol = family.config.tolerance
    checks = 0
    for S, T in pairs:
        S, T = window(S), window(T)
        if not S <= T:
            raise DomainError(f"projectivity pair needs S ⊆ T, got {sorted(S)} / {sorted(T)}")
        mS, mT = family.marginal(S), family.marginal(T)
        if isinstance(mS, AtomicMarginal) and isinstance(mT, AtomicMarginal):
            pushed = mT.pushforward(S)
            for key in set(pushed) | set(mS.atoms):
                a = pushed.get(key, Fraction(0))
                b = mS.atoms.get(key, Fraction(0))
                checks += 1
                if not ext_close(a, b, tol):
                    raise InvariantViolation(
                        f"projectivity fails on {sorted(S)} ⊆ {sorted(T)} at {key!r}: "
                        f"{render_extended(a)} != {render_extended(b)}",
                        analysis={"S": sorted(S), "T": sorted(T), "atom": repr(key)},
                    )
        elif isinstance(family, ProductFamily):
            for i in T:
                family.coordinate(i)
                checks += 1
        for A in (test_sets or {}).get(S, ()):
            a = mT.measure(reindex(S, A, T))
            b = mS.measure(A)
            checks += 1
            if not ext_close(a, b, tol):
                raise InvariantViolation(
                    f"projectivity fails on {sorted(S)} ⊆ {sorted(T)}: "
                    f"mu_T(preimage) = {render_extended(a)} != mu_S(A) = {render_extended(b)}",
                    analysis={"S": sorted(S), "T": sorted(T)},
                )
    logger.debug("[Family] projectivity checked: %s comparisons", checks)
    return checks
