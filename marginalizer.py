#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Marginalizer: integrating out a window of coordinates
=====================================================

    marginal(S, f)(x) = ∫ f(update(x, S, y)) dmu_S(y)

  Laws:
    marginal(∅, f)                   = f
    marginal(S, 1_{cylinder(S, A)})  = mu_S(A)            (constant)
    f <= g  =>  marginal(S, f) <= marginal(S, g)
    marginal(S ∪ T, f) = marginal(S, marginal(T, f))      (S ∩ T = ∅)

  Coordinates of S outside f's window integrate to the total mass 1 and are
  skipped.  Over a product family a ProductFunction is integrated factor by
  factor; anything else is integrated lazily, at evaluation time.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Tuple

from measure_backend import Extended, ExtensionConfig, ext_mul, resolve_config
from measurable_functions import (
    ConstantFunction,
    CoordinateIndicator,
    MeasurableFunction,
    ProductFunction,
    Window,
    require_measurable,
    window,
)
from projective_family import ProjectiveFamily


class MarginalFunction(MeasurableFunction):
    """x -> ∫ f(update(x, S, y)) dmu_S(y), evaluated on demand."""

    def __init__(self, marginalizer: "Marginalizer", S: Window, f: MeasurableFunction):
        self._marginalizer = marginalizer
        self.integrated = S
        self.inner = f
        self.window = f.window - S
        self.bound = f.bound

    def __repr__(self) -> str:
        return f"MarginalFunction(over={sorted(self.integrated)}, inner={self.inner!r})"

    def _evaluate(self, x: Mapping[int, Any]) -> Any:
        return self._marginalizer.integrate_over(self.integrated, self.inner, x)

    def breakpoints(self, i: int) -> Optional[Tuple[Any, ...]]:
        if i not in self.window:
            return ()
        return self.inner.breakpoints(i)


class Marginalizer:
    def __init__(self, family: ProjectiveFamily, *, config: Optional[ExtensionConfig] = None):
        if not isinstance(family, ProjectiveFamily):
            raise TypeError(f"family must be a ProjectiveFamily, got {type(family).__name__}")
        self.family = family
        self.config = resolve_config(config) if config is not None else family.config

    def marginal(self, S: Iterable[int], f: Any) -> MeasurableFunction:
        f = require_measurable(f, context="marginal")
        S = window(S)
        active = S & f.window
        if not active:
            return f
        if isinstance(f, ConstantFunction):
            return f
        if self.family.is_product and isinstance(f, ProductFunction):
            return self._integrate_factors(active, f)
        return MarginalFunction(self, active, f)

    def _integrate_factors(self, S: Window, f: ProductFunction) -> MeasurableFunction:
        scale: Extended = f.scale
        remaining = {}
        for i, g in f.factors.items():
            if i not in S:
                remaining[i] = g
                continue
            mu = self.family.coordinate(i)
            if isinstance(g, CoordinateIndicator):
                factor = mu.measure(g.coordinate_set)
            else:
                bp = getattr(g, "breakpoints", None)
                factor = mu.integrate(g, breakpoints=bp() if callable(bp) else None, config=self.config)
            scale = ext_mul(scale, factor)
        if not remaining:
            return ConstantFunction(scale)
        return ProductFunction(remaining, scale=scale)

    def integrate_over(self, S: Window, f: MeasurableFunction, x: Mapping[int, Any]) -> Extended:
        fixed = {i: f._arg(x, i) for i in f.window - S}
        return self.family.marginal(S).integrate(
            lambda y: f({**fixed, **y}),
            breakpoints=f.breakpoints,
        )

    def integral(self, f: Any) -> Extended:
        """∫ f d(mu_{window(f)}): the marginal over f's whole window, as a number."""
        f = require_measurable(f, context="integral")
        return self.marginal(f.window, f)({})
