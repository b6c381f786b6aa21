#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Kolmogorov extension: public surface
====================================
    build(mu_0, mu_1, ...)  ->  measure_produit on prod_n X_n
    build(family)           ->  same, for an already assembled projective family
    project(measure, S)     ->  pushforward of measure_produit onto the window S

  Pipeline:
    coordinate measures -> ProjectiveFamily -> ContentFunction
        -> continuity_at_empty (probes) -> ProductMeasure -> check_projective_limit

  Running this module executes the acceptance scenarios (geometric tails,
  fair-coin prefixes, Lebesgue boxes, a Markov chain) twice and requires
  identical certificate commitments.
"""

from __future__ import annotations

import logging
import sys
from fractions import Fraction
from typing import Any, Dict, Iterable, Optional

from content_function import ContentFunction
from cylinder_algebra import CylinderSequence, box_cylinder, whole_space
from measure_backend import (
    CoordinateMeasure,
    DomainError,
    ExtensionConfig,
    ExtensionError,
    FiniteSet,
    Interval,
    _assert_no_float,
    fair_coin,
    geometric,
    lebesgue_unit,
    render_extended,
    resolve_config,
    sha256_hex_of_certificate,
)
from outer_measure_extension import OuterMeasureExtension, ProductMeasure, ProjectedMeasure
from projective_family import MarkovChainFamily, ProductFamily, ProjectiveFamily, validate_projectivity
from projective_limit import check_projective_limit
from witness_extractor import continuity_at_empty

logger = logging.getLogger(__name__)

__all__ = ["build", "project", "main"]


def build(*measures: Any, probes: Iterable[Any] = (), config: Optional[ExtensionConfig] = None) -> ProductMeasure:
    """
    build(family) or build(mu_0, mu_1, ...) or build(n -> mu_n).

    A finite list of coordinate measures describes the coordinates
    0..len-1; asking for a later coordinate is a DomainError.
    """
    if not measures:
        raise DomainError("build needs a projective family or at least one coordinate measure")
    if len(measures) == 1 and isinstance(measures[0], ProjectiveFamily):
        family = measures[0]
        if config is not None and resolve_config(config) != family.config:
            logger.warning("[Build] config argument ignored: the family carries its own")
    elif len(measures) == 1 and callable(measures[0]) and not isinstance(measures[0], CoordinateMeasure):
        family = ProductFamily(measures[0], config=config)
    else:
        for n, mu in enumerate(measures):
            if not isinstance(mu, CoordinateMeasure):
                raise DomainError(f"build: argument {n} is not a CoordinateMeasure ({type(mu).__name__})")
        family = ProductFamily(list(measures), config=config)
    content = ContentFunction(family)
    return OuterMeasureExtension(content).extend(probes)


def project(measure: ProductMeasure, S: Iterable[int]) -> ProjectedMeasure:
    if not isinstance(measure, ProductMeasure):
        raise DomainError(f"project expects a ProductMeasure, got {type(measure).__name__}")
    return measure.project(S)


# ===========================================================
# Smoke / Acceptance
# ===========================================================

def _configure_smoke_logging() -> None:
    """Install a default handler only when the host application has none."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="[%(levelname)s] %(name)s: %(message)s",
        )
    root.setLevel(logging.INFO)


def _run_acceptance_smoke() -> Dict[str, Any]:
    cfg = ExtensionConfig(horizon=6, bisection_depth=24)
    report: Dict[str, Any] = {}

    # geometric tails: content(A_N) = 2^-N, no point lies in every A_N
    geo = build(ProductFamily.iid(geometric(), config=ExtensionConfig()))
    tails = CylinderSequence(
        lambda N: box_cylinder({0: Interval(N, float("inf"))}),
        claimed_empty=True,
        label="geometric_tails",
    )
    cert = continuity_at_empty(geo.family, tails, content=geo.content)
    if not cert.vanishes:
        raise ExtensionError("geometric tails: content did not vanish")
    report["geometric"] = cert.to_dict()

    # fair coin prefixes of zeros: the all-zero point is a witness of the finite sequence
    coin = build(ProductFamily.iid(fair_coin(), config=cfg))
    zeros = CylinderSequence(
        [box_cylinder({i: FiniteSet({0}) for i in range(N)}) for N in range(cfg.horizon)],
        label="coin_zero_prefixes",
    )
    cert = continuity_at_empty(coin.family, zeros, content=coin.content)
    if cert.witness is None or any(z != 0 for z in cert.witness):
        raise ExtensionError(f"coin prefixes: unexpected witness {cert.witness!r}")
    report["coin"] = cert.to_dict()

    # Lebesgue boxes: measure of a box is the product of side lengths
    leb = build(ProductFamily.iid(lebesgue_unit(), config=cfg))
    sides = {0: Interval(0, Fraction(1, 2)), 1: Interval(Fraction(1, 4), 1), 2: Interval(0, Fraction(1, 3))}
    value = leb.measure(box_cylinder(sides))
    if value != Fraction(1, 2) * Fraction(3, 4) * Fraction(1, 3):
        raise ExtensionError(f"Lebesgue box: measure {render_extended(value)}")
    report["lebesgue_box"] = render_extended(value)
    report["lebesgue_limit"] = check_projective_limit(
        leb, [{0}, {0, 1}], super_windows={frozenset({0}): [{0, 2}]}
    ).to_dict()

    # Markov chain: a consistent family that is not a product
    chain = MarkovChainFamily([Fraction(1, 2), Fraction(1, 2)], [[Fraction(3, 4), Fraction(1, 4)], [Fraction(1, 4), Fraction(3, 4)]], config=cfg)
    report["markov_projectivity_checks"] = validate_projectivity(chain, [({0}, {0, 1}), ({1}, {0, 1, 2})])
    markov = build(chain)
    report["markov_total_mass"] = render_extended(markov.measure(whole_space()))
    report["markov_limit"] = check_projective_limit(markov, [{0}, {1, 2}]).to_dict()

    _assert_no_float(report)
    report["commitment"] = sha256_hex_of_certificate(report)
    return report


def main() -> int:
    _configure_smoke_logging()
    logger.info("kolmogorov_extension smoke: START")
    report1 = _run_acceptance_smoke()
    report2 = _run_acceptance_smoke()
    if report1 != report2:
        raise ExtensionError("acceptance failed: two runs produced different certificates")
    logger.info("[Geometric] vanishes=%s contents=%s", report1["geometric"]["vanishes"], report1["geometric"]["contents"])
    logger.info("[Coin] witness=%s", report1["coin"]["witness"])
    logger.info("[Lebesgue] box=%s limit_checks=%s", report1["lebesgue_box"], report1["lebesgue_limit"]["checks"])
    logger.info(
        "[Markov] total=%s projectivity_checks=%s limit_checks=%s",
        report1["markov_total_mass"], report1["markov_projectivity_checks"], report1["markov_limit"]["checks"],
    )
    logger.info("[Commitment] %s", report1["commitment"])
    logger.info("kolmogorov_extension smoke: PASS")
    return 0


if __name__ == "__main__":
    sys.exit(main())
