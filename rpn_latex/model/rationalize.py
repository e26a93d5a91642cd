"""
Rationalization of Floating-Point Values

Tries to express a float exactly as (integer or small fraction) times one
of a fixed list of constants: 1, pi, pi^2, 1/pi, sqrt(pi), sqrt(2 pi),
ln 2, sqrt(n) for small squarefree n, and the golden ratio.

For each candidate factor f (in order), value/f is split into an integer
part and a fractional part, and the fractional part is approximated with
a Stern-Brocot (Farey mediant) search with a bounded denominator. The first
factor whose reconstruction is within the tolerance wins.

Usage:
    from rpn_latex.model.rationalize import rationalize

    rationalize(0.5).to_latex()                  # '\\frac{1}{2}'
    rationalize(3.14159265358979).to_latex()     # '\\pi'
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .exprs import (
    CommandExpr, Expr, PrefixExpr, SubscriptSuperscriptExpr, TextExpr,
    concatenate,
)


DEFAULT_MAX_DENOMINATOR = 500
DEFAULT_TOLERANCE = 1e-8

GOLDEN_RATIO = (1.0 + np.sqrt(5.0)) / 2.0

SQUAREFREE_ROOTS = (2, 3, 5, 6, 7, 10, 11, 13, 14, 15, 17, 19)


@dataclass(frozen=True)
class RationalFactor:
    """A constant factor with its rendering as numerator / denominator parts."""
    value: float
    numerator_expr: Optional[Expr] = None
    denominator_expr: Optional[Expr] = None


def _sqrt_expr(expr: Expr) -> Expr:
    return CommandExpr('sqrt', [expr])


def build_factors() -> List[RationalFactor]:
    """Candidate factors, in the order they are tried."""
    pi = CommandExpr('pi')
    factors = [
        RationalFactor(1.0),
        RationalFactor(np.pi, pi),
        RationalFactor(np.pi ** 2, SubscriptSuperscriptExpr(pi, None, TextExpr('2'))),
        RationalFactor(1.0 / np.pi, None, pi),
        RationalFactor(np.sqrt(np.pi), _sqrt_expr(pi)),
        RationalFactor(np.sqrt(2.0 * np.pi), _sqrt_expr(concatenate(TextExpr('2'), pi))),
        RationalFactor(np.log(2.0), concatenate(CommandExpr('ln'), TextExpr('2'))),
    ]
    for n in SQUAREFREE_ROOTS:
        factors.append(RationalFactor(np.sqrt(float(n)), _sqrt_expr(TextExpr(str(n)))))
    factors.append(RationalFactor(GOLDEN_RATIO, CommandExpr('phi')))
    factors.append(RationalFactor(1.0 / GOLDEN_RATIO, None, CommandExpr('phi')))
    return factors


FACTORS = build_factors()


def stern_brocot_fraction(
    x: float,
    max_denominator: int = DEFAULT_MAX_DENOMINATOR,
    tolerance: float = DEFAULT_TOLERANCE
) -> Tuple[int, int]:
    """
    Best fraction p/q (q <= max_denominator) for 0 <= x <= 1, found by
    repeatedly taking mediants between the bracketing fractions.
    """
    if x < tolerance:
        return 0, 1
    if x > 1.0 - tolerance:
        return 1, 1
    a, b = 0, 1  # lower bracket a/b
    c, d = 1, 1  # upper bracket c/d
    while b + d <= max_denominator:
        p, q = a + c, b + d
        mediant = p / q
        if abs(mediant - x) < tolerance:
            return p, q
        if mediant < x:
            a, b = p, q
        else:
            c, d = p, q
    # No exact hit; return the closer bracket
    if abs(a / b - x) <= abs(c / d - x):
        return a, b
    return c, d


def _times_factor(n: int, factor_expr: Optional[Expr]) -> Optional[Expr]:
    """n times factor, with trivial parts omitted. None means '1'."""
    if factor_expr is None:
        return None if n == 1 else TextExpr(str(n))
    if n == 1:
        return factor_expr
    return concatenate(TextExpr(str(n)), factor_expr)


def _render(numerator: int, denominator: int, factor: RationalFactor) -> Expr:
    numerator_expr = _times_factor(numerator, factor.numerator_expr)
    if numerator_expr is None:
        numerator_expr = TextExpr('1')
    denominator_expr = _times_factor(denominator, factor.denominator_expr)
    if numerator == 0:
        return TextExpr('0')
    if denominator_expr is None:
        return numerator_expr
    return CommandExpr.frac(numerator_expr, denominator_expr)


def rationalize(
    value: float,
    max_denominator: int = DEFAULT_MAX_DENOMINATOR,
    tolerance: float = DEFAULT_TOLERANCE
) -> Optional[Expr]:
    """
    Express value as a rational multiple of a known constant.

    Returns None if value is not finite or no factor gives a close enough match.
    """
    if not np.isfinite(value):
        return None
    magnitude = abs(float(value))
    for factor in FACTORS:
        x = magnitude / factor.value
        integer_part = int(np.floor(x))
        p, q = stern_brocot_fraction(x - integer_part, max_denominator, tolerance)
        numerator = integer_part * q + p
        if abs(numerator / q * factor.value - magnitude) >= tolerance:
            continue
        expr = _render(numerator, q, factor)
        if value < 0 and numerator != 0:
            expr = PrefixExpr.unary_minus(expr)
        return expr
    return None
