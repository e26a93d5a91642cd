"""
Tests for Numeric Evaluation and Rationalization

Tests:
1. Operator precedence on flat infix expressions
2. Fractions, roots, parentheses and unary minus
3. Variables and failure cases
4. Stern-Brocot fraction search
5. Rationalizing plain fractions
6. Rationalizing multiples of constants
"""

import math

from ..exprs import (
    CommandExpr, DelimiterExpr, InfixExpr, PrefixExpr, TextExpr,
)
from ..evaluate import evaluate
from ..rationalize import rationalize, stern_brocot_fraction


def _infix(*pieces):
    """_infix('1', '+', '2') -> InfixExpr; command names start with a backslash."""
    def to_expr(piece):
        if isinstance(piece, str):
            return CommandExpr(piece[1:]) if piece.startswith('\\') else TextExpr(piece)
        return piece
    exprs = [to_expr(piece) for piece in pieces]
    return InfixExpr(exprs[0::2], exprs[1::2])


def test_precedence():
    """a+b*c is evaluated with * binding tighter."""
    print("\n" + "=" * 60)
    print("TEST: Operator Precedence")
    print("=" * 60)

    cases = [
        (_infix('1', '+', '2', '*', '3'), 7.0),
        (_infix('2', '*', '3', '+', '4'), 10.0),
        (_infix('8', '-', '2', '-', '3'), 3.0),
        (_infix('8', '/', '2', '/', '2'), 2.0),
        (_infix('1', '+', '6', '/', '3', '-', '1'), 2.0),
        (_infix('2', '\\cdot', '3', '\\times', '4'), 24.0),
    ]
    for expr, expected in cases:
        value = evaluate(expr)
        print(f"  {expr.to_latex()} = {value}")
        assert value == expected, f"Expected {expected}, got {value}"

    print("  PASSED!")


def test_commands_and_delimiters():
    """\\frac, \\sqrt, parentheses and unary minus."""
    print("\n" + "=" * 60)
    print("TEST: Commands and Delimiters")
    print("=" * 60)

    assert evaluate(CommandExpr.frac(TextExpr('1'), TextExpr('4'))) == 0.25
    assert evaluate(CommandExpr('sqrt', [TextExpr('16')])) == 4.0
    cube_root = evaluate(CommandExpr('sqrt[3]', [TextExpr('27')]))
    assert abs(cube_root - 3.0) < 1e-9

    grouped = _infix(DelimiterExpr.parenthesize(_infix('1', '+', '2')), '*', '3')
    assert evaluate(grouped) == 9.0
    assert evaluate(PrefixExpr.unary_minus(TextExpr('2.5'))) == -2.5

    print("  PASSED!")


def test_variables_and_failures():
    """Unknown names, bad operators and division by zero give None."""
    print("\n" + "=" * 60)
    print("TEST: Variables and Failures")
    print("=" * 60)

    x_squared = _infix('x', '*', 'x')
    assert evaluate(x_squared) is None
    assert evaluate(x_squared, {'x': 3.0}) == 9.0
    assert evaluate(CommandExpr('alpha'), {'alpha': 0.5}) == 0.5

    assert evaluate(_infix('1', '/', '0')) is None
    assert evaluate(CommandExpr.frac(TextExpr('1'), TextExpr('0'))) is None
    assert evaluate(_infix('1', '=', '1')) is None
    assert evaluate(CommandExpr('sqrt', [TextExpr('-1')])) is None
    assert evaluate(CommandExpr('sin', [TextExpr('1')])) is None

    print("  PASSED!")


def test_stern_brocot():
    """Mediant search finds small-denominator fractions."""
    print("\n" + "=" * 60)
    print("TEST: Stern-Brocot Search")
    print("=" * 60)

    assert stern_brocot_fraction(0.5) == (1, 2)
    assert stern_brocot_fraction(1.0 / 3.0) == (1, 3)
    assert stern_brocot_fraction(0.0) == (0, 1)
    assert stern_brocot_fraction(0.999999999999) == (1, 1)
    assert stern_brocot_fraction(17.0 / 499.0) == (17, 499)
    p, q = stern_brocot_fraction(math.pi - 3)
    assert q <= 500

    print("  PASSED!")


def test_rationalize_fractions():
    """Plain rationals render as integers or \\frac."""
    print("\n" + "=" * 60)
    print("TEST: Rationalize Fractions")
    print("=" * 60)

    cases = [
        (0.5, '\\frac{1}{2}'),
        (3.0, '3'),
        (0.0, '0'),
        (-0.75, '-\\frac{3}{4}'),
        (2.5, '\\frac{5}{2}'),
    ]
    for value, expected in cases:
        latex = rationalize(value).to_latex()
        print(f"  {value} -> {latex}")
        assert latex == expected, f"Expected {expected!r}, got {latex!r}"

    assert rationalize(float('nan')) is None
    assert rationalize(float('inf')) is None

    print("  PASSED!")


def test_rationalize_constants():
    """Multiples of pi, square roots and the golden ratio."""
    print("\n" + "=" * 60)
    print("TEST: Rationalize Constants")
    print("=" * 60)

    cases = [
        (3.14159265358979, '\\pi'),
        (2 * math.pi, '2\\pi'),
        (math.pi / 2, '\\frac{\\pi}{2}'),
        (1 / math.pi, '\\frac{1}{\\pi}'),
        (math.sqrt(2), '\\sqrt{2}'),
        (math.log(2), '\\ln2'),
        ((1 + math.sqrt(5)) / 2, '\\phi'),
    ]
    for value, expected in cases:
        latex = rationalize(value).to_latex()
        print(f"  {value} -> {latex}")
        assert latex == expected, f"Expected {expected!r}, got {latex!r}"

    print("  PASSED!")


# =============================================================================
# Run All Tests
# =============================================================================

def run_all_tests():
    """Run all numeric tests."""
    print("\n" + "=" * 60)
    print("EVALUATE / RATIONALIZE TESTS")
    print("=" * 60)

    tests = [
        test_precedence,
        test_commands_and_delimiters,
        test_variables_and_failures,
        test_stern_brocot,
        test_rationalize_fractions,
        test_rationalize_constants,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"\n  FAILED: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print("\n" + "=" * 60)
    print(f"RESULTS: {passed} passed, {failed} failed")
    print("=" * 60)

    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    exit(0 if success else 1)
