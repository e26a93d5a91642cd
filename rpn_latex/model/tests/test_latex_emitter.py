"""
Tests for LaTeX Emission

Tests:
1. Every ExprType has an emitter
2. Brace elision and command spacing
3. Fonts, sizes and arrays
4. Selection highlighting by path
5. Placeholders in export mode
"""

from ..exprs import (
    ArrayExpr, CommandExpr, DelimiterExpr, ExprType, FontExpr, InfixExpr,
    PlaceholderExpr, SequenceExpr, SubscriptSuperscriptExpr, TextExpr,
)
from ..expr_path import ExprPath
from ..latex_emitter import LatexEmitter


def test_emitter_covers_all_variants():
    """Dispatch table is exhaustive over ExprType."""
    print("\n" + "=" * 60)
    print("TEST: Emitter Dispatch Coverage")
    print("=" * 60)

    assert set(LatexEmitter._EMITTERS) == set(ExprType)

    print(f"  {len(ExprType)} variants covered")
    print("  PASSED!")


def test_grouping_and_spacing():
    """Single tokens skip braces; commands are spaced from letters."""
    print("\n" + "=" * 60)
    print("TEST: Grouping and Spacing")
    print("=" * 60)

    cases = [
        (CommandExpr.frac(TextExpr('1'), TextExpr('2')), '\\frac{1}{2}'),
        (SequenceExpr([CommandExpr('alpha'), TextExpr('x')]), '\\alpha x'),
        (SequenceExpr([CommandExpr('alpha'), TextExpr('+')]), '\\alpha+'),
        (TextExpr('-3'), '{-3}'),
        (TextExpr(''), '{}'),
        (SubscriptSuperscriptExpr(CommandExpr('sum'), TextExpr('i'), TextExpr('n')),
         '\\sum^n_i'),
        (CommandExpr('atop', [TextExpr('a'), TextExpr('b')]), '{a\\atop b}'),
    ]
    for expr, expected in cases:
        latex = expr.to_latex()
        print(f"  {latex}")
        assert latex == expected, f"Expected {expected!r}, got {latex!r}"

    print("  PASSED!")


def test_fonts_and_arrays():
    """Typeface commands, size groups and environments."""
    print("\n" + "=" * 60)
    print("TEST: Fonts and Arrays")
    print("=" * 60)

    x = TextExpr('x')
    assert FontExpr(x).with_size_adjustment(1).to_latex() == '{\\large x}'
    assert FontExpr(TextExpr('R'), 'blackboard', True).to_latex() == '\\pmb{\\mathbb{R}}'
    assert FontExpr(x, 'normal', True).to_latex() == '\\boldsymbol{x}'
    assert x.as_bold().to_latex() == '\\boldsymbol{x}'

    matrix = ArrayExpr('bmatrix', 1, 2, [[TextExpr('a'), TextExpr('b')]])
    assert matrix.to_latex() == '\\begin{bmatrix}\na & b\n\\end{bmatrix}\n'

    ratio = DelimiterExpr.parenthesize(
        InfixExpr([x, TextExpr('y')], [TextExpr('/')]))
    assert ratio.to_latex() == '\\left(x\\middle/y\\right)'
    assert ratio.as_fixed_size(True).to_latex() == '(x/y)'

    print("  PASSED!")


def test_selection_highlight():
    """The node at the selected path is wrapped in a highlight class."""
    print("\n" + "=" * 60)
    print("TEST: Selection Highlight")
    print("=" * 60)

    expr = InfixExpr([TextExpr('x'), TextExpr('y')], [TextExpr('+')])
    latex = expr.to_latex(ExprPath(expr, (2,)))
    print(f"  {latex}")
    assert latex == 'x+\\htmlClass{dissect_highlight}{y}'

    whole = expr.to_latex(ExprPath(expr, ()))
    assert whole == '\\htmlClass{dissect_highlight}{x+y}'

    # A path into a different root never matches
    other = InfixExpr([TextExpr('x'), TextExpr('y')], [TextExpr('+')])
    assert expr.to_latex(ExprPath(other, (2,))) == 'x+y'

    print("  PASSED!")


def test_placeholder_export_mode():
    """Placeholders render as plain squares when exporting."""
    print("\n" + "=" * 60)
    print("TEST: Placeholder Rendering")
    print("=" * 60)

    placeholder = PlaceholderExpr()
    assert placeholder.to_latex() == '\\htmlClass{placeholder_expr}{\\blacksquare}'
    assert placeholder.to_latex(export_mode=True) == '\\blacksquare'

    print("  PASSED!")


# =============================================================================
# Run All Tests
# =============================================================================

def run_all_tests():
    """Run all emitter tests."""
    print("\n" + "=" * 60)
    print("LATEX EMITTER TESTS")
    print("=" * 60)

    tests = [
        test_emitter_covers_all_variants,
        test_grouping_and_spacing,
        test_fonts_and_arrays,
        test_selection_highlight,
        test_placeholder_export_mode,
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
