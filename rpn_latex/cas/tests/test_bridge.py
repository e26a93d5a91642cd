"""
Tests for the Algebra Engine Bridge

Tests:
1. Simple infix and powers to engine syntax
2. Functions: translations, reciprocal and squared trig, roots
3. Variable names: Greek letters, subscripts, e^x
4. Implicit multiplication, function calls, matrices
5. Unconvertible exprs raise EngineConversionError
6. Engine values back to Exprs (numbers, sums, products, powers)
7. Symbols, function calls and matrices from the engine
"""

from fractions import Fraction

import pytest

from ..bridge import engine_output_to_expr, expr_to_engine_input
from ...editor.errors import EditorError, EngineConversionError
from ...model.exprs import (
    ArrayExpr, CommandExpr, DelimiterExpr, FontExpr, FunctionCallExpr, InfixExpr,
    PlaceholderExpr, PrefixExpr, SequenceExpr, SubscriptSuperscriptExpr, TextExpr,
)


x, y = TextExpr('x'), TextExpr('y')


def test_infix_and_powers():
    """x^2+1, fractions and negative numbers."""
    print("\n" + "=" * 60)
    print("TEST: Infix and Powers")
    print("=" * 60)

    x_squared = SubscriptSuperscriptExpr(x, None, TextExpr('2'))
    assert expr_to_engine_input(x_squared) == 'x^2'
    assert expr_to_engine_input(
        InfixExpr.combine_infix(x_squared, TextExpr('1'), TextExpr('+'))) == 'x^2+1'

    # Compound exponents are parenthesized
    x_to_y_plus_1 = SubscriptSuperscriptExpr(
        x, None, InfixExpr.combine_infix(y, TextExpr('1'), TextExpr('+')))
    assert expr_to_engine_input(x_to_y_plus_1) == 'x^(y+1)'

    assert expr_to_engine_input(CommandExpr.frac(x, TextExpr('2'))) == '(x)/(2)'
    assert expr_to_engine_input(TextExpr('-3')) == '(-3)'
    assert expr_to_engine_input(PrefixExpr.unary_minus(x)) == '-(x)'
    assert expr_to_engine_input(
        InfixExpr.combine_infix(x, y, CommandExpr('cdot'))) == 'x*y'

    print("  PASSED!")


def test_functions():
    """ln -> log, sec -> 1/cos, sin^2 -> sin()^2, cube roots."""
    print("\n" + "=" * 60)
    print("TEST: Functions")
    print("=" * 60)

    assert expr_to_engine_input(CommandExpr('sin', [x])) == 'sin(x)'
    assert expr_to_engine_input(CommandExpr('ln', [x])) == 'log(x)'
    assert expr_to_engine_input(CommandExpr('sin^{-1}', [x])) == 'arcsin(x)'
    assert expr_to_engine_input(CommandExpr('sec', [x])) == '(1/cos(x))'
    assert expr_to_engine_input(CommandExpr('sin^2', [x])) == 'sin(x)^2'
    assert expr_to_engine_input(CommandExpr('csc^2', [x])) == 'sin(x)^(-2)'
    assert expr_to_engine_input(CommandExpr('sqrt', [x])) == 'sqrt(x)'
    assert expr_to_engine_input(CommandExpr('sqrt[3]', [x])) == '(x)^(1/3)'

    # \operatorname{sech}{x}
    sech = CommandExpr('operatorname', [TextExpr('sech'), x])
    assert expr_to_engine_input(sech) == '(1/cosh(x))'

    print("  PASSED!")


def test_variable_names():
    """Greek letters spelled out, x_1 style subscripts, e^x -> exp(x)."""
    print("\n" + "=" * 60)
    print("TEST: Variable Names")
    print("=" * 60)

    assert expr_to_engine_input(CommandExpr('alpha')) == 'alpha'
    assert expr_to_engine_input(
        SubscriptSuperscriptExpr(CommandExpr('alpha'), TextExpr('1'))) == 'alpha_1'
    assert expr_to_engine_input(
        SubscriptSuperscriptExpr(x, TextExpr('1'), TextExpr('2'))) == 'x_1^(2)'
    assert expr_to_engine_input(
        SubscriptSuperscriptExpr(TextExpr('e'), None, x)) == 'exp(x)'
    assert expr_to_engine_input(
        SubscriptSuperscriptExpr(FontExpr.roman_text('e'), None, x)) == 'exp(x)'
    # Fonts are stripped
    assert expr_to_engine_input(FontExpr.roman_text('y')) == 'y'

    print("  PASSED!")


def test_sequences_calls_and_matrices():
    """2x -> 2*x, f(x,y), nested lists for matrices."""
    print("\n" + "=" * 60)
    print("TEST: Sequences, Calls, Matrices")
    print("=" * 60)

    assert expr_to_engine_input(SequenceExpr([TextExpr('2'), x])) == '2*x'
    assert expr_to_engine_input(SequenceExpr([TextExpr('-'), x])) == '-x'

    args = DelimiterExpr.parenthesize(InfixExpr.combine_infix(x, y, TextExpr(',')))
    assert expr_to_engine_input(FunctionCallExpr(TextExpr('f'), args)) == 'f(x,y)'
    assert expr_to_engine_input(DelimiterExpr.parenthesize(x)) == '(x)'

    a, b, c, d = (TextExpr(s) for s in 'abcd')
    matrix = ArrayExpr('bmatrix', 2, 2, [[a, b], [c, d]])
    assert expr_to_engine_input(matrix) == '[[a,b],[c,d]]'
    column = ArrayExpr('pmatrix', 3, 1, [[a], [b], [c]])
    assert expr_to_engine_input(column) == '[a,b,c]'

    print("  PASSED!")


def test_conversion_errors():
    """Unsupported exprs raise EngineConversionError carrying the offending expr."""
    print("\n" + "=" * 60)
    print("TEST: Conversion Errors")
    print("=" * 60)

    placeholder = PlaceholderExpr()
    with pytest.raises(EngineConversionError) as excinfo:
        expr_to_engine_input(InfixExpr.combine_infix(x, placeholder, TextExpr('+')))
    assert excinfo.value.offending_expr is placeholder
    assert isinstance(excinfo.value, EditorError)

    bra_ket = DelimiterExpr('\\langle', '\\rangle', x)
    with pytest.raises(EngineConversionError) as excinfo:
        expr_to_engine_input(bra_ket)
    assert excinfo.value.offending_expr is bra_ket

    # (x+y)_1 is not a variable name
    x_plus_y = InfixExpr.combine_infix(x, y, TextExpr('+'))
    with pytest.raises(EngineConversionError):
        expr_to_engine_input(SubscriptSuperscriptExpr(x_plus_y, TextExpr('1')))

    with pytest.raises(EngineConversionError):
        expr_to_engine_input(CommandExpr('overbrace', [x]))

    cases = ArrayExpr('cases', 1, 2, [[x, y]])
    with pytest.raises(EngineConversionError):
        expr_to_engine_input(cases)

    print("  PASSED!")


def test_engine_numbers_and_arithmetic():
    """Rationals, sums with negative terms, 1/n factors, negative powers."""
    print("\n" + "=" * 60)
    print("TEST: Engine Numbers and Arithmetic")
    print("=" * 60)

    assert engine_output_to_expr(3).text == '3'

    half = engine_output_to_expr(('number', 1, 2))
    assert isinstance(half, CommandExpr) and half.command_name == 'frac'
    assert [e.text for e in half.operand_exprs] == ['1', '2']

    minus_three = engine_output_to_expr(Fraction(-3))
    assert isinstance(minus_three, PrefixExpr) and minus_three.is_unary_minus()

    assert engine_output_to_expr(('add', ('symbol', 'x'), 1)).to_latex() == 'x+1'
    assert engine_output_to_expr(('add', ('symbol', 'x'), ('number', -3, 1))).to_latex() == 'x-3'

    # (1/3) x^3 -> x^3 / 3
    third_cube = engine_output_to_expr(
        ('multiply', ('number', 1, 3), ('power', ('symbol', 'x'), 3)))
    assert isinstance(third_cube, CommandExpr) and third_cube.command_name == 'frac'
    assert isinstance(third_cube.operand_exprs[0], SubscriptSuperscriptExpr)
    assert third_cube.operand_exprs[1].text == '3'

    # 2 * 3^2 needs an explicit \cdot
    product = engine_output_to_expr(('multiply', 2, ('power', 3, 2)))
    assert isinstance(product, InfixExpr)
    assert product.operator_exprs[0].is_command_expr_with(0, 'cdot')

    reciprocal = engine_output_to_expr(('power', ('symbol', 'x'), -1))
    assert reciprocal.command_name == 'frac'
    assert reciprocal.operand_exprs[0].text == '1'

    root = engine_output_to_expr(('power', ('symbol', 'x'), ('number', 1, 2)))
    assert root.is_command_expr_with(1, 'sqrt')

    assert engine_output_to_expr(('float', 0.5)).text == '0.5'

    print("  PASSED!")


def test_engine_symbols_calls_matrices():
    """Symbols, built-in and generic functions, and matrices."""
    print("\n" + "=" * 60)
    print("TEST: Engine Symbols, Calls, Matrices")
    print("=" * 60)

    e = engine_output_to_expr(('symbol', '~'))
    assert isinstance(e, FontExpr) and e.typeface == 'roman'

    theta = engine_output_to_expr(('symbol', 'theta'))
    assert theta.is_command_expr_with(0, 'theta')

    alpha_1 = engine_output_to_expr('alpha_1')
    assert isinstance(alpha_1, SubscriptSuperscriptExpr)
    assert alpha_1.base_expr.is_command_expr_with(0, 'alpha')
    assert alpha_1.subscript_expr.text == '1'

    # Multi-letter names are roman
    abc = engine_output_to_expr(('symbol', 'abc'))
    assert isinstance(abc, FontExpr) and abc.typeface == 'roman'

    arcsin = engine_output_to_expr(('call', 'arcsin', (('symbol', 'x'),)))
    assert arcsin.is_command_expr_with(1, 'sin^{-1}')

    f_xy = engine_output_to_expr(('call', 'f', (('symbol', 'x'), ('symbol', 'y'))))
    assert isinstance(f_xy, FunctionCallExpr)
    assert f_xy.argument_count() == 2

    matrix = engine_output_to_expr(('matrix', [[1, 2], [3, 4]]))
    assert isinstance(matrix, ArrayExpr)
    assert (matrix.array_type, matrix.row_count, matrix.column_count) == ('bmatrix', 2, 2)
    assert matrix.element_exprs[1][0].text == '3'

    vector = engine_output_to_expr(('matrix', [1, 2, 3]))
    assert (vector.row_count, vector.column_count) == (3, 1)

    with pytest.raises(EngineConversionError):
        engine_output_to_expr(('matrix', [[1, 2], [3]]))
    with pytest.raises(EngineConversionError):
        engine_output_to_expr(('no_such_node', 1))
    with pytest.raises(EngineConversionError):
        engine_output_to_expr(object())

    print("  PASSED!")


def run_all_tests():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("ALGEBRA ENGINE BRIDGE TESTS")
    print("=" * 60)

    tests = [
        test_infix_and_powers,
        test_functions,
        test_variable_names,
        test_sequences_calls_and_matrices,
        test_conversion_errors,
        test_engine_numbers_and_arithmetic,
        test_engine_symbols_calls_matrices,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"  FAILED: {e}")
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
