"""
Algebra Engine Bridge

Converts between Expr trees and a computer algebra engine.

- ExprToEngine: Expr -> infix string in the usual CAS syntax
  ("x^2+2*x*y", "sin(x)/(1+x)", "[[a,b],[c,d]]")
- EngineToExpr: nested-tuple engine value -> Expr

Engine values are plain Python data:
    ('number', p, q)         rational p/q
    ('float', d)             floating point value
    ('symbol', name)         variable ('x', 'alpha', 'x_1'); '~' is Euler's e
    ('string', s)
    ('add', t1, t2, ...)
    ('multiply', f1, f2, ...)
    ('power', base, exponent)
    ('derivative', f, x)
    ('call', fn_name, (arg1, arg2, ...))
    ('matrix', rows)         rows is a sequence of sequences (or a flat vector)
Bare ints, floats, Fractions and strings are accepted as numbers and symbols.

Usage:
    from rpn_latex.cas.bridge import expr_to_engine_input, engine_output_to_expr

    expr_to_engine_input(expr)                            # 'x^2+1'
    engine_output_to_expr(('add', ('symbol', 'x'), 1))    # InfixExpr x+1
"""

from fractions import Fraction
from typing import Any, List, Optional, Sequence
import re

import numpy as np

from ..editor.errors import EngineConversionError
from ..model.exprs import (
    ArrayExpr, CommandExpr, DelimiterExpr, Expr, ExprType, FontExpr, FunctionCallExpr,
    InfixExpr, PrefixExpr, SequenceExpr, SubscriptSuperscriptExpr, TextExpr,
    concatenate,
)
from ..utils.latex_text import latex_escape


# LaTeX commands that are spelled out as variable names ('\alpha' <-> 'alpha')
LATEX_LETTER_COMMANDS = frozenset([
    'alpha', 'beta', 'chi', 'delta', 'epsilon', 'phi', 'gamma', 'eta',
    'iota', 'varphi', 'kappa', 'lambda', 'mu', 'nu', 'omega', 'pi',
    'vartheta', 'rho', 'sigma', 'tau', 'upsilon', 'theta', 'xi', 'psi',
    'zeta', 'Delta', 'varepsilon', 'Phi', 'Gamma', 'varkappa', 'Lambda',
    'varpi', 'Omega', 'Pi', 'varrho', 'Sigma', 'varsigma', 'Upsilon',
    'Theta', 'Xi', 'Psi', 'digamma', 'mho', 'nabla', 'varDelta', 'varPhi',
    'varGamma', 'varLambda', 'varOmega', 'varPi', 'varTheta', 'varSigma',
    'varUpsilon', 'varXi', 'varPsi',
])

UNARY_ENGINE_FUNCTIONS = frozenset([
    'sin', 'cos', 'tan', 'sinh', 'cosh', 'tanh',
    'arcsin', 'arccos', 'arctan', 'arcsinh', 'arccosh', 'arctanh',
    'log', 'contract', 'det',
])

# (editor command name, engine function name)
FUNCTION_TRANSLATIONS = [
    ('ln', 'log'),
    ('Tr', 'contract'),
    ('sin^{-1}', 'arcsin'),
    ('cos^{-1}', 'arccos'),
    ('tan^{-1}', 'arctan'),
    ('sinh^{-1}', 'arcsinh'),
    ('cosh^{-1}', 'arccosh'),
    ('tanh^{-1}', 'arctanh'),
]

# sec(x) -> 1/cos(x)
RECIPROCAL_FUNCTIONS = {
    'sec': 'cos', 'csc': 'sin', 'cot': 'tan',
    'sech': 'cosh', 'csch': 'sinh', 'coth': 'tanh',
}

# sin^2(x) -> sin(x)^2, sec^2(x) -> cos(x)^(-2)
SQUARED_FUNCTIONS = {
    'sin^2': ('sin', 2), 'cos^2': ('cos', 2), 'tan^2': ('tan', 2),
    'sinh^2': ('sinh', 2), 'cosh^2': ('cosh', 2), 'tanh^2': ('tanh', 2),
    'sec^2': ('cos', -2), 'csc^2': ('sin', -2), 'cot^2': ('tan', -2),
    'sech^2': ('cosh', -2), 'csch^2': ('sinh', -2), 'coth^2': ('tanh', -2),
}

# Operators written as LaTeX commands inside an InfixExpr
OPERATOR_COMMANDS = {'cdot': '*', 'times': '*', 'div': '/', 'ne': '!=', 'le': '<=', 'ge': '>='}

BINARY_OPERATORS = ('+', '-', '*', '/', '=', '<', '>', ',', '!')

VARIABLE_NAME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9_]*$')
# Subscripts may start with a digit (x_1) but may not contain '_'
SUBSCRIPT_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9]+$')
SYMBOL_PATTERN = re.compile(r'^([a-zA-Z][a-zA-Z0-9]*)(?:_([a-zA-Z0-9]+))?$')


def translate_function_name(name: str, to_engine: bool) -> str:
    for editor_name, engine_name in FUNCTION_TRANSLATIONS:
        if to_engine and name == editor_name:
            return engine_name
        if not to_engine and name == engine_name:
            return editor_name
    return name


# =============================================================================
# Expr -> Engine
# =============================================================================

class ExprToEngine:
    """Emits the engine input string for one Expr."""

    def __init__(self):
        self.pieces: List[str] = []
        self._emitters = {
            ExprType.TEXT: self.emit_text_expr,
            ExprType.COMMAND: self.emit_command_expr,
            ExprType.FONT: self.emit_font_expr,
            ExprType.INFIX: self.emit_infix_expr,
            ExprType.PREFIX: self.emit_prefix_expr,
            ExprType.POSTFIX: self.emit_postfix_expr,
            ExprType.FUNCTION_CALL: self.emit_function_call_expr,
            ExprType.SEQUENCE: self.emit_sequence_expr,
            ExprType.DELIMITER: self.emit_delimiter_expr,
            ExprType.SUBSCRIPT_SUPERSCRIPT: self.emit_subscriptsuperscript_expr,
            ExprType.ARRAY: self.emit_array_expr,
        }

    def convert(self, expr: Expr) -> str:
        self.pieces = []
        self.emit_expr(expr)
        return ''.join(self.pieces)

    def error(self, message: str, offending_expr: Optional[Expr] = None):
        raise EngineConversionError(message, offending_expr)

    def emit(self, s: str):
        self.pieces.append(s)

    def emit_expr(self, expr: Expr):
        emitter = self._emitters.get(expr.expr_type)
        if emitter is None:
            if expr.expr_type == ExprType.PLACEHOLDER:
                self.error("Placeholders not allowed", expr)
            self.error(f"Unknown expr type: {expr.expr_type.value}", expr)
        emitter(expr)

    def emit_parenthesized_expr(self, expr: Expr):
        self.emit('(')
        self.emit_expr(expr)
        self.emit(')')

    def emit_function_call(self, function_name: str, argument_exprs: Sequence[Expr]):
        self.emit(function_name)
        self.emit('(')
        for i, argument_expr in enumerate(argument_exprs):
            if i > 0:
                self.emit(',')
            self.emit_expr(argument_expr)
        self.emit(')')

    def emit_text_expr(self, expr: TextExpr):
        text = expr.text
        if expr.looks_like_negative_number():
            self.emit('(' + text + ')')
        elif expr.looks_like_number() or is_valid_variable_name(text) or text in BINARY_OPERATORS:
            self.emit(text)
        else:
            self.error(f"Invalid text: {text}", expr)

    def emit_command_expr(self, expr: CommandExpr):
        variable_name = expr_as_variable_name(expr)
        if variable_name is not None:
            self.emit(variable_name)
            return
        if expr.operand_count() == 0 and expr.command_name in OPERATOR_COMMANDS:
            self.emit(OPERATOR_COMMANDS[expr.command_name])
            return

        # \operatorname{sech}{x} carries its function name as the first operand
        if expr.command_name == 'operatorname' and expr.operand_count() == 2 and \
           isinstance(expr.operand_exprs[0], TextExpr):
            command_name = expr.operand_exprs[0].text
            args = expr.operand_exprs[1:]
        else:
            command_name = expr.command_name
            args = expr.operand_exprs
        engine_function = translate_function_name(command_name, True)

        if command_name == 'frac' and len(args) == 2:
            self.emit_parenthesized_expr(args[0])
            self.emit('/')
            self.emit_parenthesized_expr(args[1])
        elif command_name == 'sqrt' and len(args) == 1:
            if expr.options:
                # \sqrt[3]{x} -> (x)^(1/3)
                self.emit_parenthesized_expr(args[0])
                self.emit(f"^(1/{expr.options})")
            else:
                self.emit_function_call('sqrt', args)
        elif engine_function in UNARY_ENGINE_FUNCTIONS and len(args) == 1:
            self.emit_function_call(engine_function, args)
        elif command_name in RECIPROCAL_FUNCTIONS and len(args) == 1:
            self.emit('(1/')
            self.emit_function_call(RECIPROCAL_FUNCTIONS[command_name], args)
            self.emit(')')
        elif command_name in SQUARED_FUNCTIONS and len(args) == 1:
            function_name, power = SQUARED_FUNCTIONS[command_name]
            self.emit_function_call(function_name, args)
            self.emit(f"^({power})" if power < 0 else f"^{power}")
        else:
            self.error(f"Unknown command: {command_name}", expr)

    def emit_font_expr(self, expr: FontExpr):
        # Fonts carry no meaning for the engine
        self.emit_expr(expr.expr)

    def emit_infix_expr(self, expr: InfixExpr):
        for operand_expr, operator_expr in zip(expr.operand_exprs, expr.operator_exprs):
            self.emit_expr(operand_expr)
            self.emit_expr(operator_expr)
        self.emit_expr(expr.operand_exprs[-1])

    def emit_prefix_expr(self, expr: PrefixExpr):
        operator = expr.operator_text()
        if operator not in ('-', '+'):
            self.error(f"Unsupported prefix operator: {operator}", expr)
        self.emit(operator)
        self.emit_parenthesized_expr(expr.base_expr)

    def emit_postfix_expr(self, expr):
        self.emit_parenthesized_expr(expr.base_expr)
        self.emit_expr(expr.operator_expr)

    def emit_function_call_expr(self, expr: FunctionCallExpr):
        fn_name = expr_as_variable_name(expr.fn_expr)
        if fn_name is None:
            self.error("Invalid function name", expr.fn_expr)
        self.emit_function_call(fn_name, expr.extract_argument_exprs())

    def emit_sequence_expr(self, expr: SequenceExpr):
        exprs = expr.exprs
        for i, subexpr in enumerate(exprs):
            self.emit_expr(subexpr)
            # Juxtaposition is multiplication, except after a leading sign
            is_sign = i == 0 and (subexpr.is_text_expr_with('-') or subexpr.is_text_expr_with('+'))
            if i < len(exprs) - 1 and not is_sign:
                self.emit('*')

    def emit_delimiter_expr(self, expr: DelimiterExpr):
        left, right = expr.left_type, expr.right_type
        if left == '.' and right == '.':
            self.emit_expr(expr.inner_expr)
        elif (left, right) in (('(', ')'), ('[', ']'), ('\\{', '\\}')):
            self.emit_parenthesized_expr(expr.inner_expr)
        else:
            self.error("Unsupported delimiters", expr)

    def emit_subscriptsuperscript_expr(self, expr: SubscriptSuperscriptExpr):
        base_expr = expr.base_expr
        subscript_expr = expr.subscript_expr
        superscript_expr = expr.superscript_expr

        if subscript_expr is not None:
            # Only simple subscripted variables such as x_1
            base_name = expr_as_variable_name(base_expr)
            subscript_name = expr_as_variable_name(subscript_expr, allow_initial_digit=True)
            if base_name is None or subscript_name is None:
                self.error("Cannot use subscript here", expr)
            self.emit(f"{base_name}_{subscript_name}")
            if superscript_expr is not None:
                self.emit('^')
                self.emit_parenthesized_expr(superscript_expr)
            return

        # e^x, with either italic or roman e
        if base_expr.is_text_expr_with('e') or (
                isinstance(base_expr, FontExpr) and base_expr.typeface == 'roman' and
                base_expr.expr.is_text_expr_with('e')):
            self.emit_function_call('exp', [superscript_expr])
            return

        self.emit_expr(base_expr)
        self.emit('^')
        simple_exponent = isinstance(superscript_expr, TextExpr) and (
            (superscript_expr.looks_like_number() and
             not superscript_expr.looks_like_negative_number()) or
            is_valid_variable_name(superscript_expr.text))
        if simple_exponent:
            self.emit_expr(superscript_expr)
        else:
            self.emit_parenthesized_expr(superscript_expr)

    def emit_array_expr(self, expr: ArrayExpr):
        if not expr.is_matrix():
            self.error("Invalid matrix type", expr)
        # 1xN and Nx1 matrices are passed as flat vectors
        if expr.row_count == 1 or expr.column_count == 1:
            elements = [element for row in expr.element_exprs for element in row]
            self._emit_bracketed_list(elements)
            return
        self.emit('[')
        for row_index, row in enumerate(expr.element_exprs):
            if row_index > 0:
                self.emit(',')
            self._emit_bracketed_list(row)
        self.emit(']')

    def _emit_bracketed_list(self, exprs: Sequence[Expr]):
        self.emit('[')
        for i, element_expr in enumerate(exprs):
            if i > 0:
                self.emit(',')
            self.emit_expr(element_expr)
        self.emit(']')


def is_valid_variable_name(s: str, allow_initial_digit: bool = False) -> bool:
    pattern = SUBSCRIPT_NAME_PATTERN if allow_initial_digit else VARIABLE_NAME_PATTERN
    return pattern.match(s) is not None


def expr_as_variable_name(expr: Expr, allow_initial_digit: bool = False) -> Optional[str]:
    """'x' for TextExpr x, 'alpha' for \\alpha, else None."""
    if isinstance(expr, TextExpr) and is_valid_variable_name(expr.text, allow_initial_digit):
        return expr.text
    if isinstance(expr, CommandExpr) and expr.operand_count() == 0 and \
       expr.command_name in LATEX_LETTER_COMMANDS:
        return expr.command_name
    if isinstance(expr, FontExpr):
        return expr_as_variable_name(expr.expr, allow_initial_digit)
    return None


# =============================================================================
# Engine -> Expr
# =============================================================================

class EngineToExpr:
    """Builds Exprs from nested-tuple engine values."""

    def to_expr(self, value: Any) -> Expr:
        if isinstance(value, bool):
            return TextExpr('true' if value else 'false')
        if isinstance(value, (int, np.integer)):
            return self.number_to_expr(int(value), 1)
        if isinstance(value, Fraction):
            return self.number_to_expr(value.numerator, value.denominator)
        if isinstance(value, (float, np.floating)):
            return self.float_to_expr(float(value))
        if isinstance(value, str):
            return self.symbol_to_expr(value)
        if isinstance(value, tuple) and value and isinstance(value[0], str):
            return self.node_to_expr(value[0], value[1:])
        raise EngineConversionError(f"Unrecognized engine value: {value!r}")

    def node_to_expr(self, head: str, args: tuple) -> Expr:
        if head == 'number':
            numerator = int(args[0])
            denominator = int(args[1]) if len(args) > 1 else 1
            return self.number_to_expr(numerator, denominator)
        if head == 'float':
            return self.float_to_expr(float(args[0]))
        if head == 'symbol':
            return self.symbol_to_expr(args[0])
        if head == 'string':
            return TextExpr('"' + latex_escape(args[0]) + '"')
        if head == 'add':
            return self.add_to_expr(list(args))
        if head == 'multiply':
            return self.multiply_to_expr(list(args))
        if head == 'power' and len(args) == 2:
            return self.power_to_expr(args[0], args[1])
        if head == 'derivative' and len(args) == 2:
            return self.derivative_to_expr(args[0], args[1])
        if head == 'call':
            return self.function_call_to_expr(args[0], list(args[1]))
        if head == 'matrix':
            return self.matrix_to_expr(args[0])
        raise EngineConversionError(f"Unrecognized engine node: {head}")

    def number_to_expr(self, numerator: int, denominator: int) -> Expr:
        value = Fraction(numerator, denominator)
        magnitude = abs(value)
        if magnitude.denominator == 1:
            expr = TextExpr(str(magnitude.numerator))
        else:
            expr = CommandExpr.frac(TextExpr(str(magnitude.numerator)),
                                    TextExpr(str(magnitude.denominator)))
        return PrefixExpr.unary_minus(expr) if value < 0 else expr

    def float_to_expr(self, value: float) -> Expr:
        text = np.format_float_positional(abs(value), precision=12, trim='-')
        return PrefixExpr.unary_minus(TextExpr(text)) if value < 0 else TextExpr(text)

    def symbol_to_expr(self, name: str) -> Expr:
        # The engine spells Euler's number '~'
        if name == '~':
            return FontExpr.roman_text('e')
        match = SYMBOL_PATTERN.match(name)
        if match is None:
            return FontExpr.roman_text(name)
        base_expr = _name_to_expr(match.group(1))
        if match.group(2) is not None:
            return SubscriptSuperscriptExpr(base_expr, _name_to_expr(match.group(2)))
        return base_expr

    def add_to_expr(self, terms: List[Any]) -> Expr:
        # '+' with a negative right side becomes '-' (see InfixExpr.add_exprs)
        result_expr = self.to_expr(terms[0])
        for term in terms[1:]:
            result_expr = InfixExpr.combine_infix(result_expr, self.to_expr(term), TextExpr('+'))
        return result_expr

    def multiply_to_expr(self, factors: List[Any]) -> Expr:
        if not factors:
            return TextExpr('1')
        first = _as_fraction(factors[0])

        # (1/3) * x^3 -> x^3/3
        if first is not None and abs(first.numerator) == 1 and first.denominator != 1 and \
           len(factors) > 1:
            result_expr = CommandExpr.frac(
                self.multiply_to_expr(factors[1:]), TextExpr(str(first.denominator)))
            return PrefixExpr.unary_minus(result_expr) if first < 0 else result_expr

        negate = first == -1
        if negate:
            factors = factors[1:]
            if not factors:
                return PrefixExpr.unary_minus(TextExpr('1'))
        result_expr = self.to_expr(factors[0])
        for factor in factors[1:]:
            if _is_integer_term(factor):
                result_expr = InfixExpr.combine_infix(
                    result_expr, self.to_expr(factor), CommandExpr('cdot'))
            else:
                result_expr = concatenate(result_expr, self.to_expr(factor))
        if negate:
            result_expr = PrefixExpr.unary_minus(DelimiterExpr.autoparenthesize(result_expr))
        return result_expr

    def power_to_expr(self, base: Any, exponent: Any) -> Expr:
        base_expr = self.to_expr(base)
        exponent_value = _as_fraction(exponent)
        if exponent_value is not None:
            if exponent_value == -1:
                return CommandExpr.frac(TextExpr('1'), base_expr)
            if exponent_value < 0 and exponent_value.denominator == 1:
                return CommandExpr.frac(TextExpr('1'), SubscriptSuperscriptExpr(
                    DelimiterExpr.parenthesize_for_power(base_expr), None,
                    self.number_to_expr(-exponent_value.numerator, 1)))
            if exponent_value == Fraction(1, 2):
                return CommandExpr('sqrt', [base_expr])
            if exponent_value == Fraction(-1, 2):
                return CommandExpr.frac(TextExpr('1'), CommandExpr('sqrt', [base_expr]))
        return SubscriptSuperscriptExpr(
            DelimiterExpr.parenthesize_for_power(base_expr), None, self.to_expr(exponent))

    def derivative_to_expr(self, function: Any, variable: Any) -> Expr:
        d_dx_expr = CommandExpr.frac(
            TextExpr('d'), SequenceExpr([TextExpr('d'), self.to_expr(variable)]))
        return concatenate(d_dx_expr, self.to_expr(function))

    def function_call_to_expr(self, fn_name: str, args: List[Any]) -> Expr:
        if fn_name in UNARY_ENGINE_FUNCTIONS and len(args) == 1:
            # Built-in LaTeX function: \sin{x}, \sin^{-1}{x}
            command_name = translate_function_name(fn_name, False)
            return CommandExpr(command_name, [self.to_expr(args[0])])
        if fn_name == 'exp' and len(args) == 1:
            return SubscriptSuperscriptExpr(FontExpr.roman_text('e'), None, self.to_expr(args[0]))
        if fn_name == 'sqrt' and len(args) == 1:
            return CommandExpr('sqrt', [self.to_expr(args[0])])
        arguments_expr = InfixExpr.combine_infix_all(
            [self.to_expr(arg) for arg in args], TextExpr(','))
        return FunctionCallExpr(self.symbol_to_expr(fn_name),
                                DelimiterExpr.parenthesize(arguments_expr))

    def matrix_to_expr(self, rows: Sequence[Any]) -> Expr:
        rows = list(rows)
        if not rows:
            raise EngineConversionError("Empty matrix")
        # A flat vector is a column
        if not isinstance(rows[0], (list, np.ndarray)):
            rows = [[element] for element in rows]
        column_count = len(rows[0])
        if any(len(row) != column_count for row in rows):
            raise EngineConversionError("Ragged matrix")
        element_exprs = [[self.to_expr(element) for element in row] for row in rows]
        return ArrayExpr('bmatrix', len(rows), column_count, element_exprs)


def _name_to_expr(name: str) -> Expr:
    if name in LATEX_LETTER_COMMANDS:
        return CommandExpr(name)
    if len(name) == 1:
        return TextExpr(name)
    # Multi-letter names are set in roman
    return FontExpr.roman_text(name)


def _as_fraction(value: Any) -> Optional[Fraction]:
    """Exact rational value of a number node, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, np.integer)):
        return Fraction(int(value))
    if isinstance(value, Fraction):
        return value
    if isinstance(value, tuple) and len(value) >= 2 and value[0] == 'number':
        return Fraction(int(value[1]), int(value[2]) if len(value) > 2 else 1)
    return None


def _is_integer_term(value: Any) -> bool:
    """Integers and integer^integer need an explicit \\cdot when multiplied."""
    fraction = _as_fraction(value)
    if fraction is not None:
        return fraction.denominator == 1
    if isinstance(value, tuple) and len(value) == 3 and value[0] == 'power':
        base, exponent = _as_fraction(value[1]), _as_fraction(value[2])
        return base is not None and exponent is not None and \
            base.denominator == 1 and exponent.denominator == 1
    return False


# =============================================================================
# Entry Points
# =============================================================================

def expr_to_engine_input(expr: Expr) -> str:
    """Raises EngineConversionError for anything the engine can't represent."""
    return ExprToEngine().convert(expr)


def engine_output_to_expr(value: Any) -> Expr:
    return EngineToExpr().to_expr(value)
