"""
Expression Tree Model

Immutable expression trees for building LaTeX structurally.

Every node is one of a closed set of variants (see ExprType):
- TextExpr: a raw LaTeX snippet ("x", "2", "+")
- CommandExpr: \\command[options]{operand}{operand}...
- FontExpr: typeface / bold / size wrapper around another node
- InfixExpr: flat operand/operator list (x + y - z)
- PrefixExpr / PostfixExpr: unary operators (-x, x!)
- FunctionCallExpr: f(x, y)
- SequenceExpr: juxtaposition (2x, \\int f\\,dx)
- DelimiterExpr: \\left( ... \\right) or fixed-size (...)
- SubscriptSuperscriptExpr: base with _{sub} and/or ^{sup}
- ArrayExpr: matrices and alignment environments
- PlaceholderExpr: a marker slot for later substitution

Nodes are never mutated. Operations return new nodes and share all
untouched subtrees, so identity (``is``) doubles as change detection.

Usage:
    from rpn_latex.model.exprs import TextExpr, InfixExpr, concatenate

    x_plus_y = InfixExpr.combine_infix(TextExpr('x'), TextExpr('y'), TextExpr('+'))
    two_x = concatenate(TextExpr('2'), TextExpr('x'))
    x_plus_y.to_latex()   # 'x+y'
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple
import re

from ..utils.latex_text import latex_escape, latex_unescape


class ExprType(Enum):
    """The closed set of expression variants."""
    TEXT = "text"
    COMMAND = "command"
    FONT = "font"
    INFIX = "infix"
    PREFIX = "prefix"
    POSTFIX = "postfix"
    FUNCTION_CALL = "function_call"
    SEQUENCE = "sequence"
    DELIMITER = "delimiter"
    SUBSCRIPT_SUPERSCRIPT = "subscriptsuperscript"
    ARRAY = "array"
    PLACEHOLDER = "placeholder"


NUMBER_PATTERN = re.compile(r'^-?\d*\.?\d+$')
NEGATIVE_NUMBER_PATTERN = re.compile(r'^-\d*\.?\d+$')

TYPEFACES = (
    'normal', 'roman', 'sans_serif', 'sans_serif_italic', 'typewriter',
    'blackboard', 'fraktur', 'calligraphic', 'script',
)

MATRIX_TYPES = ('bmatrix', 'Bmatrix', 'matrix', 'pmatrix', 'vmatrix', 'Vmatrix')

INTEGRAL_SIGNS = ('int', 'iint', 'iiint', 'oint', 'oiint', 'oiiint')

# (left, right) -> fused command
COMMAND_PAIR_FUSIONS: Dict[Tuple[str, str], str] = {
    ('int', 'int'): 'iint',
    ('iint', 'int'): 'iiint',
    ('int', 'iint'): 'iiint',
    ('oint', 'oint'): 'oiint',
    ('oiint', 'oint'): 'oiiint',
    ('oint', 'oiint'): 'oiiint',
}


# =============================================================================
# Base Expr
# =============================================================================

class Expr:
    """
    Abstract base of all expression nodes.

    Subclasses are frozen dataclasses with identity equality (eq=False):
    two nodes are "the same" only if they are the same object. Use
    matches() for visual/structural comparison.
    """

    expr_type: ClassVar[ExprType]

    def is_expr_type(self, expr_type: ExprType) -> bool:
        return self.expr_type == expr_type

    def is_text_expr_with(self, text: str) -> bool:
        return False

    def is_command_expr_with(self, operand_count: int, command_name: Optional[str] = None) -> bool:
        return False

    def is_unary_minus_expr(self) -> bool:
        return False

    def is_differential_form(self) -> bool:
        """Check for 'dx', 'dx \\wedge dy', etc."""
        return False

    def is_integral_sign(self) -> bool:
        return False

    def to_latex(self, selected_expr_path=None, export_mode: bool = False) -> str:
        """Render this tree to a LaTeX string."""
        from .latex_emitter import LatexEmitter
        emitter = LatexEmitter(self, selected_expr_path, export_mode=export_mode)
        emitter.expr(self, None)
        return emitter.finished_string()

    def emit(self, emitter, inside_delimiters: bool = False):
        emitter.emit_node(self, inside_delimiters)

    def as_editable_string(self) -> Optional[str]:
        """Math-entry string that recreates this expr, if there is a simple one."""
        return None

    def subexpressions(self) -> List['Expr']:
        return []

    def has_subexpressions(self) -> bool:
        return len(self.subexpressions()) > 0

    def replace_subexpression(self, index: int, new_expr: 'Expr') -> 'Expr':
        raise ValueError(f"{self.expr_type.value} has no subexpression {index}")

    def matches(self, expr: 'Expr') -> bool:
        """Check if this Expr has the same visual content as another one."""
        if self is expr:
            return True
        if self.expr_type != expr.expr_type:
            return False
        if self.has_subexpressions() != expr.has_subexpressions():
            return False
        mine, theirs = self.subexpressions(), expr.subexpressions()
        if len(mine) != len(theirs):
            return False
        return all(a.matches(b) for a, b in zip(mine, theirs))

    def substitute(self, search_expr: 'Expr', substitution_expr: 'Expr') -> 'Expr':
        """Replace everything matching search_expr with substitution_expr."""
        if self.matches(search_expr):
            return substitution_expr
        result = self
        for index, subexpr in enumerate(self.subexpressions()):
            new_subexpr = subexpr.substitute(search_expr, substitution_expr)
            if new_subexpr is not subexpr:
                result = result.replace_subexpression(index, new_subexpr)
        return result

    def find_placeholder_path(self) -> Optional[Tuple[int, ...]]:
        """Child indexes leading to the first PlaceholderExpr (depth-first), or None."""
        if isinstance(self, PlaceholderExpr):
            return ()
        for index, subexpr in enumerate(self.subexpressions()):
            found = subexpr.find_placeholder_path()
            if found is not None:
                return (index,) + found
        return None

    def dissolve(self) -> List['Expr']:
        """Break this expression into its component parts."""
        return [self]

    def as_bold(self) -> 'Expr':
        return FontExpr.wrap(self).with_bold(True).unwrap_if_possible()

    def as_logical_negation(self) -> Optional['Expr']:
        """Logical negation (= -> \\neq etc.), or None if it has no clear meaning."""
        return None

    def with_subscript(self, subscript_expr: Optional['Expr'], autoparenthesize: bool = True) -> 'Expr':
        return self.with_subscript_or_superscript(subscript_expr, True, autoparenthesize)

    def with_superscript(self, superscript_expr: Optional['Expr'], autoparenthesize: bool = True) -> 'Expr':
        return self.with_subscript_or_superscript(superscript_expr, False, autoparenthesize)

    def with_subscript_or_superscript(
        self,
        expr: Optional['Expr'],
        is_subscript: bool,
        autoparenthesize: bool = True
    ) -> 'Expr':
        if expr is None:
            return self
        base_expr = DelimiterExpr.parenthesize_for_power(self) if autoparenthesize else self
        return SubscriptSuperscriptExpr(
            base_expr,
            expr if is_subscript else None,
            None if is_subscript else expr)

    def with_prime(self, autoparenthesize: bool = True) -> 'Expr':
        return self.with_superscript(CommandExpr('prime'), autoparenthesize)

    def to_json(self) -> Dict[str, Any]:
        raise NotImplementedError


def _freeze(exprs) -> Tuple[Expr, ...]:
    return tuple(exprs) if exprs is not None else ()


# =============================================================================
# Leaf Variants
# =============================================================================

@dataclass(frozen=True, eq=False)
class TextExpr(Expr):
    """A snippet of LaTeX source text."""
    text: str

    expr_type: ClassVar[ExprType] = ExprType.TEXT

    @classmethod
    def blank(cls) -> 'TextExpr':
        return cls('')

    @classmethod
    def integer(cls, value) -> Expr:
        """Negative integers are built as a unary minus PrefixExpr, not '-123'."""
        s = str(value)
        if s.startswith('-'):
            return PrefixExpr.unary_minus(cls(s[1:]))
        return cls(s)

    def is_text_expr_with(self, text: str) -> bool:
        return self.text == text

    def looks_like_number(self) -> bool:
        return NUMBER_PATTERN.match(self.text) is not None

    def looks_like_negative_number(self) -> bool:
        return NEGATIVE_NUMBER_PATTERN.match(self.text) is not None

    def matches(self, expr: Expr) -> bool:
        return super().matches(expr) and self.text == expr.text

    def as_editable_string(self) -> Optional[str]:
        return latex_unescape(self.text)

    def as_logical_negation(self) -> Optional[Expr]:
        command = {'<': 'nless', '>': 'ngtr', '=': 'neq'}.get(self.text)
        return CommandExpr(command) if command else None

    def to_json(self) -> Dict[str, Any]:
        return {'expr_type': self.expr_type.value, 'text': self.text}


@dataclass(frozen=True, eq=False)
class PlaceholderExpr(Expr):
    """Marker slot used by the substitute_placeholder command."""

    expr_type: ClassVar[ExprType] = ExprType.PLACEHOLDER

    def as_editable_string(self) -> Optional[str]:
        return '[]'

    def to_json(self) -> Dict[str, Any]:
        return {'expr_type': self.expr_type.value}


# =============================================================================
# CommandExpr
# =============================================================================

@dataclass(frozen=True, eq=False)
class CommandExpr(Expr):
    """
    A LaTeX command such as \\alpha, \\sqrt{x} or \\frac{x}{y}.

    command_name excludes the leading backslash. A name written with
    trailing options ('sqrt[3]') is split into name and options.
    """
    command_name: str
    operand_exprs: Tuple[Expr, ...] = ()
    options: Optional[str] = None

    expr_type: ClassVar[ExprType] = ExprType.COMMAND

    def __post_init__(self):
        name = self.command_name
        if name.endswith(']') and '[' in name:
            index = name.index('[')
            object.__setattr__(self, 'command_name', name[:index])
            object.__setattr__(self, 'options', name[index + 1:-1])
        object.__setattr__(self, 'operand_exprs', _freeze(self.operand_exprs))

    @classmethod
    def frac(cls, numerator_expr: Expr, denominator_expr: Expr) -> 'CommandExpr':
        return cls('frac', (numerator_expr, denominator_expr))

    @staticmethod
    def combine_command_pair(left_command: str, right_command: str) -> Optional[str]:
        """Integral sign fusion: \\int + \\int -> \\iint, etc."""
        return COMMAND_PAIR_FUSIONS.get((left_command, right_command))

    def operand_count(self) -> int:
        return len(self.operand_exprs)

    def is_command_expr_with(self, operand_count: int, command_name: Optional[str] = None) -> bool:
        return (self.operand_count() == operand_count and
                (command_name is None or self.command_name == command_name))

    def is_special_latex_command(self) -> bool:
        """Commands like \\& or \\, that don't start with a letter."""
        return not re.match(r'^[a-zA-Z]', self.command_name)

    def is_integral_sign(self) -> bool:
        return self.operand_count() == 0 and self.command_name in INTEGRAL_SIGNS

    def subexpressions(self) -> List[Expr]:
        return list(self.operand_exprs)

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        operands = list(self.operand_exprs)
        operands[index] = new_expr
        return CommandExpr(self.command_name, operands, self.options)

    def matches(self, expr: Expr) -> bool:
        return (super().matches(expr) and
                self.command_name == expr.command_name and
                self.options == expr.options)

    def as_editable_string(self) -> Optional[str]:
        # \operatorname{...} with a plain text operand
        if self.is_command_expr_with(1, 'operatorname') and \
           isinstance(self.operand_exprs[0], TextExpr):
            return self.operand_exprs[0].text
        return None

    def as_logical_negation(self) -> Optional[Expr]:
        if self.operand_count() != 0:
            return None
        text = {'nless': '<', 'ngtr': '>', 'neq': '=', 'ne': '='}.get(self.command_name)
        if text:
            return TextExpr(text)
        negated = {
            'lt': 'nless', 'gt': 'ngtr', 'le': 'nleq', 'ge': 'ngeq',
            'nleq': 'le', 'ngeq': 'ge', 'in': 'notin', 'notin': 'in',
            'exists': 'nexists', 'nexists': 'exists',
        }.get(self.command_name)
        if negated:
            return CommandExpr(negated)
        # \subset -> \not\subset
        return SequenceExpr((CommandExpr('not'), self))

    def dissolve(self) -> List[Expr]:
        if self.operand_count() == 1:
            return list(self.operand_exprs)
        if self.operand_count() == 2:
            if self.command_name in ('frac', 'overset'):
                return list(self.operand_exprs)
            if self.command_name == 'underset':
                return [self.operand_exprs[1], self.operand_exprs[0]]
        return [self]

    def to_json(self) -> Dict[str, Any]:
        json_data = {
            'expr_type': self.expr_type.value,
            'command_name': self.command_name,
            'operand_exprs': [expr.to_json() for expr in self.operand_exprs],
        }
        if self.options is not None:
            json_data['options'] = self.options
        return json_data


# =============================================================================
# FontExpr
# =============================================================================

SIZE_ADJUSTMENT_COMMANDS = (
    'tiny', 'scriptsize', 'footnotesize', 'small', None,
    'large', 'Large', 'LARGE', 'huge', 'Huge',
)

# Typefaces whose bold variant is rendered with \pmb (poor man's bold)
PMB_TYPEFACES = (
    'sans_serif', 'sans_serif_italic', 'typewriter',
    'blackboard', 'fraktur', 'calligraphic', 'script',
)

TYPEFACE_COMMANDS = {
    'sans_serif': 'mathsf',
    'sans_serif_italic': 'mathsfit',
    'typewriter': 'mathtt',
    'blackboard': 'mathbb',
    'fraktur': 'mathfrak',
    'calligraphic': 'mathcal',
    'script': 'mathscr',
}


@dataclass(frozen=True, eq=False)
class FontExpr(Expr):
    """
    Typeface, bold flag and size adjustment (-4..5) applied to an expression.
    """
    expr: Expr
    typeface: str = 'normal'
    is_bold: bool = False
    size_adjustment: int = 0

    expr_type: ClassVar[ExprType] = ExprType.FONT

    def __post_init__(self):
        if self.typeface not in TYPEFACES:
            raise ValueError(f"Unknown typeface: {self.typeface}")

    @classmethod
    def wrap(cls, expr: Expr) -> 'FontExpr':
        """Wrap expr in a no-op FontExpr unless it already is one."""
        if isinstance(expr, FontExpr):
            return expr
        return cls(expr)

    @classmethod
    def roman(cls, expr: Expr) -> 'FontExpr':
        return cls.wrap(expr).with_typeface('roman')

    @classmethod
    def roman_text(cls, text: str) -> 'FontExpr':
        return cls.roman(TextExpr(latex_escape(text)))

    @staticmethod
    def font_exprs_compatible(left_expr: Expr, right_expr: Expr) -> bool:
        return (isinstance(left_expr, FontExpr) and isinstance(right_expr, FontExpr) and
                left_expr.typeface == right_expr.typeface and
                left_expr.is_bold == right_expr.is_bold and
                left_expr.size_adjustment == right_expr.size_adjustment)

    # Font wrappers around plain leaves are not descended into.
    def has_subexpressions(self) -> bool:
        return self.expr.has_subexpressions()

    def subexpressions(self) -> List[Expr]:
        return [self.expr]

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        return FontExpr(new_expr, self.typeface, self.is_bold, self.size_adjustment)

    def matches(self, expr: Expr) -> bool:
        return super().matches(expr) and FontExpr.font_exprs_compatible(self, expr)

    def as_editable_string(self) -> Optional[str]:
        if self.typeface in ('blackboard', 'calligraphic', 'script'):
            return None
        return self.expr.as_editable_string()

    def dissolve(self) -> List[Expr]:
        return [self.expr]

    def unwrap_if_possible(self) -> Expr:
        """Drop this wrapper if it is a no-op."""
        if self.typeface == 'normal' and not self.is_bold and self.size_adjustment == 0:
            return self.expr
        return self

    def with_typeface(self, typeface: str) -> 'FontExpr':
        return FontExpr(self.expr, typeface, self.is_bold, self.size_adjustment)

    def with_bold(self, is_bold: bool = True) -> 'FontExpr':
        return FontExpr(self.expr, self.typeface, is_bold, self.size_adjustment)

    def with_size_adjustment(self, size_adjustment: int) -> 'FontExpr':
        return FontExpr(self.expr, self.typeface, self.is_bold,
                        max(-4, min(5, size_adjustment)))

    def size_adjustment_command(self) -> Optional[str]:
        return SIZE_ADJUSTMENT_COMMANDS[self.size_adjustment + 4]

    def uses_pmb(self) -> bool:
        return self.is_bold and self.typeface in PMB_TYPEFACES

    def typeface_command(self) -> Optional[str]:
        if self.typeface == 'normal':
            return 'boldsymbol' if self.is_bold else None
        if self.typeface == 'roman':
            return 'bold' if self.is_bold else 'mathrm'
        return TYPEFACE_COMMANDS.get(self.typeface)

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'expr': self.expr.to_json(),
            'typeface': self.typeface,
            'is_bold': self.is_bold,
            'size_adjustment': self.size_adjustment,
        }


# =============================================================================
# InfixExpr
# =============================================================================

@dataclass(frozen=True, eq=False)
class InfixExpr(Expr):
    """
    Two or more operands joined by infix operators, kept flat:
    'x + y * z' is one three-operand node, not a nested tree.

    split_at_index: operator index considered the pivot of the expression
        (normally the most recently inserted operator).
    linebreaks_at: subexpression indexes (2*i = operand i, 2*i+1 = operator i)
        after which a line break is rendered at top level.
    """
    operand_exprs: Tuple[Expr, ...]
    operator_exprs: Tuple[Expr, ...]
    split_at_index: int = 0
    linebreaks_at: Tuple[int, ...] = ()

    expr_type: ClassVar[ExprType] = ExprType.INFIX

    def __post_init__(self):
        object.__setattr__(self, 'operand_exprs', _freeze(self.operand_exprs))
        object.__setattr__(self, 'operator_exprs', _freeze(self.operator_exprs))
        object.__setattr__(self, 'linebreaks_at', tuple(self.linebreaks_at or ()))
        if len(self.operand_exprs) < 2 or \
           len(self.operator_exprs) != len(self.operand_exprs) - 1:
            raise ValueError(
                f"InfixExpr needs n >= 2 operands and n-1 operators, got "
                f"{len(self.operand_exprs)} and {len(self.operator_exprs)}")

    @classmethod
    def combine_infix(
        cls,
        left_expr: Expr,
        right_expr: Expr,
        op_expr: Expr,
        check_special_cases: bool = True
    ) -> 'InfixExpr':
        """Join two expressions with op_expr, flattening existing InfixExprs."""
        if check_special_cases and op_expr.is_text_expr_with('+'):
            return cls.add_exprs(left_expr, right_expr)
        if isinstance(left_expr, InfixExpr):
            operands = list(left_expr.operand_exprs)
            operators = list(left_expr.operator_exprs)
            linebreaks = list(left_expr.linebreaks_at)
            linebreaks_midpoint = 2 * len(left_expr.operand_exprs)
        else:
            operands, operators, linebreaks = [left_expr], [], []
            linebreaks_midpoint = 2
        split_at_index = len(operators)
        operators.append(op_expr)
        if isinstance(right_expr, InfixExpr):
            operands.extend(right_expr.operand_exprs)
            operators.extend(right_expr.operator_exprs)
            linebreaks.extend(linebreaks_midpoint + index for index in right_expr.linebreaks_at)
        else:
            operands.append(right_expr)
        return cls(operands, operators, split_at_index, linebreaks)

    @classmethod
    def combine_infix_all(cls, exprs: List[Expr], op_expr: Expr) -> Expr:
        """Left-associative x op y op z ...; blank if exprs is empty."""
        if not exprs:
            return TextExpr.blank()
        result = exprs[0]
        for expr in exprs[1:]:
            result = cls.combine_infix(result, expr, op_expr)
        return result

    @classmethod
    def add_exprs(cls, left_expr: Expr, right_expr: Expr) -> 'InfixExpr':
        """left + right, turning x + (-y) into x - y."""
        minus = TextExpr('-')
        if right_expr.is_unary_minus_expr():
            return cls.combine_infix(left_expr, right_expr.base_expr, minus, False)
        if isinstance(right_expr, InfixExpr) and \
           right_expr.operand_exprs[0].is_unary_minus_expr() and \
           (right_expr.operator_exprs[0].is_text_expr_with('+') or
                right_expr.operator_exprs[0].is_text_expr_with('-')):
            # x + (-y + z) -> x - y + z
            negated_first = InfixExpr(
                (right_expr.operand_exprs[0].base_expr,) + right_expr.operand_exprs[1:],
                right_expr.operator_exprs,
                right_expr.split_at_index,
                right_expr.linebreaks_at)
            return cls.combine_infix(left_expr, negated_first, minus, False)
        if isinstance(right_expr, SequenceExpr) and len(right_expr.exprs) >= 2 and \
           right_expr.exprs[0].is_unary_minus_expr():
            # x + (-2y) -> x - 2y
            negated_first = SequenceExpr(
                (right_expr.exprs[0].base_expr,) + right_expr.exprs[1:])
            return cls.combine_infix(left_expr, negated_first, minus, False)
        return cls.combine_infix(left_expr, right_expr, TextExpr('+'), False)

    def operator_text(self, op_expr: Optional[Expr] = None) -> Optional[str]:
        """Name of a simple operator ('+', 'cap'); defaults to the split_at operator."""
        if op_expr is None:
            op_expr = self.operator_exprs[self.split_at_index]
        if op_expr.is_command_expr_with(0):
            return op_expr.command_name
        if isinstance(op_expr, TextExpr):
            return op_expr.text
        return None

    def operator_text_at(self, index: int) -> Optional[str]:
        return self.operator_text(self.operator_exprs[index])

    def needs_autoparenthesization(self) -> bool:
        """Low-precedence expressions like x+y."""
        return any(op.is_unary_minus_expr() or op.is_text_expr_with('+') or
                   op.is_text_expr_with('-')
                   for op in self.operator_exprs)

    def is_differential_form(self) -> bool:
        return (all(op.is_command_expr_with(0, 'wedge') for op in self.operator_exprs) and
                all(operand.is_differential_form() for operand in self.operand_exprs))

    def subexpressions(self) -> List[Expr]:
        exprs = []
        for operand_expr, operator_expr in zip(self.operand_exprs, self.operator_exprs):
            exprs.append(operand_expr)
            exprs.append(operator_expr)
        exprs.append(self.operand_exprs[-1])
        return exprs

    # Even indexes are operands, odd indexes are operators.
    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        operands = list(self.operand_exprs)
        operators = list(self.operator_exprs)
        if index % 2 == 0:
            operands[index // 2] = new_expr
        else:
            operators[index // 2] = new_expr
        return InfixExpr(operands, operators, self.split_at_index, self.linebreaks_at)

    def has_linebreak_at(self, index: int) -> bool:
        return index in self.linebreaks_at

    def without_linebreak_at(self, old_index: int) -> 'InfixExpr':
        return InfixExpr(
            self.operand_exprs, self.operator_exprs, self.split_at_index,
            [index for index in self.linebreaks_at if index != old_index])

    def with_linebreak_at(self, new_index: int) -> 'InfixExpr':
        return InfixExpr(
            self.operand_exprs, self.operator_exprs, self.split_at_index,
            self.linebreaks_at + (new_index,))

    def swap_sides_at(self, operator_index: int) -> 'InfixExpr':
        """Swap everything left of operator_index with everything right of it."""
        operands = self.operand_exprs[operator_index + 1:] + self.operand_exprs[:operator_index + 1]
        operators = (self.operator_exprs[operator_index + 1:] +
                     (self.operator_exprs[operator_index],) +
                     self.operator_exprs[:operator_index])
        # Linebreaks are dropped.
        return InfixExpr(operands, operators, len(operators) - self.split_at_index - 1)

    def extract_side_at(self, operator_index: int, side: str) -> Expr:
        """Everything to one side ('left' or 'right') of the given operator."""
        if side == 'right':
            if operator_index == len(self.operator_exprs) - 1:
                return self.operand_exprs[operator_index + 1]
            return InfixExpr(self.operand_exprs[operator_index + 1:],
                             self.operator_exprs[operator_index + 1:])
        if side == 'left':
            if operator_index == 0:
                return self.operand_exprs[0]
            return InfixExpr(self.operand_exprs[:operator_index + 1],
                             self.operator_exprs[:operator_index])
        raise ValueError(f"Invalid side: {side}")

    def as_logical_negation(self) -> Optional[Expr]:
        negated_operator = self.operator_exprs[self.split_at_index].as_logical_negation()
        if negated_operator is None:
            return None
        operators = list(self.operator_exprs)
        operators[self.split_at_index] = negated_operator
        return InfixExpr(self.operand_exprs, operators, self.split_at_index, self.linebreaks_at)

    def dissolve(self) -> List[Expr]:
        return list(self.operand_exprs)

    def as_bold(self) -> Expr:
        # Operators are left alone.
        return InfixExpr(
            [expr.as_bold() for expr in self.operand_exprs],
            self.operator_exprs, self.split_at_index, self.linebreaks_at)

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'operand_exprs': [expr.to_json() for expr in self.operand_exprs],
            'operator_exprs': [expr.to_json() for expr in self.operator_exprs],
            'split_at_index': self.split_at_index,
            'linebreaks_at': list(self.linebreaks_at),
        }


# =============================================================================
# Unary Operators and Function Calls
# =============================================================================

def _operator_name(operator_expr: Expr) -> str:
    if isinstance(operator_expr, TextExpr):
        return operator_expr.text
    if operator_expr.is_command_expr_with(0):
        return operator_expr.command_name
    return ''


@dataclass(frozen=True, eq=False)
class PrefixExpr(Expr):
    """Prefixed unary expressions such as -x or \\neg x."""
    base_expr: Expr
    operator_expr: Expr

    expr_type: ClassVar[ExprType] = ExprType.PREFIX

    @classmethod
    def unary_minus(cls, expr: Expr) -> 'PrefixExpr':
        return cls(expr, TextExpr('-'))

    def operator_text(self) -> str:
        return _operator_name(self.operator_expr)

    def is_unary_minus(self) -> bool:
        return self.operator_text() == '-'

    def is_unary_minus_expr(self) -> bool:
        return self.is_unary_minus()

    def has_subexpressions(self) -> bool:
        return True

    def subexpressions(self) -> List[Expr]:
        return [self.operator_expr, self.base_expr]

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        return PrefixExpr(
            new_expr if index == 1 else self.base_expr,
            new_expr if index == 0 else self.operator_expr)

    def as_editable_string(self) -> Optional[str]:
        operator_string = self.operator_expr.as_editable_string()
        base_string = self.base_expr.as_editable_string()
        if operator_string and base_string:
            return operator_string + base_string
        return None

    def as_logical_negation(self) -> Optional[Expr]:
        negated_operator = self.operator_expr.as_logical_negation()
        if negated_operator is None:
            return None
        return PrefixExpr(self.base_expr, negated_operator)

    def dissolve(self) -> List[Expr]:
        return self.subexpressions()

    def as_bold(self) -> Expr:
        return PrefixExpr(self.base_expr.as_bold(), self.operator_expr)

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'base_expr': self.base_expr.to_json(),
            'operator_expr': self.operator_expr.to_json(),
        }


@dataclass(frozen=True, eq=False)
class PostfixExpr(Expr):
    """
    Postfix operation, used for factorials. x!! is represented as
    PostfixExpr(PostfixExpr(x, '!'), '!').
    """
    base_expr: Expr
    operator_expr: Expr

    expr_type: ClassVar[ExprType] = ExprType.POSTFIX

    @classmethod
    def factorial_expr(cls, base_expr: Expr, factorial_depth: int) -> 'PostfixExpr':
        # (x+1)! but not (x!)!
        if not isinstance(base_expr, PostfixExpr):
            base_expr = DelimiterExpr.parenthesize_for_power(base_expr)
        result = base_expr
        for _ in range(factorial_depth):
            result = cls(result, TextExpr('!'))
        return result

    def has_subexpressions(self) -> bool:
        return True

    def subexpressions(self) -> List[Expr]:
        return [self.base_expr, self.operator_expr]

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        return PostfixExpr(
            new_expr if index == 0 else self.base_expr,
            new_expr if index == 1 else self.operator_expr)

    def as_editable_string(self) -> Optional[str]:
        base_string = self.base_expr.as_editable_string()
        operator_string = self.operator_expr.as_editable_string()
        if base_string and operator_string:
            return base_string + operator_string
        return None

    def dissolve(self) -> List[Expr]:
        return self.subexpressions()

    def as_bold(self) -> Expr:
        # '!' is bolded along with the base; other operators are not.
        operator_expr = self.operator_expr
        if operator_expr.is_text_expr_with('!'):
            operator_expr = operator_expr.as_bold()
        return PostfixExpr(self.base_expr.as_bold(), operator_expr)

    def analyze_factorial(self) -> Tuple[Expr, int]:
        """Return (innermost base, number of nested '!' signs)."""
        base_expr, count = self.base_expr, 0
        if self.operator_expr.is_text_expr_with('!'):
            if isinstance(base_expr, PostfixExpr):
                base_expr, count = base_expr.analyze_factorial()
            count += 1
        return base_expr, count

    def factorial_signs_count(self) -> int:
        return self.analyze_factorial()[1]

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'base_expr': self.base_expr.to_json(),
            'operator_expr': self.operator_expr.to_json(),
        }


@dataclass(frozen=True, eq=False)
class FunctionCallExpr(Expr):
    """f(x, y): fn_expr applied to args_expr (normally a DelimiterExpr)."""
    fn_expr: Expr
    args_expr: Expr

    expr_type: ClassVar[ExprType] = ExprType.FUNCTION_CALL

    def has_subexpressions(self) -> bool:
        return True

    def subexpressions(self) -> List[Expr]:
        return [self.fn_expr, self.args_expr]

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        return FunctionCallExpr(
            new_expr if index == 0 else self.fn_expr,
            new_expr if index == 1 else self.args_expr)

    def dissolve(self) -> List[Expr]:
        return self.subexpressions()

    def as_bold(self) -> Expr:
        # Bold f and x but not the parentheses.
        if isinstance(self.args_expr, DelimiterExpr):
            bold_args = self.args_expr.replace_subexpression(
                0, self.args_expr.inner_expr.as_bold())
        else:
            bold_args = self.args_expr.as_bold()
        return FunctionCallExpr(self.fn_expr.as_bold(), bold_args)

    def extract_argument_exprs(self) -> List[Expr]:
        """f(x+y, z) -> [x+y, z]"""
        if not isinstance(self.args_expr, DelimiterExpr):
            return []
        inner = self.args_expr.inner_expr
        if not isinstance(inner, InfixExpr):
            return [inner]
        arguments = []
        argument = inner.operand_exprs[0]
        for i, operator_expr in enumerate(inner.operator_exprs):
            if operator_expr.is_text_expr_with(','):
                arguments.append(argument)
                argument = inner.operand_exprs[i + 1]
            else:
                argument = InfixExpr.combine_infix(
                    argument, inner.operand_exprs[i + 1], operator_expr)
        arguments.append(argument)
        return arguments

    def argument_count(self) -> int:
        return len(self.extract_argument_exprs())

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'fn_expr': self.fn_expr.to_json(),
            'args_expr': self.args_expr.to_json(),
        }


# =============================================================================
# SequenceExpr
# =============================================================================

@dataclass(frozen=True, eq=False)
class SequenceExpr(Expr):
    """Expressions concatenated together (juxtaposition)."""
    exprs: Tuple[Expr, ...]

    expr_type: ClassVar[ExprType] = ExprType.SEQUENCE

    def __post_init__(self):
        object.__setattr__(self, 'exprs', _freeze(self.exprs))

    def last_expr(self) -> Expr:
        return self.exprs[-1]

    def subexpressions(self) -> List[Expr]:
        return list(self.exprs)

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        exprs = list(self.exprs)
        exprs[index] = new_expr
        return SequenceExpr(exprs)

    def dissolve(self) -> List[Expr]:
        return list(self.exprs)

    def as_bold(self) -> Expr:
        return SequenceExpr([expr.as_bold() for expr in self.exprs])

    def as_logical_negation(self) -> Optional[Expr]:
        # \not\le -> \le
        if len(self.exprs) == 2 and self.exprs[0].is_command_expr_with(0, 'not'):
            return self.exprs[1]
        return None

    def is_differential_form(self) -> bool:
        # 'dx', 'd^2 x', with the d optionally in roman
        if len(self.exprs) != 2:
            return False
        d_expr = self.exprs[0]
        if isinstance(d_expr, SubscriptSuperscriptExpr) and \
           isinstance(d_expr.superscript_expr, TextExpr):
            d_expr = d_expr.base_expr
        if d_expr.is_text_expr_with('d'):
            return True
        return (isinstance(d_expr, FontExpr) and d_expr.typeface == 'roman' and
                not d_expr.is_bold and d_expr.size_adjustment == 0 and
                d_expr.expr.is_text_expr_with('d'))

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'exprs': [expr.to_json() for expr in self.exprs],
        }


# =============================================================================
# DelimiterExpr
# =============================================================================

@dataclass(frozen=True, eq=False)
class DelimiterExpr(Expr):
    """
    An expression enclosed in delimiters: \\left( x \\right) by default,
    or plain (x) when fixed_size is set. '.' is the blank delimiter.
    """
    left_type: str
    right_type: str
    inner_expr: Expr
    fixed_size: bool = False

    expr_type: ClassVar[ExprType] = ExprType.DELIMITER

    def is_blank(self) -> bool:
        return self.left_type == '.' and self.right_type == '.'

    @staticmethod
    def _strip_blank(expr: Expr) -> Expr:
        while isinstance(expr, DelimiterExpr) and expr.is_blank():
            expr = expr.inner_expr
        return expr

    @classmethod
    def parenthesize(cls, expr: Expr, left_type: str = '(', right_type: str = ')') -> 'DelimiterExpr':
        return cls(left_type, right_type, cls._strip_blank(expr))

    @classmethod
    def parenthesize_if_not_already(cls, expr: Expr, left_type: str = '(', right_type: str = ')') -> Expr:
        expr = cls._strip_blank(expr)
        if isinstance(expr, DelimiterExpr):
            return expr
        return cls.parenthesize(expr, left_type, right_type)

    @classmethod
    def parenthesize_for_power(cls, expr: Expr, left_type: str = '(', right_type: str = ')') -> Expr:
        """Parenthesize expr if it is about to become the base of a power."""
        if cls.should_parenthesize_for_power(expr):
            return cls.parenthesize_if_not_already(expr, left_type, right_type)
        return expr

    @classmethod
    def should_parenthesize_for_power(cls, expr: Expr) -> bool:
        if expr.expr_type in (ExprType.SEQUENCE, ExprType.INFIX,
                              ExprType.PREFIX, ExprType.POSTFIX):
            return True
        if isinstance(expr, DelimiterExpr) and expr.is_blank() and \
           isinstance(expr.inner_expr, InfixExpr):
            return True
        if expr.is_command_expr_with(2, 'frac'):
            return True
        # \sin{x} but not \sin{(x)}
        if expr.is_command_expr_with(1) and not isinstance(expr.operand_exprs[0], DelimiterExpr):
            return True
        if isinstance(expr, FontExpr) and expr.typeface != 'normal':
            return cls.should_parenthesize_for_power(expr.expr)
        # f' but not f'(x)
        if isinstance(expr, SubscriptSuperscriptExpr) and expr.count_primes() > 0:
            return True
        return False

    @classmethod
    def parenthesize_for_argument(cls, expr: Expr, left_type: str = '(', right_type: str = ')') -> Expr:
        """Parenthesize expr if it is about to become the argument of \\sin etc."""
        if cls.should_parenthesize_for_argument(expr):
            return cls.parenthesize_if_not_already(expr, left_type, right_type)
        return expr

    @classmethod
    def should_parenthesize_for_argument(cls, expr: Expr) -> bool:
        if expr.expr_type in (ExprType.INFIX, ExprType.PREFIX, ExprType.POSTFIX):
            return True
        # sin 2x, but sin(-2x)
        if isinstance(expr, SequenceExpr) and isinstance(expr.exprs[0], PrefixExpr):
            return True
        if isinstance(expr, DelimiterExpr) and expr.is_blank() and \
           isinstance(expr.inner_expr, InfixExpr):
            return True
        if expr.is_command_expr_with(2, 'frac'):
            return True
        if expr.is_command_expr_with(1) and not isinstance(expr.operand_exprs[0], DelimiterExpr):
            return True
        if isinstance(expr, FontExpr) and expr.typeface != 'normal':
            return cls.should_parenthesize_for_argument(expr.expr)
        return False

    @classmethod
    def autoparenthesize(cls, expr: Expr, left_type: str = '(', right_type: str = ')') -> Expr:
        """Parenthesize only low-precedence infix expressions like x+y."""
        if isinstance(expr, InfixExpr) and expr.needs_autoparenthesization():
            return cls.parenthesize(expr, left_type, right_type)
        return expr

    def as_fixed_size(self, fixed_size: bool) -> 'DelimiterExpr':
        return DelimiterExpr(self.left_type, self.right_type, self.inner_expr, fixed_size)

    def has_subexpressions(self) -> bool:
        return True

    def subexpressions(self) -> List[Expr]:
        return [self.inner_expr]

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        return DelimiterExpr(self.left_type, self.right_type, new_expr, self.fixed_size)

    def matches(self, expr: Expr) -> bool:
        return (super().matches(expr) and
                self.left_type == expr.left_type and
                self.right_type == expr.right_type and
                self.fixed_size == expr.fixed_size)

    def is_flex_inline_fraction(self) -> bool:
        """\\left. x/y \\right., treated like \\frac{x}{y} in some commands."""
        return (self.is_blank() and
                isinstance(self.inner_expr, InfixExpr) and
                len(self.inner_expr.operator_exprs) == 1 and
                self.inner_expr.operator_text_at(0) == '/')

    def dissolve(self) -> List[Expr]:
        if self.is_flex_inline_fraction():
            return list(self.inner_expr.operand_exprs)
        return [self.inner_expr]

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'left_type': self.left_type,
            'right_type': self.right_type,
            'inner_expr': self.inner_expr.to_json(),
            'fixed_size': self.fixed_size,
        }


# =============================================================================
# SubscriptSuperscriptExpr
# =============================================================================

@dataclass(frozen=True, eq=False)
class SubscriptSuperscriptExpr(Expr):
    """A base expression with a subscript, a superscript, or both."""
    base_expr: Expr
    subscript_expr: Optional[Expr] = None
    superscript_expr: Optional[Expr] = None

    expr_type: ClassVar[ExprType] = ExprType.SUBSCRIPT_SUPERSCRIPT

    def __post_init__(self):
        if self.subscript_expr is None and self.superscript_expr is None:
            raise ValueError("SubscriptSuperscriptExpr needs a subscript or superscript")

    @classmethod
    def build(cls, base_expr: Expr, subscript_expr: Optional[Expr] = None,
              superscript_expr: Optional[Expr] = None) -> Expr:
        """Like the constructor, but decays to base_expr when both slots are empty."""
        if subscript_expr is None and superscript_expr is None:
            return base_expr
        return cls(base_expr, subscript_expr, superscript_expr)

    def subexpressions(self) -> List[Expr]:
        exprs = [self.base_expr]
        if self.superscript_expr is not None:
            exprs.append(self.superscript_expr)
        if self.subscript_expr is not None:
            exprs.append(self.subscript_expr)
        return exprs

    def matches(self, expr: Expr) -> bool:
        if self is expr:
            return True
        if not isinstance(expr, SubscriptSuperscriptExpr):
            return False
        for mine, theirs in ((self.superscript_expr, expr.superscript_expr),
                             (self.subscript_expr, expr.subscript_expr)):
            if (mine is None) != (theirs is None):
                return False
            if mine is not None and not mine.matches(theirs):
                return False
        return self.base_expr.matches(expr.base_expr)

    # The meaning of index 1 depends on whether the superscript is present.
    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        has_superscript = self.superscript_expr is not None
        return SubscriptSuperscriptExpr(
            new_expr if index == 0 else self.base_expr,
            new_expr if (index == 2 or (not has_superscript and index == 1)) else self.subscript_expr,
            new_expr if (index == 1 and has_superscript) else self.superscript_expr)

    def dissolve(self) -> List[Expr]:
        # base, subscript, superscript
        pieces = [self.base_expr]
        if self.subscript_expr is not None:
            pieces.append(self.subscript_expr)
        if self.superscript_expr is not None:
            pieces.append(self.superscript_expr)
        return pieces

    def count_primes(self) -> int:
        """Number of \\primes in x^{\\prime\\prime...}, or 0."""
        sup = self.superscript_expr
        if sup is None:
            return 0
        if sup.is_command_expr_with(0, 'prime'):
            return 1
        if isinstance(sup, SequenceExpr) and \
           all(expr.is_command_expr_with(0, 'prime') for expr in sup.exprs):
            return len(sup.exprs)
        return 0

    def with_prime(self, autoparenthesize: bool = True) -> Expr:
        prime_count = self.count_primes()
        if prime_count > 0:
            primes = SequenceExpr([CommandExpr('prime') for _ in range(prime_count + 1)])
            return self.with_superscript(None).with_superscript(primes)
        return super().with_prime(autoparenthesize)

    def remove_prime(self) -> Expr:
        """f'' -> f'"""
        prime_count = self.count_primes()
        if prime_count == 0:
            return self
        stripped = self.with_superscript(None)
        if prime_count == 1:
            return stripped
        primes = SequenceExpr([CommandExpr('prime') for _ in range(prime_count - 1)])
        return stripped.with_superscript(primes)

    def with_subscript_or_superscript(
        self,
        expr: Optional[Expr],
        is_subscript: bool,
        autoparenthesize: bool = True
    ) -> Expr:
        if expr is None:
            # Remove the slot; may decay to the base
            return SubscriptSuperscriptExpr.build(
                self.base_expr,
                None if is_subscript else self.subscript_expr,
                self.superscript_expr if is_subscript else None)
        empty_slot = self.subscript_expr is None if is_subscript else self.superscript_expr is None
        if empty_slot:
            # Fill the slot; the base was already parenthesized when first built.
            return SubscriptSuperscriptExpr(
                self.base_expr,
                expr if is_subscript else self.subscript_expr,
                self.superscript_expr if is_subscript else expr)
        return super().with_subscript_or_superscript(expr, is_subscript, autoparenthesize)

    def to_json(self) -> Dict[str, Any]:
        json_data = {'expr_type': self.expr_type.value, 'base_expr': self.base_expr.to_json()}
        if self.subscript_expr is not None:
            json_data['subscript_expr'] = self.subscript_expr.to_json()
        if self.superscript_expr is not None:
            json_data['superscript_expr'] = self.superscript_expr.to_json()
        return json_data


# =============================================================================
# ArrayExpr
# =============================================================================

SEPARATOR_TYPES = (None, 'solid', 'dashed')


@dataclass(frozen=True, eq=False)
class ArrayExpr(Expr):
    """
    A 2-D grid of expressions: matrices (bmatrix, pmatrix, ...) and
    alignment environments (gathered, cases, rcases, substack, aligned).

    row_separators / column_separators have one entry per gap
    (None, 'solid' or 'dashed').
    """
    array_type: str
    row_count: int
    column_count: int
    element_exprs: Tuple[Tuple[Expr, ...], ...]
    row_separators: Optional[Tuple[Optional[str], ...]] = None
    column_separators: Optional[Tuple[Optional[str], ...]] = None

    expr_type: ClassVar[ExprType] = ExprType.ARRAY

    def __post_init__(self):
        rows = tuple(tuple(row) for row in self.element_exprs)
        object.__setattr__(self, 'element_exprs', rows)
        if self.row_separators is None:
            object.__setattr__(self, 'row_separators', (None,) * (self.row_count - 1))
        else:
            object.__setattr__(self, 'row_separators', tuple(self.row_separators))
        if self.column_separators is None:
            object.__setattr__(self, 'column_separators', (None,) * (self.column_count - 1))
        else:
            object.__setattr__(self, 'column_separators', tuple(self.column_separators))
        if len(rows) != self.row_count or any(len(row) != self.column_count for row in rows):
            raise ValueError(
                f"ArrayExpr elements do not form a {self.row_count}x{self.column_count} grid")

    @classmethod
    def vstack_arrays(cls, expr1: 'ArrayExpr', expr2: 'ArrayExpr') -> Optional['ArrayExpr']:
        """Stack two arrays vertically; None if the column counts differ."""
        if expr1.column_count != expr2.column_count:
            return None
        return cls(
            expr1.array_type,
            expr1.row_count + expr2.row_count,
            expr1.column_count,
            expr1.element_exprs + expr2.element_exprs,
            expr1.row_separators + (None,) + expr2.row_separators,
            expr1.column_separators)

    @classmethod
    def hstack_arrays(cls, expr1: 'ArrayExpr', expr2: 'ArrayExpr') -> Optional['ArrayExpr']:
        """Stack two arrays side by side; None if the row counts differ."""
        if expr1.row_count != expr2.row_count:
            return None
        rows = [row1 + row2 for row1, row2 in zip(expr1.element_exprs, expr2.element_exprs)]
        return cls(
            expr1.array_type,
            expr1.row_count,
            expr1.column_count + expr2.column_count,
            rows,
            expr1.row_separators,
            expr1.column_separators + (None,) + expr2.column_separators)

    @classmethod
    def split_elements(cls, exprs: List[Expr], split_mode: str) -> List[List[Expr]]:
        """
        Split a list of expressions into rows of aligned columns.

        split_mode:
            'none': one column
            'infix': align at the split_at operator
            'colon': split at a ':' operator (dropping it)
            'colon_if': like 'colon' with "if" / "otherwise" for cases
        """
        rows = [cls._split_expr(expr, split_mode) for expr in exprs]
        # No colons at all: drop the column of blanks.
        if split_mode == 'colon' and \
           all(len(row) == 2 and row[1].is_text_expr_with('') for row in rows):
            return [[row[0]] for row in rows]
        return rows

    @staticmethod
    def _split_expr(expr: Expr, split_mode: str) -> List[Expr]:
        if split_mode == 'infix':
            if isinstance(expr, InfixExpr):
                index = expr.split_at_index
                return [
                    expr.extract_side_at(index, 'left'),
                    InfixExpr.combine_infix(
                        TextExpr.blank(),
                        expr.extract_side_at(index, 'right'),
                        expr.operator_exprs[index])]
            return [expr, TextExpr.blank()]
        if split_mode in ('colon', 'colon_if'):
            has_colon = isinstance(expr, InfixExpr) and expr.operator_text() in (':', 'colon')
            if split_mode == 'colon':
                if has_colon:
                    return [expr.extract_side_at(expr.split_at_index, 'left'),
                            expr.extract_side_at(expr.split_at_index, 'right')]
                return [expr, TextExpr.blank()]
            if has_colon:
                condition = concatenate(
                    concatenate(FontExpr.roman_text('if'), CommandExpr('enspace'), True),
                    expr.extract_side_at(expr.split_at_index, 'right'), True)
                return [expr.extract_side_at(expr.split_at_index, 'left'), condition]
            return [expr, FontExpr.roman_text('otherwise')]
        return [expr]

    def is_matrix(self) -> bool:
        return self.array_type in MATRIX_TYPES

    def has_separators(self) -> bool:
        return any(self.row_separators) or any(self.column_separators)

    def with_array_type(self, new_array_type: str) -> 'ArrayExpr':
        return ArrayExpr(new_array_type, self.row_count, self.column_count,
                         self.element_exprs, self.row_separators, self.column_separators)

    def as_bold(self) -> Expr:
        return ArrayExpr(
            self.array_type, self.row_count, self.column_count,
            [[expr.as_bold() for expr in row] for row in self.element_exprs],
            self.row_separators, self.column_separators)

    def with_ellipses(self) -> 'ArrayExpr':
        """Insert \\cdots / \\vdots / \\ddots before the last row and column."""
        row_count, column_count = self.row_count, self.column_count
        if self.column_count > 1:
            rows = []
            for index, row in enumerate(self.element_exprs):
                at_edge = index == 0 or index == self.row_count - 1
                filler = CommandExpr('cdots') if at_edge else TextExpr.blank()
                rows.append(list(row[:-1]) + [filler, row[-1]])
            column_count += 1
        else:
            rows = [list(row) for row in self.element_exprs]
        if self.row_count > 1:
            inserted = [CommandExpr('vdots')]
            inserted.extend(TextExpr.blank() for _ in range(self.column_count - 2))
            if self.column_count > 1:
                inserted.extend([CommandExpr('ddots'), CommandExpr('vdots')])
            rows.insert(self.row_count - 1, inserted)
            row_count += 1
        # Separators are not preserved.
        return ArrayExpr(self.array_type, row_count, column_count, rows)

    def transposed(self) -> 'ArrayExpr':
        rows = [[self._transpose_cell(row[i]) for row in self.element_exprs]
                for i in range(self.column_count)]
        return ArrayExpr(self.array_type, self.column_count, self.row_count, rows,
                         self.column_separators, self.row_separators)

    @staticmethod
    def _transpose_cell(cell_expr: Expr) -> Expr:
        if cell_expr.is_command_expr_with(0, 'vdots'):
            return CommandExpr('cdots')
        if cell_expr.is_command_expr_with(0, 'cdots'):
            return CommandExpr('vdots')
        return cell_expr

    def split_rows(self) -> List['ArrayExpr']:
        """One 1xN array per row."""
        return [ArrayExpr(self.array_type, 1, self.column_count, [row],
                          None, self.column_separators)
                for row in self.element_exprs]

    def with_separator(self, is_column: bool, index: Optional[int],
                       separator_type: Optional[str], toggle: bool) -> 'ArrayExpr':
        """
        Set the separator after row/column 'index' (None = every gap).
        With toggle, setting a separator to its current type turns it off.
        """
        if separator_type not in SEPARATOR_TYPES:
            raise ValueError(f"Unknown separator type: {separator_type}")
        row_separators = list(self.row_separators)
        column_separators = list(self.column_separators)
        separators = column_separators if is_column else row_separators
        size = self.column_count if is_column else self.row_count
        if index is None:
            if toggle and all(s == separator_type for s in separators):
                separator_type = None
            for i in range(size - 1):
                separators[i] = separator_type
        else:
            if index < 0 or index >= size - 1:
                return self
            if toggle and separators[index] == separator_type:
                separator_type = None
            separators[index] = separator_type
        return ArrayExpr(self.array_type, self.row_count, self.column_count,
                         self.element_exprs, row_separators, column_separators)

    def subexpressions(self) -> List[Expr]:
        return [expr for row in self.element_exprs for expr in row]

    def replace_subexpression(self, index: int, new_expr: Expr) -> Expr:
        row, column = divmod(index, self.column_count)
        rows = [list(r) for r in self.element_exprs]
        rows[row][column] = new_expr
        return ArrayExpr(self.array_type, self.row_count, self.column_count, rows,
                         self.row_separators, self.column_separators)

    def dissolve(self) -> List[Expr]:
        if self.is_matrix() or self.row_count <= 1:
            return self.subexpressions()
        return self.split_rows()

    def matches(self, expr: Expr) -> bool:
        # Separators are ignored.
        return (super().matches(expr) and
                self.array_type == expr.array_type and
                self.row_count == expr.row_count and
                self.column_count == expr.column_count)

    def try_flattening_vector_of_vectors(self) -> 'ArrayExpr':
        """A column vector of equal-size column vectors becomes a matrix."""
        if not (self.is_matrix() and self.column_count == 1):
            return self
        inner_size = None
        rows = []
        for (element,) in self.element_exprs:
            if not (isinstance(element, ArrayExpr) and
                    element.array_type == self.array_type and
                    element.column_count == 1):
                return self
            if inner_size is None:
                inner_size = element.row_count
            elif element.row_count != inner_size:
                return self
            rows.append([inner_row[0] for inner_row in element.element_exprs])
        return ArrayExpr(self.array_type, self.row_count, inner_size, rows)

    def to_json(self) -> Dict[str, Any]:
        return {
            'expr_type': self.expr_type.value,
            'array_type': self.array_type,
            'row_count': self.row_count,
            'column_count': self.column_count,
            'element_exprs': [[expr.to_json() for expr in row] for row in self.element_exprs],
            'row_separators': list(self.row_separators),
            'column_separators': list(self.column_separators),
        }


# =============================================================================
# Combination Algebra
# =============================================================================

def _factorial_count(expr: Expr) -> int:
    """Number of '!' signs for a '!' text or a sequence made only of them."""
    if expr.is_text_expr_with('!'):
        return 1
    if isinstance(expr, SequenceExpr) and all(e.is_text_expr_with('!') for e in expr.exprs):
        return len(expr.exprs)
    return 0


def _ends_with_integral_sign(expr: Expr) -> bool:
    if isinstance(expr, SequenceExpr):
        expr = expr.last_expr()
    return expr.is_integral_sign()


def _ends_with_differential_form(expr: Expr) -> bool:
    if expr.is_differential_form():
        return True
    return isinstance(expr, SequenceExpr) and expr.last_expr().is_differential_form()


def concatenate(left: Expr, right: Expr, no_parenthesize: bool = False) -> Expr:
    """
    Juxtapose two expressions, e.g. 2 and x -> 2x.

    Rules are checked in order:
    - x followed by a unary minus -y becomes the subtraction x-y.
    - Trailing '!' signs become a factorial of the left side; '!' after '!'
      extends the run.
    - Integral signs fuse (\\int\\int -> \\iint).
    - Two numbers concatenate their digits.
    - Infix operands are parenthesized (unless no_parenthesize).
    - Compatible FontExprs merge into one wrapper.
    - Otherwise a flattened SequenceExpr, with \\, around differentials.
    """
    if right.is_unary_minus_expr():
        return InfixExpr.combine_infix(left, right.base_expr, TextExpr('-'))

    left_factorials = _factorial_count(left)
    right_factorials = _factorial_count(right)
    if right_factorials > 0:
        if left_factorials == 0:
            return PostfixExpr.factorial_expr(left, right_factorials)
        return SequenceExpr([TextExpr('!') for _ in range(left_factorials + right_factorials)])

    if isinstance(left, CommandExpr) and isinstance(right, CommandExpr):
        fused = CommandExpr.combine_command_pair(left.command_name, right.command_name)
        if fused:
            return CommandExpr(fused)

    if isinstance(left, TextExpr) and left.looks_like_number() and \
       isinstance(right, TextExpr) and right.looks_like_number():
        return TextExpr(left.text + right.text)

    # 2(x!) and 2(x+1)!, but x!y! and (x+1)y!
    parenthesize_left = (isinstance(left, InfixExpr) and
                         not left.is_differential_form() and not no_parenthesize)
    left_expr = DelimiterExpr.parenthesize(left) if parenthesize_left else left
    parenthesize_right = isinstance(right, InfixExpr) and not right.is_differential_form()
    if isinstance(right, PostfixExpr) and right.factorial_signs_count() > 0:
        if not isinstance(right.base_expr, DelimiterExpr):
            parenthesize_right = True
        if isinstance(left, PostfixExpr) and left.factorial_signs_count() > 0:
            parenthesize_right = False
    if no_parenthesize:
        parenthesize_right = False
    right_expr = DelimiterExpr.parenthesize(right) if parenthesize_right else right

    if FontExpr.font_exprs_compatible(left_expr, right_expr):
        return FontExpr(
            concatenate(left_expr.expr, right_expr.expr, no_parenthesize),
            left_expr.typeface, left_expr.is_bold, left_expr.size_adjustment)

    insert_thinspace = ((_ends_with_differential_form(left_expr) or
                         right_expr.is_differential_form()) and
                        not _ends_with_integral_sign(left_expr))

    # Differential forms like 'dx' are kept as units.
    exprs: List[Expr] = []
    if isinstance(left_expr, SequenceExpr) and not left_expr.is_differential_form():
        exprs.extend(left_expr.exprs)
    else:
        exprs.append(left_expr)
    if insert_thinspace:
        exprs.append(CommandExpr(','))
    if isinstance(right_expr, SequenceExpr) and not right_expr.is_differential_form():
        exprs.extend(right_expr.exprs)
    else:
        exprs.append(right_expr)
    return SequenceExpr(exprs)


def combine_with_conjunction(left_expr: Expr, right_expr: Expr, phrase: str, is_bold: bool) -> InfixExpr:
    """X \\quad\\text{iff}\\quad Y"""
    conjunction_expr = SequenceExpr([
        CommandExpr('quad'),
        CommandExpr('textbf' if is_bold else 'text', [TextExpr(phrase)]),
        CommandExpr('quad'),
    ])
    return InfixExpr.combine_infix(left_expr, right_expr, conjunction_expr)


def roman_text_to_expr(string: str) -> Expr:
    """Roman text, with each '[]' turned into a PlaceholderExpr."""
    pieces = string.split('[]')
    exprs: List[Expr] = []
    for i, piece in enumerate(pieces):
        if piece:
            exprs.append(FontExpr.roman_text(piece))
        if i < len(pieces) - 1:
            exprs.append(PlaceholderExpr())
    if not exprs:
        return FontExpr.roman_text('')
    if len(exprs) == 1:
        return exprs[0]
    return SequenceExpr(exprs)


def text_or_command(s: str) -> Expr:
    """'\\alpha' -> CommandExpr('alpha'); anything else -> TextExpr."""
    if s.startswith('\\'):
        return CommandExpr(s[1:])
    return TextExpr(s)


# =============================================================================
# JSON Serialization
# =============================================================================

def _from_json_list(json_list) -> List[Expr]:
    return [expr_from_json(item) for item in json_list]


def _optional_from_json(json_data) -> Optional[Expr]:
    return expr_from_json(json_data) if json_data is not None else None


_FROM_JSON = {
    ExprType.TEXT: lambda j: TextExpr(j['text']),
    ExprType.COMMAND: lambda j: CommandExpr(
        j['command_name'], _from_json_list(j.get('operand_exprs', [])), j.get('options')),
    ExprType.FONT: lambda j: FontExpr(
        expr_from_json(j['expr']), j.get('typeface', 'normal'),
        bool(j.get('is_bold', False)), int(j.get('size_adjustment', 0))),
    ExprType.INFIX: lambda j: InfixExpr(
        _from_json_list(j['operand_exprs']), _from_json_list(j['operator_exprs']),
        int(j.get('split_at_index', 0)), j.get('linebreaks_at', [])),
    ExprType.PREFIX: lambda j: PrefixExpr(
        expr_from_json(j['base_expr']), expr_from_json(j['operator_expr'])),
    ExprType.POSTFIX: lambda j: PostfixExpr(
        expr_from_json(j['base_expr']), expr_from_json(j['operator_expr'])),
    ExprType.FUNCTION_CALL: lambda j: FunctionCallExpr(
        expr_from_json(j['fn_expr']), expr_from_json(j['args_expr'])),
    ExprType.SEQUENCE: lambda j: SequenceExpr(_from_json_list(j['exprs'])),
    ExprType.DELIMITER: lambda j: DelimiterExpr(
        j['left_type'], j['right_type'], expr_from_json(j['inner_expr']),
        bool(j.get('fixed_size', False))),
    ExprType.SUBSCRIPT_SUPERSCRIPT: lambda j: SubscriptSuperscriptExpr.build(
        expr_from_json(j['base_expr']),
        _optional_from_json(j.get('subscript_expr')),
        _optional_from_json(j.get('superscript_expr'))),
    ExprType.ARRAY: lambda j: ArrayExpr(
        j['array_type'], int(j['row_count']), int(j['column_count']),
        [_from_json_list(row) for row in j['element_exprs']],
        j.get('row_separators'), j.get('column_separators')),
    ExprType.PLACEHOLDER: lambda j: PlaceholderExpr(),
}


def expr_from_json(json_data: Dict[str, Any]) -> Expr:
    """Rebuild an Expr from its to_json() form."""
    try:
        expr_type = ExprType(json_data['expr_type'])
    except (KeyError, ValueError) as e:
        raise ValueError(f"Invalid expr JSON: {json_data!r}") from e
    return _FROM_JSON[expr_type](json_data)
