"""
Expression Model Package

Immutable expression trees and the operations built on them.

Modules:
    - exprs: Expr variants and the combination algebra
    - latex_emitter: Expr tree -> LaTeX source
    - expr_path: Addressing subexpressions for dissect mode
    - evaluate: Numeric evaluation of simple arithmetic
    - rationalize: float -> rational multiple of a known constant
"""

from .exprs import (
    ExprType,
    Expr,
    # Variants
    TextExpr,
    CommandExpr,
    FontExpr,
    InfixExpr,
    PrefixExpr,
    PostfixExpr,
    FunctionCallExpr,
    SequenceExpr,
    DelimiterExpr,
    SubscriptSuperscriptExpr,
    ArrayExpr,
    PlaceholderExpr,
    # Combination algebra
    concatenate,
    combine_with_conjunction,
    roman_text_to_expr,
    text_or_command,
    expr_from_json,
)
from .latex_emitter import LatexEmitter
from .expr_path import ExprPath
from .evaluate import ExprEvaluator, evaluate
from .rationalize import rationalize, stern_brocot_fraction

__all__ = [
    # Expression tree
    'ExprType',
    'Expr',
    'TextExpr',
    'CommandExpr',
    'FontExpr',
    'InfixExpr',
    'PrefixExpr',
    'PostfixExpr',
    'FunctionCallExpr',
    'SequenceExpr',
    'DelimiterExpr',
    'SubscriptSuperscriptExpr',
    'ArrayExpr',
    'PlaceholderExpr',
    'concatenate',
    'combine_with_conjunction',
    'roman_text_to_expr',
    'text_or_command',
    'expr_from_json',
    # Rendering / addressing
    'LatexEmitter',
    'ExprPath',
    # Numerics
    'ExprEvaluator',
    'evaluate',
    'rationalize',
    'stern_brocot_fraction',
]
