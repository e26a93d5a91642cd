"""
Algebra Engine Bridge

Conversion between Exprs and a computer algebra engine's input/output.
"""

from .bridge import (
    ExprToEngine,
    EngineToExpr,
    expr_to_engine_input,
    engine_output_to_expr,
)

__all__ = [
    'ExprToEngine',
    'EngineToExpr',
    'expr_to_engine_input',
    'engine_output_to_expr',
]
