"""
Numeric Evaluation of Expression Trees

Evaluates simple arithmetic expressions to a float:
- number literals and assigned variables
- \\frac{x}{y}, \\sqrt{x}, \\sqrt[n]{x}
- parentheses and blank delimiters
- unary minus / plus
- infix +, -, *, /, \\cdot, \\times with the usual precedence

Infix expressions are stored as flat operand/operator lists, so they are
reduced with an operand stack and an operator stack rather than
left-to-right.

Usage:
    from rpn_latex.model.evaluate import evaluate

    evaluate(expr)                               # 7.0 for 1+2*3
    evaluate(expr, {'x': 2.0})                  # variables by name
"""

from typing import Dict, List, Optional

import numpy as np

from .exprs import (
    CommandExpr, DelimiterExpr, Expr, InfixExpr, PrefixExpr, TextExpr,
)


# Operator name -> precedence
OPERATOR_PRECEDENCE: Dict[str, int] = {
    '+': 1,
    '-': 1,
    '*': 2,
    '/': 2,
    'cdot': 2,
    'times': 2,
}


class _Unevaluable(Exception):
    """Raised internally when a subexpression has no numeric value."""


class ExprEvaluator:
    """
    Evaluate an Expr tree to a float.

    Args:
        assignments: variable name -> value. Names are the text of a
            TextExpr ('x') or the name of a zero-argument command ('alpha').
    """

    def __init__(self, assignments: Optional[Dict[str, float]] = None):
        self.assignments = assignments or {}

    def evaluate(self, expr: Expr) -> Optional[float]:
        try:
            with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
                value = self._evaluate(expr)
        except _Unevaluable:
            return None
        if not np.isfinite(value):
            return None
        return float(value)

    def _evaluate(self, expr: Expr) -> np.float64:
        if isinstance(expr, TextExpr):
            if expr.looks_like_number():
                return np.float64(expr.text)
            return self._variable(expr.text)
        if isinstance(expr, CommandExpr):
            return self._evaluate_command(expr)
        if isinstance(expr, DelimiterExpr):
            if expr.is_blank() or (expr.left_type == '(' and expr.right_type == ')'):
                return self._evaluate(expr.inner_expr)
            raise _Unevaluable()
        if isinstance(expr, PrefixExpr):
            operator = expr.operator_text()
            if operator == '-':
                return -self._evaluate(expr.base_expr)
            if operator == '+':
                return self._evaluate(expr.base_expr)
            raise _Unevaluable()
        if isinstance(expr, InfixExpr):
            return self._evaluate_infix(expr)
        raise _Unevaluable()

    def _variable(self, name: str) -> np.float64:
        if name in self.assignments:
            return np.float64(self.assignments[name])
        raise _Unevaluable()

    def _evaluate_command(self, expr: CommandExpr) -> np.float64:
        if expr.operand_count() == 0:
            return self._variable(expr.command_name)
        if expr.is_command_expr_with(2, 'frac'):
            return self._divide(self._evaluate(expr.operand_exprs[0]),
                                self._evaluate(expr.operand_exprs[1]))
        if expr.is_command_expr_with(1, 'sqrt'):
            radicand = self._evaluate(expr.operand_exprs[0])
            if expr.options:
                # \sqrt[n]{x}
                try:
                    degree = np.float64(expr.options)
                except ValueError as e:
                    raise _Unevaluable() from e
                if degree == 0:
                    raise _Unevaluable()
                return np.power(radicand, 1.0 / degree)
            return np.sqrt(radicand)
        raise _Unevaluable()

    def _evaluate_infix(self, expr: InfixExpr) -> np.float64:
        operators = [self._operator_name(op) for op in expr.operator_exprs]
        operand_stack: List[np.float64] = [self._evaluate(expr.operand_exprs[0])]
        operator_stack: List[str] = []
        for operator, operand_expr in zip(operators, expr.operand_exprs[1:]):
            precedence = OPERATOR_PRECEDENCE[operator]
            while operator_stack and OPERATOR_PRECEDENCE[operator_stack[-1]] >= precedence:
                self._reduce(operand_stack, operator_stack)
            operator_stack.append(operator)
            operand_stack.append(self._evaluate(operand_expr))
        while operator_stack:
            self._reduce(operand_stack, operator_stack)
        return operand_stack[0]

    @staticmethod
    def _operator_name(op_expr: Expr) -> str:
        if isinstance(op_expr, TextExpr):
            name = op_expr.text
        elif op_expr.is_command_expr_with(0):
            name = op_expr.command_name
        else:
            raise _Unevaluable()
        if name not in OPERATOR_PRECEDENCE:
            raise _Unevaluable()
        return name

    def _reduce(self, operand_stack: List[np.float64], operator_stack: List[str]):
        operator = operator_stack.pop()
        right = operand_stack.pop()
        left = operand_stack.pop()
        if operator == '+':
            result = left + right
        elif operator == '-':
            result = left - right
        elif operator == '/':
            result = self._divide(left, right)
        else:
            result = left * right
        operand_stack.append(result)

    @staticmethod
    def _divide(numerator: np.float64, denominator: np.float64) -> np.float64:
        if denominator == 0:
            raise _Unevaluable()
        return numerator / denominator


def evaluate(expr: Expr, assignments: Optional[Dict[str, float]] = None) -> Optional[float]:
    """Numeric value of expr, or None if it can't be evaluated."""
    return ExprEvaluator(assignments).evaluate(expr)
