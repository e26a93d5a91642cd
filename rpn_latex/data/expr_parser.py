"""
Math Entry Parser

Parses the compact "math entry" syntax typed into the line editor:

    2x+y        -> 2x + y
    a*b         -> a \\cdot b
    (x+1)//2    -> \\frac{x+1}{2}
    3e-4        -> 3 \\cdot 10^{-4}
    f''         -> f with two primes
    []x         -> placeholder followed by x

Rules:
- Spaces are ignored except to separate numbers.
- Symbols are single characters: 'xyz' is x, y, z multiplied implicitly.
- '@' is \\pi.
- '*' and '/' bind tighter than '+' and '-'; '*' renders as \\cdot.
- Delimiters (), [] and {} must be properly matched.
- Postfix '!' (factorial) and "'" (prime) apply to the preceding factor.
- A unary minus is only accepted where a term can start, so '2-3' is
  subtraction rather than 2 times -3.

Grammar:
    expr:   term | term '+' expr | term '-' expr(no unary minus)
    term:   factor | factor ('*' | '/' | '//') term | factor term
    factor: number | symbol | '@' | '[]' | '(' expr ')' | '-' factor
            | factor '!' | factor "'"

Usage:
    expr = ExprParser.parse_string('x^2')   # None: unsupported input
    expr = ExprParser.parse_string('2x+1')
"""

from dataclasses import dataclass
from typing import List, Optional
import re
import logging

from ..model.exprs import (
    CommandExpr, DelimiterExpr, Expr, InfixExpr, PlaceholderExpr, PrefixExpr,
    SequenceExpr, TextExpr, concatenate, text_or_command,
)


logger = logging.getLogger(__name__)

NUMBER_REGEX = re.compile(r'\d*\.?\d+')
SYMBOL_REGEX = re.compile(r'\w', re.ASCII)

MATCHING_DELIMITERS = {'(': ')', '[': ']', '{': '}'}


@dataclass
class Token:
    token_type: str  # number, symbol, pi, placeholder, operator, open_delimiter, close_delimiter
    text: str
    pos: int


class ParseError(Exception):
    """Raised internally on malformed input; parse_string() returns None."""


def tokenize(s: str) -> Optional[List[Token]]:
    """Split s into tokens; None if it contains an unsupported character."""
    tokens = []
    pos = 0
    while pos < len(s):
        match = NUMBER_REGEX.match(s, pos)
        if match:
            tokens.append(Token('number', match.group(0), pos))
            pos = match.end()
            continue
        pair = s[pos:pos + 2]
        if pair == '[]':
            tokens.append(Token('placeholder', pair, pos))
            pos += 2
            continue
        if pair == '//':
            tokens.append(Token('operator', pair, pos))
            pos += 2
            continue
        char = s[pos]
        pos += 1
        if char.isspace():
            continue
        if SYMBOL_REGEX.match(char):
            token_type = 'symbol'
        elif char in "-+!'/*":
            token_type = 'operator'
        elif char in '([{':
            token_type = 'open_delimiter'
        elif char in ')]}':
            token_type = 'close_delimiter'
        elif char == '@':
            token_type = 'pi'
        else:
            return None
        tokens.append(Token(token_type, char, pos - 1))
    return tokens


def _is_number(expr: Expr) -> bool:
    return isinstance(expr, TextExpr) and expr.looks_like_number()


def _is_exponent_marker(expr: Expr) -> bool:
    return isinstance(expr, TextExpr) and expr.text in ('e', 'E')


def _power_of_ten(exponent_expr: Expr) -> Expr:
    return TextExpr.integer(10).with_superscript(exponent_expr)


class ExprParser:
    """Recursive-descent parser over a token list."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.token_index = 0

    @classmethod
    def parse_string(cls, string: str) -> Optional[Expr]:
        """Parse a whole string; None on any error or trailing input."""
        tokens = tokenize(string)
        if not tokens:
            return None
        parser = cls(tokens)
        try:
            expr = parser.parse_expr(True)
        except ParseError:
            logger.debug(f"Math entry parse failed: {string!r}")
            return None
        if not parser.at_end():
            return None
        return expr

    # =========================================================================
    # Productions
    # =========================================================================

    def parse_expr(self, allow_unary_minus: bool) -> Expr:
        lhs = self.parse_term(allow_unary_minus)
        if lhs is None:
            raise ParseError()
        binary_token = self.peek_for('operator')
        if binary_token is None or binary_token.text not in ('+', '-'):
            return lhs
        self.next_token()
        rhs = self.parse_expr(binary_token.text == '+')

        # 4e-3 arrives here as (4e) - 3; rebuild it as scientific notation.
        if isinstance(lhs, SequenceExpr) and len(lhs.exprs) == 2 and \
           _is_number(lhs.exprs[0]) and _is_exponent_marker(lhs.exprs[1]) and \
           _is_number(rhs):
            exponent_text = '-' + rhs.text if binary_token.text == '-' else rhs.text
            return InfixExpr.combine_infix(
                lhs.exprs[0], _power_of_ten(TextExpr(exponent_text)), CommandExpr('cdot'))
        return InfixExpr.combine_infix(lhs, rhs, text_or_command(binary_token.text))

    def parse_term(self, allow_unary_minus: bool) -> Optional[Expr]:
        lhs = self.parse_factor(allow_unary_minus)
        if lhs is None:
            return None
        op_token = self.peek_for('operator')
        if op_token is not None and op_token.text in ('*', '/'):
            self.next_token()
            rhs = self.parse_term(True)
            if rhs is None:
                raise ParseError()
            op_text = '\\cdot' if op_token.text == '*' else '/'
            return InfixExpr.combine_infix(lhs, rhs, text_or_command(op_text))
        if op_token is not None and op_token.text == '//':
            self.next_token()
            rhs = self.parse_term(True)
            if rhs is None:
                raise ParseError()
            return CommandExpr.frac(lhs, rhs)

        # Implicit multiplication; no following term is fine.
        rhs = self.parse_term(False)
        if rhs is None:
            return lhs
        cdot = CommandExpr('cdot')
        if _is_number(lhs) and _is_number(rhs):
            return InfixExpr.combine_infix(lhs, rhs, cdot)
        if isinstance(rhs, InfixExpr) and \
           all(rhs.operator_text(op) == 'cdot' for op in rhs.operator_exprs):
            return InfixExpr.combine_infix(lhs, rhs, cdot)
        if isinstance(rhs, SequenceExpr) and len(rhs.exprs) == 2 and \
           _is_exponent_marker(rhs.exprs[0]) and _is_number(rhs.exprs[1]) and \
           _is_number(lhs):
            # 3e4 (nonnegative exponent); negatives are handled in parse_expr.
            return InfixExpr.combine_infix(lhs, _power_of_ten(rhs.exprs[1]), cdot)
        return concatenate(lhs, rhs, no_parenthesize=True)

    def parse_factor(self, allow_unary_minus: bool) -> Optional[Expr]:
        factor = self._parse_base_factor(allow_unary_minus)
        while factor is not None:
            op_token = self.peek_for('operator')
            if op_token is not None and op_token.text == '!':
                self.next_token()
                factor = concatenate(factor, TextExpr('!'))
            elif op_token is not None and op_token.text == "'":
                self.next_token()
                factor = factor.with_prime(True)
            else:
                break
        return factor

    def _parse_base_factor(self, allow_unary_minus: bool) -> Optional[Expr]:
        if allow_unary_minus:
            negate_token = self.peek_for('operator')
            if negate_token is not None and negate_token.text == '-':
                self.next_token()
                # --3 is not allowed
                expr = self._parse_base_factor(False)
                return PrefixExpr.unary_minus(expr) if expr is not None else None
        if self.peek_for('number'):
            return TextExpr.integer(self.next_token().text)
        if self.peek_for('symbol'):
            return TextExpr(self.next_token().text)
        if self.peek_for('pi'):
            self.next_token()
            return CommandExpr('pi')
        if self.peek_for('placeholder'):
            self.next_token()
            return PlaceholderExpr()
        if self.peek_for('open_delimiter'):
            open_type = self.next_token().text
            inner_expr = self.parse_expr(True)
            if not self.peek_for('close_delimiter'):
                raise ParseError()
            close_type = self.next_token().text
            if MATCHING_DELIMITERS[open_type] != close_type:
                raise ParseError()
            if open_type == '{':
                return DelimiterExpr('\\{', '\\}', inner_expr)
            return DelimiterExpr(open_type, close_type, inner_expr)
        return None

    # =========================================================================
    # Token Stream
    # =========================================================================

    def peek_for(self, token_type: str) -> Optional[Token]:
        if self.at_end():
            return None
        token = self.tokens[self.token_index]
        return token if token.token_type == token_type else None

    def next_token(self) -> Token:
        if self.at_end():
            raise ParseError()
        self.token_index += 1
        return self.tokens[self.token_index - 1]

    def at_end(self) -> bool:
        return self.token_index >= len(self.tokens)
