"""
Expression Tree to LaTeX Conversion

Token-based emitter that walks an Expr tree and produces LaTeX source.

- Raw text and \\command tokens are tracked separately so that a space is
  inserted only where a command name would otherwise run into a letter
  (\\alpha x, but \\alpha+x).
- Groups ({...}) are elided when they contain a single character or a
  single command, unless braces are forced.
- When given a selected ExprPath, the node at that path is wrapped in
  \\htmlClass{dissect_highlight}{...} as it is emitted. The tree itself is
  never modified.

Usage:
    from rpn_latex.model.latex_emitter import LatexEmitter

    emitter = LatexEmitter(expr, selected_expr_path)
    emitter.expr(expr, None)
    latex = emitter.finished_string()
"""

from typing import Callable, Dict, List, Optional
import re

from .exprs import (
    ArrayExpr, CommandExpr, DelimiterExpr, Expr, ExprType, FontExpr,
    FunctionCallExpr, InfixExpr, PlaceholderExpr, PostfixExpr, PrefixExpr,
    SequenceExpr, SubscriptSuperscriptExpr, TextExpr,
)


TOKEN_TEXT = 'text'
TOKEN_COMMAND = 'command'

_IDENTIFIER_CHAR = re.compile(r'^[a-zA-Z]$')

# Matrix type -> explicit delimiters used when emitting as {array}
ARRAY_DELIMITERS = {
    'bmatrix': ('[', ']'),
    'Bmatrix': ('\\{', '\\}'),
    'matrix': (None, None),
    'pmatrix': ('(', ')'),
    'vmatrix': ('|', '|'),
    'Vmatrix': ('\\Vert', '\\Vert'),
}


class LatexEmitter:
    """
    Convert an expression tree to a LaTeX string.

    Each variant has its own _emit_* method; dispatch is by ExprType.
    """

    def __init__(self, base_expr: Expr, selected_expr_path=None, export_mode: bool = False):
        self.base_expr = base_expr
        self.selected_expr_path = selected_expr_path
        self.export_mode = export_mode
        self.tokens: List[str] = []
        self.last_token_type: Optional[str] = None
        self.current_path: List[int] = []

    # =========================================================================
    # Tree walking
    # =========================================================================

    def expr(self, expr: Expr, index: Optional[int], inside_delimiters: bool = False):
        """
        Emit a subexpression. index is its position within the parent's
        subexpressions() (None for synthesized nodes that are not part of
        the tree).
        """
        if index is not None:
            self.current_path.append(index)
        try:
            if self._at_selected_path():
                # Seen once; clearing it stops the wrapper from matching again.
                self.selected_expr_path = None
                highlight_expr = CommandExpr(
                    'htmlClass', [TextExpr('dissect_highlight'), expr])
                self.emit_node(highlight_expr)
            else:
                self.emit_node(expr, inside_delimiters)
        finally:
            if index is not None:
                self.current_path.pop()

    def _at_selected_path(self) -> bool:
        path = self.selected_expr_path
        return (path is not None and
                path.expr is self.base_expr and
                tuple(self.current_path) == tuple(path.indexes))

    def emit_node(self, expr: Expr, inside_delimiters: bool = False):
        self._EMITTERS[expr.expr_type](self, expr, inside_delimiters)

    def grouped_expr(self, expr: Expr, force_braces: Optional[str], index: Optional[int]):
        self.grouped(lambda: self.expr(expr, index), force_braces)

    def grouped(self, fn: Callable[[], None], force_braces: Optional[str] = None):
        """
        Run fn() and wrap whatever it emits in braces if needed.

        force_braces:
            None: braces only if the group isn't a single char or command
            'force': always use braces
            'force_commands': like None, but a single command still gets braces
        """
        old_tokens, old_last_token_type = self.tokens, self.last_token_type
        self.tokens, self.last_token_type = [], None
        fn()
        tokens, last_token_type = self.tokens, self.last_token_type
        self.tokens, self.last_token_type = old_tokens, old_last_token_type

        if force_braces == 'force' or len(tokens) != 1:
            self.text('{')
            self.text(''.join(tokens))
            self.text('}')
        elif last_token_type == TOKEN_TEXT:
            if len(tokens[0]) == 1:
                self.text(tokens[0])
            else:
                self.text('{')
                self.text(tokens[0])
                self.text('}')
        elif force_braces == 'force_commands':
            self.text('{')
            self._emit_token(tokens[0], TOKEN_COMMAND)
            self.text('}')
        else:
            self._emit_token(tokens[0], TOKEN_COMMAND)

    # =========================================================================
    # Tokens
    # =========================================================================

    def _emit_token(self, text: str, token_type: str):
        if text:
            self.tokens.append(text)
        self.last_token_type = token_type

    def text(self, text: str, force_group: bool = False):
        """Emit raw LaTeX code."""
        if force_group:
            self.grouped(lambda: self.text(text), 'force')
            return
        if self.last_token_type == TOKEN_COMMAND and self.tokens and text:
            last_token = self.tokens[-1]
            if _IDENTIFIER_CHAR.match(last_token[-1]) and _IDENTIFIER_CHAR.match(text[0]):
                self._emit_token(' ', TOKEN_TEXT)
        self._emit_token(text, TOKEN_TEXT)

    def command(self, command_name: str, options: Optional[str] = None):
        if options:
            command_name = f"{command_name}[{options}]"
        self._emit_token('\\' + command_name, TOKEN_COMMAND)

    def text_or_command(self, text: str):
        """Treated as a command if it starts with a backslash."""
        if text.startswith('\\'):
            self.command(text[1:])
        else:
            self.text(text)

    def begin_environment(self, envname: str, environment_argument: Optional[str] = None):
        self.text('\\begin{' + envname + '}')
        if environment_argument:
            self.text(environment_argument)
        self.text('\n')

    def end_environment(self, envname: str):
        self.text('\n\\end{' + envname + '}\n')

    def align_separator(self):
        self.text(' & ')

    def row_separator(self):
        # Slightly more space between rows, for fractions
        self.text('\\\\[0.1em]\n')

    def finished_string(self) -> str:
        return ''.join(self.tokens)

    # =========================================================================
    # Per-variant emitters
    # =========================================================================

    def _emit_text(self, expr: TextExpr, inside_delimiters: bool):
        if expr.text == '':
            # {}-x is "something minus x", spaced differently from -x
            self.grouped(lambda: None, 'force')
        else:
            self.text(expr.text, expr.looks_like_negative_number())

    def _emit_command(self, expr: CommandExpr, inside_delimiters: bool):
        if expr.is_command_expr_with(2, 'atop'):
            # {x \atop y}, not \atop{x}{y}
            def emit_atop():
                self.expr(expr.operand_exprs[0], 0)
                self.command(expr.command_name)
                self.expr(expr.operand_exprs[1], 1)
            self.grouped(emit_atop, 'force')
            return
        if expr.command_name:
            self.command(expr.command_name, expr.options)
        for index, operand_expr in enumerate(expr.operand_exprs):
            self.grouped_expr(operand_expr, 'force', index)

    def _emit_font(self, expr: FontExpr, inside_delimiters: bool):
        size_command = expr.size_adjustment_command()
        if size_command:
            # {\large ...}: size commands are stateful
            def emit_sized():
                self.command(size_command)
                self._emit_font(expr.with_size_adjustment(0), inside_delimiters)
            self.grouped(emit_sized, 'force')
            return
        typeface_command = expr.typeface_command()
        use_pmb = expr.uses_pmb()
        if not use_pmb and not typeface_command:
            self.expr(expr.expr, 0)
        elif use_pmb and typeface_command:
            # \pmb{\mathbb{...}}
            self.command('pmb')

            def emit_typeface():
                self.command(typeface_command)
                self.grouped_expr(expr.expr, 'force', 0)
            self.grouped(emit_typeface, 'force')
        else:
            self.command('pmb' if use_pmb else typeface_command)
            self.grouped_expr(expr.expr, 'force', 0)

    def _emit_infix(self, expr: InfixExpr, inside_delimiters: bool):
        # Linebreaks only apply to the outermost expression.
        is_top_level = expr is self.base_expr
        for i, operator_expr in enumerate(expr.operator_exprs):
            self.expr(expr.operand_exprs[i], 2 * i)
            if is_top_level and expr.has_linebreak_at(2 * i):
                self._emit_linebreak()
            emitted_expr = operator_expr
            if inside_delimiters:
                emitted_expr = _flex_delimiter_operator(operator_expr) or operator_expr
            self.expr(emitted_expr, 2 * i + 1)
            if is_top_level and expr.has_linebreak_at(2 * i + 1):
                self._emit_linebreak()
        self.expr(expr.operand_exprs[-1], 2 * len(expr.operator_exprs))

    def _emit_linebreak(self):
        self.command('\\')
        self.command('qquad')

    def _emit_prefix(self, expr: PrefixExpr, inside_delimiters: bool):
        self.expr(expr.operator_expr, 0)
        self.expr(expr.base_expr, 1)

    def _emit_postfix(self, expr: PostfixExpr, inside_delimiters: bool):
        self.expr(expr.base_expr, 0)
        self.expr(expr.operator_expr, 1)

    def _emit_function_call(self, expr: FunctionCallExpr, inside_delimiters: bool):
        # f{(x)} tightens the spacing after f
        self.expr(expr.fn_expr, 0)
        self.grouped_expr(expr.args_expr, 'force', 1)

    def _emit_sequence(self, expr: SequenceExpr, inside_delimiters: bool):
        for index, subexpr in enumerate(expr.exprs):
            self.expr(subexpr, index)

    def _emit_delimiter(self, expr: DelimiterExpr, inside_delimiters: bool):
        if expr.fixed_size:
            if expr.left_type != '.':
                self.text_or_command(expr.left_type)
            self.expr(expr.inner_expr, 0)
            if expr.right_type != '.':
                self.text_or_command(expr.right_type)
        else:
            self.command('left')
            self.text_or_command(expr.left_type)
            self.expr(expr.inner_expr, 0, True)
            self.command('right')
            self.text_or_command(expr.right_type)

    def _emit_subscript_superscript(self, expr: SubscriptSuperscriptExpr, inside_delimiters: bool):
        # \underbrace{xyz}_{abc}: command bases are not grouped
        if isinstance(expr.base_expr, CommandExpr):
            self.expr(expr.base_expr, 0)
        else:
            self.grouped_expr(expr.base_expr, None, 0)
        subexpr_index = 1
        # x^{\sum} but x^2
        if expr.superscript_expr is not None:
            self.text('^')
            self.grouped_expr(expr.superscript_expr, 'force_commands', subexpr_index)
            subexpr_index += 1
        if expr.subscript_expr is not None:
            self.text('_')
            self.grouped_expr(expr.subscript_expr, 'force_commands', subexpr_index)

    def _emit_array(self, expr: ArrayExpr, inside_delimiters: bool):
        if expr.is_matrix() and expr.has_separators():
            self._emit_array_with_separators(expr)
            return
        if expr.array_type == 'substack':
            self.text('\\substack{\n')
        else:
            self.begin_environment(expr.array_type)
        self._emit_array_rows(expr, with_rules=False)
        if expr.array_type == 'substack':
            self.text('}')
        else:
            self.end_environment(expr.array_type)

    def _emit_array_with_separators(self, expr: ArrayExpr):
        """
        Matrices with separators have to use {array}, which has no
        delimiters of its own, so they are emitted explicitly. \\kern
        compensates for the spacing unless there are horizontal rules.
        """
        left_delim, right_delim = ARRAY_DELIMITERS.get(expr.array_type, (None, None))
        pieces = ['{']
        for i in range(expr.column_count):
            pieces.append('c')
            if i < expr.column_count - 1:
                separator = expr.column_separators[i]
                if separator == 'solid':
                    pieces.append('|')
                elif separator == 'dashed':
                    pieces.append(':')
        pieces.append('}')
        has_row_separators = any(expr.row_separators)
        if left_delim:
            self.command('left')
            self.text_or_command(left_delim)
        if not has_row_separators:
            self.text_or_command('\\kern-5pt')
        self.begin_environment('array', ''.join(pieces))
        self._emit_array_rows(expr, with_rules=True)
        self.end_environment('array')
        if not has_row_separators:
            self.text_or_command('\\kern-5pt')
        if right_delim:
            self.command('right')
            self.text_or_command(right_delim)

    def _emit_array_rows(self, expr: ArrayExpr, with_rules: bool):
        subexpr_index = 0
        for row_index, row_exprs in enumerate(expr.element_exprs):
            if row_index > 0:
                self.row_separator()
                separator = expr.row_separators[row_index - 1] if with_rules else None
                if separator:
                    self.command('hline' if separator == 'solid' else 'hdashline')
                    self.text('\n')
            for column_index, element_expr in enumerate(row_exprs):
                if column_index > 0:
                    self.align_separator()
                self.expr(element_expr, subexpr_index)
                subexpr_index += 1

    def _emit_placeholder(self, expr: PlaceholderExpr, inside_delimiters: bool):
        if self.export_mode:
            self.expr(TextExpr('\\blacksquare'), None)
        else:
            self.expr(CommandExpr('htmlClass', [
                TextExpr('placeholder_expr'), TextExpr('\\blacksquare')]), None)

    _EMITTERS: Dict[ExprType, Callable] = {
        ExprType.TEXT: _emit_text,
        ExprType.COMMAND: _emit_command,
        ExprType.FONT: _emit_font,
        ExprType.INFIX: _emit_infix,
        ExprType.PREFIX: _emit_prefix,
        ExprType.POSTFIX: _emit_postfix,
        ExprType.FUNCTION_CALL: _emit_function_call,
        ExprType.SEQUENCE: _emit_sequence,
        ExprType.DELIMITER: _emit_delimiter,
        ExprType.SUBSCRIPT_SUPERSCRIPT: _emit_subscript_superscript,
        ExprType.ARRAY: _emit_array,
        ExprType.PLACEHOLDER: _emit_placeholder,
    }


def _flex_delimiter_operator(operator_expr: Expr) -> Optional[Expr]:
    """<x|y> -> \\left\\langle x \\middle\\vert y \\right\\rangle"""
    new_text = None
    if operator_expr.is_text_expr_with('/'):
        new_text = '\\middle/'
    elif operator_expr.is_command_expr_with(0):
        command = operator_expr.command_name
        if command in (',\\vert\\,', 'vert'):
            new_text = '\\,\\middle\\vert\\,'
        elif command == 'parallel':
            new_text = '\\,\\middle\\Vert\\,'
        elif command == 'backslash':
            new_text = '\\middle\\backslash '
    return TextExpr(new_text) if new_text else None
