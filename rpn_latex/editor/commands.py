"""
Editor Commands

Every command a keymap string can name, registered on the module-level
`registry`. A handler is called as handler(ctx, stack, *args) with the
BatchContext, the current Stack and the command's string arguments, and
returns the new Stack (None leaves the stack unchanged).

Handlers signal problems three ways:
    - raise StackUnderflow / StackTypeError / PrefixArgumentRequired
      (or any EditorError): the whole batch is discarded
    - ctx.flash_error(): the batch continues, the user sees a flash
    - raise ValueError: a malformed keymap string (programming error)

Usage:
    from rpn_latex.editor.commands import registry
    registry.invoke('swap', ctx, stack, [])
"""

from typing import Callable, List, Optional
import re

import numpy as np

from ..cas.bridge import engine_output_to_expr, expr_to_engine_input
from ..data.expr_parser import ExprParser
from ..data.items import CodeItem, Document, ExprItem, Item, Stack, TextItem
from ..model.evaluate import evaluate
from ..model.expr_path import ExprPath
from ..model.exprs import (
    ArrayExpr, CommandExpr, DelimiterExpr, Expr, FontExpr, FunctionCallExpr,
    InfixExpr, PlaceholderExpr, PostfixExpr, PrefixExpr, SubscriptSuperscriptExpr, TextExpr,
    combine_with_conjunction, concatenate, roman_text_to_expr, text_or_command,
)
from ..model.rationalize import rationalize
from .errors import EditorError, StackTypeError
from .input_context import BatchContext
from .registry import CommandRegistry
from .text_entry import TextEntryState
from . import keymap


registry = CommandRegistry()
command = registry.command

# Operators that all_on_left treats as the relation of an equation
RELATIONAL_OPERATORS = ('=', '<', '>', 'ne', 'le', 'ge')

OPERATORNAME_REGEX = re.compile(r'[^a-zA-Z0-9\- ]')
LATEX_LETTER_REGEX = re.compile(r'[a-zA-Z]$')


def _autoparenthesize_option(ctx: BatchContext, value: Optional[str]) -> bool:
    """'true' / 'false' override the autoparenthesize setting."""
    if value == 'true':
        return True
    if value == 'false':
        return False
    return ctx.settings.autoparenthesize


# =============================================================================
# Core and Stack Manipulation
# =============================================================================

@command('cancel')
def do_cancel(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    return None


@command('mode')
def do_mode(ctx: BatchContext, stack: Stack, new_mode: str) -> Optional[Stack]:
    if new_mode not in keymap.KEYMAP:
        raise ValueError(f"Unknown mode: {new_mode}")
    ctx.switch_to_mode(new_mode)
    return None


@command('undo')
def do_undo(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    ctx.request_undo_action('undo')
    return None


@command('redo')
def do_redo(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    ctx.request_undo_action('redo')
    return None


@command('dup')
def do_dup(ctx: BatchContext, stack: Stack) -> Stack:
    """x -> x x (duplicates the top N items with a prefix argument)"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(1, stack.depth()))
    return new_stack.push_all(items + [item.clone() for item in items])


@command('pop')
def do_pop(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, *_ = stack.pop(ctx.get_prefix_argument(1, stack.depth()))
    return new_stack


@command('nip')
def do_nip(ctx: BatchContext, stack: Stack) -> Stack:
    """x y -> y (with prefix N, drops the Nth item from the top)"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(2, stack.depth()))
    return new_stack.push_all(items[1:])


@command('swap')
def do_swap(ctx: BatchContext, stack: Stack) -> Stack:
    """x y -> y x (with prefix N, reverses the top N items)"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(2, stack.depth()))
    return new_stack.push_all(items[::-1])


@command('tuck')
def do_tuck(ctx: BatchContext, stack: Stack) -> Stack:
    """x y -> y x y"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(2, stack.depth()))
    if not items:
        return new_stack
    return new_stack.push_all([items[-1].clone()] + items)


@command('over')
def do_over(ctx: BatchContext, stack: Stack) -> Stack:
    """x y -> x y x"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(2, stack.depth()))
    if not items:
        return new_stack
    return new_stack.push_all(items + [items[0].clone()])


@command('rot')
def do_rot(ctx: BatchContext, stack: Stack) -> Stack:
    """x y z -> y z x"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(3, stack.depth()))
    return new_stack.push_all(items[1:] + items[:1])


@command('unrot')
def do_unrot(ctx: BatchContext, stack: Stack) -> Stack:
    """x y z -> z x y"""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(3, stack.depth()))
    return new_stack.push_all(items[-1:] + items[:-1])


@command('keep')
def do_keep(ctx: BatchContext, stack: Stack) -> Stack:
    """Drop everything except the top N items."""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(1, stack.depth()))
    new_stack, *_ = new_stack.pop(new_stack.depth())
    return new_stack.push_all(items)


@command('swap_floating_item')
def do_swap_floating_item(ctx: BatchContext, stack: Stack) -> Stack:
    """Move the stack top into the floating slot, or the floating item back onto the stack."""
    floating_item = stack.floating_item
    if floating_item is not None:
        return stack.with_floating_item(None).push(floating_item)
    new_stack, item = stack.pop(1)
    return new_stack.with_floating_item(item)


@command('reset_all')
def do_reset_all(ctx: BatchContext, stack: Stack) -> Stack:
    ctx.notify("Stack and document cleared")
    ctx.update_document(Document())
    return Stack()


@command('copy_to_clipboard')
def do_copy_to_clipboard(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    """Copy the stack top into clipboard slot N (default 1)."""
    item = stack.peek(1)
    slot = ctx.get_prefix_argument(1, '*')
    ctx.clipboard_items[slot] = item
    ctx.notify("Copied to clipboard" if slot == 1 else f"Copied to clipboard slot {slot}")
    ctx.suppress_undo()
    return None


@command('paste_from_clipboard')
def do_paste_from_clipboard(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    item = ctx.clipboard_items.get(ctx.get_prefix_argument(1, '*'))
    if item is None:
        return ctx.flash_error()
    return stack.push(item.clone())


@command('extract_latex_source')
def do_extract_latex_source(ctx: BatchContext, stack: Stack) -> Stack:
    """Push the stack top's LaTeX source as a code item."""
    item = stack.peek(1)
    return stack.push(CodeItem('latex', item.to_latex(True)))


@command('toggle_is_heading')
def do_toggle_is_heading(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    new_stack, item = stack.pop(1)
    if item.is_expr_item():
        item = TextItem.from_expr(item.expr)
    if not item.is_text_item() or item.is_empty():
        return ctx.flash_error()
    return new_stack.push(item.with_heading(not item.is_heading))


# =============================================================================
# Document
# =============================================================================

def _document_offset(amount: str, top_offset: int, bottom_offset: int) -> int:
    if amount == 'top':
        return top_offset
    if amount == 'bottom':
        return bottom_offset
    return int(amount)


@command('change_document_selection')
def do_change_document_selection(ctx: BatchContext, stack: Stack, amount: str) -> Optional[Stack]:
    """amount: a signed integer, 'top' or 'bottom'"""
    ctx.suppress_undo()
    document = ctx.app_state.document
    item_count = len(document.items)
    offset = _document_offset(amount, -item_count, item_count)
    ctx.update_document(document.move_selection_by(offset))
    return None


@command('shift_document_selection')
def do_shift_document_selection(ctx: BatchContext, stack: Stack, amount: str) -> Optional[Stack]:
    """Move the selected document item itself up or down."""
    document = ctx.app_state.document
    offset = _document_offset(
        amount, 1 - document.selection_index, len(document.items) - document.selection_index)
    new_document = document.shift_selection_by(offset)
    if new_document is None:
        return ctx.flash_error()
    ctx.update_document(new_document)
    return None


@command('pop_to_document')
def do_pop_to_document(ctx: BatchContext, stack: Stack, preserve: Optional[str] = None) -> Optional[Stack]:
    """Move (or with 'preserve', copy) the top N stack items into the document."""
    new_stack, *items = stack.pop(ctx.get_prefix_argument(1, stack.depth()))
    ctx.update_document(ctx.app_state.document.insert_items([item.clone() for item in items]))
    if preserve:
        return None
    return new_stack


@command('extract_from_document')
def do_extract_from_document(ctx: BatchContext, stack: Stack, preserve: Optional[str] = None) -> Optional[Stack]:
    """Move (or copy) the selected document item and the N-1 above it onto the stack."""
    document = ctx.app_state.document
    count = ctx.get_prefix_argument(1, len(document.items))
    selection_index = document.selection_index
    if count <= 0 or selection_index < count:
        return ctx.flash_error()
    extracted_items = document.items[selection_index - count:selection_index]
    if not preserve:
        ctx.update_document(document.delete_selection(count))
    return stack.push_all([item.clone() for item in extracted_items])


# =============================================================================
# Pushing New Items
# =============================================================================

@command('push')
def do_push(ctx: BatchContext, stack: Stack, text: Optional[str] = None) -> Stack:
    return stack.push_expr(text_or_command(text or ''))


@command('push_last_keypress')
def do_push_last_keypress(ctx: BatchContext, stack: Stack) -> Stack:
    return stack.push_expr(text_or_command(ctx.last_keypress or ''))


@command('push_placeholder')
def do_push_placeholder(ctx: BatchContext, stack: Stack) -> Stack:
    return stack.push_expr(PlaceholderExpr())


@command('push_separator')
def do_push_separator(ctx: BatchContext, stack: Stack) -> Stack:
    return stack.push(TextItem.empty_item())


@command('integer')
def do_integer(ctx: BatchContext, stack: Stack, integer_string: str) -> Stack:
    return stack.push_expr(TextExpr.integer(int(integer_string)))


@command('uppercase')
def do_uppercase(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    new_stack, expr = stack.pop_exprs(1)
    if isinstance(expr, TextExpr):
        return new_stack.push_expr(TextExpr(expr.text.upper()))
    return None


# =============================================================================
# Building Expressions
# =============================================================================

@command('subscript')
def do_subscript(ctx: BatchContext, stack: Stack, autoparenthesize: Optional[str] = None) -> Stack:
    new_stack, base_expr, subscript_expr = stack.pop_exprs(2)
    return new_stack.push_expr(base_expr.with_subscript_or_superscript(
        subscript_expr, True, _autoparenthesize_option(ctx, autoparenthesize)))


@command('superscript')
def do_superscript(ctx: BatchContext, stack: Stack, autoparenthesize: Optional[str] = None) -> Stack:
    new_stack, base_expr, superscript_expr = stack.pop_exprs(2)
    return new_stack.push_expr(base_expr.with_subscript_or_superscript(
        superscript_expr, False, _autoparenthesize_option(ctx, autoparenthesize)))


@command('prime')
def do_prime(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, base_expr = stack.pop_exprs(1)
    # f(x) -> f'(x)
    if isinstance(base_expr, FunctionCallExpr):
        return new_stack.push_expr(FunctionCallExpr(
            base_expr.fn_expr.with_prime(False), base_expr.args_expr))
    return new_stack.push_expr(base_expr.with_prime(ctx.settings.autoparenthesize))


@command('operator')
def do_operator(ctx: BatchContext, stack: Stack, opname: str, arity: str = '1') -> Stack:
    """\\opname{x}{y}... taking 'arity' operands from the stack."""
    new_stack, *operand_exprs = stack.pop_exprs(int(arity))
    return new_stack.push_expr(CommandExpr(opname, operand_exprs))


@command('fraction')
def do_fraction(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, numerator_expr, denominator_expr = stack.pop_exprs(2)
    return new_stack.push_expr(CommandExpr.frac(numerator_expr, denominator_expr))


@command('typeface')
def do_typeface(ctx: BatchContext, stack: Stack, typeface: str) -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    font_expr = FontExpr.wrap(expr).with_typeface(typeface)
    return new_stack.push_expr(font_expr.unwrap_if_possible())


@command('adjust_size')
def do_adjust_size(ctx: BatchContext, stack: Stack, operation: str) -> Stack:
    """operation: 'larger' or 'smaller'"""
    delta = 1 if operation == 'larger' else -1
    new_stack, expr = stack.pop_exprs(1)
    font_expr = FontExpr.wrap(expr)
    new_expr = font_expr.with_size_adjustment(font_expr.size_adjustment + delta)
    return new_stack.push_expr(new_expr.unwrap_if_possible())


@command('named_function')
def do_named_function(
    ctx: BatchContext,
    stack: Stack,
    funcname: str,
    superscript_text: Optional[str] = None
) -> Stack:
    """
    \\sin{x}, \\sin^2{x}, \\sin^{-1}{x}; a leading '_' in superscript_text
    makes it a subscript (\\log_2{x}).
    """
    new_stack, arg_expr = stack.pop_exprs(1)
    command_name = funcname
    if superscript_text is not None:
        script_marker = '^'
        if superscript_text.startswith('_'):
            script_marker = '_'
            superscript_text = superscript_text[1:]
        if len(superscript_text) > 1:
            superscript_text = '{' + superscript_text + '}'
        command_name = funcname + script_marker + superscript_text
    if ctx.settings.autoparenthesize:
        arg_expr = DelimiterExpr.parenthesize_for_argument(arg_expr)
    # LaTeX has no \sech or \csch
    if funcname in ('sech', 'csch'):
        expr = CommandExpr('operatorname', [TextExpr(command_name), arg_expr])
    else:
        expr = CommandExpr(command_name, [arg_expr])
    return new_stack.push_expr(expr)


@command('differential_form')
def do_differential_form(
    ctx: BatchContext,
    stack: Stack,
    degree: str,
    typeface: Optional[str] = None
) -> Stack:
    """x y -> dx \\wedge dy; degree 0 just pushes 'd'."""
    d_expr = FontExpr.roman_text('d') if typeface == 'roman' else TextExpr('d')
    new_stack, *exprs = stack.pop_exprs(int(degree))
    if not exprs:
        return new_stack.push_expr(d_expr)
    dx_exprs = []
    for expr in exprs:
        is_negated = expr.is_unary_minus_expr()
        base_expr = expr.base_expr if is_negated else expr
        if ctx.settings.autoparenthesize:
            base_expr = DelimiterExpr.autoparenthesize(base_expr)
        dx_expr = concatenate(d_expr, base_expr)
        if is_negated:
            dx_expr = PrefixExpr.unary_minus(dx_expr)
        dx_exprs.append(dx_expr)
    return new_stack.push_expr(InfixExpr.combine_infix_all(dx_exprs, CommandExpr('wedge')))


def _apply_hat(expr: Expr, hat_op: str) -> Expr:
    # Dotless i and j under accents
    if expr.is_text_expr_with('i') or expr.is_text_expr_with('j'):
        return CommandExpr(hat_op, [CommandExpr('imath' if expr.text == 'i' else 'jmath')])
    if isinstance(expr, SubscriptSuperscriptExpr):
        return expr.replace_subexpression(0, _apply_hat(expr.base_expr, hat_op))
    if isinstance(expr, FontExpr) and expr.typeface == 'normal':
        return expr.replace_subexpression(0, _apply_hat(expr.expr, hat_op))
    return CommandExpr(hat_op, [expr])


@command('apply_hat')
def do_apply_hat(ctx: BatchContext, stack: Stack, hat_op: str) -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    return new_stack.push_expr(_apply_hat(expr, hat_op))


@command('html_class')
def do_html_class(
    ctx: BatchContext,
    stack: Stack,
    class_name: str,
    class_name_2: Optional[str] = None
) -> Stack:
    """
    Wrap in \\htmlClass{class_name}. Applying it again switches to
    class_name_2 if given, otherwise removes the wrapper.
    """
    new_stack, expr = stack.pop_exprs(1)
    new_class_name = class_name
    if expr.is_command_expr_with(2, 'htmlClass') and \
       isinstance(expr.operand_exprs[0], TextExpr):
        new_class_name = class_name_2 if expr.operand_exprs[0].text == class_name else None
        expr = expr.operand_exprs[1]
    if new_class_name:
        expr = CommandExpr('htmlClass', [TextExpr(new_class_name), expr])
    return new_stack.push_expr(expr)


@command('make_bold')
def do_make_bold(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, item = stack.pop(1)
    return new_stack.push(item.as_bold())


# =============================================================================
# Infix, Prefix and Concatenation
# =============================================================================

def _is_text_or_expr(item: Item) -> bool:
    return item.is_expr_item() or item.is_text_item()


@command('infix')
def do_infix(ctx: BatchContext, stack: Stack, opname: str) -> Stack:
    """x y -> x+y; with a text item on either side the result is text."""
    new_stack, left_item, right_item = stack.pop(2)
    if left_item.is_expr_item() and right_item.is_expr_item():
        return new_stack.push_expr(InfixExpr.combine_infix(
            left_item.expr, right_item.expr, text_or_command(opname)))
    if _is_text_or_expr(left_item) and _is_text_or_expr(right_item):
        return new_stack.push(TextItem.concatenate_items(left_item, right_item, opname))
    raise StackTypeError("text or expression", 2)


@command('apply_infix')
def do_apply_infix(ctx: BatchContext, stack: Stack) -> Stack:
    """x y op -> x op y, with the operator taken from the stack."""
    new_stack, left_expr, right_expr, operator_expr = stack.pop_exprs(3)
    return new_stack.push_expr(InfixExpr.combine_infix(left_expr, right_expr, operator_expr))


@command('conjunction')
def do_conjunction(ctx: BatchContext, stack: Stack, phrase: str) -> Stack:
    """phrase uses '_' for spaces: 'for_all' -> 'for all'"""
    new_stack, left_expr, right_expr = stack.pop_exprs(2)
    return new_stack.push_expr(combine_with_conjunction(
        left_expr, right_expr, phrase.replace('_', ' '), False))


@command('concat')
def do_concat(ctx: BatchContext, stack: Stack, autoparenthesize: Optional[str] = None) -> Stack:
    new_stack, left_item, right_item = stack.pop(2)
    no_parenthesize = autoparenthesize == 'false' or not ctx.settings.autoparenthesize
    if left_item.is_expr_item() and right_item.is_expr_item():
        return new_stack.push_expr(concatenate(left_item.expr, right_item.expr, no_parenthesize))
    if _is_text_or_expr(left_item) and _is_text_or_expr(right_item):
        return new_stack.push(TextItem.concatenate_items(left_item, right_item))
    raise StackTypeError("text or expression", 2)


@command('function_call')
def do_function_call(ctx: BatchContext, stack: Stack) -> Stack:
    """f (x) -> f(x); the arguments must already be delimited."""
    new_stack, fn_expr, args_expr = stack.pop_exprs(2)
    if not isinstance(args_expr, DelimiterExpr):
        raise StackTypeError("delimited argument")
    return new_stack.push_expr(FunctionCallExpr(fn_expr, args_expr))


@command('prefix')
def do_prefix(ctx: BatchContext, stack: Stack, operator_text: str) -> Stack:
    new_stack, base_expr = stack.pop_exprs(1)
    return new_stack.push_expr(PrefixExpr(base_expr, text_or_command(operator_text)))


@command('negate')
def do_negate(ctx: BatchContext, stack: Stack) -> Stack:
    return do_prefix(ctx, stack, '-')


@command('negate_comparison')
def do_negate_comparison(ctx: BatchContext, stack: Stack) -> Stack:
    """x = y -> x \\neq y, and back."""
    new_stack, expr = stack.pop_exprs(1)
    negated_expr = expr.as_logical_negation()
    if negated_expr is None:
        raise StackTypeError("comparison")
    return new_stack.push_expr(negated_expr)


@command('swap_pieces')
def do_swap_pieces(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    """
    Swap the two sides of an infix expression, a fraction, a subscript
    and superscript, or turn a postfix operator into a prefix one.
    """
    new_stack, expr = stack.pop_exprs(1)
    new_expr = None
    if isinstance(expr, InfixExpr):
        new_expr = expr.swap_sides_at(expr.split_at_index)
    elif expr.is_command_expr_with(2, 'frac'):
        new_expr = CommandExpr.frac(expr.operand_exprs[1], expr.operand_exprs[0])
    elif isinstance(expr, DelimiterExpr) and expr.is_flex_inline_fraction():
        inner_expr = expr.inner_expr
        new_expr = DelimiterExpr(
            '.', '.',
            InfixExpr(inner_expr.operand_exprs[::-1], inner_expr.operator_exprs),
            expr.fixed_size)
    elif isinstance(expr, SubscriptSuperscriptExpr):
        new_expr = SubscriptSuperscriptExpr(
            expr.base_expr, expr.superscript_expr, expr.subscript_expr)
    elif isinstance(expr, PostfixExpr):
        new_expr = PrefixExpr(expr.base_expr, expr.operator_expr)
    elif isinstance(expr, PrefixExpr):
        new_expr = PostfixExpr(expr.base_expr, expr.operator_expr)
    if new_expr is None:
        return ctx.flash_error()
    return new_stack.push_expr(new_expr)


@command('infix_linebreak')
def do_infix_linebreak(ctx: BatchContext, stack: Stack) -> Stack:
    """Cycle the split_at operator through: break after, break before, no break."""
    new_stack, infix_expr = stack.pop_exprs(1)
    if not isinstance(infix_expr, InfixExpr):
        raise StackTypeError("infix expression")
    index_before = 2 * infix_expr.split_at_index
    index_after = index_before + 1
    if infix_expr.has_linebreak_at(index_after):
        new_expr = infix_expr.without_linebreak_at(index_after).with_linebreak_at(index_before)
    elif infix_expr.has_linebreak_at(index_before):
        new_expr = infix_expr.without_linebreak_at(index_before)
    else:
        new_expr = infix_expr.with_linebreak_at(index_after)
    return new_stack.push_expr(new_expr)


@command('extract_side')
def do_extract_side(ctx: BatchContext, stack: Stack, which_side: str) -> Stack:
    """
    'left' or 'right' piece of: an infix expression (at split_at_index),
    a fraction (numerator/denominator), or a prefix/postfix operation.
    """
    new_stack, expr = stack.pop_exprs(1)
    index = 1 if which_side == 'right' else 0
    if isinstance(expr, InfixExpr):
        extracted_expr = expr.extract_side_at(expr.split_at_index, which_side)
    elif expr.is_command_expr_with(2, 'frac'):
        extracted_expr = expr.operand_exprs[index]
    elif isinstance(expr, DelimiterExpr) and expr.is_flex_inline_fraction():
        extracted_expr = expr.inner_expr.operand_exprs[index]
    elif isinstance(expr, PrefixExpr):
        extracted_expr = expr.base_expr if which_side == 'right' else expr.operator_expr
    elif isinstance(expr, PostfixExpr):
        extracted_expr = expr.operator_expr if which_side == 'right' else expr.base_expr
    else:
        raise StackTypeError("expression with two sides")
    return new_stack.push_expr(extracted_expr)


@command('all_on_left')
def do_all_on_left(ctx: BatchContext, stack: Stack, drop_rhs: Optional[str] = None) -> Optional[Stack]:
    """
    x = y -> x - y = 0 (or just x - y with drop_rhs='true'). Only applies
    when there is exactly one relational operator.
    """
    new_stack, expr = stack.pop_exprs(1)
    if not isinstance(expr, InfixExpr):
        return None
    relation_indexes = [
        i for i in range(len(expr.operator_exprs))
        if expr.operator_text_at(i) in RELATIONAL_OPERATORS]
    if len(relation_indexes) != 1:
        return None
    relation_index = relation_indexes[0]
    lhs = expr.extract_side_at(relation_index, 'left')
    rhs = expr.extract_side_at(relation_index, 'right')
    if rhs.is_text_expr_with('0'):
        # Already x = 0
        return new_stack.push_expr(lhs) if drop_rhs == 'true' else None
    new_lhs = InfixExpr.combine_infix(lhs, rhs, TextExpr('-'))
    if drop_rhs == 'true':
        return new_stack.push_expr(new_lhs)
    return new_stack.push_expr(InfixExpr.combine_infix(
        new_lhs, TextExpr.integer(0), expr.operator_exprs[relation_index]))


# =============================================================================
# Substitution and Numerics
# =============================================================================

@command('substitute_placeholder')
def do_substitute_placeholder(ctx: BatchContext, stack: Stack) -> Stack:
    """Put the stack top into the first placeholder of the item below it."""
    new_stack, substitution_expr = stack.pop_exprs(1)
    new_stack, item = new_stack.pop(1)
    if item.is_expr_item():
        placeholder_path = item.expr.find_placeholder_path()
        if placeholder_path is not None:
            return new_stack.push_expr(
                ExprPath(item.expr, placeholder_path).replace_selection(substitution_expr))
    elif item.is_text_item():
        new_item = item.try_substitute_placeholder(substitution_expr)
        if new_item is not None:
            return new_stack.push(new_item)
    raise StackTypeError("placeholder")


@command('substitute')
def do_substitute(ctx: BatchContext, stack: Stack) -> Stack:
    """expr search replacement -> expr with every match of search replaced"""
    new_stack, expr, search_expr, substitution_expr = stack.pop_exprs(3)
    return new_stack.push_expr(expr.substitute(search_expr, substitution_expr))


@command('dissolve')
def do_dissolve(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    return new_stack.push_all_exprs(expr.dissolve())


@command('rationalize')
def do_rationalize(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    """Replace a numeric expression by a fraction, possibly times a constant like pi."""
    new_stack, expr = stack.pop_exprs(1)
    value = evaluate(expr)
    if value is None:
        return ctx.flash_error()
    result_expr = rationalize(
        value, ctx.settings.max_rational_denominator, ctx.settings.rational_tolerance)
    if result_expr is None:
        return ctx.flash_error()
    return new_stack.push_expr(result_expr)


@command('evaluate')
def do_evaluate(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    new_stack, expr = stack.pop_exprs(1)
    value = evaluate(expr)
    if value is None:
        return ctx.flash_error()
    value_text = np.format_float_positional(value, precision=12, trim='-')
    return new_stack.push_expr(TextExpr.integer(value_text))


@command('prefix_argument')
def do_prefix_argument(ctx: BatchContext, stack: Stack, keys: Optional[str] = None) -> Optional[Stack]:
    """
    Accumulate the numeric prefix argument from the last keypress (or from
    'keys' when given): digits build up a number, '*' means "all items".
    """
    ctx.suppress_undo()
    ctx.keep_mode()
    ctx.preserve_prefix = True
    for key in (keys if keys is not None else ctx.last_keypress or ''):
        if key.isdigit():
            old_value = ctx.prefix_argument
            digit = int(key)
            new_value = 10 * old_value + digit if old_value is not None and old_value > 0 else digit
            ctx.prefix_argument = min(new_value, ctx.settings.max_prefix_argument)
        elif key == '*':
            ctx.prefix_argument = -1
        else:
            ctx.prefix_argument = None
    return None


@command('config')
def do_config(ctx: BatchContext, stack: Stack, option: str, value: Optional[str] = None) -> Optional[Stack]:
    settings = ctx.settings
    if option == 'autoparenthesize':
        settings.autoparenthesize = value == 'on'
        ctx.notify(f"Autoparenthesize: {'on' if settings.autoparenthesize else 'off'}")
    elif option == 'toggle_debug_mode':
        settings.debug_mode = not settings.debug_mode
        ctx.notify(f"Debug mode: {'on' if settings.debug_mode else 'off'}")
    elif option == 'reset':
        settings.reset()
        ctx.notify("Settings reset to defaults")
    else:
        raise ValueError(f"Unknown config option: {option}")
    ctx.suppress_undo()
    return None


# =============================================================================
# Delimiters
# =============================================================================

@command('delimiters')
def do_delimiters(ctx: BatchContext, stack: Stack, left_type: str, right_type: str) -> Stack:
    new_stack, inner_expr = stack.pop_exprs(1)
    # Blank delimiters are replaced rather than nested
    if isinstance(inner_expr, DelimiterExpr) and inner_expr.is_blank():
        inner_expr = inner_expr.inner_expr
    return new_stack.push_expr(DelimiterExpr(left_type, right_type, inner_expr))


@command('parenthesize')
def do_parenthesize(ctx: BatchContext, stack: Stack, left_type: str = '(', right_type: str = ')') -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    return new_stack.push_expr(
        DelimiterExpr.parenthesize_if_not_already(expr, left_type, right_type))


@command('autoparenthesize')
def do_autoparenthesize(ctx: BatchContext, stack: Stack, count: str = '1') -> Optional[Stack]:
    """Parenthesize the top N items if needed, when autoparenthesize is on."""
    new_stack, *items = stack.pop(int(count))
    if not ctx.settings.autoparenthesize or not all(item.is_expr_item() for item in items):
        return None
    return new_stack.push_all_exprs([DelimiterExpr.autoparenthesize(item.expr) for item in items])


@command('parenthesize_argument')
def do_parenthesize_argument(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    return new_stack.push_expr(DelimiterExpr.parenthesize_for_argument(expr))


@command('modify_delimiter')
def do_modify_delimiter(ctx: BatchContext, stack: Stack, delimiter_type: str, side: str) -> Stack:
    """Change one side's delimiter, adding a blank-delimited wrapper if needed."""
    new_stack, expr = stack.pop_exprs(1)
    new_expr = expr
    if isinstance(expr, DelimiterExpr):
        new_expr = DelimiterExpr(
            delimiter_type if side == 'left' else expr.left_type,
            delimiter_type if side == 'right' else expr.right_type,
            expr.inner_expr, expr.fixed_size)
    elif delimiter_type != '.':
        new_expr = DelimiterExpr(
            delimiter_type if side == 'left' else '.',
            delimiter_type if side == 'right' else '.',
            expr)
    return new_stack.push_expr(new_expr)


@command('remove_delimiters')
def do_remove_delimiters(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    new_stack, expr = stack.pop_exprs(1)
    if not isinstance(expr, DelimiterExpr):
        return None
    return new_stack.push_expr(expr.inner_expr)


@command('toggle_fixed_size_delimiters')
def do_toggle_fixed_size_delimiters(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    if not isinstance(expr, DelimiterExpr):
        raise StackTypeError("delimited expression")
    return new_stack.push_expr(expr.as_fixed_size(not expr.fixed_size))


# =============================================================================
# Arrays and Matrices
# =============================================================================

@command('build_matrix_row')
def do_build_matrix_row(
    ctx: BatchContext,
    stack: Stack,
    matrix_type: str = 'bmatrix',
    column_count: Optional[str] = None
) -> Optional[Stack]:
    """x1 ... xN -> [x1 ... xN], N from column_count or the prefix argument."""
    expr_count = int(column_count) if column_count else ctx.get_prefix_argument(0, stack.depth())
    if expr_count <= 0:
        return ctx.flash_error()
    new_stack, *exprs = stack.pop_exprs(expr_count)
    return new_stack.push_expr(ArrayExpr(matrix_type, 1, expr_count, [exprs]))


@command('build_matrix')
def do_build_matrix(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    """
    Start an N x M matrix: N is the prefix argument now, M is the prefix
    argument given to finish_build_matrix in build_matrix mode.
    """
    ctx.matrix_row_count = ctx.require_prefix_argument(False)
    ctx.switch_to_mode('build_matrix')
    return None


@command('finish_build_matrix')
def do_finish_build_matrix(ctx: BatchContext, stack: Stack, matrix_type: str) -> Stack:
    column_count = ctx.require_prefix_argument(False)
    row_count = ctx.matrix_row_count
    if row_count is None:
        raise EditorError("No matrix is being built")
    new_stack, *exprs = stack.pop_exprs(row_count * column_count)
    element_exprs = [exprs[row * column_count:(row + 1) * column_count]
                     for row in range(row_count)]
    ctx.matrix_row_count = None
    return new_stack.push_expr(ArrayExpr(matrix_type, row_count, column_count, element_exprs))


@command('stack_arrays')
def do_stack_arrays(ctx: BatchContext, stack: Stack, direction: str) -> Optional[Stack]:
    """Join the top N arrays 'vertical'ly or 'horizontal'ly."""
    array_count = ctx.get_prefix_argument(2, stack.depth())
    if array_count < 1:
        return None
    new_stack, *arrays = stack.pop_arrays(array_count)
    new_array = arrays[0]
    for array_expr in arrays[1:]:
        if direction == 'vertical':
            new_array = ArrayExpr.vstack_arrays(new_array, array_expr)
        else:
            new_array = ArrayExpr.hstack_arrays(new_array, array_expr)
        if new_array is None:
            raise StackTypeError("compatible array", array_count)
    return new_stack.push_expr(new_array)


@command('split_array')
def do_split_array(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, array_expr = stack.pop_arrays(1)
    return new_stack.push_all_exprs(array_expr.split_rows())


@command('insert_matrix_ellipses')
def do_insert_matrix_ellipses(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, matrix_expr = stack.pop_matrices(1)
    return new_stack.push_expr(matrix_expr.with_ellipses())


@command('transpose_matrix')
def do_transpose_matrix(ctx: BatchContext, stack: Stack) -> Stack:
    """Transpose a matrix literal, or put a ^T on anything else."""
    new_stack, expr = stack.pop_exprs(1)
    if isinstance(expr, ArrayExpr) and expr.is_matrix():
        return new_stack.push_expr(expr.transposed())
    return new_stack.push_expr(
        expr.with_superscript(FontExpr.roman_text('T'), ctx.settings.autoparenthesize))


@command('change_matrix_type')
def do_change_matrix_type(ctx: BatchContext, stack: Stack, new_type: str) -> Stack:
    new_stack, matrix_expr = stack.pop_matrices(1)
    return new_stack.push_expr(matrix_expr.with_array_type(new_type))


@command('array_separator')
def do_array_separator(
    ctx: BatchContext,
    stack: Stack,
    row_or_column: str,
    separator_type: str
) -> Optional[Stack]:
    """
    Toggle a separator line after row/column N (the prefix argument,
    default 1); with '*', every row/column gap.
    """
    new_stack, matrix_expr = stack.pop_matrices(1)
    is_column = row_or_column == 'column'
    size = matrix_expr.column_count if is_column else matrix_expr.row_count
    index = ctx.get_prefix_argument(1, None)
    if index is not None and (index < 1 or index > size - 1):
        return ctx.flash_error()
    return new_stack.push_expr(matrix_expr.with_separator(
        is_column, None if index is None else index - 1, separator_type, True))


@command('build_align')
def do_build_align(ctx: BatchContext, stack: Stack, align_type: str) -> Optional[Stack]:
    """
    Stack N expressions into an alignment environment. 'cases' and 'rcases'
    split at a ':' operator; the '_if' variants add "if" / "otherwise".
    """
    expr_count = ctx.get_prefix_argument(0, stack.depth())
    if expr_count <= 0:
        return ctx.flash_error()
    new_stack, *exprs = stack.pop_exprs(expr_count)
    if align_type in ('gathered', 'gather'):
        split_mode = 'none'
    elif align_type in ('cases', 'rcases'):
        split_mode = 'colon'
    elif align_type in ('cases_if', 'rcases_if'):
        split_mode = 'colon_if'
        align_type = align_type[:-len('_if')]
    else:
        split_mode = 'infix'
    element_exprs = ArrayExpr.split_elements(exprs, split_mode)
    return new_stack.push_expr(ArrayExpr(
        align_type, len(element_exprs), len(element_exprs[0]), element_exprs))


@command('build_infix_list')
def do_build_infix_list(
    ctx: BatchContext,
    stack: Stack,
    infix_text: str,
    final_operand_text: Optional[str] = None
) -> Stack:
    """
    x1 ... xN -> x1, x2, ..., xN; final_operand_text (e.g. \\cdots) is
    spliced in before the last operand.
    """
    ctx.require_prefix_argument(True)
    expr_count = ctx.get_prefix_argument(1, stack.depth())
    new_stack, *operand_exprs = stack.pop_exprs(expr_count)
    if final_operand_text:
        operand_exprs.insert(len(operand_exprs) - 1, text_or_command(final_operand_text))
    return new_stack.push_expr(
        InfixExpr.combine_infix_all(operand_exprs, text_or_command(infix_text)))


@command('build_substack')
def do_build_substack(ctx: BatchContext, stack: Stack) -> Stack:
    expr_count = ctx.require_prefix_argument()
    new_stack, *exprs = stack.pop_exprs(expr_count)
    return new_stack.push_expr(
        ArrayExpr('substack', expr_count, 1, [[expr] for expr in exprs]))


# =============================================================================
# Text Entry
# =============================================================================

def _text_entry(ctx: BatchContext) -> TextEntryState:
    if ctx.text_entry is None:
        raise EditorError("Not in text entry mode")
    return ctx.text_entry


def _start_text_entry(
    ctx: BatchContext,
    text_entry_mode: str,
    initial_text: str = '',
    edited_item: Optional[Item] = None
):
    ctx.text_entry = TextEntryState(text_entry_mode, initial_text, edited_item=edited_item)
    ctx.switch_to_mode(text_entry_mode)
    ctx.suppress_undo()


def _cancel_text_entry(ctx: BatchContext, stack: Stack) -> Stack:
    """Leave text entry, putting back the item being edited (if any)."""
    edited_item = ctx.text_entry.edited_item if ctx.text_entry is not None else None
    ctx.text_entry = None
    if edited_item is None:
        return stack
    return stack.push(edited_item)


def _text_entry_error(ctx: BatchContext) -> None:
    """Stay in the line editor so the input can be fixed."""
    ctx.suppress_undo()
    ctx.keep_mode()
    return ctx.flash_error()


@command('start_text_entry')
def do_start_text_entry(
    ctx: BatchContext,
    stack: Stack,
    text_entry_mode: str,
    initial_text: Optional[str] = None
) -> Optional[Stack]:
    # Conjunctions need two expressions and tags need an item to tag
    if text_entry_mode == 'conjunction_entry' and not stack.check_exprs(2):
        return ctx.flash_error()
    if text_entry_mode == 'tag_entry' and \
       not (stack.check(1) and _is_text_or_expr(stack.peek(1))):
        return ctx.flash_error()
    _start_text_entry(ctx, text_entry_mode, initial_text or '')
    return None


@command('edit_item')
def do_edit_item(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    """Take the stack top back into the line editor, if it came from there."""
    new_stack, item = stack.pop(1)
    text_entry_mode = None
    initial_text = None
    if item.is_text_item():
        initial_text = item.source_string or item.as_editable_string()
        if initial_text:
            text_entry_mode = 'text_entry'
    elif item.is_expr_item():
        expr = item.expr
        if expr.is_command_expr_with(0) and expr.is_special_latex_command():
            text_entry_mode, initial_text = 'math_entry', expr.command_name
        elif expr.is_command_expr_with(0):
            text_entry_mode, initial_text = 'latex_entry', expr.command_name
        elif item.source_string != '':
            initial_text = item.source_string or expr.as_editable_string()
            if initial_text:
                text_entry_mode = 'math_entry'
    if text_entry_mode is None:
        return ctx.flash_error()
    _start_text_entry(ctx, text_entry_mode, initial_text, item)
    return new_stack


@command('cancel_text_entry')
def do_cancel_text_entry(ctx: BatchContext, stack: Stack) -> Stack:
    ctx.suppress_undo()
    return _cancel_text_entry(ctx, stack)


@command('text_entry_move_cursor')
def do_text_entry_move_cursor(ctx: BatchContext, stack: Stack, move_type: str) -> Optional[Stack]:
    """move_type: 'left', 'right', 'begin' or 'end'"""
    ctx.text_entry = _text_entry(ctx).move(move_type)
    ctx.suppress_undo()
    ctx.keep_mode()
    return None


@command('append_text_entry')
def do_append_text_entry(ctx: BatchContext, stack: Stack, text: Optional[str] = None) -> Optional[Stack]:
    """Insert the last keypress (or 'text') at the cursor."""
    text_entry = _text_entry(ctx)
    key = text if text is not None else ctx.last_keypress
    ctx.suppress_undo()
    ctx.keep_mode()
    if not key or len(key) != 1:
        return None
    if text_entry.mode == 'latex_entry':
        # Command names are letters only, except single-character ones like \,
        is_letter = LATEX_LETTER_REGEX.match(key) is not None
        if (not is_letter and not text_entry.is_empty()) or \
           (is_letter and not LATEX_LETTER_REGEX.match(text_entry.text[:1] or 'a')):
            return ctx.flash_error()
    if text_entry.mode == 'math_entry' and key == '\\' and text_entry.is_empty():
        # A leading backslash switches to LaTeX command entry
        _start_text_entry(ctx, 'latex_entry', '', text_entry.edited_item)
        return None
    ctx.text_entry = text_entry.insert(key)
    return None


@command('text_entry_backspace')
def do_text_entry_backspace(
    ctx: BatchContext,
    stack: Stack,
    backspace_type: str = 'backspace',
    mode_when_empty: Optional[str] = None
) -> Stack:
    """
    backspace_type: 'backspace' or 'delete'. Backspacing an empty entry
    leaves the line editor (or switches to mode_when_empty).
    """
    text_entry = _text_entry(ctx)
    ctx.suppress_undo()
    if text_entry.is_empty():
        if mode_when_empty:
            _start_text_entry(ctx, mode_when_empty, '', text_entry.edited_item)
            return stack
        return _cancel_text_entry(ctx, stack)
    if backspace_type == 'delete':
        ctx.text_entry = text_entry.do_delete()
    else:
        ctx.text_entry = text_entry.backspace()
    ctx.keep_mode()
    return stack


def _finish_math_text(ctx: BatchContext, stack: Stack, text: str, textstyle: str) -> Optional[Stack]:
    """finish_text_entry for the styles that build a new expression."""
    trimmed_text = text.strip()
    if textstyle == 'roman_text':
        new_expr = roman_text_to_expr(trimmed_text)
    elif textstyle == 'operatorname':
        name = OPERATORNAME_REGEX.sub('', trimmed_text).replace(' ', '\\,')
        new_expr = CommandExpr('operatorname', [TextExpr(name)])
    elif textstyle == 'latex':
        new_expr = CommandExpr(trimmed_text)
    elif textstyle == 'latex_unary':
        if not stack.check_exprs(1):
            return _text_entry_error(ctx)
        stack, operand_expr = stack.pop_exprs(1)
        new_expr = CommandExpr(trimmed_text, [operand_expr])
    elif textstyle in ('conjunction', 'bold_conjunction'):
        stack, left_expr, right_expr = stack.pop_exprs(2)
        new_expr = combine_with_conjunction(
            left_expr, right_expr, trimmed_text, textstyle == 'bold_conjunction')
    elif textstyle == 'math':
        new_expr = ExprParser.parse_string(text)
        if new_expr is None:
            return _text_entry_error(ctx)
    else:
        raise ValueError(f"Unknown text entry style: {textstyle}")
    ctx.text_entry = None
    return stack.push(ExprItem(new_expr, source_string=text))


@command('finish_text_entry')
def do_finish_text_entry(ctx: BatchContext, stack: Stack, textstyle: str) -> Optional[Stack]:
    """
    Build an item from the line editor's text. The edited item (if any)
    is replaced by the result.
    """
    text_entry = _text_entry(ctx)
    is_tag = textstyle in ('tag', 'tag_with_parentheses')
    if text_entry.is_empty() and not is_tag:
        ctx.suppress_undo()
        return _cancel_text_entry(ctx, stack)
    text = text_entry.text
    trimmed_text = text.strip()

    if textstyle in ('text', 'heading'):
        text_item = TextItem.parse_string(trimmed_text)
        if text_item is None:
            return _text_entry_error(ctx)
        if textstyle == 'heading':
            text_item = text_item.with_heading(True)
        ctx.text_entry = None
        return stack.push(text_item)

    if is_tag:
        new_stack, item = stack.pop(1)
        if not _is_text_or_expr(item):
            raise StackTypeError("text or expression")
        tag_string = None
        if trimmed_text:
            tag_string = f"({trimmed_text})" if textstyle == 'tag_with_parentheses' else trimmed_text
        ctx.text_entry = None
        return new_stack.push(item.with_tag(tag_string))

    return _finish_math_text(ctx, stack, text, textstyle)


# =============================================================================
# Dissect Mode
# =============================================================================

def _dissected_item(stack: Stack):
    new_stack, item = stack.pop(1)
    if not item.is_expr_item() or item.selected_expr_path is None:
        raise StackTypeError("dissected expression")
    return new_stack, item.selected_expr_path


def _dissect_operation(
    ctx: BatchContext,
    stack: Stack,
    fn: Callable[[ExprPath], ExprPath]
) -> Stack:
    new_stack, expr_path = _dissected_item(stack)
    new_path = fn(expr_path)
    ctx.keep_mode()
    ctx.suppress_undo()
    return new_stack.push(ExprItem(new_path.expr, selected_expr_path=new_path))


@command('start_dissect_mode')
def do_start_dissect_mode(ctx: BatchContext, stack: Stack) -> Optional[Stack]:
    """Select the first subexpression of the stack top for dissection."""
    new_stack, expr = stack.pop_exprs(1)
    if not expr.has_subexpressions():
        return ctx.flash_error()
    ctx.switch_to_mode('dissect')
    ctx.suppress_undo()
    ctx.dissect_initial_expr = expr
    return new_stack.push(ExprItem(expr, selected_expr_path=ExprPath(expr, (0,))))


@command('cancel_dissect_mode')
def do_cancel_dissect_mode(ctx: BatchContext, stack: Stack) -> Stack:
    new_stack, expr = stack.pop_exprs(1)
    original_expr = ctx.dissect_initial_expr if ctx.dissect_initial_expr is not None else expr
    ctx.dissect_initial_expr = None
    ctx.suppress_undo()
    return new_stack.push_expr(original_expr)


@command('dissect_descend')
def do_dissect_descend(ctx: BatchContext, stack: Stack) -> Stack:
    return _dissect_operation(
        ctx, stack, lambda path: path.descend(0) if path.can_descend() else path)


@command('dissect_ascend')
def do_dissect_ascend(ctx: BatchContext, stack: Stack) -> Stack:
    # The root itself is never selected
    return _dissect_operation(
        ctx, stack, lambda path: path.ascend() if path.depth() > 1 else path)


@command('dissect_move_selection')
def do_dissect_move_selection(ctx: BatchContext, stack: Stack, direction: str) -> Stack:
    return _dissect_operation(ctx, stack, lambda path: path.move(direction))


@command('dissect_extract_selection')
def do_dissect_extract_selection(ctx: BatchContext, stack: Stack, trim: Optional[str] = None) -> Stack:
    """
    Push the whole expression with the selection replaced by a
    placeholder, then the selection itself ('trim': only the former).
    """
    new_stack, expr_path = _dissected_item(stack)
    ctx.dissect_initial_expr = None
    with_placeholder_expr = expr_path.extract_selection()
    if trim:
        return new_stack.push_expr(with_placeholder_expr)
    return new_stack.push_all_exprs([with_placeholder_expr, expr_path.selected_expr()])


@command('dissect_copy_selection')
def do_dissect_copy_selection(ctx: BatchContext, stack: Stack, trim: Optional[str] = None) -> Stack:
    """Push the whole expression, then a copy of the selection ('trim': only the selection)."""
    new_stack, expr_path = _dissected_item(stack)
    ctx.dissect_initial_expr = None
    if trim:
        return new_stack.push_expr(expr_path.selected_expr())
    return new_stack.push_all_exprs([expr_path.expr, expr_path.selected_expr()])


# =============================================================================
# Algebra Engine
# =============================================================================

@command('engine')
def do_engine(ctx: BatchContext, stack: Stack, function_name: str, arity: str = '1') -> Stack:
    """Apply an engine function (e.g. 'simplify', 'factor') to the top N expressions."""
    if ctx.engine is None:
        raise EditorError("No algebra engine available")
    new_stack, *exprs = stack.pop_exprs(int(arity))
    engine_inputs: List[str] = [expr_to_engine_input(expr) for expr in exprs]
    value = ctx.engine(function_name, engine_inputs)
    return new_stack.push_expr(engine_output_to_expr(value))
