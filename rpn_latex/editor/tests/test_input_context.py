"""
Tests for the Command Interpreter

Tests:
1. Batches are atomic: a failing piece discards the whole batch,
   settings changes included
2. Undo / redo restore identical AppStates
3. Prefix argument accumulation and cap
4. Prefix modes: entering, running and cancelling
5. Registry dispatch errors (unknown command, wrong arity)
6. Line editor through key presses
7. Backspacing an empty entry restores the edited item
8. Dissect mode
9. Algebra engine commands with an injected engine
"""

import pytest

from ..commands import registry
from ..errors import (
    EditorError, EngineConversionError, StackUnderflow, UnknownCommand,
)
from ..input_context import InputContext, parse_command
from ..registry import CommandRegistry
from ...configs.settings import EditorSettings
from ...data.app_state import AppState
from ...data.items import Document, Stack
from ...model.exprs import (
    InfixExpr, PlaceholderExpr, SubscriptSuperscriptExpr,
)


def _empty_state() -> AppState:
    return AppState(Stack(), Document())


def _run(input_context: InputContext, command: str, app_state: AppState) -> AppState:
    new_state = input_context.process_command(command, app_state)
    assert new_state is not None, f"'{command}' failed: {input_context.last_outcome}"
    return new_state


def _press(input_context: InputContext, keys, app_state: AppState) -> AppState:
    for key in keys:
        handled, app_state = input_context.handle_key(key, app_state)
        assert handled, f"Key {key!r} not bound in mode {input_context.mode}"
    return app_state


def _top_expr(app_state: AppState):
    return app_state.stack.peek(1).expr


def test_parse_command():
    """';' separates pieces, 'semicolon' stands for a literal ';'."""
    print("\n" + "=" * 60)
    print("TEST: Parse Command")
    print("=" * 60)

    assert parse_command("autoparenthesize 2;infix \\cdot") == \
        [['autoparenthesize', '2'], ['infix', '\\cdot']]
    assert parse_command("push semicolon") == [['push', ';']]
    assert parse_command("swap") == [['swap']]

    print("  PASSED!")


def test_batch_atomicity():
    """A failing piece rolls back every earlier piece of the batch."""
    print("\n" + "=" * 60)
    print("TEST: Batch Atomicity")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _run(input_context, 'push x', _empty_state())
    original_stack = state.stack

    result = input_context.process_command('push y;pop;pop;pop', state)
    assert result is None
    outcome = input_context.last_outcome
    assert not outcome.ok
    assert isinstance(outcome.error, StackUnderflow)
    assert outcome.error_flash
    assert outcome.error_message is None, "Stack underflow only flashes"
    assert state.stack is original_stack
    assert state.stack.depth() == 1

    # The mode and prefix argument are reset too
    state = _press(input_context, ['/'], state)
    assert input_context.mode == 'operator'
    assert input_context.process_command('prefix_argument 5;mode operator;swap', state) is None
    assert input_context.mode == 'base'
    assert input_context.prefix_argument is None

    print("  PASSED!")


def test_failed_batch_leaves_no_trace():
    """After a failed batch, later commands behave as if it never ran."""
    print("\n" + "=" * 60)
    print("TEST: Failed Batch Leaves No Trace")
    print("=" * 60)

    settings = EditorSettings()
    input_context = InputContext(settings)
    state = _run(input_context, 'push x;push a;push b;infix +', _empty_state())

    for failing_command in ['config autoparenthesize off;prefix_argument 9;pop',
                            'config toggle_debug_mode;prefix_argument 9;pop']:
        assert input_context.process_command(failing_command, state) is None
    assert settings.autoparenthesize
    assert not settings.debug_mode
    assert input_context.settings is settings

    fresh_context = InputContext(EditorSettings())
    used_result = _top_expr(_run(input_context, 'concat', state))
    fresh_result = _top_expr(_run(fresh_context, 'concat', state))
    assert used_result.to_latex() == fresh_result.to_latex()
    assert used_result.to_latex() == 'x\\left(a+b\\right)'

    # Reset inside a failing batch is discarded too
    _run(input_context, 'config autoparenthesize off', state)
    assert input_context.process_command('config reset;prefix_argument 9;pop', state) is None
    assert not settings.autoparenthesize

    # A successful batch writes its changes back to the shared settings
    _run(input_context, 'config reset', state)
    assert settings.autoparenthesize

    print("  PASSED!")


def test_undo_redo_identity():
    """Undo and redo hand back the very same AppState objects."""
    print("\n" + "=" * 60)
    print("TEST: Undo / Redo Identity")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    s0 = _empty_state()
    s1 = _run(input_context, 'push x', s0)
    s2 = _run(input_context, 'push y', s1)
    assert s2.is_dirty

    assert _run(input_context, 'undo', s2) is s1
    assert _run(input_context, 'undo', s1) is s0
    assert input_context.process_command('undo', s0) is None, "Nothing left to undo"
    assert _run(input_context, 'redo', s0) is s1
    assert _run(input_context, 'redo', s1) is s2
    assert input_context.process_command('redo', s2) is None

    # A new change after undo discards the redo history
    s1_again = _run(input_context, 'undo', s2)
    s3 = _run(input_context, 'push z', s1_again)
    assert input_context.process_command('redo', s3) is None

    print("  PASSED!")


def test_prefix_argument():
    """Digits accumulate up to the cap; the argument survives into the next batch."""
    print("\n" + "=" * 60)
    print("TEST: Prefix Argument")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _empty_state()

    state = _run(input_context, 'prefix_argument 99999', state)
    assert input_context.prefix_argument == 9999
    assert input_context.mode == 'base'

    state = _run(input_context, 'prefix_argument *', state)
    assert input_context.prefix_argument == -1

    # Used by the next command, then cleared
    state = _run(input_context, 'push a;push b;push c', state)
    assert input_context.prefix_argument is None

    # [Tab] 3 [Enter] duplicates the top three items
    state = _press(input_context, ['Tab', '3'], state)
    assert input_context.mode == 'stack'
    assert input_context.prefix_argument == 3
    state = _press(input_context, ['Enter'], state)
    assert state.stack.depth() == 6
    assert [item.expr.text for item in state.stack.items] == ['a', 'b', 'c', 'a', 'b', 'c']
    assert input_context.mode == 'base'
    assert input_context.prefix_argument is None

    # [Tab] * [Backspace] pops everything
    state = _press(input_context, ['Tab', '*', 'Backspace'], state)
    assert state.stack.depth() == 0

    print("  PASSED!")


def test_building_expressions():
    """Infix flattening and combined subscript/superscript through commands."""
    print("\n" + "=" * 60)
    print("TEST: Building Expressions")
    print("=" * 60)

    input_context = InputContext(EditorSettings())

    state = _run(input_context, 'integer 2;integer 3;infix +', _empty_state())
    expr = _top_expr(state)
    assert isinstance(expr, InfixExpr)
    assert [e.text for e in expr.operand_exprs] == ['2', '3']
    assert [e.text for e in expr.operator_exprs] == ['+']
    assert expr.split_at_index == 0

    state = _run(input_context, 'push x;integer 2;superscript;integer 1;subscript', _empty_state())
    assert state.stack.depth() == 1
    expr = _top_expr(state)
    assert isinstance(expr, SubscriptSuperscriptExpr)
    assert expr.base_expr.text == 'x'
    assert expr.subscript_expr.text == '1'
    assert expr.superscript_expr.text == '2'

    # Keys: x [=] [q] y gives x = y with the split at '='
    state = _press(input_context, ['x', 'y', '=', 'q'], _empty_state())
    expr = _top_expr(state)
    assert isinstance(expr, InfixExpr)
    assert expr.to_latex() == 'x=y'

    state = _run(input_context, 'integer 1;integer 2;fraction;evaluate', _empty_state())
    assert _top_expr(state).text == '0.5'

    print("  PASSED!")


def test_prefix_modes():
    """Prefix keys switch modes; unbound keys cancel back to base."""
    print("\n" + "=" * 60)
    print("TEST: Prefix Modes")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _empty_state()

    state = _press(input_context, [';'], state)
    assert input_context.mode == 'greek'
    state = _press(input_context, ['a'], state)
    assert input_context.mode == 'base'
    assert _top_expr(state).is_command_expr_with(0, 'alpha')

    state = _press(input_context, ['/', 'F12'], state)
    assert input_context.mode == 'base'
    assert state.stack.depth() == 1

    handled, same_state = input_context.handle_key('F12', state)
    assert not handled and same_state is state

    # [|] 2 [x] 2 [[] builds a 2x2 matrix from four items
    state = _run(input_context, 'integer 1;integer 2;integer 3;integer 4', _empty_state())
    state = _press(input_context, ['|', '2', 'x'], state)
    assert input_context.mode == 'build_matrix'
    state = _press(input_context, ['2', '['], state)
    matrix = _top_expr(state)
    assert (matrix.array_type, matrix.row_count, matrix.column_count) == ('bmatrix', 2, 2)
    assert matrix.element_exprs[1][0].text == '3'
    assert input_context.matrix_row_count is None

    print("  PASSED!")


def test_dispatch_errors():
    """Unknown commands and bad argument counts fail the batch."""
    print("\n" + "=" * 60)
    print("TEST: Dispatch Errors")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _empty_state()

    assert input_context.process_command('push x;no_such_command', state) is None
    assert isinstance(input_context.last_outcome.error, UnknownCommand)

    assert input_context.process_command('push x;swap a b c', state) is None
    error = input_context.last_outcome.error
    assert type(error) is EditorError
    assert input_context.last_outcome.error_message.startswith("Wrong number of arguments")

    local_registry = CommandRegistry()

    @local_registry.command('noop')
    def noop(ctx, stack):
        return None

    with pytest.raises(ValueError):
        local_registry.command('noop')(noop)
    assert 'noop' in local_registry
    assert local_registry.names() == ['noop']

    # Debug mode re-raises instead of recovering
    debug_context = InputContext(EditorSettings(debug_mode=True))
    with pytest.raises(StackUnderflow):
        debug_context.process_command('swap', state)

    print("  PASSED!")


def test_line_editor_keys():
    """Math entry, switching to LaTeX entry, and cancelling text entry."""
    print("\n" + "=" * 60)
    print("TEST: Line Editor Keys")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _empty_state()

    state = _press(input_context, ['\\'], state)
    assert input_context.mode == 'math_entry'
    state = _press(input_context, ['x', '+', '1'], state)
    assert input_context.text_entry.text == 'x+1'
    state = _press(input_context, ['Enter'], state)
    assert input_context.mode == 'base'
    assert input_context.text_entry is None
    item = state.stack.peek(1)
    assert isinstance(item.expr, InfixExpr)
    assert item.source_string == 'x+1'

    # A backslash in an empty math entry switches to LaTeX command entry
    state = _press(input_context, ['\\', '\\'], state)
    assert input_context.mode == 'latex_entry'
    state = _press(input_context, ['a', 'l', 'p', 'h', 'a'], state)
    # Digits can't follow letters in a command name
    state = _press(input_context, ['1'], state)
    assert input_context.last_outcome.error_flash
    assert input_context.mode == 'latex_entry'
    assert input_context.text_entry.text == 'alpha'
    state = _press(input_context, ['Enter'], state)
    assert _top_expr(state).is_command_expr_with(0, 'alpha')
    assert state.stack.depth() == 2

    # Cursor movement, then cancel leaves the stack untouched
    stack_before = state.stack
    state = _press(input_context, ['"', 'b', 'c', 'Home', 'a'], state)
    assert input_context.text_entry.text == 'abc'
    state = _press(input_context, ['Escape'], state)
    assert input_context.mode == 'base'
    assert input_context.text_entry is None
    assert state.stack.items == stack_before.items

    print("  PASSED!")


def test_backspace_restores_edited_item():
    """Editing an item and backspacing past the start puts the item back."""
    print("\n" + "=" * 60)
    print("TEST: Backspace Restores Edited Item")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _run(input_context, 'push x', _empty_state())
    original_item = state.stack.peek(1)

    state = _press(input_context, ['Shift+Enter'], state)
    assert input_context.mode == 'math_entry'
    assert input_context.text_entry.text == 'x'
    assert state.stack.depth() == 0

    state = _press(input_context, ['Backspace'], state)
    assert input_context.text_entry.text == ''
    state = _press(input_context, ['Backspace'], state)
    assert input_context.mode == 'base'
    assert state.stack.depth() == 1
    assert state.stack.peek(1) is original_item

    # Finishing an edit replaces the item
    state = _press(input_context, ['Shift+Enter', '+', '2'], state)
    state = _press(input_context, ['Enter'], state)
    assert state.stack.depth() == 1
    assert _top_expr(state).to_latex() == 'x+2'

    print("  PASSED!")


def test_dissect_mode():
    """Select, move, extract and cancel in dissect mode."""
    print("\n" + "=" * 60)
    print("TEST: Dissect Mode")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _run(input_context, 'push x;push y;infix +', _empty_state())
    original_expr = _top_expr(state)

    state = _press(input_context, ['_'], state)
    assert input_context.mode == 'dissect'
    assert state.stack.peek(1).selected_expr_path.indexes == (0,)

    state = _press(input_context, ['ArrowRight', 'ArrowRight'], state)
    assert input_context.mode == 'dissect'
    assert state.stack.peek(1).selected_expr_path.selected_expr().text == 'y'

    # Cancelling gives back the original expression
    cancelled = _press(input_context, ['q'], state)
    assert input_context.mode == 'base'
    assert _top_expr(cancelled) is original_expr
    assert cancelled.stack.peek(1).selected_expr_path is None

    state = _press(input_context, ['_', 'ArrowRight', 'ArrowRight', 'x'], cancelled)
    assert input_context.mode == 'base'
    assert state.stack.depth() == 2
    assert _top_expr(state).text == 'y'
    with_placeholder = state.stack.peek(2).expr
    assert isinstance(with_placeholder.operand_exprs[1], PlaceholderExpr)

    # Dissecting a leaf only flashes
    state = _run(input_context, 'push z', _empty_state())
    state = _press(input_context, ['_'], state)
    assert input_context.mode == 'base'
    assert input_context.last_outcome.error_flash

    print("  PASSED!")


def test_engine_commands():
    """engine converts the stack top, calls the engine and converts back."""
    print("\n" + "=" * 60)
    print("TEST: Engine Commands")
    print("=" * 60)

    calls = []

    def fake_engine(function_name, inputs):
        calls.append((function_name, inputs))
        return ('add', ('symbol', 'x'), 1)

    input_context = InputContext(EditorSettings(), engine=fake_engine)
    state = _run(input_context, 'push x;integer 1;infix +;engine simplify', _empty_state())
    assert calls == [('simplify', ['x+1'])]
    assert _top_expr(state).to_latex() == 'x+1'

    state = _run(input_context, 'push a;push b;engine gcd 2', _empty_state())
    assert calls[-1] == ('gcd', ['a', 'b'])
    assert state.stack.depth() == 1

    # Conversion failures carry the offending expression
    assert input_context.process_command('push_placeholder;engine simplify', _empty_state()) is None
    outcome = input_context.last_outcome
    assert isinstance(outcome.error, EngineConversionError)
    assert isinstance(outcome.offending_expr, PlaceholderExpr)
    assert outcome.error_message == "Placeholders not allowed"

    no_engine = InputContext(EditorSettings())
    assert no_engine.process_command('push x;engine simplify', _empty_state()) is None
    assert no_engine.last_outcome.error_message == "No algebra engine available"

    print("  PASSED!")


def test_all_commands_registered():
    """The command registry backs the module-level InputContext default."""
    print("\n" + "=" * 60)
    print("TEST: Default Registry")
    print("=" * 60)

    input_context = InputContext()
    assert input_context.registry is registry
    for name in ('swap', 'infix', 'finish_text_entry', 'dissect_descend', 'engine'):
        assert name in registry

    print("  PASSED!")


def run_all_tests():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("COMMAND INTERPRETER TESTS")
    print("=" * 60)

    tests = [
        test_parse_command,
        test_batch_atomicity,
        test_failed_batch_leaves_no_trace,
        test_undo_redo_identity,
        test_prefix_argument,
        test_building_expressions,
        test_prefix_modes,
        test_dispatch_errors,
        test_line_editor_keys,
        test_backspace_restores_edited_item,
        test_dissect_mode,
        test_engine_commands,
        test_all_commands_registered,
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
