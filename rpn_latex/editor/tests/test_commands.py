"""
Tests for Editor Commands

Tests:
1. Stack shuffling (swap, rot, unrot, over, tuck, nip, keep)
2. Prefix arguments applied to stack commands
3. Clipboard and floating item
4. Document insertion and extraction
5. Text items mixed with expressions
6. Numeric evaluation and rationalization
7. Equations: all_on_left, extract_side, swap_pieces
8. Arrays: matrix rows, transpose, separators
9. Configuration commands
"""

from ..input_context import InputContext
from ...configs.settings import EditorSettings
from ...data.app_state import AppState
from ...data.items import CodeItem, Document, Stack, TextItem
from ...model.exprs import ArrayExpr, InfixExpr, PrefixExpr


def _empty_state() -> AppState:
    return AppState(Stack(), Document())


def _run(input_context: InputContext, command: str, app_state: AppState) -> AppState:
    new_state = input_context.process_command(command, app_state)
    assert new_state is not None, f"'{command}' failed: {input_context.last_outcome}"
    return new_state


def _texts(app_state: AppState):
    return [item.expr.text for item in app_state.stack.items]


def test_stack_shuffling():
    """Classic RPN stack words."""
    print("\n" + "=" * 60)
    print("TEST: Stack Shuffling")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    abc = _run(input_context, 'push a;push b;push c', _empty_state())

    assert _texts(_run(input_context, 'swap', abc)) == ['a', 'c', 'b']
    assert _texts(_run(input_context, 'rot', abc)) == ['b', 'c', 'a']
    assert _texts(_run(input_context, 'unrot', abc)) == ['c', 'a', 'b']
    assert _texts(_run(input_context, 'over', abc)) == ['a', 'b', 'c', 'b']
    assert _texts(_run(input_context, 'tuck', abc)) == ['a', 'c', 'b', 'c']
    assert _texts(_run(input_context, 'nip', abc)) == ['a', 'c']
    assert _texts(_run(input_context, 'dup', abc)) == ['a', 'b', 'c', 'c']
    assert _texts(_run(input_context, 'pop', abc)) == ['a', 'b']

    # dup makes a new item around the same expression
    dup_state = _run(input_context, 'dup', abc)
    assert dup_state.stack.peek(1) is not dup_state.stack.peek(2)
    assert dup_state.stack.peek(1).expr is dup_state.stack.peek(2).expr

    # Untouched items are shared, not copied
    swapped = _run(input_context, 'swap', abc)
    assert swapped.stack.peek(3) is abc.stack.peek(3)

    print("  PASSED!")


def test_prefix_stack_commands():
    """A prefix argument widens swap / keep / pop."""
    print("\n" + "=" * 60)
    print("TEST: Prefix Stack Commands")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    abcd = _run(input_context, 'push a;push b;push c;push d', _empty_state())

    assert _texts(_run(input_context, 'prefix_argument 3;swap', abcd)) == ['a', 'd', 'c', 'b']
    assert _texts(_run(input_context, 'prefix_argument 2;keep', abcd)) == ['c', 'd']
    assert _texts(_run(input_context, 'prefix_argument *;pop', abcd)) == []
    assert _texts(_run(input_context, 'prefix_argument 3;nip', abcd)) == ['a', 'c', 'd']

    # Asking for more than the stack holds fails the whole batch
    assert input_context.process_command('prefix_argument 9;pop', abcd) is None

    print("  PASSED!")


def test_clipboard_and_floating_item():
    """Clipboard slots and the floating item slot."""
    print("\n" + "=" * 60)
    print("TEST: Clipboard and Floating Item")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _run(input_context, 'push x;copy_to_clipboard', _empty_state())
    assert input_context.last_outcome.notification == "Copied to clipboard"

    state = _run(input_context, 'pop;paste_from_clipboard;paste_from_clipboard', state)
    assert _texts(state) == ['x', 'x']
    assert state.stack.peek(1) is not state.stack.peek(2)

    # Empty slot only flashes
    state = _run(input_context, 'prefix_argument 2;paste_from_clipboard', state)
    assert input_context.last_outcome.error_flash
    assert state.stack.depth() == 2

    state = _run(input_context, 'swap_floating_item', state)
    assert state.stack.depth() == 1
    assert state.stack.floating_item.expr.text == 'x'
    state = _run(input_context, 'swap_floating_item', state)
    assert state.stack.depth() == 2
    assert state.stack.floating_item is None

    print("  PASSED!")


def test_document_commands():
    """pop_to_document / extract_from_document and selection movement."""
    print("\n" + "=" * 60)
    print("TEST: Document Commands")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _run(input_context, 'push a;push b;prefix_argument 2;pop_to_document', _empty_state())
    assert state.stack.depth() == 0
    assert len(state.document.items) == 2
    assert state.document.selection_index == 2

    state = _run(input_context, 'change_document_selection -1', state)
    assert state.document.selection_index == 1
    state = _run(input_context, 'change_document_selection bottom', state)
    assert state.document.selection_index == 2

    state = _run(input_context, 'extract_from_document preserve', state)
    assert _texts(state) == ['b']
    assert len(state.document.items) == 2

    state = _run(input_context, 'prefix_argument 2;extract_from_document', state)
    assert _texts(state) == ['b', 'a', 'b']
    assert len(state.document.items) == 0

    # Nothing selected
    state = _run(input_context, 'extract_from_document', state)
    assert input_context.last_outcome.error_flash

    state = _run(input_context, 'reset_all', state)
    assert state.stack.depth() == 0
    assert input_context.last_outcome.notification == "Stack and document cleared"

    print("  PASSED!")


def test_text_items():
    """Infix and concat with text items produce text; other kinds are rejected."""
    print("\n" + "=" * 60)
    print("TEST: Text Items")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    text_item = TextItem.parse_string('total')
    state = AppState(Stack([text_item]), Document())

    state = _run(input_context, 'push x;infix =', state)
    assert state.stack.depth() == 1
    assert state.stack.peek(1).is_text_item()

    state = _run(input_context, 'push y;concat', state)
    assert state.stack.peek(1).is_text_item()

    code_state = AppState(Stack([CodeItem('latex', 'x'), CodeItem('latex', 'y')]), Document())
    assert input_context.process_command('infix +', code_state) is None

    state = _run(input_context, 'push z;extract_latex_source', _empty_state())
    code_item = state.stack.peek(1)
    assert isinstance(code_item, CodeItem)
    assert code_item.language == 'latex'

    print("  PASSED!")


def test_numerics():
    """evaluate / rationalize, and flashing on non-numeric input."""
    print("\n" + "=" * 60)
    print("TEST: Numerics")
    print("=" * 60)

    input_context = InputContext(EditorSettings())

    state = _run(input_context, 'integer 1;integer 4;fraction;evaluate', _empty_state())
    assert _texts(state) == ['0.25']

    state = _run(input_context, 'integer 1;integer 3;fraction;evaluate;rationalize', _empty_state())
    assert state.stack.peek(1).expr.is_command_expr_with(2, 'frac')

    x_state = _run(input_context, 'push x', _empty_state())
    state = _run(input_context, 'evaluate', x_state)
    assert input_context.last_outcome.error_flash
    assert state.stack.peek(1) is x_state.stack.peek(1)

    state = _run(input_context, 'integer -3', _empty_state())
    assert isinstance(state.stack.peek(1).expr, PrefixExpr)

    print("  PASSED!")


def test_equations():
    """Moving everything to the left, and taking equations apart."""
    print("\n" + "=" * 60)
    print("TEST: Equations")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    equation = _run(input_context, 'push x;push y;infix =', _empty_state())

    state = _run(input_context, 'all_on_left', equation)
    assert state.stack.peek(1).expr.to_latex() == 'x-y=0'
    state = _run(input_context, 'all_on_left true', equation)
    assert state.stack.peek(1).expr.to_latex() == 'x-y'

    assert _texts(_run(input_context, 'extract_side left', equation)) == ['x']
    assert _texts(_run(input_context, 'extract_side right', equation)) == ['y']
    assert _run(input_context, 'swap_pieces', equation).stack.peek(1).expr.to_latex() == 'y=x'

    # No relation: unchanged
    sum_state = _run(input_context, 'push x;push y;infix +', _empty_state())
    assert _run(input_context, 'all_on_left', sum_state).stack is sum_state.stack

    print("  PASSED!")


def test_arrays():
    """Matrix rows, stacking, transposition and separators."""
    print("\n" + "=" * 60)
    print("TEST: Arrays")
    print("=" * 60)

    input_context = InputContext(EditorSettings())
    state = _run(input_context, 'push a;push b;build_matrix_row bmatrix 2', _empty_state())
    row = state.stack.peek(1).expr
    assert isinstance(row, ArrayExpr)
    assert (row.row_count, row.column_count) == (1, 2)

    state = _run(input_context, 'push c;push d;build_matrix_row bmatrix 2;stack_arrays vertical', state)
    matrix = state.stack.peek(1).expr
    assert (matrix.row_count, matrix.column_count) == (2, 2)

    transposed = _run(input_context, 'transpose_matrix', state).stack.peek(1).expr
    assert transposed.element_exprs[0][1].text == 'c'

    separated = _run(input_context, 'array_separator row solid', state).stack.peek(1).expr
    assert separated.row_separators == ('solid',)

    split = _run(input_context, 'split_array', state)
    assert split.stack.depth() == 2

    # Building a list needs an explicit count
    assert input_context.process_command('push a;push b;build_infix_list ,', _empty_state()) is None
    state = _run(input_context, 'push a;push b;prefix_argument 2;build_infix_list ,', _empty_state())
    assert isinstance(state.stack.peek(1).expr, InfixExpr)

    print("  PASSED!")


def test_config_commands():
    """config changes settings without touching the undo history."""
    print("\n" + "=" * 60)
    print("TEST: Config Commands")
    print("=" * 60)

    settings = EditorSettings()
    input_context = InputContext(settings)
    state = _empty_state()

    handled, state = input_context.handle_key('$', state)
    handled, state = input_context.handle_key(')', state)
    assert handled
    assert not settings.autoparenthesize
    assert input_context.last_outcome.notification == "Autoparenthesize: off"
    assert input_context.last_outcome.suppress_undo

    state = _run(input_context, 'config reset', state)
    assert settings.autoparenthesize

    print("  PASSED!")


def run_all_tests():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("EDITOR COMMAND TESTS")
    print("=" * 60)

    tests = [
        test_stack_shuffling,
        test_prefix_stack_commands,
        test_clipboard_and_floating_item,
        test_document_commands,
        test_text_items,
        test_numerics,
        test_equations,
        test_arrays,
        test_config_commands,
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
