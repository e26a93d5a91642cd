"""
Tests for Items, Stack, Document and Undo History

Tests:
1. Serial numbers are injectable and ignored by equality
2. Stack push/pop/peek and error ordering
3. Floating item
4. Document selection and deletion
5. Document shifting
6. TextItem markup parsing and coalescing
7. TextItem placeholders and editable strings
8. UndoStack push/undo/redo
9. Serialization round trip and malformed input
"""

import pytest

from ..items import (
    CodeItem, Document, ExprItem, Item, SerialGenerator, Stack, TextItem,
    TextItemExprElement, TextItemRawElement, TextItemTextElement,
)
from ..app_state import AppState, UndoStack, deserialize, serialize
from ...editor.errors import StackTypeError, StackUnderflow
from ...model.exprs import ArrayExpr, PlaceholderExpr, TextExpr


def _exprs(*texts):
    return [TextExpr(text) for text in texts]


def test_serial_numbers():
    """A replaced generator controls serials; clone() draws a new one."""
    print("\n" + "=" * 60)
    print("TEST: Serial Numbers")
    print("=" * 60)

    saved = Item.serial_generator
    try:
        Item.serial_generator = SerialGenerator(100)
        item = ExprItem(TextExpr('x'))
        assert item.serial == 100
        copy = item.clone()
        assert copy.serial == 101
        assert copy.expr is item.expr
        assert copy is not item
    finally:
        Item.serial_generator = saved

    print("  PASSED!")


def test_stack_operations():
    """pop returns items deepest-first; underflow is reported before type errors."""
    print("\n" + "=" * 60)
    print("TEST: Stack Operations")
    print("=" * 60)

    x, y = _exprs('x', 'y')
    stack = Stack().push_expr(x).push_expr(y)
    assert stack.depth() == 2
    assert stack.peek(1).expr is y
    assert stack.peek(2).expr is x

    new_stack, first, second = stack.pop_exprs(2)
    assert first is x and second is y
    assert new_stack.depth() == 0
    assert stack.depth() == 2, "Original stack must be unchanged"

    with pytest.raises(StackUnderflow):
        stack.pop(3)
    with pytest.raises(StackUnderflow):
        stack.peek(3)

    mixed = stack.push(TextItem.from_string('hello'))
    with pytest.raises(StackTypeError):
        mixed.pop_exprs(1)
    with pytest.raises(StackUnderflow):
        mixed.pop_exprs(4)
    with pytest.raises(StackTypeError):
        stack.pop_arrays(1)

    matrix = ArrayExpr('bmatrix', 1, 1, [[x]])
    gathered = ArrayExpr('gathered', 1, 1, [[y]])
    _, popped = Stack().push_expr(matrix).pop_matrices(1)
    assert popped is matrix
    with pytest.raises(StackTypeError):
        Stack().push_expr(gathered).pop_matrices(1)

    with pytest.raises(ValueError):
        stack.push_all([x])

    print("  PASSED!")


def test_floating_item():
    """The floating item survives pushes and pops."""
    print("\n" + "=" * 60)
    print("TEST: Floating Item")
    print("=" * 60)

    item = ExprItem(TextExpr('f'))
    stack = Stack().with_floating_item(item).push_expr(TextExpr('x'))
    assert stack.floating_item is item
    new_stack, _ = stack.pop(1)
    assert new_stack.floating_item is item
    assert Stack.from_json(stack.to_json()).floating_item.expr.text == 'f'

    print("  PASSED!")


def test_document_selection():
    """Insertion selects the new item; deletion clamps and selects the item above."""
    print("\n" + "=" * 60)
    print("TEST: Document Selection")
    print("=" * 60)

    a, b, c = [ExprItem(expr) for expr in _exprs('a', 'b', 'c')]
    document = Document().insert_item(a).insert_item(b).insert_item(c)
    assert document.selection_index == 3
    assert document.selected_item() is c

    trimmed = document.delete_selection(2)
    assert trimmed.items == (a,)
    assert trimmed.selection_index == 1

    at_top = document.move_selection_by(-10)
    assert at_top.selection_index == 0
    assert at_top.selected_item() is None
    assert at_top.delete_selection() is at_top
    assert document.move_selection_by(10).selection_index == 3

    everything = document.delete_selection(99)
    assert everything.items == () and everything.selection_index == 0

    middle = document.move_selection_by(-1).insert_item(CodeItem.from_latex_string('\\hline'))
    assert middle.selection_index == 3
    assert middle.items[2].source == '\\hline'

    with pytest.raises(ValueError):
        Document([a], 2)

    print("  PASSED!")


def test_document_shift():
    """Shifting moves the selected item and keeps it selected."""
    print("\n" + "=" * 60)
    print("TEST: Document Shift")
    print("=" * 60)

    a, b, c = [ExprItem(expr) for expr in _exprs('a', 'b', 'c')]
    document = Document([a, b, c], 3)
    shifted = document.shift_selection_by(-1)
    assert shifted.items == (a, c, b)
    assert shifted.selected_item() is c
    assert document.shift_selection_by(1) is None
    assert Document([a, b, c], 1).shift_selection_by(-1) is None
    assert Document([a, b, c], 0).shift_selection_by(1) is None

    print("  PASSED!")


def test_text_item_markup():
    """**bold** markers, [] placeholders and run coalescing."""
    print("\n" + "=" * 60)
    print("TEST: TextItem Markup")
    print("=" * 60)

    item = TextItem.parse_string('a **b** c')
    assert [(e.text, e.is_bold) for e in item.elements] == \
        [('a ', False), ('b', True), (' c', False)]
    assert TextItem.parse_string('**unbalanced') is None

    with_placeholder = TextItem.parse_string('let []')
    assert isinstance(with_placeholder.elements[1], TextItemExprElement)
    assert isinstance(with_placeholder.elements[1].expr, PlaceholderExpr)

    joined = TextItem.concatenate_items(
        TextItem.from_string('where'), ExprItem(TextExpr('x')), '\\,')
    assert len(joined.elements) == 2
    assert joined.elements[0].text == 'where '
    assert joined.elements[1].expr.text == 'x'

    heading = TextItem.concatenate_items(
        TextItem.from_string('A').with_heading(True), TextItem.from_string('B'))
    assert heading.is_heading
    assert heading.elements == (TextItemTextElement('AB'),)

    bold = TextItemTextElement('two words', True)
    assert bold.to_latex() == '\\text{\\bf{}two }\\allowbreak \\text{\\bf{}words}\\allowbreak '

    assert TextItem.empty_item().is_heading and TextItem.empty_item().is_empty()

    print("  PASSED!")


def test_text_item_placeholders():
    """Placeholder substitution and conversion back to an editable string."""
    print("\n" + "=" * 60)
    print("TEST: TextItem Placeholders")
    print("=" * 60)

    item = TextItem.from_string_with_placeholders('x = [] and []')
    assert item.as_editable_string() == 'x = [] and []'

    filled = item.try_substitute_placeholder(TextExpr('1'))
    assert filled is not None
    assert filled.elements[1].expr.text == '1'
    assert isinstance(filled.elements[3].expr, PlaceholderExpr)
    assert filled.as_editable_string() is None, "A real expr can't be edited as text"
    assert TextItem.from_string('plain').try_substitute_placeholder(TextExpr('1')) is None

    spaced = TextItem([TextItemTextElement('a'), TextItemExprElement(TextExpr('x'))])
    assert spaced.as_editable_string() is None
    assert TextItem([TextItemRawElement('\\,')]).as_editable_string() == ' '
    assert TextItem([TextItemRawElement('\\quad')]).as_editable_string() is None

    print("  PASSED!")


def test_undo_stack():
    """Undo/redo return the exact saved states; duplicate pushes are ignored."""
    print("\n" + "=" * 60)
    print("TEST: Undo Stack")
    print("=" * 60)

    s0 = AppState()
    s1 = AppState(s0.stack.push_expr(TextExpr('x')), s0.document)
    s2 = AppState(s0.stack.push_expr(TextExpr('y')), s0.document)

    undo_stack = UndoStack()
    undo_stack.clear(s0)
    assert undo_stack.undo_state() is None
    assert undo_stack.push_state(s1) is s1
    assert undo_stack.push_state(AppState(s1.stack, s1.document)) is None
    assert undo_stack.undo_state() is s0
    assert undo_stack.redo_state() is s1
    assert undo_stack.redo_state() is None

    assert undo_stack.undo_state() is s0
    assert undo_stack.push_state(s2) is s2
    assert undo_stack.redo_state() is None, "Push after undo drops redo history"
    assert undo_stack.undo_state() is s0

    bounded = UndoStack(max_stack_depth=3)
    bounded.clear(s0)
    for i in range(5):
        bounded.push_state(AppState(s0.stack.push_expr(TextExpr(str(i))), s0.document))
    assert len(bounded.state_stack) == 3

    print("  PASSED!")


def test_serialization():
    """JSON storage format and malformed input."""
    print("\n" + "=" * 60)
    print("TEST: Serialization")
    print("=" * 60)

    document = Document([
        ExprItem(TextExpr('x'), '1.1'),
        TextItem.parse_string('**Note** []'),
        TextItem.empty_item(),
        CodeItem('latex', '\\newpage'),
    ], 2)
    state = AppState(Stack().push_expr(TextExpr('y')), document)

    restored = deserialize(serialize(state))
    assert restored.document.selection_index == 2
    assert restored.document.items[0].tag_string == '1.1'
    assert restored.document.items[1].to_json() == document.items[1].to_json()
    assert restored.document.items[2].is_heading
    assert restored.document.items[3].source == '\\newpage'
    assert restored.stack.peek(1).expr.text == 'y'
    assert restored.to_json()['format'] == 1

    with pytest.raises(ValueError):
        deserialize(b'not json')
    with pytest.raises(ValueError):
        deserialize(b'{"stack": {"items": []}, "document": {"items": []}, "format": 2}')
    with pytest.raises(ValueError):
        deserialize(b'{"format": 1}')

    print("  PASSED!")


# =============================================================================
# Run All Tests
# =============================================================================

def run_all_tests():
    """Run all item/container tests."""
    print("\n" + "=" * 60)
    print("ITEM / STACK / DOCUMENT TESTS")
    print("=" * 60)

    tests = [
        test_serial_numbers,
        test_stack_operations,
        test_floating_item,
        test_document_selection,
        test_document_shift,
        test_text_item_markup,
        test_text_item_placeholders,
        test_undo_stack,
        test_serialization,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"\n  FAILED: {e}")
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
