"""
Stack and Document Items

Items are what the stack and document hold:
- ExprItem: an expression, with an optional tag shown beside it
- TextItem: runs of plain/bold text, inline expressions and raw LaTeX
- CodeItem: an opaque block of source code (e.g. raw LaTeX)

Every item carries a serial number used only to tell otherwise-identical
items apart (e.g. for UI list keys). Serials do not take part in equality.
clone() gives a copy with a fresh serial.

Stack and Document are persistent: every operation returns a new instance
and leaves the original untouched.

Usage:
    stack = Stack().push_expr(TextExpr('x')).push_expr(TextExpr('y'))
    new_stack, x, y = stack.pop_exprs(2)
"""

from dataclasses import dataclass, field, replace
from itertools import count
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from ..editor.errors import StackTypeError, StackUnderflow
from ..model.exprs import (
    ArrayExpr, Expr, PlaceholderExpr, expr_from_json,
)
from ..model.expr_path import ExprPath
from ..utils.latex_text import text_mode_escape


# =============================================================================
# Serial Numbers
# =============================================================================

class SerialGenerator:
    """Source of monotonically increasing item serials."""

    def __init__(self, start: int = 1):
        self._counter = count(start)

    def __call__(self) -> int:
        return next(self._counter)


def _next_serial() -> int:
    return Item.serial_generator()


# =============================================================================
# Items
# =============================================================================

class Item:
    """Base class of stack/document items."""

    item_type: ClassVar[str] = '???'

    # Replaceable for tests: Item.serial_generator = SerialGenerator(100)
    serial_generator: ClassVar[SerialGenerator] = SerialGenerator()

    def clone(self) -> 'Item':
        """Shallow copy with a new serial."""
        return replace(self, serial=_next_serial())

    def as_bold(self) -> 'Item':
        return self.clone()

    def is_expr_item(self) -> bool:
        return self.item_type == 'expr'

    def is_text_item(self) -> bool:
        return self.item_type == 'text'

    def to_json(self) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def from_json(json_data: Dict[str, Any]) -> 'Item':
        item_type = json_data.get('item_type')
        if item_type == 'expr':
            return ExprItem(
                expr_from_json(json_data['expr']),
                json_data.get('tag_string'),
                json_data.get('source_string'))
        if item_type == 'text':
            return TextItem(
                [TextItemElement.from_json(element) for element in json_data['elements']],
                bool(json_data.get('is_heading', False)),
                json_data.get('tag_string'),
                json_data.get('source_string'))
        if item_type == 'code':
            return CodeItem(json_data['language'], json_data['source'])
        raise ValueError(f"Invalid item type: {item_type!r}")


@dataclass(frozen=True, eq=False)
class ExprItem(Item):
    """
    An expression on the stack or in the document.

    tag_string: optional tag shown to the right, e.g. '1.2'
    source_string: the math-entry text the expr was parsed from, reused
        when the item is edited again
    selected_expr_path: subexpression highlighted in dissect mode
    """
    expr: Expr
    tag_string: Optional[str] = None
    source_string: Optional[str] = None
    selected_expr_path: Optional[ExprPath] = None
    serial: int = field(default_factory=_next_serial, compare=False)

    item_type: ClassVar[str] = 'expr'

    def to_latex(self, export_mode: bool = False) -> str:
        return self.expr.to_latex(self.selected_expr_path, export_mode)

    def as_bold(self) -> 'ExprItem':
        return ExprItem(self.expr.as_bold(), self.tag_string)

    def with_tag(self, tag_string: Optional[str]) -> 'ExprItem':
        return ExprItem(self.expr, tag_string or None, self.source_string)

    def with_selected_expr_path(self, selected_expr_path: Optional[ExprPath]) -> 'ExprItem':
        return ExprItem(self.expr, self.tag_string, self.source_string, selected_expr_path)

    def to_json(self) -> Dict[str, Any]:
        json_data = {'item_type': self.item_type, 'expr': self.expr.to_json()}
        if self.tag_string:
            json_data['tag_string'] = self.tag_string
        if self.source_string is not None:
            json_data['source_string'] = self.source_string
        return json_data


# =============================================================================
# Text Items
# =============================================================================

class TextItemElement:
    """One run inside a TextItem."""

    def is_text(self) -> bool:
        return False

    def is_expr(self) -> bool:
        return False

    def is_raw(self) -> bool:
        return False

    @staticmethod
    def from_json(json_data: Dict[str, Any]) -> 'TextItemElement':
        if 'expr' in json_data:
            return TextItemExprElement(expr_from_json(json_data['expr']))
        if 'text' in json_data:
            return TextItemTextElement(json_data['text'], bool(json_data.get('is_bold', False)))
        if 'raw' in json_data:
            return TextItemRawElement(json_data['raw'])
        raise ValueError(f"Invalid text item element: {json_data!r}")


@dataclass(frozen=True)
class TextItemTextElement(TextItemElement):
    text: str
    is_bold: bool = False

    def is_text(self) -> bool:
        return True

    def as_bold(self) -> 'TextItemTextElement':
        return TextItemTextElement(self.text, True)

    def to_latex(self) -> str:
        # One \text{} per word, so that lines can break between words.
        words = self.text.split(' ')
        pieces = []
        for i, word in enumerate(words):
            pieces.append('\\text{')
            if self.is_bold:
                pieces.append('\\bf{}')
            pieces.append(text_mode_escape(word))
            if i < len(words) - 1:
                pieces.append(' ')
            pieces.append('}\\allowbreak ')
        return ''.join(pieces)

    def to_text(self) -> str:
        return f"**{self.text}**" if self.is_bold else self.text

    def to_json(self) -> Dict[str, Any]:
        json_data = {'text': self.text}
        if self.is_bold:
            json_data['is_bold'] = True
        return json_data


@dataclass(frozen=True)
class TextItemExprElement(TextItemElement):
    expr: Expr

    def is_expr(self) -> bool:
        return True

    def as_bold(self) -> 'TextItemExprElement':
        return TextItemExprElement(self.expr.as_bold())

    def to_latex(self) -> str:
        return self.expr.to_latex()

    def to_text(self) -> str:
        return '$' + self.expr.to_latex(export_mode=True) + '$'

    def to_json(self) -> Dict[str, Any]:
        return {'expr': self.expr.to_json()}


@dataclass(frozen=True)
class TextItemRawElement(TextItemElement):
    string: str

    def is_raw(self) -> bool:
        return True

    def as_bold(self) -> 'TextItemRawElement':
        return self

    def is_explicit_space(self) -> bool:
        return self.string == '\\,'

    def to_latex(self) -> str:
        return self.string

    def to_text(self) -> str:
        return self.string

    def to_json(self) -> Dict[str, Any]:
        return {'raw': self.string}


AnyTextElement = Union[TextItemTextElement, TextItemExprElement, TextItemRawElement]


def _coalesce(elements: List[AnyTextElement]) -> List[AnyTextElement]:
    """
    Merge adjacent runs:
    - text + text with the same bold flag
    - an explicit-space raw element next to a text element becomes a space
    """
    if not elements:
        return []
    merged = [elements[0]]
    for element in elements[1:]:
        last = merged[-1]
        if last.is_text() and element.is_text() and last.is_bold == element.is_bold:
            merged[-1] = TextItemTextElement(last.text + element.text, element.is_bold)
        elif last.is_raw() and last.is_explicit_space() and element.is_text():
            merged[-1] = TextItemTextElement(' ' + element.text, element.is_bold)
        elif last.is_text() and element.is_raw() and element.is_explicit_space():
            merged[-1] = TextItemTextElement(last.text + ' ', last.is_bold)
        else:
            merged.append(element)
    return merged


@dataclass(frozen=True, eq=False)
class TextItem(Item):
    """
    Prose with inline math. An empty heading item is shown as a separator line.
    """
    elements: Tuple[AnyTextElement, ...] = ()
    is_heading: bool = False
    tag_string: Optional[str] = None
    source_string: Optional[str] = None
    serial: int = field(default_factory=_next_serial, compare=False)

    item_type: ClassVar[str] = 'text'

    def __post_init__(self):
        object.__setattr__(self, 'elements', tuple(self.elements))

    @classmethod
    def from_expr(cls, expr: Expr) -> 'TextItem':
        return cls([TextItemExprElement(expr)])

    @classmethod
    def from_string(cls, string: str) -> 'TextItem':
        return cls([TextItemTextElement(string)])

    @classmethod
    def empty_item(cls) -> 'TextItem':
        """Separator line."""
        return cls([], True)

    @classmethod
    def from_string_with_placeholders(cls, string: str) -> 'TextItem':
        """Like from_string(), with each '[]' turned into a placeholder."""
        pieces = string.split('[]')
        elements = []
        for i, piece in enumerate(pieces):
            elements.append(TextItemTextElement(piece))
            if i < len(pieces) - 1:
                elements.append(TextItemExprElement(PlaceholderExpr()))
        return cls(elements)

    @classmethod
    def parse_string(cls, string: str) -> Optional['TextItem']:
        """
        Parse simple markup: **bold** runs and [] placeholders.
        Returns None for unbalanced ** markers.
        """
        bold_pieces = string.split('**')
        if len(bold_pieces) % 2 == 0:
            return None
        elements = []
        for i, bold_piece in enumerate(bold_pieces):
            is_bold = i % 2 == 1
            pieces = bold_piece.split('[]')
            for j, piece in enumerate(pieces):
                if piece:
                    elements.append(TextItemTextElement(piece, is_bold))
                if j < len(pieces) - 1:
                    elements.append(TextItemExprElement(PlaceholderExpr()))
        return cls(_coalesce(elements), source_string=string)

    @classmethod
    def concatenate_items(
        cls,
        item1: Union['TextItem', ExprItem],
        item2: Union['TextItem', ExprItem],
        separator_text: Optional[str] = None
    ) -> 'TextItem':
        """Join two text/expr items into one TextItem."""
        if isinstance(item1, ExprItem):
            item1 = cls.from_expr(item1.expr)
        if isinstance(item2, ExprItem):
            item2 = cls.from_expr(item2.expr)
        elements = list(item1.elements)
        if separator_text:
            elements.append(TextItemRawElement(separator_text))
        elements.extend(item2.elements)
        return cls(_coalesce(elements), item1.is_heading or item2.is_heading)

    def is_empty(self) -> bool:
        return len(self.elements) == 0

    def to_latex(self, export_mode: bool = False) -> str:
        return ''.join(element.to_latex() for element in self.elements)

    def to_text(self) -> str:
        if self.is_empty():
            return '\\rule'
        return ''.join(element.to_text() for element in self.elements)

    def as_editable_string(self) -> Optional[str]:
        """
        String for the line editor, if this item is simple enough: plain
        text, explicit spaces and top-level placeholders only.
        """
        pieces = []
        for element in self.elements:
            if element.is_text():
                pieces.append(element.text)
            elif element.is_raw():
                if not element.is_explicit_space():
                    return None
                pieces.append(' ')
            elif isinstance(element.expr, PlaceholderExpr):
                pieces.append('[]')
            else:
                return None
        return ''.join(pieces)

    def as_bold(self) -> 'TextItem':
        return TextItem([element.as_bold() for element in self.elements],
                        self.is_heading, self.tag_string)

    def with_heading(self, is_heading: bool) -> 'TextItem':
        return TextItem(self.elements, is_heading, self.tag_string, self.source_string)

    def with_tag(self, tag_string: Optional[str]) -> 'TextItem':
        return TextItem(self.elements, self.is_heading, tag_string or None, self.source_string)

    def try_substitute_placeholder(self, substitution_expr: Expr) -> Optional['TextItem']:
        """Fill the first placeholder; None if there is none."""
        elements = list(self.elements)
        for i, element in enumerate(elements):
            if not element.is_expr():
                continue
            placeholder_path = element.expr.find_placeholder_path()
            if placeholder_path is not None:
                new_expr = ExprPath(element.expr, placeholder_path).replace_selection(substitution_expr)
                elements[i] = TextItemExprElement(new_expr)
                return TextItem(elements, self.is_heading, self.tag_string)
        return None

    def to_json(self) -> Dict[str, Any]:
        json_data = {
            'item_type': self.item_type,
            'elements': [element.to_json() for element in self.elements],
        }
        if self.is_heading:
            json_data['is_heading'] = True
        if self.tag_string:
            json_data['tag_string'] = self.tag_string
        if self.source_string is not None:
            json_data['source_string'] = self.source_string
        return json_data


@dataclass(frozen=True, eq=False)
class CodeItem(Item):
    """Opaque source code (language is e.g. 'latex')."""
    language: str
    source: str
    serial: int = field(default_factory=_next_serial, compare=False)

    item_type: ClassVar[str] = 'code'

    @classmethod
    def from_latex_string(cls, source: str) -> 'CodeItem':
        return cls('latex', source)

    def to_latex(self, export_mode: bool = False) -> str:
        return self.source

    def to_text(self) -> str:
        return self.source

    def to_json(self) -> Dict[str, Any]:
        return {'item_type': self.item_type, 'language': self.language, 'source': self.source}


# =============================================================================
# Stack
# =============================================================================

@dataclass(frozen=True, eq=False)
class Stack:
    """
    Items with the top of the stack at the end, plus an optional floating
    item held off to the side.
    """
    items: Tuple[Item, ...] = ()
    floating_item: Optional[Item] = None

    def __post_init__(self):
        object.__setattr__(self, 'items', tuple(self.items))

    def depth(self) -> int:
        return len(self.items)

    def check(self, n: int) -> bool:
        return self.depth() >= n

    def check_exprs(self, n: int) -> bool:
        return self.check(n) and all(item.is_expr_item() for item in self.items[self.depth() - n:])

    def peek(self, n: int = 1) -> Item:
        """Item at position n (top = 1)."""
        if n < 1 or not self.check(n):
            raise StackUnderflow(n, self.depth())
        return self.items[-n]

    def pop(self, n: int = 1) -> Tuple[Any, ...]:
        """Returns (new_stack, item1, ..., itemN), deepest item first."""
        if not self.check(n):
            raise StackUnderflow(n, self.depth())
        return self._unchecked_pop(n)

    def pop_exprs(self, n: int = 1) -> Tuple[Any, ...]:
        """Like pop(), but the items must be ExprItems; their exprs are returned."""
        new_stack, *items = self.pop(n)
        if not all(item.is_expr_item() for item in items):
            raise StackTypeError("expression", n)
        return (new_stack, *[item.expr for item in items])

    def pop_arrays(self, n: int = 1) -> Tuple[Any, ...]:
        new_stack, *exprs = self.pop_exprs(n)
        if not all(isinstance(expr, ArrayExpr) for expr in exprs):
            raise StackTypeError("array", n)
        return (new_stack, *exprs)

    def pop_matrices(self, n: int = 1) -> Tuple[Any, ...]:
        new_stack, *exprs = self.pop_arrays(n)
        if not all(expr.is_matrix() for expr in exprs):
            raise StackTypeError("matrix", n)
        return (new_stack, *exprs)

    def _unchecked_pop(self, n: int) -> Tuple[Any, ...]:
        if n == 0:
            return (self,)
        return (Stack(self.items[:-n], self.floating_item), *self.items[-n:])

    def push_all(self, items: List[Item]) -> 'Stack':
        for item in items:
            if not isinstance(item, Item):
                raise ValueError(f"Cannot push {type(item).__name__} onto the stack")
        return Stack(self.items + tuple(items), self.floating_item)

    def push(self, item: Item) -> 'Stack':
        return self.push_all([item])

    def push_all_exprs(self, exprs: List[Expr]) -> 'Stack':
        return self.push_all([ExprItem(expr) for expr in exprs])

    def push_expr(self, expr: Expr) -> 'Stack':
        return self.push_all_exprs([expr])

    def with_floating_item(self, floating_item: Optional[Item]) -> 'Stack':
        return Stack(self.items, floating_item)

    def clone_all_items(self) -> 'Stack':
        """New serials for every item (forces a UI re-render)."""
        return Stack([item.clone() for item in self.items], self.floating_item)

    def to_json(self) -> Dict[str, Any]:
        json_data = {
            'object_type': 'stack',
            'items': [item.to_json() for item in self.items],
        }
        if self.floating_item is not None:
            json_data['floating_item'] = self.floating_item.to_json()
        return json_data

    @staticmethod
    def from_json(json_data: Dict[str, Any]) -> 'Stack':
        floating_json = json_data.get('floating_item')
        return Stack(
            [Item.from_json(item_json) for item_json in json_data['items']],
            Item.from_json(floating_json) if floating_json else None)


# =============================================================================
# Document
# =============================================================================

@dataclass(frozen=True, eq=False)
class Document:
    """
    Items plus a selection cursor in [0, len(items)]. 0 means "above the
    first item"; otherwise items[selection_index - 1] is selected.
    """
    items: Tuple[Item, ...] = ()
    selection_index: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'items', tuple(self.items))
        if not 0 <= self.selection_index <= len(self.items):
            raise ValueError(
                f"selection_index {self.selection_index} out of range for {len(self.items)} items")

    def selected_item(self) -> Optional[Item]:
        if self.selection_index > 0:
            return self.items[self.selection_index - 1]
        return None

    def insert_item(self, new_item: Item) -> 'Document':
        """Insert below the selection and select the new item."""
        return self.insert_items([new_item])

    def insert_items(self, new_items: List[Item]) -> 'Document':
        index = self.selection_index
        items = self.items[:index] + tuple(new_items) + self.items[index:]
        return Document(items, index + len(new_items))

    def delete_selection(self, count: int = 1) -> 'Document':
        """
        Delete the selected item and up to count-1 items above it.
        The item just above the deleted range becomes selected.
        """
        index = self.selection_index
        if index == 0:
            return self
        count = max(1, min(count, index))
        items = self.items[:index - count] + self.items[index:]
        return Document(items, index - count)

    def move_selection_by(self, offset: int) -> 'Document':
        new_index = max(0, min(len(self.items), self.selection_index + offset))
        return Document(self.items, new_index)

    def shift_selection_by(self, offset: int) -> Optional['Document']:
        """Move the selected item itself; None if that isn't possible."""
        item = self.selected_item()
        new_index = self.selection_index + offset
        if item is None or new_index <= 0 or new_index > len(self.items):
            return None
        return self.delete_selection().move_selection_by(offset).insert_item(item)

    def clone_all_items(self) -> 'Document':
        return Document([item.clone() for item in self.items], self.selection_index)

    def to_text(self) -> str:
        return '\n\n'.join(_item_text(item) for item in self.items)

    def to_json(self) -> Dict[str, Any]:
        return {
            'object_type': 'document',
            'items': [item.to_json() for item in self.items],
            'selection_index': self.selection_index,
        }

    @staticmethod
    def from_json(json_data: Dict[str, Any]) -> 'Document':
        items = [Item.from_json(item_json) for item_json in json_data['items']]
        return Document(items, int(json_data.get('selection_index', 0)))


def _item_text(item: Item) -> str:
    if isinstance(item, ExprItem):
        return '$$\n' + item.to_latex(export_mode=True) + '\n$$'
    return item.to_text()
