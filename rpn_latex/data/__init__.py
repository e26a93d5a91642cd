"""
Editor Data Structures

- Items: ExprItem, TextItem, CodeItem (what the stack and document hold)
- Stack / Document: persistent containers
- AppState / UndoStack: full editor state and its history
- ExprParser: compact "math entry" syntax -> Expr
"""

from .items import (
    SerialGenerator,
    Item,
    ExprItem,
    TextItem,
    TextItemTextElement,
    TextItemExprElement,
    TextItemRawElement,
    CodeItem,
    Stack,
    Document,
)
from .app_state import AppState, UndoStack, serialize, deserialize
from .expr_parser import ExprParser

__all__ = [
    # Items
    'SerialGenerator',
    'Item',
    'ExprItem',
    'TextItem',
    'TextItemTextElement',
    'TextItemExprElement',
    'TextItemRawElement',
    'CodeItem',
    # Containers
    'Stack',
    'Document',
    # State
    'AppState',
    'UndoStack',
    'serialize',
    'deserialize',
    # Parsing
    'ExprParser',
]
