"""
Line Editor State

The single-line editor shown below the stack while typing text, math
entry syntax, LaTeX command names, conjunctions or tags. The mode names
double as keymap modes.

States are immutable; each edit returns a new TextEntryState so that a
failed command batch can simply drop the edits it made.

Usage:
    entry = TextEntryState('math_entry').insert('x').insert('+').insert('1')
    entry = entry.move('begin').insert('2')   # '2x+1'
"""

from dataclasses import dataclass, replace
from typing import Optional

from ..data.items import Item


TEXT_ENTRY_MODES = (
    'text_entry',         # prose (TextItem markup)
    'math_entry',         # math entry syntax (see ExprParser)
    'latex_entry',        # a LaTeX command name
    'conjunction_entry',  # phrase joining two expressions
    'tag_entry',          # equation tag
)

MOVE_TYPES = ('left', 'right', 'begin', 'end')


@dataclass(frozen=True)
class TextEntryState:
    mode: str
    text: str = ''
    cursor_position: Optional[int] = None
    # Item taken off the stack for editing; restored if the edit is cancelled.
    edited_item: Optional[Item] = None

    def __post_init__(self):
        if self.mode not in TEXT_ENTRY_MODES:
            raise ValueError(f"Unknown text entry mode: {self.mode}")
        if self.cursor_position is None:
            object.__setattr__(self, 'cursor_position', len(self.text))
        elif not 0 <= self.cursor_position <= len(self.text):
            raise ValueError(
                f"Cursor position {self.cursor_position} outside of {self.text!r}")

    def is_empty(self) -> bool:
        return len(self.text) == 0

    def insert(self, s: str) -> 'TextEntryState':
        pos = self.cursor_position
        return replace(self, text=self.text[:pos] + s + self.text[pos:],
                       cursor_position=pos + len(s))

    def backspace(self) -> 'TextEntryState':
        pos = self.cursor_position
        if pos == 0:
            return self
        return replace(self, text=self.text[:pos - 1] + self.text[pos:],
                       cursor_position=pos - 1)

    def do_delete(self) -> 'TextEntryState':
        """Forward delete."""
        pos = self.cursor_position
        if pos >= len(self.text):
            return self
        return replace(self, text=self.text[:pos] + self.text[pos + 1:])

    def move(self, move_type: str) -> 'TextEntryState':
        if move_type == 'left':
            new_position = max(0, self.cursor_position - 1)
        elif move_type == 'right':
            new_position = min(len(self.text), self.cursor_position + 1)
        elif move_type == 'begin':
            new_position = 0
        elif move_type == 'end':
            new_position = len(self.text)
        else:
            raise ValueError(f"Invalid cursor movement: {move_type}")
        return replace(self, cursor_position=new_position)

    def with_edited_item(self, edited_item: Optional[Item]) -> 'TextEntryState':
        return replace(self, edited_item=edited_item)

    def to_json(self):
        return {
            'mode': self.mode,
            'text': self.text,
            'cursor_position': self.cursor_position,
        }
