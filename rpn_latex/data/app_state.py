"""
Application State and Undo History

AppState bundles the Stack and the Document. States are never modified
in place, so "did anything change?" is answered by identity of the stack
and document objects.

Storage format is JSON:
    {"stack": {...}, "document": {...}, "format": 1}

Usage:
    undo_stack = UndoStack(max_stack_depth=100)
    undo_stack.clear(app_state)
    undo_stack.push_state(new_app_state)
    previous = undo_stack.undo_state()
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging

from .items import Document, Stack, TextItem, TextItemTextElement


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def default_stack() -> Stack:
    """Stack shown on first launch."""
    welcome_item = TextItem([
        TextItemTextElement("Welcome to the editor. Type "),
        TextItemTextElement("x y +", True),
        TextItemTextElement(" to build your first expression."),
    ])
    return Stack([welcome_item])


@dataclass(eq=False)
class AppState:
    stack: Stack = field(default_factory=default_stack)
    document: Document = field(default_factory=Document)
    # Set when there are unsaved changes; not serialized.
    is_dirty: bool = False

    def same_as(self, app_state: 'AppState') -> bool:
        return self.stack is app_state.stack and self.document is app_state.document

    def to_json(self) -> Dict[str, Any]:
        return {
            'stack': self.stack.to_json(),
            'document': self.document.to_json(),
            'format': FORMAT_VERSION,
        }

    @staticmethod
    def from_json(json_data: Dict[str, Any]) -> 'AppState':
        version = json_data.get('format')
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported app state format: {version!r}")
        return AppState(Stack.from_json(json_data['stack']),
                        Document.from_json(json_data['document']))


def serialize(app_state: AppState) -> bytes:
    return json.dumps(app_state.to_json()).encode('utf-8')


def deserialize(data: bytes) -> AppState:
    """Inverse of serialize(); raises ValueError on malformed input."""
    try:
        json_data = json.loads(data.decode('utf-8') if isinstance(data, bytes) else data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid app state data: {e}") from e
    if not isinstance(json_data, dict):
        raise ValueError("Invalid app state data: expected a JSON object")
    try:
        return AppState.from_json(json_data)
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Invalid app state data: {e!r}") from e


# =============================================================================
# Undo History
# =============================================================================

class UndoStack:
    """
    Saved AppStates, most recent last.

    undo_count is the number of consecutive undos performed so far; while
    it is nonzero, redo can step forward again.
    """

    def __init__(self, max_stack_depth: int = 100):
        self.state_stack: List[AppState] = []
        self.max_stack_depth = max_stack_depth
        self.undo_count = 0

    def clear(self, initial_app_state: AppState):
        self.state_stack = [initial_app_state]
        self.undo_count = 0

    def _current_index(self) -> int:
        return len(self.state_stack) - self.undo_count - 1

    def push_state(self, state: AppState) -> Optional[AppState]:
        """Save state; None if it is the same as the state undo would return to."""
        if len(self.state_stack) > self.undo_count and \
           self.state_stack[self._current_index()].same_as(state):
            return None
        if self.undo_count > 0:
            # Undone states are discarded; redo is no longer possible.
            self.state_stack = self.state_stack[:len(self.state_stack) - self.undo_count]
            self.undo_count = 0
        self.state_stack.append(state)
        if len(self.state_stack) > self.max_stack_depth:
            self.state_stack = self.state_stack[-self.max_stack_depth:]
        return state

    def undo_state(self) -> Optional[AppState]:
        if len(self.state_stack) - 1 > self.undo_count:
            self.undo_count += 1
            logger.debug(f"Undo ({self.undo_count} deep)")
            return self.state_stack[self._current_index()]
        return None

    def redo_state(self) -> Optional[AppState]:
        if self.undo_count > 0:
            self.undo_count -= 1
            logger.debug(f"Redo ({self.undo_count} deep)")
            return self.state_stack[self._current_index()]
        return None
