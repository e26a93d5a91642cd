"""
Command Interpreter

Runs keymap command strings against an AppState.

A command string is a batch of pieces separated by ';'. Each piece is a
command name followed by space-separated string arguments; the token
'semicolon' inside an argument stands for a literal ';':

    "autoparenthesize 2;infix \\cdot"
    "push semicolon"

A batch is atomic: the first EditorError (stack underflow, wrong item
kinds, missing prefix argument, unknown command...) discards every change
the batch made, resets the mode to 'base' and the prefix argument, and
flashes an error. Any other exception propagates.

Session state that outlives a single batch (mode, prefix argument, line
editor, clipboard, dissect origin, pending matrix row count, settings)
lives on the InputContext. Handlers see a working copy of it on the
BatchContext, and it is only written back when the whole batch succeeds.

Usage:
    input_context = InputContext(settings)
    new_state = input_context.process_command('push x;push 2;superscript', app_state)
    handled, new_state = input_context.handle_key('x', app_state)
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from ..configs.settings import EditorSettings
from ..data.app_state import AppState, UndoStack
from ..data.items import Document, Item, Stack
from ..model.exprs import Expr
from .errors import (
    EditorError, PrefixArgumentRequired, StackTypeError, StackUnderflow, UnknownCommand,
)
from .registry import CommandRegistry
from .text_entry import TextEntryState
from . import keymap


logger = logging.getLogger(__name__)

# Errors that only flash; everything else also reports its message.
SILENT_ERRORS = (StackUnderflow, StackTypeError, PrefixArgumentRequired, UnknownCommand)

# Sentinel prefix argument for '*' ("all items")
PREFIX_ALL = -1

# Engine callable: (function_name, [engine input strings]) -> engine value
EngineFunction = Callable[[str, List[str]], Any]


def parse_command(command: str) -> List[List[str]]:
    """'a x;b' -> [['a', 'x'], ['b']]"""
    return [[token.replace('semicolon', ';') for token in piece.split(' ')]
            for piece in command.split(';')]


# =============================================================================
# Batch Context / Outcome
# =============================================================================

@dataclass
class BatchContext:
    """
    Everything a handler may read or request while a batch runs.

    Per-command requests (new_mode, new_document, preserve_prefix,
    undo_action) are cleared before each command; notification and error
    fields accumulate over the batch.
    """
    app_state: AppState
    settings: EditorSettings
    mode: str = 'base'
    prefix_argument: Optional[int] = None
    last_keypress: Optional[str] = None

    # Working copies of session state
    text_entry: Optional[TextEntryState] = None
    clipboard_items: Dict[Any, Item] = field(default_factory=dict)
    dissect_initial_expr: Optional[Expr] = None
    matrix_row_count: Optional[int] = None
    engine: Optional[EngineFunction] = None

    # Per-command requests
    new_mode: Optional[str] = None
    new_document: Optional[Document] = None
    preserve_prefix: bool = False
    undo_action: Optional[str] = None  # None, 'undo', 'redo', 'suppress', 'clear'

    # Side channels
    notification: Optional[str] = None
    error_message: Optional[str] = None
    offending_expr: Optional[Expr] = None
    error_flash: bool = False

    def begin_command(self, app_state: AppState):
        self.app_state = app_state
        self.new_mode = None
        self.new_document = None
        self.preserve_prefix = False
        self.undo_action = None

    def switch_to_mode(self, new_mode: str):
        self.new_mode = new_mode

    def keep_mode(self):
        """Stay in the current mode after this command."""
        self.new_mode = self.mode

    def update_document(self, new_document: Document):
        self.new_document = new_document

    def notify(self, text: str):
        self.notification = text

    def suppress_undo(self):
        """Don't record this command in the undo history or mark the state dirty."""
        self.undo_action = 'suppress'

    def request_undo_action(self, undo_action: str):
        self.undo_action = undo_action

    def report_error(self, message: str, offending_expr: Optional[Expr] = None):
        self.error_message = message
        self.offending_expr = offending_expr

    def flash_error(self) -> None:
        """Signal an error without aborting the batch; the stack is left unchanged."""
        self.error_flash = True
        return None

    def get_prefix_argument(self, default_value, all_value):
        if self.prefix_argument is None:
            return default_value
        if self.prefix_argument < 0:
            return all_value
        return self.prefix_argument

    def require_prefix_argument(self, star_ok: bool = False) -> int:
        """The prefix argument; it must be nonzero, and '*' only if star_ok."""
        prefix = self.prefix_argument
        if prefix is None or prefix == 0 or (not star_ok and prefix < 0):
            raise PrefixArgumentRequired()
        return prefix


@dataclass
class BatchOutcome:
    """Result of run_batch(). new_state is None when ok is False."""
    ok: bool
    new_state: Optional[AppState]
    mode: str
    notification: Optional[str] = None
    error: Optional[EditorError] = None
    error_message: Optional[str] = None
    offending_expr: Optional[Expr] = None
    undo_action: Optional[str] = None
    preserve_prefix: bool = False
    error_flash: bool = False

    @property
    def suppress_undo(self) -> bool:
        return self.undo_action == 'suppress'


# =============================================================================
# Input Context
# =============================================================================

class InputContext:
    """
    Owns the mode state machine, prefix argument, line editor and undo
    history, and runs command batches through the registry.
    """

    def __init__(
        self,
        settings: Optional[EditorSettings] = None,
        engine: Optional[EngineFunction] = None,
        registry: Optional[CommandRegistry] = None
    ):
        if registry is None:
            from .commands import registry
        self.settings = settings if settings is not None else EditorSettings()
        self.engine = engine
        self.registry = registry

        self.mode = 'base'
        self.prefix_argument: Optional[int] = None
        self.last_keypress: Optional[str] = None
        self.text_entry: Optional[TextEntryState] = None
        self.clipboard_items: Dict[Any, Item] = {}
        self.dissect_initial_expr: Optional[Expr] = None
        self.matrix_row_count: Optional[int] = None

        self.undo_stack = UndoStack(self.settings.max_undo_depth)
        self.last_outcome: Optional[BatchOutcome] = None

    def _new_context(self, app_state: AppState) -> BatchContext:
        return BatchContext(
            app_state=app_state,
            settings=replace(self.settings),
            mode=self.mode,
            prefix_argument=self.prefix_argument,
            last_keypress=self.last_keypress,
            text_entry=self.text_entry,
            clipboard_items=dict(self.clipboard_items),
            dissect_initial_expr=self.dissect_initial_expr,
            matrix_row_count=self.matrix_row_count,
            engine=self.engine)

    def _commit(self, ctx: BatchContext):
        self.settings.update_from(ctx.settings)
        self.mode = ctx.mode
        self.prefix_argument = ctx.prefix_argument
        self.text_entry = ctx.text_entry
        self.clipboard_items = ctx.clipboard_items
        self.dissect_initial_expr = ctx.dissect_initial_expr
        self.matrix_row_count = ctx.matrix_row_count

    def run_batch(self, commands: List[List[str]], app_state: AppState) -> BatchOutcome:
        """Run parsed commands as one atomic unit."""
        ctx = self._new_context(app_state)
        state = app_state
        logger.debug(f"Batch [{self.mode}]: {commands}")
        try:
            for command_name, *args in commands:
                ctx.begin_command(state)
                new_stack = self.registry.invoke(command_name, ctx, state.stack, args)
                new_state = AppState(
                    new_stack if new_stack is not None else state.stack,
                    ctx.new_document if ctx.new_document is not None else state.document)
                new_state.is_dirty = state.is_dirty or (
                    ctx.undo_action != 'suppress' and not new_state.same_as(state))
                state = new_state
                ctx.mode = ctx.new_mode or 'base'
                if not ctx.preserve_prefix:
                    ctx.prefix_argument = None
        except EditorError as e:
            logger.info(f"Command failed: {e.message}")
            self.mode = 'base'
            self.prefix_argument = None
            outcome = BatchOutcome(
                ok=False, new_state=None, mode='base',
                notification=ctx.notification, error=e, error_flash=True)
            if not isinstance(e, SILENT_ERRORS):
                outcome.error_message = e.message
                outcome.offending_expr = getattr(e, 'offending_expr', None)
            self.last_outcome = outcome
            if self.settings.debug_mode:
                raise
            return outcome

        self._commit(ctx)
        outcome = BatchOutcome(
            ok=True, new_state=state, mode=ctx.mode,
            notification=ctx.notification,
            error_message=ctx.error_message,
            offending_expr=ctx.offending_expr,
            undo_action=ctx.undo_action,
            preserve_prefix=ctx.preserve_prefix,
            error_flash=ctx.error_flash)
        self.last_outcome = outcome
        return outcome

    def process_command(self, command: str, app_state: AppState) -> Optional[AppState]:
        """
        Run a command string and update the undo history.
        Returns the new AppState, or None if the batch (or undo/redo) failed.
        """
        if not self.undo_stack.state_stack:
            self.undo_stack.clear(app_state)
        outcome = self.run_batch(parse_command(command), app_state)
        if not outcome.ok:
            return None
        undo_action = outcome.undo_action
        if undo_action in ('undo', 'redo'):
            if undo_action == 'undo':
                restored_state = self.undo_stack.undo_state()
            else:
                restored_state = self.undo_stack.redo_state()
            if restored_state is None:
                outcome.error_flash = True
            return restored_state
        if undo_action == 'clear':
            self.undo_stack.clear(outcome.new_state)
        elif undo_action != 'suppress':
            self.undo_stack.push_state(outcome.new_state)
        return outcome.new_state

    def handle_key(self, key: str, app_state: AppState) -> Tuple[bool, AppState]:
        """
        Look up key in the current mode's keymap and run its command.
        Returns (handled, new_app_state); handled only means a binding existed.
        """
        command = keymap.lookup(self.mode, key)
        if command is None:
            return False, app_state
        self.last_keypress = key
        new_state = self.process_command(command, app_state)
        return True, new_state if new_state is not None else app_state

    def reset_undo_history(self, app_state: AppState):
        """Start a fresh undo history (new or loaded file)."""
        self.undo_stack.clear(app_state)
