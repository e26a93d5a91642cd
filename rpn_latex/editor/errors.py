"""
Editor Errors

Domain errors raised by command handlers. Any EditorError aborts the
current command batch and is reported to the user; the app state is left
unchanged. Programming errors (bad argument values, malformed data) are
plain ValueErrors and propagate.

Usage:
    try:
        new_stack, x = stack.pop_exprs(1)
    except EditorError as e:
        print(e.message)
"""

from typing import Optional


class EditorError(Exception):
    """Base class of recoverable editor errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StackUnderflow(EditorError):
    """Not enough items on the stack."""

    def __init__(self, needed: int, available: int):
        super().__init__(f"Stack underflow: need {needed} item{'s' if needed != 1 else ''}, have {available}")
        self.needed = needed
        self.available = available


class StackTypeError(EditorError):
    """Items of the wrong kind (e.g. text where an expression is required)."""

    def __init__(self, expected: str, count: int = 1):
        super().__init__(f"Expected {count} {expected} item{'s' if count != 1 else ''} on the stack")
        self.expected = expected
        self.count = count


class PrefixArgumentRequired(EditorError):
    """The command needs a numeric prefix argument (or '*')."""

    def __init__(self, message: str = "Prefix argument required"):
        super().__init__(message)


class EngineConversionError(EditorError):
    """An expression could not be converted for the algebra engine."""

    def __init__(self, message: str, offending_expr: Optional[object] = None):
        super().__init__(message)
        self.offending_expr = offending_expr


class UnknownCommand(EditorError):
    """A command name with no registered handler."""

    def __init__(self, command_name: str):
        super().__init__(f"Unknown command: {command_name}")
        self.command_name = command_name
