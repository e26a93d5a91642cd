"""
Editor

Command interpreter, command handlers, line editor and keymap.

Submodules are imported directly (rpn_latex.data depends on the errors
defined here, so this package only re-exports those):
    from rpn_latex.editor.input_context import InputContext
    from rpn_latex.editor.keymap import lookup
"""

from .errors import (
    EditorError,
    EngineConversionError,
    PrefixArgumentRequired,
    StackTypeError,
    StackUnderflow,
    UnknownCommand,
)

__all__ = [
    'EditorError',
    'StackUnderflow',
    'StackTypeError',
    'PrefixArgumentRequired',
    'EngineConversionError',
    'UnknownCommand',
]
