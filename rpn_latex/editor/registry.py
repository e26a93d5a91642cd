"""
Command Registry

Maps command names (as used in keymap command strings) to handler
functions. Handlers are registered with a decorator:

    registry = CommandRegistry()

    @registry.command('swap')
    def swap(ctx, stack):
        ...

A handler receives the BatchContext, the current Stack and the command's
string arguments, and returns the new Stack (or None if the stack is
unchanged).
"""

from typing import Callable, Dict, List, Optional
import inspect

from .errors import EditorError, UnknownCommand


Handler = Callable[..., object]


class CommandRegistry:
    """Name -> handler table."""

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}

    def command(self, name: str) -> Callable[[Handler], Handler]:
        def decorator(fn: Handler) -> Handler:
            if name in self._handlers:
                raise ValueError(f"Command already registered: {name}")
            self._handlers[name] = fn
            return fn
        return decorator

    def get(self, name: str) -> Optional[Handler]:
        return self._handlers.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def invoke(self, name: str, ctx, stack, args: List[str]):
        """Call the handler for name; unknown names and bad argument counts are EditorErrors."""
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownCommand(name)
        try:
            inspect.signature(handler).bind(ctx, stack, *args)
        except TypeError:
            raise EditorError(f"Wrong number of arguments for {name}: {args}") from None
        return handler(ctx, stack, *args)
