"""
Command-line driver for the editor core.

Replays key presses and/or command strings against a (possibly loaded)
editor state, then prints the stack as LaTeX and optionally saves the
resulting state.

Usage:
    rpn-latex --keys "x y +"
    rpn-latex --commands "push x;push y;infix +" --save state.json
    rpn-latex --load state.json --keys "Tab a" --log_level DEBUG

Keys are separated by spaces; use 'Space' for a literal space.
"""

from pathlib import Path
from typing import List, Optional
import argparse
import logging
import sys

from .configs.settings import load_settings
from .data.app_state import AppState, deserialize, serialize
from .editor.input_context import InputContext
from .utils.logging_setup import setup_logging


logger = logging.getLogger(__name__)

NAMED_KEYS = {'Space': ' '}


def parse_keys(keys: str) -> List[str]:
    return [NAMED_KEYS.get(key, key) for key in keys.split()]


def load_state(path: Optional[str]) -> AppState:
    if path is None:
        return AppState()
    with open(path, 'rb') as f:
        return deserialize(f.read())


def save_state(app_state: AppState, path: str):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'wb') as f:
        f.write(serialize(app_state))


def print_state(app_state: AppState, input_context: InputContext):
    print("=" * 60)
    print(f"Stack ({app_state.stack.depth()} items, mode: {input_context.mode})")
    print("=" * 60)
    for level, item in enumerate(reversed(app_state.stack.items), start=1):
        print(f"{level:3d}: {item.to_latex(True)}")
    if app_state.document.items:
        print("-" * 60)
        print(f"Document ({len(app_state.document.items)} items)")
        print("-" * 60)
        print(app_state.document.to_text())
    outcome = input_context.last_outcome
    if outcome is not None:
        if outcome.notification:
            print(f"Note: {outcome.notification}")
        if outcome.error_message:
            print(f"Error: {outcome.error_message}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="RPN LaTeX editor")

    # Input
    parser.add_argument('--keys', type=str, default=None,
                        help='Space-separated key presses to replay')
    parser.add_argument('--commands', type=str, action='append', default=[],
                        help='Command string to run (may be repeated)')

    # State
    parser.add_argument('--load', type=str, default=None,
                        help='Load editor state from a JSON file')
    parser.add_argument('--save', type=str, default=None,
                        help='Save editor state to a JSON file')

    # Misc
    parser.add_argument('--settings', type=str, default=None,
                        help='Settings file (default: rpn_latex_settings.json)')
    parser.add_argument('--log_level', type=str, default=None,
                        help='Override the log level from the settings')
    parser.add_argument('--log_file', type=str, default=None)

    args = parser.parse_args(argv)

    settings = load_settings(Path(args.settings) if args.settings else None)
    setup_logging(args.log_level or settings.log_level,
                  Path(args.log_file) if args.log_file else None)

    try:
        app_state = load_state(args.load)
    except (OSError, ValueError) as e:
        print(f"Could not load {args.load}: {e}", file=sys.stderr)
        return 1

    input_context = InputContext(settings)
    input_context.reset_undo_history(app_state)

    failures = 0
    for command in args.commands:
        new_state = input_context.process_command(command, app_state)
        if new_state is None:
            logger.warning(f"Command failed: {command}")
            failures += 1
        else:
            app_state = new_state

    for key in parse_keys(args.keys or ''):
        handled, app_state = input_context.handle_key(key, app_state)
        if not handled:
            logger.info(f"Unbound key in {input_context.mode} mode: {key!r}")

    print_state(app_state, input_context)

    if args.save:
        save_state(app_state, args.save)
        print(f"Saved to {args.save}")

    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
