"""
Editor Server - Web front end for the editor core.

Features:
- Key presses and command strings over HTTP or Socket.IO
- Full editor state (stack, document, mode, line editor) as JSON
- Load / export of the saved state format
- State updates pushed to every connected client
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import argparse
import logging
import threading

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit

from ..configs.settings import EditorSettings, load_settings
from ..data.app_state import AppState, deserialize, serialize
from ..editor.input_context import EngineFunction, InputContext
from ..utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SECRET_KEY'] = 'rpn-latex-editor-secret'
socketio = SocketIO(app, cors_allowed_origins="*")


# Editor session
@dataclass
class EditorSession:
    input_context: InputContext
    app_state: AppState = field(default_factory=AppState)

    def __post_init__(self):
        self.input_context.reset_undo_history(self.app_state)

    def handle_key(self, key: str) -> bool:
        handled, self.app_state = self.input_context.handle_key(key, self.app_state)
        return handled

    def run_command(self, command: str) -> bool:
        new_state = self.input_context.process_command(command, self.app_state)
        if new_state is None:
            return False
        self.app_state = new_state
        return True

    def replace_state(self, app_state: AppState):
        self.app_state = app_state
        self.input_context.reset_undo_history(app_state)

    def to_dict(self) -> Dict[str, Any]:
        input_context = self.input_context
        stack = self.app_state.stack
        document = self.app_state.document
        text_entry = input_context.text_entry
        outcome = input_context.last_outcome
        return {
            'mode': input_context.mode,
            'prefix_argument': input_context.prefix_argument,
            'stack': [item.to_latex(True) for item in stack.items],
            'floating_item': stack.floating_item.to_latex(True) if stack.floating_item else None,
            'document': [item.to_latex(True) for item in document.items],
            'selection_index': document.selection_index,
            'text_entry': None if text_entry is None else {
                'mode': text_entry.mode,
                'text': text_entry.text,
                'cursor_position': text_entry.cursor_position,
            },
            'notification': outcome.notification if outcome else None,
            'error_message': outcome.error_message if outcome else None,
            'error_flash': outcome.error_flash if outcome else False,
            'is_dirty': self.app_state.is_dirty,
        }


session: Optional[EditorSession] = None
session_lock = threading.Lock()


def reset_session(
    settings: Optional[EditorSettings] = None,
    app_state: Optional[AppState] = None,
    engine: Optional[EngineFunction] = None
) -> EditorSession:
    """Start a new editor session (also used by tests)."""
    global session
    with session_lock:
        session = EditorSession(
            InputContext(settings if settings is not None else EditorSettings(), engine),
            app_state if app_state is not None else AppState())
    return session


def get_session() -> EditorSession:
    if session is None:
        return reset_session()
    return session


@app.route('/api/state')
def get_state():
    """Get current editor state."""
    editor = get_session()
    with session_lock:
        return jsonify(editor.to_dict())


@app.route('/api/key', methods=['POST'])
def press_key():
    """Handle one key press: {"key": "a"}."""
    data = request.json or {}
    key = data.get('key')
    if not isinstance(key, str) or not key:
        return jsonify({'error': 'Missing key'}), 400
    editor = get_session()
    with session_lock:
        handled = editor.handle_key(key)
        result = editor.to_dict()
    result['handled'] = handled
    socketio.emit('editor_state', result)
    return jsonify(result)


@app.route('/api/command', methods=['POST'])
def run_command():
    """Run a command string: {"command": "push x;push y;infix +"}."""
    data = request.json or {}
    command = data.get('command')
    if not isinstance(command, str) or not command:
        return jsonify({'error': 'Missing command'}), 400
    editor = get_session()
    with session_lock:
        ok = editor.run_command(command)
        result = editor.to_dict()
    result['ok'] = ok
    socketio.emit('editor_state', result)
    return jsonify(result)


@app.route('/api/export')
def export_state():
    """Saved-state JSON for the current stack and document."""
    editor = get_session()
    with session_lock:
        data = serialize(editor.app_state)
    return app.response_class(data, mimetype='application/json')


@app.route('/api/load', methods=['POST'])
def load_state():
    """Replace the stack and document with a saved state."""
    try:
        app_state = deserialize(request.get_data())
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    editor = get_session()
    with session_lock:
        editor.replace_state(app_state)
        result = editor.to_dict()
    socketio.emit('editor_state', result)
    return jsonify(result)


@socketio.on('connect')
def handle_connect():
    """Handle client connection."""
    editor = get_session()
    with session_lock:
        emit('editor_state', editor.to_dict())


@socketio.on('key')
def handle_key_event(data):
    key = (data or {}).get('key')
    if not isinstance(key, str) or not key:
        emit('editor_error', {'error': 'Missing key'})
        return
    editor = get_session()
    with session_lock:
        editor.handle_key(key)
        result = editor.to_dict()
    emit('editor_state', result, broadcast=True)


@socketio.on('command')
def handle_command_event(data):
    command = (data or {}).get('command')
    if not isinstance(command, str) or not command:
        emit('editor_error', {'error': 'Missing command'})
        return
    editor = get_session()
    with session_lock:
        editor.run_command(command)
        result = editor.to_dict()
    emit('editor_state', result, broadcast=True)


def main():
    parser = argparse.ArgumentParser(description="RPN LaTeX editor server")
    parser.add_argument('--host', type=str, default='0.0.0.0')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--settings', type=str, default=None)
    parser.add_argument('--load', type=str, default=None,
                        help='Start from a saved state file')
    parser.add_argument('--log_level', type=str, default=None)
    args = parser.parse_args()

    settings = load_settings(Path(args.settings) if args.settings else None)
    setup_logging(args.log_level or settings.log_level)

    app_state = None
    if args.load:
        with open(args.load, 'rb') as f:
            app_state = deserialize(f.read())
    reset_session(settings, app_state)

    print("=" * 60)
    print("RPN LaTeX Editor Server")
    print("=" * 60)
    print(f"Listening on http://{args.host}:{args.port}")
    print("=" * 60)
    socketio.run(app, host=args.host, port=args.port, debug=False)


if __name__ == '__main__':
    main()
