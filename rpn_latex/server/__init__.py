"""
Flask / Socket.IO front end for the editor.
"""

from .app import app, reset_session, socketio

__all__ = ['app', 'reset_session', 'socketio']
