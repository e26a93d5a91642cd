"""
Shared utilities: LaTeX text escaping and logging setup.
"""

from .latex_text import latex_escape, latex_unescape, text_mode_escape
from .logging_setup import setup_logging

__all__ = [
    'latex_escape',
    'latex_unescape',
    'text_mode_escape',
    'setup_logging',
]
