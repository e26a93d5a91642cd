"""
LaTeX text escaping helpers.

Two flavors are needed:
- Math mode: plain strings placed inside math (roman text, symbol names)
  have their control characters turned into math-safe commands.
- Text mode: strings placed inside \\text{...} use the text-mode escapes
  (\\textbackslash, \\textasciicircum, ...).

Usage:
    from rpn_latex.utils.latex_text import latex_escape, latex_unescape
    latex_escape('50%')    # '50\\%'
"""

import re
from typing import Dict


MATH_ESCAPES: Dict[str, str] = {
    '\\': '\\backslash ',
    '_': '\\_',
    '^': '\\wedge ',
    '%': '\\%',
    '$': '\\$',
    '&': '\\&',
    '#': '\\#',
    '{': '\\{',
    '}': '\\}',
    '~': '\\sim ',
}

TEXT_MODE_ESCAPES: Dict[str, str] = {
    '_': '\\_',
    '^': '\\textasciicircum',
    '%': '\\%',
    '$': '\\$',
    '&': '\\&',
    '#': '\\#',
    '}': '\\}',
    '{': '\\{',
    '~': '\\textasciitilde',
    '\\': '\\textbackslash ',
}

_SPECIAL_CHARS = re.compile(r'[_^%$&#}{~\\]')

_MATH_UNESCAPES = {escaped: char for char, escaped in MATH_ESCAPES.items()}
_MATH_ESCAPED = re.compile(
    '|'.join(re.escape(escaped) for escaped in
             sorted(_MATH_UNESCAPES, key=len, reverse=True)))


def latex_escape(text: str) -> str:
    """Escape LaTeX control characters for use in math mode."""
    return _SPECIAL_CHARS.sub(lambda match: MATH_ESCAPES[match.group(0)], text)


def latex_unescape(text: str) -> str:
    """Inverse of latex_escape()."""
    return _MATH_ESCAPED.sub(lambda match: _MATH_UNESCAPES[match.group(0)], text)


def text_mode_escape(text: str) -> str:
    """Escape a string for use inside a \\text{...} command."""
    return _SPECIAL_CHARS.sub(lambda match: TEXT_MODE_ESCAPES[match.group(0)], text)
