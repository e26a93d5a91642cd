"""
RPN LaTeX Editor

Structural editor core for mathematical notation: expressions are built
by combining terms on an RPN-style stack and rendered as LaTeX.

Packages:
    - model: Expression trees, LaTeX emitter, paths, evaluation
    - data: Items, Stack, Document, AppState, undo history, math-entry parser
    - editor: Command interpreter, command handlers, keymap
    - cas: Conversion to and from a computer algebra engine
    - configs: Editor settings
    - server: Flask / Socket.IO front end
"""

__version__ = "0.1.0"
