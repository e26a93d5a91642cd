"""
Keymap

Static key binding tables, one per editor mode. Each binding maps a key
name ('x', 'Enter', 'Shift+Enter', 'Ctrl+z', 'ArrowUp', ...) to a command
string run by the InputContext.

Besides literal key names, a table may contain:
    '[alpha]'   any single letter
    '[digit]'   any single digit
    '[alnum]'   any single letter or digit
    'default'   any key not otherwise bound
    'delegate'  name of another table consulted after this one

Usage:
    from rpn_latex.editor.keymap import lookup
    lookup('base', '+')        # 'infix +'
    lookup('greek', 'a')       # 'push \\alpha'
"""

from typing import Dict, Optional


# =============================================================================
# Stack, Document and Configuration
# =============================================================================

BASE_KEYMAP = {
    # Letters and numbers push onto the stack immediately
    '[alnum]': "push_last_keypress",

    'Enter': "subscript",
    'Shift+Enter': "edit_item",
    'Backspace': "pop",
    'Shift+Backspace': "nip",

    ' ': "concat",
    '!': "push !;concat",
    '^': "superscript",
    '`': "superscript",
    '<': "infix <",
    '>': "infix >",
    '+': "infix +",
    '-': "autoparenthesize;infix -",
    '*': "autoparenthesize 2;infix \\cdot",
    ']': "make_bold",
    '[': "delimiters [ ]",
    '(': "delimiters ( )",
    '{': "delimiters \\{ \\}",

    # Document selection
    'ArrowUp': "change_document_selection -1",
    'Shift+ArrowUp': "shift_document_selection -1",
    'ArrowDown': "change_document_selection +1",
    'Shift+ArrowDown': "shift_document_selection +1",
    'PageUp': "change_document_selection -5",
    'PageDown': "change_document_selection +5",
    'Home': "change_document_selection top",
    'End': "change_document_selection bottom",

    # Prefix keys
    'Tab': "mode stack",
    "'": "mode symbol",
    '.': "mode decoration",
    ',': "mode infix",
    '=': "mode relational",
    ')': "mode delimiters",
    ';': "mode greek",
    ':': "mode greek",
    '@': "mode calligraphic",
    '&': "mode script",
    '%': "mode blackboard",
    '/': "mode operator",
    '\\': "start_text_entry math_entry",
    '"': "start_text_entry text_entry",
    '|': "mode array",
    '_': "start_dissect_mode",
    '#': "mode engine",
    '$': "mode config",

    # Ctrl shortcuts
    'Ctrl+0': "integer 0;subscript",
    'Ctrl+1': "integer -1;superscript",
    'Ctrl+2': "integer 2;superscript",
    'Ctrl+3': "integer 3;superscript",
    'Ctrl+4': "integer 4;superscript",
    'Ctrl+a': "swap",
    'Ctrl+b': "make_bold",
    'Ctrl+c': "copy_to_clipboard",
    'Ctrl+e': "push e;typeface roman;swap;superscript",
    'Ctrl+i': "pop_to_document",
    'Ctrl+f': "parenthesize;push f;swap;function_call",
    'Ctrl+g': "parenthesize;push g;swap;function_call",
    'Ctrl+j': "extract_from_document",
    'Ctrl+k': "infix \\,\\vert\\,;parenthesize;function_call",
    'Ctrl+m': "autoparenthesize;negate",
    'Ctrl+o': "parenthesize;function_call",
    'Ctrl+p': "delimiters ( )",
    'Ctrl+r': "infix ,;parenthesize;function_call",
    'Ctrl+t': "autoparenthesize;push t;parenthesize;function_call",
    'Ctrl+u': "superscript",
    'Ctrl+v': "paste_from_clipboard",
    'Ctrl+w': "swap_floating_item",
    'Ctrl+x': "autoparenthesize;push x;parenthesize;function_call",
    'Ctrl+y': "redo",
    'Ctrl+z': "undo",
    'Ctrl+ ': "push \\,;swap;concat false;concat false",
    'Ctrl+,': "infix ,",
    'Ctrl+/': "fraction",
    'Ctrl+\\': "integer 1;swap;fraction",
    'Ctrl+Backspace': "nip",
}

# [Tab] prefix
STACK_KEYMAP = {
    '[digit]': "prefix_argument",
    '*': "prefix_argument",
    'a': "swap",
    'c': "copy_to_clipboard",
    'd': "pop",
    'i': "pop_to_document",
    'I': "pop_to_document preserve",
    'j': "extract_from_document",
    'J': "extract_from_document preserve",
    'k': "keep",
    'n': "nip",
    'o': "over",
    'r': "rot",
    't': "tuck",
    'u': "unrot",
    'v': "paste_from_clipboard",
    'w': "swap_floating_item",
    'X': "reset_all",
    'y': "redo",
    'z': "undo",
    'Enter': "dup",
    'Shift+Enter': "edit_item",
    'Backspace': "pop",
    'Shift+Backspace': "nip",
    '=': "push_separator;pop_to_document",
    '$': "extract_latex_source",
}

# [$] prefix
CONFIG_KEYMAP = {
    '(': "config autoparenthesize on",
    ')': "config autoparenthesize off",
    'D': "config toggle_debug_mode",
    'r': "config reset",
    '$': "push \\$",
}


# =============================================================================
# Line Editor
# =============================================================================

# Shared by the five text entry modes
EDITOR_COMMANDS_KEYMAP = {
    'Escape': "cancel_text_entry",
    'Ctrl+z': "cancel_text_entry",
    'Backspace': "text_entry_backspace backspace",
    'Shift+Backspace': "text_entry_backspace backspace",
    'Delete': "text_entry_backspace delete",
    'ArrowLeft': "text_entry_move_cursor left",
    'ArrowRight': "text_entry_move_cursor right",
    'Home': "text_entry_move_cursor begin",
    'End': "text_entry_move_cursor end",
    'Ctrl+a': "text_entry_move_cursor begin",
    'Ctrl+ArrowLeft': "text_entry_move_cursor begin",
    'Ctrl+d': "text_entry_backspace delete",
    'Ctrl+e': "text_entry_move_cursor end",
    'Ctrl+ArrowRight': "text_entry_move_cursor end",
    'Ctrl+f': "text_entry_move_cursor right",
    'Ctrl+b': "text_entry_move_cursor left",
    'default': "append_text_entry",
}

TEXT_ENTRY_KEYMAP = {
    'Enter': "finish_text_entry text",
    'Shift+Enter': "finish_text_entry heading",
    'delegate': "_editor_commands",
}

MATH_ENTRY_KEYMAP = {
    'Enter': "finish_text_entry math",
    'Shift+Enter': "finish_text_entry roman_text",
    'Tab': "finish_text_entry operatorname",
    'delegate': "_editor_commands",
}

LATEX_ENTRY_KEYMAP = {
    'Enter': "finish_text_entry latex",
    'Shift+Enter': "finish_text_entry latex_unary",
    # Backspacing an empty command name goes back to math entry
    'Delete': "text_entry_backspace delete math_entry",
    'Backspace': "text_entry_backspace backspace math_entry",
    'delegate': "_editor_commands",
}

CONJUNCTION_ENTRY_KEYMAP = {
    'Enter': "finish_text_entry conjunction",
    'Shift+Enter': "finish_text_entry bold_conjunction",
    'delegate': "_editor_commands",
}

TAG_ENTRY_KEYMAP = {
    'Enter': "finish_text_entry tag",
    'Shift+Enter': "finish_text_entry tag_with_parentheses",
    'delegate': "_editor_commands",
}


# =============================================================================
# Delimiters
# =============================================================================

# [)] prefix
DELIMITERS_KEYMAP = {
    'b': "delimiters \\langle \\vert",
    'c': "delimiters \\lceil \\rceil",
    'd': "push \\llbracket;swap;concat false;push \\rrbracket;concat false",
    'f': "delimiters \\lfloor \\rfloor",
    'F': "toggle_fixed_size_delimiters",
    'g': "delimiters \\lgroup \\rgroup",
    'i': "infix \\,\\vert\\,;delimiters \\langle \\rangle",
    'I': "infix \\,\\vert\\,;infix \\,\\vert\\,;delimiters \\langle \\rangle",
    'k': "delimiters \\vert \\rangle",
    'l': "mode modify_left",
    'L': "mode modify_left",
    'm': "delimiters \\lmoustache \\rmoustache",
    'n': "delimiters \\lVert \\rVert",
    'N': "delimiters \\lVert \\rVert",
    'o': "delimiters ( ]",
    'O': "delimiters [ )",
    'r': "mode modify_right",
    'R': "mode modify_right",
    'w': "delimiters . \\vert",
    'W': "delimiters . \\vert",
    'x': "remove_delimiters",
    'X': "remove_delimiters",
    '|': "delimiters \\vert \\vert",
    '<': "delimiters \\langle \\rangle",
    '(': "delimiters ( .",
    ')': "delimiters . )",
    '[': "delimiters [ .",
    ']': "delimiters . ]",
    '{': "delimiters \\{ .",
    '}': "delimiters . \\}",
    '.': "delimiters . .",
    ' ': "delimiters . .",
}

# Delimiter types for [)][l] / [)][r]
MODIFY_DELIMITER_TYPES = {
    'c': '\\lceil', 'C': '\\rceil',
    'f': '\\lfloor', 'F': '\\rfloor',
    'g': '\\lgroup', 'G': '\\rgroup',
    'm': '\\lmoustache', 'M': '\\rmoustache',
    'n': '\\Vert',
    '<': '\\langle', '>': '\\rangle',
    '(': '(', ')': ')',
    '[': '[', ']': ']',
    '{': '\\{', '}': '\\}',
    '.': '.', ' ': '.',
    '/': '/',
    '\\': '\\backslash',
    '|': '\\vert',
}


def _modify_delimiter_keymap(side: str) -> Dict[str, str]:
    return {key: f"modify_delimiter {delimiter_type} {side}"
            for key, delimiter_type in MODIFY_DELIMITER_TYPES.items()}


# =============================================================================
# Operators and Functions
# =============================================================================

# [/] prefix
OPERATOR_KEYMAP = {
    '1': "integer 1;swap;fraction",
    '\\': "integer 1;swap;fraction",
    '2': "mode squared",
    'a': "fraction",
    'b': "operator binom 2",
    'c': "named_function cos",
    'C': "named_function csc",
    'd': "mode derivative",
    'D': "mode derivative_alt",
    'e': "push e;typeface roman;swap;superscript",
    'E': "named_function exp",
    'f': "mode named_operator",
    'g': "push \\int;swap;superscript;swap;subscript",
    'h': "mode hyperbolic",
    'i': "mode integral_limits",
    'I': "mode integral_with_limits",
    'k': "infix \\,\\vert\\,;parenthesize;function_call",
    'K': "unrot;infix ,;swap;infix \\,\\vert\\,;parenthesize;function_call",
    'l': "push \\limits;swap;subscript;push \\lim;swap;concat",
    'L': "infix \\to;push \\limits;swap;subscript;push \\lim;swap;concat",
    'm': "parenthesize_argument;push Im;swap;operator operatorname 2",
    'M': "parenthesize_argument;push Re;swap;operator operatorname 2",
    'n': "named_function ln",
    'N': "named_function log",
    'o': "parenthesize;function_call",
    'O': "swap;operator overset 2",
    'p': "parenthesize;push P;typeface blackboard;swap;function_call",
    'P': "infix \\,\\vert\\,;parenthesize;push P;typeface blackboard;swap;function_call",
    'q': "operator sqrt",
    'Q': "operator sqrt[3]",
    'r': "infix ,;parenthesize;function_call",
    'R': "infix ,;infix ,;parenthesize;function_call",
    's': "named_function sin",
    'S': "named_function sec",
    't': "named_function tan",
    'T': "named_function cot",
    'U': "swap;operator underset 2",
    'v': "mode variational",
    'V': "parenthesize [ ];push Var;typeface roman;swap;function_call",
    'w': "swap_pieces",
    'x': "parenthesize [ ];push E;typeface blackboard;swap;function_call",
    'X': "infix \\,\\vert\\,;parenthesize [ ];push E;typeface blackboard;swap;function_call",
    'y': "push E;typeface blackboard;swap;subscript;swap;parenthesize [ ];function_call",
    'Y': "push E;typeface blackboard;swap;subscript;unrot;infix \\,\\vert\\,;parenthesize [ ];function_call",
    'z': "dissolve",
    ' ': "swap;concat",
    ';': "start_text_entry tag_entry",
    ',': "infix_linebreak",
    '/': "fraction",
    '[': "parenthesize [ ];function_call",
    ']': "parenthesize \\{ \\};function_call",
    '{': "swap;operator overbrace;swap;superscript",
    '}': "swap;operator underbrace;swap;subscript",
    '<': "extract_side left",
    '>': "extract_side right",
    '!': "negate_comparison",
    '-': "mode inverse",
    '=': "unrot;infix =;push \\sum;swap;subscript;swap;superscript",
    '+': "infix \\ge;push \\sum;swap;subscript",
    '|': "swap;delimiters . \\vert;swap;subscript",
    '^': "integer 10;swap;superscript;infix \\cdot",
    "'": "substitute_placeholder",
    '"': "toggle_is_heading",
    '%': "substitute",
    'Enter': "unrot;subscript;swap;superscript",
}

# [/][f] prefix
NAMED_OPERATOR_KEYMAP = {
    'a': "parenthesize_argument;operator arg",
    'c': "parenthesize [ ];push Cov;typeface roman;swap;function_call",
    'C': "infix ,;parenthesize [ ];push Cov;typeface roman;swap;function_call",
    'd': "parenthesize_argument;named_function det",
    'D': "parenthesize_argument;operator dim",
    'e': "parenthesize;push erf;swap;operator operatorname 2",
    'E': "parenthesize;push erfc;swap;operator operatorname 2",
    'g': "infix ,;parenthesize;operator gcd",
    'G': "operator deg",
    'h': "operator hom",
    'i': "operator inf",
    'I': "operator liminf",
    'k': "parenthesize_argument;operator ker",
    'l': "operator lim",
    'm': "parenthesize_argument;operator min",
    'M': "operator argmin",
    'n': "parenthesize;push sgn;swap;operator operatorname 2",
    'p': "parenthesize;push Pr;swap;operator operatorname 2",
    'P': "infix ,;parenthesize;push Pr;swap;operator operatorname 2",
    's': "operator sup",
    'S': "operator limsup",
    't': "parenthesize_argument;push Tr;swap;operator operatorname 2",
    'v': "parenthesize [ ];push Var;typeface roman;swap;function_call",
    'V': "infix ,;parenthesize [ ];push Var;typeface roman;swap;function_call",
    'x': "parenthesize_argument;operator max",
    'X': "operator argmax",
}

TRIG_FUNCTIONS = {'s': 'sin', 'S': 'sec', 'c': 'cos', 'C': 'csc', 't': 'tan', 'T': 'cot'}
HYPERBOLIC_FUNCTIONS = {'s': 'sinh', 'S': 'sech', 'c': 'cosh', 'C': 'csch', 't': 'tanh', 'T': 'coth'}


def _named_function_keymap(functions: Dict[str, str], superscript: Optional[str] = None,
                           **extra_bindings: str) -> Dict[str, str]:
    suffix = f" {superscript}" if superscript else ''
    keymap = {key: f"named_function {funcname}{suffix}" for key, funcname in functions.items()}
    keymap.update(extra_bindings)
    return keymap


# [/][h], [/][-], [/][2] and their combinations
HYPERBOLIC_KEYMAP = _named_function_keymap(HYPERBOLIC_FUNCTIONS, None, **{
    '2': "mode squared_hyperbolic", '-': "mode inverse_hyperbolic"})
INVERSE_KEYMAP = _named_function_keymap(TRIG_FUNCTIONS, '-1', **{
    'h': "mode inverse_hyperbolic", '2': "mode squared"})
INVERSE_HYPERBOLIC_KEYMAP = _named_function_keymap(HYPERBOLIC_FUNCTIONS, '-1', **{
    '2': "mode squared_hyperbolic"})
SQUARED_KEYMAP = _named_function_keymap(TRIG_FUNCTIONS, '2', **{
    'V': "infix ,;parenthesize [ ];push Cov;typeface roman;swap;function_call",
    'n': "named_function lg",
    'N': "named_function log _2",
    'h': "mode squared_hyperbolic",
    '-': "mode inverse"})
SQUARED_HYPERBOLIC_KEYMAP = _named_function_keymap(HYPERBOLIC_FUNCTIONS, '2', **{
    '-': "mode inverse_hyperbolic"})

# Integration limits: [/][i] adds them to an existing integral sign, [/][I] pushes \int too
INTEGRAL_LIMITS = {
    'r': "push \\infty;negate;subscript;push \\infty;superscript",
    'R': "push R;typeface calligraphic;subscript",
    'n': "push \\infty;negate;subscript;integer 0;superscript",
    'p': "integer 0;subscript;push \\infty;superscript",
    'u': "integer 0;subscript;integer 1;superscript",
    'U': "integer -1;subscript;integer 1;superscript",
    't': "integer 0;subscript;integer 2;push \\pi;concat;superscript",
    'T': "push \\pi;negate;subscript;push \\pi;superscript",
}


# =============================================================================
# Derivatives
# =============================================================================

def _partial_derivative_bindings(d: str) -> Dict[str, str]:
    """Derivative templates built from a 'd'-like symbol (\\partial, \\delta)."""
    return {
        # d y / d x
        'j': f"push {d};swap;concat;swap;push {d};swap;concat;swap;fraction",
        # d^2 y / d x^2
        'J': f"integer 2;superscript;push {d};swap;concat;swap;push {d};integer 2;superscript;"
             f"swap;concat;swap;fraction",
        # d / d x
        'q': f"push {d};swap;concat;push {d};swap;fraction",
        # d^2 / d x^2
        'Q': f"integer 2;superscript;push {d};swap;concat;push {d};integer 2;superscript;swap;fraction",
        # d^2 / d x d y
        'm': f"push {d};swap;concat;push {d};rot;concat;swap;push \\,;swap;concat;concat;"
             f"push {d};integer 2;superscript;swap;fraction",
        # d^2 z / d x d y
        'M': f"push {d};swap;concat;push {d};rot;concat;swap;push \\,;swap;concat;concat;swap;"
             f"push {d};integer 2;superscript;swap;concat;swap;fraction",
        'p': f"push {d};swap;concat",
        'P': f"push {d};swap;subscript;swap;concat",
    }


def _differential_bindings(roman: bool) -> Dict[str, str]:
    """dx, dy/dx and friends built with differential_form."""
    suffix = ' roman' if roman else ''
    d1 = f"differential_form 1{suffix}"
    d0 = f"differential_form 0{suffix}"
    return {
        'd': d1,
        'f': f"differential_form 2{suffix}",
        'F': f"differential_form 3{suffix}",
        '2': f"{d0};integer 2;superscript;swap;concat",
        '3': f"{d0};integer 3;superscript;swap;concat",
        '4': f"{d0};integer 4;superscript;swap;concat",
        # y x -> y dx
        'i': f"{d1};concat",
        ' ': f"{d1};concat",
        # d/dx
        'x': f"{d1};{d0};swap;fraction",
        # d^2/dx^2
        'X': f"integer 2;superscript;{d1};{d0};integer 2;superscript;swap;fraction",
        # dy/dx
        'y': f"{d1};swap;{d1};swap;fraction",
        # d^2y/dx^2
        'Y': f"integer 2;superscript;{d1};swap;{d0};integer 2;superscript;swap;concat;swap;fraction",
    }


# [/][d] prefix
DERIVATIVE_KEYMAP = dict(_partial_derivative_bindings('\\partial'), **_differential_bindings(False))
DERIVATIVE_KEYMAP.update({
    'g': "push \\nabla;swap;concat",
    'G': "push \\nabla;swap;subscript;swap;concat",
    '.': "autoparenthesize;push \\nabla;swap;infix \\cdot",
    '>': "autoparenthesize;push \\nabla;infix \\cdot",
    'c': "autoparenthesize;push \\nabla;swap;infix \\times",
    'C': "autoparenthesize;push \\nabla;infix \\times",
    'l': "autoparenthesize;push \\nabla;integer 2;superscript;swap;concat",
    'n': "autoparenthesize;push \\Delta;swap;concat",
})

# [/][D] prefix: roman 'd'
DERIVATIVE_ALT_KEYMAP = dict(_differential_bindings(True), delegate='derivative')
DERIVATIVE_ALT_KEYMAP['D'] = DERIVATIVE_ALT_KEYMAP['d']

# [/][v] prefix: functional derivatives, \delta in place of \partial
VARIATIONAL_KEYMAP = _partial_derivative_bindings('\\delta')
VARIATIONAL_KEYMAP.update({
    'x': VARIATIONAL_KEYMAP['q'],
    'X': VARIATIONAL_KEYMAP['Q'],
    'y': VARIATIONAL_KEYMAP['j'],
    'Y': VARIATIONAL_KEYMAP['J'],
    'd': "push \\delta;swap;concat",
    '2': "push \\delta;integer 2;superscript;swap;concat",
    '3': "push \\delta;integer 3;superscript;swap;concat",
    '4': "push \\delta;integer 4;superscript;swap;concat",
    'i': "push \\delta;swap;concat;swap;push \\,;concat;swap;concat",
    ' ': "push \\delta;swap;concat;swap;push \\,;concat;swap;concat",
})


# =============================================================================
# Infix and Relational Operators
# =============================================================================

# [,] prefix
INFIX_KEYMAP = {
    'a': "apply_infix",
    'b': "infix \\bullet",
    'c': "infix \\cap",
    'C': "infix \\circledcirc",
    'd': "swap;push \\dagger;superscript false;swap;concat",
    'D': "infix \\oplus",
    'e': "infix ,\\dots,",
    'f': "conjunction if",
    'F': "conjunction iff",
    'j': "infix \\Join",
    'g': "infix \\gets",
    'k': "infix \\,\\vert\\,",
    '|': "infix \\,\\vert\\,",
    'l': "infix \\parallel",
    'm': "operator pmod;concat",
    'M': "infix \\mp",
    'n': "conjunction when",
    'o': "infix \\circ",
    'O': "infix \\odot",
    'p': "infix \\perp",
    'P': "infix \\pm",
    'q': "conjunction and",
    'Q': "conjunction or",
    'r': "conjunction for",
    's': "push \\,;swap;concat false;concat false",
    'S': "infix \\circledast",
    ' ': "push \\,;swap;concat false;concat false",
    't': "infix \\to",
    'T': "infix \\longrightarrow",
    'u': "infix \\cup",
    'v': "infix \\vee",
    'V': "infix \\veebar",
    'w': "infix \\wedge",
    'W': "infix \\barwedge",
    'x': "infix \\times",
    'X': "infix \\otimes",
    '=': "infix \\Rightarrow",
    '+': "infix \\Longrightarrow",
    '-': "infix \\ominus",
    '.': "infix \\cdot",
    ',': "infix ,",
    ':': "infix \\colon",
    ';': "infix semicolon",
    "'": "start_text_entry conjunction_entry",
    '`': "swap;push T;typeface roman;superscript false;swap;concat",
    '~': "push T;typeface roman;superscript false;concat",
    '*': "infix *",
    '^': "infix \\star",
    '%': "infix \\div",
    '(': "infix ,;delimiters ( )",
    '<': "infix ,;delimiters \\langle \\rangle",
    '>': "infix \\cdots",
    '/': "autoparenthesize 2;infix /",
    '\\': "autoparenthesize 2;infix \\backslash",
    'Tab': "infix \\quad",
}

# [=] prefix
RELATIONAL_KEYMAP = {
    '2': "mode variant_relational",
    'a': "infix \\approx",
    'c': "infix \\cong",
    'e': "infix \\equiv",
    'E': "infix \\iff",
    'f': "infix \\Leftarrow",
    'g': "infix \\gets",
    'G': "infix \\gg",
    'i': "infix \\in",
    'I': "infix \\notin",
    'l': "infix <",
    'L': "infix \\ll",
    'm': "infix \\mapsto",
    'n': "infix \\ne",
    '!': "infix \\ne",
    'o': "infix \\circeq",
    'p': "infix \\propto",
    'q': "infix =",
    '=': "infix =",
    's': "infix \\subset",
    'S': "infix \\subseteq",
    't': "infix \\to",
    'u': "infix \\supset",
    'U': "infix \\supseteq",
    '^': "infix \\triangleq",
    '<': "infix \\le",
    '>': "infix \\ge",
    '[': "infix \\le",
    ']': "infix \\ge",
    '{': "infix \\lll",
    '}': "infix \\ggg",
    '.': "infix \\doteq",
    ':': "infix \\coloneqq",
    ';': "infix \\coloncolon",
    '~': "infix \\sim",
    '-': "infix \\vdash",
    '|': "infix \\vDash",
    '?': "push ?;push =;operator overset 2;apply_infix",
}

# [=][2] prefix
VARIANT_RELATIONAL_KEYMAP = {
    's': "infix \\sqsubset",
    'S': "infix \\sqsubseteq",
    'u': "infix \\sqsupset",
    'U': "infix \\sqsupseteq",
    'l': "infix \\prec",
    'g': "infix \\succ",
    'L': "infix \\leqslant",
    'G': "infix \\geqslant",
    '<': "infix \\preceq",
    '[': "infix \\preceq",
    '>': "infix \\succeq",
    ']': "infix \\succeq",
}


# =============================================================================
# Symbols, Decorations and Letters
# =============================================================================

# ['] prefix
SYMBOL_KEYMAP = {
    '0': "push \\varnothing",
    '1': "integer -1",
    '2': "integer 1;integer 2;fraction",
    '3': "integer 1;integer 2;infix /",
    '8': "push \\infty",
    'a': "push \\forall",
    'A': "push \\aleph",
    'b': "push \\bullet",
    'c': "push \\cdot",
    'C': "push \\bigcap",
    'd': "push \\partial",
    'D': "push \\bigoplus",
    'e': "push \\exists",
    'E': "push \\nexists",
    'h': "push \\hslash",
    'i': "push \\int",
    'I': "push \\iint",
    'l': "push \\ell",
    'M': "push \\mp",
    'n': "push \\ne",
    'o': "push \\circ",
    'O': "push \\bigodot",
    'p': "push \\prod",
    'P': "push \\pm",
    'q': "push =",
    'Q': "push \\bigsqcup",
    'r': "push \\square",
    'R': "push \\boxdot",
    's': "push \\sum",
    'S': "push \\S",
    't': "push \\therefore",
    'U': "push \\bigcup",
    'v': "push \\vee",
    'V': "push \\bigvee",
    'w': "push \\wedge",
    'W': "push \\bigwedge",
    'X': "push \\bigotimes",
    'y': "push \\oint",
    'Y': "push \\oiint",
    '.': "push \\dots",
    '>': "push \\cdots",
    '-': "push -",
    '+': "push +",
    '*': "push \\ast",
    '^': "push \\star",
    '|': "push |",
    '=': "push_separator",
    '?': "push ?",
    '!': "push !",
    ',': "push ,",
    ';': "push semicolon",
    ':': "push :",
    '`': "push `",
    '~': "push \\sim",
    '_': "push \\_",
    "'": "push_placeholder",
    ' ': "push",
    '/': "push /",
    '\\': "push \\backslash",
    '@': "push @",
    '%': "push \\%",
    '&': "push \\&",
    '#': "push \\#",
    '$': "push \\$",
    'ArrowUp': "push \\uparrow",
    'ArrowDown': "push \\downarrow",
    'ArrowLeft': "push \\leftarrow",
    'ArrowRight': "push \\rightarrow",
}

# [.] prefix
DECORATION_KEYMAP = {
    '0': "integer 0;subscript",
    '1': "integer -1;superscript",
    '2': "integer 2;superscript",
    '3': "integer 3;superscript",
    '4': "integer 4;superscript",
    '8': "push \\infty;infix \\to",
    'A': "apply_hat acute",
    'b': "typeface roman;make_bold",
    'c': "autoparenthesize;push 1;swap;infix -",
    'd': "push \\dagger;superscript",
    'D': "push \\ddagger;superscript",
    'e': "html_class emphasized emphasized2",
    'g': "apply_hat mathring",
    'G': "apply_hat grave",
    'h': "apply_hat hat",
    'H': "operator widehat",
    'i': "push -;superscript",
    'I': "push +;superscript",
    'k': "typeface fraktur",
    'l': "push \\parallel;subscript",
    'm': "typeface typewriter",
    'M': "prefix \\mp",
    'n': "apply_hat bar",
    'o': "operator overline",
    'p': "push \\perp;subscript",
    'P': "prefix \\pm",
    'q': "prefix =",
    'r': "typeface roman",
    's': "typeface sans_serif",
    'S': "typeface sans_serif_italic",
    't': "prefix \\to",
    'T': "prefix \\longrightarrow",
    'u': "apply_hat breve",
    'U': "operator utilde",
    'v': "apply_hat vec",
    'V': "operator overrightharpoon",
    'w': "apply_hat check",
    'W': "operator widecheck",
    'x': "operator boxed",
    'X': "operator sout",
    'Y': "operator widetilde",
    'z': "operator bcancel",
    '/': "operator cancel",
    '.': "apply_hat dot",
    '>': "push .;concat",
    '"': "apply_hat ddot",
    ' ': "push \\,;concat",
    "'": "autoparenthesize;prime",
    ',': "push \\circ;superscript",
    '*': "push *;superscript",
    '~': "apply_hat tilde",
    '=': "prefix \\Rightarrow",
    '-': "autoparenthesize;negate",
    '+': "autoparenthesize;prefix +",
    '`': "transpose_matrix",
    '\\': "autoparenthesize;push 1;swap;autoparenthesize;infix /",
    '_': "operator underline",
    '!': "autoparenthesize;prefix \\neg",
    '[': "adjust_size smaller",
    ']': "adjust_size larger",
    '{': "operator overbrace",
    '}': "operator underbrace",
    'Tab': "push \\quad;swap;concat false",
}

# [;] prefix
GREEK_KEYMAP = {
    'a': "push \\alpha", 'b': "push \\beta", 'c': "push \\xi", 'd': "push \\delta",
    'e': "push \\epsilon", 'f': "push \\phi", 'g': "push \\gamma", 'h': "push \\eta",
    'i': "push \\iota", 'j': "push \\varphi", 'k': "push \\kappa", 'l': "push \\lambda",
    'm': "push \\mu", 'n': "push \\nu", 'o': "push \\omega", 'p': "push \\pi",
    'q': "push \\vartheta", 'r': "push \\rho", 's': "push \\sigma", 't': "push \\tau",
    'u': "push \\upsilon", 'v': "push \\theta", 'w': "push \\omega", 'x': "push \\chi",
    'y': "push \\psi", 'z': "push \\zeta",

    'A': "push A", 'B': "push B", 'C': "push \\Xi", 'D': "push \\Delta",
    'E': "push \\varepsilon", 'F': "push \\Phi", 'G': "push \\Gamma", 'H': "push \\mho",
    'I': "push I", 'J': "push \\Phi", 'K': "push \\varkappa", 'L': "push \\Lambda",
    'M': "push \\varpi", 'N': "push \\nabla", 'O': "push \\Omega", 'P': "push \\Pi",
    'Q': "push \\Theta", 'R': "push \\varrho", 'S': "push \\Sigma", 'T': "push \\varsigma",
    'U': "push \\Upsilon", 'V': "push \\Theta", 'W': "push \\Omega", 'X': "push X",
    'Y': "push \\Psi", 'Z': "push Z",

    '2': "mode variant_greek",
    ';': "infix semicolon",
    ':': "infix \\colon",
}

# [;][2] prefix: italic uppercase Greek
VARIANT_GREEK_KEYMAP = {}
for _key, _name in [('c', 'Xi'), ('d', 'Delta'), ('f', 'Phi'), ('g', 'Gamma'), ('l', 'Lambda'),
                    ('o', 'Omega'), ('p', 'Pi'), ('q', 'Theta'), ('s', 'Sigma'),
                    ('u', 'Upsilon'), ('v', 'Theta'), ('y', 'Psi')]:
    VARIANT_GREEK_KEYMAP[_key] = VARIANT_GREEK_KEYMAP[_key.upper()] = f"push \\var{_name}"


# =============================================================================
# Arrays
# =============================================================================

# [|] prefix
ARRAY_KEYMAP = {
    '[digit]': "prefix_argument",
    '*': "prefix_argument",
    'a': "build_align aligned",
    'c': "build_align cases",
    'C': "build_align rcases",
    'e': "build_infix_list ,;push \\dots;push ,;apply_infix",
    'E': "insert_matrix_ellipses",
    'f': "build_align cases_if",
    'F': "build_align rcases_if",
    'g': "build_align gathered",
    'h': "stack_arrays horizontal",
    'k': "build_substack",
    'm': "build_matrix_row matrix",
    ' ': "build_matrix_row matrix",
    'p': "build_infix_list +;push \\cdots;push +;apply_infix",
    'r': "autoparenthesize;push Tr;swap;operator operatorname 2",
    's': "split_array",
    't': "mode change_matrix_type",
    'T': "transpose_matrix",
    'v': "build_matrix_row vmatrix",
    'V': "build_matrix_row Vmatrix",
    'x': "build_matrix",
    '|': "stack_arrays vertical",
    ',': "build_infix_list ,",
    '.': "build_infix_list , \\dots",
    ';': "build_infix_list semicolon\\,",
    '+': "build_infix_list + \\cdots",
    '(': "build_matrix_row pmatrix",
    '[': "build_matrix_row bmatrix",
    '{': "build_matrix_row Bmatrix",
    '@': "build_matrix_row bmatrix 2;transpose_matrix",
    '#': "build_matrix_row bmatrix 3;transpose_matrix",
    '$': "build_matrix_row bmatrix 2;unrot;build_matrix_row bmatrix 2;swap;stack_arrays vertical",
    ':': "array_separator column dashed",
    '!': "array_separator column solid",
    '_': "array_separator row dashed",
    '-': "array_separator row solid",
    'Enter': "stack_arrays vertical",
}

MATRIX_TYPE_KEYS = {
    'm': 'matrix', ' ': 'matrix',
    'v': 'vmatrix', 'V': 'Vmatrix',
    '(': 'pmatrix', '[': 'bmatrix', '{': 'Bmatrix',
}

# [|][x] then a column count then a matrix type key
BUILD_MATRIX_KEYMAP = {key: f"finish_build_matrix {matrix_type}"
                       for key, matrix_type in MATRIX_TYPE_KEYS.items()}
BUILD_MATRIX_KEYMAP['[digit]'] = "prefix_argument"

CHANGE_MATRIX_TYPE_KEYMAP = {key: f"change_matrix_type {matrix_type}"
                             for key, matrix_type in MATRIX_TYPE_KEYS.items()}


# =============================================================================
# Dissect Mode and Algebra Engine
# =============================================================================

# [_] prefix
DISSECT_KEYMAP = {
    'default': "cancel_dissect_mode",
    'Escape': "cancel_dissect_mode",
    'q': "cancel_dissect_mode",
    'Q': "cancel_dissect_mode",
    '_': "dissect_descend",
    'u': "dissect_ascend",
    'U': "dissect_ascend",
    'ArrowUp': "dissect_ascend",
    'ArrowDown': "dissect_descend",
    'ArrowLeft': "dissect_move_selection left",
    'ArrowRight': "dissect_move_selection right",
    '[': "dissect_move_selection left",
    '{': "dissect_move_selection left",
    ']': "dissect_move_selection right",
    '}': "dissect_move_selection right",
    'x': "dissect_extract_selection",
    'X': "dissect_extract_selection",
    'd': "dissect_extract_selection trim",
    'D': "dissect_extract_selection trim",
    'Backspace': "dissect_extract_selection trim",
    "'": "dissect_extract_selection",
    'c': "dissect_copy_selection",
    'C': "dissect_copy_selection",
    't': "dissect_copy_selection trim",
    'T': "dissect_copy_selection trim",
}

# [#] prefix
ENGINE_KEYMAP = {
    '#': "engine eval",
    '/': "rationalize",
    '=': "evaluate",
    '*': "engine conj",
    'A': "engine arg",
    'd': "engine derivative",
    'D': "engine derivative 2",
    'e': "engine circexp",
    'f': "engine factor",
    'F': "engine factor 2",
    'i': "engine integral",
    'I': "engine integral 2",
    'P': "engine polar",
    'r': "engine rationalize",
    'R': "engine rect",
    's': "engine simplify",
    'x': "engine expand",
    'X': "engine expand 2",
    'z': "all_on_left true;engine roots",
    'Z': "swap;all_on_left true;swap;engine roots 2",
}


# =============================================================================
# Lookup
# =============================================================================

KEYMAP: Dict[str, Dict[str, str]] = {
    'base': BASE_KEYMAP,
    'stack': STACK_KEYMAP,
    'config': CONFIG_KEYMAP,
    '_editor_commands': EDITOR_COMMANDS_KEYMAP,
    'text_entry': TEXT_ENTRY_KEYMAP,
    'math_entry': MATH_ENTRY_KEYMAP,
    'latex_entry': LATEX_ENTRY_KEYMAP,
    'conjunction_entry': CONJUNCTION_ENTRY_KEYMAP,
    'tag_entry': TAG_ENTRY_KEYMAP,
    'delimiters': DELIMITERS_KEYMAP,
    'modify_left': _modify_delimiter_keymap('left'),
    'modify_right': _modify_delimiter_keymap('right'),
    'operator': OPERATOR_KEYMAP,
    'named_operator': NAMED_OPERATOR_KEYMAP,
    'hyperbolic': HYPERBOLIC_KEYMAP,
    'inverse': INVERSE_KEYMAP,
    'inverse_hyperbolic': INVERSE_HYPERBOLIC_KEYMAP,
    'squared': SQUARED_KEYMAP,
    'squared_hyperbolic': SQUARED_HYPERBOLIC_KEYMAP,
    'integral_limits': INTEGRAL_LIMITS,
    'integral_with_limits': {key: "push \\int;" + command for key, command in INTEGRAL_LIMITS.items()},
    'derivative': DERIVATIVE_KEYMAP,
    'derivative_alt': DERIVATIVE_ALT_KEYMAP,
    'variational': VARIATIONAL_KEYMAP,
    'infix': INFIX_KEYMAP,
    'relational': RELATIONAL_KEYMAP,
    'variant_relational': VARIANT_RELATIONAL_KEYMAP,
    'symbol': SYMBOL_KEYMAP,
    'decoration': DECORATION_KEYMAP,
    'calligraphic': {'[alpha]': "push_last_keypress;uppercase;typeface calligraphic",
                     '@': "push @"},
    # Only a lowercase k exists in blackboard bold (\Bbbk)
    'blackboard': {'[alpha]': "push_last_keypress;uppercase;typeface blackboard",
                   'k': "push k;typeface blackboard",
                   '%': "push \\%"},
    'script': {'[alpha]': "push_last_keypress;uppercase;typeface script",
               '&': "push \\&"},
    'greek': GREEK_KEYMAP,
    'variant_greek': VARIANT_GREEK_KEYMAP,
    'array': ARRAY_KEYMAP,
    'build_matrix': BUILD_MATRIX_KEYMAP,
    'change_matrix_type': CHANGE_MATRIX_TYPE_KEYMAP,
    'dissect': DISSECT_KEYMAP,
    'engine': ENGINE_KEYMAP,
}


def _lookup_in(mode: str, key: str) -> Optional[str]:
    keymap = KEYMAP.get(mode)
    if keymap is None:
        return None
    if key in keymap:
        return keymap[key]
    if len(key) == 1:
        is_alpha = 'a' <= key.lower() <= 'z'
        is_digit = '0' <= key <= '9'
        if is_alpha and '[alpha]' in keymap:
            return keymap['[alpha]']
        if is_digit and '[digit]' in keymap:
            return keymap['[digit]']
        if (is_alpha or is_digit) and '[alnum]' in keymap:
            return keymap['[alnum]']
    if 'default' in keymap:
        return keymap['default']
    if 'delegate' in keymap:
        return _lookup_in(keymap['delegate'], key)
    return None


def lookup(mode: str, key: str) -> Optional[str]:
    """
    Command string bound to key in mode. Unbound keys in prefix modes
    cancel the prefix; in base mode (or an unknown mode) they give None.
    """
    if mode not in KEYMAP:
        return None
    command = _lookup_in(mode, key)
    if command is None and mode != 'base':
        return 'cancel'
    return command
