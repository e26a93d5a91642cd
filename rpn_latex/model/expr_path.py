"""
Expression Paths

An ExprPath locates a subexpression inside a fixed root Expr as a sequence
of child indexes (positions within each ancestor's subexpressions()).
It is used by "dissect" mode to select, extract and replace parts of an
expression.

Usage:
    path = ExprPath(root_expr).descend(0)
    path.selected_expr()                       # first child of root_expr
    new_root = path.replace_selection(TextExpr('y'))
"""

from dataclasses import dataclass
from typing import List, Tuple

from .exprs import Expr, PlaceholderExpr


@dataclass(frozen=True)
class ExprPath:
    """Immutable path into expr. An empty indexes tuple selects the root."""
    expr: Expr
    indexes: Tuple[int, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'indexes', tuple(self.indexes))

    def depth(self) -> int:
        return len(self.indexes)

    def selected_expr(self) -> Expr:
        return self.expr_chain()[-1]

    def expr_chain(self) -> List[Expr]:
        """Root, then each node along the path down to the selection."""
        chain = [self.expr]
        for index in self.indexes:
            chain.append(chain[-1].subexpressions()[index])
        return chain

    def parent_expr(self) -> Expr:
        if not self.indexes:
            raise ValueError("ExprPath at the root has no parent")
        return self.expr_chain()[-2]

    def last_index(self) -> int:
        return self.indexes[-1]

    def can_descend(self) -> bool:
        return self.selected_expr().has_subexpressions()

    def descend(self, index: int) -> 'ExprPath':
        subexpressions = self.selected_expr().subexpressions()
        if index < 0 or index >= len(subexpressions):
            raise ValueError(
                f"Cannot descend to index {index}: {len(subexpressions)} subexpressions")
        return ExprPath(self.expr, self.indexes + (index,))

    def ascend(self) -> 'ExprPath':
        if not self.indexes:
            raise ValueError("ExprPath is already at the root")
        return ExprPath(self.expr, self.indexes[:-1])

    def move(self, direction: str) -> 'ExprPath':
        """Select the previous/next sibling ('left' or 'right'), wrapping around."""
        if direction not in ('left', 'right'):
            raise ValueError(f"Invalid direction: {direction}")
        if not self.indexes:
            return self
        sibling_count = len(self.parent_expr().subexpressions())
        offset = -1 if direction == 'left' else 1
        new_index = (self.last_index() + offset) % sibling_count
        return ExprPath(self.expr, self.indexes[:-1] + (new_index,))

    def replace_selection(self, new_expr: Expr) -> Expr:
        """
        Return a new root Expr with the selected subexpression replaced.
        Only nodes along the path are rebuilt; everything else is shared.
        """
        chain = self.expr_chain()
        for depth in range(len(self.indexes) - 1, -1, -1):
            new_expr = chain[depth].replace_subexpression(self.indexes[depth], new_expr)
        return new_expr

    def extract_selection(self) -> Expr:
        """Replace the selection with a placeholder."""
        return self.replace_selection(PlaceholderExpr())

    def equals(self, other: 'ExprPath') -> bool:
        return self.expr is other.expr and self.indexes == other.indexes
