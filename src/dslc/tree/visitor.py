"""
Tree Visitors

ASTVisitor is the base of tree walkers that dispatch on node kind via
`node.accept(visitor)`.  Two concrete visitors live here:

- NodeWalker: pre-order list of every node under a root
- TreeDumper: compact s-expression text of a tree, for debug logs and tests
"""

from typing import Any, Callable, List, Optional

from .nodes import (
    ASTnode, Name, Number, StringLiteral, Unary, Binary, Call, Conditional, Def,
)


class ASTVisitor:
    """
    Base visitor.  Subclasses define `visit_<kind>` methods; a node whose
    kind has no method is handed to the nearest ancestor kind's method, and
    finally to `generic_visit`.
    """

    def visit(self, node: Optional[ASTnode]) -> Any:
        if node is None:
            return None
        return node.accept(self)

    def generic_visit(self, node: ASTnode) -> Any:
        for child in node.children():
            child.accept(self)
        return None


class NodeWalker(ASTVisitor):
    """Collect nodes in pre-order, optionally filtered by a predicate."""

    def __init__(self, predicate: Optional[Callable[[ASTnode], bool]] = None):
        self.predicate = predicate
        self.nodes: List[ASTnode] = []

    def generic_visit(self, node: ASTnode) -> Any:
        if self.predicate is None or self.predicate(node):
            self.nodes.append(node)
        return super().generic_visit(node)

    @classmethod
    def collect(cls, root: ASTnode, predicate: Optional[Callable[[ASTnode], bool]] = None) -> List[ASTnode]:
        walker = cls(predicate)
        walker.visit(root)
        return walker.nodes


class TreeDumper(ASTVisitor):
    """Render a tree as `(Kind field...)` text."""

    def dump(self, node: Optional[ASTnode]) -> str:
        return "nil" if node is None else node.accept(self)

    def _items(self, node: ASTnode) -> str:
        return " ".join(self._field(getattr(node, f)) for f in node._fields)

    def _field(self, v: Any) -> str:
        if isinstance(v, ASTnode):
            return v.accept(self)
        if isinstance(v, tuple):
            return "(" + " * ".join(self._field(e) for e in v) + ")"
        if isinstance(v, list):
            return "[" + " ".join(self._field(e) for e in v) + "]"
        return "nil" if v is None else repr(v)

    def generic_visit(self, node: ASTnode) -> str:
        body = self._items(node)
        return f"({type(node).__name__}{' ' + body if body else ''})"

    def visit_name(self, node: Name) -> str:
        return f"({type(node).__name__} {node.name})"

    def visit_number(self, node: Number) -> str:
        return repr(node.value)

    def visit_string_literal(self, node: StringLiteral) -> str:
        return repr(node.value)

    def visit_unary(self, node: Unary) -> str:
        return f"(Unary {node.op} {self.dump(node.operand)})"

    def visit_binary(self, node: Binary) -> str:
        return f"({type(node).__name__} {self.dump(node.left)} {node.op} {self.dump(node.right)})"

    def visit_call(self, node: Call) -> str:
        return f"(Call {self.dump(node.receiver)} {node.name.name} {self._field(node.args)}" \
               f"{' ' + self.dump(node.block) if node.block is not None else ''})"

    def visit_conditional(self, node: Conditional) -> str:
        return f"(Conditional {node.op} {self._items(node)})"

    def visit_def(self, node: Def) -> str:
        params = " ".join(p.name for p in node.params)
        return f"(Def {node.name.name} [{params}] {self.dump(node.body)})"


def dump(node: Optional[ASTnode]) -> str:
    return TreeDumper().dump(node)
