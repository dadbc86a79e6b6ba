"""
Grammar Checker

A Syntax object holds a set of rules, written in the small rule language
of meta.lark, and checks whether a tree stays inside the grammar they
describe:

    syntax = define_syntax('''
        expr   <= Name | Number | Binary
        Binary <= { left: expr, op: '+' | '-', right: expr }
    ''')
    syntax.check(tree)          # True, or False with syntax.error() set
    syntax.check_error(tree)    # raises SyntaxCheckError instead

A rule is keyed by a node class name (`Binary`) or by a user rule name
(`expr`).  A node matched through a user rule is tagged with that name in
`node.usertype`; the type checkers dispatch on the tag before the class.

Constraint forms:

    A | B          ordered choice, the first match wins
    A + { ... }    A and, in addition, the field constraints
    { f: c }       field `f` of the node satisfies c
    (c)            None or c
    [c]            a list whose every element satisfies c
    [a, b, c]      fixed prefix a, b (optional ones may be skipped), tail of c
    [k * v]        a list of (k, v) pairs
    'text'         equal to the string
    nil            None or an empty list
"""

import logging
import numbers
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedInput, VisitError

from ..shared.errors import SyntaxCheckError
from ..tree.nodes import ASTnode, NODE_CLASSES

logger = logging.getLogger("dslc.syntax.syntax")


# ============================================================================
# Constraints
# ============================================================================

@dataclass(frozen=True)
class Choice:
    left: Any
    right: Any


@dataclass(frozen=True)
class Refine:
    left: Any
    right: Any


@dataclass(frozen=True)
class NodeClass:
    name: str
    cls: type


@dataclass(frozen=True)
class UserType:
    name: str


@dataclass(frozen=True)
class Nil:
    pass


@dataclass(frozen=True)
class Fields:
    fields: Tuple[Tuple[str, Any], ...]


@dataclass(frozen=True)
class Literal:
    value: str


@dataclass(frozen=True)
class Optional_:
    inner: Any


@dataclass(frozen=True)
class ArrayOf:
    elements: Tuple[Any, ...]


@dataclass(frozen=True)
class Pair:
    items: Tuple[Any, ...]


# Names usable as classes in rules besides the node classes.
HOST_CLASSES: Dict[str, type] = {
    "String": str,
    "Symbol": str,
    "Numeric": numbers.Number,
    "Integer": int,
    "Float": float,
}


def _class_named(name: str) -> type:
    cls = NODE_CLASSES.get(name) or HOST_CLASSES.get(name)
    if cls is None:
        raise SyntaxCheckError(f"unknown class {name} in grammar rules")
    return cls


# ============================================================================
# Rule text parser
# ============================================================================

@v_args(inline=True)
class _RuleBuilder(Transformer):
    """Build constraint objects from the rule language parse tree."""

    def start(self, *rules):
        return list(rules)

    def rule(self, name, expr):
        key = str(name)
        if key[0].isupper():
            key = _class_named(key).__name__
        return key, expr

    def choice(self, left, right):
        return Choice(left, right)

    def refine(self, left, right):
        return Refine(left, right)

    def node_class(self, token):
        return NodeClass(str(token), _class_named(str(token)))

    def usertype(self, token):
        return UserType(str(token))

    def nil_value(self, token):
        return Nil()

    def literal(self, token):
        return Literal(str(token)[1:-1])

    def optional(self, inner):
        return Optional_(inner)

    def array(self, *elements):
        return ArrayOf(tuple(elements))

    def pair(self, first, second):
        if isinstance(first, Pair):
            return Pair(first.items + (second,))
        return Pair((first, second))

    def hash(self, *fields):
        return Fields(tuple(fields))

    def field(self, name, constraint):
        return str(name), constraint


_meta_parser: Optional[Lark] = None


def _parser() -> Lark:
    global _meta_parser
    if _meta_parser is None:
        _meta_parser = Lark.open(
            str(Path(__file__).parent / "meta.lark"),
            start="start",
            parser="lalr",
            propagate_positions=True,
            maybe_placeholders=False,
        )
    return _meta_parser


def parse_rules(text: str) -> Dict[str, Any]:
    """Parse rule text into a dict from rule key to constraint."""
    try:
        tree = _parser().parse(text)
    except UnexpectedInput as e:
        raise SyntaxCheckError(
            f"bad grammar rule at line {e.line}, column {e.column}: {e.__class__.__name__}") from e
    try:
        return dict(_RuleBuilder().transform(tree))
    except VisitError as e:
        raise e.orig_exc from None


# ============================================================================
# Syntax
# ============================================================================

class Syntax:
    """A grammar: rules plus the state of the last check."""

    def __init__(self, rules: Union[str, Dict[str, Any], None] = None):
        self.rules: Dict[str, Any] = {}
        self._error_loc: Optional[str] = None
        self._error_msg: Optional[str] = None
        if rules is not None:
            self.add_rules(rules)

    def add_rules(self, rules: Union["Syntax", str, Dict[str, Any]]) -> "Syntax":
        """Merge rules from another Syntax, from rule text, or from a dict."""
        if isinstance(rules, Syntax):
            self.rules.update(rules.rules)
        elif isinstance(rules, str):
            self.rules.update(parse_rules(rules))
        else:
            self.rules.update(rules)
        return self

    # ------------------------------------------------------------------
    # public checks
    # ------------------------------------------------------------------

    def check(self, tree: Any) -> bool:
        tree = getattr(tree, "tree", tree) if not isinstance(tree, ASTnode) else tree
        self._error_cleared()
        expr = self.find_rule(type(tree))
        if expr is not None:
            return self.check_expr(expr, tree, False) or self._error_found(tree, tree)
        return self._error_found(tree, tree, f"no rule for {type(tree).__name__}")

    def check_error(self, tree: Any) -> None:
        if not self.check(tree):
            self.raise_error(tree)

    def check_usertype(self, user_type: str, tree: Any) -> bool:
        self._error_cleared()
        return self._check_rule_usertype(user_type, tree, False)

    def error(self) -> str:
        if self._error_loc is None and self._error_msg is None:
            return ""
        return f"{self._error_loc} DSL syntax error{self._error_msg or ''}"

    def raise_error(self, tree: Any = None) -> None:
        location = getattr(tree, "location", None) if isinstance(tree, ASTnode) else None
        raise SyntaxCheckError(self.error(), location)

    # ------------------------------------------------------------------
    # error state
    # ------------------------------------------------------------------

    def _error_found(self, ast1: Any, ast2: Any, msg: Optional[str] = None) -> bool:
        if self._error_loc is None:
            if isinstance(ast1, ASTnode):
                self._error_loc = ast1.source_location_string()
            elif isinstance(ast2, ASTnode):
                self._error_loc = ast2.source_location_string()
            else:
                self._error_loc = ""
        if msg is not None:
            self._error_msg = f", {msg}{self._error_msg or ''}"
        return False

    def _error_cleared(self) -> bool:
        self._error_loc = None
        self._error_msg = None
        return True

    # ------------------------------------------------------------------
    # rules
    # ------------------------------------------------------------------

    def find_rule(self, node_class: type) -> Any:
        for klass in node_class.__mro__:
            expr = self.rules.get(klass.__name__)
            if expr is not None:
                return expr
        return None

    def _check_rule(self, node_class: type, ast: Any, in_hash: bool) -> bool:
        expr = self.find_rule(type(ast) if in_hash else node_class)
        result = expr is None or self.check_expr(expr, ast, False) or self._error_found(ast, ast)
        if not result:
            logger.debug(f"rules for {node_class.__name__} failed at {ast!r}")
        return result

    def _check_rule_usertype(self, name: str, ast: Any, in_hash: bool) -> bool:
        expr = self.rules.get(name)
        return (expr is not None and self._tag_and_check_expr(name, expr, ast, in_hash)) \
            or self._error_found(ast, ast)

    def _tag_and_check_expr(self, name: str, expr: Any, ast: Any, in_hash: bool) -> bool:
        if isinstance(ast, list):
            return False
        tagged = isinstance(ast, ASTnode)
        if tagged:
            old_usertype = ast.usertype
            ast.usertype = name
        success = self.check_expr(expr, ast, in_hash)
        if not success and tagged:
            ast.usertype = old_usertype
        return success

    # ------------------------------------------------------------------
    # rule bodies
    # ------------------------------------------------------------------

    def check_expr(self, expr: Any, ast: Any, in_hash: bool) -> bool:
        if isinstance(expr, Choice):
            return self.check_expr(expr.left, ast, in_hash) \
                or (self._check_add_expr(expr.right, ast, in_hash) and self._error_cleared())
        return self._check_add_expr(expr, ast, in_hash)

    def _check_add_expr(self, expr: Any, ast: Any, in_hash: bool) -> bool:
        if isinstance(expr, Refine):
            return self._check_add_expr(expr.left, ast, in_hash) \
                and self._check_operand(expr.right, ast, in_hash)
        return self._check_operand(expr, ast, in_hash)

    def _check_operand(self, operand: Any, ast: Any, in_hash: bool) -> bool:
        if isinstance(operand, NodeClass):
            return isinstance(ast, operand.cls) and self._check_rule(operand.cls, ast, in_hash)
        if isinstance(operand, Nil):
            return ast is None or ast == []
        if isinstance(operand, UserType):
            return self._check_rule_usertype(operand.name, ast, in_hash)
        if isinstance(operand, Fields):
            return self._check_hash(operand, ast)
        return False

    def _check_hash(self, hash: Fields, ast: Any) -> bool:
        if ast is None:
            return False
        for field, constraint in hash.fields:
            if not hasattr(type(ast), field):
                raise SyntaxCheckError(
                    f"unknown method `{field}' in {type(ast).__name__} tested during syntax "
                    f"checking (wrong grammar?)")
            value = getattr(ast, field)
            if not self._check_or_constraint(constraint, value):
                logger.debug(f"  failed to check #{field}")
                owner = ast.usertype or type(ast).__name__
                return self._error_found(value, ast, f"{field} in {owner}?")
        return True

    def _check_or_constraint(self, con: Any, ast: Any) -> bool:
        if isinstance(con, Choice):
            return self._check_or_constraint(con.left, ast) \
                or (self._check_constraint(con.right, ast) and self._error_cleared())
        return self._check_constraint(con, ast)

    def _check_constraint(self, con: Any, ast: Any) -> bool:
        if isinstance(con, Literal):
            return isinstance(ast, str) and con.value == ast
        if isinstance(con, Nil):
            return ast is None or ast == []
        if isinstance(con, NodeClass):
            return self._check_const_constraint(con, _maybe_one_element_array(ast))
        if isinstance(con, UserType):
            return self._check_rule_usertype(con.name, _maybe_one_element_array(ast), True)
        if isinstance(con, Optional_):
            return ast is None or self._check_or_constraint(con.inner, ast)
        if isinstance(con, ArrayOf):
            if not isinstance(ast, list):
                return False
            if len(con.elements) == 0:
                return len(ast) == 0
            if len(con.elements) == 1:
                con0 = con.elements[0]
                return all(self._check_one_array_element(con0, e) or self._error_found(e, ast)
                           for e in ast)
            return len(con.elements) - 1 <= len(ast) \
                and self._check_array_elements(con.elements, ast)
        return False

    def _check_array_elements(self, cons: Tuple[Any, ...], elements: list) -> bool:
        i = 0
        for con in cons[:-1]:
            element = elements[i] if i < len(elements) else None
            if self._check_one_array_element(con, element):
                i += 1
            elif not isinstance(con, Optional_):
                return self._error_found(element, elements)
        tail = cons[-1]
        while i < len(elements):
            if self._check_one_array_element(tail, elements[i]):
                i += 1
            else:
                return self._error_found(elements[i], elements)
        return True

    def _check_one_array_element(self, con: Any, element: Any) -> bool:
        if isinstance(element, tuple):
            return self._check_pair_element(con, element)
        return self._check_or_constraint(con, element)

    def _check_pair_element(self, con: Any, element: tuple) -> bool:
        if isinstance(con, Pair):
            return len(con.items) == len(element) and all(
                self._check_or_constraint(c, e) for c, e in zip(con.items, element))
        return len(element) == 1 and self._check_or_constraint(con, element[0])

    def _check_const_constraint(self, con: NodeClass, ast: Any) -> bool:
        return isinstance(ast, con.cls) and self._check_rule(type(ast), ast, True)


def _maybe_one_element_array(ast: Any) -> Any:
    if isinstance(ast, list) and len(ast) == 1:
        return ast[0]
    return ast


def define_syntax(text: str) -> Syntax:
    return Syntax(text)


# ============================================================================
# The full host-language grammar
# ============================================================================

HOST_RULES = """
    expr  <= Name | Number | Binary | Unary | ConstPathRef | StringLiteral
           | ArrayLiteral | Call | ArrayRef | HashLiteral | Return | ForLoop
           | Loop | Conditional | Break | Lambda | BeginEnd | Def | ModuleDef
    exprs <= Exprs | expr

    Name             <= { name: String }
    Number           <= { value: Numeric }
    Identifier       <= Name
    IdentifierOrCall <= Name
    InstanceVariable <= Name
    Label            <= Name
    Reserved         <= Name
    Const            <= Name

    Binary       <= { left: expr, op: String, right: expr }
    Assign       <= Binary
    Dots         <= Binary
    Unary        <= { op: String, operand: expr }
    ArrayRef     <= { array: expr, indexes: [ expr ] }
    ConstPathRef <= { scope: expr, name: Const }
    StringLiteral <= { value: String }
    ArrayLiteral <= { elements: [ expr ] }
    HashLiteral  <= { pairs: [ expr * expr ] }

    Return      <= { values: [ expr ] }
    Break       <= { values: [ expr ] }
    ForLoop     <= { vars: [ Identifier ], set: expr, body: exprs }
    Loop        <= { op: String, cond: expr, body: exprs }
    Conditional <= { op: String, cond: expr, then: exprs,
                     all_elsif: [ expr * exprs ], else_: (exprs) }

    Parameters <= { params: [ Identifier ],
                    optionals: [ Identifier * expr ],
                    rest_of_params: (Identifier),
                    keywords: [ Label * (expr) ],
                    rest_of_keywords: (Identifier),
                    param_types: [ (expr) ] }
    Block      <= Parameters + { body: exprs }
    Lambda     <= Block
    Call       <= { receiver: (expr), op: (String), name: Identifier,
                    args: [ expr ], block_arg: (expr), block: (Block) }
    Exprs      <= { expressions: [ expr ] }
    Rescue     <= { types: [ Const | ConstPathRef ], parameter: (Identifier),
                    body: (exprs), nested_rescue: (Rescue),
                    else_: (exprs), ensure: (exprs) }
    BeginEnd   <= { body: exprs, rescue: (Rescue) }
    Def        <= Parameters + { name: Identifier, body: exprs, return_type: (expr) }
    ModuleDef  <= { name: Const | ConstPathRef, body: exprs }
    ClassDef   <= ModuleDef + { superclass: (Const | ConstPathRef) }
    Program    <= { elements: exprs }
"""


def host_syntax() -> Syntax:
    """Grammar of every tree the reifier can produce."""
    return Syntax(HOST_RULES)
