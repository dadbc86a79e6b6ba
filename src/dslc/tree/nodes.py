"""
Tree Nodes

The typed tree every pass works on.  A tree is built by the reifier
(reify.py) from a live Python function and is then

- tagged by the grammar checker (`usertype`),
- typed by the type checkers (types are kept in the checker, keyed by node),
- walked by the code generator.

Each node has exactly one owner; `parent` is only for upward lookup.
Pairs (keyword/value, elif condition/body) are stored as tuples, plain
sequences as lists.  The `else` clause is spelled `else_`.
"""

import re
from typing import Any, List, Optional, Tuple

from ..shared.source_location import SourceLocation
from ..shared.undef import Undef


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class ASTnode:
    """
    Base class for all tree nodes.

    Visitor support: `accept(visitor)` calls `visitor.visit_<kind>(self)`,
    falling back along the class hierarchy (an Identifier is visited by
    `visit_identifier`, else `visit_identifier_or_call`, else `visit_name`).
    """
    __slots__ = ("parent", "usertype", "location", "astree")

    # fields holding child nodes, in source order
    _fields: Tuple[str, ...] = ()
    visit_name = "node"

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.visit_name = _snake(cls.__name__)

    def __init__(self, location: Optional[SourceLocation] = None):
        self.parent: Optional[ASTnode] = None
        self.usertype: Optional[str] = None
        self.location = location
        self.astree = None

    def _adopt(self, child: Any) -> Any:
        if isinstance(child, ASTnode):
            child.parent = self
        elif isinstance(child, (list, tuple)):
            for c in child:
                self._adopt(c)
        return child

    def accept(self, visitor: Any) -> Any:
        for klass in type(self).__mro__:
            method = getattr(visitor, "visit_" + getattr(klass, "visit_name", ""), None)
            if method is not None:
                return method(self)
        return visitor.generic_visit(self)

    def children(self) -> List["ASTnode"]:
        out: List[ASTnode] = []

        def collect(v: Any) -> None:
            if isinstance(v, ASTnode):
                out.append(v)
            elif isinstance(v, (list, tuple)):
                for e in v:
                    collect(e)

        for f in self._fields:
            collect(getattr(self, f))
        return out

    @property
    def root(self) -> "ASTnode":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def tree_info(self) -> Any:
        """The reified tree (ASTree) this node belongs to, if any."""
        return self.root.astree

    @property
    def value(self) -> Any:
        """Compile-time value of this node, or Undef."""
        info = self.tree_info()
        return Undef if info is None else info.value_of(self)

    def get_context_class(self) -> Optional[type]:
        info = self.tree_info()
        return None if info is None else info.context

    def source_location_string(self) -> str:
        return "" if self.location is None else str(self.location)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_location_string()}>"


# ============================================================================
# Names
# ============================================================================

class Name(ASTnode):
    __slots__ = ("name",)

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.name = name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class IdentifierOrCall(Name):
    """A lower-case name read in an expression."""
    __slots__ = ()


class Identifier(IdentifierOrCall):
    """A name being defined: a parameter, a method name, an assignment target."""
    __slots__ = ()


class Const(Name):
    """A capitalised name, e.g. a class or a module-level constant."""
    __slots__ = ()


class Reserved(Name):
    """True, False or None."""
    __slots__ = ()


class Label(Name):
    """A keyword argument name, `name=` in a call."""
    __slots__ = ()


class InstanceVariable(Name):
    """`self.name` read as an attribute."""
    __slots__ = ()


# ============================================================================
# Literals
# ============================================================================

class Number(ASTnode):
    __slots__ = ("value_",)

    def __init__(self, value: Any, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.value_ = value

    @property
    def value(self) -> Any:
        return self.value_


class StringLiteral(ASTnode):
    __slots__ = ("value_",)

    def __init__(self, value: str, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.value_ = value

    @property
    def value(self) -> Any:
        return self.value_


class ArrayLiteral(ASTnode):
    __slots__ = ("elements",)
    _fields = ("elements",)

    def __init__(self, elements: List[ASTnode], location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.elements = self._adopt(list(elements))


class HashLiteral(ASTnode):
    """Dict literal or keyword arguments; `pairs` is a list of (key, value)."""
    __slots__ = ("pairs",)
    _fields = ("pairs",)

    def __init__(self, pairs: List[Tuple[ASTnode, ASTnode]], location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.pairs = self._adopt([tuple(p) for p in pairs])


class ConstPathRef(ASTnode):
    """`scope.Name`, e.g. `ctype.Int`."""
    __slots__ = ("scope", "name")
    _fields = ("scope", "name")

    def __init__(self, scope: ASTnode, name: Const, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.scope = self._adopt(scope)
        self.name = self._adopt(name)


# ============================================================================
# Operators
# ============================================================================

class Unary(ASTnode):
    """Unary operator; `op` is one of '-', '+', '~', 'not'."""
    __slots__ = ("op", "operand")
    _fields = ("operand",)

    def __init__(self, op: str, operand: ASTnode, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.op = op
        self.operand = self._adopt(operand)


class Binary(ASTnode):
    """Binary operator, spelled as in Python ('+', '//', 'and', '<=', ...)."""
    __slots__ = ("left", "op", "right")
    _fields = ("left", "right")

    def __init__(self, left: ASTnode, op: str, right: ASTnode,
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.left = self._adopt(left)
        self.op = op
        self.right = self._adopt(right)


class Dots(Binary):
    """Range `left..right`; op '...' excludes `right`, '..' includes it."""
    __slots__ = ()


class Assign(Binary):
    """`left = right` or an augmented assignment such as `left += right`."""
    __slots__ = ()


class ArrayRef(ASTnode):
    __slots__ = ("array", "indexes")
    _fields = ("array", "indexes")

    def __init__(self, array: ASTnode, indexes: List[ASTnode],
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.array = self._adopt(array)
        self.indexes = self._adopt(list(indexes))


class Call(ASTnode):
    """
    Method or function call.  `receiver` is None for `f(x)` and for
    `self.f(x)`; `block` holds the loop body of `for i in f(n): ...`.
    """
    __slots__ = ("receiver", "op", "name", "args", "block_arg", "block")
    _fields = ("receiver", "name", "args", "block_arg", "block")

    def __init__(self, receiver: Optional[ASTnode], op: Optional[str], name: Identifier,
                 args: List[ASTnode], block_arg: Optional[ASTnode] = None,
                 block: Optional["Block"] = None, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.receiver = self._adopt(receiver)
        self.op = op
        self.name = self._adopt(name)
        self.args = self._adopt(list(args))
        self.block_arg = self._adopt(block_arg)
        self.block = self._adopt(block)

    @classmethod
    def make(cls, name: str, receiver: Optional[ASTnode] = None, args: Tuple[ASTnode, ...] = (),
             parent: Optional[ASTnode] = None) -> "Call":
        """
        A synthetic call, e.g. `a + b` seen as `a.__add__(b)`.  The given
        nodes are shared with the real tree, so they keep their parent.
        """
        loc = parent.location if parent is not None else None
        call = cls.__new__(cls)
        ASTnode.__init__(call, loc)
        call.receiver = receiver
        call.op = "." if receiver is not None else None
        call.name = Identifier(name, loc)
        call.name.parent = call
        call.args = list(args)
        call.block_arg = None
        call.block = None
        call.parent = parent
        return call

    def get_receiver_object(self) -> Any:
        """`self` when this is a receiver-less call inside a method, else None."""
        info = self.tree_info()
        return None if info is None else info.receiver_object(self)


# ============================================================================
# Control flow
# ============================================================================

class Conditional(ASTnode):
    """
    if/elif/else statement (op 'if') or conditional expression (op 'ifop').
    `all_elsif` is a list of (cond, body).
    """
    __slots__ = ("op", "cond", "then", "all_elsif", "else_")
    _fields = ("cond", "then", "all_elsif", "else_")

    def __init__(self, op: str, cond: ASTnode, then: ASTnode,
                 all_elsif: List[Tuple[ASTnode, ASTnode]], else_: Optional[ASTnode],
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.op = op
        self.cond = self._adopt(cond)
        self.then = self._adopt(then)
        self.all_elsif = self._adopt([tuple(p) for p in all_elsif])
        self.else_ = self._adopt(else_)


class Loop(ASTnode):
    __slots__ = ("op", "cond", "body")
    _fields = ("cond", "body")

    def __init__(self, op: str, cond: ASTnode, body: ASTnode,
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.op = op
        self.cond = self._adopt(cond)
        self.body = self._adopt(body)


class ForLoop(ASTnode):
    """`for v in range(a, b)`; `set` is the Dots node."""
    __slots__ = ("vars", "set", "body")
    _fields = ("vars", "set", "body")

    def __init__(self, vars: List[Identifier], set: ASTnode, body: ASTnode,
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.vars = self._adopt(list(vars))
        self.set = self._adopt(set)
        self.body = self._adopt(body)


class Return(ASTnode):
    __slots__ = ("values",)
    _fields = ("values",)

    def __init__(self, values: List[ASTnode], location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.values = self._adopt(list(values))


class Break(ASTnode):
    __slots__ = ("values",)
    _fields = ("values",)

    def __init__(self, values: List[ASTnode], location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.values = self._adopt(list(values))


# ============================================================================
# Functions
# ============================================================================

class Parameters(ASTnode):
    """
    Parameter list.  `optionals` and `keywords` are (name, default) pairs;
    `param_types` holds the annotation of each entry of `params` (or None).
    """
    __slots__ = ("params", "optionals", "rest_of_params", "keywords",
                 "rest_of_keywords", "param_types")
    _fields = ("params", "optionals", "rest_of_params", "keywords",
               "rest_of_keywords", "param_types")

    def __init__(self, params: List[Identifier],
                 optionals: Optional[List[Tuple[Identifier, ASTnode]]] = None,
                 rest_of_params: Optional[Identifier] = None,
                 keywords: Optional[List[Tuple[Label, Optional[ASTnode]]]] = None,
                 rest_of_keywords: Optional[Identifier] = None,
                 param_types: Optional[List[Optional[ASTnode]]] = None,
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.params = self._adopt(list(params))
        self.optionals = self._adopt([tuple(p) for p in (optionals or [])])
        self.rest_of_params = self._adopt(rest_of_params)
        self.keywords = self._adopt([tuple(p) for p in (keywords or [])])
        self.rest_of_keywords = self._adopt(rest_of_keywords)
        types = list(param_types) if param_types is not None else [None] * len(self.params)
        self.param_types = self._adopt(types)


class Block(Parameters):
    """Loop body handed to a call: `for i in times(n): body`."""
    __slots__ = ("body",)
    _fields = Parameters._fields + ("body",)

    def __init__(self, params: List[Identifier], body: ASTnode, **kwargs: Any):
        super().__init__(params, **kwargs)
        self.body = self._adopt(body)


class Lambda(Block):
    __slots__ = ()


class Def(Parameters):
    """Function or method definition; `return_type` is the `-> T` annotation."""
    __slots__ = ("name", "body", "return_type")
    _fields = ("name",) + Parameters._fields + ("return_type", "body")

    def __init__(self, name: Identifier, params: List[Identifier], body: ASTnode,
                 return_type: Optional[ASTnode] = None, **kwargs: Any):
        super().__init__(params, **kwargs)
        self.name = self._adopt(name)
        self.body = self._adopt(body)
        self.return_type = self._adopt(return_type)


# ============================================================================
# Containers
# ============================================================================

class Exprs(ASTnode):
    """A sequence of statements."""
    __slots__ = ("expressions",)
    _fields = ("expressions",)

    def __init__(self, expressions: List[ASTnode], location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.expressions = self._adopt(list(expressions))


class Rescue(ASTnode):
    """One `except` clause; `nested_rescue` chains the following ones."""
    __slots__ = ("types", "parameter", "body", "nested_rescue", "else_", "ensure")
    _fields = ("types", "parameter", "body", "nested_rescue", "else_", "ensure")

    def __init__(self, types: List[ASTnode], parameter: Optional[Identifier],
                 body: Optional[ASTnode], nested_rescue: Optional["Rescue"] = None,
                 else_: Optional[ASTnode] = None, ensure: Optional[ASTnode] = None,
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.types = self._adopt(list(types))
        self.parameter = self._adopt(parameter)
        self.body = self._adopt(body)
        self.nested_rescue = self._adopt(nested_rescue)
        self.else_ = self._adopt(else_)
        self.ensure = self._adopt(ensure)


class BeginEnd(ASTnode):
    """try statement."""
    __slots__ = ("body", "rescue")
    _fields = ("body", "rescue")

    def __init__(self, body: ASTnode, rescue: Optional[Rescue],
                 location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.body = self._adopt(body)
        self.rescue = self._adopt(rescue)


class ModuleDef(ASTnode):
    __slots__ = ("name", "body")
    _fields = ("name", "body")

    def __init__(self, name: ASTnode, body: ASTnode, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.name = self._adopt(name)
        self.body = self._adopt(body)


class ClassDef(ModuleDef):
    __slots__ = ("superclass",)
    _fields = ("name", "superclass", "body")

    def __init__(self, name: ASTnode, body: ASTnode, superclass: Optional[ASTnode] = None,
                 location: Optional[SourceLocation] = None):
        super().__init__(name, body, location)
        self.superclass = self._adopt(superclass)


class Program(ASTnode):
    __slots__ = ("elements",)
    _fields = ("elements",)

    def __init__(self, elements: ASTnode, location: Optional[SourceLocation] = None):
        super().__init__(location)
        self.elements = self._adopt(elements)


# Every node class by name; the grammar rule language refers to these.
NODE_CLASSES = {
    cls.__name__: cls for cls in (
        ASTnode, Name, IdentifierOrCall, Identifier, Const, Reserved, Label,
        InstanceVariable, Number, StringLiteral, ArrayLiteral, HashLiteral,
        ConstPathRef, Unary, Binary, Dots, Assign, ArrayRef, Call, Conditional,
        Loop, ForLoop, Return, Break, Parameters, Block, Lambda, Def, Exprs,
        Rescue, BeginEnd, ModuleDef, ClassDef, Program,
    )
}
