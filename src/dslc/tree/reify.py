"""
Reifier: live Python functions to trees

`reify(func)` reads the source of a function or bound method with
`inspect`, parses it with the standard `ast` module and converts the
definition into the tree of nodes.py.  The result is an ASTree, which also
answers the compile-time value of names in the tree (the value oracle):

    closure cells, then module globals, then builtins    plain names
    attributes of the receiver                          self.x
    attributes of the scope's value                     mod.Name

ASTree objects made while compiling one program share an ASTreeTable, so
reifying the same function twice yields the identical tree.
"""

import ast
import builtins
import inspect
import logging
import textwrap
from typing import Any, Dict, List, Optional, Tuple

from ..shared.errors import SyntaxCheckError
from ..shared.source_location import SourceLocation
from ..shared.undef import Undef
from .nodes import (
    ASTnode, Identifier, Const, Reserved, Label, InstanceVariable, Number,
    StringLiteral, ArrayLiteral, HashLiteral, ConstPathRef, Unary, Binary, Dots,
    Assign, ArrayRef, Call, Conditional, Loop, ForLoop, Return, Break,
    Block, Lambda, Def, Exprs, Rescue, BeginEnd, ClassDef, Name,
)

logger = logging.getLogger("dslc.tree.reify")


_BINOPS = {
    ast.Add: "+", ast.Sub: "-", ast.Mult: "*", ast.Div: "/", ast.FloorDiv: "//",
    ast.Mod: "%", ast.Pow: "**", ast.LShift: "<<", ast.RShift: ">>",
    ast.BitOr: "|", ast.BitXor: "^", ast.BitAnd: "&", ast.MatMult: "@",
}

_CMPOPS = {
    ast.Eq: "==", ast.NotEq: "!=", ast.Lt: "<", ast.LtE: "<=", ast.Gt: ">",
    ast.GtE: ">=", ast.Is: "is", ast.IsNot: "is not", ast.In: "in", ast.NotIn: "not in",
}

_UNARYOPS = {ast.USub: "-", ast.UAdd: "+", ast.Not: "not", ast.Invert: "~"}


# ============================================================================
# ASTree
# ============================================================================

class ASTreeTable:
    """Reified trees of one compilation, keyed by (function, receiver) identity."""

    def __init__(self):
        self.trees: Dict[Tuple[int, int], "ASTree"] = {}

    def get(self, func: Any, receiver: Any) -> Optional["ASTree"]:
        return self.trees.get((id(func), id(receiver)))

    def add(self, tree: "ASTree") -> None:
        self.trees[(id(tree.function), id(tree.receiver))] = tree

    def __len__(self) -> int:
        return len(self.trees)

    def __iter__(self):
        return iter(self.trees.values())

    def reify(self, func: Any) -> Optional["ASTree"]:
        """Tree of `func` in this table; None when its source is unavailable."""
        return _reify_into(self, func)


class ASTree:
    """
    A reified function.  `tree` is its Def node, `context` the class the
    function was looked up on (None for a plain function), `receiver` the
    bound `self` (or None).
    """

    def __init__(self, table: ASTreeTable, function: Any, receiver: Any,
                 file_name: str, tree: Def):
        self.astrees = table
        self.function = function
        self.receiver = receiver
        self.context = type(receiver) if receiver is not None else None
        self.file_name = file_name
        self.tree = tree
        tree.astree = self
        table.add(self)

    def reify(self, func: Any) -> Optional["ASTree"]:
        """Tree of another function, sharing this tree's table."""
        return _reify_into(self.astrees, func)

    # ------------------------------------------------------------------
    # value oracle
    # ------------------------------------------------------------------

    def lookup_name(self, name: str) -> Any:
        fn = self.function
        code = getattr(fn, "__code__", None)
        closure = getattr(fn, "__closure__", None)
        if code is not None and closure:
            for var, cell in zip(code.co_freevars, closure):
                if var == name:
                    try:
                        return cell.cell_contents
                    except ValueError:
                        return Undef
        glob = getattr(fn, "__globals__", {})
        if name in glob:
            return glob[name]
        if hasattr(builtins, name):
            return getattr(builtins, name)
        return Undef

    def receiver_object(self, node: ASTnode) -> Any:
        return self.receiver

    def value_of(self, node: ASTnode) -> Any:
        if isinstance(node, Reserved):
            return {"True": True, "False": False, "None": None}.get(
                node.name, self.receiver if node.name == "self" and self.receiver is not None else Undef)
        if isinstance(node, Label):
            return node.name
        if isinstance(node, InstanceVariable):
            if self.receiver is None:
                return Undef
            return getattr(self.receiver, node.name, Undef)
        if isinstance(node, Name):
            return self.lookup_name(node.name)
        if isinstance(node, ConstPathRef):
            scope = node.scope.value
            if scope is Undef:
                return Undef
            return getattr(scope, node.name.name, Undef)
        if isinstance(node, ArrayLiteral):
            return [e.value for e in node.elements]
        if isinstance(node, Call):
            if node.receiver is None:
                obj = self.receiver
                if obj is None:
                    return self.lookup_name(node.name.name)
            else:
                obj = node.receiver.value
                if obj is Undef:
                    return Undef
            return getattr(obj, node.name.name, Undef)
        return Undef


# ============================================================================
# Entry points
# ============================================================================

def reify(func: Any) -> Optional[ASTree]:
    """
    Tree of `func`, a plain function or a bound method, in a fresh table.
    Returns None when the source is unavailable (builtins, C extensions,
    functions typed at the interactive prompt).
    """
    return _reify_into(ASTreeTable(), func)


def _reify_into(table: ASTreeTable, func: Any) -> Optional[ASTree]:
    receiver = None
    fn = func
    if inspect.ismethod(func):
        receiver = func.__self__
        fn = func.__func__
    found = table.get(fn, receiver)
    if found is not None:
        return found
    if not inspect.isfunction(fn):
        return None
    try:
        source = inspect.getsource(fn)
        file_name = inspect.getsourcefile(fn) or "<unknown>"
    except (OSError, TypeError):
        logger.debug(f"no source for {getattr(fn, '__qualname__', fn)}")
        return None

    first_line = source.split("\n", 1)[0]
    indent = len(first_line) - len(first_line.lstrip())
    module = ast.parse(textwrap.dedent(source))
    fdef = module.body[0] if module.body else None
    if not isinstance(fdef, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return None

    converter = _Converter(file_name, fn.__code__.co_firstlineno - 1, indent,
                           drop_self=receiver is not None or _first_param_is_self(fdef))
    tree = converter.function_def(fdef)
    logger.debug(f"reified {fn.__qualname__} from {file_name}:{fn.__code__.co_firstlineno}")
    return ASTree(table, fn, receiver, file_name, tree)


def _first_param_is_self(fdef: ast.FunctionDef) -> bool:
    return bool(fdef.args.args) and fdef.args.args[0].arg == "self"


# ============================================================================
# Python ast to tree
# ============================================================================

class _Converter:
    """Convert one parsed function definition."""

    def __init__(self, file_name: str, line_offset: int, column_offset: int, drop_self: bool):
        self.file_name = file_name
        self.line_offset = line_offset
        self.column_offset = column_offset
        self.drop_self = drop_self

    def loc(self, node: ast.AST) -> Optional[SourceLocation]:
        if not hasattr(node, "lineno"):
            return None
        return SourceLocation(
            self.file_name,
            node.lineno + self.line_offset,
            node.col_offset + 1 + self.column_offset,
            (node.end_lineno or node.lineno) + self.line_offset,
            (node.end_col_offset or node.col_offset) + 1 + self.column_offset,
        )

    def unsupported(self, node: ast.AST, what: Optional[str] = None) -> SyntaxCheckError:
        loc = self.loc(node)
        desc = what or type(node).__name__
        return SyntaxCheckError(f"{loc} DSL syntax error, unsupported Python syntax: {desc}", loc)

    # ------------------------------------------------------------------
    # definitions
    # ------------------------------------------------------------------

    def function_def(self, fdef: ast.FunctionDef, drop_self: Optional[bool] = None) -> Def:
        if isinstance(fdef, ast.AsyncFunctionDef):
            raise self.unsupported(fdef, "async def")
        drop = self.drop_self if drop_self is None else drop_self
        a = fdef.args
        if a.posonlyargs:
            raise self.unsupported(fdef, "positional-only parameters")
        positional = a.args[1:] if drop and a.args else list(a.args)
        n_required = len(positional) - len(a.defaults)
        required = positional[:n_required]
        optionals = [(Identifier(p.arg, self.loc(p)), self.expr(d))
                     for p, d in zip(positional[n_required:], a.defaults)]
        keywords = [(Label(p.arg, self.loc(p)), None if d is None else self.expr(d))
                    for p, d in zip(a.kwonlyargs, a.kw_defaults)]
        rest = Identifier(a.vararg.arg, self.loc(a.vararg)) if a.vararg else None
        rest_kw = Identifier(a.kwarg.arg, self.loc(a.kwarg)) if a.kwarg else None
        return Def(
            Identifier(fdef.name, self.loc(fdef)),
            [Identifier(p.arg, self.loc(p)) for p in required],
            self.body(fdef.body, drop_docstring=True),
            return_type=None if fdef.returns is None else self.expr(fdef.returns),
            optionals=optionals,
            rest_of_params=rest,
            keywords=keywords,
            rest_of_keywords=rest_kw,
            param_types=[None if p.annotation is None else self.expr(p.annotation)
                         for p in required],
            location=self.loc(fdef),
        )

    def body(self, stmts: List[ast.stmt], drop_docstring: bool = False) -> Exprs:
        if (drop_docstring and stmts and isinstance(stmts[0], ast.Expr)
                and isinstance(stmts[0].value, ast.Constant)
                and isinstance(stmts[0].value.value, str)):
            stmts = stmts[1:]
        nodes = [self.stmt(s) for s in stmts]
        loc = self.loc(stmts[0]) if stmts else None
        return Exprs([n for n in nodes if n is not None], loc)

    # ------------------------------------------------------------------
    # statements
    # ------------------------------------------------------------------

    def stmt(self, s: ast.stmt) -> Optional[ASTnode]:
        method = getattr(self, "stmt_" + type(s).__name__, None)
        if method is None:
            raise self.unsupported(s)
        return method(s)

    def stmt_Expr(self, s: ast.Expr) -> ASTnode:
        return self.expr(s.value)

    def stmt_Pass(self, s: ast.Pass) -> None:
        return None

    def stmt_Return(self, s: ast.Return) -> Return:
        if s.value is None:
            values = []
        elif isinstance(s.value, ast.Tuple):
            values = [self.expr(e) for e in s.value.elts]
        else:
            values = [self.expr(s.value)]
        return Return(values, self.loc(s))

    def stmt_Break(self, s: ast.Break) -> Break:
        return Break([], self.loc(s))

    def stmt_Assign(self, s: ast.Assign) -> Assign:
        if len(s.targets) != 1:
            raise self.unsupported(s, "chained assignment")
        return Assign(self.target(s.targets[0]), "=", self.expr(s.value), self.loc(s))

    def stmt_AugAssign(self, s: ast.AugAssign) -> Assign:
        op = _BINOPS.get(type(s.op))
        return Assign(self.target(s.target), op + "=", self.expr(s.value), self.loc(s))

    def stmt_AnnAssign(self, s: ast.AnnAssign) -> Assign:
        if s.value is None:
            raise self.unsupported(s, "annotation without a value")
        return Assign(self.target(s.target), "=", self.expr(s.value), self.loc(s))

    def stmt_If(self, s: ast.If) -> Conditional:
        elsifs: List[Tuple[ASTnode, ASTnode]] = []
        orelse = s.orelse
        while len(orelse) == 1 and isinstance(orelse[0], ast.If):
            nested = orelse[0]
            elsifs.append((self.expr(nested.test), self.body(nested.body)))
            orelse = nested.orelse
        else_ = self.body(orelse) if orelse else None
        return Conditional("if", self.expr(s.test), self.body(s.body), elsifs, else_, self.loc(s))

    def stmt_While(self, s: ast.While) -> Loop:
        if s.orelse:
            raise self.unsupported(s, "while ... else")
        return Loop("while", self.expr(s.test), self.body(s.body), self.loc(s))

    def stmt_For(self, s: ast.For) -> ASTnode:
        if s.orelse:
            raise self.unsupported(s, "for ... else")
        if not isinstance(s.target, ast.Name):
            raise self.unsupported(s.target, "for loop target other than a name")
        var = Identifier(s.target.id, self.loc(s.target))
        it = s.iter
        if (isinstance(it, ast.Call) and isinstance(it.func, ast.Name) and it.func.id == "range"
                and not it.keywords):
            if len(it.args) == 1:
                lo: ASTnode = Number(0, self.loc(it))
                hi = self.expr(it.args[0])
            elif len(it.args) == 2:
                lo, hi = self.expr(it.args[0]), self.expr(it.args[1])
            else:
                raise self.unsupported(it, "range() with a step")
            return ForLoop([var], Dots(lo, "...", hi, self.loc(it)), self.body(s.body), self.loc(s))
        if isinstance(it, ast.Call):
            call = self.call(it)
            if call.block is not None:
                raise self.unsupported(it)
            call.block = call._adopt(Block([var], self.body(s.body), location=self.loc(s)))
            call.location = self.loc(s)
            return call
        return ForLoop([var], self.expr(it), self.body(s.body), self.loc(s))

    def stmt_Raise(self, s: ast.Raise) -> Call:
        args = [] if s.exc is None else [self.expr(s.exc)]
        return Call(None, None, Identifier("raise", self.loc(s)), args, location=self.loc(s))

    def stmt_Try(self, s: ast.Try) -> BeginEnd:
        rescue: Optional[Rescue] = None
        for h in reversed(s.handlers):
            types = []
            if h.type is not None:
                types = [self.expr(e) for e in h.type.elts] if isinstance(h.type, ast.Tuple) \
                    else [self.expr(h.type)]
            param = Identifier(h.name, self.loc(h)) if h.name else None
            rescue = Rescue(types, param, self.body(h.body), rescue, location=self.loc(h))
        if s.orelse or s.finalbody:
            if rescue is None:
                rescue = Rescue([], None, None, location=self.loc(s))
            rescue.else_ = rescue._adopt(self.body(s.orelse) if s.orelse else None)
            rescue.ensure = rescue._adopt(self.body(s.finalbody) if s.finalbody else None)
        return BeginEnd(self.body(s.body), rescue, self.loc(s))

    def stmt_FunctionDef(self, s: ast.FunctionDef) -> Def:
        return self.function_def(s, drop_self=False)

    def stmt_ClassDef(self, s: ast.ClassDef) -> ClassDef:
        if len(s.bases) > 1:
            raise self.unsupported(s, "multiple inheritance")
        superclass = self.expr(s.bases[0]) if s.bases else None
        return ClassDef(Const(s.name, self.loc(s)), self.body(s.body), superclass, self.loc(s))

    # ------------------------------------------------------------------
    # assignment targets
    # ------------------------------------------------------------------

    def target(self, t: ast.expr) -> ASTnode:
        if isinstance(t, ast.Name):
            return Identifier(t.id, self.loc(t))
        if isinstance(t, ast.Attribute) and isinstance(t.value, ast.Name) and t.value.id == "self":
            return InstanceVariable(t.attr, self.loc(t))
        if isinstance(t, ast.Subscript):
            return self.expr(t)
        raise self.unsupported(t, "assignment target")

    # ------------------------------------------------------------------
    # expressions
    # ------------------------------------------------------------------

    def expr(self, e: ast.expr) -> ASTnode:
        method = getattr(self, "expr_" + type(e).__name__, None)
        if method is None:
            raise self.unsupported(e)
        return method(e)

    def expr_Name(self, e: ast.Name) -> ASTnode:
        if e.id == "self":
            return Reserved("self", self.loc(e))
        if e.id[0].isupper():
            return Const(e.id, self.loc(e))
        return Identifier(e.id, self.loc(e))

    def expr_Constant(self, e: ast.Constant) -> ASTnode:
        v = e.value
        if isinstance(v, bool) or v is None:
            return Reserved(repr(v), self.loc(e))
        if isinstance(v, (int, float)):
            return Number(v, self.loc(e))
        if isinstance(v, str):
            return StringLiteral(v, self.loc(e))
        raise self.unsupported(e, f"{type(v).__name__} literal")

    def expr_Attribute(self, e: ast.Attribute) -> ASTnode:
        if isinstance(e.value, ast.Name) and e.value.id == "self":
            return InstanceVariable(e.attr, self.loc(e))
        if e.attr[0].isupper():
            return ConstPathRef(self.expr(e.value), Const(e.attr, self.loc(e)), self.loc(e))
        return Call(self.expr(e.value), ".", Identifier(e.attr, self.loc(e)), [], location=self.loc(e))

    def expr_Call(self, e: ast.Call) -> Call:
        return self.call(e)

    def call(self, e: ast.Call) -> Call:
        f = e.func
        if isinstance(f, ast.Name):
            receiver, op, name = None, None, Identifier(f.id, self.loc(f))
        elif isinstance(f, ast.Attribute):
            name = Identifier(f.attr, self.loc(f))
            if isinstance(f.value, ast.Name) and f.value.id == "self":
                receiver, op = None, None
            else:
                receiver, op = self.expr(f.value), "."
        else:
            raise self.unsupported(f, "call of a computed function")
        args: List[ASTnode] = []
        for a in e.args:
            if isinstance(a, ast.Starred):
                raise self.unsupported(a, "starred argument")
            args.append(self.expr(a))
        if e.keywords:
            pairs = []
            for k in e.keywords:
                if k.arg is None:
                    raise self.unsupported(k.value, "** argument")
                pairs.append((Label(k.arg, self.loc(k)), self.expr(k.value)))
            args.append(HashLiteral(pairs, self.loc(e.keywords[0])))
        return Call(receiver, op, name, args, location=self.loc(e))

    def expr_BinOp(self, e: ast.BinOp) -> Binary:
        return Binary(self.expr(e.left), _BINOPS[type(e.op)], self.expr(e.right), self.loc(e))

    def expr_BoolOp(self, e: ast.BoolOp) -> Binary:
        op = "and" if isinstance(e.op, ast.And) else "or"
        node = self.expr(e.values[0])
        for v in e.values[1:]:
            node = Binary(node, op, self.expr(v), self.loc(e))
        return node

    def expr_Compare(self, e: ast.Compare) -> Binary:
        operands = [e.left] + list(e.comparators)
        # a chain reads each inner operand twice
        for inner in e.comparators[:-1]:
            if not isinstance(inner, (ast.Name, ast.Constant)):
                raise self.unsupported(inner, "chained comparison with a computed operand")
        node: Optional[Binary] = None
        for i, op in enumerate(e.ops):
            cmp = Binary(self.expr(operands[i]), _CMPOPS[type(op)], self.expr(operands[i + 1]),
                         self.loc(e))
            node = cmp if node is None else Binary(node, "and", cmp, self.loc(e))
        return node

    def expr_UnaryOp(self, e: ast.UnaryOp) -> ASTnode:
        op = _UNARYOPS[type(e.op)]
        if op == "-" and isinstance(e.operand, ast.Constant) \
                and isinstance(e.operand.value, (int, float)) and not isinstance(e.operand.value, bool):
            return Number(-e.operand.value, self.loc(e))
        return Unary(op, self.expr(e.operand), self.loc(e))

    def expr_Subscript(self, e: ast.Subscript) -> ArrayRef:
        index = e.slice
        if isinstance(index, ast.Slice):
            raise self.unsupported(index, "slice")
        indexes = [self.expr(i) for i in index.elts] if isinstance(index, ast.Tuple) \
            else [self.expr(index)]
        return ArrayRef(self.expr(e.value), indexes, self.loc(e))

    def expr_IfExp(self, e: ast.IfExp) -> Conditional:
        return Conditional("ifop", self.expr(e.test), self.expr(e.body), [], self.expr(e.orelse),
                           self.loc(e))

    def expr_List(self, e: ast.List) -> ArrayLiteral:
        return ArrayLiteral([self.expr(x) for x in e.elts], self.loc(e))

    expr_Tuple = expr_List

    def expr_Dict(self, e: ast.Dict) -> HashLiteral:
        pairs = []
        for k, v in zip(e.keys, e.values):
            if k is None:
                raise self.unsupported(v, "** in a dict literal")
            if isinstance(k, ast.Constant) and isinstance(k.value, str):
                key: ASTnode = Label(k.value, self.loc(k))
            else:
                key = self.expr(k)
            pairs.append((key, self.expr(v)))
        return HashLiteral(pairs, self.loc(e))

    def expr_Lambda(self, e: ast.Lambda) -> Lambda:
        params = [Identifier(p.arg, self.loc(p)) for p in e.args.args]
        return Lambda(params, Exprs([self.expr(e.body)], self.loc(e.body)), location=self.loc(e))
