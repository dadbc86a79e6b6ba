"""
C Code Generator

Walks type-checked trees and prints one C translation unit:

    #include ...                headers
    static int32_t _gvar_0_[4];  global arrays
    int32_t fib(int32_t n);      prototypes
    ...                          preamble (empty here, used by OpenCL)
    int32_t fib(int32_t n) {     function bodies
      ...
    }

Only the exported functions keep their names and external linkage.
Every other function is `static` and named `<name>_<n>`.  Generation
errors are collected, not raised; `build_lib` refuses to run the compiler
while any are pending.
"""

import logging
import numbers
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..checker.checker import Checker, rule
from ..shared.errors import BuildError
from ..shared.types import Role, InstanceType, MethodType, IntegerType, Type
from ..tree.nodes import (
    Name, IdentifierOrCall, Const, Reserved, ConstPathRef, InstanceVariable, Number,
    StringLiteral, Unary, Binary, Dots, Assign, ArrayRef, Call, Conditional, Loop,
    ForLoop, Return, Block, Def, Exprs,
)
from . import build, config
from .ctype import CArray, Float32, c_type_name
from .printer import NL, Printer

logger = logging.getLogger("dslc.c.codegen")


C_OPERATORS = {"and": "&&", "or": "||", "not": "!"}

# Integer // and % with Python's flooring semantics
FLOOR_FUNCTIONS = {"//": "dslc_floordiv", "%": "dslc_mod"}


def floor_helpers(int_type: str, qualifier: str = "static inline ") -> str:
    """C definitions of the FLOOR_FUNCTIONS for `int_type`."""
    return (
        f"{qualifier}{int_type} dslc_floordiv({int_type} a, {int_type} b) {{\n"
        f"  {int_type} q = a / b;\n"
        f"  if ((a % b != 0) && ((a < 0) != (b < 0))) q--;\n"
        f"  return q;\n"
        f"}}\n"
        f"{qualifier}{int_type} dslc_mod({int_type} a, {int_type} b) {{\n"
        f"  {int_type} r = a % b;\n"
        f"  if ((r != 0) && ((r < 0) != (b < 0))) r += b;\n"
        f"  return r;\n"
        f"}}\n"
    )


_C_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}


def c_string_literal(s: str) -> str:
    return '"' + "".join(_C_ESCAPES.get(c, c) for c in s) + '"'


def c_literal(value: Any) -> Optional[str]:
    """C source for a captured constant, or None if it has none."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, Float32):
        return repr(float(value)) + "f"
    if isinstance(value, numbers.Real):
        return repr(float(value))
    if isinstance(value, str):
        return c_string_literal(value)
    return None


def _is_statement(node: Any) -> bool:
    """True for nodes printed with their own braces (no trailing `;`)."""
    if isinstance(node, Conditional):
        return node.op != "ifop"
    if isinstance(node, Call):
        return node.block is not None or node.usertype == "typedecl"
    return isinstance(node, (Loop, ForLoop))


def _needs_parens(node: Any) -> bool:
    p = node.parent
    return isinstance(p, Unary) or (isinstance(p, Binary) and not isinstance(p, Assign))


class CodeGen(Checker):
    """
    Prints C code for the functions `typechecker` checked.

    `public_methods` are the ASTrees of the exported functions.
    """

    def __init__(self, printer: Printer, typechecker: Any, public_methods: Iterable[Any]):
        super().__init__()
        self.printer = printer
        self.typechecker = typechecker
        self.public_methods = {m.tree for m in public_methods}
        self._func_counter = 0
        self._loop_counter = 0
        self._func_names: Dict[Any, str] = {}
        self._messages: List[str] = []
        self.gvariables: Dict[Any, str] = {}

    # ------------------------------------------------------------------
    # errors
    # ------------------------------------------------------------------

    def errors(self) -> bool:
        return len(self._messages) > 0

    @property
    def error_messages(self) -> List[str]:
        return list(self._messages)

    def error(self, node: Any, msg: str) -> None:
        loc = node.source_location_string() if node is not None else ""
        self._messages.append(f"{loc}: {msg}")
        logger.debug(f"codegen error {loc}: {msg}")

    @property
    def error_group(self) -> str:
        return "build"

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def type_of(self, node: Any) -> Optional[Type]:
        return self.typechecker.typetable.get(node)

    def c_type(self, t: Any) -> str:
        name = c_type_name(t)
        if name is None:
            self.error(self.ast, f"no C type for {getattr(t, 'name', t)}")
            return "void"
        return name

    def print_body(self, body: Any) -> None:
        self.check(body)
        if not isinstance(body, Exprs):
            self.printer << ";"

    # ------------------------------------------------------------------
    # directives
    # ------------------------------------------------------------------

    @rule("typedecl", "return_type")
    def directive(self, node, env):
        pass

    # ------------------------------------------------------------------
    # names and literals
    # ------------------------------------------------------------------

    @rule(Number)
    def number(self, node, env):
        self.printer << c_literal(node.value)

    @rule(Name)
    def name(self, node, env):
        self.printer << node.name

    @rule(IdentifierOrCall)
    def identifier_or_call(self, node, env):
        t = self.type_of(node)
        if isinstance(t, InstanceType) and not t.has_role(Role.LOCAL_VAR):
            self.print_value(node, t.object)
        else:
            self.printer << node.name

    @rule(Reserved)
    def reserved(self, node, env):
        if node.name in ("True", "False"):
            self.printer << ("1" if node.name == "True" else "0")
        else:
            self.error(node, f"{node.name} is not available")

    @rule(Const, ConstPathRef)
    def constant(self, node, env):
        t = self.type_of(node)
        if isinstance(t, InstanceType):
            self.print_value(node, t.object)
        elif isinstance(node, Const):
            self.printer << node.name
        else:
            self.error(node, "unknown constant")

    def print_value(self, node: Any, value: Any) -> None:
        text = c_literal(value)
        if text is None:
            self.error(node, f"cannot print a value: {value!r}")
        else:
            self.printer << text

    @rule(InstanceVariable)
    def instance_variable(self, node, env):
        t = self.type_of(node)
        obj = t.object if isinstance(t, InstanceType) else None
        vname = self.gvariables.get(obj) if obj is not None else None
        if vname is None:
            self.error(node, "unknown instance variable")
        else:
            self.printer << vname

    @rule(StringLiteral)
    def string_literal(self, node, env):
        self.printer << c_string_literal(node.value)

    # ------------------------------------------------------------------
    # statements and operators
    # ------------------------------------------------------------------

    @rule(Exprs)
    def exprs(self, node, env):
        for e in node.expressions:
            self.check(e)
            if not _is_statement(e):
                self.printer << ";" << NL

    @rule(Unary)
    def unary(self, node, env):
        self.printer << C_OPERATORS.get(node.op, node.op)
        self.check(node.operand)

    @rule(Binary)
    def binary(self, node, env):
        if node.op in FLOOR_FUNCTIONS:
            self.floor_call(node.op, node.left, node.right)
            return
        parens = _needs_parens(node)
        if parens:
            self.printer << "("
        if node.op == "/" and self.type_of(node.left) <= IntegerType \
                and self.type_of(node.right) <= IntegerType:
            self.printer << "(double)"
        self.check(node.left)
        self.printer << " " << C_OPERATORS.get(node.op, node.op) << " "
        self.check(node.right)
        if parens:
            self.printer << ")"

    def floor_call(self, op: str, left: Any, right: Any) -> None:
        self.printer << FLOOR_FUNCTIONS[op] << "("
        self.check(left)
        self.printer << ", "
        self.check(right)
        self.printer << ")"

    @rule(Assign)
    def assign(self, node, env):
        self.check(node.left)
        if node.op[:-1] in FLOOR_FUNCTIONS:
            self.printer << " = "
            self.floor_call(node.op[:-1], node.left, node.right)
            return
        self.printer << " " << node.op << " "
        self.check(node.right)

    @rule(ArrayRef)
    def array_ref(self, node, env):
        self.check(node.array)
        for idx in node.indexes:
            self.printer << "["
            self.check(idx)
            self.printer << "]"

    @rule(Dots)
    def dots(self, node, env):
        self.error(node, "a range object is not available")

    @rule(Call)
    def call(self, node, env):
        if self.typechecker.method_with_block(node.name.name):
            self.call_with_block(node)
            return
        t = self.type_of(node)
        mdef = t.role_info(Role.RESULT) if t is not None else None
        if mdef is None or self.is_foreign(mdef):
            self.printer << node.name.name << "("
        else:
            self.printer << self.c_function_name(mdef) << "("
        for i, a in enumerate(node.args):
            if i > 0:
                self.printer << ", "
            self.check(a)
        self.printer << ")"

    def is_foreign(self, mdef: Any) -> bool:
        t = self.type_of(mdef)
        return t is not None and t.has_role(Role.FOREIGN)

    def call_with_block(self, node: Call) -> None:
        """`for i in times(n):` counts i down from n - 1 to 0."""
        param = node.block.params[0]
        self.printer << "for (" << self.c_type(IntegerType) << " " << param.name << " = ("
        self.check(node.args[0])
        self.printer << ") - 1; " << param.name << " >= 0; " << param.name << "--) {"
        self.printer.down()
        self.local_var_declarations(node.block)
        self.print_body(node.block.body)
        self.printer.up()
        self.printer << "}" << NL

    @rule(Conditional)
    def conditional(self, node, env):
        p = self.printer
        if node.op == "ifop":
            p << "("
            self.check(node.cond)
            p << ") ? ("
            self.check(node.then)
            p << ") : ("
            self.check(node.else_)
            p << ")"
            return
        p << "if ("
        self.check(node.cond)
        p << ") {"
        p.down()
        self.print_body(node.then)
        p.up()
        for cond, then in node.all_elsif:
            p << "} else if ("
            self.check(cond)
            p << ") {"
            p.down()
            self.print_body(then)
            p.up()
        if node.else_ is not None:
            p << "} else {"
            p.down()
            self.print_body(node.else_)
            p.up()
        p << "}" << NL

    @rule(Loop)
    def loop(self, node, env):
        self.printer << "while ("
        self.check(node.cond)
        self.printer << ") {"
        self.printer.down()
        self.print_body(node.body)
        self.printer.up()
        self.printer << "}" << NL

    @rule(ForLoop)
    def for_loop(self, node, env):
        """
        `for i in range(a, b):` counts a hidden variable up to a bound
        evaluated once, and copies it to i at the top of each iteration.
        """
        var_name = node.vars[0].name
        self._loop_counter += 1
        k = f"_dslc_k{self._loop_counter}"
        end = f"_dslc_e{self._loop_counter}"
        int_t = self.c_type(IntegerType)
        self.printer << "for (" << int_t << " " << k << " = "
        self.check(node.set.left)
        self.printer << ", " << end << " = "
        self.check(node.set.right)
        self.printer << "; " << k << (" < " if node.set.op == "..." else " <= ") << end
        self.printer << "; ++" << k << ") {"
        self.printer.down()
        self.printer << var_name << " = " << k << ";" << NL
        self.print_body(node.body)
        self.printer.up()
        self.printer << "}" << NL

    @rule(Return)
    def return_(self, node, env):
        self.printer << "return"
        if node.values:
            self.printer << " "
            self.check(node.values[0])

    @rule(Block, Def)
    def function(self, node, env):
        self.def_function(node, self.c_function_name(node))

    # ------------------------------------------------------------------
    # translation unit
    # ------------------------------------------------------------------

    @classmethod
    def c_src_file(cls, dir: str, lib_name: str) -> str:
        return build.src_file_name(dir, lib_name)

    def build_cmd(self) -> List[str]:
        return build.compiler_command()

    def link_options(self) -> List[str]:
        return list(config.LIBS)

    def build_lib(self, lib_name: str, dir: str) -> str:
        """Compile the generated source; returns the library path."""
        if self.errors():
            raise BuildError(self.error_messages)
        lib_path = build.lib_file_name(dir, lib_name)
        build.invoke_compiler(self.c_src_file(dir, lib_name), lib_path,
                              self.build_cmd(), self.link_options())
        logger.debug(f"built {lib_path}")
        return lib_path

    def headers(self) -> None:
        for h in config.HEADERS:
            self.printer << h << NL
        self.printer << NL
        self.printer << floor_helpers(self.c_type(IntegerType)) << NL

    def name_global_variables(self) -> None:
        for i, obj in enumerate(self.typechecker.instance_variables):
            self.gvariables[obj] = f"_gvar_{i}_"

    def variable_declarations(self) -> None:
        for obj, name in self.gvariables.items():
            if isinstance(obj, CArray):
                self.printer << "static " << self.c_type(obj.type) << " " << name
                for s in obj.sizes:
                    self.printer << "[" << s << "]"
                self.printer << ";" << NL
        self.printer << NL

    def prototype(self, node: Any) -> None:
        t = self.type_of(node)
        if t is None or t.has_role(Role.FOREIGN):
            return
        if node not in self.public_methods:
            self.printer << "static "
        elif isinstance(node, Def) and node.name.name in config.C_RESERVED_NAMES:
            self.error(node, f"{node.name.name} clashes with a C library name")
            return
        if isinstance(t, MethodType):
            self.parameters(node, self.c_function_name(node), t)
            self.printer << ";" << NL
        else:
            self.error(node, f"bad method {self.c_function_name(node)}")

    def preamble(self) -> None:
        """Printed right after the prototypes."""

    def expand_functions(self, func_names: List[str],
                         func_types: List[Any]) -> Tuple[List[str], List[Any]]:
        """Append generated functions to the exported ones."""
        return func_names, func_types

    def c_function(self, node: Any) -> None:
        self.check(node)

    def c_function_name(self, node: Any) -> str:
        if isinstance(node, Def) and node in self.public_methods:
            return node.name.name
        fname = self._func_names.get(node)
        if fname is None:
            self._func_counter += 1
            if isinstance(node, Block):
                fname = f"dslc_blk{self._func_counter}"
            else:
                fname = f"{node.name.name}_{self._func_counter}"
            self._func_names[node] = fname
        return fname

    # ------------------------------------------------------------------
    # functions
    # ------------------------------------------------------------------

    def def_function(self, node: Any, fname: str) -> None:
        t = self.type_of(node)
        if t is None or t.has_role(Role.FOREIGN):
            return
        if node not in self.public_methods:
            self.printer << "static "
        if isinstance(t, MethodType):
            self.parameters(node, fname, t)
        else:
            self.error(node, "not a function")
        self.printer << " {"
        self.printer.down()
        if t.has_role(Role.NATIVE):
            self.printer << t.role_info(Role.NATIVE)
        else:
            self.local_var_declarations(node)
            self.print_body(node.body)
        self.printer.up()
        self.printer << "}" << NL

    def parameters(self, node: Any, fname: str, mtype: MethodType) -> None:
        self.printer << self.c_type(mtype.result_type) << " " << fname << "("
        if not isinstance(mtype.params, list):
            self.error(node, "bad parameter types")
        elif not node.params:
            self.printer << "void"
        else:
            for i, (p, pt) in enumerate(zip(node.params, mtype.params)):
                if i > 0:
                    self.printer << ", "
                self.printer << self.c_type(pt) << " " << p.name
        self.printer << ")"

    def local_var_declarations(self, node: Any) -> None:
        local_vars = self.typechecker.local_vars_table.get(node)
        if local_vars is None:
            self.error(node, "bad function definition or block")
            return
        for name, t in local_vars.items():
            self.printer << self.c_type(t) << " " << name << ";" << NL
