"""
C Type Checker

Types the C subset of Python: int, float, Float32 and str values, arrays
of them, and functions over those.  Parameter and result types come from
annotations or from a `typedecl` directive in the first two statements of
the body:

    def fib(self, n: Int) -> Int: ...
    def fib(self, n):
        typedecl({'n': Int, 'return': Int})
    def now(self) -> Int:
        typedecl(native='...C source...')      # body written in C
    def sqrt(self, f: Float):
        typedecl(foreign=Float)                # calls the C function sqrt

A function without a declared result returns nothing (Void).
"""

import logging
from typing import Any, Dict, List, Optional

from ..shared.types import (
    Type, Role, DynType, Void, UnionType, ClassType, InstanceType, MethodType,
    ArrayType, BooleanType, IntegerType, FloatType, local_var_def,
)
from ..shared.undef import Undef
from ..syntax import Syntax, host_syntax
from ..tree.nodes import (
    Number, Const, Reserved, ConstPathRef, InstanceVariable, Assign, Binary,
    ArrayRef, Unary, Conditional, Loop, ForLoop, Return, Call, Block, Def, Exprs,
    IdentifierOrCall,
)
from ..checker.checker import rule
from ..checker.host_typeinfer import HostTypeInferer
from ..checker.typecheck import TypeEnv
from .ctype import FFIArray, Float32, Float32Type, IvarObj

logger = logging.getLogger("dslc.c.ctypecheck")


# ============================================================================
# Grammar of the C subset
# ============================================================================

C_RULES = """
    expr  <= Name | Number | Binary | Unary | ConstPathRef | StringLiteral
           | ArrayRef | typedecl | method_call | ifop
    stmnt <= expr | Return | ForLoop | Loop | Conditional
    exprs <= Exprs | stmnt
    Exprs <= { expressions: [ stmnt ] }

    Reserved     <= { name: 'True' | 'False' | 'None' }
    ConstPathRef <= { scope: ConstPathRef | Name, name: Const }
    Unary        <= { op: '-' | '+' | '~' | 'not', operand: expr }
    Dots         <= { left: expr, op: '...' | '..', right: expr }

    Return      <= { values: [] | [ expr, nil ] }    # at most one value
    ForLoop     <= { vars: Identifier, set: Dots, body: exprs }
    Loop        <= { op: 'while', cond: expr, body: exprs }
    Conditional <= { op: 'if' | 'ifop', cond: expr, then: exprs,
                     all_elsif: [ expr * exprs ], else_: (exprs) }
    ifop        <= Conditional + { op: 'ifop', then: expr, all_elsif: [], else_: expr }

    Call        <= { name: Identifier }
    method_call <= Call + { receiver: (expr), op: (String), args: [ expr ],
                            block_arg: nil, block: (Block) }

    arrayof_name  <= Identifier + { name: 'arrayof' }
    arrayof       <= Call + { receiver: nil, op: nil, name: arrayof_name,
                              args: [ expr ], block_arg: nil, block: nil }
    typedecl_name <= Identifier + { name: 'typedecl' }
    typedecl      <= Call + { receiver: nil, name: typedecl_name,
                              args: [ typedecl_hash ], block_arg: nil, block: nil }
    typedecl_hash <= HashLiteral
    HashLiteral   <= { pairs: [ Label * label_value ] }
    label_value   <= Const | ConstPathRef | arrayof | StringLiteral | Name

    return_type <= Const | ConstPathRef | arrayof | Name

    Parameters <= { params: [ Identifier ], optionals: nil,
                    rest_of_params: (Identifier), keywords: nil,
                    rest_of_keywords: nil, param_types: [ (label_value) ] }
    Block      <= Parameters + { body: exprs }
    Def        <= Parameters + { name: Identifier, body: exprs,
                                 return_type: (return_type) }
"""

_c_syntax: Optional[Syntax] = None


def c_syntax() -> Syntax:
    """The host grammar narrowed to the C subset."""
    global _c_syntax
    if _c_syntax is None:
        _c_syntax = host_syntax().add_rules(C_RULES)
    return _c_syntax


# Keys of typedecl besides parameter names
RETURN_KEY = "return"
NATIVE_KEY = "native"
FOREIGN_KEY = "foreign"

ARITHMETIC_OPS = ("+", "-", "*", "/")
INTEGER_OPS = ("//", "%", "<<", ">>", "&", "|", "^")
BOOLEAN_OPS = ("<", ">", "<=", ">=", "==", "!=", "and", "or")


def _is_numeric(t: Type) -> bool:
    return isinstance(t, Type) and t.exact_type in (int, float, Float32)


class ClangTypeChecker(HostTypeInferer):
    """
    Type checker for functions compiled to C.

    `local_vars_table` maps every checked Def or Block to its local
    variables (name -> type, parameters excluded); `instance_variables`
    lists the global arrays the checked code reads.
    """

    def __init__(self, syntax: Any = None):
        super().__init__(syntax or c_syntax())
        self.local_vars_table: Dict[Any, Dict[str, Type]] = {}
        self.instance_variables: List[IvarObj] = []

    # ------------------------------------------------------------------
    # valid types
    # ------------------------------------------------------------------

    def valid_var_type(self, t: Any) -> bool:
        return isinstance(t, Type) and t.exact_type in (int, float, str, Float32)

    def valid_type(self, t: Any) -> bool:
        return self.valid_var_type(t) or isinstance(t, ArrayType)

    def is_subsumed_by(self, sub_type: Type, super_type: Type) -> bool:
        return (_is_numeric(sub_type) and _is_numeric(super_type)) or sub_type <= super_type

    # ------------------------------------------------------------------
    # declarations
    # ------------------------------------------------------------------

    @rule("typedecl")
    def typedecl(self, node, env):
        for a in node.args:
            self.type(a)
        return Void

    @rule("typedecl_hash")
    def typedecl_hash(self, node, env):
        for key, value in node.pairs:
            self.declare_type(key.name, key, self.typedecl_type(value))
        return Void

    @rule("return_type")
    def return_type(self, node, env):
        return self.typedecl_type(node)

    def typedecl_type(self, type_expr: Any) -> Any:
        """The type named by `type_expr`; the source string for `native`."""
        if isinstance(type_expr, Call):
            self.type_assert(len(type_expr.args) == 1, "bad array type")
            element = type_expr.args[0].value
            self.type_assert(element is not Undef, "cannot resolve a type name")
            etype = ClassType.of(element)
            self.type_assert(self.valid_var_type(etype), f"bad array type: {element!r}")
            return ArrayType(etype)
        v = type_expr.value
        self.type_assert(v is not Undef, "cannot resolve a type name")
        if v is None:
            return Void
        if isinstance(v, type) and issubclass(v, FFIArray):
            return ArrayType(ClassType.of(v.element_type))
        return ClassType.of(v)

    def declare_type(self, name: str, name_ast: Any, t: Any) -> None:
        env = self.type_env
        if name in (RETURN_KEY, FOREIGN_KEY):
            self.type_assert(self.valid_type(t) or Void == t, f"bad return type: {_name_of(t)}")
            self.check_duplicate(name, t)
            env.bind_name(name, t)
        elif name == NATIVE_KEY:
            self.type_assert(isinstance(t, str), "bad native argument. not String.")
            self.type_assert(env.bound_name(NATIVE_KEY) is None, "duplicate declaration: native")
            env.bind_name(NATIVE_KEY, InstanceType(t))
        else:
            self.type_assert(self.valid_type(t), f"bad parameter type: {name}")
            self.check_duplicate(name, t)
            self.bind_local_var(env, name_ast, t, is_def=False)

    def check_duplicate(self, name: str, t: Any) -> None:
        old_type = self.type_env.names.get(name)
        self.type_assert(old_type is None or old_type == t,
                         f"incompatible or duplicate declaration: {name}")

    # ------------------------------------------------------------------
    # names and literals
    # ------------------------------------------------------------------

    @rule(Number)
    def number(self, node, env):
        return FloatType if isinstance(node.value, float) else IntegerType

    @rule(Const)
    def const(self, node, env):
        bound = env.bound_name(node)
        if bound is not None:
            return bound
        t = self.proceed(node)
        self.type_assert_false(DynType == t, "unknown constant")
        self.type_assert(self.valid_var_type(t), "bad constant type")
        return t

    @rule(ConstPathRef)
    def const_path_ref(self, node, env):
        v = node.value
        self.type_assert(v is not Undef, "unknown constant")
        t = InstanceType(v)
        self.type_assert(self.valid_var_type(t), "bad constant type")
        return t

    @rule(Reserved)
    def reserved(self, node, env):
        self.type_assert(node.name in ("True", "False"), f"{node.name} is not available")
        return BooleanType

    @rule(InstanceVariable)
    def instance_variable(self, node, env):
        v = node.value
        key = env.context
        if v is Undef:
            return self.get_instance_variable_type(key, node, False, DynType)
        self.type_assert(isinstance(v, IvarObj), "badly typed instance variable")
        if not any(v is obj for obj in self.instance_variables):
            self.instance_variables.append(v)
        return self.get_instance_variable_type(key, node, True, InstanceType(v))

    # ------------------------------------------------------------------
    # assignment and operators
    # ------------------------------------------------------------------

    @rule(Assign)
    def assign(self, node, env):
        rtype = self.type(node.right)
        self.type_assert(self.valid_var_type(rtype), "bad assigned value")
        left = node.left
        if node.op != "=":
            ltype = self.type(left)
            self.binary_cexpr_type(node.op[:-1], ltype, rtype)
            lvd = local_var_def(ltype)
            if lvd is not None:
                lvd.redefine(left)
            return ltype
        if isinstance(left, ArrayRef):
            elem_t = self.type(left)
            self.type_assert(self.is_subsumed_by(rtype, elem_t), "incompatible assignment type")
            return elem_t
        self.type_assert(isinstance(left, IdentifierOrCall), "bad assignment")
        ltype = env.bound_name(left)
        if ltype is None:
            return self.bind_local_var(env, left, rtype)
        self.type_assert(rtype <= ltype or (_is_numeric(rtype) and _is_numeric(ltype)),
                         "incompatible assignment type")
        lvd = local_var_def(ltype)
        if lvd is not None:
            lvd.redefine(left)
        self.typetable[left] = ltype
        return ltype

    @rule(Binary)
    def binary(self, node, env):
        t1 = self.type(node.left)
        t2 = self.type(node.right)
        return self.binary_cexpr_type(node.op, t1, t2)

    def binary_cexpr_type(self, op: str, t1: Type, t2: Type) -> Type:
        if op in ARITHMETIC_OPS:
            self.type_assert(_is_numeric(t1) and _is_numeric(t2), "bad operand type")
            if t1 <= FloatType or t2 <= FloatType:
                return FloatType
            if t1 <= Float32Type or t2 <= Float32Type:
                return Float32Type
            return FloatType if op == "/" else IntegerType
        if op in INTEGER_OPS:
            self.type_assert(t1 <= IntegerType and t2 <= IntegerType, "bad operand type")
            return IntegerType
        if op in BOOLEAN_OPS:
            return BooleanType
        self.type_assert(False, f"bad operator: {op}")

    @rule(Unary)
    def unary(self, node, env):
        t = self.type(node.operand)
        if node.op == "not":
            return BooleanType
        if node.op == "~":
            self.type_assert(t <= IntegerType, "bad operand type")
        else:
            self.type_assert(_is_numeric(t), "bad operand type")
        return t

    @rule(ArrayRef)
    def array_ref(self, node, env):
        array_type = self.type(node.array)
        indexes = node.indexes
        if isinstance(array_type, InstanceType) and isinstance(array_type.object, IvarObj):
            obj = array_type.object
            self.type_assert(len(indexes) == len(obj.sizes), "bad array index")
            for idx in indexes:
                self.type_assert(self.type(idx) <= IntegerType, "bad array index")
            return ClassType.of(obj.type)
        self.type_assert(len(indexes) == 1, "bad array index")
        self.type_assert(self.type(indexes[0]) <= IntegerType, "bad array index")
        self.type_assert(isinstance(array_type, ArrayType), "bad array access")
        return array_type.element_type

    # ------------------------------------------------------------------
    # control flow
    # ------------------------------------------------------------------

    @rule(Conditional)
    def conditional(self, node, env):
        self.type(node.cond)
        t1 = self.type(node.then)
        branches = [t1]
        for cond, then in node.all_elsif:
            self.type(cond)
            branches.append(self.type(then))
        t2 = self.type(node.else_) if node.else_ is not None else Void
        branches.append(t2)
        if all(t.has_role(Role.WITH_RETURN) for t in branches):
            return UnionType.make(branches).with_role(Role.WITH_RETURN)
        if node.op == "ifop":
            return UnionType.make(t1, t2)
        return Void

    @rule(Loop)
    def loop(self, node, env):
        self.type(node.cond)
        self.type(node.body, env)
        return Void

    @rule(ForLoop)
    def for_loop(self, node, env):
        for v in node.vars:
            self.bind_local_var(env, v, IntegerType)
        self.type_assert(self.type(node.set.left) <= IntegerType, "bad for-range")
        self.type_assert(self.type(node.set.right) <= IntegerType, "bad for-range")
        self.type(node.body, env)
        return Void

    @rule(Return)
    def return_(self, node, env):
        t = self.proceed(node)
        ret_type = env.bound_name(RETURN_KEY)
        if Void == ret_type:
            self.type_assert(len(node.values) == 0, "bad return")
        else:
            self.type_assert(self.is_subsumed_by(t, ret_type), "bad return type")
        return t.with_role(Role.WITH_RETURN)

    # ------------------------------------------------------------------
    # calls
    # ------------------------------------------------------------------

    @rule(Call)
    def call(self, node, env):
        method_name = node.name.name
        if self.method_with_block(method_name):
            self.type_assert(node.block is not None, f"no block given: {method_name}")
            return self.typecheck_call_with_block(node)
        self.type_assert(node.block is None, f"a block is not taken: {method_name}")
        t = self.proceed(node)
        self.type_assert(t.has_role(Role.RESULT), f"bad call to: {method_name}")
        return t

    def method_with_block(self, name: str) -> bool:
        """True if `for i in name(n):` is a counted loop."""
        return name == "times"

    def block_loop_count(self, node: Call) -> None:
        self.type_assert(len(node.args) == 1, f"wrong number of arguments: {node.name.name}")
        self.type_assert(self.type(node.args[0]) <= IntegerType, "the loop count must be an integer")
        self.type_assert(len(node.block.params) == 1, "wrong number of block parameters")

    def typecheck_call_with_block(self, node: Call) -> Type:
        self.type_assert(node.name.name == "times", f"no such method: {node.name.name}")
        self.block_loop_count(node)
        param = node.block.params[0]
        self.type_as(param, IntegerType)
        tenv = self.type_env.new_tenv()
        tenv.bind_name(param, IntegerType)
        tenv.bind_name(RETURN_KEY, Void)
        self.type(node.block, tenv)
        return Void

    # ------------------------------------------------------------------
    # functions
    # ------------------------------------------------------------------

    @rule(Block)
    def block(self, node, env):
        # the caller (typecheck_call_with_block) made the environment
        return self.def_block_rule(True, env)

    @rule(Def)
    def def_(self, node, env):
        return self.def_block_rule(False, env.new_tenv())

    def def_block_rule(self, is_block: bool, new_tenv: TypeEnv) -> Type:
        node = self.ast
        self.type_block(node, new_tenv)

        ptypes = [new_tenv.bound_name(v) for v in node.params]
        for p, t in zip(node.params, ptypes):
            self.type_assert(t is not None, f"missing parameter type: {p.name}")
        result_t = new_tenv.bound_name(RETURN_KEY)
        if result_t is None:
            result_t = new_tenv.bound_name(FOREIGN_KEY)
        self.type_assert(result_t is not None, "no return type specified")

        mtype = MethodType(ptypes, result_t, node)
        if not is_block:
            self.type_env.bind_name(node.name, mtype.result())

        code = new_tenv.bound_name(NATIVE_KEY)
        if code is not None:
            self.type_assert(isinstance(code, InstanceType), "bad native declaration")
            return mtype.with_role(Role.NATIVE, code.object)

        foreign = new_tenv.bound_name(FOREIGN_KEY)
        if foreign is not None and not is_block:
            return MethodType(DynType, result_t, node).with_role(Role.FOREIGN)
        self.type_assert(node.rest_of_params is None,
                         "variable-length parameters are only for foreign functions")

        def check_body():
            body_t = self.type(node.body, new_tenv)
            if Void == result_t:
                self.type_assert(not body_t.has_role(Role.WITH_RETURN) or Void == body_t,
                                 "non-void return statement")
            else:
                self.type_assert(body_t.has_role(Role.WITH_RETURN), "no return statement")
                self.type_assert(self.is_subsumed_by(result_t, body_t), "bad result type")
            param_names = {p.name for p in node.params}
            self.local_vars_table[node] = {
                name: t for name, t in new_tenv.each()
                if t.has_role(Role.LOCAL_VAR) and name not in param_names
            }
            logger.debug(f"locals of {_def_name(node)}: {list(self.local_vars_table[node])}")

        if is_block:
            check_body()
        else:
            self.check_later(check_body)
        return mtype

    def type_block(self, node: Any, new_env: TypeEnv) -> None:
        """Bind the declared result and parameter types in `new_env`."""
        if isinstance(node, Def) and node.return_type is not None:
            new_env.bind_name(RETURN_KEY, self.type(node.return_type, new_env))
        for p, annotation in zip(node.params, node.param_types):
            if annotation is not None:
                self.apply_in(new_env, lambda: self.declare_type(p.name, p,
                                                                 self.typedecl_type(annotation)))

        body = node.body
        stmts = body.expressions[:2] if isinstance(body, Exprs) else [body]
        for s in stmts:
            if getattr(s, "usertype", None) == "typedecl":
                self.type(s, new_env)
                break

        if new_env.bound_name(RETURN_KEY) is None and new_env.bound_name(FOREIGN_KEY) is None:
            new_env.bind_name(RETURN_KEY, Void)

    def type_assert_params(self, params: Any, args: List[Type], errmsg: str = "") -> None:
        if DynType == params:
            return
        self.type_assert(len(params) == len(args), errmsg)
        for p, a in zip(params, args):
            self.type_assert(self.is_subsumed_by(a, p), errmsg)

    def apply_in(self, env: TypeEnv, fn) -> Any:
        """Run `fn` with `env` as the current environment."""
        old = self._current_env
        self._current_env = env
        try:
            return fn()
        finally:
            self._current_env = old


def _name_of(t: Any) -> str:
    return t.name if isinstance(t, Type) else repr(t)


def _def_name(node: Any) -> str:
    return node.name.name if isinstance(node, Def) else "block"
