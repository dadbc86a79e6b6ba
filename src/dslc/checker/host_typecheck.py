"""
Host Type Checker

Types every construct the reifier produces, with little precision: most
expressions are DynType.  What it does settle is where a call goes.  A
call whose receiver type is known is resolved to the Python function it
would run; that function is reified, grammar-checked and typed in turn,
and the call's type is the callee's result type.

HostTypeInferer (host_typeinfer.py) refines the expression rules; the C
type checker builds on that.
"""

import inspect
import logging
from typing import Any, List, Optional

from ..shared.errors import CheckError
from ..shared.types import (
    Type, Role, LocalVarDef, DynType, Void, UnionType, ClassType, InstanceType,
    MethodType, BooleanType, NoneClassType, RangeType, StringType, ListType,
    DictType, ExceptionType, local_var_def,
)
from ..shared.undef import Undef
from ..tree.nodes import (
    Name, Reserved, Number, StringLiteral, ArrayLiteral, HashLiteral, ConstPathRef,
    Unary, Binary, Dots, Assign, ArrayRef, Call, Conditional, Loop, ForLoop,
    Return, Break, Block, Def, Exprs, Rescue, BeginEnd, ModuleDef, Identifier,
)
from .checker import rule
from .typecheck import TypeChecker, TypeEnv, BaseTypeEnv

logger = logging.getLogger("dslc.checker.host_typecheck")


class HostTypeChecker(TypeChecker):
    """Type checker for the whole host-language grammar."""

    def __init__(self, syntax: Any = None):
        super().__init__()
        self.syntax = syntax

    # ------------------------------------------------------------------
    # names and literals
    # ------------------------------------------------------------------

    @rule(Assign)
    def assign(self, node, env):
        self.type(node.right)
        if node.op != "=":
            lvd = local_var_def(self.type(node.left))
            if lvd is not None:
                lvd.redefine(node.left)
        elif isinstance(node.left, Identifier):
            vtype = env.bound_name(node.left)
            if vtype is None:
                self.bind_local_var(env, node.left, DynType)
            else:
                lvd = local_var_def(vtype)
                if lvd is not None:
                    lvd.redefine(node.left)
        return DynType

    @rule(Name)
    def name(self, node, env):
        return self.get_name_type(node, env)

    def get_name_type(self, node: Name, env: TypeEnv) -> Type:
        t = env.bound_name(node)
        if t is not None:
            return t
        v = node.value
        return DynType if v is Undef else InstanceType(v)

    @rule(Number)
    def number(self, node, env):
        return InstanceType(node.value)

    @rule(Reserved)
    def reserved(self, node, env):
        if node.name in ("True", "False"):
            return BooleanType
        if node.name == "None":
            return NoneClassType
        v = node.value
        return DynType if v is Undef else InstanceType(v)

    @rule(StringLiteral)
    def string_literal(self, node, env):
        return StringType

    @rule(ConstPathRef)
    def const_path_ref(self, node, env):
        v = node.value
        return ClassType.of(v) if isinstance(v, type) else DynType

    @rule(ArrayLiteral)
    def array_literal(self, node, env):
        return ListType

    @rule(HashLiteral)
    def hash_literal(self, node, env):
        return DictType

    # ------------------------------------------------------------------
    # operators
    # ------------------------------------------------------------------

    @rule(Unary)
    def unary(self, node, env):
        self.type(node.operand)
        return DynType

    @rule(Binary)
    def binary(self, node, env):
        self.type(node.right)
        self.type(node.left)
        return DynType

    @rule(Dots)
    def dots(self, node, env):
        return RangeType

    @rule(ArrayRef)
    def array_ref(self, node, env):
        return DynType

    # ------------------------------------------------------------------
    # calls
    # ------------------------------------------------------------------

    @rule(Call)
    def call(self, node, env):
        if node.name.name == "raise":
            for a in node.args:
                self.type(a)
            return ExceptionType
        return self.get_call_expr_type(node, env, node.name.name)

    def get_call_expr_type(self, call: Call, env: TypeEnv, method_name: str) -> Type:
        arg_types = [self.type(a) for a in call.args]
        self.type(call.block_arg)
        self.type(call.block)
        found: Optional[Type] = None
        if call.receiver is None:
            found = env.bound_name(method_name)
            if found is not None:
                recv_type = DynType
            else:
                recv_obj = call.get_receiver_object()
                if recv_obj is not None:
                    recv_type = InstanceType(recv_obj)
                else:
                    func = call.name.value
                    if inspect.isfunction(func):
                        return self.get_return_type(call, func, BaseTypeEnv(None), arg_types)
                    recv_type = DynType if env.context is None else ClassType.of(env.context)
        else:
            recv_type = self.type(call.receiver)

        if found is not None:
            if isinstance(found, MethodType):
                self.type_assert_params(found.params, arg_types, "argument type mismatch")
                return found.result()
            self.type_assert_bound_call(found, arg_types)
            return found
        if DynType == recv_type or DynType == recv_type.exact_type:
            return DynType
        return self.lookup_builtin(recv_type, method_name) \
            or self.lookup_host_methods(env, arg_types, recv_type, method_name)

    def type_assert_bound_call(self, found: Type, arg_types: List[Type]) -> None:
        """
        Check the arguments of a call to a name bound to a method result.
        The callee's MethodType is memoized once its definition is typed;
        a call inside a body still being typed is checked later.
        """
        mdef = found.role_info(Role.RESULT)
        if mdef is None:
            return

        def check_args():
            mtype = self.typetable.get(mdef)
            if isinstance(mtype, MethodType):
                self.type_assert_params(mtype.params, arg_types, "argument type mismatch")

        if mdef in self.typetable:
            check_args()
        else:
            self.check_later(check_args)

    def lookup_builtin(self, recv_type: Type, method_name: str) -> Optional[Type]:
        """Result type of a method declared with a typedef, or None."""
        et = recv_type.exact_type
        if DynType == et:
            return None
        td = self.typedef(et)
        mt = td[method_name] if td is not None else None
        if isinstance(mt, MethodType):
            return mt.result()
        return None

    def lookup_host_methods(self, env: TypeEnv, arg_types: List[Type], recv_type: Type,
                            method_name: str) -> Type:
        try:
            mth = recv_type.get_method_object(method_name)
        except CheckError as e:
            self.error_found(self.ast, e.message)
        new_tenv = env.new_base_tenv(recv_type.exact_type)
        return self.get_return_type(self.ast, mth, new_tenv, arg_types)

    def reify_callee(self, node: Any, mthd: Any) -> Any:
        info = node.tree_info()
        m_ast = info.reify(mthd) if info is not None else None
        self.type_assert_false(m_ast is None, f"no source code: for {getattr(mthd, '__qualname__', mthd)}")
        logger.debug(f"typing callee {m_ast.function.__qualname__}")
        if self.syntax is not None and not self.syntax.check(m_ast.tree):
            self.syntax.raise_error(m_ast.tree)
        return m_ast

    def get_return_type(self, node: Any, mthd: Any, new_tenv: TypeEnv,
                        arg_types: List[Type]) -> Type:
        m_ast = self.reify_callee(node, mthd)
        mtype = self.type(m_ast.tree, new_tenv)
        self.type_assert(isinstance(mtype, MethodType), "not a method type")
        self.type_assert_params(mtype.params, arg_types, "argument type mismatch")
        return mtype.result()

    # ------------------------------------------------------------------
    # control flow
    # ------------------------------------------------------------------

    @rule(Conditional)
    def conditional(self, node, env):
        self.type(node.cond)
        all_types = [self.type(node.then)]
        for cond, then in node.all_elsif:
            self.type(cond)
            all_types.append(self.type(then))
        all_types.append(self.type(node.else_))
        return UnionType.make(all_types)

    @rule(Loop)
    def loop(self, node, env):
        self.type(node.cond)
        self.type(node.body)
        return DynType

    @rule(ForLoop)
    def for_loop(self, node, env):
        self.type(node.set)
        for v in node.vars:
            self.bind_local_var(env, v, DynType)
        self.type(node.body)
        return DynType

    @rule(Return, Break)
    def return_(self, node, env):
        vs = node.values
        if len(vs) == 1:
            return self.type(vs[0])
        if len(vs) > 1:
            for v in vs:
                self.type(v)
            return ClassType.of(tuple)
        return Void

    @rule(Block)
    def block(self, node, env):
        s = env.new_tenv()
        self.type_parameters(node, s)
        return MethodType(DynType, self.type(node.body, s), node)

    @rule(Exprs)
    def exprs(self, node, env):
        t = DynType
        for e in node.expressions:
            t = self.type(e)
        return t

    @rule(Rescue)
    def rescue(self, node, env):
        s = env.new_tenv()
        if node.parameter is not None:
            if not node.types:
                etype = DynType
            else:
                rts = []
                for e in node.types:
                    cls = e.value
                    self.type_assert(isinstance(cls, type), "bad exception type")
                    rts.append(ClassType.of(cls))
                etype = UnionType.make(rts)
            self.bind_local_var(s, node.parameter, etype)
        all_types = [self.type(node.body, s)]
        if node.nested_rescue is not None:
            all_types.append(self.type(node.nested_rescue))
        if node.else_ is not None:
            all_types.append(self.type(node.else_))
        self.type(node.ensure)
        return UnionType.make(all_types)

    @rule(BeginEnd)
    def begin_end(self, node, env):
        body_t = self.type(node.body)
        if node.rescue is None:
            return body_t
        return UnionType.make(body_t, self.type(node.rescue))

    # ------------------------------------------------------------------
    # definitions
    # ------------------------------------------------------------------

    @rule(Def)
    def def_(self, node, env):
        mtype = MethodType(DynType, DynType, node)

        def check_body():
            s = self.type_env.new_tenv()
            self.type_parameters(node, s)
            body_t = self.type(node.body, s)
            self.type_assert_subsume(mtype.result(), body_t, "bad result type")

        self.type_assert_later(check_body)
        self.bind_local_var(env, node.name, mtype)
        return mtype

    @rule(ModuleDef)
    def module_def(self, node, env):
        return self.type(node.body, env.new_tenv())

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def bind_local_var(self, env: TypeEnv, node: Any, var_type: Optional[Type],
                       is_def: bool = True) -> Optional[Type]:
        if var_type is None:
            return None
        env.bind_name(node, var_type.copy().with_role(Role.LOCAL_VAR, LocalVarDef(node)))
        self.typetable[node] = var_type
        return var_type

    def type_assert_params(self, params: Any, args: List[Type], errmsg: str = "") -> None:
        if DynType == params:
            return
        self.type_assert(isinstance(params, list), errmsg)
        self.type_assert(isinstance(args, list), errmsg)
        self.type_assert(len(params) <= len(args), errmsg)
        for p, a in zip(params, args):
            self.type_assert_subsume(p, a, errmsg)

    def type_assert_subsume(self, expected_type: Type, actual_type: Type, errmsg: str = "") -> None:
        self.type_assert(actual_type <= expected_type, errmsg)

    def type_parameters(self, node: Any, env: TypeEnv) -> None:
        for v in node.params:
            self.bind_local_var(env, v, DynType)
        for v, _ in node.optionals:
            self.bind_local_var(env, v, DynType)
        if node.rest_of_params is not None:
            self.bind_local_var(env, node.rest_of_params, DynType)
        for v, _ in node.keywords:
            self.bind_local_var(env, v, DynType)
        if node.rest_of_keywords is not None:
            self.bind_local_var(env, node.rest_of_keywords, DynType)
