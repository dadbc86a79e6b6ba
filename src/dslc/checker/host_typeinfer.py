"""
Host Type Inferer

Extends HostTypeChecker with real inference for local variables,
arithmetic, ranges, lists, subscripts and for loops.  A local variable
takes the type of its first assigned value, widened from the value itself
to its class (`x = 3` gives `x` the type int, not the type of 3).  A later
assignment must be a subtype of that type.

An operator the inferer has no built-in rule for is treated as a call of
the matching dunder method on the left operand, so `v + w` on user objects
types `type(v).__add__`.
"""

import logging
from typing import Any, List, Optional

from ..shared.types import (
    Type, Role, LocalVarDef, DynType, UnionType, ClassType, InstanceType,
    MethodType, CompositeType, BooleanType, IntegerType, FloatType, StringType,
    NumericType, ListType, local_var_def, host_class_of,
)
from ..shared.undef import Undef
from ..tree.nodes import (
    Name, Const, InstanceVariable, Unary, Binary, Dots, Assign, ArrayRef, ArrayLiteral,
    Call, ForLoop, Def, Identifier,
)
from .checker import rule
from .host_typecheck import HostTypeChecker
from .typecheck import TypeEnv

logger = logging.getLogger("dslc.checker.host_typeinfer")


UNARY_METHODS = {"-": "__neg__", "+": "__pos__", "~": "__invert__"}

BINARY_METHODS = {
    "+": "__add__", "-": "__sub__", "*": "__mul__", "/": "__truediv__",
    "//": "__floordiv__", "%": "__mod__", "**": "__pow__", "@": "__matmul__",
    "<<": "__lshift__", ">>": "__rshift__", "&": "__and__", "|": "__or__",
    "^": "__xor__", "<": "__lt__", "<=": "__le__", ">": "__gt__", ">=": "__ge__",
    "==": "__eq__", "!=": "__ne__",
}

COMPARISON_OPS = ("<", "<=", ">", ">=", "==", "!=")
ARITHMETIC_OPS = ("**", "*", "/", "//", "%", "+", "-")
BIT_OPS = ("<<", ">>", "&", "|", "^")

# Arrays of up to this many elements get an element type.
MAX_TYPED_ARRAY_LITERAL = 16


def to_non_instance_type(t: Type) -> Type:
    return t.supertype if isinstance(t, InstanceType) else t


class HostTypeInferer(HostTypeChecker):
    """Type inference for the host-language subset."""

    def bind_local_var(self, env: TypeEnv, node: Any, var_type: Optional[Type],
                       is_def: bool = True) -> Optional[Type]:
        if var_type is None:
            return None
        if isinstance(var_type, UnionType):
            t = UnionType.make([to_non_instance_type(e) for e in var_type.types])
        else:
            t = to_non_instance_type(var_type)
        lvt = t.copy().with_role(Role.LOCAL_VAR, LocalVarDef(node if is_def else None))
        env.bind_name(node, lvt)
        self.typetable[node] = lvt
        return lvt

    # ------------------------------------------------------------------
    # assignment and names
    # ------------------------------------------------------------------

    @rule(Assign)
    def assign(self, node, env):
        rtype = self.type(node.right)
        left = node.left
        if node.op != "=":
            ltype = self.type(left)
            lvd = local_var_def(ltype)
            if lvd is not None:
                lvd.redefine(left)
            return ltype
        if isinstance(left, Identifier):
            vtype = env.bound_name(left)
            if vtype is None:
                return self.bind_local_var(env, left, rtype)
            self.type_assert(rtype <= vtype, "incompatible assignment type")
            lvd = local_var_def(vtype)
            if lvd is not None:
                lvd.redefine(left)
            return vtype
        if isinstance(left, InstanceVariable):
            return self.get_instance_variable_type(env.context, left, True,
                                                   to_non_instance_type(rtype))
        return self.type(left)

    @rule(Name)
    def name(self, node, env):
        return self.get_name_type(node, env)

    @rule(Const)
    def const(self, node, env):
        v = node.value
        return DynType if v is Undef else InstanceType(v)

    @rule(InstanceVariable)
    def instance_variable(self, node, env):
        v = node.value
        if v is Undef:
            return self.get_instance_variable_type(env.context, node, False, DynType)
        return self.get_instance_variable_type(env.context, node, True,
                                               ClassType.of(host_class_of(v)))

    def get_instance_variable_type(self, key: Any, ivar: InstanceVariable, is_valid_type: bool,
                                   value_type: Type) -> Type:
        td = self.add_typedef(key)
        ivar_t = td[ivar]
        if ivar_t is None:
            td[ivar] = value_type
            return value_type
        if is_valid_type:
            self.type_assert_subsume(ivar_t, value_type, f"bad type value for {ivar.name}")
        return ivar_t

    # ------------------------------------------------------------------
    # operators
    # ------------------------------------------------------------------

    @rule(Unary)
    def unary(self, node, env):
        expr_t = self.type(node.operand)
        op = node.op
        if op == "not":
            return BooleanType
        if (op == "~" and expr_t <= IntegerType) or (op in ("+", "-") and expr_t <= NumericType):
            return expr_t
        method = UNARY_METHODS[op]
        call = Call.make(method, receiver=node.operand, parent=node.parent)
        return self.get_call_expr_type(call, env, method)

    @rule(Binary)
    def binary(self, node, env):
        right_t = self.type(node.right)
        left_t = self.type(node.left)
        return self.binary_type(node, right_t, left_t)

    def binary_type(self, node: Binary, right_t: Type, left_t: Type) -> Type:
        op = node.op
        if op in ("and", "or"):
            return UnionType.make(right_t, left_t)
        if op in ("is", "is not", "in", "not in"):
            return BooleanType
        if op in COMPARISON_OPS:
            if left_t <= NumericType or left_t <= StringType:
                return BooleanType
        elif op in ARITHMETIC_OPS:
            if left_t <= NumericType:
                if op == "/":
                    return FloatType
                if left_t <= FloatType or right_t <= FloatType:
                    return FloatType
                return IntegerType
        elif op in BIT_OPS:
            if left_t <= IntegerType:
                return IntegerType
        if left_t <= StringType and op in ("+", "%", "*"):
            return StringType
        method = BINARY_METHODS.get(op, op)
        call = Call.make(method, receiver=node.left, args=(node.right,), parent=node.parent)
        return self.get_call_expr_type(call, env=self.type_env, method_name=method)

    @rule(Dots)
    def dots(self, node, env):
        self.type(node.right)
        return CompositeType(range, to_non_instance_type(self.type(node.left)))

    # ------------------------------------------------------------------
    # arrays and loops
    # ------------------------------------------------------------------

    @rule(ArrayLiteral)
    def array_literal(self, node, env):
        ele = node.elements
        if 0 < len(ele) <= MAX_TYPED_ARRAY_LITERAL:
            et = to_non_instance_type(self.type(ele[0]))
            if all(self.type(e) <= et for e in ele):
                return CompositeType(list, et)
        for e in ele:
            self.type(e)
        return ListType

    @rule(ArrayRef)
    def array_ref(self, node, env):
        array_t = self.type(node.array)
        for i in node.indexes:
            self.type(i)
        if isinstance(array_t, CompositeType) and array_t.host_class is list:
            return array_t.first_arg
        return DynType

    @rule(ForLoop)
    def for_loop(self, node, env):
        set_type = self.type(node.set)
        var_type = set_type.first_arg if isinstance(set_type, CompositeType) else DynType
        for v in node.vars:
            self.bind_local_var(env, v, var_type)
        self.type(node.body)
        return DynType

    # ------------------------------------------------------------------
    # calls and definitions
    # ------------------------------------------------------------------

    def get_return_type(self, node: Any, mthd: Any, new_tenv: TypeEnv,
                        arg_types: List[Type]) -> Type:
        m_ast = self.reify_callee(node, mthd)
        tree = m_ast.tree
        for p, t in zip(tree.params, arg_types):
            self.bind_local_var(new_tenv, p, t)
        nparams = len(tree.params)
        for (p, _), t in zip(tree.optionals, arg_types[nparams:]):
            self.bind_local_var(new_tenv, p, t)
        mtype = self.type(tree, new_tenv)
        self.type_assert(isinstance(mtype, MethodType), "not a method type")
        self.type_assert_params(mtype.params, arg_types, "argument type mismatch")
        return mtype.result()

    @rule(Def)
    def def_(self, node, env):
        ptypes = [env.bound_name(p) or DynType for p in node.params]
        ptypes += [env.bound_name(p) or self.type(d) for p, d in node.optionals]
        mtype = MethodType(ptypes, DynType, node)

        def check_body():
            s = self.type_env.new_tenv()
            self.type_parameters(node, s)
            body_t = self.type(node.body, s)
            self.type_assert_subsume(mtype.result(), body_t, "bad result type")

        self.type_assert_later(check_body)
        return mtype
