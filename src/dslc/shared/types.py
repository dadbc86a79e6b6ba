"""
Type Lattice

Types used by the type checkers.  A type is an immutable value supporting
`==`, `<=` (subtype), `supertype`, `exact_type` and `name`.

Roles (result of a call, local variable, native or foreign method, "this
expression ends with a return") are attached alongside a base type instead
of wrapping it:

    t = IntegerType.with_role(Role.LOCAL_VAR, LocalVarDef(node))
    t == IntegerType                      # True, roles never affect ==/<=
    t.has_role(Role.LOCAL_VAR)            # True
    t.copy(Role.LOCAL_VAR).roles          # {}

Don't branch on role presence with isinstance(); use has_role()/role_info().
"""

import copy as _copy
import numbers
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .errors import CheckError
from .undef import Undef


class Role(Enum):
    """Role attached to a type, with the payload stored by `with_role`."""
    RESULT = "result"            # payload: defining Def/Block node, or None
    LOCAL_VAR = "local_var"      # payload: LocalVarDef
    NATIVE = "native"            # payload: C source of the method body
    FOREIGN = "foreign"          # payload: None
    WITH_RETURN = "with_return"  # payload: None


class LocalVarDef:
    """
    Definition site of a local variable.

    `definition` is None until a value is assigned, the assigning node after
    the first assignment, and Undef once the variable is assigned again.
    """
    __slots__ = ("definition",)

    def __init__(self, definition: Any = None):
        self.definition = definition

    def redefine(self, node: Any) -> "LocalVarDef":
        if self.definition is None:
            self.definition = node
        else:
            self.definition = Undef
        return self

    def __repr__(self) -> str:
        return f"LocalVarDef({self.definition!r})"


class Type:
    """Root of the type values."""

    def __init__(self):
        self._roles: Dict[Role, Any] = {}

    # ------------------------------------------------------------------
    # roles
    # ------------------------------------------------------------------

    @property
    def roles(self) -> Dict[Role, Any]:
        return dict(self._roles)

    def with_role(self, role: Role, info: Any = None) -> "Type":
        """Return a copy of this type carrying `role` (payload `info`)."""
        t = _copy.copy(self)
        t._roles = dict(self._roles)
        t._roles[role] = info
        return t

    def has_role(self, role: Role) -> bool:
        return role in self._roles

    def role_info(self, role: Role, default: Any = None) -> Any:
        return self._roles.get(role, default)

    def copy(self, without: Optional[Role] = None) -> "Type":
        """
        Return an equivalent type without the role `without`, or without
        any role when `without` is None.
        """
        if not self._roles or (without is not None and without not in self._roles):
            return self
        t = _copy.copy(self)
        t._roles = {} if without is None else {k: v for k, v in self._roles.items() if k is not without}
        return t

    # ------------------------------------------------------------------
    # structure
    # ------------------------------------------------------------------

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, Type) and self._same(other)

    def __ne__(self, other: Any) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return self._hash()

    def _same(self, other: "Type") -> bool:
        return self is other

    def _hash(self) -> int:
        return id(self)

    def __le__(self, t: "Type") -> bool:
        return self == t or t.is_super_of(self)

    def is_super_of(self, t: "Type") -> bool:
        """Only DynType and UnionType answer True here."""
        return False

    @property
    def exact_type(self) -> Any:
        """The Python class represented by this type, or DynType."""
        return DynType

    @property
    def supertype(self) -> Optional["Type"]:
        """The next coarser type, or None."""
        return None

    @property
    def name(self) -> str:
        return type(self).__name__

    def get_method_object(self, method_name: str) -> Any:
        return None

    def __repr__(self) -> str:
        if self._roles:
            return f"<{self.name} {','.join(r.value for r in self._roles)}>"
        return f"<{self.name}>"


class NonHostType(Type):
    """Types with no Python class behind them: DynType and Void."""

    def __init__(self, type_name: str):
        super().__init__()
        self._type_name = type_name

    @property
    def name(self) -> str:
        return self._type_name

    def _same(self, other: Type) -> bool:
        return isinstance(other, NonHostType) and other._type_name == self._type_name

    def _hash(self) -> int:
        return hash(self._type_name)


class _DynType(NonHostType):
    def is_super_of(self, t: Type) -> bool:
        return True


# Dynamic type.  The top of the lattice.
DynType = _DynType("DynType")

# Void type.
Void = NonHostType("Void")


def _flatten(ts: Sequence[Any]) -> List[Type]:
    out: List[Type] = []
    for t in ts:
        if isinstance(t, (list, tuple)):
            out.extend(_flatten(t))
        else:
            out.append(t)
    return out


class UnionType(Type):
    """A value of this type is a value of one of `types`."""

    def __init__(self, *ts: Any):
        super().__init__()
        members: List[Type] = []
        for e in _flatten(ts):
            for m in (e.types if isinstance(e, UnionType) else (e,)):
                if m not in members:
                    members.append(m)
        self.types = tuple(members)

    @staticmethod
    def make(*ts: Any) -> Type:
        """Build a union; a singleton collapses, DynType absorbs everything."""
        fts = _flatten(ts)
        for e in fts:
            if DynType == e:
                return DynType
        t = UnionType(fts)
        return t.types[0] if len(t.types) == 1 else t

    def _same(self, other: Type) -> bool:
        return (isinstance(other, UnionType) and len(self.types) == len(other.types)
                and set(self.types) == set(other.types))

    def _hash(self) -> int:
        return hash(frozenset(self.types))

    def __le__(self, t: Type) -> bool:
        return DynType == t or all(e <= t for e in self.types)

    def is_super_of(self, t: Type) -> bool:
        return any(t <= e for e in self.types)

    @property
    def name(self) -> str:
        return "(" + "|".join(e.name for e in self.types) + ")"


class CommonSuperType(Type):
    """Instances of `type` or of any of its subclasses."""

    def __init__(self, t: type):
        super().__init__()
        self.type = t

    def _same(self, other: Type) -> bool:
        return isinstance(other, CommonSuperType) and other.type is self.type

    def _hash(self) -> int:
        return hash(self.type) + 1

    def __le__(self, t: Type) -> bool:
        if t.is_super_of(self):
            return True
        return isinstance(t, CommonSuperType) and (
            issubclass(self.type, t.type) or self.type is type(None))

    @property
    def supertype(self) -> Optional[Type]:
        mro = getattr(self.type, "__mro__", ())
        return CommonSuperType(mro[1]) if len(mro) > 1 else None

    @property
    def name(self) -> str:
        return self.type.__name__ + "+"


class ClassType(Type):
    """
    Direct instances of a Python class, subclasses excluded.  The class
    together with its subclasses is a CommonSuperType.
    """
    _table: Dict[Any, "ClassType"] = {}

    def __init__(self, cls: type):
        super().__init__()
        self.cls = cls

    @classmethod
    def make(cls, host_class: type) -> "ClassType":
        obj = cls(host_class)
        cls._table[host_class] = obj
        return obj

    @classmethod
    def of(cls, host_class: Any) -> Any:
        """
        The ClassType for `host_class`.  Anything that is not a class is
        returned unchanged, so `ClassType.of(Void)` is `Void`.
        """
        found = cls._table.get(host_class) if _hashable(host_class) else None
        if found is not None:
            return found
        return cls(host_class) if isinstance(host_class, type) else host_class

    def _same(self, other: Type) -> bool:
        return isinstance(other, ClassType) and other.cls is self.cls

    def _hash(self) -> int:
        return hash(self.cls)

    def __le__(self, t: Type) -> bool:
        if t.is_super_of(self):
            return True
        if isinstance(t, ClassType):
            return t.cls is self.cls or self.cls is type(None)
        return CommonSuperType(self.cls) <= t

    def get_method_object(self, method_name: str) -> Any:
        try:
            return getattr(self.cls, method_name)
        except AttributeError:
            raise CheckError(f"no such method: {self.cls.__name__}#{method_name}") from None

    @property
    def exact_type(self) -> Any:
        return self.cls

    @property
    def supertype(self) -> Optional[Type]:
        return CommonSuperType(self.cls)

    @property
    def name(self) -> str:
        return self.cls.__name__


def _hashable(obj: Any) -> bool:
    try:
        hash(obj)
    except TypeError:
        return False
    return True


def host_class_of(obj: Any) -> type:
    """Class used to type a captured value; numpy scalars map to int/float."""
    cls = type(obj)
    if cls is bool:
        return bool
    if isinstance(obj, numbers.Integral):
        return int
    if isinstance(obj, numbers.Real) and (not issubclass(cls, float) or cls.__module__ == "numpy"):
        return float
    return cls


def _same_value(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    try:
        r = a == b
    except Exception:
        return False
    return r if isinstance(r, bool) else False


class InstanceType(Type):
    """Type of one particular value."""

    def __init__(self, obj: Any):
        super().__init__()
        self.object = obj

    def _same(self, other: Type) -> bool:
        return isinstance(other, InstanceType) and _same_value(other.object, self.object)

    def _hash(self) -> int:
        return hash(self.object) if _hashable(self.object) else id(self.object)

    def __le__(self, t: Type) -> bool:
        if t.is_super_of(self):
            return True
        if isinstance(t, InstanceType) and _same_value(t.object, self.object):
            return True
        return ClassType.of(self.exact_type) <= t

    @property
    def exact_type(self) -> Any:
        return host_class_of(self.object)

    def get_method_object(self, method_name: str) -> Any:
        try:
            return getattr(self.object, method_name)
        except AttributeError:
            raise CheckError(
                f"no such method: {type(self.object).__name__}#{method_name}") from None

    @property
    def supertype(self) -> Optional[Type]:
        return ClassType.of(self.exact_type)

    @property
    def name(self) -> str:
        return repr(self.object)


def _to_type(t: Any) -> Any:
    return t if isinstance(t, Type) else ClassType.of(t)


def _compare_params(p: Any, q: Any) -> bool:
    """True if p <= q element-wise."""
    if isinstance(p, list) and isinstance(q, list):
        return len(p) == len(q) and all(a <= b for a, b in zip(p, q))
    return DynType == q


class MethodType(Type):
    """
    Type of a method or function: parameter types (a list, or DynType for
    "anything") and a result type.  `method_def` is the defining node.
    """

    def __init__(self, params: Any, result_type: Any, method_def: Any = None):
        super().__init__()
        self.params = [_to_type(t) for t in params] if isinstance(params, (list, tuple)) else params
        self.result_type = _to_type(result_type)
        self.method_def = method_def

    def _same(self, other: Type) -> bool:
        return (isinstance(other, MethodType) and self.result_type == other.result_type
                and self.params == other.params)

    def _hash(self) -> int:
        p = tuple(self.params) if isinstance(self.params, list) else self.params
        return hash(self.result_type) + hash(p)

    def __le__(self, t: Type) -> bool:
        if t.is_super_of(self):
            return True
        return (isinstance(t, MethodType) and self.result_type <= t.result_type
                and _compare_params(t.params, self.params))

    def result(self) -> Type:
        """The result type, always carrying the RESULT role."""
        return self.result_type.with_role(Role.RESULT, self.method_def)

    @property
    def name(self) -> str:
        if isinstance(self.params, list):
            ps = "(" + ",".join(e.name for e in self.params) + ")"
        else:
            ps = self.params.name
        return f"{ps}->{self.result_type.name}"


class CompositeType(Type):
    """Parametric type: a Python class plus type arguments."""

    def __init__(self, host_class: type, args: Any):
        super().__init__()
        self.host_class = host_class
        self.args = tuple(args) if isinstance(args, (list, tuple)) else (args,)

    @property
    def first_arg(self) -> Type:
        return self.args[0]

    def _same(self, other: Type) -> bool:
        return (isinstance(other, CompositeType) and other.host_class is self.host_class
                and other.args == self.args)

    def _hash(self) -> int:
        return hash(self.host_class) + sum(hash(a) for a in self.args)

    def __le__(self, t: Type) -> bool:
        if t.is_super_of(self):
            return True
        if isinstance(t, CompositeType):
            return (t.host_class is self.host_class and len(t.args) == len(self.args)
                    and all(a <= b for a, b in zip(self.args, t.args)))
        return ClassType.of(self.host_class) <= t

    @property
    def exact_type(self) -> Any:
        return self.host_class

    @property
    def supertype(self) -> Optional[Type]:
        return ClassType.of(self.host_class)

    @property
    def name(self) -> str:
        return f"{self.host_class.__name__}<{','.join(a.name for a in self.args)}>"

    def get_method_object(self, method_name: str) -> Any:
        try:
            return getattr(self.host_class, method_name)
        except AttributeError:
            raise CheckError(
                f"no such method: {self.host_class.__name__}#{method_name}") from None


class ArrayType(CompositeType):
    """Array of `element_type`; compiled to a C pointer."""

    def __init__(self, element_type: Any):
        super().__init__(list, _to_type(element_type))

    @property
    def element_type(self) -> Type:
        return self.first_arg

    @property
    def name(self) -> str:
        return f"arrayof({self.element_type.name})"


# ---------------------------------------------------------------------------
# Host class types
# ---------------------------------------------------------------------------

IntegerType = ClassType.make(int)
FloatType = ClassType.make(float)
StringType = ClassType.make(str)
BooleanType = ClassType.make(bool)
RangeType = ClassType.make(range)
ListType = ClassType.make(list)
DictType = ClassType.make(dict)
ExceptionType = ClassType.make(BaseException)

# The type of None.  A subtype of every other class type.
NoneClassType = ClassType.make(type(None))

NumericType = CommonSuperType(numbers.Number)


def local_var_def(t: Any) -> Optional[LocalVarDef]:
    """The LocalVarDef of a LOCAL_VAR-role type, or None."""
    if isinstance(t, Type):
        return t.role_info(Role.LOCAL_VAR)
    return None
