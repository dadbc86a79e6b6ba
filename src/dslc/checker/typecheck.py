"""
Type Checker Base

TypeChecker specialises Checker: every rule returns the type of its node,
and the type is memoised per node, so a node is typed at most once.

Type environments chain lexical scopes.  The base environment of a
function knows the class the function belongs to (its context).
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterator, Optional, Tuple

from ..shared.types import DynType, Type
from .checker import Checker

logger = logging.getLogger("dslc.checker.typecheck")


def _key(name: Any) -> Optional[str]:
    if name is None:
        return None
    return name if isinstance(name, str) else name.name


class TypeEnv:
    """A scope: names bound to types, plus a link to the enclosing scope."""

    def __init__(self, parent: Optional["TypeEnv"] = None):
        self.parent = parent
        self.names: Dict[str, Type] = {}

    def each(self) -> Iterator[Tuple[str, Type]]:
        return iter(list(self.names.items()))

    def new_tenv(self) -> "TypeEnv":
        return TypeEnv(self)

    def new_base_tenv(self, klass: Optional[type] = None) -> "BaseTypeEnv":
        return BaseTypeEnv(self.context if klass is None else klass)

    def bind_name(self, name: Any, t: Type) -> None:
        key = _key(name)
        if key is not None:
            self.names[key] = t

    def bound_name(self, name: Any) -> Optional[Type]:
        t = self.names.get(_key(name))
        if t is None and self.parent is not None:
            return self.parent.bound_name(name)
        return t

    @property
    def context(self) -> Optional[type]:
        return None if self.parent is None else self.parent.context


class BaseTypeEnv(TypeEnv):
    """Outermost scope of a function; `context` is its class."""

    def __init__(self, cls: Optional[type]):
        super().__init__(None)
        self._class = cls

    @property
    def context(self) -> Optional[type]:
        return self._class


class FreeVarFinder(TypeEnv):
    """
    A scope recording every name found through its parent link, i.e. the
    free variables of the code typed in it.
    """

    def __init__(self, parent: Optional[TypeEnv]):
        super().__init__(parent)
        self.free_variables: "OrderedDict[str, Type]" = OrderedDict()

    def bound_name(self, name: Any) -> Optional[Type]:
        key = _key(name)
        t = self.names.get(key)
        if t is None:
            t = self.parent.bound_name(name) if self.parent is not None else None
            if t is not None:
                self.free_variables[key] = t
        return t


class TypeDef:
    """Types of the instance variables of one object or class."""

    def __init__(self):
        self.names: Dict[str, Type] = {}

    def __getitem__(self, name: Any) -> Optional[Type]:
        return self.names.get(_key(name))

    def __setitem__(self, name: Any, t: Type) -> None:
        self.names[_key(name)] = t


class TypeChecker(Checker):
    """Checker whose rules compute types."""

    def __init__(self):
        super().__init__()
        self.typetable: Dict[Any, Type] = {}
        self.typedefs: Dict[Any, TypeDef] = {}

    @property
    def type_env(self) -> TypeEnv:
        return self._current_env

    def typedef(self, key: Any) -> Optional[TypeDef]:
        if key is None:
            return None
        try:
            return self.typedefs.get(key)
        except TypeError:
            return None

    def add_typedef(self, key: Any) -> TypeDef:
        td = self.typedefs.get(key)
        if td is None:
            td = self.typedefs[key] = TypeDef()
        return td

    def typecheck(self, tree: Any) -> Any:
        return self.check_all(tree)

    def make_base_env(self, klass: Optional[type]) -> TypeEnv:
        return BaseTypeEnv(klass)

    def check(self, node: Any, env: Any = None) -> Any:
        return self.type(node, env)

    def type(self, node: Any, env: Optional[TypeEnv] = None) -> Type:
        """Type of `node`, computed once and memoised."""
        if node is None:
            return DynType
        t = self.typetable.get(node)
        if t is not None:
            return t
        t = self.apply_typing_rule(type(self).find_rule_entry(node), node, env)
        self.typetable[node] = t
        return t

    def type_as(self, node: Any, t: Type) -> Type:
        if node is None:
            return DynType
        self.typetable[node] = t
        return t

    def type_assert(self, is_valid: Any, errmsg: str = "") -> None:
        if not is_valid:
            self.error_found(self._current_ast, errmsg)

    def type_assert_false(self, is_invalid: Any, errmsg: str = "") -> None:
        if is_invalid:
            self.error_found(self._current_ast, errmsg)

    def type_assert_later(self, fn) -> None:
        self.check_later(fn)

    @property
    def error_group(self) -> str:
        return "type"
