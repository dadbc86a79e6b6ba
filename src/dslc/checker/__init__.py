"""
Rule-dispatch checkers and the host-language type checkers.
"""

from .checker import Checker, rule
from .typecheck import TypeChecker, TypeEnv, BaseTypeEnv, FreeVarFinder, TypeDef
from .host_typecheck import HostTypeChecker
from .host_typeinfer import HostTypeInferer
