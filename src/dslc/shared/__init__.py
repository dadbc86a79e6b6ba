"""
Shared components: source locations, diagnostics, the type lattice.
"""

from .source_location import SourceLocation
from .errors import (
    Error, ErrorReporter, DslError, SyntaxCheckError, CheckError, BuildError,
)
from .undef import Undef
from .types import (
    Type, Role, LocalVarDef, DynType, Void, UnionType, CommonSuperType, ClassType,
    InstanceType, MethodType, CompositeType, ArrayType,
    IntegerType, FloatType, StringType, BooleanType, RangeType, ListType, DictType,
    NoneClassType, NumericType, local_var_def,
)
