"""
C Types

Names usable in `typedecl`, annotations and `arrayof`, the numpy-backed
array classes shared with C, and the mapping from types to C type names
and to ctypes argument types.

    def add(self, a: Int, b: Float) -> Float:
        return a + b

    def total(self, xs, n):
        typedecl({'xs': arrayof(Int), 'n': Int, 'return': Int})
        ...

    def scale(self, xs, n, k):
        typedecl(xs=arrayof(Float), n=Int, k=Float)   # returns nothing

Outside compiled code the directive functions do nothing, so a program
also runs as plain Python.
"""

import ctypes
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import numpy as np

from ..shared.types import ArrayType, ClassType, Type, Void as _Void

# ---------------------------------------------------------------------------
# Scalar types
# ---------------------------------------------------------------------------

Int = int
Float = float
String = str
Void = _Void


class Float32(float):
    """A single precision float, `float` in C."""


Float32Type = ClassType.make(Float32)


# ---------------------------------------------------------------------------
# Directives
# ---------------------------------------------------------------------------

def typedecl(*decls: Any, **kwdecls: Any) -> None:
    """Declare parameter, return, native or foreign types.  No-op in Python."""
    return None


def arrayof(element: Any) -> ArrayType:
    """The type of an array of `element`."""
    return ArrayType(ClassType.of(element))


def times(n: int):
    """`for i in times(n):` runs the body for i = n-1 down to 0."""
    return reversed(range(n))


def ocl_times(n: int):
    """`for i in ocl_times(n):` runs the body on an OpenCL device."""
    return range(n)


# ---------------------------------------------------------------------------
# Arrays passed to C functions
# ---------------------------------------------------------------------------

_DTYPES = {int: np.int32, float: np.float64, Float32: np.float32}


class FFIArray(np.ndarray):
    """
    A one-dimensional numpy array passed to C as a pointer.  Construct it
    from a size (zero-filled) or from a sequence of values.
    """
    element_type: Any = None

    def __new__(cls, size_or_values: Any):
        dtype = _DTYPES[cls.element_type]
        if isinstance(size_or_values, int):
            arr = np.zeros(size_or_values, dtype=dtype)
        else:
            arr = np.ascontiguousarray(size_or_values, dtype=dtype)
        return arr.view(cls)

    @property
    def size_in_bytes(self) -> int:
        return self.nbytes


class IntArray(FFIArray):
    element_type = Int


class FloatArray(FFIArray):
    element_type = Float


class Float32Array(FFIArray):
    element_type = Float32


# ---------------------------------------------------------------------------
# Global arrays (instance variables compiled to C globals)
# ---------------------------------------------------------------------------

class IvarObj(ABC):
    """An object stored in an instance variable and compiled to a C global."""

    type: Any = None

    @property
    @abstractmethod
    def sizes(self) -> Tuple[int, ...]:
        """Dimensions of the C array."""


class CArray(IvarObj):
    """
    A fixed-size multi-dimensional array.  In C it is a static global
    array; in Python a numpy array of the same shape.
    """

    def __init__(self, element_type: Any, *sizes: int):
        if not sizes:
            raise ValueError("CArray needs at least one size")
        self.type = element_type
        self._sizes = tuple(int(s) for s in sizes)
        self.data = np.zeros(self._sizes, dtype=_DTYPES[element_type])

    @property
    def sizes(self) -> Tuple[int, ...]:
        return self._sizes

    def _index(self, index: Any) -> Tuple[int, ...]:
        idx = index if isinstance(index, tuple) else (index,)
        if len(idx) != len(self._sizes):
            raise IndexError(f"wrong number of indexes: {len(idx)} for {len(self._sizes)}")
        for i, n in zip(idx, self._sizes):
            if not 0 <= i < n:
                raise IndexError(f"index out of range: {i} for size {n}")
        return idx

    def __getitem__(self, index: Any) -> Any:
        return self.data[self._index(index)]

    def __setitem__(self, index: Any, value: Any) -> None:
        self.data[self._index(index)] = value


class IntCArray(CArray):
    def __init__(self, *sizes: int):
        super().__init__(Int, *sizes)


class FloatCArray(CArray):
    def __init__(self, *sizes: int):
        super().__init__(Float, *sizes)


class OclArray(IvarObj):
    """A single precision array in OpenCL device memory."""

    type = Float32

    def __init__(self, size: int):
        self.size = int(size)
        self.data = np.zeros(self.size, dtype=np.float32)

    @property
    def sizes(self) -> Tuple[int, ...]:
        return (self.size,)

    def __getitem__(self, index: int) -> Any:
        return self.data[index]

    def __setitem__(self, index: int, value: Any) -> None:
        self.data[index] = value

    def copyfrom(self, array, length) -> Int:
        typedecl({'array': arrayof(Float32), 'length': Int, 'native': 'return 0;'})
        return 0

    def copyto(self, array, length) -> Int:
        typedecl({'array': arrayof(Float32), 'length': Int, 'native': 'return 0;'})
        return 0


# ---------------------------------------------------------------------------
# Type names
# ---------------------------------------------------------------------------

_C_NAMES = {int: "int32_t", float: "double", Float32: "float", str: "char*"}

_CTYPES = {int: ctypes.c_int32, float: ctypes.c_double, Float32: ctypes.c_float,
           str: ctypes.c_char_p}


def _host_class(t: Any) -> Any:
    return t.exact_type if isinstance(t, Type) else t


def c_type_name(t: Any) -> Optional[str]:
    """The C name of `t`, or None when `t` has no C counterpart."""
    if Void == t:
        return "void"
    if isinstance(t, ArrayType):
        element = c_type_name(t.element_type)
        return None if element is None else element + "*"
    return _C_NAMES.get(_host_class(t))


def numpy_dtype(t: Any) -> Any:
    return _DTYPES.get(_host_class(t))


def ctypes_type(t: Any) -> Any:
    """The ctypes argument or result type of `t`."""
    if Void == t:
        return None
    if isinstance(t, ArrayType):
        return np.ctypeslib.ndpointer(dtype=numpy_dtype(t.element_type), flags="C_CONTIGUOUS")
    found = _CTYPES.get(_host_class(t))
    if found is None:
        raise TypeError(f"no ctypes type for {t!r}")
    return found
