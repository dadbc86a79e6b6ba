"""
C and OpenCL back ends: type checker, code generators, build driver and
the names used in compiled code.
"""

from .ctype import (
    Int, Float, String, Void, Float32, Float32Type, typedecl, arrayof, times, ocl_times,
    FFIArray, IntArray, FloatArray, Float32Array, IvarObj, CArray, IntCArray, FloatCArray,
    OclArray,
)
from .ctypecheck import ClangTypeChecker, c_syntax
from .codegen import CodeGen
from .opencl import OclTypeChecker, OclCodeGen
from .program import Program
from .driver import Compilation, compile, ocl_compile, run, emit
