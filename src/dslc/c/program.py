"""
Program base class

Subclass Program and write methods in the C subset.  Every public method
defined by the subclass is exported; the helpers below are available to
them as `self.printf(...)`, `self.sqrt(...)` and so on.

    class Fib(Program):
        def fib(self, n: Int) -> Int:
            return n if n < 2 else self.fib(n - 1) + self.fib(n - 2)

    lib = Fib.compile()
    lib.fib(30)

Each helper also runs as plain Python, so an instance can be called
directly before it is compiled.
"""

import math
import sys
import time
from typing import Any, Optional

from .ctype import Float, Float32, Int, String, Void, typedecl


class Program:
    """Functions callable from compiled methods."""

    def printf(self, s: String, *args):
        typedecl(foreign=Void)
        sys.stdout.write(s % args)

    def current_time(self) -> Int:
        """Microseconds from a monotonic clock."""
        typedecl(native="struct timespec time;\n"
                        "clock_gettime(CLOCK_MONOTONIC, &time);\n"
                        "return time.tv_sec * 1000000 + time.tv_nsec / 1000;")
        return int(time.monotonic() * 1000000)

    def sqrt(self, f: Float):
        typedecl(foreign=Float)
        return math.sqrt(f)

    def sqrtf(self, f: Float32):
        typedecl(foreign=Float32)
        return Float32(math.sqrt(f))

    def exp(self, f: Float):
        typedecl(foreign=Float)
        return math.exp(f)

    def expf(self, f: Float32):
        typedecl(foreign=Float32)
        return Float32(math.exp(f))

    def log(self, f: Float):
        typedecl(foreign=Float)
        return math.log(f)

    def logf(self, f: Float32):
        typedecl(foreign=Float32)
        return Float32(math.log(f))

    @classmethod
    def compile(cls, module_name: Optional[str] = None, lib_name: Optional[str] = None,
                dir: Optional[str] = None) -> Any:
        """Compile a fresh instance; returns the module of exported functions."""
        from .driver import compile as compile_obj
        return compile_obj(cls(), lib_name=lib_name, dir=dir, module_name=module_name)

    @classmethod
    def ocl_compile(cls, module_name: Optional[str] = None, lib_name: Optional[str] = None,
                    dir: Optional[str] = None, args: Optional[tuple] = None) -> Any:
        """Like compile, with OpenCL kernels; `args` go to the constructor."""
        from .driver import ocl_compile
        return ocl_compile(cls(*(args or ())), lib_name=lib_name, dir=dir,
                           module_name=module_name)
