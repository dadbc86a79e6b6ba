"""
dslc: compiles a small statically typed subset of Python to C.

    from dslc.c import compile, Int

    def add(a: Int, b: Int) -> Int:
        return a + b

    compile(add).add(1, 2)
"""

__version__ = "0.1.0"
