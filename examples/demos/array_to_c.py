"""Passing numpy-backed arrays to compiled methods.

    python examples/demos/array_to_c.py
"""

from dslc.c import Int, IntArray, Program, Void, arrayof, times, typedecl


class ArrayToC(Program):
    def inc(self, a, b, n) -> Void:
        typedecl(a=arrayof(Int), b=arrayof(Int), n=Int)
        for i in range(0, n):
            b[i] = a[i] + 1

    def inc2(self, a, b, n) -> Void:
        typedecl(a=arrayof(Int), b=arrayof(Int), n=Int)
        for i in times(n):
            b[i] = a[i] + 1


if __name__ == "__main__":
    a_in = IntArray(list(range(5)))
    a_in[0] = 7
    a_out = IntArray(5)
    m = ArrayToC.compile()
    m.inc(a_in, a_out, len(a_in))
    print(list(a_out))
    m.inc2(a_in, a_out, len(a_in))
    print(list(a_out))
