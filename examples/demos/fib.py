"""Recursive Fibonacci compiled to C.

    python examples/demos/fib.py
"""

from dslc.c import Int, run


def fib(n: Int) -> Int:
    if n > 1:
        return fib(n - 1) + fib(n - 2)
    else:
        return n


if __name__ == "__main__":
    print(run(fib, 32))
