#!/usr/bin/env python3
"""
End-to-end tests: compile Python functions to shared libraries with the
C compiler, load them and call the compiled code.
"""

import os

import numpy as np
import pytest

from dslc.c import (
    Float, FloatArray, Int, IntArray, IntCArray, Program, arrayof, compile, config, run, times,
    typedecl,
)
from dslc.shared.errors import BuildError

pytestmark = pytest.mark.needs_cc


def accumulate(n: Int, acc: Int) -> Int:
    if n == 0:
        return acc
    return accumulate(n - 1, acc + n)


def is_even(n: Int) -> Int:
    if n == 0:
        return 1
    return is_odd(n - 1)


def is_odd(n: Int) -> Int:
    if n == 0:
        return 0
    return is_even(n - 1)


def exp(x: Float) -> Float:
    return x * x


def total(xs, n):
    typedecl({'xs': arrayof(Int), 'n': Int, 'return': Int})
    s = 0
    for i in times(n):
        s += xs[i]
    return s


def scale(xs, n, k):
    typedecl(xs=arrayof(Float), n=Int, k=Float)
    for i in range(0, n):
        xs[i] = xs[i] * k


def make_calc(offset):
    def calc(x: Int) -> Int:
        return x + offset
    return calc


def square(x: Int) -> Int:
    return x * x


def sum_of_squares(a: Int, b: Int) -> Int:
    return square(a) + square(b)


def broken_native() -> Int:
    typedecl(native="return @;")
    return 0


class Geometry(Program):
    def hyp(self, a: Float, b: Float) -> Float:
        return self.sqrt(a * a + b * b)


class Arithmetic:
    def floor_div(self, a: Int, b: Int) -> Int:
        return a // b

    def floor_mod(self, a: Int, b: Int) -> Int:
        return a % b

    def in_place_floor(self, a: Int, b: Int) -> Int:
        q = a
        q //= b
        a %= b
        return q * 100 + a

    def last_index(self, n: Int) -> Int:
        i = 0
        for i in range(0, n):
            i = i
        return i


class Cells:
    def __init__(self):
        self.cells = IntCArray(8)

    def put(self, i: Int, v: Int):
        self.cells[i] = v

    def get(self, i: Int) -> Int:
        return self.cells[i]


class TestScalars:
    """Scalar arguments and results"""

    @pytest.mark.parametrize("n", range(11))
    def test_recursion(self, work_dir, n):
        assert run(accumulate, n, 0, dir=work_dir) == accumulate(n, 0)

    def test_mutual_recursion(self, work_dir):
        lib = compile(is_even, dir=work_dir)
        assert [lib.is_even(n) for n in range(6)] == [1, 0, 1, 0, 1, 0]
        assert not hasattr(lib, "is_odd")

    def test_private_helper(self, work_dir):
        lib = compile(sum_of_squares, dir=work_dir)
        assert lib.sum_of_squares(3, 4) == 25
        assert not hasattr(lib, "square")

    def test_argument_count_checked(self, work_dir):
        lib = compile(accumulate, dir=work_dir)
        with pytest.raises(TypeError):
            lib.accumulate(1)


OPERANDS = [(7, 2), (-7, 2), (7, -2), (-7, -2), (-7, 3), (6, -3), (0, -5)]


class TestArithmetic:
    """Integer operators and loops keep their Python results"""

    @pytest.fixture(scope="class")
    def lib(self, tmp_path_factory):
        return compile(Arithmetic(), dir=str(tmp_path_factory.mktemp("arith")))

    @pytest.mark.parametrize("a,b", OPERANDS)
    def test_floor_division(self, lib, a, b):
        assert lib.floor_div(a, b) == a // b

    @pytest.mark.parametrize("a,b", OPERANDS)
    def test_modulo(self, lib, a, b):
        assert lib.floor_mod(a, b) == a % b

    @pytest.mark.parametrize("a,b", OPERANDS)
    def test_augmented_assignment(self, lib, a, b):
        assert lib.in_place_floor(a, b) == Arithmetic().in_place_floor(a, b)

    @pytest.mark.parametrize("n", [0, 1, 5])
    def test_range_variable_after_loop(self, lib, n):
        assert lib.last_index(n) == Arithmetic().last_index(n)


class TestArrays:
    """Arrays passed by pointer"""

    def test_sum_list(self, work_dir):
        lib = compile(total, dir=work_dir)
        assert lib.total([1, 2, 3, 4], 4) == 10
        assert lib.total(IntArray([5, 6]), 2) == 11

    def test_in_place_update(self, work_dir):
        xs = FloatArray([1.0, 2.5])
        compile(scale, dir=work_dir).scale(xs, 2, 2.0)
        assert list(xs) == [2.0, 5.0]

    def test_global_array_keeps_state(self, work_dir):
        lib = compile(Cells(), dir=work_dir)
        lib.put(3, 42)
        assert lib.get(3) == 42
        assert lib.get(0) == 0


class TestLibraries:
    """Library naming, loading and the Program entry point"""

    def test_independent_artifacts(self, work_dir):
        one = compile(make_calc(1), dir=work_dir)
        ten = compile(make_calc(10), dir=work_dir)
        assert one.calc(5) == 6
        assert ten.calc(5) == 15
        assert one.__file__ != ten.__file__

    def test_source_written(self, work_dir):
        lib = compile(square, lib_name="sq", dir=work_dir)
        sources = [f for f in os.listdir(work_dir) if f.startswith("sq_") and f.endswith(".c")]
        assert len(sources) == 1
        assert os.path.basename(lib.__file__).startswith("libsq_")

    def test_program_compile(self, work_dir):
        lib = Geometry.compile(dir=work_dir)
        assert lib.hyp(3.0, 4.0) == pytest.approx(5.0)
        assert np.isclose(lib.hyp(1.0, 1.0), np.sqrt(2.0))


class TestBuildFailures:
    """Compiler failures surface as BuildError"""

    def test_compiler_rejects_source(self, work_dir):
        with pytest.raises(BuildError) as e:
            compile(broken_native, dir=work_dir)
        assert e.value.all_messages[0].startswith("exit ")

    def test_missing_compiler(self, work_dir, monkeypatch):
        monkeypatch.setattr(config, "COMPILER", "dslc-no-such-compiler -shared")
        with pytest.raises(BuildError) as e:
            compile(square, dir=work_dir)
        assert "cannot run the C compiler" in str(e.value)

    def test_exported_name_clashing_with_libc(self, work_dir):
        with pytest.raises(BuildError) as e:
            compile(exp, dir=work_dir)
        assert "exp clashes with a C library name" in str(e.value)
