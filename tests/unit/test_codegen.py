#!/usr/bin/env python3
"""
Tests for the C code generator: emitted text for functions, loops,
calls, globals, native and foreign functions.
"""

import math

import pytest

from dslc.c import CodeGen, Float, Int, IntCArray, Program, arrayof, times, typedecl
from dslc.c.printer import Printer
from dslc.shared.errors import BuildError, SyntaxCheckError
from tests.test_utils import compilation, emit_c, squash

LIMIT = 7


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


def helper(x: Int) -> Int:
    return x * 2


def caller(y: Int) -> Int:
    return helper(y) + helper(y + 1)


def accumulate(n: Int, acc: Int) -> Int:
    if n == 0:
        return acc
    return accumulate(n - 1, acc + n)


def ratio(a: Int, b: Int) -> Float:
    return a / b


def nested(a: Int, b: Int, c: Int) -> Int:
    return a + b * c


def pick(a: Int, b: Int) -> Int:
    return a if a < b else b


def count_down(n: Int) -> Int:
    k = 0
    while n > 0 and True:
        n -= 1
        k += 2
    return k


def grade(x: Int) -> Int:
    if x > 10:
        return 2
    elif x > 5:
        return 1
    else:
        return 0


def native_now() -> Int:
    typedecl(native="return 42;")
    return 0


def sqrt(f: Float):
    typedecl(foreign=Float)
    return math.sqrt(f)


def norm(a: Float, b: Float) -> Float:
    return sqrt(a * a + b * b)


def limited(a: Int) -> Int:
    return a * LIMIT


def make_scaler(factor):
    def scaled(x: Int) -> Int:
        return x * factor
    return scaled


def negate(x: Float) -> Float:
    return -x + 0.5


def floor_div(a: Int, b: Int) -> Int:
    return a // b


def wrap(a: Int, b: Int) -> Int:
    a %= b
    return a


def last_index(n: Int) -> Int:
    i = 0
    for i in range(0, n):
        i = i
    return i


def fmod(a: Float, b: Float) -> Float:
    return a - b


class Grid:
    def __init__(self):
        self.cells = IntCArray(4, 3)

    def get(self, i: Int, j: Int) -> Int:
        return self.cells[i, j]


class Greeter(Program):
    def greet(self, n: Int) -> Int:
        self.printf("n=%d\n", n)
        return n + 1


class TestFunctions:
    """Signatures, prototypes and function names"""

    def test_headers_first(self):
        src = emit_c(total)
        assert src.startswith("#include <stdint.h>\n")

    def test_prototype_and_body(self):
        src = squash(emit_c(total))
        assert "int32_t total(int32_t* xs, int32_t n);" in src
        assert "int32_t total(int32_t* xs, int32_t n) { int32_t s;" in src
        assert "s = 0;" in src
        assert "return s;" in src

    def test_typedecl_not_printed(self):
        assert "typedecl" not in emit_c(total)

    def test_void_function(self):
        src = squash(emit_c(scale))
        assert "void scale(double* xs, int32_t n, double k) {" in src
        assert "int32_t i;" in src
        assert ("for (int32_t _dslc_k1 = 0, _dslc_e1 = n; _dslc_k1 < _dslc_e1; ++_dslc_k1) {"
                " i = _dslc_k1; xs[i] = xs[i] * k; }") in src

    def test_private_function_is_static_and_renamed(self):
        src = squash(emit_c(caller))
        assert "int32_t caller(int32_t y);" in src
        assert "static int32_t helper_1(int32_t x);" in src
        assert "static int32_t helper_1(int32_t x) { return x * 2; }" in src
        assert "return helper_1(y) + helper_1(y + 1);" in src

    def test_recursive_public_function_keeps_name(self):
        src = squash(emit_c(accumulate))
        assert "if (n == 0) { return acc; }" in src
        assert "return accumulate(n - 1, acc + n);" in src
        assert "static" not in src

    def test_no_parameters(self):
        assert "int32_t native_now(void);" in emit_c(native_now)


class TestStatements:
    """Loops and conditionals"""

    def test_times_counts_down(self):
        src = squash(emit_c(total))
        assert "for (int32_t i = (n) - 1; i >= 0; i--) { s += xs[i]; }" in src

    def test_while_loop(self):
        src = squash(emit_c(count_down))
        assert "while ((n > 0) && 1) { n -= 1; k += 2; }" in src
        assert "int32_t k;" in src

    def test_elif_chain(self):
        src = squash(emit_c(grade))
        assert "if (x > 10) { return 2; } else if (x > 5) { return 1; } else { return 0; }" in src

    def test_conditional_expression(self):
        assert "return (a < b) ? (a) : (b);" in emit_c(pick)

    def test_range_loop_assigns_variable_from_counter(self):
        src = squash(emit_c(last_index))
        assert ("for (int32_t _dslc_k1 = 0, _dslc_e1 = n; _dslc_k1 < _dslc_e1; ++_dslc_k1) {"
                " i = _dslc_k1; i = i; }") in src
        assert "++i" not in src


class TestExpressions:
    """Operators and literals"""

    def test_integer_division_promoted(self):
        assert "return (double)a / b;" in emit_c(ratio)

    def test_nested_binary_parenthesised(self):
        assert "return a + (b * c);" in emit_c(nested)

    def test_unary_and_float_literal(self):
        assert "return -x + 0.5;" in emit_c(negate)

    def test_global_constant_inlined(self):
        assert "return a * 7;" in emit_c(limited)

    def test_closure_constant_inlined(self):
        assert "return x * 3;" in emit_c(make_scaler(3))

    def test_floor_division_helper(self):
        src = emit_c(floor_div)
        assert "return dslc_floordiv(a, b);" in src
        assert "static inline int32_t dslc_floordiv(int32_t a, int32_t b) {" in src
        assert src.index("dslc_floordiv(int32_t a") < src.index("int32_t floor_div(")

    def test_modulo_assignment_helper(self):
        assert "a = dslc_mod(a, b);" in emit_c(wrap)


class TestNativeAndForeign:
    """Bodies in C and calls into C"""

    def test_native_body_verbatim(self):
        src = squash(emit_c(native_now))
        assert "int32_t native_now(void) { return 42; }" in src
        assert "return 0;" not in src

    def test_foreign_call_uses_c_symbol(self):
        src = squash(emit_c(norm))
        assert "return sqrt((a * a) + (b * b));" in src
        assert "double sqrt(" not in src

    def test_program_printf(self):
        src = emit_c(Greeter())
        assert 'printf("n=%d\\n", n);' in src
        assert "int32_t greet(int32_t n) {" in src


class TestGlobals:
    """CArray instance variables become static arrays"""

    def test_global_array(self):
        src = squash(emit_c(Grid().get))
        assert "static int32_t _gvar_0_[4][3];" in src
        assert "return _gvar_0_[i][j];" in src


class TestTranslationUnit:
    """Compilation bookkeeping"""

    def test_exported_signatures(self):
        comp = compilation(caller)
        names, mtypes = comp.exported_signatures()
        assert names == ["caller"]
        assert mtypes[0].name == "(int)->int"

    def test_build_refused_with_errors(self, checker, work_dir):
        gen = CodeGen(Printer(), checker, [])
        gen.error(None, "cannot print this")
        assert gen.errors()
        with pytest.raises(BuildError) as e:
            gen.build_lib("never_built", work_dir)
        assert "cannot print this" in str(e.value)

    def test_exported_name_clashing_with_libc(self, work_dir):
        comp = compilation(fmod)
        assert comp.codegen.errors()
        assert "fmod clashes with a C library name" in comp.codegen.error_messages[0]
        with pytest.raises(BuildError):
            comp.codegen.build_lib("never_built", work_dir)

    def test_private_name_clashing_with_libc_is_renamed(self):
        def uses_fmod(a: Float) -> Float:
            return fmod(a, 2.0)
        comp = compilation(uses_fmod)
        assert not comp.codegen.errors()
        assert "static double fmod_1(double a, double b);" in comp.source

    def test_object_without_public_methods(self):
        with pytest.raises(SyntaxCheckError) as e:
            emit_c(object())
        assert "nothing to compile" in str(e.value)
