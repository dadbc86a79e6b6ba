#!/usr/bin/env python3
"""
Tests for the C type checker: declarations, local variables, calls,
native and foreign functions, and the errors it reports.
"""

import math

import pytest

from dslc.c import Float, Int, IntCArray, arrayof, times, typedecl
from dslc.shared.errors import CheckError
from dslc.shared.types import (
    ArrayType, DynType, FloatType, InstanceType, IntegerType, MethodType, Role, Void,
    local_var_def,
)
from dslc.shared.undef import Undef
from dslc.tree import NodeWalker
from dslc.tree.nodes import Call
from tests.test_utils import typecheck


# ---------------------------------------------------------------------------
# Functions under test
# ---------------------------------------------------------------------------

def add(a: Int, b: Float) -> Float:
    return a + b


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


def returns_in_void(a: Int):
    return 3


def untyped(a):
    return a


def bad_reassign(a: Int) -> Int:
    x = 1
    x = "text"
    return x


def widening(a: Int) -> Float:
    x = 1
    x = 2.5
    y = a
    return x + y


def native_now() -> Int:
    typedecl(native="return 42;")
    return 0


def foreign_sqrt(f: Float):
    typedecl(foreign=Float)
    return math.sqrt(f)


def helper(x: Int) -> Int:
    return x * 2


def caller(y: Int) -> Int:
    return helper(y) + 1


def accumulate(n: Int, acc: Int) -> Int:
    if n == 0:
        return acc
    return accumulate(n - 1, acc + n)


def float_loop_count(a: Float):
    for i in times(a):
        pass


def unknown_callee(x: Int) -> Int:
    return no_such_function(x)  # noqa: F821


def ratio(a: Int, b: Int) -> Float:
    return a / b


def floor_ratio(a: Int, b: Int) -> Int:
    return a // b


def redeclared(a: Int):
    typedecl({'a': Float})


def no_return(a: Int) -> Int:
    a = a + 1


def bitwise_on_float(a: Float) -> Int:
    return a % 2


def bad_arity(n: Int) -> Int:
    if n == 0:
        return 0
    return bad_arity(n - 1, 5)


def store_str(xs: arrayof(Int)):
    xs[0] = "abc"


def store_float(xs: arrayof(Int)):
    xs[0] = 2.5


def str_result(a: Int) -> Int:
    return "abc"


def is_even(n: Int) -> Int:
    if n == 0:
        return 1
    return is_odd(n - 1)


def is_odd(n: Int) -> Int:
    if n == 0:
        return 0
    return is_even(n - 1)


class Grid:
    def __init__(self):
        self.cells = IntCArray(4)

    def get(self, i: Int) -> Int:
        return self.cells[i]

    def get2(self, i: Int) -> Int:
        return self.cells[i, i]


def _call_named(tree, name):
    return NodeWalker.collect(tree, lambda n: isinstance(n, Call) and n.name.name == name)[0]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestDeclarations:
    """Parameter and result types from annotations and typedecl"""

    def test_annotations(self):
        checker, astree = typecheck(add)
        mtype = checker.typetable[astree.tree]
        assert isinstance(mtype, MethodType)
        assert mtype.params == [IntegerType, FloatType]
        assert mtype.result_type == FloatType

    def test_typedecl_dict(self):
        checker, astree = typecheck(total)
        mtype = checker.typetable[astree.tree]
        assert mtype.params == [ArrayType(IntegerType), IntegerType]
        assert mtype.result_type == IntegerType

    def test_typedecl_keywords_default_to_void(self):
        checker, astree = typecheck(scale)
        mtype = checker.typetable[astree.tree]
        assert mtype.params == [ArrayType(FloatType), IntegerType, FloatType]
        assert Void == mtype.result_type

    def test_missing_parameter_type(self):
        with pytest.raises(CheckError) as e:
            typecheck(untyped)
        assert "missing parameter type: a" in str(e.value)

    def test_duplicate_declaration(self):
        with pytest.raises(CheckError) as e:
            typecheck(redeclared)
        assert "incompatible or duplicate declaration: a" in str(e.value)


class TestBodies:
    """Statements and expressions"""

    def test_return_in_void_function(self):
        with pytest.raises(CheckError) as e:
            typecheck(returns_in_void)
        assert "bad return" in str(e.value)

    def test_no_return_statement(self):
        with pytest.raises(CheckError) as e:
            typecheck(no_return)
        assert "no return statement" in str(e.value)

    def test_incompatible_reassignment(self):
        with pytest.raises(CheckError) as e:
            typecheck(bad_reassign)
        assert "incompatible assignment type" in str(e.value)

    def test_array_element_assignment_type(self):
        with pytest.raises(CheckError) as e:
            typecheck(store_str)
        assert "incompatible assignment type" in str(e.value)

    def test_array_element_numeric_conversion(self):
        checker, astree = typecheck(store_float)
        assign = astree.tree.body.expressions[0]
        assert checker.typetable[assign] == IntegerType

    def test_string_result_in_integer_function(self):
        with pytest.raises(CheckError) as e:
            typecheck(str_result)
        assert "bad return type" in str(e.value)

    def test_local_vars_table(self):
        checker, astree = typecheck(widening)
        local_vars = checker.local_vars_table[astree.tree]
        assert set(local_vars) == {"x", "y"}
        assert local_vars["x"] == IntegerType
        assert local_vars["y"].has_role(Role.LOCAL_VAR)

    def test_reassigned_variable_loses_definition(self):
        checker, astree = typecheck(widening)
        local_vars = checker.local_vars_table[astree.tree]
        assert local_var_def(local_vars["x"]).definition is Undef
        assert local_var_def(local_vars["y"]).definition is not Undef

    def test_parameters_not_in_local_vars(self):
        checker, astree = typecheck(total)
        assert set(checker.local_vars_table[astree.tree]) == {"s"}

    def test_division(self):
        checker, astree = typecheck(ratio)
        ret = astree.tree.body.expressions[0]
        assert checker.typetable[ret.values[0]] == FloatType
        checker, astree = typecheck(floor_ratio)
        ret = astree.tree.body.expressions[0]
        assert checker.typetable[ret.values[0]] == IntegerType

    def test_integer_operator_on_float(self):
        with pytest.raises(CheckError) as e:
            typecheck(bitwise_on_float)
        assert "bad operand type" in str(e.value)

    def test_times_loop_needs_integer(self):
        with pytest.raises(CheckError) as e:
            typecheck(float_loop_count)
        assert "the loop count must be an integer" in str(e.value)

    def test_times_block_typed(self):
        checker, astree = typecheck(total)
        loop = _call_named(astree.tree, "times")
        assert Void == checker.typetable[loop]
        assert checker.typetable[loop.block.params[0]] == IntegerType
        assert loop.block in checker.local_vars_table


class TestNativeAndForeign:
    """Bodies written in C, and calls into C libraries"""

    def test_native(self):
        checker, astree = typecheck(native_now)
        mtype = checker.typetable[astree.tree]
        assert mtype.role_info(Role.NATIVE) == "return 42;"
        assert astree.tree not in checker.local_vars_table

    def test_foreign(self):
        checker, astree = typecheck(foreign_sqrt)
        mtype = checker.typetable[astree.tree]
        assert mtype.has_role(Role.FOREIGN)
        assert DynType == mtype.params
        assert mtype.result_type == FloatType


class TestCalls:
    """Calls to other compiled functions"""

    def test_helper_call(self):
        checker, astree = typecheck(caller)
        call = _call_named(astree.tree, "helper")
        t = checker.typetable[call]
        assert t == IntegerType
        assert t.role_info(Role.RESULT).name.name == "helper"
        assert len(astree.astrees) == 2

    def test_recursive_call(self):
        checker, astree = typecheck(accumulate)
        call = _call_named(astree.tree, "accumulate")
        assert checker.typetable[call].role_info(Role.RESULT) is astree.tree

    def test_recursive_call_argument_count(self):
        with pytest.raises(CheckError) as e:
            typecheck(bad_arity)
        assert "argument type mismatch" in str(e.value)

    def test_mutual_recursion(self):
        checker, astree = typecheck(is_even)
        odd_call = _call_named(astree.tree, "is_odd")
        odd_def = checker.typetable[odd_call].role_info(Role.RESULT)
        assert odd_def.name.name == "is_odd"
        even_call = _call_named(odd_def, "is_even")
        assert checker.typetable[even_call].role_info(Role.RESULT) is astree.tree
        assert len(astree.astrees) == 2

    def test_typedef_method_lookup(self, checker):
        grid = Grid()
        checker.add_typedef(Grid)["area"] = MethodType([], FloatType)
        t = checker.lookup_builtin(InstanceType(grid), "area")
        assert t == FloatType
        assert t.has_role(Role.RESULT)
        assert checker.lookup_builtin(InstanceType(grid), "volume") is None
        assert checker.lookup_builtin(DynType, "area") is None

    def test_unknown_callee(self):
        with pytest.raises(CheckError) as e:
            typecheck(unknown_callee)
        assert "bad call to: no_such_function" in str(e.value)


class TestGlobalArrays:
    """Instance variables holding CArray objects"""

    def test_carray_element(self):
        grid = Grid()
        checker, astree = typecheck(grid.get)
        ret = astree.tree.body.expressions[0]
        assert checker.typetable[ret.values[0]] == IntegerType
        assert checker.instance_variables == [grid.cells]

    def test_carray_index_count(self):
        with pytest.raises(CheckError) as e:
            typecheck(Grid().get2)
        assert "bad array index" in str(e.value)
