#!/usr/bin/env python3
"""
Tests for the reifier: tree shapes, the tree table and the value oracle.
"""

import pytest

from dslc.c import ctype
from dslc.shared.errors import SyntaxCheckError
from dslc.shared.undef import Undef
from dslc.tree import (
    ASTreeTable, Block, Call, ConstPathRef, Def, ForLoop, Identifier, InstanceVariable,
    NodeWalker, Reserved, reify,
)
from tests.test_utils import reify_tree, tree_text

SCALE = 10


def add(a, b):
    return a + b


def documented(x):
    """Docstrings are not part of the tree."""
    return x


def loop_range(n):
    s = 0
    for i in range(n):
        s += i
    return s


def loop_times(n):
    for i in times(n):  # noqa: F821
        pass


def choose(a, b):
    return a if a < b else b


def chained(a, b, c):
    return a < b < c


def negative():
    return -3


def uses_global(x):
    return x * SCALE


def uses_builtin(xs):
    return len(xs)


def uses_module_const(x):
    return ctype.Int


def make_scaler(scale):
    def scaled(x):
        return x * scale
    return scaled


def with_statement(path):
    with open(path) as f:
        return f


def comprehension(xs):
    return [x for x in xs]


def slicing(xs):
    return xs[1:2]


def chained_call(a, c):
    return a < abs(c) < 10


def chained_constant(a, b):
    return 0 <= a < b


class Counter:
    def __init__(self):
        self.count = 7

    def bump(self, by):
        self.count = self.count + by
        return self.helper(by)

    def helper(self, v):
        return v


def _names(tree, name):
    return NodeWalker.collect(tree, lambda n: isinstance(n, Identifier) and n.name == name)


class TestTreeShapes:
    """Python statements and expressions map onto nodes"""

    def test_simple_function(self):
        assert tree_text(add) == \
            "(Def add [a b] (Exprs [(Return [(Binary (Identifier a) + (Identifier b))])]))"

    def test_docstring_dropped(self):
        assert tree_text(documented) == "(Def documented [x] (Exprs [(Return [(Identifier x)])]))"

    def test_for_range_is_for_loop(self):
        body = reify_tree(loop_range).tree.body.expressions
        loop = body[1]
        assert isinstance(loop, ForLoop)
        assert loop.set.op == "..."
        assert loop.set.left.value == 0
        assert body[1].body.expressions[0].op == "+="

    def test_for_over_call_is_block_call(self):
        call = reify_tree(loop_times).tree.body.expressions[0]
        assert isinstance(call, Call)
        assert call.name.name == "times"
        assert isinstance(call.block, Block)
        assert [p.name for p in call.block.params] == ["i"]
        assert call.block.body.expressions == []

    def test_conditional_expression(self):
        cond = reify_tree(choose).tree.body.expressions[0].values[0]
        assert cond.op == "ifop"
        assert cond.all_elsif == []

    def test_chained_comparison(self):
        text = tree_text(chained)
        assert "(Binary (Binary (Identifier a) < (Identifier b)) and " \
               "(Binary (Identifier b) < (Identifier c)))" in text

    def test_chained_comparison_with_constant(self):
        text = tree_text(chained_constant)
        assert "(Binary (Binary 0 <= (Identifier a)) and " \
               "(Binary (Identifier a) < (Identifier b)))" in text

    def test_negative_literal_folded(self):
        assert tree_text(negative) == "(Def negative [] (Exprs [(Return [-3])]))"

    def test_method_drops_self(self):
        tree = reify_tree(Counter().bump).tree
        assert [p.name for p in tree.params] == ["by"]
        assign = tree.body.expressions[0]
        assert isinstance(assign.left, InstanceVariable)
        call = tree.body.expressions[1].values[0]
        assert call.receiver is None
        assert call.name.name == "helper"

    def test_location_points_into_this_file(self):
        tree = reify_tree(add).tree
        assert tree.location.file.endswith("test_reify.py")
        assert tree.location.line == add.__code__.co_firstlineno
        assert tree.location.column == 1

    @pytest.mark.parametrize("func", [with_statement, comprehension, slicing, chained_call])
    def test_unsupported_syntax(self, func):
        with pytest.raises(SyntaxCheckError) as e:
            reify(func)
        assert "unsupported Python syntax" in str(e.value)
        assert e.value.location is not None


class TestTreeTable:
    """Reifying through a shared table"""

    def test_same_function_same_tree(self):
        table = ASTreeTable()
        first = table.reify(add)
        assert table.reify(add) is first
        assert len(table) == 1

    def test_fresh_tables_are_independent(self):
        assert reify(add) is not reify(add)

    def test_bound_methods_keyed_by_receiver(self):
        table = ASTreeTable()
        a, b = Counter(), Counter()
        assert table.reify(a.bump) is not table.reify(b.bump)
        assert table.reify(a.bump).receiver is a

    def test_sibling_reify_shares_table(self):
        c = Counter()
        bump = reify_tree(c.bump)
        helper = bump.reify(c.helper)
        assert helper.astrees is bump.astrees
        assert len(bump.astrees) == 2

    def test_no_source(self):
        assert reify(len) is None

    def test_tree_knows_its_context(self):
        assert reify_tree(Counter().bump).context is Counter
        assert reify_tree(add).context is None


class TestValueOracle:
    """Compile-time values of names"""

    def test_global(self):
        tree = reify_tree(uses_global).tree
        scale = NodeWalker.collect(tree, lambda n: getattr(n, "name", None) == "SCALE")[0]
        assert scale.value == 10

    def test_closure_before_globals(self):
        tree = reify_tree(make_scaler(3)).tree
        assert _names(tree, "scale")[0].value == 3

    def test_builtin(self):
        tree = reify_tree(uses_builtin).tree
        call = tree.body.expressions[0].values[0]
        assert call.value is len

    def test_module_attribute(self):
        tree = reify_tree(uses_module_const).tree
        ref = tree.body.expressions[0].values[0]
        assert isinstance(ref, ConstPathRef)
        assert ref.value is ctype.Int

    def test_parameter_has_no_value(self):
        tree = reify_tree(add).tree
        assert _names(tree, "a")[0].value is Undef

    def test_instance_variable(self):
        c = Counter()
        tree = reify_tree(c.bump).tree
        ivars = NodeWalker.collect(tree, lambda n: isinstance(n, InstanceVariable))
        assert ivars[0].value == 7

    def test_reserved(self):
        r = Reserved("True")
        assert reify_tree(add).value_of(r) is True

    def test_detached_node_has_no_value(self):
        assert Identifier("len").value is Undef
        assert isinstance(reify_tree(add).tree, Def)
