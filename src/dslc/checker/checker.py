"""
Rule-Dispatch Checker

Base of the type checkers and the code generator.  A subclass declares
one handler per node kind or grammar tag with `@rule`:

    class Counter(Checker):
        @rule(Number)
        def number(self, node, env):
            return 1

        @rule("expr_stmt", Binary)
        def binary(self, node, env):
            return self.check(node.left) + self.check(node.right)

Rules are looked up by the node's `usertype` tag first, then by its class
and that class's ancestors.  A subclass inherits every rule of its parent
and may override any of them; an overriding handler can hand the node to
the parent's rule with `proceed(node)`.

`check_later(fn)` queues work that must wait until the current tree has
been walked completely (for example a function body that refers to a
callee still being typed).  `check_all` drains the queue in FIFO order.
"""

import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from ..shared.errors import CheckError
from ..tree.nodes import ASTnode

logger = logging.getLogger("dslc.checker.checker")

RuleEntry = Tuple[Callable[..., Any], type]


def rule(*keys: Any) -> Callable:
    """Declare the decorated method as the handler for `keys`."""
    def decorate(func: Callable) -> Callable:
        func._rule_keys = keys
        return func
    return decorate


class Checker:
    """
    Walks a tree by dispatching every node to the rule declared for it.
    """
    _rules: Dict[Any, RuleEntry] = {}
    _parent_layer: Optional[type] = None

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        parent = next(b for b in cls.__mro__[1:] if issubclass(b, Checker))
        cls._parent_layer = parent
        cls._rules = dict(parent._rules)
        for func in cls.__dict__.values():
            for key in getattr(func, "_rule_keys", ()):
                cls._rules[key] = (func, cls)

    @classmethod
    def find_rule_entry(cls, node: Any) -> Optional[RuleEntry]:
        utype = getattr(node, "usertype", None)
        if utype is not None:
            entry = cls._rules.get(utype)
            if entry is not None:
                return entry
        for klass in type(node).__mro__:
            entry = cls._rules.get(klass)
            if entry is not None:
                return entry
        return None

    def __init__(self):
        self.last_error = ""
        self._check_list: Deque[Tuple[Any, Any, Callable[[], Any]]] = deque()
        self._current_ast: Any = None
        self._current_env: Any = None
        self._rule_declarator: Optional[type] = None

    # ------------------------------------------------------------------
    # state visible to rules
    # ------------------------------------------------------------------

    @property
    def ast(self) -> Any:
        return self._current_ast

    @property
    def ast_env(self) -> Any:
        return self._current_env

    # ------------------------------------------------------------------
    # driving
    # ------------------------------------------------------------------

    def check_all(self, tree: Any) -> Any:
        """Check `tree` (a node or an ASTree), then every deferred check."""
        if tree is None:
            return None
        node = tree if isinstance(tree, ASTnode) else tree.tree
        result = self.check(node, self.make_base_env(node.get_context_class()))
        while self._check_list:
            cur_ast, cur_env, fn = self._check_list.popleft()
            self._current_ast = cur_ast
            self._current_env = cur_env
            fn()
        return result

    def make_base_env(self, klass: Optional[type]) -> Any:
        return klass

    def check(self, node: Any, env: Any = None) -> Any:
        if node is None:
            return None
        return self.apply_typing_rule(type(self).find_rule_entry(node), node, env)

    def apply_typing_rule(self, entry: Optional[RuleEntry], node: Any, env: Any) -> Any:
        if entry is None:
            self.error_found(node, f"no typing rule for {type(node).__name__}")
        func, declarator = entry
        old = (self._current_ast, self._current_env, self._rule_declarator)
        self._current_ast = node
        if env is not None:
            self._current_env = env
        self._rule_declarator = declarator
        try:
            return func(self, node, self._current_env)
        finally:
            self._current_ast, self._current_env, self._rule_declarator = old

    def proceed(self, node: Any, env: Any = None) -> Any:
        """Apply the rule the current rule overrides."""
        parent = self._rule_declarator._parent_layer if self._rule_declarator else None
        entry = parent.find_rule_entry(node) if parent is not None else None
        if entry is None:
            self.error_found(node, "no more rule. we cannot proceed")
        return self.apply_typing_rule(entry, node, env)

    def check_later(self, fn: Callable[[], Any]) -> None:
        self._check_list.append((self._current_ast, self._current_env, fn))

    # ------------------------------------------------------------------
    # errors
    # ------------------------------------------------------------------

    @property
    def error_group(self) -> str:
        return ""

    def error_found(self, node: Any, msg: str = "") -> None:
        location = node.location if isinstance(node, ASTnode) else None
        loc = node.source_location_string() if isinstance(node, ASTnode) else ""
        self.last_error = f"{loc} DSL {self.error_group} error. {msg}"
        logger.debug(self.last_error)
        raise CheckError(self.last_error, location)
