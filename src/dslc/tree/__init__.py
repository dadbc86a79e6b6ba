"""
Typed tree: node classes, visitors and the reifier.
"""

from .nodes import *  # noqa: F401,F403
from .nodes import NODE_CLASSES
from .visitor import ASTVisitor, NodeWalker, TreeDumper, dump
from .reify import ASTree, ASTreeTable, reify
