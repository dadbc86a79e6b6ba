"""
Grammar checker and its rule language.
"""

from .syntax import Syntax, define_syntax, host_syntax, parse_rules, HOST_RULES
