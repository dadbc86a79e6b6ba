"""
Pytest configuration and shared fixtures for the dslc tests.

Grammar objects are immutable once built, so they are shared per session;
type checkers carry per-compilation state and are made fresh per test.
"""

import shutil
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from dslc.c import config
from dslc.c.ctypecheck import ClangTypeChecker, c_syntax
from dslc.syntax import host_syntax


def _compiler_available() -> bool:
    cmd = config.COMPILER.split()
    return bool(cmd) and shutil.which(cmd[0]) is not None


def pytest_collection_modifyitems(config, items):
    if _compiler_available():
        return
    skip = pytest.mark.skip(reason="no C compiler on PATH")
    for item in items:
        if "needs_cc" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Session-scoped fixtures
# =============================================================================

@pytest.fixture(scope="session")
def session_host_syntax():
    """The full host grammar, shared across all tests."""
    return host_syntax()


@pytest.fixture(scope="session")
def session_c_syntax():
    """The C subset grammar, shared across all tests."""
    return c_syntax()


# =============================================================================
# Function-scoped fixtures
# =============================================================================

@pytest.fixture
def checker():
    """A fresh C type checker."""
    return ClangTypeChecker()


@pytest.fixture
def work_dir(tmp_path):
    """Build directory for generated sources and libraries."""
    d = tmp_path / "dslc_build"
    d.mkdir()
    return str(d)
