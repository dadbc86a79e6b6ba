#!/usr/bin/env python3
"""
Tests for the command line front end (`python -m dslc`).
"""

import sys
import textwrap

import pytest

from dslc.__main__ import main
from dslc.shared.errors import CheckError


def _write(tmp_path, name, body):
    path = tmp_path / f"{name}.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


@pytest.fixture
def run_cli(monkeypatch):
    monkeypatch.delenv("DSLC_DEBUG", raising=False)
    monkeypatch.setenv("NO_COLOR", "1")

    def run(*argv):
        monkeypatch.setattr(sys, "argv", ["dslc", *map(str, argv)])
        return main()
    return run


class TestEmitOnly:
    """Printing generated source"""

    def test_function(self, tmp_path, run_cli, capsys):
        path = _write(tmp_path, "cli_square", """
            from dslc.c import Int

            def square(x: Int) -> Int:
                return x * x
        """)
        assert run_cli(path, "square", "--emit-only") == 0
        out = capsys.readouterr().out
        assert "int32_t square(int32_t x) {" in out
        assert "return x * x;" in out

    def test_class(self, tmp_path, run_cli, capsys):
        path = _write(tmp_path, "cli_counter", """
            from dslc.c import Int, Program

            class Counter(Program):
                def twice(self, n: Int) -> Int:
                    return n + n
        """)
        assert run_cli(path, "Counter", "--emit-only") == 0
        assert "int32_t twice(int32_t n) {" in capsys.readouterr().out


class TestFailures:
    """Exit status and diagnostics"""

    def test_missing_file(self, tmp_path, run_cli, capsys):
        assert run_cli(tmp_path / "nope.py", "f", "--emit-only") == 1
        assert "not a file" in capsys.readouterr().err

    def test_unknown_name(self, tmp_path, run_cli, capsys):
        path = _write(tmp_path, "cli_empty", """
            x = 1
        """)
        assert run_cli(path, "missing", "--emit-only") == 1
        assert "missing is not defined" in capsys.readouterr().err

    def test_type_error_reported(self, tmp_path, run_cli, capsys):
        path = _write(tmp_path, "cli_bad_return", """
            from dslc.c import Int

            def f(a: Int):
                return 3
        """)
        assert run_cli(path, "f", "--emit-only") == 1
        err = capsys.readouterr().err
        assert "error[type]" in err
        assert "return 3" in err
        assert "aborting due to 1 previous error" in err

    def test_debug_reraises(self, tmp_path, run_cli, monkeypatch):
        path = _write(tmp_path, "cli_bad_debug", """
            from dslc.c import Int

            def f(a: Int):
                return 3
        """)
        monkeypatch.setenv("DSLC_DEBUG", "1")
        with pytest.raises(CheckError):
            run_cli(path, "f", "--emit-only")
