#!/usr/bin/env python3
"""
Tests for error reporting: the diagnostic formatter and the locations
carried by errors raised from the pipeline.
"""

import re

import pytest

from dslc.c import Int
from dslc.shared.errors import (
    BuildError, CheckError, DslError, Error, ErrorReporter, SyntaxCheckError,
)
from dslc.shared.source_location import SourceLocation
from tests.test_utils import typecheck

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def _strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


def returns_in_void(a: Int):
    return 3


def uses_slice(xs):
    return xs[1:]


class TestErrorReporter:
    """Formatting diagnostics"""

    def test_location_none(self):
        err = Error(message="something failed", location=None, group="build")
        out = ErrorReporter({}).format_error(err, color=False)
        assert "error[build]: something failed" in out
        assert "unknown location" in out

    def test_source_snippet(self):
        loc = SourceLocation(file="f.py", line=2, column=5, end_line=2, end_column=13)
        err = Error(message="bad return", location=loc)
        reporter = ErrorReporter({"f.py": "def f(a):\n    return 3\n"})
        out = reporter.format_error(err, color=False)
        assert " --> f.py:2:5" in out
        assert "2 |     return 3" in out
        assert "    ^^^^^^^^" in out

    def test_file_not_in_sources(self):
        loc = SourceLocation(file="missing.py", line=1, column=1)
        out = ErrorReporter({}).format_error(Error("oops", loc), color=False)
        assert "missing.py:1:1" in out
        assert "|" not in out

    def test_help_and_note(self):
        err = Error("bad", None, help="declare the type", note="see typedecl")
        out = ErrorReporter({}).format_error(err, color=False)
        assert "= help: declare the type" in out
        assert "= note: see typedecl" in out

    def test_summary_counts(self):
        reporter = ErrorReporter({})
        reporter.report_error("one", None)
        reporter.report_error("two", None)
        out = reporter.format_all_errors(color=False)
        assert "aborting due to 2 previous errors" in out
        assert reporter.has_errors()

    def test_color(self):
        out = ErrorReporter({}).format_error(Error("x", None), color=True)
        assert "\x1b[" in out
        assert "error[type]: x" in _strip_ansi(out)

    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        out = ErrorReporter({}).format_error(Error("x", None))
        assert "\x1b[" not in out

    def test_build_error_reports_every_message(self):
        reporter = ErrorReporter({})
        reporter.report_exception(BuildError(["exit 1", "undefined symbol"]))
        assert [e.message for e in reporter.errors] == ["exit 1", "undefined symbol"]
        assert all(e.group == "build" for e in reporter.errors)


class TestExceptions:
    """The exception hierarchy"""

    def test_hierarchy(self):
        for cls in (SyntaxCheckError, CheckError, BuildError):
            assert issubclass(cls, DslError)

    def test_build_error_message(self):
        e = BuildError(["first", "second"])
        assert e.message == "first"
        assert str(e) == "first\nsecond"
        assert BuildError("only").all_messages == ["only"]


class TestPipelineLocations:
    """Errors raised by the pipeline point at the offending source"""

    def test_type_error_location(self):
        with pytest.raises(CheckError) as e:
            typecheck(returns_in_void)
        loc = e.value.location
        assert loc.file.endswith("test_errors.py")
        assert loc.line == returns_in_void.__code__.co_firstlineno + 1
        reporter = ErrorReporter({loc.file: open(loc.file, encoding="utf-8").read()})
        reporter.report_exception(e.value)
        out = reporter.format_all_errors(color=False)
        assert "error[type]" in out
        assert "return 3" in out

    def test_syntax_error_location(self):
        with pytest.raises(SyntaxCheckError) as e:
            typecheck(uses_slice)
        assert e.value.location.line == uses_slice.__code__.co_firstlineno + 1
        assert e.value.group == "syntax"
