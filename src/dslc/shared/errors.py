"""
Error Reporting

Diagnostics for the grammar checker, the type checkers and the build step,
plus the exception hierarchy raised by them.
"""

import os
import sys
from dataclasses import dataclass
from typing import Optional, List, Dict, Union
from .source_location import SourceLocation


# ---------------------------------------------------------------------------
# ANSI color helpers (disabled when NO_COLOR is set)
# ---------------------------------------------------------------------------

def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    explicit = os.environ.get("DSLC_COLOR", "").lower()
    if explicit in ("0", "false", "no", "never"):
        return False
    return sys.stderr.isatty() or explicit in ("1", "true", "yes", "always")

_BOLD = "\033[1m"
_RED = "\033[31m"
_BLUE = "\033[34m"
_CYAN = "\033[36m"
_RESET = "\033[0m"

def _style(text: str, *codes: str, color: bool = True) -> str:
    if not color or not codes:
        return text
    return "".join(codes) + text + _RESET


# ---------------------------------------------------------------------------
# Error dataclass
# ---------------------------------------------------------------------------

@dataclass
class Error:
    """One diagnostic: what went wrong and where."""
    message: str
    location: Optional[SourceLocation]
    group: str = "type"
    help: Optional[str] = None
    note: Optional[str] = None


def _format_diagnostic(error: Error, source_files: Dict[str, str], color: bool = False) -> str:
    """
    Render a diagnostic in compiler style::

        error[syntax]: bad return type
         --> fib.py:12
           |
        12 |         return 1.5
           |         ^^^^^^^^^^
    """
    out: List[str] = [
        _style(f"error[{error.group}]", _BOLD, _RED, color=color)
        + _style(f": {error.message}", _BOLD, color=color)
    ]
    loc = error.location
    if loc is None:
        out.append(_style(" --> ", _BOLD, _BLUE, color=color) + "<unknown location>")
        _append_annotations(out, error, 1, color)
        return "\n".join(out)

    gw = len(str(loc.line))
    out.append(_style(" " * gw + "--> ", _BOLD, _BLUE, color=color) + loc.long_form())
    source = source_files.get(loc.file)
    lines = source.split("\n") if source is not None else []
    if 0 < loc.line <= len(lines):
        code_line = lines[loc.line - 1]
        gutter = _style(" " * (gw + 1) + "|", _BOLD, _BLUE, color=color)
        out.append(gutter)
        out.append(_style(f"{loc.line} | ", _BOLD, _BLUE, color=color) + code_line)
        start = max(loc.column, 1) - 1
        if loc.end_line == loc.line and loc.end_column > loc.column:
            width = loc.end_column - loc.column
        else:
            width = max(1, len(code_line.rstrip()) - start)
        out.append(gutter + " " + _style(" " * start + "^" * width, _BOLD, _RED, color=color))
    _append_annotations(out, error, gw, color)
    return "\n".join(out)


def _append_annotations(out: List[str], error: Error, gw: int, color: bool) -> None:
    pad = " " * (gw + 1)
    for title, text in (("help", error.help), ("note", error.note)):
        if text:
            out.append(
                _style(f"{pad}= ", _BOLD, _CYAN, color=color)
                + _style(f"{title}: ", _BOLD, color=color)
                + text
            )


# ---------------------------------------------------------------------------
# ErrorReporter
# ---------------------------------------------------------------------------

class ErrorReporter:
    """
    Collects diagnostics and prints them with source snippets.

    Used by the command line front end; the library API raises the
    exceptions below instead.
    """

    def __init__(self, source_files: Optional[Dict[str, str]] = None):
        self.source_files = source_files if source_files is not None else {}
        self.errors: List[Error] = []

    def report_error(
        self,
        message: str,
        location: Optional[SourceLocation],
        group: str = "type",
        help: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        self.errors.append(Error(message=message, location=location, group=group,
                                 help=help, note=note))

    def report_exception(self, exc: "DslError") -> None:
        if isinstance(exc, BuildError):
            for msg in exc.all_messages:
                self.report_error(msg, exc.location, group=exc.group)
        else:
            self.report_error(exc.message, exc.location, group=exc.group)

    def format_error(self, error: Error, color: Optional[bool] = None) -> str:
        use_color = color if color is not None else _use_color()
        return _format_diagnostic(error, self.source_files, color=use_color)

    def format_all_errors(self, color: Optional[bool] = None) -> str:
        use_color = color if color is not None else _use_color()
        parts = [self.format_error(e, color=use_color) for e in self.errors]
        count = len(self.errors)
        summary = f"aborting due to {count} previous error{'s' if count != 1 else ''}"
        parts.append(_style("error", _BOLD, _RED, color=use_color)
                     + _style(f": {summary}", _BOLD, color=use_color))
        return "\n\n".join(parts)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def print_errors(self) -> None:
        if self.errors:
            print(self.format_all_errors(), file=sys.stderr)


# ============================================================================
# Exception Classes
# ============================================================================

class DslError(Exception):
    """Base exception for errors in compiled user code."""
    group = ""

    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self):
        return self.message


class SyntaxCheckError(DslError):
    """The tree (or a rule set) lies outside the permitted grammar."""
    group = "syntax"


class CheckError(DslError):
    """Raised by a checker, e.g. a type error."""
    group = "type"


class BuildError(DslError):
    """
    Code generation or the C compiler failed.

    Carries every accumulated message; `message` is the first one.
    """
    group = "build"

    def __init__(self, messages: Union[str, List[str]], location: Optional[SourceLocation] = None):
        all_messages = [messages] if isinstance(messages, str) else list(messages)
        super().__init__(all_messages[0] if all_messages else "", location)
        self.all_messages = all_messages

    def __str__(self):
        return "\n".join(self.all_messages)
