"""
Indenting text printer used by the code generators.

    p = Printer()
    p << "int f() {"
    p.down()            # new line, one level deeper
    p << "return 0;"
    p.up()
    p << "}" << NL
    p.output()
"""

from typing import Any, List

from ..utils.config import DEFAULT_INDENT, DEFAULT_FILE_ENCODING

# Line break marker accepted by `<<`
NL = object()


class Printer:
    """Accumulates text; a line break is emitted lazily before the next text."""

    def __init__(self, indent: int = DEFAULT_INDENT):
        self._parts: List[str] = []
        self._level = 0
        self._linebreak = False
        self._indent = " " * indent

    def output(self) -> str:
        if self._linebreak:
            self._add_newline()
        return "".join(self._parts)

    def down(self) -> "Printer":
        self._level += 1
        self._add_newline()
        return self

    def up(self) -> "Printer":
        self._level -= 1
        self._add_newline()
        return self

    def nl(self) -> "Printer":
        self._linebreak = True
        return self

    def __lshift__(self, code: Any) -> "Printer":
        if self._linebreak:
            self._add_newline()
        if code is NL:
            self._linebreak = True
        else:
            self._write(str(code))
        return self

    def _write(self, text: str) -> None:
        self._parts.append(text)

    def _add_newline(self) -> None:
        self._write("\n" + self._indent * self._level)
        self._linebreak = False


class FilePrinter(Printer):
    """Printer writing straight to a file."""

    def __init__(self, file_name: str):
        super().__init__()
        self.file_name = file_name
        self._file = open(file_name, "w", encoding=DEFAULT_FILE_ENCODING)

    def _write(self, text: str) -> None:
        self._file.write(text)

    def output(self) -> str:
        if self._linebreak:
            self._add_newline()
        return ""

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "FilePrinter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
