#!/usr/bin/env python3
"""
Tests for the indenting printers.
"""

from dslc.c.printer import NL, FilePrinter, Printer


class TestPrinter:
    """Line breaks and indentation"""

    def test_block(self):
        p = Printer()
        p << "int f() {"
        p.down()
        p << "return 0;"
        p.up()
        p << "}" << NL
        assert p.output() == "int f() {\n  return 0;\n}\n"

    def test_line_break_is_lazy(self):
        p = Printer()
        p << "a;" << NL
        p.down()
        p << "b;"
        assert p.output() == "a;\n  b;"

    def test_nested_levels(self):
        p = Printer(indent=4)
        p << "{"
        p.down()
        p << "{"
        p.down()
        p << "x;"
        p.up()
        p << "}"
        p.up()
        p << "}"
        assert p.output() == "{\n    {\n        x;\n    }\n}"

    def test_non_strings_converted(self):
        p = Printer()
        p << "a[" << 4 << "]"
        assert p.output() == "a[4]"

    def test_nl(self):
        p = Printer()
        p << "x"
        p.nl()
        p << "y"
        assert p.output() == "x\ny"


class TestFilePrinter:
    """Printing straight to a file"""

    def test_writes_file(self, tmp_path):
        path = tmp_path / "out.c"
        with FilePrinter(str(path)) as p:
            p << "int x;" << NL
            p << "int y;" << NL
            assert p.output() == ""
        assert path.read_text(encoding="utf-8") == "int x;\nint y;\n"
