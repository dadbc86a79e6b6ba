"""
Source Location

Location of a tree node inside the Python source file it was reified from.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceLocation:
    """
    Source location of a node.

    - File, line, column (column is 1-based like editors show it)
    - Optional end line/column, filled from Python's ast positions
    - Immutable (frozen) for hashability
    """
    file: str
    line: int
    column: int
    end_line: int = 0
    end_column: int = 0

    def __str__(self) -> str:
        """Format as file:line"""
        return f"{self.file}:{self.line}"

    def long_form(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"
