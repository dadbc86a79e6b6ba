"""
dslc utilities package
"""

from .io_utils import read_source_file, write_text_file
from .config import debug_enabled

__all__ = ["read_source_file", "write_text_file", "debug_enabled"]
