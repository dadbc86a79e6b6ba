"""
General configuration constants
"""

import os

# Environment variables
ENV_DEBUG = "DSLC_DEBUG"          # re-raise instead of reporting in the CLI
ENV_WORK_DIR = "DSLC_WORK_DIR"    # where generated C and libraries go
ENV_CC = "DSLC_CC"                # C compiler command

# File encoding constants
DEFAULT_FILE_ENCODING = "utf-8"

# Printer constants
DEFAULT_INDENT = 2  # spaces per nesting level in generated C


def debug_enabled() -> bool:
    return bool(os.environ.get(ENV_DEBUG))
