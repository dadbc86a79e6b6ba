"""
Build service

Writes generated source, runs the C compiler and loads the resulting
shared library.  Library names are made unique per build, so two
libraries exporting the same symbol can be loaded side by side.
"""

import ctypes
import itertools
import logging
import os
import shlex
import subprocess
from typing import List, Optional

from ..shared.errors import BuildError
from ..utils.io_utils import write_text_file
from . import config

logger = logging.getLogger("dslc.c.build")

_build_counter = itertools.count()


def unique_lib_name(base: str) -> str:
    """`base` plus a suffix unique within this process."""
    return f"{base}_{os.getpid()}_{next(_build_counter)}"


def src_file_name(dir: str, lib_name: str, suffix: str = ".c") -> str:
    return os.path.join(dir, lib_name + suffix)


def lib_file_name(dir: str, lib_name: str) -> str:
    return os.path.join(dir, "lib" + lib_name + config.LIB_EXTENSION)


def compiler_command() -> List[str]:
    return shlex.split(config.COMPILER)


def persist(text: str, path: str) -> None:
    write_text_file(path, text)
    logger.debug(f"wrote {path} ({len(text)} chars)")


def invoke_compiler(src_path: str, lib_path: str, command: Optional[List[str]] = None,
                    link_options: Optional[List[str]] = None) -> None:
    """Compile `src_path` into the shared library `lib_path`; BuildError on failure."""
    cmd = list(command if command is not None else compiler_command())
    cmd += [config.COPT_OUTPUT, lib_path, src_path]
    cmd += list(link_options if link_options is not None else config.LIBS)
    logger.debug(f"running {shlex.join(cmd)}")
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise BuildError([f"cannot run the C compiler: {e}"]) from e
    if proc.returncode != 0:
        messages = [f"exit {proc.returncode}"]
        detail = (proc.stderr or proc.stdout).strip()
        if detail:
            messages.append(detail)
        raise BuildError(messages)
    if proc.stderr.strip():
        logger.warning(proc.stderr.strip())


def load_artifact(path: str) -> ctypes.CDLL:
    try:
        return ctypes.CDLL(os.path.abspath(path))
    except OSError as e:
        raise BuildError([f"cannot load {path}: {e}"]) from e
