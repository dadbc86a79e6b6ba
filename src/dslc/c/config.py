"""
C back end configuration

Compiler command, options, headers and the library extension.  The
compiler command and the work directory can be overridden with the
DSLC_CC and DSLC_WORK_DIR environment variables.
"""

import os
import sys

from ..utils.config import ENV_CC, ENV_WORK_DIR

# Host OS: "linux", "macos" or "unknown"
if sys.platform.startswith("linux"):
    HOST_OS = "linux"
elif sys.platform == "darwin":
    HOST_OS = "macos"
else:
    HOST_OS = "unknown"

# Working directory for generated sources and libraries
WORK_DIR = os.environ.get(ENV_WORK_DIR, "./dslc_tmp")

# Compiler command
COMPILER = os.environ.get(ENV_CC, "gcc -shared -fPIC -Ofast")

# Compiler option naming the output file
COPT_OUTPUT = "-o"

# Libraries linked into every build
LIBS = ["-lm"]

# Suffix of a shared library, starting with a dot
LIB_EXTENSION = ".dylib" if HOST_OS == "macos" else ".so"

# Lines inserted at the top of the generated C source
HEADERS = [
    "#include <stdint.h>",
    "#include <time.h>",
    "#include <math.h>",
    "#include <stdio.h>",
]

# OpenCL
if HOST_OS == "macos":
    OPENCL_OPTIONS = ["-framework", "OpenCL"]
    OPENCL_HEADERS = ["#include <OpenCL/opencl.h>"]
else:
    OPENCL_OPTIONS = ["-lOpenCL"]
    OPENCL_HEADERS = [
        "#define CL_TARGET_OPENCL_VERSION 120",
        "#include <CL/cl.h>",
    ]

# Names an exported function cannot take: C keywords and the functions
# declared by HEADERS
C_RESERVED_NAMES = frozenset("""
    auto break case char const continue default do double else enum extern
    float for goto if inline int long register restrict return short signed
    sizeof static struct switch typedef union unsigned void volatile while
    main abs labs exit malloc free
    acos asin atan atan2 cbrt ceil cos cosh erf exp exp2 expm1 fabs floor fma
    fmax fmin fmod frexp hypot ldexp lgamma log log10 log1p log2 modf nan pow
    remainder round sin sinh sqrt tan tanh tgamma trunc
    printf fprintf sprintf snprintf scanf puts putchar getchar fopen fclose
    clock difftime mktime time ctime gmtime localtime strftime
""".split())
