"""CLI entry point: `python -m dslc file.py name` prints the C source for `name`."""

import importlib.util
import inspect
import logging
import sys
from pathlib import Path


def _load(path: Path, name: str):
    spec = importlib.util.spec_from_file_location(path.stem, path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[path.stem] = module
    spec.loader.exec_module(module)
    obj = getattr(module, name)
    return obj() if inspect.isclass(obj) else obj


def main() -> int:
    import argparse
    from .c import build, config
    from .c.codegen import CodeGen
    from .c.ctypecheck import ClangTypeChecker
    from .c.driver import Compilation
    from .c.opencl import OclCodeGen, OclTypeChecker
    from .shared.errors import DslError, ErrorReporter
    from .utils.config import debug_enabled
    from .utils.io_utils import read_source_file

    parser = argparse.ArgumentParser(prog="dslc", description="Compile a Python function to C.")
    parser.add_argument("file", type=Path, help="Python source file")
    parser.add_argument("name", help="Function, or class whose public methods are compiled")
    parser.add_argument("--opencl", action="store_true", help="Generate OpenCL kernels for ocl_times")
    parser.add_argument("--dir", default=None, help=f"Build directory (default: {config.WORK_DIR})")
    parser.add_argument("--emit-only", action="store_true", help="Print the C source without building")
    args = parser.parse_args()

    if debug_enabled():
        logging.basicConfig(level=logging.DEBUG)

    path = args.file.resolve()
    if not path.is_file():
        sys.stderr.write(f"dslc: error: not a file: {path}\n")
        return 1
    if str(path.parent) not in sys.path:
        sys.path.insert(0, str(path.parent))

    try:
        obj = _load(path, args.name)
    except AttributeError:
        sys.stderr.write(f"dslc: error: {args.name} is not defined in {path}\n")
        return 1

    if args.opencl:
        comp = Compilation(obj, OclTypeChecker, OclCodeGen)
    else:
        comp = Compilation(obj, ClangTypeChecker, CodeGen)
    try:
        source = comp.run_front_end()
        print(source)
        if not args.emit_only:
            lib_name = build.unique_lib_name(comp.public_trees[0].tree.name.name)
            lib_path = comp.build(lib_name, args.dir or config.WORK_DIR)
            sys.stderr.write(f"dslc: built {lib_path}\n")
    except DslError as e:
        if debug_enabled():
            raise
        reporter = ErrorReporter({str(path): read_source_file(path)})
        reporter.report_exception(e)
        reporter.print_errors()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
