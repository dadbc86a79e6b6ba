"""
Compiler Driver

Runs the whole pipeline for one Python object:

    reify -> grammar check -> type check -> generate C -> build -> load

and attaches the exported functions of the loaded library to a fresh
module object.  The object is a plain function, a bound method, or an
instance whose public methods (those its class defines itself) are all
exported.

    from dslc.c import compile, Int

    def fib(n: Int) -> Int:
        return n if n < 2 else fib(n - 1) + fib(n - 2)

    lib = compile(fib)
    lib.fib(20)
"""

import inspect
import logging
import os
import types
from typing import Any, Callable, List, Optional, Tuple, Type as PyType

import numpy as np

from ..shared.errors import BuildError, SyntaxCheckError
from ..shared.types import ArrayType, MethodType
from ..tree.reify import ASTree, ASTreeTable
from . import build, config
from .codegen import CodeGen
from .ctype import ctypes_type, numpy_dtype
from .ctypecheck import ClangTypeChecker
from .opencl import OclCodeGen, OclTypeChecker
from .printer import Printer

logger = logging.getLogger("dslc.c.driver")


class Compilation:
    """
    One run of the pipeline: the reified trees, the type checker and the
    code generator.  `source` holds the generated C after `generate`.
    """

    def __init__(self, obj: Any, checker_class: PyType[ClangTypeChecker] = ClangTypeChecker,
                 codegen_class: PyType[CodeGen] = CodeGen):
        self.obj = obj
        self.table = ASTreeTable()
        self.checker = checker_class()
        self.codegen_class = codegen_class
        self.public_trees: List[ASTree] = []
        self.source: Optional[str] = None
        self.codegen: Optional[CodeGen] = None

    def exported_functions(self) -> List[Callable]:
        obj = self.obj
        if inspect.isfunction(obj) or inspect.ismethod(obj):
            return [obj]
        return [getattr(obj, name) for name, value in type(obj).__dict__.items()
                if not name.startswith("_") and inspect.isfunction(value)]

    def reify(self) -> List[ASTree]:
        funcs = self.exported_functions()
        if not funcs:
            raise SyntaxCheckError(f"nothing to compile in {self.obj!r}")
        for f in funcs:
            tree = self.table.reify(f)
            if tree is None:
                raise SyntaxCheckError(f"cannot locate the source of {getattr(f, '__qualname__', f)}")
            self.public_trees.append(tree)
        return self.public_trees

    def check(self) -> None:
        """Grammar check, then type check, every exported function."""
        for t in self.public_trees:
            self.checker.syntax.check_error(t.tree)
        for t in self.public_trees:
            logger.debug(f"type checking {t.function.__qualname__}")
            self.checker.typecheck(t)

    def generate(self) -> str:
        """Print the C translation unit; BuildError if generation failed."""
        printer = Printer()
        gen = self.codegen_class(printer, self.checker, self.public_trees)
        trees = [t.tree for t in self.table]
        gen.name_global_variables()
        gen.headers()
        gen.variable_declarations()
        for tree in trees:
            gen.prototype(tree)
        printer.nl()
        gen.preamble()
        for tree in trees:
            gen.c_function(tree)
            printer.nl()
        if gen.errors():
            raise BuildError(gen.error_messages)
        self.codegen = gen
        self.source = printer.output()
        return self.source

    def run_front_end(self) -> str:
        self.reify()
        self.check()
        return self.generate()

    def build(self, lib_name: str, dir: str) -> str:
        """Write the source, compile it; returns the library path."""
        os.makedirs(dir, exist_ok=True)
        build.persist(self.source, self.codegen.c_src_file(dir, lib_name))
        return self.codegen.build_lib(lib_name, dir)

    def exported_signatures(self) -> Tuple[List[str], List[MethodType]]:
        names = [t.tree.name.name for t in self.public_trees]
        mtypes = [self.checker.typetable[t.tree] for t in self.public_trees]
        return self.codegen.expand_functions(names, mtypes)


def _to_c_argument(value: Any, t: Any) -> Any:
    if isinstance(t, ArrayType) and not isinstance(value, np.ndarray):
        return np.ascontiguousarray(value, dtype=numpy_dtype(t.element_type))
    if isinstance(value, str):
        return value.encode()
    return value


def _wrap(cfunc: Any, mtype: MethodType) -> Callable:
    params = mtype.params if isinstance(mtype.params, list) else []

    def call(*args):
        if len(args) != len(params):
            raise TypeError(f"{cfunc.__name__}() takes {len(params)} arguments ({len(args)} given)")
        result = cfunc(*[_to_c_argument(a, t) for a, t in zip(args, params)])
        return result.decode() if isinstance(result, bytes) else result

    call.__name__ = cfunc.__name__
    call.c_function = cfunc
    return call


def attach(lib_path: str, names: List[str], mtypes: List[MethodType],
           module_name: str) -> types.ModuleType:
    """Load `lib_path` and bind its exported functions on a new module."""
    lib = build.load_artifact(lib_path)
    module = types.ModuleType(module_name)
    module.__file__ = lib_path
    module.library = lib
    for name, mtype in zip(names, mtypes):
        cfunc = getattr(lib, name)
        params = mtype.params if isinstance(mtype.params, list) else []
        cfunc.argtypes = [ctypes_type(t) for t in params]
        cfunc.restype = ctypes_type(mtype.result_type)
        setattr(module, name, _wrap(cfunc, mtype))
        logger.debug(f"attached {name}: {mtype.name}")
    return module


def _compile(obj: Any, checker_class: Any, codegen_class: Any, lib_name: Optional[str],
             dir: Optional[str], module_name: Optional[str]) -> types.ModuleType:
    comp = Compilation(obj, checker_class, codegen_class)
    comp.run_front_end()
    base = lib_name or comp.public_trees[0].tree.name.name
    unique_name = build.unique_lib_name(base)
    lib_path = comp.build(unique_name, dir or config.WORK_DIR)
    names, mtypes = comp.exported_signatures()
    return attach(lib_path, names, mtypes, module_name or unique_name)


def compile(obj: Any, lib_name: Optional[str] = None, dir: Optional[str] = None,
            module_name: Optional[str] = None) -> types.ModuleType:
    """Compile `obj` to C; returns a module holding the compiled functions."""
    return _compile(obj, ClangTypeChecker, CodeGen, lib_name, dir, module_name)


def ocl_compile(obj: Any, lib_name: Optional[str] = None, dir: Optional[str] = None,
                module_name: Optional[str] = None) -> types.ModuleType:
    """Compile `obj` with OpenCL kernels; call `ocl_init` on the result first."""
    return _compile(obj, OclTypeChecker, OclCodeGen, lib_name, dir, module_name)


def run(func: Any, *args: Any, lib_name: Optional[str] = None,
        dir: Optional[str] = None) -> Any:
    """Compile `func` and call it once with `args`."""
    module = compile(func, lib_name=lib_name, dir=dir)
    return getattr(module, func.__name__)(*args)


def emit(obj: Any, opencl: bool = False) -> str:
    """The generated C source for `obj`, without building it."""
    if opencl:
        comp = Compilation(obj, OclTypeChecker, OclCodeGen)
    else:
        comp = Compilation(obj)
    return comp.run_front_end()
