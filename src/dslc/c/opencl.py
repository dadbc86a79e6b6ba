"""
OpenCL back end

`for i in ocl_times(n): body` runs `body` as an OpenCL kernel over
n work items.  The kernel sees the enclosing function's variables it
reads (passed by value) and the OclArray buffers it indexes (passed as
device memory).  `buf.copyfrom(array, n)` / `buf.copyto(array, n)` move
data between host arrays and a buffer.

The generated library exports `ocl_init(is_gpu)` and `ocl_finish()`
besides the compiled functions; call `ocl_init` before anything else.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Tuple

from ..checker.checker import rule
from ..checker.typecheck import FreeVarFinder
from ..shared.types import InstanceType, IntegerType, MethodType, Type, Void
from ..tree.nodes import Block, Call, Exprs
from . import config
from .codegen import CodeGen, floor_helpers
from .ctype import OclArray
from .ctypecheck import ClangTypeChecker, RETURN_KEY
from .printer import NL

logger = logging.getLogger("dslc.c.opencl")

# name, free variables, captured OclArray objects
BlockInfo = Tuple[str, "OrderedDict[str, Type]", List[Any]]


class OclTypeChecker(ClangTypeChecker):
    """Adds `ocl_times` loops; `blocks` maps each kernel Block to its BlockInfo."""

    def __init__(self, syntax: Any = None):
        super().__init__(syntax)
        self.blocks: Dict[Block, BlockInfo] = {}
        self._block_count = 0

    def method_with_block(self, name: str) -> bool:
        return super().method_with_block(name) or name == "ocl_times"

    def typecheck_call_with_block(self, node: Call) -> Type:
        if node.name.name != "ocl_times":
            return super().typecheck_call_with_block(node)
        self.block_loop_count(node)
        param = node.block.params[0]
        tenv = FreeVarFinder(self.type_env)
        self.type_as(param, IntegerType)
        tenv.bind_name(param, IntegerType)
        tenv.bind_name(RETURN_KEY, Void)

        outer_ivars = self.instance_variables
        self.instance_variables = []
        self.type(node.block, tenv)
        captured = self.instance_variables
        self.instance_variables = outer_ivars + [
            v for v in captured if not any(v is o for o in outer_ivars)]

        name = f"block{self._block_count}"
        self._block_count += 1
        self.blocks[node.block] = (name, tenv.free_variables, captured)
        logger.debug(f"kernel {name}: free variables {list(tenv.free_variables)}")
        return Void


class KernelPrinter:
    """Prints through `printer` into a C string literal."""

    def __init__(self, printer: Any):
        self.printer = printer

    def down(self) -> "KernelPrinter":
        self.printer << '\\n"'
        self.printer.down()
        self.printer << '"'
        return self

    def up(self) -> "KernelPrinter":
        self.printer << '\\n"'
        self.printer.up()
        self.printer << '"'
        return self

    def nl(self) -> "KernelPrinter":
        self.printer << '\\n"' << NL << '"'
        return self

    def __lshift__(self, code: Any) -> "KernelPrinter":
        if code is NL:
            self.nl()
        else:
            self.printer << code
        return self


class OclCodeGen(CodeGen):
    """Code generator for OclTypeChecker trees."""

    @rule(Call)
    def call(self, node, env):
        name = node.name.name
        p = self.printer
        if name in ("copyfrom", "copyto"):
            fn = "clEnqueueWriteBuffer" if name == "copyfrom" else "clEnqueueReadBuffer"
            p << "ocl_err_check(" << fn << "(commands, "
            self.check(node.receiver)
            p << ", CL_TRUE, 0, sizeof(float) * "
            self.check(node.args[1])
            p << ", "
            self.check(node.args[0])
            p << ', 0, NULL, NULL), "' << name << '")'
        elif name == "ocl_times":
            block_name, free_vars, _ = self.typechecker.blocks[node.block]
            p << block_name << "_call("
            self.check(node.args[0])
            for var in free_vars:
                p << ", " << var
            p << ");" << NL
        else:
            self.proceed(node)

    def link_options(self) -> List[str]:
        return super().link_options() + config.OPENCL_OPTIONS

    def headers(self) -> None:
        super().headers()
        for h in config.OPENCL_HEADERS:
            self.printer << h << NL
        self.printer << NL

    def variable_declarations(self) -> None:
        super().variable_declarations()
        for obj, name in self.gvariables.items():
            if isinstance(obj, OclArray):
                self.printer << "static cl_mem " << name << ";" << NL
        for block_name, _, _ in self.typechecker.blocks.values():
            self.printer << "static cl_kernel " << block_name << ";" << NL
        self.printer << NL

    def preamble(self) -> None:
        super().preamble()
        self.printer << "int ocl_init(int);" << NL
        self.printer << "void ocl_finish(void);" << NL << NL
        self.print_kernel_source()
        self.printer << HELPER_SOURCE
        self.print_ocl_init()
        self.print_ocl_finish()
        self.print_callers()

    def expand_functions(self, func_names, func_types):
        return (func_names + ["ocl_init", "ocl_finish"],
                func_types + [MethodType([IntegerType], IntegerType), MethodType([], Void)])

    def c_type(self, t: Any) -> str:
        if isinstance(self.printer, KernelPrinter) and (t is int or t == IntegerType):
            return "int"
        return super().c_type(t)

    # ------------------------------------------------------------------
    # kernels
    # ------------------------------------------------------------------

    def _ocl_arrays(self):
        return [(obj, name) for obj, name in self.gvariables.items() if isinstance(obj, OclArray)]

    def print_kernel_source(self) -> None:
        self.printer << "static const char* kernelSource =" << NL << '"'
        outer = self.printer
        self.printer = KernelPrinter(outer)
        try:
            for line in floor_helpers("int", "").splitlines():
                self.printer << line << NL
            for blk, (func_name, free_vars, ivars) in self.typechecker.blocks.items():
                params = list(free_vars.items()) + [(self.gvariables[obj], obj) for obj in ivars]
                self.printer << "__kernel void " << func_name << "("
                for i, (name, t) in enumerate(params):
                    if i > 0:
                        self.printer << ", "
                    self.print_type_in_kernel(t)
                    self.printer << name
                self.printer << ") {"
                self.printer.down()
                self.local_var_declarations(blk)
                self.printer << "int " << blk.params[0].name << " = get_global_id(0);" << NL
                self.check(blk.body)
                if not isinstance(blk.body, Exprs):
                    self.printer << ";"
                self.printer.up()
                self.printer << "}" << NL
        finally:
            self.printer = outer
        self.printer << '";' << NL << NL

    def print_type_in_kernel(self, t: Any) -> None:
        if isinstance(t, OclArray) or (isinstance(t, InstanceType) and isinstance(t.object, OclArray)):
            self.printer << "__global float* "
        else:
            self.printer << self.c_type(t) << " "

    def print_ocl_init(self) -> None:
        p = self.printer
        p << "int ocl_init(int is_gpu) {" << NL
        p << "  if (ocl_initialized) return 0;" << NL
        p << "  if (ocl_init0(is_gpu)) return 1;" << NL << NL
        p << "  int err;" << NL
        for func_name, _, _ in self.typechecker.blocks.values():
            p << "  " << func_name << ' = clCreateKernel(program, "' << func_name << '", &err);' << NL
            p << "  if (err != CL_SUCCESS) {" << NL
            p << '    fprintf(stderr, "error: clCreateKernel\\n");' << NL
            p << "    return 1; }" << NL
        for obj, name in self._ocl_arrays():
            p << "  " << name << " = clCreateBuffer(context, CL_MEM_READ_WRITE, sizeof(float) * " \
              << obj.size << ", NULL, NULL);" << NL
            p << "  if (!" << name << ") {" << NL
            p << '    fprintf(stderr, "error: clCreateBuffer\\n");' << NL
            p << "    return 1; }" << NL
        p << NL << "  ocl_initialized = 1;" << NL
        p << "  return 0;" << NL << "}" << NL << NL

    def print_ocl_finish(self) -> None:
        p = self.printer
        p << "void ocl_finish(void) {" << NL
        p << "  if (!ocl_initialized) return;" << NL
        p << "  ocl_initialized = 0;" << NL
        for _, name in self._ocl_arrays():
            p << "  clReleaseMemObject(" << name << ");" << NL
        for func_name, _, _ in self.typechecker.blocks.values():
            p << "  clReleaseKernel(" << func_name << ");" << NL
        p << "  clReleaseProgram(program);" << NL
        p << "  clReleaseCommandQueue(commands);" << NL
        p << "  clReleaseContext(context);" << NL
        p << "}" << NL << NL

    def print_callers(self) -> None:
        """One `<kernel>_call(n, free variables...)` host wrapper per kernel."""
        p = self.printer
        for func_name, free_vars, ivars in self.typechecker.blocks.values():
            p << "static void " << func_name << "_call(size_t p0"
            for i, t in enumerate(free_vars.values()):
                p << ", " << self.c_type(t) << f" p{i + 1}"
            p << ") {"
            p.down()
            p << "size_t global;" << NL
            p << "int err = 0;" << NL
            nargs = len(free_vars)
            for obj in ivars:
                nargs += 1
                p << f"cl_mem p{nargs} = " << self.gvariables[obj] << ";" << NL
            for j in range(nargs):
                p << f"err |= clSetKernelArg({func_name}, {j}, sizeof(p{j + 1}), &p{j + 1});" << NL
            p << 'ocl_err_check(err, "clSetKernelArg");' << NL
            p << "global = p0;" << NL
            p << "ocl_err_check(clEnqueueNDRangeKernel(commands, " << func_name \
              << ', 1, NULL, &global, NULL, 0, NULL, NULL), "clEnqueueNDRangeKernel");' << NL
            p << "clFinish(commands);"
            p.up()
            p << "}" << NL << NL


HELPER_SOURCE = r"""static int ocl_initialized = 0;
static cl_device_id device_id;
static cl_context context;
static cl_command_queue commands;
static cl_program program;

static int ocl_err_check(int err, const char* msg) {
  if (err == CL_SUCCESS)
    return 0;
  fprintf(stderr, "OpenCL error: %s, %d\n", msg, err);
  return 1;
}

static int ocl_init0(int gpu) {
  cl_device_id devices[4];
  cl_uint num_devices;
  int err = clGetDeviceIDs(NULL, gpu > 0 ? CL_DEVICE_TYPE_GPU : CL_DEVICE_TYPE_CPU,
                           sizeof(devices) / sizeof(devices[0]), devices, &num_devices);
  if (err != CL_SUCCESS) {
    fprintf(stderr, "error: clGetDeviceIDs\n");
    return 1;
  }

  int id = (int)num_devices < gpu ? (int)num_devices : gpu;
  device_id = devices[id < 1 ? 0 : id - 1];

  context = clCreateContext(0, 1, &device_id, NULL, NULL, &err);
  if (!context) {
    fprintf(stderr, "error: clCreateContext\n");
    return 1;
  }

  commands = clCreateCommandQueue(context, device_id, 0, &err);
  if (!commands) {
    fprintf(stderr, "error: clCreateCommandQueue\n");
    return 1;
  }

  program = clCreateProgramWithSource(context, 1, (const char **)&kernelSource, NULL, &err);
  if (!program) {
    fprintf(stderr, "error: clCreateProgramWithSource\n");
    return 1;
  }

  err = clBuildProgram(program, 0, NULL, NULL, NULL, NULL);
  if (err != CL_SUCCESS) {
    size_t len;
    char buffer[2048];
    fprintf(stderr, "error: clBuildProgram\n");
    clGetProgramBuildInfo(program, device_id, CL_PROGRAM_BUILD_LOG, sizeof(buffer), buffer, &len);
    fprintf(stderr, "%s\n", buffer);
    return 1;
  }

  return 0;
}

"""
