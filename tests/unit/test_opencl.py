#!/usr/bin/env python3
"""
Tests for the OpenCL back end: kernel extraction, free variables, the
generated kernel source and host wrappers.  Nothing is built here.
"""

from dslc.c import (
    Float32, Int, OclArray, OclCodeGen, OclTypeChecker, Program, arrayof, ocl_times, typedecl,
)
from dslc.c.driver import Compilation
from dslc.c.opencl import KernelPrinter
from dslc.c.printer import NL, Printer
from dslc.shared.types import IntegerType
from tests.test_utils import emit_c, squash


class Scaler(Program):
    def __init__(self):
        self.buf = OclArray(16)

    def scale(self, xs, n, k):
        typedecl({'xs': arrayof(Float32), 'n': Int, 'k': Int})
        self.buf.copyfrom(xs, n)
        for i in ocl_times(n):
            self.buf[i] = self.buf[i] * k
        self.buf.copyto(xs, n)


def _compilation():
    comp = Compilation(Scaler(), OclTypeChecker, OclCodeGen)
    comp.run_front_end()
    return comp


class TestKernelExtraction:
    """ocl_times blocks become kernels"""

    def test_block_recorded(self):
        comp = _compilation()
        assert len(comp.checker.blocks) == 1
        name, free_vars, ivars = next(iter(comp.checker.blocks.values()))
        assert name == "block0"
        assert list(free_vars) == ["k"]
        assert free_vars["k"] == IntegerType
        assert len(ivars) == 1
        assert isinstance(ivars[0], OclArray)

    def test_exported_functions(self):
        names, mtypes = _compilation().exported_signatures()
        assert names == ["scale", "ocl_init", "ocl_finish"]
        assert len(mtypes) == 3


class TestGeneratedSource:
    """Kernel source, host wrappers and buffer management"""

    def test_headers(self):
        src = emit_c(Scaler(), opencl=True)
        assert "#include <stdint.h>" in src
        assert "cl.h>" in src

    def test_declarations(self):
        src = emit_c(Scaler(), opencl=True)
        assert "static cl_mem _gvar_0_;" in src
        assert "static cl_kernel block0;" in src
        assert "int ocl_init(int);" in src

    def test_kernel_source(self):
        src = emit_c(Scaler(), opencl=True)
        assert "static const char* kernelSource =" in src
        assert "__kernel void block0(int k, __global float* _gvar_0_) {" in src
        assert "int i = get_global_id(0);" in src
        assert "_gvar_0_[i] = _gvar_0_[i] * k" in src

    def test_kernel_call(self):
        src = squash(emit_c(Scaler(), opencl=True))
        assert "block0_call(n, k);" in src
        assert "static void block0_call(size_t p0, int32_t p1) {" in src
        assert "cl_mem p2 = _gvar_0_;" in src
        assert "err |= clSetKernelArg(block0, 1, sizeof(p2), &p2);" in src

    def test_buffer_copies(self):
        src = emit_c(Scaler(), opencl=True)
        assert ('ocl_err_check(clEnqueueWriteBuffer(commands, _gvar_0_, CL_TRUE, 0, '
                'sizeof(float) * n, xs, 0, NULL, NULL), "copyfrom")') in src
        assert "clEnqueueReadBuffer(commands, _gvar_0_" in src

    def test_init_and_finish(self):
        src = emit_c(Scaler(), opencl=True)
        assert "_gvar_0_ = clCreateBuffer(context, CL_MEM_READ_WRITE, sizeof(float) * 16, NULL, NULL);" in src
        assert 'block0 = clCreateKernel(program, "block0", &err);' in src
        assert "clReleaseMemObject(_gvar_0_);" in src
        assert "void ocl_finish(void) {" in src

    def test_initialized_only_after_setup(self):
        src = emit_c(Scaler(), opencl=True)
        init = src[src.index("int ocl_init(int is_gpu) {"):]
        init = init[:init.index("\n}\n")]
        assert init.index("ocl_initialized = 1;") > init.index("clCreateBuffer")
        assert init.index("ocl_initialized = 1;") > init.index("clCreateKernel")
        assert init.rstrip().endswith("ocl_initialized = 1;\n  return 0;")

    def test_kernel_floor_helpers(self):
        src = emit_c(Scaler(), opencl=True)
        kernels = src[src.index("kernelSource ="):src.index("__kernel void block0")]
        assert "int dslc_floordiv(int a, int b) {" in kernels
        assert "int dslc_mod(int a, int b) {" in kernels
        assert "static" not in kernels.replace("static const char", "")


class TestKernelPrinter:
    """Printing into a C string literal"""

    def test_line_breaks_are_quoted(self):
        p = Printer()
        k = KernelPrinter(p)
        k << "a;" << NL << "b;"
        assert p.output() == 'a;\\n"\n"b;'
