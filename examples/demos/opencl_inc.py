"""Doubling a buffer on an OpenCL device.  Needs an OpenCL runtime.

    python examples/demos/opencl_inc.py
"""

from dslc.c import Float32, Float32Array, Int, OclArray, Program, Void, arrayof, ocl_times, typedecl


class Inc(Program):
    def __init__(self):
        self.data = OclArray(16)

    def inc(self, arr, n) -> Void:
        typedecl(arr=arrayof(Float32), n=Int)
        self.data.copyfrom(arr, n)
        for i in ocl_times(16):
            self.data[i] = self.data[i] * 2
        self.data.copyto(arr, n)


if __name__ == "__main__":
    m = Inc.ocl_compile()
    arr = Float32Array(list(range(16)))
    m.ocl_init(1)
    m.inc(arr, len(arr))
    m.ocl_finish()
    print(list(arr))
