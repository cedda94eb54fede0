"""
NumPy CPU kernels.

Kernels here know nothing about graph nodes or derivatives: they operate on
NumPy lanes (`elementwise_cpu`) or on flat storage planes with explicit
strides (`conv1d_cpu`, bridged to buffers by `conv1d_cpu_ext`).
"""
