"""Thread control for the prange kernels."""

from contextlib import contextmanager
import numba


@contextmanager
def kernel_threads(parallel: bool = True):
    """Run the enclosed kernels on one thread unless ``parallel`` is set."""
    previous = numba.get_num_threads()
    if not parallel:
        numba.set_num_threads(1)
    try:
        yield
    finally:
        numba.set_num_threads(previous)
