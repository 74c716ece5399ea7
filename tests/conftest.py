# -*- coding: utf-8 -*-
"""
Shared fixtures: pixel buffers and kernel runners.
"""

import numpy as np
import pytest

from mordant_buffers import PixelBuffer
from mordant_kernels import EmulatedKernelRunner, NumbaKernelRunner


class FailingRunner(EmulatedKernelRunner):
    """Reports itself available, then every kernel raises."""
    name = "failing"

    def _kernels(self):
        def lost(*args, **kwargs):
            raise RuntimeError("device lost")
        return {kernel_id: lost for kernel_id in super()._kernels()}


class UnavailableRunner(EmulatedKernelRunner):
    name = "unavailable"

    def is_available(self):
        return False


@pytest.fixture
def rng():
    return np.random.default_rng(20260418)


@pytest.fixture
def random_buffer(rng):
    """64x64 opaque buffer of pseudo-random colours."""
    rgb = rng.random((64, 64, 3)).astype(np.float32)
    return PixelBuffer.from_array(rgb)


@pytest.fixture
def random_rgba(rng):
    """Factory for random buffers whose alpha is either 0 or 1."""
    def make(width=32, height=32, transparent_fraction=0.25):
        px = rng.random((height, width, 4)).astype(np.float32)
        px[..., 3] = (rng.random((height, width)) >= transparent_fraction).astype(np.float32)
        return PixelBuffer(width, height, px)
    return make


@pytest.fixture
def uniform_buffer():
    def make(width, height, rgba):
        return PixelBuffer.uniform(width, height, rgba)
    return make


@pytest.fixture
def emulated_runner():
    return EmulatedKernelRunner()


@pytest.fixture
def numba_runner():
    if not NumbaKernelRunner.probe():
        pytest.skip("numba parallel backend not available")
    return NumbaKernelRunner()


@pytest.fixture(params=["emulated", "numba"])
def runner(request):
    """Each working kernel runner in turn."""
    if request.param == "emulated":
        return EmulatedKernelRunner()
    if not NumbaKernelRunner.probe():
        pytest.skip("numba parallel backend not available")
    return NumbaKernelRunner()


@pytest.fixture
def failing_runner():
    return FailingRunner()


@pytest.fixture
def unavailable_runner():
    return UnavailableRunner()
