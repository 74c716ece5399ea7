# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Kernel runners for the tiled statistics engine.
"""

from mordant_kernels.runner import (
    DEFAULT_TILE_SIZE,
    KERNEL_LAB_MEAN,
    KERNEL_LAB_TRANSFER,
    KERNEL_LAB_VARIANCE,
    ParallelKernelRunner,
    TileKernelSet,
)
from mordant_kernels.numba_runner import NumbaKernelRunner
from mordant_kernels.emulated import EmulatedKernelRunner

__all__ = [
    "DEFAULT_TILE_SIZE",
    "KERNEL_LAB_MEAN",
    "KERNEL_LAB_VARIANCE",
    "KERNEL_LAB_TRANSFER",
    "ParallelKernelRunner",
    "TileKernelSet",
    "NumbaKernelRunner",
    "EmulatedKernelRunner",
]
