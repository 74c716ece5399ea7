# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: emulated.py — Single-threaded runner with the same tile algorithm.

Always available. Useful where threads are unwelcome and as a reference
for the numba runner, since both share the tile bodies.
"""

from __future__ import annotations

from typing import Mapping

from mordant_kernels.runner import KernelFn, ParallelKernelRunner, TileKernelSet
from mordant_kernels.tiles import lab_mean_serial, lab_transfer_serial, lab_variance_serial


class EmulatedKernelRunner(ParallelKernelRunner):
    name = "emulated"

    def __init__(self) -> None:
        super().__init__()
        self._table = TileKernelSet(lab_mean_serial, lab_variance_serial,
                                    lab_transfer_serial).table()

    def is_available(self) -> bool:
        return True

    def _kernels(self) -> Mapping[str, KernelFn]:
        return self._table
