# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: numba_runner.py — Multi-threaded runner on Numba ``prange``.

Availability is decided once per process by compiling and running
``probe_kernel``. The first call pays the JIT cost; later calls read the
cached answer.
"""

from __future__ import annotations

import logging
import threading
from typing import ClassVar, Mapping, Optional

import numpy as np
from numba.core.errors import NumbaError

from mordant_kernels.runner import KernelFn, ParallelKernelRunner, TileKernelSet
from mordant_kernels.tiles import (
    lab_mean_parallel,
    lab_transfer_parallel,
    lab_variance_parallel,
    probe_kernel,
)

logger = logging.getLogger(__name__)


class NumbaKernelRunner(ParallelKernelRunner):
    name = "numba"

    _probe_result: ClassVar[Optional[bool]] = None
    _probe_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        super().__init__()
        self._table = TileKernelSet(lab_mean_parallel, lab_variance_parallel,
                                    lab_transfer_parallel).table()

    @classmethod
    def probe(cls) -> bool:
        with cls._probe_lock:
            if cls._probe_result is None:
                values = np.ones(64, dtype=np.float64)
                try:
                    cls._probe_result = bool(probe_kernel(values) == 64.0)
                except (NumbaError, OSError, RuntimeError) as exc:
                    logger.debug("numba parallel probe failed: %s", exc)
                    cls._probe_result = False
                logger.debug("numba parallel backend available: %s", cls._probe_result)
            return cls._probe_result

    def is_available(self) -> bool:
        return self.probe()

    def _kernels(self) -> Mapping[str, KernelFn]:
        return self._table
