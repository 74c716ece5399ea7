# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: runner.py — The ParallelKernelRunner capability interface.

A runner executes named tile kernels over a ``groups_x x groups_y`` grid
and owns every intermediate buffer it hands out. Buffers are tracked
until released, so ``live_buffer_count`` exposes leaks. The intended use
is ``scoped_buffers``, which releases everything on every exit path:

    with runner.scoped_buffers(((gy, gx, 4), np.float64)) as (acc,):
        runner.dispatch_reduction(KERNEL_LAB_MEAN, {...}, gx, gy, uniforms)
        partial = runner.readback(acc)

Buffers passed to a dispatch are a mapping by role:

    "pixels"       (H, W, 4) float32 input, read only
    "mask"         (H, W) bool occupancy grid, optional
    "accumulator"  (groups_y, groups_x, 4) float64 reduction target
    "output"       (H, W, 4) float32 transfer target

Uniforms are scalars or small arrays: ``alpha_threshold``, ``tile_size``,
``mean`` (phase 2) and the transfer moments.
"""

from __future__ import annotations

import abc
import contextlib
import logging
import threading
from typing import Any, Callable, Dict, Final, Iterator, Mapping, Optional, Tuple

import numpy as np

from mordant_errors import BackendUnavailableError, InvalidInputError, ResourceExhaustionError
from mordant_kernels.tiles import NO_MASK

logger = logging.getLogger(__name__)

KERNEL_LAB_MEAN: Final[str] = "lab_mean"
KERNEL_LAB_VARIANCE: Final[str] = "lab_variance"
KERNEL_LAB_TRANSFER: Final[str] = "lab_transfer"
DEFAULT_TILE_SIZE: Final[int] = 8

BufferSpec = Tuple[Tuple[int, ...], Any]
KernelFn = Callable[[Mapping[str, np.ndarray], int, int, Mapping[str, Any]], None]


class TileKernelSet:
    """
    Binds the three grid loops of one flavour (parallel or serial) to the
    runner's buffer/uniform calling convention.
    """
    __slots__ = ("_mean", "_variance", "_transfer")

    def __init__(self, mean_fn: Callable, variance_fn: Callable, transfer_fn: Callable) -> None:
        self._mean = mean_fn
        self._variance = variance_fn
        self._transfer = transfer_fn

    def table(self) -> Dict[str, KernelFn]:
        return {
            KERNEL_LAB_MEAN: self.lab_mean,
            KERNEL_LAB_VARIANCE: self.lab_variance,
            KERNEL_LAB_TRANSFER: self.lab_transfer,
        }

    @staticmethod
    def _mask(buffers: Mapping[str, np.ndarray]) -> Tuple[bool, np.ndarray]:
        mask = buffers.get("mask")
        if mask is None:
            return False, NO_MASK
        return True, np.ascontiguousarray(mask, dtype=np.bool_)

    @staticmethod
    def _common(buffers: Mapping[str, np.ndarray], uniforms: Mapping[str, Any]):
        pixels = np.ascontiguousarray(buffers["pixels"], dtype=np.float32)
        return pixels, np.float32(uniforms["alpha_threshold"]), int(uniforms["tile_size"])

    def lab_mean(self, buffers, groups_x, groups_y, uniforms) -> None:
        pixels, threshold, tile = self._common(buffers, uniforms)
        has_mask, mask = self._mask(buffers)
        self._mean(pixels, threshold, has_mask, mask, tile, groups_x, groups_y,
                   buffers["accumulator"])

    def lab_variance(self, buffers, groups_x, groups_y, uniforms) -> None:
        pixels, threshold, tile = self._common(buffers, uniforms)
        has_mask, mask = self._mask(buffers)
        mean = np.ascontiguousarray(uniforms["mean"], dtype=np.float64)
        self._variance(pixels, threshold, has_mask, mask, tile, groups_x, groups_y,
                       mean, buffers["accumulator"])

    def lab_transfer(self, buffers, groups_x, groups_y, uniforms) -> None:
        pixels, threshold, tile = self._common(buffers, uniforms)
        self._transfer(pixels, threshold, tile, groups_x, groups_y,
                       np.ascontiguousarray(uniforms["target_mean"], dtype=np.float64),
                       np.ascontiguousarray(uniforms["target_sigma"], dtype=np.float64),
                       np.ascontiguousarray(uniforms["reference_mean"], dtype=np.float64),
                       np.ascontiguousarray(uniforms["reference_std"], dtype=np.float64),
                       float(uniforms["intensity"]),
                       bool(uniforms["preserve_luminance"]),
                       buffers["output"])


class ParallelKernelRunner(abc.ABC):
    """
    Abstract runner. Subclasses provide ``is_available`` and ``_kernels``.

    Dispatches are synchronous; ``readback`` returns a host copy.
    """
    name: str = "abstract"

    def __init__(self) -> None:
        self._live: Dict[int, np.ndarray] = {}
        self._lock = threading.Lock()

    # -- capability ------------------------------------------------------
    @abc.abstractmethod
    def is_available(self) -> bool:
        """Whether this runner can execute kernels in the current process."""

    @abc.abstractmethod
    def _kernels(self) -> Mapping[str, KernelFn]:
        """Kernel id → callable(buffers, groups_x, groups_y, uniforms)."""

    # -- buffers ---------------------------------------------------------
    def allocate(self, shape: Tuple[int, ...], dtype: Any = np.float64) -> np.ndarray:
        buffer = np.zeros(shape, dtype=dtype)
        with self._lock:
            self._live[id(buffer)] = buffer
        return buffer

    def release(self, buffer: np.ndarray) -> None:
        with self._lock:
            self._live.pop(id(buffer), None)

    @property
    def live_buffer_count(self) -> int:
        with self._lock:
            return len(self._live)

    @contextlib.contextmanager
    def scoped_buffers(self, *specs: BufferSpec) -> Iterator[Tuple[np.ndarray, ...]]:
        """
        Allocate one buffer per ``(shape, dtype)`` spec, release all on exit.

        Raises:
            ResourceExhaustionError: an allocation failed; buffers acquired
                before it are already released.
        """
        with contextlib.ExitStack() as stack:
            buffers = []
            for shape, dtype in specs:
                try:
                    buffer = self.allocate(shape, dtype)
                except MemoryError as exc:
                    raise ResourceExhaustionError(
                        f"{self.name}: could not allocate {shape} {np.dtype(dtype).name} buffer"
                    ) from exc
                stack.callback(self.release, buffer)
                buffers.append(buffer)
            yield tuple(buffers)

    # -- execution -------------------------------------------------------
    def dispatch_reduction(self, kernel_id: str,
                           buffers: Mapping[str, np.ndarray],
                           group_count_x: int,
                           group_count_y: int,
                           uniforms: Optional[Mapping[str, Any]] = None) -> None:
        """
        Run *kernel_id* over the tile grid and block until it finishes.

        Raises:
            InvalidInputError: non-positive group counts.
            BackendUnavailableError: runner unavailable, unknown kernel id,
                or the kernel raised.
        """
        if group_count_x <= 0 or group_count_y <= 0:
            raise InvalidInputError(
                f"Group counts must be positive, got {group_count_x}x{group_count_y}"
            )
        if not self.is_available():
            raise BackendUnavailableError(f"Runner '{self.name}' is not available",
                                          backend=self.name, kernel_id=kernel_id)
        kernel = self._kernels().get(kernel_id)
        if kernel is None:
            raise BackendUnavailableError(f"Runner '{self.name}' has no kernel '{kernel_id}'",
                                          backend=self.name, kernel_id=kernel_id)

        logger.debug("%s: dispatch %s over %dx%d groups", self.name, kernel_id,
                     group_count_x, group_count_y)
        try:
            kernel(buffers, int(group_count_x), int(group_count_y), uniforms or {})
        except Exception as exc:
            raise BackendUnavailableError(
                f"Runner '{self.name}' failed in kernel '{kernel_id}': {exc}",
                backend=self.name, kernel_id=kernel_id,
            ) from exc

    def readback(self, buffer: np.ndarray) -> np.ndarray:
        return np.array(buffer, copy=True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(live_buffers={self.live_buffer_count})"
