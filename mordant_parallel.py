# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_parallel.py — Two-phase tiled statistics engine.

Same numbers as ``mordant_statistics`` (within 1e-3 per channel), computed
as tile reductions through a ``ParallelKernelRunner``:

  Phase 1  KERNEL_LAB_MEAN      per-tile Lab sums and counts
           readback, host sums all tiles, mean = sum / n
  Phase 2  KERNEL_LAB_VARIANCE  per-tile squared deviations from that mean
           readback, var = max(sumSq / n, 0), std = sqrt(var)
  Phase 3  KERNEL_LAB_TRANSFER  per-pixel moment transfer into an output buffer

The phase-1 readback is the barrier: phase 2 only starts once the mean
exists on the host. All accumulators and the transfer output come from
``runner.scoped_buffers`` and are released on every exit path, including
``NoEligiblePixelsError`` and dispatch failures.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Optional, Tuple

import numpy as np

from mordant_buffers import (
    DEFAULT_ALPHA_THRESHOLD,
    STDDEV_EPSILON,
    ColorStatistics,
    PixelBuffer,
    TransferConfig,
)
from mordant_errors import BackendUnavailableError, InvalidInputError, NoEligiblePixelsError
from mordant_kernels import (
    DEFAULT_TILE_SIZE,
    KERNEL_LAB_MEAN,
    KERNEL_LAB_TRANSFER,
    KERNEL_LAB_VARIANCE,
    NumbaKernelRunner,
    ParallelKernelRunner,
)
from mordant_statistics import coerce_buffer, coerce_mask, warn_if_degenerate

logger = logging.getLogger(__name__)

__all__ = [
    "ParallelStatisticsEngine",
    "compute_statistics_parallel",
    "is_parallel_available",
]


class ParallelStatisticsEngine:
    """
    Tiled engine over a kernel runner (numba ``prange`` by default).

    Args:
        runner: Any ``ParallelKernelRunner``. ``None`` creates a
            ``NumbaKernelRunner``.
        tile_size: Edge length of the square tiles.
    """

    name: Final[str] = "parallel"

    def __init__(self, runner: Optional[ParallelKernelRunner] = None,
                 tile_size: int = DEFAULT_TILE_SIZE) -> None:
        if int(tile_size) <= 0:
            raise InvalidInputError(f"tile_size must be positive, got {tile_size}")
        self.runner = runner if runner is not None else NumbaKernelRunner()
        self.tile_size = int(tile_size)

    def is_available(self) -> bool:
        return self.runner.is_available()

    def grid(self, width: int, height: int) -> Tuple[int, int]:
        """``(groups_x, groups_y)`` covering a ``width x height`` image."""
        t = self.tile_size
        return (width + t - 1) // t, (height + t - 1) // t

    def _require_runner(self) -> None:
        if not self.runner.is_available():
            raise BackendUnavailableError(
                f"Kernel runner '{self.runner.name}' is not available",
                backend=self.runner.name,
            )

    # -- statistics ------------------------------------------------------
    def compute_statistics(self, pixels: Any,
                           alpha_threshold: float = DEFAULT_ALPHA_THRESHOLD,
                           mask: Any = None) -> ColorStatistics:
        """
        Lab mean and population stddev, reduced tile by tile.

        Raises:
            InvalidInputError: empty buffer, wrong mask size, bad threshold.
            NoEligiblePixelsError: nothing passed the alpha and mask filters.
            BackendUnavailableError: the runner is missing or a dispatch failed.
            ResourceExhaustionError: an accumulator could not be allocated.
        """
        buffer = coerce_buffer(pixels)
        grid = coerce_mask(mask, buffer)
        threshold = float(alpha_threshold)
        if not 0.0 <= threshold <= 1.0:
            raise InvalidInputError(f"alpha_threshold must lie in [0, 1], got {alpha_threshold}")
        self._require_runner()

        gx, gy = self.grid(buffer.width, buffer.height)
        logger.debug("%s: %dx%d image as %dx%d tiles of %d", self.runner.name,
                     buffer.width, buffer.height, gx, gy, self.tile_size)

        inputs = {"pixels": buffer.pixels}
        if grid is not None:
            inputs["mask"] = np.ascontiguousarray(grid)
        uniforms = {"alpha_threshold": threshold, "tile_size": self.tile_size}
        acc_spec = ((gy, gx, 4), np.float64)

        with self.runner.scoped_buffers(acc_spec, acc_spec) as (mean_acc, var_acc):
            self.runner.dispatch_reduction(KERNEL_LAB_MEAN, {**inputs, "accumulator": mean_acc},
                                           gx, gy, uniforms)
            totals = self.runner.readback(mean_acc).reshape(-1, 4).sum(axis=0)
            n = int(round(totals[3]))
            if n == 0:
                raise NoEligiblePixelsError(
                    f"No pixel of {buffer.width}x{buffer.height} passed alpha >= {threshold}"
                    + (" and the occupancy mask" if grid is not None else ""),
                    total=buffer.width * buffer.height,
                    alpha_threshold=threshold,
                    masked=grid is not None,
                )
            mean = totals[:3] / n

            self.runner.dispatch_reduction(KERNEL_LAB_VARIANCE, {**inputs, "accumulator": var_acc},
                                           gx, gy, {**uniforms, "mean": mean})
            sq = self.runner.readback(var_acc).reshape(-1, 4).sum(axis=0)[:3]

        stats = ColorStatistics(mean, np.sqrt(np.maximum(sq / n, 0.0)), n)
        logger.debug("Parallel statistics: %s", stats.summary())
        return stats

    # -- transfer --------------------------------------------------------
    def transfer_buffer(self, buffer: Any, target_stats: ColorStatistics,
                        ref_stats: ColorStatistics, config: TransferConfig,
                        in_place: bool = False) -> PixelBuffer:
        """Per-pixel moment transfer on the runner. Same contract as the sequential call."""
        src = coerce_buffer(buffer)
        if config.intensity == 0.0:
            return src if in_place else src.copy()
        self._require_runner()
        warn_if_degenerate(target_stats, "Target")

        gx, gy = self.grid(src.width, src.height)
        uniforms = {
            "alpha_threshold": config.alpha_threshold,
            "tile_size": self.tile_size,
            "target_mean": target_stats.mean,
            "target_sigma": np.maximum(target_stats.stddev, STDDEV_EPSILON),
            "reference_mean": ref_stats.mean,
            "reference_std": ref_stats.stddev,
            "intensity": config.intensity,
            "preserve_luminance": config.preserve_luminance,
        }
        with self.runner.scoped_buffers(((src.height, src.width, 4), np.float32)) as (out,):
            self.runner.dispatch_reduction(KERNEL_LAB_TRANSFER,
                                           {"pixels": src.pixels, "output": out},
                                           gx, gy, uniforms)
            result = self.runner.readback(out)

        if in_place:
            src.pixels[...] = result
            return src
        return PixelBuffer(src.width, src.height, result)

    def __repr__(self) -> str:
        return f"ParallelStatisticsEngine(runner={self.runner!r}, tile_size={self.tile_size})"


def compute_statistics_parallel(pixels: Any,
                                alpha_threshold: float = DEFAULT_ALPHA_THRESHOLD,
                                mask: Any = None,
                                runner: Optional[ParallelKernelRunner] = None) -> ColorStatistics:
    """``compute_statistics`` on the tiled engine, optionally on a given runner."""
    return ParallelStatisticsEngine(runner).compute_statistics(pixels, alpha_threshold, mask)


def is_parallel_available() -> bool:
    """Whether the numba ``prange`` backend works in this process."""
    return NumbaKernelRunner.probe()
