# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_statistics.py — Sequential Lab statistics and moment transfer.

Statistics
----------
A pixel is *eligible* when ``alpha >= alpha_threshold`` and, if a mask is
supplied, its texel is occupied. Eligible pixels are converted to Lab and
summed per channel in float64:

    mean = sum / n
    var  = sumSq / n - mean^2        (population variance)
    std  = sqrt(max(var, 0))

The sums are taken over values shifted by the first eligible sample, which
leaves mean and variance unchanged but keeps ``sumSq / n - mean^2`` from
cancelling badly when the spread is small next to the mean.

Transfer
--------
Per Lab channel, with ``eps = STDDEV_EPSILON``:

    n  = (v - mu_t) / max(sigma_t, eps)
    m  = n * sigma_r + mu_r
    v' = v + (m - v) * intensity

``preserve_luminance`` puts the original L back. Pixels below the alpha
threshold are returned untouched.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Final, Optional, Sequence

import numpy as np

from mordant_buffers import (
    DEFAULT_ALPHA_THRESHOLD,
    STDDEV_EPSILON,
    ColorStatistics,
    PixelBuffer,
    TransferConfig,
)
from mordant_colorengine import ColorSpaceEngine
from mordant_errors import DegenerateStatisticsWarning, InvalidInputError, NoEligiblePixelsError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_ALPHA_THRESHOLD",
    "STDDEV_EPSILON",
    "coerce_buffer",
    "coerce_mask",
    "warn_if_degenerate",
    "compute_statistics",
    "transfer",
    "transfer_buffer",
    "StatisticsEngine",
]


# ---------------------------------------------------------------------------
# Input normalisation (shared with the parallel engine)
# ---------------------------------------------------------------------------
def coerce_buffer(pixels: Any) -> PixelBuffer:
    """Accept a ``PixelBuffer`` or anything ``PixelBuffer.from_array`` takes."""
    if pixels is None:
        raise InvalidInputError("Pixel buffer must not be None")
    if isinstance(pixels, PixelBuffer):
        return pixels
    return PixelBuffer.from_array(pixels)


def coerce_mask(mask: Any, buffer: PixelBuffer) -> Optional[np.ndarray]:
    """
    Boolean ``(H, W)`` grid from an ``OccupancyMask`` or array, checked
    against the buffer size. ``None`` passes through.
    """
    if mask is None:
        return None
    grid = np.asarray(getattr(mask, "occupied", mask), dtype=bool)
    if grid.shape != (buffer.height, buffer.width):
        raise InvalidInputError(
            f"Mask shape {grid.shape} does not match buffer {(buffer.height, buffer.width)}"
        )
    return grid


def _check_threshold(alpha_threshold: float) -> float:
    threshold = float(alpha_threshold)
    if not 0.0 <= threshold <= 1.0:
        raise InvalidInputError(f"alpha_threshold must lie in [0, 1], got {alpha_threshold}")
    return threshold


def warn_if_degenerate(stats: ColorStatistics, label: str) -> None:
    flags = stats.is_degenerate(STDDEV_EPSILON)
    if np.any(flags):
        channels = [name for name, f in zip("Lab", flags) if f]
        warnings.warn(
            f"{label} stddev collapsed on channel(s) {channels}; divisor clamped to {STDDEV_EPSILON}",
            DegenerateStatisticsWarning,
            stacklevel=3,
        )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------
def compute_statistics(pixels: Any,
                       alpha_threshold: float = DEFAULT_ALPHA_THRESHOLD,
                       mask: Any = None) -> ColorStatistics:
    """
    Lab mean and population stddev over the eligible pixels.

    Args:
        pixels: ``PixelBuffer`` or an ``(H, W, 3|4)`` array.
        alpha_threshold: Minimum alpha for a pixel to count.
        mask: Optional ``OccupancyMask`` or boolean ``(H, W)`` array.

    Raises:
        InvalidInputError: empty buffer or mask of the wrong size.
        NoEligiblePixelsError: nothing passed the alpha and mask filters.
    """
    buffer = coerce_buffer(pixels)
    grid = coerce_mask(mask, buffer)
    threshold = _check_threshold(alpha_threshold)

    keep = buffer.eligible(threshold, grid)
    n = int(np.count_nonzero(keep))
    if n == 0:
        raise NoEligiblePixelsError(
            f"No pixel of {buffer.width}x{buffer.height} passed alpha >= {threshold}"
            + (" and the occupancy mask" if grid is not None else ""),
            total=buffer.width * buffer.height,
            alpha_threshold=threshold,
            masked=grid is not None,
        )

    lab = ColorSpaceEngine.srgb_to_lab(buffer.rgb[keep].astype(np.float64))
    shift = lab[0].copy()
    d = lab - shift

    s = d.sum(axis=0)
    sq = (d * d).sum(axis=0)
    mean_d = s / n
    var = sq / n - mean_d * mean_d
    stats = ColorStatistics(mean_d + shift, np.sqrt(np.maximum(var, 0.0)), n)

    logger.debug("Sequential statistics: %s", stats.summary())
    return stats


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------
def _match_lab(lab: np.ndarray, target_stats: ColorStatistics, ref_stats: ColorStatistics,
               config: TransferConfig) -> np.ndarray:
    sigma_t = np.maximum(target_stats.stddev, STDDEV_EPSILON)
    matched = (lab - target_stats.mean) / sigma_t * ref_stats.stddev + ref_stats.mean
    out = lab + (matched - lab) * config.intensity
    if config.preserve_luminance:
        out[..., 0] = lab[..., 0]
    return out


def transfer(target_pixel: Sequence[float],
             target_stats: ColorStatistics,
             ref_stats: ColorStatistics,
             config: TransferConfig) -> np.ndarray:
    """
    Recolour a single RGBA pixel. Returns a new float32 ``(4,)`` array.

    Alpha is never changed. A pixel below the alpha threshold, or a call
    with ``intensity == 0``, returns the input values as they are.
    """
    px = np.array(target_pixel, dtype=np.float32).reshape(-1)
    if px.shape != (4,):
        raise InvalidInputError(f"Expected an RGBA pixel, got shape {px.shape}")
    if px[3] < np.float32(config.alpha_threshold) or config.intensity == 0.0:
        return px

    warn_if_degenerate(target_stats, "Target")
    lab = ColorSpaceEngine.srgb_to_lab(px[:3].astype(np.float64))
    rgb = ColorSpaceEngine.lab_to_srgb(_match_lab(lab, target_stats, ref_stats, config))
    px[:3] = np.clip(rgb, 0.0, 1.0)
    return px


def transfer_buffer(buffer: Any,
                    target_stats: ColorStatistics,
                    ref_stats: ColorStatistics,
                    config: TransferConfig,
                    in_place: bool = False) -> PixelBuffer:
    """
    ``transfer`` over every pixel of *buffer*, vectorised.

    With ``in_place=True`` the buffer's own pixel array is overwritten and
    the same ``PixelBuffer`` is returned; otherwise a new buffer is built.
    """
    src = coerce_buffer(buffer)
    out = src if in_place else src.copy()
    if config.intensity == 0.0:
        return out

    keep = src.alpha >= np.float32(config.alpha_threshold)
    if not np.any(keep):
        return out

    warn_if_degenerate(target_stats, "Target")
    lab = ColorSpaceEngine.srgb_to_lab(src.rgb[keep].astype(np.float64))
    rgb = ColorSpaceEngine.lab_to_srgb(_match_lab(lab, target_stats, ref_stats, config))
    out.pixels[keep, :3] = np.clip(rgb, 0.0, 1.0)
    return out


class StatisticsEngine:
    """Single-threaded engine. Deterministic and safe from any thread."""

    name: Final[str] = "sequential"

    def compute_statistics(self, pixels: Any,
                           alpha_threshold: float = DEFAULT_ALPHA_THRESHOLD,
                           mask: Any = None) -> ColorStatistics:
        return compute_statistics(pixels, alpha_threshold, mask)

    def transfer_buffer(self, buffer: Any, target_stats: ColorStatistics,
                        ref_stats: ColorStatistics, config: TransferConfig,
                        in_place: bool = False) -> PixelBuffer:
        return transfer_buffer(buffer, target_stats, ref_stats, config, in_place)

    def __repr__(self) -> str:
        return "StatisticsEngine()"
