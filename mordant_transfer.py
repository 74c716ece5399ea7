# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_transfer.py — Picks an engine, runs an adjustment mode.

``ColorMatcher`` is the entry point most callers want. It chooses between
the tiled and the sequential statistics engine by probing the kernel
runner, and re-runs on the sequential engine when a parallel dispatch
fails.

Adjustment modes
----------------
LAB_MOMENT_MATCHING  mean/stddev matching in Lab (the default)
RGB_COLOR_TRANSFER   mean/stddev matching per RGB channel, clamped
HUE_SHIFT            rotate HSV hue by the difference of dominant hues
ADAPTIVE             0.5 * Lab(intensity * 0.7) + 0.5 * RGB(intensity * 0.3)

Every mode leaves pixels below the alpha threshold untouched. Passing
``main_color`` swaps the reference for a ``synthetic_reference`` built
around that colour before the mode runs.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Hashable, Literal, Optional, Sequence, TypeVar, Union

import numpy as np

from mordant_buffers import DEFAULT_ALPHA_THRESHOLD, STDDEV_EPSILON, PixelBuffer, TransferConfig
from mordant_colorengine import ColorAdjustments, ColorSpaceEngine
from mordant_difference import as_rgb
from mordant_errors import BackendUnavailableError, InvalidInputError, NoEligiblePixelsError
from mordant_interfaces import PixelAccessor
from mordant_kernels import DEFAULT_TILE_SIZE, ParallelKernelRunner
from mordant_parallel import ParallelStatisticsEngine
from mordant_statistics import StatisticsEngine, coerce_buffer, coerce_mask
from mordant_uv import OccupancyMask, extract_dominant_colors

logger = logging.getLogger(__name__)

__all__ = [
    "AdjustmentMode",
    "ColorMatcher",
    "dominant_hue",
    "match_colors",
    "synthetic_reference",
]

EngineChoice = Literal["auto", "parallel", "sequential"]
Engine = Union[StatisticsEngine, ParallelStatisticsEngine]
T = TypeVar("T")

# Pixels below this HSV saturation carry no meaningful hue.
HUE_SATURATION_FLOOR = 0.1

# Synthetic reference built around a chosen main colour.
DOMINANT_COLOR_COUNT = 5
MAIN_COLOR_SHARE = 0.6
SYNTHETIC_SEED = 42


class AdjustmentMode(enum.Enum):
    LAB_MOMENT_MATCHING = "lab_moment_matching"
    RGB_COLOR_TRANSFER = "rgb_color_transfer"
    HUE_SHIFT = "hue_shift"
    ADAPTIVE = "adaptive"


# ---------------------------------------------------------------------------
# RGB / HSV helpers
# ---------------------------------------------------------------------------
def _eligible_rgb(buffer: PixelBuffer, threshold: float, mask: Any, label: str) -> np.ndarray:
    keep = buffer.eligible(threshold, coerce_mask(mask, buffer))
    rgb = buffer.rgb[keep].astype(np.float64)
    if rgb.shape[0] == 0:
        raise NoEligiblePixelsError(f"{label}: no eligible pixels",
                                    total=buffer.width * buffer.height,
                                    alpha_threshold=threshold, masked=mask is not None)
    return rgb


def dominant_hue(rgb: np.ndarray) -> float:
    """Mean HSV hue of the pixels with saturation above 0.1, or 0.0 if none."""
    hsv = ColorSpaceEngine.srgb_to_hsv(np.atleast_2d(rgb))
    hues = hsv[hsv[:, 1] > HUE_SATURATION_FLOOR, 0]
    return float(hues.mean()) if hues.size else 0.0


def _rgb_transfer(target: PixelBuffer, reference: PixelBuffer, config: TransferConfig,
                  target_mask: Any, reference_mask: Any) -> PixelBuffer:
    t_rgb = _eligible_rgb(target, config.alpha_threshold, target_mask, "target")
    r_rgb = _eligible_rgb(reference, config.alpha_threshold, reference_mask, "reference")
    t_mean, t_std = t_rgb.mean(axis=0), t_rgb.std(axis=0)
    r_mean, r_std = r_rgb.mean(axis=0), r_rgb.std(axis=0)

    out = target.copy()
    keep = target.alpha >= np.float32(config.alpha_threshold)
    original = target.rgb[keep].astype(np.float64)

    moved = np.clip((original - t_mean) / np.maximum(t_std, STDDEV_EPSILON) * r_std + r_mean, 0.0, 1.0)
    blended = np.clip(ColorAdjustments.lerp(original, moved, config.intensity), 0.0, 1.0)
    if config.preserve_luminance:
        blended = ColorAdjustments.preserve_luminance_rgb(original, blended)
    out.pixels[keep, :3] = blended
    return out


def _hue_shift(target: PixelBuffer, reference: PixelBuffer, config: TransferConfig,
               target_mask: Any, reference_mask: Any) -> PixelBuffer:
    ref_hue = dominant_hue(_eligible_rgb(reference, config.alpha_threshold, reference_mask, "reference"))
    tgt_hue = dominant_hue(_eligible_rgb(target, config.alpha_threshold, target_mask, "target"))
    shift = (ref_hue - tgt_hue) * config.intensity
    logger.debug("Hue shift %.2f deg (reference %.2f, target %.2f)", shift, ref_hue, tgt_hue)

    out = target.copy()
    keep = target.alpha >= np.float32(config.alpha_threshold)
    if shift == 0.0 or not np.any(keep):
        return out
    original = target.rgb[keep].astype(np.float64)
    shifted = ColorAdjustments.apply_hsbg(original, hue_shift=shift)
    if config.preserve_luminance:
        shifted = ColorAdjustments.preserve_luminance_rgb(original, shifted)
    out.pixels[keep, :3] = shifted
    return out


def synthetic_reference(reference: Any, main_color: Sequence[float],
                        alpha_threshold: float = DEFAULT_ALPHA_THRESHOLD,
                        mask: Any = None,
                        seed: int = SYNTHETIC_SEED) -> PixelBuffer:
    """
    Stand-in reference whose dominant colour is *main_color*.

    The reference's five dominant colours are extracted and the most
    populous one is replaced by *main_color*. Each eligible reference pixel
    becomes *main_color* with probability 0.6 and one of the remaining
    dominant colours otherwise. The result is an opaque ``1 x N`` buffer,
    N being the eligible pixel count; a fixed *seed* keeps it reproducible.
    """
    ref = coerce_buffer(reference)
    main = as_rgb(main_color, "main_color")
    grid = coerce_mask(mask, ref)
    occupancy = None if grid is None else OccupancyMask(ref.width, ref.height, grid)
    palette = extract_dominant_colors(ref, occupancy, DOMINANT_COLOR_COUNT, alpha_threshold)
    palette[0] = main

    n = int(np.count_nonzero(ref.eligible(alpha_threshold, grid)))
    rng = np.random.default_rng(seed)
    pick = np.zeros(n, dtype=np.int64)
    others = rng.random(n) >= MAIN_COLOR_SHARE
    if palette.shape[0] > 1:
        pick[others] = rng.integers(1, palette.shape[0], size=int(others.sum()))

    pixels = np.ones((1, n, 4), dtype=np.float32)
    pixels[0, :, :3] = palette[pick]
    logger.debug("Synthetic reference: %d pixels from %d colours, main %s",
                 n, palette.shape[0], np.round(main, 4).tolist())
    return PixelBuffer(n, 1, pixels)


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------
class ColorMatcher:
    """
    Recolours a target so its colour distribution matches a reference.

    Args:
        engine: ``"auto"`` probes the runner and falls back on failure,
            ``"parallel"`` forces the tiled engine and lets
            ``BackendUnavailableError`` propagate, ``"sequential"`` never
            touches a runner.
        runner: Kernel runner for the tiled engine (numba by default).
        tile_size: Tile edge for the tiled engine.

    ``last_fallback`` holds the error that caused the most recent fallback,
    or ``None`` if the last call ran where it was sent.
    """

    def __init__(self, engine: EngineChoice = "auto",
                 runner: Optional[ParallelKernelRunner] = None,
                 tile_size: int = DEFAULT_TILE_SIZE) -> None:
        if engine not in ("auto", "parallel", "sequential"):
            raise InvalidInputError(f"engine must be 'auto', 'parallel' or 'sequential', got {engine!r}")
        self.engine = engine
        self.sequential = StatisticsEngine()
        self.parallel: Optional[ParallelStatisticsEngine] = (
            None if engine == "sequential" else ParallelStatisticsEngine(runner, tile_size)
        )
        self.last_fallback: Optional[BackendUnavailableError] = None

    def select_engine(self) -> Engine:
        if self.parallel is None:
            return self.sequential
        if self.engine == "parallel" or self.parallel.is_available():
            logger.info("Using parallel engine on runner '%s'", self.parallel.runner.name)
            return self.parallel
        logger.info("Runner '%s' unavailable, using sequential engine", self.parallel.runner.name)
        return self.sequential

    def _run(self, op: Callable[[Engine], T]) -> T:
        engine = self.select_engine()
        try:
            return op(engine)
        except BackendUnavailableError as exc:
            if self.engine == "parallel" or engine is self.sequential:
                raise
            logger.warning("Parallel engine failed (%s); re-running on the sequential engine", exc)
            self.last_fallback = exc
            return op(self.sequential)

    def _lab(self, target: PixelBuffer, reference: PixelBuffer, config: TransferConfig,
             target_mask: Any, reference_mask: Any) -> PixelBuffer:
        def op(engine: Engine) -> PixelBuffer:
            t_stats = engine.compute_statistics(target, config.alpha_threshold, target_mask)
            r_stats = engine.compute_statistics(reference, config.alpha_threshold, reference_mask)
            return engine.transfer_buffer(target, t_stats, r_stats, config)
        return self._run(op)

    def match(self, target: Any, reference: Any,
              config: Optional[TransferConfig] = None,
              mode: AdjustmentMode = AdjustmentMode.LAB_MOMENT_MATCHING,
              reference_mask: Any = None,
              target_mask: Any = None,
              main_color: Optional[Sequence[float]] = None) -> PixelBuffer:
        """
        Return a recoloured copy of *target*. Inputs are never modified.

        Masks (``OccupancyMask`` or boolean arrays) restrict which pixels
        feed the statistics; every eligible target pixel is recoloured.

        With *main_color* the reference is replaced by
        ``synthetic_reference(reference, main_color)`` so the result leans
        towards that colour while keeping the reference's secondary colours.

        Raises:
            InvalidInputError, NoEligiblePixelsError: always propagated.
            BackendUnavailableError: only with ``engine="parallel"``.
        """
        config = config if config is not None else TransferConfig()
        tgt = coerce_buffer(target)
        ref = coerce_buffer(reference)
        if main_color is not None:
            ref = synthetic_reference(ref, main_color, config.alpha_threshold, reference_mask)
            reference_mask = None
        self.last_fallback = None

        if mode is AdjustmentMode.LAB_MOMENT_MATCHING:
            return self._lab(tgt, ref, config, target_mask, reference_mask)
        if mode is AdjustmentMode.RGB_COLOR_TRANSFER:
            return _rgb_transfer(tgt, ref, config, target_mask, reference_mask)
        if mode is AdjustmentMode.HUE_SHIFT:
            return _hue_shift(tgt, ref, config, target_mask, reference_mask)
        if mode is AdjustmentMode.ADAPTIVE:
            lab = self._lab(tgt, ref, config.with_intensity(config.intensity * 0.7),
                            target_mask, reference_mask)
            rgb = _rgb_transfer(tgt, ref, config.with_intensity(config.intensity * 0.3),
                                target_mask, reference_mask)
            out = tgt.copy()
            keep = tgt.alpha >= np.float32(config.alpha_threshold)
            out.pixels[keep, :3] = 0.5 * lab.rgb[keep] + 0.5 * rgb.rgb[keep]
            return out
        raise InvalidInputError(f"Unknown adjustment mode {mode!r}")

    def match_handles(self, accessor: PixelAccessor,
                      target_handle: Hashable,
                      reference_handle: Hashable,
                      config: Optional[TransferConfig] = None,
                      mode: AdjustmentMode = AdjustmentMode.LAB_MOMENT_MATCHING,
                      reference_mask: Any = None,
                      target_mask: Any = None,
                      main_color: Optional[Sequence[float]] = None) -> PixelBuffer:
        """Read both textures through *accessor*, match, write the target back."""
        if not isinstance(accessor, PixelAccessor):
            raise InvalidInputError(f"{type(accessor).__name__} is not a PixelAccessor")
        result = self.match(accessor.get_pixels(target_handle),
                            accessor.get_pixels(reference_handle),
                            config, mode, reference_mask, target_mask, main_color)
        accessor.set_pixels(target_handle, result.pixels.copy())
        return result

    def __repr__(self) -> str:
        return f"ColorMatcher(engine={self.engine!r}, parallel={self.parallel!r})"


def match_colors(target: Any, reference: Any,
                 config: Optional[TransferConfig] = None,
                 mode: AdjustmentMode = AdjustmentMode.LAB_MOMENT_MATCHING,
                 reference_mask: Any = None,
                 target_mask: Any = None,
                 engine: EngineChoice = "auto",
                 main_color: Optional[Sequence[float]] = None) -> PixelBuffer:
    """One-shot ``ColorMatcher(engine).match(...)``."""
    return ColorMatcher(engine).match(target, reference, config, mode,
                                      reference_mask, target_mask, main_color)
