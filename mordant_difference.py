# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_difference.py — Recolouring driven by a pair of colours.

Where ``ColorMatcher`` matches whole distributions, the functions here start
from two concrete colours, a colour to move *from* and one to move *to*.

difference_transfer
    Adds ``to - from`` (in sRGB) to every selected pixel. The balance mode
    decides how strongly pixels far from the *from* colour follow:

    SIMPLE    every pixel gets ``intensity * (to - from)``
    WEIGHTED  strength falls off with RGB distance to *from*, then the
              result is blended back by the same strength
    ADVANCED  squared falloff, a difference scaled by similarity in
              [0.5, 1.5] and a two-curve blend factor

    Brightness/contrast, gamma and transparency from ``DifferenceConfig``
    are applied to the moved colour before blending.

color_pair_transfer
    Moves the whole texture by ``Lab(reference) - Lab(target)``. The
    strength per pixel falls off with its CIE76 distance to the target
    colour, so colours near the picked one follow closely and distant
    ones only a little.

flood_fill_selection
    4-connected region of pixels within an RGB tolerance of a seed pixel,
    usable as the selection mask of ``difference_transfer``.

Pixels below the alpha threshold are never modified.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from mordant_buffers import DEFAULT_ALPHA_THRESHOLD, PixelBuffer, TransferConfig
from mordant_colorengine import ColorMetrics, ColorSpaceEngine
from mordant_errors import InvalidInputError
from mordant_statistics import coerce_buffer, coerce_mask

logger = logging.getLogger(__name__)

__all__ = [
    "BalanceMode",
    "DifferenceConfig",
    "difference_transfer",
    "color_pair_transfer",
    "flood_fill_selection",
    "as_rgb",
]

# Largest distance between two colours in the unit RGB cube.
RGB_MAX_DISTANCE = math.sqrt(3.0)
# CIE76 distance treated as "completely different" by the pair transfer.
LAB_MAX_DISTANCE = 100.0


class BalanceMode(enum.Enum):
    SIMPLE = "simple"
    WEIGHTED = "weighted"
    ADVANCED = "advanced"


# (low, high) inclusive bounds per numeric field
_RANGES: Dict[str, Tuple[float, float]] = {
    "intensity":        (0.0, 1.0),
    "brightness":       (0.0, 2.0),
    "contrast":         (0.0, 2.0),
    "gamma":            (0.1, 3.0),
    "transparency":     (0.0, 1.0),
    "selection_radius": (0.1, 2.0),
    "min_similarity":   (0.0, 1.0),
    "alpha_threshold":  (0.0, 1.0),
}


@dataclass(slots=True, frozen=True)
class DifferenceConfig:
    """
    Options for ``difference_transfer``.

    ``selection_radius`` widens (> 1) or narrows (< 1) the similarity
    falloff of the weighted modes; ``min_similarity`` is the floor of the
    per-pixel strength. ``gamma`` applies ``c ** (1 / gamma)``, so values
    above 1 lighten. ``transparency`` scales alpha by ``1 - transparency``.
    """
    intensity:        float = 1.0
    balance:          BalanceMode = BalanceMode.WEIGHTED
    selection_radius: float = 1.0
    min_similarity:   float = 0.1
    brightness:       float = 1.0
    contrast:         float = 1.0
    gamma:            float = 1.0
    transparency:     float = 0.0
    alpha_threshold:  float = DEFAULT_ALPHA_THRESHOLD

    def __post_init__(self) -> None:
        for name, (low, high) in _RANGES.items():
            raw = getattr(self, name)
            try:
                value = float(raw)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError(f"DifferenceConfig.{name} must be numeric: {exc}") from exc
            if not (low <= value <= high):
                raise InvalidInputError(f"{name} must lie in [{low}, {high}], got {raw}")
            object.__setattr__(self, name, value)
        try:
            object.__setattr__(self, "balance", BalanceMode(self.balance))
        except ValueError as exc:
            raise InvalidInputError(f"Unknown balance mode {self.balance!r}") from exc

    @classmethod
    def from_mapping(cls, params: Optional[Mapping[str, Any]] = None,
                     **overrides: Any) -> "DifferenceConfig":
        """Same hybrid construction as ``TransferConfig.from_mapping``."""
        merged: Dict[str, Any] = {**(params or {}), **overrides}
        unknown = sorted(set(merged) - set(_RANGES) - {"balance"})
        if unknown:
            raise InvalidInputError(f"Unknown DifferenceConfig keys: {unknown}")
        return cls(**merged)


def as_rgb(color: Sequence[float], label: str = "color") -> np.ndarray:
    """``(3,)`` float64 from an RGB or RGBA sequence in [0, 1]; alpha is dropped."""
    arr = np.asarray(color, dtype=np.float64).reshape(-1)
    if arr.shape not in ((3,), (4,)):
        raise InvalidInputError(f"{label} must have 3 or 4 components, got {arr.shape}")
    rgb = arr[:3]
    if not np.all(np.isfinite(rgb)) or np.any((rgb < 0.0) | (rgb > 1.0)):
        raise InvalidInputError(f"{label} components must lie in [0, 1], got {rgb.tolist()}")
    return rgb


# ---------------------------------------------------------------------------
# Difference transfer
# ---------------------------------------------------------------------------
def _finish(rgb: np.ndarray, alpha: np.ndarray,
            config: DifferenceConfig) -> Tuple[np.ndarray, np.ndarray]:
    if config.brightness != 1.0 or config.contrast != 1.0:
        rgb = np.clip(((rgb - 0.5) * config.contrast + 0.5) * config.brightness, 0.0, 1.0)
    if config.gamma != 1.0:
        rgb = np.power(rgb, 1.0 / config.gamma)
    if config.transparency > 0.0:
        alpha = alpha * (1.0 - config.transparency)
    return rgb, alpha


def difference_transfer(buffer: Any,
                        from_color: Sequence[float],
                        to_color: Sequence[float],
                        config: Optional[DifferenceConfig] = None,
                        selection_mask: Any = None) -> PixelBuffer:
    """
    Shift the selected pixels of *buffer* by ``to_color - from_color``.

    Args:
        buffer: ``PixelBuffer`` or array accepted by ``PixelBuffer.from_array``.
        from_color, to_color: RGB(A) in [0, 1].
        config: Balance mode and finishing adjustments.
        selection_mask: Optional ``(H, W)`` boolean grid or ``OccupancyMask``;
            pixels outside it keep their values.

    Returns:
        A new ``PixelBuffer``; the input is not modified.
    """
    config = config if config is not None else DifferenceConfig()
    src = coerce_buffer(buffer)
    origin = as_rgb(from_color, "from_color")
    diff = as_rgb(to_color, "to_color") - origin
    keep = src.eligible(config.alpha_threshold, coerce_mask(selection_mask, src))

    out = src.copy()
    if not np.any(keep):
        return out

    rgb = src.rgb[keep].astype(np.float64)
    alpha = src.alpha[keep].astype(np.float64)
    similarity = np.maximum(0.0, 1.0 - np.linalg.norm(rgb - origin, axis=1) / RGB_MAX_DISTANCE)

    if config.balance is BalanceMode.SIMPLE:
        moved = np.clip(rgb + diff * config.intensity, 0.0, 1.0)
        new_rgb, new_alpha = _finish(moved, alpha, config)
    else:
        if config.balance is BalanceMode.WEIGHTED:
            strength = np.maximum(config.min_similarity,
                                  similarity ** (1.0 / config.selection_radius)) * config.intensity
            step = diff * strength[:, None]
            blend = strength
        else:
            similarity = similarity * similarity
            strength = np.maximum(config.min_similarity,
                                  (similarity * config.intensity) ** (1.0 / config.selection_radius))
            step = diff * ((0.5 + similarity) * strength)[:, None]
            secondary = similarity ** config.selection_radius
            blend = strength + (secondary - strength) * 0.3

        moved_rgb, moved_alpha = _finish(np.clip(rgb + step, 0.0, 1.0), alpha, config)
        blend = np.clip(blend, 0.0, 1.0)
        new_rgb = rgb + (moved_rgb - rgb) * blend[:, None]
        new_alpha = alpha + (moved_alpha - alpha) * blend

    out.pixels[keep, :3] = np.clip(new_rgb, 0.0, 1.0)
    out.pixels[keep, 3] = new_alpha
    logger.debug("Difference transfer (%s) on %d pixels, shift %s",
                 config.balance.value, int(keep.sum()), np.round(diff, 4).tolist())
    return out


# ---------------------------------------------------------------------------
# Pair transfer in Lab
# ---------------------------------------------------------------------------
def _pair_strength(distance: np.ndarray, selection_range: float, intensity: float) -> np.ndarray:
    base = 1.0 - np.clip(distance / LAB_MAX_DISTANCE, 0.0, 1.0)
    reach = 0.1 + 0.9 * selection_range
    near = base * 0.1
    return (near + (base * reach - near) * base) * intensity


def color_pair_transfer(target: Any,
                        target_color: Sequence[float],
                        reference_color: Sequence[float],
                        config: Optional[TransferConfig] = None,
                        selection_range: float = 0.3) -> PixelBuffer:
    """
    Move *target* so that *target_color* lands on *reference_color*.

    Every eligible pixel is shifted by the Lab difference of the two
    colours, weighted by how close (CIE76) the pixel is to *target_color*.
    ``preserve_luminance`` keeps 70 % of each pixel's original lightness.

    Args:
        selection_range: In [0, 1]; larger values let pixels near the
            picked colour follow more closely.
    """
    config = config if config is not None else TransferConfig()
    if not 0.0 <= float(selection_range) <= 1.0:
        raise InvalidInputError(f"selection_range must lie in [0, 1], got {selection_range}")
    src = coerce_buffer(target)
    picked_lab = ColorSpaceEngine.srgb_to_lab(as_rgb(target_color, "target_color"))
    shift = ColorSpaceEngine.srgb_to_lab(as_rgb(reference_color, "reference_color")) - picked_lab

    out = src.copy()
    keep = src.alpha >= np.float32(config.alpha_threshold)
    if config.intensity == 0.0 or not np.any(keep):
        return out

    rgb = src.rgb[keep].astype(np.float64)
    lab = ColorSpaceEngine.srgb_to_lab(rgb)
    distance = np.atleast_1d(ColorMetrics.delta_e_76(picked_lab, lab))
    strength = _pair_strength(distance, float(selection_range), config.intensity)

    moved = lab + shift * strength[:, None]
    if config.preserve_luminance:
        moved[:, 0] = moved[:, 0] + (lab[:, 0] - moved[:, 0]) * 0.7
    moved_rgb = np.clip(ColorSpaceEngine.lab_to_srgb(moved), 0.0, 1.0)
    out.pixels[keep, :3] = np.clip(rgb + (moved_rgb - rgb) * strength[:, None], 0.0, 1.0)
    logger.debug("Pair transfer: Lab shift %s, mean strength %.3f",
                 np.round(shift, 3).tolist(), float(strength.mean()))
    return out


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------
def flood_fill_selection(buffer: Any, x: int, y: int, tolerance: float = 0.1) -> np.ndarray:
    """
    Boolean ``(H, W)`` mask of the 4-connected region around pixel
    ``(x, y)`` (column, row from the top) whose RGB distance to the seed
    colour is at most *tolerance*.
    """
    src = coerce_buffer(buffer)
    if not (0 <= x < src.width and 0 <= y < src.height):
        raise InvalidInputError(f"Seed ({x}, {y}) lies outside {src.width}x{src.height}")
    if tolerance < 0.0:
        raise InvalidInputError(f"tolerance must be >= 0, got {tolerance}")

    rgb = src.rgb.astype(np.float64)
    close = np.linalg.norm(rgb - rgb[y, x], axis=-1) <= tolerance
    labels, _ = ndimage.label(close)
    return labels == labels[y, x]
