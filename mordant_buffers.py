# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_buffers.py — Value objects shared by every engine.

  * PixelBuffer      float32 RGBA texel grid, row 0 at the top.
  * ColorStatistics  per-channel Lab mean / stddev over an eligible set.
  * TransferConfig   immutable per-call transfer options.

All three are frozen, slotted dataclasses validated in ``__post_init__``.
Buffers are owned by the caller; nothing in the core keeps a reference to
one after a call returns.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Final, Mapping, Optional, Sequence, Tuple, TypeAlias

import numpy as np

from mordant_errors import InvalidInputError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_ALPHA_THRESHOLD: Final[float] = 0.01
STDDEV_EPSILON: Final[float] = 1e-6

RGBA: TypeAlias = Tuple[float, float, float, float]


# ---------------------------------------------------------------------------
# 1.  PixelBuffer
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class PixelBuffer:
    """
    A ``(height, width, 4)`` float32 RGBA grid in [0, 1].

    Row 0 is the top of the image, so UV ``v = 1`` maps to row 0.
    """
    width:  int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(
                f"PixelBuffer dimensions must be positive, got {self.width}x{self.height}"
            )
        px = np.ascontiguousarray(self.pixels, dtype=np.float32)
        if px.shape != (self.height, self.width, 4):
            raise InvalidInputError(
                f"PixelBuffer expected pixels of shape {(self.height, self.width, 4)}, "
                f"got {px.shape}"
            )
        object.__setattr__(self, "pixels", px)

    # -- construction ------------------------------------------------------
    @classmethod
    def from_array(cls, array: Any, width: Optional[int] = None,
                   height: Optional[int] = None) -> "PixelBuffer":
        """
        Build a buffer from ``(H, W, 3|4)`` or flat ``(H*W, 3|4)`` data.

        Flat input needs *width* and *height*. Three-channel input gets an
        opaque alpha. Integer dtypes are scaled by their maximum value,
        floats are clipped to [0, 1].
        """
        if array is None:
            raise InvalidInputError("PixelBuffer.from_array received None")
        arr = np.asarray(array)
        if arr.size == 0:
            raise InvalidInputError("PixelBuffer.from_array received an empty array")

        if arr.ndim == 2:
            if width is None or height is None:
                raise InvalidInputError("Flat pixel arrays need explicit width and height")
            if arr.shape[0] != width * height:
                raise InvalidInputError(
                    f"Flat pixel array has {arr.shape[0]} entries, expected {width * height}"
                )
            arr = arr.reshape(height, width, arr.shape[-1])
        elif arr.ndim != 3:
            raise InvalidInputError(f"Expected a 2-D or 3-D pixel array, got ndim={arr.ndim}")

        h, w, c = arr.shape
        if c not in (3, 4):
            raise InvalidInputError(f"Expected 3 or 4 channels, got {c}")
        if (width is not None and width != w) or (height is not None and height != h):
            raise InvalidInputError(f"Array is {w}x{h}, expected {width}x{height}")

        if np.issubdtype(arr.dtype, np.integer):
            data = arr.astype(np.float32) / np.float32(np.iinfo(arr.dtype).max)
        else:
            data = np.clip(arr.astype(np.float32), 0.0, 1.0)

        if c == 3:
            data = np.concatenate([data, np.ones((h, w, 1), dtype=np.float32)], axis=-1)
        return cls(w, h, data)

    @classmethod
    def uniform(cls, width: int, height: int, rgba: Sequence[float]) -> "PixelBuffer":
        """A single-colour buffer. *rgba* may omit alpha."""
        color = np.asarray(rgba, dtype=np.float32)
        if color.shape not in ((3,), (4,)):
            raise InvalidInputError(f"Colour must have 3 or 4 components, got {color.shape}")
        if color.shape == (3,):
            color = np.append(color, np.float32(1.0))
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Dimensions must be positive, got {width}x{height}")
        return cls(width, height, np.broadcast_to(color, (height, width, 4)).copy())

    # -- views -------------------------------------------------------------
    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[..., :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def eligible(self, alpha_threshold: float,
                 mask: Optional[np.ndarray] = None) -> np.ndarray:
        """Boolean ``(H, W)`` grid: alpha at or above threshold and, if given, occupied."""
        keep = self.alpha >= np.float32(alpha_threshold)
        if mask is not None:
            keep &= mask
        return keep

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, self.pixels.copy())

    def flat(self) -> np.ndarray:
        """``(H*W, 4)`` view, the layout a host ``set_pixels`` call expects."""
        return self.pixels.reshape(-1, 4)

    def to_uint8(self) -> np.ndarray:
        return np.round(self.pixels * 255.0).astype(np.uint8)


# ---------------------------------------------------------------------------
# 2.  ColorStatistics
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class ColorStatistics:
    """Per Lab channel mean and population standard deviation."""
    mean:   np.ndarray
    stddev: np.ndarray
    count:  int

    def __post_init__(self) -> None:
        mean = np.array(self.mean, dtype=np.float64).reshape(-1)
        std = np.array(self.stddev, dtype=np.float64).reshape(-1)
        if mean.shape != (3,) or std.shape != (3,):
            raise InvalidInputError(
                f"ColorStatistics needs 3 channels, got mean {mean.shape}, stddev {std.shape}"
            )
        if int(self.count) <= 0:
            raise InvalidInputError(f"ColorStatistics count must be positive, got {self.count}")
        if np.any(std < 0.0):
            raise InvalidInputError("ColorStatistics stddev must be non-negative")
        mean.flags.writeable = False
        std.flags.writeable = False
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "stddev", std)
        object.__setattr__(self, "count", int(self.count))

    @property
    def l_mean(self) -> float: return float(self.mean[0])
    @property
    def a_mean(self) -> float: return float(self.mean[1])
    @property
    def b_mean(self) -> float: return float(self.mean[2])
    @property
    def l_std(self) -> float: return float(self.stddev[0])
    @property
    def a_std(self) -> float: return float(self.stddev[1])
    @property
    def b_std(self) -> float: return float(self.stddev[2])

    def is_degenerate(self, eps: float = STDDEV_EPSILON) -> np.ndarray:
        """Per-channel flags for stddev at or below *eps*."""
        return self.stddev <= eps

    def allclose(self, other: "ColorStatistics", atol: float = 1e-3) -> bool:
        return (self.count == other.count
                and bool(np.allclose(self.mean, other.mean, rtol=0.0, atol=atol))
                and bool(np.allclose(self.stddev, other.stddev, rtol=0.0, atol=atol)))

    def summary(self) -> str:
        return (f"n={self.count} "
                f"L={self.l_mean:.3f}±{self.l_std:.3f} "
                f"a={self.a_mean:.3f}±{self.a_std:.3f} "
                f"b={self.b_mean:.3f}±{self.b_std:.3f}")


# ---------------------------------------------------------------------------
# 3.  TransferConfig
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class TransferConfig:
    """
    Options for one transfer call.

    ``intensity`` is the blend factor towards the matched colour; values
    above 1 extrapolate. ``alpha_threshold`` decides which pixels count for
    statistics and which are recoloured.
    """
    intensity:          float = 1.0
    preserve_luminance: bool = False
    alpha_threshold:    float = DEFAULT_ALPHA_THRESHOLD

    def __post_init__(self) -> None:
        try:
            intensity = float(self.intensity)
            threshold = float(self.alpha_threshold)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"TransferConfig values must be numeric: {exc}") from exc
        if not math.isfinite(intensity) or intensity < 0.0:
            raise InvalidInputError(f"intensity must be finite and >= 0, got {self.intensity}")
        if not (0.0 <= threshold <= 1.0):
            raise InvalidInputError(f"alpha_threshold must lie in [0, 1], got {self.alpha_threshold}")
        object.__setattr__(self, "intensity", intensity)
        object.__setattr__(self, "alpha_threshold", threshold)
        object.__setattr__(self, "preserve_luminance", bool(self.preserve_luminance))

    @classmethod
    def from_mapping(cls, params: Optional[Mapping[str, Any]] = None,
                     **overrides: Any) -> "TransferConfig":
        """
        Hybrid construction: a mapping (e.g. from a config file) with keyword
        overrides on top.

        Example:
            TransferConfig.from_mapping({"intensity": 0.5}, preserve_luminance=True)
        """
        merged: Dict[str, Any] = {**(params or {}), **overrides}
        unknown = sorted(set(merged) - {"intensity", "preserve_luminance", "alpha_threshold"})
        if unknown:
            raise InvalidInputError(f"Unknown TransferConfig keys: {unknown}")
        return cls(**merged)

    def with_intensity(self, intensity: float) -> "TransferConfig":
        return replace(self, intensity=intensity)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "intensity": self.intensity,
            "preserve_luminance": self.preserve_luminance,
            "alpha_threshold": self.alpha_threshold,
        }
