# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_uv.py — Which texels of a texture a mesh actually uses.

UV triangles are rasterised at texture resolution into an ``OccupancyMask``.
UV space has its origin bottom-left, pixel space top-left, so

    x = u * width
    y = (1 - v) * height

Coordinates are wrapped into [0, 1) first to follow texture tiling.

Fill modes
----------
SCANLINE (default)
    Filled triangles. A texel is occupied when its centre lies inside the
    triangle or on an edge (edge-function test). Each triangle is shifted by
    the floor of its minimum corner, so one touching u = 1 or v = 1 keeps
    its shape. A triangle that crosses u = 1 or v = 1 is rasterised once
    per tile it overlaps, so the overhang lands on the opposite edge as it
    would when the texture repeats.
EDGES
    Wireframe compatible with older tooling: each vertex wrapped on its own,
    truncated to integer texels and the three edges drawn with Bresenham
    lines. Interior texels are not marked, so coverage is under-reported.
    Truncation is per vertex, not per texel centre: a vertex at u = 0.5
    marks column ``width // 2``, one past the left half, and a vertex at
    u = 1 wraps to column 0.

Beyond the mask itself this module offers slot-group analysis of a whole
renderer, a masked preview and k-means dominant colours restricted to the
occupied texels.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Hashable, Optional, Sequence, Tuple

import numpy as np
from numba import njit
from scipy.cluster.vq import kmeans2

from mordant_buffers import DEFAULT_ALPHA_THRESHOLD, PixelBuffer
from mordant_errors import InvalidInputError, NoEligiblePixelsError
from mordant_interfaces import GeometryAccessor, MaterialAccessor
from mordant_materials import MaterialBinding, TextureRef, resolve_material_binding, slot_group

logger = logging.getLogger(__name__)

__all__ = [
    "FillMode",
    "OccupancyMask",
    "UVAnalysis",
    "build_occupancy_mask",
    "analyze_uv_usage",
    "create_masked_preview",
    "extract_dominant_colors",
]

UVBounds = Tuple[float, float, float, float]


class FillMode(enum.Enum):
    """
    ``SCANLINE`` marks texel centres covered by each triangle.
    ``EDGES`` only strokes triangle outlines between truncated vertex
    texels; it can mark one column or row beyond the UV extent (a
    left-half quad touches column ``width // 2``).
    """
    SCANLINE = "scanline"
    EDGES = "edges"


# ---------------------------------------------------------------------------
# 1.  Mask value object
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class OccupancyMask:
    """Immutable ``(height, width)`` boolean grid of used texels."""
    width:          int
    height:         int
    occupied:       np.ndarray
    triangle_count: int = 0
    uv_bounds:      Optional[UVBounds] = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(f"Mask dimensions must be positive, got {self.width}x{self.height}")
        occ = np.array(self.occupied, dtype=bool)
        if occ.shape != (self.height, self.width):
            raise InvalidInputError(
                f"Mask grid has shape {occ.shape}, expected {(self.height, self.width)}"
            )
        occ.flags.writeable = False
        object.__setattr__(self, "occupied", occ)

    @property
    def occupied_count(self) -> int:
        return int(np.count_nonzero(self.occupied))

    @property
    def coverage(self) -> float:
        """Occupied fraction in [0, 1]."""
        return self.occupied_count / float(self.width * self.height)

    @property
    def usage_percentage(self) -> float:
        return 100.0 * self.coverage

    def union(self, other: "OccupancyMask") -> "OccupancyMask":
        if (self.width, self.height) != (other.width, other.height):
            raise InvalidInputError(
                f"Cannot merge {self.width}x{self.height} mask with "
                f"{other.width}x{other.height} mask"
            )
        return OccupancyMask(self.width, self.height,
                             self.occupied | other.occupied,
                             self.triangle_count + other.triangle_count,
                             _merge_bounds(self.uv_bounds, other.uv_bounds))

    def resized(self, width: int, height: int) -> "OccupancyMask":
        """Nearest-neighbour resample, sampling at texel centres."""
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Mask dimensions must be positive, got {width}x{height}")
        rows = ((np.arange(height) + 0.5) * self.height / height).astype(np.int64)
        cols = ((np.arange(width) + 0.5) * self.width / width).astype(np.int64)
        grid = self.occupied[np.minimum(rows, self.height - 1)][:, np.minimum(cols, self.width - 1)]
        return OccupancyMask(width, height, grid, self.triangle_count, self.uv_bounds)


def _merge_bounds(a: Optional[UVBounds], b: Optional[UVBounds]) -> Optional[UVBounds]:
    if a is None:
        return b
    if b is None:
        return a
    return (min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))


# ---------------------------------------------------------------------------
# 2.  Rasterisation kernels
# ---------------------------------------------------------------------------
@njit(cache=True, inline='always')
def _edge(ax, ay, bx, by, px, py):
    return (bx - ax) * (py - ay) - (by - ay) * (px - ax)

@njit(cache=True, inline='always')
def _fill_one(x0, y0, x1, y1, x2, y2, sign, width, height, out):
    # Texel centres px + 0.5 inside the bounding box, clipped to the grid.
    cx0 = max(int(np.ceil(min(x0, x1, x2) - 0.5)), 0)
    cx1 = min(int(np.floor(max(x0, x1, x2) - 0.5)), width - 1)
    cy0 = max(int(np.ceil(min(y0, y1, y2) - 0.5)), 0)
    cy1 = min(int(np.floor(max(y0, y1, y2) - 0.5)), height - 1)

    for py in range(cy0, cy1 + 1):
        fy = py + 0.5
        for px in range(cx0, cx1 + 1):
            fx = px + 0.5
            w0 = sign * _edge(x1, y1, x2, y2, fx, fy)
            w1 = sign * _edge(x2, y2, x0, y0, fx, fy)
            w2 = sign * _edge(x0, y0, x1, y1, fx, fy)
            if w0 >= 0.0 and w1 >= 0.0 and w2 >= 0.0:
                out[py, px] = True

@njit(cache=True)
def _fill_triangles(tris, uvs, width, height, out):
    fw = float(width)
    fh = float(height)
    for t in range(tris.shape[0]):
        i0, i1, i2 = tris[t, 0], tris[t, 1], tris[t, 2]
        u0, v0 = uvs[i0, 0], uvs[i0, 1]
        u1, v1 = uvs[i1, 0], uvs[i1, 1]
        u2, v2 = uvs[i2, 0], uvs[i2, 1]

        # Shift into the unit tile by the floor of the minimum corner.
        su = np.floor(min(u0, u1, u2))
        sv = np.floor(min(v0, v1, v2))

        x0 = (u0 - su) * fw
        x1 = (u1 - su) * fw
        x2 = (u2 - su) * fw
        y0 = (1.0 - (v0 - sv)) * fh
        y1 = (1.0 - (v1 - sv)) * fh
        y2 = (1.0 - (v2 - sv)) * fh

        area = _edge(x0, y0, x1, y1, x2, y2)
        if area == 0.0:
            continue
        sign = 1.0 if area > 0.0 else -1.0

        # Tiles the shifted triangle overlaps; each one is folded back.
        nu = max(int(np.ceil(max(u0, u1, u2) - su)), 1)
        nv = max(int(np.ceil(max(v0, v1, v2) - sv)), 1)
        for a in range(nu):
            ox = a * fw
            for b in range(nv):
                oy = b * fh
                _fill_one(x0 - ox, y0 + oy, x1 - ox, y1 + oy, x2 - ox, y2 + oy,
                          sign, width, height, out)

@njit(cache=True, inline='always')
def _to_texel(u, v, width, height):
    u = u - np.floor(u)
    v = v - np.floor(v)
    x = min(max(int(u * width), 0), width - 1)
    y = min(max(int((1.0 - v) * height), 0), height - 1)
    return x, y

@njit(cache=True, inline='always')
def _draw_line(out, x0, y0, x1, y1):
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    while True:
        out[y0, x0] = True
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy

@njit(cache=True)
def _stroke_triangles(tris, uvs, width, height, out):
    for t in range(tris.shape[0]):
        ax, ay = _to_texel(uvs[tris[t, 0], 0], uvs[tris[t, 0], 1], width, height)
        bx, by = _to_texel(uvs[tris[t, 1], 0], uvs[tris[t, 1], 1], width, height)
        cx, cy = _to_texel(uvs[tris[t, 2], 0], uvs[tris[t, 2], 1], width, height)
        _draw_line(out, ax, ay, bx, by)
        _draw_line(out, bx, by, cx, cy)
        _draw_line(out, cx, cy, ax, ay)


# ---------------------------------------------------------------------------
# 3.  Public API
# ---------------------------------------------------------------------------
def _validate_geometry(triangle_indices, uv_coordinates, width, height) -> Tuple[np.ndarray, np.ndarray]:
    if int(width) != width or int(height) != height or width <= 0 or height <= 0:
        raise InvalidInputError(f"Texture dimensions must be positive integers, got {width}x{height}")
    if triangle_indices is None or uv_coordinates is None:
        raise InvalidInputError("Triangle indices and UV coordinates are required")

    uvs = np.ascontiguousarray(uv_coordinates, dtype=np.float64)
    if uvs.ndim != 2 or uvs.shape[1] != 2:
        raise InvalidInputError(f"UV coordinates must have shape (N, 2), got {uvs.shape}")
    if not np.all(np.isfinite(uvs)):
        raise InvalidInputError("UV coordinates contain NaN or infinity")

    idx = np.asarray(triangle_indices)
    if idx.size and not np.issubdtype(idx.dtype, np.integer):
        raise InvalidInputError(f"Triangle indices must be integers, got {idx.dtype}")
    idx = idx.astype(np.int64).reshape(-1)
    if idx.size % 3 != 0:
        raise InvalidInputError(f"Index count {idx.size} is not a multiple of 3")
    if idx.size and (idx.min() < 0 or idx.max() >= uvs.shape[0]):
        raise InvalidInputError(
            f"Triangle indices must lie in [0, {uvs.shape[0]}), got [{idx.min()}, {idx.max()}]"
        )
    return np.ascontiguousarray(idx.reshape(-1, 3)), uvs


def build_occupancy_mask(triangle_indices: Sequence[int],
                         uv_coordinates: np.ndarray,
                         width: int,
                         height: int,
                         fill: FillMode = FillMode.SCANLINE) -> OccupancyMask:
    """
    Rasterise UV triangles into a ``height x width`` occupancy mask.

    Args:
        triangle_indices: Flat vertex indices, three per triangle.
        uv_coordinates: ``(N, 2)`` UVs addressed by the indices.
        width, height: Texture resolution in texels.
        fill: ``FillMode.SCANLINE`` or the wireframe ``FillMode.EDGES``.

    Raises:
        InvalidInputError: bad dimensions, index count, index range or UV shape.
    """
    tris, uvs = _validate_geometry(triangle_indices, uv_coordinates, width, height)
    width, height = int(width), int(height)
    out = np.zeros((height, width), dtype=np.bool_)

    bounds: Optional[UVBounds] = None
    if tris.shape[0]:
        used = uvs[np.unique(tris)]
        lo, hi = used.min(axis=0), used.max(axis=0)
        bounds = (float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))

        if fill is FillMode.SCANLINE:
            _fill_triangles(tris, uvs, width, height, out)
        elif fill is FillMode.EDGES:
            _stroke_triangles(tris, uvs, width, height, out)
        else:
            raise InvalidInputError(f"Unknown fill mode {fill!r}")

    mask = OccupancyMask(width, height, out, int(tris.shape[0]), bounds)
    logger.debug("Rasterised %d triangles at %dx%d (%s): %.2f%% used",
                 mask.triangle_count, width, height, fill.value, mask.usage_percentage)
    return mask


@dataclass(slots=True, frozen=True)
class UVAnalysis:
    """Mask for one renderer/texture pair plus how it was resolved."""
    mask:         OccupancyMask
    binding:      MaterialBinding
    slot_indices: Tuple[int, ...]


def analyze_uv_usage(geometry: GeometryAccessor,
                     materials: MaterialAccessor,
                     renderer: Hashable,
                     mesh: Hashable,
                     texture: TextureRef,
                     material_index: int = 0,
                     uv_channel: int = 0,
                     fill: FillMode = FillMode.SCANLINE) -> UVAnalysis:
    """
    Occupancy of *texture* across every submesh drawn with its material.

    The slot binding *texture* is resolved first; every slot sharing that
    slot's material name then contributes its submesh. Slots without a
    matching submesh are skipped.
    """
    slots = materials.get_material_slots(renderer)
    binding = resolve_material_binding(slots, renderer, texture, material_index)
    group = slot_group(slots, binding.material_slot_index)

    uvs = geometry.get_uvs(mesh, uv_channel)
    n_sub = geometry.submesh_count(mesh)

    mask = OccupancyMask(texture.width, texture.height,
                         np.zeros((texture.height, texture.width), dtype=bool))
    for index in group:
        if index >= n_sub:
            logger.debug("Slot %d has no submesh on %r, skipped", index, mesh)
            continue
        tris = geometry.get_triangles(mesh, index)
        mask = mask.union(build_occupancy_mask(tris, uvs, texture.width, texture.height, fill))

    logger.info("UV usage of '%s' on %r (slots %s): %.2f%% of %dx%d texels",
                texture.name, renderer, list(group), mask.usage_percentage,
                texture.width, texture.height)
    return UVAnalysis(mask, binding, group)


def create_masked_preview(buffer: PixelBuffer,
                          mask: OccupancyMask,
                          mask_color: Sequence[float] = (0.2, 0.2, 0.2, 0.3),
                          mask_alpha: float = 0.3) -> PixelBuffer:
    """Occupied texels unchanged, the rest lerped towards *mask_color* by *mask_alpha*."""
    if (mask.width, mask.height) != (buffer.width, buffer.height):
        raise InvalidInputError(
            f"Mask {mask.width}x{mask.height} does not match buffer {buffer.width}x{buffer.height}"
        )
    color = np.asarray(mask_color, dtype=np.float32)
    if color.shape == (3,):
        color = np.append(color, np.float32(mask_alpha))
    elif color.shape != (4,):
        raise InvalidInputError(f"mask_color must have 3 or 4 components, got {color.shape}")

    out = buffer.pixels.copy()
    free = ~mask.occupied
    out[free] = out[free] + (color - out[free]) * np.float32(mask_alpha)
    return PixelBuffer(buffer.width, buffer.height, out)


def extract_dominant_colors(buffer: PixelBuffer,
                            mask: Optional[OccupancyMask] = None,
                            count: int = 5,
                            alpha_threshold: float = DEFAULT_ALPHA_THRESHOLD,
                            seed: int = 0) -> np.ndarray:
    """
    K-means cluster centres of the eligible RGB texels.

    Returns:
        ``(k, 3)`` array, most populous cluster first. ``k <= count``;
        empty clusters are dropped.

    Raises:
        NoEligiblePixelsError: nothing passes the alpha threshold and mask.
    """
    if count <= 0:
        raise InvalidInputError(f"count must be positive, got {count}")
    occupied = None
    if mask is not None:
        if (mask.width, mask.height) != (buffer.width, buffer.height):
            raise InvalidInputError("Mask dimensions do not match the buffer")
        occupied = mask.occupied

    keep = buffer.eligible(alpha_threshold, occupied)
    data = buffer.rgb[keep].astype(np.float64)
    if data.shape[0] == 0:
        raise NoEligiblePixelsError("No eligible pixels for colour extraction",
                                    total=buffer.width * buffer.height,
                                    alpha_threshold=alpha_threshold,
                                    masked=mask is not None)

    unique, inverse = np.unique(data, axis=0, return_inverse=True)
    if unique.shape[0] <= count:
        centroids = unique
        labels = inverse.reshape(-1)
        k = unique.shape[0]
    else:
        k = count
        centroids, labels = kmeans2(data, k, minit="++", seed=seed)

    population = np.bincount(labels, minlength=k)
    order = np.argsort(-population, kind="stable")
    order = order[population[order] > 0]
    logger.debug("Dominant colours from %d texels: populations %s",
                 data.shape[0], population[order].tolist())
    return np.clip(centroids[order], 0.0, 1.0)
