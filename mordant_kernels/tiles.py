# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: tiles.py — Tiled Lab reduction and transfer kernels.

The image is cut into ``tile x tile`` blocks. Tile ``(ty, tx)`` owns cell
``acc[ty, tx]`` of a ``(groups_y, groups_x, 4)`` float64 accumulator and
writes nothing else, so tiles never race:

    acc[..., 0:3]  per-channel partial sums (phase 1) or squared deviations
                   from a known mean (phase 2)
    acc[..., 3]    eligible pixel count

Each kernel exists twice with an identical, ``inline='always'`` tile body:
once under ``parallel=True`` with ``prange`` over the flattened tile grid,
once as a plain serial loop. They are separate functions so the on-disk
cache never mixes the two compilations.

Masks are passed as ``has_mask`` plus a boolean grid; without a mask a
``(1, 1)`` placeholder keeps the argument types stable.
"""

import numpy as np
from numba import njit, prange

from mordant_colorengine import lab_to_srgb_scalar, srgb_to_lab_scalar

NO_MASK = np.zeros((1, 1), dtype=np.bool_)


# =============================================================================
# 1. TILE BODIES
# =============================================================================

@njit(cache=True, inline='always')
def _tile_bounds(k, groups_x, tile, height, width):
    ty = k // groups_x
    tx = k % groups_x
    y0 = ty * tile
    x0 = tx * tile
    return ty, tx, y0, min(y0 + tile, height), x0, min(x0 + tile, width)

@njit(cache=True, inline='always')
def _mean_tile(pixels, alpha_threshold, has_mask, mask, tile, groups_x, k, acc):
    ty, tx, y0, y1, x0, x1 = _tile_bounds(k, groups_x, tile, pixels.shape[0], pixels.shape[1])
    s_l = 0.0
    s_a = 0.0
    s_b = 0.0
    n = 0.0
    for y in range(y0, y1):
        for x in range(x0, x1):
            if pixels[y, x, 3] < alpha_threshold:
                continue
            if has_mask and not mask[y, x]:
                continue
            L, a, b = srgb_to_lab_scalar(float(pixels[y, x, 0]),
                                         float(pixels[y, x, 1]),
                                         float(pixels[y, x, 2]))
            s_l += L
            s_a += a
            s_b += b
            n += 1.0
    acc[ty, tx, 0] = s_l
    acc[ty, tx, 1] = s_a
    acc[ty, tx, 2] = s_b
    acc[ty, tx, 3] = n

@njit(cache=True, inline='always')
def _variance_tile(pixels, alpha_threshold, has_mask, mask, tile, groups_x, k, mean, acc):
    ty, tx, y0, y1, x0, x1 = _tile_bounds(k, groups_x, tile, pixels.shape[0], pixels.shape[1])
    q_l = 0.0
    q_a = 0.0
    q_b = 0.0
    n = 0.0
    for y in range(y0, y1):
        for x in range(x0, x1):
            if pixels[y, x, 3] < alpha_threshold:
                continue
            if has_mask and not mask[y, x]:
                continue
            L, a, b = srgb_to_lab_scalar(float(pixels[y, x, 0]),
                                         float(pixels[y, x, 1]),
                                         float(pixels[y, x, 2]))
            dl = L - mean[0]
            da = a - mean[1]
            db = b - mean[2]
            q_l += dl * dl
            q_a += da * da
            q_b += db * db
            n += 1.0
    acc[ty, tx, 0] = q_l
    acc[ty, tx, 1] = q_a
    acc[ty, tx, 2] = q_b
    acc[ty, tx, 3] = n

@njit(cache=True, inline='always')
def _transfer_tile(pixels, alpha_threshold, tile, groups_x, k,
                   t_mean, t_sigma, r_mean, r_std, intensity, preserve_l, out):
    ty, tx, y0, y1, x0, x1 = _tile_bounds(k, groups_x, tile, pixels.shape[0], pixels.shape[1])
    for y in range(y0, y1):
        for x in range(x0, x1):
            for c in range(4):
                out[y, x, c] = pixels[y, x, c]
            if pixels[y, x, 3] < alpha_threshold:
                continue
            L, a, b = srgb_to_lab_scalar(float(pixels[y, x, 0]),
                                         float(pixels[y, x, 1]),
                                         float(pixels[y, x, 2]))
            mL = (L - t_mean[0]) / t_sigma[0] * r_std[0] + r_mean[0]
            ma = (a - t_mean[1]) / t_sigma[1] * r_std[1] + r_mean[1]
            mb = (b - t_mean[2]) / t_sigma[2] * r_std[2] + r_mean[2]
            nL = L + (mL - L) * intensity
            na = a + (ma - a) * intensity
            nb = b + (mb - b) * intensity
            if preserve_l:
                nL = L
            r, g, bb = lab_to_srgb_scalar(nL, na, nb)
            out[y, x, 0] = r
            out[y, x, 1] = g
            out[y, x, 2] = bb


# =============================================================================
# 2. GRID LOOPS (parallel)
# =============================================================================

@njit(parallel=True, cache=True)
def lab_mean_parallel(pixels, alpha_threshold, has_mask, mask, tile, groups_x, groups_y, acc):
    for k in prange(groups_x * groups_y):
        _mean_tile(pixels, alpha_threshold, has_mask, mask, tile, groups_x, k, acc)

@njit(parallel=True, cache=True)
def lab_variance_parallel(pixels, alpha_threshold, has_mask, mask, tile, groups_x, groups_y, mean, acc):
    for k in prange(groups_x * groups_y):
        _variance_tile(pixels, alpha_threshold, has_mask, mask, tile, groups_x, k, mean, acc)

@njit(parallel=True, cache=True)
def lab_transfer_parallel(pixels, alpha_threshold, tile, groups_x, groups_y,
                          t_mean, t_sigma, r_mean, r_std, intensity, preserve_l, out):
    for k in prange(groups_x * groups_y):
        _transfer_tile(pixels, alpha_threshold, tile, groups_x, k,
                       t_mean, t_sigma, r_mean, r_std, intensity, preserve_l, out)


# =============================================================================
# 3. GRID LOOPS (serial)
# =============================================================================

@njit(cache=True)
def lab_mean_serial(pixels, alpha_threshold, has_mask, mask, tile, groups_x, groups_y, acc):
    for k in range(groups_x * groups_y):
        _mean_tile(pixels, alpha_threshold, has_mask, mask, tile, groups_x, k, acc)

@njit(cache=True)
def lab_variance_serial(pixels, alpha_threshold, has_mask, mask, tile, groups_x, groups_y, mean, acc):
    for k in range(groups_x * groups_y):
        _variance_tile(pixels, alpha_threshold, has_mask, mask, tile, groups_x, k, mean, acc)

@njit(cache=True)
def lab_transfer_serial(pixels, alpha_threshold, tile, groups_x, groups_y,
                        t_mean, t_sigma, r_mean, r_std, intensity, preserve_l, out):
    for k in range(groups_x * groups_y):
        _transfer_tile(pixels, alpha_threshold, tile, groups_x, k,
                       t_mean, t_sigma, r_mean, r_std, intensity, preserve_l, out)


@njit(parallel=True, cache=True)
def probe_kernel(values):
    """Smallest ``prange`` reduction; used to confirm the parallel backend works."""
    total = 0.0
    for i in prange(values.shape[0]):
        total += values[i]
    return total
