# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Colour Space Engine
===================
JIT-compiled colour conversions used by the statistics engines and the
transfer kernels.

Covered spaces:
    sRGB (IEC 61966-2-1 piecewise gamma) <-> CIE XYZ (D65)
    CIE XYZ <-> CIELAB (D65, exact rational breakpoints)
    sRGB <-> HSV (hexagonal, hue in [0, 360))

Two API layers exist:
    1. Vectorised, shape-safe methods on ``ColorSpaceEngine`` that accept
       ``(3,)`` or ``(N, 3)`` arrays.
    2. Scalar ``inline='always'`` kernels (``srgb_to_lab_scalar`` /
       ``lab_to_srgb_scalar``) meant to be called from inside other Numba
       kernels, e.g. the tiled reductions in ``mordant_kernels``.

Both layers share the same constants and produce the same numbers up to
floating-point summation order.

Gamut note:
    The trip back to sRGB clamps linear light to [0, 1]. Out-of-gamut Lab
    values are therefore truncated. That loss is accepted: the matched Lab
    statistics routinely land outside the sRGB gamut and the caller wants a
    displayable texture.

References:
    - CIE 15:2004 "Colorimetry"
    - IEC 61966-2-1:1999 (sRGB Standard)
    - ITU-R BT.601 (luma weights)
"""

import functools
import numpy as np
import numpy.typing as npt
from numba import njit, prange
from typing import Tuple, Final, TypeAlias, Callable, Any

__all__ = [
    # --- Type Aliases ---
    "ArrayFloat",

    # --- Constants ---
    "REF_WHITE_D65",
    "LAB_EPSILON",
    "LAB_KAPPA",
    "REC601_WEIGHTS",
    "M_XYZ_TO_SRGB_T",
    "M_SRGB_TO_XYZ_T",

    # --- Decorators ---
    "handle_shapes",

    # --- Scalar kernels ---
    "srgb_to_lab_scalar",
    "lab_to_srgb_scalar",

    # --- Classes ---
    "ColorSpaceEngine",
    "ColorAdjustments",
    "ColorMetrics",
]

# --- Type Aliases ---
ArrayFloat: TypeAlias = npt.NDArray[np.floating]

# --- Constants & Pre-Transposed Matrices ---

# D65: Average daylight (approx 6500K), Y=1.0
REF_WHITE_D65: Final[ArrayFloat] = np.array([0.95047, 1.00000, 1.08883], dtype=np.float64)
_XN: Final[float] = 0.95047
_YN: Final[float] = 1.00000
_ZN: Final[float] = 1.08883

# sRGB Matrices, IEC 61966-2-1.
# Pre-transposed so row-vector pixels can be multiplied as ``rgb @ M_T``.
_M_XYZ_TO_SRGB_BASE = np.array([
    [ 3.2404542, -1.5371385, -0.4985314],
    [-0.9692660,  1.8760108,  0.0415560],
    [ 0.0556434, -0.2040259,  1.0572252]
], dtype=np.float64)
M_XYZ_TO_SRGB_T: Final[ArrayFloat] = _M_XYZ_TO_SRGB_BASE.T.copy()

_M_SRGB_TO_XYZ_BASE = np.array([
    [ 0.4124564,  0.3575761,  0.1804375],
    [ 0.2126729,  0.7151522,  0.0721750],
    [ 0.0193339,  0.1191920,  0.9503041]
], dtype=np.float64)
M_SRGB_TO_XYZ_T: Final[ArrayFloat] = _M_SRGB_TO_XYZ_BASE.T.copy()

# --- Exact Rational Math Constants ---
# delta = 6/29 is the threshold where f(t) switches from cubic to linear.
_LAB_DELTA: Final[float] = 6.0 / 29.0
LAB_EPSILON: Final[float] = _LAB_DELTA * _LAB_DELTA * _LAB_DELTA  # ~0.008856
LAB_KAPPA: Final[float]   = (116.0 * 29.0 * 29.0) / (3.0 * 6.0 * 6.0) # ~903.296

# Rec.601 luma, as used by the texture tooling for luminance preservation.
REC601_WEIGHTS: Final[ArrayFloat] = np.array([0.299, 0.587, 0.114], dtype=np.float64)


# =============================================================================
# 1. ROBUST DECORATORS
# =============================================================================

def handle_shapes(func: Callable[..., ArrayFloat]) -> Callable[..., ArrayFloat]:
    """
    Decorator to normalize inputs to (N, 3) float64 and safeguard shape.

    Args:
        func: The function to decorate.

    Returns:
        The wrapped function with shape handling.
        - If input is (3,), returns (3,)
        - If input is (N, 3), returns (N, 3)
    """
    @functools.wraps(func)
    def wrapper(arr: ArrayFloat, *args: Any, **kwargs: Any) -> ArrayFloat:
        arr = np.asarray(arr)
        arr_in = np.ascontiguousarray(np.atleast_2d(arr), dtype=np.float64)

        if arr_in.ndim != 2 or arr_in.shape[-1] != 3:
            raise ValueError(f"Expected shape (3,) or (N, 3), got {arr.shape}")

        res = func(arr_in, *args, **kwargs)

        if arr.ndim == 1:
            return res[0]
        return res
    return wrapper


# =============================================================================
# 2. LOW-LEVEL MATH KERNELS (Numba Optimized)
# =============================================================================
# NOTE: fastmath=True allows reassociation and relaxed IEEE compliance.
# Inputs to the transfer functions are always clipped first, so no
# inf/NaN can reach them.

@njit(cache=True, fastmath=True)
def _fast_gamma_srgb(linear: ArrayFloat) -> ArrayFloat:
    """
    Applies sRGB OETF (Gamma Correction).

    Performance Note:
        Uses an explicit loop instead of `np.where` to avoid allocating a
        boolean mask array.
    """
    out = np.empty_like(linear)
    linear_flat = linear.ravel()
    out_flat = out.ravel()

    for i in range(linear.size):
        v = linear_flat[i]
        if v <= 0.0031308:
            out_flat[i] = 12.92 * v
        else:
            out_flat[i] = 1.055 * (v ** (1.0/2.4)) - 0.055
    return out

@njit(cache=True, fastmath=True)
def _fast_inverse_gamma_srgb(srgb: ArrayFloat) -> ArrayFloat:
    """Applies sRGB EOTF (Inverse Gamma)."""
    out = np.empty_like(srgb)
    srgb_flat = srgb.ravel()
    out_flat = out.ravel()

    for i in range(srgb.size):
        v = srgb_flat[i]
        if v <= 0.04045:
            out_flat[i] = v / 12.92
        else:
            out_flat[i] = ((v + 0.055) / 1.055) ** 2.4
    return out

@njit(cache=True, fastmath=True)
def _xyz_to_lab_f(t: ArrayFloat) -> ArrayFloat:
    """
    Non-linear transfer function f(t) for CIELAB.

    Cube root above (6/29)^3, linear slope below it, so f is finite and
    continuous at 0.
    """
    out = np.empty_like(t)
    t_flat = t.ravel()
    out_flat = out.ravel()

    for i in range(t.size):
        v = t_flat[i]
        if v > LAB_EPSILON:
            out_flat[i] = v ** (1.0/3.0)
        else:
            out_flat[i] = (LAB_KAPPA * v + 16.0) / 116.0
    return out

@njit(cache=True, fastmath=True)
def _lab_to_xyz_f_inv(t: ArrayFloat) -> ArrayFloat:
    """
    Inverse non-linear transfer function for CIELAB.

    Uses multiplication form (116*t - 16)/k instead of (t - 16/116)/(k/116)
    to minimize floating point division errors near the delta threshold.
    """
    out = np.empty_like(t)
    t_flat = t.ravel()
    out_flat = out.ravel()

    for i in range(t.size):
        v = t_flat[i]
        if v > _LAB_DELTA:
            out_flat[i] = v ** 3.0
        else:
            out_flat[i] = (116.0 * v - 16.0) / LAB_KAPPA
    return out

@njit(cache=True)
def _srgb_to_hsv_kernel(rgb: ArrayFloat) -> ArrayFloat:
    """
    Hexagonal HSV. Hue in degrees [0, 360), saturation and value in [0, 1].
    Achromatic pixels (max == min) get hue 0 and saturation 0.
    """
    n = rgb.shape[0]
    hsv = np.empty_like(rgb)

    for i in range(n):
        r, g, b = rgb[i, 0], rgb[i, 1], rgb[i, 2]
        c_max = max(r, g, b)
        c_min = min(r, g, b)
        delta = c_max - c_min

        h = 0.0
        s = 0.0
        if delta > 0.0:
            s = delta / c_max
            if c_max == r:
                h = ((g - b) / delta) % 6.0
            elif c_max == g:
                h = (b - r) / delta + 2.0
            else:
                h = (r - g) / delta + 4.0
            h *= 60.0
            if h < 0.0:
                h += 360.0
            elif h >= 360.0:
                h -= 360.0

        hsv[i, 0] = h
        hsv[i, 1] = s
        hsv[i, 2] = c_max
    return hsv

@njit(cache=True)
def _hsv_to_srgb_kernel(hsv: ArrayFloat) -> ArrayFloat:
    """Inverse of ``_srgb_to_hsv_kernel``. Hue is wrapped into [0, 360) first."""
    n = hsv.shape[0]
    rgb = np.empty_like(hsv)

    for i in range(n):
        h = hsv[i, 0] % 360.0
        s = hsv[i, 1]
        v = hsv[i, 2]

        c = v * s
        x = c * (1.0 - abs((h / 60.0) % 2.0 - 1.0))
        m = v - c

        sector = int(h // 60.0)
        if sector == 0:
            r, g, b = c, x, 0.0
        elif sector == 1:
            r, g, b = x, c, 0.0
        elif sector == 2:
            r, g, b = 0.0, c, x
        elif sector == 3:
            r, g, b = 0.0, x, c
        elif sector == 4:
            r, g, b = x, 0.0, c
        else:
            r, g, b = c, 0.0, x

        rgb[i, 0] = r + m
        rgb[i, 1] = g + m
        rgb[i, 2] = b + m
    return rgb


# --- Scalar kernels for use inside other Numba kernels ---

@njit(cache=True, inline='always')
def _lab_f_scalar(t):
    if t > LAB_EPSILON:
        return t ** (1.0 / 3.0)
    return (LAB_KAPPA * t + 16.0) / 116.0

@njit(cache=True, inline='always')
def _lab_f_inv_scalar(t):
    if t > _LAB_DELTA:
        return t * t * t
    return (116.0 * t - 16.0) / LAB_KAPPA

@njit(cache=True, inline='always')
def _decode_srgb_scalar(v):
    if v < 0.0:
        v = 0.0
    elif v > 1.0:
        v = 1.0
    if v <= 0.04045:
        return v / 12.92
    return ((v + 0.055) / 1.055) ** 2.4

@njit(cache=True, inline='always')
def _encode_srgb_scalar(v):
    if v < 0.0:
        v = 0.0
    elif v > 1.0:
        v = 1.0
    if v <= 0.0031308:
        return 12.92 * v
    return 1.055 * (v ** (1.0 / 2.4)) - 0.055

@njit(cache=True, inline='always')
def srgb_to_lab_scalar(r, g, b):
    """
    Single-pixel sRGB [0..1] -> CIELAB (D65).

    Same constants and branch points as ``ColorSpaceEngine.srgb_to_lab``;
    returns an ``(L, a, b)`` tuple.
    """
    rl = _decode_srgb_scalar(r)
    gl = _decode_srgb_scalar(g)
    bl = _decode_srgb_scalar(b)

    x = (0.4124564 * rl + 0.3575761 * gl + 0.1804375 * bl) / _XN
    y = (0.2126729 * rl + 0.7151522 * gl + 0.0721750 * bl) / _YN
    z = (0.0193339 * rl + 0.1191920 * gl + 0.9503041 * bl) / _ZN

    fx = _lab_f_scalar(x)
    fy = _lab_f_scalar(y)
    fz = _lab_f_scalar(z)
    return 116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)

@njit(cache=True, inline='always')
def lab_to_srgb_scalar(L, a, b):
    """Single-pixel CIELAB (D65) -> sRGB, clamped to [0, 1]."""
    fy = (L + 16.0) / 116.0
    fx = a / 500.0 + fy
    fz = fy - b / 200.0

    x = _lab_f_inv_scalar(fx) * _XN
    y = _lab_f_inv_scalar(fy) * _YN
    z = _lab_f_inv_scalar(fz) * _ZN

    rl =  3.2404542 * x - 1.5371385 * y - 0.4985314 * z
    gl = -0.9692660 * x + 1.8760108 * y + 0.0415560 * z
    bl =  0.0556434 * x - 0.2040259 * y + 1.0572252 * z
    return _encode_srgb_scalar(rl), _encode_srgb_scalar(gl), _encode_srgb_scalar(bl)


# =============================================================================
# 3. COLOR SPACE ENGINE
# =============================================================================

class ColorSpaceEngine:
    """Static utility class for colour space transformations.

    Architecture Note:
        Core transforms provide both a public ``@handle_shapes`` decorated API
        and an internal ``_raw`` fast-path that assumes pre-validated (N, 3)
        float64 input.  Convenience pipelines (e.g. ``srgb_to_lab``) call the
        ``_raw`` variants to avoid redundant shape checks at each stage.
    """

    # =====================================================================
    #  Internal _raw fast-path methods  (assume validated (N, 3) float64)
    # =====================================================================

    @staticmethod
    def _srgb_to_xyz_raw(rgb_array: ArrayFloat) -> ArrayFloat:
        """Raw sRGB → XYZ.  *rgb_array* must be (N, 3) float64."""
        linear = _fast_inverse_gamma_srgb(np.clip(rgb_array, 0.0, 1.0))
        return np.dot(linear, M_SRGB_TO_XYZ_T)

    @staticmethod
    def _xyz_to_srgb_raw(xyz_array: ArrayFloat) -> ArrayFloat:
        """Raw XYZ → sRGB.  *xyz_array* must be (N, 3) float64."""
        linear = np.clip(np.dot(xyz_array, M_XYZ_TO_SRGB_T), 0.0, 1.0)
        return _fast_gamma_srgb(linear)

    @staticmethod
    def _xyz_to_lab_raw(xyz_array: ArrayFloat) -> ArrayFloat:
        """Raw XYZ → Lab.  *xyz_array* must be (N, 3) float64."""
        f_xyz = _xyz_to_lab_f(xyz_array / REF_WHITE_D65)

        out = np.empty_like(xyz_array)
        out[..., 0] = 116.0 * f_xyz[..., 1] - 16.0
        out[..., 1] = 500.0 * (f_xyz[..., 0] - f_xyz[..., 1])
        out[..., 2] = 200.0 * (f_xyz[..., 1] - f_xyz[..., 2])
        return out

    @staticmethod
    def _lab_to_xyz_raw(lab_array: ArrayFloat) -> ArrayFloat:
        """Raw Lab → XYZ.  *lab_array* must be (N, 3) float64."""
        L, a, b = lab_array[..., 0], lab_array[..., 1], lab_array[..., 2]

        fy = (L + 16.0) / 116.0
        f = np.empty_like(lab_array)
        f[..., 0] = a / 500.0 + fy
        f[..., 1] = fy
        f[..., 2] = fy - b / 200.0

        xyz = _lab_to_xyz_f_inv(f)
        xyz *= REF_WHITE_D65
        return xyz

    # =====================================================================
    #  Public API  (shape-safe wrappers)
    # =====================================================================

    @staticmethod
    @handle_shapes
    def srgb_to_xyz(rgb_array: ArrayFloat) -> ArrayFloat:
        """
        Converts sRGB [0..1] to XYZ (D65).

        Input is clamped to [0, 1] before applying the EOTF.
        """
        return ColorSpaceEngine._srgb_to_xyz_raw(rgb_array)

    @staticmethod
    @handle_shapes
    def xyz_to_srgb(xyz_array: ArrayFloat) -> ArrayFloat:
        """Converts XYZ (D65) to sRGB, clamping linear light to [0, 1]."""
        return ColorSpaceEngine._xyz_to_srgb_raw(xyz_array)

    @staticmethod
    @handle_shapes
    def xyz_to_lab(xyz_array: ArrayFloat) -> ArrayFloat:
        """Converts XYZ to CIELAB relative to the D65 white point."""
        return ColorSpaceEngine._xyz_to_lab_raw(xyz_array)

    @staticmethod
    @handle_shapes
    def lab_to_xyz(lab_array: ArrayFloat) -> ArrayFloat:
        """Converts CIELAB (D65) to XYZ."""
        return ColorSpaceEngine._lab_to_xyz_raw(lab_array)

    @staticmethod
    @handle_shapes
    def srgb_to_hsv(rgb_array: ArrayFloat) -> ArrayFloat:
        """Converts sRGB [0..1] to HSV (H in degrees, S/V in [0, 1])."""
        return _srgb_to_hsv_kernel(rgb_array)

    @staticmethod
    @handle_shapes
    def hsv_to_srgb(hsv_array: ArrayFloat) -> ArrayFloat:
        """Converts HSV back to sRGB. Hue outside [0, 360) wraps around."""
        return _hsv_to_srgb_kernel(hsv_array)

    # --- Convenience pipelines ---

    @staticmethod
    @handle_shapes
    def srgb_to_lab(rgb_array: ArrayFloat) -> ArrayFloat:
        """Direct conversion sRGB -> CIELAB."""
        xyz = ColorSpaceEngine._srgb_to_xyz_raw(rgb_array)
        return ColorSpaceEngine._xyz_to_lab_raw(xyz)

    @staticmethod
    @handle_shapes
    def lab_to_srgb(lab_array: ArrayFloat) -> ArrayFloat:
        """Direct conversion CIELAB -> sRGB (clamped, see module gamut note)."""
        xyz = ColorSpaceEngine._lab_to_xyz_raw(lab_array)
        return ColorSpaceEngine._xyz_to_srgb_raw(xyz)


# =============================================================================
# 4. PIXEL ADJUSTMENTS
# =============================================================================

class ColorAdjustments:
    """Per-pixel RGB adjustments shared by the transfer modes."""

    @staticmethod
    def luminance(rgb: ArrayFloat) -> ArrayFloat:
        """Rec.601 luma of ``(..., 3)`` sRGB values."""
        return np.asarray(rgb, dtype=np.float64)[..., :3] @ REC601_WEIGHTS

    @staticmethod
    def preserve_luminance_rgb(original: ArrayFloat, adjusted: ArrayFloat) -> ArrayFloat:
        """
        Rescales *adjusted* so its Rec.601 luma matches *original*.

        Pixels whose adjusted luma is exactly 0 fall back to the original
        colour, since no ratio exists.
        """
        original = np.asarray(original, dtype=np.float64)
        adjusted = np.asarray(adjusted, dtype=np.float64)
        y_orig = ColorAdjustments.luminance(original)
        y_new = ColorAdjustments.luminance(adjusted)

        zero = y_new == 0.0
        ratio = np.divide(y_orig, y_new, out=np.ones_like(y_new), where=~zero)
        out = np.clip(adjusted[..., :3] * ratio[..., None], 0.0, 1.0)
        out[zero] = original[..., :3][zero]
        return out

    @staticmethod
    def lerp(a: ArrayFloat, b: ArrayFloat, t: float) -> ArrayFloat:
        """Unclamped linear interpolation; ``t > 1`` extrapolates."""
        a = np.asarray(a, dtype=np.float64)
        return a + (np.asarray(b, dtype=np.float64) - a) * t

    @staticmethod
    @handle_shapes
    def apply_hsbg(rgb: ArrayFloat, hue_shift: float = 0.0, saturation: float = 1.0,
                   brightness: float = 1.0, gamma: float = 1.0) -> ArrayFloat:
        """
        Hue shift (degrees, wraps at 360), saturation and brightness
        multipliers (clamped to [0, 1] in HSV), then a power-law gamma.

        ``gamma < 1`` lightens, ``gamma > 1`` darkens. A non-positive gamma
        is treated as 1.
        """
        hsv = _srgb_to_hsv_kernel(np.clip(rgb, 0.0, 1.0))
        hsv[:, 0] = (hsv[:, 0] + hue_shift) % 360.0
        hsv[:, 1] = np.clip(hsv[:, 1] * saturation, 0.0, 1.0)
        hsv[:, 2] = np.clip(hsv[:, 2] * brightness, 0.0, 1.0)
        out = _hsv_to_srgb_kernel(hsv)

        if gamma <= 0.0:
            gamma = 1.0
        return np.clip(np.power(np.clip(out, 0.0, 1.0), gamma), 0.0, 1.0)


# =============================================================================
# 5. METRICS
# =============================================================================

@njit(cache=True, fastmath=True, parallel=True)
def _batch_delta_e_76(lab1: ArrayFloat, lab2: ArrayFloat) -> ArrayFloat:
    """Vectorized and Parallelized loop for Delta E 76."""
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in prange(n):
        dL = lab1[i, 0] - lab2[i, 0]
        da = lab1[i, 1] - lab2[i, 1]
        db = lab1[i, 2] - lab2[i, 2]
        res[i] = np.sqrt(dL*dL + da*da + db*db)
    return res

class ColorMetrics:
    @staticmethod
    def _prepare_inputs(lab1: ArrayFloat, lab2: ArrayFloat) -> Tuple[ArrayFloat, ArrayFloat]:
        """
        Broadcasting helper.

        ``broadcast_to`` creates read-only strided views which Numba
        ``prange`` kernels may silently copy internally, so the copy is
        made explicit here.
        """
        l1 = np.ascontiguousarray(np.atleast_2d(lab1), dtype=np.float64)
        l2 = np.ascontiguousarray(np.atleast_2d(lab2), dtype=np.float64)

        if l1.shape[-1] != 3 or l2.shape[-1] != 3:
            raise ValueError(f"Inputs must have shape (N, 3), got {l1.shape} and {l2.shape}")

        if l1.shape[0] != l2.shape[0]:
            if l1.shape[0] == 1: l1 = np.ascontiguousarray(np.broadcast_to(l1, l2.shape))
            elif l2.shape[0] == 1: l2 = np.ascontiguousarray(np.broadcast_to(l2, l1.shape))
            else: raise ValueError(f"Shapes {l1.shape} and {l2.shape} are not broadcastable.")
        return l1, l2

    @staticmethod
    def delta_e_76(lab1: ArrayFloat, lab2: ArrayFloat) -> ArrayFloat:
        """
        Calculates CIE Delta E 1976 (Euclidean distance in Lab).

        Args:
            lab1: Reference colors, shape (N, 3) or (3,).
            lab2: Sample colors, shape (N, 3) or (3,).

        Returns:
            Distances. Supports broadcasting (e.g., 1 vs N).
        """
        l1, l2 = ColorMetrics._prepare_inputs(lab1, lab2)
        res = _batch_delta_e_76(l1, l2)
        if np.ndim(lab1) == 1 and np.ndim(lab2) == 1: return res[0]
        return res


# =============================================================================
# Validation Block
# =============================================================================
if __name__ == "__main__":
    print("--- Mordant Color Engine Validation ---")

    print("1. Round-trip sRGB -> Lab -> sRGB...")
    rgb_in = np.random.rand(1000, 3)
    rgb_out = ColorSpaceEngine.lab_to_srgb(ColorSpaceEngine.srgb_to_lab(rgb_in))
    max_err = np.max(np.abs(rgb_in - rgb_out))
    print(f"   Max Error: {max_err:.2e} {'[PASS]' if max_err < 1e-3 else '[FAIL]'}")

    print("2. Scalar kernel vs vectorised engine...")
    lab_vec = ColorSpaceEngine.srgb_to_lab(rgb_in[0])
    lab_sca = np.array(srgb_to_lab_scalar(rgb_in[0, 0], rgb_in[0, 1], rgb_in[0, 2]))
    sca_err = np.max(np.abs(lab_vec - lab_sca))
    print(f"   Max Error: {sca_err:.2e} {'[PASS]' if sca_err < 1e-9 else '[FAIL]'}")

    print("3. HSV round-trip...")
    hsv = ColorSpaceEngine.srgb_to_hsv(rgb_in)
    hsv_err = np.max(np.abs(rgb_in - ColorSpaceEngine.hsv_to_srgb(hsv)))
    print(f"   Max Error: {hsv_err:.2e} {'[PASS]' if hsv_err < 1e-12 else '[FAIL]'}")
