"""
Colour space conversion tests

Round trips through Lab and HSV, agreement between the scalar kernels
and the vectorised engine, and the RGB adjustment helpers.
"""

import numpy as np
import pytest

from mordant_colorengine import (
    ColorAdjustments,
    ColorMetrics,
    ColorSpaceEngine,
    lab_to_srgb_scalar,
    srgb_to_lab_scalar,
)


class TestLabConversion:
    """sRGB <-> XYZ <-> Lab."""

    def test_round_trip_random(self, rng):
        rgb = rng.random((5000, 3))
        back = ColorSpaceEngine.lab_to_srgb(ColorSpaceEngine.srgb_to_lab(rgb))
        assert np.max(np.abs(back - rgb)) < 1e-3

    def test_round_trip_cube_corners(self):
        corners = np.array([[r, g, b] for r in (0, 1) for g in (0, 1) for b in (0, 1)], dtype=float)
        back = ColorSpaceEngine.lab_to_srgb(ColorSpaceEngine.srgb_to_lab(corners))
        np.testing.assert_allclose(back, corners, atol=1e-3)

    def test_white_and_black(self):
        white = ColorSpaceEngine.srgb_to_lab([1.0, 1.0, 1.0])
        black = ColorSpaceEngine.srgb_to_lab([0.0, 0.0, 0.0])
        np.testing.assert_allclose(white, [100.0, 0.0, 0.0], atol=0.01)
        np.testing.assert_allclose(black, [0.0, 0.0, 0.0], atol=1e-9)

    def test_single_vector_keeps_shape(self):
        assert ColorSpaceEngine.srgb_to_lab([0.2, 0.4, 0.6]).shape == (3,)
        assert ColorSpaceEngine.srgb_to_lab(np.zeros((7, 3))).shape == (7, 3)

    def test_bad_shape_rejected(self):
        with pytest.raises(ValueError, match="Expected shape"):
            ColorSpaceEngine.srgb_to_lab(np.zeros((4, 4)))

    def test_out_of_gamut_is_clamped(self):
        rgb = ColorSpaceEngine.lab_to_srgb([50.0, 200.0, -200.0])
        assert np.all(rgb >= 0.0) and np.all(rgb <= 1.0)

    def test_xyz_round_trip(self, rng):
        rgb = rng.random((100, 3))
        back = ColorSpaceEngine.xyz_to_srgb(ColorSpaceEngine.srgb_to_xyz(rgb))
        np.testing.assert_allclose(back, rgb, atol=1e-5)

    def test_lab_f_is_continuous_near_zero(self):
        xyz = np.array([[1e-9, 1e-9, 1e-9], [0.0, 0.0, 0.0]])
        lab = ColorSpaceEngine.xyz_to_lab(xyz)
        assert np.all(np.isfinite(lab))
        np.testing.assert_allclose(lab[0], lab[1], atol=1e-5)


class TestScalarKernels:
    """Inline kernels used by the tile reductions."""

    def test_scalar_matches_vectorised(self, rng):
        rgb = rng.random((50, 3))
        vec = ColorSpaceEngine.srgb_to_lab(rgb)
        sca = np.array([srgb_to_lab_scalar(*c) for c in rgb])
        np.testing.assert_allclose(sca, vec, atol=1e-7)

    def test_scalar_inverse_matches_vectorised(self, rng):
        lab = ColorSpaceEngine.srgb_to_lab(rng.random((50, 3)))
        vec = ColorSpaceEngine.lab_to_srgb(lab)
        sca = np.array([lab_to_srgb_scalar(*c) for c in lab])
        np.testing.assert_allclose(sca, vec, atol=1e-7)


class TestHSV:

    @pytest.mark.parametrize("rgb, hsv", [
        ((1.0, 0.0, 0.0), (0.0, 1.0, 1.0)),
        ((0.0, 1.0, 0.0), (120.0, 1.0, 1.0)),
        ((0.0, 0.0, 1.0), (240.0, 1.0, 1.0)),
        ((1.0, 0.0, 1.0), (300.0, 1.0, 1.0)),
        ((0.5, 0.5, 0.5), (0.0, 0.0, 0.5)),
    ])
    def test_known_hsv_values(self, rgb, hsv):
        np.testing.assert_allclose(ColorSpaceEngine.srgb_to_hsv(rgb), hsv, atol=1e-12)

    def test_hsv_round_trip(self, rng):
        rgb = rng.random((1000, 3))
        back = ColorSpaceEngine.hsv_to_srgb(ColorSpaceEngine.srgb_to_hsv(rgb))
        np.testing.assert_allclose(back, rgb, atol=1e-12)

    def test_hue_in_range(self, rng):
        hsv = ColorSpaceEngine.srgb_to_hsv(rng.random((1000, 3)))
        assert np.all(hsv[:, 0] >= 0.0) and np.all(hsv[:, 0] < 360.0)

    def test_hue_wraps(self):
        a = ColorSpaceEngine.hsv_to_srgb([480.0, 1.0, 1.0])
        b = ColorSpaceEngine.hsv_to_srgb([120.0, 1.0, 1.0])
        c = ColorSpaceEngine.hsv_to_srgb([-240.0, 1.0, 1.0])
        np.testing.assert_allclose(a, b, atol=1e-12)
        np.testing.assert_allclose(c, b, atol=1e-12)


class TestAdjustments:

    def test_luminance_weights(self):
        assert ColorAdjustments.luminance([1.0, 1.0, 1.0]) == pytest.approx(1.0)
        assert ColorAdjustments.luminance([1.0, 0.0, 0.0]) == pytest.approx(0.299)

    def test_preserve_luminance_restores_luma(self):
        original = np.array([[0.2, 0.5, 0.3], [0.6, 0.6, 0.6]])
        adjusted = np.array([[0.3, 0.3, 0.6], [0.5, 0.4, 0.45]])
        out = ColorAdjustments.preserve_luminance_rgb(original, adjusted)
        np.testing.assert_allclose(ColorAdjustments.luminance(out),
                                   ColorAdjustments.luminance(original), atol=1e-9)

    def test_preserve_luminance_black_returns_original(self):
        original = np.array([[0.2, 0.5, 0.3]])
        out = ColorAdjustments.preserve_luminance_rgb(original, np.zeros((1, 3)))
        np.testing.assert_array_equal(out, original)

    def test_hsbg_defaults_are_identity(self, rng):
        rgb = rng.random((100, 3))
        np.testing.assert_allclose(ColorAdjustments.apply_hsbg(rgb), rgb, atol=1e-12)

    def test_hsbg_hue_shift(self):
        out = ColorAdjustments.apply_hsbg([1.0, 0.0, 0.0], hue_shift=120.0)
        np.testing.assert_allclose(out, [0.0, 1.0, 0.0], atol=1e-12)

    def test_hsbg_desaturate_and_darken(self):
        grey = ColorAdjustments.apply_hsbg([0.8, 0.2, 0.4], saturation=0.0)
        np.testing.assert_allclose(grey, grey[0], atol=1e-12)
        black = ColorAdjustments.apply_hsbg([0.8, 0.2, 0.4], brightness=0.0)
        np.testing.assert_allclose(black, 0.0, atol=1e-12)

    def test_hsbg_gamma(self):
        lighter = ColorAdjustments.apply_hsbg([0.25, 0.25, 0.25], gamma=0.5)
        np.testing.assert_allclose(lighter, 0.5, atol=1e-12)
        same = ColorAdjustments.apply_hsbg([0.25, 0.25, 0.25], gamma=-2.0)
        np.testing.assert_allclose(same, 0.25, atol=1e-12)


class TestDeltaE:

    def test_known_distance(self):
        assert ColorMetrics.delta_e_76([50.0, 3.0, 0.0], [50.0, 0.0, 4.0]) == pytest.approx(5.0)

    def test_broadcast_one_to_many(self):
        many = np.array([[50.0, 0.0, 0.0], [53.0, 4.0, 0.0]])
        d = ColorMetrics.delta_e_76([50.0, 0.0, 0.0], many)
        np.testing.assert_allclose(d, [0.0, 5.0])

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="not broadcastable"):
            ColorMetrics.delta_e_76(np.zeros((2, 3)), np.zeros((3, 3)))
