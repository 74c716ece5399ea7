"""
Sequential statistics engine tests

Eligibility (alpha threshold and occupancy mask), population moments in
Lab, the epsilon-guarded transfer and its identity properties.
"""

import warnings

import numpy as np
import pytest

from mordant_buffers import ColorStatistics, PixelBuffer, TransferConfig
from mordant_colorengine import ColorSpaceEngine
from mordant_errors import DegenerateStatisticsWarning, InvalidInputError, NoEligiblePixelsError
from mordant_statistics import (
    StatisticsEngine,
    compute_statistics,
    transfer,
    transfer_buffer,
)


def _lab_of(buffer, keep=None):
    rgb = buffer.rgb.reshape(-1, 3) if keep is None else buffer.rgb[keep]
    return ColorSpaceEngine.srgb_to_lab(rgb.astype(np.float64))


class TestComputeStatistics:

    @pytest.mark.parametrize("size", [1, 3, 16])
    def test_uniform_image(self, uniform_buffer, size):
        color = (0.8, 0.3, 0.1)
        stats = compute_statistics(uniform_buffer(size, size, color + (1.0,)))
        expected = ColorSpaceEngine.srgb_to_lab(np.array(color, dtype=np.float32).astype(np.float64))
        np.testing.assert_allclose(stats.mean, expected, atol=1e-9)
        np.testing.assert_allclose(stats.stddev, 0.0, atol=1e-9)
        assert stats.count == size * size

    def test_population_moments(self, random_buffer):
        lab = _lab_of(random_buffer)
        stats = compute_statistics(random_buffer)
        np.testing.assert_allclose(stats.mean, lab.mean(axis=0), atol=1e-9)
        np.testing.assert_allclose(stats.stddev, lab.std(axis=0, ddof=0), atol=1e-9)

    def test_transparent_pixels_excluded(self, random_rgba):
        buf = random_rgba(transparent_fraction=0.4)
        keep = buf.alpha >= 0.01
        stats = compute_statistics(buf, 0.01)
        lab = _lab_of(buf, keep)
        assert stats.count == int(keep.sum())
        np.testing.assert_allclose(stats.mean, lab.mean(axis=0), atol=1e-9)

    def test_threshold_is_inclusive(self):
        px = np.zeros((1, 2, 4), dtype=np.float32)
        px[0, 0] = (1.0, 1.0, 1.0, 0.5)
        px[0, 1] = (0.0, 0.0, 0.0, 0.49)
        stats = compute_statistics(PixelBuffer(2, 1, px), 0.5)
        assert stats.count == 1
        assert stats.l_mean == pytest.approx(100.0, abs=0.01)

    def test_mask_restricts(self, random_buffer):
        mask = np.zeros((64, 64), dtype=bool)
        mask[:, :32] = True
        stats = compute_statistics(random_buffer, mask=mask)
        lab = _lab_of(random_buffer, mask)
        assert stats.count == 64 * 32
        np.testing.assert_allclose(stats.mean, lab.mean(axis=0), atol=1e-9)

    def test_mask_shape_mismatch(self, random_buffer):
        with pytest.raises(InvalidInputError, match="does not match buffer"):
            compute_statistics(random_buffer, mask=np.ones((32, 32), dtype=bool))

    def test_fully_transparent(self, uniform_buffer):
        with pytest.raises(NoEligiblePixelsError) as info:
            compute_statistics(uniform_buffer(4, 4, (1.0, 0.0, 0.0, 0.0)))
        assert info.value.total == 16
        assert info.value.masked is False

    def test_empty_mask(self, random_buffer):
        with pytest.raises(NoEligiblePixelsError) as info:
            compute_statistics(random_buffer, mask=np.zeros((64, 64), dtype=bool))
        assert info.value.masked is True

    def test_none_buffer(self):
        with pytest.raises(InvalidInputError):
            compute_statistics(None)

    def test_bad_threshold(self, random_buffer):
        with pytest.raises(InvalidInputError):
            compute_statistics(random_buffer, 2.0)

    def test_accepts_raw_arrays(self, rng):
        arr = rng.random((8, 8, 3))
        stats = compute_statistics(arr)
        assert stats.count == 64


class TestTransfer:

    def test_self_transfer_is_identity(self, random_buffer):
        stats = compute_statistics(random_buffer)
        cfg = TransferConfig(intensity=1.0)
        for y, x in [(0, 0), (10, 20), (63, 63), (31, 5)]:
            px = random_buffer.pixels[y, x]
            np.testing.assert_allclose(transfer(px, stats, stats, cfg), px, atol=1e-3)

    def test_intensity_zero_is_identity(self, rng):
        a = ColorStatistics([50.0, 10.0, -10.0], [5.0, 2.0, 3.0], 10)
        b = ColorStatistics([20.0, -30.0, 40.0], [1.0, 9.0, 0.5], 10)
        cfg = TransferConfig(intensity=0.0)
        for px in rng.random((20, 4)).astype(np.float32):
            px[3] = 1.0
            np.testing.assert_array_equal(transfer(px, a, b, cfg), px)

    def test_below_threshold_unchanged(self):
        a = ColorStatistics([50.0, 10.0, -10.0], [5.0, 2.0, 3.0], 10)
        b = ColorStatistics([20.0, -30.0, 40.0], [1.0, 9.0, 0.5], 10)
        px = np.array([0.3, 0.6, 0.9, 0.005], dtype=np.float32)
        np.testing.assert_array_equal(transfer(px, a, b, TransferConfig()), px)

    def test_alpha_is_preserved(self):
        a = ColorStatistics([50.0, 10.0, -10.0], [5.0, 2.0, 3.0], 10)
        b = ColorStatistics([60.0, 0.0, 0.0], [5.0, 2.0, 3.0], 10)
        out = transfer([0.4, 0.4, 0.4, 0.7], a, b, TransferConfig())
        assert out[3] == pytest.approx(0.7)

    def test_preserve_luminance_keeps_lightness(self):
        base = np.array([0.5, 0.4, 0.45, 1.0], dtype=np.float32)
        lab = ColorSpaceEngine.srgb_to_lab(base[:3].astype(np.float64))
        t = ColorStatistics(lab, [5.0, 5.0, 5.0], 100)
        r = ColorStatistics(lab + [10.0, 4.0, 0.0], [5.0, 5.0, 5.0], 100)

        kept = transfer(base, t, r, TransferConfig(preserve_luminance=True))
        moved = transfer(base, t, r, TransferConfig(preserve_luminance=False))
        kept_l = ColorSpaceEngine.srgb_to_lab(kept[:3].astype(np.float64))[0]
        moved_l = ColorSpaceEngine.srgb_to_lab(moved[:3].astype(np.float64))[0]
        assert kept_l == pytest.approx(lab[0], abs=0.05)
        assert moved_l == pytest.approx(lab[0] + 10.0, abs=0.05)

    def test_red_to_blue_scenario(self, uniform_buffer):
        red = uniform_buffer(4, 4, (1.0, 0.0, 0.0, 1.0))
        blue = uniform_buffer(4, 4, (0.0, 0.0, 1.0, 1.0))
        t = compute_statistics(red)
        r = compute_statistics(blue)
        with pytest.warns(DegenerateStatisticsWarning):
            out = transfer_buffer(red, t, r, TransferConfig(intensity=1.0, preserve_luminance=False))
        np.testing.assert_allclose(out.pixels.reshape(-1, 4),
                                   np.tile([0.0, 0.0, 1.0, 1.0], (16, 1)), atol=1e-3)

    def test_intensity_above_one_extrapolates(self):
        base = np.array([0.5, 0.4, 0.45, 1.0], dtype=np.float32)
        lab = ColorSpaceEngine.srgb_to_lab(base[:3].astype(np.float64))
        t = ColorStatistics(lab, [5.0, 5.0, 5.0], 100)
        r = ColorStatistics(lab + [5.0, 0.0, 0.0], [5.0, 5.0, 5.0], 100)

        once = transfer(base, t, r, TransferConfig(intensity=1.0))
        twice = transfer(base, t, r, TransferConfig(intensity=2.0))
        once_lab = ColorSpaceEngine.srgb_to_lab(once[:3].astype(np.float64))
        twice_lab = ColorSpaceEngine.srgb_to_lab(twice[:3].astype(np.float64))
        assert once_lab[0] == pytest.approx(lab[0] + 5.0, abs=0.05)
        assert twice_lab[0] == pytest.approx(lab[0] + 10.0, abs=0.05)
        np.testing.assert_allclose(twice_lab[1:], lab[1:], atol=0.05)

    def test_zero_stddev_never_produces_nan(self):
        t = ColorStatistics([50.0, 0.0, 0.0], [0.0, 0.0, 0.0], 1)
        r = ColorStatistics([50.0, 0.0, 0.0], [10.0, 10.0, 10.0], 1)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DegenerateStatisticsWarning)
            out = transfer([0.9, 0.1, 0.1, 1.0], t, r, TransferConfig())
        assert np.all(np.isfinite(out))
        assert np.all((out >= 0.0) & (out <= 1.0))

    def test_rejects_non_rgba_pixel(self):
        s = ColorStatistics([50.0, 0.0, 0.0], [1.0, 1.0, 1.0], 1)
        with pytest.raises(InvalidInputError, match="RGBA"):
            transfer([0.1, 0.2, 0.3], s, s, TransferConfig())


class TestTransferBuffer:

    def test_matches_pixelwise_transfer(self, random_rgba):
        buf = random_rgba(8, 8)
        t = compute_statistics(buf)
        r = ColorStatistics(t.mean + [5.0, -3.0, 2.0], t.stddev * 0.8, t.count)
        cfg = TransferConfig(intensity=0.7)
        out = transfer_buffer(buf, t, r, cfg)
        for y in range(8):
            for x in range(8):
                np.testing.assert_allclose(out.pixels[y, x],
                                           transfer(buf.pixels[y, x], t, r, cfg), atol=1e-6)

    def test_input_not_mutated(self, random_buffer):
        before = random_buffer.pixels.copy()
        t = compute_statistics(random_buffer)
        r = ColorStatistics(t.mean + [10.0, 0.0, 0.0], t.stddev, t.count)
        out = transfer_buffer(random_buffer, t, r, TransferConfig())
        np.testing.assert_array_equal(random_buffer.pixels, before)
        assert out is not random_buffer

    def test_in_place(self, random_buffer):
        t = compute_statistics(random_buffer)
        r = ColorStatistics(t.mean + [10.0, 0.0, 0.0], t.stddev, t.count)
        before = random_buffer.pixels.copy()
        out = transfer_buffer(random_buffer, t, r, TransferConfig(), in_place=True)
        assert out is random_buffer
        assert not np.array_equal(random_buffer.pixels, before)

    def test_transparent_pixels_untouched(self, random_rgba):
        buf = random_rgba(16, 16, transparent_fraction=0.5)
        t = compute_statistics(buf)
        r = ColorStatistics(t.mean + [20.0, 10.0, -10.0], t.stddev, t.count)
        out = transfer_buffer(buf, t, r, TransferConfig())
        hidden = buf.alpha < 0.01
        np.testing.assert_array_equal(out.pixels[hidden], buf.pixels[hidden])
        np.testing.assert_array_equal(out.alpha, buf.alpha)


class TestStatisticsEngine:

    def test_engine_delegates(self, random_buffer):
        engine = StatisticsEngine()
        assert engine.name == "sequential"
        stats = engine.compute_statistics(random_buffer)
        assert stats.allclose(compute_statistics(random_buffer), atol=0.0)
        out = engine.transfer_buffer(random_buffer, stats, stats, TransferConfig())
        np.testing.assert_allclose(out.pixels, random_buffer.pixels, atol=1e-3)
