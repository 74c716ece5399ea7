"""
Value object tests

PixelBuffer construction and validation, ColorStatistics immutability and
TransferConfig validation including the mapping/keyword hybrid API.
"""

import numpy as np
import pytest

from mordant_buffers import (
    DEFAULT_ALPHA_THRESHOLD,
    ColorStatistics,
    PixelBuffer,
    TransferConfig,
)
from mordant_errors import InvalidInputError, MordantError


class TestPixelBuffer:

    def test_from_uint8_normalises(self):
        arr = np.full((2, 3, 4), 255, dtype=np.uint8)
        arr[0, 0] = (0, 51, 102, 255)
        buf = PixelBuffer.from_array(arr)
        assert (buf.width, buf.height) == (3, 2)
        assert buf.pixels.dtype == np.float32
        np.testing.assert_allclose(buf.pixels[0, 0], [0.0, 0.2, 0.4, 1.0], atol=1e-6)

    def test_rgb_gets_opaque_alpha(self):
        buf = PixelBuffer.from_array(np.zeros((4, 5, 3), dtype=np.float32))
        assert buf.pixels.shape == (4, 5, 4)
        assert np.all(buf.alpha == 1.0)

    def test_float_input_is_clipped(self):
        buf = PixelBuffer.from_array(np.array([[[-0.5, 0.5, 1.5, 2.0]]]))
        np.testing.assert_allclose(buf.pixels[0, 0], [0.0, 0.5, 1.0, 1.0])

    def test_flat_needs_dimensions(self):
        flat = np.zeros((12, 4), dtype=np.float32)
        with pytest.raises(InvalidInputError, match="explicit width and height"):
            PixelBuffer.from_array(flat)
        buf = PixelBuffer.from_array(flat, width=4, height=3)
        assert buf.shape == (3, 4)

    def test_flat_length_mismatch(self):
        with pytest.raises(InvalidInputError, match="expected 12"):
            PixelBuffer.from_array(np.zeros((10, 4)), width=4, height=3)

    @pytest.mark.parametrize("bad", [None, np.zeros((0, 0, 4)), np.zeros((2, 2, 2)), np.zeros(5)])
    def test_rejects_bad_arrays(self, bad):
        with pytest.raises(InvalidInputError):
            PixelBuffer.from_array(bad)

    def test_direct_construction_validates_shape(self):
        with pytest.raises(InvalidInputError, match="expected pixels of shape"):
            PixelBuffer(4, 4, np.zeros((4, 3, 4)))
        with pytest.raises(InvalidInputError, match="must be positive"):
            PixelBuffer(0, 4, np.zeros((4, 0, 4)))

    def test_uniform(self):
        buf = PixelBuffer.uniform(3, 2, (1.0, 0.0, 0.0))
        assert buf.pixels.shape == (2, 3, 4)
        np.testing.assert_array_equal(buf.pixels[1, 2], [1.0, 0.0, 0.0, 1.0])

    def test_copy_is_independent(self):
        buf = PixelBuffer.uniform(2, 2, (0.5, 0.5, 0.5, 1.0))
        dup = buf.copy()
        dup.pixels[0, 0, 0] = 0.0
        assert buf.pixels[0, 0, 0] == pytest.approx(0.5)

    def test_eligible_combines_alpha_and_mask(self):
        px = np.ones((2, 2, 4), dtype=np.float32)
        px[0, 0, 3] = 0.0
        buf = PixelBuffer(2, 2, px)
        mask = np.array([[True, True], [False, True]])
        np.testing.assert_array_equal(buf.eligible(0.5, mask), [[False, True], [False, True]])

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            PixelBuffer.uniform(0, 1, (0, 0, 0))
        assert issubclass(InvalidInputError, MordantError)


class TestColorStatistics:

    def test_arrays_are_read_only(self):
        stats = ColorStatistics([50.0, 1.0, 2.0], [3.0, 4.0, 5.0], 10)
        with pytest.raises(ValueError):
            stats.mean[0] = 0.0
        assert stats.l_mean == 50.0 and stats.b_std == 5.0

    def test_count_must_be_positive(self):
        with pytest.raises(InvalidInputError, match="count must be positive"):
            ColorStatistics([0, 0, 0], [0, 0, 0], 0)

    def test_needs_three_channels(self):
        with pytest.raises(InvalidInputError):
            ColorStatistics([0, 0], [0, 0], 1)

    def test_degenerate_channels(self):
        stats = ColorStatistics([50.0, 0.0, 0.0], [2.0, 0.0, 1e-7], 4)
        np.testing.assert_array_equal(stats.is_degenerate(), [False, True, True])

    def test_allclose(self):
        a = ColorStatistics([50.0, 0.0, 0.0], [1.0, 1.0, 1.0], 4)
        b = ColorStatistics([50.0005, 0.0, 0.0], [1.0, 1.0, 1.0], 4)
        assert a.allclose(b)
        assert not a.allclose(ColorStatistics([50.0, 0.0, 0.0], [1.0, 1.0, 1.0], 5))


class TestTransferConfig:

    def test_defaults(self):
        cfg = TransferConfig()
        assert cfg.intensity == 1.0
        assert cfg.preserve_luminance is False
        assert cfg.alpha_threshold == DEFAULT_ALPHA_THRESHOLD == 0.01

    def test_intensity_above_one_allowed(self):
        assert TransferConfig(intensity=1.5).intensity == 1.5

    @pytest.mark.parametrize("kwargs", [
        {"intensity": -0.1},
        {"intensity": float("nan")},
        {"alpha_threshold": 1.5},
        {"alpha_threshold": -0.01},
        {"intensity": "strong"},
    ])
    def test_rejects_bad_values(self, kwargs):
        with pytest.raises(InvalidInputError):
            TransferConfig(**kwargs)

    def test_frozen(self):
        cfg = TransferConfig()
        with pytest.raises(AttributeError):
            cfg.intensity = 0.5

    def test_from_mapping_with_overrides(self):
        cfg = TransferConfig.from_mapping({"intensity": 0.5, "alpha_threshold": 0.2},
                                          intensity=0.8, preserve_luminance=True)
        assert cfg.intensity == 0.8
        assert cfg.alpha_threshold == 0.2
        assert cfg.preserve_luminance is True

    def test_from_mapping_unknown_key(self):
        with pytest.raises(InvalidInputError, match="Unknown TransferConfig keys"):
            TransferConfig.from_mapping({"intensty": 0.5})

    def test_with_intensity_and_as_dict(self):
        cfg = TransferConfig(preserve_luminance=True).with_intensity(0.3)
        assert cfg.as_dict() == {"intensity": 0.3, "preserve_luminance": True,
                                 "alpha_threshold": 0.01}
