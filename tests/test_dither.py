"""Tests for 8-bit quantization and dithering."""
import numpy as np
import pytest

from lutwright.core.types import DitherMode
from lutwright.processors.dither import (
    DIFFUSION_WEIGHTS,
    apply_dither,
    floyd_steinberg,
    quantize,
    random_dither,
)


class TestQuantize:
    """Tests for plain rounding."""

    def test_rounds_and_clamps(self):
        pixels = np.array([[[-3.0, 12.4, 12.6], [254.7, 300.0, 0.2]]])
        out = quantize(pixels)

        assert out.dtype == np.uint8
        assert out.tolist() == [[[0, 12, 13], [255, 255, 0]]]

    def test_none_mode_matches_quantize(self):
        rng = np.random.default_rng(1)
        pixels = rng.uniform(0, 255, size=(6, 7, 3))

        np.testing.assert_array_equal(apply_dither(pixels, DitherMode.NONE), quantize(pixels))


class TestFloydSteinberg:
    """Tests for error diffusion."""

    def test_integer_input_unchanged(self):
        """Test no error is produced when values are already whole."""
        pixels = np.arange(60, dtype=np.float64).reshape(4, 5, 3)

        np.testing.assert_array_equal(floyd_steinberg(pixels), pixels.astype(np.uint8))

    def test_preserves_mean_of_flat_field(self):
        """Test a flat fractional field averages back to its value."""
        pixels = np.full((32, 32, 3), 100.25)
        out = floyd_steinberg(pixels)

        assert set(np.unique(out)) <= {100, 101}
        assert out.mean() == pytest.approx(100.25, abs=0.05)

    def test_weights_sum_to_one(self):
        assert sum(w for _, _, w in DIFFUSION_WEIGHTS) == 1.0

    @pytest.mark.parametrize("residual", [0.5, -0.5, 0.3125, -0.0625])
    def test_interior_residual_fully_distributed(self, residual):
        """Test the shares an interior pixel hands out add up to its residual."""
        shares = {(dy, dx): residual * w for dy, dx, w in DIFFUSION_WEIGHTS}

        assert set(shares) == {(0, 1), (1, -1), (1, 0), (1, 1)}
        assert sum(shares.values()) == pytest.approx(residual, abs=1e-15)
        assert shares[(0, 1)] == pytest.approx(residual * 7 / 16)

    def test_error_carried_below(self):
        """Test 5/16 of the residual reaches the pixel below."""
        pixels = np.array([[[0.4]], [[0.4]]])
        out = floyd_steinberg(pixels)

        # 0.4 -> 0 leaves 0.4, 0.4 + 0.4 * 5/16 = 0.525 -> 1
        assert out[..., 0].tolist() == [[0], [1]]

    def test_first_pixel_is_plain_rounding(self):
        pixels = np.full((2, 3, 3), 10.4)
        out = floyd_steinberg(pixels)

        assert out[0, 0].tolist() == [10, 10, 10]

    def test_error_carried_right(self):
        """Test 7/16 of the residual reaches the right neighbour."""
        pixels = np.array([[[0.4], [0.4]]])
        out = floyd_steinberg(pixels)

        # 0.4 -> 0 leaves 0.4, 0.4 + 0.4 * 7/16 = 0.575 -> 1
        assert out[..., 0].tolist() == [[0, 1]]

    def test_deterministic(self):
        rng = np.random.default_rng(3)
        pixels = rng.uniform(0, 255, size=(8, 9, 3))

        np.testing.assert_array_equal(floyd_steinberg(pixels), floyd_steinberg(pixels))

    def test_does_not_mutate_input(self):
        pixels = np.full((3, 3, 3), 50.5)
        before = pixels.copy()
        floyd_steinberg(pixels)

        np.testing.assert_array_equal(pixels, before)

    def test_output_clamped(self):
        pixels = np.full((4, 4, 3), 255.4)
        out = floyd_steinberg(pixels)

        assert out.max() == 255
        assert out.dtype == np.uint8

    def test_single_channel(self):
        pixels = np.full((3, 4), 7.5)

        assert floyd_steinberg(pixels).shape == (3, 4)


class TestRandomDither:
    """Tests for uniform noise dithering."""

    def test_seeded_is_reproducible(self):
        pixels = np.full((10, 10, 3), 128.3)
        first = random_dither(pixels, np.random.default_rng(42))
        second = random_dither(pixels, np.random.default_rng(42))

        np.testing.assert_array_equal(first, second)

    def test_whole_values_get_grain(self):
        """Test negative noise drops a whole value one step."""
        pixels = np.full((64, 64, 3), 100.0)
        out = random_dither(pixels, np.random.default_rng(0))

        assert set(np.unique(out)) == {99, 100}

    def test_truncates_toward_zero(self):
        pixels = np.full((20, 20, 3), 99.5)
        out = random_dither(pixels, np.random.default_rng(5))

        # 99.5 + [-0.5, 0.5) stays below 100
        assert set(np.unique(out)) == {99}

    def test_black_stays_black(self):
        out = random_dither(np.zeros((16, 16, 3)), np.random.default_rng(2))

        assert out.max() == 0

    def test_apply_dither_random(self):
        pixels = np.full((4, 4, 3), 12.0)
        out = apply_dither(pixels, DitherMode.RANDOM, np.random.default_rng(9))

        assert out.shape == (4, 4, 3)
        assert out.dtype == np.uint8
