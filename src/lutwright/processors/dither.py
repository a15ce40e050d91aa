"""Quantization to 8 bits with optional dithering.

The blended image arrives as floating point values in the 0-255 domain.
Every mode returns a ``uint8`` array of the same shape:

- ``NONE``: round to nearest and clamp
- ``FLOYD_STEINBERG``: error diffusion, one forward raster pass per row,
  channels independent
- ``RANDOM``: uniform noise in [-0.5, 0.5) per pixel and channel, then
  truncate toward zero and clamp
"""

import logging
from typing import Optional, Tuple

import numpy as np

from ..core.types import DitherMode

logger = logging.getLogger(__name__)


# (row offset, column offset, weight in sixteenths)
FLOYD_STEINBERG_KERNEL: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 7),
    (1, -1, 3),
    (1, 0, 5),
    (1, 1, 1),
)
FLOYD_STEINBERG_DIVISOR = 16

# Fraction of a residual each neighbour receives; the fractions sum to 1
DIFFUSION_WEIGHTS: Tuple[Tuple[int, int, float], ...] = tuple(
    (dy, dx, w / FLOYD_STEINBERG_DIVISOR) for dy, dx, w in FLOYD_STEINBERG_KERNEL
)

RANDOM_NOISE_AMPLITUDE = 0.5


def quantize(pixels: np.ndarray) -> np.ndarray:
    """Round to the nearest 8-bit value and clamp to [0, 255]."""
    return np.clip(np.rint(pixels), 0, 255).astype(np.uint8)


def floyd_steinberg(pixels: np.ndarray) -> np.ndarray:
    """Floyd-Steinberg error diffusion on an ``(H, W, C)`` float array.

    Each value plus its accumulated error is rounded; the residual
    (pre-quantization value minus quantized value) goes 7/16 to the right,
    3/16 below-left, 5/16 below and 1/16 below-right. Shares that would
    land outside the image are dropped. Rows are scanned left to right.
    """
    buf = np.array(pixels, dtype=np.float64, copy=True)
    if buf.ndim == 2:
        buf = buf[..., np.newaxis]
    height, width, channels = buf.shape
    out = np.empty((height, width, channels), dtype=np.uint8)

    right_weight = next(w for dy, dx, w in DIFFUSION_WEIGHTS if (dy, dx) == (0, 1))
    below_weights = [(dx, w) for dy, dx, w in DIFFUSION_WEIGHTS if dy == 1]

    for y in range(height):
        values = buf[y].tolist()
        quantized = [[0.0] * channels for _ in range(width)]
        residuals = [[0.0] * channels for _ in range(width)]
        carry = [0.0] * channels

        # The right-hand neighbour depends on this pixel, so the row is sequential.
        for x in range(width):
            px = values[x]
            q_row = quantized[x]
            e_row = residuals[x]
            for c in range(channels):
                v = px[c] + carry[c]
                q = round(v)
                e = v - q
                q_row[c] = q
                e_row[c] = e
                carry[c] = e * right_weight

        out[y] = np.clip(quantized, 0, 255).astype(np.uint8)

        if y + 1 < height:
            err = np.asarray(residuals, dtype=np.float64)
            below = buf[y + 1]
            for dx, weight in below_weights:
                if dx == 0:
                    below += err * weight
                elif dx < 0:
                    below[:dx] += err[-dx:] * weight
                else:
                    below[dx:] += err[:-dx] * weight

    if np.ndim(pixels) == 2:
        return out[..., 0]
    return out


def random_dither(pixels: np.ndarray, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Add independent uniform noise, then truncate; no error is carried.

    Truncation means a whole value drops one step whenever its noise is
    negative, so flat areas pick up grain even at strength 0.
    """
    rng = rng or np.random.default_rng()
    noise = rng.uniform(-RANDOM_NOISE_AMPLITUDE, RANDOM_NOISE_AMPLITUDE, size=np.shape(pixels))
    return np.clip(np.trunc(np.asarray(pixels, dtype=np.float64) + noise), 0, 255).astype(np.uint8)


def apply_dither(
    pixels: np.ndarray,
    mode: DitherMode,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Quantize a 0-255 float image to ``uint8`` using ``mode``."""
    if mode is DitherMode.FLOYD_STEINBERG:
        return floyd_steinberg(pixels)
    if mode is DitherMode.RANDOM:
        return random_dither(pixels, rng)
    return quantize(pixels)


__all__ = [
    "FLOYD_STEINBERG_KERNEL",
    "FLOYD_STEINBERG_DIVISOR",
    "DIFFUSION_WEIGHTS",
    "RANDOM_NOISE_AMPLITUDE",
    "quantize",
    "floyd_steinberg",
    "random_dither",
    "apply_dither",
]
