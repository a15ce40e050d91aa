"""Per-image processing stages.

- blend: strength blend between original and LUT output
- dither: 8-bit quantization with optional dithering
- metadata: EXIF subset carried to the output
- engine: the full decode -> transform -> encode pipeline
"""

from .blend import blend, strength_ratio
from .dither import (
    FLOYD_STEINBERG_KERNEL,
    FLOYD_STEINBERG_DIVISOR,
    apply_dither,
    floyd_steinberg,
    quantize,
    random_dither,
)
from .engine import ColorTransformEngine, output_format
from .metadata import extract_metadata, select_metadata

__all__ = [
    "blend",
    "strength_ratio",
    "FLOYD_STEINBERG_KERNEL",
    "FLOYD_STEINBERG_DIVISOR",
    "apply_dither",
    "floyd_steinberg",
    "quantize",
    "random_dither",
    "ColorTransformEngine",
    "output_format",
    "extract_metadata",
    "select_metadata",
]
