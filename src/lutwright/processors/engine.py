"""Color transform engine: apply one LUT to one image file.

Pipeline per image:
    decode -> normalize to [0, 1] -> trilinear LUT lookup -> strength blend
    -> dither/quantize -> encode at the requested quality -> EXIF subset

The engine is stateless apart from its immutable table and parameters, so
one instance may process several images concurrently from worker threads.

Example:
    >>> from lutwright.lut import LatticeTable
    >>> from lutwright.core.types import RunParameters, DitherMode
    >>> from lutwright.processors.engine import ColorTransformEngine
    >>>
    >>> table = LatticeTable.load("film.cube")
    >>> params = RunParameters(strength=80, quality=92, dither_mode=DitherMode.FLOYD_STEINBERG)
    >>> engine = ColorTransformEngine(table, params)
    >>> engine.process_image("in/IMG_0001.jpg", "out/IMG_0001.jpg")
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
from PIL import Image

from ..core.errors import ImageIOError, SourceMissingError
from ..core.types import RunParameters
from ..lut.lattice import LatticeTable
from .blend import blend
from .dither import apply_dither
from .metadata import extract_metadata

logger = logging.getLogger(__name__)


DEFAULT_FORMAT = "JPEG"

# Formats whose encoder takes a 1-100 quality setting.
QUALITY_FORMATS = {"JPEG", "WEBP"}

# Rows handed to the LUT lookup at once; bounds peak memory on large photos.
CHUNK_PIXELS = 1 << 20


class ColorTransformEngine:
    """Apply a lattice LUT with strength blending and dithering.

    Attributes:
        table: The loaded lattice
        params: Blend/encode settings captured for this run
        seed: Optional seed for reproducible random dithering
    """

    def __init__(
        self,
        table: LatticeTable,
        params: RunParameters,
        seed: Optional[int] = None,
    ) -> None:
        self.table = table
        self.params = params
        self.seed = seed

    def transform_pixels(self, pixels: np.ndarray) -> np.ndarray:
        """Transform an ``(H, W, 3)`` ``uint8`` RGB array.

        Returns:
            A new ``uint8`` array of the same shape.
        """
        pixels = np.asarray(pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Expected an (H, W, 3) RGB array, got shape {pixels.shape}")

        height, width, _ = pixels.shape
        blended = np.empty((height, width, 3), dtype=np.float64)
        rows_per_chunk = max(1, CHUNK_PIXELS // max(width, 1))

        for start in range(0, height, rows_per_chunk):
            stop = min(start + rows_per_chunk, height)
            original = pixels[start:stop].astype(np.float64)
            transformed = self.table.lookup_array(original / 255.0) * 255.0
            blended[start:stop] = blend(original, transformed, self.params.strength)

        rng = np.random.default_rng(self.seed) if self.seed is not None else None
        return apply_dither(blended, self.params.dither_mode, rng)

    def process_image(
        self,
        source_path: Union[str, Path],
        dest_path: Union[str, Path],
    ) -> Path:
        """Transform one image file and write the result.

        Creates the destination's parent directories as needed. Metadata
        copy failures are logged and never fail the call.

        The encoder follows the destination extension. ``quality`` applies
        to JPEG and WebP; PNG, BMP and TIFF are written losslessly and
        ignore it. Unknown extensions are written as JPEG.

        Returns:
            The destination path.

        Raises:
            SourceMissingError: If the source file does not exist.
            ImageIOError: If decoding or encoding fails.
        """
        source_path = Path(source_path)
        dest_path = Path(dest_path)
        started = time.monotonic()

        if not source_path.is_file():
            raise SourceMissingError(f"Source file not found: {source_path}", path=source_path)

        pixels, exif = self._decode(source_path)
        result = self.transform_pixels(pixels)
        self._encode(Image.fromarray(result), dest_path, exif)

        logger.debug(
            f"Processed {source_path.name} -> {dest_path} "
            f"({time.monotonic() - started:.2f}s)"
        )
        return dest_path

    def _decode(self, source_path: Path):
        try:
            with Image.open(source_path) as image:
                image.load()
                exif = extract_metadata(image)
                rgb = image.convert("RGB")
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageIOError(
                f"Cannot decode image {source_path.name}: {e}",
                path=source_path,
                stage="decode",
                cause=e,
            ) from e
        return np.asarray(rgb, dtype=np.uint8), exif

    def _encode(self, image: Image.Image, dest_path: Path, exif: Optional[bytes]) -> None:
        image_format = output_format(dest_path)
        save_kwargs: Dict[str, Any] = {}
        if image_format in QUALITY_FORMATS:
            save_kwargs["quality"] = self.params.quality

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ImageIOError(
                f"Cannot create output directory {dest_path.parent}: {e}",
                path=dest_path,
                stage="encode",
                cause=e,
            ) from e

        if exif is not None:
            try:
                image.save(dest_path, format=image_format, exif=exif, **save_kwargs)
                return
            except (OSError, ValueError, TypeError, KeyError) as e:
                logger.debug(f"Writing with metadata failed for {dest_path.name}, retrying without: {e}")

        try:
            image.save(dest_path, format=image_format, **save_kwargs)
        except (OSError, ValueError, KeyError) as e:
            raise ImageIOError(
                f"Cannot encode image {dest_path.name}: {e}",
                path=dest_path,
                stage="encode",
                cause=e,
            ) from e


def output_format(dest_path: Path) -> str:
    """Pillow format name for the destination extension, JPEG if unknown."""
    return Image.registered_extensions().get(dest_path.suffix.lower(), DEFAULT_FORMAT)


__all__ = [
    "ColorTransformEngine",
    "output_format",
    "DEFAULT_FORMAT",
    "QUALITY_FORMATS",
]
