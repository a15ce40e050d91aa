"""Shared pytest fixtures for LUTWright tests."""
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional, Tuple

import numpy as np
import pytest
from PIL import Image


Color = Tuple[float, float, float]


def cube_text(size: int, mapping: Callable[[float, float, float], Color], title: Optional[str] = None) -> str:
    """Render a .cube file whose entry at (r, g, b) is ``mapping(r, g, b)``.

    Rows enumerate blue slowest and red fastest.
    """
    lines = ["# generated for tests"]
    if title:
        lines.append(f'TITLE "{title}"')
    lines.append(f"LUT_3D_SIZE {size}")
    top = size - 1
    for b in range(size):
        for g in range(size):
            for r in range(size):
                out = mapping(r / top, g / top, b / top)
                lines.append(" ".join(f"{v:.6f}" for v in out))
    return "\n".join(lines) + "\n"


def gradient_pixels(width: int = 16, height: int = 12) -> np.ndarray:
    """Deterministic RGB test pattern covering a range of values."""
    y, x = np.mgrid[0:height, 0:width]
    r = (x * 255 // max(width - 1, 1))
    g = (y * 255 // max(height - 1, 1))
    b = ((x + y) * 37) % 256
    return np.stack([r, g, b], axis=-1).astype(np.uint8)


# ============================================================================
# Directories
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp(prefix="lutwright_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def input_dir(temp_dir) -> Path:
    path = temp_dir / "incoming"
    path.mkdir()
    return path


@pytest.fixture
def output_dir(temp_dir) -> Path:
    path = temp_dir / "graded"
    path.mkdir()
    return path


# ============================================================================
# LUT files
# ============================================================================

@pytest.fixture
def write_cube(temp_dir) -> Callable[..., Path]:
    """Factory writing a .cube file into the temp directory."""
    lut_dir = temp_dir / "luts"
    lut_dir.mkdir(exist_ok=True)

    def _write(name: str, size: int, mapping: Callable[[float, float, float], Color], title: Optional[str] = None) -> Path:
        path = lut_dir / name
        path.write_text(cube_text(size, mapping, title=title), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def identity_cube(write_cube) -> Path:
    """Size 2 identity LUT."""
    return write_cube("identity.cube", 2, lambda r, g, b: (r, g, b), title="Identity")


@pytest.fixture
def invert_cube(write_cube) -> Path:
    """Size 2 LUT mapping each channel c to 1 - c."""
    return write_cube("invert.cube", 2, lambda r, g, b: (1 - r, 1 - g, 1 - b), title="Invert")


@pytest.fixture
def broken_cube(temp_dir) -> Path:
    """LUT with a size directive but too few rows."""
    path = temp_dir / "broken.cube"
    path.write_text("LUT_3D_SIZE 2\n0 0 0\n1 1 1\n", encoding="utf-8")
    return path


# ============================================================================
# Images
# ============================================================================

@pytest.fixture
def make_image() -> Callable[..., Path]:
    """Factory writing a test image; format follows the extension."""

    def _make(path: Path, pixels: Optional[np.ndarray] = None, exif: Optional[Image.Exif] = None, **save_kwargs) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        image = Image.fromarray(gradient_pixels() if pixels is None else pixels)
        if exif is not None:
            save_kwargs["exif"] = exif
        image.save(path, **save_kwargs)
        return path

    return _make


@pytest.fixture
def png_image(input_dir, make_image) -> Path:
    return make_image(input_dir / "gradient.png")


@pytest.fixture
def jpeg_image(input_dir, make_image) -> Path:
    return make_image(input_dir / "photo.jpg", quality=95)
