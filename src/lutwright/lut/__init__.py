"""3D LUT loading and interpolation."""

from .lattice import (
    LatticeTable,
    LatticeCache,
    list_lut_files,
    SIZE_DIRECTIVE,
    LUT_EXTENSION,
)

__all__ = [
    "LatticeTable",
    "LatticeCache",
    "list_lut_files",
    "SIZE_DIRECTIVE",
    "LUT_EXTENSION",
]
