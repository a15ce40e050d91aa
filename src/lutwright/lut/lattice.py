"""3D lattice lookup tables in the ``.cube`` text format.

A lattice of side ``n`` stores ``n**3`` output colors. Rows in the file
enumerate blue slowest, green in the middle and red fastest, so the parsed
array is indexed ``[b, g, r]``.

Example usage:

    >>> from lutwright.lut.lattice import LatticeTable
    >>> table = LatticeTable.load("film.cube")
    >>> table.size
    33
    >>> table.lookup(0.5, 0.25, 0.75)
    (0.53, 0.27, 0.71)
"""

from __future__ import annotations

import logging
import math
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from ..core.errors import FormatError

logger = logging.getLogger(__name__)


SIZE_DIRECTIVE = "LUT_3D_SIZE"

# Header keywords that may follow the size directive without being data rows.
HEADER_KEYWORDS = (
    "TITLE",
    "DOMAIN_MIN",
    "DOMAIN_MAX",
    "LUT_1D_SIZE",
    "LUT_1D_INPUT_RANGE",
    "LUT_3D_INPUT_RANGE",
)

LUT_EXTENSION = ".cube"

# Lattice coordinates this close to an integer are treated as exact hits.
_SNAP_TOLERANCE = 1e-9


class LatticeTable:
    """Immutable 3D lookup table with trilinear interpolation.

    Attributes:
        size: Lattice side length ``n``
        title: Optional ``TITLE`` from the source file
        source: File the table was loaded from, if any
    """

    def __init__(
        self,
        data: np.ndarray,
        title: Optional[str] = None,
        source: Optional[Path] = None,
    ) -> None:
        """Wrap an ``(n, n, n, 3)`` array indexed ``[b, g, r]``.

        Raises:
            FormatError: If the array shape or values are invalid.
        """
        table = np.array(data, dtype=np.float64)
        if table.ndim != 4 or table.shape[-1] != 3 or not (
            table.shape[0] == table.shape[1] == table.shape[2]
        ):
            raise FormatError(f"Lattice must have shape (n, n, n, 3), got {table.shape}", source=source)
        if table.shape[0] < 2:
            raise FormatError(f"Lattice size must be at least 2, got {table.shape[0]}", source=source)
        if not np.all(np.isfinite(table)):
            raise FormatError("Lattice contains non-finite values", source=source)

        table.setflags(write=False)
        self._data = table
        self.size = table.shape[0]
        self.title = title
        self.source = source

    def __repr__(self) -> str:
        name = self.source.name if self.source else self.title or "<memory>"
        return f"LatticeTable(size={self.size}, source={name!r})"

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str, source: Optional[Union[str, Path]] = None) -> "LatticeTable":
        """Parse ``.cube`` text into a table.

        Blank lines and ``#`` comments are ignored. Data rows with a
        non-numeric token or the wrong number of tokens are skipped, but the
        number of accepted rows must equal ``n**3``.

        Args:
            text: Full contents of the LUT file
            source: Where the text came from, for error messages

        Raises:
            FormatError: If the size directive is missing or invalid, or the
                row count does not match.
        """
        source_path = Path(source) if source is not None else None
        size: Optional[int] = None
        title: Optional[str] = None
        rows: List[Tuple[float, float, float]] = []
        skipped = 0

        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            if size is None:
                if line.startswith(SIZE_DIRECTIVE):
                    size = _parse_size(line, source_path, line_number)
                elif line.startswith("TITLE"):
                    title = _parse_title(line)
                continue

            if line.startswith(HEADER_KEYWORDS):
                if line.startswith("TITLE"):
                    title = _parse_title(line)
                continue

            parts = line.split()
            if len(parts) != 3:
                skipped += 1
                continue
            try:
                r, g, b = (float(p) for p in parts)
            except ValueError:
                skipped += 1
                continue
            if not all(math.isfinite(v) for v in (r, g, b)):
                raise FormatError(
                    f"Non-finite value in LUT data row: {line}",
                    source=source_path,
                    line_number=line_number,
                )
            rows.append((r, g, b))

        if size is None:
            raise FormatError(f"{SIZE_DIRECTIVE} not found in LUT", source=source_path)

        expected = size ** 3
        if len(rows) != expected:
            raise FormatError(
                f"Expected {expected} data rows, found {len(rows)}",
                source=source_path,
                expected=expected,
                actual=len(rows),
            )
        if skipped:
            logger.debug(f"Skipped {skipped} malformed LUT rows in {source_path or '<text>'}")

        data = np.asarray(rows, dtype=np.float64).reshape(size, size, size, 3)
        return cls(data, title=title, source=source_path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LatticeTable":
        """Read and parse a ``.cube`` file.

        Raises:
            FormatError: If the file cannot be read or parsed.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise FormatError(f"Cannot read LUT file: {e}", source=path, cause=e) from e
        table = cls.parse(text, source=path)
        logger.info(f"Loaded LUT {path.name} (size {table.size})")
        return table

    @classmethod
    def identity(cls, size: int = 2) -> "LatticeTable":
        """Build a lattice that maps every color to itself."""
        if size < 2:
            raise FormatError(f"Lattice size must be at least 2, got {size}")
        axis = np.linspace(0.0, 1.0, size)
        b, g, r = np.meshgrid(axis, axis, axis, indexing="ij")
        return cls(np.stack([r, g, b], axis=-1), title="identity")

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    @property
    def data(self) -> np.ndarray:
        """Read-only ``(n, n, n, 3)`` array indexed ``[b, g, r]``."""
        return self._data

    def entry(self, r: int, g: int, b: int) -> Tuple[float, float, float]:
        """Stored output color at integer lattice coordinates."""
        value = self._data[b, g, r]
        return float(value[0]), float(value[1]), float(value[2])

    def rows(self) -> np.ndarray:
        """Entries in file order, shape ``(n**3, 3)``."""
        return self._data.reshape(-1, 3)

    def lookup(self, r: float, g: float, b: float) -> Tuple[float, float, float]:
        """Trilinearly interpolate one color with channels in [0, 1]."""
        top = self.size - 1
        r0, r1, dr = _cell(r, top)
        g0, g1, dg = _cell(g, top)
        b0, b1, db = _cell(b, top)

        t = self._data
        c000 = t[b0, g0, r0]
        c001 = t[b0, g0, r1]
        c010 = t[b0, g1, r0]
        c011 = t[b0, g1, r1]
        c100 = t[b1, g0, r0]
        c101 = t[b1, g0, r1]
        c110 = t[b1, g1, r0]
        c111 = t[b1, g1, r1]

        c00 = c000 * (1 - dr) + c001 * dr
        c01 = c010 * (1 - dr) + c011 * dr
        c10 = c100 * (1 - dr) + c101 * dr
        c11 = c110 * (1 - dr) + c111 * dr

        c0 = c00 * (1 - dg) + c01 * dg
        c1 = c10 * (1 - dg) + c11 * dg

        out = c0 * (1 - db) + c1 * db
        return float(out[0]), float(out[1]), float(out[2])

    def lookup_array(self, rgb: np.ndarray) -> np.ndarray:
        """Vectorised ``lookup`` over an ``(..., 3)`` array of [0, 1] colors.

        Uses the same arithmetic as :meth:`lookup`, so results agree with the
        scalar path element for element.
        """
        rgb = np.asarray(rgb, dtype=np.float64)
        top = self.size - 1

        coords = rgb * top
        nearest = np.rint(coords)
        coords = np.where(np.abs(coords - nearest) < _SNAP_TOLERANCE, nearest, coords)

        low = np.clip(np.floor(coords), 0, top).astype(np.intp)
        high = np.clip(low + 1, 0, top)
        frac = np.clip(coords - low, 0.0, 1.0)

        r0, g0, b0 = low[..., 0], low[..., 1], low[..., 2]
        r1, g1, b1 = high[..., 0], high[..., 1], high[..., 2]
        dr = frac[..., 0:1]
        dg = frac[..., 1:2]
        db = frac[..., 2:3]

        t = self._data
        c00 = t[b0, g0, r0] * (1 - dr) + t[b0, g0, r1] * dr
        c01 = t[b0, g1, r0] * (1 - dr) + t[b0, g1, r1] * dr
        c10 = t[b1, g0, r0] * (1 - dr) + t[b1, g0, r1] * dr
        c11 = t[b1, g1, r0] * (1 - dr) + t[b1, g1, r1] * dr

        c0 = c00 * (1 - dg) + c01 * dg
        c1 = c10 * (1 - dg) + c11 * dg

        return c0 * (1 - db) + c1 * db


def _parse_size(line: str, source: Optional[Path], line_number: int) -> int:
    parts = line.split()
    if len(parts) < 2:
        raise FormatError(f"{SIZE_DIRECTIVE} has no value", source=source, line_number=line_number)
    try:
        size = int(parts[1])
    except ValueError as e:
        raise FormatError(
            f"{SIZE_DIRECTIVE} must be a positive integer, got {parts[1]!r}",
            source=source,
            line_number=line_number,
            cause=e,
        ) from e
    if size <= 0:
        raise FormatError(
            f"{SIZE_DIRECTIVE} must be a positive integer, got {size}",
            source=source,
            line_number=line_number,
        )
    if size < 2:
        raise FormatError(
            f"{SIZE_DIRECTIVE} must be at least 2, got {size}",
            source=source,
            line_number=line_number,
        )
    return size


def _parse_title(line: str) -> str:
    return line[len("TITLE"):].strip().strip('"')


def _cell(value: float, top: int) -> Tuple[int, int, float]:
    """Low index, high index and weight of one channel on the lattice."""
    coord = value * top
    nearest = round(coord)
    if abs(coord - nearest) < _SNAP_TOLERANCE:
        coord = float(nearest)
    low = min(max(math.floor(coord), 0), top)
    high = min(max(low + 1, 0), top)
    frac = min(max(coord - low, 0.0), 1.0)
    return low, high, frac


# =============================================================================
# LUT Library
# =============================================================================


def list_lut_files(directory: Union[str, Path]) -> List[str]:
    """Names of the ``.cube`` files in a directory, sorted."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        p.name for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() == LUT_EXTENSION
    )


class LatticeCache:
    """Share parsed tables between runs that select the same LUT file.

    Entries are keyed by resolved path and invalidated when the file's
    modification time or size changes.
    """

    def __init__(self, max_entries: int = 8) -> None:
        self._entries: Dict[Path, Tuple[Tuple[int, int], LatticeTable]] = {}
        self._lock = threading.Lock()
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def get(self, path: Union[str, Path]) -> LatticeTable:
        """Return the parsed table for ``path``, loading it if needed.

        Raises:
            FormatError: If the file cannot be read or parsed.
        """
        path = Path(path)
        try:
            key = path.resolve()
            stat = path.stat()
        except OSError as e:
            raise FormatError(f"Cannot read LUT file: {e}", source=path, cause=e) from e
        stamp = (stat.st_mtime_ns, stat.st_size)

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None and cached[0] == stamp:
                self.hits += 1
                return cached[1]

        table = LatticeTable.load(path)
        with self._lock:
            self.misses += 1
            self._entries.pop(key, None)
            self._entries[key] = (stamp, table)
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
        return table

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "LatticeTable",
    "LatticeCache",
    "list_lut_files",
    "SIZE_DIRECTIVE",
    "LUT_EXTENSION",
]
