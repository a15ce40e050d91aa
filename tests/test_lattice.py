"""Tests for LUT parsing and trilinear lookup."""
import numpy as np
import pytest

from lutwright.core.errors import FormatError
from lutwright.lut.lattice import LatticeCache, LatticeTable, list_lut_files

from conftest import cube_text


class TestParse:
    """Tests for LatticeTable.parse."""

    def test_parse_identity(self):
        """Test a size 2 identity lattice parses with b-outer ordering."""
        table = LatticeTable.parse(cube_text(2, lambda r, g, b: (r, g, b)))

        assert table.size == 2
        assert table.entry(1, 0, 0) == (1.0, 0.0, 0.0)
        assert table.entry(0, 1, 0) == (0.0, 1.0, 0.0)
        assert table.entry(0, 0, 1) == (0.0, 0.0, 1.0)

    def test_row_order_red_fastest(self):
        """Test the second data row is r=1, g=0, b=0."""
        text = "LUT_3D_SIZE 2\n" + "\n".join(
            f"{i} {i} {i}" for i in range(8)
        )
        table = LatticeTable.parse(text)

        assert table.entry(1, 0, 0) == (1.0, 1.0, 1.0)
        assert table.entry(0, 1, 0) == (2.0, 2.0, 2.0)
        assert table.entry(0, 0, 1) == (4.0, 4.0, 4.0)
        assert table.entry(1, 1, 1) == (7.0, 7.0, 7.0)
        assert table.rows()[3].tolist() == [3.0, 3.0, 3.0]

    def test_comments_blank_lines_and_title(self):
        """Test comments and blank lines are ignored and TITLE is kept."""
        text = cube_text(2, lambda r, g, b: (r, g, b), title="Warm")
        text = text.replace("LUT_3D_SIZE 2\n", "LUT_3D_SIZE 2\n\n# a comment\nDOMAIN_MIN 0 0 0\nDOMAIN_MAX 1 1 1\n")
        table = LatticeTable.parse(text)

        assert table.title == "Warm"
        assert table.size == 2

    def test_malformed_rows_skipped(self):
        """Test non-numeric and wrong-width rows are skipped."""
        text = cube_text(2, lambda r, g, b: (r, g, b))
        text += "abc def ghi\n1 2\n"
        table = LatticeTable.parse(text)

        assert table.size == 2

    def test_values_outside_unit_range_accepted(self):
        """Test out-of-range outputs are kept as-is."""
        table = LatticeTable.parse(cube_text(2, lambda r, g, b: (r * 2 - 0.5, g, b)))

        assert table.entry(0, 0, 0)[0] == pytest.approx(-0.5)
        assert table.entry(1, 0, 0)[0] == pytest.approx(1.5)

    def test_missing_directive(self):
        """Test a file without LUT_3D_SIZE fails."""
        with pytest.raises(FormatError, match="LUT_3D_SIZE"):
            LatticeTable.parse("0 0 0\n1 1 1\n")

    @pytest.mark.parametrize("value", ["abc", "2.5", "0", "-3", ""])
    def test_invalid_size(self, value):
        """Test a size that is not a positive integer fails."""
        with pytest.raises(FormatError):
            LatticeTable.parse(f"LUT_3D_SIZE {value}\n0 0 0\n")

    def test_size_one_rejected(self):
        """Test a single-point lattice cannot interpolate and is rejected."""
        with pytest.raises(FormatError):
            LatticeTable.parse("LUT_3D_SIZE 1\n0 0 0\n")

    def test_row_count_mismatch_reports_counts(self):
        """Test too few rows reports expected and actual counts."""
        with pytest.raises(FormatError) as exc_info:
            LatticeTable.parse("LUT_3D_SIZE 2\n0 0 0\n1 1 1\n")

        assert exc_info.value.details["expected"] == 8
        assert exc_info.value.details["actual"] == 2
        assert "8" in exc_info.value.user_message()

    def test_too_many_rows(self):
        """Test extra rows also fail."""
        text = cube_text(2, lambda r, g, b: (r, g, b)) + "0.5 0.5 0.5\n"
        with pytest.raises(FormatError):
            LatticeTable.parse(text)

    def test_non_finite_value(self):
        """Test NaN in a data row fails."""
        text = cube_text(2, lambda r, g, b: (r, g, b)).replace("1.000000 1.000000 1.000000", "nan 1 1")
        with pytest.raises(FormatError):
            LatticeTable.parse(text)

    def test_table_is_read_only(self):
        """Test the stored lattice cannot be mutated."""
        table = LatticeTable.identity(3)
        with pytest.raises(ValueError):
            table.data[0, 0, 0, 0] = 0.5


class TestLoad:
    """Tests for file loading and listing."""

    def test_load_file(self, identity_cube):
        table = LatticeTable.load(identity_cube)

        assert table.size == 2
        assert table.source == identity_cube
        assert table.title == "Identity"

    def test_load_missing_file(self, temp_dir):
        with pytest.raises(FormatError):
            LatticeTable.load(temp_dir / "missing.cube")

    def test_list_lut_files(self, temp_dir):
        (temp_dir / "b.cube").write_text("x")
        (temp_dir / "a.CUBE").write_text("x")
        (temp_dir / "notes.txt").write_text("x")

        assert list_lut_files(temp_dir) == ["a.CUBE", "b.cube"]

    def test_list_lut_files_missing_dir(self, temp_dir):
        assert list_lut_files(temp_dir / "nope") == []


class TestLookup:
    """Tests for trilinear interpolation."""

    def test_lattice_points_exact(self):
        """Test lookups at lattice coordinates return the stored entry."""
        table = LatticeTable.parse(cube_text(5, lambda r, g, b: (r * r, g * 0.5, 1 - b)))
        for r in range(5):
            for g in range(5):
                for b in range(5):
                    expected = table.entry(r, g, b)
                    assert table.lookup(r / 4, g / 4, b / 4) == expected
                    np.testing.assert_array_equal(
                        table.lookup_array(np.array([r / 4, g / 4, b / 4])), expected,
                    )

    def test_no_overshoot_along_one_axis(self):
        """Test values between two lattice points stay between their entries."""
        rng = np.random.default_rng(11)
        values = rng.uniform(-0.2, 1.2, size=(4 ** 3, 3))
        text = "LUT_3D_SIZE 4\n" + "\n".join(" ".join(f"{v:.6f}" for v in row) for row in values)
        table = LatticeTable.parse(text)

        for _ in range(200):
            r_low, g, b = rng.integers(0, 3), rng.integers(0, 4), rng.integers(0, 4)
            r = (r_low + rng.random()) / 3
            low = np.array(table.entry(r_low, g, b))
            high = np.array(table.entry(r_low + 1, g, b))
            out = np.array(table.lookup(r, g / 3, b / 3))

            assert np.all(out >= np.minimum(low, high) - 1e-12)
            assert np.all(out <= np.maximum(low, high) + 1e-12)

    def test_identity_reproduces_input(self):
        table = LatticeTable.identity(2)

        assert table.lookup(0.3, 0.6, 0.9) == pytest.approx((0.3, 0.6, 0.9))

    def test_midpoint_averages_corners(self):
        """Test the cell center is the mean of the eight corners."""
        text = "LUT_3D_SIZE 2\n" + "\n".join(f"{i} 0 0" for i in range(8))
        table = LatticeTable.parse(text)

        assert table.lookup(0.5, 0.5, 0.5)[0] == pytest.approx(3.5)

    def test_upper_boundary_clamped(self):
        """Test 1.0 and values beyond it clamp to the last lattice point."""
        table = LatticeTable.parse(cube_text(3, lambda r, g, b: (r, g, b)))

        assert table.lookup(1.0, 1.0, 1.0) == pytest.approx((1.0, 1.0, 1.0))
        assert table.lookup(1.7, 0.5, -0.2) == pytest.approx((1.0, 0.5, 0.0))

    def test_lookup_array_matches_scalar(self):
        table = LatticeTable.parse(cube_text(4, lambda r, g, b: (r * g, g ** 2, (r + b) / 2)))
        rng = np.random.default_rng(7)
        colors = rng.random((50, 3))
        colors[0] = (0.0, 0.0, 0.0)
        colors[1] = (1.0, 1.0, 1.0)

        vectorised = table.lookup_array(colors)
        for color, out in zip(colors, vectorised):
            assert tuple(out) == pytest.approx(table.lookup(*color), abs=1e-12)

    def test_lookup_array_keeps_shape(self):
        table = LatticeTable.identity(2)
        image = np.full((4, 5, 3), 0.25)

        assert table.lookup_array(image).shape == (4, 5, 3)


class TestLatticeCache:
    """Tests for the parsed table cache."""

    def test_cache_hit(self, identity_cube):
        cache = LatticeCache()

        first = cache.get(identity_cube)
        second = cache.get(identity_cube)

        assert first is second
        assert cache.hits == 1
        assert cache.misses == 1

    def test_cache_reloads_changed_file(self, write_cube):
        path = write_cube("change.cube", 2, lambda r, g, b: (r, g, b))
        cache = LatticeCache()
        first = cache.get(path)

        path.write_text(cube_text(3, lambda r, g, b: (r, g, b)), encoding="utf-8")
        second = cache.get(path)

        assert second is not first
        assert second.size == 3

    def test_cache_evicts_oldest(self, write_cube):
        cache = LatticeCache(max_entries=2)
        for name in ("a.cube", "b.cube", "c.cube"):
            cache.get(write_cube(name, 2, lambda r, g, b: (r, g, b)))

        assert len(cache) == 2

    def test_cache_missing_file(self, temp_dir):
        with pytest.raises(FormatError):
            LatticeCache().get(temp_dir / "missing.cube")
