"""
Tests — Reclassifier
====================
Unit tests for :class:`~multiscale_landscape.reclassify.ReclassificationTable`.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from multiscale_landscape.models import ScaleRaster
from multiscale_landscape.reclassify import (
    BINARY_NODATA,
    DEFAULT_FOREST_TABLE,
    MAPBIOMAS_FOREST_CODES,
    MAPBIOMAS_LEGEND,
    ReclassificationTable,
)
from shared.python.exceptions import (
    ColumnNotFoundError,
    InputValidationError,
    InvalidClassCodeError,
)


def _raster(data: list[list[int]], nodata: int = 0) -> ScaleRaster:
    return ScaleRaster(
        data=np.array(data, dtype=np.uint8),
        transform=from_origin(0, 100, 10, 10),
        crs=CRS.from_epsg(5070),
        nodata=nodata,
    )


# ---------------------------------------------------------------------------
# Table construction
# ---------------------------------------------------------------------------


class TestTableConstruction:
    def test_default_table_is_total_over_legend(self) -> None:
        for code in MAPBIOMAS_LEGEND:
            assert DEFAULT_FOREST_TABLE.target_of(code) in (0, 1)

    def test_default_table_marks_forest_codes(self) -> None:
        assert DEFAULT_FOREST_TABLE.codes_mapped_to(1) == sorted(MAPBIOMAS_FOREST_CODES)
        assert DEFAULT_FOREST_TABLE.target_of(15) == 0

    def test_unlisted_code_uses_default(self) -> None:
        table = ReclassificationTable.from_pairs([(3, 1)])
        assert table.target_of(999) == 0

    def test_default_target_one(self) -> None:
        table = ReclassificationTable.from_pairs([(33, 0)], default_target=1)
        assert table.target_of(33) == 0
        assert table.target_of(3) == 1

    def test_conflicting_duplicate_raises(self) -> None:
        with pytest.raises(InvalidClassCodeError, match="both 1 and 0"):
            ReclassificationTable.from_pairs([(3, 1), (3, 0)])

    def test_repeated_identical_pair_is_accepted(self) -> None:
        table = ReclassificationTable.from_pairs([(3, 1), (3, 1)])
        assert table.rules == {3: 1}

    def test_non_binary_target_raises(self) -> None:
        with pytest.raises(InvalidClassCodeError):
            ReclassificationTable.from_pairs([(3, 2)])

    def test_non_binary_default_raises(self) -> None:
        with pytest.raises(InvalidClassCodeError):
            ReclassificationTable(rules={}, default_target=7)

    def test_from_mapping_accepts_string_keys(self) -> None:
        table = ReclassificationTable.from_mapping({"3": 1, "4": 1})
        assert table.codes_mapped_to(1) == [3, 4]

    def test_from_mapping_rejects_non_integer(self) -> None:
        with pytest.raises(InputValidationError):
            ReclassificationTable.from_mapping({"forest": 1})


class TestFromCsv:
    def test_loads_pairs(self, tmp_path: Path) -> None:
        path = tmp_path / "classes.csv"
        path.write_text("source,target\n3,1\n4,1\n15,0\n", encoding="utf-8")
        table = ReclassificationTable.from_csv(path)
        assert table.rules == {3: 1, 4: 1, 15: 0}

    def test_missing_column_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "classes.csv"
        path.write_text("code,target\n3,1\n", encoding="utf-8")
        with pytest.raises(ColumnNotFoundError):
            ReclassificationTable.from_csv(path)

    def test_conflict_in_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "classes.csv"
        path.write_text("source,target\n3,1\n3,0\n", encoding="utf-8")
        with pytest.raises(InvalidClassCodeError):
            ReclassificationTable.from_csv(path)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(InputValidationError):
            ReclassificationTable.from_csv(tmp_path / "absent.csv")


# ---------------------------------------------------------------------------
# Applying the table
# ---------------------------------------------------------------------------


class TestApply:
    def test_binarizes_codes(self) -> None:
        out = DEFAULT_FOREST_TABLE.apply(_raster([[3, 15], [49, 33]]))
        assert out.data.tolist() == [[1, 0], [1, 0]]

    def test_nodata_preserved(self) -> None:
        out = DEFAULT_FOREST_TABLE.apply(_raster([[0, 3], [15, 0]], nodata=0))
        assert out.nodata == BINARY_NODATA
        assert out.data.tolist() == [[BINARY_NODATA, 1], [0, BINARY_NODATA]]

    def test_output_only_holds_binary_codes_or_nodata(self) -> None:
        rng = np.random.default_rng(4)
        codes = rng.choice(MAPBIOMAS_LEGEND + (0,), size=(20, 20))
        out = DEFAULT_FOREST_TABLE.apply(_raster(codes.tolist()))
        assert set(np.unique(out.data)) <= {0, 1, BINARY_NODATA}

    def test_input_not_modified(self) -> None:
        raster = _raster([[3, 15]])
        DEFAULT_FOREST_TABLE.apply(raster)
        assert raster.data.tolist() == [[3, 15]]

    def test_keeps_georeferencing(self) -> None:
        raster = _raster([[3, 15]])
        out = DEFAULT_FOREST_TABLE.apply(raster)
        assert out.transform == raster.transform
        assert out.crs == raster.crs
