"""
Tests — Metric Engine
=====================
Patch metrics on small hand-built binary rasters with 100 m (1 ha) cells.
"""

from __future__ import annotations

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from multiscale_landscape.metrics import PatchMetricEngine
from multiscale_landscape.models import ScaleRaster
from multiscale_landscape.reclassify import BINARY_NODATA
from shared.python.exceptions import InputValidationError

ALL_METRICS = (
    "edge_density", "patch_count", "pland", "total_edge",
    "patch_density", "largest_patch_index", "mean_patch_area",
)

N = BINARY_NODATA


def _binary(rows: list[list[int]]) -> ScaleRaster:
    return ScaleRaster(
        data=np.array(rows, dtype=np.uint8),
        transform=from_origin(0.0, 1000.0, 100.0, 100.0),
        crs=CRS.from_epsg(6933),
        nodata=BINARY_NODATA,
    )


def _values(raster: ScaleRaster, engine: PatchMetricEngine | None = None, metrics=ALL_METRICS):
    results = (engine or PatchMetricEngine()).compute(raster, metrics)
    return {(r.class_code, r.metric): r.value for r in results}


class TestPureForest:
    def test_single_patch_full_cover_no_edge(self) -> None:
        values = _values(_binary([[1] * 10 for _ in range(10)]))
        assert values[(1, "pland")] == pytest.approx(100.0)
        assert values[(1, "patch_count")] == 1
        assert values[(1, "edge_density")] == 0.0
        assert values[(1, "largest_patch_index")] == pytest.approx(100.0)

    def test_absent_class_not_reported(self) -> None:
        values = _values(_binary([[1, 1], [1, 1]]))
        assert {c for c, _ in values} == {1}

    def test_nodata_around_forest_is_not_edge(self) -> None:
        values = _values(_binary([[N, N, N], [N, 1, 1], [N, 1, 1]]))
        assert values[(1, "pland")] == pytest.approx(100.0)
        assert values[(1, "edge_density")] == 0.0


class TestEdges:
    def test_half_and_half(self) -> None:
        rows = [[1, 1, 0, 0] for _ in range(4)]
        values = _values(_binary(rows))
        # Four shared 100 m cell sides over 16 ha.
        for c in (0, 1):
            assert values[(c, "total_edge")] == pytest.approx(400.0)
            assert values[(c, "edge_density")] == pytest.approx(25.0)
            assert values[(c, "pland")] == pytest.approx(50.0)

    def test_count_boundary_includes_border_and_nodata(self) -> None:
        raster = _binary([[1, 1, N]])
        assert _values(raster)[(1, "total_edge")] == 0.0
        counted = _values(raster, PatchMetricEngine(count_boundary=True))
        assert counted[(1, "total_edge")] == pytest.approx(600.0)
        assert counted[(1, "edge_density")] == pytest.approx(300.0)

    def test_rectangular_cells(self) -> None:
        raster = _binary([[1, 0]])
        raster.transform = from_origin(0.0, 1000.0, 100.0, 50.0)
        # One vertical side, 50 m long.
        assert _values(raster)[(1, "total_edge")] == pytest.approx(50.0)


class TestPatches:
    def test_diagonal_cells_join_under_8_connectivity(self) -> None:
        rows = [[1, 0], [0, 1]]
        assert _values(_binary(rows), PatchMetricEngine(8))[(1, "patch_count")] == 1
        assert _values(_binary(rows), PatchMetricEngine(4))[(1, "patch_count")] == 2

    def test_patch_area_metrics(self) -> None:
        rows = [[0] * 10 for _ in range(10)]
        rows[0][0:3] = [1, 1, 1]
        rows[5][5] = 1
        values = _values(_binary(rows))
        assert values[(1, "patch_count")] == 2
        assert values[(1, "largest_patch_index")] == pytest.approx(3.0)
        assert values[(1, "mean_patch_area")] == pytest.approx(2.0)
        assert values[(1, "patch_density")] == pytest.approx(2.0)
        assert values[(1, "pland")] == pytest.approx(4.0)

    def test_landscape_area_excludes_nodata(self) -> None:
        values = _values(_binary([[1, 0, N, N]]))
        assert values[(1, "pland")] == pytest.approx(50.0)


class TestEngineContract:
    def test_all_nodata_returns_nothing(self) -> None:
        assert PatchMetricEngine().compute(_binary([[N, N]]), ALL_METRICS) == []

    def test_unknown_metric_raises(self) -> None:
        with pytest.raises(InputValidationError):
            PatchMetricEngine().compute(_binary([[1]]), ["shannon_diversity"])

    def test_results_ordered_by_class_then_metric(self) -> None:
        results = PatchMetricEngine().compute(_binary([[0, 1]]), ["pland", "patch_count"])
        assert [(r.class_code, r.metric) for r in results] == [
            (0, "pland"), (0, "patch_count"), (1, "pland"), (1, "patch_count"),
        ]

    def test_bad_connectivity_raises(self) -> None:
        with pytest.raises(ValueError):
            PatchMetricEngine(6)
