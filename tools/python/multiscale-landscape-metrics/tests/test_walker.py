"""
Tests — Hierarchical Scale Walker
=================================
Walks synthetic sites through all five scales.
"""

from __future__ import annotations

import threading

import numpy as np
import pytest
import shapely
from shapely.geometry import Point

from conftest import FOREST, PASTURE, SIZE, site_landscape
from multiscale_landscape.catalog import RasterMap
from multiscale_landscape.models import DEFAULT_SCALES, BufferPolygon, Scale
from multiscale_landscape.project import EqualAreaProjector
from multiscale_landscape.walker import ScaleWalker, build_scale_chain
from shared.python.exceptions import EmptyIntersectionError, InputValidationError

LABELS = {"8k", "4k", "2k", "1k", "500m"}


@pytest.fixture()
def walker() -> ScaleWalker:
    return ScaleWalker(projector=EqualAreaProjector("EPSG:5070", 200.0))


@pytest.fixture()
def forest_map(make_raster) -> RasterMap:
    data = np.full((SIZE, SIZE), FOREST, dtype=np.uint8)
    return RasterMap.open(2015, make_raster(2015, data))


@pytest.fixture()
def mixed_map(make_raster) -> RasterMap:
    # Pasture every third column.
    data = np.full((SIZE, SIZE), FOREST, dtype=np.uint8)
    data[:, ::3] = PASTURE
    return RasterMap.open(2015, make_raster(2015, data))


class TestScaleChain:
    def test_largest_first_with_parents(self) -> None:
        chain = build_scale_chain(DEFAULT_SCALES)
        assert [n.scale.radius_m for n in chain] == [8000, 4000, 2000, 1000, 500]
        assert chain[0].is_root
        for child, parent in zip(chain[1:], chain):
            assert child.parent is parent

    def test_duplicate_scale_raises(self) -> None:
        with pytest.raises(InputValidationError):
            build_scale_chain([Scale(500), Scale(500)])

    def test_empty_raises(self) -> None:
        with pytest.raises(InputValidationError):
            build_scale_chain([])


class TestWalk:
    def test_every_scale_tagged(self, walker: ScaleWalker, mixed_map: RasterMap) -> None:
        result = walker.walk(site_landscape(landscape_id=4), mixed_map)
        assert set(result.scales_done) == LABELS
        assert all(r.landscape_id == 4 for r in result.records)
        assert not result.skipped_scales

    def test_pure_forest_values(self, walker: ScaleWalker, forest_map: RasterMap) -> None:
        result = walker.walk(site_landscape(), forest_map)
        assert len(result.records) == 15
        by_key = {(r.scale, r.metric): r.value for r in result.records}
        for label in LABELS:
            assert by_key[(label, "pland")] == pytest.approx(100.0)
            assert by_key[(label, "patch_count")] == 1
            assert by_key[(label, "edge_density")] == 0.0
        assert {r.class_code for r in result.records} == {1}

    def test_mixed_cover_reports_both_classes(self, walker: ScaleWalker, mixed_map: RasterMap) -> None:
        result = walker.walk(site_landscape(), mixed_map)
        for label in LABELS:
            classes = {r.class_code for r in result.records if r.scale == label}
            assert classes == {0, 1}
            pland = sum(
                r.value for r in result.records if r.scale == label and r.metric == "pland"
            )
            assert pland == pytest.approx(100.0)

    def test_outside_extent_raises(self, walker: ScaleWalker, mixed_map: RasterMap) -> None:
        with pytest.raises(EmptyIntersectionError):
            walker.walk(site_landscape(centre=(90_000.0, 90_000.0)), mixed_map)

    def test_smaller_scale_outside_parent_is_skipped(
        self, walker: ScaleWalker, mixed_map: RasterMap
    ) -> None:
        landscape = site_landscape()
        small = Scale(500)
        landscape.polygons[small] = BufferPolygon(
            landscape_id=0,
            scale=small,
            geometry=shapely.buffer(Point(3000, 3000), 500.0),
        )
        result = walker.walk(landscape, mixed_map)
        assert set(result.scales_done) == LABELS - {"500m"}
        assert [s.scale for s in result.skipped_scales] == ["500m"]

    def test_missing_polygon_is_skipped(self, walker: ScaleWalker, mixed_map: RasterMap) -> None:
        landscape = site_landscape()
        del landscape.polygons[Scale(2000)]
        result = walker.walk(landscape, mixed_map)
        assert set(result.scales_done) == LABELS - {"2k"}
        assert result.skipped_scales[0].reason == "no buffer polygon"

    def test_subset_of_scales(self, mixed_map: RasterMap) -> None:
        walker = ScaleWalker(
            projector=EqualAreaProjector("EPSG:5070", 200.0),
            metrics=["pland"],
            scales=[Scale(1000), Scale(500)],
        )
        result = walker.walk(site_landscape(), mixed_map)
        assert set(result.scales_done) == {"1k", "500m"}
        assert {r.metric for r in result.records} == {"pland"}

    def test_unknown_metric_rejected_at_construction(self) -> None:
        with pytest.raises(InputValidationError):
            ScaleWalker(metrics=["not_a_metric"])


class _CancelAfterFirstScale(ScaleWalker):
    def __init__(self, cancelled: threading.Event, **kwargs) -> None:
        super().__init__(**kwargs)
        self.cancelled = cancelled

    def _summarise(self, window, scale, landscape_id):
        self.cancelled.set()
        return super()._summarise(window, scale, landscape_id)


class TestCancel:
    def test_stops_before_next_scale(self, mixed_map: RasterMap) -> None:
        cancelled = threading.Event()
        walker = _CancelAfterFirstScale(cancelled, projector=EqualAreaProjector("EPSG:5070", 200.0))
        result = walker.walk(site_landscape(), mixed_map, cancelled=cancelled)
        assert result.scales_done == ["8k"]

    def test_unset_event_walks_everything(self, walker: ScaleWalker, mixed_map: RasterMap) -> None:
        result = walker.walk(site_landscape(), mixed_map, cancelled=threading.Event())
        assert set(result.scales_done) == LABELS
