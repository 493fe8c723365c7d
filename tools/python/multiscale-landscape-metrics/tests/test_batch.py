"""
Tests — Batch Dispatcher
========================
Parallel site processing, per-site skips and the site timeout.
"""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from conftest import site_landscape
from multiscale_landscape.batch import BatchRunner, BatchSummary
from multiscale_landscape.catalog import RasterCatalog
from multiscale_landscape.project import EqualAreaProjector
from multiscale_landscape.walker import ScaleSkip, ScaleWalker, SiteResult


@pytest.fixture()
def catalog(raster_dir: Path) -> RasterCatalog:
    return RasterCatalog.from_directory(raster_dir)


@pytest.fixture()
def walker() -> ScaleWalker:
    return ScaleWalker(projector=EqualAreaProjector("EPSG:5070", 200.0), metrics=["pland"])


class _SlowWalker:
    def walk(self, landscape, raster_map, cancelled=None) -> SiteResult:
        time.sleep(1.5)
        return SiteResult(landscape_id=landscape.landscape_id)


class _StallingWalker:
    """Stalls on the given landscape ids, walks the others normally."""

    def __init__(self, walker: ScaleWalker, stalled: set[int]) -> None:
        self.walker = walker
        self.stalled = stalled

    def walk(self, landscape, raster_map, cancelled=None) -> SiteResult:
        if landscape.landscape_id in self.stalled:
            time.sleep(3.0)
        return self.walker.walk(landscape, raster_map, cancelled=cancelled)


class TestBatchRunner:
    def test_failed_sites_do_not_stop_others(self, walker, catalog) -> None:
        landscapes = [
            site_landscape(0, 2015),
            site_landscape(1, 1999),
            site_landscape(2, 2014, centre=(90_000.0, 90_000.0)),
            site_landscape(3, 2014),
        ]
        result = BatchRunner(walker, catalog, max_workers=2).run(landscapes)

        assert {r.landscape_id for r in result.records} == {0, 3}
        summary = result.summary
        assert summary.sites_total == 4
        assert summary.sites_processed == 2
        assert sorted(s.landscape_id for s in summary.skipped_sites) == [1, 2]

    def test_missing_year_reason(self, walker, catalog) -> None:
        result = BatchRunner(walker, catalog).run([site_landscape(1, 1999)])
        assert "1999" in result.summary.skipped_sites[0].reason

    def test_same_records_for_one_or_many_workers(self, walker, catalog) -> None:
        landscapes = [site_landscape(i, 2015, (8_000.0 + 1_000.0 * i, 10_000.0)) for i in range(4)]
        serial = BatchRunner(walker, catalog, max_workers=1).run(landscapes).records
        parallel = BatchRunner(walker, catalog, max_workers=4).run(landscapes).records
        key = lambda r: (r.landscape_id, r.scale, r.class_code, r.metric)  # noqa: E731
        assert sorted(serial, key=key) == sorted(parallel, key=key)

    def test_site_timeout_skips_site(self, catalog) -> None:
        runner = BatchRunner(_SlowWalker(), catalog, max_workers=2, site_timeout=0.2)
        start = time.monotonic()
        result = runner.run([site_landscape(0, 2015), site_landscape(1, 2015)])
        assert time.monotonic() - start < 1.5
        assert result.records == []
        assert len(result.summary.skipped_sites) == 2
        assert "timeout" in result.summary.skipped_sites[0].reason

    def test_timed_out_sites_free_their_worker(self, catalog) -> None:
        runner = BatchRunner(_SlowWalker(), catalog, max_workers=1, site_timeout=0.2)
        start = time.monotonic()
        result = runner.run([site_landscape(i, 2015) for i in range(3)])
        assert time.monotonic() - start < 1.5
        assert sorted(s.landscape_id for s in result.summary.skipped_sites) == [0, 1, 2]
        assert result.summary.sites_processed == 0

    def test_queued_sites_run_after_a_stalled_one(self, walker, catalog) -> None:
        runner = BatchRunner(
            _StallingWalker(walker, stalled={0}), catalog, max_workers=1, site_timeout=1.0
        )
        start = time.monotonic()
        result = runner.run([site_landscape(i, 2015) for i in range(3)])
        assert time.monotonic() - start < 3.0
        assert {r.landscape_id for r in result.records} == {1, 2}
        assert [s.landscape_id for s in result.summary.skipped_sites] == [0]
        assert result.summary.sites_processed == 2

    def test_timeout_path_skips_failed_sites(self, walker, catalog) -> None:
        landscapes = [site_landscape(0, 2015), site_landscape(1, 1999)]
        result = BatchRunner(walker, catalog, max_workers=1, site_timeout=30.0).run(landscapes)
        assert {r.landscape_id for r in result.records} == {0}
        assert "1999" in result.summary.skipped_sites[0].reason

    def test_empty_batch(self, walker, catalog) -> None:
        result = BatchRunner(walker, catalog).run([])
        assert result.records == []
        assert result.summary.sites_total == 0


class TestBatchSummary:
    def test_summary_line(self) -> None:
        summary = BatchSummary(
            sites_total=3,
            sites_processed=2,
            skipped_sites=[ScaleSkip(1, None, "no raster")],
            skipped_scales=[ScaleSkip(0, "500m", "outside")],
        )
        assert summary.summary() == (
            "Processed 2/3 site(s) | 1 site(s) skipped | 1 scale(s) skipped"
        )
        assert summary.skip_table() == [(0, "500m", "outside"), (1, "all", "no raster")]
