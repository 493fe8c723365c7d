"""
Multi-Scale Landscape Metrics — Batch Dispatcher
================================================
Runs the scale walker over every site on worker threads.

Workers share only the read-only :class:`~multiscale_landscape.catalog.RasterCatalog`
and each opens its own raster handles, so no locking is needed.  Results
are collected in completion order; the assembler sorts them afterwards.

A failed site (missing year, buffer outside the raster, reprojection
failure, timeout) is logged, counted in the :class:`BatchSummary`, and never
stops the other sites.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Sequence

from shared.python.exceptions import RasterError, SiteTimeoutError

from .catalog import RasterCatalog
from .models import MetricRecord, SiteLandscape
from .walker import ScaleSkip, ScaleWalker, SiteResult

logger = logging.getLogger("multiscale_landscape.batch")

_PROGRESS_EVERY = 50


@dataclass
class BatchSummary:
    """Counts and reasons for everything a batch could not compute.

    Attributes:
        sites_total: Sites submitted.
        sites_processed: Sites whose walk finished (possibly with skipped scales).
        skipped_sites: One entry per site that contributed nothing.
        skipped_scales: One entry per (site, scale) left empty.
    """

    sites_total: int = 0
    sites_processed: int = 0
    skipped_sites: list[ScaleSkip] = field(default_factory=list)
    skipped_scales: list[ScaleSkip] = field(default_factory=list)

    def summary(self) -> str:
        """Return a human-readable one-line summary for logging or display."""
        return (
            f"Processed {self.sites_processed}/{self.sites_total} site(s) | "
            f"{len(self.skipped_sites)} site(s) skipped | "
            f"{len(self.skipped_scales)} scale(s) skipped"
        )

    def skip_table(self) -> list[tuple[int, str, str]]:
        """``(landscape_id, scale or "all", reason)`` for every skip, sorted."""
        rows = [(s.landscape_id, s.scale or "all", s.reason) for s in self.skipped_sites]
        rows += [(s.landscape_id, s.scale or "all", s.reason) for s in self.skipped_scales]
        return sorted(rows)


@dataclass
class BatchResult:
    records: list[MetricRecord]
    summary: BatchSummary


class BatchRunner:
    """Dispatch :meth:`ScaleWalker.walk` for many sites in parallel.

    Without a timeout the sites run on a ``ThreadPoolExecutor``.  With one,
    each site runs on its own daemon thread and at most *max_workers* sites
    that are still within their limit run at once.  A site past the limit
    is reported as skipped and abandoned: its slot goes to the next queued
    site, it is told to stop before its next scale, and anything it returns
    later is dropped.  A raster read or reprojection already in progress
    cannot be interrupted, so an abandoned thread may run on until that
    call returns.

    Args:
        walker: Configured scale walker shared by all workers.
        catalog: Populated raster catalog (read-only during the run).
        max_workers: Sites processed at once.  Each in-flight site holds at
            most two windowed rasters, so size this to available memory.
        site_timeout: Seconds a single site may run before it is abandoned
            and reported as skipped.  ``None`` disables the limit.
    """

    def __init__(
        self,
        walker: ScaleWalker,
        catalog: RasterCatalog,
        *,
        max_workers: int = 4,
        site_timeout: float | None = None,
    ) -> None:
        self.walker = walker
        self.catalog = catalog
        self.max_workers = max_workers
        self.site_timeout = site_timeout

    def run(self, landscapes: Sequence[SiteLandscape]) -> BatchResult:
        """Walk every landscape and gather the records."""
        summary = BatchSummary(sites_total=len(landscapes))
        records: list[MetricRecord] = []

        logger.info(
            "Dispatching %d site(s) on %d worker(s).", len(landscapes), self.max_workers
        )
        if self.site_timeout is None:
            self._run_pool(landscapes, records, summary)
        else:
            self._run_with_timeout(landscapes, records, summary)

        logger.info(summary.summary())
        return BatchResult(records=records, summary=summary)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _run_pool(
        self,
        landscapes: Sequence[SiteLandscape],
        records: list[MetricRecord],
        summary: BatchSummary,
    ) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="landscape") as pool:
            futures = {pool.submit(self._walk_site, land): land for land in landscapes}
            for finished, future in enumerate(as_completed(futures), start=1):
                landscape = futures[future]
                try:
                    site = future.result()
                except RasterError as exc:
                    self._skip_site(landscape, exc.message, summary)
                else:
                    self._collect(site, records, summary)
                self._progress(finished, len(landscapes))

    def _run_with_timeout(
        self,
        landscapes: Sequence[SiteLandscape],
        records: list[MetricRecord],
        summary: BatchSummary,
    ) -> None:
        assert self.site_timeout is not None
        poll = min(1.0, self.site_timeout / 4)
        done: queue.Queue[tuple[int, SiteResult | None, Exception | None]] = queue.Queue()
        waiting = deque(landscapes)
        running: dict[int, _RunningSite] = {}
        finished = 0

        while waiting or running:
            while waiting and len(running) < self.max_workers:
                landscape = waiting.popleft()
                entry = _RunningSite(landscape, time.monotonic())
                running[landscape.landscape_id] = entry
                threading.Thread(
                    target=self._site_worker,
                    args=(landscape, entry.cancelled, done),
                    name=f"landscape-{landscape.landscape_id}",
                    daemon=True,
                ).start()

            try:
                landscape_id, site, error = done.get(timeout=poll)
            except queue.Empty:
                pass
            else:
                entry = running.pop(landscape_id, None)
                if entry is None:
                    logger.debug("Dropping late result of landscape %d.", landscape_id)
                elif isinstance(error, RasterError):
                    self._skip_site(entry.landscape, error.message, summary)
                elif error is not None:
                    raise error
                else:
                    self._collect(site, records, summary)
                if entry is not None:
                    finished += 1
                    self._progress(finished, len(landscapes))

            finished += self._expire(running, summary)

    def _site_worker(
        self,
        landscape: SiteLandscape,
        cancelled: threading.Event,
        done: queue.Queue,
    ) -> None:
        # Errors travel back to the dispatching thread, which re-raises them.
        try:
            site = self._walk_site(landscape, cancelled)
        except Exception as exc:
            done.put((landscape.landscape_id, None, exc))
        else:
            done.put((landscape.landscape_id, site, None))

    def _expire(self, running: dict[int, _RunningSite], summary: BatchSummary) -> int:
        """Abandon running sites older than the timeout; return how many."""
        assert self.site_timeout is not None
        now = time.monotonic()
        expired = 0
        for landscape_id, entry in list(running.items()):
            if now - entry.started <= self.site_timeout:
                continue
            entry.cancelled.set()
            del running[landscape_id]
            exc = SiteTimeoutError(landscape_id, self.site_timeout)
            self._skip_site(entry.landscape, exc.message, summary)
            expired += 1
        return expired

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _walk_site(
        self, landscape: SiteLandscape, cancelled: threading.Event | None = None
    ) -> SiteResult:
        raster_map = self.catalog.get(landscape.year)
        return self.walker.walk(landscape, raster_map, cancelled=cancelled)

    @staticmethod
    def _collect(site: SiteResult, records: list[MetricRecord], summary: BatchSummary) -> None:
        records.extend(site.records)
        summary.sites_processed += 1
        for skip in site.skipped_scales:
            logger.info(
                "Landscape %d has no %s metrics: %s", skip.landscape_id, skip.scale, skip.reason
            )
        summary.skipped_scales.extend(site.skipped_scales)

    @staticmethod
    def _skip_site(landscape: SiteLandscape, reason: str, summary: BatchSummary) -> None:
        logger.warning("Skipping landscape %d: %s", landscape.landscape_id, reason)
        summary.skipped_sites.append(ScaleSkip(landscape.landscape_id, None, reason))

    @staticmethod
    def _progress(finished: int, total: int) -> None:
        if finished % _PROGRESS_EVERY == 0:
            logger.info("Finished %d/%d site(s).", finished, total)


@dataclass
class _RunningSite:
    landscape: SiteLandscape
    started: float
    cancelled: threading.Event = field(default_factory=threading.Event)
