"""
Multi-Scale Landscape Metrics — Hierarchical Scale Walker
=========================================================
Processes one site's concentric buffers from the largest radius to the
smallest.

Only the largest buffer is cropped from the full annual raster.  Every
smaller buffer is cropped from the raster already windowed for the
next-larger buffer, which is valid because the buffers are nested: the
smaller polygon lies inside the region the larger window kept.  Each scale
is then projected to the equal-area grid, binarized, and summarised.

The scale order is an explicit chain of :class:`ScaleNode` objects, each
pointing at the node whose raster feeds it.

Classes:
    ScaleNode       One scale plus its parent in the chain.
    ScaleSkip       A scale (or whole site) that produced no metrics.
    SiteResult      Metric records and skipped scales for one site.
    ScaleWalker     Runs the chain for one :class:`SiteLandscape`.
"""

from __future__ import annotations

import logging
import threading
from contextlib import closing
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from shared.python.exceptions import EmptyIntersectionError, InputValidationError

from .extract import extract_window
from .metrics import DEFAULT_METRICS, MetricEngine, PatchMetricEngine
from .models import (
    DEFAULT_SCALES,
    MetricRecord,
    RasterSource,
    Scale,
    ScaleRaster,
    SiteLandscape,
)
from .project import EqualAreaProjector
from .reclassify import DEFAULT_FOREST_TABLE, ReclassificationTable

logger = logging.getLogger("multiscale_landscape.walker")


# ---------------------------------------------------------------------------
# Scale chain
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScaleNode:
    """A scale in the walking order.

    Attributes:
        scale: The buffer scale this node processes.
        parent: Node whose windowed raster is this node's input, or
            ``None`` for the largest scale (input = full annual raster).
    """

    scale: Scale
    parent: ScaleNode | None = None

    @property
    def is_root(self) -> bool:
        return self.parent is None


def build_scale_chain(scales: Sequence[Scale]) -> list[ScaleNode]:
    """Link *scales* largest-first, each node pointing at the next-larger one.

    Raises:
        InputValidationError: If *scales* is empty or repeats a radius.
    """
    if not scales:
        raise InputValidationError("At least one buffer scale is required.")
    ordered = sorted(scales, reverse=True)
    if len(set(ordered)) != len(ordered):
        raise InputValidationError(
            "Buffer scales must be unique: " + ", ".join(s.label for s in ordered)
        )

    chain: list[ScaleNode] = []
    parent: ScaleNode | None = None
    for scale in ordered:
        parent = ScaleNode(scale=scale, parent=parent)
        chain.append(parent)
    return chain


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScaleSkip:
    """A slice of work that produced no metrics.

    ``scale`` is ``None`` when the whole site was skipped.
    """

    landscape_id: int
    scale: str | None
    reason: str


@dataclass
class SiteResult:
    """Everything one site contributed to the batch."""

    landscape_id: int
    records: list[MetricRecord] = field(default_factory=list)
    skipped_scales: list[ScaleSkip] = field(default_factory=list)

    @property
    def scales_done(self) -> list[str]:
        return sorted({r.scale for r in self.records})


# ---------------------------------------------------------------------------
# Walker
# ---------------------------------------------------------------------------


class ScaleWalker:
    """Crop → mask → project → reclassify → summarise, for every scale of a site.

    Args:
        projector: Equal-area projector applied after windowing.
        table: Reclassification table binarizing projected codes.
        engine: Metric engine run on each binarized raster.
        metrics: Metric names requested from *engine*.
        scales: Buffer scales to walk.

    Example::

        walker = ScaleWalker(EqualAreaProjector("EPSG:6933", 30.0))
        result = walker.walk(landscape, catalog.get(landscape.year))
    """

    def __init__(
        self,
        projector: EqualAreaProjector | None = None,
        table: ReclassificationTable = DEFAULT_FOREST_TABLE,
        engine: MetricEngine | None = None,
        metrics: Sequence[str] = DEFAULT_METRICS,
        scales: Sequence[Scale] = DEFAULT_SCALES,
    ) -> None:
        self.projector = projector or EqualAreaProjector()
        self.table = table
        self.engine = engine or PatchMetricEngine()
        self.metrics = tuple(metrics)
        self.chain = build_scale_chain(scales)
        self.engine.validate_metrics(self.metrics)

    def walk(
        self,
        landscape: SiteLandscape,
        raster_map: RasterSource,
        cancelled: threading.Event | None = None,
    ) -> SiteResult:
        """Compute every scale's metrics for one site.

        Setting *cancelled* stops the walk before its next scale; the
        partial result is returned.

        Raises:
            EmptyIntersectionError: If the largest buffer misses the raster
                (nothing smaller can be derived, so the site is skipped).
            ProjectionFailureError: If a scale cannot be reprojected.
        """
        result = SiteResult(landscape_id=landscape.landscape_id)

        with closing(self._windows(landscape, raster_map, result, cancelled)) as windows:
            for scale, window in windows:
                result.records.extend(
                    self._summarise(window, scale, landscape.landscape_id)
                )

        logger.debug(
            "Landscape %d: %d record(s) across %s.",
            landscape.landscape_id, len(result.records), ", ".join(result.scales_done) or "no scale",
        )
        return result

    def _windows(
        self,
        landscape: SiteLandscape,
        raster_map: RasterSource,
        result: SiteResult,
        cancelled: threading.Event | None = None,
    ) -> Iterator[tuple[Scale, ScaleRaster]]:
        """Yield each scale's windowed raster, largest first.

        A window stays alive until the next scale has been cropped from it,
        so at most two windowed rasters exist at once.  Closing the
        generator releases whatever is still held.
        """
        parent: ScaleRaster | None = None
        try:
            for node in self.chain:
                if cancelled is not None and cancelled.is_set():
                    logger.debug(
                        "Landscape %d: walk cancelled before %s.", landscape.landscape_id, node.scale
                    )
                    return
                polygon = landscape.polygons.get(node.scale)
                if polygon is None:
                    result.skipped_scales.append(
                        ScaleSkip(landscape.landscape_id, node.scale.label, "no buffer polygon")
                    )
                    continue

                source: RasterSource = raster_map if parent is None else parent
                try:
                    window = extract_window(source, polygon.geometry)
                except EmptyIntersectionError as exc:
                    if parent is None:
                        raise
                    logger.debug(
                        "Landscape %d, %s: %s", landscape.landscape_id, node.scale, exc.message
                    )
                    result.skipped_scales.append(
                        ScaleSkip(landscape.landscape_id, node.scale.label, exc.message)
                    )
                    continue

                if parent is not None:
                    parent.release()
                parent = window
                yield node.scale, window
        finally:
            if parent is not None:
                parent.release()

    def _summarise(
        self, window: ScaleRaster, scale: Scale, landscape_id: int
    ) -> list[MetricRecord]:
        """Project, binarize and compute metrics for one windowed raster."""
        with self.projector.project(window) as projected, self.table.apply(projected) as binary:
            values = self.engine.compute(binary, self.metrics)
        return [
            MetricRecord(
                landscape_id=landscape_id,
                scale=scale.label,
                class_code=v.class_code,
                metric=v.metric,
                value=v.value,
            )
            for v in values
        ]
