"""
Multi-Scale Landscape Metrics — Data Model
==========================================
Plain dataclasses shared by every stage of the pipeline.

Classes:
    Scale           Buffer radius in metres plus its column label.
    SamplingSite    Immutable site record (identity, reference year, point).
    BufferPolygon   One scale's buffer geometry, tagged with a landscape id.
    SiteLandscape   All buffer polygons of one site, keyed by scale.
    ScaleRaster     In-memory raster derived for one (site, scale).
    MetricRecord    One metric value for (landscape, scale, class).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
import numpy.typing as npt
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds
from rasterio.windows import Window
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import RasterError


# ---------------------------------------------------------------------------
# Scales
# ---------------------------------------------------------------------------


def scale_label(radius_m: int) -> str:
    """Return the column label for a buffer radius (``500`` → ``"500m"``, ``2000`` → ``"2k"``)."""
    if radius_m >= 1000 and radius_m % 1000 == 0:
        return f"{radius_m // 1000}k"
    return f"{radius_m}m"


@dataclass(frozen=True, order=True)
class Scale:
    """A buffer radius in metres.

    Instances sort by radius, so ``sorted(scales, reverse=True)`` gives the
    largest-first walking order.

    Attributes:
        radius_m: Buffer radius in metres.
    """

    radius_m: int

    @property
    def label(self) -> str:
        return scale_label(self.radius_m)

    def __str__(self) -> str:
        return self.label


DEFAULT_RADII: tuple[int, ...] = (500, 1000, 2000, 4000, 8000)
DEFAULT_SCALES: tuple[Scale, ...] = tuple(Scale(r) for r in DEFAULT_RADII)


# ---------------------------------------------------------------------------
# Sites and buffers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SamplingSite:
    """One unique sampling site.

    Attributes:
        landscape_id: Stable integer id, assigned once per site and shared by
            every scale's buffer polygon.
        study_id: Identifier of the source study.
        site_id: Identifier of the site within its study.
        year_median: Reference year used to pick the annual raster.
        x: Longitude / easting of the site point in the sites CRS.
        y: Latitude / northing of the site point in the sites CRS.
    """

    landscape_id: int
    study_id: str
    site_id: str
    year_median: int
    x: float
    y: float


@dataclass(frozen=True)
class BufferPolygon:
    """A buffer polygon for one site at one scale."""

    landscape_id: int
    scale: Scale
    geometry: BaseGeometry


@dataclass
class SiteLandscape:
    """Every scale's buffer polygon for one site.

    Attributes:
        landscape_id: The site's stable landscape identifier.
        year: Reference year selecting the annual raster.
        polygons: Buffer polygons keyed by :class:`Scale`.
    """

    landscape_id: int
    year: int
    polygons: dict[Scale, BufferPolygon] = field(default_factory=dict)

    @property
    def scales(self) -> list[Scale]:
        """Scales present for this site, largest first."""
        return sorted(self.polygons, reverse=True)


# ---------------------------------------------------------------------------
# Rasters
# ---------------------------------------------------------------------------


class RasterSource(Protocol):
    """Anything the windowed extractor can crop from.

    Implemented by the file-backed :class:`~multiscale_landscape.catalog.RasterMap`
    and by the in-memory :class:`ScaleRaster`.
    """

    transform: Affine
    crs: CRS
    nodata: int
    width: int
    height: int

    def read_window(self, window: Window) -> npt.NDArray: ...


@dataclass
class ScaleRaster:
    """In-memory categorical raster for one (site, scale).

    Attributes:
        data: 2-D array of class codes.  Cells equal to ``nodata`` are
            excluded from every metric.
        transform: Affine transform of ``data``.
        crs: Coordinate reference system of ``data``.
        nodata: Sentinel value for excluded cells.
    """

    data: npt.NDArray
    transform: Affine
    crs: CRS
    nodata: int
    _released: bool = field(default=False, repr=False)

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(west, south, east, north)`` of the grid."""
        return array_bounds(self.height, self.width, self.transform)

    @property
    def valid_mask(self) -> npt.NDArray[np.bool_]:
        """Boolean array, ``True`` where the cell holds a class code."""
        return self.data != self.nodata

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid_mask))

    @property
    def released(self) -> bool:
        return self._released

    def read_window(self, window: Window) -> npt.NDArray:
        """Return a copy of the cells inside an integer *window*."""
        if self._released:
            raise RasterError("ScaleRaster was read after it had been released.")
        (row0, row1), (col0, col1) = window.toranges()
        return self.data[row0:row1, col0:col1].copy()

    def release(self) -> None:
        """Drop the cell array; the raster must not be read afterwards."""
        self.data = np.empty((0, 0), dtype=self.data.dtype)
        self._released = True

    def __enter__(self) -> ScaleRaster:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricRecord:
    """One metric value for (landscape, scale, class)."""

    landscape_id: int
    scale: str
    class_code: int
    metric: str
    value: float
