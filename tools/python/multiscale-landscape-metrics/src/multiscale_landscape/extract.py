"""
Multi-Scale Landscape Metrics — Windowed Raster Extractor
=========================================================
Crops a raster to a polygon's bounding rectangle and sets every cell whose
centre lies outside the polygon to nodata.

The source may be a file-backed :class:`~multiscale_landscape.catalog.RasterMap`
(only the window is read from disk) or an in-memory
:class:`~multiscale_landscape.models.ScaleRaster` from a larger scale.  Both
paths compute the window the same way, so cropping a nested polygon from the
larger scale's raster gives exactly the cells a crop of the full raster
would.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from rasterio.features import geometry_mask
from rasterio.windows import Window, from_bounds
from rasterio.windows import transform as window_transform
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import EmptyIntersectionError

from .models import RasterSource, ScaleRaster

logger = logging.getLogger("multiscale_landscape.extract")

# Fractional cell offsets are rounded to this many decimals before
# flooring/ceiling so float noise never shifts a window by one cell.
_OFFSET_DECIMALS = 6


def bounding_window(source: RasterSource, geometry: BaseGeometry) -> Window:
    """Return the integer window covering *geometry*'s bounds, clipped to *source*.

    Offsets are floored and far edges ceiled, so every cell touched by the
    bounding rectangle is included.

    Raises:
        EmptyIntersectionError: If the rectangle misses the source extent.
    """
    if geometry.is_empty:
        raise EmptyIntersectionError("polygon is empty")

    minx, miny, maxx, maxy = geometry.bounds
    frac = from_bounds(minx, miny, maxx, maxy, transform=source.transform)

    col0 = math.floor(round(frac.col_off, _OFFSET_DECIMALS))
    row0 = math.floor(round(frac.row_off, _OFFSET_DECIMALS))
    col1 = math.ceil(round(frac.col_off + frac.width, _OFFSET_DECIMALS))
    row1 = math.ceil(round(frac.row_off + frac.height, _OFFSET_DECIMALS))

    col0, row0 = max(col0, 0), max(row0, 0)
    col1, row1 = min(col1, source.width), min(row1, source.height)

    if col0 >= col1 or row0 >= row1:
        raise EmptyIntersectionError(
            f"bounds ({minx:.1f}, {miny:.1f}, {maxx:.1f}, {maxy:.1f}) "
            f"fall outside a {source.width}x{source.height} grid"
        )
    return Window(col0, row0, col1 - col0, row1 - row0)


def extract_window(source: RasterSource, geometry: BaseGeometry) -> ScaleRaster:
    """Crop *source* to *geometry* and mask cells outside it.

    Args:
        source: Full annual raster or a larger scale's raster, in the same
            CRS as *geometry*.
        geometry: Buffer polygon.

    Returns:
        A new :class:`ScaleRaster` covering the polygon's bounding window.

    Raises:
        EmptyIntersectionError: If the polygon misses the raster, or no
            cell centre falls inside it.
    """
    window = bounding_window(source, geometry)
    data = source.read_window(window)
    transform = window_transform(window, source.transform)

    outside = geometry_mask(
        [geometry],
        out_shape=data.shape,
        transform=transform,
        all_touched=False,
    )
    if outside.all():
        raise EmptyIntersectionError("no cell centre lies inside the polygon")

    data = np.where(outside, np.asarray(source.nodata, dtype=data.dtype), data)
    logger.debug(
        "Window %dx%d at (%d, %d): %d cell(s) inside polygon.",
        window.width, window.height, window.col_off, window.row_off,
        int(np.count_nonzero(~outside)),
    )
    return ScaleRaster(data=data, transform=transform, crs=source.crs, nodata=source.nodata)
