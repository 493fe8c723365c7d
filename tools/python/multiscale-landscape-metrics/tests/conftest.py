"""
Shared fixtures — synthetic land-cover rasters and buffers.

Every test raster is a 100 x 100 grid of 200 m cells in CONUS Albers
(EPSG:5070), covering x 0–20 000 m and y 0–20 000 m.  An 8 km buffer
around the grid centre fits inside it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import numpy as np
import pytest
import rasterio
import shapely
from rasterio.transform import from_origin
from shapely.geometry import Point

from multiscale_landscape.models import DEFAULT_SCALES, BufferPolygon, SiteLandscape

GRID_CRS = "EPSG:5070"
CELL = 200.0
SIZE = 100
CENTRE = (10_000.0, 10_000.0)

FOREST = 3
PASTURE = 15


def write_geotiff(path: Path, data: np.ndarray, *, crs: str = GRID_CRS, nodata: int | None = 0) -> Path:
    """Write a single-band uint8 GeoTIFF on the standard test grid."""
    with rasterio.open(
        path, "w",
        driver="GTiff",
        height=data.shape[0],
        width=data.shape[1],
        count=1,
        dtype="uint8",
        crs=crs,
        transform=from_origin(0.0, SIZE * CELL, CELL, CELL),
        nodata=nodata,
    ) as dst:
        dst.write(data.astype(np.uint8), 1)
    return path


def mixed_cover(seed: int = 0) -> np.ndarray:
    """Forest with random pasture clearings and a pasture strip every fifth column, no nodata."""
    rng = np.random.default_rng(seed)
    data = np.full((SIZE, SIZE), FOREST, dtype=np.uint8)
    data[rng.random((SIZE, SIZE)) < 0.3] = PASTURE
    data[:, ::5] = PASTURE
    return data


def site_landscape(
    landscape_id: int = 0,
    year: int = 2015,
    centre: tuple[float, float] = CENTRE,
    scales=DEFAULT_SCALES,
) -> SiteLandscape:
    """Nested circular buffers drawn directly in the grid CRS."""
    landscape = SiteLandscape(landscape_id=landscape_id, year=year)
    point = Point(*centre)
    for scale in scales:
        landscape.polygons[scale] = BufferPolygon(
            landscape_id=landscape_id,
            scale=scale,
            geometry=shapely.buffer(point, float(scale.radius_m), quad_segs=32),
        )
    return landscape


@pytest.fixture()
def make_raster(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing ``landcover_<year>.tif`` rasters into ``tmp_path/rasters``."""
    raster_dir = tmp_path / "rasters"
    raster_dir.mkdir(exist_ok=True)

    def _make(year: int = 2015, data: np.ndarray | None = None, **kwargs) -> Path:
        if data is None:
            data = mixed_cover(year)
        return write_geotiff(raster_dir / f"landcover_{year}.tif", data, **kwargs)

    return _make


@pytest.fixture()
def raster_dir(make_raster) -> Path:
    """A directory holding mixed-cover rasters for 2014 and 2015."""
    make_raster(2014)
    return make_raster(2015).parent
