"""
Multi-Scale Landscape Metrics — Equal-Area Projector
====================================================
Reprojects a windowed categorical raster into a metre-based equal-area CRS.

Resampling is always nearest-neighbour: any interpolating method would
invent class codes that do not exist in the legend.
"""

from __future__ import annotations

import logging

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.warp import Resampling, calculate_default_transform, reproject

from shared.python.exceptions import ProjectionFailureError

from .models import ScaleRaster

logger = logging.getLogger("multiscale_landscape.project")

DEFAULT_EQUAL_AREA_CRS = "EPSG:6933"
DEFAULT_RESOLUTION_M = 30.0


class EqualAreaProjector:
    """Nearest-neighbour reprojection onto an equal-area grid.

    Args:
        target_crs: Equal-area CRS (EPSG/ESRI code, PROJ or WKT string).
        resolution: Square output cell size in target CRS units (metres).
            ``None`` lets GDAL pick a resolution that preserves the source
            cell count.
    """

    def __init__(
        self,
        target_crs: str = DEFAULT_EQUAL_AREA_CRS,
        resolution: float | None = DEFAULT_RESOLUTION_M,
    ) -> None:
        self.target_crs_string = target_crs
        self.resolution = resolution
        try:
            self.target_crs = CRS.from_user_input(target_crs)
        except rasterio.errors.CRSError as exc:
            raise ProjectionFailureError(str(target_crs), str(exc)) from exc

    def project(self, raster: ScaleRaster) -> ScaleRaster:
        """Return *raster* reprojected onto the equal-area grid.

        Raises:
            ProjectionFailureError: If GDAL cannot build or fill the output
                grid, or the output holds no valid cell.
        """
        west, south, east, north = raster.bounds
        try:
            dst_transform, dst_width, dst_height = calculate_default_transform(
                raster.crs,
                self.target_crs,
                raster.width,
                raster.height,
                left=west,
                bottom=south,
                right=east,
                top=north,
                resolution=self.resolution,
            )
        except Exception as exc:  # GDAL raises CPLE_* errors outside rasterio.errors
            raise ProjectionFailureError(self.target_crs_string, str(exc)) from exc

        if not dst_width or not dst_height:
            raise ProjectionFailureError(self.target_crs_string, "empty output grid")

        try:
            destination = np.full((dst_height, dst_width), raster.nodata, dtype=raster.data.dtype)
            reproject(
                source=raster.data,
                destination=destination,
                src_transform=raster.transform,
                src_crs=raster.crs,
                src_nodata=raster.nodata,
                dst_transform=dst_transform,
                dst_crs=self.target_crs,
                dst_nodata=raster.nodata,
                resampling=Resampling.nearest,
            )
        except Exception as exc:  # GDAL raises CPLE_* errors outside rasterio.errors
            raise ProjectionFailureError(self.target_crs_string, str(exc)) from exc

        projected = ScaleRaster(
            data=destination, transform=dst_transform, crs=self.target_crs, nodata=raster.nodata
        )
        if projected.valid_count == 0:
            raise ProjectionFailureError(self.target_crs_string, "no valid cell after warping")

        logger.debug(
            "Projected %dx%d → %dx%d (%s).",
            raster.width, raster.height, dst_width, dst_height, self.target_crs_string,
        )
        return projected

