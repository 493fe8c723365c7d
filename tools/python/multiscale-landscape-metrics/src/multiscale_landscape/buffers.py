"""
Multi-Scale Landscape Metrics — Buffer Polygons
===============================================
Builds the concentric buffer polygons around each site and reads/writes
the per-scale buffer cache.

Buffers are drawn in a metric CRS (radii are metres) and transformed to the
raster CRS, where the windowed extractor uses them.  Every buffer of one
site shares the same centre and the same vertex angles, so a smaller buffer
always lies inside a larger one; :func:`assert_nested` checks this.

Per-scale collections are joined on ``landscape_id``, never by row
position.  The cache itself is keyed by ``(study_id, site_id)``, because
landscape ids are re-derived from the sites table on every run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

import geopandas as gpd
import numpy as np
import shapely
from pyproj import CRS
from shapely.geometry import Point

from shared.python.exceptions import InputValidationError, OutputWriteError
from shared.python.validators import Validators

from .models import BufferPolygon, SamplingSite, Scale, SiteLandscape
from .project import DEFAULT_EQUAL_AREA_CRS

logger = logging.getLogger("multiscale_landscape.buffers")

# Segments per quarter circle.
QUAD_SEGS = 32
# Allowed share of a smaller buffer's area outside the next-larger one
# (vertex round-off after reprojection).
NESTING_TOLERANCE = 1e-9
YEAR_COLUMN = "year_median"
# Columns every cached collection carries besides its geometry.
CACHE_COLUMNS = ("study_id", "site_id", "x", "y")
# Largest coordinate drift (site CRS units) still treated as the same point.
COORD_TOLERANCE = 1e-9


# ---------------------------------------------------------------------------
# Building buffers from sites
# ---------------------------------------------------------------------------


def build_site_landscapes(
    sites: Sequence[SamplingSite],
    scales: Sequence[Scale],
    raster_crs: CRS | str,
    *,
    site_crs: CRS | str = "EPSG:4326",
    buffer_crs: CRS | str = DEFAULT_EQUAL_AREA_CRS,
) -> list[SiteLandscape]:
    """Draw every scale's buffer around every site.

    Args:
        sites: Sites with their landscape ids already assigned.
        scales: Buffer scales.
        raster_crs: CRS of the annual rasters; buffers are returned in it.
        site_crs: CRS of the site coordinates.
        buffer_crs: Projected, metre-based CRS the circles are drawn in.

    Returns:
        One :class:`SiteLandscape` per site, in input order.
    """
    if not sites:
        return []

    points = gpd.GeoSeries(
        [Point(s.x, s.y) for s in sites], crs=site_crs
    ).to_crs(buffer_crs)
    centres = np.asarray(points.values)

    landscapes = [SiteLandscape(landscape_id=s.landscape_id, year=s.year_median) for s in sites]
    for scale in scales:
        circles = gpd.GeoSeries(
            shapely.buffer(centres, float(scale.radius_m), quad_segs=QUAD_SEGS),
            crs=buffer_crs,
        ).to_crs(raster_crs)
        for landscape, geometry in zip(landscapes, circles):
            landscape.polygons[scale] = BufferPolygon(
                landscape_id=landscape.landscape_id, scale=scale, geometry=geometry
            )

    logger.info(
        "Built %d buffer set(s) at %s.",
        len(landscapes), ", ".join(s.label for s in sorted(scales)),
    )
    return landscapes


def assert_nested(landscape: SiteLandscape, tolerance: float = NESTING_TOLERANCE) -> None:
    """Assert each buffer lies inside the next-larger buffer of the same site.

    Raises:
        InputValidationError: If a smaller buffer extends outside a larger one.
    """
    ordered = landscape.scales
    for larger, smaller in zip(ordered, ordered[1:]):
        outer = landscape.polygons[larger].geometry
        inner = landscape.polygons[smaller].geometry
        if outer.covers(inner):
            continue
        outside = inner.difference(outer).area
        if outside > tolerance * max(inner.area, 1e-12):
            raise InputValidationError(
                f"Landscape {landscape.landscape_id}: the {smaller} buffer is not "
                f"contained in the {larger} buffer."
            )


# ---------------------------------------------------------------------------
# Joining per-scale collections
# ---------------------------------------------------------------------------


def landscapes_from_collections(
    collections: Mapping[Scale, gpd.GeoDataFrame],
    years: Mapping[int, int] | None = None,
) -> list[SiteLandscape]:
    """Join per-scale polygon collections into :class:`SiteLandscape` objects.

    Each collection needs a ``landscape_id`` column.  Reference years come
    from *years* when given, otherwise from the largest scale's
    ``year_median`` column.  Landscapes missing from any scale, or whose
    buffers are not nested, are dropped with a warning.

    Raises:
        InputValidationError: If a collection repeats a landscape id, or a
            landscape has no reference year.
    """
    if not collections:
        return []

    largest = max(collections)
    id_sets: dict[Scale, set[int]] = {}
    for scale, gdf in collections.items():
        Validators.assert_columns_exist(gdf, ["landscape_id"])
        ids = gdf["landscape_id"].astype(int)
        if ids.duplicated().any():
            raise InputValidationError(
                f"Buffer collection {scale} repeats landscape id(s): "
                f"{sorted(ids[ids.duplicated()].unique().tolist())[:10]}"
            )
        id_sets[scale] = set(ids)

    complete = set.intersection(*id_sets.values())
    incomplete = set.union(*id_sets.values()) - complete
    if incomplete:
        logger.warning(
            "%d landscape(s) lack a buffer at some scale and are skipped: %s",
            len(incomplete), sorted(incomplete)[:10],
        )

    year_of = _years_from(collections[largest], years)
    indexed = {
        scale: gdf.assign(landscape_id=gdf["landscape_id"].astype(int)).set_index("landscape_id")
        for scale, gdf in collections.items()
    }

    landscapes: list[SiteLandscape] = []
    for landscape_id in sorted(complete):
        if landscape_id not in year_of:
            raise InputValidationError(f"Landscape {landscape_id} has no reference year.")
        landscape = SiteLandscape(landscape_id=landscape_id, year=year_of[landscape_id])
        for scale, gdf in indexed.items():
            landscape.polygons[scale] = BufferPolygon(
                landscape_id=landscape_id, scale=scale, geometry=gdf.geometry.loc[landscape_id]
            )
        try:
            assert_nested(landscape)
        except InputValidationError as exc:
            logger.warning("%s Skipping it.", exc.message)
            continue
        landscapes.append(landscape)
    return landscapes


def _years_from(gdf: gpd.GeoDataFrame, years: Mapping[int, int] | None) -> dict[int, int]:
    if years is not None:
        return {int(i): int(y) for i, y in years.items()}
    if YEAR_COLUMN not in gdf.columns:
        raise InputValidationError(
            f"The largest buffer collection has no '{YEAR_COLUMN}' column "
            "and no site years were supplied."
        )
    return {
        int(i): int(y)
        for i, y in zip(gdf["landscape_id"], gdf[YEAR_COLUMN])
    }


# ---------------------------------------------------------------------------
# Buffer cache
# ---------------------------------------------------------------------------


def cache_path(directory: Path, scale: Scale) -> Path:
    return Path(directory) / f"buffers_{scale.label}.gpkg"


def write_buffer_cache(
    landscapes: Sequence[SiteLandscape],
    directory: Path,
    crs: CRS | str,
    sites: Sequence[SamplingSite],
) -> list[Path]:
    """Write one GeoPackage per scale, keyed by study and site id.

    Every row also stores the site coordinates the buffer was drawn
    around, so a later run can tell when a site has moved.  Landscape ids
    are not stored: they depend on the sites table and are re-derived
    when the cache is read.

    Raises:
        InputValidationError: If a landscape has no matching site.
        OutputWriteError: If a file cannot be written.
    """
    if not landscapes:
        return []
    site_of = {s.landscape_id: s for s in sites}
    unknown = sorted(land.landscape_id for land in landscapes if land.landscape_id not in site_of)
    if unknown:
        raise InputValidationError(
            f"Cannot cache buffers for landscape id(s) with no site: {unknown[:10]}"
        )

    directory = Path(directory)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputWriteError(str(directory), str(exc)) from exc

    scales = sorted({s for land in landscapes for s in land.polygons}, reverse=True)
    written: list[Path] = []
    for scale in scales:
        rows = [site_of[land.landscape_id] for land in landscapes if scale in land.polygons]
        geometries = [land.polygons[scale].geometry for land in landscapes if scale in land.polygons]
        gdf = gpd.GeoDataFrame(
            {
                "study_id": [s.study_id for s in rows],
                "site_id": [s.site_id for s in rows],
                "x": [s.x for s in rows],
                "y": [s.y for s in rows],
            },
            geometry=geometries,
            crs=crs,
        )
        path = cache_path(directory, scale)
        try:
            gdf.to_file(path, driver="GPKG")
        except Exception as exc:  # pyogrio/fiona raise their own error types
            raise OutputWriteError(str(path), str(exc)) from exc
        written.append(path)

    logger.info("Wrote %d buffer collection(s) to %s.", len(written), directory)
    return written


def load_buffer_cache(
    directory: Path,
    scales: Sequence[Scale],
    target_crs: CRS | str,
    sites: Sequence[SamplingSite],
) -> list[SiteLandscape]:
    """Read the per-scale GeoPackages for the given *sites*.

    Cached rows are matched to *sites* on ``(study_id, site_id)`` and take
    the current landscape id and reference year.  Rows for sites that are
    gone, or whose coordinates changed, are ignored, so the result may
    cover only part of *sites*.  A cache written without site keys covers
    nothing.

    Raises:
        InputValidationError: If the directory or a scale's file is missing.
    """
    Validators.assert_directory_exists(directory)
    by_key = {(s.study_id, s.site_id): s for s in sites}
    collections: dict[Scale, gpd.GeoDataFrame] = {}
    for scale in scales:
        path = cache_path(directory, scale)
        Validators.assert_file_exists(path)
        gdf = gpd.read_file(path)
        if gdf.crs is None:
            raise InputValidationError(f"Buffer collection '{path.name}' has no CRS.")
        missing = [c for c in CACHE_COLUMNS if c not in gdf.columns]
        if missing:
            logger.warning(
                "Buffer collection '%s' lacks %s; ignoring the cache.", path.name, missing
            )
            return []
        collections[scale] = _match_sites(gdf, by_key).to_crs(target_crs)

    years = {s.landscape_id: s.year_median for s in sites}
    landscapes = landscapes_from_collections(collections, years)
    logger.info(
        "Loaded %d of %d landscape(s) from buffer cache %s.",
        len(landscapes), len(sites), directory,
    )
    return landscapes


def _match_sites(
    gdf: gpd.GeoDataFrame, by_key: Mapping[tuple[str, str], SamplingSite]
) -> gpd.GeoDataFrame:
    """Keep cached rows whose site still exists at the same point; attach its id."""
    current = [
        by_key.get((str(study), str(site)))
        for study, site in zip(gdf["study_id"], gdf["site_id"])
    ]
    keep = np.array(
        [
            site is not None
            and np.isclose(site.x, x, rtol=0.0, atol=COORD_TOLERANCE)
            and np.isclose(site.y, y, rtol=0.0, atol=COORD_TOLERANCE)
            for site, x, y in zip(current, gdf["x"], gdf["y"])
        ],
        dtype=bool,
    )
    ids = [site.landscape_id for site, kept in zip(current, keep) if kept]
    return gdf.loc[keep].assign(landscape_id=ids)
