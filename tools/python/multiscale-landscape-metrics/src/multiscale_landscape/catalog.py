"""
Multi-Scale Landscape Metrics — Annual Raster Catalog
=====================================================
Discovers the annual land-cover rasters, reads each file's metadata once,
and serves them by year.

The catalog is populated before any site is dispatched and is read-only
afterwards.  :class:`RasterMap` never keeps a dataset handle open: each
window read opens its own short-lived rasterio handle, so worker threads
never share one.

Classes:
    RasterMap       File-backed annual raster (metadata + windowed reads).
    RasterCatalog   Year → RasterMap cache.

Usage::

    with RasterCatalog.from_directory(Path("data/landcover")) as catalog:
        raster_map = catalog.get(2016)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping

import numpy.typing as npt
import rasterio
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds
from rasterio.windows import Window

from shared.python.exceptions import (
    InputValidationError,
    MissingYearRasterError,
    RasterError,
)
from shared.python.validators import Validators

logger = logging.getLogger("multiscale_landscape.catalog")

RASTER_EXTENSIONS = (".tif", ".tiff", ".vrt", ".img")
DEFAULT_YEAR_PATTERN = r"(?<!\d)(\d{4})(?!\d)"


# ---------------------------------------------------------------------------
# Single annual raster
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RasterMap:
    """Metadata for one annual land-cover raster.

    Attributes:
        year: Calendar year the raster represents.
        path: File path opened for every window read.
        band: 1-based band holding the class codes.
        crs: Raster CRS.
        transform: Affine transform of the full grid.
        width: Number of columns.
        height: Number of rows.
        nodata: Sentinel for cells without a class.
        dtype: Numpy dtype name of the band.
    """

    year: int
    path: Path
    band: int
    crs: CRS
    transform: Affine
    width: int
    height: int
    nodata: int
    dtype: str

    @classmethod
    def open(cls, year: int, path: Path, *, band: int = 1, fill_nodata: int = 0) -> RasterMap:
        """Read metadata from *path*.

        Args:
            year: Year the file represents.
            path: Raster file path.
            band: 1-based band index.
            fill_nodata: Nodata value used when the file declares none.

        Raises:
            RasterError: If the file cannot be opened or *band* is missing.
        """
        try:
            with rasterio.open(path) as src:
                if band < 1 or band > src.count:
                    raise RasterError(
                        f"Band {band} does not exist in '{path}' "
                        f"({src.count} band(s), 1-indexed)."
                    )
                if src.crs is None:
                    raise RasterError(f"Raster '{path}' has no CRS.")
                nodata = src.nodata if src.nodata is not None else fill_nodata
                return cls(
                    year=year,
                    path=Path(path),
                    band=band,
                    crs=src.crs,
                    transform=src.transform,
                    width=src.width,
                    height=src.height,
                    nodata=int(nodata),
                    dtype=src.dtypes[band - 1],
                )
        except rasterio.errors.RasterioIOError as exc:
            raise RasterError(f"Could not open raster '{path}': {exc}") from exc

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return array_bounds(self.height, self.width, self.transform)

    def read_window(self, window: Window) -> npt.NDArray:
        """Read the cells of an integer *window* from disk."""
        try:
            with rasterio.open(self.path) as src:
                return src.read(self.band, window=window)
        except rasterio.errors.RasterioIOError as exc:
            raise RasterError(f"Could not read window from '{self.path}': {exc}") from exc


# ---------------------------------------------------------------------------
# Year → raster cache
# ---------------------------------------------------------------------------


class RasterCatalog:
    """Read-only cache of :class:`RasterMap` objects keyed by year.

    All rasters must share one CRS; buffers are built in that CRS.
    """

    def __init__(self, rasters: Mapping[int, RasterMap] | None = None) -> None:
        self._rasters: dict[int, RasterMap] = dict(rasters or {})
        self._check_single_crs()

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_directory(
        cls,
        directory: Path,
        *,
        pattern: str = DEFAULT_YEAR_PATTERN,
        band: int = 1,
        fill_nodata: int = 0,
    ) -> RasterCatalog:
        """Discover rasters whose file name contains a year.

        The first capture group of *pattern* must match the year.

        Raises:
            InputValidationError: If the directory is missing, holds no
                matching raster, or two files claim the same year.
        """
        Validators.assert_directory_exists(directory)
        year_re = re.compile(pattern)

        paths: dict[int, Path] = {}
        for path in sorted(Path(directory).iterdir()):
            if path.suffix.lower() not in RASTER_EXTENSIONS:
                continue
            match = year_re.search(path.stem)
            if match is None:
                logger.debug("Skipping %s — no year in file name.", path.name)
                continue
            year = int(match.group(1))
            if year in paths:
                raise InputValidationError(
                    f"Two rasters for year {year}: '{paths[year].name}' and '{path.name}'."
                )
            paths[year] = path

        if not paths:
            raise InputValidationError(
                f"No annual rasters matching {pattern!r} found in '{directory}'."
            )
        return cls.from_paths(paths, band=band, fill_nodata=fill_nodata)

    @classmethod
    def from_paths(
        cls, paths: Mapping[int, Path], *, band: int = 1, fill_nodata: int = 0
    ) -> RasterCatalog:
        rasters = {
            int(year): RasterMap.open(int(year), Path(path), band=band, fill_nodata=fill_nodata)
            for year, path in paths.items()
        }
        catalog = cls(rasters)
        logger.info(
            "Raster catalog loaded: %d year(s) %s.",
            len(catalog), catalog.year_span(),
        )
        return catalog

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, year: int) -> RasterMap:
        """Return the raster for *year*.

        Raises:
            MissingYearRasterError: If the catalog holds no such year.
        """
        try:
            return self._rasters[int(year)]
        except KeyError:
            raise MissingYearRasterError(int(year), available=self.years) from None

    @property
    def years(self) -> list[int]:
        return sorted(self._rasters)

    @property
    def crs(self) -> CRS | None:
        """The CRS shared by every raster, or ``None`` for an empty catalog."""
        for raster in self._rasters.values():
            return raster.crs
        return None

    def year_span(self) -> str:
        years = self.years
        return f"{years[0]}-{years[-1]}" if years else "(empty)"

    def clear(self) -> None:
        self._rasters.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_single_crs(self) -> None:
        crs_set = {r.crs.to_string() for r in self._rasters.values()}
        if len(crs_set) > 1:
            raise InputValidationError(
                "Annual rasters must share one CRS; found: " + ", ".join(sorted(crs_set))
            )

    def __contains__(self, year: object) -> bool:
        return year in self._rasters

    def __len__(self) -> int:
        return len(self._rasters)

    def __iter__(self) -> Iterator[RasterMap]:
        return iter(self._rasters[y] for y in self.years)

    def __enter__(self) -> RasterCatalog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clear()
