"""
Multi-Scale Landscape Metrics — Custom Exception Hierarchy
==========================================================
Every module in the project raises exceptions from this module so callers
can catch them at the right level of granularity.

Hierarchy::

    LandscapeMetricsError                ← catch-all base
    ├── InputValidationError             ← bad files, missing columns, etc.
    │   ├── ColumnNotFoundError          ← CSV/table column missing
    │   └── InvalidClassCodeError        ← inconsistent reclassification table
    ├── CRSError                         ← invalid / unknown CRS string
    ├── RasterError                      ← rasterio / numpy raster issues
    │   ├── MissingYearRasterError       ← no annual raster for a year
    │   ├── EmptyIntersectionError       ← polygon misses the raster extent
    │   └── ProjectionFailureError       ← reprojection produced no grid
    ├── SiteTimeoutError                 ← one site exceeded its time budget
    ├── AssemblyError                    ← metric records cannot be pivoted
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import MissingYearRasterError

    raise MissingYearRasterError(2016, available=[2015, 2017])
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class LandscapeMetricsError(Exception):
    """Base exception for the multi-scale landscape metrics tool.

    Catch this to handle any project-specific error without caring about
    the exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(LandscapeMetricsError):
    """Raised when the tool's inputs fail pre-processing validation.

    This is the parent class for more specific input problems.
    """


class ColumnNotFoundError(InputValidationError):
    """Raised when an expected column is absent from a tabular dataset.

    Args:
        column: The name of the missing column.
        available: List of column names that ARE present, used to
                   generate a helpful error message.

    Example::

        raise ColumnNotFoundError("year_median", df.columns.tolist())
    """

    def __init__(self, column: str, available: list[str]) -> None:
        available_str = ", ".join(f"'{c}'" for c in available)
        super().__init__(
            f"Column '{column}' not found. Available columns: {available_str}"
        )
        self.column: str = column
        self.available: list[str] = available


class InvalidClassCodeError(InputValidationError):
    """Raised when a reclassification table is internally inconsistent.

    A table is inconsistent when one source code is mapped to two
    different targets, or when a target is not a binary class code.
    Detected once while the table is loaded, never per raster.

    Args:
        source_code: The raw land-cover code at fault.
        reason: Short explanation of the inconsistency.

    Example::

        raise InvalidClassCodeError(3, "mapped to both 0 and 1")
    """

    def __init__(self, source_code: int, reason: str) -> None:
        super().__init__(f"Invalid reclassification for code {source_code}: {reason}")
        self.source_code: int = source_code
        self.reason: str = reason


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(LandscapeMetricsError):
    """Raised when a coordinate reference system string cannot be parsed
    or matched to a known CRS.

    Args:
        crs_string: The raw CRS string that caused the error
                    (e.g. ``"EPSG:99999"``).
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:6933') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(LandscapeMetricsError):
    """Raised for general raster processing failures (rasterio / numpy).

    Subclass this for more specific raster errors.
    """


class MissingYearRasterError(RasterError):
    """Raised when no annual land-cover raster exists for a year.

    Args:
        year: The reference year that was requested.
        available: Years the raster catalog does hold.

    Example::

        raise MissingYearRasterError(1984, available=[1985, 1986])
    """

    def __init__(self, year: int, available: list[int] | None = None) -> None:
        span = ""
        if available:
            span = f" Catalog covers {min(available)}-{max(available)}."
        super().__init__(f"No land-cover raster for year {year}.{span}")
        self.year: int = year
        self.available: list[int] = list(available or [])


class EmptyIntersectionError(RasterError):
    """Raised when a polygon does not overlap a raster's valid extent.

    Args:
        detail: Description of the polygon/raster pair, used in the message.
    """

    def __init__(self, detail: str) -> None:
        super().__init__(f"Polygon does not intersect the raster: {detail}")
        self.detail: str = detail


class ProjectionFailureError(RasterError):
    """Raised when reprojection to the equal-area CRS yields no usable grid.

    Args:
        target_crs: The CRS the raster was being projected into.
        reason: Underlying library error or a short explanation.
    """

    def __init__(self, target_crs: str, reason: str) -> None:
        super().__init__(f"Cannot reproject raster to {target_crs}: {reason}")
        self.target_crs: str = target_crs
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Batch execution
# ---------------------------------------------------------------------------


class SiteTimeoutError(LandscapeMetricsError):
    """Raised (or recorded) when one site runs past its time budget.

    Args:
        landscape_id: Identifier of the landscape that timed out.
        timeout: The configured limit in seconds.
    """

    def __init__(self, landscape_id: int, timeout: float) -> None:
        super().__init__(
            f"Landscape {landscape_id} exceeded the {timeout:.1f}s site timeout."
        )
        self.landscape_id: int = landscape_id
        self.timeout: float = timeout


class AssemblyError(LandscapeMetricsError):
    """Raised when metric records cannot be pivoted into the wide table."""


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(LandscapeMetricsError):
    """Raised when the tool cannot write its output to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.

    Example::

        raise OutputWriteError("/read-only/dir/metrics.csv", "Permission denied")
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
