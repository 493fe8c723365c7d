"""
Multi-Scale Landscape Metrics — Shared Python Package
=====================================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so the tool modules can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import EmptyIntersectionError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    AssemblyError,
    ColumnNotFoundError,
    CRSError,
    EmptyIntersectionError,
    InputValidationError,
    InvalidClassCodeError,
    LandscapeMetricsError,
    MissingYearRasterError,
    OutputWriteError,
    ProjectionFailureError,
    RasterError,
    SiteTimeoutError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "LandscapeMetricsError",
    "InputValidationError",
    "ColumnNotFoundError",
    "InvalidClassCodeError",
    "CRSError",
    "RasterError",
    "MissingYearRasterError",
    "EmptyIntersectionError",
    "ProjectionFailureError",
    "SiteTimeoutError",
    "AssemblyError",
    "OutputWriteError",
]
