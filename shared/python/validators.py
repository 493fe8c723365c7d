"""
Multi-Scale Landscape Metrics — Shared Input Validators
=======================================================
Static precondition checks used by ``validate_inputs`` and by the loaders
for sites, rasters and reclassification tables.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans, so callers
stay short::

    Validators.assert_file_exists(config.sites_path)
    Validators.assert_crs_valid(config.equal_area_crs)
    Validators.assert_choices(config.metrics, engine.available_metrics, "metric")
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

# Lazy imports for heavy libraries so modules that do not use them avoid
# the import cost at startup.
#   pyproj → assert_crs_valid

from shared.python.exceptions import (
    ColumnNotFoundError,
    CRSError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks.

    All methods are ``@staticmethod`` — this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_directory_exists(path: Path) -> None:
        """Assert that *path* is an existing directory.

        Raises:
            InputValidationError: If *path* does not exist or is not a
                directory.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input directory not found: '{path}'."
            )
        if not path.is_dir():
            raise InputValidationError(
                f"Expected a directory but got a file: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Assert that the parent directory of *output_path* is writable.

        Creates the parent directory (and any missing parents) if it does
        not yet exist.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Allowed extensions, each starting with a dot
                        (e.g. ``[".csv"]``).

        Raises:
            InputValidationError: If the file extension is not in
                *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS / projection checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed as a valid CRS.

        Uses :mod:`pyproj`.  Accepts EPSG/ESRI codes, PROJ strings, and
        WKT strings.

        Raises:
            CRSError: If *crs_string* is not recognised by pyproj.
        """
        try:
            from pyproj import CRS  # noqa: PLC0415

            CRS.from_user_input(crs_string)
        except Exception as exc:
            raise CRSError(str(crs_string)) from exc

    @staticmethod
    def assert_crs_projected(crs_string: str) -> None:
        """Assert that *crs_string* is a projected CRS with metre units.

        Buffer radii and metric areas are expressed in metres, so a
        geographic CRS cannot be used for either.

        Raises:
            CRSError: If the CRS cannot be parsed.
            InputValidationError: If the CRS is geographic or not in metres.
        """
        Validators.assert_crs_valid(crs_string)
        from pyproj import CRS  # noqa: PLC0415

        crs = CRS.from_user_input(crs_string)
        units = {axis.unit_name for axis in crs.axis_info}
        if not crs.is_projected or not units <= {"metre", "meter"}:
            raise InputValidationError(
                f"CRS '{crs_string}' must be projected with metre units "
                f"(got units: {', '.join(sorted(units)) or 'unknown'})."
            )

    # ------------------------------------------------------------------
    # Tabular data checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_columns_exist(
        df: object,  # pandas DataFrame
        required_columns: Sequence[str],
    ) -> None:
        """Assert that all *required_columns* are present in *df*.

        Raises:
            ColumnNotFoundError: On the first missing column found.
        """
        available = list(df.columns)  # type: ignore[union-attr]
        for col in required_columns:
            if col not in available:
                raise ColumnNotFoundError(col, available)

    # ------------------------------------------------------------------
    # Configuration checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_choices(values: Iterable[str], allowed: Iterable[str], label: str) -> None:
        """Assert that every entry of *values* is one of *allowed*.

        Args:
            values: Requested names (e.g. metric identifiers).
            allowed: Names the component supports.
            label: Noun used in the error message (``"metric"``).

        Raises:
            InputValidationError: On the first unsupported value, or when
                *values* is empty.
        """
        allowed_set = set(allowed)
        values = list(values)
        if not values:
            raise InputValidationError(f"At least one {label} must be requested.")
        for value in values:
            if value not in allowed_set:
                raise InputValidationError(
                    f"Unsupported {label} '{value}'. "
                    f"Choose from: {', '.join(sorted(allowed_set))}"
                )

    @staticmethod
    def assert_positive(value: float | None, name: str, *, allow_none: bool = False) -> None:
        """Assert that a numeric setting is strictly positive.

        Raises:
            InputValidationError: If *value* is ``<= 0`` (or ``None`` when
                *allow_none* is ``False``).
        """
        if value is None:
            if allow_none:
                return
            raise InputValidationError(f"'{name}' is required.")
        if value <= 0:
            raise InputValidationError(f"'{name}' must be > 0, got {value}.")
