"""
Multi-Scale Landscape Metrics — Sampling Sites
==============================================
Loads the site table, collapses duplicate sites, and assigns each site the
landscape identifier every scale's buffer polygon will carry.

Identifiers are assigned here, once per site, in sorted
``(study_id, site_id)`` order, so they never depend on the order in which
per-scale buffer collections happen to be built.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

from .models import SamplingSite

logger = logging.getLogger("multiscale_landscape.sites")

ID_COLUMNS: list[str] = ["study_id", "site_id"]
YEAR_COLUMN = "year_median"


def load_sites(
    path: Path,
    *,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> list[SamplingSite]:
    """Read unique sampling sites from a CSV file.

    Rows with a missing/non-numeric coordinate or year are dropped with a
    warning.  Repeated ``(study_id, site_id)`` pairs (e.g. one row per survey
    visit) collapse to their first occurrence.

    Args:
        path: CSV with ``study_id``, ``site_id``, ``year_median`` and the
            two coordinate columns.
        lon_col: Column holding longitude / easting.
        lat_col: Column holding latitude / northing.

    Returns:
        Sites ordered by landscape id.

    Raises:
        InputValidationError: If the file cannot be read or holds no site.
        ColumnNotFoundError: If a required column is missing.
    """
    Validators.assert_file_exists(path)
    Validators.assert_supported_extension(path, [".csv"])
    try:
        df = pd.read_csv(path, dtype={"study_id": str, "site_id": str})
    except (OSError, ValueError) as exc:
        raise InputValidationError(f"Failed to read sites file '{path}': {exc}") from exc

    return sites_from_frame(df, lon_col=lon_col, lat_col=lat_col)


def sites_from_frame(
    df: pd.DataFrame,
    *,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> list[SamplingSite]:
    """Build :class:`SamplingSite` records from an in-memory table."""
    Validators.assert_columns_exist(df, ID_COLUMNS + [YEAR_COLUMN, lon_col, lat_col])

    df = df.copy()
    for col in (YEAR_COLUMN, lon_col, lat_col):
        df[col] = pd.to_numeric(df[col], errors="coerce")

    valid = df[[YEAR_COLUMN, lon_col, lat_col]].notna().all(axis=1) & df[ID_COLUMNS].notna().all(axis=1)
    if not valid.all():
        logger.warning(
            "Dropped %d site row(s) with missing ids, coordinates or year.",
            int((~valid).sum()),
        )
    df = df[valid].copy()

    df[ID_COLUMNS] = df[ID_COLUMNS].astype(str)
    before = len(df)
    df = df.drop_duplicates(subset=ID_COLUMNS, keep="first")
    if len(df) < before:
        logger.info("Collapsed %d repeated site row(s).", before - len(df))

    if df.empty:
        raise InputValidationError("The sites table contains no usable site.")

    df = df.sort_values(ID_COLUMNS, kind="mergesort").reset_index(drop=True)
    sites = [
        SamplingSite(
            landscape_id=int(i),
            study_id=row["study_id"],
            site_id=row["site_id"],
            year_median=int(round(row[YEAR_COLUMN])),
            x=float(row[lon_col]),
            y=float(row[lat_col]),
        )
        for i, row in df.iterrows()
    ]
    logger.info("Loaded %d unique site(s).", len(sites))
    return sites


def sample_sites(
    sites: list[SamplingSite], n: int | None, *, seed: int = 0
) -> list[SamplingSite]:
    """Return a reproducible random subset of *sites* for trial runs.

    ``None`` or ``n >= len(sites)`` returns every site.  The subset keeps
    the sites' landscape ids and is ordered by them.
    """
    if n is None or n >= len(sites):
        return list(sites)
    if n < 1:
        raise InputValidationError(f"Sample size must be >= 1, got {n}.")

    rng = np.random.default_rng(seed)
    picked = rng.choice(len(sites), size=n, replace=False)
    subset = [sites[i] for i in sorted(picked)]
    logger.info("Sampled %d of %d site(s) (seed=%d).", n, len(sites), seed)
    return subset


def sites_frame(sites: list[SamplingSite]) -> pd.DataFrame:
    """Site attributes keyed by landscape id, for joining onto the metric table."""
    return pd.DataFrame(
        {
            "landscape_id": [s.landscape_id for s in sites],
            "study_id": [s.study_id for s in sites],
            "site_id": [s.site_id for s in sites],
            YEAR_COLUMN: [s.year_median for s in sites],
        }
    ).astype({"landscape_id": "int64"})
