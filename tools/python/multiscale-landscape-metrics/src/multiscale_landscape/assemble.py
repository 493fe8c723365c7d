"""
Multi-Scale Landscape Metrics — Result Assembler
================================================
Turns long metric records (one row per landscape × scale × class × metric)
into the wide table: one row per (landscape, class), one column per
``{scale}_{metric}``.

Each scale is pivoted on its own and the per-scale tables are outer-joined
on ``(landscape_id, class)``, so a landscape missing at one scale keeps its
row with empty cells for that scale.  Rows and columns are sorted, so the
table does not depend on the order in which sites finished.
"""

from __future__ import annotations

import logging
from functools import reduce
from typing import Iterable, Sequence

import pandas as pd

from shared.python.exceptions import AssemblyError

from .models import MetricRecord, Scale

logger = logging.getLogger("multiscale_landscape.assemble")

KEY_COLUMNS: list[str] = ["landscape_id", "class"]


def metric_column(scale_label: str, metric: str) -> str:
    """Column name for one scale × metric pair (``"500m_edge_density"``)."""
    return f"{scale_label}_{metric}"


def expected_columns(scales: Sequence[Scale], metrics: Sequence[str]) -> list[str]:
    """Key columns followed by every scale × metric column, smallest scale first."""
    return KEY_COLUMNS + [
        metric_column(scale.label, metric)
        for scale in sorted(scales)
        for metric in metrics
    ]


def records_to_frame(records: Iterable[MetricRecord]) -> pd.DataFrame:
    """Long-form DataFrame with columns landscape_id, scale, class, metric, value."""
    frame = pd.DataFrame(
        [(r.landscape_id, r.scale, r.class_code, r.metric, r.value) for r in records],
        columns=["landscape_id", "scale", "class", "metric", "value"],
    )
    return frame.astype({"landscape_id": "int64", "class": "int64", "value": "float64"})


def _pivot_scale(long_df: pd.DataFrame, scale_label: str) -> pd.DataFrame:
    subset = long_df[long_df["scale"] == scale_label]
    if subset.empty:
        return pd.DataFrame(columns=KEY_COLUMNS).astype("int64")

    wide = subset.pivot(index=KEY_COLUMNS, columns="metric", values="value")
    wide.columns = [metric_column(scale_label, m) for m in wide.columns]
    return wide.reset_index()


def assemble(
    records: Iterable[MetricRecord],
    scales: Sequence[Scale],
    metrics: Sequence[str],
) -> pd.DataFrame:
    """Build the wide metric table.

    Args:
        records: Metric records from every site, in any order.
        scales: Scales that were requested; each gets its columns even if no
            site produced data for it.
        metrics: Metric names that were requested.

    Returns:
        DataFrame with ``landscape_id``, ``class`` and one float column per
        scale × metric, one row per (landscape, class), sorted by both keys.

    Raises:
        AssemblyError: If two records share landscape, scale, class and metric.
    """
    long_df = records_to_frame(records)

    dupes = long_df.duplicated(subset=["landscape_id", "scale", "class", "metric"])
    if dupes.any():
        first = long_df[dupes].iloc[0]
        raise AssemblyError(
            f"{int(dupes.sum())} duplicate metric record(s), e.g. landscape "
            f"{first['landscape_id']} {first['scale']} class {first['class']} "
            f"{first['metric']}."
        )

    per_scale = [_pivot_scale(long_df, scale.label) for scale in sorted(scales)]
    wide = reduce(
        lambda left, right: left.merge(right, on=KEY_COLUMNS, how="outer"),
        per_scale,
    )

    columns = expected_columns(scales, metrics)
    wide = (
        wide.reindex(columns=columns)
        .astype({"landscape_id": "int64", "class": "int64"})
        .sort_values(KEY_COLUMNS, kind="mergesort")
        .reset_index(drop=True)
    )
    value_cols = columns[len(KEY_COLUMNS):]
    wide[value_cols] = wide[value_cols].astype("float64")

    logger.info(
        "Assembled %d row(s) for %d landscape(s) × %d column(s).",
        len(wide), wide["landscape_id"].nunique(), len(value_cols),
    )
    return wide
