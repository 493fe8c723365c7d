"""
Multi-Scale Landscape Metrics — Reclassifier
============================================
Maps raw land-cover codes to the binary target class (forest = 1,
everything else = 0) through a lookup table that is validated once, when
it is loaded.

Classes:
    ReclassificationTable   Validated, total code → {0, 1} mapping.

Usage::

    table = ReclassificationTable.from_csv(Path("data/forest_classes.csv"))
    binary = table.apply(scale_raster)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from shared.python.exceptions import InputValidationError, InvalidClassCodeError
from shared.python.validators import Validators

from .models import ScaleRaster

logger = logging.getLogger("multiscale_landscape.reclassify")

BINARY_CODES: frozenset[int] = frozenset({0, 1})

# Nodata sentinel of every binarized raster; never a valid target code.
BINARY_NODATA: int = 255

# MapBiomas (collection 8) legend codes.
MAPBIOMAS_LEGEND: tuple[int, ...] = (
    1, 3, 4, 5, 6, 49, 10, 11, 12, 32, 29, 50, 13, 14, 15, 18, 19, 39, 20,
    40, 62, 41, 36, 46, 47, 35, 48, 9, 21, 22, 23, 24, 30, 25, 26, 33, 31, 27,
)

# Forest formation, savanna formation, mangrove, floodable forest, wooded sandbank vegetation.
MAPBIOMAS_FOREST_CODES: tuple[int, ...] = (3, 4, 5, 6, 49)


@dataclass(frozen=True)
class ReclassificationTable:
    """A total mapping from raw class code to ``0`` or ``1``.

    Codes not listed in :attr:`rules` map to :attr:`default_target`.

    Attributes:
        rules: Explicit ``{source_code: target_code}`` pairs.
        default_target: Target for every code absent from *rules*.
    """

    rules: Mapping[int, int] = field(default_factory=dict)
    default_target: int = 0

    def __post_init__(self) -> None:
        if self.default_target not in BINARY_CODES:
            raise InvalidClassCodeError(
                self.default_target, "default target must be 0 or 1"
            )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_pairs(
        cls, pairs: Iterable[tuple[int, int]], *, default_target: int = 0
    ) -> ReclassificationTable:
        """Build a table from ``(source, target)`` pairs.

        Repeating a pair is harmless; mapping one source to two different
        targets is not.

        Raises:
            InvalidClassCodeError: On a conflicting duplicate or a target
                outside ``{0, 1}``.
        """
        rules: dict[int, int] = {}
        for source, target in pairs:
            source, target = int(source), int(target)
            if target not in BINARY_CODES:
                raise InvalidClassCodeError(source, f"target {target} is not 0 or 1")
            previous = rules.setdefault(source, target)
            if previous != target:
                raise InvalidClassCodeError(
                    source, f"mapped to both {previous} and {target}"
                )
        logger.debug(
            "Reclassification table: %d rule(s), %d code(s) → 1, default %d.",
            len(rules), sum(rules.values()), default_target,
        )
        return cls(rules=rules, default_target=default_target)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[int | str, int], *, default_target: int = 0
    ) -> ReclassificationTable:
        """Build a table from a ``{source: target}`` mapping (JSON keys may be strings)."""
        try:
            pairs = [(int(k), int(v)) for k, v in mapping.items()]
        except (TypeError, ValueError) as exc:
            raise InputValidationError(
                f"Reclassification rules must map integer codes to 0/1: {exc}"
            ) from exc
        return cls.from_pairs(pairs, default_target=default_target)

    @classmethod
    def from_csv(
        cls,
        path: Path,
        *,
        source_col: str = "source",
        target_col: str = "target",
        default_target: int = 0,
    ) -> ReclassificationTable:
        """Load a table from a CSV with one ``source,target`` pair per row.

        Raises:
            InputValidationError: If the file is missing or unreadable.
            ColumnNotFoundError: If a required column is absent.
            InvalidClassCodeError: If the table is inconsistent.
        """
        Validators.assert_file_exists(path)
        try:
            df = pd.read_csv(path)
        except (OSError, ValueError) as exc:
            raise InputValidationError(
                f"Failed to read reclassification table '{path}': {exc}"
            ) from exc
        Validators.assert_columns_exist(df, [source_col, target_col])

        codes = df[[source_col, target_col]].apply(pd.to_numeric, errors="coerce")
        bad = codes.isna().any(axis=1)
        if bad.any():
            raise InputValidationError(
                f"Reclassification table '{path}' has {int(bad.sum())} "
                "row(s) with non-integer codes."
            )
        pairs = codes.astype(int).itertuples(index=False, name=None)
        return cls.from_pairs(pairs, default_target=default_target)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def target_of(self, code: int) -> int:
        """Return the binary class for one raw *code*."""
        return self.rules.get(int(code), self.default_target)

    def codes_mapped_to(self, target: int) -> list[int]:
        return sorted(s for s, t in self.rules.items() if t == target)

    def apply(self, raster: ScaleRaster) -> ScaleRaster:
        """Return a binarized copy of *raster*.

        Valid cells become ``0`` or ``1``; nodata cells become
        :data:`BINARY_NODATA`.  The input is not modified.
        """
        data = raster.data
        valid = raster.valid_mask

        out = np.full(data.shape, self.default_target, dtype=np.uint8)
        opposite = 1 - self.default_target
        out[np.isin(data, self.codes_mapped_to(opposite))] = opposite
        out[~valid] = BINARY_NODATA

        return ScaleRaster(
            data=out, transform=raster.transform, crs=raster.crs, nodata=BINARY_NODATA
        )


DEFAULT_FOREST_TABLE = ReclassificationTable.from_pairs(
    [(code, 1) for code in MAPBIOMAS_FOREST_CODES]
)
