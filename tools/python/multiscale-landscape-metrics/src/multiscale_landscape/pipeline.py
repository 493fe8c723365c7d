"""
Multi-Scale Landscape Metrics — Pipeline Orchestrator
=====================================================
Main tool class that wires the whole run together: load sites, load the
annual raster catalog, build (or read) the buffers, walk every site in
parallel, assemble the wide table and write it to CSV.  Inherits from
:class:`~shared.python.base_tool.GeoTool` and implements the Template
Method pattern.

Usage::

    from pathlib import Path
    from multiscale_landscape.pipeline import LandscapeMetricsTool

    tool = LandscapeMetricsTool(
        input_path=Path("config.json"),
        output_path=Path("output/landscape_metrics.csv"),
        verbose=True,
    )
    tool.run()
    print(tool.summary.summary())
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from shared.python.base_tool import GeoTool
from shared.python.exceptions import InputValidationError, OutputWriteError
from shared.python.validators import Validators

from .assemble import KEY_COLUMNS, assemble
from .batch import BatchRunner, BatchSummary
from .buffers import build_site_landscapes, cache_path, load_buffer_cache, write_buffer_cache
from .catalog import DEFAULT_YEAR_PATTERN, RasterCatalog
from .metrics import DEFAULT_METRICS, PatchMetricEngine
from .models import DEFAULT_RADII, SamplingSite, Scale, SiteLandscape
from .project import DEFAULT_EQUAL_AREA_CRS, DEFAULT_RESOLUTION_M, EqualAreaProjector
from .reclassify import DEFAULT_FOREST_TABLE, ReclassificationTable
from .sites import load_sites, sample_sites, sites_frame
from .walker import ScaleSkip, ScaleWalker

logger = logging.getLogger("multiscale_landscape.pipeline")

_PATH_KEYS = ("sites_path", "raster_dir", "buffer_cache_dir", "reclass_table")


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------


@dataclass
class PipelineConfig:
    """Full run configuration parsed from a JSON file.

    Relative paths are resolved against the configuration file's directory.

    Attributes:
        sites_path: CSV of sampling sites.
        raster_dir: Directory of annual land-cover rasters.
        raster_pattern: Regex whose first group captures the year in a
                        raster file name.
        raster_band: 1-based band holding the class codes.
        raster_nodata: Nodata value for rasters that declare none.
        buffer_cache_dir: Directory of per-scale buffer GeoPackages.  Read
                          when complete, otherwise written after buffering.
        reclass_table: CSV with ``source,target`` columns.
        reclass_rules: Inline ``{"code": target}`` mapping, used when no
                       table path is given.  Both empty → MapBiomas forest
                       codes.
        default_class: Target for codes not listed in the table.
        scales: Buffer radii in metres.
        metrics: Metric names computed at every scale.
        equal_area_crs: CRS the windowed rasters are projected into.
        target_resolution: Output cell size in metres (``None`` = automatic).
        buffer_crs: Metric CRS the circles are drawn in (default:
                    ``equal_area_crs``).
        site_crs: CRS of the site coordinates.
        lon_col: Sites column holding longitude / easting.
        lat_col: Sites column holding latitude / northing.
        connectivity: Patch neighbourhood, 4 or 8.
        count_boundary: Count edges along nodata and the grid border.
        max_workers: Thread pool size.
        site_timeout: Seconds allowed per site (``None`` = unlimited).
        sample_size: Process a random subset of this many sites.
        seed: Seed for ``sample_size``.
    """

    sites_path: Path | None = None
    raster_dir: Path | None = None
    raster_pattern: str = DEFAULT_YEAR_PATTERN
    raster_band: int = 1
    raster_nodata: int = 0
    buffer_cache_dir: Path | None = None
    reclass_table: Path | None = None
    reclass_rules: dict[str, int] = field(default_factory=dict)
    default_class: int = 0
    scales: list[int] = field(default_factory=lambda: list(DEFAULT_RADII))
    metrics: list[str] = field(default_factory=lambda: list(DEFAULT_METRICS))
    equal_area_crs: str = DEFAULT_EQUAL_AREA_CRS
    target_resolution: float | None = DEFAULT_RESOLUTION_M
    buffer_crs: str | None = None
    site_crs: str = "EPSG:4326"
    lon_col: str = "longitude"
    lat_col: str = "latitude"
    connectivity: int = 8
    count_boundary: bool = False
    max_workers: int = 4
    site_timeout: float | None = None
    sample_size: int | None = None
    seed: int = 0

    @property
    def scale_objects(self) -> list[Scale]:
        return [Scale(int(r)) for r in self.scales]


# ---------------------------------------------------------------------------
# Config parser
# ---------------------------------------------------------------------------


def load_config(config_path: Path) -> PipelineConfig:
    """Parse a JSON configuration file into a :class:`PipelineConfig`.

    Raises:
        InputValidationError: If the file cannot be read or parsed, or
            contains an unknown key.
    """
    try:
        raw: dict[str, Any] = json.loads(Path(config_path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise InputValidationError(
            f"Failed to read config file '{config_path}': {exc}"
        ) from exc
    if not isinstance(raw, dict):
        raise InputValidationError(f"Config file '{config_path}' must hold a JSON object.")

    known = set(PipelineConfig.__dataclass_fields__)
    unknown = sorted(set(raw) - known)
    if unknown:
        raise InputValidationError(
            f"Unknown config key(s): {', '.join(unknown)}."
        )

    base = Path(config_path).parent
    for key in _PATH_KEYS:
        if raw.get(key):
            path = Path(raw[key])
            raw[key] = path if path.is_absolute() else base / path

    return PipelineConfig(**raw)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class LandscapeMetricsTool(GeoTool):
    """Multi-scale landscape metrics for every sampling site.

    Args:
        input_path: Path to the JSON configuration file.
        output_path: Path of the CSV table to write.
        sample_size: Overrides ``sample_size`` from the config.
        seed: Overrides ``seed`` from the config.
        max_workers: Overrides ``max_workers`` from the config.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        sample_size: int | None = None,
        seed: int | None = None,
        max_workers: int | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(input_path=input_path, output_path=output_path, verbose=verbose)
        self._overrides = {
            "sample_size": sample_size,
            "seed": seed,
            "max_workers": max_workers,
        }
        self.config: PipelineConfig | None = None
        self.table_rules: ReclassificationTable | None = None
        self._table: pd.DataFrame | None = None
        self._summary: BatchSummary | None = None

    # ------------------------------------------------------------------
    # GeoTool interface
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Validate the config file and everything it points at.

        The reclassification table is loaded here, so an inconsistent
        table stops the run before any site is processed.

        Raises:
            InputValidationError: On missing files or invalid settings.
            InvalidClassCodeError: If the reclassification table is
                inconsistent.
            CRSError: If a CRS string cannot be parsed.
            OutputWriteError: If the output directory cannot be created.
        """
        Validators.assert_file_exists(self.input_path)
        config = load_config(self.input_path)
        for key, value in self._overrides.items():
            if value is not None:
                setattr(config, key, value)

        if config.sites_path is None:
            raise InputValidationError("Config key 'sites_path' is required.")
        if config.raster_dir is None:
            raise InputValidationError("Config key 'raster_dir' is required.")
        Validators.assert_file_exists(config.sites_path)
        Validators.assert_directory_exists(config.raster_dir)

        Validators.assert_crs_projected(config.equal_area_crs)
        if config.buffer_crs is not None:
            Validators.assert_crs_projected(config.buffer_crs)
        Validators.assert_crs_valid(config.site_crs)

        if not config.scales:
            raise InputValidationError("Config key 'scales' must list at least one radius.")
        for radius in config.scales:
            Validators.assert_positive(radius, "scales")
        if len(set(config.scales)) != len(config.scales):
            raise InputValidationError(f"Duplicate radius in 'scales': {config.scales}.")

        Validators.assert_positive(config.target_resolution, "target_resolution", allow_none=True)
        Validators.assert_positive(config.site_timeout, "site_timeout", allow_none=True)
        Validators.assert_positive(config.sample_size, "sample_size", allow_none=True)
        if config.max_workers < 1:
            raise InputValidationError(
                f"'max_workers' must be >= 1, got {config.max_workers}."
            )
        if config.connectivity not in (4, 8):
            raise InputValidationError(
                f"'connectivity' must be 4 or 8, got {config.connectivity}."
            )

        PatchMetricEngine().validate_metrics(config.metrics)
        self.table_rules = self._load_reclass_table(config)

        Validators.assert_output_dir_writable(self.output_path)
        self.config = config
        logger.info(
            "Configuration validated — %d scale(s), %d metric(s).",
            len(config.scales), len(config.metrics),
        )

    def process(self) -> None:
        """Load sites and rasters, walk every site, assemble and write the table."""
        assert self.config is not None, "Call validate_inputs() first."
        config = self.config

        all_sites = load_sites(config.sites_path, lon_col=config.lon_col, lat_col=config.lat_col)
        sites = sample_sites(all_sites, config.sample_size, seed=config.seed)

        with RasterCatalog.from_directory(
            config.raster_dir,
            pattern=config.raster_pattern,
            band=config.raster_band,
            fill_nodata=config.raster_nodata,
        ) as catalog:
            landscapes = self._landscapes(all_sites, sites, catalog)
            runner = BatchRunner(
                self._build_walker(),
                catalog,
                max_workers=config.max_workers,
                site_timeout=config.site_timeout,
            )
            result = runner.run(landscapes)

        summary = result.summary
        walked = {land.landscape_id for land in landscapes}
        for site in sites:
            if site.landscape_id not in walked:
                summary.skipped_sites.append(
                    ScaleSkip(site.landscape_id, None, "no buffer polygons")
                )
        summary.sites_total = len(sites)

        table = assemble(result.records, config.scale_objects, config.metrics)
        self._table = self._with_site_attributes(table, sites)
        self._summary = summary
        self._write_csv(self._table)

        logger.info(summary.summary())
        for landscape_id, scale, reason in summary.skip_table():
            logger.debug("  skipped %s / %s: %s", landscape_id, scale, reason)

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load_reclass_table(config: PipelineConfig) -> ReclassificationTable:
        if config.reclass_table is not None:
            return ReclassificationTable.from_csv(
                config.reclass_table, default_target=config.default_class
            )
        if config.reclass_rules:
            return ReclassificationTable.from_mapping(
                config.reclass_rules, default_target=config.default_class
            )
        if config.default_class != DEFAULT_FOREST_TABLE.default_target:
            return ReclassificationTable.from_mapping(
                DEFAULT_FOREST_TABLE.rules, default_target=config.default_class
            )
        return DEFAULT_FOREST_TABLE

    def _build_walker(self) -> ScaleWalker:
        assert self.config is not None and self.table_rules is not None
        config = self.config
        return ScaleWalker(
            projector=EqualAreaProjector(config.equal_area_crs, config.target_resolution),
            table=self.table_rules,
            engine=PatchMetricEngine(config.connectivity, count_boundary=config.count_boundary),
            metrics=config.metrics,
            scales=config.scale_objects,
        )

    def _landscapes(
        self,
        all_sites: list[SamplingSite],
        sites: list[SamplingSite],
        catalog: RasterCatalog,
    ) -> list[SiteLandscape]:
        """Buffers for the sampled *sites*, read from the cache where it holds them.

        The cache covers *all_sites*.  Sites it does not hold, or whose
        coordinates changed since it was written, get fresh buffers and the
        cache is rewritten.
        """
        assert self.config is not None
        config = self.config
        scales = config.scale_objects
        cache_dir = config.buffer_cache_dir
        if cache_dir is None:
            return self._build_buffers(sites, catalog)

        cached: list[SiteLandscape] = []
        if all(cache_path(cache_dir, s).exists() for s in scales):
            cached = load_buffer_cache(cache_dir, scales, catalog.crs, all_sites)

        covered = {land.landscape_id for land in cached}
        missing = [s for s in all_sites if s.landscape_id not in covered]
        landscapes = cached
        if missing:
            if cached:
                logger.info("%d site(s) not in the buffer cache; building them.", len(missing))
            landscapes = sorted(
                cached + self._build_buffers(missing, catalog),
                key=lambda land: land.landscape_id,
            )
            write_buffer_cache(landscapes, cache_dir, catalog.crs, all_sites)

        wanted = {s.landscape_id for s in sites}
        return [land for land in landscapes if land.landscape_id in wanted]

    def _build_buffers(
        self, sites: list[SamplingSite], catalog: RasterCatalog
    ) -> list[SiteLandscape]:
        assert self.config is not None
        return build_site_landscapes(
            sites,
            self.config.scale_objects,
            catalog.crs,
            site_crs=self.config.site_crs,
            buffer_crs=self.config.buffer_crs or self.config.equal_area_crs,
        )

    @staticmethod
    def _with_site_attributes(table: pd.DataFrame, sites: list[SamplingSite]) -> pd.DataFrame:
        """Append study/site ids and year after the metric columns."""
        attrs = sites_frame(sites)
        merged = table.merge(attrs, on="landscape_id", how="left")
        site_cols = [c for c in attrs.columns if c != "landscape_id"]
        value_cols = [c for c in table.columns if c not in KEY_COLUMNS]
        return merged[[*KEY_COLUMNS, *value_cols, *site_cols]]

    def _write_csv(self, table: pd.DataFrame) -> None:
        try:
            table.to_csv(self.output_path, index=False)
        except OSError as exc:
            raise OutputWriteError(str(self.output_path), str(exc)) from exc
        logger.info("Wrote %d row(s) to %s.", len(table), self.output_path)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def table(self) -> pd.DataFrame | None:
        """The wide metric table from the last :meth:`run`, or ``None``."""
        return self._table

    @property
    def summary(self) -> BatchSummary | None:
        """The :class:`BatchSummary` from the last :meth:`run`, or ``None``."""
        return self._summary
