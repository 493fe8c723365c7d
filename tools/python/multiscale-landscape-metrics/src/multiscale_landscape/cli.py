"""
Multi-Scale Landscape Metrics — CLI Entry Point
===============================================
Command-line interface built with Click.  Installed as the
``landscape-metrics`` command via ``pyproject.toml``.

Usage:
    landscape-metrics --config run.json --output output/landscape_metrics.csv
    landscape-metrics -c run.json -o trial.csv --sample 20 --seed 7 --workers 2

Run ``landscape-metrics --help`` for a full list of options.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from shared.python.exceptions import LandscapeMetricsError

from .pipeline import LandscapeMetricsTool


@click.command(
    name="landscape-metrics",
    help=(
        "Compute forest landscape metrics at five nested buffer scales around "
        "every sampling site and write one wide CSV table.\n\n"
        "Reads a JSON configuration file that names the sites table, the "
        "annual land-cover raster directory, the reclassification rules, "
        "scales, metrics and worker settings."
    ),
)
@click.option(
    "--config", "-c",
    "config_path",
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    help="Path to the JSON run configuration file.",
)
@click.option(
    "--output", "-o",
    "output_path",
    required=True,
    type=click.Path(file_okay=True, dir_okay=False, path_type=Path),
    help="Path for the output CSV table.",
)
@click.option(
    "--sample",
    "sample_size",
    type=click.IntRange(min=1),
    default=None,
    help="Process a random subset of this many sites (trial runs).",
)
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Random seed for --sample.  Overrides the config value.",
)
@click.option(
    "--workers",
    "max_workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of sites processed in parallel.  Overrides the config value.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def main(
    config_path: Path,
    output_path: Path,
    sample_size: int | None,
    seed: int | None,
    max_workers: int | None,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into LandscapeMetricsTool."""
    tool = LandscapeMetricsTool(
        config_path,
        output_path,
        sample_size=sample_size,
        seed=seed,
        max_workers=max_workers,
        verbose=verbose,
    )

    try:
        tool.run()
    except LandscapeMetricsError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    click.echo(f"\nMetrics written to: {output_path}")
    if tool.summary is not None:
        click.echo(f"  {tool.summary.summary()}")
        for landscape_id, scale, reason in tool.summary.skip_table():
            click.echo(f"  skipped {landscape_id} ({scale}): {reason}")


if __name__ == "__main__":
    main()
