"""
Multi-Scale Landscape Metrics
=============================
Computes forest landscape metrics inside five concentric buffers
(8 km, 4 km, 2 km, 1 km, 500 m) around every sampling site, reusing each
scale's raster window to extract the next-smaller one, and assembles the
results into one wide table.

Public API::

    from multiscale_landscape import LandscapeMetricsTool, ScaleWalker, assemble
"""

from .assemble import assemble
from .batch import BatchRunner, BatchSummary
from .catalog import RasterCatalog, RasterMap
from .metrics import DEFAULT_METRICS, PatchMetricEngine
from .models import DEFAULT_SCALES, MetricRecord, SamplingSite, Scale, SiteLandscape
from .pipeline import LandscapeMetricsTool, PipelineConfig, load_config
from .project import EqualAreaProjector
from .reclassify import DEFAULT_FOREST_TABLE, ReclassificationTable
from .walker import ScaleWalker

__all__ = [
    "LandscapeMetricsTool",
    "PipelineConfig",
    "load_config",
    "RasterCatalog",
    "RasterMap",
    "ScaleWalker",
    "BatchRunner",
    "BatchSummary",
    "EqualAreaProjector",
    "ReclassificationTable",
    "DEFAULT_FOREST_TABLE",
    "PatchMetricEngine",
    "DEFAULT_METRICS",
    "Scale",
    "DEFAULT_SCALES",
    "SamplingSite",
    "SiteLandscape",
    "MetricRecord",
    "assemble",
]
__version__ = "1.0.0"
