"""
Multi-Scale Landscape Metrics — Shared Base Tool
================================================
``GeoTool`` fixes the order of a batch run: check every input first, then
do the work, then log how long it took.  A tool supplies the first two
steps::

    class LandscapeBatch(GeoTool):
        def validate_inputs(self) -> None: ...
        def process(self) -> None: ...

    LandscapeBatch(Path("config.json"), Path("out.csv")).run()
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root logger: every module creates a child logger such as
#   logging.getLogger("multiscale_landscape.walker").
# ---------------------------------------------------------------------------
logger = logging.getLogger("multiscale_landscape")


class GeoTool(ABC):
    """One batch job reading *input_path* and writing *output_path*.

    Attributes:
        input_path: The job's main input; the landscape tool reads its
            JSON configuration from here.
        output_path: Where the result table goes.
        verbose: Log at DEBUG instead of INFO.
        elapsed: Wall time of the last :meth:`run` in seconds, ``None``
            before the first run.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
    ) -> None:
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose
        self.elapsed: float | None = None

        self._configure_logging()

    # ------------------------------------------------------------------
    # Steps each tool provides
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Raise an ``InputValidationError`` before any site is touched."""

    @abstractmethod
    def process(self) -> None:
        """Do the work; errors propagate out of :meth:`run`."""

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Validate, process, then log the elapsed time."""
        logger.info("Starting %s", self.__class__.__name__)
        start = time.perf_counter()

        self.validate_inputs()
        self.process()

        self.elapsed = time.perf_counter() - start
        self._report_success(self.elapsed)

    # ------------------------------------------------------------------
    # Overridable helpers
    # ------------------------------------------------------------------

    def _report_success(self, elapsed: float) -> None:
        logger.info(
            "%s completed in %.2fs → %s",
            self.__class__.__name__,
            elapsed,
            self.output_path,
        )

    def _configure_logging(self) -> None:
        # One console handler on the project root logger, however many tools are built.
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"input_path={self.input_path!r}, "
            f"output_path={self.output_path!r})"
        )
