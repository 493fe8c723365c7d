"""
Tests — Equal-Area Projector
============================
Nearest-neighbour reprojection of categorical windows.
"""

from __future__ import annotations

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from multiscale_landscape.models import ScaleRaster
from multiscale_landscape.project import EqualAreaProjector
from shared.python.exceptions import ProjectionFailureError


def _window(data: np.ndarray, nodata: int = 0) -> ScaleRaster:
    return ScaleRaster(
        data=data.astype(np.uint8),
        transform=from_origin(8000.0, 12000.0, 200.0, 200.0),
        crs=CRS.from_epsg(5070),
        nodata=nodata,
    )


class TestEqualAreaProjector:
    def test_nearest_preserves_codes(self) -> None:
        rng = np.random.default_rng(3)
        data = rng.choice([3, 15, 33], size=(20, 20))
        out = EqualAreaProjector("EPSG:6933", 150.0).project(_window(data))
        codes = set(np.unique(out.data[out.valid_mask]).tolist())
        assert codes <= {3, 15, 33}
        assert out.crs == CRS.from_string("EPSG:6933")

    def test_output_resolution(self) -> None:
        out = EqualAreaProjector("EPSG:6933", 100.0).project(_window(np.full((10, 10), 3)))
        assert out.transform.a == pytest.approx(100.0)
        assert out.transform.e == pytest.approx(-100.0)

    def test_nodata_carried_through(self) -> None:
        data = np.full((10, 10), 3)
        data[:, :5] = 0
        out = EqualAreaProjector("EPSG:6933", 200.0).project(_window(data))
        assert out.nodata == 0
        assert 0 < out.valid_count < out.data.size

    def test_uniform_window_stays_uniform(self) -> None:
        out = EqualAreaProjector("EPSG:5070", 200.0).project(_window(np.full((12, 12), 15)))
        assert set(np.unique(out.data).tolist()) <= {0, 15}
        assert out.valid_count > 0

    def test_invalid_crs_raises(self) -> None:
        with pytest.raises(ProjectionFailureError):
            EqualAreaProjector("EPSG:999999")

    def test_all_nodata_window_raises(self) -> None:
        with pytest.raises(ProjectionFailureError, match="no valid cell"):
            EqualAreaProjector("EPSG:6933", 200.0).project(_window(np.zeros((5, 5))))

    def test_input_untouched(self) -> None:
        data = np.full((4, 4), 3)
        window = _window(data)
        EqualAreaProjector("EPSG:6933", 200.0).project(window)
        assert not window.released
        assert np.all(window.data == 3)
