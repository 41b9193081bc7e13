import pytest
import numpy as np
import xarray as xr

from vsp.exceptions import DegenerateRasterError
from vsp.utils.array_utils import raster_min_max, rescale_raster


@pytest.fixture
def layer() -> xr.DataArray:
    data = np.arange(1, 101, dtype=float).reshape(10, 10)
    data[0, 0] = np.nan
    return xr.DataArray(data, dims=("y", "x"), name="bio1", attrs={"units": "mm"})


def test_rescale_bounds(layer):
    rescaled = rescale_raster(layer)
    assert float(rescaled.min()) == 0.0
    assert float(rescaled.max()) == 1.0
    assert np.isnan(rescaled.values[0, 0])
    assert rescaled.name == "bio1"
    assert rescaled.attrs == {"units": "mm"}


def test_rescale_idempotent(layer):
    once = rescale_raster(layer)
    twice = rescale_raster(once)
    np.testing.assert_allclose(once.values, twice.values)


def test_rescale_with_given_bounds(layer):
    rescaled = rescale_raster(layer, min_value=0, max_value=200)
    assert float(rescaled.max()) == pytest.approx(0.5)


def test_raster_min_max(layer):
    assert raster_min_max(layer) == (2.0, 100.0)


def test_constant_raster():
    constant = xr.DataArray(np.full((3, 3), 4.0), dims=("y", "x"))
    with pytest.raises(DegenerateRasterError):
        rescale_raster(constant)


def test_all_nan_raster():
    empty = xr.DataArray(np.full((3, 3), np.nan), dims=("y", "x"))
    with pytest.raises(DegenerateRasterError):
        raster_min_max(empty)
