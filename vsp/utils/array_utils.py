from typing import Tuple

import numpy as np
import xarray as xr

from vsp.exceptions import DegenerateRasterError


def raster_min_max(array: xr.DataArray) -> Tuple[float, float]:
    """Global minimum and maximum of an array, ignoring NaNs."""
    values = np.asarray(array.values, dtype=float)
    if values.size == 0 or np.all(np.isnan(values)):
        raise DegenerateRasterError(f"Raster '{array.name}' contains no valid values")
    return float(np.nanmin(values)), float(np.nanmax(values))


def rescale_raster(
        array: xr.DataArray,
        min_value: float = None,
        max_value: float = None,
) -> xr.DataArray:
    """
    Min-max normalise an array to [0, 1].

    P.rescaled = (P - min(P)) / (max(P) - min(P))

    Args:
        array (xr.DataArray): The input array. NaNs are kept.
        min_value (float): Minimum to rescale with. Defaults to the array minimum.
        max_value (float): Maximum to rescale with. Defaults to the array maximum.
    Returns:
        xr.DataArray: The rescaled array.
    Raises:
        DegenerateRasterError: If the array is constant, so max == min.
    """
    if min_value is None or max_value is None:
        observed_min, observed_max = raster_min_max(array)
        min_value = observed_min if min_value is None else min_value
        max_value = observed_max if max_value is None else max_value
    if not max_value > min_value:
        raise DegenerateRasterError(
            f"Cannot rescale raster '{array.name}': it is constant "
            f"(min = max = {min_value})"
        )
    rescaled = (array - min_value) / (max_value - min_value)
    rescaled.attrs = dict(array.attrs)
    return rescaled.rename(array.name)
