import logging
from typing import Union, Tuple, Sequence, List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import rioxarray as rxr  # Required for .rio accessor
import xarray as xr
from rasterio.coords import BoundingBox
from rasterio.features import geometry_mask
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from vsp.exceptions import ConfigurationError, InvalidInputError

logger = logging.getLogger(__name__)

AreaLike = Union[
    gpd.GeoDataFrame,
    gpd.GeoSeries,
    BaseGeometry,
    BoundingBox,
    Tuple[float, float, float, float],
]


def check_layer(layer: xr.DataArray, name: str = "raster") -> xr.DataArray:
    """Validate that a layer is a 2D (y, x) DataArray and return it squeezed."""
    if not isinstance(layer, xr.DataArray):
        raise InvalidInputError(f"{name} must be an xarray.DataArray, got {type(layer)}")
    if "band" in layer.dims and layer.sizes["band"] == 1:
        layer = layer.squeeze("band", drop=True)
    if set(layer.dims) != {"y", "x"}:
        raise InvalidInputError(f"{name} must have dims ('y', 'x'), got {layer.dims}")
    return layer.transpose("y", "x")


def check_stack(raster_stack: xr.Dataset) -> xr.Dataset:
    """Validate an environmental stack: a Dataset of co-registered (y, x) layers."""
    if isinstance(raster_stack, xr.DataArray):
        raise InvalidInputError(
            "raster_stack must be an xarray.Dataset with one variable per layer; "
            "use DataArray.to_dataset(name=...) for a single layer"
        )
    if not isinstance(raster_stack, xr.Dataset):
        raise InvalidInputError(f"raster_stack must be an xarray.Dataset, got {type(raster_stack)}")
    if len(raster_stack.data_vars) == 0:
        raise InvalidInputError("raster_stack has no layers")
    layers = {name: check_layer(raster_stack[name], name=str(name)) for name in raster_stack.data_vars}
    return xr.Dataset(layers, attrs=raster_stack.attrs)


def stack_to_frame(raster_stack: xr.Dataset) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Flatten a stack into one row per cell with a valid value in every layer.

    Returns:
        The cell DataFrame (one column per layer) and the 2D boolean mask of
        the cells it contains, in row-major order.
    """
    names = list(raster_stack.data_vars)
    values = np.stack([np.asarray(raster_stack[name].values, dtype=float) for name in names], axis=-1)
    valid_mask = ~np.isnan(values).any(axis=-1)
    frame = pd.DataFrame(values[valid_mask], columns=names)
    return frame, valid_mask


def frame_to_raster(
    values: np.ndarray,
    valid_mask: np.ndarray,
    template: xr.DataArray,
    name: str,
) -> xr.DataArray:
    """Scatter per-cell values back onto the grid of a template layer."""
    grid = np.full(valid_mask.shape, np.nan, dtype=float)
    grid[valid_mask] = values
    return xr.DataArray(
        grid,
        coords={"y": template.y, "x": template.x},
        dims=("y", "x"),
        name=name,
    ).pipe(copy_spatial_metadata, template)


def copy_spatial_metadata(array: xr.DataArray, template: xr.DataArray) -> xr.DataArray:
    """Carry the CRS of the template onto a derived layer."""
    if template.rio.crs is not None:
        array = array.rio.write_crs(template.rio.crs)
    return array


def cell_coordinates(layer: xr.DataArray) -> Tuple[np.ndarray, np.ndarray]:
    """Flattened x and y cell-centre coordinates in row-major order."""
    coords_x, coords_y = np.meshgrid(layer.x.values, layer.y.values)
    return coords_x.flatten(), coords_y.flatten()


def extract_values(layer: xr.DataArray, x: Sequence[float], y: Sequence[float]) -> np.ndarray:
    """Values of a layer at cell-centre coordinates."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size == 0:
        return np.array([], dtype=float)
    points = xr.Dataset({"x": ("points", x), "y": ("points", y)})
    values = layer.sel(x=points.x, y=points.y, method="nearest")
    return np.asarray(values.values, dtype=float)


def area_to_geometries(area: AreaLike, crs=None) -> List[BaseGeometry]:
    """
    Turn an extent, a shapely geometry or a GeoDataFrame/GeoSeries into a list of
    geometries in the raster CRS.
    """
    if isinstance(area, (gpd.GeoDataFrame, gpd.GeoSeries)):
        if area.empty:
            raise ConfigurationError("The area GeoDataFrame is empty")
        if crs is not None and area.crs is not None and area.crs != crs:
            logger.info("Re-projecting area from %s to %s", area.crs, crs)
            area = area.to_crs(crs)
        return [geom for geom in area.geometry if geom is not None and not geom.is_empty]
    if isinstance(area, BaseGeometry):
        return [area]
    if isinstance(area, BoundingBox):
        return [box(area.left, area.bottom, area.right, area.top)]
    if isinstance(area, (tuple, list, np.ndarray)) and len(area) == 4:
        xmin, ymin, xmax, ymax = [float(v) for v in area]
        if xmin >= xmax or ymin >= ymax:
            raise ConfigurationError(f"Extent must be (xmin, ymin, xmax, ymax), got {tuple(area)}")
        return [box(xmin, ymin, xmax, ymax)]
    raise ConfigurationError(
        "An area must be an extent (xmin, ymin, xmax, ymax), a shapely geometry "
        f"or a GeoDataFrame, got {type(area)}"
    )


def rasterise_geometries(
    geometries: List[BaseGeometry],
    template: xr.DataArray,
    all_touched: bool = False,
) -> xr.DataArray:
    """Boolean layer on the template grid, True where a cell centre falls inside the geometries."""
    if not geometries:
        inside = np.zeros(template.shape, dtype=bool)
    else:
        inside = geometry_mask(
            geometries,
            out_shape=template.shape,
            transform=template.rio.transform(recalc=True),
            invert=True,
            all_touched=all_touched,
        )
    return xr.DataArray(
        inside,
        coords={"y": template.y, "x": template.x},
        dims=("y", "x"),
        name="area_mask",
    )


def area_mask(area: AreaLike, template: xr.DataArray) -> xr.DataArray:
    """Rasterise any supported area onto the template grid."""
    geometries = area_to_geometries(area, crs=template.rio.crs)
    mask = rasterise_geometries(geometries, template)
    logger.debug("Area covers %d of %d cells", int(mask.sum()), mask.size)
    return mask
