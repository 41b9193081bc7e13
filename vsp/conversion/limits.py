"""Geographical limitation of a virtual species distribution."""
import logging
from enum import StrEnum
from typing import Any, Optional

import geopandas as gpd
import numpy as np

from vsp.data.boundaries import BoundaryScope, select_boundaries
from vsp.exceptions import ConfigurationError, InvalidInputError
from vsp.raster.utils import area_mask, copy_spatial_metadata
from vsp.species import DistributionLimitation, VirtualSpecies

logger = logging.getLogger(__name__)


class GeographicalLimit(StrEnum):
    COUNTRY = "country"
    REGION = "region"
    CONTINENT = "continent"
    EXTENT = "extent"
    POLYGON = "polygon"


def resolve_limit_area(
    geographical_limit: GeographicalLimit,
    area: Any,
    world: Optional[gpd.GeoDataFrame] = None,
):
    """The area to rasterise for a limit: boundaries for named areas, the area itself otherwise."""
    if area is None:
        raise ConfigurationError(f"An area is required to limit the distribution by {geographical_limit}")
    if geographical_limit in (GeographicalLimit.COUNTRY, GeographicalLimit.REGION, GeographicalLimit.CONTINENT):
        return select_boundaries(world, BoundaryScope(geographical_limit.value), area)
    if geographical_limit == GeographicalLimit.EXTENT and isinstance(area, str):
        raise ConfigurationError("An extent must be given as (xmin, ymin, xmax, ymax)")
    if geographical_limit == GeographicalLimit.POLYGON and isinstance(area, (tuple, list)):
        raise ConfigurationError("A polygon limit needs a shapely geometry or a GeoDataFrame")
    return area


def limit_distribution(
    species: VirtualSpecies,
    geographical_limit: GeographicalLimit = GeographicalLimit.EXTENT,
    area: Any = None,
    world: Optional[gpd.GeoDataFrame] = None,
    plot: bool = False,
) -> VirtualSpecies:
    """
    Restrict the presences of a converted virtual species to an area.

    Presence cells outside the area become absences; NA cells stay NA. The
    limited raster is the occupied area used by sample_occurrences.

    Args:
        species: A VirtualSpecies converted with convert_to_pa.
        geographical_limit: "country", "region", "continent", "extent" or "polygon".
        area: Names for country, region and continent limits; (xmin, ymin, xmax, ymax)
            for an extent; a shapely geometry or GeoDataFrame for a polygon.
        world: World boundaries for named areas, see vsp.data.boundaries.
        plot: Plot the occupied area.
    """
    if not isinstance(species, VirtualSpecies) or species.pa_raster is None:
        raise InvalidInputError(
            "species must be a VirtualSpecies converted to presence/absence with convert_to_pa"
        )
    try:
        geographical_limit = GeographicalLimit(geographical_limit)
    except ValueError:
        raise ConfigurationError(
            f"geographical_limit must be one of {[g.value for g in GeographicalLimit]}, "
            f"got {geographical_limit!r}"
        )
    limit_area = resolve_limit_area(geographical_limit, area, world)

    pa_raster = species.pa_raster
    inside = area_mask(limit_area, pa_raster)
    occupied = pa_raster.where(inside | pa_raster.isnull(), 0.0)
    occupied = copy_spatial_metadata(occupied.rename("Occupied area"), pa_raster)

    n_before = int(np.nansum(pa_raster.values))
    n_after = int(np.nansum(occupied.values))
    logger.info(
        "Distribution limited by %s: %d of %d presence cells kept", geographical_limit, n_after, n_before
    )

    limited = species.with_limitation(
        DistributionLimitation(
            geographical_limit=geographical_limit.value,
            area=area,
            occupied_area=occupied,
        )
    )
    if plot:
        from vsp.viz.plots import plot_pa
        plot_pa(limited)
    return limited
