import logging
from enum import StrEnum
from pathlib import Path
from typing import Union, Optional, Sequence

import geopandas as gpd

from vsp.exceptions import ConfigurationError
from vsp.utils.io import load_boundary, load_config_section

logger = logging.getLogger(__name__)


class BoundaryScope(StrEnum):
    COUNTRY = "country"
    REGION = "region"
    CONTINENT = "continent"


def _scope_columns() -> dict:
    config = load_config_section("boundaries")
    return {
        BoundaryScope.COUNTRY: config.get("country_column", "sovereignt"),
        BoundaryScope.REGION: config.get("region_column", "region_un"),
        BoundaryScope.CONTINENT: config.get("continent_column", "continent"),
    }


def load_world_boundaries(world_filepath: Union[str, Path, None] = None) -> gpd.GeoDataFrame:
    """
    Loads the world (admin-0) boundaries used for country, region and continent lookups.

    The file is expected to follow the Natural Earth layout, with one column per
    scope (sovereignt, region_un, continent by default; see the boundaries
    section of the configuration).
    """
    if world_filepath is None:
        world_filepath = load_config_section("boundaries").get("world_path")
    if world_filepath is None:
        raise ConfigurationError(
            "No world boundaries available. Pass a GeoDataFrame to `world` or set "
            "boundaries.world_path in the configuration."
        )
    if not Path(world_filepath).exists():
        raise ConfigurationError(f"World boundaries file not found at: {world_filepath}")
    logger.info("Loading world boundaries from %s", world_filepath)
    return load_boundary(world_filepath)


def _as_names(names: Union[str, Sequence[str]]) -> list:
    if isinstance(names, str):
        return [names]
    names = list(names)
    if not names or not all(isinstance(name, str) for name in names):
        raise ConfigurationError(f"Area names must be a non-empty list of strings, got {names}")
    return names


def select_boundaries(
    world: Optional[gpd.GeoDataFrame],
    scope: Union[BoundaryScope, str],
    names: Union[str, Sequence[str]],
) -> gpd.GeoDataFrame:
    """
    Select the boundaries of the named countries, regions or continents.

    Raises:
        ConfigurationError: If the scope is unknown or a name is not found.
    """
    try:
        scope = BoundaryScope(scope)
    except ValueError:
        raise ConfigurationError(
            f"Unknown boundary scope '{scope}', choose one of {[s.value for s in BoundaryScope]}"
        )
    if world is None:
        world = load_world_boundaries()
    names = _as_names(names)
    column = _scope_columns()[scope]
    if column not in world.columns:
        raise ConfigurationError(f"World boundaries have no '{column}' column for {scope} lookups")

    valid_names = set(world[column].dropna().unique())
    unknown = [name for name in names if name not in valid_names]
    if unknown:
        raise ConfigurationError(
            f"{scope} name(s) {unknown} must be correctly spelled, according to one of: "
            f"{', '.join(sorted(valid_names))}"
        )
    return world[world[column].isin(names)].copy()


def select_any_boundaries(
    world: Optional[gpd.GeoDataFrame],
    names: Union[str, Sequence[str]],
) -> gpd.GeoDataFrame:
    """Select boundaries whose country, region or continent matches any of the names."""
    if world is None:
        world = load_world_boundaries()
    names = _as_names(names)
    columns = [column for column in _scope_columns().values() if column in world.columns]
    if not columns:
        raise ConfigurationError("World boundaries have none of the country/region/continent columns")

    matches = world[columns].isin(names).any(axis=1)
    found = set()
    for column in columns:
        found.update(world.loc[world[column].isin(names), column].unique())
    unknown = [name for name in names if name not in found]
    if unknown:
        raise ConfigurationError(
            f"Area name(s) {unknown} are not a known country, region or continent"
        )
    return world[matches].copy()
