import pytest
import geopandas as gpd
from shapely.geometry import box

from vsp.data.boundaries import (
    load_world_boundaries,
    select_any_boundaries,
    select_boundaries,
)
from vsp.exceptions import ConfigurationError


@pytest.fixture
def world() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {
            "sovereignt": ["France", "Spain", "Kenya"],
            "region_un": ["Europe", "Europe", "Africa"],
            "continent": ["Europe", "Europe", "Africa"],
        },
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(5, 5, 6, 6)],
        crs="EPSG:4326",
    )


def test_select_country(world):
    selected = select_boundaries(world, "country", ["France"])
    assert list(selected["sovereignt"]) == ["France"]


def test_select_continent(world):
    selected = select_boundaries(world, "continent", "Europe")
    assert len(selected) == 2


def test_unknown_name_lists_valid_ones(world):
    with pytest.raises(ConfigurationError, match="Kenya"):
        select_boundaries(world, "country", ["Frnace"])


def test_unknown_scope(world):
    with pytest.raises(ConfigurationError):
        select_boundaries(world, "province", ["France"])


def test_select_any(world):
    selected = select_any_boundaries(world, ["Spain", "Africa"])
    assert set(selected["sovereignt"]) == {"Spain", "Kenya"}

    with pytest.raises(ConfigurationError):
        select_any_boundaries(world, ["Mars"])


def test_load_world_from_file(world, tmp_path):
    path = tmp_path / "world.geojson"
    world.to_file(path, driver="GeoJSON")
    loaded = load_world_boundaries(path)
    assert len(loaded) == 3
    assert "sovereignt" in loaded.columns


def test_load_world_without_path():
    with pytest.raises(ConfigurationError):
        load_world_boundaries()


def test_load_world_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_world_boundaries(tmp_path / "missing.geojson")
