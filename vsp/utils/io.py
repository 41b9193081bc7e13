import os
from pathlib import Path
from typing import Union, Dict, Any, Optional

import geopandas as gpd
import yaml

from vsp.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
CONFIG_PATH = Path(os.environ.get("VSP_CONFIG", DEFAULT_CONFIG_PATH))


def load_config(config_path: Union[str, Path, None] = None) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    config_path = Path(config_path) if config_path is not None else CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")
    with open(config_path, "r") as f:
        config = yaml.safe_load(f)
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration file {config_path} does not contain a mapping")
    return config


def load_config_section(section: str, config_path: Union[str, Path, None] = None) -> Dict[str, Any]:
    """Returns one section of the configuration, empty if it is missing."""
    return load_config(config_path).get(section) or {}


def load_boundary(
    filepath: Union[str, Path],
    buffer_distance: Union[float, int] = 0,
    target_crs: Optional[Union[str, int, dict]] = None,
) -> gpd.GeoDataFrame:
    """
    Loads a boundary from a file, optionally reprojects and applies a buffer.

    Parameters:
    filepath (str): The path to the file containing the boundary data.
    buffer_distance (float): The buffer distance to apply to the boundary geometry (in units of target_crs).
                             If 0, no buffer is applied.
    target_crs (str): The coordinate reference system to reproject the boundary to. None keeps the file CRS.

    Returns:
    GeoDataFrame: A GeoDataFrame containing the boundary.
    """
    boundary = gpd.read_file(filepath)
    if target_crs is not None and boundary.crs != target_crs:
        boundary = boundary.to_crs(target_crs)
    if buffer_distance > 0:
        boundary["geometry"] = boundary.buffer(buffer_distance)
    return boundary
