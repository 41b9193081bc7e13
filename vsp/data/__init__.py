"""
World boundary lookups for country, region and continent areas.
"""

from .boundaries import (
    BoundaryScope,
    load_world_boundaries,
    select_boundaries,
    select_any_boundaries,
)

__all__ = [
    'BoundaryScope',
    'load_world_boundaries',
    'select_boundaries',
    'select_any_boundaries',
]
