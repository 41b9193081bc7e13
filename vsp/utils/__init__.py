"""
Shared utilities: configuration, logging, random generators and rescaling.
"""

from .io import load_config, load_config_section, load_boundary
from .logging_utils import setup_logging
from .random import as_generator, restore_generator, snapshot_state
from .array_utils import raster_min_max, rescale_raster

__all__ = [
    'load_config',
    'load_config_section',
    'load_boundary',
    'setup_logging',
    'as_generator',
    'restore_generator',
    'snapshot_state',
    'raster_min_max',
    'rescale_raster',
]
