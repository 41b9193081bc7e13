"""
Raster helpers: stack validation, cell flattening and area masks.
"""

from .utils import (
    area_mask,
    cell_coordinates,
    check_layer,
    check_stack,
    extract_values,
    frame_to_raster,
    stack_to_frame,
)

__all__ = [
    'area_mask',
    'cell_coordinates',
    'check_layer',
    'check_stack',
    'extract_values',
    'frame_to_raster',
    'stack_to_frame',
]
