"""
Virtual species: simulate species distributions from environmental rasters
and sample occurrences from them.
"""

from .species import VirtualSpecies, SampleResult
from .generation import (
    format_functions,
    generate_from_responses,
    generate_from_pca,
    generate_from_bca,
)
from .conversion import convert_to_pa, limit_distribution
from .occurrence import sample_occurrences
from .utils.array_utils import rescale_raster

__all__ = [
    'VirtualSpecies',
    'SampleResult',
    'format_functions',
    'generate_from_responses',
    'generate_from_pca',
    'generate_from_bca',
    'convert_to_pa',
    'limit_distribution',
    'sample_occurrences',
    'rescale_raster',
]
