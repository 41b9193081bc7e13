"""
Presence/absence conversion and geographical limitation.
"""

from .pa import ConversionMethod, convert_to_pa
from .limits import GeographicalLimit, limit_distribution

__all__ = [
    'ConversionMethod',
    'convert_to_pa',
    'GeographicalLimit',
    'limit_distribution',
]
