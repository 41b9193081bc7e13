"""
Occurrence sampling from virtual species distributions.
"""

from .sampling import BiasType, SamplingType, sample_occurrences

__all__ = [
    'BiasType',
    'SamplingType',
    'sample_occurrences',
]
