"""
Plots of virtual species and sampled occurrences.
"""

from .plots import plot_response, plot_suitability, plot_pa, plot_occurrences

__all__ = [
    'plot_response',
    'plot_suitability',
    'plot_pa',
    'plot_occurrences',
]
