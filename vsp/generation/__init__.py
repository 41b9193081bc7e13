"""
Environmental suitability of virtual species.
"""

from .responses import (
    linear,
    quadratic,
    logistic,
    gaussian,
    ResponseRegistry,
    default_registry,
    register_response,
    format_functions,
)
from .formula import Formula
from .response_approach import SpeciesType, generate_from_responses
from .pca_approach import NicheBreadth, generate_from_pca, generate_from_bca

__all__ = [
    # Response functions
    'linear',
    'quadratic',
    'logistic',
    'gaussian',
    'ResponseRegistry',
    'default_registry',
    'register_response',
    'format_functions',
    'Formula',

    # Generators
    'SpeciesType',
    'generate_from_responses',
    'NicheBreadth',
    'generate_from_pca',
    'generate_from_bca',
]
