"""Virtual species suitability from per-variable response functions."""
import dataclasses
import logging
from enum import StrEnum
from functools import reduce
from typing import Any, Dict, Mapping, Optional
import operator

import xarray as xr

from vsp.exceptions import ConfigurationError
from vsp.generation.formula import Formula
from vsp.generation.responses import (
    ResponseRegistry,
    as_response_parameters,
    default_registry,
    validate_parameters,
)
from vsp.raster.utils import check_stack, copy_spatial_metadata
from vsp.species import ResponseDetails, ResponseParameters, VirtualSpecies
from vsp.utils.array_utils import raster_min_max, rescale_raster

logger = logging.getLogger(__name__)

SUITABILITY_NAME = "VSP suitability"


class SpeciesType(StrEnum):
    MULTIPLICATIVE = "multiplicative"
    ADDITIVE = "additive"


def _validate_inputs(
    raster_stack: xr.Dataset,
    parameters: Mapping[str, Any],
    registry: ResponseRegistry,
) -> Dict[str, ResponseParameters]:
    if not isinstance(parameters, Mapping) or not parameters:
        raise ConfigurationError("parameters must be a non-empty mapping of variable name to response")
    layer_names = [str(name) for name in raster_stack.data_vars]
    if len(layer_names) != len(parameters):
        raise ConfigurationError(
            f"Provide as many layers in raster_stack ({len(layer_names)}) as functions in "
            f"parameters ({len(parameters)})"
        )
    if set(layer_names) != set(parameters):
        raise ConfigurationError(
            f"Layer names ({', '.join(sorted(layer_names))}) and names of parameters "
            f"({', '.join(sorted(parameters))}) must be identical"
        )
    blocks = {}
    for variable in layer_names:
        block = as_response_parameters(variable, parameters[variable])
        validate_parameters(variable, block, registry)
        blocks[variable] = block
    return blocks


def generate_from_responses(
    raster_stack: xr.Dataset,
    parameters: Mapping[str, Any],
    rescale: bool = True,
    formula: Optional[str] = None,
    species_type: SpeciesType = SpeciesType.MULTIPLICATIVE,
    rescale_each_response: bool = True,
    plot: bool = False,
    registry: ResponseRegistry = default_registry,
) -> VirtualSpecies:
    """
    Generate a virtual species suitability from a stack of environmental
    variables and a response function per variable.

    The response to each variable is computed with its function, optionally
    rescaled to [0, 1], then combined with the formula or, without a
    formula, multiplied (multiplicative species) or summed (additive
    species). The final suitability is optionally rescaled to [0, 1].

    Args:
        raster_stack: Dataset with one layer per environmental variable.
        parameters: Mapping of variable name to a ResponseParameters or a
            {"fun": name_or_callable, "args": {...}} mapping. Names must match
            the layers of raster_stack. See format_functions.
        rescale: Rescale the final suitability to [0, 1].
        formula: Arithmetic formula over the variable names, e.g.
            "bio1 + 2 * bio12". Every variable must appear in it.
        species_type: "multiplicative" or "additive", used without a formula.
        rescale_each_response: Rescale each partial response to [0, 1].
        plot: Plot the suitability raster.
        registry: Registry used to resolve response function names.

    Returns:
        VirtualSpecies with ResponseDetails.

    Raises:
        ConfigurationError: For inconsistent names, unknown functions or
            arguments, or a malformed formula.
        DegenerateRasterError: If a rescaled surface is constant.
    """
    raster_stack = check_stack(raster_stack)
    blocks = _validate_inputs(raster_stack, parameters, registry)

    parsed_formula = None
    if formula is not None:
        parsed_formula = Formula(formula)
        parsed_formula.check_variables(blocks)
    else:
        try:
            species_type = SpeciesType(species_type)
        except ValueError:
            raise ConfigurationError(
                "If you do not provide a formula, please choose either "
                "species_type = 'additive' or 'multiplicative'"
            )

    logger.info("Generating virtual species environmental suitability...")
    if rescale_each_response:
        logger.info(
            "The response to each variable will be rescaled between 0 and 1. "
            "To disable, set rescale_each_response = False"
        )
    if rescale:
        logger.info(
            "The final environmental suitability will be rescaled between 0 and 1. "
            "To disable, set rescale = False"
        )

    responses: Dict[str, xr.DataArray] = {}
    response_ranges = {}
    for variable, block in blocks.items():
        layer = raster_stack[variable]
        observed_min, observed_max = raster_min_max(layer)
        blocks[variable] = dataclasses.replace(
            block, observed_min=observed_min, observed_max=observed_max
        )
        func = registry.resolve(block.function)
        response = func(layer, **block.args)
        if not isinstance(response, xr.DataArray):
            response = layer.copy(data=response)
        response = response.rename(variable)
        response_ranges[variable] = raster_min_max(response)
        if rescale_each_response:
            response = rescale_raster(response)
        responses[variable] = response
        logger.debug("Computed %s response for %s", block.function_name, variable)

    names = list(responses)
    if parsed_formula is not None:
        suitability = parsed_formula.evaluate(responses)
        formula_text = parsed_formula.text
    elif species_type == SpeciesType.MULTIPLICATIVE:
        suitability = reduce(operator.mul, (responses[name] for name in names))
        formula_text = " * ".join(names)
    else:
        suitability = reduce(operator.add, (responses[name] for name in names))
        formula_text = " + ".join(names)

    suitability = suitability.rename(SUITABILITY_NAME)

    if rescale:
        suitability = rescale_raster(suitability)
    suitability = copy_spatial_metadata(suitability, raster_stack[names[0]])

    species = VirtualSpecies(
        details=ResponseDetails(
            variables=names,
            formula=formula_text,
            species_type=None if parsed_formula is not None else species_type.value,
            rescale_each_response=rescale_each_response,
            rescale=rescale,
            parameters=blocks,
            response_ranges=response_ranges,
        ),
        suitability_raster=suitability,
    )

    if plot:
        from vsp.viz.plots import plot_suitability
        plot_suitability(species)

    return species
