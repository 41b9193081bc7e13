from typing import Union, Tuple, Optional, Any
import logging
from enum import StrEnum

import numpy as np
import pandas as pd
import geopandas as gpd
import xarray as xr
import rioxarray as rxr  # Required for .rio accessor, even if not directly called

from vsp.data.boundaries import BoundaryScope, select_any_boundaries, select_boundaries
from vsp.exceptions import (
    ConfigurationError,
    DegenerateWeightsError,
    InsufficientCellsError,
    InvalidInputError,
)
from vsp.raster.utils import area_mask, cell_coordinates, check_layer, extract_values
from vsp.species import BiasDescriptor, SampleResult, VirtualSpecies
from vsp.utils.io import load_config_section
from vsp.utils.random import RandomLike, as_generator, snapshot_state

logger = logging.getLogger(__name__)


class SamplingType(StrEnum):
    PRESENCE_ONLY = "presence only"
    PRESENCE_ABSENCE = "presence-absence"


class BiasType(StrEnum):
    NO_BIAS = "no.bias"
    COUNTRY = "country"
    REGION = "region"
    CONTINENT = "continent"
    EXTENT = "extent"
    POLYGON = "polygon"
    MANUAL = "manual"


def check_pa_raster(pa_raster: xr.DataArray) -> xr.DataArray:
    """
    Check that a raster is a presence/absence raster: values in {0, 1} or NA.

    Raises:
        InvalidInputError: If any value is neither 0, 1 nor NaN.
    """
    pa_raster = check_layer(pa_raster, name="presence/absence raster")
    values = np.asarray(pa_raster.values, dtype=float)
    valid = values[~np.isnan(values)]
    if valid.size == 0:
        raise InvalidInputError("The presence/absence raster has no valid cells")
    if not np.all((valid == 0) | (valid == 1)):
        raise InvalidInputError(
            "There are values other than 0 and 1 in your presence/absence raster. Please make sure "
            "that the provided raster is a correct P/A raster and not a suitability raster."
        )
    return pa_raster


def resolve_source(
    source: Union[VirtualSpecies, xr.DataArray],
    extract_probability: bool,
    correct_by_suitability: bool,
) -> Tuple[xr.DataArray, Optional[xr.DataArray], Optional[xr.DataArray]]:
    """Presence/absence raster, suitability and probability of occurrence to sample from."""
    if isinstance(source, VirtualSpecies):
        if source.occupied_area is not None:
            pa_raster = source.occupied_area
        elif source.pa_raster is not None:
            pa_raster = source.pa_raster
        else:
            raise InvalidInputError(
                "The virtual species has no presence/absence raster, run convert_to_pa first"
            )
        return check_pa_raster(pa_raster), source.suitability_raster, source.probability_of_occurrence
    if isinstance(source, xr.DataArray):
        if extract_probability:
            raise InvalidInputError(
                "Cannot extract probability when source is not a virtual species. "
                "Set extract_probability = False"
            )
        if correct_by_suitability:
            raise InvalidInputError(
                "If you choose to weight the probability of detection by the suitability of the "
                "species (correct_by_suitability = True), then you need to provide a virtual "
                "species containing a suitability raster."
            )
        return check_pa_raster(source), None, None
    raise InvalidInputError(
        "source must be a presence/absence DataArray or a VirtualSpecies from convert_to_pa "
        f"or limit_distribution, got {type(source)}"
    )


def _check_probability(value: float, name: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a numeric value between 0 and 1")
    if not 0 <= value <= 1:
        raise ConfigurationError(f"{name} must be a numeric value between 0 and 1, got {value}")
    return value


def build_bias_raster(
    pa_raster: xr.DataArray,
    bias: BiasType,
    bias_strength: float,
    bias_area: Any = None,
    weights: Optional[xr.DataArray] = None,
    world: Optional[gpd.GeoDataFrame] = None,
) -> xr.DataArray:
    """
    Sampling weight of each cell.

    Weights are 1 everywhere without bias. For a geographic bias, cells inside
    the bias area get bias_strength and cells outside keep 1. For a manual
    bias the user weights are used as they are.
    """
    if bias == BiasType.MANUAL:
        weights = check_layer(weights, name="weights")
        if weights.shape != pa_raster.shape:
            raise ConfigurationError(
                f"The weights raster {weights.shape} must be on the grid of the "
                f"presence/absence raster {pa_raster.shape}"
            )
        weight_values = np.asarray(weights.values, dtype=float)
        if np.any(weight_values[~np.isnan(weight_values)] < 0):
            raise ConfigurationError("Sampling weights must not be negative")
        return pa_raster.copy(data=weight_values).rename("sampling_weights")

    bias_raster = xr.ones_like(pa_raster, dtype=float).rename("sampling_weights")
    if bias == BiasType.NO_BIAS:
        return bias_raster

    if bias in (BiasType.COUNTRY, BiasType.REGION, BiasType.CONTINENT):
        area = select_boundaries(world, BoundaryScope(bias.value), bias_area)
    else:
        area = bias_area
    inside = area_mask(area, pa_raster)
    if not bool(inside.any()):
        logger.warning("The bias area does not cover any cell of the raster")
    return bias_raster.where(~inside, float(bias_strength))


def sample_cells(
    eligible: np.ndarray,
    weights: np.ndarray,
    n: int,
    replacement: bool,
    rng: np.random.Generator,
    label: str = "cells",
) -> np.ndarray:
    """
    Draw n cell indices among the eligible ones, with probability proportional to weight.

    Args:
        eligible: Flat indices of the cells that can be drawn.
        weights: Sampling weight of each eligible cell.
        n: Number of cells to draw.
        replacement: Draw with replacement.
        rng: Random generator.
        label: Name of the cell set, for messages.

    Returns:
        Flat indices of the drawn cells.
    """
    if n == 0:
        return np.array([], dtype=int)
    weights = np.nan_to_num(np.asarray(weights, dtype=float), nan=0.0)
    if eligible.size == 0:
        raise InsufficientCellsError(f"No {label} to sample {n} points from")
    if not replacement and eligible.size < n:
        raise InsufficientCellsError(
            f"Cannot sample {n} points without replacement from {eligible.size} {label}. "
            "Reduce n or set replacement = True"
        )
    total_weight = weights.sum()
    if total_weight <= 0:
        raise DegenerateWeightsError(f"All sampling weights over the {label} are zero")
    positive = np.count_nonzero(weights > 0)
    if not replacement and positive < n:
        raise InsufficientCellsError(
            f"Only {positive} {label} have a non-zero sampling weight, cannot sample {n} points "
            "without replacement"
        )
    probabilities = weights / total_weight
    logger.debug("Sampling %d points among %d %s", n, eligible.size, label)
    chosen = rng.choice(eligible.size, size=n, replace=replacement, p=probabilities)
    return eligible[chosen]


def _observe(
    real: np.ndarray,
    detection: np.ndarray,
    error_probability: float,
    sampling_type: SamplingType,
    rng: np.random.Generator,
) -> pd.arrays.IntegerArray:
    """
    Observed state of each sampled point.

    Detection is drawn first: a real presence is observed with its detection
    probability. For presence-absence samples every point not observed as a
    presence then gets an error draw that can turn it into an observed presence.
    Presence-only records are 1 when detected and NA otherwise; their errors are
    drawn over all valid cells at sampling time.
    """
    n_points = real.size
    detected = rng.random(n_points) < detection
    if sampling_type == SamplingType.PRESENCE_ONLY:
        observed = np.where(detected, 1.0, np.nan)
        return pd.array(observed, dtype="Int64")

    observed = np.where((real == 1) & detected, 1, 0)
    not_observed = observed == 0
    errors = rng.random(n_points) < error_probability
    observed[not_observed & errors] = 1
    return pd.array(observed, dtype="Int64")


def sample_occurrences(
    source: Union[VirtualSpecies, xr.DataArray],
    n: int,
    type: SamplingType = SamplingType.PRESENCE_ONLY,
    extract_probability: bool = False,
    sampling_area: Any = None,
    detection_probability: float = 1.0,
    correct_by_suitability: bool = False,
    error_probability: float = 0.0,
    bias: BiasType = BiasType.NO_BIAS,
    bias_strength: Optional[float] = None,
    bias_area: Any = None,
    weights: Optional[xr.DataArray] = None,
    sample_prevalence: Optional[float] = None,
    replacement: bool = False,
    world: Optional[gpd.GeoDataFrame] = None,
    rng: RandomLike = None,
    plot: bool = False,
) -> SampleResult:
    """
    Sample occurrences from a virtual species distribution.

    Points are drawn from presence cells (presence only) or from every valid
    cell (presence-absence), with probability proportional to a sampling-bias
    weight. Each point gets its real state from the raster and an observed
    state from detection and error draws.

    Args:
        source: A VirtualSpecies from convert_to_pa / limit_distribution (the
            occupied area is used when present) or a presence/absence DataArray.
        n: Number of points.
        type: "presence only" or "presence-absence".
        extract_probability: Add the true probability of occurrence at each point.
        sampling_area: Restrict sampling to an area: country/region/continent
            names, an extent (xmin, ymin, xmax, ymax), a geometry or a GeoDataFrame.
        detection_probability: Probability that a real presence is observed.
        correct_by_suitability: Multiply the detection probability by the suitability.
        error_probability: Probability of a false presence. For presence-only
            samples it is the share of points drawn over all valid cells
            instead of presence cells.
        bias: "no.bias", "country", "region", "continent", "extent", "polygon" or "manual".
        bias_strength: Weight of cells inside the bias area relative to cells outside.
        bias_area: Names, extent or polygon of the bias area.
        weights: Sampling weight raster for bias = "manual".
        sample_prevalence: Share of presences among presence-absence points.
        replacement: Sample cells with replacement.
        world: World boundaries for named areas.
        rng: Random generator or seed. Its state before sampling is stored in
            the result.
        plot: Plot the sampled points.

    Returns:
        SampleResult with the point table (x, y, Real, Observed[, true_probability]).
    """
    # Validation
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n < 1:
        raise ConfigurationError(f"n must be a positive integer, got {n!r}")
    n = int(n)
    try:
        sampling_type = SamplingType(type)
    except ValueError:
        raise ConfigurationError("type must either be 'presence only' or 'presence-absence'")
    try:
        bias = BiasType(bias)
    except ValueError:
        raise ConfigurationError(
            f"Argument bias must be one of: {', '.join(b.value for b in BiasType)}"
        )
    detection_probability = _check_probability(detection_probability, "detection_probability")
    error_probability = _check_probability(error_probability, "error_probability")
    if sample_prevalence is not None:
        if sampling_type != SamplingType.PRESENCE_ABSENCE:
            raise ConfigurationError("sample_prevalence can only be used with type = 'presence-absence'")
        sample_prevalence = _check_probability(sample_prevalence, "sample_prevalence")
    if bias == BiasType.MANUAL and not isinstance(weights, xr.DataArray):
        raise ConfigurationError("You must provide a raster of weights (weights) if you choose bias = 'manual'")
    if bias not in (BiasType.NO_BIAS, BiasType.MANUAL):
        if bias_area is None:
            raise ConfigurationError(f"bias = '{bias}' needs a bias_area")
        if bias_strength is None:
            bias_strength = float(load_config_section("sampling").get("bias_strength", 50))
        try:
            bias_strength = float(bias_strength)
        except (TypeError, ValueError):
            raise ConfigurationError("Please provide a numeric value for bias_strength")
        if bias_strength < 0:
            raise ConfigurationError(f"bias_strength must not be negative, got {bias_strength}")

    pa_raster, suitability, probability = resolve_source(source, extract_probability, correct_by_suitability)
    if extract_probability and probability is None:
        raise InvalidInputError("The virtual species has no probability of occurrence to extract")
    original_raster = pa_raster

    rng = as_generator(rng)
    rng_state = snapshot_state(rng)

    if sampling_area is not None:
        if isinstance(sampling_area, str) or (
            isinstance(sampling_area, (list, tuple)) and sampling_area and isinstance(sampling_area[0], str)
        ):
            sampling_area = select_any_boundaries(world, sampling_area)
        inside = area_mask(sampling_area, pa_raster)
        pa_raster = pa_raster.where(inside)
        logger.info("Sampling restricted to %d cells", int(pa_raster.notnull().sum()))

    bias_raster = build_bias_raster(pa_raster, bias, bias_strength, bias_area, weights, world)
    if bias == BiasType.MANUAL:
        bias_descriptor = BiasDescriptor(
            bias=bias.value, bias_strength="Defined by raster weights", weights=weights
        )
    else:
        bias_descriptor = BiasDescriptor(bias=bias.value, bias_strength=bias_strength, bias_area=bias_area)

    pa_values = np.asarray(pa_raster.values, dtype=float).flatten()
    bias_values = np.asarray(bias_raster.values, dtype=float).flatten()
    presence_cells = np.flatnonzero(pa_values == 1)
    absence_cells = np.flatnonzero(pa_values == 0)
    valid_cells = np.flatnonzero(~np.isnan(pa_values))

    # Drawing
    if sampling_type == SamplingType.PRESENCE_ONLY:
        number_errors = int(rng.binomial(n, error_probability)) if error_probability > 0 else 0
        if number_errors > 0:
            logger.info("%d of the %d points are drawn over all valid cells (errors)", number_errors, n)
        error_points = sample_cells(
            valid_cells, bias_values[valid_cells], number_errors, replacement, rng,
            label="valid cells",
        )
        presence_points = sample_cells(
            presence_cells, bias_values[presence_cells], n - number_errors, replacement, rng,
            label="presence cells",
        )
        drawn = np.concatenate([error_points, presence_points])
    elif sample_prevalence is None:
        drawn = sample_cells(valid_cells, bias_values[valid_cells], n, replacement, rng, label="valid cells")
    else:
        n_presences = int(round(sample_prevalence * n))
        presence_points = sample_cells(
            presence_cells, bias_values[presence_cells], n_presences, replacement, rng,
            label="presence cells",
        )
        absence_points = sample_cells(
            absence_cells, bias_values[absence_cells], n - n_presences, replacement, rng,
            label="absence cells",
        )
        drawn = np.concatenate([presence_points, absence_points])

    flat_x, flat_y = cell_coordinates(pa_raster)
    x = flat_x[drawn]
    y = flat_y[drawn]
    real = pa_values[drawn]

    # Observation
    detection = np.full(drawn.size, detection_probability)
    if correct_by_suitability:
        suitability_values = extract_values(suitability, x, y)
        detection = np.clip(detection * np.nan_to_num(suitability_values, nan=0.0), 0.0, 1.0)
    observed = _observe(real, detection, error_probability, sampling_type, rng)

    points = pd.DataFrame({
        "x": x,
        "y": y,
        "Real": pd.array(real.astype(int), dtype="Int64"),
        "Observed": observed,
    })
    if extract_probability:
        points["true_probability"] = extract_values(probability, x, y)

    n_points = len(points)
    sample_prevalence_values = {
        "true": float((points["Real"] == 1).sum()) / n_points,
        "observed": float(points["Observed"].eq(1).fillna(False).sum()) / n_points,
    }
    if sampling_type == SamplingType.PRESENCE_ABSENCE:
        logger.info(
            "Sample prevalence: true %.3f, observed %.3f",
            sample_prevalence_values["true"],
            sample_prevalence_values["observed"],
        )
    logger.info("Sampled %d %s points.", n_points, sampling_type.value)

    result = SampleResult(
        type=sampling_type.value,
        points=points,
        detection_probability=detection_probability,
        correct_by_suitability=correct_by_suitability,
        error_probability=error_probability,
        bias=bias_descriptor,
        replacement=replacement,
        source_raster=original_raster,
        sample_prevalence=sample_prevalence_values,
        rng_state=rng_state,
    )
    if plot:
        from vsp.viz.plots import plot_occurrences
        plot_occurrences(result)
    return result
