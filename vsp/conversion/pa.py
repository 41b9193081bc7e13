"""Conversion of environmental suitability into presence/absence."""
import logging
from enum import StrEnum
from typing import Callable, Optional, Tuple, Union

import numpy as np
from scipy import special

from vsp.exceptions import (
    ConfigurationError,
    ConversionNotConvergedError,
    InvalidInputError,
    PrevalenceUnreachableError,
)
from vsp.raster.utils import check_layer, copy_spatial_metadata
from vsp.species import PAConversion, VirtualSpecies
from vsp.utils.io import load_config_section
from vsp.utils.random import RandomLike, as_generator, snapshot_state

logger = logging.getLogger(__name__)

# Uniform draws are kept away from 0 and 1 so logits stay finite
_DRAW_EPSILON = 1e-12


class ConversionMethod(StrEnum):
    THRESHOLD = "threshold"
    LOGISTIC = "logistic"
    LINEAR = "linear"


def logistic_probability(suitability, alpha: float, beta: float):
    """Probability of occurrence, 1 / (1 + exp(-(suitability - beta) / alpha))."""
    return special.expit((suitability - beta) / alpha)


def linear_probability(suitability, a: float, b: float):
    """Probability of occurrence, clip(a * suitability + b, 0, 1)."""
    return np.clip(a * suitability + b, 0.0, 1.0)


def target_count(species_prevalence: float, n_cells: int) -> int:
    """Number of presence cells a prevalence asks for."""
    if not 0 < species_prevalence < 1:
        raise PrevalenceUnreachableError(
            f"species_prevalence must be strictly between 0 and 1, got {species_prevalence}"
        )
    return int(round(species_prevalence * n_cells))


def bisect_count(
    count: Callable[[float], int],
    k: int,
    lower: float,
    upper: float,
    max_iterations: int,
) -> float:
    """
    Find a parameter value whose presence count is k.

    count must be monotone over [lower, upper], increasing or decreasing.

    Raises:
        PrevalenceUnreachableError: If k is not bracketed by the counts at the bounds.
        ConversionNotConvergedError: If no value within one cell of k is found
            in max_iterations halvings.
    """
    count_lower, count_upper = count(lower), count(upper)
    if not min(count_lower, count_upper) <= k <= max(count_lower, count_upper):
        raise PrevalenceUnreachableError(
            f"The requested number of presences ({k}) is outside the reachable range "
            f"[{min(count_lower, count_upper)}, {max(count_lower, count_upper)}]"
        )
    if count_lower == k:
        return lower
    if count_upper == k:
        return upper
    increasing = count_upper >= count_lower
    best_value, best_gap = lower, abs(count_lower - k)
    if abs(count_upper - k) < best_gap:
        best_value, best_gap = upper, abs(count_upper - k)

    for iteration in range(max_iterations):
        middle = (lower + upper) / 2
        current = count(middle)
        gap = abs(current - k)
        if gap < best_gap:
            best_value, best_gap = middle, gap
        if current == k:
            logger.debug("Prevalence solved in %d iterations", iteration + 1)
            return middle
        if (current < k) == increasing:
            lower = middle
        else:
            upper = middle

    if best_gap <= 1:
        logger.warning(
            "Exact prevalence not reachable (ties), using the closest value, %d cell(s) away",
            best_gap,
        )
        return best_value
    raise ConversionNotConvergedError(
        f"Could not reach {k} presences within {max_iterations} iterations "
        f"(closest: {best_gap} cells away)"
    )


def _random_beta(values: np.ndarray, rng: np.random.Generator) -> float:
    beta = float(rng.uniform(values.min(), values.max()))
    logger.info("beta randomly drawn within the suitability range: %.4f", beta)
    return beta


def _check_beta(beta) -> Union[float, str, None]:
    if beta is None or isinstance(beta, str):
        if beta not in (None, "random"):
            raise ConfigurationError(f"beta must be a number or 'random', got {beta!r}")
        return beta
    try:
        return float(beta)
    except (TypeError, ValueError):
        raise ConfigurationError(f"beta must be a number or 'random', got {beta!r}")


def _threshold(values, beta, species_prevalence, rng) -> Tuple[np.ndarray, np.ndarray, dict]:
    if species_prevalence is not None:
        k = target_count(species_prevalence, values.size)
        if k == 0:
            raise PrevalenceUnreachableError(
                f"A prevalence of {species_prevalence} over {values.size} cells asks for no "
                "presence, which needs a threshold above the highest suitability"
            )
        if isinstance(beta, float):
            logger.warning("species_prevalence was given, beta = %s is ignored", beta)
        beta = float(np.sort(values)[::-1][k - 1])
        n_presences = int(np.count_nonzero(values >= beta))
        if n_presences - k > 1:
            n_above = int(np.count_nonzero(values > beta))
            raise PrevalenceUnreachableError(
                f"{n_presences - n_above} cells share the suitability {beta:.4g}, so a threshold gives "
                f"either {n_above} or {n_presences} presences, not the {k} requested"
            )
        logger.info("Threshold giving a prevalence of %s: beta = %.4f", species_prevalence, beta)
    elif beta == "random" or beta is None:
        beta = _random_beta(values, rng)
    presence = values >= beta
    return presence, presence.astype(float), {"beta": beta}


def _logistic(values, alpha, beta, species_prevalence, max_iterations, rng):
    if species_prevalence is not None:
        k = target_count(species_prevalence, values.size)
        if isinstance(beta, float):
            logger.warning("species_prevalence was given, beta = %s is ignored", beta)
        draws = np.clip(rng.random(values.size), _DRAW_EPSILON, 1 - _DRAW_EPSILON)
        # A cell is present for every beta below its own switch point
        margin = alpha * abs(special.logit(_DRAW_EPSILON)) + alpha
        beta = bisect_count(
            lambda candidate: int(np.count_nonzero(draws < logistic_probability(values, alpha, candidate))),
            k,
            lower=float(values.min()) - margin,
            upper=float(values.max()) + margin,
            max_iterations=max_iterations,
        )
        logger.info(
            "Logistic curve giving a prevalence of %s: alpha = %s, beta = %.4f",
            species_prevalence, alpha, beta,
        )
    else:
        if beta == "random" or beta is None:
            beta = _random_beta(values, rng)
        draws = rng.random(values.size)
    probability = logistic_probability(values, alpha, beta)
    return draws < probability, probability, {"alpha": alpha, "beta": beta}


def _linear(values, a, b, species_prevalence, max_iterations, rng):
    if species_prevalence is not None:
        if values.min() < 0 or values.max() > 1:
            raise InvalidInputError(
                "Fitting a linear conversion to a prevalence needs a suitability within [0, 1]; "
                "generate the species with rescale = True"
            )
        k = target_count(species_prevalence, values.size)
        if a is not None or b is not None:
            logger.warning("species_prevalence was given, a and b are ignored")
        draws = np.clip(rng.random(values.size), _DRAW_EPSILON, 1 - _DRAW_EPSILON)
        positive = values[values > 0]
        mean_suitability = float(values.mean())
        if species_prevalence <= mean_suitability:
            # Line through (0, 0): P = a * s
            upper = 1.0 / max(float(positive.min()) if positive.size else 1.0, _DRAW_EPSILON)
            a = bisect_count(
                lambda slope: int(np.count_nonzero(draws < linear_probability(values, slope, 0.0))),
                k, lower=0.0, upper=upper, max_iterations=max_iterations,
            )
            b = 0.0
        else:
            # Line through (1, 1): P = 1 - a * (1 - s)
            below_one = 1 - values[values < 1]
            upper = 1.0 / max(float(below_one.min()) if below_one.size else 1.0, _DRAW_EPSILON)
            a = bisect_count(
                lambda slope: int(np.count_nonzero(draws < linear_probability(values, slope, 1.0 - slope))),
                k, lower=0.0, upper=upper, max_iterations=max_iterations,
            )
            b = 1.0 - a
        logger.info(
            "Linear curve giving a prevalence of %s: a = %.4f, b = %.4f", species_prevalence, a, b
        )
    else:
        config = load_config_section("conversion")
        a = float(config.get("a", 1.0)) if a is None else float(a)
        b = float(config.get("b", 0.0)) if b is None else float(b)
        draws = rng.random(values.size)
    probability = linear_probability(values, a, b)
    return draws < probability, probability, {"a": a, "b": b}


def convert_to_pa(
    species: VirtualSpecies,
    conversion_method: ConversionMethod = ConversionMethod.LOGISTIC,
    beta: Union[float, str, None] = "random",
    alpha: Optional[float] = None,
    a: Optional[float] = None,
    b: Optional[float] = None,
    species_prevalence: Optional[float] = None,
    rng: RandomLike = None,
    max_iterations: Optional[int] = None,
    plot: bool = False,
) -> VirtualSpecies:
    """
    Convert the suitability of a virtual species into presence/absence.

    Methods:
        threshold: presence where suitability >= beta. beta is a number,
            "random" (drawn within the suitability range), or solved so that the
            share of presences equals species_prevalence.
        logistic: presence drawn with probability
            1 / (1 + exp(-(suitability - beta) / alpha)). With species_prevalence,
            alpha is kept and beta is solved.
        linear: presence drawn with probability clip(a * suitability + b, 0, 1).
            With species_prevalence the line goes through (0, 0) if the
            prevalence is at most the mean suitability, through (1, 1)
            otherwise, and its slope is solved.

    When solving for a prevalence, one uniform draw per cell is made first and
    the curve parameter is bisected until the drawn presences match the
    requested prevalence, so the realised prevalence is the requested one
    (to one cell).

    Args:
        species: A VirtualSpecies from one of the generate functions.
        conversion_method: "threshold", "logistic" or "linear".
        beta: Threshold or logistic inflexion point, or "random".
        alpha: Logistic width, positive. Defaults to the configured value.
        a: Linear slope. Defaults to the configured value.
        b: Linear intercept. Defaults to the configured value.
        species_prevalence: Share of cells to be presences, strictly between 0 and 1.
        rng: Random generator or seed.
        max_iterations: Bisection budget. Defaults to the configured value.
        plot: Plot the presence/absence raster.

    Returns:
        A new VirtualSpecies carrying the PAConversion record, including the
        generator state taken before any draw so the conversion can be replayed.

    Raises:
        ConfigurationError: For an unknown method or invalid parameters.
        PrevalenceUnreachableError: If the prevalence cannot be reached.
        ConversionNotConvergedError: If the bisection runs out of iterations.
    """
    if not isinstance(species, VirtualSpecies):
        raise InvalidInputError(
            f"species must be a VirtualSpecies from generate_from_responses, generate_from_pca "
            f"or generate_from_bca, got {type(species)}"
        )
    try:
        method = ConversionMethod(conversion_method)
    except ValueError:
        raise ConfigurationError(
            f"conversion_method must be one of {[m.value for m in ConversionMethod]}, "
            f"got {conversion_method!r}"
        )
    config = load_config_section("conversion")
    if max_iterations is None:
        max_iterations = int(config.get("max_iterations", 200))
    if max_iterations < 1:
        raise ConfigurationError(f"max_iterations must be positive, got {max_iterations}")
    beta = _check_beta(beta)
    if method == ConversionMethod.THRESHOLD and beta is None and species_prevalence is None:
        raise ConfigurationError("A threshold conversion needs beta or species_prevalence")
    if method == ConversionMethod.LOGISTIC:
        alpha = float(config.get("alpha", 0.05)) if alpha is None else float(alpha)
        if not alpha > 0:
            raise ConfigurationError(f"alpha must be positive, got {alpha}")
    if species_prevalence is not None:
        species_prevalence = float(species_prevalence)
        if not 0 <= species_prevalence <= 1:
            raise ConfigurationError(f"species_prevalence must be between 0 and 1, got {species_prevalence}")

    suitability = check_layer(species.suitability_raster, name="suitability_raster")
    grid = np.asarray(suitability.values, dtype=float)
    valid = ~np.isnan(grid)
    values = grid[valid]
    if values.size == 0:
        raise InvalidInputError("The suitability raster has no valid cells")
    rng = as_generator(rng)
    rng_state = snapshot_state(rng)

    if method == ConversionMethod.THRESHOLD:
        presence, probability, used = _threshold(values, beta, species_prevalence, rng)
    elif method == ConversionMethod.LOGISTIC:
        presence, probability, used = _logistic(values, alpha, beta, species_prevalence, max_iterations, rng)
    else:
        presence, probability, used = _linear(values, a, b, species_prevalence, max_iterations, rng)

    pa_grid = np.full(grid.shape, np.nan)
    pa_grid[valid] = presence.astype(float)
    probability_grid = np.full(grid.shape, np.nan)
    probability_grid[valid] = probability

    pa_raster = copy_spatial_metadata(
        suitability.copy(data=pa_grid).rename("Presence-Absence"), suitability
    )
    probability_raster = copy_spatial_metadata(
        suitability.copy(data=probability_grid).rename("Probability of occurrence"), suitability
    )
    realised_prevalence = float(np.count_nonzero(presence)) / values.size
    logger.info("Realised species prevalence: %.4f", realised_prevalence)

    converted = species.with_conversion(
        PAConversion(
            method=method.value,
            pa_raster=pa_raster,
            probability_of_occurrence=probability_raster,
            realised_prevalence=realised_prevalence,
            species_prevalence=species_prevalence,
            rng_state=rng_state,
            **used,
        )
    )
    if plot:
        from vsp.viz.plots import plot_pa
        plot_pa(converted)
    return converted
