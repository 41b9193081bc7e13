"""Virtual species suitability from a Gaussian niche in PCA space."""
import logging
from enum import StrEnum
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import xarray as xr
from sklearn.decomposition import PCA
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from vsp.exceptions import ConfigurationError, DegenerateRasterError
from vsp.raster.utils import check_stack, frame_to_raster, stack_to_frame
from vsp.species import BCADetails, PCADetails, VirtualSpecies
from vsp.utils.io import load_config_section
from vsp.utils.random import RandomLike, as_generator

logger = logging.getLogger(__name__)

SUITABILITY_NAME = "VSP suitability"


class NicheBreadth(StrEnum):
    ANY = "any"
    NARROW = "narrow"
    WIDE = "wide"


DEFAULT_NICHE_BREADTH_WINDOWS = {
    NicheBreadth.ANY: (0.01, 0.5),
    NicheBreadth.NARROW: (0.01, 0.1),
    NicheBreadth.WIDE: (0.1, 0.5),
}


def create_pca_pipeline() -> Pipeline:
    """Correlation PCA: variables are centred and scaled before decomposition."""
    return Pipeline([
        ("scaler", StandardScaler()),
        ("pca", PCA()),
    ])


def fit_pca(
    cells: pd.DataFrame,
    sample_points: bool = False,
    nb_points: Optional[int] = None,
    rng: RandomLike = None,
) -> Pipeline:
    """
    Fit a correlation PCA on environmental cells.

    Args:
        cells: One row per cell, one column per variable.
        sample_points: Fit on a random subset of nb_points cells to bound memory.
        nb_points: Number of cells to fit on when sample_points is True.
        rng: Random generator or seed for the subset.
    """
    if len(cells) < 2:
        raise ConfigurationError("At least two cells with valid values in every layer are needed for a PCA")
    if sample_points:
        if nb_points is None:
            nb_points = int(load_config_section("pca").get("nb_points", 10000))
        if nb_points < 2:
            raise ConfigurationError(f"nb_points must be at least 2, got {nb_points}")
        if nb_points >= len(cells):
            logger.warning(
                "nb_points (%d) is not smaller than the number of cells (%d), fitting the PCA on all cells",
                nb_points, len(cells),
            )
        else:
            rng = as_generator(rng)
            chosen = rng.choice(len(cells), size=nb_points, replace=False)
            cells = cells.iloc[np.sort(chosen)]
            logger.info("Fitting the PCA on a sample of %d cells", nb_points)
    pipeline = create_pca_pipeline()
    pipeline.fit(cells)
    return pipeline


def _check_pipeline(pca, variables: Sequence[str]):
    if not hasattr(pca, "transform"):
        raise ConfigurationError("pca must be a fitted PCA pipeline with a transform method")
    feature_names = getattr(pca, "feature_names_in_", None)
    if feature_names is not None and list(feature_names) != list(variables):
        raise ConfigurationError(
            f"The PCA does not seem to have been computed with the same variables as the "
            f"raster stack ({list(feature_names)} vs {list(variables)})"
        )


def _check_axes(axes: Sequence[int], n_axes: int) -> list:
    axes = [int(axis) for axis in axes]
    if len(axes) < 2:
        raise ConfigurationError("axes must contain at least two PCA axes")
    if len(set(axes)) != len(axes):
        raise ConfigurationError(f"axes must not repeat, got {axes}")
    out_of_range = [axis for axis in axes if axis < 1 or axis > n_axes]
    if out_of_range:
        raise ConfigurationError(
            f"axes {out_of_range} are not among the {n_axes} computed PCA axes (numbered from 1)"
        )
    return axes


def _niche_breadth_window(niche_breadth: str) -> Tuple[float, float]:
    try:
        niche_breadth = NicheBreadth(niche_breadth)
    except ValueError:
        raise ConfigurationError(
            f"niche_breadth must be one of {[b.value for b in NicheBreadth]}, got {niche_breadth!r}"
        )
    windows = load_config_section("pca").get("niche_breadth") or {}
    low, high = windows.get(niche_breadth.value, DEFAULT_NICHE_BREADTH_WINDOWS[niche_breadth])
    return float(low), float(high)


def _niche_parameters(
    scores: np.ndarray,
    means: Optional[Sequence[float]],
    sds: Optional[Sequence[float]],
    niche_breadth: str,
    n_axes: int,
    rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    if means is not None:
        means = np.asarray(means, dtype=float)
        if means.shape != (n_axes,):
            raise ConfigurationError(f"Provide one mean per axis ({n_axes}), got {means.size}")
    if sds is not None:
        sds = np.asarray(sds, dtype=float)
        if sds.shape != (n_axes,):
            raise ConfigurationError(f"Provide one standard deviation per axis ({n_axes}), got {sds.size}")
        if np.any(sds <= 0):
            raise ConfigurationError("Standard deviations must be positive")
    window = _niche_breadth_window(niche_breadth) if sds is None else None

    score_min = scores.min(axis=0)
    score_max = scores.max(axis=0)
    score_range = score_max - score_min
    if means is None:
        means = rng.uniform(score_min, score_max)
        logger.info("Niche means randomly drawn on each axis: %s", np.round(means, 3))
    if sds is None:
        low, high = window
        sds = rng.uniform(low * score_range, high * score_range)
        if np.any(sds <= 0):
            raise ConfigurationError("A selected PCA axis has no spread, cannot draw a standard deviation")
        logger.info("Niche standard deviations randomly drawn on each axis: %s", np.round(sds, 3))
    return means, sds


def gaussian_niche(scores: np.ndarray, means: np.ndarray, sds: np.ndarray) -> np.ndarray:
    """
    Product of independent Gaussian kernels, one per axis.

    The leading constant of the Gaussian density is dropped: the value is 1 at
    the niche optimum and the shape of the niche only is kept.
    """
    z = (scores - means) / sds
    return np.exp(-0.5 * np.sum(z ** 2, axis=1))


def _rescale_bounds(values: np.ndarray) -> Tuple[float, float]:
    if values.size == 0:
        raise DegenerateRasterError("Suitability has no valid cells to rescale")
    min_value, max_value = float(values.min()), float(values.max())
    if not max_value > min_value:
        raise DegenerateRasterError(f"Cannot rescale a constant suitability (min = max = {min_value})")
    return min_value, max_value


def generate_from_pca(
    raster_stack: xr.Dataset,
    rescale: bool = True,
    niche_breadth: NicheBreadth = NicheBreadth.ANY,
    axes: Sequence[int] = (1, 2),
    means: Optional[Sequence[float]] = None,
    sds: Optional[Sequence[float]] = None,
    pca: Optional[Pipeline] = None,
    sample_points: bool = False,
    nb_points: Optional[int] = None,
    rng: RandomLike = None,
    plot: bool = False,
) -> VirtualSpecies:
    """
    Generate a virtual species with a Gaussian niche on PCA axes.

    A correlation PCA of the environmental stack is computed (or reused), and
    the suitability of each cell is the product of Gaussian kernels evaluated
    at its scores on the selected axes. Means and standard deviations not
    provided are drawn at random: means uniformly within each axis's range of
    scores, standard deviations uniformly within a fraction of that range set
    by niche_breadth (any: 1-50%, narrow: 1-10%, wide: 10-50%).

    Args:
        raster_stack: Dataset with one layer per environmental variable.
        rescale: Rescale the suitability to [0, 1] over the whole grid.
        niche_breadth: "any", "narrow" or "wide".
        axes: PCA axes (numbered from 1) the niche is defined on, at least two.
        means: Niche optimum on each axis.
        sds: Niche tolerance on each axis.
        pca: A fitted pipeline to project the cells with, e.g. from a previous species.
        sample_points: Fit the PCA on a random sample of cells.
        nb_points: Number of cells in the sample.
        rng: Random generator or seed.
        plot: Plot the suitability raster.
    """
    raster_stack = check_stack(raster_stack)
    variables = [str(name) for name in raster_stack.data_vars]
    if len(variables) < 2:
        raise ConfigurationError("At least two environmental variables are needed for a PCA approach")
    _check_axes(axes, n_axes=len(variables))
    recorded_breadth = str(niche_breadth) if sds is None else None
    if recorded_breadth is not None:
        _niche_breadth_window(niche_breadth)
    rng = as_generator(rng)
    cells, valid_mask = stack_to_frame(raster_stack)

    if pca is None:
        logger.info("Computing the PCA...")
        pca = fit_pca(cells, sample_points=sample_points, nb_points=nb_points, rng=rng)
    else:
        _check_pipeline(pca, variables)
    n_components = pca[-1].n_components_ if isinstance(pca, Pipeline) else len(variables)
    axes = _check_axes(axes, n_components)

    scores = pca.transform(cells)[:, [axis - 1 for axis in axes]]
    means, sds = _niche_parameters(scores, means, sds, niche_breadth, len(axes), rng)

    suitability_values = gaussian_niche(scores, means, sds)
    min_prob, max_prob = None, None
    if rescale:
        min_prob, max_prob = _rescale_bounds(suitability_values)
        suitability_values = (suitability_values - min_prob) / (max_prob - min_prob)

    template = raster_stack[variables[0]]
    suitability = frame_to_raster(suitability_values, valid_mask, template, SUITABILITY_NAME)

    species = VirtualSpecies(
        details=PCADetails(
            variables=variables,
            pca=pca,
            axes=axes,
            means=means,
            sds=sds,
            rescale=rescale,
            niche_breadth=recorded_breadth,
            min_prob_rescale=min_prob,
            max_prob_rescale=max_prob,
            sample_points=sample_points,
            nb_points=nb_points,
        ),
        suitability_raster=suitability,
    )
    if plot:
        from vsp.viz.plots import plot_suitability
        plot_suitability(species)
    return species


def generate_from_bca(
    current_stack: xr.Dataset,
    future_stack: xr.Dataset,
    rescale: bool = True,
    niche_breadth: NicheBreadth = NicheBreadth.ANY,
    axes: Sequence[int] = (1, 2),
    means: Optional[Sequence[float]] = None,
    sds: Optional[Sequence[float]] = None,
    pca: Optional[Pipeline] = None,
    sample_points: bool = False,
    nb_points: Optional[int] = None,
    rng: RandomLike = None,
    plot: bool = False,
) -> VirtualSpecies:
    """
    Generate a virtual species from a PCA fitted over two sets of conditions.

    The PCA is fitted on the pooled cells of the current and future stacks so
    that both periods share the same niche space. The suitability raster is
    the current one; the future one is kept in the details, rescaled with the
    same bounds. stack_lengths records how many pooled cells came from each set.
    """
    current_stack = check_stack(current_stack)
    future_stack = check_stack(future_stack)
    variables = [str(name) for name in current_stack.data_vars]
    if set(variables) != set(str(name) for name in future_stack.data_vars):
        raise ConfigurationError("The current and future stacks must have the same variables")
    future_stack = future_stack[variables]
    if len(variables) < 2:
        raise ConfigurationError("At least two environmental variables are needed for a BCA approach")
    _check_axes(axes, n_axes=len(variables))
    recorded_breadth = str(niche_breadth) if sds is None else None
    if recorded_breadth is not None:
        _niche_breadth_window(niche_breadth)
    rng = as_generator(rng)

    current_cells, current_mask = stack_to_frame(current_stack)
    future_cells, future_mask = stack_to_frame(future_stack)
    stack_lengths = (len(current_cells), len(future_cells))
    pooled = pd.concat([current_cells, future_cells], ignore_index=True)

    if pca is None:
        logger.info("Computing the PCA over current and future conditions...")
        pca = fit_pca(pooled, sample_points=sample_points, nb_points=nb_points, rng=rng)
    else:
        _check_pipeline(pca, variables)
    n_components = pca[-1].n_components_ if isinstance(pca, Pipeline) else len(variables)
    axes = _check_axes(axes, n_components)

    columns = [axis - 1 for axis in axes]
    pooled_scores = pca.transform(pooled)[:, columns]
    means, sds = _niche_parameters(pooled_scores, means, sds, niche_breadth, len(axes), rng)

    pooled_values = gaussian_niche(pooled_scores, means, sds)
    min_prob, max_prob = None, None
    if rescale:
        min_prob, max_prob = _rescale_bounds(pooled_values)
        pooled_values = (pooled_values - min_prob) / (max_prob - min_prob)

    current_values = pooled_values[:stack_lengths[0]]
    future_values = pooled_values[stack_lengths[0]:]
    suitability = frame_to_raster(
        current_values, current_mask, current_stack[variables[0]], SUITABILITY_NAME
    )
    future_suitability = frame_to_raster(
        future_values, future_mask, future_stack[variables[0]], f"{SUITABILITY_NAME} (future)"
    )

    species = VirtualSpecies(
        details=BCADetails(
            variables=variables,
            pca=pca,
            axes=axes,
            means=means,
            sds=sds,
            rescale=rescale,
            niche_breadth=recorded_breadth,
            min_prob_rescale=min_prob,
            max_prob_rescale=max_prob,
            sample_points=sample_points,
            nb_points=nb_points,
            stack_lengths=stack_lengths,
            future_suitability_raster=future_suitability,
        ),
        suitability_raster=suitability,
    )
    if plot:
        from vsp.viz.plots import plot_suitability
        plot_suitability(species)
    return species
