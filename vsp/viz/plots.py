"""Plots of virtual species: response curves, niches, rasters and sampled points."""

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import xarray as xr
from matplotlib.patches import Ellipse

from vsp.exceptions import InvalidInputError
from vsp.generation.responses import default_registry, ResponseRegistry
from vsp.species import PCADetails, ResponseDetails, SampleResult, VirtualSpecies

logger = logging.getLogger(__name__)

N_CURVE_POINTS = 1000


def _save(fig: plt.Figure, output_path: Optional[Path]) -> plt.Figure:
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=300, bbox_inches='tight')
        logger.info(f"Saved plot to: {output_path}")
    return fig


def _check_species(species) -> VirtualSpecies:
    if not isinstance(species, VirtualSpecies):
        raise InvalidInputError(f"Expected a VirtualSpecies, got {type(species)}")
    return species


def response_curve(
    details: ResponseDetails,
    variable: str,
    registry: ResponseRegistry = default_registry,
) -> pd.DataFrame:
    """
    Response of one variable over its observed range.

    When each response was rescaled during generation, the curve is rescaled
    with the min and max the response took over the raster.
    """
    block = details.parameters[variable]
    x = np.linspace(block.observed_min, block.observed_max, N_CURVE_POINTS)
    y = np.asarray(registry.resolve(block.function)(x, **block.args), dtype=float)
    if details.rescale_each_response and variable in details.response_ranges:
        low, high = details.response_ranges[variable]
        if high > low:
            y = (y - low) / (high - low)
    return pd.DataFrame({'value': x, 'response': y})


def _plot_response_curves(details: ResponseDetails, registry: ResponseRegistry) -> plt.Figure:
    n_variables = len(details.variables)
    n_cols = min(3, n_variables)
    n_rows = int(np.ceil(n_variables / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(4 * n_cols, 3.5 * n_rows), squeeze=False)
    for ax, variable in zip(axes.flat, details.variables):
        curve = response_curve(details, variable, registry)
        sns.lineplot(data=curve, x='value', y='response', ax=ax, color='darkorange')
        ax.set_title(f"{variable} ({details.parameters[variable].function_name})")
        ax.set_xlabel(variable)
        ax.set_ylabel('Suitability' if details.rescale_each_response else 'Response')
    for ax in list(axes.flat)[n_variables:]:
        ax.set_visible(False)
    fig.tight_layout()
    return fig


def _plot_niche(details: PCADetails, raster_stack: Optional[xr.Dataset]) -> plt.Figure:
    fig, ax = plt.subplots(figsize=(7, 7))
    first, second = details.axes[0], details.axes[1]
    if raster_stack is not None:
        cells = raster_stack[details.variables].to_dataframe()[details.variables].dropna()
        scores = details.pca.transform(cells)
        ax.scatter(scores[:, first - 1], scores[:, second - 1], s=2, color='grey', alpha=0.3, label='Cells')

    mean_x, mean_y = details.means[0], details.means[1]
    sd_x, sd_y = details.sds[0], details.sds[1]
    for n_sd, alpha in ((1, 0.5), (2, 0.25)):
        ax.add_patch(Ellipse(
            (mean_x, mean_y), 2 * n_sd * sd_x, 2 * n_sd * sd_y,
            facecolor='darkorange', alpha=alpha, edgecolor='none',
        ))
    ax.plot(mean_x, mean_y, marker='+', color='black', markersize=12, label='Niche optimum')
    ax.set_xlabel(f'PCA axis {first}')
    ax.set_ylabel(f'PCA axis {second}')
    ax.set_title('Niche in PCA space (1 and 2 sd)')
    ax.autoscale_view()
    ax.legend(loc='upper right')
    fig.tight_layout()
    return fig


def plot_response(
    species: VirtualSpecies,
    raster_stack: Optional[xr.Dataset] = None,
    output_path: Optional[Path] = None,
    registry: ResponseRegistry = default_registry,
) -> plt.Figure:
    """Plot the response curves of a species, or its niche in PCA space.

    Args:
        species: A generated virtual species.
        raster_stack: Environmental stack to draw the cells under a PCA niche.
        output_path: Optional path to save the plot.
        registry: Registry to resolve response function names.
    """
    species = _check_species(species)
    try:
        if isinstance(species.details, ResponseDetails):
            fig = _plot_response_curves(species.details, registry)
        else:
            fig = _plot_niche(species.details, raster_stack)
        return _save(fig, output_path)
    except Exception as e:
        logger.error(f"Error plotting species response: {e}", exc_info=True)
        raise


def plot_raster(
    raster: xr.DataArray,
    title: Optional[str] = None,
    cmap: str = 'viridis',
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """Plot a (y, x) layer on a new or given axis."""
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 7))
    raster.plot(ax=ax, cmap=cmap, vmin=vmin, vmax=vmax)
    ax.set_title(title or raster.name or '')
    ax.set_aspect('equal')
    return ax


def plot_suitability(species: VirtualSpecies, output_path: Optional[Path] = None) -> plt.Figure:
    """Plot the suitability raster; a BCA species also gets its future suitability."""
    species = _check_species(species)
    future = getattr(species.details, 'future_suitability_raster', None)
    n_panels = 2 if future is not None else 1
    fig, axes = plt.subplots(1, n_panels, figsize=(8 * n_panels, 7), squeeze=False)
    plot_raster(species.suitability_raster, title='Environmental suitability', ax=axes[0, 0])
    if future is not None:
        plot_raster(future, title='Environmental suitability (future)', ax=axes[0, 1])
    fig.tight_layout()
    return _save(fig, output_path)


def plot_pa(species: VirtualSpecies, output_path: Optional[Path] = None) -> plt.Figure:
    """Plot the presence/absence raster, or the occupied area of a limited species."""
    species = _check_species(species)
    if species.pa_raster is None:
        raise InvalidInputError("The virtual species has not been converted to presence/absence")
    if species.occupied_area is not None:
        raster, title = species.occupied_area, 'Occupied area'
    else:
        raster, title = species.pa_raster, 'Presence-absence'
    fig, axes = plt.subplots(1, 2, figsize=(16, 7), squeeze=False)
    plot_raster(species.probability_of_occurrence, title='Probability of occurrence', vmin=0, vmax=1, ax=axes[0, 0])
    plot_raster(raster, title=title, cmap='Greens', vmin=0, vmax=1, ax=axes[0, 1])
    fig.tight_layout()
    return _save(fig, output_path)


def plot_occurrences(result: SampleResult, output_path: Optional[Path] = None) -> plt.Figure:
    """Plot the sampled points over the raster they were sampled from."""
    if not isinstance(result, SampleResult):
        raise InvalidInputError(f"Expected a SampleResult, got {type(result)}")
    fig, ax = plt.subplots(figsize=(8, 7))
    plot_raster(result.source_raster, title=f'Sampled occurrences ({result.type})', cmap='Greys', vmin=0, vmax=1, ax=ax)

    points = result.points.copy()
    points['Observed'] = points['Observed'].map(
        lambda value: 'Not detected' if pd.isna(value) else ('Presence' if value == 1 else 'Absence')
    )
    sns.scatterplot(
        data=points, x='x', y='y', hue='Observed', ax=ax, s=25, edgecolor='black',
        palette={'Presence': 'tab:red', 'Absence': 'tab:blue', 'Not detected': 'tab:grey'},
    )
    fig.tight_layout()
    return _save(fig, output_path)
