import matplotlib
matplotlib.use("Agg")

import pytest
import numpy as np
import xarray as xr
import rioxarray as rxr
import matplotlib.pyplot as plt

from vsp.conversion.pa import convert_to_pa
from vsp.exceptions import InvalidInputError
from vsp.generation.pca_approach import generate_from_pca
from vsp.generation.response_approach import generate_from_responses
from vsp.occurrence.sampling import sample_occurrences
from vsp.viz.plots import (
    plot_occurrences,
    plot_pa,
    plot_response,
    plot_suitability,
    response_curve,
)


def make_layer(values: np.ndarray, name: str) -> xr.DataArray:
    ny, nx = values.shape
    layer = xr.DataArray(
        values,
        coords={"y": (ny - 0.5) - np.arange(ny), "x": np.arange(nx) + 0.5},
        dims=("y", "x"),
        name=name,
    )
    return layer.rio.write_crs("EPSG:3857")


@pytest.fixture
def stack() -> xr.Dataset:
    rng = np.random.default_rng(0)
    return xr.Dataset({
        "bio1": make_layer(rng.uniform(0, 30, (15, 15)), "bio1"),
        "bio12": make_layer(rng.uniform(100, 2000, (15, 15)), "bio12"),
    })


@pytest.fixture
def species(stack):
    parameters = {
        "bio1": {"fun": "gaussian", "args": {"mean": 15, "sd": 5}},
        "bio12": {"fun": "linear", "args": {"a": 1, "b": 0}},
    }
    return generate_from_responses(stack, parameters)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_response_curve_is_rescaled(species):
    curve = response_curve(species.details, "bio1")
    assert len(curve) == 1000
    assert curve["value"].iloc[0] == species.details.parameters["bio1"].observed_min
    assert curve["response"].min() >= -1e-9
    assert curve["response"].max() == pytest.approx(1.0, abs=0.05)


def test_plot_response(species, tmp_path):
    output_path = tmp_path / "plots" / "response.png"
    fig = plot_response(species, output_path=output_path)
    assert isinstance(fig, plt.Figure)
    assert output_path.exists()


def test_plot_pca_niche(stack):
    species = generate_from_pca(stack, rng=0)
    fig = plot_response(species, raster_stack=stack)
    assert isinstance(fig, plt.Figure)


def test_plot_suitability_and_pa(species):
    assert isinstance(plot_suitability(species), plt.Figure)

    with pytest.raises(InvalidInputError):
        plot_pa(species)

    converted = convert_to_pa(species, species_prevalence=0.3, rng=0)
    assert isinstance(plot_pa(converted), plt.Figure)


def test_plot_occurrences(species):
    converted = convert_to_pa(species, species_prevalence=0.3, rng=0)
    result = sample_occurrences(converted, n=20, type="presence-absence", detection_probability=0.7, rng=0)
    assert isinstance(plot_occurrences(result), plt.Figure)


def test_plot_flag_calls_plots(stack):
    parameters = {
        "bio1": {"fun": "linear", "args": {}},
        "bio12": {"fun": "linear", "args": {}},
    }
    species = generate_from_responses(stack, parameters, plot=True)
    assert len(plt.get_fignums()) == 1
    convert_to_pa(species, species_prevalence=0.5, rng=0, plot=True)
    assert len(plt.get_fignums()) == 2
