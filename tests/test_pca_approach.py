import pytest
import numpy as np
import xarray as xr
import rioxarray as rxr

from vsp.exceptions import ConfigurationError
from vsp.generation.pca_approach import (
    create_pca_pipeline,
    fit_pca,
    gaussian_niche,
    generate_from_bca,
    generate_from_pca,
)
from vsp.raster.utils import stack_to_frame
from vsp.species import Approach, BCADetails, PCADetails


def make_layer(values: np.ndarray, name: str) -> xr.DataArray:
    ny, nx = values.shape
    layer = xr.DataArray(
        np.asarray(values, dtype=float),
        coords={"y": (ny - 0.5) - np.arange(ny), "x": np.arange(nx) + 0.5},
        dims=("y", "x"),
        name=name,
    )
    return layer.rio.write_crs("EPSG:3857")


def make_stack(seed: int, shift: float = 0.0) -> xr.Dataset:
    rng = np.random.default_rng(seed)
    temperature = rng.normal(10 + shift, 3, (20, 20))
    rainfall = 50 * temperature + rng.normal(0, 40, (20, 20))
    elevation = rng.uniform(0, 1000, (20, 20))
    return xr.Dataset({
        "bio1": make_layer(temperature, "bio1"),
        "bio12": make_layer(rainfall, "bio12"),
        "elev": make_layer(elevation, "elev"),
    })


@pytest.fixture
def stack() -> xr.Dataset:
    return make_stack(seed=1)


@pytest.fixture
def future_stack() -> xr.Dataset:
    return make_stack(seed=2, shift=3.0)


def test_gaussian_niche_peaks_at_means():
    scores = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 2.0]])
    values = gaussian_niche(scores, means=np.array([0.0, 0.0]), sds=np.array([1.0, 2.0]))
    np.testing.assert_allclose(values, [1.0, np.exp(-0.5), np.exp(-0.5)])


def test_generate_from_pca(stack):
    species = generate_from_pca(stack, rng=42)
    values = species.suitability_raster.values

    assert species.approach == Approach.PCA
    assert isinstance(species.details, PCADetails)
    assert values.min() == 0.0
    assert values.max() == 1.0
    assert species.details.axes == [1, 2]
    assert species.details.niche_breadth == "any"
    assert species.details.means.shape == (2,)
    assert species.suitability_raster.rio.crs == stack["bio1"].rio.crs


def test_same_seed_same_species(stack):
    first = generate_from_pca(stack, rng=7)
    second = generate_from_pca(stack, rng=7)
    np.testing.assert_array_equal(first.details.means, second.details.means)
    np.testing.assert_array_equal(first.details.sds, second.details.sds)
    np.testing.assert_array_equal(first.suitability_raster.values, second.suitability_raster.values)


def test_niche_breadth_bounds_sds(stack):
    cells, _ = stack_to_frame(stack)
    scores = fit_pca(cells).transform(cells)[:, :2]
    score_range = scores.max(axis=0) - scores.min(axis=0)

    species = generate_from_pca(stack, niche_breadth="narrow", rng=3)
    sds = species.details.sds
    assert np.all(sds >= 0.01 * score_range - 1e-9)
    assert np.all(sds <= 0.1 * score_range + 1e-9)


def test_given_means_and_sds(stack):
    species = generate_from_pca(stack, means=[0, 0], sds=[1, 1], rescale=False)
    cells, valid_mask = stack_to_frame(stack)
    scores = species.details.pca.transform(cells)[:, :2]
    expected = gaussian_niche(scores, np.zeros(2), np.ones(2))

    np.testing.assert_allclose(species.suitability_raster.values[valid_mask], expected)
    assert species.details.niche_breadth is None
    assert species.details.min_prob_rescale is None


def test_other_axes(stack):
    species = generate_from_pca(stack, axes=[1, 3], rng=0)
    assert species.details.axes == [1, 3]


@pytest.mark.parametrize("axes", [[1], [1, 1], [0, 1], [1, 4]])
def test_invalid_axes(stack, axes):
    with pytest.raises(ConfigurationError):
        generate_from_pca(stack, axes=axes, rng=0)


def test_invalid_niche_breadth(stack):
    with pytest.raises(ConfigurationError):
        generate_from_pca(stack, niche_breadth="medium", rng=0)


def test_invalid_sds(stack):
    with pytest.raises(ConfigurationError):
        generate_from_pca(stack, means=[0, 0], sds=[1, -1])


def test_single_variable(stack):
    with pytest.raises(ConfigurationError):
        generate_from_pca(stack[["bio1"]], rng=0)


def test_reuse_pca(stack):
    first = generate_from_pca(stack, rng=0)
    second = generate_from_pca(stack, pca=first.details.pca, means=first.details.means, sds=first.details.sds)
    np.testing.assert_allclose(first.suitability_raster.values, second.suitability_raster.values)


def test_reuse_pca_with_other_variables(stack):
    cells, _ = stack_to_frame(stack[["bio1", "bio12"]])
    pca = create_pca_pipeline().fit(cells)
    with pytest.raises(ConfigurationError):
        generate_from_pca(stack, pca=pca, rng=0)


def test_sample_points(stack):
    species = generate_from_pca(stack, sample_points=True, nb_points=50, rng=0)
    assert species.details.sample_points is True
    assert species.details.nb_points == 50
    # Fitted on the sample only
    assert species.details.pca[0].n_samples_seen_ == 50
    # Rescaled over every cell of the grid
    values = species.suitability_raster.values
    assert np.count_nonzero(np.isnan(values)) == 0
    assert values.min() == pytest.approx(0.0)
    assert values.max() == pytest.approx(1.0)


def test_fit_pca_on_sample(stack):
    cells, _ = stack_to_frame(stack)
    assert fit_pca(cells, sample_points=True, nb_points=30, rng=0)[0].n_samples_seen_ == 30
    assert fit_pca(cells, sample_points=True, nb_points=1000, rng=0)[0].n_samples_seen_ == 400


def test_nan_cells_stay_nan(stack):
    stack["elev"][3, 4] = np.nan
    species = generate_from_pca(stack, rng=0)
    assert np.isnan(species.suitability_raster.values[3, 4])
    assert np.count_nonzero(np.isnan(species.suitability_raster.values)) == 1


def test_generate_from_bca(stack, future_stack):
    species = generate_from_bca(stack, future_stack, rng=5)
    details = species.details

    assert species.approach == Approach.BCA
    assert isinstance(details, BCADetails)
    assert details.stack_lengths == (400, 400)
    future = details.future_suitability_raster
    assert future.shape == species.suitability_raster.shape
    # Both periods are rescaled with the same bounds
    overall_max = max(float(species.suitability_raster.max()), float(future.max()))
    overall_min = min(float(species.suitability_raster.min()), float(future.min()))
    assert overall_max == 1.0
    assert overall_min == 0.0


def test_bca_needs_same_variables(stack, future_stack):
    with pytest.raises(ConfigurationError):
        generate_from_bca(stack, future_stack[["bio1", "bio12"]], rng=0)
