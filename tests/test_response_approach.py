import pytest
import numpy as np
import xarray as xr
import rioxarray as rxr

from vsp.exceptions import ConfigurationError, DegenerateRasterError, InvalidInputError
from vsp.generation.response_approach import generate_from_responses, SUITABILITY_NAME
from vsp.species import Approach, ResponseDetails, VirtualSpecies


def make_layer(values: np.ndarray, name: str) -> xr.DataArray:
    ny, nx = values.shape
    layer = xr.DataArray(
        np.asarray(values, dtype=float),
        coords={"y": (ny - 0.5) - np.arange(ny), "x": np.arange(nx) + 0.5},
        dims=("y", "x"),
        name=name,
    )
    return layer.rio.write_crs("EPSG:3857")


@pytest.fixture
def sequence_stack() -> xr.Dataset:
    """A single 10x10 layer holding 1..100."""
    return xr.Dataset({"v": make_layer(np.arange(1, 101).reshape(10, 10), "v")})


@pytest.fixture
def two_layer_stack() -> xr.Dataset:
    rng = np.random.default_rng(0)
    return xr.Dataset({
        "bio1": make_layer(rng.uniform(0, 10, (10, 10)), "bio1"),
        "bio12": make_layer(rng.uniform(100, 1000, (10, 10)), "bio12"),
    })


@pytest.fixture
def linear_parameters() -> dict:
    return {"v": {"fun": "linear", "args": {"a": 1, "b": 0}}}


def test_linear_response_rescaled(sequence_stack, linear_parameters):
    """Suitability of a 1..100 grid with a linear response is (v - 1) / 99."""
    species = generate_from_responses(sequence_stack, linear_parameters)
    expected = (np.arange(1, 101).reshape(10, 10) - 1) / 99

    assert isinstance(species, VirtualSpecies)
    assert species.approach == Approach.RESPONSE
    assert species.suitability_raster.name == SUITABILITY_NAME
    np.testing.assert_allclose(species.suitability_raster.values, expected)
    assert float(species.suitability_raster.min()) == 0.0
    assert float(species.suitability_raster.max()) == 1.0
    assert species.suitability_raster.rio.crs == sequence_stack["v"].rio.crs


def test_details_are_recorded(sequence_stack, linear_parameters):
    species = generate_from_responses(sequence_stack, linear_parameters)
    details = species.details

    assert isinstance(details, ResponseDetails)
    assert details.variables == ["v"]
    assert details.formula == "v"
    assert details.species_type == "multiplicative"
    assert details.parameters["v"].observed_min == 1.0
    assert details.parameters["v"].observed_max == 100.0
    assert details.response_ranges["v"] == (1.0, 100.0)


def test_no_rescale_keeps_raw_values(sequence_stack, linear_parameters):
    species = generate_from_responses(
        sequence_stack, linear_parameters, rescale=False, rescale_each_response=False
    )
    np.testing.assert_allclose(
        species.suitability_raster.values, np.arange(1, 101).reshape(10, 10)
    )


def test_nan_cells_stay_nan(sequence_stack, linear_parameters):
    sequence_stack["v"][0, 0] = np.nan
    species = generate_from_responses(sequence_stack, linear_parameters)
    assert np.isnan(species.suitability_raster.values[0, 0])
    assert np.count_nonzero(np.isnan(species.suitability_raster.values)) == 1


def test_multiplicative_and_additive(two_layer_stack):
    parameters = {
        "bio1": {"fun": "linear", "args": {"a": 1, "b": 0}},
        "bio12": {"fun": "linear", "args": {"a": 1, "b": 0}},
    }
    bio1 = two_layer_stack["bio1"].values
    bio12 = two_layer_stack["bio12"].values

    multiplicative = generate_from_responses(
        two_layer_stack, parameters, rescale=False, rescale_each_response=False
    )
    np.testing.assert_allclose(multiplicative.suitability_raster.values, bio1 * bio12)
    assert multiplicative.details.formula == "bio1 * bio12"

    additive = generate_from_responses(
        two_layer_stack, parameters, rescale=False, rescale_each_response=False,
        species_type="additive",
    )
    np.testing.assert_allclose(additive.suitability_raster.values, bio1 + bio12)
    assert additive.details.formula == "bio1 + bio12"


def test_formula(two_layer_stack):
    parameters = {
        "bio1": {"fun": "linear", "args": {"a": 1, "b": 0}},
        "bio12": {"fun": "linear", "args": {"a": 1, "b": 0}},
    }
    species = generate_from_responses(
        two_layer_stack, parameters, formula="2 * bio1 + bio12 / 100",
        rescale=False, rescale_each_response=False,
    )
    expected = 2 * two_layer_stack["bio1"].values + two_layer_stack["bio12"].values / 100
    np.testing.assert_allclose(species.suitability_raster.values, expected)
    assert species.details.species_type is None


def test_suitability_in_unit_interval(two_layer_stack):
    parameters = {
        "bio1": {"fun": "gaussian", "args": {"mean": 5, "sd": 2}},
        "bio12": {"fun": "logistic", "args": {"alpha": -50, "beta": 500}},
    }
    species = generate_from_responses(two_layer_stack, parameters)
    values = species.suitability_raster.values
    assert values.min() == 0.0
    assert values.max() == 1.0


def test_callable_response(sequence_stack):
    def cubic(x, a=1.0):
        return a * x ** 3

    species = generate_from_responses(
        sequence_stack, {"v": {"fun": cubic, "args": {"a": 2.0}}}, rescale=False,
        rescale_each_response=False,
    )
    assert float(species.suitability_raster.max()) == pytest.approx(2.0e6)
    assert species.details.parameters["v"].function_name == "cubic"


def test_mismatched_names(sequence_stack):
    with pytest.raises(ConfigurationError, match="identical"):
        generate_from_responses(sequence_stack, {"w": {"fun": "linear", "args": {}}})


def test_mismatched_counts(sequence_stack):
    parameters = {
        "v": {"fun": "linear", "args": {}},
        "w": {"fun": "linear", "args": {}},
    }
    with pytest.raises(ConfigurationError):
        generate_from_responses(sequence_stack, parameters)


def test_unknown_function(sequence_stack):
    with pytest.raises(ConfigurationError, match="does not exist"):
        generate_from_responses(sequence_stack, {"v": {"fun": "cubic", "args": {}}})


def test_unknown_argument(sequence_stack):
    with pytest.raises(ConfigurationError, match="'v'"):
        generate_from_responses(sequence_stack, {"v": {"fun": "linear", "args": {"slope": 1}}})


def test_formula_missing_variable(two_layer_stack):
    parameters = {
        "bio1": {"fun": "linear", "args": {}},
        "bio12": {"fun": "linear", "args": {}},
    }
    with pytest.raises(ConfigurationError):
        generate_from_responses(two_layer_stack, parameters, formula="2 * bio1")


def test_invalid_species_type(sequence_stack, linear_parameters):
    with pytest.raises(ConfigurationError):
        generate_from_responses(sequence_stack, linear_parameters, species_type="exponential")


def test_constant_response_cannot_be_rescaled(sequence_stack):
    with pytest.raises(DegenerateRasterError):
        generate_from_responses(sequence_stack, {"v": {"fun": "linear", "args": {"a": 0, "b": 1}}})


def test_dataarray_instead_of_stack(sequence_stack, linear_parameters):
    with pytest.raises(InvalidInputError):
        generate_from_responses(sequence_stack["v"], linear_parameters)
