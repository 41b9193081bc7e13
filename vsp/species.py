"""
Result types of the virtual species pipeline.

A VirtualSpecies carries one of three detail records, depending on how its
suitability was generated, and optional records added by presence/absence
conversion and distribution limitation.
"""
import dataclasses
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
import xarray as xr


class Approach(StrEnum):
    RESPONSE = "response"
    PCA = "pca"
    BCA = "bca"


@dataclass
class ResponseParameters:
    """Response function and its arguments for one environmental variable."""
    function: Union[str, Callable]
    args: Dict[str, Any] = field(default_factory=dict)
    observed_min: Optional[float] = None
    observed_max: Optional[float] = None

    @property
    def function_name(self) -> str:
        if isinstance(self.function, str):
            return self.function
        return getattr(self.function, "__name__", repr(self.function))


@dataclass
class ResponseDetails:
    variables: List[str]
    formula: str
    species_type: Optional[str]
    rescale_each_response: bool
    rescale: bool
    parameters: Dict[str, ResponseParameters]
    response_ranges: Dict[str, Tuple[float, float]] = field(default_factory=dict)


@dataclass
class PCADetails:
    variables: List[str]
    pca: Any  # fitted sklearn Pipeline (StandardScaler -> PCA)
    axes: List[int]
    means: np.ndarray
    sds: np.ndarray
    rescale: bool
    niche_breadth: Optional[str] = None
    min_prob_rescale: Optional[float] = None
    max_prob_rescale: Optional[float] = None
    sample_points: bool = False
    nb_points: Optional[int] = None


@dataclass
class BCADetails(PCADetails):
    stack_lengths: Tuple[int, int] = (0, 0)
    future_suitability_raster: Optional[xr.DataArray] = None


SpeciesDetails = Union[ResponseDetails, PCADetails, BCADetails]


@dataclass
class PAConversion:
    """Record of a presence/absence conversion."""
    method: str
    pa_raster: xr.DataArray
    probability_of_occurrence: xr.DataArray
    realised_prevalence: float
    alpha: Optional[float] = None
    beta: Optional[float] = None
    a: Optional[float] = None
    b: Optional[float] = None
    species_prevalence: Optional[float] = None
    rng_state: Optional[Dict[str, Any]] = None


@dataclass
class DistributionLimitation:
    """Record of a geographical limitation of the presences."""
    geographical_limit: str
    area: Any
    occupied_area: xr.DataArray


@dataclass
class VirtualSpecies:
    details: SpeciesDetails
    suitability_raster: xr.DataArray
    conversion: Optional[PAConversion] = None
    limitation: Optional[DistributionLimitation] = None

    @property
    def approach(self) -> Approach:
        if isinstance(self.details, BCADetails):
            return Approach.BCA
        if isinstance(self.details, PCADetails):
            return Approach.PCA
        return Approach.RESPONSE

    @property
    def pa_raster(self) -> Optional[xr.DataArray]:
        return self.conversion.pa_raster if self.conversion is not None else None

    @property
    def probability_of_occurrence(self) -> Optional[xr.DataArray]:
        return self.conversion.probability_of_occurrence if self.conversion is not None else None

    @property
    def occupied_area(self) -> Optional[xr.DataArray]:
        return self.limitation.occupied_area if self.limitation is not None else None

    def with_conversion(self, conversion: PAConversion) -> "VirtualSpecies":
        return dataclasses.replace(self, conversion=conversion)

    def with_limitation(self, limitation: DistributionLimitation) -> "VirtualSpecies":
        return dataclasses.replace(self, limitation=limitation)

    def __repr__(self) -> str:
        lines = [f"Virtual species generated with the '{self.approach}' approach"]
        if isinstance(self.details, ResponseDetails):
            lines.append(f"- Variables: {', '.join(self.details.variables)}")
            lines.append(f"- Formula: {self.details.formula}")
        else:
            lines.append(f"- Variables: {', '.join(self.details.variables)}")
            lines.append(f"- PCA axes: {self.details.axes}")
        if self.conversion is not None:
            lines.append(
                f"- Converted to presence/absence ({self.conversion.method}), "
                f"prevalence = {self.conversion.realised_prevalence:.3f}"
            )
        if self.limitation is not None:
            lines.append(f"- Distribution limited by {self.limitation.geographical_limit}")
        return "\n".join(lines)


@dataclass(frozen=True)
class BiasDescriptor:
    bias: str
    bias_strength: Optional[Union[float, str]] = None
    bias_area: Any = None
    weights: Optional[xr.DataArray] = None


@dataclass(frozen=True)
class SampleResult:
    type: str
    points: pd.DataFrame
    detection_probability: float
    correct_by_suitability: bool
    error_probability: float
    bias: BiasDescriptor
    replacement: bool
    source_raster: xr.DataArray
    sample_prevalence: Dict[str, float]
    rng_state: Dict[str, Any]

    def to_geodataframe(self):
        """The sampled points as a GeoDataFrame in the source raster CRS."""
        import geopandas as gpd

        return gpd.GeoDataFrame(
            self.points.copy(),
            geometry=gpd.points_from_xy(self.points["x"], self.points["y"]),
            crs=self.source_raster.rio.crs,
        )
