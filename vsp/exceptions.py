"""Error kinds raised by the virtual species pipeline."""


class VirtualSpeciesError(Exception):
    """Base class for every error raised by vsp."""


class ConfigurationError(VirtualSpeciesError, ValueError):
    """Bad or inconsistent parameters (names, functions, formulas, bias areas)."""


class DegenerateRasterError(VirtualSpeciesError, ValueError):
    """A min-max rescale was requested over a constant (or empty) surface."""


class ConversionNotConvergedError(VirtualSpeciesError, RuntimeError):
    """The prevalence root-finder ran out of iterations."""


class PrevalenceUnreachableError(VirtualSpeciesError, ValueError):
    """No parameter value within the suitability range gives the requested prevalence."""


class InvalidInputError(VirtualSpeciesError, TypeError):
    """Input raster has the wrong value domain or the input object has the wrong type."""


class InsufficientCellsError(VirtualSpeciesError, ValueError):
    """More points were requested than there are eligible cells to draw from."""


class DegenerateWeightsError(VirtualSpeciesError, ValueError):
    """All sampling weights over the eligible cells are zero."""
