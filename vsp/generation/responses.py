"""
Response functions mapping an environmental value to a species response.

Every function takes the environmental values as its first positional
argument and its shape parameters as keywords, and works elementwise on
numpy arrays and xarray DataArrays alike.
"""
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

import numpy as np
import xarray as xr
from scipy import special, stats

from vsp.exceptions import ConfigurationError
from vsp.species import ResponseParameters

logger = logging.getLogger(__name__)


def linear(x, a: float = 1.0, b: float = 0.0):
    """Linear response, a * x + b."""
    return a * x + b


def quadratic(x, a: float = -1.0, b: float = 2.0, c: float = 0.0):
    """Quadratic response, a * x^2 + b * x + c."""
    return a * x ** 2 + b * x + c


def logistic(x, alpha: float = -0.05, beta: float = 0.5):
    """
    Logistic response, 1 / (1 + exp((x - beta) / alpha)).

    beta is the inflexion point. A negative alpha gives an increasing curve,
    a positive alpha a decreasing one; the smaller |alpha|, the steeper.
    """
    if alpha == 0:
        raise ConfigurationError("alpha must be non-zero for a logistic response")
    return special.expit(-(x - beta) / alpha)


def gaussian(x, mean: float = 0.0, sd: float = 1.0, extreme_value: Optional[float] = None):
    """
    Normal density response.

    When extreme_value is given, the skew-normal density with that shape
    parameter is used instead: positive values skew the response towards
    high environmental values, negative values towards low ones, and 0 gives
    back the normal density.
    """
    if sd <= 0:
        raise ConfigurationError(f"sd must be positive for a gaussian response, got {sd}")
    if extreme_value is None:
        return _apply(stats.norm.pdf, x, loc=mean, scale=sd)
    return _apply(stats.skewnorm.pdf, x, extreme_value, loc=mean, scale=sd)


def _apply(func: Callable, x, *args, **kwargs):
    # scipy distributions return plain ndarrays, keep labels for DataArrays
    if isinstance(x, xr.DataArray):
        return x.copy(data=func(np.asarray(x.values, dtype=float), *args, **kwargs))
    return func(x, *args, **kwargs)


def function_parameters(func: Callable) -> Dict[str, inspect.Parameter]:
    """Keyword parameters a response function accepts, excluding the values argument."""
    signature = inspect.signature(func)
    parameters = list(signature.parameters.values())
    if not parameters or parameters[0].kind not in (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
        inspect.Parameter.VAR_POSITIONAL,
    ):
        raise ConfigurationError(
            f"Response function {getattr(func, '__name__', func)!r} must take the "
            "environmental values as its first positional argument"
        )
    return {
        p.name: p
        for p in parameters[1:]
        if p.kind in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
    }


class ResponseRegistry:
    """Named response functions, validated when registered."""

    def __init__(self, functions: Optional[Mapping[str, Callable]] = None):
        self._functions: Dict[str, Callable] = {}
        for name, func in (functions or {}).items():
            self.register(name, func)

    def register(self, name: str, func: Callable) -> Callable:
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Response function names must be non-empty strings, got {name!r}")
        if not callable(func):
            raise ConfigurationError(f"Response function {name!r} is not callable")
        function_parameters(func)
        if name in self._functions and self._functions[name] is not func:
            logger.warning("Replacing registered response function %r", name)
        self._functions[name] = func
        return func

    def get(self, name: str) -> Callable:
        try:
            return self._functions[name]
        except KeyError:
            raise ConfigurationError(
                f"The function {name!r} does not exist, please verify spelling. "
                f"Registered functions: {', '.join(sorted(self._functions))}"
            )

    def names(self) -> Iterable[str]:
        return sorted(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def resolve(self, function: Union[str, Callable]) -> Callable:
        """Turn a registered name or a user callable into a validated function."""
        if isinstance(function, str):
            return self.get(function)
        if callable(function):
            function_parameters(function)
            return function
        raise ConfigurationError(f"A response function must be a name or a callable, got {function!r}")


default_registry = ResponseRegistry(
    {
        "linear": linear,
        "quadratic": quadratic,
        "logistic": logistic,
        "gaussian": gaussian,
    }
)


def register_response(name: str, registry: ResponseRegistry = default_registry):
    """Decorator registering a user response function under a name."""
    def decorator(func: Callable) -> Callable:
        return registry.register(name, func)
    return decorator


def validate_parameters(
    variable: str,
    parameters: ResponseParameters,
    registry: ResponseRegistry = default_registry,
) -> Callable:
    """
    Check a parameter block and return the function it refers to.

    Raises:
        ConfigurationError: If the function is unknown or an argument is not
            accepted by it.
    """
    func = registry.resolve(parameters.function)
    accepted = function_parameters(func)
    unknown = [arg for arg in parameters.args if arg not in accepted]
    if unknown:
        raise ConfigurationError(
            f"Arguments of variable '{variable}' ({', '.join(parameters.args)}) do not match "
            f"arguments of the associated function. List of possible arguments for this "
            f"function: {', '.join(accepted)}"
        )
    return func


def as_response_parameters(variable: str, block: Any) -> ResponseParameters:
    """Accept a ResponseParameters or a {'fun': ..., 'args': {...}} mapping."""
    if isinstance(block, ResponseParameters):
        return block
    if isinstance(block, Mapping):
        if "fun" not in block:
            raise ConfigurationError(
                f"The structure of parameters does not seem correct. Please provide "
                f"function and arguments for variable '{variable}'."
            )
        args = block.get("args") or {}
        if not isinstance(args, Mapping):
            raise ConfigurationError(f"Arguments of variable '{variable}' must be a mapping")
        return ResponseParameters(function=block["fun"], args=dict(args))
    raise ConfigurationError(
        f"Parameters of variable '{variable}' must be a ResponseParameters or a mapping "
        f"with 'fun' and 'args', got {type(block)}"
    )


def format_functions(registry: ResponseRegistry = default_registry, **blocks: Mapping[str, Any]) -> Dict[str, ResponseParameters]:
    """
    Build the parameter mapping for generate_from_responses.

    Example:
        format_functions(
            bio1={"fun": "gaussian", "mean": 250, "sd": 50},
            bio12={"fun": "linear", "a": 1, "b": 0},
        )
    """
    parameters = {}
    for variable, block in blocks.items():
        block = dict(block)
        if "fun" not in block:
            raise ConfigurationError(f"No response function ('fun') given for variable '{variable}'")
        function = block.pop("fun")
        response = ResponseParameters(function=function, args=block)
        validate_parameters(variable, response, registry)
        parameters[variable] = response
    return parameters
