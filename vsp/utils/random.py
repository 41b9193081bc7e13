"""Random generator handling.

Every stochastic operation takes an explicit generator handle. The state of
the generator before any draw can be stored and restored later to reproduce
the same draws.
"""
import copy
from typing import Any, Dict, Optional, Union

import numpy as np

RandomLike = Optional[Union[int, np.random.Generator]]


def as_generator(rng: RandomLike = None) -> np.random.Generator:
    """Normalise a seed, a generator or None into a numpy Generator."""
    if isinstance(rng, np.random.RandomState):
        raise TypeError("Legacy RandomState objects are not supported, pass a numpy Generator")
    return np.random.default_rng(rng)


def snapshot_state(rng: np.random.Generator) -> Dict[str, Any]:
    """Deep copy of the generator state, safe to keep after further draws."""
    return copy.deepcopy(rng.bit_generator.state)


def restore_generator(state: Dict[str, Any]) -> np.random.Generator:
    """Build a new Generator positioned exactly at a stored state."""
    bit_generator_name = state["bit_generator"]
    try:
        bit_generator_cls = getattr(np.random, bit_generator_name)
    except AttributeError:
        raise ValueError(f"Unknown bit generator in stored state: {bit_generator_name}")
    bit_generator = bit_generator_cls()
    bit_generator.state = copy.deepcopy(state)
    return np.random.Generator(bit_generator)
