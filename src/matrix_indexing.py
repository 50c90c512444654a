"""Turning index expressions into concrete row or column positions.

An index expression is one of

    an int                       a single position
    a sequence of ints           list, tuple, range, 1-D numpy array or tensor
    a slice                      Python slice semantics over the dimension
    the wildcard ":"             every position, in order

Sequences are used as given: order and duplicates are preserved.
"""

import numbers
from typing import Any, Mapping

import numpy as np
import torch

from matrix_errors import OutOfRangeError, check_not_none

WILDCARD = ":"


def is_single_index(expression: Any) -> bool:
    return isinstance(expression, (numbers.Integral, np.integer)) and not isinstance(
        expression, (bool, np.bool_)
    )


def check_index(index: int, dimension: int, param_name: str) -> int:
    if not is_single_index(index):
        raise OutOfRangeError(param_name, f"{index!r} is not an integer index")
    index = int(index)
    if not 0 <= index < dimension:
        raise OutOfRangeError(
            param_name, f"Index {index} exceeds the dimension {dimension}"
        )
    return index


def resolve(expression: Any, dimension: int, param_name: str) -> np.ndarray:
    """The positions an index expression selects, as an int64 array."""
    check_not_none(expression, param_name)

    if isinstance(expression, str):
        if expression == WILDCARD:
            return np.arange(dimension, dtype=np.int64)
        raise OutOfRangeError(
            param_name, f"Unsupported index expression {expression!r}"
        )

    if is_single_index(expression):
        return np.array([check_index(expression, dimension, param_name)], dtype=np.int64)

    if isinstance(expression, slice):
        positions = np.arange(dimension, dtype=np.int64)[expression]
    else:
        if isinstance(expression, torch.Tensor):
            expression = expression.numpy()
        try:
            positions = np.asarray(list(expression))
        except TypeError:
            raise OutOfRangeError(
                param_name, f"{type(expression).__name__} is not an index expression"
            ) from None
        if positions.ndim != 1 or not (
            positions.size == 0 or np.issubdtype(positions.dtype, np.integer)
        ):
            raise OutOfRangeError(param_name, "Indexes must be a flat sequence of integers")
        positions = positions.astype(np.int64)

    if positions.size == 0:
        raise OutOfRangeError(param_name, "Index expression selects no positions")
    if positions.min() < 0 or positions.max() >= dimension:
        raise OutOfRangeError(
            param_name, f"Indexes exceed the dimension {dimension}"
        )
    return positions


def forward_names(names: Mapping[int, str], positions: np.ndarray) -> dict[int, str]:
    """Names for a selection: output position k takes the name of source position positions[k]."""
    if not names:
        return {}
    return {k: names[p] for k, p in enumerate(positions.tolist()) if p in names}
