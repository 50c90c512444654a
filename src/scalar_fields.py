"""The two scalar domains a matrix can hold.

A Field bundles the torch dtype used for storage with the few scalar
operations the engine needs to stay generic over real and complex entries:
coercion, conjugation, reciprocal, and the zero test. Binary operators
promote their operands' fields with `promote`, so that the four pairings
real/real, real/complex, complex/real and complex/complex all flow through
the same code.
"""

import dataclasses as dc
import numbers
from typing import Any

import numpy as np
import torch

from matrix_errors import OutOfRangeError, check_not_none


@dc.dataclass(frozen=True)
class Field:
    name: str
    dtype: torch.dtype
    python_type: type

    @property
    def is_complex(self) -> bool:
        return self.dtype.is_complex

    @property
    def zero(self) -> float | complex:
        return self.python_type(0)

    @property
    def one(self) -> float | complex:
        return self.python_type(1)

    def coerce(self, value: Any, param_name: str = "value") -> float | complex:
        "Convert a Python, numpy or 0-d torch scalar to this field's type."
        check_not_none(value, param_name)
        if isinstance(value, torch.Tensor):
            if value.numel() != 1:
                raise OutOfRangeError(param_name, "Tensor value must hold one element")
            value = value.item()
        if not isinstance(value, (numbers.Number, np.bool_)):
            raise OutOfRangeError(
                param_name, f"Value of type {type(value).__name__} is not a scalar"
            )
        if self.is_complex:
            return complex(value)
        if isinstance(value, numbers.Complex) and not isinstance(value, numbers.Real):
            if value.imag != 0:
                raise OutOfRangeError(
                    param_name, "A complex value cannot be stored in a real matrix"
                )
            value = value.real
        return float(value)

    def conjugate(self, value: float | complex) -> float | complex:
        if self.is_complex:
            return value.conjugate()
        return value

    def reciprocal(self, value: float | complex) -> float | complex:
        if self.is_zero(value):
            raise ZeroDivisionError("Reciprocal of zero")
        if self.is_complex:
            # 1/z = conj(z) / |z|^2
            value = complex(value)
            squared_modulus = value.real * value.real + value.imag * value.imag
            return self.conjugate(value) / squared_modulus
        return 1.0 / value

    @staticmethod
    def is_zero(value: float | complex) -> bool:
        return value == 0


REAL = Field("real", torch.float64, float)
COMPLEX = Field("complex", torch.complex128, complex)


def promote(*fields: Field) -> Field:
    "The smallest field containing all the given ones."
    return COMPLEX if any(f.is_complex for f in fields) else REAL


def field_of_dtype(dtype: torch.dtype) -> Field:
    return COMPLEX if dtype.is_complex else REAL


def field_of_value(value: Any) -> Field:
    "The field a Python, numpy or torch scalar naturally belongs to."
    if isinstance(value, torch.Tensor):
        return field_of_dtype(value.dtype)
    if isinstance(value, (complex, np.complexfloating)):
        return COMPLEX
    if isinstance(value, numbers.Complex) and not isinstance(value, numbers.Real):
        return COMPLEX
    return REAL


def is_scalar(value: Any) -> bool:
    if isinstance(value, torch.Tensor):
        return value.ndim == 0
    return isinstance(value, numbers.Number)
