"""Errors raised by the matrix engine.

Every error carries the name of the offending parameter, so callers can tell
which argument of a call was rejected. The classes also derive from the
closest built-in exception, which keeps ``except ValueError`` and friends
working for code that does not know about this module.

Here is the class hierarchy:

MatrixError
├── NullArgumentError (also TypeError)
├── OutOfRangeError (also IndexError, ValueError)
├── DimensionMismatchError (also ValueError)
├── RankDeficiencyError (also ArithmeticError)
│   └── SingularMatrixError
├── InvalidStateError (also RuntimeError)
└── NotSupportedError (also NotImplementedError)
"""

from typing import Any


class MatrixError(Exception):
    "Base class for matrix engine errors."

    def __init__(self, param_name: str | None, message: str):
        self.param_name = param_name
        self.message = message
        if param_name is None:
            super().__init__(message)
        else:
            super().__init__(f"{message} (parameter '{param_name}')")


class NullArgumentError(MatrixError, TypeError):
    """A required argument was None."""

    def __init__(self, param_name: str):
        super().__init__(param_name, "Value cannot be None")


class OutOfRangeError(MatrixError, IndexError, ValueError):
    """An argument is outside its valid range.

    Covers non-positive dimensions, indexes exceeding the matrix dimensions,
    negative capacities, and reserved or blank names.
    """


class DimensionMismatchError(MatrixError, ValueError):
    """Operand shapes or data lengths are inconsistent."""


class RankDeficiencyError(MatrixError, ArithmeticError):
    """The right operand of a division cannot be factored."""


class SingularMatrixError(RankDeficiencyError):
    """A factorization met a zero pivot."""


class InvalidStateError(MatrixError, RuntimeError):
    """An object was used while in a state that does not allow the call."""


class NotSupportedError(MatrixError, NotImplementedError):
    """The operation is not supported by this kind of object."""


def check_not_none(value: Any, param_name: str) -> None:
    if value is None:
        raise NullArgumentError(param_name)


def check_name(name: Any, param_name: str) -> str:
    """Validate a row or column label."""
    check_not_none(name, param_name)
    if not isinstance(name, str) or not name.strip():
        raise OutOfRangeError(
            param_name, "Name cannot be empty or consist only of white spaces"
        )
    if name == ":":
        raise OutOfRangeError(param_name, "Name cannot be the reserved string ':'")
    return name
