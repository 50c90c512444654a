import numpy as np
import pytest
import torch

from matrix_errors import (
    DimensionMismatchError,
    MatrixError,
    NullArgumentError,
    OutOfRangeError,
    RankDeficiencyError,
    SingularMatrixError,
    check_name,
)
from scalar_fields import COMPLEX, REAL, field_of_value, is_scalar, promote


class TestFields:
    def test_promote(self):
        assert promote(REAL, REAL) is REAL
        assert promote(REAL, COMPLEX) is COMPLEX
        assert promote(COMPLEX, REAL) is COMPLEX

    def test_coerce(self):
        assert REAL.coerce(3) == 3.0
        assert REAL.coerce(np.float32(0.5)) == 0.5
        assert REAL.coerce(torch.tensor(2.0)) == 2.0
        assert REAL.coerce(1 + 0j) == 1.0
        assert COMPLEX.coerce(2) == 2 + 0j

    def test_coerce_rejects(self):
        with pytest.raises(OutOfRangeError, match="value"):
            REAL.coerce(1j)
        with pytest.raises(OutOfRangeError, match="entry"):
            REAL.coerce("1", "entry")
        with pytest.raises(NullArgumentError):
            COMPLEX.coerce(None)

    def test_reciprocal(self):
        assert REAL.reciprocal(4.0) == 0.25
        assert COMPLEX.reciprocal(1j) == -1j
        with pytest.raises(ZeroDivisionError):
            COMPLEX.reciprocal(0j)

    def test_field_of_value(self):
        assert field_of_value(1.0) is REAL
        assert field_of_value(np.complex128(1j)) is COMPLEX
        assert field_of_value(torch.tensor([1j])) is COMPLEX

    def test_is_scalar(self):
        assert is_scalar(2)
        assert is_scalar(torch.tensor(1.0))
        assert not is_scalar(torch.tensor([1.0]))
        assert not is_scalar([1.0])


class TestErrors:
    def test_message_names_parameter(self):
        error = DimensionMismatchError("right", "Shapes differ")
        assert error.param_name == "right"
        assert str(error) == "Shapes differ (parameter 'right')"

    def test_builtin_bases(self):
        assert issubclass(OutOfRangeError, IndexError)
        assert issubclass(OutOfRangeError, ValueError)
        assert issubclass(SingularMatrixError, RankDeficiencyError)
        assert issubclass(RankDeficiencyError, MatrixError)

    def test_check_name(self):
        assert check_name("alpha", "name") == "alpha"
        with pytest.raises(OutOfRangeError, match="reserved"):
            check_name(":", "name")
        with pytest.raises(OutOfRangeError):
            check_name(3, "name")
