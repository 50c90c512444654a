"""The Matrix type.

A Matrix owns one storage (dense or compressed-row sparse, real or complex)
and adds what callers see: optional names for the matrix, its rows and its
columns; indexing by position, sequence, slice or the wildcard ":"; Python
operators; structural queries; and a fixed-width text rendering.

    a = Matrix.dense(2, 3, [1, 2, 3, 4, 5, 6], StorageOrder.ROW_MAJOR)
    a.set_row_name(0, "first")
    b = a[":", [1, 2]]          # 2x2, row names forwarded
    x = b / Matrix.identity(2)  # X such that X * identity = b

The number of entries of a Matrix is fixed, so the list mutators `append`,
`insert`, `remove` and `clear` are not supported.
"""

import numbers
import types
from functools import singledispatch
from typing import Any, Callable, Iterator, Mapping

import numpy as np
import torch

import matrix_operators as ops
from matrix_config import get_config
from matrix_division import divide
from matrix_errors import (
    DimensionMismatchError,
    NotSupportedError,
    OutOfRangeError,
    check_name,
    check_not_none,
)
from matrix_indexing import check_index, forward_names, is_single_index, resolve
from matrix_patterns import StructuralPattern, classify
from matrix_storage import (
    DenseStorage,
    SparseStorage,
    Storage,
    StorageOrder,
    StorageScheme,
    as_tensor,
    to_dense,
    to_sparse,
)
from scalar_fields import COMPLEX, REAL, Field, field_of_value
from scalar_fields import is_scalar as is_scalar_value


def _pattern_fact(name: str) -> property:
    def fact(self):
        return getattr(self.pattern, name)

    fact.__name__ = name
    fact.__doc__ = f"Structural fact `{name}` of the current contents."
    return property(fact)


class Matrix:
    "A real or complex matrix with dense or sparse storage."

    __array_priority__ = 1000
    __hash__ = None

    def __init__(
        self,
        storage: Storage,
        name: str | None = None,
        row_names: Mapping[int, str] | None = None,
        column_names: Mapping[int, str] | None = None,
    ):
        check_not_none(storage, "storage")
        self._storage = storage
        self.name = name
        self._row_names: dict[int, str] = dict(row_names or {})
        self._column_names: dict[int, str] = dict(column_names or {})

    # Construction

    @staticmethod
    def dense(
        number_of_rows: int,
        number_of_columns: int,
        data: Any = None,
        storage_order: StorageOrder = StorageOrder.COLUMN_MAJOR,
    ) -> "Matrix":
        """A dense matrix of zeros, filled with a scalar, or holding `data`.

        Flat `data` lists the entries in `storage_order`.
        """
        if data is None:
            return Matrix(DenseStorage.zeros(number_of_rows, number_of_columns))
        if is_scalar_value(data):
            return Matrix(
                DenseStorage.full(
                    number_of_rows, number_of_columns, data, field_of_value(data)
                )
            )
        return Matrix(
            DenseStorage.from_sequence(
                number_of_rows, number_of_columns, data, storage_order
            )
        )

    @staticmethod
    def dense_from_rows(data: Any) -> "Matrix":
        "A dense matrix from a nested sequence of rows, or a 2-D array or tensor."
        tensor = as_tensor(data)
        if tensor.ndim != 2:
            raise DimensionMismatchError("data", "Data must be two dimensional")
        return Matrix(DenseStorage.from_tensor(tensor))

    @staticmethod
    def sparse(
        number_of_rows: int,
        number_of_columns: int,
        capacity: int | None = None,
        field: Field = REAL,
    ) -> "Matrix":
        "An all-zero sparse matrix with room for `capacity` entries."
        if capacity is None:
            capacity = get_config().sparse_initial_capacity
        return Matrix(SparseStorage(number_of_rows, number_of_columns, capacity, field))

    @staticmethod
    def sparse_from_csr(
        number_of_rows: int,
        number_of_columns: int,
        values: Any,
        columns: Any,
        row_index: Any,
    ) -> "Matrix":
        return Matrix(
            SparseStorage.from_csr(
                number_of_rows, number_of_columns, values, columns, row_index
            )
        )

    @staticmethod
    def identity(dimension: int, field: Field = REAL) -> "Matrix":
        if dimension < 1:
            raise OutOfRangeError("dimension", "Dimension must be positive")
        return Matrix(
            DenseStorage.from_tensor(torch.eye(dimension, dtype=field.dtype))
        )

    @staticmethod
    def diagonal(
        diagonal: Any,
        number_of_rows: int | None = None,
        number_of_columns: int | None = None,
    ) -> "Matrix":
        """A dense matrix with the given main diagonal and zeros elsewhere.

        The matrix is square unless both dimensions are given, in which case
        the diagonal must have min(number_of_rows, number_of_columns) entries.
        """
        check_not_none(diagonal, "diagonal")
        if isinstance(diagonal, Matrix):
            if not diagonal.is_vector:
                raise OutOfRangeError("diagonal", "Diagonal must be a vector")
            values = ops.column_major_values(diagonal.storage).clone()
        else:
            values = as_tensor(diagonal, param_name="diagonal").reshape(-1)
        length = values.numel()
        if length == 0:
            raise OutOfRangeError("diagonal", "Diagonal cannot be empty")
        if number_of_rows is None and number_of_columns is None:
            number_of_rows = number_of_columns = length
        elif number_of_rows is None or number_of_columns is None:
            raise OutOfRangeError(
                "number_of_rows", "Give both dimensions of a rectangular diagonal"
            )
        elif length != min(number_of_rows, number_of_columns):
            raise DimensionMismatchError(
                "diagonal",
                "Diagonal length must be the smaller dimension of the matrix",
            )
        storage = DenseStorage.zeros(number_of_rows, number_of_columns, field_of_value(values))
        storage.as_tensor().diagonal().copy_(values)
        return Matrix(storage)

    @staticmethod
    def from_scalar(value: Any) -> "Matrix":
        return Matrix(DenseStorage.full(1, 1, value, field_of_value(value)))

    # Shape and storage

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def number_of_rows(self) -> int:
        return self._storage.number_of_rows

    @property
    def number_of_columns(self) -> int:
        return self._storage.number_of_columns

    @property
    def count(self) -> int:
        return self._storage.count

    @property
    def shape(self) -> tuple[int, int]:
        return self.number_of_rows, self.number_of_columns

    @property
    def field(self) -> Field:
        return self._storage.field

    @property
    def is_complex(self) -> bool:
        return self.field.is_complex

    @property
    def storage_scheme(self) -> StorageScheme:
        return self._storage.scheme

    def __len__(self) -> int:
        return self.count

    # Names

    @property
    def row_names(self) -> Mapping[int, str]:
        return types.MappingProxyType(self._row_names)

    @property
    def column_names(self) -> Mapping[int, str]:
        return types.MappingProxyType(self._column_names)

    @property
    def has_row_names(self) -> bool:
        return bool(self._row_names)

    @property
    def has_column_names(self) -> bool:
        return bool(self._column_names)

    def set_row_name(self, row_index: int, name: str) -> None:
        row_index = check_index(row_index, self.number_of_rows, "row_index")
        self._row_names[row_index] = check_name(name, "name")

    def set_column_name(self, column_index: int, name: str) -> None:
        column_index = check_index(column_index, self.number_of_columns, "column_index")
        self._column_names[column_index] = check_name(name, "name")

    def try_get_row_name(self, row_index: int) -> str | None:
        row_index = check_index(row_index, self.number_of_rows, "row_index")
        return self._row_names.get(row_index)

    def try_get_column_name(self, column_index: int) -> str | None:
        column_index = check_index(column_index, self.number_of_columns, "column_index")
        return self._column_names.get(column_index)

    def remove_row_name(self, row_index: int) -> bool:
        return self._row_names.pop(row_index, None) is not None

    def remove_column_name(self, column_index: int) -> bool:
        return self._column_names.pop(column_index, None) is not None

    def remove_all_row_names(self) -> None:
        self._row_names.clear()

    def remove_all_column_names(self) -> None:
        self._column_names.clear()

    def _with_names_of(self, storage: Storage) -> "Matrix":
        return Matrix(storage, self.name, self._row_names, self._column_names)

    def _with_transposed_names_of(self, storage: Storage) -> "Matrix":
        return Matrix(storage, self.name, self._column_names, self._row_names)

    # Structure

    @property
    def pattern(self) -> StructuralPattern:
        return classify(self._storage)

    @property
    def lower_bandwidth(self) -> int:
        return self.pattern.lower_bandwidth

    @property
    def upper_bandwidth(self) -> int:
        return self.pattern.upper_bandwidth

    is_square = _pattern_fact("is_square")
    is_vector = _pattern_fact("is_vector")
    is_row_vector = _pattern_fact("is_row_vector")
    is_column_vector = _pattern_fact("is_column_vector")
    is_scalar = _pattern_fact("is_scalar")
    is_diagonal = _pattern_fact("is_diagonal")
    is_lower_bidiagonal = _pattern_fact("is_lower_bidiagonal")
    is_upper_bidiagonal = _pattern_fact("is_upper_bidiagonal")
    is_bidiagonal = _pattern_fact("is_bidiagonal")
    is_tridiagonal = _pattern_fact("is_tridiagonal")
    is_lower_hessenberg = _pattern_fact("is_lower_hessenberg")
    is_upper_hessenberg = _pattern_fact("is_upper_hessenberg")
    is_hessenberg = _pattern_fact("is_hessenberg")
    is_lower_triangular = _pattern_fact("is_lower_triangular")
    is_upper_triangular = _pattern_fact("is_upper_triangular")
    is_triangular = _pattern_fact("is_triangular")
    is_symmetric = _pattern_fact("is_symmetric")
    is_skew_symmetric = _pattern_fact("is_skew_symmetric")
    is_hermitian = _pattern_fact("is_hermitian")
    is_skew_hermitian = _pattern_fact("is_skew_hermitian")

    # Indexing

    def __getitem__(self, key: Any):
        if isinstance(key, tuple):
            if len(key) != 2:
                raise OutOfRangeError("key", "Use one index for linear access or two for entries")
            return self.get_sub_matrix(*key)
        check_not_none(key, "linear_index")
        if is_single_index(key):
            return self._storage.get(check_index(key, self.count, "linear_index"))
        positions = resolve(key, self.count, "linear_indexes")
        return Matrix(ops.take_linear(self._storage, positions))

    def __setitem__(self, key: Any, value: Any) -> None:
        if isinstance(key, tuple):
            if len(key) != 2:
                raise OutOfRangeError("key", "Use one index for linear access or two for entries")
            self.set_sub_matrix(key[0], key[1], value)
            return
        check_not_none(key, "linear_index")
        if is_single_index(key):
            self._storage.set(
                check_index(key, self.count, "linear_index"), self._scalar_value(value)
            )
            return
        positions = resolve(key, self.count, "linear_indexes")
        values = self._source_values(value, (positions.size,))
        ops.put_linear(self._storage, positions, values.reshape(-1))

    def get_sub_matrix(self, row_indexes: Any, column_indexes: Any):
        """The entry, or the sub-matrix, at the given rows and columns.

        Two single indexes give a scalar; anything else gives a new Matrix in
        the same storage scheme, with forwarded row and column names.
        """
        if is_single_index(row_indexes) and is_single_index(column_indexes):
            return self._storage.get_entry(
                check_index(row_indexes, self.number_of_rows, "row_index"),
                check_index(column_indexes, self.number_of_columns, "column_index"),
            )
        rows = self._resolve_rows(row_indexes)
        columns = self._resolve_columns(column_indexes)
        return Matrix(
            ops.take(self._storage, rows, columns),
            row_names=forward_names(self._row_names, rows),
            column_names=forward_names(self._column_names, columns),
        )

    def set_sub_matrix(self, row_indexes: Any, column_indexes: Any, value: Any) -> None:
        """Write a scalar, or a Matrix of matching shape, at the given rows and columns.

        A scalar written to several positions is broadcast. Repeated
        positions keep the last value written to them.
        """
        if is_single_index(row_indexes) and is_single_index(column_indexes):
            self._storage.set_entry(
                check_index(row_indexes, self.number_of_rows, "row_index"),
                check_index(column_indexes, self.number_of_columns, "column_index"),
                self._scalar_value(value),
            )
            return
        rows = self._resolve_rows(row_indexes)
        columns = self._resolve_columns(column_indexes)
        values = self._source_values(value, (rows.size, columns.size))
        ops.put(self._storage, rows, columns, values)

    def _resolve_rows(self, expression: Any) -> np.ndarray:
        name = "row_index" if is_single_index(expression) else "row_indexes"
        return resolve(expression, self.number_of_rows, name)

    def _resolve_columns(self, expression: Any) -> np.ndarray:
        name = "column_index" if is_single_index(expression) else "column_indexes"
        return resolve(expression, self.number_of_columns, name)

    def _scalar_value(self, value: Any) -> float | complex:
        check_not_none(value, "value")
        storage = as_storage(value)
        if storage is None or storage.count != 1:
            raise DimensionMismatchError("value", "A single entry needs a scalar value")
        return self.field.coerce(storage.get(0), "value")

    def _source_values(self, value: Any, shape: tuple[int, ...]) -> torch.Tensor:
        "The values to write at a selection of the given shape."
        check_not_none(value, "value")
        if is_scalar_value(value):
            return torch.full(shape, self.field.coerce(value, "value"), dtype=self.field.dtype)
        storage = as_storage(value)
        if storage is None:
            raise OutOfRangeError("value", f"Cannot write a {type(value).__name__}")
        if storage.field.is_complex and not self.field.is_complex:
            raise OutOfRangeError("value", "A complex matrix cannot be written into a real one")
        if len(shape) == 1:
            if storage.count != shape[0]:
                raise DimensionMismatchError(
                    "value", f"Value must have {shape[0]} entries"
                )
            return ops.column_major_values(storage)
        if (storage.number_of_rows, storage.number_of_columns) != shape:
            raise DimensionMismatchError(
                "value", f"Value must be a {shape[0]}x{shape[1]} matrix"
            )
        return storage.as_tensor()

    def __contains__(self, value: Any) -> bool:
        if not is_scalar_value(value):
            return False
        return ops.contains(self._storage, value)

    # Fixed-size collection

    def append(self, value: Any) -> None:
        raise NotSupportedError(None, "A matrix has a fixed number of entries")

    def insert(self, index: int, value: Any) -> None:
        raise NotSupportedError(None, "A matrix has a fixed number of entries")

    def remove(self, value: Any) -> bool:
        raise NotSupportedError(None, "A matrix has a fixed number of entries")

    def clear(self) -> None:
        raise NotSupportedError(None, "A matrix has a fixed number of entries")

    # Arithmetic

    def __add__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(ops.add(self._storage, storage))

    def __radd__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(ops.add(storage, self._storage))

    def __sub__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(ops.subtract(self._storage, storage))

    def __rsub__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(ops.subtract(storage, self._storage))

    def __neg__(self) -> "Matrix":
        return Matrix(ops.negate(self._storage))

    def __matmul__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(ops.matmul(self._storage, storage))

    def __rmatmul__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(ops.matmul(storage, self._storage))

    # `*` is the matrix product, as in linear algebra texts.
    __mul__ = __matmul__
    __rmul__ = __rmatmul__

    def elementwise_multiply(self, other: Any) -> "Matrix":
        check_not_none(other, "right")
        storage = as_storage(other)
        if storage is None:
            raise OutOfRangeError("right", f"Cannot multiply by a {type(other).__name__}")
        return Matrix(ops.elementwise_multiply(self._storage, storage))

    def __truediv__(self, other: Any) -> "Matrix":
        "X such that X * other = self; plain scaling when `other` is a scalar."
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(divide(self._storage, storage))

    def __rtruediv__(self, other: Any) -> "Matrix":
        storage = as_storage(other)
        if storage is None:
            return NotImplemented
        return Matrix(divide(storage, self._storage))

    def __eq__(self, other: Any) -> bool:
        storage = as_storage(other)
        if storage is None or is_scalar_value(other):
            return NotImplemented
        return ops.equal(self._storage, storage)

    # Transposition and maps

    def transpose(self) -> "Matrix":
        return self._with_transposed_names_of(ops.transpose(self._storage))

    @property
    def T(self) -> "Matrix":
        return self.transpose()

    def conjugate(self) -> "Matrix":
        return self._with_names_of(ops.conjugate(self._storage))

    def conjugate_transpose(self) -> "Matrix":
        return self._with_transposed_names_of(ops.transpose(self._storage, conjugate=True))

    @property
    def H(self) -> "Matrix":
        return self.conjugate_transpose()

    def in_place_transpose(self) -> None:
        self._storage = ops.transpose(self._storage)
        self._row_names, self._column_names = self._column_names, self._row_names

    def in_place_conjugate_transpose(self) -> None:
        self._storage = ops.transpose(self._storage, conjugate=True)
        self._row_names, self._column_names = self._column_names, self._row_names

    def apply(self, function: Callable[[Any], Any]) -> "Matrix":
        return Matrix(ops.apply(self._storage, function))

    def in_place_apply(self, function: Callable[[Any], Any]) -> None:
        self._storage = ops.apply(self._storage, function)

    # Search

    def find(self, value: Any) -> np.ndarray:
        "Column-major linear indexes of the entries equal to `value`."
        check_not_none(value, "value")
        return ops.find(self._storage, lambda values: values == value)

    def find_nonzero(self) -> np.ndarray:
        return ops.find(self._storage, lambda values: values != 0)

    def find_while(self, predicate: Callable[[Any], bool]) -> np.ndarray:
        return ops.find_while(self._storage, predicate)

    # Conversion

    def to_dense(self) -> "Matrix":
        return self._with_names_of(to_dense(self._storage))

    def to_sparse(self) -> "Matrix":
        return self._with_names_of(to_sparse(self._storage))

    def to_complex(self) -> "Matrix":
        storage = self._storage.astype(COMPLEX)
        if storage is self._storage:
            storage = storage.clone()
        return self._with_names_of(storage)

    def to_tensor(self) -> torch.Tensor:
        return self._storage.as_tensor().clone()

    def vec(self) -> "Matrix":
        "The columns stacked into one dense column vector."
        values = ops.column_major_values(self._storage).clone()
        return Matrix(DenseStorage(self.count, 1, values.contiguous()))

    def _single_entry(self) -> float | complex:
        if self.count != 1:
            raise OutOfRangeError("matrix", "Only a 1x1 matrix converts to a scalar")
        return self._storage.get(0)

    def __float__(self) -> float:
        return REAL.coerce(self._single_entry(), "matrix")

    def __complex__(self) -> complex:
        return complex(self._single_entry())

    # Views

    def as_read_only(self):
        from matrix_views import ReadOnlyMatrix

        return ReadOnlyMatrix(self)

    def as_row_collection(self, row_indexes: Any = None):
        from matrix_views import MatrixRowCollection

        return MatrixRowCollection(self, row_indexes)

    def view(self, row_indexes: Any = ":", column_indexes: Any = ":"):
        "A read-only window on some rows and columns, following later writes."
        from matrix_views import MatrixView

        return MatrixView(self, row_indexes, column_indexes)

    def __iter__(self) -> Iterator:
        from matrix_views import MatrixEnumerator

        return MatrixEnumerator(self)

    # Text

    def __str__(self) -> str:
        return render(
            self._storage.as_tensor(),
            self._row_names,
            self._column_names,
        )

    def __repr__(self) -> str:
        name = f" {self.name!r}" if self.name else ""
        return (
            f"<Matrix{name} {self.number_of_rows}x{self.number_of_columns} "
            f"{self.field.name} {self.storage_scheme.name.lower()}>"
        )


@singledispatch
def as_storage(operand: Any) -> Storage | None:
    """The storage behind an operand, or None if it cannot act as a matrix.

    Scalars act as 1x1 matrices.
    """
    return None


@as_storage.register
def _(operand: Matrix) -> Storage:
    return operand.storage


@as_storage.register
def _(operand: numbers.Number) -> Storage:
    return DenseStorage.full(1, 1, operand, field_of_value(operand))


@as_storage.register
def _(operand: torch.Tensor) -> Storage | None:
    if operand.ndim != 0:
        return None
    return DenseStorage.full(1, 1, operand, field_of_value(operand))


def _name_cell(name: str, width: int) -> str:
    limit = width - 3
    if len(name) > limit:
        # The last kept character becomes '*' to signal the truncation.
        return "[" + (name[: limit - 1] + "*").ljust(limit) + "] "
    return f"[{name}]".ljust(width)


def render(
    tensor: torch.Tensor,
    row_names: Mapping[int, str],
    column_names: Mapping[int, str],
) -> str:
    """Fixed-width text table of a 2-D tensor, with optional names.

    Real cells are left aligned; complex cells show the real and imaginary
    parts right aligned between parentheses.
    """
    config = get_config()
    width = config.cell_width
    precision = config.real_precision
    is_complex = tensor.is_complex()
    column_width = 2 * width + 4 if is_complex else width
    blank_row_name = " " * width

    def cell(value):
        if is_complex:
            return f"({value.real:>{width}.{precision}g},{value.imag:>{width}.{precision}g}) "
        return f"{value:<{width}.{precision}g}"

    lines = []
    if column_names:
        header = blank_row_name if row_names else ""
        for j in range(tensor.shape[1]):
            name = column_names.get(j)
            header += " " * column_width if name is None else _name_cell(name, column_width)
        lines.append(header)

    for i, values in enumerate(tensor.tolist()):
        line = ""
        if row_names:
            name = row_names.get(i)
            line = blank_row_name if name is None else _name_cell(name, width)
        line += "".join(cell(value) for value in values)
        lines.append(line)

    return "".join(line + "\n" for line in lines) + "\n"
