"""Raw matrix contents, in one of two physical layouts.

DenseStorage keeps all rows * columns entries in a flat torch tensor, in
column-major order. SparseStorage keeps only the stored entries, in
compressed-row (CSR) form:

    values     entries, row by row               (capacity slots)
    columns    column of each entry              (capacity slots)
    row_index  row r occupies [row_index[r], row_index[r + 1])   (rows + 1)

Within a row, column indexes strictly increase, row_index[0] is 0 and
row_index[rows] is the number of used slots. Positions absent from a
SparseStorage are zero.

Both layouts are addressed by a column-major linear index, or by a
(row, column) pair. Code that must treat the two layouts differently
dispatches on the storage class, see matrix_operators and matrix_patterns.
"""

import enum
from typing import Any, Sequence

import numpy as np
import torch

from matrix_errors import DimensionMismatchError, OutOfRangeError, check_not_none
from matrix_logging import get_logger
from scalar_fields import REAL, Field, field_of_dtype

logger = get_logger(__name__)


class StorageScheme(enum.Enum):
    DENSE = "dense"
    SPARSE = "compressed_row_sparse"


class StorageOrder(enum.Enum):
    "Order in which flat data passed to a dense factory lists the entries."

    COLUMN_MAJOR = "column_major"
    ROW_MAJOR = "row_major"


def check_dimensions(number_of_rows: int, number_of_columns: int) -> None:
    if number_of_rows < 1:
        raise OutOfRangeError("number_of_rows", "Number of rows must be positive")
    if number_of_columns < 1:
        raise OutOfRangeError("number_of_columns", "Number of columns must be positive")


def as_tensor(data: Any, field: Field | None = None, param_name: str = "data") -> torch.Tensor:
    """Copy `data` into a tensor of the requested field.

    Without a field, complex data gives a complex tensor and anything else a
    real one. Python lists go through numpy so that floats keep double
    precision.
    """
    check_not_none(data, param_name)
    if isinstance(data, torch.Tensor):
        tensor = data.detach()
    else:
        array = np.array(data)
        if not (np.issubdtype(array.dtype, np.number) or array.dtype == np.bool_):
            raise OutOfRangeError(param_name, "Data must contain numbers only")
        tensor = torch.from_numpy(array)
    if field is None:
        field = field_of_dtype(tensor.dtype)
    if tensor.is_complex() and not field.is_complex:
        raise OutOfRangeError(param_name, "Complex data cannot fill a real matrix")
    return tensor.to(dtype=field.dtype, copy=True)


class DenseStorage:
    """All entries, column-major, in a 1-D tensor."""

    scheme = StorageScheme.DENSE

    __slots__ = ("number_of_rows", "number_of_columns", "data")

    def __init__(self, number_of_rows: int, number_of_columns: int, data: torch.Tensor):
        check_dimensions(number_of_rows, number_of_columns)
        if data.ndim != 1 or data.numel() != number_of_rows * number_of_columns:
            raise DimensionMismatchError(
                "data",
                f"Data has {data.numel()} elements but the matrix needs "
                f"{number_of_rows * number_of_columns}",
            )
        self.number_of_rows = number_of_rows
        self.number_of_columns = number_of_columns
        self.data = data

    @staticmethod
    def zeros(number_of_rows: int, number_of_columns: int, field: Field = REAL) -> "DenseStorage":
        check_dimensions(number_of_rows, number_of_columns)
        return DenseStorage(
            number_of_rows,
            number_of_columns,
            torch.zeros(number_of_rows * number_of_columns, dtype=field.dtype),
        )

    @staticmethod
    def full(
        number_of_rows: int, number_of_columns: int, value: Any, field: Field
    ) -> "DenseStorage":
        check_dimensions(number_of_rows, number_of_columns)
        return DenseStorage(
            number_of_rows,
            number_of_columns,
            torch.full(
                (number_of_rows * number_of_columns,),
                field.coerce(value),
                dtype=field.dtype,
            ),
        )

    @staticmethod
    def from_sequence(
        number_of_rows: int,
        number_of_columns: int,
        data: Any,
        order: StorageOrder = StorageOrder.COLUMN_MAJOR,
        field: Field | None = None,
    ) -> "DenseStorage":
        check_dimensions(number_of_rows, number_of_columns)
        if not isinstance(order, StorageOrder):
            raise OutOfRangeError("storage_order", f"{order!r} is not a storage order")
        flat = as_tensor(data, field).reshape(-1)
        if flat.numel() != number_of_rows * number_of_columns:
            raise DimensionMismatchError(
                "data",
                f"Data has {flat.numel()} elements but the matrix needs "
                f"{number_of_rows * number_of_columns}",
            )
        if order is StorageOrder.ROW_MAJOR:
            flat = flat.reshape(number_of_rows, number_of_columns).T.reshape(-1)
        return DenseStorage(number_of_rows, number_of_columns, flat.contiguous())

    @staticmethod
    def from_tensor(tensor: torch.Tensor) -> "DenseStorage":
        "Copy a 2-D tensor (any layout) into column-major storage."
        if tensor.ndim != 2:
            raise DimensionMismatchError("data", "Tensor must be a 2D tensor")
        rows, columns = tensor.shape
        return DenseStorage(rows, columns, tensor.T.reshape(-1).clone())

    @property
    def field(self) -> Field:
        return field_of_dtype(self.data.dtype)

    @property
    def count(self) -> int:
        return self.number_of_rows * self.number_of_columns

    @property
    def nnz(self) -> int:
        return int(torch.count_nonzero(self.data))

    def as_tensor(self) -> torch.Tensor:
        "A rows x columns tensor aliasing this storage."
        return self.data.view(self.number_of_columns, self.number_of_rows).T

    def get(self, linear_index: int) -> float | complex:
        return self.data[linear_index].item()

    def set(self, linear_index: int, value: Any) -> None:
        self.data[linear_index] = self.field.coerce(value)

    def get_entry(self, row: int, column: int) -> float | complex:
        return self.data[row + column * self.number_of_rows].item()

    def set_entry(self, row: int, column: int, value: Any) -> None:
        self.data[row + column * self.number_of_rows] = self.field.coerce(value)

    def clone(self) -> "DenseStorage":
        return DenseStorage(self.number_of_rows, self.number_of_columns, self.data.clone())

    def astype(self, field: Field) -> "DenseStorage":
        if field is self.field:
            return self
        if self.field.is_complex and not field.is_complex:
            raise OutOfRangeError("field", "Complex storage cannot become real")
        return DenseStorage(
            self.number_of_rows, self.number_of_columns, self.data.to(field.dtype)
        )

    def __repr__(self) -> str:
        return (
            f"DenseStorage({self.number_of_rows}x{self.number_of_columns}, "
            f"{self.field.name})"
        )


class SparseStorage:
    """Compressed-row storage of the nonzero entries."""

    scheme = StorageScheme.SPARSE

    __slots__ = (
        "number_of_rows",
        "number_of_columns",
        "values",
        "columns",
        "row_index",
        "capacity",
    )

    def __init__(
        self,
        number_of_rows: int,
        number_of_columns: int,
        capacity: int = 0,
        field: Field = REAL,
    ):
        check_dimensions(number_of_rows, number_of_columns)
        if capacity < 0:
            raise OutOfRangeError("capacity", "Capacity cannot be negative")
        capacity = min(capacity, number_of_rows * number_of_columns)

        self.number_of_rows = number_of_rows
        self.number_of_columns = number_of_columns
        self.capacity = capacity
        self.values = torch.zeros(capacity, dtype=field.dtype)
        self.columns = np.zeros(capacity, dtype=np.int64)
        self.row_index = np.zeros(number_of_rows + 1, dtype=np.int64)

    @staticmethod
    def from_csr(
        number_of_rows: int,
        number_of_columns: int,
        values: Any,
        columns: Sequence[int],
        row_index: Sequence[int],
        field: Field | None = None,
    ) -> "SparseStorage":
        """Build storage from explicit CSR arrays, checking their consistency."""
        check_dimensions(number_of_rows, number_of_columns)
        check_not_none(columns, "columns")
        check_not_none(row_index, "row_index")
        values = as_tensor(values, field, "values").reshape(-1)
        columns = np.asarray(columns, dtype=np.int64).reshape(-1)
        row_index = np.asarray(row_index, dtype=np.int64).reshape(-1)

        if values.numel() != columns.size:
            raise DimensionMismatchError(
                "columns", "Values and columns must have the same length"
            )
        if row_index.size != number_of_rows + 1:
            raise DimensionMismatchError(
                "row_index", f"Row index must have {number_of_rows + 1} entries"
            )
        if row_index[0] != 0 or row_index[-1] != columns.size:
            raise DimensionMismatchError(
                "row_index", "Row index must start at 0 and end at the number of values"
            )
        if np.any(np.diff(row_index) < 0):
            raise DimensionMismatchError("row_index", "Row index must be non-decreasing")
        if columns.size and (columns.min() < 0 or columns.max() >= number_of_columns):
            raise DimensionMismatchError("columns", "Column index exceeds the dimensions")
        for r in range(number_of_rows):
            if np.any(np.diff(columns[row_index[r] : row_index[r + 1]]) <= 0):
                raise DimensionMismatchError(
                    "columns", f"Columns of row {r} must be strictly increasing"
                )

        storage = SparseStorage(
            number_of_rows, number_of_columns, 0, field_of_dtype(values.dtype)
        )
        storage.values = values
        storage.columns = columns.copy()
        storage.row_index = row_index.copy()
        storage.capacity = columns.size
        return storage

    @staticmethod
    def from_keys(
        number_of_rows: int,
        number_of_columns: int,
        keys: np.ndarray,
        values: torch.Tensor,
    ) -> "SparseStorage":
        """Build storage from sorted row-major keys (row * columns + column).

        Keys must be unique and increasing; no validation happens here.
        """
        rows = keys // number_of_columns
        storage = SparseStorage(
            number_of_rows, number_of_columns, 0, field_of_dtype(values.dtype)
        )
        storage.values = values.clone()
        storage.columns = (keys % number_of_columns).astype(np.int64)
        storage.row_index = np.concatenate(
            ([0], np.cumsum(np.bincount(rows, minlength=number_of_rows)))
        ).astype(np.int64)
        storage.capacity = int(keys.size)
        return storage

    @staticmethod
    def from_tensor(tensor: torch.Tensor) -> "SparseStorage":
        "Store the nonzero entries of a 2-D tensor."
        rows, columns = tensor.shape
        mask = tensor != 0
        # nonzero() lists positions in row-major order, as CSR needs.
        positions = mask.nonzero().numpy()
        keys = positions[:, 0] * columns + positions[:, 1]
        return SparseStorage.from_keys(rows, columns, keys, tensor[mask])

    @property
    def field(self) -> Field:
        return field_of_dtype(self.values.dtype)

    @property
    def count(self) -> int:
        return self.number_of_rows * self.number_of_columns

    @property
    def nnz(self) -> int:
        "Number of used slots."
        return int(self.row_index[self.number_of_rows])

    def entry_rows(self) -> np.ndarray:
        "The row of each used slot."
        return np.repeat(
            np.arange(self.number_of_rows, dtype=np.int64), np.diff(self.row_index)
        )

    def keys(self) -> np.ndarray:
        "Row-major linear positions (row * columns + column) of the used slots."
        return self.entry_rows() * self.number_of_columns + self.columns[: self.nnz]

    def used_values(self) -> torch.Tensor:
        return self.values[: self.nnz]

    def find_position(self, row: int, column: int) -> tuple[bool, int]:
        """Locate (row, column) in the CSR arrays.

        Returns whether the position is stored, and the slot holding it or
        the slot where it would be inserted.
        """
        start, end = self.row_index[row], self.row_index[row + 1]
        offset = int(np.searchsorted(self.columns[start:end], column))
        position = int(start) + offset
        return bool(position < end and self.columns[position] == column), position

    def get_entry(self, row: int, column: int) -> float | complex:
        is_stored, position = self.find_position(row, column)
        if is_stored:
            return self.values[position].item()
        return self.field.zero

    def set_entry(self, row: int, column: int, value: Any) -> None:
        value = self.field.coerce(value)
        is_stored, position = self.find_position(row, column)
        if is_stored:
            self.values[position] = value
            return
        if value == 0:
            # No slot is allocated for a zero.
            return

        used = self.nnz
        if self.capacity <= used:
            self._grow()
        self.columns[position + 1 : used + 1] = self.columns[position:used].copy()
        self.values[position + 1 : used + 1] = self.values[position:used].clone()
        self.columns[position] = column
        self.values[position] = value
        self.row_index[row + 1 :] += 1

    def _grow(self) -> None:
        new_capacity = self.number_of_rows if self.capacity == 0 else 2 * self.capacity
        new_capacity = max(min(new_capacity, self.count), self.nnz + 1)
        logger.debug(
            "Growing sparse storage %dx%d from %d to %d slots",
            self.number_of_rows,
            self.number_of_columns,
            self.capacity,
            new_capacity,
        )
        values = torch.zeros(new_capacity, dtype=self.values.dtype)
        values[: self.capacity] = self.values
        columns = np.zeros(new_capacity, dtype=np.int64)
        columns[: self.capacity] = self.columns
        self.values = values
        self.columns = columns
        self.capacity = new_capacity

    def get(self, linear_index: int) -> float | complex:
        column, row = divmod(linear_index, self.number_of_rows)
        return self.get_entry(row, column)

    def set(self, linear_index: int, value: Any) -> None:
        column, row = divmod(linear_index, self.number_of_rows)
        self.set_entry(row, column, value)

    def as_tensor(self) -> torch.Tensor:
        "A dense rows x columns copy."
        tensor = torch.zeros(
            self.number_of_rows, self.number_of_columns, dtype=self.values.dtype
        )
        used = self.nnz
        tensor[
            torch.from_numpy(self.entry_rows()), torch.from_numpy(self.columns[:used])
        ] = self.values[:used]
        return tensor

    def clone(self) -> "SparseStorage":
        storage = SparseStorage(self.number_of_rows, self.number_of_columns, 0, self.field)
        storage.values = self.values.clone()
        storage.columns = self.columns.copy()
        storage.row_index = self.row_index.copy()
        storage.capacity = self.capacity
        return storage

    def astype(self, field: Field) -> "SparseStorage":
        if field is self.field:
            return self
        if self.field.is_complex and not field.is_complex:
            raise OutOfRangeError("field", "Complex storage cannot become real")
        storage = self.clone()
        storage.values = storage.values.to(field.dtype)
        return storage

    def __repr__(self) -> str:
        return (
            f"SparseStorage({self.number_of_rows}x{self.number_of_columns}, "
            f"{self.field.name}, nnz={self.nnz}, capacity={self.capacity})"
        )


Storage = DenseStorage | SparseStorage


def to_dense(storage: Storage) -> DenseStorage:
    if isinstance(storage, DenseStorage):
        return storage.clone()
    return DenseStorage.from_tensor(storage.as_tensor())


def to_sparse(storage: Storage) -> SparseStorage:
    if isinstance(storage, SparseStorage):
        return storage.clone()
    return SparseStorage.from_tensor(storage.as_tensor())
