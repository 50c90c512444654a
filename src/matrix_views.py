"""Objects that look at a Matrix without owning its entries.

All of them keep a reference to the Matrix rather than to its storage, so
they keep seeing the current contents after writes and in-place transforms
of the owner.

ReadOnlyMatrix
    every non-mutating member of the wrapped Matrix; mutators raise
    NotSupportedError.
MatrixView
    a read-only window on some rows and columns of a Matrix.
MatrixRowCollection, MatrixRow
    the rows of a Matrix, one object per row, for row-oriented consumers.
MatrixEnumerator
    a cursor over the entries in column-major order.
"""

import functools
from typing import Any, Iterator

import numpy as np

from matrices import Matrix, as_storage, render
from matrix_errors import InvalidStateError, NotSupportedError, OutOfRangeError, check_not_none
from matrix_indexing import WILDCARD, is_single_index, resolve
from matrix_patterns import StructuralPattern
from matrix_storage import Storage

_PATTERN_FACTS = frozenset(
    name for name in dir(StructuralPattern) if name.startswith("is_")
) | {"pattern", "lower_bandwidth", "upper_bandwidth"}

_READ_ONLY_MEMBERS = _PATTERN_FACTS | {
    "name",
    "number_of_rows",
    "number_of_columns",
    "count",
    "shape",
    "field",
    "is_complex",
    "storage_scheme",
    "row_names",
    "column_names",
    "has_row_names",
    "has_column_names",
    "try_get_row_name",
    "try_get_column_name",
    "get_sub_matrix",
    "elementwise_multiply",
    "transpose",
    "T",
    "conjugate",
    "conjugate_transpose",
    "H",
    "apply",
    "find",
    "find_nonzero",
    "find_while",
    "to_dense",
    "to_sparse",
    "to_complex",
    "to_tensor",
    "vec",
    "view",
}

_MUTATING_MEMBERS = frozenset(
    {
        "set_row_name",
        "set_column_name",
        "remove_row_name",
        "remove_column_name",
        "remove_all_row_names",
        "remove_all_column_names",
        "set_sub_matrix",
        "in_place_transpose",
        "in_place_conjugate_transpose",
        "in_place_apply",
        "append",
        "insert",
        "remove",
        "clear",
    }
)


class ReadOnlyMatrix:
    """A Matrix that cannot be changed through this object."""

    __array_priority__ = 1000
    __hash__ = None

    def __init__(self, matrix: Matrix):
        check_not_none(matrix, "matrix")
        self._matrix = matrix

    def __getattr__(self, name: str) -> Any:
        if name in _READ_ONLY_MEMBERS:
            return getattr(self._matrix, name)
        if name in _MUTATING_MEMBERS:
            raise NotSupportedError(None, f"A read-only matrix does not support {name}")
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name != "_matrix":
            raise NotSupportedError(name, "A read-only matrix cannot be modified")
        super().__setattr__(name, value)

    def __getitem__(self, key: Any):
        return self._matrix[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        raise NotSupportedError(None, "A read-only matrix cannot be modified")

    def __len__(self) -> int:
        return len(self._matrix)

    def __iter__(self) -> Iterator:
        return MatrixEnumerator(self._matrix)

    def as_row_collection(self, row_indexes: Any = None) -> "MatrixRowCollection":
        "Rows that read through this object, so they cannot reach the owner either."
        return MatrixRowCollection(self, row_indexes)

    def __contains__(self, value: Any) -> bool:
        return value in self._matrix

    def __add__(self, other):
        return self._matrix + other

    def __radd__(self, other):
        return other + self._matrix

    def __sub__(self, other):
        return self._matrix - other

    def __rsub__(self, other):
        return other - self._matrix

    def __neg__(self):
        return -self._matrix

    def __matmul__(self, other):
        return self._matrix @ other

    def __rmatmul__(self, other):
        return other @ self._matrix

    __mul__ = __matmul__
    __rmul__ = __rmatmul__

    def __truediv__(self, other):
        return self._matrix / other

    def __rtruediv__(self, other):
        return other / self._matrix

    def __eq__(self, other):
        return self._matrix == other

    def __float__(self) -> float:
        return float(self._matrix)

    def __complex__(self) -> complex:
        return complex(self._matrix)

    def __str__(self) -> str:
        return str(self._matrix)

    def __repr__(self) -> str:
        return f"<ReadOnly{repr(self._matrix)[1:]}"


@as_storage.register
def _(operand: ReadOnlyMatrix) -> Storage:
    return operand._matrix.storage


class MatrixView:
    """The entries of a Matrix at fixed rows and columns, read on demand."""

    def __init__(self, matrix: Matrix, row_indexes: Any = WILDCARD, column_indexes: Any = WILDCARD):
        check_not_none(matrix, "matrix")
        self._matrix = matrix
        self._rows = resolve(row_indexes, matrix.number_of_rows, "row_indexes")
        self._columns = resolve(column_indexes, matrix.number_of_columns, "column_indexes")

    @property
    def number_of_rows(self) -> int:
        return self._rows.size

    @property
    def number_of_columns(self) -> int:
        return self._columns.size

    @property
    def count(self) -> int:
        return self.number_of_rows * self.number_of_columns

    def __len__(self) -> int:
        return self.count

    def _check_owner(self) -> None:
        # The owner may have been transposed in place since the view was made.
        if (
            self._rows.max() >= self._matrix.number_of_rows
            or self._columns.max() >= self._matrix.number_of_columns
        ):
            raise InvalidStateError(
                "matrix", "The viewed matrix no longer has the viewed positions"
            )

    def __getitem__(self, key: Any):
        if not isinstance(key, tuple) or len(key) != 2:
            raise OutOfRangeError("key", "A view is indexed by a row and a column")
        self._check_owner()
        row_key, column_key = key
        rows = self._rows[resolve(row_key, self.number_of_rows, "row_indexes")]
        columns = self._columns[resolve(column_key, self.number_of_columns, "column_indexes")]
        if is_single_index(row_key) and is_single_index(column_key):
            return self._matrix[int(rows[0]), int(columns[0])]
        return self._matrix.get_sub_matrix(rows, columns)

    def __setitem__(self, key: Any, value: Any) -> None:
        raise NotSupportedError(None, "A matrix view cannot be modified")

    def to_matrix(self) -> Matrix:
        self._check_owner()
        return self._matrix.get_sub_matrix(self._rows, self._columns)

    def __iter__(self) -> Iterator:
        return MatrixEnumerator(self.to_matrix())

    def __str__(self) -> str:
        return str(self.to_matrix())

    def __repr__(self) -> str:
        return f"<MatrixView {self.number_of_rows}x{self.number_of_columns} of {self._matrix!r}>"


@as_storage.register
def _(operand: MatrixView) -> Storage:
    return operand.to_matrix().storage


@functools.total_ordering
class MatrixRow:
    """One row of a Matrix.

    Rows compare by their values: equal when all entries are equal, ordered
    lexicographically. Complex entries order by real part, then imaginary part.
    """

    __hash__ = None

    def __init__(self, matrix: Matrix, index: int):
        self._matrix = matrix
        self._index = index

    @property
    def index(self) -> int:
        return self._index

    @property
    def name(self) -> str | None:
        return self._matrix.try_get_row_name(self._index)

    @property
    def matrix(self) -> Matrix:
        return self._matrix

    def __len__(self) -> int:
        return self._matrix.number_of_columns

    def __getitem__(self, column_indexes: Any):
        if is_single_index(column_indexes):
            if not 0 <= column_indexes < len(self):
                raise OutOfRangeError("column_index", "Index exceeds the number of columns")
            return self._matrix[self._index, column_indexes]
        return self._matrix.get_sub_matrix(self._index, column_indexes)

    def values(self) -> list:
        return self._row_tensor()[0].tolist()

    def _row_tensor(self):
        return self._matrix.get_sub_matrix(self._index, WILDCARD).to_tensor()

    def __iter__(self) -> Iterator:
        return iter(self.values())

    def to_matrix(self) -> Matrix:
        "The row as a 1 x columns matrix, names included."
        return self._matrix.get_sub_matrix(self._index, WILDCARD)

    def _sort_key(self) -> tuple:
        if self._matrix.is_complex:
            return tuple((v.real, v.imag) for v in self.values())
        return tuple(self.values())

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, MatrixRow):
            return NotImplemented
        return self.values() == other.values()

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, MatrixRow):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __str__(self) -> str:
        name = self.name
        return render(
            self._row_tensor(),
            {} if name is None else {0: name},
            self._matrix.column_names,
        )

    def __repr__(self) -> str:
        return f"<MatrixRow {self._index} of {self._matrix!r}>"


class MatrixRowCollection:
    """Selected rows of a Matrix, as MatrixRow objects."""

    def __init__(self, matrix: Matrix, row_indexes: Any = None):
        check_not_none(matrix, "matrix")
        self._matrix = matrix
        if row_indexes is None:
            row_indexes = WILDCARD
        self._rows = resolve(row_indexes, matrix.number_of_rows, "row_indexes")

    @property
    def matrix(self) -> Matrix:
        return self._matrix

    @property
    def row_indexes(self) -> np.ndarray:
        return self._rows.copy()

    def __len__(self) -> int:
        return self._rows.size

    def __getitem__(self, position: int) -> MatrixRow:
        if not is_single_index(position):
            raise OutOfRangeError("position", "Rows are selected one at a time")
        if not -len(self) <= position < len(self):
            raise OutOfRangeError("position", "Position exceeds the number of rows")
        return MatrixRow(self._matrix, int(self._rows[position]))

    def __iter__(self) -> Iterator[MatrixRow]:
        return (MatrixRow(self._matrix, int(row)) for row in self._rows)

    def to_matrix(self) -> Matrix:
        """The owner itself when every row is selected in order, else a copy of the rows."""
        if np.array_equal(self._rows, np.arange(self._matrix.number_of_rows)):
            return self._matrix
        return self._matrix.get_sub_matrix(self._rows, WILDCARD)

    def __repr__(self) -> str:
        return f"<MatrixRowCollection {len(self)} rows of {self._matrix!r}>"


class MatrixEnumerator:
    """Cursor over the entries of a Matrix, in column-major order.

    The cursor starts before the first entry. `move_next` advances it and
    tells whether it now sits on an entry; `current` is only valid while it
    does. Also usable as a Python iterator.
    """

    def __init__(self, matrix: Matrix):
        check_not_none(matrix, "matrix")
        self._matrix = matrix
        self._position = -1

    def move_next(self) -> bool:
        if self._position < self._matrix.count:
            self._position += 1
        return self._position < self._matrix.count

    @property
    def current(self) -> float | complex:
        if not 0 <= self._position < self._matrix.count:
            raise InvalidStateError(
                None, "The enumerator is positioned before the first or after the last entry"
            )
        return self._matrix.storage.get(self._position)

    def reset(self) -> None:
        self._position = -1

    def dispose(self) -> None:
        pass

    def __iter__(self) -> "MatrixEnumerator":
        return self

    def __next__(self) -> float | complex:
        if not self.move_next():
            raise StopIteration
        return self.current
