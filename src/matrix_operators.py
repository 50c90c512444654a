"""Arithmetic and reindexing on storages.

Functions here take and return storages; the Matrix class wraps them and
takes care of names. Every binary operation promotes its operands to the
smallest common field, so the real/real, real/complex, complex/real and
complex/complex pairings share one implementation.

The result of a binary operation is dense as soon as one operand is dense.
Two sparse operands give a sparse result for +, - and elementwise *, which
never create entries outside the union of the stored positions.
"""

from functools import singledispatch
from typing import Any, Callable

import numpy as np
import torch

from matrix_errors import DimensionMismatchError, check_not_none
from matrix_storage import DenseStorage, SparseStorage, Storage
from scalar_fields import Field, field_of_value, promote

TensorOperation = Callable[[torch.Tensor, Any], torch.Tensor]


def _is_one_by_one(storage: Storage) -> bool:
    return storage.number_of_rows == 1 and storage.number_of_columns == 1


def _same_shape(left: Storage, right: Storage) -> bool:
    return (
        left.number_of_rows == right.number_of_rows
        and left.number_of_columns == right.number_of_columns
    )


def dense_tensor(storage: Storage, field: Field) -> torch.Tensor:
    "The contents as a rows x columns tensor of the given field."
    return storage.as_tensor().to(field.dtype)


@singledispatch
def column_major_values(storage) -> torch.Tensor:
    """All entries, zeros included, in column-major order."""
    raise TypeError(f"Unsupported storage {type(storage).__name__}")


@column_major_values.register
def _(storage: DenseStorage) -> torch.Tensor:
    return storage.data


@column_major_values.register
def _(storage: SparseStorage) -> torch.Tensor:
    return storage.as_tensor().T.reshape(-1)


def _combine_sparse(
    left: SparseStorage, right: SparseStorage, operation: TensorOperation
) -> SparseStorage:
    "Apply a zero-preserving operation over the union of the stored positions."
    dtype = promote(left.field, right.field).dtype
    left_keys, right_keys = left.keys(), right.keys()
    keys = np.union1d(left_keys, right_keys)

    left_values = torch.zeros(keys.size, dtype=dtype)
    left_values[torch.from_numpy(np.searchsorted(keys, left_keys))] = (
        left.used_values().to(dtype)
    )
    right_values = torch.zeros(keys.size, dtype=dtype)
    right_values[torch.from_numpy(np.searchsorted(keys, right_keys))] = (
        right.used_values().to(dtype)
    )

    values = operation(left_values, right_values)
    keep = values != 0
    return SparseStorage.from_keys(
        left.number_of_rows, left.number_of_columns, keys[keep.numpy()], values[keep]
    )


def combine_scalar(
    storage: Storage,
    scalar: Any,
    operation: TensorOperation,
    reverse: bool = False,
    keeps_sparsity: bool = False,
) -> Storage:
    """operation(storage, scalar), or operation(scalar, storage) if `reverse`.

    A sparse storage stays sparse only if `keeps_sparsity`, i.e. when the
    operation maps every absent zero to zero.
    """
    check_not_none(scalar, "scalar")
    field = promote(storage.field, field_of_value(scalar))
    scalar = torch.tensor(field.coerce(scalar, "scalar"), dtype=field.dtype)

    def run(values):
        values = values.to(field.dtype)
        return operation(scalar, values) if reverse else operation(values, scalar)

    if isinstance(storage, SparseStorage) and keeps_sparsity:
        result = storage.astype(field).clone()
        result.values = run(storage.values)
        return result
    return DenseStorage(
        storage.number_of_rows,
        storage.number_of_columns,
        run(column_major_values(storage)).contiguous(),
    )


def _elementwise(
    left: Storage,
    right: Storage,
    operation: TensorOperation,
    scalar_keeps_sparsity: bool,
) -> Storage:
    check_not_none(left, "left")
    check_not_none(right, "right")
    if not _same_shape(left, right):
        if _is_one_by_one(left):
            return combine_scalar(
                right, left.get(0), operation, reverse=True,
                keeps_sparsity=scalar_keeps_sparsity,
            )
        if _is_one_by_one(right):
            return combine_scalar(
                left, right.get(0), operation, keeps_sparsity=scalar_keeps_sparsity
            )
        raise DimensionMismatchError(
            "right",
            f"Cannot combine a {left.number_of_rows}x{left.number_of_columns} matrix "
            f"with a {right.number_of_rows}x{right.number_of_columns} matrix",
        )

    if isinstance(left, SparseStorage) and isinstance(right, SparseStorage):
        return _combine_sparse(left, right, operation)

    field = promote(left.field, right.field)
    values = operation(
        column_major_values(left).to(field.dtype),
        column_major_values(right).to(field.dtype),
    )
    return DenseStorage(left.number_of_rows, left.number_of_columns, values.contiguous())


def add(left: Storage, right: Storage) -> Storage:
    return _elementwise(left, right, torch.add, scalar_keeps_sparsity=False)


def subtract(left: Storage, right: Storage) -> Storage:
    return _elementwise(left, right, torch.sub, scalar_keeps_sparsity=False)


def elementwise_multiply(left: Storage, right: Storage) -> Storage:
    return _elementwise(left, right, torch.mul, scalar_keeps_sparsity=True)


def negate(storage: Storage) -> Storage:
    return combine_scalar(
        storage, storage.field.one, lambda values, _: torch.neg(values),
        keeps_sparsity=True,
    )


def _expand_ranges(starts: np.ndarray, lengths: np.ndarray) -> np.ndarray:
    "The slots of the ranges [start, start + length), concatenated."
    offsets = np.cumsum(lengths) - lengths
    return np.arange(int(lengths.sum()), dtype=np.int64) + np.repeat(starts - offsets, lengths)


def _stored_positions(storage: SparseStorage) -> np.ndarray:
    "Column-major linear positions of the used slots."
    return storage.columns[: storage.nnz] * storage.number_of_rows + storage.entry_rows()


def _matmul_sparse(left: SparseStorage, right: SparseStorage) -> SparseStorage:
    """Product of two CSR operands.

    Every stored left[i, k] meets the stored entries of row k of `right`;
    the terms are then summed by their output key.
    """
    dtype = promote(left.field, right.field).dtype
    inner = left.columns[: left.nnz]
    starts = right.row_index[inner]
    lengths = right.row_index[inner + 1] - starts
    terms = np.repeat(np.arange(left.nnz, dtype=np.int64), lengths)
    slots = _expand_ranges(starts, lengths)

    keys = left.entry_rows()[terms] * right.number_of_columns + right.columns[slots]
    products = (
        left.used_values().to(dtype)[torch.from_numpy(terms)]
        * right.values.to(dtype)[torch.from_numpy(slots)]
    )
    unique_keys, inverse = np.unique(keys, return_inverse=True)
    values = torch.zeros(unique_keys.size, dtype=dtype).index_add_(
        0, torch.from_numpy(inverse.reshape(-1).astype(np.int64)), products
    )
    keep = values != 0
    return SparseStorage.from_keys(
        left.number_of_rows, right.number_of_columns, unique_keys[keep.numpy()], values[keep]
    )


def matmul(left: Storage, right: Storage) -> Storage:
    check_not_none(left, "left")
    check_not_none(right, "right")
    if left.number_of_columns != right.number_of_rows:
        if _is_one_by_one(left):
            return combine_scalar(right, left.get(0), torch.mul, keeps_sparsity=True)
        if _is_one_by_one(right):
            return combine_scalar(left, right.get(0), torch.mul, keeps_sparsity=True)
        raise DimensionMismatchError(
            "right",
            f"Inner dimensions disagree: {left.number_of_columns} columns "
            f"against {right.number_of_rows} rows",
        )
    if isinstance(left, SparseStorage) and isinstance(right, SparseStorage):
        return _matmul_sparse(left, right)
    field = promote(left.field, right.field)
    return DenseStorage.from_tensor(dense_tensor(left, field) @ dense_tensor(right, field))


@singledispatch
def transpose(storage, conjugate: bool = False) -> Storage:
    raise TypeError(f"Unsupported storage {type(storage).__name__}")


@transpose.register
def _(storage: DenseStorage, conjugate: bool = False) -> DenseStorage:
    tensor = storage.as_tensor().T
    if conjugate:
        tensor = torch.conj_physical(tensor)
    return DenseStorage.from_tensor(tensor)


@transpose.register
def _(storage: SparseStorage, conjugate: bool = False) -> SparseStorage:
    # Columns of the input become rows of the output; sorting the transposed
    # row-major keys gives the column scan order of the input.
    rows = storage.number_of_columns
    columns = storage.number_of_rows
    transposed_keys = storage.columns[: storage.nnz] * columns + storage.entry_rows()
    order = np.argsort(transposed_keys, kind="stable")
    values = storage.used_values()[torch.from_numpy(order)]
    if conjugate:
        values = torch.conj_physical(values)
    return SparseStorage.from_keys(rows, columns, transposed_keys[order], values)


@singledispatch
def conjugate(storage) -> Storage:
    raise TypeError(f"Unsupported storage {type(storage).__name__}")


@conjugate.register
def _(storage: DenseStorage) -> DenseStorage:
    return DenseStorage(
        storage.number_of_rows,
        storage.number_of_columns,
        torch.conj_physical(storage.data),
    )


@conjugate.register
def _(storage: SparseStorage) -> SparseStorage:
    result = storage.clone()
    result.values = torch.conj_physical(result.values)
    return result


def apply(storage: Storage, function: Callable[[Any], Any]) -> Storage:
    """Map `function` over every entry, keeping the field of the storage.

    A sparse storage stays sparse when `function(0)` is zero; the function
    then only runs on the stored entries.
    """
    check_not_none(function, "function")
    field = storage.field

    def mapped(values: torch.Tensor) -> torch.Tensor:
        return torch.tensor(
            [field.coerce(function(v), "function") for v in values.tolist()],
            dtype=field.dtype,
        )

    if isinstance(storage, SparseStorage) and field.is_zero(
        field.coerce(function(field.zero), "function")
    ):
        result = storage.clone()
        result.values[: result.nnz] = mapped(storage.used_values())
        return result
    return DenseStorage(
        storage.number_of_rows,
        storage.number_of_columns,
        mapped(column_major_values(storage)),
    )


def find(storage: Storage, predicate: Callable[[torch.Tensor], torch.Tensor]) -> np.ndarray:
    """Column-major linear indexes of the entries where a tensor predicate holds.

    On sparse storage a predicate that fails at zero only sees the stored
    entries.
    """
    if isinstance(storage, SparseStorage):
        zero = torch.zeros(1, dtype=storage.values.dtype)
        if not bool(predicate(zero).any()):
            mask = predicate(storage.used_values()).numpy()
            return np.sort(_stored_positions(storage)[mask])
    mask = predicate(column_major_values(storage))
    return mask.nonzero().reshape(-1).numpy().astype(np.int64)


def find_while(storage: Storage, predicate: Callable[[Any], bool]) -> np.ndarray:
    """Like `find`, with a predicate called on each scalar entry."""
    check_not_none(predicate, "predicate")
    if isinstance(storage, SparseStorage) and not predicate(storage.field.zero):
        hits = np.array(
            [bool(predicate(value)) for value in storage.used_values().tolist()],
            dtype=bool,
        )
        return np.sort(_stored_positions(storage)[hits])
    return np.array(
        [
            k
            for k, value in enumerate(column_major_values(storage).tolist())
            if predicate(value)
        ],
        dtype=np.int64,
    )


def contains(storage: Storage, value: Any) -> bool:
    "Whether some entry, stored or not, equals `value`."
    if isinstance(storage, SparseStorage):
        if value == 0 and storage.nnz < storage.count:
            return True
        return bool((storage.used_values() == value).any())
    return bool((storage.data == value).any())


def equal(left: Storage, right: Storage) -> bool:
    if not _same_shape(left, right):
        return False
    field = promote(left.field, right.field)
    if isinstance(left, SparseStorage) and isinstance(right, SparseStorage):
        # Explicitly stored zeros do not count.
        left_keep = left.used_values() != 0
        right_keep = right.used_values() != 0
        return np.array_equal(
            left.keys()[left_keep.numpy()], right.keys()[right_keep.numpy()]
        ) and torch.equal(
            left.used_values()[left_keep].to(field.dtype),
            right.used_values()[right_keep].to(field.dtype),
        )
    return torch.equal(dense_tensor(left, field), dense_tensor(right, field))


def _last_occurrences(positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Distinct positions, and for each the index of its last occurrence.

    Writing through the result reproduces "last write wins" for duplicates.
    """
    unique, first_in_reversed = np.unique(positions[::-1], return_index=True)
    return unique, positions.size - 1 - first_in_reversed


@singledispatch
def take(storage, rows: np.ndarray, columns: np.ndarray) -> Storage:
    """The sub-matrix at the given rows and columns, in the same scheme."""
    raise TypeError(f"Unsupported storage {type(storage).__name__}")


@take.register
def _(storage: DenseStorage, rows: np.ndarray, columns: np.ndarray) -> DenseStorage:
    tensor = storage.as_tensor()[torch.from_numpy(rows)][:, torch.from_numpy(columns)]
    return DenseStorage.from_tensor(tensor)


@take.register
def _(storage: SparseStorage, rows: np.ndarray, columns: np.ndarray) -> SparseStorage:
    # Stored entries of the selected rows, in output row order.
    starts = storage.row_index[rows]
    lengths = storage.row_index[rows + 1] - starts
    entry_rows = np.repeat(np.arange(rows.size, dtype=np.int64), lengths)
    slots = _expand_ranges(starts, lengths)

    # Each entry lands in every output column selecting its column.
    order = np.argsort(columns, kind="stable")
    sorted_columns = columns[order]
    entry_columns = storage.columns[slots]
    first = np.searchsorted(sorted_columns, entry_columns, side="left")
    matches = np.searchsorted(sorted_columns, entry_columns, side="right") - first
    hits = np.repeat(np.arange(slots.size, dtype=np.int64), matches)
    output_columns = order[_expand_ranges(first, matches)]

    keys = entry_rows[hits] * columns.size + output_columns
    values = storage.values[torch.from_numpy(slots[hits])]
    ordering = np.argsort(keys, kind="stable")
    keys, values = keys[ordering], values[torch.from_numpy(ordering)]
    keep = values != 0
    return SparseStorage.from_keys(rows.size, columns.size, keys[keep.numpy()], values[keep])


def take_linear(storage: Storage, positions: np.ndarray) -> Storage:
    "The entries at column-major positions, as a column vector in the same scheme."
    if isinstance(storage, SparseStorage):
        keys = storage.keys()
        columns, rows = np.divmod(positions, storage.number_of_rows)
        wanted = rows * storage.number_of_columns + columns
        slots = np.searchsorted(keys, wanted)
        found = slots < keys.size
        found[found] = keys[slots[found]] == wanted[found]
        values = storage.used_values()[torch.from_numpy(slots[found])]
        keep = values != 0
        return SparseStorage.from_keys(
            positions.size, 1, np.flatnonzero(found)[keep.numpy()], values[keep]
        )
    values = storage.data[torch.from_numpy(positions)].reshape(-1, 1)
    return DenseStorage.from_tensor(values)


@singledispatch
def put(storage, rows: np.ndarray, columns: np.ndarray, values: torch.Tensor) -> None:
    """Write a len(rows) x len(columns) tensor at the given rows and columns."""
    raise TypeError(f"Unsupported storage {type(storage).__name__}")


@put.register
def _(storage: DenseStorage, rows: np.ndarray, columns: np.ndarray, values: torch.Tensor) -> None:
    target_rows, source_rows = _last_occurrences(rows)
    target_columns, source_columns = _last_occurrences(columns)
    source = values[torch.from_numpy(source_rows)][:, torch.from_numpy(source_columns)]
    storage.as_tensor()[
        torch.from_numpy(target_rows).unsqueeze(1), torch.from_numpy(target_columns)
    ] = source.to(storage.data.dtype)


@put.register
def _(storage: SparseStorage, rows: np.ndarray, columns: np.ndarray, values: torch.Tensor) -> None:
    entries = values.tolist()
    for i, row in enumerate(rows.tolist()):
        for j, column in enumerate(columns.tolist()):
            storage.set_entry(row, column, entries[i][j])


def put_linear(storage: Storage, positions: np.ndarray, values: torch.Tensor) -> None:
    "Write a flat tensor at column-major positions."
    if isinstance(storage, DenseStorage):
        targets, sources = _last_occurrences(positions)
        storage.data[torch.from_numpy(targets)] = values[torch.from_numpy(sources)].to(
            storage.data.dtype
        )
        return
    for position, value in zip(positions.tolist(), values.tolist()):
        storage.set(position, value)
