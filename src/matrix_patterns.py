"""Structural facts about the contents of a storage.

`classify` scans the nonzero entries once and returns a StructuralPattern.
A matrix usually satisfies several patterns at once (the identity is
diagonal, triangular, tridiagonal and symmetric); all of them are reported
and callers pick the one they care about. Patterns are recomputed on every
call, since any write can change them.
"""

import dataclasses as dc
from functools import singledispatch
from typing import Callable

import numpy as np
import torch

from matrix_storage import DenseStorage, SparseStorage, Storage


@dc.dataclass(frozen=True)
class StructuralPattern:
    number_of_rows: int
    number_of_columns: int
    # max(i - j) and max(j - i) over the nonzero entries, floored at 0.
    lower_bandwidth: int
    upper_bandwidth: int
    is_symmetric: bool
    is_skew_symmetric: bool
    is_hermitian: bool
    is_skew_hermitian: bool

    @property
    def is_square(self) -> bool:
        return self.number_of_rows == self.number_of_columns

    @property
    def is_scalar(self) -> bool:
        return self.number_of_rows == 1 and self.number_of_columns == 1

    @property
    def is_row_vector(self) -> bool:
        return self.number_of_rows == 1

    @property
    def is_column_vector(self) -> bool:
        return self.number_of_columns == 1

    @property
    def is_vector(self) -> bool:
        return self.is_row_vector or self.is_column_vector

    @property
    def is_diagonal(self) -> bool:
        return self.is_square and self.lower_bandwidth == 0 and self.upper_bandwidth == 0

    @property
    def is_lower_triangular(self) -> bool:
        return self.is_square and self.upper_bandwidth == 0

    @property
    def is_upper_triangular(self) -> bool:
        return self.is_square and self.lower_bandwidth == 0

    @property
    def is_triangular(self) -> bool:
        return self.is_lower_triangular or self.is_upper_triangular

    @property
    def is_lower_bidiagonal(self) -> bool:
        return self.is_lower_triangular and self.lower_bandwidth <= 1

    @property
    def is_upper_bidiagonal(self) -> bool:
        return self.is_upper_triangular and self.upper_bandwidth <= 1

    @property
    def is_bidiagonal(self) -> bool:
        return self.is_lower_bidiagonal or self.is_upper_bidiagonal

    @property
    def is_tridiagonal(self) -> bool:
        return self.is_square and self.lower_bandwidth <= 1 and self.upper_bandwidth <= 1

    @property
    def is_upper_hessenberg(self) -> bool:
        return self.is_square and self.lower_bandwidth <= 1

    @property
    def is_lower_hessenberg(self) -> bool:
        return self.is_square and self.upper_bandwidth <= 1

    @property
    def is_hessenberg(self) -> bool:
        return self.is_upper_hessenberg or self.is_lower_hessenberg


@singledispatch
def nonzero_entries(storage) -> tuple[np.ndarray, np.ndarray, torch.Tensor]:
    """Rows, columns and values of the nonzero entries, in row-major order."""
    raise TypeError(f"Unsupported storage {type(storage).__name__}")


@nonzero_entries.register
def _(storage: DenseStorage) -> tuple[np.ndarray, np.ndarray, torch.Tensor]:
    tensor = storage.as_tensor()
    mask = tensor != 0
    positions = mask.nonzero().numpy()
    return positions[:, 0], positions[:, 1], tensor[mask]


@nonzero_entries.register
def _(storage: SparseStorage) -> tuple[np.ndarray, np.ndarray, torch.Tensor]:
    # Stored slots may hold explicit zeros.
    values = storage.used_values()
    keep = (values != 0).numpy()
    rows = storage.entry_rows()[keep]
    columns = storage.columns[: storage.nnz][keep]
    return rows, columns, values[torch.from_numpy(keep)]


def _matches_transpose(
    rows: np.ndarray,
    columns: np.ndarray,
    values: torch.Tensor,
    size: int,
    transform: Callable[[torch.Tensor], torch.Tensor],
) -> bool:
    """Whether A[i, j] == transform(A[j, i]) for every position.

    The entries must be in row-major order, as `nonzero_entries` returns them.
    """
    keys = rows * size + columns
    transposed_keys = columns * size + rows
    order = np.argsort(transposed_keys, kind="stable")
    if not np.array_equal(keys, transposed_keys[order]):
        return False
    return torch.equal(values, transform(values[torch.from_numpy(order)]))


def classify(storage: Storage) -> StructuralPattern:
    rows, columns, values = nonzero_entries(storage)
    offsets = rows - columns
    lower_bandwidth = max(int(offsets.max()), 0) if offsets.size else 0
    upper_bandwidth = max(int(-offsets.min()), 0) if offsets.size else 0

    size = storage.number_of_rows
    is_square = size == storage.number_of_columns

    def matches(transform):
        return is_square and _matches_transpose(rows, columns, values, size, transform)

    is_symmetric = matches(lambda v: v)
    is_skew_symmetric = matches(torch.neg)
    if values.is_complex():
        is_hermitian = matches(torch.conj_physical)
        is_skew_hermitian = matches(lambda v: -torch.conj_physical(v))
    else:
        is_hermitian = is_symmetric
        is_skew_hermitian = is_skew_symmetric

    return StructuralPattern(
        number_of_rows=storage.number_of_rows,
        number_of_columns=storage.number_of_columns,
        lower_bandwidth=lower_bandwidth,
        upper_bandwidth=upper_bandwidth,
        is_symmetric=is_symmetric,
        is_skew_symmetric=is_skew_symmetric,
        is_hermitian=is_hermitian,
        is_skew_hermitian=is_skew_hermitian,
    )
