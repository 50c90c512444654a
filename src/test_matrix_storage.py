import logging

import numpy as np
import pytest
import torch

from matrix_errors import DimensionMismatchError, OutOfRangeError
from matrix_storage import (
    DenseStorage,
    SparseStorage,
    StorageOrder,
    StorageScheme,
    to_dense,
    to_sparse,
)
from scalar_fields import COMPLEX, REAL


class TestDenseStorage:
    @pytest.fixture
    def storage(self):
        # [[1, 2, 3],
        #  [4, 5, 6]]
        return DenseStorage.from_sequence(
            2, 3, [1, 2, 3, 4, 5, 6], StorageOrder.ROW_MAJOR
        )

    def test_linear_index_is_column_major(self, storage):
        assert [storage.get(k) for k in range(6)] == [1, 4, 2, 5, 3, 6]

    def test_get_entry(self, storage):
        assert storage.get_entry(0, 1) == 2
        assert storage.get_entry(1, 2) == 6

    def test_column_major_data_is_stored_as_given(self):
        storage = DenseStorage.from_sequence(2, 2, [1, 2, 3, 4])
        torch.testing.assert_close(
            storage.as_tensor(), torch.tensor([[1.0, 3.0], [2.0, 4.0]], dtype=torch.float64)
        )

    def test_as_tensor_aliases_storage(self, storage):
        storage.as_tensor()[1, 0] = 40
        assert storage.get(1) == 40

    def test_set_entry(self, storage):
        storage.set_entry(1, 1, -2.5)
        assert storage.get(3) == -2.5

    def test_count_and_scheme(self, storage):
        assert storage.count == 6
        assert storage.scheme is StorageScheme.DENSE
        assert storage.field is REAL

    def test_complex_data_gives_complex_field(self):
        storage = DenseStorage.from_sequence(1, 2, [1 + 1j, 2])
        assert storage.field is COMPLEX
        assert storage.get(0) == 1 + 1j

    def test_wrong_data_length_raises(self):
        with pytest.raises(DimensionMismatchError, match="data"):
            DenseStorage.from_sequence(2, 2, [1, 2, 3])

    @pytest.mark.parametrize("rows, columns, name", [(0, 2, "number_of_rows"), (2, -1, "number_of_columns")])
    def test_non_positive_dimensions_raise(self, rows, columns, name):
        with pytest.raises(OutOfRangeError, match=name):
            DenseStorage.zeros(rows, columns)

    def test_complex_value_in_real_storage_raises(self, storage):
        with pytest.raises(OutOfRangeError, match="complex value"):
            storage.set(0, 1 + 2j)

    def test_complex_with_zero_imaginary_part_is_accepted(self, storage):
        storage.set(0, 3 + 0j)
        assert storage.get(0) == 3.0

    def test_clone_is_independent(self, storage):
        clone = storage.clone()
        clone.set(0, 100)
        assert storage.get(0) == 1


class TestSparseStorage:
    @pytest.fixture
    def storage(self):
        storage = SparseStorage(3, 4)
        storage.set_entry(1, 2, 5.0)
        storage.set_entry(1, 0, 7.0)
        storage.set_entry(0, 3, -1.0)
        return storage

    def test_csr_structure(self, storage):
        assert storage.nnz == 3
        np.testing.assert_array_equal(storage.row_index, [0, 1, 3, 3])
        np.testing.assert_array_equal(storage.columns[:3], [3, 0, 2])
        torch.testing.assert_close(
            storage.used_values(), torch.tensor([-1.0, 7.0, 5.0], dtype=torch.float64)
        )

    def test_absent_entries_are_zero(self, storage):
        assert storage.get_entry(2, 1) == 0.0
        assert storage.get_entry(0, 0) == 0.0

    def test_linear_access(self, storage):
        # Row 1, column 2 of a 3-row matrix.
        assert storage.get(7) == 5.0
        storage.set(2, 4.0)
        assert storage.get_entry(2, 0) == 4.0

    def test_update_existing_entry(self, storage):
        storage.set_entry(1, 2, 6.0)
        assert storage.nnz == 3
        assert storage.get_entry(1, 2) == 6.0

    def test_zero_into_absent_position_allocates_nothing(self):
        storage = SparseStorage(2, 2)
        storage.set_entry(0, 1, 0.0)
        assert storage.nnz == 0
        assert storage.capacity == 0

    def test_capacity_starts_at_rows_then_doubles(self):
        storage = SparseStorage(3, 4)
        storage.set_entry(0, 0, 1.0)
        assert storage.capacity == 3
        for column in range(1, 4):
            storage.set_entry(0, column, 1.0)
        assert storage.capacity == 6

    def test_capacity_never_exceeds_count(self):
        storage = SparseStorage(2, 2)
        for row in range(2):
            for column in range(2):
                storage.set_entry(row, column, 1.0)
        assert storage.capacity == 4
        assert SparseStorage(2, 2, capacity=10).capacity == 4

    def test_negative_capacity_raises(self):
        with pytest.raises(OutOfRangeError, match="capacity"):
            SparseStorage(2, 2, capacity=-1)

    def test_growth_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="matrix_storage")
        storage = SparseStorage(2, 2)
        storage.set_entry(0, 0, 1.0)
        assert "Growing sparse storage 2x2 from 0 to 2 slots" in caplog.text

    def test_complex_field(self):
        storage = SparseStorage(2, 2, field=COMPLEX)
        storage.set_entry(1, 1, 2 - 1j)
        assert storage.get_entry(1, 1) == 2 - 1j
        assert storage.field is COMPLEX


class TestCsrValidation:
    def test_valid_arrays(self):
        storage = SparseStorage.from_csr(2, 3, [1.0, 2.0, 3.0], [0, 2, 1], [0, 2, 3])
        assert storage.get_entry(0, 2) == 2.0
        assert storage.get_entry(1, 1) == 3.0
        assert storage.capacity == 3

    def test_row_index_length(self):
        with pytest.raises(DimensionMismatchError, match="row_index"):
            SparseStorage.from_csr(2, 3, [1.0], [0], [0, 1])

    def test_values_and_columns_length(self):
        with pytest.raises(DimensionMismatchError, match="columns"):
            SparseStorage.from_csr(2, 3, [1.0, 2.0], [0], [0, 1, 1])

    def test_columns_must_increase_within_row(self):
        with pytest.raises(DimensionMismatchError, match="strictly increasing"):
            SparseStorage.from_csr(1, 3, [1.0, 2.0], [2, 0], [0, 2])

    def test_column_out_of_range(self):
        with pytest.raises(DimensionMismatchError, match="Column index"):
            SparseStorage.from_csr(1, 3, [1.0], [3], [0, 1])

    def test_row_index_must_end_at_number_of_values(self):
        with pytest.raises(DimensionMismatchError, match="end"):
            SparseStorage.from_csr(2, 3, [1.0, 2.0], [0, 1], [0, 1, 1])


class TestConversions:
    @pytest.fixture
    def tensor(self):
        return torch.tensor(
            [[0.0, 1.5, 0.0], [2.0, 0.0, 0.0], [0.0, 0.0, -3.0]], dtype=torch.float64
        )

    def test_dense_sparse_round_trip(self, tensor):
        dense = DenseStorage.from_tensor(tensor)
        sparse = to_sparse(dense)
        assert sparse.nnz == 3
        torch.testing.assert_close(to_dense(sparse).as_tensor(), tensor)

    def test_sparse_from_tensor_keeps_values(self, tensor):
        sparse = SparseStorage.from_tensor(tensor)
        assert sparse.get_entry(0, 1) == 1.5
        assert sparse.get_entry(2, 2) == -3.0

    def test_astype_complex(self, tensor):
        storage = DenseStorage.from_tensor(tensor).astype(COMPLEX)
        assert storage.field is COMPLEX
        assert storage.get_entry(1, 0) == 2 + 0j

    def test_astype_real_from_complex_raises(self):
        storage = DenseStorage.zeros(1, 1, COMPLEX)
        with pytest.raises(OutOfRangeError):
            storage.astype(REAL)
