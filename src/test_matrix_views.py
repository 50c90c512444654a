import pytest

from matrices import Matrix
from matrix_errors import InvalidStateError, NotSupportedError, OutOfRangeError
from matrix_storage import StorageOrder
from matrix_views import MatrixEnumerator, MatrixRowCollection, MatrixView, ReadOnlyMatrix


@pytest.fixture
def a():
    return Matrix.dense(3, 2, [3, 1, 1, 2, 1, 1], StorageOrder.ROW_MAJOR)


class TestReadOnlyMatrix:
    def test_reads_through(self, a):
        read_only = a.as_read_only()
        assert isinstance(read_only, ReadOnlyMatrix)
        assert read_only.shape == (3, 2)
        assert read_only[0, 0] == 3.0
        assert read_only.T.shape == (2, 3)
        assert not read_only.is_symmetric

    def test_sees_later_writes(self, a):
        read_only = a.as_read_only()
        a[0, 0] = 10.0
        a.set_row_name(0, "top")
        assert read_only[0, 0] == 10.0
        assert read_only.try_get_row_name(0) == "top"

    def test_writes_are_rejected(self, a):
        read_only = a.as_read_only()
        with pytest.raises(NotSupportedError):
            read_only[0, 0] = 1.0
        with pytest.raises(NotSupportedError):
            read_only.set_row_name(0, "x")
        with pytest.raises(NotSupportedError):
            read_only.in_place_transpose()
        with pytest.raises(NotSupportedError):
            read_only.name = "x"
        assert a[0, 0] == 3.0

    def test_unknown_attribute(self, a):
        with pytest.raises(AttributeError):
            a.as_read_only().no_such_member

    def test_storage_is_hidden(self, a):
        with pytest.raises(AttributeError):
            a.as_read_only().storage

    def test_rows_stay_read_only(self, a):
        read_only = a.as_read_only()
        rows = read_only.as_row_collection()
        assert rows.matrix is read_only
        assert rows.to_matrix() is read_only
        with pytest.raises(NotSupportedError):
            rows.to_matrix()[0, 0] = 99.0
        with pytest.raises(NotSupportedError):
            rows[0].matrix.set_row_name(0, "x")
        assert a[0, 0] == 3.0
        assert not a.has_row_names

    def test_rows_read_through(self, a):
        read_only = a.as_read_only()
        a.set_row_name(2, "last")
        rows = read_only.as_row_collection([2, 0])
        assert rows[0].name == "last"
        assert rows[1].values() == [3.0, 1.0]
        assert rows.to_matrix().to_tensor().tolist() == [[1.0, 1.0], [3.0, 1.0]]

    def test_operators(self, a):
        read_only = a.as_read_only()
        assert (read_only + a) == 2 * a
        assert (a - read_only).find_nonzero().size == 0
        assert read_only == a
        assert (read_only.T * read_only) == a.T * a

    def test_collection_protocol(self, a):
        read_only = a.as_read_only()
        assert len(read_only) == 6
        assert 2.0 in read_only
        assert list(read_only) == [3.0, 1.0, 1.0, 1.0, 2.0, 1.0]
        assert str(read_only) == str(a)


class TestMatrixView:
    def test_reads_selected_positions(self, a):
        view = a.view([2, 0], 1)
        assert (view.number_of_rows, view.number_of_columns) == (2, 1)
        assert len(view) == view.count == 2
        assert view[0, 0] == 1.0
        assert view[1, 0] == 1.0
        assert view.to_matrix().to_tensor().tolist() == [[1.0], [1.0]]

    def test_follows_owner(self, a):
        view = a.view(":", 0)
        a[1, 0] = -5.0
        assert view[1, 0] == -5.0
        assert list(view) == [3.0, -5.0, 1.0]

    def test_sub_selection_gives_matrix(self, a):
        view = a.view()
        sub = view[[0, 1], ":"]
        assert isinstance(sub, Matrix)
        assert sub.shape == (2, 2)

    def test_is_read_only(self, a):
        with pytest.raises(NotSupportedError):
            a.view()[0, 0] = 1.0

    def test_needs_two_keys(self, a):
        with pytest.raises(OutOfRangeError, match="key"):
            a.view()[0]

    def test_bad_selection(self, a):
        with pytest.raises(OutOfRangeError, match="row_indexes"):
            a.view([0, 3])

    def test_owner_lost_positions(self, a):
        view = a.view(2, ":")
        a.in_place_transpose()
        with pytest.raises(InvalidStateError):
            view[0, 0]

    def test_usable_as_operand(self, a):
        view = a.view([0, 1], ":")
        assert (view + Matrix.dense(2, 2)) == a[[0, 1], ":"]

    def test_direct_construction(self, a):
        assert MatrixView(a).to_matrix() == a


class TestRows:
    def test_collection(self, a):
        a.set_row_name(1, "middle")
        rows = a.as_row_collection()
        assert isinstance(rows, MatrixRowCollection)
        assert len(rows) == 3
        assert rows[1].name == "middle"
        assert rows[0].values() == [3.0, 1.0]
        assert list(rows[2]) == [1.0, 1.0]
        assert rows.to_matrix() is a

    def test_selected_rows(self, a):
        rows = a.as_row_collection([2, 0])
        assert rows.row_indexes.tolist() == [2, 0]
        assert [row.index for row in rows] == [2, 0]
        assert rows[-1].index == 0
        assert rows.to_matrix().to_tensor().tolist() == [[1.0, 1.0], [3.0, 1.0]]

    def test_position_out_of_range(self, a):
        with pytest.raises(OutOfRangeError, match="position"):
            a.as_row_collection()[3]

    def test_row_entries(self, a):
        row = a.as_row_collection()[0]
        assert len(row) == 2
        assert row[1] == 1.0
        assert row.matrix is a
        with pytest.raises(OutOfRangeError, match="column_index"):
            row[2]

    def test_row_to_matrix_keeps_names(self, a):
        a.set_column_name(1, "y")
        row = a.as_row_collection()[0].to_matrix()
        assert row.shape == (1, 2)
        assert dict(row.column_names) == {1: "y"}

    def test_rows_compare_by_values(self, a):
        rows = list(a.as_row_collection())
        assert rows[1] != rows[2]
        assert rows[2] < rows[1] < rows[0]
        assert [row.index for row in sorted(rows)] == [2, 1, 0]

    def test_complex_rows_order_by_real_then_imaginary(self):
        m = Matrix.dense_from_rows([[1 + 2j], [1 + 1j], [0 + 5j]])
        ordered = sorted(m.as_row_collection())
        assert [row.index for row in ordered] == [2, 1, 0]

    def test_equal_rows(self):
        m = Matrix.dense_from_rows([[1.0, 2.0], [1.0, 2.0]])
        first, second = m.as_row_collection()
        assert first == second

    def test_row_text(self, a):
        a.set_row_name(0, "top")
        assert str(a.as_row_collection()[0]) == "[top]".ljust(17) + "3".ljust(17) + "1".ljust(17) + "\n\n"


class TestEnumerator:
    def test_walks_column_major(self, a):
        enumerator = MatrixEnumerator(a)
        seen = []
        while enumerator.move_next():
            seen.append(enumerator.current)
        assert seen == [3.0, 1.0, 1.0, 1.0, 2.0, 1.0]

    def test_current_outside_entries(self, a):
        enumerator = iter(a)
        with pytest.raises(InvalidStateError):
            enumerator.current
        for _ in range(6):
            assert enumerator.move_next()
        assert not enumerator.move_next()
        assert not enumerator.move_next()
        with pytest.raises(InvalidStateError):
            enumerator.current

    def test_reset(self, a):
        enumerator = iter(a)
        assert next(enumerator) == 3.0
        enumerator.reset()
        assert next(enumerator) == 3.0
        enumerator.dispose()

    def test_sees_writes(self, a):
        enumerator = iter(a)
        a[0, 0] = 7.0
        assert next(enumerator) == 7.0

    def test_exhaustion(self, a):
        assert len(list(a)) == 6
