import gc

import pytest

from ndslice import BorrowConflict, NDBuffer, NDSlice, NDSliceMut


@pytest.fixture
def array():
    return NDBuffer.from_nested([[1, 2, 3], [4, 5, 6]])


class TestSharedBorrow:
    def test_many_shared_views(self, array):
        first = array.as_shared_view()
        second = array.as_shared_view()
        assert isinstance(first, NDSlice) and not isinstance(first, NDSliceMut)
        assert first.get((0, 0)) == second.get((0, 0)) == 1
        assert array.has_borrows()
        first.release()
        second.release()
        assert not array.has_borrows()

    def test_exclusive_refused_while_shared(self, array):
        view = array.as_shared_view()
        with pytest.raises(BorrowConflict):
            array.as_exclusive_view()
        view.release()
        with array.as_exclusive_view() as view:
            view.set((0, 0), 10)
        assert array.get((0, 0)) == 10

    def test_derived_views_share_the_lease(self, array):
        view = array.as_shared_view()
        row = view.extract(0, 1)
        column = view.transpose().extract(0, 2)
        assert row.lease is view.lease is column.lease
        row.release()
        for derived in (view, row, column):
            with pytest.raises(BorrowConflict):
                derived.get((0,) * derived.ndim)
        with pytest.raises(BorrowConflict):
            view.transpose()
        assert not array.has_borrows()

    def test_release_is_idempotent(self, array):
        view = array.as_shared_view()
        other = array.as_shared_view()
        view.release()
        view.release()
        # the second release must not return `other`'s borrow
        with pytest.raises(BorrowConflict):
            array.as_exclusive_view()
        other.release()
        array.as_exclusive_view().release()


class TestExclusiveBorrow:
    def test_only_one_exclusive(self, array):
        view = array.as_exclusive_view()
        with pytest.raises(BorrowConflict):
            array.as_exclusive_view()
        with pytest.raises(BorrowConflict):
            array.as_shared_view()
        view.release()
        array.as_shared_view().release()

    def test_context_manager_releases(self, array):
        with array.as_exclusive_view() as view:
            assert isinstance(view, NDSliceMut)
            assert array.has_borrows()
        assert not array.has_borrows()
        with pytest.raises(BorrowConflict):
            view.set((0, 0), 1)

    def test_context_manager_releases_on_error(self, array):
        with pytest.raises(ZeroDivisionError):
            with array.as_exclusive_view():
                1 / 0
        assert not array.has_borrows()

    def test_reborrow_as_shared(self, array):
        with array.as_exclusive_view() as view:
            shared = view.as_shared_view()
            assert isinstance(shared, NDSlice) and not isinstance(shared, NDSliceMut)
            view.set((1, 1), 50)
            assert shared.get((1, 1)) == 50
            assert not hasattr(shared, "set")
        with pytest.raises(BorrowConflict):
            shared.get((1, 1))

    def test_derived_exclusive_views_stay_writable(self, array):
        with array.as_exclusive_view() as view:
            corner = view[1:, 1:]
            assert isinstance(corner, NDSliceMut)
            corner.set((0, 1), 60)
        assert array.get((1, 2)) == 60


class TestBufferAccessWhileBorrowed:
    def test_buffer_read_blocked_by_exclusive(self, array):
        with array.as_exclusive_view():
            with pytest.raises(BorrowConflict):
                array.get((0, 0))
            with pytest.raises(BorrowConflict):
                array.tolist()
            assert "exclusively borrowed" in repr(array)
        assert array.get((0, 0)) == 1

    def test_buffer_read_allowed_while_shared(self, array):
        with array.as_shared_view():
            assert array.get((1, 2)) == 6

    def test_buffer_write_blocked_by_any_borrow(self, array):
        with array.as_shared_view():
            with pytest.raises(BorrowConflict):
                array.set((0, 0), 1)
            with pytest.raises(BorrowConflict):
                array[0, 0] = 1
        array.set((0, 0), 100)
        assert array.get((0, 0)) == 100


class TestRelease:
    def test_release_frees_storage(self, array):
        array.release()
        assert array.released
        assert "released" in repr(array)
        with pytest.raises(BorrowConflict):
            array.get((0, 0))
        with pytest.raises(BorrowConflict):
            array.as_shared_view()
        with pytest.raises(BorrowConflict):
            array.as_exclusive_view()
        array.release()

    def test_release_refused_while_borrowed(self, array):
        view = array.as_shared_view()
        with pytest.raises(BorrowConflict):
            array.release()
        assert not array.released
        view.release()
        array.release()
        assert array.released

    def test_buffer_context_manager(self):
        with NDBuffer.allocate_fill((2, 2), 0) as array:
            array.set((0, 0), 1)
        assert array.released

    def test_borrow_conflict_is_runtime_error(self, array):
        view = array.as_exclusive_view()
        with pytest.raises(RuntimeError):
            array.as_shared_view()
        view.release()


class TestCollectedViews:
    def test_temporary_view_returns_its_borrow(self, array):
        assert array.as_shared_view().transpose().tolist() == [[1, 4], [2, 5], [3, 6]]
        gc.collect()
        assert not array.has_borrows()
        array.as_exclusive_view().release()

    def test_dropped_view_returns_its_borrow(self, array):
        view = array.as_exclusive_view()
        view.set((0, 0), 10)
        del view
        gc.collect()
        assert array.get((0, 0)) == 10
        array[0, 1] = 20
        array.release()

    def test_derived_view_keeps_the_borrow(self, array):
        row = array.as_shared_view().extract(0, 1)
        gc.collect()
        with pytest.raises(BorrowConflict):
            array.as_exclusive_view()
        assert row.tolist() == [4, 5, 6]
        del row
        gc.collect()
        array.as_exclusive_view().release()

    def test_reborrow_keeps_the_exclusive_borrow(self, array):
        shared = array.as_exclusive_view().as_shared_view()
        gc.collect()
        with pytest.raises(BorrowConflict):
            array.get((0, 0))
        assert shared.get((0, 0)) == 1
        del shared
        gc.collect()
        assert array.get((0, 0)) == 1

    def test_collected_after_release(self, array):
        view = array.as_shared_view()
        other = array.as_shared_view()
        view.release()
        del view
        gc.collect()
        # the released lease is not returned a second time
        with pytest.raises(BorrowConflict):
            array.as_exclusive_view()
        other.release()
