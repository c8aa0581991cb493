import numpy as np
import pytest
import torch

from ndslice import BorrowConflict, InvalidDimension, NDBuffer


@pytest.fixture
def array():
    return NDBuffer.from_nested([[1, 2, 3], [4, 5, 6]], dtype="int64")


class TestRepr:
    def test_nested(self, array):
        assert repr(array) == "[[1, 2, 3], [4, 5, 6]]"
        with array.as_shared_view() as view:
            assert repr(view) == "[[1, 2, 3], [4, 5, 6]]"
            assert repr(view.transpose()) == "[[1, 4], [2, 5], [3, 6]]"
            assert repr(view.extract(1, 2)) == "[3, 6]"

    def test_strings(self):
        words = NDBuffer.from_nested([["a", "b"], ["c", "d"]])
        assert repr(words) == "[['a', 'b'], ['c', 'd']]"

    def test_zero_dimensional(self):
        assert repr(NDBuffer.from_nested(7)) == "7"
        with NDBuffer.from_nested([1, 2]).as_shared_view() as view:
            assert repr(view.extract(0, 1)) == "2"

    def test_released(self, array):
        view = array.as_shared_view()
        view.release()
        assert "released" in repr(view)
        array.release()
        assert "released" in repr(array)

    def test_exclusively_borrowed(self, array):
        with array.as_exclusive_view():
            assert "exclusively borrowed" in repr(array)


class TestEquality:
    def test_same_values(self, array):
        other = NDBuffer.from_nested([[1, 2, 3], [4, 5, 6]], dtype="int64")
        assert array == other
        assert not (array != other)

    def test_different_values(self, array):
        assert array != NDBuffer.from_nested([[1, 2, 3], [4, 5, 7]])

    def test_different_shapes(self, array):
        assert array != NDBuffer.from_nested([1, 2, 3, 4, 5, 6])
        assert array != NDBuffer.from_nested([[1, 2], [3, 4], [5, 6]])

    def test_view_equals_buffer(self, array):
        with array.as_shared_view() as view:
            assert view == array
            assert view.extract(0, 1) == NDBuffer.from_nested([4, 5, 6])
            assert view.transpose() == NDBuffer.from_nested([[1, 4], [2, 5], [3, 6]])

    def test_same_layout(self, array):
        with array.as_shared_view() as first, array.as_shared_view() as second:
            assert first.same_layout(second)
            assert not first.same_layout(second.transpose())
            twice = first.transpose().transpose()
            assert twice.same_layout(first)

    def test_not_comparable_with_lists(self, array):
        assert array != [[1, 2, 3], [4, 5, 6]]

    def test_unhashable(self, array):
        with pytest.raises(TypeError):
            hash(array)


class TestConversion:
    def test_tolist(self, array):
        assert array.tolist() == [[1, 2, 3], [4, 5, 6]]
        assert NDBuffer.from_nested(5).tolist() == 5
        with array.as_shared_view() as view:
            assert view[:, 1:].tolist() == [[2, 3], [5, 6]]

    def test_iteration_order(self, array):
        assert list(array) == [1, 2, 3, 4, 5, 6]
        with array.as_shared_view() as view:
            assert list(view.transpose()) == [1, 4, 2, 5, 3, 6]
            assert list(view.transpose().indices())[:3] == [(0, 0), (0, 1), (1, 0)]
            assert list(view.extract(1, 0).iter()) == [((0,), 1), ((1,), 4)]

    def test_rows(self, array):
        with array.as_shared_view() as view:
            assert [row.tolist() for row in view.rows()] == [[1, 2, 3], [4, 5, 6]]
            with pytest.raises(InvalidDimension):
                list(view.extract(0, 0).extract(0, 0).rows())

    def test_to_buffer_copies(self, array):
        with array.as_shared_view() as view:
            column = view.extract(1, 1).to_buffer()
        assert column.tolist() == [2, 5]
        assert column.strides == (1,)
        array[0, 1] = 20
        assert column.tolist() == [2, 5]

    def test_clone(self, array):
        copy = array.clone()
        array[0, 0] = 100
        assert copy.get((0, 0)) == 1
        assert copy.dtype == array.dtype


class TestNumpy:
    def test_shared_view_is_read_only_alias(self, array):
        with array.as_shared_view() as view:
            out = view.transpose().numpy()
            np.testing.assert_array_equal(out, np.array([[1, 4], [2, 5], [3, 6]]))
            assert np.shares_memory(out, array.storage)
            assert not out.flags.writeable

    def test_exclusive_view_is_read_only_by_default(self, array):
        with array.as_exclusive_view() as view:
            out = view.numpy()
            assert np.shares_memory(out, array.storage)
        with array.as_shared_view() as shared:
            with pytest.raises(ValueError):
                out[0, 0] = 42
            assert shared.get((0, 0)) == 1

    def test_exclusive_view_writeable(self, array):
        with array.as_exclusive_view() as view:
            out = view[:, ::2].numpy(writeable=True)
            out[1, 1] = 60
        assert array.tolist() == [[1, 2, 3], [4, 5, 60]]

    def test_shared_view_refuses_writeable(self, array):
        with array.as_shared_view() as view:
            with pytest.raises(BorrowConflict):
                view.numpy(writeable=True)

    def test_object_dtype_refuses_writeable(self):
        words = NDBuffer.from_nested(["x", "y"])
        with words.as_exclusive_view() as view, pytest.raises(TypeError):
            view.numpy(writeable=True)

    def test_broadcast(self, array):
        with array.as_shared_view() as view:
            out = view.extract(0, 0).add_dimension(0, 4).numpy()
        np.testing.assert_array_equal(out, np.broadcast_to(np.array([1, 2, 3]), (4, 3)))

    def test_object_dtype_copies(self):
        words = NDBuffer.from_nested(["x", "y"])
        with words.as_shared_view() as view:
            out = view.numpy()
        assert out.dtype == object
        assert out.tolist() == ["x", "y"]

    def test_buffer_numpy_is_a_copy(self, array):
        out = array.numpy()
        out[0, 0] = 100
        assert array.get((0, 0)) == 1

    def test_from_numpy(self):
        source = np.arange(12, dtype=np.float32).reshape(3, 4).T
        buffer = NDBuffer.from_numpy(source)
        assert buffer.shape == (4, 3)
        assert buffer.strides == (3, 1)
        np.testing.assert_array_equal(buffer.numpy(), source)


class TestTorch:
    def test_matches_torch_layout(self, array):
        tensor = torch.tensor([[1, 2, 3], [4, 5, 6]])
        with array.as_shared_view() as view:
            out = view.transpose()[1:, :].torch()
        assert torch.equal(out, tensor.T[1:, :])

    def test_shared_view_gives_a_copy(self, array):
        with array.as_shared_view() as view:
            view.torch()[0, 0] = 99
            with pytest.raises(BorrowConflict):
                view.torch(writeable=True)
        assert array.tolist() == [[1, 2, 3], [4, 5, 6]]

    def test_exclusive_view_gives_a_copy_by_default(self, array):
        with array.as_exclusive_view() as view:
            view.torch()[0, 0] = 99
        assert array.get((0, 0)) == 1

    def test_exclusive_view_writeable(self, array):
        with array.as_exclusive_view() as view:
            view.extract(0, 1).torch(writeable=True)[2] = 60
        assert array.get((1, 2)) == 60

    def test_broadcast_copy(self, array):
        with array.as_shared_view() as view:
            out = view.extract(0, 1).add_dimension(0, 2).torch()
        assert torch.equal(out, torch.tensor([[4, 5, 6], [4, 5, 6]]))

    def test_object_dtype_rejected(self):
        words = NDBuffer.from_nested(["x", "y"])
        with words.as_shared_view() as view, pytest.raises(TypeError):
            view.torch()

    def test_released_view(self, array):
        view = array.as_shared_view()
        view.release()
        with pytest.raises(BorrowConflict):
            view.torch()

    def test_from_torch(self):
        tensor = torch.arange(6, dtype=torch.int64).reshape(2, 3)
        buffer = NDBuffer.from_torch(tensor)
        assert buffer.tolist() == tensor.tolist()
        assert torch.equal(buffer.torch(), tensor)
