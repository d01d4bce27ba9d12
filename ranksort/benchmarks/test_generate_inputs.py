import numpy as np
import pytest

from ranksort.benchmarks.generate_inputs import generate_input


@pytest.mark.parametrize('kind', ['uniform', 'sorted', 'descending', 'high_duplicates'])
def test_range_and_dtype(kind):
    data = generate_input(kind, 500, 37, seed=1)
    assert data.dtype == np.int32
    assert data.shape == (500,)
    assert data.min() >= 0 and data.max() < 37


def test_reproducible():
    a = generate_input('uniform', 100, 1000, seed=3)
    b = generate_input('uniform', 100, 1000, seed=3)
    np.testing.assert_array_equal(a, b)


def test_sorted_is_ascending():
    data = generate_input('sorted', 200, 50)
    assert np.all(data[:-1] <= data[1:])


def test_descending_strict_when_room():
    data = generate_input('descending', 10, 100)
    assert data.tolist() == list(range(9, -1, -1))


def test_descending_nonincreasing_when_crowded():
    data = generate_input('descending', 100, 7)
    assert np.all(data[:-1] >= data[1:])
    assert data.max() < 7


def test_high_duplicates_at_top():
    data = generate_input('high_duplicates', 1000, 1000)
    assert data.min() >= 996
    assert np.unique(data).size <= 4


def test_empty():
    assert generate_input('uniform', 0, 10).shape == (0,)


@pytest.mark.parametrize('kind, N, max_value', [
    ('nope', 10, 10),
    ('uniform', -1, 10),
    ('uniform', 10, 0),
])
def test_invalid(kind, N, max_value):
    with pytest.raises(ValueError):
        generate_input(kind, N, max_value)
