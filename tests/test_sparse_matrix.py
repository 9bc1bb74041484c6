import os
import sys
import pytest
import numpy as np

# Add the src directory to Python path to import local osm
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from osm import (SparseMatrix, Chain, OSMConfig, COLUMN, ROW, STATE_POPULATED, STATE_WRITTEN, STATE_CLEARED,
                 matrix_product, TypeMismatchError, OrientationMismatchError, ShapeMismatchError,
                 InvalidScalarError, IndexOutOfRangeError, InvalidDimensionError, InvalidOrientationError)
from test_utils import make_chain, random_dense, matrix_from_dense, check_invariants, assert_matches_dense


ORIENTATIONS = [COLUMN, ROW]


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(565656)


def test_default_construction():
    m = SparseMatrix()
    assert len(m) == OSMConfig().default_chain_count
    assert m.shape == (16, 16)
    assert m.is_column()
    assert m.coefficient_type is int
    assert m.non_empty_index == []
    assert m.chains_state.dtype == np.uint8
    assert all(len(chain) == 0 for chain in m)
    assert m.nnz == 0


def test_construction_from_config_and_shapes():
    m = SparseMatrix(config=OSMConfig(default_chain_count=4, default_coefficient_type=float))
    assert len(m) == 4
    assert m.coefficient_type is float

    m = SparseMatrix(3, 5, int, COLUMN)
    assert m.shape == (5, 3)
    assert all(chain.bound == 5 for chain in m)
    m = SparseMatrix(3, 5, int, ROW)
    assert m.shape == (3, 5)


def test_invalid_construction():
    with pytest.raises(InvalidDimensionError):
        SparseMatrix(-1)
    with pytest.raises(InvalidDimensionError):
        SparseMatrix(3, 2.5)
    with pytest.raises(InvalidOrientationError):
        SparseMatrix(3, orientation=0)
    with pytest.raises(InvalidDimensionError):
        SparseMatrix(config=OSMConfig(default_chain_count=-2))


def test_chain_access_is_bounds_checked():
    m = SparseMatrix(4)
    assert isinstance(m[3], Chain)
    for bad in [4, -1, 100]:
        with pytest.raises(IndexOutOfRangeError):
            m[bad]
    # also an IndexError
    with pytest.raises(IndexError):
        m[4] = Chain()


@pytest.mark.parametrize("orientation", ORIENTATIONS)
def test_cell_access(orientation):
    m = SparseMatrix(3, 4, int, orientation)
    n_rows, n_cols = m.shape
    m[n_rows - 1, n_cols - 1] = 7
    assert m[n_rows - 1, n_cols - 1] == 7
    assert m.get_coefficient(0, 0) == 0
    if orientation == COLUMN:
        assert m.chains[n_cols - 1].data_store == {n_rows - 1: 7}
    else:
        assert m.chains[n_rows - 1].data_store == {n_cols - 1: 7}
    with pytest.raises(IndexOutOfRangeError):
        m[n_rows, 0]
    with pytest.raises(IndexOutOfRangeError):
        m[0, n_cols] = 1
    del m[n_rows - 1, n_cols - 1]
    assert m.nnz == 0
    check_invariants(m)


def test_non_empty_index_follows_chain_mutations():
    m = SparseMatrix(4)
    m[2][1] = 5
    m[0][3] = 1
    assert m.non_empty_index == [0, 2]
    del m[2][1]
    assert m.non_empty_index == [0]
    assert m.chain_state(2) == STATE_WRITTEN
    m[0] += make_chain({1: 2})
    m[0] /= [3]
    assert m.non_empty_index == [0]
    assert m[0].data_store == {1: 2}
    m[0] *= 3
    assert m[1, 0] == 6
    check_invariants(m)


def test_chain_state_distinguishes_cleared_from_never_written():
    m = SparseMatrix(3)
    assert m.chain_state(1) == 0
    assert not m.is_cleared(1)

    m[0, 0] = 1
    assert m.chain_state(0) == STATE_POPULATED | STATE_WRITTEN
    m.nullify_chain(0)
    assert m.is_cleared(0)
    assert m.chain_state(0) == STATE_WRITTEN | STATE_CLEARED
    assert m.non_empty_index == []

    m[0, 0] = 2
    assert not m.is_cleared(0)
    del m[1]
    assert m.is_cleared(1)


def test_replaced_chain_is_detached():
    m = SparseMatrix(3)
    old = m[1]
    m[1] = make_chain({0: 3})
    old[2] = 9
    assert m[2, 1] == 0
    assert m.non_empty_index == [1]


def test_chain_assignment_stores_a_copy():
    m = SparseMatrix(3)
    c = make_chain({0: 3, 2: 4})
    m[1] = c
    c[1] = 100
    assert m[1].data_store == {0: 3, 2: 4}
    assert m[1].bound == 3
    m[1] = Chain()
    assert m.non_empty_index == []
    check_invariants(m)


def test_chain_assignment_is_validated():
    m = SparseMatrix(3)
    with pytest.raises(OrientationMismatchError):
        m[0] = make_chain({0: 1}, ROW)
    with pytest.raises(TypeMismatchError):
        m[0] = make_chain({0: 1.0}, coefficient_type=float)
    with pytest.raises(IndexOutOfRangeError):
        m[0] = make_chain({3: 1})
    assert m.nnz == 0


def test_chain_in_matrix_keeps_its_orientation_on_assign():
    m = SparseMatrix(3)
    with pytest.raises(OrientationMismatchError):
        m[0].assign(make_chain({0: 1}, ROW))
    m[0].assign(make_chain({0: 1}))
    assert m.non_empty_index == [0]
    assert m[0].bound == 3


def test_chain_in_matrix_rejects_entries_outside_the_matrix():
    m = SparseMatrix(3)
    m[1, 1] = 2
    with pytest.raises(IndexOutOfRangeError):
        m[0][5] = 1
    with pytest.raises(IndexOutOfRangeError):
        m[0][-1] = 1
    with pytest.raises(IndexOutOfRangeError):
        m[0] += make_chain({3: 1})
    with pytest.raises(IndexOutOfRangeError):
        m[2] -= make_chain({0: 1, 4: 1})
    with pytest.raises(IndexOutOfRangeError):
        m[0].assign(make_chain({7: 1}))
    assert m.nnz == 1
    assert m.items() == [((1, 1), 2)]
    assert (m @ m).items() == [((1, 1), 4)]
    check_invariants(m)

    # detached chains are free again
    old = m[0]
    m[0] = Chain()
    old[5] = 1
    assert m.nnz == 1


def test_get_column_on_row_matrix():
    m = SparseMatrix(3, 4, int, ROW)
    m[0, 2] = 9
    column = m.get_column(2)
    assert column.is_column()
    assert column.data_store == {0: 9}
    assert column.bound == 3
    with pytest.raises(IndexOutOfRangeError):
        m.get_column(4)


def test_get_row_on_column_matrix():
    m = SparseMatrix(3, 4, int, COLUMN)
    m[1, 0] = 2
    m[1, 2] = 3
    m[3, 2] = 4
    row = m.get_row(1)
    assert row.is_row()
    assert row.data_store == {0: 2, 2: 3}
    with pytest.raises(IndexOutOfRangeError):
        m.get_row(4)


def test_direct_access_in_stored_orientation():
    m = SparseMatrix(3, 4, int, COLUMN)
    assert m.get_column(2) is m[2]
    m = SparseMatrix(3, 4, int, ROW)
    assert m.get_row(1) is m[1]


def test_set_column_on_row_matrix():
    m = SparseMatrix(3, 3, int, ROW)
    m[1, 2] = 5
    m[0, 0] = 1
    m.set_column(2, make_chain({0: 7, 2: 8}, COLUMN))
    assert 2 not in m[1]
    assert m[0, 2] == 7
    assert m[2, 2] == 8
    assert m[0, 0] == 1
    assert m.non_empty_index == [0, 2]
    check_invariants(m)


def test_set_row_on_column_matrix():
    m = SparseMatrix(3, 3, int, COLUMN)
    m[2, 1] = 5
    m.set_row(2, make_chain({0: 4}, ROW))
    assert m.get_row(2).data_store == {0: 4}
    assert m.non_empty_index == [0]
    m.set_row(0, make_chain({1: 1}, ROW))
    assert m.get_row(0).data_store == {1: 1}
    check_invariants(m)


def test_set_column_is_validated_before_mutation():
    m = SparseMatrix(3, 3, int, ROW)
    m[1, 2] = 5
    with pytest.raises(IndexOutOfRangeError):
        m.set_column(2, make_chain({5: 1}, COLUMN))
    with pytest.raises(OrientationMismatchError):
        m.set_column(2, make_chain({0: 1}, ROW))
    with pytest.raises(IndexOutOfRangeError):
        m.set_column(3, make_chain({0: 1}, COLUMN))
    assert m.items() == [((1, 2), 5)]


def test_nullify_row_and_column():
    dense = np.array([[1, 0, 2],
                      [0, 3, 4],
                      [0, 0, 5]])
    m = matrix_from_dense(dense, COLUMN)
    m.nullify_row(1)
    assert m.is_null_row(1)
    assert not m.is_null_row(0)
    assert m.is_cleared(1)  # column 1 only held row 1
    assert not m.is_cleared(2)
    m.nullify_column(2)
    assert m.is_null_column(2)
    expected = dense.copy()
    expected[1, :] = 0
    expected[:, 2] = 0
    assert_matches_dense(m, expected)


@pytest.mark.parametrize("orientation", ORIENTATIONS)
def test_iteration_covers_every_chain(orientation):
    m = SparseMatrix(5, 2, int, orientation)
    m[1][0] = 1
    chains = list(m)
    assert len(chains) == 5
    assert all(a is b for a, b in zip(chains, m.chains))
    assert all(a is b for a, b in zip(reversed(m), m.chains[::-1]))
    assert [p for p, _ in m.non_empty()] == [1]


@pytest.mark.parametrize("orientation", ORIENTATIONS)
def test_transpose(rng, orientation):
    dense = random_dense(rng, (4, 6))
    m = matrix_from_dense(dense, orientation)
    t = m.T
    assert t.orientation != m.orientation
    assert_matches_dense(t, dense.T)
    assert t.T == m


@pytest.mark.parametrize("orientation", ORIENTATIONS)
def test_add_and_subtract(rng, orientation):
    a = random_dense(rng, (5, 4))
    b = random_dense(rng, (5, 4))
    ma = matrix_from_dense(a, orientation)
    mb = matrix_from_dense(b, orientation)
    assert_matches_dense(ma + mb, a + b)
    assert_matches_dense(ma - mb, a - b)
    assert_matches_dense((ma + mb) - mb, a)
    assert_matches_dense(ma, a)

    ma += mb
    assert_matches_dense(ma, a + b)
    ma -= mb
    ma -= mb
    assert_matches_dense(ma, a - b)


def test_elementwise_errors():
    m = SparseMatrix(3)
    m[0, 0] = 1
    with pytest.raises(ShapeMismatchError):
        m + SparseMatrix(4)
    with pytest.raises(ShapeMismatchError):
        m += SparseMatrix(3, 4)
    with pytest.raises(OrientationMismatchError):
        m - SparseMatrix(3, orientation=ROW)
    with pytest.raises(TypeMismatchError):
        m += SparseMatrix(3, coefficient_type=float)
    assert m.items() == [((0, 0), 1)]


def test_scalar_multiplication(rng):
    dense = random_dense(rng, (3, 3))
    m = matrix_from_dense(dense)
    assert_matches_dense(3 * m, 3 * dense)
    assert_matches_dense(m * 3, 3 * dense)
    assert_matches_dense(np.int64(2) * m, 2 * dense)
    m *= -1
    assert_matches_dense(m, -dense)
    for zero in [0, 0.0]:
        with pytest.raises(InvalidScalarError):
            zero * m
        with pytest.raises(InvalidScalarError):
            m *= zero
    assert_matches_dense(m, -dense)


def test_in_place_multiplication_by_chain_is_rejected():
    m = SparseMatrix(3)
    m[0, 0] = 1
    with pytest.raises(TypeError):
        m *= make_chain({0: 1})
    assert isinstance(m, SparseMatrix)
    assert m.items() == [((0, 0), 1)]
    assert (m * make_chain({0: 1})).data_store == {0: 1}


@pytest.mark.parametrize("left", ORIENTATIONS)
@pytest.mark.parametrize("right", ORIENTATIONS)
@pytest.mark.parametrize("result", ORIENTATIONS)
def test_matrix_product(rng, left, right, result):
    a = random_dense(rng, (4, 3))
    b = random_dense(rng, (3, 5))
    product = matrix_product(matrix_from_dense(a, left), matrix_from_dense(b, right), result)
    assert product.orientation == result
    assert_matches_dense(product, a @ b)
    # entries only where a term is non-zero, terms are never negative here
    assert product.nnz == np.count_nonzero(a @ b)


def test_matrix_product_operators(rng):
    a = random_dense(rng, (2, 3))
    b = random_dense(rng, (3, 3))
    ma = matrix_from_dense(a, ROW)
    mb = matrix_from_dense(b, COLUMN)
    assert (ma @ mb).is_row()
    assert_matches_dense(ma @ mb, a @ b)
    assert_matches_dense(ma * mb, a @ b)
    ma @= mb
    assert_matches_dense(ma, a @ b)
    check_invariants(ma)


def test_matrix_product_keeps_cancelled_cells():
    a = matrix_from_dense(np.array([[1, 1]]), ROW)
    b = matrix_from_dense(np.array([[1], [-1]]), COLUMN)
    product = a @ b
    assert product.items() == [((0, 0), 0)]


def test_matrix_product_errors():
    with pytest.raises(ShapeMismatchError):
        SparseMatrix(3, 2, int, ROW) @ SparseMatrix(3, 2, int, ROW)
    with pytest.raises(TypeMismatchError):
        SparseMatrix(3) @ SparseMatrix(3, coefficient_type=float)


def test_matrix_vector_products(rng):
    dense = random_dense(rng, (4, 3))
    m = matrix_from_dense(dense, ROW)
    x = make_chain({0: 2, 2: 1}, COLUMN, bound=3)
    y = m @ x
    assert y.is_column()
    np.testing.assert_array_equal(y.to_dense(4), dense @ x.to_dense(3))

    z = make_chain({1: 3, 3: 1}, ROW, bound=4)
    w = z @ m
    assert w.is_row()
    np.testing.assert_array_equal(w.to_dense(3), z.to_dense(4) @ dense)

    with pytest.raises(OrientationMismatchError):
        m @ z
    with pytest.raises(ShapeMismatchError):
        m @ make_chain({5: 1})
    with pytest.raises(TypeMismatchError):
        m @ make_chain({0: 1.0}, coefficient_type=float)


@pytest.mark.parametrize("orientation", ORIENTATIONS)
def test_remove_indices_scenario(orientation):
    m = SparseMatrix(4, orientation=orientation)
    m[1, 2] = 7
    sub = m.remove_indices([1])
    assert len(sub) == 3
    assert sub.shape == (3, 3)
    assert sub.nnz == 0
    assert m[1, 2] == 7
    check_invariants(sub)


@pytest.mark.parametrize("orientation", ORIENTATIONS)
def test_remove_indices_rebases(rng, orientation):
    dense = random_dense(rng, (5, 5), density=0.6)
    m = matrix_from_dense(dense, orientation)
    expected = np.delete(np.delete(dense, [1, 3], axis=0), [1, 3], axis=1)
    assert_matches_dense(m.remove_indices([3, 1]), expected)
    assert_matches_dense(m / [1, 3], expected)
    assert_matches_dense(m.remove_indices([1, 1, 3, 10, -2]), expected)


def test_remove_no_indices_is_a_copy(rng):
    dense = random_dense(rng, (4, 4))
    m = matrix_from_dense(dense)
    sub = m.remove_indices([])
    assert sub == m
    assert sub is not m
    sub[0, 0] = 99
    assert m[0, 0] == dense[0, 0]


def test_remove_indices_in_place(rng):
    dense = random_dense(rng, (4, 4), density=0.7)
    m = matrix_from_dense(dense, ROW)
    first = m[0]
    assert m.remove_indices([0], inplace=True) is None
    assert_matches_dense(m, dense[1:, 1:])
    m /= [0]
    assert_matches_dense(m, dense[2:, 2:])
    # chains from before the removal no longer feed the bookkeeping
    first[0] = 1
    check_invariants(m)


def test_remove_indices_on_rectangular_matrix():
    m = SparseMatrix(3, 5, int, COLUMN)
    m[4, 2] = 1
    m[3, 1] = 2
    sub = m.remove_indices([4])
    assert sub.shape == (4, 3)
    assert sub.items() == [((3, 1), 2)]


def test_copy_and_assign():
    m = SparseMatrix(3)
    m[0, 1] = 4
    c = m.copy()
    c[0, 1] = 5
    assert m[0, 1] == 4

    target = SparseMatrix(2, orientation=ROW)
    target.assign(m)
    assert target == m
    assert target.is_column()
    target[2, 2] = 1
    check_invariants(target)
    assert m[2, 2] == 0
    with pytest.raises(TypeMismatchError):
        target.assign(SparseMatrix(3, coefficient_type=float))


def test_equality_ignores_chain_state():
    a = SparseMatrix(3)
    a[0, 0] = 1
    a.nullify_chain(0)
    b = SparseMatrix(3)
    assert a == b
    assert a.chain_state(0) != b.chain_state(0)
    assert a != SparseMatrix(3, orientation=ROW)


def test_verbose_config_prints_progress(capsys):
    config = OSMConfig(verbose=True)
    m = SparseMatrix(3, config=config)
    m[0, 0] = 1
    m @ m
    m.remove_indices([0])
    out = capsys.readouterr().out
    assert "Multiplying" in out
    assert "Removing 1 indices" in out

    SparseMatrix(3) @ SparseMatrix(3)
    assert capsys.readouterr().out == ""


def test_repr():
    m = SparseMatrix(2, 3, int, ROW)
    m[1, 2] = 1
    assert repr(m) == "SparseMatrix(ROW, shape=(2, 3), nnz=1)"
