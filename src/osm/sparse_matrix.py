import bisect
import operator
import time
import numpy as np
from typing import Any, Iterable, Iterator, Optional

from .chain import Chain, normalize_coefficient_type, is_scalar, check_scalar, check_types, flip
from .config import OSMConfig
from .constants import (COLUMN, ROW, ORIENTATIONS, STATE_POPULATED, STATE_WRITTEN, STATE_CLEARED,
                        orientation_name)
from .osm_errors import (InvalidOrientationError, InvalidDimensionError, OrientationMismatchError,
                         ShapeMismatchError, IndexOutOfRangeError)


def _check_dimension(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 0:
        raise InvalidDimensionError(name, value)
    return int(value)


def _check_index(index, size: int, axis: str) -> int:
    index = operator.index(index)
    if not 0 <= index < size:
        raise IndexOutOfRangeError(index, size, axis)
    return index


class SparseMatrix:
    """
    Sparse matrix stored as a list of same-orientation chains.

    A COLUMN matrix keeps one chain per column and has shape
    (chain_size, chain_count); a ROW matrix keeps one chain per row and has
    shape (chain_count, chain_size).

    Besides the chains the matrix keeps ``non_empty_index``, the sorted
    positions of chains holding at least one entry, and ``chains_state``, one
    flag word per chain (see STATE_* in constants). Both are updated on every
    mutation, including mutation of a chain obtained through ``M[i]``.
    """

    # keep numpy scalars from broadcasting over matrices, e.g. np.int64(3) * M
    __array_ufunc__ = None

    def __init__(self,
                 chain_count: Optional[int] = None,
                 chain_size: Optional[int] = None,
                 coefficient_type: Optional[type] = None,
                 orientation: int = COLUMN,
                 config: OSMConfig = OSMConfig()):
        """
        Preallocate chain_count empty chains.

        Args:
            chain_count: Number of chains, config.default_chain_count if None.
            chain_size: Length of every chain, chain_count if None.
            coefficient_type: Type of the coefficients, config.default_coefficient_type if None.
            orientation: COLUMN or ROW, the orientation of every chain.
            config: OSMConfig inherited by every matrix derived from this one.
        """
        config.validate()
        self.config = config
        if chain_count is None:
            chain_count = config.default_chain_count
        self.chain_count = _check_dimension("chain_count", chain_count)
        self.chain_size = self.chain_count if chain_size is None else _check_dimension("chain_size", chain_size)
        if orientation not in ORIENTATIONS:
            raise InvalidOrientationError(orientation)
        self.orientation = orientation
        if coefficient_type is None:
            coefficient_type = config.default_coefficient_type
        self.coefficient_type = normalize_coefficient_type(coefficient_type)

        self.chains: list[Chain] = [self._new_chain(p) for p in range(self.chain_count)]
        self.chains_state = np.zeros(self.chain_count, dtype=np.uint8)
        self.non_empty_index: list[int] = []

    def _new_chain(self, position: int) -> Chain:
        chain = Chain(self.coefficient_type, self.orientation, self.chain_size or None)
        chain._owner = (self, position)
        return chain

    def _empty_like(self, chain_count: int, chain_size: int, orientation: Optional[int] = None) -> 'SparseMatrix':
        return SparseMatrix(chain_count, chain_size, self.coefficient_type,
                            self.orientation if orientation is None else orientation, self.config)

    def _sync_chain(self, position: int, cleared: bool = False) -> None:
        """Bring non_empty_index and the state word of one chain up to date."""
        populated = len(self.chains[position].data_store) > 0
        state = int(self.chains_state[position])
        if populated:
            if not state & STATE_POPULATED:
                bisect.insort(self.non_empty_index, position)
            state = (state | STATE_POPULATED | STATE_WRITTEN) & ~STATE_CLEARED
        else:
            if state & STATE_POPULATED:
                del self.non_empty_index[bisect.bisect_left(self.non_empty_index, position)]
            state &= ~STATE_POPULATED
            if cleared:
                state |= STATE_CLEARED
        self.chains_state[position] = state

    def _load_chain(self, position: int, entries: dict[int, Any]) -> None:
        if entries:
            self.chains[position].data_store = entries
            self._sync_chain(position)

    def _take(self, other: 'SparseMatrix') -> None:
        """Adopt the content of other, which must not be used afterwards."""
        for chain in self.chains:
            chain._owner = None
        self.config = other.config
        self.chain_count = other.chain_count
        self.chain_size = other.chain_size
        self.orientation = other.orientation
        self.coefficient_type = other.coefficient_type
        self.chains = other.chains
        self.chains_state = other.chains_state
        self.non_empty_index = other.non_empty_index
        for p, chain in enumerate(self.chains):
            chain._owner = (self, p)

    def chain_state(self, position: int) -> int:
        """The STATE_* flag word of the chain at position."""
        return int(self.chains_state[_check_index(position, self.chain_count, "chain")])

    def is_cleared(self, position: int) -> bool:
        """Whether the chain was explicitly nullified and not written since."""
        return bool(self.chain_state(position) & STATE_CLEARED)

    @property
    def shape(self) -> tuple[int, int]:
        if self.orientation == COLUMN:
            return self.chain_size, self.chain_count
        return self.chain_count, self.chain_size

    @property
    def zero(self):
        return self.coefficient_type(0)

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return sum(len(self.chains[p].data_store) for p in self.non_empty_index)

    def is_row(self) -> bool:
        return self.orientation == ROW

    def is_column(self) -> bool:
        return self.orientation == COLUMN

    def _locate(self, row: int, col: int) -> tuple[int, int]:
        """(chain position, index in chain) of a bounds-checked cell."""
        n_rows, n_cols = self.shape
        row = _check_index(row, n_rows, "row")
        col = _check_index(col, n_cols, "column")
        if self.orientation == COLUMN:
            return col, row
        return row, col

    def _chains_along(self, orientation: int) -> dict[int, dict[int, Any]]:
        """Entries of the non-empty rows or columns, keyed by position, without copying when stored that way."""
        if orientation == self.orientation:
            return {p: self.chains[p].data_store for p in self.non_empty_index}
        out: dict[int, dict[int, Any]] = {}
        for p in self.non_empty_index:
            for i, v in self.chains[p].data_store.items():
                out.setdefault(i, {})[p] = v
        return out

    def _check_chain(self, chain: Chain, orientation: int, limit: int, operation: str) -> None:
        if not isinstance(chain, Chain):
            raise TypeError(f"{operation} expects a Chain, got {type(chain).__name__}")
        check_types(self, chain, operation)
        if chain.orientation != orientation:
            raise OrientationMismatchError(orientation, chain.orientation, operation)
        for i in chain.data_store:
            _check_index(i, limit, "chain entry")

    def __getitem__(self, key):
        """
        M[i] returns the chain at position i, M[row, col] the coefficient of a cell.

        Raises:
            IndexOutOfRangeError: If the position or cell is outside the matrix.
        """
        if isinstance(key, tuple):
            if len(key) != 2:
                raise KeyError("SparseMatrix cell indices must be a tuple of length 2")
            return self.get_coefficient(*key)
        return self.chains[_check_index(key, self.chain_count, "chain")]

    def __setitem__(self, key, value) -> None:
        """
        M[i] = chain replaces the chain at position i with a copy of chain,
        M[row, col] = x sets a cell.
        """
        if isinstance(key, tuple):
            if len(key) != 2:
                raise KeyError("SparseMatrix cell indices must be a tuple of length 2")
            self.set_coefficient(key[0], key[1], value)
            return
        position = _check_index(key, self.chain_count, "chain")
        self._check_chain(value, self.orientation, self.chain_size, "chain assignment")
        self.chains[position]._owner = None
        self.chains[position] = self._new_chain(position)
        self._load_chain(position, dict(value.data_store))
        self._sync_chain(position)

    def __delitem__(self, key) -> None:
        """del M[i] nullifies chain i, del M[row, col] removes a cell."""
        if isinstance(key, tuple):
            if len(key) != 2:
                raise KeyError("SparseMatrix cell indices must be a tuple of length 2")
            self.nullify_coefficient(*key)
            return
        self.nullify_chain(key)

    def get_coefficient(self, row: int, col: int):
        position, index = self._locate(row, col)
        return self.chains[position].data_store.get(index, self.zero)

    def set_coefficient(self, row: int, col: int, value) -> None:
        position, index = self._locate(row, col)
        self.chains[position][index] = value

    def nullify_coefficient(self, row: int, col: int) -> None:
        position, index = self._locate(row, col)
        del self.chains[position][index]

    def _gather(self, index: int, orientation: int) -> Chain:
        result = Chain(self.coefficient_type, orientation, self.chain_count or None)
        for p in self.non_empty_index:
            store = self.chains[p].data_store
            if index in store:
                result.data_store[p] = store[index]
        return result

    def _scatter(self, index: int, chain: Optional[Chain]) -> None:
        for p in list(self.non_empty_index):
            if index in self.chains[p].data_store:
                del self.chains[p][index]
                if chain is None and not self.chains[p].data_store:
                    self._sync_chain(p, cleared=True)
        if chain is not None:
            for p, v in chain.data_store.items():
                self.chains[p][index] = v

    def get_column(self, i: int) -> Chain:
        """
        Column i as a column chain.

        On a COLUMN matrix this is the stored chain itself; on a ROW matrix a
        new chain is assembled from every non-empty row.
        """
        if self.orientation == COLUMN:
            return self[i]
        return self._gather(_check_index(i, self.chain_size, "column"), COLUMN)

    def get_row(self, i: int) -> Chain:
        """Row i as a row chain, see get_column."""
        if self.orientation == ROW:
            return self[i]
        return self._gather(_check_index(i, self.chain_size, "row"), ROW)

    def _set_orthogonal(self, i: int, chain: Chain, orientation: int, axis: str) -> None:
        if self.orientation == orientation:
            self[i] = chain
            return
        i = _check_index(i, self.chain_size, axis)
        self._check_chain(chain, orientation, self.chain_count, f"set_{axis}")
        self._scatter(i, chain)

    def set_column(self, i: int, chain: Chain) -> None:
        """
        Replace column i with the entries of a column chain.

        On a ROW matrix every entry is scattered into the matching row, after
        removing what column i held before.
        """
        self._set_orthogonal(i, chain, COLUMN, "column")

    def set_row(self, i: int, chain: Chain) -> None:
        """Replace row i with the entries of a row chain, see set_column."""
        self._set_orthogonal(i, chain, ROW, "row")

    def nullify_chain(self, position: int) -> None:
        self.chains[_check_index(position, self.chain_count, "chain")].clear()

    def _nullify_orthogonal(self, i: int, orientation: int, axis: str) -> None:
        if self.orientation == orientation:
            self.nullify_chain(i)
            return
        self._scatter(_check_index(i, self.chain_size, axis), None)

    def nullify_column(self, i: int) -> None:
        self._nullify_orthogonal(i, COLUMN, "column")

    def nullify_row(self, i: int) -> None:
        self._nullify_orthogonal(i, ROW, "row")

    def _is_null_orthogonal(self, i: int, orientation: int, axis: str) -> bool:
        if self.orientation == orientation:
            return not self.chain_state(i) & STATE_POPULATED
        i = _check_index(i, self.chain_size, axis)
        return all(i not in self.chains[p].data_store for p in self.non_empty_index)

    def is_null_column(self, i: int) -> bool:
        return self._is_null_orthogonal(i, COLUMN, "column")

    def is_null_row(self, i: int) -> bool:
        return self._is_null_orthogonal(i, ROW, "row")

    def __len__(self) -> int:
        return self.chain_count

    def __iter__(self) -> Iterator[Chain]:
        """Every chain in storage order, empty ones included."""
        return iter(self.chains)

    def __reversed__(self) -> Iterator[Chain]:
        return reversed(self.chains)

    def non_empty(self) -> Iterator[tuple[int, Chain]]:
        """(position, chain) pairs of the chains holding entries."""
        for p in list(self.non_empty_index):
            yield p, self.chains[p]

    def items(self) -> list[tuple[tuple[int, int], Any]]:
        """Returns a list of ((row, col), value) pairs of the stored entries."""
        ret = []
        for p in self.non_empty_index:
            for i, v in self.chains[p].data_store.items():
                ret.append(((i, p), v) if self.orientation == COLUMN else ((p, i), v))
        return ret

    def copy(self) -> 'SparseMatrix':
        return self._copy_as(self.orientation)

    def _copy_as(self, orientation: int) -> 'SparseMatrix':
        result = self._empty_like(self.chain_count, self.chain_size, orientation)
        for p in self.non_empty_index:
            result.chains[p].data_store = self.chains[p].data_store.copy()
        result.chains_state = self.chains_state.copy()
        result.non_empty_index = list(self.non_empty_index)
        return result

    def assign(self, other: 'SparseMatrix') -> 'SparseMatrix':
        """
        Overwrite this matrix with a copy of other, shape and orientation included.

        Raises:
            TypeMismatchError: If coefficient types differ.
        """
        check_types(self, other, "assignment")
        self._take(other.copy())
        return self

    def __eq__(self, other) -> bool:
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return (self.orientation == other.orientation
                and self.coefficient_type == other.coefficient_type
                and self.chain_count == other.chain_count
                and self.chain_size == other.chain_size
                and self.non_empty_index == other.non_empty_index
                and all(self.chains[p] == other.chains[p] for p in self.non_empty_index))

    __hash__ = None

    def __repr__(self) -> str:
        return f"SparseMatrix({orientation_name(self.orientation)}, shape={self.shape}, nnz={self.nnz})"

    def _check_elementwise(self, other: 'SparseMatrix', operation: str) -> None:
        check_types(self, other, operation)
        if self.orientation != other.orientation:
            raise OrientationMismatchError(self.orientation, other.orientation, operation)
        if self.shape != other.shape:
            raise ShapeMismatchError(self.shape, other.shape, operation)

    def __iadd__(self, other: 'SparseMatrix') -> 'SparseMatrix':
        """
        Adds another matrix to this one in-place, chain by chain.

        Raises:
            TypeMismatchError, OrientationMismatchError, ShapeMismatchError
        """
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        self._check_elementwise(other, "addition")
        for p in list(other.non_empty_index):
            self.chains[p] += other.chains[p]
        return self

    def __isub__(self, other: 'SparseMatrix') -> 'SparseMatrix':
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        self._check_elementwise(other, "subtraction")
        for p in list(other.non_empty_index):
            self.chains[p] -= other.chains[p]
        return self

    def __add__(self, other: 'SparseMatrix') -> 'SparseMatrix':
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        self._check_elementwise(other, "addition")
        result = self.copy()
        result += other
        return result

    def __sub__(self, other: 'SparseMatrix') -> 'SparseMatrix':
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        self._check_elementwise(other, "subtraction")
        result = self.copy()
        result -= other
        return result

    def _scaled(self, scalar, left: bool) -> 'SparseMatrix':
        check_scalar(scalar)
        result = self.copy()
        for p in self.non_empty_index:
            result.chains[p].data_store = self.chains[p].scaled(scalar, left=left)
        return result

    def __mul__(self, other):
        if isinstance(other, (SparseMatrix, Chain)):
            return self.__matmul__(other)
        if not is_scalar(other, self.coefficient_type):
            return NotImplemented
        return self._scaled(other, left=False)

    def __rmul__(self, other):
        if not is_scalar(other, self.coefficient_type):
            return NotImplemented
        return self._scaled(other, left=True)

    def __imul__(self, other):
        if isinstance(other, SparseMatrix):
            return self.__imatmul__(other)
        if isinstance(other, Chain):
            raise TypeError("in-place multiplication of a SparseMatrix by a Chain is not supported, use M @ chain")
        if not is_scalar(other, self.coefficient_type):
            return NotImplemented
        check_scalar(other)
        for p in self.non_empty_index:
            self.chains[p].data_store = self.chains[p].scaled(other)
        return self

    def __matmul__(self, other):
        """M @ B is the matrix product in M's orientation, M @ column the matrix-vector product."""
        if isinstance(other, SparseMatrix):
            return matrix_product(self, other, self.orientation)
        if isinstance(other, Chain):
            return self._multiply_column(other)
        return NotImplemented

    def __rmatmul__(self, other):
        """row @ M, the vector-matrix product."""
        if isinstance(other, Chain):
            return self._multiply_row(other)
        return NotImplemented

    def __imatmul__(self, other):
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        self._take(matrix_product(self, other, self.orientation))
        return self

    def _multiply_column(self, vector: Chain) -> Chain:
        check_types(self, vector, "matrix-vector product")
        if not vector.is_column():
            raise OrientationMismatchError(vector.orientation, COLUMN, "matrix-vector product")
        n_rows, n_cols = self.shape
        if vector.extent() > n_cols:
            raise ShapeMismatchError(self.shape, (vector.extent(), 1), "matrix-vector product")

        columns = self._chains_along(COLUMN)
        zero = self.zero
        result = Chain(self.coefficient_type, COLUMN, n_rows or None)
        out = result.data_store
        for p, xv in vector.data_store.items():
            for i, av in columns.get(p, {}).items():
                term = av * xv
                if term == zero:
                    continue
                out[i] = out[i] + term if i in out else term
        return result

    def _multiply_row(self, vector: Chain) -> Chain:
        check_types(vector, self, "vector-matrix product")
        if not vector.is_row():
            raise OrientationMismatchError(vector.orientation, ROW, "vector-matrix product")
        n_rows, n_cols = self.shape
        if vector.extent() > n_rows:
            raise ShapeMismatchError((1, vector.extent()), self.shape, "vector-matrix product")

        rows = self._chains_along(ROW)
        zero = self.zero
        result = Chain(self.coefficient_type, ROW, n_cols or None)
        out = result.data_store
        for p, xv in vector.data_store.items():
            for j, av in rows.get(p, {}).items():
                term = xv * av
                if term == zero:
                    continue
                out[j] = out[j] + term if j in out else term
        return result

    def remove_indices(self, indices: Iterable[int], inplace: bool = False) -> Optional['SparseMatrix']:
        """
        Remove the listed positions from both dimensions.

        Every listed position is dropped as a chain and removed from every
        chain, remaining indices are shifted down to stay contiguous. A
        position outside one dimension is ignored for that dimension. An empty
        list gives an unmodified copy.

        Args:
            indices: Positions to remove.
            inplace: Whether to modify this matrix instead of returning a new one.

        Returns:
            The submatrix, or None when inplace.
        """
        st = time.time()
        removed = np.unique(np.fromiter((operator.index(i) for i in indices), dtype=np.int64))
        removed = removed[removed >= 0]
        if self.config.verbose:
            print(f"Removing {len(removed)} indices from a {self.shape} matrix")

        kept = np.setdiff1d(np.arange(self.chain_count, dtype=np.int64), removed)
        new_size = self.chain_size - int(np.count_nonzero(removed < self.chain_size))
        result = self._empty_like(len(kept), new_size)
        result.chains_state = self.chains_state[kept] & ~np.uint8(STATE_POPULATED)

        for new_p, old_p in enumerate(kept.tolist()):
            old_entries = self.chains[old_p].data_store
            if not old_entries:
                continue
            keys = list(old_entries)
            shifts = np.searchsorted(removed, keys)
            entries = {}
            for key, shift in zip(keys, shifts.tolist()):
                if shift < len(removed) and removed[shift] == key:
                    continue
                entries[key - shift] = old_entries[key]
            result._load_chain(new_p, entries)

        if self.config.verbose:
            print(f"  took: {time.time() - st} seconds")
        if inplace:
            self._take(result)
            return None
        return result

    def __truediv__(self, indices: Iterable[int]) -> 'SparseMatrix':
        return self.remove_indices(indices)

    def __itruediv__(self, indices: Iterable[int]) -> 'SparseMatrix':
        self.remove_indices(indices, inplace=True)
        return self

    def transpose(self) -> 'SparseMatrix':
        """Flip every chain and the matrix orientation, which transposes the matrix."""
        return self._copy_as(flip(self.orientation))

    @property
    def T(self) -> 'SparseMatrix':
        return self.transpose()


def matrix_product(a: SparseMatrix, b: SparseMatrix, orientation: int = COLUMN) -> SparseMatrix:
    """
    Sparse product a * b as a sum of outer products of a's columns and b's rows.

    The result holds a cell (i, j) iff at least one term a[i, p] * b[p, j] is
    non-zero.

    Args:
        a: Left operand of shape (n, k).
        b: Right operand of shape (k, m).
        orientation: COLUMN for a column-major result, ROW for a row-major one.

    Raises:
        TypeMismatchError: If coefficient types differ.
        ShapeMismatchError: If a.shape[1] != b.shape[0].
    """
    check_types(a, b, "matrix product")
    if a.shape[1] != b.shape[0]:
        raise ShapeMismatchError(a.shape, b.shape, "matrix product")
    if orientation not in ORIENTATIONS:
        raise InvalidOrientationError(orientation)

    st = time.time()
    if a.config.verbose:
        print(f"Multiplying {a.shape} ({a.nnz} entries) by {b.shape} ({b.nnz} entries)")

    n_rows, n_cols = a.shape[0], b.shape[1]
    a_columns = a._chains_along(COLUMN)
    b_rows = b._chains_along(ROW)
    zero = a.zero

    # result entries keyed by result chain position
    cells: dict[int, dict[int, Any]] = {}
    for p in sorted(a_columns.keys() & b_rows.keys()):
        b_row = b_rows[p]
        for i, av in a_columns[p].items():
            for j, bv in b_row.items():
                term = av * bv
                if term == zero:
                    continue
                position, index = (j, i) if orientation == COLUMN else (i, j)
                chain_cells = cells.setdefault(position, {})
                chain_cells[index] = chain_cells[index] + term if index in chain_cells else term

    if orientation == COLUMN:
        result = SparseMatrix(n_cols, n_rows, a.coefficient_type, COLUMN, a.config)
    else:
        result = SparseMatrix(n_rows, n_cols, a.coefficient_type, ROW, a.config)
    for position, entries in cells.items():
        result._load_chain(position, entries)

    if a.config.verbose:
        print(f"  took: {time.time() - st} seconds")
    return result
