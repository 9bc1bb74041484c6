import numbers
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .constants import COLUMN, ROW, ORIENTATIONS, orientation_name
from .osm_errors import (InvalidOrientationError, InvalidBoundError, TypeMismatchError,
                         OrientationMismatchError, InvalidScalarError, IndexOutOfRangeError)


def normalize_coefficient_type(coefficient_type) -> type:
    """Turn a numpy dtype or dtype string into its scalar type, pass python types through."""
    if isinstance(coefficient_type, (np.dtype, str)):
        return np.dtype(coefficient_type).type
    return coefficient_type


def is_scalar(value, coefficient_type: type) -> bool:
    """A scalar is any number, numpy scalar or instance of the coefficient type."""
    return isinstance(value, (numbers.Number, np.generic)) or isinstance(value, coefficient_type)


def check_scalar(scalar) -> None:
    if scalar == 0:
        raise InvalidScalarError(scalar)


def check_types(left, right, operation: str) -> None:
    if left.coefficient_type != right.coefficient_type:
        raise TypeMismatchError(left.coefficient_type, right.coefficient_type, operation)


def flip(orientation: int) -> int:
    return ROW if orientation == COLUMN else COLUMN


def _merged_bound(left: Optional[int], right: Optional[int]) -> Optional[int]:
    if left is None or right is None:
        return None
    return max(left, right)


@dataclass
class Chain:
    """
    Sparse vector over non-negative integer indices.

    Only present entries are stored in ``data_store``; an absent index reads as
    ``coefficient_type(0)``. Writing a zero keeps the entry, entries only go away
    through ``del``, ``remove_indices`` or ``clear``.

    A free chain accepts writes past its bound. A chain owned by a SparseMatrix
    only accepts indices in [0, chain_size), and reports every mutation back to
    the matrix so it can keep its non-empty index in sync.
    """

    coefficient_type: type = int
    orientation: int = COLUMN
    bound: Optional[int] = None
    data_store: dict[int, Any] = field(default_factory=dict)

    # keep numpy scalars from broadcasting over chains, e.g. np.float64(2) * chain
    __array_ufunc__ = None

    def __post_init__(self):
        self.coefficient_type = normalize_coefficient_type(self.coefficient_type)
        if self.orientation not in ORIENTATIONS:
            raise InvalidOrientationError(self.orientation)
        if self.bound is not None:
            if isinstance(self.bound, bool) or not isinstance(self.bound, (int, np.integer)) or self.bound <= 0:
                raise InvalidBoundError(self.bound)
            self.bound = int(self.bound)
        self._owner = None  # (matrix, position) while held by a SparseMatrix
        self._check_write(self.data_store)
        self.data_store = dict(self.data_store)

    @property
    def zero(self):
        return self.coefficient_type(0)

    def is_row(self) -> bool:
        return self.orientation == ROW

    def is_column(self) -> bool:
        return self.orientation == COLUMN

    def extent(self) -> int:
        """Smallest length covering both the bound and every stored index."""
        top = max(self.data_store) + 1 if self.data_store else 0
        return max(top, self.bound or 0)

    def _check_write(self, indices: Iterable[int]) -> None:
        """Raise IndexOutOfRangeError for a negative index, or one past the owning matrix's chain_size."""
        limit = self._owner[0].chain_size if self._owner is not None else None
        for i in indices:
            if i < 0 or (limit is not None and i >= limit):
                raise IndexOutOfRangeError(i, limit, "chain entry")

    def _notify(self, cleared: bool = False) -> None:
        if self._owner is not None:
            matrix, position = self._owner
            matrix._sync_chain(position, cleared=cleared)

    def _like(self, bound: Optional[int] = None, orientation: Optional[int] = None) -> 'Chain':
        return Chain(self.coefficient_type,
                     self.orientation if orientation is None else orientation,
                     self.bound if bound is None else bound)

    def get(self, i: int):
        """Get the value at index i."""
        return self[i]

    def __getitem__(self, i: int):
        """Returns the value at index i.

        No boundary check is done unless the chain was built with a bound, in
        which case indices outside [0, bound) read as zero.

        Args:
            i: The index to get the value for.

        Returns:
            The value at index i, or zero if not found.
        """
        if self.bound is not None and not 0 <= i < self.bound:
            return self.zero
        return self.data_store.get(i, self.zero)

    def __setitem__(self, i: int, value) -> None:
        """Sets the value at index i, past the bound too unless the chain belongs to a matrix."""
        self._check_write((i,))
        self.data_store[i] = value
        self._notify()

    def __delitem__(self, i: int) -> None:
        """Deletes the value at index i, if present."""
        if i in self.data_store:
            del self.data_store[i]
            self._notify()

    def __contains__(self, i: int) -> bool:
        return i in self.data_store

    def __len__(self) -> int:
        """Returns the number of stored entries."""
        return len(self.data_store)

    def __iter__(self):
        """Iterates over (index, coefficient) pairs of the stored entries."""
        return iter(self.data_store.items())

    def keys(self):
        return self.data_store.keys()

    def values(self):
        return self.data_store.values()

    def items(self) -> list[tuple[int, Any]]:
        """Returns a list of (index, coefficient) pairs, mimicking dict.items()."""
        return list(self.data_store.items())

    def clear(self) -> None:
        """Removes all entries from the chain."""
        self.data_store.clear()
        self._notify(cleared=True)

    def copy(self) -> 'Chain':
        """Returns a detached copy of the chain."""
        return Chain(self.coefficient_type, self.orientation, self.bound, self.data_store)

    def assign(self, other: 'Chain') -> 'Chain':
        """
        Overwrite this chain with the content of another one.

        Orientation and bound are copied as-is, except for a chain held by a
        matrix, which keeps its orientation and bound.

        Raises:
            TypeMismatchError: If coefficient types differ.
            OrientationMismatchError: If this chain belongs to a matrix and
                other has the opposite orientation.
            IndexOutOfRangeError: If this chain belongs to a matrix and other
                holds an index past its chain_size.
        """
        check_types(self, other, "assignment")
        if self._owner is not None:
            if other.orientation != self.orientation:
                raise OrientationMismatchError(self.orientation, other.orientation, "assignment")
            self._check_write(other.data_store)
        else:
            self.orientation = other.orientation
            self.bound = other.bound
        self.data_store = dict(other.data_store)
        self._notify()
        return self

    def _check_elementwise(self, other: 'Chain', operation: str) -> None:
        check_types(self, other, operation)
        if self.orientation != other.orientation:
            raise OrientationMismatchError(self.orientation, other.orientation, operation)

    def _accumulate(self, other: 'Chain', subtract: bool) -> None:
        store = self.data_store
        zero = self.zero
        for i, v in other.data_store.items():
            if i in store:
                store[i] = store[i] - v if subtract else store[i] + v
            else:
                store[i] = zero - v if subtract else v

    def __iadd__(self, other: 'Chain') -> 'Chain':
        """
        Adds another chain to this one in-place.

        Args:
            other: A chain with the same coefficient type and orientation.

        Returns:
            Self, with values from other added.
        """
        if not isinstance(other, Chain):
            return NotImplemented
        self._check_elementwise(other, "addition")
        self._check_write(other.data_store)
        self._accumulate(other, subtract=False)
        self._notify()
        return self

    def __isub__(self, other: 'Chain') -> 'Chain':
        if not isinstance(other, Chain):
            return NotImplemented
        self._check_elementwise(other, "subtraction")
        self._check_write(other.data_store)
        self._accumulate(other, subtract=True)
        self._notify()
        return self

    def __add__(self, other: 'Chain') -> 'Chain':
        """
        Adds another chain to this one, returning a new chain.

        The result is bounded by the larger bound, or unbounded if either
        operand is.
        """
        if not isinstance(other, Chain):
            return NotImplemented
        self._check_elementwise(other, "addition")
        result = Chain(self.coefficient_type, self.orientation, _merged_bound(self.bound, other.bound), self.data_store)
        result._accumulate(other, subtract=False)
        return result

    def __sub__(self, other: 'Chain') -> 'Chain':
        if not isinstance(other, Chain):
            return NotImplemented
        self._check_elementwise(other, "subtraction")
        result = Chain(self.coefficient_type, self.orientation, _merged_bound(self.bound, other.bound), self.data_store)
        result._accumulate(other, subtract=True)
        return result

    def scaled(self, scalar, left: bool = False) -> dict[int, Any]:
        """Entries multiplied by scalar, as scalar * v when left else v * scalar."""
        if left:
            return {i: scalar * v for i, v in self.data_store.items()}
        return {i: v * scalar for i, v in self.data_store.items()}

    def __mul__(self, other):
        if isinstance(other, Chain):
            return self.__matmul__(other)
        if not is_scalar(other, self.coefficient_type):
            return NotImplemented
        check_scalar(other)
        result = self._like()
        result.data_store = self.scaled(other)
        return result

    def __rmul__(self, other):
        if not is_scalar(other, self.coefficient_type):
            return NotImplemented
        check_scalar(other)
        result = self._like()
        result.data_store = self.scaled(other, left=True)
        return result

    def __imul__(self, other):
        if not is_scalar(other, self.coefficient_type):
            return NotImplemented
        check_scalar(other)
        self.data_store = self.scaled(other)
        self._notify()
        return self

    def __matmul__(self, other):
        """column @ row is the outer product, row @ column the dot product."""
        if not isinstance(other, Chain):
            return NotImplemented
        if self.is_column() and other.is_row():
            return outer_product(self, other)
        if self.is_row() and other.is_column():
            return dot_product(self, other)
        raise OrientationMismatchError(self.orientation, other.orientation, "chain product")

    def remove_indices(self, indices: Iterable[int], inplace: bool = False) -> Optional['Chain']:
        """
        Delete every listed index.

        Remaining indices keep their position. An empty list of indices gives
        an unmodified copy.

        Args:
            indices: Indices to delete, absent ones are ignored.
            inplace: Whether to modify this chain instead of returning a new one.

        Returns:
            The new chain, or None when inplace.
        """
        doomed = set(indices)
        if inplace:
            for i in doomed:
                self.data_store.pop(i, None)
            self._notify()
            return None
        result = self._like()
        result.data_store = {i: v for i, v in self.data_store.items() if i not in doomed}
        return result

    def __truediv__(self, indices: Iterable[int]) -> 'Chain':
        return self.remove_indices(indices)

    def __itruediv__(self, indices: Iterable[int]) -> 'Chain':
        self.remove_indices(indices, inplace=True)
        return self

    def transpose(self) -> 'Chain':
        """Returns a new chain with the same entries and the opposite orientation."""
        result = self._like(orientation=flip(self.orientation))
        result.data_store = self.data_store.copy()
        return result

    @property
    def T(self) -> 'Chain':
        return self.transpose()

    def to_dense(self, size: Optional[int] = None) -> np.ndarray:
        """Dense numpy copy; entries at or past size are left out."""
        if size is None:
            size = self.extent()
        dense = np.zeros(size, dtype=np.dtype(self.coefficient_type))
        for i, v in self.data_store.items():
            if 0 <= i < size:
                dense[i] = v
        return dense

    def __repr__(self) -> str:
        name = orientation_name(self.orientation)
        if not self.data_store:
            return f"Chain({name}, {{}})"
        items_str = ", ".join(f"{k}: {v}" for k, v in sorted(self.data_store.items()))
        return f"Chain({name}, {{{items_str}}})"


def _check_product_operands(column: Chain, row: Chain, operation: str) -> None:
    check_types(column, row, operation)
    if not column.is_column():
        raise OrientationMismatchError(column.orientation, COLUMN, operation)
    if not row.is_row():
        raise OrientationMismatchError(row.orientation, ROW, operation)


def outer_product(column: Chain, row: Chain, orientation: int = COLUMN):
    """
    Build the matrix column * row.

    Only index pairs present in both operands with a non-zero product get an
    entry. The matrix is column-major for COLUMN and row-major for ROW; its
    shape is (column.extent(), row.extent()).

    Raises:
        TypeMismatchError: If coefficient types differ.
        OrientationMismatchError: If column is not a column or row not a row.
    """
    from .sparse_matrix import SparseMatrix

    _check_product_operands(column, row, "outer product")
    if orientation not in ORIENTATIONS:
        raise InvalidOrientationError(orientation)

    n_rows, n_cols = column.extent(), row.extent()
    zero = column.zero
    if orientation == COLUMN:
        result = SparseMatrix(n_cols, n_rows, column.coefficient_type, COLUMN)
        outer, inner = row.data_store, column.data_store
        for j, rv in outer.items():
            entries = {i: cv * rv for i, cv in inner.items()}
            result._load_chain(j, {i: x for i, x in entries.items() if x != zero})
    else:
        result = SparseMatrix(n_rows, n_cols, column.coefficient_type, ROW)
        outer, inner = column.data_store, row.data_store
        for i, cv in outer.items():
            entries = {j: cv * rv for j, rv in inner.items()}
            result._load_chain(i, {j: x for j, x in entries.items() if x != zero})
    return result


def dot_product(row: Chain, column: Chain):
    """
    Sum of row[i] * column[i] over the indices present in both chains.

    Returns the zero of the coefficient type when no index is shared.
    """
    check_types(row, column, "dot product")
    if not row.is_row():
        raise OrientationMismatchError(row.orientation, ROW, "dot product")
    if not column.is_column():
        raise OrientationMismatchError(column.orientation, COLUMN, "dot product")

    left, right = row.data_store, column.data_store
    # walk the shorter one
    shared = left.keys() & right.keys() if len(left) <= len(right) else right.keys() & left.keys()
    total = row.zero
    for i in shared:
        total = total + left[i] * right[i]
    return total
