import numpy as np
import pandas as pd
from scipy import sparse
from typing import Optional

from .chain import normalize_coefficient_type
from .config import OSMConfig
from .constants import COLUMN, CooColumn
from .sparse_matrix import SparseMatrix


def _from_triplets(rows, cols, values, shape: tuple[int, int], coefficient_type: type,
                   orientation: int, config: OSMConfig) -> SparseMatrix:
    n_rows, n_cols = shape
    if orientation == COLUMN:
        matrix = SparseMatrix(n_cols, n_rows, coefficient_type, orientation, config)
        positions, indices = cols, rows
    else:
        matrix = SparseMatrix(n_rows, n_cols, coefficient_type, orientation, config)
        positions, indices = rows, cols

    cells: dict[int, dict] = {}
    for p, i, v in zip(positions, indices, values):
        cells.setdefault(int(p), {})[int(i)] = v
    for p, entries in cells.items():
        matrix._load_chain(p, entries)
    return matrix


def _triplets(matrix: SparseMatrix) -> tuple[np.ndarray, np.ndarray, list]:
    items = sorted(matrix.items(), key=lambda kv: kv[0])
    rows = np.array([r for (r, _), _ in items], dtype=np.int64)
    cols = np.array([c for (_, c), _ in items], dtype=np.int64)
    values = [v for _, v in items]
    return rows, cols, values


def to_dense(matrix: SparseMatrix) -> np.ndarray:
    """Dense numpy copy of the matrix, dtype derived from the coefficient type."""
    dense = np.zeros(matrix.shape, dtype=np.dtype(matrix.coefficient_type))
    for (r, c), v in matrix.items():
        dense[r, c] = v
    return dense


def from_dense(array, orientation: int = COLUMN, config: OSMConfig = OSMConfig()) -> SparseMatrix:
    """
    Build a sparse matrix from the non-zero cells of a 2-D array.

    The coefficient type is the scalar type of the array dtype.
    """
    array = np.asarray(array)
    if array.ndim != 2:
        raise ValueError(f"from_dense expects a 2-D array, got {array.ndim} dimensions")
    rows, cols = np.nonzero(array)
    values = [array[r, c] for r, c in zip(rows, cols)]
    return _from_triplets(rows, cols, values, array.shape, array.dtype.type, orientation, config)


def to_scipy(matrix: SparseMatrix, format: str = "csr"):
    """Convert to a scipy.sparse array in the requested format ('csr', 'csc', 'coo', ...)."""
    rows, cols, values = _triplets(matrix)
    data = np.asarray(values, dtype=np.dtype(matrix.coefficient_type))
    coo = sparse.coo_array((data, (rows, cols)), shape=matrix.shape)
    return coo.asformat(format)


def from_scipy(matrix, orientation: int = COLUMN, config: OSMConfig = OSMConfig()) -> SparseMatrix:
    """Build a sparse matrix from any scipy.sparse matrix or array, duplicates summed."""
    coo = sparse.coo_array(matrix)
    coo.sum_duplicates()
    return _from_triplets(coo.row, coo.col, coo.data, coo.shape, coo.dtype.type, orientation, config)


def to_frame(matrix: SparseMatrix) -> pd.DataFrame:
    """COO DataFrame of the stored entries, sorted by row then column."""
    rows, cols, values = _triplets(matrix)
    return pd.DataFrame({
        CooColumn.ROW: rows,
        CooColumn.COL: cols,
        CooColumn.VALUE: values,
    })


def from_frame(df: pd.DataFrame,
               shape: Optional[tuple[int, int]] = None,
               orientation: int = COLUMN,
               coefficient_type: Optional[type] = None,
               config: OSMConfig = OSMConfig()) -> SparseMatrix:
    """
    Build a sparse matrix from a COO DataFrame with row, col and value columns.

    Args:
        df: Frame with the CooColumn.ROW, CooColumn.COL and CooColumn.VALUE columns.
        shape: Matrix shape, (max row + 1, max col + 1) if None.
        orientation: COLUMN or ROW.
        coefficient_type: Coefficient type, the value column dtype if None.
        config: OSMConfig of the new matrix.
    """
    required = [CooColumn.ROW, CooColumn.COL, CooColumn.VALUE]
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"COO frame is missing columns: {missing}")

    rows = df[CooColumn.ROW].to_numpy(dtype=np.int64)
    cols = df[CooColumn.COL].to_numpy(dtype=np.int64)
    if shape is None:
        shape = (int(rows.max()) + 1 if len(rows) else 0, int(cols.max()) + 1 if len(cols) else 0)
    if coefficient_type is None:
        value_dtype = df[CooColumn.VALUE].dtype
        coefficient_type = config.default_coefficient_type if value_dtype == object else value_dtype.type
    coefficient_type = normalize_coefficient_type(coefficient_type)
    values = [coefficient_type(v) for v in df[CooColumn.VALUE].tolist()]
    return _from_triplets(rows, cols, values, shape, coefficient_type, orientation, config)
