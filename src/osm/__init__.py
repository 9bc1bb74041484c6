"""
OSM (Optimised Sparse Matrix): dict-backed sparse vectors and matrices.

A Chain is a sparse ROW or COLUMN vector, a SparseMatrix an ordered list of
same-orientation chains. Both support addition, subtraction, scalar scaling,
products, transpose and index removal over any coefficient type offering
+, - and *.
"""

__version__ = "0.1.0"

from .constants import COLUMN, ROW, STATE_POPULATED, STATE_WRITTEN, STATE_CLEARED, CooColumn
from .chain import Chain, outer_product, dot_product
from .sparse_matrix import SparseMatrix, matrix_product
from .osm_utils import to_dense, from_dense, to_scipy, from_scipy, to_frame, from_frame
from .config import OSMConfig
from .osm_errors import (OSMConfigError, OSMRuntimeError, InvalidOrientationError, InvalidBoundError,
                         InvalidDimensionError, TypeMismatchError, OrientationMismatchError,
                         ShapeMismatchError, InvalidScalarError, IndexOutOfRangeError)

__all__ = [
    "COLUMN",
    "ROW",
    "STATE_POPULATED",
    "STATE_WRITTEN",
    "STATE_CLEARED",
    "CooColumn",
    "Chain",
    "outer_product",
    "dot_product",
    "SparseMatrix",
    "matrix_product",
    "to_dense",
    "from_dense",
    "to_scipy",
    "from_scipy",
    "to_frame",
    "from_frame",
    "OSMConfig",
    "OSMConfigError",
    "OSMRuntimeError",
    "InvalidOrientationError",
    "InvalidBoundError",
    "InvalidDimensionError",
    "TypeMismatchError",
    "OrientationMismatchError",
    "ShapeMismatchError",
    "InvalidScalarError",
    "IndexOutOfRangeError",
]
