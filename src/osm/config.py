from dataclasses import dataclass

from .constants import DEFAULT_CHAIN_COUNT
from .osm_errors import InvalidDimensionError


@dataclass
class OSMConfig:
    """
    Configuration shared by sparse matrices.

    A matrix keeps the config it was built with and hands it on to every
    matrix derived from it (sums, products, transposes, submatrices).
    """

    default_chain_count: int = DEFAULT_CHAIN_COUNT
    """Number of chains preallocated by SparseMatrix() when no count is given."""

    default_coefficient_type: type = int
    """Coefficient type used when none is given and none can be inferred."""

    verbose: bool = False
    """Whether matrix products and index removal print progress and timing."""

    def validate(self) -> None:
        """Validate configuration parameters."""
        if not isinstance(self.default_chain_count, int) or self.default_chain_count < 0:
            raise InvalidDimensionError("default_chain_count", self.default_chain_count)
        if not callable(self.default_coefficient_type):
            raise ValueError(f"default_coefficient_type must be a type, got {self.default_coefficient_type!r}")
