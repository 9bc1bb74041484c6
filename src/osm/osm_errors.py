from typing import Optional

from .constants import orientation_name


class OSMConfigError(ValueError):
    """Base class for invalid construction or configuration parameters."""
    pass

class OSMRuntimeError(ValueError):
    """Base class for errors raised by sparse algebra operations."""
    pass



class InvalidOrientationError(OSMConfigError):
    """Raised when an orientation flag is neither COLUMN nor ROW."""

    def __init__(self, orientation):
        self.orientation = orientation
        message = f"Invalid orientation '{orientation}'. Must be one of: COLUMN (0b01), ROW (0b10)"
        super().__init__(message)


class InvalidBoundError(OSMConfigError):
    """Raised when a chain bound is not a positive integer."""

    def __init__(self, bound):
        self.bound = bound
        message = f"Chain bound must be a positive integer, got {bound!r}"
        super().__init__(message)


class InvalidDimensionError(OSMConfigError):
    """Raised when a matrix dimension is negative or not an integer."""

    def __init__(self, name: str, value):
        self.name = name
        self.value = value
        message = f"{name} must be a non-negative integer, got {value!r}"
        super().__init__(message)


class TypeMismatchError(OSMRuntimeError, TypeError):
    """Raised when two operands carry different coefficient types."""

    def __init__(self, left_type, right_type, operation: str = ""):
        self.left_type = left_type
        self.right_type = right_type
        self.operation = operation
        left_name = getattr(left_type, "__name__", str(left_type))
        right_name = getattr(right_type, "__name__", str(right_type))
        message = f"Coefficient type mismatch{f' in {operation}' if operation else ''}: {left_name} vs {right_name}"
        super().__init__(message)


class OrientationMismatchError(OSMRuntimeError):
    """Raised when operand orientations are incompatible with the operation."""

    def __init__(self, left, right, operation: str = ""):
        self.left = left
        self.right = right
        self.operation = operation
        message = f"Orientation mismatch{f' in {operation}' if operation else ''}: {orientation_name(left)} vs {orientation_name(right)}"
        super().__init__(message)


class ShapeMismatchError(OSMRuntimeError):
    """Raised when operand dimensions are incompatible with the operation."""

    def __init__(self, left_shape, right_shape, operation: str = ""):
        self.left_shape = left_shape
        self.right_shape = right_shape
        self.operation = operation
        message = f"Shape mismatch{f' in {operation}' if operation else ''}: {left_shape} vs {right_shape}"
        super().__init__(message)


class InvalidScalarError(OSMRuntimeError):
    """Raised when a chain or matrix is scaled by zero."""

    def __init__(self, scalar):
        self.scalar = scalar
        message = f"Scalar multiplication by zero ({scalar!r}) is not allowed, use clear() or nullify instead"
        super().__init__(message)


class IndexOutOfRangeError(OSMRuntimeError, IndexError):
    """Raised when a matrix is accessed outside its dimensions, or a chain written at a negative index."""

    def __init__(self, index, size: Optional[int], axis: str = "chain"):
        self.index = index
        self.size = size
        self.axis = axis
        if size is None:
            message = f"{axis} index {index} must be non-negative"
        else:
            message = f"{axis} index {index} out of range [0, {size})"
        super().__init__(message)
