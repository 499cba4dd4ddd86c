"""
Exceptions raised by the suitability scoring pipeline.

Every pipeline stage detects its own violations at its boundary and raises
one of the errors below. None of them are transient, so none are retried:
a failed stage aborts the run with the offending coordinate, class code or
geometry attached to the error.
"""

from typing import Any, Optional


class GeomarketingError(Exception):
    """Base exception for all geomarketing errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        """
        Initialize the error.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused this error, if any.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class ConfigError(GeomarketingError):
    """Raised when scoring configuration is missing or invalid."""

    pass


class MalformedGridError(GeomarketingError):
    """Raised when input records do not lie on a regular lattice."""

    def __init__(
        self,
        message: str,
        coordinate: Optional[tuple[float, float]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        """
        Initialize the malformed grid error.

        Args:
            message: Human-readable error description.
            coordinate: The (x, y) coordinate that could not be placed, if any.
            cause: The underlying exception, if any.
        """
        super().__init__(message, cause)
        self.coordinate = coordinate


class UnmappedClassError(GeomarketingError):
    """Raised when a class code has no entry in a reclassification rule."""

    def __init__(
        self,
        message: str,
        code: Any,
        attribute: Optional[str] = None,
    ) -> None:
        """
        Initialize the unmapped class error.

        Args:
            message: Human-readable error description.
            code: The class code without a rule.
            attribute: Name of the attribute being reclassified.
        """
        super().__init__(message)
        self.code = code
        self.attribute = attribute


class GridMismatchError(GeomarketingError):
    """Raised when grids being combined do not share the same geometry."""

    def __init__(
        self,
        message: str,
        field: str,
        left: Any = None,
        right: Any = None,
    ) -> None:
        """
        Initialize the grid mismatch error.

        Args:
            message: Human-readable error description.
            field: Geometry field that differs (origin, cell size, shape).
            left: Value of the field on the first grid.
            right: Value of the field on the mismatching grid.
        """
        super().__init__(message)
        self.field = field
        self.left = left
        self.right = right


class OutOfBoundsError(GeomarketingError):
    """Raised in strict binning mode when a point lies outside the grid."""

    def __init__(self, message: str, point: tuple[float, float]) -> None:
        """
        Initialize the out of bounds error.

        Args:
            message: Human-readable error description.
            point: The (x, y) point outside the grid extent.
        """
        super().__init__(message)
        self.point = point
