"""Geometry module exceptions."""


class GeometryError(Exception):
    """Base exception for geometry operations."""

    pass


class InsufficientPointsError(GeometryError):
    """Not enough points for the requested operation.

    Raised when a bounding volume is requested for an empty point set. Inside
    the spatial lookup structures this indicates a bug in the structure
    itself, not a recoverable runtime condition.
    """

    pass
