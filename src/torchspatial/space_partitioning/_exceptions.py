"""Warnings for spatial lookup structures."""


class SpatialLookupWarning(RuntimeWarning):
    """Warning for non-fatal lookup issues (e.g., querying an unprepared index)."""

    pass
