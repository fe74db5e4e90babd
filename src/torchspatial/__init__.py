"""torchspatial: PyTorch spatial lookup structures for moving point sets."""

from . import (
    geometry,
    space_partitioning,
)

__all__ = [
    "geometry",
    "space_partitioning",
]

__version__ = "0.1.0"
