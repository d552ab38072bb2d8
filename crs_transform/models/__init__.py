"""Models package for the coordinate transform engine."""

from .coordinates import CRSType, Point, Rectangle, TransformDirection
from .state import SpatialRefState, TransformStateBlock

__all__ = [
    "CRSType",
    "Point",
    "Rectangle",
    "TransformDirection",
    "SpatialRefState",
    "TransformStateBlock",
]
