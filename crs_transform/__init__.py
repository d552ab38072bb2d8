"""Coordinate transform engine: point, array and bounding box transforms between two CRSs."""

from .coordinate_transform import CoordinateTransform, LifecycleState
from .crs import CRSHandle
from .exceptions import (
    ConfigurationError,
    CoordinateTransformError,
    CRSResolutionError,
    StateReadError,
    TransformFailure,
)
from .models import CRSType, Point, Rectangle, TransformDirection
from .services.crs_service import CRSRegistry, crs_registry
from .services.transform_cache import CoordinateTransformCache

__version__ = "1.0.0"

__all__ = [
    "CoordinateTransform",
    "CoordinateTransformCache",
    "LifecycleState",
    "CRSHandle",
    "CRSRegistry",
    "crs_registry",
    "CRSType",
    "Point",
    "Rectangle",
    "TransformDirection",
    "CoordinateTransformError",
    "CRSResolutionError",
    "TransformFailure",
    "StateReadError",
    "ConfigurationError",
]
