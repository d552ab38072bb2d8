"""Coordinate models shared by the transform engine"""
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, model_validator
from shapely.geometry import box


class TransformDirection(Enum):
    """Which way a transform runs; a call parameter, never stored state"""
    FORWARD = "forward"  # source -> destination
    REVERSE = "reverse"  # destination -> source


class CRSType(Enum):
    """How a CRS identifier should be interpreted"""
    AUTHORITY_ID = "authid"
    POSTGIS_SRID = "postgis_srid"
    EPSG_CRS_ID = "epsg"
    WKT = "wkt"


class Point(BaseModel):
    """Point in whichever CRS is the "from" side of a transform.

    Mutable so that ``CoordinateTransform.transform_in_place`` can update it.
    """
    x: float
    y: float
    z: Optional[float] = None

    def as_tuple(self) -> Tuple[float, float, Optional[float]]:
        return self.x, self.y, self.z


class Rectangle(BaseModel):
    """Axis-aligned rectangle; bounds are always kept ordered min <= max"""
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @model_validator(mode="after")
    def normalise(self) -> "Rectangle":
        # Projections can flip axis sign or order; store ordered bounds only
        if self.x_min > self.x_max:
            self.x_min, self.x_max = self.x_max, self.x_min
        if self.y_min > self.y_max:
            self.y_min, self.y_max = self.y_max, self.y_min
        return self

    @classmethod
    def from_points(cls, xs: Iterable[float], ys: Iterable[float]) -> "Rectangle":
        """Smallest rectangle holding every (x, y) pair"""
        xs = list(xs)
        ys = list(ys)
        if not xs or not ys:
            raise ValueError("Rectangle.from_points needs at least one point")
        return cls(x_min=min(xs), y_min=min(ys), x_max=max(xs), y_max=max(ys))

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    def is_empty(self) -> bool:
        """True for zero-width or zero-height (degenerate) rectangles"""
        return self.width == 0.0 or self.height == 0.0

    def contains(self, x: float, y: float, tolerance: float = 0.0) -> bool:
        return (self.x_min - tolerance <= x <= self.x_max + tolerance and
                self.y_min - tolerance <= y <= self.y_max + tolerance)

    def boundary_points(self, samples_per_edge: int) -> List[Tuple[float, float]]:
        """Evenly spaced points around the boundary, corners included.

        Each edge contributes ``samples_per_edge`` points counting both of its
        corners; shared corners are emitted once. Degenerate rectangles still
        yield their corners.
        """
        if samples_per_edge < 2:
            raise ValueError("samples_per_edge must be at least 2")

        steps = samples_per_edge - 1
        points = []
        # Walk counter-clockwise from the lower-left corner, dropping each
        # edge's end point since it starts the next edge
        corners = [
            (self.x_min, self.y_min),
            (self.x_max, self.y_min),
            (self.x_max, self.y_max),
            (self.x_min, self.y_max),
        ]
        for i, (x0, y0) in enumerate(corners):
            x1, y1 = corners[(i + 1) % 4]
            for step in range(steps):
                t = step / steps
                points.append((x0 + (x1 - x0) * t, y0 + (y1 - y0) * t))
        return points

    def to_geometry(self):
        """Rectangle as a shapely polygon"""
        return box(self.x_min, self.y_min, self.x_max, self.y_max)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return self.x_min, self.y_min, self.x_max, self.y_max
