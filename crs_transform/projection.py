"""
Projection context: the live transformation pipeline bound to one CRS pair.

A context is built once per CRS pair and never mutated; the owning
``CoordinateTransform`` discards it and builds a new one on any CRS change.
"""
import logging
from typing import Optional, Tuple

import numpy as np
from pyproj import Transformer
from pyproj.enums import TransformDirection as ProjDirection
from pyproj.exceptions import CRSError, ProjError

from .crs import CRSHandle
from .exceptions import CRSResolutionError, TransformFailure
from .models.coordinates import TransformDirection

logger = logging.getLogger(__name__)

_PROJ_DIRECTIONS = {
    TransformDirection.FORWARD: ProjDirection.FORWARD,
    TransformDirection.REVERSE: ProjDirection.INVERSE,
}


class ProjectionContext:
    """Wraps a ``pyproj.Transformer`` for a source/destination handle pair.

    Not safe for concurrent use; callers serialise access per owning transform.
    """

    def __init__(self, source: CRSHandle, dest: CRSHandle,
                 always_xy: bool = True, allow_ballpark: bool = True):
        self.source = source
        self.dest = dest
        try:
            self._transformer = Transformer.from_crs(
                source.crs, dest.crs,
                always_xy=always_xy,
                allow_ballpark=allow_ballpark,
            )
        except (ProjError, CRSError) as e:
            logger.error(f"Failed to build transformer {source.identity} -> {dest.identity}: {e}")
            raise CRSResolutionError(
                f"{source.identity} -> {dest.identity}",
                f"no transformation available: {e}",
                source_crs=source.identity,
                dest_crs=dest.identity,
            ) from e
        logger.debug(f"Projection context built: {self._transformer.description}")

    @property
    def description(self) -> str:
        return self._transformer.description

    def _failure(self, reason: str, direction: TransformDirection, coordinates) -> TransformFailure:
        return TransformFailure(
            reason,
            direction=direction,
            coordinates=coordinates,
            source_crs=self.source.identity,
            dest_crs=self.dest.identity,
        )

    def transform_point(self, x: float, y: float, z: Optional[float],
                        direction: TransformDirection) -> Tuple[float, float, Optional[float]]:
        """Transform one coordinate; raises TransformFailure if PROJ rejects it"""
        proj_direction = _PROJ_DIRECTIONS[direction]
        try:
            if z is None:
                tx, ty = self._transformer.transform(x, y, direction=proj_direction, errcheck=True)
                tz = None
            else:
                tx, ty, tz = self._transformer.transform(x, y, z, direction=proj_direction, errcheck=True)
        except ProjError as e:
            raise self._failure(str(e), direction, (x, y, z)) from e

        if not (np.isfinite(tx) and np.isfinite(ty)) or (tz is not None and not np.isfinite(tz)):
            raise self._failure("result is not finite", direction, (x, y, z))
        return float(tx), float(ty), None if tz is None else float(tz)

    def transform_arrays(self, xs, ys, zs, direction: TransformDirection):
        """Transform whole coordinate arrays in a single PROJ call.

        Returns new float64 arrays ``(xs, ys, zs)``; ``zs`` is ``None`` when no
        heights were given. Any failing element fails the whole call.
        """
        proj_direction = _PROJ_DIRECTIONS[direction]
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        if zs is not None:
            zs = np.asarray(zs, dtype=np.float64)

        try:
            if zs is None:
                out_x, out_y = self._transformer.transform(xs, ys, direction=proj_direction, errcheck=True)
                out_z = None
            else:
                out_x, out_y, out_z = self._transformer.transform(
                    xs, ys, zs, direction=proj_direction, errcheck=True
                )
        except ProjError as e:
            raise self._failure(f"batch of {xs.size} coordinates rejected: {e}", direction, None) from e

        out_x = np.asarray(out_x, dtype=np.float64)
        out_y = np.asarray(out_y, dtype=np.float64)
        finite = np.isfinite(out_x) & np.isfinite(out_y)
        if out_z is not None:
            out_z = np.asarray(out_z, dtype=np.float64)
            finite &= np.isfinite(out_z)
        if not finite.all():
            bad = int(np.flatnonzero(~finite)[0])
            raise self._failure(
                f"batch element {bad} has a non-finite result",
                direction,
                (float(xs[bad]), float(ys[bad]), None if zs is None else float(zs[bad])),
            )
        return out_x, out_y, out_z
