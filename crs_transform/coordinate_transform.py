"""
Coordinate transform engine.

A ``CoordinateTransform`` binds a source and destination CRS handle, lazily
builds a projection context for the pair and transforms points, coordinate
arrays and bounding boxes between them in either direction. Equivalent CRSs
short-circuit every operation to the identity.

Failures reach the caller as exceptions; transform failures are additionally
announced to registered invalid-input listeners.
"""
import logging
import threading
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

import numpy as np
from pydantic import ValidationError

from .config import Settings, get_settings
from .crs import CRSHandle
from .exceptions import CRSResolutionError, StateReadError, TransformFailure
from .logging_config import get_transform_logger
from .models.coordinates import CRSType, Point, Rectangle, TransformDirection
from .models.state import SpatialRefState, TransformStateBlock
from .projection import ProjectionContext
from .services.crs_service import CRSLike, CRSRegistry, crs_registry

logger = logging.getLogger(__name__)

InvalidInputListener = Callable[["CoordinateTransform", TransformFailure], None]

STATE_ELEMENT = "coordinatetransform"
SOURCE_ELEMENT = "sourcesrs"
DEST_ELEMENT = "destinationsrs"
SRS_ELEMENT = "spatialrefsys"


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    SHORT_CIRCUITED = "short_circuited"
    ACTIVE = "active"
    FAILED = "failed"


_INITIALISED_STATES = (LifecycleState.SHORT_CIRCUITED, LifecycleState.ACTIVE, LifecycleState.FAILED)


class CoordinateTransform:
    """Transforms coordinates between a source and a destination CRS.

    CRS handles are shared references resolved through a ``CRSRegistry``; the
    projection context is owned by this instance and rebuilt whenever either
    CRS changes. Every setter re-runs ``initialise`` before returning.

    Instances guard mutation and transform calls with a per-instance lock, so
    one transform may be shared between threads. Independent instances never
    coordinate with each other.
    """

    def __init__(self, source_crs: Optional[CRSLike] = None, dest_crs: Optional[CRSLike] = None,
                 settings: Optional[Settings] = None, registry: Optional[CRSRegistry] = None):
        self._settings = settings or get_settings()
        self._registry = registry or crs_registry
        self._lock = threading.RLock()
        self._listeners: List[InvalidInputListener] = []

        self._source: Optional[CRSHandle] = self._registry.resolve(source_crs) if source_crs is not None else None
        self._dest: Optional[CRSHandle] = self._registry.resolve(dest_crs) if dest_crs is not None else None
        self._context: Optional[ProjectionContext] = None
        self._state = LifecycleState.UNINITIALIZED
        self._last_error: Optional[CRSResolutionError] = None
        self._log = get_transform_logger(str(self._source), str(self._dest), __name__)

        if self._source is not None and self._dest is not None:
            self.initialise()

    # -- construction -----------------------------------------------------

    @classmethod
    def from_auth_ids(cls, source_id: str, dest_id: str, **kwargs) -> "CoordinateTransform":
        """Build from two catalog ids such as "EPSG:4326" """
        registry = kwargs.get("registry") or crs_registry
        return cls(registry.from_auth_id(source_id), registry.from_auth_id(dest_id), **kwargs)

    @classmethod
    def from_wkt(cls, source_wkt: str, dest_wkt: str, **kwargs) -> "CoordinateTransform":
        registry = kwargs.get("registry") or crs_registry
        return cls(registry.from_wkt(source_wkt), registry.from_wkt(dest_wkt), **kwargs)

    @classmethod
    def from_srid_and_wkt(cls, source_srid: int, dest_wkt: str,
                          source_crs_type: CRSType = CRSType.POSTGIS_SRID, **kwargs) -> "CoordinateTransform":
        """Build from a source srid in the given id space and a destination WKT"""
        registry = kwargs.get("registry") or crs_registry
        return cls(registry.from_srid(source_srid, source_crs_type), registry.from_wkt(dest_wkt), **kwargs)

    # -- CRS accessors and mutation -----------------------------------------

    @property
    def source_crs(self) -> Optional[CRSHandle]:
        return self._source

    @property
    def dest_crs(self) -> Optional[CRSHandle]:
        return self._dest

    def set_source_crs(self, crs: CRSLike) -> None:
        """Install a new source CRS and rebuild the transform state"""
        handle = self._registry.resolve(crs)
        with self._lock:
            self._source = handle
            self._state = LifecycleState.UNINITIALIZED
            self.initialise()

    def set_dest_crs(self, crs: CRSLike) -> None:
        """Install a new destination CRS and rebuild the transform state"""
        handle = self._registry.resolve(crs)
        with self._lock:
            self._dest = handle
            self._state = LifecycleState.UNINITIALIZED
            self.initialise()

    def set_dest_crs_id(self, crs_id: Union[str, int]) -> None:
        """Swap only the destination CRS, given a catalog id or EPSG code.

        Raises CRSResolutionError, leaving the transform untouched, if the id
        does not resolve.
        """
        self.set_dest_crs(self._registry.resolve(crs_id))

    # -- lifecycle ------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def last_error(self) -> Optional[CRSResolutionError]:
        """Why the last initialise left the transform unusable, if it did"""
        return self._last_error

    def is_initialised(self) -> bool:
        return self._state in _INITIALISED_STATES

    def is_short_circuited(self) -> bool:
        return self._state == LifecycleState.SHORT_CIRCUITED

    def initialise(self) -> bool:
        """(Re)build the transform state for the current CRS pair.

        Idempotent. Any previous projection context is discarded. Always ends in
        SHORT_CIRCUITED, ACTIVE or FAILED; returns True unless FAILED.
        """
        with self._lock:
            self._state = LifecycleState.INITIALIZING
            self._context = None
            self._last_error = None
            self._log = get_transform_logger(str(self._source), str(self._dest), __name__)

            if self._source is None or self._dest is None:
                side = "source" if self._source is None else "destination"
                self._fail(CRSResolutionError(side, f"{side} CRS is not set"))
                return False

            if self._source == self._dest:
                self._state = LifecycleState.SHORT_CIRCUITED
                self._log.debug(f"Transform {self._source} -> {self._dest} short-circuited")
                return True

            try:
                self._context = ProjectionContext(
                    self._source,
                    self._dest,
                    always_xy=self._settings.ALWAYS_XY,
                    allow_ballpark=self._settings.ALLOW_BALLPARK,
                )
            except CRSResolutionError as e:
                self._fail(e)
                return False

            self._state = LifecycleState.ACTIVE
            self._log.info(f"Transform initialised: {self._context.description}")
            return True

    def _fail(self, error: CRSResolutionError) -> None:
        self._last_error = error
        self._state = LifecycleState.FAILED
        self._log.error(f"Transform unusable: {error}")

    def _ensure_usable(self) -> None:
        if self._state == LifecycleState.UNINITIALIZED:
            self.initialise()
        if self._state == LifecycleState.FAILED:
            error = self._last_error
            raise CRSResolutionError(
                error.identifier,
                error.reason,
                source_crs=str(self._source),
                dest_crs=str(self._dest),
            )

    # -- invalid input notification -------------------------------------------

    def add_invalid_input_listener(self, listener: InvalidInputListener) -> None:
        """Register ``listener(transform, failure)`` for transform failures"""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_invalid_input_listener(self, listener: InvalidInputListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _report_invalid_input(self, failure: TransformFailure) -> None:
        self._log.warning(f"Invalid transform input: {failure}",
                          extra={"direction": failure.direction.value if failure.direction else None})
        for listener in list(self._listeners):
            try:
                listener(self, failure)
            except Exception:
                # The caller still receives the original failure
                self._log.exception(f"Invalid input listener {listener!r} raised")

    # -- point transforms -----------------------------------------------------

    def _transform_xyz(self, x: float, y: float, z: Optional[float], direction: TransformDirection,
                       notify: bool = True) -> Tuple[float, float, Optional[float]]:
        """Single transform path behind every per-point entry point"""
        with self._lock:
            self._ensure_usable()
            if self._state == LifecycleState.SHORT_CIRCUITED:
                return x, y, z
            try:
                return self._context.transform_point(x, y, z, direction)
            except TransformFailure as e:
                if notify:
                    self._report_invalid_input(e)
                raise

    def transform_xy(self, x: float, y: float, z: Optional[float] = None,
                     direction: TransformDirection = TransformDirection.FORWARD) -> Tuple[float, float, Optional[float]]:
        """Transform a coordinate pair or triplet, returning ``(x, y, z)``"""
        return self._transform_xyz(x, y, z, direction)

    def transform_in_place(self, point: Point, direction: TransformDirection = TransformDirection.FORWARD) -> None:
        """Overwrite ``point``'s coordinates with their transformed values"""
        x, y, z = self._transform_xyz(point.x, point.y, point.z, direction)
        point.x, point.y, point.z = x, y, z

    def transform(self, value: Union[Point, Rectangle],
                  direction: TransformDirection = TransformDirection.FORWARD) -> Union[Point, Rectangle]:
        """Transform a Point, or a Rectangle via ``transform_bounding_box``"""
        if isinstance(value, Rectangle):
            return self.transform_bounding_box(value, direction)
        if isinstance(value, Point):
            x, y, z = self._transform_xyz(value.x, value.y, value.z, direction)
            return Point(x=x, y=y, z=z)
        raise TypeError(f"Cannot transform object of type {type(value).__name__}")

    # -- batch transforms -----------------------------------------------------

    def transform_coords(self, xs, ys, zs=None, direction: TransformDirection = TransformDirection.FORWARD,
                         count: Optional[int] = None) -> None:
        """Transform the first ``count`` coordinates of mutable sequences in place.

        One PROJ call covers the whole batch. If any coordinate fails the whole
        call fails with TransformFailure and the sequences are left untouched.
        numpy arrays must have a floating dtype so results are not truncated.
        """
        for seq in (xs, ys, zs):
            dtype = getattr(seq, "dtype", None)
            if dtype is not None and not np.issubdtype(dtype, np.floating):
                raise TypeError(f"coordinate arrays must have a floating dtype, got {dtype}")
        if count is None:
            count = len(xs)
        lengths = [len(xs), len(ys)] + ([len(zs)] if zs is not None else [])
        if count < 0 or count > min(lengths):
            raise ValueError(f"count {count} exceeds coordinate array lengths {lengths}")
        if count == 0:
            return

        with self._lock:
            self._ensure_usable()
            if self._state == LifecycleState.SHORT_CIRCUITED:
                return
            try:
                out_x, out_y, out_z = self._context.transform_arrays(
                    xs[:count], ys[:count], zs[:count] if zs is not None else None, direction
                )
            except TransformFailure as e:
                self._report_invalid_input(e)
                raise

        xs[:count] = out_x.tolist()
        ys[:count] = out_y.tolist()
        if zs is not None:
            zs[:count] = out_z.tolist()

    def transform_polygon(self, points: List[Tuple[float, float]],
                          direction: TransformDirection = TransformDirection.FORWARD) -> None:
        """Transform a ring of ``(x, y)`` tuples in place, all or nothing"""
        if not points:
            return
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        self.transform_coords(xs, ys, None, direction)
        points[:] = list(zip(xs, ys))

    # -- bounding boxes -------------------------------------------------------

    def transform_bounding_box(self, rect: Rectangle, direction: TransformDirection = TransformDirection.FORWARD,
                               samples_per_edge: Optional[int] = None) -> Rectangle:
        """Rectangle containing the image of every point of ``rect``.

        Samples evenly spaced points along the whole boundary rather than the
        four corners only, since projected edges can bow outwards. Samples that
        fail to transform are skipped; the call fails only when all of them do.
        A rectangle straddling a projection discontinuity such as the
        antimeridian is not unwrapped and may come back too narrow.
        """
        samples_per_edge = samples_per_edge or self._settings.BBOX_EDGE_SAMPLES

        with self._lock:
            self._ensure_usable()
            if self._state == LifecycleState.SHORT_CIRCUITED:
                return rect.model_copy()

            xs: List[float] = []
            ys: List[float] = []
            samples = rect.boundary_points(samples_per_edge)
            skipped = 0
            for x, y in samples:
                try:
                    tx, ty, _ = self._transform_xyz(x, y, None, direction, notify=False)
                except TransformFailure:
                    skipped += 1
                    continue
                xs.append(tx)
                ys.append(ty)

            if not xs:
                failure = TransformFailure(
                    f"none of the {len(samples)} boundary samples could be transformed",
                    direction=direction,
                    coordinates=rect.as_tuple(),
                    source_crs=str(self._source),
                    dest_crs=str(self._dest),
                )
                self._report_invalid_input(failure)
                raise failure

            if skipped:
                self._log.debug(f"Bounding box transform skipped {skipped}/{len(samples)} samples")

        return Rectangle.from_points(xs, ys)

    # -- persistence ----------------------------------------------------------

    def write_xml(self, node: ET.Element) -> bool:
        """Write a ``coordinatetransform`` element describing the CRS pair into ``node``.

        Any state element already in ``node`` is replaced.
        """
        with self._lock:
            if self._source is None or self._dest is None:
                logger.warning("Cannot write coordinate transform state: CRS pair incomplete")
                return False
            for stale in node.findall(STATE_ELEMENT):
                node.remove(stale)
            state = ET.SubElement(node, STATE_ELEMENT)
            _write_spatial_ref(state, SOURCE_ELEMENT, self._source)
            _write_spatial_ref(state, DEST_ELEMENT, self._dest)
        return True

    def read_xml(self, node: ET.Element) -> bool:
        """Restore the CRS pair from ``node`` and reinitialise.

        ``node`` may be the ``coordinatetransform`` element itself or its
        parent. Returns False, leaving this transform unchanged, when the state
        is missing, malformed or names a CRS that cannot be resolved.
        """
        try:
            block = _parse_state(node)
            source = self._restore_handle(block.source, SOURCE_ELEMENT)
            dest = self._restore_handle(block.destination, DEST_ELEMENT)
        except StateReadError as e:
            logger.warning(f"Could not restore coordinate transform: {e}")
            return False

        with self._lock:
            self._source = source
            self._dest = dest
            self._state = LifecycleState.UNINITIALIZED
            self.initialise()
        return True

    def _restore_handle(self, state: SpatialRefState, element: str) -> CRSHandle:
        reasons = []
        if state.auth_id:
            try:
                return self._registry.from_auth_id(state.auth_id)
            except CRSResolutionError as e:
                reasons.append(e.reason)
        if state.wkt:
            try:
                return self._registry.from_wkt(state.wkt)
            except CRSResolutionError as e:
                reasons.append(e.reason)
        raise StateReadError(element, "; ".join(reasons))

    def __repr__(self) -> str:
        return f"<CoordinateTransform {self._source} -> {self._dest} [{self._state.value}]>"


def _write_spatial_ref(parent: ET.Element, tag: str, handle: CRSHandle) -> None:
    wrapper = ET.SubElement(parent, tag)
    srs = ET.SubElement(wrapper, SRS_ELEMENT)
    if handle.auth_id:
        ET.SubElement(srs, "authid").text = handle.auth_id
    ET.SubElement(srs, "description").text = handle.description
    ET.SubElement(srs, "wkt").text = handle.definition


def _parse_state(node) -> TransformStateBlock:
    if node is None or not ET.iselement(node):
        raise StateReadError(STATE_ELEMENT, "no document node given")

    state = node if node.tag == STATE_ELEMENT else node.find(STATE_ELEMENT)
    if state is None:
        raise StateReadError(STATE_ELEMENT, "element not found")

    refs = {}
    for tag in (SOURCE_ELEMENT, DEST_ELEMENT):
        srs = state.find(f"{tag}/{SRS_ELEMENT}")
        if srs is None:
            raise StateReadError(tag, f"missing <{SRS_ELEMENT}>")
        try:
            refs[tag] = SpatialRefState(auth_id=srs.findtext("authid"), wkt=srs.findtext("wkt"))
        except ValidationError as e:
            raise StateReadError(tag, e.errors()[0].get("msg", str(e))) from e

    return TransformStateBlock(source=refs[SOURCE_ELEMENT], destination=refs[DEST_ELEMENT])
