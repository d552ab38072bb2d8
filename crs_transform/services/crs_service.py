"""CRS resolution service with a shared handle cache"""
from pyproj import CRS
from pyproj.exceptions import CRSError
import logging
import threading
from typing import Dict, Union

from ..crs import CRSHandle
from ..exceptions import CRSResolutionError
from ..models.coordinates import CRSType

logger = logging.getLogger(__name__)

CRSLike = Union[CRSHandle, CRS, str, int]


class CRSRegistry:
    """Resolves catalog ids and WKT into shared CRS handles.

    Resolving the same identifier twice returns the same handle object, so
    transforms referencing one CRS share its definition instead of copying it.
    ``pyproj.CRS`` construction is comparatively expensive, which is the other
    reason results are kept.
    """

    def __init__(self):
        self._handles: Dict[str, CRSHandle] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        logger.info("CRSRegistry initialized")

    def from_auth_id(self, auth_id: str) -> CRSHandle:
        """Resolve an authority id such as "EPSG:4326"

        Raises:
            CRSResolutionError: If the id is empty or unknown to PROJ
        """
        if not isinstance(auth_id, str) or not auth_id.strip():
            raise CRSResolutionError(auth_id, "empty authority id")
        key = auth_id.strip().upper()
        return self._get_or_create(key, lambda: CRS.from_user_input(key))

    def from_wkt(self, wkt: str) -> CRSHandle:
        """Resolve a WKT definition

        Raises:
            CRSResolutionError: If the WKT cannot be parsed
        """
        if not isinstance(wkt, str) or not wkt.strip():
            raise CRSResolutionError(wkt, "empty WKT definition")
        key = wkt.strip()
        return self._get_or_create(key, lambda: CRS.from_wkt(key))

    def from_srid(self, srid: int, crs_type: CRSType = CRSType.POSTGIS_SRID) -> CRSHandle:
        """Resolve a numeric id in the given id space.

        PostGIS srids below the user range coincide with EPSG codes, so both
        id spaces resolve through the EPSG catalog.
        """
        if crs_type not in (CRSType.POSTGIS_SRID, CRSType.EPSG_CRS_ID):
            raise CRSResolutionError(srid, f"srid lookup does not support CRS type {crs_type.value}")
        try:
            code = int(srid)
        except (TypeError, ValueError):
            raise CRSResolutionError(srid, "srid is not an integer")
        if code <= 0:
            raise CRSResolutionError(srid, "srid must be positive")
        return self.from_auth_id(f"EPSG:{code}")

    def resolve(self, value: CRSLike) -> CRSHandle:
        """Resolve a handle, pyproj CRS, EPSG code, authority id or WKT"""
        if isinstance(value, CRSHandle):
            return value
        if isinstance(value, CRS):
            return self._get_or_create(value.to_wkt(), lambda: value)
        if isinstance(value, bool):
            raise CRSResolutionError(value, "not a CRS identifier")
        if isinstance(value, int):
            return self.from_srid(value, CRSType.EPSG_CRS_ID)
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("{"):
                # PROJJSON
                return self._get_or_create(stripped, lambda: CRS.from_user_input(stripped))
            if "[" in stripped:
                return self.from_wkt(stripped)
            if ":" in stripped and "=" not in stripped:
                return self.from_auth_id(stripped)
            if not stripped:
                raise CRSResolutionError(value, "empty CRS definition")
            # PROJ strings and other user input pyproj understands
            return self._get_or_create(stripped, lambda: CRS.from_user_input(stripped))
        raise CRSResolutionError(value, f"unsupported CRS input type {type(value).__name__}")

    def _get_or_create(self, key: str, factory) -> CRSHandle:
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                self._hits += 1
                return handle

        try:
            crs = factory()
        except CRSError as e:
            logger.error(f"Failed to resolve CRS {key[:60]!r}: {e}")
            raise CRSResolutionError(key, str(e)) from e

        handle = CRSHandle.from_crs(crs)
        with self._lock:
            # Another thread may have resolved the same key meanwhile
            handle = self._handles.setdefault(key, handle)
            self._misses += 1
        logger.debug(f"Resolved CRS {handle.identity} ({handle.description})")
        return handle

    def clear(self) -> None:
        with self._lock:
            self._handles.clear()
            self._hits = 0
            self._misses = 0

    def get_cache_stats(self) -> Dict[str, object]:
        """Get handle cache statistics for monitoring"""
        with self._lock:
            return {
                "cached_handles": len(self._handles),
                "hits": self._hits,
                "misses": self._misses,
                "auth_ids": sorted({h.auth_id for h in self._handles.values() if h.auth_id}),
            }


# Default registry shared by transforms that are not given their own
crs_registry = CRSRegistry()
