"""Shared cache of ready-built coordinate transforms keyed by CRS pair"""
import logging
import threading
from collections import OrderedDict
from typing import Dict, Optional, Tuple

from ..config import Settings, get_settings
from ..coordinate_transform import CoordinateTransform
from .crs_service import CRSRegistry, crs_registry

logger = logging.getLogger(__name__)


class CoordinateTransformCache:
    """LRU cache of initialised transforms for callers that repeatedly need the
    same CRS pair (e.g. every layer drawn onto one canvas).

    Cached transforms are shared, so callers must not mutate their CRSs;
    request a different pair from the cache instead.
    """

    def __init__(self, settings: Optional[Settings] = None, registry: Optional[CRSRegistry] = None):
        self._settings = settings or get_settings()
        self._registry = registry or crs_registry
        self._max_size = self._settings.TRANSFORM_CACHE_SIZE
        self._transforms: "OrderedDict[Tuple[str, str], CoordinateTransform]" = OrderedDict()
        self._lock = threading.Lock()
        logger.info(f"CoordinateTransformCache initialized (max {self._max_size} transforms)")

    def get(self, source_auth_id: str, dest_auth_id: str) -> CoordinateTransform:
        """Get the cached transform for a CRS pair, building it on first use

        Raises:
            CRSResolutionError: If either authority id cannot be resolved
        """
        key = (source_auth_id.strip().upper(), dest_auth_id.strip().upper())
        with self._lock:
            transform = self._transforms.get(key)
            if transform is not None:
                self._transforms.move_to_end(key)
                return transform

        transform = CoordinateTransform.from_auth_ids(
            key[0], key[1], settings=self._settings, registry=self._registry
        )

        with self._lock:
            transform = self._transforms.setdefault(key, transform)
            self._transforms.move_to_end(key)
            while len(self._transforms) > self._max_size:
                evicted, _ = self._transforms.popitem(last=False)
                logger.debug(f"Evicted cached transform {evicted[0]} -> {evicted[1]}")
        return transform

    def invalidate(self) -> None:
        """Drop every cached transform"""
        with self._lock:
            count = len(self._transforms)
            self._transforms.clear()
        logger.info(f"Transform cache invalidated ({count} transforms dropped)")

    def __len__(self) -> int:
        return len(self._transforms)

    def get_cache_stats(self) -> Dict[str, object]:
        """Get transform cache statistics for monitoring"""
        with self._lock:
            return {
                "cached_transforms": len(self._transforms),
                "max_size": self._max_size,
                "pairs": [f"{src}->{dst}" for src, dst in self._transforms],
            }
