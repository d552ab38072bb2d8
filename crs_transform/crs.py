"""CRS handle: an immutable, shareable reference to a resolved coordinate reference system"""
import hashlib
from dataclasses import dataclass, field
from typing import Optional

from pyproj import CRS

from .models.coordinates import CRSType

# Minimum pyproj match confidence for attaching an authority id to a WKT definition
AUTHORITY_MATCH_CONFIDENCE = 90


@dataclass(frozen=True, eq=False)
class CRSHandle:
    """Resolved CRS shared by every transform that references it.

    Handles are created by ``CRSRegistry`` and never copied per transform.
    Two handles are equivalent when their authority ids match, or, when either
    lacks an authority id, when their definitions are structurally equal.
    """
    crs: CRS
    auth_id: Optional[str] = None
    crs_type: CRSType = CRSType.WKT
    definition: str = field(default="", repr=False)

    @classmethod
    def from_crs(cls, crs: CRS) -> "CRSHandle":
        authority = crs.to_authority(min_confidence=AUTHORITY_MATCH_CONFIDENCE)
        auth_id = f"{authority[0]}:{authority[1]}" if authority else None
        return cls(
            crs=crs,
            auth_id=auth_id,
            crs_type=CRSType.AUTHORITY_ID if auth_id else CRSType.WKT,
            definition=crs.to_wkt(),
        )

    @property
    def identity(self) -> str:
        """Catalog id when known, otherwise a digest of the definition"""
        if self.auth_id:
            return self.auth_id
        return f"WKT:{hashlib.sha1(self.definition.encode('utf-8')).hexdigest()[:8]}"

    @property
    def is_geographic(self) -> bool:
        return self.crs.is_geographic

    @property
    def description(self) -> str:
        return self.crs.name

    def __eq__(self, other) -> bool:
        if not isinstance(other, CRSHandle):
            return NotImplemented
        if self is other:
            return True
        if self.auth_id and other.auth_id:
            return self.auth_id.upper() == other.auth_id.upper()
        return self.crs == other.crs

    def __hash__(self) -> int:
        # Only properties shared by authority-equal and structurally equal CRSs
        ellipsoid = self.crs.ellipsoid
        semi_major = round(ellipsoid.semi_major_metre, 3) if ellipsoid is not None else None
        return hash((self.crs.type_name, self.crs.is_geographic, semi_major))

    def __str__(self) -> str:
        return self.identity
