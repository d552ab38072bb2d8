"""Persisted transform state (the CRS pair, never the derived projection)"""
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator


class SpatialRefState(BaseModel):
    """Enough information to reconstruct one CRS handle.

    The authority id is preferred on restore; WKT is the fallback for
    definitions without an authority match.
    """
    auth_id: Optional[str] = None
    wkt: Optional[str] = None

    @field_validator("auth_id", "wkt", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def require_definition(self) -> "SpatialRefState":
        if self.auth_id is None and self.wkt is None:
            raise ValueError("spatial reference needs an authid or wkt")
        return self


class TransformStateBlock(BaseModel):
    source: SpatialRefState
    destination: SpatialRefState
