"""Services for the transform engine.

``transform_cache`` depends on the engine itself and is imported directly.
"""
from .crs_service import CRSRegistry, crs_registry

__all__ = ["CRSRegistry", "crs_registry"]
