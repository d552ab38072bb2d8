"""
Shared test fixtures for the coordinate transform test suite.
Provides isolated registries, default settings and commonly used CRS pairs.
"""
import pytest

from crs_transform.config import Settings
from crs_transform.coordinate_transform import CoordinateTransform
from crs_transform.services.crs_service import CRSRegistry


class CRSIds:
    """CRS identifiers used across the suite."""
    WGS84 = "EPSG:4326"
    WEB_MERCATOR = "EPSG:3857"
    UTM_31N = "EPSG:32631"  # central meridian 3E
    ECEF = "EPSG:4978"
    UNKNOWN = "EPSG:999999"


# Half the equatorial circumference of the WGS84 sphere used by web mercator
MERCATOR_HALF_WORLD = 20037508.342789244


@pytest.fixture
def settings():
    """Default settings, ignoring any .env in the working directory."""
    return Settings(_env_file=None)


@pytest.fixture
def registry():
    """Fresh registry so cache statistics start from zero."""
    return CRSRegistry()


@pytest.fixture
def geo_to_utm(settings, registry):
    return CoordinateTransform(CRSIds.WGS84, CRSIds.UTM_31N, settings=settings, registry=registry)


@pytest.fixture
def geo_to_mercator(settings, registry):
    return CoordinateTransform(CRSIds.WGS84, CRSIds.WEB_MERCATOR, settings=settings, registry=registry)


@pytest.fixture
def identity_transform(settings, registry):
    return CoordinateTransform(CRSIds.WGS84, CRSIds.WGS84, settings=settings, registry=registry)


@pytest.fixture
def failures():
    """Listener recording every invalid-input notification."""
    received = []

    def listener(transform, failure):
        received.append((transform, failure))

    listener.received = received
    return listener
