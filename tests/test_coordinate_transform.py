import math
import threading

import numpy as np
import pytest

from crs_transform.coordinate_transform import CoordinateTransform, LifecycleState
from crs_transform.exceptions import CRSResolutionError, TransformFailure
from crs_transform.models.coordinates import CRSType, Point, TransformDirection

from .conftest import MERCATOR_HALF_WORLD, CRSIds


class TestLifecycle:
    """Initialisation, short-circuit detection and CRS mutation"""

    def test_distinct_pair_is_active(self, geo_to_utm):
        assert geo_to_utm.is_initialised()
        assert not geo_to_utm.is_short_circuited()
        assert geo_to_utm.state == LifecycleState.ACTIVE
        assert geo_to_utm.last_error is None

    def test_same_crs_short_circuits(self, identity_transform):
        assert identity_transform.is_initialised()
        assert identity_transform.is_short_circuited()

    def test_structurally_equal_definitions_short_circuit(self, settings):
        from crs_transform.services.crs_service import CRSRegistry

        proj = "+proj=tmerc +lat_0=0 +lon_0=12 +k=1 +x_0=0 +y_0=0 +ellps=GRS80 +units=m +no_defs"
        # Separate registries give distinct handle objects for the same definition
        transform = CoordinateTransform(
            CRSRegistry().resolve(proj), CRSRegistry().resolve(proj), settings=settings
        )
        assert transform.source_crs is not transform.dest_crs
        assert transform.is_short_circuited()

    def test_initialise_is_idempotent(self, geo_to_utm):
        first = geo_to_utm.transform_xy(2.0, 45.0)
        assert geo_to_utm.initialise() is True
        assert geo_to_utm.initialise() is True
        assert geo_to_utm.state == LifecycleState.ACTIVE
        assert geo_to_utm.transform_xy(2.0, 45.0)[:2] == pytest.approx(first[:2])

    def test_missing_crs_stays_uninitialised_until_used(self, settings, registry):
        transform = CoordinateTransform(CRSIds.WGS84, settings=settings, registry=registry)
        assert transform.state == LifecycleState.UNINITIALIZED
        assert not transform.is_initialised()

        with pytest.raises(CRSResolutionError):
            transform.transform_xy(0.0, 0.0)

        assert transform.state == LifecycleState.FAILED
        assert transform.is_initialised()
        assert "destination" in transform.last_error.reason

    def test_setter_completes_a_partial_pair(self, settings, registry):
        transform = CoordinateTransform(CRSIds.WGS84, settings=settings, registry=registry)
        transform.set_dest_crs(CRSIds.WEB_MERCATOR)
        assert transform.state == LifecycleState.ACTIVE

    def test_unknown_id_raises_at_construction(self, settings, registry):
        with pytest.raises(CRSResolutionError) as exc_info:
            CoordinateTransform.from_auth_ids(CRSIds.WGS84, CRSIds.UNKNOWN, settings=settings, registry=registry)
        assert exc_info.value.identifier == CRSIds.UNKNOWN

    def test_set_dest_crs_invalidates_short_circuit(self, identity_transform):
        identity_transform.set_dest_crs(CRSIds.WEB_MERCATOR)

        assert identity_transform.is_initialised()
        assert not identity_transform.is_short_circuited()
        x, y, _ = identity_transform.transform_xy(180.0, 0.0)
        assert x == pytest.approx(MERCATOR_HALF_WORLD)
        assert y == pytest.approx(0.0, abs=1e-6)

    def test_set_source_crs_reaches_short_circuit(self, geo_to_mercator):
        geo_to_mercator.set_source_crs(CRSIds.WEB_MERCATOR)
        assert geo_to_mercator.is_short_circuited()
        assert geo_to_mercator.transform_xy(12.5, -7.25) == (12.5, -7.25, None)

    def test_set_dest_crs_id_accepts_codes_and_auth_ids(self, geo_to_mercator):
        geo_to_mercator.set_dest_crs_id(4326)
        assert geo_to_mercator.is_short_circuited()

        geo_to_mercator.set_dest_crs_id(CRSIds.UTM_31N)
        assert geo_to_mercator.dest_crs.auth_id == CRSIds.UTM_31N
        assert geo_to_mercator.state == LifecycleState.ACTIVE

    def test_set_dest_crs_id_unknown_leaves_transform_untouched(self, geo_to_mercator):
        before = geo_to_mercator.dest_crs
        with pytest.raises(CRSResolutionError):
            geo_to_mercator.set_dest_crs_id(CRSIds.UNKNOWN)
        assert geo_to_mercator.dest_crs is before
        assert geo_to_mercator.state == LifecycleState.ACTIVE

    def test_handles_are_shared_not_copied(self, settings, registry):
        first = CoordinateTransform(CRSIds.WGS84, CRSIds.UTM_31N, settings=settings, registry=registry)
        second = CoordinateTransform(CRSIds.WGS84, CRSIds.WEB_MERCATOR, settings=settings, registry=registry)
        assert first.source_crs is second.source_crs

    def test_from_wkt(self, settings, registry):
        from pyproj import CRS

        transform = CoordinateTransform.from_wkt(
            CRS.from_epsg(4326).to_wkt(), CRS.from_epsg(32631).to_wkt(), settings=settings, registry=registry
        )
        assert transform.state == LifecycleState.ACTIVE
        assert transform.transform_xy(3.0, 0.0)[0] == pytest.approx(500000.0, abs=1e-6)

    def test_from_srid_and_wkt(self, settings, registry):
        from pyproj import CRS

        transform = CoordinateTransform.from_srid_and_wkt(
            4326, CRS.from_epsg(3857).to_wkt(), CRSType.POSTGIS_SRID, settings=settings, registry=registry
        )
        assert transform.source_crs.auth_id == CRSIds.WGS84
        assert transform.transform_xy(180.0, 0.0)[0] == pytest.approx(MERCATOR_HALF_WORLD)

    def test_repr_names_pair_and_state(self, geo_to_utm):
        assert repr(geo_to_utm) == "<CoordinateTransform EPSG:4326 -> EPSG:32631 [active]>"


class TestPointTransform:
    """Single point transforms and their overloads"""

    def test_identity_returns_input_unchanged(self, identity_transform):
        for x, y, z in [(0.0, 0.0, None), (1e308, -1e-320, 5.5), (math.inf, -math.inf, None)]:
            assert identity_transform.transform_xy(x, y, z) == (x, y, z)

        nan_point = identity_transform.transform(Point(x=math.nan, y=1.0, z=math.nan))
        assert math.isnan(nan_point.x) and math.isnan(nan_point.z)
        assert nan_point.y == 1.0

    def test_forward_origin_is_deterministic(self, geo_to_utm):
        results = {geo_to_utm.transform_xy(0.0, 0.0) for _ in range(3)}
        assert len(results) == 1
        x, y, z = results.pop()
        assert x == pytest.approx(166021.4431, abs=1e-3)
        assert y == pytest.approx(0.0, abs=1e-6)
        assert z is None

    def test_central_meridian_maps_to_false_easting(self, geo_to_utm):
        point = geo_to_utm.transform(Point(x=3.0, y=0.0))
        assert point.x == pytest.approx(500000.0, abs=1e-6)
        assert point.y == pytest.approx(0.0, abs=1e-6)

    def test_round_trip(self, geo_to_utm):
        for lon, lat in [(2.35, 48.85), (-1.5, 10.0), (7.9, -33.3)]:
            x, y, _ = geo_to_utm.transform_xy(lon, lat, direction=TransformDirection.FORWARD)
            back = geo_to_utm.transform_xy(x, y, direction=TransformDirection.REVERSE)
            assert back[0] == pytest.approx(lon, abs=1e-6)
            assert back[1] == pytest.approx(lat, abs=1e-6)

    def test_projected_round_trip(self, geo_to_utm):
        geo_to_utm.set_source_crs(CRSIds.WEB_MERCATOR)
        x, y, _ = geo_to_utm.transform_xy(250000.0, 5500000.0)
        back = geo_to_utm.transform_xy(x, y, direction=TransformDirection.REVERSE)
        assert back[0] == pytest.approx(250000.0, abs=1e-6)
        assert back[1] == pytest.approx(5500000.0, abs=1e-6)

    def test_z_passes_through_geocentric(self, settings, registry):
        transform = CoordinateTransform(CRSIds.WGS84, CRSIds.ECEF, settings=settings, registry=registry)
        x, y, z = transform.transform_xy(0.0, 0.0, 0.0)
        assert x == pytest.approx(6378137.0, abs=1e-6)
        assert y == pytest.approx(0.0, abs=1e-6)
        assert z == pytest.approx(0.0, abs=1e-6)

    def test_in_place_matches_pair_overload(self, geo_to_utm):
        point = Point(x=4.5, y=51.2)
        expected = geo_to_utm.transform_xy(4.5, 51.2)

        assert geo_to_utm.transform_in_place(point) is None
        assert point.x == expected[0]
        assert point.y == expected[1]
        assert point.z is None

    def test_transform_returns_new_point(self, geo_to_utm):
        original = Point(x=4.5, y=51.2)
        result = geo_to_utm.transform(original)
        assert result is not original
        assert original.x == 4.5

    def test_transform_rejects_other_types(self, geo_to_utm):
        with pytest.raises(TypeError):
            geo_to_utm.transform((1.0, 2.0))

    def test_latitude_beyond_pole_fails(self, geo_to_mercator, failures):
        geo_to_mercator.add_invalid_input_listener(failures)

        with pytest.raises(TransformFailure) as exc_info:
            geo_to_mercator.transform_xy(0.0, 91.0)

        assert exc_info.value.direction == TransformDirection.FORWARD
        assert exc_info.value.source_crs == CRSIds.WGS84
        assert len(failures.received) == 1
        transform, failure = failures.received[0]
        assert transform is geo_to_mercator
        assert failure is exc_info.value

    def test_failure_does_not_invalidate_transform(self, geo_to_mercator):
        with pytest.raises(TransformFailure):
            geo_to_mercator.transform_xy(0.0, 91.0)
        assert geo_to_mercator.state == LifecycleState.ACTIVE
        assert geo_to_mercator.transform_xy(0.0, 0.0)[0] == pytest.approx(0.0, abs=1e-6)

    def test_non_finite_input_fails_when_not_short_circuited(self, geo_to_utm):
        with pytest.raises(TransformFailure):
            geo_to_utm.transform_xy(math.nan, 10.0)


class TestInvalidInputListeners:

    def test_removed_listener_is_not_called(self, geo_to_mercator, failures):
        geo_to_mercator.add_invalid_input_listener(failures)
        geo_to_mercator.remove_invalid_input_listener(failures)
        with pytest.raises(TransformFailure):
            geo_to_mercator.transform_xy(0.0, 91.0)
        assert failures.received == []

    def test_listener_registered_once(self, geo_to_mercator, failures):
        geo_to_mercator.add_invalid_input_listener(failures)
        geo_to_mercator.add_invalid_input_listener(failures)
        with pytest.raises(TransformFailure):
            geo_to_mercator.transform_xy(0.0, 91.0)
        assert len(failures.received) == 1

    def test_raising_listener_does_not_mask_failure(self, geo_to_mercator, failures):
        def broken(transform, failure):
            raise RuntimeError("listener bug")

        geo_to_mercator.add_invalid_input_listener(broken)
        geo_to_mercator.add_invalid_input_listener(failures)

        with pytest.raises(TransformFailure):
            geo_to_mercator.transform_xy(0.0, 91.0)
        assert len(failures.received) == 1


class TestBatchTransform:
    """transform_coords: one batched call, all-or-nothing failure"""

    LONS = [0.0, 1.5, 3.0, 6.0, -2.25]
    LATS = [0.0, 45.0, -30.0, 60.5, 10.0]

    def test_matches_single_point_results(self, geo_to_utm):
        xs, ys = list(self.LONS), list(self.LATS)
        geo_to_utm.transform_coords(xs, ys)

        for lon, lat, x, y in zip(self.LONS, self.LATS, xs, ys):
            ex, ey, _ = geo_to_utm.transform_xy(lon, lat)
            assert x == pytest.approx(ex, abs=1e-6)
            assert y == pytest.approx(ey, abs=1e-6)

    def test_numpy_arrays_are_updated_in_place(self, geo_to_utm):
        xs = np.array(self.LONS)
        ys = np.array(self.LATS)
        geo_to_utm.transform_coords(xs, ys)
        assert xs[2] == pytest.approx(500000.0, abs=1e-6)

    def test_integer_numpy_arrays_are_rejected(self, geo_to_utm):
        xs = np.array([3, 4])
        ys = np.array([0.0, 0.0])
        with pytest.raises(TypeError):
            geo_to_utm.transform_coords(xs, ys)
        assert xs.tolist() == [3, 4]

    def test_with_heights(self, settings, registry):
        transform = CoordinateTransform(CRSIds.WGS84, CRSIds.ECEF, settings=settings, registry=registry)
        xs, ys, zs = [0.0, 90.0], [0.0, 0.0], [0.0, 100.0]
        transform.transform_coords(xs, ys, zs)
        assert xs[0] == pytest.approx(6378137.0, abs=1e-6)
        assert ys[1] == pytest.approx(6378237.0, abs=1e-6)
        assert zs[1] == pytest.approx(0.0, abs=1e-6)

    def test_count_limits_the_batch(self, geo_to_utm):
        xs, ys = list(self.LONS), list(self.LATS)
        geo_to_utm.transform_coords(xs, ys, count=2)
        assert xs[2:] == self.LONS[2:]
        assert ys[2:] == self.LATS[2:]
        assert xs[0] != self.LONS[0]

    def test_count_larger_than_arrays_is_rejected(self, geo_to_utm):
        with pytest.raises(ValueError):
            geo_to_utm.transform_coords([0.0], [0.0, 1.0], count=2)

    def test_short_circuit_is_no_op(self, identity_transform):
        xs, ys = [1.0, math.inf], [2.0, math.nan]
        identity_transform.transform_coords(xs, ys)
        assert xs == [1.0, math.inf]
        assert ys[0] == 2.0 and math.isnan(ys[1])

    def test_one_bad_point_fails_whole_batch(self, geo_to_mercator, failures):
        geo_to_mercator.add_invalid_input_listener(failures)
        xs, ys = [0.0, 10.0, 20.0], [0.0, 91.0, 45.0]

        with pytest.raises(TransformFailure):
            geo_to_mercator.transform_coords(xs, ys)

        assert xs == [0.0, 10.0, 20.0]
        assert ys == [0.0, 91.0, 45.0]
        assert len(failures.received) == 1

    def test_polygon_ring_in_place(self, geo_to_mercator):
        ring = [(0.0, 0.0), (180.0, 0.0), (0.0, 0.0)]
        geo_to_mercator.transform_polygon(ring)
        assert ring[1][0] == pytest.approx(MERCATOR_HALF_WORLD)
        assert ring[0] == pytest.approx((0.0, 0.0), abs=1e-6)


class TestThreadSafety:

    def test_shared_transform_across_threads(self, geo_to_utm):
        expected = geo_to_utm.transform_xy(2.0, 41.0)
        results = []
        errors = []

        def worker():
            try:
                for _ in range(50):
                    results.append(geo_to_utm.transform_xy(2.0, 41.0))
            except Exception as e:  # surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 200
        assert all(r[:2] == pytest.approx(expected[:2]) for r in results)
