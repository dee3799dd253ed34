"""
Tests for the local frame projection.
"""

import numpy as np
import pytest

from crossing_registration.exceptions import ProjectionError
from crossing_registration.preprocessing.point_cloud import PointCloud
from crossing_registration.utils.coordinate_transform import LocalFrameProjector


class TestLocalFrameProjector:
    def test_reference_maps_to_origin(self):
        projector = LocalFrameProjector.create(36.8, -122.0)
        x, y = projector.to_local(np.array([-122.0]), np.array([36.8]))
        assert x[0] == pytest.approx(0.0, abs=1e-6)
        assert y[0] == pytest.approx(0.0, abs=1e-6)

    def test_axes_point_east_and_north(self):
        projector = LocalFrameProjector.create(60.0, 5.0)
        x, y = projector.to_local(np.array([5.001, 5.0]), np.array([60.0, 60.001]))
        # East of the reference: positive x, north: positive y
        assert x[0] > 0 and abs(y[0]) < 1.0
        assert y[1] > 0 and abs(x[1]) < 1e-6

    def test_round_trip(self):
        projector = LocalFrameProjector.create(60.0, 5.0)
        rng = np.random.default_rng(3)
        x = rng.uniform(-500, 500, 200)
        y = rng.uniform(-500, 500, 200)
        lon, lat = projector.to_geographic(x, y)
        x2, y2 = projector.to_local(lon, lat)
        np.testing.assert_allclose(x2, x, atol=1e-6)
        np.testing.assert_allclose(y2, y, atol=1e-6)

    def test_project_cloud_in_place_keeps_z(self):
        projector = LocalFrameProjector.create(60.0, 5.0)
        lon, lat = projector.to_geographic(np.array([10.0, -20.0]), np.array([5.0, 30.0]))
        cloud = PointCloud.from_xyz(np.column_stack([lon, lat, [-12.0, -13.5]]))
        out = projector.project(cloud)
        assert out is cloud
        np.testing.assert_allclose(cloud.xyz[:, 0], [10.0, -20.0], atol=1e-6)
        np.testing.assert_allclose(cloud.xyz[:, 1], [5.0, 30.0], atol=1e-6)
        np.testing.assert_array_equal(cloud.xyz[:, 2], [-12.0, -13.5])

    def test_non_finite_input_gives_non_finite_output(self):
        projector = LocalFrameProjector.create(60.0, 5.0)
        x, y = projector.to_local(np.array([np.nan, 5.0]), np.array([60.0, 60.0]))
        assert not np.isfinite([x[0], y[0]]).all()
        assert np.isfinite([x[1], y[1]]).all()

    @pytest.mark.parametrize(
        "lat0, lon0",
        [(float("nan"), 5.0), (60.0, float("inf")), (95.0, 5.0), (60.0, 400.0)],
    )
    def test_degenerate_reference_raises(self, lat0, lon0):
        with pytest.raises(ProjectionError):
            LocalFrameProjector.create(lat0, lon0)

    def test_dict_round_trip(self):
        projector = LocalFrameProjector.create(60.25, 5.5)
        data = projector.to_dict()
        assert "+proj=tmerc" in data["proj"]
        restored = LocalFrameProjector.from_dict(data)
        assert restored.lat0 == projector.lat0
        assert restored.lon0 == projector.lon0
