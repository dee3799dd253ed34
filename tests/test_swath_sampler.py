"""
Tests for swath sampling and the central section reference.
"""

import numpy as np
import pytest

from crossing_registration.exceptions import EmptySwathError
from crossing_registration.preprocessing.project import Ping, Swath
from crossing_registration.preprocessing.swath_sampler import (
    DRAFT_CORRECTION_M,
    central_reference,
    sample_swath,
)


def _ping(lat: float, depths, valid=None, heading: float = 90.0) -> Ping:
    depths = np.asarray(depths, dtype=float)
    n = len(depths)
    return Ping(
        time_d=0.0,
        nav_lon=5.0,
        nav_lat=lat,
        heading=heading,
        beam_lon=np.linspace(4.999, 5.001, n),
        beam_lat=np.full(n, lat),
        depth=depths,
        beam_valid=np.ones(n, dtype=bool) if valid is None else np.asarray(valid),
    )


class TestSampleSwath:
    def test_z_is_up_from_draft(self):
        swath = Swath([_ping(60.0, [10.0, 12.0])])
        cloud = sample_swath(swath, draft=2.0)
        np.testing.assert_allclose(cloud.xyz[:, 2], [-8.0, -10.0])

    def test_one_point_per_beam_with_flags(self):
        swath = Swath([
            _ping(60.0, [10.0, 11.0, 12.0], valid=[True, False, True]),
            _ping(60.001, [10.0, 11.0]),
        ])
        cloud = sample_swath(swath)
        assert len(cloud) == 5
        assert cloud.valid.tolist() == [True, False, True, True, True]
        assert cloud[3].y == pytest.approx(60.001)

    def test_empty_swath(self):
        assert len(sample_swath(Swath())) == 0

    def test_mismatched_beam_arrays_rejected(self):
        with pytest.raises(ValueError):
            Ping(0.0, 5.0, 60.0, 0.0, [5.0, 5.0], [60.0], [10.0, 10.0], [True, True])


class TestCentralReference:
    @pytest.mark.parametrize("n_pings", [4, 5])
    def test_picks_ping_at_half_index(self, n_pings):
        swath = Swath([_ping(10.0 + i, [20.0], heading=float(i)) for i in range(n_pings)])
        ref = central_reference(swath)
        assert ref.lat == pytest.approx(10.0 + n_pings // 2)
        assert ref.heading == float(n_pings // 2)

    def test_draft_is_mean_valid_depth_minus_correction(self):
        swath = Swath([
            _ping(60.0, [10.0, 500.0], valid=[True, False]),
            _ping(60.1, [20.0, 30.0]),
        ])
        ref = central_reference(swath)
        assert ref.draft == pytest.approx(20.0 - DRAFT_CORRECTION_M)

    def test_draft_ignores_non_finite_depths(self):
        swath = Swath([_ping(60.0, [10.0, np.nan, 30.0])])
        ref = central_reference(swath)
        assert ref.draft == pytest.approx(20.0 - DRAFT_CORRECTION_M)

    def test_no_valid_beams_uses_zero_depth(self):
        swath = Swath([_ping(60.0, [10.0], valid=[False])])
        assert central_reference(swath).draft == pytest.approx(-DRAFT_CORRECTION_M)

    def test_empty_swath_raises(self):
        with pytest.raises(EmptySwathError):
            central_reference(Swath())
