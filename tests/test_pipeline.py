"""
End-to-end tests of the per-crossing alignment pipeline on synthetic swaths.

The source section is the target seabed displaced by a known offset; the
recovered transform must undo it.
"""

import numpy as np
import pytest

from conftest import make_project, make_swath
from crossing_registration.alignment.fine_registration import RegistrationState
from crossing_registration.exceptions import EmptySwathError, NonFiniteCloudError
from crossing_registration.pipeline.crossing_alignment import AlignmentPipeline
from crossing_registration.preprocessing.project import Crossing, Swath, Tie
from crossing_registration.utils.config import AlignmentConfig, OutlierRemovalConfig
from crossing_registration.utils.export import DebugCloudWriter

OFFSET = (3.0, -2.0, 0.5)


def _run(projector, config, ties=(), rough_offset="tie", source_kwargs=None, invalid_every=0):
    swaths = {
        (1, 0): make_swath(projector, invalid_every=invalid_every),
        (2, 0): make_swath(projector, OFFSET, invalid_every=invalid_every, **(source_kwargs or {})),
    }
    crossing = Crossing(1, 0, 2, 0, overlap=90, ties=list(ties))
    project, store = make_project(swaths, [crossing])
    pipeline = AlignmentPipeline(config)
    estimate = crossing.rough_offset() if rough_offset == "tie" else rough_offset
    with store.load_crossing_data(project, crossing) as data:
        return pipeline.run(crossing, data, rough_offset=estimate)


class TestAlignmentPipeline:
    def test_recovers_tie_offset(self, projector):
        result = _run(projector, AlignmentConfig(), ties=[Tie(*OFFSET)], invalid_every=7)

        assert result.state == RegistrationState.CONVERGED
        np.testing.assert_allclose(result.translation, OFFSET, atol=1e-3)
        np.testing.assert_allclose(result.rotation, 0.0, atol=1e-5)
        np.testing.assert_allclose(result.transform[:3, 3], OFFSET, atol=1e-3)
        assert result.fitness_fine == pytest.approx(0.0, abs=1e-6)
        assert result.fitness_rough == pytest.approx(0.0, abs=1e-6)
        # 41 x 41 beams, every 7th beam of each ping flagged invalid
        assert result.target_points == result.source_points == 41 * 35
        assert result.correspondence_count == result.source_points
        assert result.crossing_label == "1:0/2:0"
        assert result.milliseconds >= 0.0

    def test_source_centroid_moves_by_rough_translation(self, projector):
        result = _run(projector, AlignmentConfig(), ties=[Tie(*OFFSET)])
        moved = np.subtract(result.source_centroid_rough, result.source_centroid_initial)
        np.testing.assert_allclose(moved, OFFSET, atol=1e-9)

    def test_untied_crossing_uses_configured_translation(self, projector):
        config = AlignmentConfig().with_translation(OFFSET)
        result = _run(projector, config, rough_offset=None)
        np.testing.assert_allclose(result.translation, OFFSET, atol=1e-3)

    def test_centroid_coarse_method_needs_no_tie(self, projector):
        config = AlignmentConfig(coarse_method="centroid")
        result = _run(projector, config, rough_offset=(0.0, 0.0, 0.0))
        np.testing.assert_allclose(result.translation, OFFSET, atol=1e-3)
        assert result.fitness_fine == pytest.approx(0.0, abs=1e-6)

    def test_outlier_removal_keeps_regular_seabed(self, projector):
        outliers = OutlierRemovalConfig(enabled=True, k_neighbors=8, stddev_multiplier=10.0)
        config = AlignmentConfig(target_outliers=outliers, source_outliers=outliers)
        result = _run(projector, config, ties=[Tie(*OFFSET)])
        assert result.target_points == result.source_points == 41 * 41
        np.testing.assert_allclose(result.translation, OFFSET, atol=1e-3)

    def test_non_finite_source_aborts_before_icp(self, projector):
        with pytest.raises(NonFiniteCloudError) as excinfo:
            _run(projector, AlignmentConfig(), ties=[Tie(*OFFSET)], source_kwargs={"nan_beams": 2})
        assert excinfo.value.side == "source"
        assert excinfo.value.count == 2

    def test_non_finite_depth_blamed_on_its_own_side(self, projector):
        with pytest.raises(NonFiniteCloudError) as excinfo:
            _run(projector, AlignmentConfig(), ties=[Tie(*OFFSET)], source_kwargs={"nan_depths": 1})
        assert excinfo.value.side == "source"
        assert excinfo.value.count == 1

    def test_empty_swath_raises(self, projector):
        crossing = Crossing(1, 0, 2, 0, overlap=90)
        project, store = make_project({(1, 0): make_swath(projector), (2, 0): Swath()}, [crossing])
        with store.load_crossing_data(project, crossing) as data:
            with pytest.raises(EmptySwathError):
                AlignmentPipeline(AlignmentConfig()).run(crossing, data)

    def test_debug_dumps_all_stages(self, projector, tmp_path):
        swaths = {(1, 0): make_swath(projector), (2, 0): make_swath(projector, OFFSET)}
        crossing = Crossing(1, 0, 2, 0, overlap=90, ties=[Tie(*OFFSET)])
        project, store = make_project(swaths, [crossing])
        writer = DebugCloudWriter(str(tmp_path), prefix="c_")
        pipeline = AlignmentPipeline(AlignmentConfig(), verbosity=1, debug_writer=writer)

        with store.load_crossing_data(project, crossing) as data:
            pipeline.run(crossing, data, rough_offset=crossing.rough_offset())

        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == sorted(
            f"c_{side}_{stage}.las"
            for side in ("target", "source")
            for stage in ("raw", "filtered", "final")
        )
        assert len(writer.written) == 6
