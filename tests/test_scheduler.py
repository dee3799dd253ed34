"""
Tests for crossing selection, single-crossing mode and batch scheduling.
"""

import io

import numpy as np

from conftest import make_project, make_swath
from crossing_registration.pipeline.scheduler import CrossingScheduler, select_eligible
from crossing_registration.preprocessing.project import Crossing, Project, Tie
from crossing_registration.utils.config import (
    AlignmentConfig,
    CrossingSelector,
    OutputConfig,
    RunConfig,
)
from crossing_registration.utils.result_log import CSV_HEADER, ResultLog

OFFSET = (3.0, -2.0, 0.5)


def _sink():
    out, err = io.StringIO(), io.StringIO()
    return ResultLog(stream=out, error_stream=err), out, err


class TestSelectEligible:
    def test_untied_crossings_excluded_unless_requested(self):
        untied = Crossing(1, 0, 2, 0, overlap=80)
        tied = Crossing(1, 0, 3, 0, overlap=15, ties=[Tie(1.0, 1.0)])
        small = Crossing(1, 0, 4, 0, overlap=10, ties=[Tie(1.0, 1.0)])
        project = Project("p", crossings=[untied, tied, small])

        assert select_eligible(project, min_overlap=10, include_untied=False) == [tied]
        assert select_eligible(project, min_overlap=10, include_untied=True) == [untied, tied]
        assert select_eligible(project, min_overlap=0, include_untied=False) == [tied, small]


class TestCrossingScheduler:
    def test_unknown_crossing_reports_error(self):
        project = Project("p", crossings=[Crossing(1, 0, 2, 0, overlap=50, ties=[Tie(0.0, 0.0)])])
        _, store = make_project({}, [])
        sink, out, err = _sink()
        alignment = AlignmentConfig(crossing="9:9/8:8")

        summary = CrossingScheduler(project, store, alignment, RunConfig(), sink).run()

        assert summary.failed == ["9:9/8:8"]
        assert summary.results == []
        assert out.getvalue() == ""
        assert "9:9/8:8" in err.getvalue() and "not found" in err.getvalue()

    def test_ignore_ties_zeroes_rough_offset(self):
        crossing = Crossing(1, 0, 2, 0, overlap=50, ties=[Tie(5.0, 6.0, 1.0)])
        project = Project("p", crossings=[crossing])
        sink, _, _ = _sink()

        ignoring = CrossingScheduler(project, None, AlignmentConfig(), RunConfig(ignore_ties=True), sink)
        using = CrossingScheduler(project, None, AlignmentConfig(), RunConfig(), sink)

        assert ignoring.rough_offset_for(crossing) == (0.0, 0.0, 0.0)
        assert using.rough_offset_for(crossing) == (5.0, 6.0, 1.0)
        assert using.rough_offset_for(Crossing(1, 0, 3, 0)) is None

    def test_batch_failure_is_isolated(self, projector):
        swaths = {
            (1, 0): make_swath(projector),
            (2, 0): make_swath(projector, OFFSET),
            (3, 0): make_swath(projector, OFFSET, nan_beams=1),
            (4, 0): make_swath(projector, OFFSET),
        }
        crossings = [
            Crossing(1, 0, 2, 0, overlap=90, ties=[Tie(*OFFSET)]),
            Crossing(1, 0, 3, 0, overlap=90, ties=[Tie(*OFFSET)]),
            Crossing(1, 0, 4, 0, overlap=90, ties=[Tie(*OFFSET)]),
        ]
        project, store = make_project(swaths, crossings)
        sink, out, err = _sink()

        with sink:
            summary = CrossingScheduler(project, store, AlignmentConfig(), RunConfig(n_workers=2), sink).run()

        assert summary.failed == ["1:0/3:0"]
        assert sorted(r.crossing_label for r in summary.results) == ["1:0/2:0", "1:0/4:0"]
        lines = out.getvalue().splitlines()
        assert lines[0] == CSV_HEADER
        assert sorted(line.split(",")[0] for line in lines[1:]) == ["1:0/2:0", "1:0/4:0"]
        assert "1:0/3:0" in err.getvalue() and "non-finite" in err.getvalue()
        assert sink.records == 2 and sink.failures == 1
        for result in summary.results:
            np.testing.assert_allclose(result.translation, OFFSET, atol=1e-3)

    def test_unexpected_error_is_contained(self, projector):
        # Section 5:0 is not in the project, so loading raises KeyError
        crossings = [
            Crossing(1, 0, 5, 0, overlap=90, ties=[Tie(*OFFSET)]),
            Crossing(1, 0, 2, 0, overlap=90, ties=[Tie(*OFFSET)]),
        ]
        project, store = make_project(
            {(1, 0): make_swath(projector), (2, 0): make_swath(projector, OFFSET)}, crossings
        )
        sink, out, err = _sink()

        summary = CrossingScheduler(project, store, AlignmentConfig(), RunConfig(), sink).run_all()

        assert summary.failed == ["1:0/5:0"]
        assert len(summary.results) == 1
        assert "KeyError" in err.getvalue()

    def test_single_crossing_writes_debug_clouds(self, projector, tmp_path):
        swaths = {(1, 0): make_swath(projector), (2, 0): make_swath(projector, OFFSET)}
        crossing = Crossing(1, 0, 2, 0, overlap=90, ties=[Tie(*OFFSET)])
        project, store = make_project(swaths, [crossing])
        sink, out, _ = _sink()
        alignment = AlignmentConfig(crossing=CrossingSelector.parse("1:0/2:0"))

        summary = CrossingScheduler(
            project,
            store,
            alignment,
            RunConfig(verbosity=1),
            sink,
            output=OutputConfig(debug_dir=str(tmp_path)),
        ).run()

        assert len(summary.results) == 1
        assert len(out.getvalue().splitlines()) == 2
        assert (tmp_path / "crossing_1_0_2_0_source_final.las").exists()
        assert len(list(tmp_path.glob("crossing_1_0_2_0_*.las"))) == 6
        # Borrowed swaths are released, the stored originals are not
        assert store.swaths[(2, 0)].num_pings == 41
