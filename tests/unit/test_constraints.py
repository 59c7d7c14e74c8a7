import pytest

from gpx_tool.constraints import adjust_elevations, limit_grades
from gpx_tool.kinematics import compute_kinematics
from gpx_tool.models import ProcessingOptions


@pytest.fixture
def hilly_track(make_track, make_rows, options):
    """Points ~11.12 m apart with grades of roughly 0, 18, 36, -27 and 9%."""
    track = make_track(make_rows([100.0, 100.0, 102.0, 106.0, 103.0, 104.0]))
    compute_kinematics(track, options)
    return track


def _grades(track):
    return [p.grade for p in list(track)[1:]]


class TestLimitGrades:
    def test_max_grade(self, hilly_track):
        adjusted = limit_grades(hilly_track, ProcessingOptions(max_grade=10.0, quiet=True))
        assert max(_grades(hilly_track)) == 10.0
        assert adjusted == 2

    def test_min_grade(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(min_grade=-5.0, quiet=True))
        assert min(_grades(hilly_track)) == -5.0

    def test_grades_within_bounds(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(max_grade=12.0, min_grade=-8.0, quiet=True))
        assert all(-8.0 <= g <= 12.0 for g in _grades(hilly_track))

    def test_adjusted_points_are_flagged(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(max_grade=20.0, quiet=True))
        flagged = [p.index for p in hilly_track if p.grade_adjusted]
        assert flagged == [3]

    def test_grade_change_limit(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(max_grade_change=5.0, quiet=True))
        points = list(hilly_track)
        for p1, p2 in zip(points, points[1:]):
            assert abs(p2.grade - p1.grade) <= 5.0 + 1e-9
            assert p2.delta_grade == pytest.approx(abs(p2.grade - p1.grade))

    def test_grade_change_follows_direction(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(max_grade_change=5.0, quiet=True))
        grades = _grades(hilly_track)
        assert grades[:4] == pytest.approx([0.0, 5.0, 10.0, 5.0])
        # Within the limit of the previous (adjusted) grade, so kept
        assert grades[4] == pytest.approx(8.99, abs=0.01)

    def test_range_gates_changes(self, hilly_track):
        before = _grades(hilly_track)
        limit_grades(hilly_track, ProcessingOptions(max_grade=10.0, point_range=(1, 2), quiet=True))
        after = _grades(hilly_track)
        assert after[1] == 10.0
        assert after[2] == before[2]
        assert after[2] > 10.0

    def test_no_limits_is_noop(self, hilly_track):
        before = _grades(hilly_track)
        assert limit_grades(hilly_track, ProcessingOptions(quiet=True)) == 0
        assert _grades(hilly_track) == before


class TestAdjustElevations:
    def test_elevation_follows_clamped_grade(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(max_grade=10.0, quiet=True))
        runs = [p.run for p in hilly_track]

        count = adjust_elevations(hilly_track)

        assert count > 0
        assert hilly_track.stats.elevation_adjusted == count
        points = list(hilly_track)
        assert [p.run for p in points] == runs
        adjusted = [(p1, p2) for p1, p2 in zip(points, points[1:]) if p2.grade_adjusted]
        assert [p2.index for _, p2 in adjusted] == [2, 3]
        for p1, p2 in adjusted:
            assert p2.rise == pytest.approx(p2.run * p2.grade / 100.0)
            assert p2.elevation == pytest.approx(p1.elevation + p2.rise)
            assert p2.dist ** 2 == pytest.approx(p2.run ** 2 + p2.rise ** 2)

    def test_idempotent(self, hilly_track):
        limit_grades(hilly_track, ProcessingOptions(max_grade=10.0, min_grade=-10.0, quiet=True))
        first = adjust_elevations(hilly_track)
        elevations = [p.elevation for p in hilly_track]

        second = adjust_elevations(hilly_track)

        assert first > 0
        assert second == 0
        assert [p.elevation for p in hilly_track] == elevations
        assert hilly_track.stats.elevation_adjusted == first

    def test_consistent_flagged_points_not_counted(self, hilly_track):
        for point in hilly_track:
            point.grade_adjusted = True
        assert adjust_elevations(hilly_track) == 0

    def test_unflagged_points_untouched(self, hilly_track):
        before = [p.elevation for p in hilly_track]
        assert adjust_elevations(hilly_track) == 0
        assert [p.elevation for p in hilly_track] == before
