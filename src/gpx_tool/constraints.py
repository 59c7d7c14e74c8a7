"""Grade limiting and the elevation adjustment that keeps it consistent.

Grade is rise over run. When a grade is forced to a different value the
run stays as it is, since it comes from the measured GPS positions, and
the elevation is moved instead.
"""

import logging
import math

from gpx_tool.models import ProcessingOptions
from gpx_tool.track import Track

logger = logging.getLogger(__name__)

# Elevation changes smaller than this don't count as an adjustment
_ELEVATION_TOLERANCE_M = 1e-9


def limit_grades(track: Track, options: ProcessingOptions) -> int:
    """Clamp grades to the configured min/max and limit the grade change between points.

    Returns the number of points whose grade was adjusted.
    """
    adjusted = 0
    walk = track.pairs()
    while walk:
        p1, p2 = walk.prev, walk.curr
        if options.in_range(p2):
            changed = False

            if options.max_grade is not None and p2.grade > options.max_grade:
                if not options.quiet:
                    logger.warning(
                        "%s has a grade of %.2f%% that is above the max value %.2f%%",
                        p2.label, p2.grade, options.max_grade,
                    )
                p2.grade = options.max_grade
                changed = True

            if options.min_grade is not None and p2.grade < options.min_grade:
                if not options.quiet:
                    logger.warning(
                        "%s has a grade of %.2f%% that is below the min value %.2f%%",
                        p2.label, p2.grade, options.min_grade,
                    )
                p2.grade = options.min_grade
                changed = True

            limit = options.max_grade_change
            if limit is not None and abs(p2.grade - p1.grade) > limit:
                if not options.quiet:
                    logger.warning(
                        "%s has a grade change of %.2f%% that is above the limit %.2f%%",
                        p2.label, abs(p2.grade - p1.grade), limit,
                    )
                if p2.grade > p1.grade:
                    p2.grade = p1.grade + limit
                else:
                    p2.grade = p1.grade - limit
                changed = True

            if changed:
                p2.grade_adjusted = True
                adjusted += 1

        p2.delta_grade = abs(p2.grade - p1.grade)
        walk.advance()

    return adjusted


def adjust_elevations(track: Track) -> int:
    """Move the elevation of each grade-adjusted point to match its new grade.

    Returns the number of elevations changed (also added to the track's
    elevation_adjusted counter).
    """
    adjusted = 0
    walk = track.pairs()
    while walk:
        p1, p2 = walk.prev, walk.curr
        if p2.grade_adjusted:
            p2.rise = p2.run * (p2.grade / 100.0)
            p2.dist = math.hypot(p2.run, p2.rise)
            elevation = p1.elevation + p2.rise
            if not math.isclose(elevation, p2.elevation, rel_tol=0.0, abs_tol=_ELEVATION_TOLERANCE_M):
                adjusted += 1
            p2.elevation = elevation
        walk.advance()

    track.stats.elevation_adjusted += adjusted
    return adjusted
