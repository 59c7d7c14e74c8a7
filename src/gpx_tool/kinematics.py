"""Per-point kinematics: run, rise, dist, time, speed, grade and bearing.

Consecutive points define a pseudo right triangle: the base is the
horizontal great-circle distance "run", the height is the elevation
difference "rise", and the hypotenuse "dist" is the distance actually
traveled. Then::

    grade = rise / run
    dist^2 = run^2 + rise^2
    dist = speed * (t2 - t1)

Inputs that record a cumulative distance (TCX, FIT) give us dist directly,
and run is derived from it; GPS-only inputs (GPX) give us run, and dist is
derived from it.
"""

import logging
import math

from gpx_tool.distance import bearing, distance
from gpx_tool.models import GRADE_LIMIT, ProcessingOptions, TrackPoint
from gpx_tool.track import PairWalk, Track

logger = logging.getLogger(__name__)


def _init_reference_point(point: TrackPoint) -> None:
    if point.distance is None:
        point.distance = 0.0
    if point.grade is None:
        point.grade = 0.0
    point.run = point.rise = point.dist = point.delta_t = 0.0
    point.delta_grade = 0.0


def _has_position(point: TrackPoint) -> bool:
    return point.lat is not None and point.lon is not None


def _stopped(track: Track, walk: PairWalk, options: ProcessingOptions, what: str) -> None:
    """Handle a point that didn't move from the previous one."""
    p1, p2 = walk.prev, walk.curr
    if not options.verbatim:
        if not options.quiet:
            logger.warning("%s has a null %s value", p2.label, what)
        walk.remove()
        track.stats.discarded += 1
        return

    p2.bearing = p1.bearing
    p2.distance = p1.distance
    p2.grade = p1.grade
    p2.speed = p1.speed
    p2.run = p2.dist = 0.0
    p2.delta_grade = 0.0
    if p2.timestamp is None:
        p2.timestamp = p1.timestamp
    p2.delta_t = p2.timestamp - p1.timestamp
    track.stats.time += p2.delta_t
    track.stats.max_delta_t.update_max(p2.delta_t, p2)
    track.end_time = p2.timestamp
    walk.advance()


def compute_kinematics(track: Track, options: ProcessingOptions) -> None:
    """Compute distance, time, speed, grade and bearing between each pair of points."""
    stats = track.stats
    first = track.first()
    if first is None:
        return
    _init_reference_point(first)
    track.end_time = first.timestamp

    walk = track.pairs()
    while walk:
        p1, p2 = walk.prev, walk.curr

        p2.rise = p2.elevation - p1.elevation
        abs_rise = abs(p2.rise)

        if p2.distance is not None:
            p2.dist = p2.distance - p1.distance
            if p2.dist == 0.0:
                _stopped(track, walk, options, "distance")
                continue

            if p2.dist > abs_rise:
                p2.run = math.sqrt(p2.dist ** 2 - abs_rise ** 2)
            else:
                if not options.quiet:
                    logger.warning(
                        "%s has inconsistent dist=%.3f and rise=%.3f values",
                        p2.label, p2.dist, abs_rise,
                    )
                p2.run = p2.dist
        else:
            if not (_has_position(p1) and _has_position(p2)):
                raise ValueError(f"{p2.label} has neither a position nor a distance value")
            p2.run = distance(p1, p2)
            if p2.run == 0.0:
                _stopped(track, walk, options, "run")
                continue

            if abs_rise == 0.0:
                p2.dist = p2.run
            else:
                p2.dist = math.sqrt(p2.run ** 2 + abs_rise ** 2)
            p2.distance = p1.distance + p2.dist

        if p2.distance <= p1.distance:
            logger.warning(
                "%s has a non-increasing distance: dist=%.10f run=%.10f rise=%.10f",
                p2.label, p2.dist, p2.run, p2.rise,
            )

        stats.max_delta_d.update_max(p2.dist, p2)

        if p2.timestamp is None:
            p2.timestamp = p1.timestamp + p2.dist / options.set_speed

        p2.delta_t = p2.timestamp - p1.timestamp
        if p2.delta_t <= 0.0:
            logger.warning(
                "%s has a non-increasing timestamp: dist=%.10f deltaT=%.3f",
                p2.label, p2.dist, p2.delta_t,
            )

        stats.max_delta_t.update_max(p2.delta_t, p2)

        if p2.speed is None and p2.delta_t > 0.0:
            p2.speed = p2.dist / p2.delta_t

        stats.distance += p2.dist
        stats.time += p2.delta_t

        if p2.grade is None:
            if p2.run != 0.0:
                p2.grade = (p2.rise * 100.0) / p2.run
            else:
                p2.grade = p1.grade
        p2.grade = max(-GRADE_LIMIT, min(GRADE_LIMIT, p2.grade))

        # Indoor activities record distance but no position
        p2.bearing = bearing(p1, p2) if _has_position(p1) and _has_position(p2) else p1.bearing
        p2.delta_grade = abs(p2.grade - p1.grade)

        track.end_time = p2.timestamp

        walk.advance()
