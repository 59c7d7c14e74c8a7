"""Validate the raw track points and repair the sequence before any metrics are computed."""

import logging

from gpx_tool.models import ProcessingOptions
from gpx_tool.track import Track

logger = logging.getLogger(__name__)


def prepare_start_time(track: Track, options: ProcessingOptions) -> None:
    """Check the reference (first) point and apply the requested start time.

    A point without a timestamp means the input is a route rather than a
    recorded activity; it can only be turned into one when both a start time
    and an average speed are given. Otherwise a start time shifts the whole
    activity by setting the track's time offset.
    """
    first = track.first()
    if first is None:
        raise ValueError("No track points found")

    if first.elevation is None:
        raise ValueError(f"{first.label} is missing its elevation data")

    if first.timestamp is None:
        if options.start_time is None or not options.set_speed:
            raise ValueError(
                f"{first.label} is missing time information and no start time and "
                "speed have been specified to turn a route into an activity"
            )
        first.timestamp = options.start_time
    elif options.start_time is not None:
        track.time_offset = options.start_time - first.timestamp


def check_track_points(track: Track, options: ProcessingOptions) -> None:
    """Discard duplicate, non-monotonic and trimmed points.

    Raises ValueError when a point lacks data nothing downstream can do
    without: its elevation, or its timestamp when no speed was given to
    synthesize one.
    """
    trimming = False
    baseline = None  # last point kept before the trimmed range
    trimmed_time = 0.0
    trimmed_distance = 0.0

    walk = track.pairs()
    while walk:
        p1, p2 = walk.prev, walk.curr
        discard = False

        if p2.elevation is None:
            raise ValueError(f"{p2.label} is missing its elevation data")

        if p2.timestamp is None and not options.set_speed:
            raise ValueError(f"{p2.label} is missing its date/time data")

        if not options.verbatim:
            # Laps often start with a copy of the previous lap's last point. Indoor
            # points have no position, so their recorded distance must match too.
            if (
                p2.lat == p1.lat
                and p2.lon == p1.lon
                and p2.elevation == p1.elevation
                and p2.distance == p1.distance
            ):
                if not options.quiet:
                    logger.warning("Discarding duplicate %s", p2.label)
                track.stats.duplicates += 1
                discard = True

            if p2.timestamp is not None and p1.timestamp is not None and p2.timestamp <= p1.timestamp:
                if not options.quiet:
                    logger.warning("%s has a non-increasing timestamp value: %.3f", p2.label, p2.timestamp)
                track.stats.discarded += 1
                discard = True

            if p2.distance is not None and p1.distance is not None and p2.distance <= p1.distance:
                if not options.quiet:
                    logger.warning("%s has a non-increasing distance value: %.3f", p2.label, p2.distance)
                track.stats.discarded += 1
                discard = True

        if options.trim and options.point_range is not None:
            range_from, range_to = options.point_range
            if p2.index == range_from:
                if not options.quiet:
                    logger.info("Start trimming at %s", p2.label)
                trimming = True
                baseline = p1
                track.stats.trimmed += 1
                discard = True
            elif p2.index == range_to and baseline is not None:
                if not options.quiet:
                    logger.info("Stop trimming at %s", p2.label)
                trimming = False
                if p2.timestamp is not None and baseline.timestamp is not None:
                    trimmed_time = p2.timestamp - baseline.timestamp
                if p2.distance is not None and baseline.distance is not None:
                    trimmed_distance = p2.distance - baseline.distance
                track.stats.trimmed += 1
                discard = True
            elif trimming:
                track.stats.trimmed += 1
                discard = True

        if discard:
            walk.remove()
            continue

        # Close the gap left by the trimmed points
        if baseline is not None and not trimming:
            if p2.timestamp is not None:
                p2.timestamp -= trimmed_time
            if p2.distance is not None:
                p2.distance -= trimmed_distance
        walk.advance()


def close_time_gap(track: Track, index: int, quiet: bool = False) -> float:
    """Shift the timestamps from point ``index`` onwards to close the gap before it.

    The gap is reduced to one second. Returns the amount of time removed.
    """
    time_gap = 0.0
    found = False

    walk = track.pairs()
    while walk:
        p1, p2 = walk.prev, walk.curr
        if not found and p2.index == index and p2.timestamp is not None and p1.timestamp is not None:
            time_gap = p2.timestamp - p1.timestamp - 1
            found = True
            if not quiet:
                logger.info("Closing %.3f s time gap at %s", time_gap, p2.label)
        if found and p2.timestamp is not None:
            p2.timestamp -= time_gap
        walk.advance()

    if not found and not quiet:
        logger.warning("No track point #%d to close the time gap at", index)
    return time_gap
