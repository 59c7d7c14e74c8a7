import logging

from gpx_tool.constraints import adjust_elevations, limit_grades
from gpx_tool.kinematics import compute_kinematics
from gpx_tool.models import Extreme, ProcessingOptions, SensorMask, TrackStats, XmaMetric
from gpx_tool.repair import check_track_points, close_time_gap, prepare_start_time
from gpx_tool.smoothing import moving_average
from gpx_tool.track import Track

logger = logging.getLogger(__name__)

# Speed below this threshold (m/s) counts as stopped
MOVING_SPEED_THRESHOLD = 0.5  # ~1.8 km/h

_EXTREMES = [name for name, value in vars(TrackStats()).items() if isinstance(value, Extreme)]


def _update_min_nonzero(extreme: Extreme, value, point) -> None:
    # A zero reading means the sensor had nothing to report (e.g. coasting)
    if value:
        extreme.update_min(value, point)


def compute_aggregates(track: Track) -> None:
    """Compute min/max values, sums for averages, and elevation gain/loss.

    The first point is the reference for all the per-pair metrics, so only
    its elevation and sensor readings are taken into account.
    """
    stats = track.stats
    for name in _EXTREMES:
        if name not in ("max_delta_d", "max_delta_t"):  # set by the kinematics pass
            setattr(stats, name, Extreme())
    stats.elevation_gain = stats.elevation_loss = 0.0
    stats.stopped_time = 0.0
    stats.cadence_sum = stats.heart_rate_sum = stats.power_sum = 0.0
    stats.temperature_sum = stats.grade_sum = 0.0

    mask = track.in_mask
    prev = None
    for point in track:
        if mask & SensorMask.CADENCE and point.cadence is not None:
            stats.max_cadence.update_max(point.cadence, point)
            _update_min_nonzero(stats.min_cadence, point.cadence, point)
            stats.cadence_sum += point.cadence

        if mask & SensorMask.HR and point.heart_rate is not None:
            stats.max_heart_rate.update_max(point.heart_rate, point)
            _update_min_nonzero(stats.min_heart_rate, point.heart_rate, point)
            stats.heart_rate_sum += point.heart_rate

        if mask & SensorMask.POWER and point.power is not None:
            stats.max_power.update_max(point.power, point)
            _update_min_nonzero(stats.min_power, point.power, point)
            stats.power_sum += point.power

        if mask & SensorMask.ATEMP and point.temperature is not None:
            stats.max_temperature.update_max(point.temperature, point)
            stats.min_temperature.update_min(point.temperature, point)
            stats.temperature_sum += point.temperature

        stats.max_elevation.update_max(point.elevation, point)
        stats.min_elevation.update_min(point.elevation, point)

        if prev is not None:
            stats.max_speed.update_max(point.speed, point)
            _update_min_nonzero(stats.min_speed, point.speed, point)

            stats.max_grade.update_max(point.grade, point)
            stats.min_grade.update_min(point.grade, point)
            stats.grade_sum += point.grade

            if point.rise >= 0.0:
                stats.elevation_gain += point.rise
            else:
                stats.elevation_loss += abs(point.rise)

            point.delta_grade = abs(point.grade - prev.grade)
            stats.max_delta_g.update_max(point.delta_grade, point)

            if point.delta_t and (point.speed or 0.0) < MOVING_SPEED_THRESHOLD:
                stats.stopped_time += point.delta_t

        prev = point


def apply_time_offset(track: Track) -> None:
    """Record the shifted timestamp of each point when the start time was changed."""
    if track.time_offset == 0.0:
        return
    for point in track:
        point.adj_time = point.timestamp + track.time_offset


def process_track(track: Track, options: ProcessingOptions) -> Track:
    """Run the full processing pipeline over a freshly parsed track.

    Raises ValueError if the track has no points or is missing data that
    can't be recovered (elevation, or time without a set speed).
    """
    prepare_start_time(track, options)
    check_track_points(track, options)

    first = track.first()
    track.start_time = first.timestamp
    if options.rel_time:
        track.base_time = first.timestamp

    if options.close_gap:
        close_time_gap(track, options.close_gap, quiet=options.quiet)

    smoothing = options.xma_window > 1
    if smoothing and options.xma_metric == XmaMetric.ELEVATION:
        moving_average(track, options.xma_metric, options.xma_method, options.xma_window,
                       options.point_range, quiet=options.quiet)

    compute_kinematics(track, options)

    if any(v is not None for v in (options.max_grade, options.min_grade, options.max_grade_change)):
        limit_grades(track, options)

    if smoothing and options.xma_metric != XmaMetric.ELEVATION:
        moving_average(track, options.xma_metric, options.xma_method, options.xma_window,
                       options.point_range, quiet=options.quiet)

    if options.adjust_elevation:
        adjust_elevations(track)

    compute_aggregates(track)
    apply_time_offset(track)

    if options.activity_type is not None:
        track.activity_type = options.activity_type

    logger.debug(
        "Processed %d points: %d duplicates, %d trimmed, %d discarded, %d elevations adjusted",
        len(track), track.stats.duplicates, track.stats.trimmed,
        track.stats.discarded, track.stats.elevation_adjusted,
    )
    return track
