"""Moving-average smoothing of one per-point metric."""

import logging

import numpy as np

from gpx_tool.models import TrackPoint, XmaMethod, XmaMetric
from gpx_tool.track import Track

logger = logging.getLogger(__name__)

_ATTRS = {
    XmaMetric.ELEVATION: "elevation",
    XmaMetric.GRADE: "grade",
    XmaMetric.POWER: "power",
    XmaMetric.SPEED: "speed",
}


def window_weights(method: XmaMethod, window: int) -> np.ndarray:
    """Weights for each position in the window, center included.

    Simple moving average weighs every point the same; the weighted one
    decreases linearly from n+1 at the center to 1 at each end.
    """
    if window < 1 or window % 2 == 0:
        raise ValueError(f"Moving average window must be a positive odd number, got {window}")
    n = (window - 1) // 2
    if method == XmaMethod.WEIGHTED:
        return np.concatenate([np.arange(1, n + 2), np.arange(n, 0, -1)]).astype(float)
    return np.ones(window)


def _windowed_sums(values: np.ndarray, weights: np.ndarray) -> np.ndarray:
    # "full" convolution keeps windows that run past either end of the track
    n = (len(weights) - 1) // 2
    return np.convolve(values, weights, mode="full")[n:n + len(values)]


def _set_value(point: TrackPoint, attr: str, value: float) -> bool:
    old = getattr(point, attr)
    if attr == "power":
        value = int(round(value))
    setattr(point, attr, value)
    return value != old


def moving_average(
    track: Track,
    metric: XmaMetric,
    method: XmaMethod,
    window: int,
    point_range: tuple[int, int] | None = None,
    quiet: bool = False,
) -> int:
    """Replace a metric with its moving average over a window of points, in place.

    The average at each point uses the (window-1)/2 points before it, the
    point itself and the (window-1)/2 points after it; near the ends of the
    track the window is truncated and the average is taken over the weights
    actually used. All averages are computed from the values as they were
    before smoothing. Points where the metric is not set are skipped and
    don't contribute to their neighbours' averages.

    Returns the number of points whose value changed.
    """
    attr = _ATTRS[metric]
    weights = window_weights(method, window)
    points = list(track)
    if not points:
        return 0

    raw = [getattr(p, attr) for p in points]
    present = np.array([v is not None for v in raw], dtype=float)
    values = np.array([v if v is not None else 0.0 for v in raw], dtype=float)

    sums = _windowed_sums(values * present, weights)
    denoms = _windowed_sums(present, weights)

    changed = 0
    prev = None
    prev_changed = False
    for i, point in enumerate(points):
        in_range = point_range is None or point_range[0] <= point.index <= point_range[1]
        point_changed = raw[i] is not None and in_range and _set_value(point, attr, sums[i] / denoms[i])
        if point_changed:
            changed += 1
            if metric == XmaMetric.GRADE:
                point.grade_adjusted = True
        # A new elevation also changes the rise to the next point
        if metric == XmaMetric.ELEVATION and (point_changed or prev_changed):
            _rederive_grade(point, prev)
        prev = point
        prev_changed = point_changed

    if not quiet:
        logger.info("Smoothed %d %s values (%s moving average, window %d)", changed, attr, method.value, window)
    return changed


def _rederive_grade(point: TrackPoint, prev: TrackPoint | None) -> None:
    """Recompute rise and grade after the point's elevation was smoothed."""
    if prev is None or point.run is None:
        # Kinematics hasn't run yet and will compute them
        return
    if point.run != 0.0:
        point.rise = point.elevation - prev.elevation
        point.grade = (point.rise * 100.0) / point.run
    else:
        point.grade = prev.grade
