from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag


class ActivityType(IntEnum):
    """Activity types, numbered as in the GPX <type> tag used by Strava."""
    RIDE = 1
    HIKE = 4
    RUN = 9
    WALK = 10
    VRIDE = 17
    OTHER = 99


class SensorMask(IntFlag):
    """Optional sensor metrics present in the input (or wanted in the output)."""
    NONE = 0x00
    ATEMP = 0x01
    CADENCE = 0x02
    HR = 0x04
    POWER = 0x08
    ALL = 0x0F


class OutputFormat(str, Enum):
    CSV = "csv"
    GPX = "gpx"
    SHIZ = "shiz"
    TCX = "tcx"


class TimestampFormat(str, Enum):
    SEC = "sec"  # plain seconds
    HMS = "hms"  # hh:mm:ss


class XmaMethod(str, Enum):
    SIMPLE = "simple"
    WEIGHTED = "weighted"


class XmaMetric(str, Enum):
    ELEVATION = "elevation"
    GRADE = "grade"
    POWER = "power"
    SPEED = "speed"


# Computed grades are kept within this range (percent)
GRADE_LIMIT = 99.9


@dataclass(eq=False)
class TrackPoint:
    index: int
    source_file: str
    record_num: int

    # Raw data from the input file (None = not present)
    timestamp: float | None = None  # seconds since the Epoch
    lat: float | None = None
    lon: float | None = None
    elevation: float | None = None  # meters
    temperature: int | None = None  # degrees Celsius
    cadence: int | None = None  # rpm
    heart_rate: int | None = None  # bpm
    power: int | None = None  # watts
    speed: float | None = None  # m/s
    distance: float | None = None  # meters from start
    grade: float | None = None  # percent

    # Computed metrics
    run: float | None = None  # horizontal distance from previous point (m)
    rise: float | None = None  # elevation diff from previous point (m)
    dist: float | None = None  # distance traveled from previous point (m)
    delta_t: float | None = None  # time diff with previous point (s)
    bearing: float = 0.0  # initial bearing (degrees, 0-359.99)
    delta_grade: float = 0.0  # grade change from previous point (percent)
    grade_adjusted: bool = False
    adj_time: float | None = None  # timestamp after shifting the start time

    slot: int | None = field(default=None, repr=False)

    @property
    def location(self) -> str:
        """Short 'file:record' reference used in diagnostics."""
        return f"{self.source_file}:{self.record_num}"

    @property
    def label(self) -> str:
        return f"TrkPt #{self.index} ({self.location})"

    @property
    def output_time(self) -> float | None:
        """Timestamp to render: the shifted one if the start time was changed."""
        return self.adj_time if self.adj_time is not None else self.timestamp


@dataclass
class Extreme:
    """A min or max value together with the point where it occurs."""
    value: float | None = None
    point: TrackPoint | None = None

    def update_max(self, value: float | None, point: TrackPoint) -> None:
        if value is not None and (self.value is None or value > self.value):
            self.value = value
            self.point = point

    def update_min(self, value: float | None, point: TrackPoint) -> None:
        if value is not None and (self.value is None or value < self.value):
            self.value = value
            self.point = point


@dataclass
class TrackStats:
    # Diagnostic counters
    duplicates: int = 0  # duplicates of the previous point
    trimmed: int = 0  # trimmed out by user request
    discarded: int = 0  # non-monotonic or null displacement
    elevation_adjusted: int = 0  # elevation changed to match an adjusted grade

    # Totals
    distance: float = 0.0  # meters
    time: float = 0.0  # seconds
    stopped_time: float = 0.0  # seconds
    elevation_gain: float = 0.0  # meters
    elevation_loss: float = 0.0  # meters

    # Running sums used for averages
    cadence_sum: float = 0.0
    heart_rate_sum: float = 0.0
    power_sum: float = 0.0
    temperature_sum: float = 0.0
    grade_sum: float = 0.0

    max_cadence: Extreme = field(default_factory=Extreme)
    min_cadence: Extreme = field(default_factory=Extreme)
    max_heart_rate: Extreme = field(default_factory=Extreme)
    min_heart_rate: Extreme = field(default_factory=Extreme)
    max_power: Extreme = field(default_factory=Extreme)
    min_power: Extreme = field(default_factory=Extreme)
    max_temperature: Extreme = field(default_factory=Extreme)
    min_temperature: Extreme = field(default_factory=Extreme)
    max_speed: Extreme = field(default_factory=Extreme)
    min_speed: Extreme = field(default_factory=Extreme)
    max_elevation: Extreme = field(default_factory=Extreme)
    min_elevation: Extreme = field(default_factory=Extreme)
    max_grade: Extreme = field(default_factory=Extreme)
    min_grade: Extreme = field(default_factory=Extreme)
    max_delta_d: Extreme = field(default_factory=Extreme)
    max_delta_t: Extreme = field(default_factory=Extreme)
    max_delta_g: Extreme = field(default_factory=Extreme)


@dataclass
class ProcessingOptions:
    activity_type: ActivityType | None = None  # overrides the input's type
    close_gap: int | None = None  # close the time gap at this point index
    max_grade: float | None = None  # percent
    min_grade: float | None = None  # percent
    max_grade_change: float | None = None  # percent between consecutive points
    point_range: tuple[int, int] | None = None  # (from, to) point indices, inclusive
    trim: bool = False  # remove the points in point_range
    set_speed: float | None = None  # m/s; used to synthesize missing timestamps
    start_time: float | None = None  # seconds since the Epoch
    rel_time: bool = False  # output relative timestamps
    xma_method: XmaMethod = XmaMethod.SIMPLE
    xma_metric: XmaMetric = XmaMetric.ELEVATION
    xma_window: int = 0  # 0 = no smoothing
    adjust_elevation: bool = True
    verbatim: bool = False  # no data adjustments
    quiet: bool = False  # no warnings

    def in_range(self, point: TrackPoint) -> bool:
        if self.point_range is None:
            return True
        start, end = self.point_range
        return start <= point.index <= end
