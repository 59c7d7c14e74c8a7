"""Input file parsers.

Every parser appends the points it reads to the given track, numbering
them sequentially across all the input files, and records which of the
optional sensor metrics it found in ``track.in_mask``.
"""

import csv
import logging
import xml.etree.ElementTree as ET
from pathlib import Path

import gpxpy
import gpxpy.gpx
from fitparse import FitFile, FitParseError

from gpx_tool.formatters import km_to_m, kph_to_mps, parse_hms, parse_iso_time, to_timestamp
from gpx_tool.models import ActivityType, SensorMask, TrackPoint
from gpx_tool.output import CSV_HEADER
from gpx_tool.track import Track

logger = logging.getLogger(__name__)

# FIT positions are in semicircles
SEMICIRCLES_TO_DEGREES = 180.0 / 2**31

_ACTIVITY_NAMES = {
    "biking": ActivityType.RIDE,
    "cycling": ActivityType.RIDE,
    "ride": ActivityType.RIDE,
    "hiking": ActivityType.HIKE,
    "hike": ActivityType.HIKE,
    "running": ActivityType.RUN,
    "run": ActivityType.RUN,
    "walking": ActivityType.WALK,
    "walk": ActivityType.WALK,
    "virtual cycling": ActivityType.VRIDE,
    "virtualride": ActivityType.VRIDE,
    "vride": ActivityType.VRIDE,
    "other": ActivityType.OTHER,
}

_TIMER_STOP_EVENTS = {"stop", "stop_all", "stop_disable", "stop_disable_all"}


def activity_type_from_name(name: str | None) -> ActivityType | None:
    """Map a GPX <type>, TCX Sport or FIT sport value to an activity type."""
    if name is None:
        return None
    name = str(name).strip().lower()
    if not name:
        return None
    if name.isdigit():
        try:
            return ActivityType(int(name))
        except ValueError:
            return ActivityType.OTHER
    return _ACTIVITY_NAMES.get(name, ActivityType.OTHER)


def _local_name(tag: str) -> str:
    """Strip the {namespace} part of an ElementTree tag."""
    return tag.rsplit("}", 1)[-1]


def _to_float(text: str | None) -> float | None:
    if text is None or not text.strip():
        return None
    return float(text)


def _to_int(text: str | None) -> int | None:
    value = _to_float(text)
    return None if value is None else int(round(value))


def _set_sensors(track: Track, point: TrackPoint, sensors: dict) -> None:
    """Store the sensor readings found for a point and flag them in the track's input mask."""
    flags = {
        "temperature": SensorMask.ATEMP,
        "cadence": SensorMask.CADENCE,
        "heart_rate": SensorMask.HR,
        "power": SensorMask.POWER,
    }
    for attr, value in sensors.items():
        if value is not None:
            setattr(point, attr, value)
            track.in_mask |= flags[attr]


def _set_activity_type(track: Track, activity_type: ActivityType | None) -> None:
    # The first file that declares a type wins
    if track.activity_type is None and activity_type is not None:
        track.activity_type = activity_type


def parse_gpx(filepath: str | Path, track: Track) -> int:
    """Parse a GPX file and append its track points. Returns the number of points read."""
    source = Path(filepath).name
    try:
        with open(filepath, "r") as f:
            gpx = gpxpy.parse(f)
    except gpxpy.gpx.GPXException as e:
        raise ValueError(f"Invalid GPX file {filepath}: {e}") from e

    count = 0
    for gpx_track in gpx.tracks:
        _set_activity_type(track, activity_type_from_name(gpx_track.type))
        for segment in gpx_track.segments:
            for pt in segment.points:
                count += 1
                point = track.new_point(source, count)
                point.lat = pt.latitude
                point.lon = pt.longitude
                point.elevation = pt.elevation
                if pt.time is not None:
                    point.timestamp = to_timestamp(pt.time)
                _set_sensors(track, point, _gpx_extensions(pt))
                track.append(point)
    return count


def _gpx_extensions(pt: gpxpy.gpx.GPXTrackPoint) -> dict:
    """Read power, temperature, heart rate and cadence from a point's extensions.

    Garmin's TrackPointExtension and the older gpxdata extensions use
    different prefixes for the same tags, so only the local name is
    matched.
    """
    sensors = {}
    for ext in pt.extensions:
        for el in ext.iter():
            name = _local_name(el.tag).lower()
            if name == "power":
                sensors["power"] = _to_int(el.text)
            elif name == "atemp":
                sensors["temperature"] = _to_int(el.text)
            elif name == "hr":
                sensors["heart_rate"] = _to_int(el.text)
            elif name in ("cad", "cadence"):
                sensors["cadence"] = _to_int(el.text)
    return sensors


def parse_tcx(filepath: str | Path, track: Track) -> int:
    """Parse a TCX file and append its track points. Returns the number of points read."""
    source = Path(filepath).name
    try:
        root = ET.parse(filepath).getroot()
    except ET.ParseError as e:
        raise ValueError(f"Invalid TCX file {filepath}: {e}") from e

    if _local_name(root.tag) != "TrainingCenterDatabase":
        raise ValueError(f"Invalid TCX file {filepath}: not a TrainingCenterDatabase")

    count = 0
    for el in root.iter():
        name = _local_name(el.tag)
        if name == "Activity":
            _set_activity_type(track, activity_type_from_name(el.get("Sport")))
        elif name == "Trackpoint":
            count += 1
            point = track.new_point(source, count)
            _read_trackpoint(track, point, el)
            track.append(point)
    return count


def _read_trackpoint(track: Track, point: TrackPoint, trackpoint: ET.Element) -> None:
    # Tag names are unique within a Trackpoint (Value only appears in HeartRateBpm)
    fields = {_local_name(el.tag): el.text for el in trackpoint.iter()}

    time = fields.get("Time")
    if time:
        point.timestamp = parse_iso_time(time)
    point.lat = _to_float(fields.get("LatitudeDegrees"))
    point.lon = _to_float(fields.get("LongitudeDegrees"))
    point.elevation = _to_float(fields.get("AltitudeMeters"))
    point.distance = _to_float(fields.get("DistanceMeters"))
    point.speed = _to_float(fields.get("Speed"))
    point.grade = _to_float(fields.get("GradePercent"))
    _set_sensors(track, point, {
        "heart_rate": _to_int(fields.get("Value")),
        "cadence": _to_int(fields.get("Cadence")),
        "power": _to_int(fields.get("Watts")),
    })


def parse_fit(filepath: str | Path, track: Track) -> int:
    """Parse a FIT activity file and append its track points. Returns the number of points read.

    Only the records logged while the activity timer was running are used.
    """
    source = Path(filepath).name
    try:
        fitfile = FitFile(str(filepath))
        messages = list(fitfile.get_messages(["file_id", "sport", "event", "record"]))
    except FitParseError as e:
        raise ValueError(f"Invalid FIT file {filepath}: {e}") from e

    manufacturer = None
    timer_running = True
    count = 0
    skipped = 0

    for mesg_num, message in enumerate(messages, start=1):
        if message.name == "file_id":
            manufacturer = message.get_value("manufacturer")
        elif message.name == "sport":
            _set_activity_type(track, activity_type_from_name(message.get_value("sport")))
        elif message.name == "event":
            if message.get_value("event") == "timer":
                event_type = message.get_value("event_type")
                if event_type == "start":
                    timer_running = True
                elif event_type in _TIMER_STOP_EVENTS:
                    timer_running = False
        elif message.name == "record":
            if not timer_running:
                skipped += 1
                continue

            values = message.get_values()
            altitude = values.get("enhanced_altitude")
            if altitude is None:
                altitude = values.get("altitude")

            # Strava logs a distance-only record before each real one
            if str(manufacturer).lower() == "strava" and (
                values.get("position_lat") is None
                or values.get("position_long") is None
                or altitude is None
            ):
                continue

            count += 1
            point = track.new_point(source, mesg_num)
            _read_record(track, point, values, altitude)
            track.append(point)

    if skipped:
        logger.info("Skipped %d records logged while the timer was stopped in %s", skipped, source)
    return count


def _read_record(track: Track, point: TrackPoint, values: dict, altitude: float | None) -> None:
    timestamp = values.get("timestamp")
    if timestamp is not None:
        point.timestamp = to_timestamp(timestamp)
    if values.get("position_lat") is not None:
        point.lat = values["position_lat"] * SEMICIRCLES_TO_DEGREES
    if values.get("position_long") is not None:
        point.lon = values["position_long"] * SEMICIRCLES_TO_DEGREES
    point.elevation = altitude
    point.distance = values.get("distance")

    speed = values.get("enhanced_speed")
    point.speed = speed if speed is not None else values.get("speed")
    point.grade = values.get("grade")

    _set_sensors(track, point, {
        "temperature": values.get("temperature"),
        "cadence": values.get("cadence"),
        "heart_rate": values.get("heart_rate"),
        "power": values.get("power"),
    })


def parse_csv(filepath: str | Path, track: Track) -> int:
    """Parse a CSV file written by this tool and append its track points.

    Distance is in km and speed in km/h; time is either seconds (absolute
    or relative) or hh:mm:ss.
    """
    source = Path(filepath).name
    count = 0
    with open(filepath, "r", newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None or ",".join(header) != CSV_HEADER:
            raise ValueError(f"Invalid CSV file {filepath}: unexpected header")

        for row in reader:
            if not row:
                continue
            line_num = reader.line_num
            if len(row) != len(header):
                raise ValueError(f"Invalid CSV file {filepath}:{line_num}: expected {len(header)} columns")
            try:
                point = _read_csv_row(track, source, line_num, dict(zip(header, row)))
            except ValueError as e:
                raise ValueError(f"Invalid CSV file {filepath}:{line_num}: {e}") from e
            track.append(point)
            count += 1
    return count


def _read_csv_row(track: Track, source: str, line_num: int, row: dict) -> TrackPoint:
    point = track.new_point(source, line_num)
    time = row["<time>"].strip()
    if time:
        point.timestamp = parse_hms(time) if ":" in time else float(time)
    point.lat = _to_float(row["<lat>"])
    point.lon = _to_float(row["<lon>"])
    point.elevation = _to_float(row["<ele>"])

    distance = _to_float(row["<distance>"])
    point.distance = km_to_m(distance) if distance is not None else None
    speed = _to_float(row["<speed>"])
    point.speed = kph_to_mps(speed) if speed is not None else None
    point.grade = _to_float(row["<grade>"])

    _set_sensors(track, point, {
        "power": _to_int(row["<power>"]),
        "temperature": _to_int(row["<atemp>"]),
        "cadence": _to_int(row["<cadence>"]),
        "heart_rate": _to_int(row["<hr>"]),
    })
    return point


PARSERS = {
    ".csv": parse_csv,
    ".fit": parse_fit,
    ".gpx": parse_gpx,
    ".tcx": parse_tcx,
}


def parse_file(filepath: str | Path, track: Track) -> int:
    """Parse an input file of any supported format, chosen by its suffix.

    Raises FileNotFoundError if the file doesn't exist and ValueError if
    its format is not supported or its content is invalid.
    """
    path = Path(filepath)
    suffix = path.suffix.lower()
    parser = PARSERS.get(suffix)
    if parser is None:
        raise ValueError(f"Unsupported input file format: {path.name}")
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {filepath}")

    if track.input_format is None:
        track.input_format = suffix.lstrip(".")

    count = parser(path, track)
    logger.debug("Read %d points from %s", count, path.name)
    return count
