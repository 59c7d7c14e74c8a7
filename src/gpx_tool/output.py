"""Output writers: CSV, GPX, TCX, FulGaz .shiz and the summary report."""

import csv
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TextIO

import gpxpy
import gpxpy.gpx

from gpx_tool.formatters import format_hms, format_utc, m_to_km, mps_to_kph, to_datetime
from gpx_tool.models import ActivityType, Extreme, OutputFormat, SensorMask, TimestampFormat
from gpx_tool.track import Track

CSV_HEADER = (
    "<inFile>,<line#>,<trkpt>,<time>,<lat>,<lon>,<ele>,<power>,<atemp>,<cadence>,<hr>,"
    "<deltaT>,<run>,<rise>,<dist>,<distance>,<speed>,<grade>,<deltaG>"
)

GARMIN_TPX_NS = "http://www.garmin.com/xmlschemas/TrackPointExtension/v1"
TCX_NS = "http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2"
TCX_AX_NS = "http://www.garmin.com/xmlschemas/ActivityExtension/v2"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

CREATOR = "gpx-tool"

TCX_SPORTS = {
    ActivityType.RIDE: "Biking",
    ActivityType.HIKE: "Hiking",
    ActivityType.RUN: "Running",
    ActivityType.WALK: "Walking",
    ActivityType.VRIDE: "Virtual Cycling",
    ActivityType.OTHER: "Other",
}


@dataclass
class OutputOptions:
    format: OutputFormat = OutputFormat.GPX
    mask: SensorMask = SensorMask.ALL  # sensor metrics to include
    name: str | None = None
    description: str | None = None  # e.g. the command line that produced the file
    summary: bool = False
    rel_time: TimestampFormat | None = None  # relative timestamps (CSV only)


def _fmt_opt(value, fmt: str) -> str:
    return "" if value is None else format(value, fmt)


def _activity_type(track: Track) -> ActivityType:
    return track.activity_type if track.activity_type is not None else ActivityType.RIDE


def write_csv(track: Track, options: OutputOptions, out: TextIO) -> None:
    """Write one row per track point with its raw and computed metrics."""
    mask = track.in_mask & options.mask
    writer = csv.writer(out, lineterminator="\n")
    out.write(CSV_HEADER + "\n")
    for point in track:
        if options.rel_time is None:
            time = f"{point.output_time:.3f}"
        else:
            rel = point.timestamp - track.base_time
            time = format_hms(rel) if options.rel_time == TimestampFormat.HMS else f"{rel:.0f}"

        writer.writerow([
            point.source_file,
            point.record_num,
            point.index,
            time,
            _fmt_opt(point.lat, ".10f"),
            _fmt_opt(point.lon, ".10f"),
            f"{point.elevation:.10f}",
            point.power if mask & SensorMask.POWER and point.power is not None else "",
            point.temperature if mask & SensorMask.ATEMP and point.temperature is not None else "",
            point.cadence if mask & SensorMask.CADENCE and point.cadence is not None else "",
            point.heart_rate if mask & SensorMask.HR and point.heart_rate is not None else "",
            f"{point.delta_t:.10f}",
            f"{point.run:.3f}",
            f"{point.rise:.10f}",
            f"{point.dist:.10f}",
            f"{m_to_km(point.distance):.10f}",
            _fmt_opt(mps_to_kph(point.speed) if point.speed is not None else None, ".10f"),
            f"{point.grade:.2f}",
            f"{point.delta_grade:.2f}",
        ])


def write_gpx(track: Track, options: OutputOptions, out: TextIO) -> None:
    """Write a GPX 1.1 file with Garmin's TrackPointExtension for the sensor data."""
    mask = track.in_mask & options.mask

    gpx = gpxpy.gpx.GPX()
    gpx.creator = CREATOR
    gpx.nsmap["gpxtpx"] = GARMIN_TPX_NS
    gpx.name = options.name
    gpx.description = options.description
    gpx.time = datetime.now(timezone.utc)

    gpx_track = gpxpy.gpx.GPXTrack(name=options.name)
    gpx_track.type = str(int(_activity_type(track)))
    gpx.tracks.append(gpx_track)
    segment = gpxpy.gpx.GPXTrackSegment()
    gpx_track.segments.append(segment)

    for point in track:
        # A GPX trkpt can't be written without a position
        if point.lat is None or point.lon is None:
            continue
        gpx_point = gpxpy.gpx.GPXTrackPoint(
            latitude=point.lat,
            longitude=point.lon,
            elevation=point.elevation,
            time=to_datetime(point.output_time),
        )
        if mask & SensorMask.POWER and point.power is not None:
            power = ET.Element("power")
            power.text = str(point.power)
            gpx_point.extensions.append(power)

        tpx_values = [
            ("atemp", SensorMask.ATEMP, point.temperature),
            ("hr", SensorMask.HR, point.heart_rate),
            ("cad", SensorMask.CADENCE, point.cadence),
        ]
        if any(mask & flag and value is not None for _, flag, value in tpx_values):
            tpx = ET.Element(f"{{{GARMIN_TPX_NS}}}TrackPointExtension")
            for tag, flag, value in tpx_values:
                if mask & flag and value is not None:
                    ET.SubElement(tpx, f"{{{GARMIN_TPX_NS}}}{tag}").text = str(value)
            gpx_point.extensions.append(tpx)

        segment.points.append(gpx_point)

    out.write(gpx.to_xml(version="1.1"))
    out.write("\n")


def write_tcx(track: Track, options: OutputOptions, out: TextIO) -> None:
    """Write a TCX file with a single activity lap, Garmin Connect style."""
    mask = track.in_mask & options.mask
    stats = track.stats
    first = track.first()
    start = format_utc(first.output_time) if first is not None else format_utc(0.0)

    root = ET.Element("TrainingCenterDatabase", {
        "xmlns": TCX_NS,
        "xmlns:ns3": TCX_AX_NS,
        "xmlns:xsi": XSI_NS,
        "xsi:schemaLocation": f"{TCX_NS} {TCX_NS.replace('/v2', 'v2.xsd')}",
    })
    activities = ET.SubElement(root, "Activities")
    activity = ET.SubElement(activities, "Activity", Sport=TCX_SPORTS[_activity_type(track)])
    ET.SubElement(activity, "Id").text = start

    lap = ET.SubElement(activity, "Lap", StartTime=start)
    ET.SubElement(lap, "TotalTimeSeconds").text = f"{stats.time:.3f}"
    ET.SubElement(lap, "DistanceMeters").text = f"{stats.distance:.10f}"
    ET.SubElement(lap, "MaximumSpeed").text = f"{stats.max_speed.value or 0.0:.10f}"
    ET.SubElement(lap, "Calories").text = "0"
    if mask & SensorMask.HR:
        ET.SubElement(ET.SubElement(lap, "AverageHeartRateBpm"), "Value").text = str(int(track.avg_heart_rate))
        ET.SubElement(ET.SubElement(lap, "MaximumHeartRateBpm"), "Value").text = str(stats.max_heart_rate.value or 0)
    ET.SubElement(lap, "Intensity").text = "Active"
    if mask & SensorMask.CADENCE:
        ET.SubElement(lap, "Cadence").text = str(int(track.avg_cadence))
    ET.SubElement(lap, "TriggerMethod").text = "Manual"

    tcx_track = ET.SubElement(lap, "Track")
    for point in track:
        trackpoint = ET.SubElement(tcx_track, "Trackpoint")
        ET.SubElement(trackpoint, "Time").text = format_utc(point.output_time)
        if point.lat is not None and point.lon is not None:
            position = ET.SubElement(trackpoint, "Position")
            ET.SubElement(position, "LatitudeDegrees").text = f"{point.lat:.10f}"
            ET.SubElement(position, "LongitudeDegrees").text = f"{point.lon:.10f}"
        ET.SubElement(trackpoint, "AltitudeMeters").text = f"{point.elevation:.10f}"
        ET.SubElement(trackpoint, "DistanceMeters").text = f"{point.distance:.10f}"
        if mask & SensorMask.HR and point.heart_rate is not None:
            ET.SubElement(ET.SubElement(trackpoint, "HeartRateBpm"), "Value").text = str(point.heart_rate)
        if mask & SensorMask.CADENCE and point.cadence is not None:
            ET.SubElement(trackpoint, "Cadence").text = str(point.cadence)

        tpx = ET.SubElement(ET.SubElement(trackpoint, "Extensions"), "ns3:TPX")
        if point.speed is not None:
            ET.SubElement(tpx, "ns3:Speed").text = f"{point.speed:.10f}"
        if mask & SensorMask.POWER and point.power is not None:
            ET.SubElement(tpx, "ns3:Watts").text = str(point.power)

    author = ET.SubElement(root, "Author", {"xsi:type": "Application_t"})
    ET.SubElement(author, "Name").text = CREATOR
    ET.SubElement(author, "LangID").text = "en"

    ET.indent(root, space="  ")
    out.write('<?xml version="1.0" encoding="UTF-8"?>\n')
    out.write(ET.tostring(root, encoding="unicode"))
    out.write("\n")


def write_shiz(track: Track, options: OutputOptions, out: TextIO) -> None:
    """Write the FulGaz .shiz JSON format.

    Duration is hh:mm:ss, distance km, elevation m and speed km/h.
    """
    stats = track.stats
    first = track.first()
    base_time = first.timestamp if first is not None else 0.0

    trkpts = []
    for point in track:
        trkpts.append({
            "-lon": f"{point.lon or 0.0:.7f}",
            "-lat": f"{point.lat or 0.0:.7f}",
            "speed": f"{mps_to_kph(point.speed or 0.0):.1f}",
            "ele": f"{point.elevation:.3f}",
            "distance": f"{m_to_km(point.distance):.5f}",
            "bearing": f"{point.bearing:.2f}",
            "slope": f"{point.grade:.1f}",
            "time": format_hms(point.timestamp - base_time),
            "index": point.index,
            "cadence": point.cadence or 0,
            "p": 0,
        })

    data = {
        "extra": {
            "duration": format_hms(stats.time),
            "distance": round(m_to_km(stats.distance), 5),
            "toughness": "100",
            "elevation_gain": int(stats.elevation_gain),
            "date_processed": datetime.now(timezone.utc).strftime("%A, %B %d, %Y"),
            "speed_filter": "0",
            "elevation_filter": "0",
            "grade_filter": "0",
            "timeshift": "0",
        },
        "gpx": {"trk": {"trkseg": {"trkpt": trkpts}}, "seg": []},
    }
    json.dump(data, out)
    out.write("\n")


def _where(track: Track, extreme: Extreme) -> str:
    p = extreme.point
    return (
        f"{p.label} : time = {int(p.timestamp - track.base_time)} s, "
        f"distance = {m_to_km(p.distance):.3f} km"
    )


def write_summary(track: Track, options: OutputOptions, out: TextIO) -> None:
    """Write the activity summary: counters, totals and min/max/avg of every metric."""
    stats = track.stats
    lines = [
        f"      numTrkPts: {len(track)}",
        f"   numDupTrkPts: {stats.duplicates}",
        f"  numTrimTrkPts: {stats.trimmed}",
        f"  numDiscTrkPts: {stats.discarded}",
        f"     numElevAdj: {stats.elevation_adjusted}",
    ]

    first = track.first()
    if first is not None:
        lines.append(f"    dateAndTime: {format_utc(first.output_time, millis=False)}")
    if track.start_time is not None and track.end_time is not None:
        lines.append(f"    elapsedTime: {format_hms(track.end_time - track.start_time)}")
    lines += [
        f"      totalTime: {format_hms(stats.time)}",
        f"     movingTime: {format_hms(stats.time - stats.stopped_time)}",
        f"    stoppedTime: {format_hms(stats.stopped_time)}",
        f"       distance: {m_to_km(stats.distance):.3f} km",
        f"       elevGain: {stats.elevation_gain:.3f} m",
        f"       elevLoss: {stats.elevation_loss:.3f} m",
    ]

    if stats.max_elevation.point is not None:
        lines.append(f"        maxElev: {stats.max_elevation.value:.3f} m @ {_where(track, stats.max_elevation)}")
    if stats.min_elevation.point is not None:
        lines.append(f"        minElev: {stats.min_elevation.value:.3f} m @ {_where(track, stats.min_elevation)}")

    for label, extreme in (("maxSpeed", stats.max_speed), ("minSpeed", stats.min_speed)):
        if extreme.point is not None:
            p = extreme.point
            lines.append(
                f"       {label}: {mps_to_kph(extreme.value):.3f} km/h @ {_where(track, extreme)}, "
                f"deltaD = {p.dist:.3f} m, deltaT = {p.delta_t:.3f} s"
            )
    lines.append(f"       avgSpeed: {mps_to_kph(track.avg_speed):.3f} km/h")

    for label, extreme in (("maxGrade", stats.max_grade), ("minGrade", stats.min_grade)):
        if extreme.point is not None:
            p = extreme.point
            lines.append(
                f"       {label}: {extreme.value:.2f}% @ {_where(track, extreme)}, "
                f"run = {p.run:.3f} m, rise = {p.rise:.3f} m"
            )
    lines.append(f"       avgGrade: {track.avg_grade:.2f}%")

    sensors = [
        (SensorMask.CADENCE, "Cadence", "rpm", stats.max_cadence, stats.min_cadence, track.avg_cadence),
        (SensorMask.HR, "HR", "bpm", stats.max_heart_rate, stats.min_heart_rate, track.avg_heart_rate),
        (SensorMask.POWER, "Power", "watts", stats.max_power, stats.min_power, track.avg_power),
        (SensorMask.ATEMP, "Temp", "C", stats.max_temperature, stats.min_temperature, track.avg_temperature),
    ]
    for flag, name, unit, max_extreme, min_extreme, average in sensors:
        if not track.in_mask & flag:
            continue
        for prefix, extreme in (("max", max_extreme), ("min", min_extreme)):
            if extreme.point is not None:
                lines.append(f"{prefix + name:>15}: {extreme.value} {unit} @ {_where(track, extreme)}")
        lines.append(f"{'avg' + name:>15}: {int(average)} {unit}")

    if stats.max_delta_d.point is not None:
        lines.append(f"      maxDeltaD: {stats.max_delta_d.value:.3f} m @ {_where(track, stats.max_delta_d)}")
    if stats.max_delta_t.point is not None:
        lines.append(f"      maxDeltaT: {stats.max_delta_t.value:.3f} sec @ {_where(track, stats.max_delta_t)}")
    if stats.max_delta_g.point is not None:
        lines.append(f"      maxDeltaG: {stats.max_delta_g.value:.2f}% @ {_where(track, stats.max_delta_g)}")

    out.write("\n".join(lines) + "\n")


WRITERS = {
    OutputFormat.CSV: write_csv,
    OutputFormat.GPX: write_gpx,
    OutputFormat.SHIZ: write_shiz,
    OutputFormat.TCX: write_tcx,
}


def write_output(track: Track, options: OutputOptions, out: TextIO) -> None:
    """Write the processed track in the requested format (or its summary)."""
    if options.summary:
        write_summary(track, options, out)
    else:
        WRITERS[options.format](track, options, out)
