from datetime import datetime
from unittest.mock import patch

import pytest

from gpx_tool.analyzer import process_track
from gpx_tool.models import ActivityType, ProcessingOptions, SensorMask
from gpx_tool.output import CSV_HEADER
from gpx_tool.parser import activity_type_from_name, parse_csv, parse_file, parse_fit, parse_gpx, parse_tcx
from gpx_tool.track import Track

# 2022-06-15T08:00:00Z
BASE_TIME = 1655280000.0

GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test"
     xmlns="http://www.topografix.com/GPX/1/1"
     xmlns:gpxtpx="http://www.garmin.com/xmlschemas/TrackPointExtension/v1">
  <trk>
    <type>9</type>
    <trkseg>
      <trkpt lat="37.7749" lon="-122.4194">
        <ele>10.0</ele>
        <time>2022-06-15T08:00:00Z</time>
        <extensions>
          <power>210</power>
          <gpxtpx:TrackPointExtension>
            <gpxtpx:atemp>21</gpxtpx:atemp>
            <gpxtpx:hr>130</gpxtpx:hr>
            <gpxtpx:cad>85</gpxtpx:cad>
          </gpxtpx:TrackPointExtension>
        </extensions>
      </trkpt>
      <trkpt lat="37.7750" lon="-122.4194">
        <ele>11.0</ele>
        <time>2022-06-15T08:00:05Z</time>
      </trkpt>
    </trkseg>
  </trk>
</gpx>
"""

TCX = """<?xml version="1.0" encoding="UTF-8"?>
<TrainingCenterDatabase xmlns="http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2"
    xmlns:ns3="http://www.garmin.com/xmlschemas/ActivityExtension/v2">
  <Activities>
    <Activity Sport="Biking">
      <Id>2022-06-15T08:00:00.000Z</Id>
      <Lap StartTime="2022-06-15T08:00:00.000Z">
        <Track>
          <Trackpoint>
            <Time>2022-06-15T08:00:00.000Z</Time>
            <Position>
              <LatitudeDegrees>37.7749</LatitudeDegrees>
              <LongitudeDegrees>-122.4194</LongitudeDegrees>
            </Position>
            <AltitudeMeters>10.0</AltitudeMeters>
            <DistanceMeters>0.0</DistanceMeters>
            <HeartRateBpm><Value>120</Value></HeartRateBpm>
            <Cadence>80</Cadence>
            <Extensions><ns3:TPX><ns3:Speed>2.5</ns3:Speed><ns3:Watts>180</ns3:Watts></ns3:TPX></Extensions>
          </Trackpoint>
          <Trackpoint>
            <Time>2022-06-15T08:00:05.000Z</Time>
            <Position>
              <LatitudeDegrees>37.7750</LatitudeDegrees>
              <LongitudeDegrees>-122.4194</LongitudeDegrees>
            </Position>
            <AltitudeMeters>11.0</AltitudeMeters>
            <DistanceMeters>11.1</DistanceMeters>
          </Trackpoint>
        </Track>
      </Lap>
    </Activity>
  </Activities>
</TrainingCenterDatabase>
"""


def _csv_row(**values):
    columns = [c.strip("<>") for c in CSV_HEADER.split(",")]
    return ",".join(str(values.get(c, "")) for c in columns)


class FakeMessage:
    def __init__(self, name, **values):
        self.name = name
        self._values = values

    def get_value(self, key):
        return self._values.get(key)

    def get_values(self):
        return dict(self._values)


def _record(seconds, lat=None, lon=None, **values):
    return FakeMessage(
        "record",
        timestamp=datetime(2022, 6, 15, 8, 0, seconds),
        position_lat=lat,
        position_long=lon,
        **values,
    )


def _parse_fit(messages):
    track = Track()
    with patch("gpx_tool.parser.FitFile") as fit_file:
        fit_file.return_value.get_messages.return_value = messages
        count = parse_fit("ride.fit", track)
    return track, count


class TestActivityTypeFromName:
    @pytest.mark.parametrize("name,expected", [
        ("1", ActivityType.RIDE),
        ("9", ActivityType.RUN),
        ("Biking", ActivityType.RIDE),
        ("cycling", ActivityType.RIDE),
        ("Running", ActivityType.RUN),
        ("Virtual Cycling", ActivityType.VRIDE),
        ("swimming", ActivityType.OTHER),
        ("42", ActivityType.OTHER),
    ])
    def test_names(self, name, expected):
        assert activity_type_from_name(name) == expected

    def test_missing(self):
        assert activity_type_from_name(None) is None
        assert activity_type_from_name("  ") is None


class TestParseGpx:
    def test_points_and_sensors(self, tmp_path):
        path = tmp_path / "ride.gpx"
        path.write_text(GPX)
        track = Track()

        assert parse_gpx(path, track) == 2

        p1, p2 = list(track)
        assert (p1.lat, p1.lon, p1.elevation) == (37.7749, -122.4194, 10.0)
        assert p1.timestamp == BASE_TIME
        assert p2.timestamp == BASE_TIME + 5
        assert (p1.power, p1.temperature, p1.heart_rate, p1.cadence) == (210, 21, 130, 85)
        assert p2.heart_rate is None
        assert track.in_mask == SensorMask.ALL
        assert track.activity_type == ActivityType.RUN
        assert p2.label == "TrkPt #1 (ride.gpx:2)"

    def test_invalid_xml(self, tmp_path):
        path = tmp_path / "bad.gpx"
        path.write_text("<gpx><trk>")
        with pytest.raises(ValueError, match="Invalid GPX file"):
            parse_gpx(path, Track())


class TestParseTcx:
    def test_points_and_sensors(self, tmp_path):
        path = tmp_path / "ride.tcx"
        path.write_text(TCX)
        track = Track()

        assert parse_tcx(path, track) == 2

        p1, p2 = list(track)
        assert p1.timestamp == BASE_TIME
        assert (p1.lat, p1.lon, p1.elevation, p1.distance) == (37.7749, -122.4194, 10.0, 0.0)
        assert (p1.heart_rate, p1.cadence, p1.power, p1.speed) == (120, 80, 180, 2.5)
        assert p2.distance == 11.1
        assert p2.heart_rate is None
        assert track.in_mask == SensorMask.HR | SensorMask.CADENCE | SensorMask.POWER
        assert track.activity_type == ActivityType.RIDE

    def test_wrong_root(self, tmp_path):
        path = tmp_path / "ride.tcx"
        path.write_text("<gpx></gpx>")
        with pytest.raises(ValueError, match="TrainingCenterDatabase"):
            parse_tcx(path, Track())


class TestParseFit:
    def test_records(self):
        track, count = _parse_fit([
            FakeMessage("file_id", manufacturer="garmin"),
            FakeMessage("sport", sport="cycling"),
            _record(0, lat=2**30, lon=-(2**30), enhanced_altitude=120.5, heart_rate=140, power=200),
            _record(1, lat=2**30, lon=-(2**30), altitude=121.0, speed=4.5, cadence=90),
        ])

        assert count == 2
        p1, p2 = list(track)
        assert (p1.lat, p1.lon) == (90.0, -90.0)
        assert p1.timestamp == BASE_TIME
        assert p1.elevation == 120.5
        assert p2.elevation == 121.0
        assert p2.speed == 4.5
        assert (p1.heart_rate, p1.power, p2.cadence) == (140, 200, 90)
        # Records are referenced by their message number
        assert p1.record_num == 3
        assert track.activity_type == ActivityType.RIDE

    def test_records_while_timer_stopped_are_skipped(self):
        track, count = _parse_fit([
            _record(0, lat=0, lon=0, altitude=10.0),
            FakeMessage("event", event="timer", event_type="stop_all"),
            _record(1, lat=0, lon=0, altitude=10.0),
            FakeMessage("event", event="timer", event_type="start"),
            _record(2, lat=0, lon=0, altitude=10.0),
        ])

        assert count == 2
        assert [p.timestamp - BASE_TIME for p in track] == [0.0, 2.0]

    def test_strava_distance_only_records_skipped(self):
        track, count = _parse_fit([
            FakeMessage("file_id", manufacturer="strava"),
            _record(0, distance=5.0),
            _record(0, lat=0, lon=0, altitude=10.0, distance=5.0),
        ])

        assert count == 1
        assert track.first().elevation == 10.0


class TestParseCsv:
    def test_rows(self, tmp_path):
        path = tmp_path / "ride.csv"
        path.write_text("\n".join([
            CSV_HEADER,
            _csv_row(time=f"{BASE_TIME:.3f}", lat="37.7749", lon="-122.4194", ele="10.0",
                     distance="0.0", speed="36.0", grade="1.50", hr="120"),
            _csv_row(time=f"{BASE_TIME + 5:.3f}", lat="37.7750", lon="-122.4194", ele="11.0",
                     distance="0.0111", speed="", grade="9.00"),
        ]) + "\n")
        track = Track()

        assert parse_csv(path, track) == 2

        p1, p2 = list(track)
        assert p1.timestamp == BASE_TIME
        assert p1.speed == pytest.approx(10.0)
        assert p2.distance == pytest.approx(11.1)
        assert p2.speed is None
        assert p1.heart_rate == 120
        assert p2.heart_rate is None
        assert track.in_mask == SensorMask.HR
        assert p2.location == "ride.csv:3"

    def test_hms_time(self, tmp_path):
        path = tmp_path / "ride.csv"
        path.write_text(CSV_HEADER + "\n" + _csv_row(time="01:00:05", lat="1", lon="2", ele="3") + "\n")
        track = Track()
        parse_csv(path, track)
        assert track.first().timestamp == 3605.0

    def test_wrong_header(self, tmp_path):
        path = tmp_path / "ride.csv"
        path.write_text("time,lat,lon\n1,2,3\n")
        with pytest.raises(ValueError, match="unexpected header"):
            parse_csv(path, Track())

    def test_bad_value_reports_line(self, tmp_path):
        path = tmp_path / "ride.csv"
        path.write_text(CSV_HEADER + "\n" + _csv_row(time="0", lat="north", lon="2", ele="3") + "\n")
        with pytest.raises(ValueError, match="ride.csv:2"):
            parse_csv(path, Track())


class TestParseFile:
    def test_points_numbered_across_files(self, tmp_path):
        first = tmp_path / "a.gpx"
        second = tmp_path / "b.tcx"
        first.write_text(GPX)
        second.write_text(TCX)
        track = Track()

        parse_file(first, track)
        parse_file(second, track)

        assert [p.index for p in track] == [0, 1, 2, 3]
        assert [p.source_file for p in track] == ["a.gpx", "a.gpx", "b.tcx", "b.tcx"]
        assert track.input_format == "gpx"
        # The first file's activity type wins
        assert track.activity_type == ActivityType.RUN

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "ride.kml"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported"):
            parse_file(path, Track())

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_file(tmp_path / "missing.gpx", Track())


INDOOR_TCX = """<?xml version="1.0" encoding="UTF-8"?>
<TrainingCenterDatabase xmlns="http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2">
  <Activities>
    <Activity Sport="Biking">
      <Lap StartTime="2022-06-15T08:00:00.000Z">
        <Track>
{trackpoints}
        </Track>
      </Lap>
    </Activity>
  </Activities>
</TrainingCenterDatabase>
"""

INDOOR_TRACKPOINT = """          <Trackpoint>
            <Time>2022-06-15T08:00:{seconds:02d}.000Z</Time>
            <AltitudeMeters>{altitude}</AltitudeMeters>
            <DistanceMeters>{distance}</DistanceMeters>
          </Trackpoint>"""


def _indoor_tcx(tmp_path, altitudes):
    trackpoints = "\n".join(
        INDOOR_TRACKPOINT.format(seconds=5 * i, altitude=altitude, distance=5.0 * i)
        for i, altitude in enumerate(altitudes)
    )
    path = tmp_path / "indoor.tcx"
    path.write_text(INDOOR_TCX.format(trackpoints=trackpoints))
    return path


class TestIndoorTcx:
    """Trainer rides record distance but no position."""

    @pytest.mark.parametrize("altitudes", [[10.0, 11.0, 12.0, 13.0], [10.0] * 4])
    def test_processed_from_recorded_distance(self, tmp_path, altitudes):
        track = Track()
        parse_file(_indoor_tcx(tmp_path, altitudes), track)

        process_track(track, ProcessingOptions(quiet=True))

        points = list(track)
        assert len(points) == 4
        assert all(p.lat is None and p.lon is None for p in points)
        assert track.stats.duplicates == 0
        assert track.stats.distance == pytest.approx(15.0)
        assert track.stats.time == 15.0
        assert all(p.bearing == 0.0 for p in points)
