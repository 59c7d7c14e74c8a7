import pytest

from gpx_tool.models import ProcessingOptions
from gpx_tool.track import Track

# 2022-06-15T08:00:00Z
BASE_TIME = 1655280000.0

# One step of 0.0001 degrees of latitude is ~11.12 m
LAT_STEP = 0.0001


def build_track(rows: list[dict], source: str = "test.gpx") -> Track:
    """Build a track from dicts of TrackPoint field values, as a parser would."""
    track = Track()
    for record_num, fields in enumerate(rows, start=1):
        point = track.new_point(source, record_num)
        for name, value in fields.items():
            setattr(point, name, value)
        track.append(point)
    return track


def line_rows(elevations: list[float], spacing_s: float = 5.0, lat_step: float = LAT_STEP) -> list[dict]:
    """Points heading due north, evenly spaced in distance and time."""
    return [
        {
            "lat": 37.7749 + i * lat_step,
            "lon": -122.4194,
            "elevation": elevation,
            "timestamp": BASE_TIME + i * spacing_s,
        }
        for i, elevation in enumerate(elevations)
    ]


@pytest.fixture
def make_track():
    return build_track


@pytest.fixture
def options():
    return ProcessingOptions(quiet=True)


@pytest.fixture
def flat_track():
    """Five flat points ~11 m and 5 s apart."""
    return build_track(line_rows([10.0] * 5))


@pytest.fixture
def uphill_track():
    """Five points ~11 m and 5 s apart, climbing 1 m between each."""
    return build_track(line_rows([10.0, 11.0, 12.0, 13.0, 14.0]))


@pytest.fixture
def make_rows():
    return line_rows
