"""Unit conversion and time formatting utilities."""

from datetime import datetime, timezone


def mps_to_kph(speed: float) -> float:
    """Convert m/s to km/h."""
    return speed * 3.6


def kph_to_mps(speed: float) -> float:
    """Convert km/h to m/s."""
    return speed / 3.6


def m_to_km(meters: float) -> float:
    return meters / 1000.0


def km_to_m(km: float) -> float:
    return km * 1000.0


def format_hms(seconds: float) -> str:
    """Format seconds as hh:mm:ss (hours can exceed 24)."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_hms(text: str) -> float:
    """Parse hh:mm:ss (or mm:ss) into seconds."""
    seconds = 0.0
    for part in text.strip().split(":"):
        seconds = seconds * 60 + float(part)
    return seconds


def format_utc(timestamp: float, millis: bool = True) -> str:
    """Format seconds since the Epoch as an ISO 8601 UTC time string."""
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    if not millis:
        return dt.strftime("%Y-%m-%dT%H:%M:%S")
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def to_timestamp(dt: datetime) -> float:
    """Seconds since the Epoch; naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def parse_iso_time(text: str) -> float:
    """Parse an ISO 8601 date/time string (e.g. 2022-04-11T10:25:00Z) into seconds since the Epoch.

    A string without a UTC offset is taken as UTC.
    """
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid date/time: {text!r}") from None
    return to_timestamp(dt)
