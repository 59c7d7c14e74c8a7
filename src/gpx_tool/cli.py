import argparse
import logging
import sys
import time

from gpx_tool import __version__, __version_date__, get_git_hash
from gpx_tool.analyzer import process_track
from gpx_tool.config import load_config
from gpx_tool.formatters import kph_to_mps, parse_iso_time
from gpx_tool.models import (
    ActivityType,
    OutputFormat,
    ProcessingOptions,
    SensorMask,
    TimestampFormat,
    XmaMethod,
    XmaMetric,
)
from gpx_tool.output import OutputOptions, write_output
from gpx_tool.parser import parse_file
from gpx_tool.track import Track

# Default values for CLI options
DEFAULTS = {
    "activity_type": None,
    "max_grade": None,
    "max_grade_change": None,
    "min_grade": None,
    "output_format": None,  # same as the first input file
    "rel_time": None,
    "set_speed": None,
    "xma_method": XmaMethod.SIMPLE.value,
    "xma_metric": XmaMetric.ELEVATION.value,
    "xma_window": 0,
}

ACTIVITY_TYPES = {t.name.lower(): t for t in ActivityType}


def build_parser(config: dict | None = None) -> argparse.ArgumentParser:
    """Build argument parser with defaults from config file."""
    if config is None:
        config = {}

    def get_default(key: str):
        return config.get(key, DEFAULTS[key])

    parser = argparse.ArgumentParser(
        prog="gpx-tool",
        description="Clean up, analyze and convert GPS activity files (GPX, TCX, FIT, CSV).",
    )
    parser.add_argument("files", nargs="*", metavar="FILE", help="Input files, stitched in the order given")
    parser.add_argument(
        "--activity-type",
        choices=sorted(ACTIVITY_TYPES),
        default=get_default("activity_type"),
        help="Override the activity type of the input",
    )
    parser.add_argument(
        "--close-gap",
        type=int,
        metavar="N",
        help="Close the time gap before track point N",
    )
    parser.add_argument(
        "--max-grade",
        type=float,
        default=get_default("max_grade"),
        help="Limit the grade to this maximum value in %%",
    )
    parser.add_argument(
        "--max-grade-change",
        type=float,
        default=get_default("max_grade_change"),
        help="Limit the grade change between consecutive points to this value in %%",
    )
    parser.add_argument(
        "--min-grade",
        type=float,
        default=get_default("min_grade"),
        help="Limit the grade to this minimum value in %%",
    )
    parser.add_argument("--name", help="Name of the activity in the output file")
    parser.add_argument("--output-file", metavar="PATH", help="Write the output to this file (default: stdout)")
    parser.add_argument(
        "--output-filter",
        metavar="0xNN",
        default="0x00",
        help="Metrics to exclude from the output: 0x01=atemp 0x02=cadence 0x04=hr 0x08=power",
    )
    parser.add_argument(
        "--output-format",
        choices=[f.value for f in OutputFormat],
        default=get_default("output_format"),
        help="Output format (default: same as the first input, GPX for FIT inputs)",
    )
    parser.add_argument("--quiet", action="store_true", help="Don't print warnings")
    parser.add_argument(
        "--range",
        metavar="A,B",
        help="Track points A to B (inclusive) the grade limits, smoothing and --trim apply to",
    )
    parser.add_argument(
        "--rel-time",
        choices=[f.value for f in TimestampFormat],
        default=get_default("rel_time"),
        help="Print timestamps relative to the start of the activity",
    )
    parser.add_argument(
        "--set-speed",
        type=float,
        default=get_default("set_speed"),
        metavar="KMH",
        help="Average speed in km/h used to compute missing timestamps",
    )
    parser.add_argument(
        "--start-time",
        metavar="TIME",
        help="Start time of the activity, as an ISO 8601 date/time (e.g. 2022-04-11T10:25:00Z) or 'now'",
    )
    parser.add_argument("--summary", action="store_true", help="Print a summary of the activity instead of its data")
    parser.add_argument("--trim", action="store_true", help="Remove the track points in --range")
    parser.add_argument("--verbatim", action="store_true", help="Don't discard or adjust any track point data")
    parser.add_argument("--version", action="store_true", help="Print the version and exit")
    parser.add_argument(
        "--xma-method",
        choices=[m.value for m in XmaMethod],
        default=get_default("xma_method"),
        help=f"Moving average method (default: {DEFAULTS['xma_method']})",
    )
    parser.add_argument(
        "--xma-metric",
        choices=[m.value for m in XmaMetric],
        default=get_default("xma_metric"),
        help=f"Metric to smooth with the moving average (default: {DEFAULTS['xma_metric']})",
    )
    parser.add_argument(
        "--xma-window",
        type=int,
        default=get_default("xma_window"),
        help="Moving average window size in points; must be odd (default: no smoothing)",
    )
    parser.add_argument(
        "--no-elevation-adjust",
        action="store_true",
        help="Don't adjust the elevation of points whose grade was changed",
    )
    return parser


def parse_range(text: str) -> tuple[int, int]:
    """Parse an 'A,B' point range."""
    try:
        start, end = (int(v) for v in text.split(","))
    except ValueError:
        raise ValueError(f"Invalid range: {text!r} (expected A,B)") from None
    if start < 1 or start >= end:
        raise ValueError(f"Invalid range: {text!r} (A must be at least 1 and less than B)")
    return start, end


def parse_output_filter(text: str) -> SensorMask:
    """Turn the --output-filter value into the mask of metrics to include."""
    try:
        excluded = int(text, 0)
    except ValueError:
        raise ValueError(f"Invalid output filter: {text!r}") from None
    return SensorMask(int(SensorMask.ALL) & ~excluded)


def processing_options(args: argparse.Namespace) -> ProcessingOptions:
    """Validate the command line options and build the processing options."""
    point_range = parse_range(args.range) if args.range else None
    if args.trim and point_range is None:
        raise ValueError("--trim requires --range")

    if args.xma_window and (args.xma_window < 0 or args.xma_window % 2 == 0):
        raise ValueError(f"Invalid moving average window: {args.xma_window} (must be an odd number)")

    set_speed = None
    if args.set_speed is not None:
        if args.set_speed <= 0:
            raise ValueError(f"Invalid speed: {args.set_speed}")
        set_speed = kph_to_mps(args.set_speed)

    start_time = None
    if args.start_time:
        start_time = time.time() if args.start_time == "now" else parse_iso_time(args.start_time)

    if args.max_grade is not None and args.min_grade is not None and args.min_grade > args.max_grade:
        raise ValueError("--min-grade can't be greater than --max-grade")

    return ProcessingOptions(
        activity_type=ACTIVITY_TYPES[args.activity_type] if args.activity_type else None,
        close_gap=args.close_gap,
        max_grade=args.max_grade,
        min_grade=args.min_grade,
        max_grade_change=args.max_grade_change,
        point_range=point_range,
        trim=args.trim,
        set_speed=set_speed,
        start_time=start_time,
        rel_time=bool(args.rel_time) or args.summary,
        xma_method=XmaMethod(args.xma_method),
        xma_metric=XmaMetric(args.xma_metric),
        xma_window=args.xma_window,
        adjust_elevation=not args.no_elevation_adjust,
        verbatim=args.verbatim,
        quiet=args.quiet,
    )


def output_options(args: argparse.Namespace, track: Track, argv: list[str]) -> OutputOptions:
    if args.output_format:
        output_format = OutputFormat(args.output_format)
    elif track.input_format == "fit" or track.input_format is None:
        output_format = OutputFormat.GPX
    else:
        output_format = OutputFormat(track.input_format)

    rel_time = TimestampFormat(args.rel_time) if args.rel_time else None
    if args.summary and rel_time is None:
        rel_time = TimestampFormat.SEC

    return OutputOptions(
        format=output_format,
        mask=parse_output_filter(args.output_filter),
        name=args.name,
        description=" ".join(argv),
        summary=args.summary,
        rel_time=rel_time,
    )


def main(argv: list[str] | None = None) -> None:
    config = load_config()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if args.version:
        print(f"gpx-tool {__version__} ({__version_date__}, {get_git_hash()})")
        return

    if not args.files:
        parser.error("at least one input file is required")

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s", stream=sys.stderr)

    if argv is None:
        argv = sys.argv[1:]

    track = Track()
    try:
        options = processing_options(args)
        for path in args.files:
            parse_file(path, track)
        process_track(track, options)
        out_options = output_options(args, track, argv)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.output_file:
        try:
            with open(args.output_file, "w") as f:
                write_output(track, out_options, f)
        except OSError as e:
            print(f"Error: Can't write output file {args.output_file}: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        write_output(track, out_options, sys.stdout)
