#!/usr/bin/env python3
"""trace-timeline: command line entry point."""

import argparse
import logging
import sys

from trace_timeline.config import load_config, load_yaml_config
from trace_timeline.grid import Resolution
from trace_timeline.pipeline import run
from trace_timeline.readers import InputMode
from trace_timeline.trace_parser import TraceFormatError

logger = logging.getLogger("trace_timeline")


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trace-timeline",
        description="Reconstruct timelines and an occupancy grid from trace logs.",
    )
    parser.add_argument(
        "mode", choices=[m.value for m in InputMode],
        help="Input format",
    )
    parser.add_argument("input", help="Input log file")
    parser.add_argument("output", help="Output directory for reports")
    parser.add_argument(
        "--start", default=None,
        help="Inclusive window start (YYYY-MM-DD[ HH:MM:SS[.ffffff]])",
    )
    parser.add_argument(
        "--end", default=None,
        help="Exclusive window end (YYYY-MM-DD[ HH:MM:SS[.ffffff]])",
    )
    parser.add_argument(
        "--resolution", choices=[r.value for r in Resolution], default=None,
        help="Gantt bucket width: normal=100ms, high=10ms (default: normal)",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to YAML config file (window, grid markers, timelines)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Debug logging",
    )
    return parser


def main(argv=None) -> int:
    args = build_cli_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [TRACE] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args, load_yaml_config(args.config))
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        return 1

    logger.info("Mode=%s input=%s output=%s resolution=%s timelines=%d",
                config.mode.value, config.input_path, config.output_dir,
                config.resolution.value, len(config.timelines))

    try:
        run(config)
    except TraceFormatError as e:
        logger.error("Malformed trace record: %s", e)
        return 1
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
