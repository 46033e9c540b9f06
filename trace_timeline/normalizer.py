"""Merge reader output with embedded trace events into LogEntry objects."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Generator, Iterable

from trace_timeline.models import LogEntry, LogLine
from trace_timeline.trace_parser import TraceFormatError, try_parse_timestamp, try_parse_trace_line

logger = logging.getLogger(__name__)

NULL_MARKER = "null"


def resolve_message(line: LogLine) -> str:
    """Full message unless it is missing or the literal ``null`` marker."""
    if line.full_message is None or line.full_message == NULL_MARKER:
        return line.message or ""
    return line.full_message


def to_entry(line: LogLine) -> LogEntry | None:
    """Build the LogEntry for one line. None when the outer timestamp is bad.

    Raises TraceFormatError (with the input location) for malformed trace records.
    """
    timestamp = try_parse_timestamp(line.timestamp)
    if timestamp is None:
        return None

    message = resolve_message(line)
    try:
        trace = try_parse_trace_line(message)
    except TraceFormatError as e:
        raise TraceFormatError(f"{line.origin}:{line.line_number}: {e}", e.line_id) from e

    if trace is None:
        return LogEntry(timestamp=timestamp, source=line.source, message=message)

    trace = replace(trace, app_domain=line.source)
    return LogEntry(timestamp=trace.time, source=line.source, message=message, trace=trace)


def normalize(lines: Iterable[LogLine]) -> Generator[LogEntry, None, None]:
    """Yield a LogEntry per line, dropping lines whose timestamp does not parse."""
    dropped = 0
    for line in lines:
        entry = to_entry(line)
        if entry is None:
            dropped += 1
            logger.debug("%s:%d: unparseable timestamp %r, line dropped",
                         line.origin, line.line_number, line.timestamp)
            continue
        yield entry
    if dropped:
        logger.info("Dropped %d line(s) with unparseable timestamps", dropped)


def select_window(
    entries: Iterable[LogEntry],
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[LogEntry]:
    """Keep entries in [start, end) and sort them by timestamp (stable)."""
    selected = [
        e for e in entries
        if (start is None or e.timestamp >= start) and (end is None or e.timestamp < end)
    ]
    selected.sort(key=lambda e: e.timestamp)
    return selected
