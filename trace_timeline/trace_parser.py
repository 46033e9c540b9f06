"""Tab-delimited trace record parser.

Wire form (one record per line)::

    >11929  2016-04-07 01:59:57.42589  Index  A:/LM..231  T:46  Pf:12  Op:2743  End  00:00:00.000000  IAQ: done.

Fields, in order: line id (optional ``>`` block-start marker), time,
category, app domain, thread, program flow, operation id, status,
duration, message. The message keeps any tabs it contains.
"""

import re
from datetime import datetime, timedelta, timezone

from trace_timeline.models import TraceEvent

FIELD_COUNT = 9  # positional fields before the message

SEPARATOR_PREFIX = "--"
DIAGNOSTIC_PREFIX = "maxpdiff:"
BLOCK_START_MARKER = ">"

_TIMESTAMP_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})"
    r"(?:[T ](?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2})(?:[.,](?P<fraction>\d+))?)?)?"
    r"\s*(?P<tz>Z|[+-]\d{2}:?\d{2})?$"
)

_DURATION_RE = re.compile(
    r"^(?P<sign>-)?(?:(?P<days>\d+)\.)?(?P<hours>\d+):(?P<minutes>\d{2})"
    r"(?::(?P<seconds>\d{2})(?:\.(?P<fraction>\d+))?)?$"
)


class TraceFormatError(ValueError):
    """A trace-shaped record holds a field that cannot be converted."""

    def __init__(self, message: str, line_id: str = ""):
        super().__init__(message)
        self.line_id = line_id


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def _fraction_to_microseconds(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction[:6].ljust(6, "0"))


def parse_timestamp(text: str) -> datetime:
    """Parse a fixed-form timestamp as naive UTC. Raises ValueError."""
    m = _TIMESTAMP_RE.match(text.strip())
    if not m:
        raise ValueError(f"Invalid timestamp: {text!r}")

    date = datetime.strptime(m.group("date"), "%Y-%m-%d")
    result = date.replace(
        hour=int(m.group("hour") or 0),
        minute=int(m.group("minute") or 0),
        second=int(m.group("second") or 0),
        microsecond=_fraction_to_microseconds(m.group("fraction")),
    )

    tz = m.group("tz")
    if tz and tz != "Z":
        offset = datetime.strptime(tz.replace(":", ""), "%z").utcoffset()
        result = (result.replace(tzinfo=timezone(offset))
                  .astimezone(timezone.utc)
                  .replace(tzinfo=None))
    return result


def try_parse_timestamp(text: str | None) -> datetime | None:
    """Like parse_timestamp, but returns None instead of raising."""
    if not text:
        return None
    try:
        return parse_timestamp(text)
    except ValueError:
        return None


def parse_duration(text: str) -> timedelta:
    """Parse a ``[-][d.]hh:mm[:ss[.fraction]]`` span. Raises ValueError."""
    m = _DURATION_RE.match(text.strip())
    if not m:
        raise ValueError(f"Invalid duration: {text!r}")
    span = timedelta(
        days=int(m.group("days") or 0),
        hours=int(m.group("hours")),
        minutes=int(m.group("minutes")),
        seconds=int(m.group("seconds") or 0),
        microseconds=_fraction_to_microseconds(m.group("fraction")),
    )
    return -span if m.group("sign") else span


def format_duration(span: timedelta, digits: int = 5) -> str:
    """Format as ``hh:mm:ss.fffff`` (fraction truncated to *digits*)."""
    sign = "-" if span < timedelta(0) else ""
    span = abs(span)
    total_seconds = span.days * 86400 + span.seconds
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    fraction = f"{span.microseconds:06d}"[:digits]
    return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}.{fraction}"


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _strip_prefix(src: str, prefix: str) -> str:
    return src[len(prefix):] if src.startswith(prefix) else src


def _parse_int(src: str, prefix: str, name: str, line_id: str) -> int:
    src = _strip_prefix(src, prefix)
    if not src:
        return 0
    try:
        return int(src)
    except ValueError:
        raise TraceFormatError(f"Invalid {name} {src!r} in trace line {line_id}", line_id) from None


def _parse_line_id(src: str) -> int:
    return _parse_int(src, BLOCK_START_MARKER, "line id", src)


def _parse_time(src: str, line_id: str) -> datetime:
    try:
        return parse_timestamp(src)
    except ValueError:
        raise TraceFormatError(f"Invalid time {src!r} in trace line {line_id}", line_id) from None


def _parse_duration_field(src: str, line_id: str) -> timedelta:
    if not src:
        return timedelta(0)
    try:
        return parse_duration(src)
    except ValueError:
        raise TraceFormatError(f"Invalid duration {src!r} in trace line {line_id}", line_id) from None


def is_non_event(line: str) -> bool:
    """True for separator banners and known diagnostic lines."""
    return line.startswith(SEPARATOR_PREFIX) or line[:len(DIAGNOSTIC_PREFIX)].lower() == DIAGNOSTIC_PREFIX


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse_trace_line(line: str) -> TraceEvent | None:
    """Parse one record. Returns None for recognized non-events.

    Raises TraceFormatError when a present field cannot be converted.
    """
    if not line:
        return None
    if is_non_event(line):
        return None

    data = line.split("\t")
    if len(data) < FIELD_COUNT:
        return None

    raw_id = data[0]
    return TraceEvent(
        block_start=raw_id.startswith(BLOCK_START_MARKER),
        line_id=_parse_line_id(raw_id),
        time=_parse_time(data[1], raw_id),
        category=data[2],
        app_domain=_strip_prefix(data[3], "A:"),
        thread_id=_parse_int(data[4], "T:", "thread id", raw_id),
        program_flow_id=_parse_int(data[5], "Pf:", "program flow id", raw_id),
        op_id=_parse_int(data[6], "Op:", "operation id", raw_id),
        status=data[7],
        duration=_parse_duration_field(data[8], raw_id),
        message="\t".join(data[FIELD_COUNT:]),
    )


def starts_with_line_id(line: str | None) -> bool:
    """True when the first character after an optional ``>`` is a decimal digit."""
    if not line:
        return False
    head = line[1:] if line.startswith(BLOCK_START_MARKER) else line
    return bool(head) and head[0].isdecimal()


def try_parse_trace_line(line: str | None) -> TraceEvent | None:
    """Parse only lines that look like trace records (digit first)."""
    if not starts_with_line_id(line):
        return None
    return parse_trace_line(line)


def format_trace_line(event: TraceEvent) -> str:
    """Encode a TraceEvent into the tab-delimited wire form."""
    marker = BLOCK_START_MARKER if event.block_start else ""
    fields = [
        f"{marker}{event.line_id}",
        event.time.strftime("%Y-%m-%d %H:%M:%S.%f"),
        event.category,
        f"A:{event.app_domain}",
        f"T:{event.thread_id}",
        f"Pf:{event.program_flow_id}",
        f"Op:{event.op_id}" if event.op_id else "",
        event.status,
        format_duration(event.duration, digits=6) if event.duration else "",
        event.message,
    ]
    return "\t".join(fields)
