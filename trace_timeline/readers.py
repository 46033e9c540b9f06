"""Generator-based readers for the three supported input formats."""

import csv
import logging
from enum import Enum
from typing import Callable, Generator

from trace_timeline.models import LogLine
from trace_timeline.trace_parser import (
    BLOCK_START_MARKER,
    FIELD_COUNT,
    TraceFormatError,
    is_non_event,
    starts_with_line_id,
    try_parse_timestamp,
)

logger = logging.getLogger(__name__)

LOCAL_SOURCE = "local"
DEFAULT_TRACE_SOURCE = "trace"


class InputMode(Enum):
    GRAYLOG_CSV = "graylog-csv"
    LOCAL_LOG = "local-log"
    DETAILED_TRACE = "detailed-trace"


def read_graylog_csv(path: str) -> Generator[LogLine, None, None]:
    """Yield one LogLine per quoted CSV record.

    The four fields map to timestamp, source, short message, full message.
    """
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.reader(f)
        for row in reader:
            if len(row) < 4:
                logger.debug("%s:%d: skipping record with %d field(s)", path, reader.line_num, len(row))
                continue
            yield LogLine(
                timestamp=row[0],
                source=row[1],
                message=row[2],
                full_message=row[3],
                origin=path,
                line_number=reader.line_num,
            )


def _split_local_line(line: str) -> tuple[str, str] | None:
    """Return (timestamp, message) when *line* starts a new local log entry."""
    p = line.find("[")
    if p <= 0:
        return None
    date_str = line[:p - 1]
    if try_parse_timestamp(date_str) is None:
        return None

    message = line[p:]
    close = line.find("]", p)
    if close > 0:
        message = line[close + 2:]
    return date_str, message


def read_local_log(path: str) -> Generator[LogLine, None, None]:
    """Yield bracket-tagged entries, folding continuation lines into the message."""
    current = None
    with open(path, "r", encoding="utf-8-sig") as f:
        for line_number, line in enumerate(f, 1):
            line = line.rstrip("\r\n")
            head = _split_local_line(line)
            if head is not None:
                if current is not None:
                    yield current
                timestamp, message = head
                current = LogLine(
                    timestamp=timestamp,
                    source=LOCAL_SOURCE,
                    full_message=message,
                    origin=path,
                    line_number=line_number,
                )
            elif current is not None:
                current.full_message += "\n" + line
            else:
                logger.debug("%s:%d: continuation line before first entry skipped", path, line_number)

    if current is not None:
        yield current


def read_detailed_trace(path: str) -> Generator[LogLine, None, None]:
    """Yield one LogLine per trace record of a detailed trace dump.

    Raises TraceFormatError (with the input location) when a trace record
    carries a time that does not parse.
    """
    with open(path, "r", encoding="utf-8-sig") as f:
        for line_number, line in enumerate(f, 1):
            line = line.rstrip("\r\n")
            if not line or is_non_event(line):
                continue
            if line.startswith(BLOCK_START_MARKER):
                line = line[1:]

            fields = line.split("\t")
            if len(fields) < 4:
                logger.debug("%s:%d: not a trace record, skipped", path, line_number)
                continue
            if (len(fields) >= FIELD_COUNT and starts_with_line_id(line)
                    and try_parse_timestamp(fields[1]) is None):
                raise TraceFormatError(
                    f"{path}:{line_number}: Invalid time {fields[1]!r} in trace line {fields[0]}", fields[0])

            app_domain = fields[3][2:] if fields[3].startswith("A:") else fields[3]
            yield LogLine(
                timestamp=fields[1],
                source=app_domain or DEFAULT_TRACE_SOURCE,
                full_message=line,
                origin=path,
                line_number=line_number,
            )


READERS: dict[InputMode, Callable[[str], Generator[LogLine, None, None]]] = {
    InputMode.GRAYLOG_CSV: read_graylog_csv,
    InputMode.LOCAL_LOG: read_local_log,
    InputMode.DETAILED_TRACE: read_detailed_trace,
}


def read_log_lines(mode: InputMode, path: str) -> Generator[LogLine, None, None]:
    """Dispatch to the reader for *mode*."""
    logger.info("Reading %s input from %s", mode.value, path)
    yield from READERS[mode](path)
