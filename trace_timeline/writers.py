"""Flat tab-separated report writers and output layout."""

import logging
import os
import re
from datetime import datetime, timedelta
from typing import Sequence

from trace_timeline.models import STATUS_END, STATUS_START, LogEntry
from trace_timeline.timeline import format_seconds
from trace_timeline.trace_parser import format_duration

logger = logging.getLogger(__name__)

ALL_ENTRIES_FILE = "AllEntries.log"
ALL_TRACE_FILE = os.path.join("Trace", "AllTrace.log")
GANTT_FILE = "gantt-chart.html"

PLAIN_HEADER = ["LineId", "Timestamp", "ElapsedSeconds", "Message"]
TRACE_COLUMNS = ["TraceId", "Category", "Thread", "ProgramFlowId", "Op", "Status",
                 "Duration", "DurationSeconds", "Message"]

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\s]+')


def safe_name(name: str) -> str:
    """Make a source name usable as a single path component."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("._")
    return cleaned or "_"


def source_log_path(source: str) -> str:
    return os.path.join("Log", f"{safe_name(source)}.txt")


def flow_trace_path(source: str, program_flow_id: int) -> str:
    return os.path.join("Trace", safe_name(source), f"Pf{program_flow_id}.txt")


def timeline_path(name: str) -> str:
    return os.path.join("Timelines", f"{safe_name(name)}.txt")


def header_for(with_trace: bool, with_source: bool) -> list[str]:
    if not with_trace:
        return PLAIN_HEADER
    prefix = ["LineId", "Timestamp", "ElapsedSeconds", "dT"]
    if with_source:
        prefix.append("Source")
    return prefix + TRACE_COLUMNS


def format_timestamp(t: datetime) -> str:
    """``YYYY-MM-DD HH:MM:SS.fffff``"""
    return t.strftime("%Y-%m-%d %H:%M:%S.%f")[:-1]


def format_row(
    row_number: int,
    entry: LogEntry,
    first_time: datetime,
    dt: timedelta,
    with_trace: bool,
    with_source: bool,
) -> str:
    cells = [
        str(row_number),
        format_timestamp(entry.timestamp),
        format_seconds((entry.timestamp - first_time).total_seconds()),
    ]
    if not with_trace:
        cells.append(entry.message)
        return "\t".join(cells)

    cells.append(format_duration(dt))
    if with_source:
        cells.append(entry.source)

    t = entry.trace
    if t is None:
        cells.extend([""] * (len(TRACE_COLUMNS) - 1))
        cells.append(entry.message)
        return "\t".join(cells)

    timed = t.status in (STATUS_START, STATUS_END)
    cells.extend([
        str(t.line_id),
        t.category,
        str(t.thread_id),
        str(t.program_flow_id),
        f"Op:{t.op_id}" if t.op_id else "",
        t.status,
        format_duration(t.duration) if timed else "",
        format_seconds(t.duration.total_seconds()) if timed else "",
        t.message,
    ])
    return "\t".join(cells)


def format_entries(entries: Sequence[LogEntry], with_trace: bool, with_source: bool) -> str:
    lines = ["\t".join(header_for(with_trace, with_source))]
    if entries:
        first_time = entries[0].timestamp
        previous = None
        for number, entry in enumerate(entries, 1):
            dt = timedelta(0) if previous is None else entry.timestamp - previous.timestamp
            lines.append(format_row(number, entry, first_time, dt, with_trace, with_source))
            previous = entry
    return "\n".join(lines) + "\n"


def write_text(output_dir: str, rel_path: str, text: str) -> str:
    """Write *text* under *output_dir*, creating parent directories."""
    path = os.path.join(output_dir, rel_path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    logger.debug("Wrote %s", path)
    return path


def write_entries(
    output_dir: str,
    rel_path: str,
    entries: Sequence[LogEntry],
    with_trace: bool,
    with_source: bool,
) -> str:
    return write_text(output_dir, rel_path, format_entries(entries, with_trace, with_source))
