"""One-shot batch run: read, normalize, correlate, and write every report."""

import logging
from dataclasses import dataclass, field

from trace_timeline.config import Config
from trace_timeline.correlator import copy_durations_to_starts
from trace_timeline.grid import EmptyGridError, GridTooLargeError, OccupancyGrid
from trace_timeline.models import LogEntry
from trace_timeline.normalizer import normalize, select_window
from trace_timeline.readers import read_log_lines
from trace_timeline.render import render_gantt
from trace_timeline.writers import (
    ALL_ENTRIES_FILE,
    ALL_TRACE_FILE,
    GANTT_FILE,
    flow_trace_path,
    source_log_path,
    timeline_path,
    write_entries,
    write_text,
)

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    entries: int = 0
    trace_entries: int = 0
    correlated: int = 0
    sources: list[str] = field(default_factory=list)
    flow_ids: list[int] = field(default_factory=list)
    timelines: dict[str, int] = field(default_factory=dict)   # name -> emitted rows
    gantt_written: bool = False


def distinct(values):
    """Distinct values in first-seen order."""
    return list(dict.fromkeys(values))


def load_entries(config: Config) -> list[LogEntry]:
    """Read, normalize, window and sort the whole input."""
    lines = read_log_lines(config.mode, config.input_path)
    entries = select_window(normalize(lines), config.start, config.end)
    logger.info("Loaded %d entries in window [%s, %s)",
                len(entries), config.start or "-inf", config.end or "+inf")
    return entries


def write_flat_reports(output_dir: str, entries: list[LogEntry], trace: list[LogEntry], sources: list[str]) -> None:
    write_entries(output_dir, ALL_ENTRIES_FILE, entries, with_trace=True, with_source=True)
    write_entries(output_dir, ALL_TRACE_FILE, trace, with_trace=True, with_source=True)

    plain = [e for e in entries if not e.has_trace]
    for source in sources:
        write_entries(output_dir, source_log_path(source),
                      [e for e in plain if e.source == source], with_trace=False, with_source=False)

    for source in sources:
        from_source = [e for e in trace if e.source == source]
        for pf in sorted(distinct(e.trace.program_flow_id for e in from_source)):
            flow = [e for e in from_source if e.trace.program_flow_id == pf]
            write_entries(output_dir, flow_trace_path(source, pf), flow, with_trace=True, with_source=False)


def run(config: Config) -> RunSummary:
    entries = load_entries(config)
    trace = [e for e in entries if e.has_trace]

    summary = RunSummary(entries=len(entries), trace_entries=len(trace))
    summary.correlated = copy_durations_to_starts(trace)
    summary.sources = distinct(e.source for e in entries)
    summary.flow_ids = distinct(e.trace.program_flow_id for e in trace)

    write_flat_reports(config.output_dir, entries, trace, summary.sources)

    events = [e.trace for e in trace]
    for spec in config.timelines:
        timeline = spec.build()
        timeline.parse(events)
        write_text(config.output_dir, timeline_path(spec.name), timeline.format_report())
        summary.timelines[spec.name] = len(timeline.report_rows())

    try:
        grid = OccupancyGrid.build(trace, summary.sources, summary.flow_ids,
                                   config.resolution, config.grid_max_rows, config.grid_max_cells)
    except (EmptyGridError, GridTooLargeError) as e:
        logger.warning("Gantt chart skipped: %s", e)
    else:
        write_text(config.output_dir, GANTT_FILE, render_gantt(grid, config.markers))
        summary.gantt_written = True

    logger.info("Run complete: %d entries, %d trace, %d correlated, %d source(s), %d flow(s)",
                summary.entries, summary.trace_entries, summary.correlated,
                len(summary.sources), len(summary.flow_ids))
    return summary
