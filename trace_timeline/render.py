"""HTML rendering of the occupancy grid through a Jinja2 template."""

import os

from jinja2 import Environment, FileSystemLoader, select_autoescape

from trace_timeline.grid import ROWS_PER_BAND, CellMarkers, DEFAULT_MARKERS, GridCell, OccupancyGrid, classify_cell
from trace_timeline.models import STATUS_END, LogEntry
from trace_timeline.trace_parser import format_duration

_TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

_env = Environment(
    loader=FileSystemLoader(_TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
)


def format_band_label(t) -> str:
    """``HH:MM:SS.f`` clock label shown once per band."""
    return t.strftime("%H:%M:%S.") + str(t.microsecond // 100_000)


def tooltip_line(entry: LogEntry) -> str:
    t = entry.trace
    op = f"Op:{t.op_id}" if t.op_id else ""
    duration = format_duration(t.duration) if t.status == STATUS_END else ""
    clock = entry.timestamp.strftime("%H:%M:%S.%f")[:-1]
    return f"Pf:{t.program_flow_id} {clock} {t.line_id} {t.category} {op} {t.status} {duration} {t.message}"


def tooltip(cell: GridCell) -> str:
    return "\n".join(tooltip_line(e) for e in cell.entries if e.trace is not None)


def build_view(grid: OccupancyGrid, markers: CellMarkers = DEFAULT_MARKERS) -> dict:
    """Template context: source headers and per-row visible cells."""
    headers = [
        {"source": source, "span": span}
        for source, span in zip(grid.sources, grid.column_counts)
        if span > 0
    ]

    visible = grid.visible_columns
    rows = []
    for y, line in enumerate(grid.cells):
        label = format_band_label(grid.row_time(y)) if y % ROWS_PER_BAND == 0 else None
        cells = []
        for x in visible:
            cell = line[x]
            cell_class = classify_cell(cell, markers)
            cells.append({
                "css": cell_class.value if cell_class is not None else None,
                "tooltip": tooltip(cell),
            })
        rows.append({
            "band": "e" if (y // ROWS_PER_BAND) % 2 == 0 else "o",
            "label": label,
            "cells": cells,
        })

    return {"headers": headers, "rows": rows, "rows_per_band": ROWS_PER_BAND}


def render_gantt(grid: OccupancyGrid, markers: CellMarkers = DEFAULT_MARKERS) -> str:
    template = _env.get_template("gantt.html")
    return template.render(**build_view(grid, markers))
