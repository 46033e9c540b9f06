"""Time-bucketed occupancy grid: rows are time buckets, columns are (source, flow).

Each cell is one of three states:

* ABSENT   - no activity in this column at this time and outside its span
* IDLE     - no entries, but between the column's first and last activity
* OCCUPIED - holds the entries that fall into the bucket
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Sequence

from trace_timeline.models import STATUS_START, LogEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 500_000
DEFAULT_MAX_CELLS = 20_000_000
ROWS_PER_BAND = 10


class EmptyGridError(ValueError):
    """No entries to place; the grid has no time range."""


class GridTooLargeError(ValueError):
    """The requested resolution would need more rows or cells than allowed."""


class Resolution(Enum):
    NORMAL = "normal"
    HIGH = "high"

    @property
    def bucket(self) -> timedelta:
        return timedelta(milliseconds=100 if self is Resolution.NORMAL else 10)

    @property
    def band_step(self) -> timedelta:
        """Clock advance per band of ROWS_PER_BAND rows."""
        return self.bucket * ROWS_PER_BAND

    def align(self, t0: datetime) -> datetime:
        start = t0.replace(microsecond=0)
        if self is Resolution.HIGH:
            start += timedelta(milliseconds=t0.microsecond // 100_000 * 100)
        return start


class CellState(Enum):
    ABSENT = "absent"
    IDLE = "idle"
    OCCUPIED = "occupied"


class CellClass(Enum):
    """Rendering class of a cell; values are the CSS class names."""
    ENQUEUED = "x1"
    SAVE_ACTIVITY = "x2"
    WEB = "w"
    LOG = "l"
    IDLE = "e"


@dataclass(frozen=True)
class GridCell:
    state: CellState
    entries: tuple[LogEntry, ...] = ()


ABSENT = GridCell(CellState.ABSENT)
IDLE = GridCell(CellState.IDLE)


@dataclass(frozen=True)
class CellMarkers:
    enqueue_category: str = "SecurityQueue"
    enqueued_suffix: str = "enqueued."
    save_activity_prefix: str = "EFCSecurityDataProvider: SaveSecurityActivity."
    web_category: str = "Web"


DEFAULT_MARKERS = CellMarkers()


# ---------------------------------------------------------------------------
# Classification rules, evaluated in order; first match wins
# ---------------------------------------------------------------------------


def _is_enqueued(entries: tuple[LogEntry, ...], markers: CellMarkers) -> bool:
    last = entries[-1].trace
    return (last is not None
            and last.category == markers.enqueue_category
            and last.message.endswith(markers.enqueued_suffix))


def _is_save_activity(entries: tuple[LogEntry, ...], markers: CellMarkers) -> bool:
    first, last = entries[0].trace, entries[-1].trace
    return (first is not None and last is not None and first is not last
            and last.message.startswith(markers.save_activity_prefix)
            and last.status == STATUS_START)


def _has_web(entries: tuple[LogEntry, ...], markers: CellMarkers) -> bool:
    return any(e.trace is not None and e.trace.category == markers.web_category for e in entries)


CELL_RULES = (
    (_is_enqueued, CellClass.ENQUEUED),
    (_is_save_activity, CellClass.SAVE_ACTIVITY),
    (_has_web, CellClass.WEB),
)


def classify_cell(cell: GridCell, markers: CellMarkers = DEFAULT_MARKERS) -> CellClass | None:
    """CellClass of an IDLE or OCCUPIED cell; None for ABSENT."""
    if cell.state is CellState.ABSENT:
        return None
    if cell.state is CellState.IDLE:
        return CellClass.IDLE
    for predicate, cell_class in CELL_RULES:
        if predicate(cell.entries, markers):
            return cell_class
    return CellClass.LOG


# ---------------------------------------------------------------------------
# Grid passes
# ---------------------------------------------------------------------------


def fill_spans(cells: list[list[GridCell]]) -> None:
    """Turn ABSENT cells between a column's first and last activity into IDLE."""
    if not cells:
        return
    for x in range(len(cells[0])):
        occupied = [y for y, row in enumerate(cells) if row[x].state is not CellState.ABSENT]
        if not occupied:
            continue
        for y in range(occupied[0] + 1, occupied[-1]):
            if cells[y][x].state is CellState.ABSENT:
                cells[y][x] = IDLE


def find_empty_columns(cells: list[list[GridCell]], col_count: int) -> list[bool]:
    return [all(row[x].state is CellState.ABSENT for row in cells) for x in range(col_count)]


def column_counts(empty_columns: list[bool], source_count: int, flow_count: int) -> list[int]:
    """Surviving column count per source block."""
    return [
        sum(1 for x in range(i * flow_count, (i + 1) * flow_count) if not empty_columns[x])
        for i in range(source_count)
    ]


class OccupancyGrid:
    def __init__(
        self,
        start: datetime,
        resolution: Resolution,
        sources: list[str],
        flow_ids: list[int],
        cells: list[list[GridCell]],
    ):
        self.start = start
        self.resolution = resolution
        self.sources = sources
        self.flow_ids = flow_ids
        self.cells = cells
        self.empty_columns = find_empty_columns(cells, self.col_count)
        self.column_counts = column_counts(self.empty_columns, len(sources), len(flow_ids))

    @property
    def row_count(self) -> int:
        return len(self.cells)

    @property
    def col_count(self) -> int:
        return len(self.sources) * len(self.flow_ids)

    @property
    def visible_columns(self) -> list[int]:
        return [x for x, empty in enumerate(self.empty_columns) if not empty]

    def row_time(self, y: int) -> datetime:
        return self.start + self.resolution.bucket * y

    @classmethod
    def build(
        cls,
        entries: Sequence[LogEntry],
        sources: Sequence[str],
        flow_ids: Sequence[int],
        resolution: Resolution = Resolution.NORMAL,
        max_rows: int = DEFAULT_MAX_ROWS,
        max_cells: int = DEFAULT_MAX_CELLS,
    ) -> "OccupancyGrid":
        """Place trace-bearing *entries* into buckets and run the fill pass.

        Raises EmptyGridError for an empty input and GridTooLargeError
        when the time range needs more than *max_rows* rows or the whole
        grid more than *max_cells* cells.
        """
        entries = [e for e in entries if e.trace is not None]
        if not entries:
            raise EmptyGridError("No trace entries to place on the grid")

        sources = list(sources)
        flow_ids = list(flow_ids)
        source_index = {s: i for i, s in enumerate(sources)}
        flow_index = {pf: i for i, pf in enumerate(flow_ids)}

        bucket = resolution.bucket
        start = resolution.align(min(e.timestamp for e in entries))
        row_count = (max(e.timestamp for e in entries) - start) // bucket + 1
        if row_count > max_rows:
            raise GridTooLargeError(
                f"{row_count} rows at {resolution.value} resolution exceed the limit of {max_rows}; "
                f"narrow the time window or lower the resolution"
            )

        flow_count = len(flow_ids)
        col_count = flow_count * len(sources)
        if row_count * col_count > max_cells:
            raise GridTooLargeError(
                f"{row_count} rows x {col_count} columns exceed the limit of {max_cells} cells; "
                f"narrow the time window or lower the resolution"
            )

        placed: dict[tuple[int, int], list[LogEntry]] = defaultdict(list)
        for entry in entries:
            try:
                x = flow_index[entry.trace.program_flow_id] + source_index[entry.source] * flow_count
            except KeyError as e:
                raise ValueError(f"Entry outside the grid columns: {e}") from None
            y = (entry.timestamp - start) // bucket
            placed[(y, x)].append(entry)

        cells = [[ABSENT] * col_count for _ in range(row_count)]
        for (y, x), bag in placed.items():
            cells[y][x] = GridCell(CellState.OCCUPIED, tuple(bag))
        fill_spans(cells)

        grid = cls(start, resolution, sources, flow_ids, cells)
        logger.info("Grid: %d row(s) x %d column(s), %d visible, %d occupied cell(s)",
                    grid.row_count, col_count, len(grid.visible_columns), len(placed))
        return grid
