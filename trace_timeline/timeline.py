"""Named-step timelines: per correlation key, elapsed time between ordered steps.

A timeline is an ordered table of steps. Each trace event is matched
against the steps in order and the first step whose prefix, suffix and
status all match records the event's elapsed time in that step's slot of
the event's row. Rows are keyed by a pluggable key rule.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from trace_timeline.models import TraceEvent

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_SLOTS = (0, 4, 5)
AVERAGE_ROW_ID = "Average"


@dataclass
class TimelineRow:
    key: int | str
    slots: list[float]
    label: str | None = None

    @property
    def display_id(self) -> str:
        return f"{self.key}-{self.label}" if self.label is not None else str(self.key)


@dataclass
class Step:
    name: str
    prefix: str
    status: str | None = None
    suffix: str | None = None
    on_match: Callable[[TraceEvent, TimelineRow], None] | None = field(default=None, repr=False)

    def matches(self, event: TraceEvent) -> bool:
        if not event.message.startswith(self.prefix):
            return False
        if self.suffix and not event.message.rstrip().endswith(self.suffix):
            return False
        if self.status and event.status != self.status:
            return False
        return True


KeyRule = Callable[[TraceEvent, Step], "int | str | None"]


# ---------------------------------------------------------------------------
# Key rules and enrichment callbacks
# ---------------------------------------------------------------------------


def program_flow_key(event: TraceEvent, step: Step) -> int:
    """Row key = the event's own program flow id."""
    return event.program_flow_id


def message_id_key(event: TraceEvent, step: Step) -> str | None:
    """Row key = the token after the step prefix, e.g. ``12-3`` -> ``012-3``."""
    src = event.message[len(step.prefix):]
    p = src.find(" ")
    if p > 0:
        src = src[:p]
    if not src:
        return None
    p = src.find("-")
    if p in (1, 2):
        src = "0" * (3 - p) + src
    return src


KEY_RULES: dict[str, KeyRule] = {
    "program_flow": program_flow_key,
    "message_id": message_id_key,
}


def label_from_pattern(pattern: str) -> Callable[[TraceEvent, TimelineRow], None]:
    """Build an on_match callback that labels the row with the regex's first group."""
    regex = re.compile(pattern)

    def _label(event: TraceEvent, row: TimelineRow) -> None:
        m = regex.search(event.message)
        if m:
            row.label = m.group(1) if regex.groups else m.group(0)

    return _label


# ---------------------------------------------------------------------------
# Slot arithmetic
# ---------------------------------------------------------------------------


def fill_forward(slots: list[float]) -> list[float]:
    """Unset (0) slots after the first take the previous slot's value."""
    filled = list(slots)
    for i in range(1, len(filled)):
        if filled[i] == 0.0:
            filled[i] = filled[i - 1]
    return filled


def step_deltas(slots: list[float]) -> list[float]:
    """Time spent in each step after the first: slot[i] - slot[i - 1]."""
    return [slots[i] - slots[i - 1] for i in range(1, len(slots))]


def natural_key(key: int | str) -> tuple:
    """Sort key ordering ``7 < 12`` and ``002-5 < 010-1`` numerically."""
    if isinstance(key, int):
        return (key,)
    numbers = re.findall(r"\d+", key)
    return tuple(int(n) for n in numbers) if numbers else (float("inf"), key)


def format_seconds(value: float) -> str:
    text = f"{value:.5f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class StepTimeline:
    def __init__(
        self,
        name: str,
        steps: list[Step],
        key_rule: KeyRule = program_flow_key,
        entry_slots: Iterable[int] | None = None,
        require_label: bool = False,
    ):
        if not steps:
            raise ValueError(f"Timeline {name!r} has no steps")
        if entry_slots is None:
            entry_slots = DEFAULT_ENTRY_SLOTS if len(steps) > max(DEFAULT_ENTRY_SLOTS) else (0,)
        entry_slots = tuple(entry_slots)
        if not entry_slots or any(not 0 <= i < len(steps) for i in entry_slots):
            raise ValueError(f"Timeline {name!r}: entry slots {entry_slots} out of range")

        self.name = name
        self.steps = steps
        self.key_rule = key_rule
        self.entry_slots = entry_slots
        self.require_label = require_label
        self.rows: dict[int | str, TimelineRow] = {}
        self._t0: datetime | None = None

    def _ensure_row(self, key: int | str) -> TimelineRow:
        row = self.rows.get(key)
        if row is None:
            row = TimelineRow(key=key, slots=[0.0] * len(self.steps))
            self.rows[key] = row
        return row

    def match(self, event: TraceEvent) -> int | None:
        """Record *event* in the first matching step. Returns the slot index."""
        if self._t0 is None:
            self._t0 = event.time
        for i, step in enumerate(self.steps):
            if not step.matches(event):
                continue
            key = self.key_rule(event, step)
            if key is None:
                continue
            row = self._ensure_row(key)
            if step.on_match is not None:
                step.on_match(event, row)
            row.slots[i] = (event.time - self._t0).total_seconds()
            return i
        return None

    def parse(self, events: Iterable[TraceEvent]) -> int:
        """Match every event in order. Returns the number of matched events."""
        matched = 0
        for event in events:
            if self.match(event) is not None:
                matched += 1
        logger.info("Timeline %s: %d matched event(s), %d row(s)", self.name, matched, len(self.rows))
        return matched

    def report_rows(self) -> list[TimelineRow]:
        """Rows to emit, sorted by numeric key; unlabelled rows dropped when required."""
        rows = [r for r in self.rows.values() if r.label is not None or not self.require_label]
        return sorted(rows, key=lambda r: natural_key(r.key))

    def start_of(self, row: TimelineRow) -> float:
        return max(row.slots[i] for i in self.entry_slots)

    def format_report(self) -> str:
        """Tab-separated report: header, average row, one row per key."""
        rows = self.report_rows()
        header = ["Id", "Start"] + [s.name for s in self.steps]

        data = []
        for row in rows:
            filled = fill_forward(row.slots)
            data.append((row, filled, step_deltas(filled)))

        averages = []
        for col in range(len(self.steps) - 1):
            values = [deltas[col] for _, _, deltas in data]
            averages.append(format_seconds(sum(values) / len(values)) if values else "")

        lines = ["\t".join(header), "\t".join([AVERAGE_ROW_ID, "", ""] + averages)]
        for row, filled, deltas in data:
            cells = [row.display_id, format_seconds(self.start_of(row)), format_seconds(filled[0])]
            cells.extend(format_seconds(d) for d in deltas)
            lines.append("\t".join(cells))
        return "\n".join(lines) + "\n"
