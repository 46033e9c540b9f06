"""Configuration loading from CLI args, env vars, and optional YAML file."""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

import yaml

from trace_timeline.grid import DEFAULT_MAX_CELLS, DEFAULT_MAX_ROWS, CellMarkers, Resolution
from trace_timeline.readers import InputMode
from trace_timeline.timeline import KEY_RULES, Step, StepTimeline, label_from_pattern
from trace_timeline.trace_parser import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepSpec:
    name: str
    prefix: str
    status: str | None = None
    suffix: str | None = None
    label_pattern: str | None = None   # regex; group 1 labels the row


@dataclass(frozen=True)
class TimelineSpec:
    name: str
    steps: tuple[StepSpec, ...]
    key: str = "program_flow"          # a KEY_RULES name
    entry_slots: tuple[int, ...] | None = None
    require_label: bool = False

    def build(self) -> StepTimeline:
        steps = [
            Step(
                name=s.name,
                prefix=s.prefix,
                status=s.status,
                suffix=s.suffix,
                on_match=label_from_pattern(s.label_pattern) if s.label_pattern else None,
            )
            for s in self.steps
        ]
        return StepTimeline(
            self.name,
            steps,
            key_rule=KEY_RULES[self.key],
            entry_slots=self.entry_slots,
            require_label=self.require_label,
        )


@dataclass(frozen=True)
class Config:
    mode: InputMode
    input_path: str
    output_dir: str
    start: datetime | None = None
    end: datetime | None = None
    resolution: Resolution = Resolution.NORMAL
    grid_max_rows: int = DEFAULT_MAX_ROWS
    grid_max_cells: int = DEFAULT_MAX_CELLS
    markers: CellMarkers = field(default_factory=CellMarkers)
    timelines: tuple[TimelineSpec, ...] = ()


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
        return data
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}


def _parse_enum(enum_cls, value, what: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {what} {value!r} (expected one of: {choices})") from None


def _parse_time(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        # YAML turns unquoted timestamps into datetimes
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return parse_timestamp(str(value))


def _parse_markers(raw: dict) -> CellMarkers:
    try:
        return CellMarkers(**raw)
    except TypeError as e:
        raise ValueError(f"Invalid grid markers: {e}") from None


def _parse_step(raw: dict, timeline: str) -> StepSpec:
    if "prefix" not in raw:
        raise ValueError(f"Timeline {timeline!r}: every step needs a 'prefix'")
    return StepSpec(
        name=raw.get("name") or raw["prefix"],
        prefix=raw["prefix"],
        status=raw.get("status"),
        suffix=raw.get("suffix"),
        label_pattern=raw.get("label_pattern"),
    )


def parse_timelines(raw_timelines: list[dict]) -> tuple[TimelineSpec, ...]:
    """Build TimelineSpecs from the ``timelines`` YAML section."""
    specs = []
    for raw in raw_timelines or []:
        name = raw.get("name")
        if not name:
            raise ValueError("Every timeline needs a 'name'")
        key = raw.get("key", "program_flow")
        if key not in KEY_RULES:
            raise ValueError(f"Timeline {name!r}: unknown key rule {key!r}")
        steps = tuple(_parse_step(s, name) for s in raw.get("steps", []))
        entry_slots = raw.get("entry_slots")
        spec = TimelineSpec(
            name=name,
            steps=steps,
            key=key,
            entry_slots=tuple(entry_slots) if entry_slots is not None else None,
            require_label=bool(raw.get("require_label", False)),
        )
        spec.build()  # validates steps and entry slots
        specs.append(spec)
    return tuple(specs)


def load_config(cli_args, yaml_data: dict) -> Config:
    """Build Config from CLI args, env vars, and parsed YAML data.

    CLI values win over YAML values, which win over defaults.
    """
    window = yaml_data.get("window") or {}
    grid = yaml_data.get("grid") or {}

    mode = getattr(cli_args, "mode", None) or yaml_data.get("mode")
    if not mode:
        raise ValueError("No input mode given")
    resolution = getattr(cli_args, "resolution", None) or yaml_data.get("resolution", "normal")
    start = getattr(cli_args, "start", None) or window.get("start")
    end = getattr(cli_args, "end", None) or window.get("end")

    config = Config(
        mode=_parse_enum(InputMode, mode, "input mode"),
        input_path=cli_args.input,
        output_dir=cli_args.output,
        start=_parse_time(start),
        end=_parse_time(end),
        resolution=_parse_enum(Resolution, resolution, "resolution"),
        grid_max_rows=int(os.environ.get("TRACE_GRID_MAX_ROWS", grid.get("max_rows", DEFAULT_MAX_ROWS))),
        grid_max_cells=int(os.environ.get("TRACE_GRID_MAX_CELLS", grid.get("max_cells", DEFAULT_MAX_CELLS))),
        markers=_parse_markers(grid.get("markers") or {}),
        timelines=parse_timelines(yaml_data.get("timelines", [])),
    )
    if config.start and config.end and config.start >= config.end:
        raise ValueError(f"Empty time window: {config.start} >= {config.end}")
    return config
