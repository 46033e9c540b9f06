"""Event and entry dataclasses shared by every stage of the run."""

from dataclasses import dataclass
from datetime import datetime, timedelta

STATUS_START = "Start"
STATUS_END = "End"
STATUS_UNTERMINATED = "UNTERMINATED"
STATUS_ERROR = "ERROR"


@dataclass
class TraceEvent:
    line_id: int
    time: datetime          # naive, UTC
    category: str
    app_domain: str
    thread_id: int = 0
    program_flow_id: int = 0
    op_id: int = 0          # 0 = not an operation boundary
    status: str = ""        # "", Start, End, UNTERMINATED, ERROR
    duration: timedelta = timedelta(0)
    message: str = ""
    block_start: bool = False


@dataclass
class LogLine:
    timestamp: str
    source: str
    message: str | None = None
    full_message: str | None = None
    origin: str = ""        # input path, for error locations
    line_number: int = 0


@dataclass
class LogEntry:
    timestamp: datetime
    source: str
    message: str
    trace: TraceEvent | None = None

    @property
    def has_trace(self) -> bool:
        return self.trace is not None
