"""Copy operation durations from End events back onto their Start events."""

import logging
from typing import Sequence

from trace_timeline.models import STATUS_END, STATUS_START, LogEntry

logger = logging.getLogger(__name__)


def copy_durations_to_starts(entries: Sequence[LogEntry]) -> int:
    """Give every Start the duration of the first End with the same op id.

    Entries without a trace and op id 0 are ignored. Several Starts may
    bind to the same End. Returns the number of Starts that were bound.
    """
    first_end = {}
    for entry in entries:
        trace = entry.trace
        if trace is not None and trace.status == STATUS_END and trace.op_id:
            first_end.setdefault(trace.op_id, trace)

    bound = 0
    for entry in entries:
        trace = entry.trace
        if trace is None or trace.status != STATUS_START or not trace.op_id:
            continue
        end = first_end.get(trace.op_id)
        if end is not None:
            trace.duration = end.duration
            bound += 1

    logger.info("Correlated %d start event(s) with %d distinct end operation(s)", bound, len(first_end))
    return bound
