"""Tests for trace_timeline/normalizer.py"""

import unittest
from datetime import datetime

from trace_timeline.models import LogEntry, LogLine
from trace_timeline.normalizer import normalize, resolve_message, select_window, to_entry
from trace_timeline.trace_parser import TraceFormatError

TRACE_MSG = "3\t2023-05-10 10:00:05.25000\tWeb\tA:/LM/W3SVC/1\tT:4\tPf:9\tOp:1\tStart\t\tGET /Root"


def _line(timestamp="2023-05-10T10:00:00.000Z", source="web1", message="short", full_message="full"):
    return LogLine(timestamp=timestamp, source=source, message=message, full_message=full_message,
                   origin="export.csv", line_number=7)


class TestResolveMessage(unittest.TestCase):
    def test_prefers_full_message(self):
        self.assertEqual(resolve_message(_line()), "full")

    def test_null_marker_uses_short_message(self):
        self.assertEqual(resolve_message(_line(full_message="null")), "short")

    def test_missing_full_message_uses_short_message(self):
        self.assertEqual(resolve_message(_line(full_message=None)), "short")

    def test_both_missing(self):
        self.assertEqual(resolve_message(_line(message=None, full_message=None)), "")


class TestToEntry(unittest.TestCase):
    def test_plain_line(self):
        entry = to_entry(_line(full_message="User logged in"))
        self.assertEqual(entry.timestamp, datetime(2023, 5, 10, 10, 0, 0))
        self.assertEqual(entry.source, "web1")
        self.assertEqual(entry.message, "User logged in")
        self.assertIsNone(entry.trace)
        self.assertFalse(entry.has_trace)

    def test_trace_line_takes_trace_time_and_source(self):
        entry = to_entry(_line(full_message=TRACE_MSG))
        self.assertIsNotNone(entry.trace)
        self.assertEqual(entry.timestamp, datetime(2023, 5, 10, 10, 0, 5, 250000))
        self.assertEqual(entry.timestamp, entry.trace.time)
        self.assertEqual(entry.trace.app_domain, "web1")
        self.assertEqual(entry.trace.program_flow_id, 9)

    def test_bad_outer_timestamp(self):
        self.assertIsNone(to_entry(_line(timestamp="not a time", full_message=TRACE_MSG)))

    def test_malformed_trace_reports_location(self):
        bad = TRACE_MSG.replace("T:4", "T:four")
        with self.assertRaises(TraceFormatError) as ctx:
            to_entry(_line(full_message=bad))
        self.assertIn("export.csv:7", str(ctx.exception))
        self.assertEqual(ctx.exception.line_id, "3")


class TestNormalize(unittest.TestCase):
    def test_drops_unparseable_timestamps(self):
        lines = [
            _line(timestamp="timestamp"),
            _line(full_message="a"),
            _line(timestamp="", full_message="b"),
            _line(full_message="c"),
        ]
        entries = list(normalize(lines))
        self.assertEqual([e.message for e in entries], ["a", "c"])

    def test_empty(self):
        self.assertEqual(list(normalize([])), [])


class TestSelectWindow(unittest.TestCase):
    def _entry(self, second: int, message: str = "") -> LogEntry:
        return LogEntry(timestamp=datetime(2023, 5, 10, 10, 0, second), source="s", message=message)

    def test_sorts_by_timestamp(self):
        entries = [self._entry(3), self._entry(1), self._entry(2)]
        result = select_window(entries)
        self.assertEqual([e.timestamp.second for e in result], [1, 2, 3])

    def test_start_inclusive_end_exclusive(self):
        entries = [self._entry(s) for s in range(6)]
        result = select_window(entries, datetime(2023, 5, 10, 10, 0, 2), datetime(2023, 5, 10, 10, 0, 4))
        self.assertEqual([e.timestamp.second for e in result], [2, 3])

    def test_stable_for_equal_timestamps(self):
        entries = [self._entry(1, "first"), self._entry(0), self._entry(1, "second")]
        result = select_window(entries)
        self.assertEqual([e.message for e in result], ["", "first", "second"])


if __name__ == "__main__":
    unittest.main()
