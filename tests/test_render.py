"""Tests for trace_timeline/render.py"""

import unittest
from datetime import datetime, timedelta

from trace_timeline.grid import OccupancyGrid, Resolution
from trace_timeline.models import LogEntry, TraceEvent
from trace_timeline.render import build_view, format_band_label, render_gantt, tooltip_line

T0 = datetime(2023, 5, 10, 10, 0, 0)


def _entry(ms=0, source="A", pf=1, category="Log", status="", message="m", op_id=0,
           duration=timedelta(0), line_id=1) -> LogEntry:
    time = T0 + timedelta(milliseconds=ms)
    trace = TraceEvent(line_id=line_id, time=time, category=category, app_domain=source,
                       program_flow_id=pf, op_id=op_id, status=status, duration=duration, message=message)
    return LogEntry(timestamp=time, source=source, message=message, trace=trace)


class TestLabels(unittest.TestCase):
    def test_band_label(self):
        self.assertEqual(format_band_label(datetime(2023, 1, 1, 10, 0, 1, 234000)), "10:00:01.2")
        self.assertEqual(format_band_label(datetime(2023, 1, 1, 9, 5, 0)), "09:05:00.0")

    def test_tooltip_line_for_end(self):
        entry = _entry(50, category="Web", status="End", op_id=7, duration=timedelta(seconds=5),
                       message="PUT /Root", line_id=3)
        self.assertEqual(tooltip_line(entry), "Pf:1 10:00:00.05000 3 Web Op:7 End 00:00:05.00000 PUT /Root")

    def test_tooltip_line_without_op_or_duration(self):
        entry = _entry(0, status="Start", duration=timedelta(seconds=5), message="x", line_id=4)
        self.assertEqual(tooltip_line(entry), "Pf:1 10:00:00.00000 4 Log  Start  x")


class TestBuildView(unittest.TestCase):
    def setUp(self):
        entries = [_entry(50, "A", 1), _entry(350, "A", 1, category="Web")]
        self.grid = OccupancyGrid.build(entries, ["A", "B"], [1, 2])
        self.view = build_view(self.grid)

    def test_headers_skip_pruned_sources(self):
        self.assertEqual(self.view["headers"], [{"source": "A", "span": 1}])

    def test_cells_follow_classification(self):
        css = [row["cells"][0]["css"] for row in self.view["rows"]]
        self.assertEqual(css, ["l", "e", "e", "w"])

    def test_only_visible_columns(self):
        self.assertTrue(all(len(row["cells"]) == 1 for row in self.view["rows"]))

    def test_label_once_per_band(self):
        entries = [_entry(0), _entry(2500)]
        view = build_view(OccupancyGrid.build(entries, ["A"], [1]))
        labels = [row["label"] for row in view["rows"] if row["label"]]
        self.assertEqual(labels, ["10:00:00.0", "10:00:01.0", "10:00:02.0"])
        bands = [row["band"] for row in view["rows"]]
        self.assertEqual(bands[:10], ["e"] * 10)
        self.assertEqual(bands[10:20], ["o"] * 10)
        self.assertEqual(bands[20:], ["e"] * 6)

    def test_high_resolution_labels_advance_tenth_seconds(self):
        entries = [_entry(0), _entry(250)]
        view = build_view(OccupancyGrid.build(entries, ["A"], [1], Resolution.HIGH))
        labels = [row["label"] for row in view["rows"] if row["label"]]
        self.assertEqual(labels, ["10:00:00.0", "10:00:00.1", "10:00:00.2"])


class TestRenderGantt(unittest.TestCase):
    def test_document_structure(self):
        entries = [_entry(50, "A", 1), _entry(350, "A", 1)]
        html = render_gantt(OccupancyGrid.build(entries, ["A", "B"], [1]))
        self.assertTrue(html.startswith("<!DOCTYPE html>"))
        self.assertIn('<td colspan="1">A</td>', html)
        self.assertNotIn(">B</td>", html)
        self.assertEqual(html.count('<tr class="'), 4)
        self.assertIn('<td class="headCol" rowspan="10">10:00:00.0</td>', html)
        self.assertEqual(html.count('<td class="e"/>'), 2)
        self.assertIn("</html>", html)

    def test_absent_cells_render_blank(self):
        entries = [_entry(0, "A", 1), _entry(300, "A", 2)]
        html = render_gantt(OccupancyGrid.build(entries, ["A"], [1, 2]))
        self.assertEqual(html.count("<td/>"), 6)

    def test_tooltip_is_escaped(self):
        entries = [_entry(0, message='say "hi" <b>')]
        html = render_gantt(OccupancyGrid.build(entries, ["A"], [1]))
        self.assertIn("title=", html)
        self.assertNotIn('"hi"', html)
        self.assertNotIn("<b>", html)
        self.assertIn("&lt;b&gt;", html)


if __name__ == "__main__":
    unittest.main()
