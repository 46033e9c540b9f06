"""trace-timeline: reconstruct timelines and occupancy grids from trace logs."""

__version__ = "0.1.0"
