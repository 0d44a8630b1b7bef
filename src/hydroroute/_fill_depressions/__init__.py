from .core import (
    _depth_in_sink,
    _fill_depressions,
    depth_in_sink_for_grid,
    priority_flood_fill,
)

__all__ = [
    "_depth_in_sink",
    "_fill_depressions",
    "depth_in_sink_for_grid",
    "priority_flood_fill",
]
