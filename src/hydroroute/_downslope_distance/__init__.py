from .core import _downslope_distance, distance_to_stream, downslope_distance_for_grid

__all__ = [
    "_downslope_distance",
    "distance_to_stream",
    "downslope_distance_for_grid",
]
