from .flow_direction import _flow_direction, d8_direction, flow_direction_for_grid

__all__ = [
    "_flow_direction",
    "d8_direction",
    "flow_direction_for_grid",
]
