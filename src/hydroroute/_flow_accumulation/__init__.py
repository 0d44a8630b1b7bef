from .core import (
    AccumulationOptions,
    _flow_accumulation,
    accumulate_flow,
    clip_display_max,
    convert_accumulation,
    count_inflowing_neighbors,
    d8_flow_accumulation,
)

__all__ = [
    "AccumulationOptions",
    "_flow_accumulation",
    "accumulate_flow",
    "clip_display_max",
    "convert_accumulation",
    "count_inflowing_neighbors",
    "d8_flow_accumulation",
]
