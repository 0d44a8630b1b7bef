from enum import Enum, IntEnum, unique

from hydroroute._util.constants import (
    FLOW_DIRECTION_EAST,
    FLOW_DIRECTION_NODATA,
    FLOW_DIRECTION_NORTH,
    FLOW_DIRECTION_NORTH_EAST,
    FLOW_DIRECTION_NORTH_WEST,
    FLOW_DIRECTION_PIT,
    FLOW_DIRECTION_SOUTH,
    FLOW_DIRECTION_SOUTH_EAST,
    FLOW_DIRECTION_SOUTH_WEST,
    FLOW_DIRECTION_WEST,
)


@unique
class FlowDirection(IntEnum):
    """D8 flow direction codes.

    These codes represent the eight cardinal and intercardinal directions
    plus special values for pits and nodata cells.

    The numeric values correspond to the index in the neighbor offset array,
    starting from North East (0) and going clockwise. The same order is the
    scan order used when resolving directions, so the lowest code wins ties
    between equally steep neighbors.

    | 6 | 7 | 0 |
    | :-: | :-: | :-: |
    | 5 | X | 1 |
    | 4 | 3 | 2 |

    """

    NORTH_EAST = FLOW_DIRECTION_NORTH_EAST
    EAST = FLOW_DIRECTION_EAST
    SOUTH_EAST = FLOW_DIRECTION_SOUTH_EAST
    SOUTH = FLOW_DIRECTION_SOUTH
    SOUTH_WEST = FLOW_DIRECTION_SOUTH_WEST
    WEST = FLOW_DIRECTION_WEST
    NORTH_WEST = FLOW_DIRECTION_NORTH_WEST
    NORTH = FLOW_DIRECTION_NORTH
    PIT = FLOW_DIRECTION_PIT
    NODATA = FLOW_DIRECTION_NODATA


@unique
class OutputType(Enum):
    """Units of a flow accumulation output."""

    CELLS = "cells"
    CATCHMENT_AREA = "catchment area"
    SPECIFIC_CONTRIBUTING_AREA = "specific contributing area"

    @classmethod
    def parse(cls, value: "str | OutputType") -> "OutputType":
        """Parse a user supplied output type.

        Matching is lenient: anything mentioning ``specific`` or ``sca`` is a
        specific contributing area, anything mentioning ``cells`` is a cell
        count, and everything else falls back to catchment area.
        """
        if isinstance(value, OutputType):
            return value
        text = value.lower()
        if "specific" in text or "sca" in text:
            return cls.SPECIFIC_CONTRIBUTING_AREA
        if "cells" in text:
            return cls.CELLS
        return cls.CATCHMENT_AREA


@unique
class Background(Enum):
    """Value written to cells that are not inside a sink."""

    NODATA = "nodata"
    ZERO = "zero"
