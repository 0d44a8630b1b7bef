import numpy as np

# D8 direction codes, clockwise from north-east. The code is the index into
# NEIGHBOR_OFFSETS and also fixes the neighbour scan order.
#
#   6 | 7 | 0
#   5 | X | 1
#   4 | 3 | 2
FLOW_DIRECTION_NORTH_EAST = 0
FLOW_DIRECTION_EAST = 1
FLOW_DIRECTION_SOUTH_EAST = 2
FLOW_DIRECTION_SOUTH = 3
FLOW_DIRECTION_SOUTH_WEST = 4
FLOW_DIRECTION_WEST = 5
FLOW_DIRECTION_NORTH_WEST = 6
FLOW_DIRECTION_NORTH = 7
FLOW_DIRECTION_PIT = -1
FLOW_DIRECTION_NODATA = -2

# (row offset, col offset) for each direction code
NEIGHBOR_OFFSETS = np.array(
    [
        (-1, 1),
        (0, 1),
        (1, 1),
        (1, 0),
        (1, -1),
        (0, -1),
        (-1, -1),
        (-1, 0),
    ],
    dtype=np.int64,
)

# The direction a neighbour at NEIGHBOR_OFFSETS[i] must hold to drain into
# the centre cell.
INFLOWING_DIRECTIONS = np.array([4, 5, 6, 7, 0, 1, 2, 3], dtype=np.int8)

INFLOW_COUNT_NODATA = -1

DEFAULT_CHUNK_SIZE = 2048
DEFAULT_NODATA = np.nan
DEFAULT_CLIP_PERCENT = 1.0
