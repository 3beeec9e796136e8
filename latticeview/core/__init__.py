"""Core infrastructure: types, geometry, errors and constants."""

from latticeview.core.dtypes import DTYPE, WIRE_FLOAT
from latticeview.core.errors import (
    ChannelError,
    InvalidArgumentError,
    LatticeRangeError,
    LatticeViewError,
    PlaybackFormatError,
    ProtocolError,
)
from latticeview.core.geometry import (
    EMPTY_DIMENSIONS,
    MAX_EXTENT,
    NUM_DIRECTIONS,
    VELOCITY_SET,
    GridDimensions,
    exp_lerp,
    grid_index,
    node_coordinates,
    ti_exp_lerp,
)

__all__ = [
    "DTYPE",
    "WIRE_FLOAT",
    "EMPTY_DIMENSIONS",
    "GridDimensions",
    "MAX_EXTENT",
    "NUM_DIRECTIONS",
    "VELOCITY_SET",
    "exp_lerp",
    "grid_index",
    "node_coordinates",
    "ti_exp_lerp",
    "LatticeViewError",
    "InvalidArgumentError",
    "LatticeRangeError",
    "ProtocolError",
    "ChannelError",
    "PlaybackFormatError",
]
