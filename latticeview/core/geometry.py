"""Grid dimensions, node indexing and the D3Q27 velocity set.

This module centralizes all spatial indexing logic:
- GridDimensions: Immutable dataclass holding the lattice extent
- grid_index: Flat storage index of a lattice node
- VELOCITY_SET: The 27 discrete D3Q27 directions
- exp_lerp: Saturating ease used for density intensity

Node index layout (shared by the wire decoder and the playback parser):

    index(x, y, z) = x + y * height + z * (width * height)

The y term uses height, not width. Solver and recorded files are written
with this layout, so every consumer must use the same formula.

D3Q27 direction layout:
    Index 0:       rest (0, 0, 0)
    Index 1-6:     faces   (|c|^2 == 1)
    Index 7-18:    edges   (|c|^2 == 2)
    Index 19-26:   corners (|c|^2 == 3)
"""

import math
from dataclasses import dataclass

import numpy as np
import taichi as ti

from latticeview.core.errors import InvalidArgumentError

# Number of discrete directions in the D3Q27 scheme
NUM_DIRECTIONS: int = 27

# Largest extent the handshake can carry (one unsigned byte per axis)
MAX_EXTENT: int = 255

VELOCITY_SET = np.array(
    [
        # rest
        [0, 0, 0],
        # faces
        [1, 0, 0], [-1, 0, 0],
        [0, 1, 0], [0, -1, 0],
        [0, 0, 1], [0, 0, -1],
        # edges
        [1, 1, 0], [-1, -1, 0], [1, -1, 0], [-1, 1, 0],
        [1, 0, 1], [-1, 0, -1], [1, 0, -1], [-1, 0, 1],
        [0, 1, 1], [0, -1, -1], [0, 1, -1], [0, -1, 1],
        # corners
        [1, 1, 1], [-1, -1, -1],
        [1, 1, -1], [-1, -1, 1],
        [1, -1, 1], [-1, 1, -1],
        [-1, 1, 1], [1, -1, -1],
    ],
    dtype=np.int32,
)
VELOCITY_SET.setflags(write=False)


@dataclass(frozen=True)
class GridDimensions:
    """Immutable lattice extent.

    Attributes:
        width: Number of nodes along x
        height: Number of nodes along y (y+ is up)
        depth: Number of nodes along z

    Each extent fits in one unsigned byte because the handshake sends
    them as u8 values. A zero extent is allowed and describes an empty
    lattice (the state of a store before its first frame).
    """

    width: int
    height: int
    depth: int

    def __post_init__(self):
        """Validate extents."""
        for name in ("width", "height", "depth"):
            value = getattr(self, name)
            if not isinstance(value, (int, np.integer)) or isinstance(value, bool):
                raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
            if not 0 <= value <= MAX_EXTENT:
                raise InvalidArgumentError(
                    f"{name} must be in [0, {MAX_EXTENT}], got {value}"
                )

    @property
    def node_count(self) -> int:
        """Total number of lattice nodes."""
        return self.width * self.height * self.depth

    @property
    def shape(self) -> tuple[int, int, int]:
        """Extent as (width, height, depth) tuple."""
        return (self.width, self.height, self.depth)

    @property
    def is_empty(self) -> bool:
        return self.node_count == 0

    def index(self, x: int, y: int, z: int) -> int:
        """Flat storage index of node (x, y, z)."""
        return grid_index(x, y, z, self.width, self.height)

    def contains(self, x: float, y: float, z: float) -> bool:
        """Check whether a continuous position lies inside the lattice.

        NaN coordinates are never contained.
        """
        return (
            0.0 <= x <= self.width - 1
            and 0.0 <= y <= self.height - 1
            and 0.0 <= z <= self.depth - 1
        )


EMPTY_DIMENSIONS = GridDimensions(0, 0, 0)


def grid_index(x: int, y: int, z: int, width: int, height: int) -> int:
    """Flat storage index of node (x, y, z).

    Args:
        x, y, z: Integer node coordinates
        width: Lattice width
        height: Lattice height

    Returns:
        x + y * height + z * (width * height)
    """
    return x + y * height + z * (width * height)


def node_coordinates(dims: GridDimensions) -> tuple[np.ndarray, np.ndarray]:
    """Integer coordinates of every node and their storage indices.

    Nodes whose index falls outside [0, node_count) under the index layout
    are omitted.

    Returns:
        (coords, indices): coords is (M, 3) int32 ordered x fastest, then y,
        then z; indices is (M,) int64
    """
    zs, ys, xs = np.meshgrid(
        np.arange(dims.depth),
        np.arange(dims.height),
        np.arange(dims.width),
        indexing="ij",
    )
    coords = np.stack([xs.ravel(), ys.ravel(), zs.ravel()], axis=1).astype(np.int32)
    indices = grid_index(
        coords[:, 0].astype(np.int64),
        coords[:, 1].astype(np.int64),
        coords[:, 2].astype(np.int64),
        dims.width,
        dims.height,
    )
    keep = indices < dims.node_count
    return coords[keep], indices[keep]


def exp_lerp(t: float) -> float:
    """Saturating exponential ease: 1 for t > 1, else 1 - 2^(-10 t)."""
    if t > 1.0:
        return 1.0
    return 1.0 - math.pow(2.0, -10.0 * t)


# =============================================================================
# Taichi helper functions for use in kernels
# =============================================================================


@ti.func
def ti_exp_lerp(t):
    """Saturating exponential ease inside a kernel."""
    result = 1.0
    if t <= 1.0:
        result = 1.0 - ti.pow(2.0, -10.0 * t)
    return result
