"""Lattice field store: the current simulation snapshot.

The store owns exactly one frame. Every mutation validates all of its
inputs before touching a field, stages frame data in double buffers and
publishes it with a swap, so a rejected call leaves the previous frame in
place and an accepted call replaces it completely.

Readers (renderers, UI, diagnostics) use the numpy read surface
(density, macro_velocity, ...) or the Taichi fields via `fields`, plus the
two spatial queries:

- velocity_at(pos): trilinear sample of the macro velocity field
- compute_streamline(seed, step_count): unit-step forward-Euler trace
"""

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from latticeview.core.errors import InvalidArgumentError, LatticeRangeError
from latticeview.core.geometry import (
    EMPTY_DIMENSIONS,
    NUM_DIRECTIONS,
    GridDimensions,
    grid_index,
)
from latticeview.fields.lattice import LatticeFields, create_lattice_container
from latticeview.kernels.lattice import aggregate_macro_velocity, compute_intensity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameSnapshot:
    """Detached numpy copy of the store's current frame."""

    dimensions: GridDimensions
    frame_id: int
    density: np.ndarray
    intensity: np.ndarray
    changeable: np.ndarray
    micro_velocity: np.ndarray
    macro_velocity: np.ndarray


def _coerce_dimensions(dims) -> GridDimensions:
    if isinstance(dims, GridDimensions):
        result = dims
    else:
        try:
            width, height, depth = dims
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(
                f"dims must be GridDimensions or (width, height, depth), got {dims!r}"
            ) from exc
        result = GridDimensions(int(width), int(height), int(depth))
    if result.is_empty:
        raise InvalidArgumentError(f"cannot store a frame for empty lattice {result.shape}")
    return result


def _as_float_array(values, shape: tuple[int, ...], what: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float32)
    if arr.shape != shape:
        raise InvalidArgumentError(f"{what} must have shape {shape}, got {arr.shape}")
    return arr


def _lerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    return a * (1.0 - t) + b * t


class LatticeFieldStore:
    """Holds the current lattice frame and answers spatial queries.

    Attributes:
        dimensions: Dimensions of the current frame
        frame_id: Incremented on every accepted mutation
        has_micro_velocity: False when the macro field came from an already
            aggregated variant (set_macro_velocity / set_cells)
    """

    def __init__(self):
        self._dimensions = EMPTY_DIMENSIONS
        self._fields: LatticeFields | None = None
        self._macro = np.zeros((0, 3), dtype=np.float32)
        self._frame_id = 0
        self._has_micro_velocity = False

    # -------------------------------------------------------------------------
    # Read surface
    # -------------------------------------------------------------------------

    @property
    def dimensions(self) -> GridDimensions:
        return self._dimensions

    @property
    def node_count(self) -> int:
        return self._dimensions.node_count

    @property
    def frame_id(self) -> int:
        return self._frame_id

    @property
    def has_micro_velocity(self) -> bool:
        return self._has_micro_velocity

    @property
    def fields(self) -> LatticeFields | None:
        """Taichi fields of the current frame (None before the first frame)."""
        return self._fields

    @property
    def density(self) -> np.ndarray:
        """Node densities, shape (node_count,)."""
        if self._fields is None:
            return np.zeros(0, dtype=np.float32)
        return self._fields.density.to_numpy()

    @property
    def intensity(self) -> np.ndarray:
        """Eased normalized densities, shape (node_count,)."""
        if self._fields is None:
            return np.zeros(0, dtype=np.float32)
        return self._fields.intensity.to_numpy()

    @property
    def changeable(self) -> np.ndarray:
        """Node changeability flags, shape (node_count,)."""
        if self._fields is None:
            return np.zeros(0, dtype=np.int8)
        return self._fields.changeable.to_numpy()

    @property
    def micro_velocity(self) -> np.ndarray:
        """Direction contributions, shape (27, node_count, 3)."""
        if self._fields is None:
            return np.zeros((NUM_DIRECTIONS, 0, 3), dtype=np.float32)
        return self._fields.micro_velocity.to_numpy()

    @property
    def macro_velocity(self) -> np.ndarray:
        """Aggregated velocities, shape (node_count, 3)."""
        return self._macro.copy()

    def snapshot(self) -> FrameSnapshot:
        """Copy the current frame out of the store."""
        return FrameSnapshot(
            dimensions=self._dimensions,
            frame_id=self._frame_id,
            density=self.density,
            intensity=self.intensity,
            changeable=self.changeable,
            micro_velocity=self.micro_velocity,
            macro_velocity=self.macro_velocity,
        )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def set_density(self, densities, dims, changeable=None) -> None:
        """Replace node densities and recompute intensity.

        Args:
            densities: node_count densities
            dims: GridDimensions or (width, height, depth)
            changeable: Optional node_count changeability flags

        Raises:
            InvalidArgumentError: On length mismatch or empty dimensions
        """
        dims = _coerce_dimensions(dims)
        n = dims.node_count
        density_arr = _as_float_array(densities, (n,), "densities")
        flags = None
        if changeable is not None:
            flags = np.asarray(changeable)
            if flags.shape != (n,):
                raise InvalidArgumentError(
                    f"changeable must have shape {(n,)}, got {flags.shape}"
                )
            flags = flags.astype(np.int8)

        fields = self._prepare(dims)
        self._write_density(fields, density_arr)
        if flags is not None:
            fields.changeable.from_numpy(flags)
        self._frame_id += 1

    def set_velocity(self, micro_velocities: Sequence, dims) -> None:
        """Replace the 27 micro velocity arrays and recompute macro velocity.

        Args:
            micro_velocities: 27 arrays of node_count 3-vectors, or one
                (27, node_count, 3) array
            dims: GridDimensions or (width, height, depth)

        Raises:
            InvalidArgumentError: If not exactly 27 arrays are supplied or any
                array has the wrong length
        """
        dims = _coerce_dimensions(dims)
        n = dims.node_count
        if len(micro_velocities) != NUM_DIRECTIONS:
            raise InvalidArgumentError(
                f"expected {NUM_DIRECTIONS} micro velocity arrays, got {len(micro_velocities)}"
            )
        stacked = np.stack(
            [
                _as_float_array(arr, (n, 3), f"micro velocity array {d}")
                for d, arr in enumerate(micro_velocities)
            ]
        )

        fields = self._prepare(dims)
        fields.micro_velocity_new.from_numpy(stacked)
        fields.publish_micro_velocity()
        aggregate_macro_velocity(fields.micro_velocity, fields.macro_velocity)
        self._macro = fields.macro_velocity.to_numpy()
        self._has_micro_velocity = True
        self._frame_id += 1

    def set_macro_velocity(self, velocities, dims) -> None:
        """Replace the macro field with already aggregated velocities.

        Micro storage is cleared since the per-direction split is unknown.

        Raises:
            InvalidArgumentError: On length mismatch or empty dimensions
        """
        dims = _coerce_dimensions(dims)
        velocity_arr = _as_float_array(velocities, (dims.node_count, 3), "velocities")

        fields = self._prepare(dims)
        self._write_macro(fields, velocity_arr)
        self._frame_id += 1

    def set_cells(self, cells, dims) -> None:
        """Apply a combined frame of (vx, vy, vz, density) records.

        Raises:
            InvalidArgumentError: On length mismatch or empty dimensions
        """
        dims = _coerce_dimensions(dims)
        cell_arr = _as_float_array(cells, (dims.node_count, 4), "cells")

        fields = self._prepare(dims)
        self._write_macro(fields, np.ascontiguousarray(cell_arr[:, :3]))
        self._write_density(fields, np.ascontiguousarray(cell_arr[:, 3]))
        self._frame_id += 1

    def _prepare(self, dims: GridDimensions) -> LatticeFields:
        """Fields for dims, reallocating (all zero) when the lattice changed."""
        if self._fields is None or dims != self._dimensions:
            self._fields = LatticeFields(create_lattice_container(dims))
            logger.info(
                "Allocated %dx%dx%d lattice fields (%.1f KiB)",
                *dims.shape,
                self._fields.container.memory_bytes / 1024,
            )
            self._dimensions = dims
            self._macro = np.zeros((dims.node_count, 3), dtype=np.float32)
            self._has_micro_velocity = False
        return self._fields

    def _write_density(self, fields: LatticeFields, density_arr: np.ndarray) -> None:
        fields.density_new.from_numpy(density_arr)
        fields.publish_density()
        max_density = float(density_arr.max())
        min_density = float(density_arr.min())
        compute_intensity(fields.density, fields.intensity, min_density, max_density)

    def _write_macro(self, fields: LatticeFields, velocity_arr: np.ndarray) -> None:
        fields.micro_velocity_new.fill(0)
        fields.publish_micro_velocity()
        fields.macro_velocity.from_numpy(velocity_arr)
        self._macro = velocity_arr.copy()
        self._has_micro_velocity = False

    # -------------------------------------------------------------------------
    # Spatial queries
    # -------------------------------------------------------------------------

    def velocity_at(self, pos) -> np.ndarray:
        """Trilinear sample of the macro velocity at a continuous position.

        Args:
            pos: (x, y, z) in node units

        Returns:
            Velocity as a float32 array of shape (3,)

        Raises:
            InvalidArgumentError: If any coordinate is NaN
            LatticeRangeError: If the position lies outside
                [0, w-1] x [0, h-1] x [0, d-1]
        """
        x, y, z = (float(c) for c in pos)
        if math.isnan(x) or math.isnan(y) or math.isnan(z):
            raise InvalidArgumentError(f"position has NaN coordinates: {(x, y, z)}")
        if not self._dimensions.contains(x, y, z):
            raise LatticeRangeError(
                f"position {(x, y, z)} outside lattice {self._dimensions.shape}"
            )
        return self._sample(x, y, z)

    def _sample(self, x: float, y: float, z: float) -> np.ndarray:
        dims = self._dimensions
        n = dims.node_count
        x0, y0, z0 = math.floor(x), math.floor(y), math.floor(z)
        x1, y1, z1 = math.ceil(x), math.ceil(y), math.ceil(z)
        x_dec, y_dec, z_dec = x - x0, y - y0, z - z0

        def corner(cx: int, cy: int, cz: int) -> np.ndarray:
            index = grid_index(cx, cy, cz, dims.width, dims.height)
            if index >= n:
                raise LatticeRangeError(
                    f"node {(cx, cy, cz)} maps to index {index} beyond {n} nodes"
                )
            return self._macro[index].astype(np.float64)

        z_samples = []
        for cz in (z0, z1):
            # y first within each x pair, then x
            along_y = [_lerp(corner(cx, y0, cz), corner(cx, y1, cz), y_dec) for cx in (x0, x1)]
            z_samples.append(_lerp(along_y[0], along_y[1], x_dec))
        return _lerp(z_samples[0], z_samples[1], z_dec).astype(np.float32)

    def compute_streamline(self, seed, step_count: int) -> np.ndarray:
        """Trace the macro velocity field from seed with unit Euler steps.

        Each iteration records the current position, then moves one node
        length along the normalized local velocity. Tracing stops early when
        the next position leaves the lattice or the velocity vanishes.

        Args:
            seed: (x, y, z) start position
            step_count: Maximum number of recorded positions

        Returns:
            (M, 3) float64 array of positions, M <= step_count; empty if the
            seed is outside the lattice

        Raises:
            InvalidArgumentError: If step_count is negative
        """
        if step_count < 0:
            raise InvalidArgumentError(f"step_count must be >= 0, got {step_count}")

        position = np.asarray(seed, dtype=np.float64).reshape(3)
        points: list[np.ndarray] = []
        for _ in range(step_count):
            if not self._dimensions.contains(*position):
                break
            try:
                velocity = self._sample(*position).astype(np.float64)
            except LatticeRangeError:
                break
            points.append(position.copy())
            speed = float(np.linalg.norm(velocity))
            if speed == 0.0 or not math.isfinite(speed):
                break
            position = position + velocity / speed

        if not points:
            return np.zeros((0, 3), dtype=np.float64)
        return np.stack(points)
