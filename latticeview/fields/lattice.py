"""Lattice field specifications and factory.

Per-node fields of one snapshot:
- density: Node density [lattice units]
- changeable: 1 if the solver may change the node, 0 for walls/obstacles
- micro_velocity: 27 weighted direction contributions per node
- macro_velocity: Sum of the micro contributions
- intensity: Eased, normalized density used by colour mapping

Frame fields are double-buffered: a new frame is written to the staging
buffer and published with a swap, so readers never see half a frame.
"""

from typing import Any

import taichi as ti

from latticeview.core.dtypes import DTYPE
from latticeview.core.geometry import NUM_DIRECTIONS, GridDimensions
from latticeview.fields.base import FieldContainer, FieldRole, FieldSpec


def create_lattice_specs(dtype: Any = DTYPE) -> list[FieldSpec]:
    """Create specifications for all per-node lattice fields.

    Args:
        dtype: Floating-point type (default: DTYPE from dtypes.py)

    Returns:
        List of FieldSpec for the lattice field store
    """
    return [
        FieldSpec(
            name="density",
            dtype=dtype,
            role=FieldRole.FRAME,
            double_buffer=True,
            description="Node density [lattice units]",
        ),
        FieldSpec(
            name="micro_velocity",
            dtype=dtype,
            role=FieldRole.FRAME,
            double_buffer=True,
            components=3,
            extra_dims=(NUM_DIRECTIONS,),
            description="Weighted D3Q27 direction contributions [lattice units]",
        ),
        FieldSpec(
            name="changeable",
            dtype=ti.i8,
            role=FieldRole.MASK,
            description="Node changeability (1=fluid, 0=fixed)",
        ),
        FieldSpec(
            name="macro_velocity",
            dtype=dtype,
            role=FieldRole.DERIVED,
            components=3,
            description="Aggregated node velocity [lattice units]",
        ),
        FieldSpec(
            name="intensity",
            dtype=dtype,
            role=FieldRole.DERIVED,
            description="Eased normalized density [-]",
        ),
    ]


class LatticeFields:
    """Convenience wrapper for accessing lattice fields.

    Example:
        fields = LatticeFields(container)
        fields.density_new.from_numpy(values)
        fields.publish_density()
    """

    def __init__(self, container: FieldContainer):
        self._container = container

    @property
    def container(self) -> FieldContainer:
        return self._container

    @property
    def dimensions(self) -> GridDimensions:
        return self._container.dimensions

    @property
    def density(self) -> Any:
        """Node density field."""
        return self._container["density"]

    @property
    def density_new(self) -> Any:
        """Density staging buffer."""
        return self._container.get_buffer("density")

    @property
    def micro_velocity(self) -> Any:
        """Micro velocity field, shape (27, node_count) of vec3."""
        return self._container["micro_velocity"]

    @property
    def micro_velocity_new(self) -> Any:
        """Micro velocity staging buffer."""
        return self._container.get_buffer("micro_velocity")

    @property
    def changeable(self) -> Any:
        return self._container["changeable"]

    @property
    def macro_velocity(self) -> Any:
        """Aggregated velocity field, shape (node_count,) of vec3."""
        return self._container["macro_velocity"]

    @property
    def intensity(self) -> Any:
        return self._container["intensity"]

    def publish_density(self) -> None:
        """Swap the staged density in."""
        self._container.swap("density")

    def publish_micro_velocity(self) -> None:
        """Swap the staged micro velocities in."""
        self._container.swap("micro_velocity")


def create_lattice_container(dimensions: GridDimensions) -> FieldContainer:
    """Create an allocated container with all lattice fields.

    Fields start zeroed; changeability starts at 1 for every node.

    Args:
        dimensions: Lattice extent

    Returns:
        Allocated FieldContainer
    """
    container = FieldContainer(dimensions)
    container.register_many(create_lattice_specs())
    container.allocate()
    container["changeable"].fill(1)
    return container
