"""Declarative Taichi field allocation for one lattice.

Fields are described by FieldSpec and allocated together by a
FieldContainer. Frame fields may carry a staging twin ("<name>_new"): a
whole frame is written there, then published with swap() so readers never
see a half-written snapshot.

Lattice storage is flat. A spec's extra_dims lead, node_count comes last,
so the 27 micro velocities live in a (27, node_count) vector field.

Usage:
    container = FieldContainer(GridDimensions(8, 8, 8))
    container.register(FieldSpec("density", DTYPE, FieldRole.FRAME, double_buffer=True))
    container.allocate()
    container.get_buffer("density").from_numpy(values)
    container.swap("density")
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

import taichi as ti

from latticeview.core.geometry import GridDimensions

_DTYPE_BYTES = {ti.i8: 1, ti.u8: 1, ti.i16: 2, ti.f64: 8, ti.i64: 8}


class FieldRole(Enum):
    """Where a field's values come from.

    FRAME: copied in from a solver or recording snapshot
    DERIVED: recomputed by kernels after each frame
    MASK: per-node flags that arrive alongside a frame
    """

    FRAME = auto()
    DERIVED = auto()
    MASK = auto()


@dataclass(frozen=True)
class FieldSpec:
    """Description of one per-node field.

    Attributes:
        name: snake_case identifier, also the container key
        dtype: Taichi dtype
        role: FieldRole
        double_buffer: allocate a staging twin published by swap()
        components: vector width, 0 for scalars
        extra_dims: dimensions placed before node_count
        description: free text, units where it has them
    """

    name: str
    dtype: Any
    role: FieldRole
    double_buffer: bool = False
    components: int = 0
    extra_dims: tuple[int, ...] = ()
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.name != self.name.lower() or not self.name.replace("_", "").isalnum():
            raise ValueError(f"Field name must be snake_case, got: {self.name}")
        if self.components < 0:
            raise ValueError(
                f"Field '{self.name}' components must be >= 0, got {self.components}"
            )
        # Derived values are recomputed in place after a publish.
        if self.double_buffer and self.role == FieldRole.DERIVED:
            raise ValueError(f"Derived field '{self.name}' cannot be double-buffered")

    def buffer_name(self) -> str:
        return f"{self.name}_new"

    def shape(self, node_count: int) -> tuple[int, ...]:
        return self.extra_dims + (node_count,)

    def nbytes(self, node_count: int) -> int:
        """Bytes for one copy of this field."""
        count = max(self.components, 1)
        for extent in self.shape(node_count):
            count *= extent
        return count * _DTYPE_BYTES.get(self.dtype, 4)


class FieldContainer:
    """The Taichi fields of one lattice size.

    Registration happens before allocate(); afterwards the set is fixed.
    A store that sees new dimensions builds a fresh container instead of
    resizing this one.
    """

    def __init__(self, dimensions: GridDimensions):
        if dimensions.is_empty:
            raise ValueError(f"Cannot allocate fields for empty lattice {dimensions}")
        self._dimensions = dimensions
        self._specs: dict[str, FieldSpec] = {}
        self._fields: dict[str, Any] = {}

    @property
    def dimensions(self) -> GridDimensions:
        return self._dimensions

    @property
    def allocated(self) -> bool:
        return bool(self._fields)

    def register(self, spec: FieldSpec) -> None:
        """Add a field to be allocated.

        Raises:
            RuntimeError: after allocate()
            ValueError: on a duplicate name or a staging-name clash
        """
        if self.allocated:
            raise RuntimeError("Cannot register fields after allocation")
        if spec.name in self._specs:
            raise ValueError(f"Field '{spec.name}' already registered")
        taken = {s.buffer_name() for s in self._specs.values() if s.double_buffer}
        if spec.name in taken or (spec.double_buffer and spec.buffer_name() in self._specs):
            raise ValueError(f"Buffer name '{spec.buffer_name()}' conflicts with existing field")
        self._specs[spec.name] = spec

    def register_many(self, specs: list[FieldSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def allocate(self) -> None:
        """Create every registered field plus the staging twins."""
        if self.allocated:
            raise RuntimeError("Fields already allocated")
        if not self._specs:
            raise RuntimeError("No fields registered")

        n = self._dimensions.node_count
        for spec in self._specs.values():
            self._fields[spec.name] = _make_field(spec, n)
            if spec.double_buffer:
                self._fields[spec.buffer_name()] = _make_field(spec, n)

    def get(self, name: str) -> Any:
        if not self.allocated:
            raise RuntimeError("Fields not yet allocated")
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"Field '{name}' not found") from None

    __getitem__ = get

    def get_spec(self, name: str) -> FieldSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise KeyError(f"Field '{name}' not registered") from None

    def get_buffer(self, name: str) -> Any:
        """The staging twin of a double-buffered field."""
        return self.get(self._staged(name))

    def swap(self, name: str) -> None:
        """Publish the staging twin; the old values become the new staging area."""
        staged = self._staged(name)
        self._fields[name], self._fields[staged] = self._fields[staged], self._fields[name]

    def _staged(self, name: str) -> str:
        spec = self.get_spec(name)
        if not spec.double_buffer:
            raise ValueError(f"Field '{name}' is not double-buffered")
        return spec.buffer_name()

    @property
    def memory_bytes(self) -> int:
        """Allocated bytes across all fields and staging twins."""
        if not self.allocated:
            return 0
        n = self._dimensions.node_count
        return sum(
            spec.nbytes(n) * (2 if spec.double_buffer else 1) for spec in self._specs.values()
        )

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)


def _make_field(spec: FieldSpec, node_count: int) -> Any:
    shape = spec.shape(node_count)
    if spec.components:
        return ti.Vector.field(spec.components, dtype=spec.dtype, shape=shape)
    return ti.field(dtype=spec.dtype, shape=shape)
