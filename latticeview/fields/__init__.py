"""Field management for LatticeView.

This module provides declarative field containers for managing Taichi fields
with support for double-buffering and memory tracking, plus the lattice
field store that owns the current frame.

Main classes:
- FieldSpec: Declarative field specification
- FieldRole: Field categorization (FRAME, DERIVED, MASK)
- FieldContainer: Manages Taichi field lifecycle
- LatticeFields: Access to the per-node lattice fields with publish helpers
- LatticeFieldStore: Current snapshot, mutation and spatial queries
"""

from latticeview.fields.base import FieldContainer, FieldRole, FieldSpec
from latticeview.fields.lattice import (
    LatticeFields,
    create_lattice_container,
    create_lattice_specs,
)
from latticeview.fields.store import FrameSnapshot, LatticeFieldStore

__all__ = [
    # Core classes
    "FieldContainer",
    "FieldRole",
    "FieldSpec",
    # Lattice
    "LatticeFields",
    "LatticeFieldStore",
    "FrameSnapshot",
    "create_lattice_container",
    "create_lattice_specs",
]
