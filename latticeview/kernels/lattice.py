"""
Per-frame lattice kernels.

Macro velocity is the plain sum of the 27 weighted direction contributions;
the solver has already applied the lattice weights. Intensity maps density
onto [0, 1) with a saturating exponential ease.
"""

import taichi as ti

from latticeview.core.dtypes import DTYPE
from latticeview.core.geometry import NUM_DIRECTIONS, ti_exp_lerp


@ti.kernel
def aggregate_macro_velocity(micro: ti.template(), macro: ti.template()):
    """macro[i] = sum over d of micro[d, i], summed in direction order."""
    for i in macro:
        total = ti.Vector([0.0, 0.0, 0.0], dt=DTYPE)
        for d in ti.static(range(NUM_DIRECTIONS)):
            total += micro[d, i]
        macro[i] = total


@ti.kernel
def compute_intensity(
    density: ti.template(),
    intensity: ti.template(),
    min_density: DTYPE,
    max_density: DTYPE,
):
    """intensity = exp_lerp((d - min_density) / max_density).

    A zero max_density yields zero intensity for every node.
    """
    for i in density:
        value = ti.cast(0.0, DTYPE)
        if max_density != 0.0:
            t = (density[i] - min_density) / max_density
            value = ti_exp_lerp(t)
        intensity[i] = value


@ti.kernel
def compute_total(field: ti.template()) -> DTYPE:
    """Sum of a scalar field."""
    total = ti.cast(0.0, DTYPE)
    for I in ti.grouped(field):
        total += field[I]
    return total


@ti.kernel
def max_magnitude(field: ti.template()) -> DTYPE:
    """Largest vector norm in a vector field."""
    result = ti.cast(0.0, DTYPE)
    for I in ti.grouped(field):
        ti.atomic_max(result, field[I].norm())
    return result


@ti.kernel
def count_where(mask: ti.template(), value: ti.i32) -> ti.i32:
    """Number of entries equal to value."""
    count = 0
    for I in ti.grouped(mask):
        if mask[I] == value:
            count += 1
    return count
