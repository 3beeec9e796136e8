"""Taichi kernels for lattice frames.

- lattice: macro velocity aggregation, density intensity, field reductions
"""

from latticeview.kernels.lattice import (
    aggregate_macro_velocity,
    compute_intensity,
    compute_total,
    count_where,
    max_magnitude,
)

__all__ = [
    "aggregate_macro_velocity",
    "compute_intensity",
    "compute_total",
    "count_where",
    "max_magnitude",
]
