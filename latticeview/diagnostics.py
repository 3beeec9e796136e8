"""Per-frame summary statistics.

Simple reductions over the store's Taichi fields, used by the CLI status
line and by tests that check aggregation.
"""

from dataclasses import dataclass

from latticeview.fields.store import LatticeFieldStore
from latticeview.kernels.lattice import compute_total, count_where, max_magnitude


@dataclass
class FrameStats:
    """Summary of one lattice frame."""

    frame_id: int = 0
    node_count: int = 0
    total_density: float = 0.0  # sum over all nodes [lattice units]
    mean_density: float = 0.0
    max_speed: float = 0.0  # largest macro velocity norm
    fixed_nodes: int = 0  # nodes with changeable == 0

    def format(self) -> str:
        """One-line status text."""
        return (
            f"frame {self.frame_id}: {self.node_count} nodes, "
            f"mass={self.total_density:.4e}, mean={self.mean_density:.4e}, "
            f"max|u|={self.max_speed:.4e}, fixed={self.fixed_nodes}"
        )


def frame_stats(store: LatticeFieldStore) -> FrameStats:
    """Compute FrameStats for the store's current frame.

    An empty store yields all-zero statistics.
    """
    fields = store.fields
    if fields is None:
        return FrameStats(frame_id=store.frame_id)

    node_count = store.node_count
    total = float(compute_total(fields.density))
    return FrameStats(
        frame_id=store.frame_id,
        node_count=node_count,
        total_density=total,
        mean_density=total / node_count,
        max_speed=float(max_magnitude(fields.macro_velocity)),
        fixed_nodes=int(count_where(fields.changeable, 0)),
    )
