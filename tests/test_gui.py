"""Tests for the visualization system (latticeview/gui.py).

Runs the viewer headless: rendering fields are checked, nothing is drawn.
"""

import numpy as np

from latticeview.core.geometry import GridDimensions
from latticeview.fields.store import LatticeFieldStore
from latticeview.gui import Visualizer3D, streamline_seeds, streamline_segments
from latticeview.params.schema import StreamlineParams


def density_store(dims, densities):
    store = LatticeFieldStore()
    store.set_density(np.asarray(densities, dtype=np.float32), dims)
    return store


def test_visualizer_instantiation():
    """Headless mode works without a display."""
    vis = Visualizer3D(headless=True)
    assert vis.window is None
    assert vis.num_particles == 0
    assert vis.is_running
    vis.render()


def test_update_before_first_frame():
    """An empty store leaves the viewer unallocated."""
    vis = Visualizer3D(headless=True)
    vis.update(LatticeFieldStore())
    assert vis.vis_positions is None


def test_particles_follow_nodes():
    """One particle per node, placed at its integer coordinates."""
    store = density_store((3, 3, 2), np.zeros(18))
    vis = Visualizer3D(headless=True)
    vis.update(store)

    assert vis.num_particles == 18
    positions = vis.vis_positions.to_numpy()
    assert positions.shape == (18, 3)
    np.testing.assert_array_equal(positions[0], [0, 0, 0])
    np.testing.assert_array_equal(positions[-1], [2, 2, 1])


def test_grayscale_from_intensity():
    """Particle colour is the intensity of its node on every channel."""
    densities = np.array([0.0, 1.0, 2.0, 4.0], dtype=np.float32)
    store = density_store((2, 2, 1), densities)
    vis = Visualizer3D(headless=True)
    vis.update(store)

    colors = vis.vis_colors.to_numpy()
    indices = vis.vis_node_index.to_numpy()
    intensity = store.intensity
    for p, node in enumerate(indices):
        np.testing.assert_allclose(colors[p], intensity[node], rtol=1e-6)
    assert colors[0, 0] == 0.0


def test_reallocates_on_new_dimensions():
    """A different lattice rebuilds the rendering fields."""
    vis = Visualizer3D(headless=True)
    vis.update(density_store((2, 2, 2), np.ones(8)))
    assert vis.num_particles == 8
    vis.update(density_store((3, 3, 3), np.ones(27)))
    assert vis.num_particles == 27
    assert vis.dimensions == GridDimensions(3, 3, 3)


def test_streamlines_uploaded():
    """Uniform +x flow gives straight lines across the lattice."""
    store = LatticeFieldStore()
    store.set_macro_velocity(np.tile([1.0, 0.0, 0.0], (16, 1)), (4, 2, 2))
    vis = Visualizer3D(streamline=StreamlineParams(step_count=10, seed_stride=1), headless=True)
    vis.update(store)

    # 4 seeds on the x=0 face, each 4 points long = 3 segments = 6 vertices
    assert vis.num_line_vertices == 4 * 6
    lines = vis.vis_lines.to_numpy()[: vis.num_line_vertices]
    np.testing.assert_array_equal(lines[0], [0, 0, 0])
    np.testing.assert_array_equal(lines[1], [1, 0, 0])


def test_streamlines_disabled():
    """Disabled streamlines upload nothing."""
    store = LatticeFieldStore()
    store.set_macro_velocity(np.tile([1.0, 0.0, 0.0], (8, 1)), (2, 2, 2))
    vis = Visualizer3D(streamline=StreamlineParams(enabled=False), headless=True)
    vis.update(store)
    assert vis.num_line_vertices == 0


def test_seed_grid():
    """Seeds sit on the x=0 face every stride nodes."""
    seeds = streamline_seeds(GridDimensions(5, 5, 3), stride=2)
    assert seeds.shape == (3 * 2, 3)
    np.testing.assert_array_equal(seeds[:, 0], 0.0)
    assert set(seeds[:, 1]) == {0.0, 2.0, 4.0}
    assert set(seeds[:, 2]) == {0.0, 2.0}


def test_segments_skip_single_points():
    """Lines with fewer than two points contribute no segments."""
    segments = streamline_segments([np.zeros((1, 3)), np.array([[0, 0, 0], [1, 0, 0], [2, 0, 0]])])
    np.testing.assert_array_equal(segments, [[0, 0, 0], [1, 0, 0], [1, 0, 0], [2, 0, 0]])
    assert streamline_segments([]).shape == (0, 3)
