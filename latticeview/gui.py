"""Real-time 3D view of the lattice using Taichi UI.

Each lattice node is drawn as a particle shaded by its density intensity
(black = empty, white = saturated). Streamlines traced from a grid of seeds
on the x=0 face are drawn as line segments on top.
"""

import numpy as np
import taichi as ti

from latticeview.core.geometry import EMPTY_DIMENSIONS, GridDimensions, node_coordinates
from latticeview.fields.store import LatticeFieldStore
from latticeview.params.schema import DisplayParams, StreamlineParams

LINE_WIDTH: float = 2.0


@ti.kernel
def shade_by_intensity(colors: ti.template(), node_index: ti.template(), intensity: ti.template()):
    """Grayscale colour per particle from the intensity of its node."""
    for p in colors:
        value = ti.min(ti.max(intensity[node_index[p]], 0.0), 1.0)
        colors[p] = ti.Vector([value, value, value])


def streamline_seeds(dims: GridDimensions, stride: int) -> np.ndarray:
    """Seed positions on the x=0 face every stride nodes, shape (S, 3)."""
    ys = np.arange(0, dims.height, stride)
    zs = np.arange(0, dims.depth, stride)
    grid_z, grid_y = np.meshgrid(zs, ys, indexing="ij")
    return np.stack(
        [np.zeros(grid_y.size), grid_y.ravel(), grid_z.ravel()], axis=1
    ).astype(np.float64)


def streamline_segments(lines: list[np.ndarray]) -> np.ndarray:
    """Flatten polylines into (2K, 3) segment endpoint pairs for scene.lines."""
    pairs = [
        np.stack([line[:-1], line[1:]], axis=1).reshape(-1, 3)
        for line in lines
        if len(line) >= 2
    ]
    if not pairs:
        return np.zeros((0, 3), dtype=np.float32)
    return np.concatenate(pairs).astype(np.float32)


class Visualizer3D:
    """3D viewer for the lattice field store.

    Rendering fields are rebuilt whenever the store's dimensions change, so
    a solver restarted with a different lattice is picked up on the next
    update.
    """

    def __init__(
        self,
        display: DisplayParams | None = None,
        streamline: StreamlineParams | None = None,
        headless: bool = False,
    ):
        """Initialize visualizer.

        Args:
            display: Window and particle settings
            streamline: Streamline seeding and length
            headless: If True, do not create window (for testing).
        """
        self.display = display or DisplayParams()
        self.streamline = streamline or StreamlineParams()
        self.headless = headless

        self.dimensions = EMPTY_DIMENSIONS
        self.num_particles = 0
        self.num_line_vertices = 0
        self.vis_positions = None
        self.vis_colors = None
        self.vis_node_index = None
        self.vis_lines = None

        if not self.headless:
            self.window = ti.ui.Window(
                self.display.title,
                (self.display.width, self.display.height),
                vsync=self.display.vsync,
            )
            self.canvas = self.window.get_canvas()
            self.scene = self.window.get_scene()
            self.camera = ti.ui.Camera()
            self.camera.up(0.0, 1.0, 0.0)
        else:
            self.window = None
            self.canvas = None
            self.scene = None
            self.camera = None

    @property
    def is_running(self) -> bool:
        if self.headless:
            return True
        return self.window.running

    def _allocate(self, dims: GridDimensions) -> None:
        coords, indices = node_coordinates(dims)
        self.num_particles = len(coords)

        self.vis_positions = ti.Vector.field(3, dtype=float, shape=self.num_particles)
        self.vis_colors = ti.Vector.field(3, dtype=float, shape=self.num_particles)
        self.vis_node_index = ti.field(dtype=ti.i32, shape=self.num_particles)
        self.vis_positions.from_numpy(coords.astype(np.float32))
        self.vis_node_index.from_numpy(indices.astype(np.int32))

        seeds = len(streamline_seeds(dims, self.streamline.seed_stride))
        max_vertices = seeds * 2 * max(self.streamline.step_count - 1, 1)
        self.vis_lines = ti.Vector.field(3, dtype=float, shape=max(max_vertices, 2))
        self.num_line_vertices = 0

        self.dimensions = dims
        if self.camera is not None:
            self._frame_camera(dims)

    def _frame_camera(self, dims: GridDimensions) -> None:
        cx, cy, cz = (dims.width - 1) / 2, (dims.height - 1) / 2, (dims.depth - 1) / 2
        reach = max(dims.shape) * 1.5
        self.camera.position(cx + reach, cy + reach * 0.5, cz + reach)
        self.camera.lookat(cx, cy, cz)

    def update_streamlines(self, store: LatticeFieldStore) -> None:
        """Trace streamlines from the seed grid and upload the segments."""
        if not self.streamline.enabled:
            self.num_line_vertices = 0
            return
        seeds = streamline_seeds(store.dimensions, self.streamline.seed_stride)
        lines = [store.compute_streamline(seed, self.streamline.step_count) for seed in seeds]
        segments = streamline_segments(lines)

        padded = np.zeros((self.vis_lines.shape[0], 3), dtype=np.float32)
        padded[: len(segments)] = segments
        self.vis_lines.from_numpy(padded)
        self.num_line_vertices = len(segments)

    def update(self, store: LatticeFieldStore) -> None:
        """Update visualization from the store's current frame.

        Args:
            store: LatticeFieldStore holding the frame to show.
        """
        if store.fields is None:
            return
        if store.dimensions != self.dimensions:
            self._allocate(store.dimensions)
        shade_by_intensity(self.vis_colors, self.vis_node_index, store.fields.intensity)
        self.update_streamlines(store)

    def render(self):
        """Render the current frame."""
        if self.headless:
            return

        if self.window.is_pressed(ti.ui.ESCAPE):
            self.window.running = False
            return

        self.camera.track_user_inputs(self.window, movement_speed=0.03, hold_key=ti.ui.RMB)
        self.scene.set_camera(self.camera)

        self.scene.ambient_light((0.6, 0.6, 0.6))
        reach = max(self.dimensions.shape) if self.num_particles else 1
        self.scene.point_light(pos=(0.0, reach * 2.0, 0.0), color=(1, 1, 1))

        if self.num_particles:
            radius = self.display.particle_radius
            self.scene.particles(self.vis_positions, radius, per_vertex_color=self.vis_colors)
        if self.num_line_vertices:
            self.scene.lines(
                self.vis_lines,
                width=LINE_WIDTH,
                color=(0.9, 0.3, 0.2),
                vertex_count=self.num_line_vertices,
            )
        self.canvas.scene(self.scene)
        self.window.show()
