"""Playback of recorded lattice snapshots.

File format (whitespace separated text):

    width height depth
    <frame 0>
    <frame 1>
    ...

Every non-empty line after the first is one frame of node_count groups of
29 numbers, in storage index order:

    changeable density w0 w1 ... w26

The micro velocity of direction d at a node is w_d * VELOCITY_SET[d].
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import numpy as np

from latticeview.core.errors import InvalidArgumentError, PlaybackFormatError
from latticeview.core.geometry import NUM_DIRECTIONS, VELOCITY_SET, GridDimensions, node_coordinates
from latticeview.fields.store import LatticeFieldStore

logger = logging.getLogger(__name__)

# changeable + density + one weight per direction
VALUES_PER_NODE: int = 2 + NUM_DIRECTIONS


@dataclass(frozen=True)
class PlaybackFrame:
    """One recorded frame.

    Attributes:
        changeable: (node_count,) int8 flags
        density: (node_count,) float32
        micro_velocity: (27, node_count, 3) float32
    """

    changeable: np.ndarray
    density: np.ndarray
    micro_velocity: np.ndarray


@dataclass(frozen=True)
class PlaybackRecording:
    """Parsed playback file."""

    dimensions: GridDimensions
    frames: list[PlaybackFrame]

    def __len__(self) -> int:
        return len(self.frames)


@dataclass(frozen=True)
class NodeInspection:
    """Per-direction breakdown of one node in the current frame."""

    index: int
    coordinates: tuple[int, int, int] | None
    density: float
    micro_velocity: np.ndarray  # (27, 3)
    contribution_sum: float  # sum of |micro_velocity[d]|


def _parse_dimensions(line: str) -> GridDimensions:
    tokens = line.split()
    if len(tokens) != 3:
        raise PlaybackFormatError(
            f"expected 'width height depth', got {len(tokens)} values", line=1
        )
    try:
        dims = GridDimensions(*(int(t) for t in tokens))
    except (ValueError, InvalidArgumentError) as exc:
        raise PlaybackFormatError(f"invalid dimensions: {exc}", line=1) from exc
    if dims.is_empty:
        raise PlaybackFormatError(f"lattice {dims.shape} has no nodes", line=1)
    return dims


def _parse_frame(line: str, dims: GridDimensions, line_number: int) -> PlaybackFrame:
    tokens = line.split()
    n = dims.node_count
    expected = n * VALUES_PER_NODE
    if len(tokens) != expected:
        raise PlaybackFormatError(
            f"expected {expected} values ({n} nodes x {VALUES_PER_NODE}), got {len(tokens)}",
            line=line_number,
        )
    try:
        values = np.array(tokens, dtype=np.float64).reshape(n, VALUES_PER_NODE)
    except ValueError as exc:
        raise PlaybackFormatError(f"non-numeric value: {exc}", line=line_number) from exc

    flags = values[:, 0]
    if not np.all(flags == np.round(flags)):
        raise PlaybackFormatError("changeable flags must be integers", line=line_number)

    weights = values[:, 2:].T  # (27, n)
    micro = weights[:, :, None] * VELOCITY_SET[:, None, :]
    return PlaybackFrame(
        changeable=flags.astype(np.int8),
        density=values[:, 1].astype(np.float32),
        micro_velocity=micro.astype(np.float32),
    )


def parse_playback_lines(lines: Iterable[str]) -> PlaybackRecording:
    """Parse playback text already split into lines.

    Raises:
        PlaybackFormatError: On a missing header, bad dimensions or a frame
            with the wrong number of values (message carries the line number)
    """
    dims = None
    frames: list[PlaybackFrame] = []
    for line_number, line in enumerate(lines, start=1):
        if dims is None:
            if line_number == 1:
                dims = _parse_dimensions(line)
            continue
        if not line.strip():
            continue
        frames.append(_parse_frame(line, dims, line_number))

    if dims is None:
        raise PlaybackFormatError("file is empty", line=1)
    return PlaybackRecording(dimensions=dims, frames=frames)


def parse_playback_file(path: str | Path) -> PlaybackRecording:
    """Read and parse a playback file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        PlaybackFormatError: If the contents are malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Playback file not found: {path}")
    with open(path, "r") as f:
        return parse_playback_lines(f.read().splitlines())


class PlaybackSource:
    """Steps through a recorded file, one frame per tick when playing.

    Example:
        source = PlaybackSource("run.txt")
        source.init()
        source.load()          # frame 0 is now in the store
        source.step(+1)        # frame 1
        source.seek_fraction(0.5)
    """

    def __init__(
        self,
        path: str | Path | None = None,
        store: LatticeFieldStore | None = None,
        recording: PlaybackRecording | None = None,
        playing: bool = True,
        loop: bool = True,
    ):
        if path is None and recording is None:
            raise InvalidArgumentError("PlaybackSource needs a path or a recording")
        self._path = Path(path) if path is not None else None
        self._store = store if store is not None else LatticeFieldStore()
        self._recording = recording
        self.playing = playing
        self.loop = loop
        self.current_frame = 0

    @property
    def name(self) -> str:
        return "Read Recorded File"

    @property
    def store(self) -> LatticeFieldStore:
        return self._store

    @property
    def frame_count(self) -> int:
        return len(self._recording) if self._recording is not None else 0

    @property
    def dimensions(self) -> GridDimensions:
        return self._recording.dimensions

    def init(self) -> None:
        if self._recording is None:
            self._recording = parse_playback_file(self._path)
            logger.info(
                "Loaded %d frames of %dx%dx%d from %s",
                self.frame_count,
                *self.dimensions.shape,
                self._path,
            )
        self.current_frame = 0

    def load(self) -> None:
        if self.frame_count:
            self._apply(self.current_frame)

    def update(self) -> bool:
        """Advance one frame while playing; with loop set, the last frame wraps to 0."""
        if not self.playing or not self.frame_count:
            return False
        if self.loop and self.current_frame == self.frame_count - 1:
            return self.seek(0)
        return self.step(1)

    def close(self) -> None:
        self.playing = False

    def step(self, delta: int) -> bool:
        """Move delta frames, clamped to the recording.

        Returns:
            True if the current frame changed
        """
        return self.seek(self.current_frame + delta)

    def seek(self, frame: int) -> bool:
        """Jump to a frame index, clamped to [0, frame_count - 1].

        Returns:
            True if the current frame changed
        """
        if not self.frame_count:
            return False
        target = min(max(frame, 0), self.frame_count - 1)
        if target == self.current_frame:
            return False
        self._apply(target)
        return True

    def seek_fraction(self, fraction: float) -> bool:
        """Jump to int(frame_count * fraction); 1.0 selects the last frame."""
        return self.seek(int(self.frame_count * fraction))

    def inspect_node(self, index: int) -> NodeInspection:
        """Per-direction breakdown of one node in the current frame.

        Raises:
            InvalidArgumentError: If index is outside [0, node_count)
        """
        dims = self.dimensions
        if not 0 <= index < dims.node_count:
            raise InvalidArgumentError(
                f"node index must be in [0, {dims.node_count}), got {index}"
            )
        frame = self._recording.frames[self.current_frame]
        micro = frame.micro_velocity[:, index, :].copy()
        # First position (x fastest) the index layout maps here. When width != height
        # some indices have no position and coordinates is None.
        coords, indices = node_coordinates(dims)
        matches = np.flatnonzero(indices == index)
        coordinates = tuple(int(c) for c in coords[matches[0]]) if matches.size else None
        return NodeInspection(
            index=index,
            coordinates=coordinates,
            density=float(frame.density[index]),
            micro_velocity=micro,
            contribution_sum=float(np.linalg.norm(micro, axis=1).sum()),
        )

    def _apply(self, frame_index: int) -> None:
        frame = self._recording.frames[frame_index]
        dims = self.dimensions
        self._store.set_density(frame.density, dims, changeable=frame.changeable)
        self._store.set_velocity(frame.micro_velocity, dims)
        self.current_frame = frame_index
