"""Frame sources: where lattice frames come from.

- NetworkedSource: live solver, separate velocity and density streams
- CombinedSource: live solver, one stream of (velocity, density) records
- PlaybackSource: recorded text file
"""

from latticeview.sources.networked import CombinedSource, NetworkedSource
from latticeview.sources.playback import (
    NodeInspection,
    PlaybackFrame,
    PlaybackRecording,
    PlaybackSource,
    parse_playback_file,
    parse_playback_lines,
)
from latticeview.sources.protocol import FrameSource

__all__ = [
    "FrameSource",
    "NetworkedSource",
    "CombinedSource",
    "PlaybackSource",
    "PlaybackFrame",
    "PlaybackRecording",
    "NodeInspection",
    "parse_playback_file",
    "parse_playback_lines",
]
