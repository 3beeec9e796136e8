"""Exception hierarchy for LatticeView.

Argument errors derive from the builtin they refine so callers that only
know ValueError/IndexError still catch them.
"""


class LatticeViewError(Exception):
    """Base class for all LatticeView errors."""


class InvalidArgumentError(LatticeViewError, ValueError):
    """An argument is malformed: NaN coordinates, wrong lengths or counts."""


class LatticeRangeError(LatticeViewError, IndexError):
    """A query position lies outside the lattice."""


class ProtocolError(LatticeViewError):
    """Bytes received from the solver do not follow the wire format."""


class ChannelError(LatticeViewError):
    """A transport channel was used in a state that does not allow it."""


class PlaybackFormatError(LatticeViewError, ValueError):
    """A playback file does not follow the snapshot text format."""

    def __init__(self, message: str, line: int | None = None):
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line
