"""
Frame source protocol.

A frame source feeds the lattice field store once per host tick. Sources
are independent implementations selected at startup; the viewer owns
drawing, so a source only moves frames into the store.

Lifecycle:
    source.init()      # open connections / parse files
    source.load()      # apply the first available frame, if any
    while running:
        source.update()
    source.close()
"""

from typing import Protocol, runtime_checkable

from latticeview.fields.store import LatticeFieldStore


@runtime_checkable
class FrameSource(Protocol):
    """Protocol for anything that writes frames into a LatticeFieldStore."""

    @property
    def name(self) -> str:
        """Human-readable source name."""
        ...

    @property
    def store(self) -> LatticeFieldStore:
        """Store this source writes into."""
        ...

    def init(self) -> None:
        """Prepare the source (connect, read files)."""
        ...

    def load(self) -> None:
        """Apply the initial frame if one is available."""
        ...

    def update(self) -> bool:
        """Advance one tick.

        Returns:
            True if a new frame was applied to the store
        """
        ...

    def close(self) -> None:
        """Release connections and other resources."""
        ...
