"""Live frame sources backed by transport channels.

- NetworkedSource: split streams, velocity on one port and density on another
- CombinedSource: one stream of (vx, vy, vz, density) records

Both reconnect lazily: a tick on a disconnected channel attempts a connect,
a tick on a connected channel polls. Neither ever raises for network
failures, so the host loop keeps rendering the last good frame.
"""

import logging

import numpy as np

from latticeview.fields.store import LatticeFieldStore
from latticeview.params.schema import ChannelParams, StreamParams
from latticeview.protocol.channel import SocketFactory, TransportChannel
from latticeview.protocol.codec import RECORD_BYTES, decode_cells, decode_padded_vectors, decode_scalars

logger = logging.getLogger(__name__)


def _channel_kwargs(params: ChannelParams, socket_factory: SocketFactory | None) -> dict:
    return {
        "host": params.host,
        "retry_budget": params.retry_budget,
        "header_timeout": params.header_timeout,
        "receive_timeout": params.receive_timeout,
        "connect_timeout": params.connect_timeout,
        "socket_factory": socket_factory,
    }


def _tick(channel: TransportChannel) -> bool:
    """Connect if needed, otherwise poll. True if a frame was applied."""
    if channel.connected:
        return channel.poll()
    channel.connect()
    return False


def _close(channel: TransportChannel | None) -> None:
    if channel is not None and channel.connected:
        channel.close()


class NetworkedSource:
    """Solver stream with separate velocity and density channels.

    The velocity stream carries one aggregated vector per node as 16-byte
    records (the fourth float is padding); the density stream carries one
    f32 per node. Both declare payload lengths in bytes.
    """

    def __init__(
        self,
        store: LatticeFieldStore | None = None,
        stream: StreamParams | None = None,
        channel: ChannelParams | None = None,
        socket_factory: SocketFactory | None = None,
    ):
        self._store = store if store is not None else LatticeFieldStore()
        self._stream = stream or StreamParams()
        self._channel_params = channel or ChannelParams()
        self._socket_factory = socket_factory
        self.velocity_channel: TransportChannel[np.ndarray] | None = None
        self.density_channel: TransportChannel[np.ndarray] | None = None

    @property
    def name(self) -> str:
        return "Networked Simulation"

    @property
    def store(self) -> LatticeFieldStore:
        return self._store

    @property
    def channels(self) -> list[TransportChannel]:
        return [c for c in (self.velocity_channel, self.density_channel) if c is not None]

    def init(self) -> None:
        logger.info(
            "Starting network streams (velocity:%d, density:%d)",
            self._stream.velocity_port,
            self._stream.density_port,
        )
        kwargs = _channel_kwargs(self._channel_params, self._socket_factory)
        self.velocity_channel = TransportChannel(
            port=self._stream.velocity_port,
            decode=decode_padded_vectors,
            apply=self._apply_velocity,
            name="velocity",
            **kwargs,
        )
        self.density_channel = TransportChannel(
            port=self._stream.density_port,
            decode=decode_scalars,
            apply=self._apply_density,
            name="density",
            **kwargs,
        )
        for channel in self.channels:
            channel.connect()

    def load(self) -> None:
        # Frames arrive through update(); nothing to preload
        pass

    def update(self) -> bool:
        applied = False
        for channel in self.channels:
            applied = _tick(channel) or applied
        return applied

    def close(self) -> None:
        for channel in self.channels:
            _close(channel)

    def _apply_velocity(self, velocities: np.ndarray, width: int, height: int, depth: int) -> None:
        self._store.set_macro_velocity(velocities, (width, height, depth))

    def _apply_density(self, densities: np.ndarray, width: int, height: int, depth: int) -> None:
        self._store.set_density(densities, (width, height, depth))


class CombinedSource:
    """Solver stream carrying velocity and density in one record per node.

    The declared payload length counts 16-byte records.
    """

    def __init__(
        self,
        store: LatticeFieldStore | None = None,
        stream: StreamParams | None = None,
        channel: ChannelParams | None = None,
        socket_factory: SocketFactory | None = None,
    ):
        self._store = store if store is not None else LatticeFieldStore()
        self._stream = stream or StreamParams()
        self._channel_params = channel or ChannelParams()
        self._socket_factory = socket_factory
        self.channel: TransportChannel[np.ndarray] | None = None

    @property
    def name(self) -> str:
        return "Combined Simulation"

    @property
    def store(self) -> LatticeFieldStore:
        return self._store

    def init(self) -> None:
        logger.info("Starting combined stream (port %d)", self._stream.combined_port)
        self.channel = TransportChannel(
            port=self._stream.combined_port,
            decode=decode_cells,
            apply=self._apply_cells,
            payload_unit=RECORD_BYTES,
            name="combined",
            **_channel_kwargs(self._channel_params, self._socket_factory),
        )
        self.channel.connect()

    def load(self) -> None:
        pass

    def update(self) -> bool:
        if self.channel is None:
            return False
        return _tick(self.channel)

    def close(self) -> None:
        _close(self.channel)

    def _apply_cells(self, cells: np.ndarray, width: int, height: int, depth: int) -> None:
        self._store.set_cells(cells, (width, height, depth))
