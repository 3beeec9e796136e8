"""Transport channel: one TCP connection per logical lattice stream.

A channel performs the dimension handshake, polls the solver for the current
frame, accumulates the payload under a bounded retry budget and hands the
decoded array to an injected apply callback. The callback is the only place
where transport data reaches the lattice field store.

Usage:
    channel = TransportChannel(
        port=4001,
        decode=decode_scalars,
        apply=lambda arr, w, h, d: store.set_density(arr, GridDimensions(w, h, d)),
    )
    if not channel.connected:
        channel.connect()
    else:
        channel.poll()

Failure policy: connection and receive failures never raise. connect()
returns False and leaves the channel DISCONNECTED; poll() returns False,
discards partial bytes and leaves the previous frame in the store. A frame
the decoder or apply callback raises on is dropped the same way, with a
warning.

Peer loss is handled two ways:
- an orderly close (zero-byte receive) releases the socket and moves the
  channel to DISCONNECTED, so the host's next tick reconnects;
- a reset or broken pipe (ConnectionResetError, BrokenPipeError) only aborts
  the attempt. The channel stays CONNECTED and later polls keep failing until
  the host calls close() and connect() again.
"""

import logging
import selectors
import socket
import time
from enum import Enum, auto
from typing import Callable, Generic, TypeVar

from latticeview.core.errors import ChannelError, InvalidArgumentError, ProtocolError
from latticeview.core.geometry import EMPTY_DIMENSIONS, GridDimensions
from latticeview.protocol.codec import (
    HANDSHAKE_MIN_LENGTH,
    HEADER_SIZE,
    SIZE_FIELD_OFFSET,
    Command,
    FrameHeader,
    encode_command,
    parse_frame_header,
    parse_handshake,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Decoder = Callable[[bytes], T]
ApplyCallback = Callable[[T, int, int, int], None]
SocketFactory = Callable[[tuple[str, int], float], socket.socket]

LOOPBACK: str = "127.0.0.1"

# Empty receive iterations tolerated while accumulating a payload
DEFAULT_RETRY_BUDGET: int = 1000

# Largest single recv() call [bytes]
RECV_CHUNK: int = 64 * 1024


class ChannelState(Enum):
    """Connection lifecycle of a transport channel."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()


class _AbortPoll(Exception):
    """Internal signal: give up on the current poll attempt."""


class TransportChannel(Generic[T]):
    """Client side of one solver stream.

    Attributes:
        host: Solver address (loopback by default)
        port: Solver port for this stream
        payload_unit: Bytes per declared length unit (1 = byte count,
            16 = element count of float4 records)
        header_size: Fixed header buffer size; None reads only the encoded
            header fields
        retry_budget: Empty receive iterations tolerated per payload
        header_timeout: Upper bound on waiting for a header [s]
        receive_timeout: Readiness wait per payload iteration [s]
        connect_timeout: TCP connect timeout [s]
        dimensions: Grid dimensions from the last handshake
        frames_applied: Frames successfully handed to the apply callback
        frames_dropped: Poll attempts aborted after the poll command was sent
        last_sequence: Sequence byte of the last applied frame
    """

    def __init__(
        self,
        port: int,
        decode: Decoder,
        apply: ApplyCallback,
        host: str = LOOPBACK,
        payload_unit: int = 1,
        header_size: int | None = HEADER_SIZE,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
        header_timeout: float = 1.0,
        receive_timeout: float = 0.001,
        connect_timeout: float = 1.0,
        name: str | None = None,
        socket_factory: SocketFactory | None = None,
    ):
        if payload_unit < 1:
            raise InvalidArgumentError(f"payload_unit must be >= 1, got {payload_unit}")
        if retry_budget < 0:
            raise InvalidArgumentError(f"retry_budget must be >= 0, got {retry_budget}")
        if header_size is not None and header_size < HANDSHAKE_MIN_LENGTH:
            raise InvalidArgumentError(
                f"header_size must be >= {HANDSHAKE_MIN_LENGTH}, got {header_size}"
            )

        self.host = host
        self.port = port
        self.name = name or f"channel:{port}"
        self.payload_unit = payload_unit
        self.header_size = header_size
        self.retry_budget = retry_budget
        self.header_timeout = header_timeout
        self.receive_timeout = receive_timeout
        self.connect_timeout = connect_timeout

        self._decode = decode
        self._apply = apply
        self._socket_factory = socket_factory or socket.create_connection

        self._state = ChannelState.DISCONNECTED
        self._socket: socket.socket | None = None
        self._selector: selectors.BaseSelector | None = None

        self.dimensions: GridDimensions = EMPTY_DIMENSIONS
        self.frames_applied = 0
        self.frames_dropped = 0
        self.last_sequence: int | None = None

    @property
    def state(self) -> ChannelState:
        """Current lifecycle state."""
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def connect(self) -> bool:
        """Open the stream and perform the dimension handshake.

        Returns:
            True if the channel is CONNECTED afterwards. Failures are logged
            and swallowed; the caller retries on a later tick.
        """
        if self.connected:
            return True

        self._state = ChannelState.CONNECTING
        try:
            self._open()
            self._send(Command.HANDSHAKE)
            response = self._receive_handshake()
            self.dimensions = parse_handshake(response)
        except (OSError, ProtocolError, InvalidArgumentError, _AbortPoll) as exc:
            logger.debug("%s: connect to %s:%d failed: %s", self.name, self.host, self.port, exc)
            self._release()
            self._state = ChannelState.DISCONNECTED
            return False

        self._state = ChannelState.CONNECTED
        logger.info(
            "%s: connected to %s:%d, lattice %dx%dx%d",
            self.name,
            self.host,
            self.port,
            *self.dimensions.shape,
        )
        return True

    def close(self) -> None:
        """Send the disconnect notice and release the connection.

        Raises:
            ChannelError: If the channel is not connected (close is not
                idempotent)
        """
        if not self.connected:
            raise ChannelError(f"{self.name}: close() called while {self._state.name}")
        try:
            self._send(Command.DISCONNECT)
        except OSError as exc:
            logger.debug("%s: disconnect notice not delivered: %s", self.name, exc)
        finally:
            self._release()
            self._state = ChannelState.DISCONNECTED
        logger.info("%s: disconnected", self.name)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def poll(self) -> bool:
        """Request the current frame and apply it if it arrives complete.

        Returns:
            True if a frame was decoded and applied, False otherwise. A
            False result leaves the store untouched.
        """
        if not self.connected:
            return False

        try:
            self._drain()
            self._send(Command.POLL)
            header = self._receive_header()
            expected = header.payload_bytes(self.payload_unit)
            payload = self._receive_payload(expected)
        except _AbortPoll as exc:
            return self._drop(str(exc))
        except (OSError, ProtocolError) as exc:
            return self._drop(f"{type(exc).__name__}: {exc}")

        # decode and apply are caller-supplied; whatever they raise drops the frame
        try:
            decoded = self._decode(payload)
        except Exception as exc:
            logger.warning("%s: undecodable %d-byte payload: %s", self.name, len(payload), exc)
            self.frames_dropped += 1
            return False

        width, height, depth = self.dimensions.shape
        try:
            self._apply(decoded, width, height, depth)
        except Exception as exc:
            logger.warning("%s: frame rejected by store: %s", self.name, exc)
            self.frames_dropped += 1
            return False

        self.frames_applied += 1
        self.last_sequence = header.sequence
        return True

    def _drop(self, reason: str) -> bool:
        self.frames_dropped += 1
        logger.debug("%s: poll aborted: %s", self.name, reason)
        return False

    # -------------------------------------------------------------------------
    # Socket helpers
    # -------------------------------------------------------------------------

    def _open(self) -> None:
        sock = self._socket_factory((self.host, self.port), self.connect_timeout)
        sock.setblocking(True)
        self._socket = sock
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ)

    def _release(self) -> None:
        if self._selector is not None:
            self._selector.close()
            self._selector = None
        if self._socket is not None:
            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Already reset by the peer
                pass
            self._socket.close()
            self._socket = None

    def _send(self, command: Command) -> None:
        self._socket.sendall(encode_command(command))

    def _wait_readable(self, timeout: float) -> bool:
        return bool(self._selector.select(timeout=max(timeout, 0.0)))

    def _recv(self, count: int) -> bytes:
        data = self._socket.recv(min(count, RECV_CHUNK))
        if not data:
            # Peer closed the stream; a later connect() starts over
            self._release()
            self._state = ChannelState.DISCONNECTED
            raise _AbortPoll("peer closed the connection")
        return data

    def _drain(self) -> None:
        """Discard bytes left over from an aborted attempt."""
        while self._wait_readable(0.0):
            self._recv(RECV_CHUNK)

    def _receive_until(self, count: int, timeout: float, what: str) -> bytes:
        """Receive exactly count bytes within timeout seconds."""
        buffer = bytearray()
        deadline = time.monotonic() + timeout
        while len(buffer) < count:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not self._wait_readable(remaining):
                raise _AbortPoll(f"timed out waiting for {what} ({len(buffer)}/{count} bytes)")
            buffer += self._recv(count - len(buffer))
        return bytes(buffer)

    def _receive_handshake(self) -> bytes:
        buffer = bytearray()
        deadline = time.monotonic() + self.header_timeout
        while len(buffer) < HANDSHAKE_MIN_LENGTH:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not self._wait_readable(remaining):
                raise _AbortPoll("timed out waiting for handshake response")
            buffer += self._recv((self.header_size or HANDSHAKE_MIN_LENGTH) - len(buffer))
        return bytes(buffer)

    def _receive_header(self) -> FrameHeader:
        if self.header_size is not None:
            return parse_frame_header(
                self._receive_until(self.header_size, self.header_timeout, "frame header")
            )
        # Compact headers: fixed fields first, then the declared length field
        deadline = time.monotonic() + self.header_timeout
        fixed = self._receive_until(SIZE_FIELD_OFFSET, self.header_timeout, "frame header")
        size_of_size = fixed[2]
        remaining = max(deadline - time.monotonic(), 0.0)
        return parse_frame_header(
            fixed + self._receive_until(size_of_size, remaining, "length field")
        )

    def _receive_payload(self, expected: int) -> bytes:
        """Accumulate expected bytes, tolerating retry_budget empty waits."""
        buffer = bytearray()
        retries = 0
        while len(buffer) < expected:
            if not self._wait_readable(self.receive_timeout):
                retries += 1
                if retries > self.retry_budget:
                    raise _AbortPoll(
                        f"retry budget exhausted at {len(buffer)}/{expected} payload bytes"
                    )
                continue
            buffer += self._recv(expected - len(buffer))
            retries = 0
        return bytes(buffer)
