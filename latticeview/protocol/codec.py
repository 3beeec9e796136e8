"""Wire format for lattice snapshot streaming.

Packet layout (solver -> viewer):

    byte 0        status / command id
    byte 1        sequence counter (informational, wraps at 256)
    byte 2        size_of_size: number of bytes in the length field (0-8)
    bytes 3..     payload length, little-endian, size_of_size bytes
    ...           header padding up to HEADER_SIZE bytes
    payload       declared length bytes, possibly split over many receives

The handshake response reuses the header layout with width, height and
depth as unsigned bytes at offsets 3, 4 and 5.

Payload lengths are interpreted with a unit: typed channels declare a byte
count (unit 1), the simplified single-velocity channel declares an element
count of 16-byte float4 records (unit 16).

All functions here are pure; the transport channel owns the sockets.
"""

from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from latticeview.core.dtypes import WIRE_FLOAT
from latticeview.core.errors import ProtocolError
from latticeview.core.geometry import GridDimensions

# Fixed header buffer size used by the solver for every frame header
HEADER_SIZE: int = 1024

# Byte offset of the length field and the handshake dimensions
SIZE_FIELD_OFFSET: int = 3

# The length field is zero-extended into 8 bytes before conversion
MAX_SIZE_OF_SIZE: int = 8

# Handshake responses must reach the depth byte
HANDSHAKE_MIN_LENGTH: int = SIZE_FIELD_OFFSET + 3

# Element sizes [bytes]
SCALAR_BYTES: int = 4
VECTOR_BYTES: int = 12
RECORD_BYTES: int = 16


class Command(IntEnum):
    """Outbound command bytes (viewer -> solver)."""

    POLL = 0
    HANDSHAKE = 1
    DISCONNECT = 255


@dataclass(frozen=True)
class FrameHeader:
    """Decoded frame header.

    Attributes:
        status: Status or command id (byte 0)
        sequence: Sequence counter (byte 1)
        size_of_size: Width of the length field in bytes
        payload_length: Declared payload length in units
    """

    status: int
    sequence: int
    size_of_size: int
    payload_length: int

    @property
    def encoded_length(self) -> int:
        """Bytes actually used by the header fields."""
        return SIZE_FIELD_OFFSET + self.size_of_size

    def payload_bytes(self, unit: int = 1) -> int:
        """Payload size in bytes for a channel with the given length unit."""
        return self.payload_length * unit


# =============================================================================
# Commands and headers
# =============================================================================


def encode_command(command: Command | int) -> bytes:
    """Encode a one-byte outbound command."""
    value = int(command)
    if not 0 <= value <= 255:
        raise ProtocolError(f"command must fit in one byte, got {value}")
    return bytes([value])


def parse_handshake(buffer: bytes) -> GridDimensions:
    """Read grid dimensions from a handshake response.

    Args:
        buffer: Response bytes; only offsets 3, 4 and 5 are interpreted

    Returns:
        GridDimensions(width, height, depth)

    Raises:
        ProtocolError: If the response is too short to hold the dimensions
    """
    if len(buffer) < HANDSHAKE_MIN_LENGTH:
        raise ProtocolError(
            f"handshake response needs {HANDSHAKE_MIN_LENGTH} bytes, got {len(buffer)}"
        )
    width, height, depth = buffer[SIZE_FIELD_OFFSET:HANDSHAKE_MIN_LENGTH]
    return GridDimensions(width, height, depth)


def encode_handshake(
    dims: GridDimensions,
    sequence: int = 0,
    pad_to: int | None = None,
) -> bytes:
    """Build a handshake response the way the solver sends it."""
    data = bytes(
        [
            int(Command.HANDSHAKE),
            sequence % 256,
            3,
            dims.width,
            dims.height,
            dims.depth,
        ]
    )
    return _pad(data, pad_to)


def encode_size(length: int, size_of_size: int | None = None) -> bytes:
    """Encode a payload length as a little-endian field.

    Args:
        length: Non-negative length to encode
        size_of_size: Field width in bytes; smallest width holding length if None

    Returns:
        size_of_size bytes
    """
    if length < 0:
        raise ProtocolError(f"payload length must be non-negative, got {length}")
    needed = max(1, (length.bit_length() + 7) // 8)
    if size_of_size is None:
        size_of_size = needed
    if not 0 <= size_of_size <= MAX_SIZE_OF_SIZE:
        raise ProtocolError(
            f"size_of_size must be in [0, {MAX_SIZE_OF_SIZE}], got {size_of_size}"
        )
    if length >= 1 << (8 * size_of_size):
        raise ProtocolError(
            f"payload length {length} does not fit in {size_of_size} bytes"
        )
    return length.to_bytes(size_of_size, "little")


def decode_size(field: bytes) -> int:
    """Decode a little-endian length field, zero-extended to 8 bytes."""
    if len(field) > MAX_SIZE_OF_SIZE:
        raise ProtocolError(
            f"length field is {len(field)} bytes, max is {MAX_SIZE_OF_SIZE}"
        )
    return int.from_bytes(field.ljust(MAX_SIZE_OF_SIZE, b"\x00"), "little")


def parse_frame_header(buffer: bytes) -> FrameHeader:
    """Decode the fields of a frame header.

    Raises:
        ProtocolError: If size_of_size is above 8 or the buffer is truncated
    """
    if len(buffer) < SIZE_FIELD_OFFSET:
        raise ProtocolError(f"frame header truncated at {len(buffer)} bytes")
    status, sequence, size_of_size = buffer[0], buffer[1], buffer[2]
    if size_of_size > MAX_SIZE_OF_SIZE:
        raise ProtocolError(
            f"size_of_size must be in [0, {MAX_SIZE_OF_SIZE}], got {size_of_size}"
        )
    end = SIZE_FIELD_OFFSET + size_of_size
    if len(buffer) < end:
        raise ProtocolError(
            f"frame header needs {end} bytes for its length field, got {len(buffer)}"
        )
    return FrameHeader(
        status=status,
        sequence=sequence,
        size_of_size=size_of_size,
        payload_length=decode_size(bytes(buffer[SIZE_FIELD_OFFSET:end])),
    )


def encode_frame_header(
    payload_length: int,
    status: int = 0,
    sequence: int = 0,
    size_of_size: int | None = None,
    pad_to: int | None = HEADER_SIZE,
) -> bytes:
    """Build a frame header, padded to the fixed header size by default."""
    size_field = encode_size(payload_length, size_of_size)
    data = bytes([status % 256, sequence % 256, len(size_field)]) + size_field
    return _pad(data, pad_to)


def encode_frame(
    payload: bytes,
    unit: int = 1,
    status: int = 0,
    sequence: int = 0,
    pad_to: int | None = HEADER_SIZE,
) -> bytes:
    """Header plus payload for one frame.

    Args:
        payload: Raw payload bytes
        unit: Length unit of the receiving channel (1 or RECORD_BYTES)
    """
    if len(payload) % unit:
        raise ProtocolError(
            f"payload of {len(payload)} bytes is not a multiple of unit {unit}"
        )
    header = encode_frame_header(
        len(payload) // unit, status=status, sequence=sequence, pad_to=pad_to
    )
    return header + payload


def _pad(data: bytes, pad_to: int | None) -> bytes:
    if pad_to is None:
        return data
    if len(data) > pad_to:
        raise ProtocolError(f"header of {len(data)} bytes exceeds {pad_to}")
    return data.ljust(pad_to, b"\x00")


# =============================================================================
# Payload decoders (bytes -> numpy)
# =============================================================================


def _as_floats(payload: bytes, element_bytes: int) -> np.ndarray:
    if len(payload) % element_bytes:
        raise ProtocolError(
            f"payload of {len(payload)} bytes is not a multiple of {element_bytes}"
        )
    return np.frombuffer(payload, dtype=WIRE_FLOAT).astype(np.float32)


def decode_scalars(payload: bytes) -> np.ndarray:
    """4 bytes -> one f32 scalar. Returns shape (N,)."""
    return _as_floats(payload, SCALAR_BYTES)


def decode_vectors(payload: bytes) -> np.ndarray:
    """12 bytes -> one packed f32 3-vector. Returns shape (N, 3)."""
    return _as_floats(payload, VECTOR_BYTES).reshape(-1, 3)


def decode_padded_vectors(payload: bytes) -> np.ndarray:
    """16 bytes -> one 3-vector; the fourth float is padding. Returns (N, 3)."""
    records = _as_floats(payload, RECORD_BYTES).reshape(-1, 4)
    return np.ascontiguousarray(records[:, :3])


def decode_cells(payload: bytes) -> np.ndarray:
    """16 bytes -> (vx, vy, vz, density) record. Returns shape (N, 4)."""
    return _as_floats(payload, RECORD_BYTES).reshape(-1, 4)


# =============================================================================
# Payload encoders (numpy -> bytes)
# =============================================================================


def encode_scalars(values) -> bytes:
    """Pack scalars as little-endian f32."""
    return np.asarray(values, dtype=WIRE_FLOAT).ravel().tobytes()


def encode_vectors(vectors, padded: bool = False) -> bytes:
    """Pack (N, 3) vectors as f32, optionally padded to 16-byte records."""
    arr = np.asarray(vectors, dtype=WIRE_FLOAT).reshape(-1, 3)
    if padded:
        arr = np.concatenate([arr, np.zeros((len(arr), 1), dtype=WIRE_FLOAT)], axis=1)
    return np.ascontiguousarray(arr).tobytes()


def encode_cells(cells) -> bytes:
    """Pack (N, 4) (vx, vy, vz, density) records as f32."""
    return np.ascontiguousarray(
        np.asarray(cells, dtype=WIRE_FLOAT).reshape(-1, 4)
    ).tobytes()
