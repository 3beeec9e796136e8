"""Streaming protocol between the lattice solver and the viewer.

- codec: pure wire-format encode/decode functions
- channel: TransportChannel, one connection per logical stream
"""

from latticeview.protocol.channel import ChannelState, TransportChannel
from latticeview.protocol.codec import (
    HEADER_SIZE,
    RECORD_BYTES,
    Command,
    FrameHeader,
    decode_cells,
    decode_padded_vectors,
    decode_scalars,
    decode_vectors,
    encode_cells,
    encode_command,
    encode_frame,
    encode_frame_header,
    encode_handshake,
    encode_scalars,
    encode_size,
    encode_vectors,
    parse_frame_header,
    parse_handshake,
)

__all__ = [
    "ChannelState",
    "TransportChannel",
    "Command",
    "FrameHeader",
    "HEADER_SIZE",
    "RECORD_BYTES",
    "decode_cells",
    "decode_padded_vectors",
    "decode_scalars",
    "decode_vectors",
    "encode_cells",
    "encode_command",
    "encode_frame",
    "encode_frame_header",
    "encode_handshake",
    "encode_scalars",
    "encode_size",
    "encode_vectors",
    "parse_frame_header",
    "parse_handshake",
]
