"""Tests for the wire codec (latticeview/protocol/codec.py)."""

import struct

import numpy as np
import pytest

from latticeview.core.errors import ProtocolError
from latticeview.core.geometry import GridDimensions
from latticeview.protocol.codec import (
    HEADER_SIZE,
    RECORD_BYTES,
    Command,
    decode_cells,
    decode_padded_vectors,
    decode_scalars,
    decode_size,
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


class TestCommands:
    """Tests for outbound command bytes."""

    def test_command_values(self):
        """Poll, handshake and disconnect bytes."""
        assert encode_command(Command.POLL) == b"\x00"
        assert encode_command(Command.HANDSHAKE) == b"\x01"
        assert encode_command(Command.DISCONNECT) == b"\xff"

    def test_rejects_wide_command(self):
        """Commands are a single byte."""
        with pytest.raises(ProtocolError):
            encode_command(256)


class TestHandshake:
    """Tests for the dimension handshake."""

    def test_parse_dimensions_from_bytes_3_to_5(self):
        """[0,0,2,4,3,2] -> (4, 3, 2)."""
        dims = parse_handshake(bytes([0, 0, 2, 4, 3, 2]))
        assert dims == GridDimensions(4, 3, 2)

    def test_parse_padded_response(self):
        """Trailing header padding is ignored."""
        buffer = bytes([1, 0, 3, 10, 20, 30]) + bytes(HEADER_SIZE - 6)
        assert parse_handshake(buffer).shape == (10, 20, 30)

    def test_short_response(self):
        """Fewer than 6 bytes is malformed."""
        with pytest.raises(ProtocolError, match="6 bytes"):
            parse_handshake(bytes([1, 0, 3, 4, 3]))

    def test_encode_matches_parse(self):
        """Encoded handshake is read back as the same dimensions."""
        dims = GridDimensions(255, 1, 7)
        encoded = encode_handshake(dims, pad_to=HEADER_SIZE)
        assert len(encoded) == HEADER_SIZE
        assert parse_handshake(encoded) == dims


class TestFrameHeader:
    """Tests for frame header parsing."""

    def test_four_byte_length(self):
        """[1,5,4,0,0,1,0] has size_of_size 4; bytes 0,0,1,0 little-endian = 65536."""
        header = parse_frame_header(bytes([1, 5, 4, 0, 0, 1, 0]))
        assert header.status == 1
        assert header.sequence == 5
        assert header.size_of_size == 4
        assert header.payload_length == 65536

    def test_256(self):
        """Bytes 0,1,0,0 little-endian = 256."""
        header = parse_frame_header(bytes([0, 0, 4, 0, 1, 0, 0]))
        assert header.payload_length == 256

    def test_zero_extended(self):
        """Short length fields are zero-extended."""
        header = parse_frame_header(bytes([0, 0, 1, 200]))
        assert header.payload_length == 200

    def test_empty_length_field(self):
        """size_of_size 0 declares an empty payload."""
        header = parse_frame_header(bytes([0, 0, 0]))
        assert header.payload_length == 0
        assert header.encoded_length == 3

    def test_eight_byte_length(self):
        """Full 8-byte length field."""
        value = 2**40 + 3
        header = parse_frame_header(bytes([0, 0, 8]) + struct.pack("<Q", value))
        assert header.payload_length == value

    def test_rejects_wide_size_field(self):
        """size_of_size above 8 is malformed."""
        with pytest.raises(ProtocolError, match="size_of_size"):
            parse_frame_header(bytes([0, 0, 9]) + bytes(9))

    def test_rejects_truncated(self):
        """Header shorter than its declared length field."""
        with pytest.raises(ProtocolError):
            parse_frame_header(bytes([0, 0, 4, 1]))
        with pytest.raises(ProtocolError):
            parse_frame_header(bytes([0, 0]))

    def test_payload_bytes_unit(self):
        """Record-counting channels multiply by 16."""
        header = parse_frame_header(encode_frame_header(3))
        assert header.payload_bytes() == 3
        assert header.payload_bytes(RECORD_BYTES) == 48


class TestSizeField:
    """Tests for length field encoding."""

    def test_smallest_width(self):
        """Smallest width holding the value, at least one byte."""
        assert encode_size(0) == b"\x00"
        assert encode_size(255) == b"\xff"
        assert encode_size(256) == b"\x00\x01"

    def test_explicit_width(self):
        """Requested width is honored."""
        assert encode_size(1, size_of_size=4) == b"\x01\x00\x00\x00"

    def test_value_too_large(self):
        """Value must fit in the requested width."""
        with pytest.raises(ProtocolError, match="does not fit"):
            encode_size(256, size_of_size=1)

    def test_decode_round_trip(self):
        """decode_size inverts encode_size."""
        for value in (0, 1, 300, 2**32 + 5):
            assert decode_size(encode_size(value)) == value

    def test_header_padding(self):
        """Frame headers are padded to HEADER_SIZE."""
        header = encode_frame_header(1000, sequence=7)
        assert len(header) == HEADER_SIZE
        assert header[:5] == bytes([0, 7, 2]) + (1000).to_bytes(2, "little")

    def test_sequence_wraps(self):
        """Sequence counter is one byte."""
        assert encode_frame_header(0, sequence=258, pad_to=None)[1] == 2


class TestPayloadCodecs:
    """Tests for payload decoders and encoders."""

    def test_scalars_bit_exact(self):
        """f32 values survive encode/decode bit for bit."""
        values = np.array([0.0, -0.0, 1.5, 3.4028235e38, 1e-45, np.inf], dtype=np.float32)
        decoded = decode_scalars(encode_scalars(values))
        assert decoded.dtype == np.float32
        np.testing.assert_array_equal(decoded.view(np.uint32), values.view(np.uint32))

    def test_scalars_little_endian(self):
        """Wire floats are little-endian."""
        assert decode_scalars(struct.pack("<f", 2.5))[0] == 2.5

    def test_vectors(self):
        """12-byte packed vectors."""
        vectors = np.arange(6, dtype=np.float32).reshape(2, 3)
        np.testing.assert_array_equal(decode_vectors(encode_vectors(vectors)), vectors)

    def test_padded_vectors_drop_fourth_float(self):
        """16-byte records keep xyz only."""
        payload = struct.pack("<8f", 1, 2, 3, 99, 4, 5, 6, 99)
        np.testing.assert_array_equal(
            decode_padded_vectors(payload), [[1, 2, 3], [4, 5, 6]]
        )

    def test_padded_encoder(self):
        """encode_vectors(padded=True) produces 16-byte records."""
        payload = encode_vectors([[1, 2, 3]], padded=True)
        assert len(payload) == RECORD_BYTES
        np.testing.assert_array_equal(decode_padded_vectors(payload), [[1, 2, 3]])

    def test_cells(self):
        """Cells keep all four floats (velocity + density)."""
        cells = np.array([[0.1, 0.2, 0.3, 1.0], [0.0, 0.0, -1.0, 0.5]], dtype=np.float32)
        np.testing.assert_array_equal(decode_cells(encode_cells(cells)), cells)

    @pytest.mark.parametrize(
        "decode,length",
        [(decode_scalars, 6), (decode_vectors, 16), (decode_padded_vectors, 20), (decode_cells, 8)],
    )
    def test_ragged_payload(self, decode, length):
        """Lengths that are not whole elements are malformed."""
        with pytest.raises(ProtocolError, match="multiple"):
            decode(bytes(length))

    def test_empty_payload(self):
        """Empty payload decodes to an empty array."""
        assert decode_scalars(b"").shape == (0,)
        assert decode_cells(b"").shape == (0, 4)

    def test_encode_frame_record_unit(self):
        """Record channels declare element counts."""
        frame = encode_frame(encode_cells(np.zeros((5, 4))), unit=RECORD_BYTES)
        header = parse_frame_header(frame[:HEADER_SIZE])
        assert header.payload_length == 5
        assert len(frame) == HEADER_SIZE + 5 * RECORD_BYTES

    def test_encode_frame_ragged_unit(self):
        """Payload must be whole units."""
        with pytest.raises(ProtocolError):
            encode_frame(bytes(10), unit=RECORD_BYTES)
