import logging
import struct

import pytest

from pingpy import codec
from pingpy.codec import (
    ForeignReply,
    Reply,
    TimeExceeded,
    Unreachable,
    Unrecognized,
    checksum,
    decode,
    encode,
)
from pingpy.errors import DecodeError

from conftest import echo_reply_for, ipv4_wrap


def test_encode_ipv4_layout():
    packet = encode(0x1234, 7, 32)
    assert len(packet) == 32
    msg_type, code, _csum, ident, seq = struct.unpack("!BBHHH", packet[:8])
    assert (msg_type, code, ident, seq) == (8, 0, 0x1234, 7)
    assert packet[8:] == b"g" * 24
    # a correct checksum folds the whole message to zero
    assert checksum(packet) == 0


def test_encode_ipv6_leaves_checksum_to_kernel():
    packet = encode(1, 1, 16, family=6)
    msg_type, code, csum, _ident, _seq = struct.unpack("!BBHHH", packet[:8])
    assert (msg_type, code, csum) == (128, 0, 0)
    assert len(packet) == 16


def test_encode_exactly_header_size_has_no_filler():
    assert len(encode(1, 1, 8)) == 8


def test_encode_clamps_small_payload_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="pingpy.codec"):
        packet = encode(1, 1, 5)
    assert len(packet) == 8
    assert any("payload size 5" in r.getMessage() for r in caplog.records)


def test_encode_wraps_sequence_on_the_wire():
    packet = encode(1, 65536 + 3, 8)
    assert struct.unpack("!H", packet[6:8])[0] == 3


def test_checksum_odd_length():
    # RFC 1071 pads odd input with a zero byte
    assert checksum(b"\x01") == checksum(b"\x01\x00")


def test_decode_own_reply():
    request = encode(42, 5, 32)
    outcome = decode(ipv4_wrap(echo_reply_for(request), ttl=57), 4, 42, rtt=1.5)
    assert outcome == Reply(size=32, sequence=5, ttl=57, rtt=1.5)


def test_decode_foreign_reply():
    request = encode(42, 5, 32)
    outcome = decode(ipv4_wrap(echo_reply_for(request, identifier=99)), 4, 42)
    assert outcome == ForeignReply(identifier=99, sequence=5)


@pytest.mark.parametrize(
    "family, msg_type, expected",
    [
        (4, 3, Unreachable(code=1)),
        (4, 11, TimeExceeded(code=1)),
        (4, 8, Unrecognized(type=8, code=1)),
        (6, 1, Unreachable(code=1)),
        (6, 3, TimeExceeded(code=1)),
        (6, 135, Unrecognized(type=135, code=1)),
    ],
)
def test_decode_classifies_errors(family, msg_type, expected):
    icmp = struct.pack("!BBHI", msg_type, 1, 0, 0) + b"\x00" * 28
    data = ipv4_wrap(icmp) if family == 4 else icmp
    assert decode(data, family, 1) == expected


def test_decode_ipv6_reply_uses_given_ttl():
    icmp = struct.pack("!BBHHH", 129, 0, 0, 7, 2) + b"g" * 8
    assert decode(icmp, 6, 7, rtt=3.0, ttl=64) == Reply(size=16, sequence=2, ttl=64, rtt=3.0)


@pytest.mark.parametrize(
    "data, family",
    [
        (b"", 4),
        (b"\x45" + b"\x00" * 10, 4),
        (b"\x65" + b"\x00" * 27, 4),           # IP version 6 on a v4 socket
        (b"\x4f" + b"\x00" * 27, 4),           # IHL points past the data
        (ipv4_wrap(b"\x00\x00\x00"), 4),       # ICMP part too short
        (b"\x81\x00\x00", 6),
    ],
)
def test_decode_malformed_raises(data, family):
    with pytest.raises(DecodeError):
        decode(data, family, 1)


def test_unknown_family_rejected():
    with pytest.raises(ValueError):
        codec.encode(1, 1, 8, family=5)


def test_echo_request_type_per_family():
    assert codec.echo_request_type(4) == 8
    assert codec.echo_request_type(6) == 128
