from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Optional, Union

from .errors import DecodeError

log = logging.getLogger(__name__)

HEADER_SIZE = 8
FILLER = b"g"

# (echo request, echo reply, destination unreachable, time exceeded)
ICMPV4_TYPES = (8, 0, 3, 11)
ICMPV6_TYPES = (128, 129, 1, 3)

_HEADER = struct.Struct("!BBHHH")


# ---------------- Outcomes ----------------

@dataclass(frozen=True)
class Reply:
    size: int
    sequence: int
    ttl: Optional[int]
    rtt: float  # ms


@dataclass(frozen=True)
class ForeignReply:
    identifier: int
    sequence: int


@dataclass(frozen=True)
class Unreachable:
    code: int


@dataclass(frozen=True)
class TimeExceeded:
    code: int


@dataclass(frozen=True)
class Timeout:
    sequence: int


@dataclass(frozen=True)
class Unrecognized:
    type: int
    code: int


EchoOutcome = Union[Reply, ForeignReply, Unreachable, TimeExceeded, Timeout, Unrecognized]


# ---------------- Encoding ----------------

def checksum(data: bytes) -> int:
    """RFC 1071 internet checksum."""
    if len(data) % 2:
        data += b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def clamp_payload_size(size: int) -> int:
    if size < HEADER_SIZE:
        log.warning("payload size %d is below the %d byte header, using %d", size, HEADER_SIZE, HEADER_SIZE)
        return HEADER_SIZE
    return size


def _types(family: int) -> tuple[int, int, int, int]:
    if family == 4:
        return ICMPV4_TYPES
    if family == 6:
        return ICMPV6_TYPES
    raise ValueError(f"unknown IP family: {family}")


def echo_request_type(family: int) -> int:
    return _types(family)[0]


def encode(identifier: int, sequence: int, payload_size: int, family: int = 4) -> bytes:
    """
    Build an ICMP Echo Request of payload_size bytes (header included).
    The IPv6 checksum is left at zero; the kernel computes it over the pseudo-header.
    """
    request_type = echo_request_type(family)
    size = clamp_payload_size(payload_size)
    body = FILLER * (size - HEADER_SIZE)
    identifier &= 0xFFFF
    sequence &= 0xFFFF

    header = _HEADER.pack(request_type, 0, 0, identifier, sequence)
    if family == 6:
        return header + body
    csum = checksum(header + body)
    return _HEADER.pack(request_type, 0, csum, identifier, sequence) + body


# ---------------- Decoding ----------------

def _strip_ipv4_header(data: bytes) -> tuple[bytes, int]:
    if len(data) < 20:
        raise DecodeError(f"truncated IPv4 packet ({len(data)} bytes)")
    version, ihl = data[0] >> 4, data[0] & 0x0F
    if version != 4:
        raise DecodeError(f"unexpected IP version {version}")
    header_len = ihl * 4
    if ihl < 5 or header_len > len(data):
        raise DecodeError(f"bad IPv4 header length {header_len}")
    return data[header_len:], data[8]


def decode(
    data: bytes,
    family: int,
    identifier: int,
    rtt: float = 0.0,
    ttl: Optional[int] = None,
) -> EchoOutcome:
    """
    Classify one message read from a raw ICMP socket.

    IPv4 sockets hand us the IP header too; its TTL wins over the ttl argument.
    IPv6 sockets deliver the bare ICMPv6 message, so the caller's ttl is used.
    """
    _request, echo_reply, unreachable, time_exceeded = _types(family)
    if family == 4:
        data, ttl = _strip_ipv4_header(data)

    if len(data) < HEADER_SIZE:
        raise DecodeError(f"truncated ICMP message ({len(data)} bytes)")
    msg_type, code, _csum, reply_id, reply_seq = _HEADER.unpack_from(data)

    if msg_type == echo_reply:
        if reply_id == identifier & 0xFFFF:
            return Reply(size=len(data), sequence=reply_seq, ttl=ttl, rtt=rtt)
        return ForeignReply(identifier=reply_id, sequence=reply_seq)
    if msg_type == unreachable:
        return Unreachable(code=code)
    if msg_type == time_exceeded:
        return TimeExceeded(code=code)
    return Unrecognized(type=msg_type, code=code)
