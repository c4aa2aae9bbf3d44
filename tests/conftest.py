import asyncio
import io
import struct

import pytest
from rich.console import Console

from pingpy.codec import checksum
from pingpy.errors import SendError
from pingpy.util import ResolvedHost


def ipv4_wrap(icmp: bytes, ttl: int = 57) -> bytes:
    """Prefix an ICMP message with a minimal IPv4 header, as a raw socket delivers it."""
    return struct.pack(
        "!BBHHHBBH4s4s",
        0x45, 0, 20 + len(icmp), 0, 0, ttl, 1, 0,
        bytes([127, 0, 0, 1]), bytes([127, 0, 0, 1]),
    ) + icmp


def echo_reply_for(request: bytes, identifier: int | None = None) -> bytes:
    """Turn an IPv4 echo request into the matching echo reply (optionally with another id)."""
    ident, seq = struct.unpack("!HH", request[4:8])
    if identifier is not None:
        ident = identifier
    header = struct.pack("!BBHHH", 0, 0, 0, ident, seq)
    body = request[8:]
    csum = checksum(header + body)
    return struct.pack("!BBHHH", 0, 0, csum, ident, seq) + body


class FakeTransport:
    """
    In-memory stand-in for the raw socket.

    `responder(packet)` returns the list of datagrams the "network" delivers back for
    each request; `send_failures` makes the first N sends fail; `delay` holds the
    answers back for that many seconds.
    """

    def __init__(self, responder=None, send_failures=0, delay=0.0):
        self.responder = responder or (lambda packet: [])
        self.send_failures = send_failures
        self.delay = delay
        self.sent = []
        self.closed = False
        self.queue = asyncio.Queue()

    async def send(self, packet, address):
        if self.send_failures:
            self.send_failures -= 1
            raise SendError("Network is unreachable")
        self.sent.append(packet)
        for datagram in self.responder(packet):
            if self.delay:
                asyncio.get_running_loop().call_later(self.delay, self.queue.put_nowait, datagram)
            else:
                self.queue.put_nowait(datagram)

    async def receive(self):
        return await self.queue.get()

    def close(self):
        self.closed = True


@pytest.fixture
def target():
    return ResolvedHost(host="127.0.0.1", ip="127.0.0.1", family=4)


@pytest.fixture
def output():
    buf = io.StringIO()
    return buf, Console(file=buf, highlight=False, width=120)
