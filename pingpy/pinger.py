from __future__ import annotations

import asyncio
import enum
import logging
import os
import socket
from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Optional, Protocol

from rich.console import Console

from . import codec
from .codec import EchoOutcome, ForeignReply, Reply, Timeout, Unrecognized
from .errors import DecodeError, SendError, SocketError
from .render import format_outcome, render_report
from .stats import StatisticsAccumulator, StatsReport
from .util import ResolvedHost, make_console

log = logging.getLogger(__name__)

RECV_BUFSIZE = 1500


@dataclass(frozen=True)
class SessionConfig:
    count: int = 0          # 0 = until interrupted
    interval: int = 1000    # ms
    timeout: int = 1000     # ms
    payload_size: int = 32  # bytes, ICMP header included
    ttl: int = 64
    family: int = 4

    def __post_init__(self) -> None:
        for name in ("count", "interval", "timeout", "payload_size"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.family not in (4, 6):
            raise ValueError(f"unknown IP family: {self.family}")


class SessionState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


# ---------------- Transport ----------------

class Transport(Protocol):
    async def send(self, packet: bytes, address: str) -> None: ...
    async def receive(self) -> bytes: ...
    def close(self) -> None: ...


class RawSocketTransport:
    """Non-blocking raw ICMP socket driven by the running event loop."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    @classmethod
    def open(cls, family: int, ttl: int) -> "RawSocketTransport":
        try:
            if family == 6:
                sock = socket.socket(socket.AF_INET6, socket.SOCK_RAW, socket.IPPROTO_ICMPV6)
            else:
                sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
        except PermissionError as e:
            raise SocketError(f"cannot open raw ICMP socket: {e} (root or CAP_NET_RAW required)") from e
        except OSError as e:
            raise SocketError(f"cannot open raw ICMP socket: {e}") from e

        try:
            if family == 6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, ttl)
            else:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, ttl)
        except OSError as e:
            sock.close()
            raise SocketError(f"cannot set ttl {ttl}: {e}") from e
        sock.setblocking(False)
        log.debug("opened raw IPv%d socket, ttl=%d", family, ttl)
        return cls(sock)

    async def send(self, packet: bytes, address: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendto(self.sock, packet, (address, 0))
        except OSError as e:
            raise SendError(str(e)) from e

    async def receive(self) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            data, _addr = await loop.sock_recvfrom(self.sock, RECV_BUFSIZE)
        except OSError as e:
            raise SocketError(f"receive failed: {e}") from e
        return data

    def close(self) -> None:
        self.sock.close()
        log.debug("raw socket closed")


TransportFactory = Callable[[int, int], Transport]


# ---------------- Session ----------------

class PingSession:
    """
    One ping run against a single target.

    run() drives the send / wait / sleep loop until the count is reached, stop() is
    called, or a fatal error occurs. The statistics report is printed at most once,
    by the loop itself.
    """

    def __init__(
        self,
        target: ResolvedHost,
        config: SessionConfig,
        *,
        console: Optional[Console] = None,
        identifier: Optional[int] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        if target.family != config.family:
            raise ValueError(f"target is IPv{target.family}, session is IPv{config.family}")
        self.target = target
        self.config = config
        self.console = console or make_console()
        self.identifier = (os.getpid() if identifier is None else identifier) & 0xFFFF
        self.transport_factory = transport_factory or RawSocketTransport.open
        self.stats = StatisticsAccumulator()
        self.state = SessionState.IDLE
        self.sequence = 1  # next sequence number to send
        self.report: Optional[StatsReport] = None
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Ask the loop to finish; safe to call from a signal handler on the loop."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def _finish(self) -> StatsReport:
        if self.report is None:
            self.report = self.stats.report()
            render_report(self.console, self.target, self.report)
        return self.report

    async def run(self) -> StatsReport:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"session already {self.state.value}")

        payload_size = codec.clamp_payload_size(self.config.payload_size)
        try:
            transport = self.transport_factory(self.config.family, self.config.ttl)
        except SocketError:
            self.state = SessionState.FAILED
            raise

        try:
            self.state = SessionState.RUNNING
            self.console.print(
                f"Pinging {self.target.display} with {payload_size} bytes of data:",
                markup=False,
            )
            try:
                await self._loop(transport, payload_size)
            except (DecodeError, SocketError):
                self.state = SessionState.FAILED
                if self.stats.sent:
                    self._finish()
                raise
        finally:
            transport.close()

        if self.state is SessionState.RUNNING:
            self.state = SessionState.INTERRUPTED
        return self._finish()

    async def _loop(self, transport: Transport, payload_size: int) -> None:
        cfg = self.config
        interval = cfg.interval / 1000.0
        while not self.stopping:
            packet = codec.encode(self.identifier, self.sequence, payload_size, cfg.family)
            sent_at = perf_counter()
            try:
                await transport.send(packet, self.target.ip)
            except SendError as e:
                self.console.print(f"Network unreachable: {e}", markup=False)
                await self._pause(interval)
                continue

            sequence = self.sequence
            self.sequence += 1
            self.stats.mark_sent()
            log.debug("sent icmp_seq=%d id=%d", sequence, self.identifier)

            outcome = await self._await_reply(transport, sequence, sent_at)
            if outcome is None:
                return  # interrupted while waiting
            self._handle(outcome)

            if cfg.count > 0 and self.stats.sent >= cfg.count:
                self.state = SessionState.COMPLETED
                return

            await self._pause(interval - (perf_counter() - sent_at))

    async def _await_reply(self, transport: Transport, sequence: int, sent_at: float) -> Optional[EchoOutcome]:
        """
        Read until something answers `sequence`, the deadline passes (Timeout) or the
        session is stopped (None). Our own looped-back requests and replies to older
        sequences are dropped without ending the wait.
        """
        deadline = sent_at + self.config.timeout / 1000.0
        while True:
            data = await self._receive(transport, max(0.0, deadline - perf_counter()))
            if self.stopping:
                return None
            if data is None:
                return Timeout(sequence=sequence)

            rtt_ms = (perf_counter() - sent_at) * 1000.0
            outcome = codec.decode(
                data,
                self.config.family,
                self.identifier,
                rtt=rtt_ms,
                ttl=self.config.ttl,
            )
            if self._is_stray(outcome, sequence):
                log.debug("dropped %r while waiting for icmp_seq=%d", outcome, sequence)
                continue
            return outcome

    async def _receive(self, transport: Transport, timeout: float) -> Optional[bytes]:
        recv = asyncio.ensure_future(transport.receive())
        stop = asyncio.ensure_future(self._stop.wait())
        try:
            done, _pending = await asyncio.wait(
                {recv, stop},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            recv.cancel()
            stop.cancel()

        if recv in done and stop not in done:
            return recv.result()
        return None

    def _is_stray(self, outcome: EchoOutcome, sequence: int) -> bool:
        if isinstance(outcome, Unrecognized):
            return outcome.type == codec.echo_request_type(self.config.family)
        if isinstance(outcome, Reply):
            return outcome.sequence != sequence & 0xFFFF
        return False

    def _handle(self, outcome: EchoOutcome) -> None:
        log.debug("outcome: %r", outcome)
        if isinstance(outcome, Reply):
            self.stats.record(outcome.rtt)
        elif isinstance(outcome, ForeignReply):
            log.info("echo reply id=%d seq=%d is not ours (id=%d)", outcome.identifier, outcome.sequence, self.identifier)
        self.console.print(format_outcome(outcome, self.target), markup=False)

    async def _pause(self, seconds: float) -> None:
        if seconds <= 0 or self.stopping:
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
