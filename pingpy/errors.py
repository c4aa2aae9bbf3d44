from __future__ import annotations


class PingError(Exception):
    """Base class for failures surfaced by a ping run."""


class ResolutionError(PingError):
    """Host cannot be mapped to an address of the requested family."""


class SocketError(PingError):
    """Raw socket could not be opened or stopped delivering data."""


class SendError(PingError):
    """Transient transmission failure; the session retries on the next tick."""


class DecodeError(PingError):
    """Bytes read from the socket are not a valid ICMP message."""
