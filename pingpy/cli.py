from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .errors import PingError
from .interrupt import InterruptBridge
from .pinger import PingSession, SessionConfig
from .stats import StatsReport
from .util import resolve_host, setup_logging

log = logging.getLogger(__name__)

USAGE = """
ICMP echo (ping) client.
pingpy [-c=count] [-i=interval] [-t=timeout] [-ttl=TTL value] [-s=packetsize] [-6] [-v] host
------------------------------------------------------------------
Example:
pingpy -c=7 -i=1200 example.com

count: Unsigned integer. 0 represents infinite ping.

interval: Unsigned integer. Interval between each ICMP Echo request (in ms). Defaults to 1000ms.

timeout: Unsigned integer. Timeout to wait for response from the host (in ms). Defaults to 1000ms.

packetsize: Unsigned integer. Packet size, in bytes, to ping with. Defaults to 32 bytes, minimum 8.

TTL value: Integer. Time-to-live of the ICMP packets sent. Defaults to 64.

-6: Use IPv6.

-v: Verbose (debug) logging on stderr.
"""


def _unsigned(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid unsigned integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pingpy",
        description="ICMP echo client over raw sockets.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("host", nargs="?", help="Hostname or IP to ping")
    ap.add_argument("-c", dest="count", type=_unsigned, default=0, help="Requests to send, 0 = until interrupted")
    ap.add_argument("-i", dest="interval", type=_unsigned, default=1000, help="Milliseconds between requests")
    ap.add_argument("-t", dest="timeout", type=_unsigned, default=1000, help="Milliseconds to wait for a reply")
    ap.add_argument("-s", dest="size", type=_unsigned, default=32, help="Packet size in bytes (minimum 8)")
    ap.add_argument("-ttl", "--ttl", dest="ttl", type=int, default=64, help="Time-to-live / hop limit")
    ap.add_argument("-6", dest="ipv6", action="store_true", help="Use IPv6")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    return ap


async def run_session(session: PingSession) -> StatsReport:
    """Run a session with SIGINT/SIGTERM wired to session.stop()."""
    with InterruptBridge(session.stop):
        return await session.run()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.host is None:
        print(USAGE)
        return 0

    setup_logging(args.verbose)

    try:
        config = SessionConfig(
            count=args.count,
            interval=args.interval,
            timeout=args.timeout,
            payload_size=args.size,
            ttl=args.ttl,
            family=6 if args.ipv6 else 4,
        )
        log.debug("config: %s", config)
        target = resolve_host(args.host, family=config.family)
        asyncio.run(run_session(PingSession(target, config)))
    except KeyboardInterrupt:
        # signal arrived before the bridge was installed
        return 0
    except (PingError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
