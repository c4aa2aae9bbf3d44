from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from icmplib import NameLookupError, is_ipv4_address, is_ipv6_address, resolve
from rich.console import Console
from rich.logging import RichHandler

from .errors import ResolutionError


log = logging.getLogger(__name__)


# ---------------- Console / logging helpers ----------------

def make_console(file=None) -> Console:
    """Plain stdout console for per-packet lines and the report."""
    # highlight off: addresses and numbers should print as-is
    return Console(file=file, highlight=False, soft_wrap=True)


def setup_logging(verbose: bool = False) -> None:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


# ---------------- DNS helpers ----------------


@dataclass(frozen=True)
class ResolvedHost:
    host: str      # what the user typed
    ip: str        # numeric IP for probing
    family: int    # 4 or 6

    @property
    def display(self) -> str:
        literal = is_ipv4_address(self.host) or is_ipv6_address(self.host)
        return self.ip if literal else f"{self.host} [{self.ip}]"


def resolve_host(target: str, family: int = 4) -> ResolvedHost:
    """Resolve target to one address of the requested family, or raise ResolutionError."""
    if family not in (4, 6):
        raise ValueError(f"unknown IP family: {family}")

    wrong_family = is_ipv6_address(target) if family == 4 else is_ipv4_address(target)
    if wrong_family:
        raise ResolutionError(f"{target} is not an IPv{family} address")

    try:
        addresses = resolve(target, family=family)
    except NameLookupError as e:
        raise ResolutionError(f"cannot resolve {target} for IPv{family}") from e

    ip: Optional[str] = addresses[0] if addresses else None
    if ip is None:
        raise ResolutionError(f"no IPv{family} address for {target}")

    log.debug("resolved %s -> %s", target, ip)
    return ResolvedHost(host=target, ip=ip, family=family)
