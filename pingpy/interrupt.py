from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable, Optional, Tuple

log = logging.getLogger(__name__)

DEFAULT_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class InterruptBridge:
    """
    Turns SIGINT/SIGTERM into a call of `on_interrupt` on the event loop.

    The callback only has to flag the stop; whoever runs the ping loop notices it at
    its next suspension point and renders the report itself.
    """

    def __init__(
        self,
        on_interrupt: Callable[[], None],
        signals: Tuple[signal.Signals, ...] = DEFAULT_SIGNALS,
    ) -> None:
        self.on_interrupt = on_interrupt
        self.signals = signals
        self.received: Optional[signal.Signals] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: dict = {}

    def _fire(self, sig: signal.Signals) -> None:
        if self.received is not None:
            return  # one-shot
        self.received = sig
        log.debug("received %s, stopping", sig.name)
        self.on_interrupt()

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self._fire, sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                self._previous[sig] = signal.signal(sig, self._threadsafe_handler)

    def _threadsafe_handler(self, signum, _frame) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._fire, signal.Signals(signum))

    def remove(self) -> None:
        if self._loop is None:
            return
        for sig in self.signals:
            if sig in self._previous:
                signal.signal(sig, self._previous.pop(sig))
            else:
                self._loop.remove_signal_handler(sig)
        self._loop = None

    def __enter__(self) -> "InterruptBridge":
        self.install()
        return self

    def __exit__(self, *exc) -> None:
        self.remove()
