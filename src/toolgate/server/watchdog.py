"""Process shutdown with a hard-exit fallback.

Graceful shutdown terminates every live session. Because a transport or a
browser back end can hang while closing, shutdown first arms a timer on a
separate thread that kills the process outright if the drain takes too long.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from collections.abc import Callable

import anyio

from toolgate.server.session import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 15.0


class ExitWatchdog:
    def __init__(
        self,
        sessions: SessionStore,
        *,
        timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        hard_exit: Callable[[int], object] | None = None,
    ) -> None:
        self.sessions = sessions
        self.timeout = timeout
        self._hard_exit = hard_exit or os._exit
        self._timer: threading.Timer | None = None
        self._shutting_down = False
        self._drained: anyio.Event | None = None

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def arm(self) -> bool:
        """Start the fallback timer. Returns False if it was already running."""
        self._shutting_down = True
        if self._timer is not None:
            return False
        timer = threading.Timer(self.timeout, self._expire)
        timer.daemon = True
        timer.start()
        self._timer = timer
        logger.info("Shutting down; forcing exit in %s seconds if shutdown hangs", self.timeout)
        return True

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self) -> None:
        logger.error("Shutdown did not finish within %s seconds, forcing exit", self.timeout)
        self._hard_exit(1)

    async def shutdown(self) -> None:
        """Terminate every live session.

        Only the first call does the work; later calls wait for it to finish.
        """
        if self._drained is not None:
            await self._drained.wait()
            return
        self._drained = anyio.Event()
        armed_here = self.arm()
        try:
            await self.sessions.terminate_all()
        finally:
            self._drained.set()
        logger.info("All sessions terminated")
        if armed_here:
            # A timer armed on signal receipt keeps running until the process exits.
            self.disarm()

    async def watch_signals(self, *, exit_process: bool = True) -> None:
        """Wait for SIGINT or SIGTERM, then shut down.

        With `exit_process` the process exits once the drain completes.
        """
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                logger.info("Received %s", signal.Signals(signum).name)
                break
        await self.shutdown()
        if exit_process:
            self._hard_exit(0)
