"""App state monitor — tracks foreground/background transitions.

The platform layer calls ``update()`` on lifecycle events. The API client
reads ``current()`` when deciding whether a network failure is retried;
import polling and extraction retries suspend on ``wait_foreground()``.
"""

import asyncio
import logging

from tripspire_client.core.domain_types import Connectivity

logger = logging.getLogger(__name__)


class AppStateMonitor:
    def __init__(self, initial: Connectivity = Connectivity.FOREGROUND) -> None:
        self._state = initial
        self._foreground = asyncio.Event()
        if initial is Connectivity.FOREGROUND:
            self._foreground.set()

    def current(self) -> Connectivity:
        return self._state

    @property
    def is_foreground(self) -> bool:
        return self._state is Connectivity.FOREGROUND

    async def wait_foreground(self) -> None:
        """Return once the app is (or comes back) in the foreground."""
        await self._foreground.wait()

    def update(self, state: Connectivity) -> None:
        previous, self._state = self._state, state
        if previous is state:
            return
        logger.info(f"App state {previous.value} -> {state.value}")
        if state is Connectivity.FOREGROUND:
            self._foreground.set()
        else:
            self._foreground.clear()
