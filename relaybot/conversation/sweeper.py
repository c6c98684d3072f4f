"""
Periodic expiry driver for the conversation store.

Runs ConversationStore.sweep_expired() on a fixed interval as a background
task on the running event loop. The sweep itself never awaits, so it
cannot interleave with an in-flight append on the same loop.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from relaybot.config.logging import get_logger
from relaybot.conversation.store import ConversationStore

logger = get_logger(__name__)

CLEANUP_INTERVAL = timedelta(hours=1)


class ExpirySweeper:
    """
    Background task that expires idle conversations.

    Use as an async context manager, or call start() / stop() explicitly::

        async with ExpirySweeper(store, interval=timedelta(hours=1)):
            await serve_forever()
    """

    def __init__(self, store: ConversationStore, interval: timedelta = CLEANUP_INTERVAL):
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self._store = store
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="conversation-expiry-sweeper")
        logger.debug(f"Expiry sweeper started (interval: {self._interval})")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        task = self._task
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Expiry sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval.total_seconds())
            try:
                self._store.sweep_expired()
            except Exception:
                # Keep the schedule alive; the next tick retries
                logger.exception("Expired conversation sweep failed")

    async def __aenter__(self) -> ExpirySweeper:
        self.start()
        return self

    async def __aexit__(self, *_args) -> None:
        await self.stop()
