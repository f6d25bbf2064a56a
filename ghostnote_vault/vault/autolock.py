"""
Auto-lock — Periodic task that locks an idle vault.

Every tick the scheduler asks ``VaultState.lock_if_idle()``, which checks
the inactivity predicate and clears the master key under one acquisition
of the state lock. On a transition it notifies observers once.
"""
import asyncio
import inspect
import logging
from typing import Callable, Optional

from .state import VaultState

logger = logging.getLogger("ghostnote.vault")


class AutoLockScheduler:
    """Fixed-interval auto-lock task bound to one ``VaultState``.

    Observers are callables (plain or coroutine functions) invoked with no
    arguments after the vault has been locked for inactivity.
    """

    def __init__(self, state: VaultState, interval: Optional[float] = None):
        self._state = state
        self._interval = interval or state.config.autolock_interval
        self._observers: list[Callable] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, observer: Callable) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Callable) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    async def tick(self) -> bool:
        """Run one check. Returns True if the vault was locked by it."""
        # a re-key may hold the state lock for a while; wait off the loop
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self._state.lock_if_idle):
            return False
        logger.info("Vault auto-locked after inactivity")
        await self._notify()
        return True

    async def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                result = observer()
                if inspect.isawaitable(result):
                    await result
            except Exception as err:
                logger.error("Auto-lock observer %r failed: %s", observer, err)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.tick()

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="ghostnote-autolock",
        )
        logger.debug("Auto-lock scheduler started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Auto-lock scheduler stopped")
