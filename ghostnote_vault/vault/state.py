"""
Vault State — The single lock-guarded runtime record of a running vault.

Holds the unlocked master key (if any), the configuration, the activity
clock and the inactivity timeout. Two locks guard it:

- a short-lived field lock around every read and write, so status,
  activity and countdown calls never wait on cryptographic work;
- a key gate held for as long as the master key is in use. Callers that
  need the key pass a function to ``with_key`` (or ``exclusive``) and the
  gate stays held until it returns, so ``lock()`` can never clear the key
  under an in-flight operation and a re-key cannot interleave with a
  document key being wrapped.

The auto-lock check never waits on the gate: a vault whose key is in use
is not idle.
"""
import math
import time
import logging
import threading
from typing import Callable, Optional, TypeVar

from ..exceptions import ConfigurationError, LockedError
from .config import VaultConfig
from .keys import MasterKey

logger = logging.getLogger("ghostnote.vault")

T = TypeVar("T")


class VaultState:
    """Locked/Unlocked state machine around the master key."""

    def __init__(
        self,
        config: VaultConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._mutex = threading.Lock()
        # held while the master key is in use; taken before _mutex
        self._key_gate = threading.RLock()
        self._config = config
        self._clock = clock
        self._master_key: Optional[MasterKey] = None
        self._lock_timeout = config.lock_timeout
        self._last_activity = clock()

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def is_locked(self) -> bool:
        with self._mutex:
            return self._master_key is None

    @property
    def lock_timeout(self) -> int:
        with self._mutex:
            return self._lock_timeout

    def set_lock_timeout(self, seconds: int) -> None:
        """Change the inactivity timeout and restart the countdown."""
        if seconds < 1:
            raise ConfigurationError("Lock timeout must be at least 1 second")
        with self._mutex:
            self._lock_timeout = int(seconds)
            self._last_activity = self._clock()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def install(self, master_key: MasterKey) -> None:
        """Take ownership of ``master_key`` and enter the Unlocked state."""
        with self._key_gate, self._mutex:
            self._swap_key(master_key)

    def _swap_key(self, master_key: Optional[MasterKey]) -> None:
        # caller holds the mutex
        previous, self._master_key = self._master_key, master_key
        if previous is not None and previous is not master_key:
            previous.zeroize()
        self._last_activity = self._clock()

    def lock(self) -> bool:
        """Zeroize the master key. Returns True if the vault was unlocked.

        Waits for any operation currently using the key.
        """
        with self._key_gate, self._mutex:
            return self._clear()

    def _clear(self) -> bool:
        if self._master_key is None:
            return False
        self._master_key.zeroize()
        self._master_key = None
        logger.debug("Master key zeroized")
        return True

    def touch(self) -> None:
        """Record user activity; valid in either state."""
        with self._mutex:
            self._last_activity = self._clock()

    # ------------------------------------------------------------------
    # Auto-lock
    # ------------------------------------------------------------------

    def _idle_for(self) -> float:
        return self._clock() - self._last_activity

    def _remaining(self) -> int:
        return max(0, math.ceil(self._lock_timeout - self._idle_for()))

    def should_lock(self) -> bool:
        """True once an unlocked vault has been idle for the full timeout."""
        with self._mutex:
            return (
                self._master_key is not None
                and self._idle_for() >= self._lock_timeout
            )

    def lock_if_idle(self) -> bool:
        """Check-and-lock under a single acquisition. True if it locked.

        Returns False without waiting while the key is in use.
        """
        if not self._key_gate.acquire(blocking=False):
            return False
        try:
            with self._mutex:
                if self._master_key is None or self._idle_for() < self._lock_timeout:
                    return False
                return self._clear()
        finally:
            self._key_gate.release()

    def remaining_seconds(self) -> int:
        """Whole seconds left before auto-lock; 0 when locked or expired."""
        with self._mutex:
            if self._master_key is None:
                return 0
            return self._remaining()

    def snapshot(self) -> dict:
        """Lock state and countdown read together."""
        with self._mutex:
            locked = self._master_key is None
            remaining = 0 if locked else self._remaining()
            return {
                "locked": locked,
                "timeout_remaining_seconds": remaining,
                "lock_timeout": self._lock_timeout,
            }

    # ------------------------------------------------------------------
    # Key access
    # ------------------------------------------------------------------

    def with_key(self, fn: Callable[[MasterKey], T]) -> T:
        """Run ``fn(master_key)`` while holding the key gate.

        The key must not escape ``fn``.

        Raises:
            LockedError: If the vault is locked.
        """
        with self._key_gate:
            with self._mutex:
                master_key = self._master_key
            if master_key is None:
                raise LockedError()
            return fn(master_key)

    def exclusive(self, fn: Callable[[Optional[MasterKey]], Optional[MasterKey]]) -> None:
        """Run ``fn`` with the current key (or None) and install its result.

        No other key user runs until ``fn`` returns; status and activity
        calls stay available. A ``None`` result leaves the state unchanged.
        """
        with self._key_gate:
            with self._mutex:
                current = self._master_key
            new_key = fn(current)
            if new_key is not None:
                with self._mutex:
                    self._swap_key(new_key)
