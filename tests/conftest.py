"""Shared fixtures for the vault tests."""
import pytest

from ghostnote_vault.vault.config import KdfParams, VaultConfig
from ghostnote_vault.vault.service import VaultService
from ghostnote_vault.vault.state import VaultState


PASSWORD = "hunter2"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fast_kdf():
    """Cheap Argon2id costs so tests do not spend 64 MiB per derivation."""
    return KdfParams(memory_cost=1024, iterations=1, lanes=1)


@pytest.fixture
def config(tmp_path, fast_kdf):
    return VaultConfig(notes_dir=tmp_path / "notes", kdf=fast_kdf, lock_timeout=60)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state(config, clock):
    return VaultState(config, clock=clock)


@pytest.fixture
def service(config, state):
    return VaultService(config, state=state)


@pytest.fixture
def unlocked(service):
    """A freshly set up (and therefore unlocked) vault; yields (service, recovery_secret)."""
    secret = service.setup(PASSWORD)
    return service, secret
