"""Ghostnote Vault — Password-derived encryption at rest for local notes.

Security Note (Threat Model):
    The master key lives in process memory while the vault is unlocked and
    is overwritten on lock. A memory dump of an unlocked process could
    expose it, together with every document key unwrapped at that moment.
    This is an accepted limitation: hardware-backed key storage is out of
    scope.
"""

from .autolock import AutoLockScheduler
from .config import KdfParams, VaultConfig
from .documents import DocumentCrypto, DocumentStore
from .keys import DocumentKey, MasterKey
from .recovery import generate_recovery_secret, normalize_recovery_secret
from .service import VaultService
from .state import VaultState

__all__ = [
    "AutoLockScheduler",
    "DocumentCrypto",
    "DocumentKey",
    "DocumentStore",
    "KdfParams",
    "MasterKey",
    "VaultConfig",
    "VaultService",
    "VaultState",
    "generate_recovery_secret",
    "normalize_recovery_secret",
]
