"""
VaultService — Command surface of the vault.

Provides the operations consumed by the UI layer:
- ``setup(password)`` — create a vault, return the recovery secret
- ``unlock(password)`` / ``lock()`` / ``touch()`` / ``status()``
- ``recover(recovery_secret, new_password)`` — re-key from the escrow
- ``change_password(current_password, new_password)`` — re-key from the password

and, through ``documents``, the wrap/unwrap primitives consumed by the
notes layer.

Security Note:
    Never log passwords, recovery secrets or key material. Argon2
    derivations always finish before the state lock is taken.
"""
import logging
import threading
from typing import Optional

from ..exceptions import AlreadyInitializedError, AuthenticationError
from .config import VaultConfig
from .crypto import (
    check_verification_blob,
    derive_master_key,
    generate_salt,
    make_verification_blob,
)
from .documents import DocumentCrypto, DocumentStore
from .key_rotation import resume_interrupted_rekey, rotate_master_key
from .keys import MasterKey
from .recovery import (
    create_recovery_record,
    generate_recovery_secret,
    recover_master_key,
)
from .state import VaultState
from .storage import VaultArtifacts, VaultStorage

logger = logging.getLogger("ghostnote.vault")


class VaultService:
    """Orchestrates persisted artifacts, key derivation and the vault state.

    Commands that derive or replace keys (setup, unlock, recover,
    change_password) are serialized by a command lock, so two re-keys
    never interleave. Status, activity and lock calls only touch the
    shared ``VaultState``.
    """

    def __init__(
        self,
        config: VaultConfig,
        state: Optional[VaultState] = None,
    ):
        self._config = config
        self._storage = VaultStorage(config)
        self._state = state or VaultState(config)
        self._commands = threading.Lock()
        self._documents = DocumentCrypto(self._state)
        self._finish_interrupted_rekey()

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def storage(self) -> VaultStorage:
        return self._storage

    @property
    def documents(self) -> DocumentCrypto:
        return self._documents

    def document_store(self) -> DocumentStore:
        return DocumentStore(self._config.notes_dir, self._documents)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_text(value: str, what: str) -> None:
        if not isinstance(value, str):
            raise ValueError(f"{what} must be a string")

    @classmethod
    def _check_password(cls, password: str) -> None:
        cls._check_text(password, "Password")
        if not password:
            raise ValueError("Password cannot be empty")

    def _finish_interrupted_rekey(self) -> None:
        # under the command lock, or from __init__
        if not self._config.notes_dir.exists():
            return

        def _resume(_current):
            resume_interrupted_rekey(self._storage)

        # no document key is read while sidecars are renamed
        self._state.exclusive(_resume)

    def _derive(self, password: str, salt: bytes) -> MasterKey:
        return derive_master_key(password, salt, self._config.kdf)

    def _new_artifacts(self, password: str) -> tuple:
        """Derive a fresh master key and its artifact set for ``password``.

        Returns:
            Tuple of (master_key, artifacts, recovery_secret).
        """
        salt = generate_salt()
        master_key = self._derive(password, salt)
        try:
            recovery_secret = generate_recovery_secret()
            record = create_recovery_record(
                master_key, recovery_secret, salt, self._config.kdf,
            )
            artifacts = VaultArtifacts(
                salt=salt,
                verify=make_verification_blob(master_key),
                recovery=record,
            )
        except Exception:
            master_key.zeroize()
            raise
        return master_key, artifacts, recovery_secret

    def _verified_key(self, password: str, artifacts: VaultArtifacts) -> MasterKey:
        candidate = self._derive(password, artifacts.salt)
        try:
            check_verification_blob(candidate, artifacts.verify)
        except AuthenticationError:
            candidate.zeroize()
            raise
        return candidate

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def is_setup(self) -> bool:
        return self._storage.is_initialized()

    def setup(self, password: str) -> str:
        """Create a new vault and leave it unlocked.

        Args:
            password: Master password.

        Returns:
            The recovery secret. It is not stored anywhere; the user must
            write it down.

        Raises:
            AlreadyInitializedError: If a vault already exists.
        """
        self._check_password(password)
        with self._commands:
            self._finish_interrupted_rekey()
            if self._storage.is_initialized():
                raise AlreadyInitializedError()
            master_key, artifacts, recovery_secret = self._new_artifacts(password)
            try:
                self._storage.create(artifacts)
            except Exception:
                master_key.zeroize()
                raise
            self._state.install(master_key)
        logger.info("Vault created at %s", self._config.vault_dir)
        return recovery_secret

    def unlock(self, password: str) -> None:
        """Unlock the vault with the master password.

        Raises:
            NotInitializedError: If no vault exists.
            AuthenticationError: If the password is wrong; state is unchanged.
        """
        self._check_text(password, "Password")
        with self._commands:
            self._finish_interrupted_rekey()
            artifacts = self._storage.load()
            try:
                master_key = self._verified_key(password, artifacts)
            except AuthenticationError:
                logger.warning("Vault unlock failed")
                raise
            self._state.install(master_key)
        logger.info("Vault unlocked")

    def lock(self) -> None:
        if self._state.lock():
            logger.info("Vault locked")

    def touch(self) -> None:
        self._state.touch()

    def set_lock_timeout(self, seconds: int) -> None:
        self._state.set_lock_timeout(seconds)
        logger.info("Vault lock timeout set to %ds", seconds)

    def status(self) -> dict:
        """Return initialized/locked flags and the auto-lock countdown."""
        snapshot = self._state.snapshot()
        return {
            "initialized": self._storage.is_initialized(),
            **snapshot,
        }

    def recover(self, recovery_secret: str, new_password: str) -> str:
        """Recover the vault with the recovery secret and set a new password.

        Returns:
            A new recovery secret; the old one stops working.

        Raises:
            AuthenticationError: If the recovery secret is wrong.
        """
        self._check_text(recovery_secret, "Recovery secret")
        self._check_password(new_password)
        with self._commands:
            self._finish_interrupted_rekey()
            artifacts = self._storage.load()
            try:
                old_key = recover_master_key(
                    artifacts.recovery, recovery_secret,
                    artifacts.salt, self._config.kdf,
                )
            except AuthenticationError:
                logger.warning("Vault recovery failed")
                raise
            new_secret = self._rekey(old_key, new_password)
        logger.info("Vault recovered with recovery secret")
        return new_secret

    def change_password(self, current_password: str, new_password: str) -> str:
        """Replace the master password.

        Returns:
            A new recovery secret; the old one stops working.

        Raises:
            AuthenticationError: If ``current_password`` is wrong; nothing
                on disk is modified.
        """
        self._check_text(current_password, "Current password")
        self._check_password(new_password)
        with self._commands:
            self._finish_interrupted_rekey()
            artifacts = self._storage.load()
            try:
                old_key = self._verified_key(current_password, artifacts)
            except AuthenticationError:
                logger.warning("Vault password change failed")
                raise
            new_secret = self._rekey(old_key, new_password)
        logger.info("Vault password changed")
        return new_secret

    def _rekey(self, old_key: MasterKey, new_password: str) -> str:
        """Move the vault from ``old_key`` to a key derived from ``new_password``.

        All derivations happen first. The re-wrap and commit then run under
        ``VaultState.exclusive``, so no document key can be wrapped under the
        old key once re-wrapping has started. Document reads and writes wait
        for the re-key; status, touch and the auto-lock check do not, and
        auto-lock skips its ticks until the re-key is done.

        Once the commit has happened the new key is installed and the new
        recovery secret returned, even if promoting the re-wrapped document
        keys failed; the next unlock or re-key finishes that step.
        """
        try:
            new_key, artifacts, recovery_secret = self._new_artifacts(new_password)
        except Exception:
            old_key.zeroize()
            raise

        def _replace(_current):
            stats = rotate_master_key(self._storage, old_key, new_key, artifacts)
            if not stats["finished"]:
                logger.warning("Vault re-key left document keys to promote")
            return new_key

        try:
            self._state.exclusive(_replace)
        except Exception:
            new_key.zeroize()
            raise
        finally:
            old_key.zeroize()
        return recovery_secret

    def close(self) -> None:
        """Lock the vault on shutdown."""
        self.lock()
