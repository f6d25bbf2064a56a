"""
Vault Storage — Persisted salt, verification blob and recovery record.

The three artifacts always change together. A new set is first written to
``.vault-rekey/``; committing it renames ``.vault`` to ``.vault-retired`` and
``.vault-rekey`` to ``.vault``, after which the retired set is deleted.
``rekey_phase()`` reports where an interrupted commit stopped so callers can
roll it back or forward without any key material.

Security Note:
    Artifacts are created with owner-only permissions. Never log their
    contents, only their paths.
"""
import os
import enum
import shutil
import logging
from pathlib import Path
from typing import NamedTuple

from ..exceptions import FormatError, NotInitializedError, VaultIOError
from .. import conf
from .config import VaultConfig
from .crypto import NONCE_SIZE, TAG_SIZE, check_salt
from .recovery import RecoveryRecord

logger = logging.getLogger("ghostnote.vault")

_DIR_MODE = 0o700
_FILE_MODE = 0o600


class VaultArtifacts(NamedTuple):
    """One consistent set of persisted vault artifacts."""

    salt: bytes
    verify: bytes
    recovery: RecoveryRecord


class RekeyPhase(enum.Enum):
    IDLE = "idle"
    STAGED = "staged"  # new set written, old set still current
    SWAPPING = "swapping"  # old set retired, new set not yet in place
    COMMITTED = "committed"  # new set current, old set not yet deleted


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def fsync_dir(path: Path) -> None:
    """Flush a directory entry so renames inside it survive a crash."""
    if os.name == "nt":
        return
    try:
        fd = os.open(path, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError as err:
        raise VaultIOError(f"Failed to sync directory {path}: {err}") from err


def write_durable(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` and fsync it before returning."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
    except OSError as err:
        raise VaultIOError(f"Failed to write {path}: {err}") from err


def atomic_write(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` via a temp file and ``os.replace``."""
    tmp = path.with_name(f".{path.name}.tmp")
    write_durable(tmp, data)
    try:
        os.replace(tmp, path)
        fsync_dir(path.parent)
    except OSError as err:
        raise VaultIOError(f"Failed to replace {path}: {err}") from err


def read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as err:
        raise VaultIOError(f"Failed to read {path}: {err}") from err


# ---------------------------------------------------------------------------
# Vault artifact storage
# ---------------------------------------------------------------------------

class VaultStorage:
    """Reads and replaces the vault's persisted artifact set."""

    def __init__(self, config: VaultConfig):
        self._config = config

    @property
    def config(self) -> VaultConfig:
        return self._config

    def is_initialized(self) -> bool:
        return self._config.salt_path.is_file()

    def _require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError(
                f"Vault is not initialized (no salt at {self._config.salt_path})"
            )

    def load_salt(self) -> bytes:
        """Return the 32-byte vault salt.

        Raises:
            NotInitializedError: If no vault exists.
            FormatError: If the salt file is not exactly 32 bytes.
        """
        self._require_initialized()
        return check_salt(read_file(self._config.salt_path))

    def load_verify(self) -> bytes:
        self._require_initialized()
        blob = read_file(self._config.verify_path)
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise FormatError(
                f"Verification blob too short: {len(blob)} bytes"
            )
        return blob

    def load_recovery(self) -> RecoveryRecord:
        self._require_initialized()
        return RecoveryRecord.from_bytes(read_file(self._config.recovery_path))

    def load(self) -> VaultArtifacts:
        """Load the complete current artifact set."""
        return VaultArtifacts(
            salt=self.load_salt(),
            verify=self.load_verify(),
            recovery=self.load_recovery(),
        )

    # ------------------------------------------------------------------
    # Replacement
    # ------------------------------------------------------------------

    def stage(self, artifacts: VaultArtifacts) -> None:
        """Write a complete new artifact set to the staging directory."""
        check_salt(artifacts.salt)
        staging = self._config.rekey_dir
        self.discard_staged()
        try:
            self._config.notes_dir.mkdir(parents=True, exist_ok=True)
            staging.mkdir(mode=_DIR_MODE)
        except OSError as err:
            raise VaultIOError(f"Failed to create {staging}: {err}") from err
        write_durable(staging / conf.SALT_FILENAME, artifacts.salt)
        write_durable(staging / conf.VERIFY_FILENAME, artifacts.verify)
        write_durable(staging / conf.RECOVERY_FILENAME, artifacts.recovery.to_bytes())
        fsync_dir(staging)
        logger.debug("Staged vault artifacts in %s", staging)

    def create(self, artifacts: VaultArtifacts) -> None:
        """Persist the first artifact set of a new vault."""
        self.stage(artifacts)
        try:
            os.replace(self._config.rekey_dir, self._config.vault_dir)
            fsync_dir(self._config.notes_dir)
        except OSError as err:
            raise VaultIOError(
                f"Failed to create vault at {self._config.vault_dir}: {err}"
            ) from err

    def commit_staged(self) -> None:
        """Make the staged set current: retire the old set, promote the new one."""
        cfg = self._config
        try:
            os.replace(cfg.vault_dir, cfg.retired_dir)
        except OSError as err:
            raise VaultIOError(f"Failed to retire vault artifacts: {err}") from err
        try:
            os.replace(cfg.rekey_dir, cfg.vault_dir)
        except OSError as err:
            self._restore_retired()
            raise VaultIOError(f"Failed to commit vault artifacts: {err}") from err
        # committed: from here on nothing may raise
        try:
            fsync_dir(cfg.notes_dir)
        except VaultIOError as err:
            logger.warning("Vault artifacts committed but not synced: %s", err)
        logger.debug("Committed staged vault artifacts")

    def _restore_retired(self) -> None:
        """Put the retired set back after a failed commit."""
        cfg = self._config
        try:
            os.replace(cfg.retired_dir, cfg.vault_dir)
        except OSError as err:
            # left for resume_interrupted_rekey, which sees a swap in progress
            logger.error(
                "Could not restore %s after failed commit: %s",
                cfg.retired_dir, err,
            )

    def drop_retired(self) -> None:
        self._remove_tree(self._config.retired_dir)

    def discard_staged(self) -> None:
        self._remove_tree(self._config.rekey_dir)

    def _remove_tree(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as err:
            raise VaultIOError(f"Failed to remove {path}: {err}") from err

    def rekey_phase(self) -> RekeyPhase:
        """Report how far an artifact replacement got."""
        cfg = self._config
        retired = cfg.retired_dir.exists()
        if retired and cfg.vault_dir.exists():
            return RekeyPhase.COMMITTED
        if retired:
            return RekeyPhase.SWAPPING
        if cfg.rekey_dir.exists():
            return RekeyPhase.STAGED
        return RekeyPhase.IDLE
