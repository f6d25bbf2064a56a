"""
Vault Key Rotation — Re-wrap every document key when the master key changes.

A re-key runs in three steps:

1. Stage the new salt/verify/recovery set and write, one document at a
   time, ``<doc>.key.new`` holding the DEK wrapped under the new master key.
   The original ``<doc>.key`` is left untouched.
2. Commit the staged artifact set (see ``VaultStorage.commit_staged``).
3. Promote every ``.key.new`` over its ``.key`` with ``os.replace``.

A failure before step 2 discards everything staged, so the vault stays
readable under the old master key. After step 2 only renames are left,
and ``resume_interrupted_rekey`` finishes them without any key material.
Document bodies (``.enc``) are never touched: DEKs do not change.

Security Note:
    DEKs exist unwrapped in memory only while each one is re-wrapped.
    Never log key values, only paths and counts.
"""
import os
import logging

from ..exceptions import VaultError, VaultIOError
from .crypto import unwrap_document_key, wrap_document_key
from .documents import iter_key_files, iter_pending_key_files, pending_key_path
from .keys import MasterKey
from .storage import (
    RekeyPhase,
    VaultArtifacts,
    VaultStorage,
    fsync_dir,
    read_file,
    write_durable,
)

logger = logging.getLogger("ghostnote.vault")


def stage_rewrapped_keys(
    storage: VaultStorage,
    old_master_key: MasterKey,
    new_master_key: MasterKey,
) -> dict:
    """Write a ``.key.new`` sidecar under the new master key for every document.

    Existing sidecars from an earlier attempt are overwritten.

    Returns:
        Stats dict with keys: total, rewrapped.

    Raises:
        AuthenticationError: If a document key does not open under the old key.
        FormatError: If a document key file is corrupt.
        VaultIOError: If a key file cannot be read or written.
    """
    stats = {"total": 0, "rewrapped": 0}
    for key_file in iter_key_files(storage.config.notes_dir):
        stats["total"] += 1
        with unwrap_document_key(old_master_key, read_file(key_file)) as dek:
            write_durable(
                pending_key_path(key_file),
                wrap_document_key(new_master_key, dek),
            )
        stats["rewrapped"] += 1
        logger.debug("Re-wrapped document key %s", key_file)
    return stats


def promote_pending_keys(storage: VaultStorage) -> int:
    """Move every ``.key.new`` over its ``.key``. Safe to repeat."""
    promoted = 0
    dirs = set()
    for pending in iter_pending_key_files(storage.config.notes_dir):
        target = pending.with_name(pending.name[: -len(".new")])
        try:
            os.replace(pending, target)
        except OSError as err:
            raise VaultIOError(f"Failed to promote {pending}: {err}") from err
        dirs.add(target.parent)
        promoted += 1
    for directory in dirs:
        fsync_dir(directory)
    return promoted


def discard_pending_keys(storage: VaultStorage) -> int:
    """Delete every ``.key.new`` left by an uncommitted re-key."""
    discarded = 0
    for pending in iter_pending_key_files(storage.config.notes_dir):
        try:
            pending.unlink()
        except OSError as err:
            raise VaultIOError(f"Failed to remove {pending}: {err}") from err
        discarded += 1
    return discarded


def rotate_master_key(
    storage: VaultStorage,
    old_master_key: MasterKey,
    new_master_key: MasterKey,
    artifacts: VaultArtifacts,
) -> dict:
    """Move the vault and every document key to ``new_master_key``.

    Args:
        storage: Vault artifact storage.
        old_master_key: Key currently wrapping the document keys.
        new_master_key: Key derived from the new salt.
        artifacts: New salt/verify/recovery set matching ``new_master_key``.

    Returns:
        Stats dict with keys: total, rewrapped, finished. ``finished`` is
        False when the commit happened but promoting the sidecars failed;
        ``new_master_key`` is current either way and
        ``resume_interrupted_rekey`` completes the promotion.

    Raises:
        VaultError: Any failure before the commit; nothing was changed.
    """
    logger.info("Starting vault re-key")
    try:
        storage.stage(artifacts)
        stats = stage_rewrapped_keys(storage, old_master_key, new_master_key)
        storage.commit_staged()
    except VaultError:
        logger.error("Vault re-key aborted; rolling back staged changes")
        discard_pending_keys(storage)
        storage.discard_staged()
        raise
    # committed: the new key is authoritative from here on
    try:
        promote_pending_keys(storage)
        storage.drop_retired()
    except VaultError as err:
        logger.error("Vault re-key committed but not finished, will resume: %s", err)
        stats["finished"] = False
        return stats
    stats["finished"] = True
    logger.info("Vault re-key complete: %s", stats)
    return stats


def resume_interrupted_rekey(storage: VaultStorage) -> RekeyPhase:
    """Bring the notes directory back to a consistent state after a crash.

    Returns:
        The phase that was found.
    """
    cfg = storage.config
    phase = storage.rekey_phase()
    if phase is RekeyPhase.IDLE:
        # sidecars without a staged set are leftovers of a rolled-back re-key
        if discard_pending_keys(storage):
            logger.warning("Removed stray re-wrapped key files")
        return phase

    logger.warning("Found interrupted vault re-key (%s)", phase.value)
    if phase is RekeyPhase.STAGED:
        discard_pending_keys(storage)
        storage.discard_staged()
        logger.warning("Rolled back uncommitted vault re-key")
        return phase

    if phase is RekeyPhase.SWAPPING:
        try:
            if cfg.rekey_dir.exists():
                os.replace(cfg.rekey_dir, cfg.vault_dir)
            else:
                # staged set vanished: the retired set is the only one left
                os.replace(cfg.retired_dir, cfg.vault_dir)
                discard_pending_keys(storage)
                logger.warning("Restored previous vault artifacts")
                return phase
            fsync_dir(cfg.notes_dir)
        except OSError as err:
            raise VaultIOError(f"Failed to finish vault re-key: {err}") from err

    promoted = promote_pending_keys(storage)
    storage.drop_retired()
    logger.warning("Completed interrupted vault re-key (%d document keys)", promoted)
    return phase
