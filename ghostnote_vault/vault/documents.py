"""
Vault Documents — Cryptographic primitives handed to the notes layer.

Each document has its own DocumentKey (DEK). The document body is
encrypted directly with the DEK and stored as ``<name>.enc``; the DEK is
stored wrapped under the master key as ``<name>.key``. Changing the master
key only rewrites ``.key`` files, never ``.enc`` files.
"""
import os
import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

from .. import conf
from ..exceptions import AuthenticationError
from .crypto import decrypt, encrypt, unwrap_document_key, wrap_document_key
from .keys import DocumentKey
from .state import VaultState
from .storage import atomic_write, read_file

logger = logging.getLogger("ghostnote.vault")


class DocumentCrypto:
    """Key generation, wrapping and content encryption for documents.

    Wrapping and unwrapping need the master key and raise ``LockedError``
    while the vault is locked; content encryption only needs the DEK.
    """

    def __init__(self, state: VaultState):
        self._state = state

    @property
    def state(self) -> VaultState:
        return self._state

    def generate_document_key(self) -> DocumentKey:
        return DocumentKey.generate()

    def wrap_for_storage(
        self,
        document_key: DocumentKey,
        persist: Optional[Callable[[bytes], None]] = None,
    ) -> bytes:
        """Wrap ``document_key`` under the master key.

        If ``persist`` is given it is called with the wrapped key before the
        master key is released, so the write cannot interleave with a
        re-key of the vault.
        """
        def _wrap(master_key):
            wrapped = wrap_document_key(master_key, document_key)
            if persist is not None:
                persist(wrapped)
            return wrapped
        return self._state.with_key(_wrap)

    def unwrap_from_storage(self, wrapped: bytes) -> DocumentKey:
        return self._state.with_key(
            lambda master_key: unwrap_document_key(master_key, wrapped)
        )

    def encrypt_document(self, document_key: DocumentKey, plaintext: bytes) -> bytes:
        return encrypt(document_key, plaintext)

    def decrypt_document(self, document_key: DocumentKey, ciphertext: bytes) -> bytes:
        return decrypt(document_key, ciphertext)


# ---------------------------------------------------------------------------
# File layout
# ---------------------------------------------------------------------------

def enc_path(path: Path) -> Path:
    """Encrypted body path for a document base path."""
    return path.with_name(path.name + conf.DOCUMENT_SUFFIX)


def key_path(path: Path) -> Path:
    """Wrapped key path for a document base path."""
    return path.with_name(path.name + conf.KEY_SUFFIX)


def pending_key_path(key_file: Path) -> Path:
    """Sidecar holding a re-wrapped key until the re-key commits."""
    return key_file.with_name(key_file.name[: -len(conf.KEY_SUFFIX)] + conf.PENDING_KEY_SUFFIX)


def _walk(notes_dir: Path, suffix: str) -> Iterator[Path]:
    for root, dirs, files in os.walk(notes_dir):
        # skip .vault and other hidden directories
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        for name in sorted(files):
            if name.endswith(suffix):
                yield Path(root) / name


def iter_key_files(notes_dir: Path) -> Iterator[Path]:
    """Yield every document ``.key`` file under ``notes_dir``."""
    return _walk(notes_dir, conf.KEY_SUFFIX)


def iter_pending_key_files(notes_dir: Path) -> Iterator[Path]:
    """Yield every ``.key.new`` sidecar left by a re-key."""
    return _walk(notes_dir, conf.PENDING_KEY_SUFFIX)


class DocumentStore:
    """Minimal encrypted document files in the notes directory.

    Document names are paths relative to the notes directory, without
    extension (``inbox/todo`` → ``inbox/todo.enc`` + ``inbox/todo.key``).
    No part of a name may start with a dot: hidden directories are never
    walked when the vault is re-keyed.
    """

    def __init__(self, notes_dir: Path, crypto: DocumentCrypto):
        self._notes_dir = Path(notes_dir)
        self._crypto = crypto

    def _resolve(self, name: str) -> Path:
        if not isinstance(name, str) or not name or Path(name).is_absolute():
            raise ValueError(f"Invalid document name: {name!r}")
        if any(part.startswith(".") for part in Path(name).parts):
            raise ValueError(f"Hidden path in document name: {name!r}")
        base = (self._notes_dir / name).resolve()
        root = self._notes_dir.resolve()
        if root not in base.parents:
            raise ValueError(f"Document {name!r} escapes the notes directory")
        return base

    def _document_key(self, kfile: Path) -> DocumentKey:
        try:
            return self._crypto.unwrap_from_storage(read_file(kfile))
        except AuthenticationError:
            pending = pending_key_path(kfile)
            if not pending.is_file():
                raise
            # re-key committed, sidecar not promoted yet
            return self._crypto.unwrap_from_storage(read_file(pending))

    def exists(self, name: str) -> bool:
        base = self._resolve(name)
        return enc_path(base).is_file() and key_path(base).is_file()

    def save(self, name: str, content: bytes) -> None:
        """Encrypt and write a document, keeping its DEK if it already has one."""
        base = self._resolve(name)
        kfile = key_path(base)
        base.parent.mkdir(parents=True, exist_ok=True)
        if kfile.is_file():
            with self._document_key(kfile) as dek:
                atomic_write(enc_path(base), self._crypto.encrypt_document(dek, content))
            return
        with self._crypto.generate_document_key() as dek:
            # key first: a crash leaves an orphan key, never an unreadable body
            self._crypto.wrap_for_storage(dek, lambda w: atomic_write(kfile, w))
            atomic_write(enc_path(base), self._crypto.encrypt_document(dek, content))
        logger.debug("Created encrypted document %s", name)

    def load(self, name: str) -> bytes:
        base = self._resolve(name)
        with self._document_key(key_path(base)) as dek:
            return self._crypto.decrypt_document(dek, read_file(enc_path(base)))

    def delete(self, name: str) -> None:
        base = self._resolve(name)
        kfile = key_path(base)
        for path in (enc_path(base), kfile, pending_key_path(kfile)):
            path.unlink(missing_ok=True)
