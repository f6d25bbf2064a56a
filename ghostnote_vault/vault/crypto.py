"""
Vault Crypto Core — Key derivation, authenticated encryption and key wrapping.

Implements the two-tier key hierarchy of the vault:
- Master key: Argon2id(password, salt) → 32-byte KEK (never persisted)
- Document keys: random 32-byte DEKs, persisted only as AES-GCM(KEK, DEK)

Ciphertext format (documents, wrapped keys, verification blob):
    [nonce 12B][encrypted_payload + GCM_tag 16B]

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit from the OS CSPRNG; collision probability is
    negligible for the number of messages a single key encrypts here.
"""
import os
import logging
from typing import Optional

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

from ..exceptions import AuthenticationError, FormatError, ParameterError
from .config import KEY_LENGTH, KdfParams
from .keys import DocumentKey, MasterKey, SecretKey

logger = logging.getLogger("ghostnote.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
SALT_SIZE = 32

# Known plaintext sealed under the master key to check passwords on unlock.
VERIFY_MARKER = b"ghostnote-vault-verify-v1"


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Return a fresh random 32-byte vault salt."""
    return os.urandom(SALT_SIZE)


def check_salt(salt: bytes) -> bytes:
    """Reject salts that are not exactly 32 bytes; never pad or truncate."""
    if len(salt) != SALT_SIZE:
        raise FormatError(
            f"Salt must be exactly {SALT_SIZE} bytes, got {len(salt)}"
        )
    return salt


def derive_key(
    secret: str,
    salt: bytes,
    params: Optional[KdfParams] = None,
    key_cls: type = MasterKey,
) -> SecretKey:
    """Derive a 32-byte key from a password or recovery secret with Argon2id.

    Deterministic: the same ``(secret, salt, params)`` always yields the
    same key. The UTF-8 encoding of ``secret`` is held in a mutable buffer
    that is wiped as soon as the hash completes.

    Args:
        secret: Password or normalized recovery secret.
        salt: 32-byte vault salt.
        params: Argon2id cost parameters (production defaults if omitted).
        key_cls: Key type to return.

    Returns:
        Derived key owning its own buffer.

    Raises:
        ParameterError: If the cost parameters are rejected by Argon2.
        FormatError: If the salt is not 32 bytes.
    """
    params = params or KdfParams()
    check_salt(salt)
    material = bytearray(secret.encode("utf-8"))
    try:
        kdf = Argon2id(
            salt=salt,
            length=params.length,
            iterations=params.iterations,
            lanes=params.lanes,
            memory_cost=params.memory_cost,
        )
        return key_cls(bytearray(kdf.derive(material)))
    except (ValueError, UnsupportedAlgorithm) as err:
        raise ParameterError(f"Invalid Argon2id parameters: {err}") from err
    finally:
        for i in range(len(material)):
            material[i] = 0


def derive_master_key(
    password: str, salt: bytes, params: Optional[KdfParams] = None
) -> MasterKey:
    """Derive the vault master key (KEK) from the user's password."""
    return derive_key(password, salt, params, MasterKey)


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

def encrypt(key: SecretKey, plaintext: bytes) -> bytes:
    """Encrypt plaintext under a 256-bit key with AES-256-GCM.

    Format: [nonce 12B][encrypted_payload + GCM_tag 16B]

    Args:
        key: Master or document key.
        plaintext: Data to encrypt, may be empty.

    Returns:
        Self-contained ciphertext bytes.
    """
    cipher = AESGCM(key.view())
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext, None)
    return nonce + ct


def decrypt(key: SecretKey, ciphertext: bytes) -> bytes:
    """Decrypt ciphertext produced by ``encrypt``.

    Fails closed: nothing is returned unless the tag verifies.

    Args:
        key: Key the data was encrypted with.
        ciphertext: Data in format [nonce 12B][payload+tag].

    Returns:
        Decrypted plaintext bytes.

    Raises:
        FormatError: If the data is shorter than a nonce.
        AuthenticationError: If the key is wrong or any byte was altered.
    """
    if len(ciphertext) < NONCE_SIZE:
        raise FormatError(
            f"Ciphertext too short: {len(ciphertext)} bytes "
            f"(minimum {NONCE_SIZE})"
        )
    cipher = AESGCM(key.view())
    nonce = ciphertext[:NONCE_SIZE]
    ct = ciphertext[NONCE_SIZE:]
    try:
        return cipher.decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise AuthenticationError() from err


# ---------------------------------------------------------------------------
# Key wrapping
# ---------------------------------------------------------------------------

def wrap_key(master_key: MasterKey, key: SecretKey) -> bytes:
    """Wrap a key (normally a DEK) under the master key."""
    return encrypt(master_key, key.view())


def unwrap_key(
    master_key: SecretKey, wrapped: bytes, key_cls: type = DocumentKey
) -> SecretKey:
    """Unwrap a key sealed by ``wrap_key``.

    Raises:
        AuthenticationError: If ``master_key`` is not the wrapping key.
        FormatError: If the blob is truncated or does not hold 32 bytes.
    """
    payload = bytearray(decrypt(master_key, wrapped))
    if len(payload) != KEY_LENGTH:
        raise FormatError(
            f"Unwrapped key must be {KEY_LENGTH} bytes, got {len(payload)}"
        )
    return key_cls(payload)


def wrap_document_key(master_key: MasterKey, document_key: DocumentKey) -> bytes:
    return wrap_key(master_key, document_key)


def unwrap_document_key(master_key: MasterKey, wrapped: bytes) -> DocumentKey:
    return unwrap_key(master_key, wrapped, DocumentKey)


# ---------------------------------------------------------------------------
# Password verification
# ---------------------------------------------------------------------------

def make_verification_blob(master_key: MasterKey) -> bytes:
    """Seal the known marker so a later unlock can check a candidate key."""
    return encrypt(master_key, VERIFY_MARKER)


def check_verification_blob(master_key: MasterKey, blob: bytes) -> None:
    """Raise ``AuthenticationError`` unless ``blob`` opens under ``master_key``.

    The marker comparison only runs after the AEAD tag has verified, so
    the key itself never reaches comparison logic.
    """
    if decrypt(master_key, blob) != VERIFY_MARKER:
        raise AuthenticationError()
