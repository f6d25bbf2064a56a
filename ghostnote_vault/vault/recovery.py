"""
Vault Recovery — Escrow of the master key under a one-time recovery secret.

The recovery secret is 160 random bits shown to the user once as eight
dash-separated groups of base32 characters (``ABCD-EFGH-...``). A key
derived from it with the vault's Argon2id settings wraps the master key;
the resulting record is stored as ``.vault/recovery.key``.

Record format (orjson):
    {"version": 1, "wrapped_master_key": "<base64 nonce||ciphertext>"}

Security Note:
    The recovery-derived key reuses the vault salt that also salts the
    password-derived key. Two independent secrets hashed under one salt is
    a known trade-off kept for compatibility with existing vaults.
    Never log the recovery secret or the record contents.
"""
import base64
import binascii
import logging
import re
import secrets
from typing import Optional

import orjson

from ..exceptions import AuthenticationError, FormatError
from .config import KdfParams
from .crypto import NONCE_SIZE, TAG_SIZE, derive_key, unwrap_key, wrap_key
from .keys import MasterKey, SecretKey

logger = logging.getLogger("ghostnote.vault")

RECOVERY_SECRET_BYTES = 20  # 160 bits -> 32 base32 chars
GROUP_SIZE = 4
RECORD_VERSION = 1

_SEPARATORS = re.compile(r"[\s\-]+")


def generate_recovery_secret() -> str:
    """Generate a random recovery secret formatted for transcription.

    Returns:
        String like ``ABCD-EFGH-IJKL-MNOP-QRST-UVWX-YZ23-4567``.
    """
    raw = base64.b32encode(secrets.token_bytes(RECOVERY_SECRET_BYTES)).decode("ascii")
    return "-".join(
        raw[i:i + GROUP_SIZE] for i in range(0, len(raw), GROUP_SIZE)
    )


def normalize_recovery_secret(secret: str) -> str:
    """Strip dashes and whitespace and fold case, so re-entry is forgiving."""
    return _SEPARATORS.sub("", secret).upper()


def _recovery_key(secret: str, salt: bytes, params: Optional[KdfParams]) -> SecretKey:
    return derive_key(normalize_recovery_secret(secret), salt, params, SecretKey)


class RecoveryRecord:
    """Master key wrapped under a recovery-secret-derived key."""

    __slots__ = ("wrapped_master_key",)

    def __init__(self, wrapped_master_key: bytes) -> None:
        self.wrapped_master_key = wrapped_master_key

    def to_bytes(self) -> bytes:
        return orjson.dumps({
            "version": RECORD_VERSION,
            "wrapped_master_key": base64.b64encode(self.wrapped_master_key).decode("ascii"),
        })

    @classmethod
    def from_bytes(cls, data: bytes) -> "RecoveryRecord":
        """Parse a stored record.

        Raises:
            FormatError: If the record is not valid JSON, has an unknown
                version, or the wrapped key is not base64.
        """
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise FormatError(f"Recovery record is not valid JSON: {err}") from err
        if not isinstance(parsed, dict):
            raise FormatError("Recovery record must be a JSON object")
        if parsed.get("version") != RECORD_VERSION:
            raise FormatError(
                f"Unsupported recovery record version: {parsed.get('version')!r}"
            )
        encoded = parsed.get("wrapped_master_key")
        if not isinstance(encoded, str):
            raise FormatError("Recovery record has no wrapped master key")
        try:
            wrapped = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as err:
            raise FormatError(f"Recovery record key is not base64: {err}") from err
        if len(wrapped) < NONCE_SIZE + TAG_SIZE:
            raise FormatError(
                f"Recovery record key too short: {len(wrapped)} bytes"
            )
        return cls(wrapped)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecoveryRecord):
            return NotImplemented
        return self.wrapped_master_key == other.wrapped_master_key

    def __repr__(self) -> str:
        return f"<RecoveryRecord [{len(self.wrapped_master_key)} bytes]>"


def create_recovery_record(
    master_key: MasterKey,
    recovery_secret: str,
    salt: bytes,
    params: Optional[KdfParams] = None,
) -> RecoveryRecord:
    """Escrow ``master_key`` under a key derived from ``recovery_secret``.

    Args:
        master_key: Current vault master key.
        recovery_secret: Secret from ``generate_recovery_secret``.
        salt: Vault salt.
        params: Argon2id cost parameters.

    Returns:
        Record ready to persist.
    """
    with _recovery_key(recovery_secret, salt, params) as rkey:
        return RecoveryRecord(wrap_key(rkey, master_key))


def recover_master_key(
    record: RecoveryRecord,
    recovery_secret: str,
    salt: bytes,
    params: Optional[KdfParams] = None,
) -> MasterKey:
    """Open a recovery record with the user's recovery secret.

    Raises:
        AuthenticationError: If the secret is wrong, or the record does not
            hold exactly 32 bytes of key.
    """
    with _recovery_key(recovery_secret, salt, params) as rkey:
        try:
            return unwrap_key(rkey, record.wrapped_master_key, MasterKey)
        except FormatError as err:
            # a short payload means the record is not ours; say nothing more
            raise AuthenticationError() from err
