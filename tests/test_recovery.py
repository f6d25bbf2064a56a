"""
Tests for the recovery secret and master key escrow.
"""
import base64
import re

import orjson
import pytest

from ghostnote_vault.exceptions import AuthenticationError, FormatError
from ghostnote_vault.vault.crypto import encrypt, generate_salt
from ghostnote_vault.vault.keys import MasterKey
from ghostnote_vault.vault.recovery import (
    RecoveryRecord,
    create_recovery_record,
    generate_recovery_secret,
    normalize_recovery_secret,
    recover_master_key,
)


@pytest.fixture
def salt():
    return generate_salt()


class TestRecoverySecret:
    """Tests for recovery secret generation and normalization."""

    def test_format(self):
        """Secrets are eight dash-separated groups of four base32 characters."""
        secret = generate_recovery_secret()
        assert re.fullmatch(r"([A-Z2-7]{4}-){7}[A-Z2-7]{4}", secret)

    def test_entropy(self):
        """Secrets carry 160 random bits."""
        raw = base64.b32decode(normalize_recovery_secret(generate_recovery_secret()))
        assert len(raw) == 20

    def test_unique(self):
        """Two generated secrets differ."""
        assert generate_recovery_secret() != generate_recovery_secret()

    def test_normalize(self):
        """Dashes, whitespace and case do not matter on re-entry."""
        assert normalize_recovery_secret(" abcd-EFGH ijkl\n-mnop ") == "ABCDEFGHIJKLMNOP"


class TestRecoveryRecord:
    """Tests for escrowing and recovering the master key."""

    def test_recover(self, salt, fast_kdf):
        """The recovery secret opens the record and yields the master key."""
        master_key = MasterKey.generate()
        secret = generate_recovery_secret()
        record = create_recovery_record(master_key, secret, salt, fast_kdf)
        assert recover_master_key(record, secret, salt, fast_kdf) == master_key

    def test_recover_with_sloppy_input(self, salt, fast_kdf):
        """Re-entered secrets may use spaces and lower case."""
        master_key = MasterKey.generate()
        secret = generate_recovery_secret()
        record = create_recovery_record(master_key, secret, salt, fast_kdf)
        sloppy = secret.replace("-", " ").lower()
        assert recover_master_key(record, sloppy, salt, fast_kdf) == master_key

    def test_wrong_secret(self, salt, fast_kdf):
        """A wrong secret fails authentication."""
        record = create_recovery_record(
            MasterKey.generate(), generate_recovery_secret(), salt, fast_kdf,
        )
        with pytest.raises(AuthenticationError):
            recover_master_key(record, generate_recovery_secret(), salt, fast_kdf)

    def test_wrong_salt(self, salt, fast_kdf):
        """The record only opens with the salt it was created under."""
        secret = generate_recovery_secret()
        record = create_recovery_record(MasterKey.generate(), secret, salt, fast_kdf)
        with pytest.raises(AuthenticationError):
            recover_master_key(record, secret, generate_salt(), fast_kdf)

    def test_wrong_payload_size(self, salt, fast_kdf):
        """A record that opens but does not hold 32 bytes is rejected."""
        from ghostnote_vault.vault.recovery import _recovery_key
        secret = generate_recovery_secret()
        rkey = _recovery_key(secret, salt, fast_kdf)
        record = RecoveryRecord(encrypt(rkey, b"\x00" * 16))
        with pytest.raises(AuthenticationError):
            recover_master_key(record, secret, salt, fast_kdf)

    def test_serialization(self, salt, fast_kdf):
        """Records survive to_bytes/from_bytes."""
        record = create_recovery_record(
            MasterKey.generate(), generate_recovery_secret(), salt, fast_kdf,
        )
        data = record.to_bytes()
        assert orjson.loads(data)["version"] == 1
        assert RecoveryRecord.from_bytes(data) == record

    @pytest.mark.parametrize("data", [
        b"not json",
        b"[]",
        b'{"version": 2, "wrapped_master_key": "AAAA"}',
        b'{"version": 1}',
        b'{"version": 1, "wrapped_master_key": "***"}',
        b'{"version": 1, "wrapped_master_key": "AAAA"}',
    ])
    def test_malformed(self, data):
        """Unparseable records are format errors."""
        with pytest.raises(FormatError):
            RecoveryRecord.from_bytes(data)
