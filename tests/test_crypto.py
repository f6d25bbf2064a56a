"""
Tests for key derivation, authenticated encryption and key wrapping.
"""
import pytest

from ghostnote_vault.exceptions import AuthenticationError, FormatError, ParameterError
from ghostnote_vault.vault.config import KdfParams
from ghostnote_vault.vault.crypto import (
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    check_verification_blob,
    decrypt,
    derive_master_key,
    encrypt,
    generate_salt,
    make_verification_blob,
    unwrap_document_key,
    unwrap_key,
    wrap_document_key,
)
from ghostnote_vault.vault.keys import DocumentKey, MasterKey


@pytest.fixture
def salt():
    return generate_salt()


@pytest.fixture
def master_key():
    return MasterKey.generate()


# --- Key derivation ---

class TestKeyDerivation:
    """Tests for Argon2id master key derivation."""

    def test_salt_size(self, salt):
        """Generated salts are 32 random bytes."""
        assert len(salt) == SALT_SIZE
        assert generate_salt() != salt

    def test_deterministic(self, salt, fast_kdf):
        """Identical password and salt always yield the same key."""
        first = derive_master_key("hunter2", salt, fast_kdf)
        second = derive_master_key("hunter2", salt, fast_kdf)
        assert first == second
        assert len(first.view()) == 32

    def test_deterministic_with_default_costs(self, salt):
        """Production cost parameters are valid and deterministic."""
        first = derive_master_key("hunter2", salt)
        second = derive_master_key("hunter2", salt)
        assert first == second

    def test_different_password(self, salt, fast_kdf):
        """A different password yields a different key."""
        assert derive_master_key("a", salt, fast_kdf) != derive_master_key("b", salt, fast_kdf)

    def test_different_salt(self, fast_kdf):
        """The same password under another salt yields a different key."""
        a = derive_master_key("hunter2", generate_salt(), fast_kdf)
        b = derive_master_key("hunter2", generate_salt(), fast_kdf)
        assert a != b

    def test_wrong_salt_length_rejected(self, fast_kdf):
        """A short salt is rejected, never padded."""
        with pytest.raises(FormatError):
            derive_master_key("hunter2", b"\x00" * 16, fast_kdf)

    def test_invalid_parameters(self):
        """Invalid cost parameters are reported as ParameterError."""
        with pytest.raises(ParameterError):
            KdfParams.create(memory_cost=8, iterations=1, lanes=4)
        with pytest.raises(ParameterError):
            KdfParams.create(iterations=0)

    def test_invalid_parameters_at_derivation(self, salt):
        """Parameters that bypass validation fail inside Argon2 as ParameterError."""
        bogus = KdfParams.model_construct(memory_cost=1, iterations=1, lanes=1, length=32)
        with pytest.raises(ParameterError):
            derive_master_key("hunter2", salt, bogus)


# --- Symmetric cipher ---

class TestSymmetricCipher:
    """Tests for AES-256-GCM encrypt/decrypt framing."""

    @pytest.mark.parametrize("plaintext", [b"", b"x", b"hello world", bytes(range(256)) * 8])
    def test_roundtrip(self, master_key, plaintext):
        """decrypt(k, encrypt(k, m)) == m, including the empty message."""
        assert decrypt(master_key, encrypt(master_key, plaintext)) == plaintext

    def test_layout(self, master_key):
        """Ciphertext is nonce + payload + tag."""
        ct = encrypt(master_key, b"abc")
        assert len(ct) == NONCE_SIZE + 3 + TAG_SIZE

    def test_fresh_nonce_each_time(self, master_key):
        """Encrypting the same message twice never repeats the nonce."""
        a = encrypt(master_key, b"same")
        b = encrypt(master_key, b"same")
        assert a[:NONCE_SIZE] != b[:NONCE_SIZE]
        assert a != b

    def test_any_flipped_byte_fails(self, master_key):
        """Flipping any single byte (nonce, ciphertext or tag) fails authentication."""
        ct = encrypt(master_key, b"secret note")
        for i in range(len(ct)):
            tampered = bytearray(ct)
            tampered[i] ^= 0x01
            with pytest.raises(AuthenticationError):
                decrypt(master_key, bytes(tampered))

    def test_wrong_key_fails(self, master_key):
        """Decrypting under another key fails authentication."""
        ct = encrypt(master_key, b"secret")
        with pytest.raises(AuthenticationError):
            decrypt(MasterKey.generate(), ct)

    def test_short_ciphertext_is_format_error(self, master_key):
        """Data shorter than a nonce is a format error, not an auth error."""
        with pytest.raises(FormatError):
            decrypt(master_key, b"\x00" * (NONCE_SIZE - 1))

    def test_authentication_message_is_generic(self, master_key):
        """Authentication failures do not reveal their cause."""
        with pytest.raises(AuthenticationError) as info:
            decrypt(MasterKey.generate(), encrypt(master_key, b"x"))
        assert str(info.value) == "Authentication failed"


# --- Key wrapping ---

class TestKeyWrap:
    """Tests for wrapping document keys under the master key."""

    def test_roundtrip(self, master_key):
        """unwrap(k, wrap(k, d)) == d."""
        dek = DocumentKey.generate()
        wrapped = wrap_document_key(master_key, dek)
        assert unwrap_document_key(master_key, wrapped) == dek

    def test_unwrap_returns_document_key(self, master_key):
        """Unwrapped keys come back as DocumentKey instances."""
        wrapped = wrap_document_key(master_key, DocumentKey.generate())
        assert isinstance(unwrap_document_key(master_key, wrapped), DocumentKey)

    def test_wrong_master_key(self, master_key):
        """Unwrapping under a different master key fails authentication."""
        wrapped = wrap_document_key(master_key, DocumentKey.generate())
        with pytest.raises(AuthenticationError):
            unwrap_document_key(MasterKey.generate(), wrapped)

    def test_wrong_payload_size(self, master_key):
        """An authentic payload that is not 32 bytes is a format error."""
        blob = encrypt(master_key, b"\x01" * 16)
        with pytest.raises(FormatError):
            unwrap_key(master_key, blob)

    def test_wrapped_layout(self, master_key):
        """A wrapped key is nonce + 32-byte payload + tag."""
        wrapped = wrap_document_key(master_key, DocumentKey.generate())
        assert len(wrapped) == NONCE_SIZE + 32 + TAG_SIZE


# --- Verification blob ---

class TestVerificationBlob:
    """Tests for the password verification blob."""

    def test_correct_key(self, master_key):
        """The blob opens under the key that sealed it."""
        check_verification_blob(master_key, make_verification_blob(master_key))

    def test_wrong_key(self, master_key):
        """The blob does not open under any other key."""
        blob = make_verification_blob(master_key)
        with pytest.raises(AuthenticationError):
            check_verification_blob(MasterKey.generate(), blob)

    def test_wrong_marker(self, master_key):
        """An authentic blob with the wrong marker still fails."""
        with pytest.raises(AuthenticationError):
            check_verification_blob(master_key, encrypt(master_key, b"not the marker"))
