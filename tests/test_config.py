"""
Tests for vault configuration.
"""
import pytest

from ghostnote_vault.exceptions import ConfigurationError
from ghostnote_vault.vault.config import KdfParams, VaultConfig


class TestVaultConfig:
    """Tests for VaultConfig validation and environment loading."""

    def test_paths(self, tmp_path):
        """Artifact paths live under the hidden .vault directory."""
        config = VaultConfig(notes_dir=tmp_path)
        assert config.vault_dir == tmp_path / ".vault"
        assert config.salt_path == tmp_path / ".vault" / "salt"
        assert config.verify_path == tmp_path / ".vault" / "verify"
        assert config.recovery_path == tmp_path / ".vault" / "recovery.key"
        assert config.rekey_dir == tmp_path / ".vault-rekey"

    def test_defaults(self, tmp_path):
        """Production defaults: 5 minute timeout, 64 MiB / 3 passes / 4 lanes."""
        config = VaultConfig(notes_dir=tmp_path)
        assert config.lock_timeout == 300
        assert config.kdf == KdfParams(memory_cost=65536, iterations=3, lanes=4)

    def test_frozen(self, tmp_path):
        """Configuration cannot change after creation."""
        config = VaultConfig(notes_dir=tmp_path)
        with pytest.raises(Exception):
            config.lock_timeout = 5

    def test_notes_dir_is_file(self, tmp_path):
        """A notes path that is a file is rejected."""
        target = tmp_path / "file"
        target.write_text("x")
        with pytest.raises(ConfigurationError):
            VaultConfig.create(notes_dir=target)

    def test_invalid_timeout(self, tmp_path):
        """A zero timeout is rejected."""
        with pytest.raises(ConfigurationError):
            VaultConfig.create(notes_dir=tmp_path, lock_timeout=0)

    def test_from_env(self, tmp_path, monkeypatch):
        """Environment variables override the defaults."""
        monkeypatch.setenv("GHOSTNOTE_NOTES_DIR", str(tmp_path))
        monkeypatch.setenv("GHOSTNOTE_LOCK_TIMEOUT", "42")
        monkeypatch.setenv("GHOSTNOTE_ARGON2_MEMORY_COST", "2048")
        monkeypatch.setenv("GHOSTNOTE_ARGON2_LANES", "2")
        config = VaultConfig.from_env()
        assert config.notes_dir == tmp_path
        assert config.lock_timeout == 42
        assert config.kdf.memory_cost == 2048
        assert config.kdf.lanes == 2
        assert config.kdf.iterations == 3

    def test_from_env_malformed(self, tmp_path, monkeypatch):
        """Non-numeric values raise ConfigurationError."""
        monkeypatch.setenv("GHOSTNOTE_NOTES_DIR", str(tmp_path))
        monkeypatch.setenv("GHOSTNOTE_LOCK_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError):
            VaultConfig.from_env()
