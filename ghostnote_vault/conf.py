"""Ghostnote Vault settings.

Default values; ``VaultConfig.from_env`` lets ``GHOSTNOTE_*`` environment
variables override them.
"""
from pathlib import Path

# Notes directory of the desktop app.
NOTES_DIR = Path.home() / "Documents" / "opnotes"

VAULT_DIRNAME = ".vault"
REKEY_DIRNAME = ".vault-rekey"
RETIRED_DIRNAME = ".vault-retired"

SALT_FILENAME = "salt"
VERIFY_FILENAME = "verify"
RECOVERY_FILENAME = "recovery.key"

DOCUMENT_SUFFIX = ".enc"
KEY_SUFFIX = ".key"
PENDING_KEY_SUFFIX = ".key.new"

# inactivity before auto-lock, in seconds
LOCK_TIMEOUT = 300
AUTOLOCK_INTERVAL = 1.0

# Argon2id costs: 64 MiB, 3 passes, 4 lanes
ARGON2_MEMORY_COST = 65536
ARGON2_ITERATIONS = 3
ARGON2_LANES = 4

ENV_PREFIX = "GHOSTNOTE_"
