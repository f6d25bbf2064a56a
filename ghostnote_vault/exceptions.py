"""
Vault exceptions.

Every error raised by the vault derives from ``VaultError``.
Authentication failures carry a deliberately generic message: they never
say whether a password, a recovery secret or a tampered file was at fault.
"""


class VaultError(Exception):
    """Base class for all vault errors."""


class ConfigurationError(VaultError):
    """Vault path or configuration is missing or invalid."""


class NotInitializedError(ConfigurationError):
    """The vault has not been set up yet."""

    def __init__(self, message: str = "Vault is not initialized"):
        super().__init__(message)


class AlreadyInitializedError(VaultError):
    """``setup`` was called on a vault that already exists."""

    def __init__(self, message: str = "Vault is already initialized"):
        super().__init__(message)


class ParameterError(ConfigurationError):
    """Key derivation cost parameters are invalid."""


class VaultIOError(VaultError, OSError):
    """Reading or writing a vault artifact or document key failed."""


class AuthenticationError(VaultError):
    """Wrong password, wrong recovery secret, or a failed AEAD tag check."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class FormatError(VaultError):
    """Ciphertext, salt, key or record has the wrong shape."""


class LockedError(VaultError):
    """A key-requiring operation was attempted while the vault is locked."""

    def __init__(self, message: str = "Vault is locked"):
        super().__init__(message)
