"""Ghostnote Vault.

Key management and encryption at rest for the Ghostnote notes app.
"""
from .version import (
    __title__, __description__, __version__, __author__, __author_email__
)
from .exceptions import (
    VaultError,
    ConfigurationError,
    NotInitializedError,
    AlreadyInitializedError,
    ParameterError,
    VaultIOError,
    AuthenticationError,
    FormatError,
    LockedError,
)
from .vault import VaultConfig, VaultService

__all__ = (
    "VaultConfig",
    "VaultService",
    "VaultError",
    "ConfigurationError",
    "NotInitializedError",
    "AlreadyInitializedError",
    "ParameterError",
    "VaultIOError",
    "AuthenticationError",
    "FormatError",
    "LockedError",
)
