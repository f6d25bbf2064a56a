"""
Vault Configuration — Validated paths, timeouts and key derivation costs.

Reads overrides from environment variables:
    GHOSTNOTE_NOTES_DIR = <notes directory>
    GHOSTNOTE_LOCK_TIMEOUT = <seconds of inactivity before auto-lock>
    GHOSTNOTE_AUTOLOCK_INTERVAL = <scheduler tick in seconds>
    GHOSTNOTE_ARGON2_MEMORY_COST / _ITERATIONS / _LANES = <Argon2id costs>

Security Note:
    Configuration never holds key material, only paths and cost parameters.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .. import conf
from ..exceptions import ConfigurationError, ParameterError

logger = logging.getLogger("ghostnote.vault")

KEY_LENGTH = 32


class KdfParams(BaseModel):
    """Argon2id cost parameters.

    The defaults target roughly a few hundred milliseconds on a desktop
    machine with a 64 MiB working set.
    """

    memory_cost: int = Field(default=conf.ARGON2_MEMORY_COST, ge=8)  # KiB
    iterations: int = Field(default=conf.ARGON2_ITERATIONS, ge=1)
    lanes: int = Field(default=conf.ARGON2_LANES, ge=1, le=255)
    length: int = Field(default=KEY_LENGTH)

    model_config = {"frozen": True}

    @field_validator("length")
    @classmethod
    def validate_length(cls, v: int) -> int:
        """Master keys are always 256-bit."""
        if v != KEY_LENGTH:
            raise ValueError(f"Derived key length must be {KEY_LENGTH} bytes")
        return v

    @model_validator(mode="after")
    def validate_memory(self) -> "KdfParams":
        """Argon2 needs at least 8 KiB of memory per lane."""
        if self.memory_cost < 8 * self.lanes:
            raise ValueError(
                f"memory_cost {self.memory_cost} KiB is below the minimum "
                f"of 8 KiB per lane ({8 * self.lanes} KiB for {self.lanes} lanes)"
            )
        return self

    @classmethod
    def create(cls, **kwargs) -> "KdfParams":
        """Build parameters, reporting invalid costs as ``ParameterError``."""
        try:
            return cls(**kwargs)
        except ValidationError as err:
            raise ParameterError(f"Invalid key derivation parameters: {err}") from err


class VaultConfig(BaseModel):
    """Validated vault configuration.

    Paths are derived from ``notes_dir``; the vault artifacts live in the
    hidden ``.vault`` directory beside the notes.
    """

    notes_dir: Path
    lock_timeout: int = Field(default=conf.LOCK_TIMEOUT, ge=1)
    autolock_interval: float = Field(default=conf.AUTOLOCK_INTERVAL, gt=0)
    kdf: KdfParams = Field(default_factory=KdfParams)

    model_config = {"frozen": True}

    @field_validator("notes_dir")
    @classmethod
    def validate_notes_dir(cls, v: Path) -> Path:
        """Expand ``~`` and reject an existing non-directory path."""
        v = Path(v).expanduser()
        if v.exists() and not v.is_dir():
            raise ValueError(f"Notes path {v} is not a directory")
        return v

    @property
    def vault_dir(self) -> Path:
        return self.notes_dir / conf.VAULT_DIRNAME

    @property
    def rekey_dir(self) -> Path:
        return self.notes_dir / conf.REKEY_DIRNAME

    @property
    def retired_dir(self) -> Path:
        return self.notes_dir / conf.RETIRED_DIRNAME

    @property
    def salt_path(self) -> Path:
        return self.vault_dir / conf.SALT_FILENAME

    @property
    def verify_path(self) -> Path:
        return self.vault_dir / conf.VERIFY_FILENAME

    @property
    def recovery_path(self) -> Path:
        return self.vault_dir / conf.RECOVERY_FILENAME

    @classmethod
    def create(cls, **kwargs) -> "VaultConfig":
        """Build a configuration, reporting problems as ``ConfigurationError``."""
        try:
            return cls(**kwargs)
        except ValidationError as err:
            raise ConfigurationError(f"Invalid vault configuration: {err}") from err

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.

        Raises:
            ConfigurationError: If a variable holds a malformed value.
        """
        prefix = conf.ENV_PREFIX
        notes_dir = os.environ.get(f"{prefix}NOTES_DIR", str(conf.NOTES_DIR))
        try:
            lock_timeout = int(
                os.environ.get(f"{prefix}LOCK_TIMEOUT", conf.LOCK_TIMEOUT)
            )
            autolock_interval = float(
                os.environ.get(f"{prefix}AUTOLOCK_INTERVAL", conf.AUTOLOCK_INTERVAL)
            )
            kdf = {
                "memory_cost": int(
                    os.environ.get(f"{prefix}ARGON2_MEMORY_COST", conf.ARGON2_MEMORY_COST)
                ),
                "iterations": int(
                    os.environ.get(f"{prefix}ARGON2_ITERATIONS", conf.ARGON2_ITERATIONS)
                ),
                "lanes": int(
                    os.environ.get(f"{prefix}ARGON2_LANES", conf.ARGON2_LANES)
                ),
            }
        except ValueError as err:
            raise ConfigurationError(
                f"Malformed {prefix}* environment variable: {err}"
            ) from err
        config = cls.create(
            notes_dir=notes_dir,
            lock_timeout=lock_timeout,
            autolock_interval=autolock_interval,
            kdf=kdf,
        )
        logger.debug(
            "Vault config loaded: notes_dir=%s lock_timeout=%ds",
            config.notes_dir, config.lock_timeout,
        )
        return config
