"""
Engine configuration: master key loading and validated settings.

Reads the master key from the environment:
    MASTER_KEY = <64 hex characters, 32 bytes>

Security Note:
    Never log key material. The key is held as SecretBytes so reprs and
    validation errors do not echo it.
"""
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, SecretBytes, ValidationError, field_validator

from common.constants import (
    BLOBS_DIR_NAME,
    DEFAULT_DATA_DIR,
    DEFAULT_MAX_UPLOAD_BYTES,
    KEY_LENGTH,
    METADATA_DIR_NAME,
    STAGING_DIR_NAME,
)
from common.logging_config import get_logger
from engine.exceptions import ConfigurationError

logger = get_logger(__name__)

MASTER_KEY_ENV = "MASTER_KEY"


def load_master_key(environ: Optional[Mapping[str, str]] = None) -> bytes:
    """Load the master key from the MASTER_KEY environment variable.

    Args:
        environ: Mapping to read from (defaults to os.environ).

    Returns:
        Raw 32-byte key.

    Raises:
        ConfigurationError: If the variable is missing, not hex, or not 32 bytes.
    """
    if environ is None:
        environ = os.environ

    raw = environ.get(MASTER_KEY_ENV)
    if not raw or not raw.strip():
        raise ConfigurationError(
            f"{MASTER_KEY_ENV} not set in environment variables. "
            f"Generate one with `vault keygen`."
        )

    try:
        key = bytes.fromhex(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{MASTER_KEY_ENV} must be hex-encoded") from None

    if len(key) != KEY_LENGTH:
        raise ConfigurationError(
            f"Master key must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters), "
            f"got {len(key)} bytes"
        )

    logger.debug("Master key loaded")
    return key


class EngineConfig(BaseModel):
    """Validated engine configuration."""

    master_key: SecretBytes
    data_dir: Path = Field(default=Path(DEFAULT_DATA_DIR))
    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, gt=0)

    @field_validator("master_key")
    @classmethod
    def validate_key_length(cls, v: SecretBytes) -> SecretBytes:
        """Ensure the master key is exactly 32 bytes."""
        if len(v.get_secret_value()) != KEY_LENGTH:
            raise ValueError(f"master_key must be exactly {KEY_LENGTH} bytes")
        return v

    @property
    def blobs_dir(self) -> Path:
        return self.data_dir / BLOBS_DIR_NAME

    @property
    def metadata_dir(self) -> Path:
        return self.data_dir / METADATA_DIR_NAME

    @property
    def staging_dir(self) -> Path:
        return self.data_dir / STAGING_DIR_NAME

    @classmethod
    def build(cls, master_key: bytes, **kwargs) -> "EngineConfig":
        """Create an EngineConfig, reporting invalid values as ConfigurationError.

        Args:
            master_key: Raw 32-byte key.
            **kwargs: data_dir, max_upload_bytes.

        Returns:
            Populated EngineConfig instance.
        """
        try:
            return cls(master_key=master_key, **kwargs)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ConfigurationError(f"Invalid engine configuration: {fields}") from None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Create EngineConfig by loading values from environment.

        Reads MASTER_KEY, DATA_DIR and MAX_FILE_SIZE.

        Returns:
            Populated EngineConfig instance.

        Raises:
            ConfigurationError: If any value is missing or invalid.
        """
        if environ is None:
            environ = os.environ

        master_key = load_master_key(environ)
        data_dir = environ.get("DATA_DIR", DEFAULT_DATA_DIR)
        raw_max = environ.get("MAX_FILE_SIZE", str(DEFAULT_MAX_UPLOAD_BYTES))
        try:
            max_upload_bytes = int(raw_max)
        except ValueError:
            raise ConfigurationError(f"MAX_FILE_SIZE must be an integer, got {raw_max!r}") from None

        return cls.build(
            master_key=master_key,
            data_dir=Path(data_dir),
            max_upload_bytes=max_upload_bytes,
        )
