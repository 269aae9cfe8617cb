"""Encrypted file storage engine: AEAD codec, metadata catalog, lifecycle manager."""

from engine.blob_storage import BlobStorage
from engine.catalog import Catalog, InMemoryCatalog, JsonFileCatalog
from engine.codec import AeadCodec, decrypt, encrypt, generate_key, generate_key_hex
from engine.config import EngineConfig, load_master_key
from engine.exceptions import (
    BlobMissingError,
    ConfigurationError,
    DuplicateIdError,
    IntegrityError,
    MalformedContainerError,
    NotFoundError,
    PayloadTooLargeError,
    StorageIOError,
    VaultError,
)
from engine.lifecycle import DownloadHandle, RecoveryReport, StorageLifecycleManager

__all__ = [
    "AeadCodec",
    "encrypt",
    "decrypt",
    "generate_key",
    "generate_key_hex",
    "Catalog",
    "JsonFileCatalog",
    "InMemoryCatalog",
    "BlobStorage",
    "EngineConfig",
    "load_master_key",
    "StorageLifecycleManager",
    "DownloadHandle",
    "RecoveryReport",
    "VaultError",
    "NotFoundError",
    "BlobMissingError",
    "IntegrityError",
    "MalformedContainerError",
    "DuplicateIdError",
    "ConfigurationError",
    "StorageIOError",
    "PayloadTooLargeError",
]
