"""Exception classes raised by the storage engine."""


class VaultError(Exception):
    """
    Base exception class for all engine errors.
    """
    pass


class NotFoundError(VaultError):
    """
    Raised when an object id is unknown to the catalog.
    """
    pass


class BlobMissingError(NotFoundError):
    """
    Raised when a descriptor exists but its ciphertext blob does not.

    Indicates catalog/blob desync (for example a crash in the middle of a
    delete). Callers handle it as NotFoundError.
    """
    pass


class IntegrityError(VaultError):
    """
    Raised when authentication-tag verification fails (tampering,
    corruption, or the wrong key).
    """
    pass


class MalformedContainerError(VaultError):
    """
    Raised when a container is too short to hold a nonce and a tag.
    """
    pass


class DuplicateIdError(VaultError):
    """
    Raised when a descriptor is written under an id that already exists.
    """
    pass


class ConfigurationError(VaultError):
    """
    Raised when the master key or engine settings are missing or invalid.
    """
    pass


class StorageIOError(VaultError):
    """
    Raised when the durable medium fails on read, write or delete.
    """
    pass


class PayloadTooLargeError(VaultError):
    """
    Raised when an upload exceeds the configured size ceiling.
    """
    pass
