"""Project-wide constants (container layout, size limits, storage naming)."""

KEY_LENGTH: int = 32  # AES-256
NONCE_LENGTH: int = 16
TAG_LENGTH: int = 16
CONTAINER_HEADER_LENGTH: int = NONCE_LENGTH + TAG_LENGTH

DEFAULT_MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024  # 100 MiB
DEFAULT_DATA_DIR: str = "./data"

BLOBS_DIR_NAME: str = "blobs"
METADATA_DIR_NAME: str = "metadata"
STAGING_DIR_NAME: str = "staging"

BLOB_SUFFIX: str = ".enc"
DESCRIPTOR_SUFFIX: str = ".json"
STAGING_PREFIX: str = "upload-"

STREAM_PIECE_SIZE: int = 64 * 1024
MAX_ID_ATTEMPTS: int = 5
OBJECT_ID_PATTERN: str = r"^[A-Za-z0-9_-]{1,128}$"

DEFAULT_UPLOAD_RATE_LIMIT: int = 10
DEFAULT_UPLOAD_RATE_WINDOW_SECONDS: int = 15 * 60
DEFAULT_RECONCILE_INTERVAL_SECONDS: int = 6 * 3600
