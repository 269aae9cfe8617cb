"""Manages ciphertext blob files on disk: atomic write, read, delete."""

import os
import re
import secrets
from pathlib import Path
from typing import List, Optional

from common.constants import BLOB_SUFFIX
from common.logging_config import get_logger
from engine.exceptions import BlobMissingError, StorageIOError

logger = get_logger(__name__)

_LOCATOR_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}" + re.escape(BLOB_SUFFIX) + r"$")
_TMP_SUFFIX = ".tmp"


class BlobStorage:
    """
    Flat directory of opaque ciphertext blobs, one file per object.

    Locators are bare file names ("<object_id>.enc"); anything else is
    rejected so a tampered descriptor can never point outside the directory.
    """

    def __init__(self, directory: Path):
        """
        Initialize blob storage.

        Args:
            directory: Directory holding the blob files
        """
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        """Ensure blobs directory exists."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create blob directory {self.directory}: {e}") from e

    @staticmethod
    def locator_for(object_id: str) -> str:
        """
        Derive the blob locator for an object id.

        Args:
            object_id: Object id

        Returns:
            Locator string
        """
        return f"{object_id}{BLOB_SUFFIX}"

    @staticmethod
    def object_id_from_locator(locator: str) -> str:
        return locator[:-len(BLOB_SUFFIX)]

    def get_blob_path(self, locator: str) -> Path:
        """
        Resolve a locator to its file path.

        Args:
            locator: Blob locator

        Returns:
            Path object for the blob file

        Raises:
            StorageIOError: If the locator is not a bare blob file name
        """
        if not _LOCATOR_RE.fullmatch(locator or ""):
            raise StorageIOError(f"Invalid blob locator: {locator!r}")
        return self.directory / locator

    def write_blob(self, locator: str, data: bytes) -> str:
        """
        Write blob data to disk atomically.

        The data goes to a temporary sibling file which is fsynced and then
        renamed over the final name, so readers see either nothing or the
        whole blob.

        Args:
            locator: Blob locator
            data: Container bytes

        Returns:
            String path to written file

        Raises:
            StorageIOError: If the write fails
        """
        self.ensure_directory()
        filepath = self.get_blob_path(locator)
        tmp = filepath.with_name(f".{locator}.{secrets.token_hex(4)}{_TMP_SUFFIX}")
        try:
            with open(tmp, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, filepath)
        except OSError as e:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(f"Failed to remove temporary blob {tmp}: {cleanup_error}")
            raise StorageIOError(f"Failed to write blob {locator}: {e}") from e
        return str(filepath)

    def read_blob(self, locator: str) -> bytes:
        """
        Read an entire blob from disk.

        Args:
            locator: Blob locator

        Returns:
            Container bytes

        Raises:
            BlobMissingError: If the blob does not exist
            StorageIOError: If the read fails
        """
        filepath = self.get_blob_path(locator)
        try:
            return filepath.read_bytes()
        except FileNotFoundError:
            raise BlobMissingError(f"Blob {locator} not found") from None
        except OSError as e:
            raise StorageIOError(f"Failed to read blob {locator}: {e}") from e

    def delete_blob(self, locator: str) -> bool:
        """
        Delete a blob file from disk.

        Args:
            locator: Blob locator

        Returns:
            True if file was deleted, False if it didn't exist

        Raises:
            StorageIOError: If the delete fails for another reason
        """
        filepath = self.get_blob_path(locator)
        try:
            filepath.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f"Failed to delete blob {locator}: {e}") from e

    def blob_exists(self, locator: str) -> bool:
        return self.get_blob_path(locator).exists()

    def get_blob_size(self, locator: str) -> Optional[int]:
        """
        Get size of blob file in bytes.

        Returns:
            Size in bytes, or None if blob doesn't exist
        """
        try:
            return self.get_blob_path(locator).stat().st_size
        except FileNotFoundError:
            return None

    def list_locators(self) -> List[str]:
        """
        List all blob locators in the storage directory.

        Returns:
            Sorted list of locators
        """
        if not self.directory.exists():
            return []
        return sorted(
            path.name for path in self.directory.glob(f"*{BLOB_SUFFIX}")
            if _LOCATOR_RE.fullmatch(path.name)
        )

    def purge_temporary_files(self) -> int:
        """
        Remove temporary files left behind by interrupted writes.

        Only call while no write is in flight (startup).

        Returns:
            Number of files removed
        """
        if not self.directory.exists():
            return 0

        removed = 0
        for path in self.directory.glob(f".*{_TMP_SUFFIX}"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to remove temporary blob {path}: {e}")
        return removed
