"""Storage lifecycle: upload, download and delete of encrypted objects."""

import io
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple, Union

from common.constants import (
    DEFAULT_MAX_UPLOAD_BYTES,
    MAX_ID_ATTEMPTS,
    STAGING_PREFIX,
    STREAM_PIECE_SIZE,
)
from common.logging_config import get_logger
from common.types import ObjectDescriptor
from engine.blob_storage import BlobStorage
from engine.catalog import Catalog, JsonFileCatalog
from engine.codec import AeadCodec
from engine.config import EngineConfig
from engine.exceptions import (
    BlobMissingError,
    DuplicateIdError,
    IntegrityError,
    MalformedContainerError,
    NotFoundError,
    PayloadTooLargeError,
    StorageIOError,
)
from engine.locks import KeyedLock
from engine.utils import generate_object_id, utc_now

logger = get_logger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class DownloadHandle:
    """
    Scoped holder for one decrypted object.

    The plaintext lives only in a bytearray owned by the handle. close()
    overwrites it with zeros and is safe to call more than once;
    iter_chunks() closes the handle when the stream is exhausted, fails,
    or is abandoned.
    """

    def __init__(self, descriptor: ObjectDescriptor, plaintext: bytes):
        self.descriptor = descriptor
        self.content_length = len(plaintext)
        self._buffer: Optional[bytearray] = bytearray(plaintext)

    @property
    def original_name(self) -> str:
        return self.descriptor.original_name

    @property
    def mime_type(self) -> str:
        return self.descriptor.mime_type

    @property
    def size(self) -> int:
        return self.descriptor.size

    @property
    def closed(self) -> bool:
        return self._buffer is None

    def read(self) -> bytes:
        """Return the whole plaintext."""
        if self._buffer is None:
            raise ValueError("download handle is closed")
        return bytes(self._buffer)

    def iter_chunks(self, piece_size: int = STREAM_PIECE_SIZE) -> Iterator[bytes]:
        """
        Stream the plaintext in pieces.

        Args:
            piece_size: Size of each piece in bytes (default 64KB)

        Yields:
            Plaintext pieces
        """
        if self._buffer is None:
            raise ValueError("download handle is closed")
        buffer = self._buffer
        try:
            for offset in range(0, len(buffer), piece_size):
                yield bytes(buffer[offset:offset + piece_size])
        finally:
            self.close()

    def close(self) -> None:
        if self._buffer is not None:
            buffer = self._buffer
            self._buffer = None
            buffer[:] = bytes(len(buffer))

    def __enter__(self) -> "DownloadHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@dataclass
class RecoveryReport:
    """
    Counts of crash residue removed by recover() / reconcile().
    """
    staged_files: int = 0
    temporary_blobs: int = 0
    orphaned_blobs: int = 0
    dangling_descriptors: int = 0


class StorageLifecycleManager:
    """
    The only entry point callers use: composes codec, catalog and blob storage.

    Every object moves absent -> stored -> absent. A descriptor is written
    only after its blob, and a failed descriptor write deletes the blob, so
    the catalog never references a missing blob and no blob is left without
    a descriptor. Work on one id is serialized by a per-id lock.
    """

    def __init__(
        self,
        codec: AeadCodec,
        catalog: Catalog,
        blobs: BlobStorage,
        staging_dir: Path,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self.codec = codec
        self.catalog = catalog
        self.blobs = blobs
        self.staging_dir = Path(staging_dir)
        self.max_upload_bytes = max_upload_bytes
        self._locks = KeyedLock()

    @classmethod
    def from_config(cls, config: EngineConfig) -> "StorageLifecycleManager":
        """
        Build a manager with the JSON catalog and on-disk blobs under data_dir.

        Args:
            config: Validated engine configuration

        Returns:
            StorageLifecycleManager with its directories created
        """
        catalog = JsonFileCatalog(config.metadata_dir)
        blobs = BlobStorage(config.blobs_dir)
        catalog.ensure_directory()
        blobs.ensure_directory()

        manager = cls(
            codec=AeadCodec(config.master_key.get_secret_value()),
            catalog=catalog,
            blobs=blobs,
            staging_dir=config.staging_dir,
            max_upload_bytes=config.max_upload_bytes,
        )
        manager.ensure_staging_directory()
        return manager

    def ensure_staging_directory(self) -> None:
        try:
            self.staging_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create staging directory {self.staging_dir}: {e}") from e

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self,
        name: str,
        mime_type: Optional[str],
        stream: Union[BinaryIO, bytes],
    ) -> ObjectDescriptor:
        """
        Encrypt and store an incoming file.

        Args:
            name: Original file name (untrusted, stored as-is)
            mime_type: Declared content type (informational)
            stream: Binary stream or bytes with the plaintext

        Returns:
            Descriptor of the stored object

        Raises:
            PayloadTooLargeError: If the plaintext exceeds max_upload_bytes
            StorageIOError: If staging, blob or descriptor I/O fails
            DuplicateIdError: If no unused id could be allocated
        """
        if isinstance(stream, (bytes, bytearray)):
            stream = io.BytesIO(stream)

        name = name or "unnamed"
        mime_type = mime_type or DEFAULT_MIME_TYPE

        with self._staged_plaintext(stream) as (staged_path, size):
            try:
                plaintext = staged_path.read_bytes()
            except OSError as e:
                raise StorageIOError(f"Failed to read staged upload: {e}") from e
            container = self.codec.encrypt(plaintext)
            del plaintext

        descriptor = self._commit(name, mime_type, size, container)
        logger.info(
            f"Stored object [object_id={descriptor.object_id}] "
            f"name={descriptor.original_name!r} size={descriptor.size}"
        )
        return descriptor

    def _commit(self, name: str, mime_type: str, size: int, container: bytes) -> ObjectDescriptor:
        for attempt in range(MAX_ID_ATTEMPTS):
            object_id = generate_object_id()
            locator = self.blobs.locator_for(object_id)

            with self._locks.hold(object_id):
                if self.catalog.exists(object_id) or self.blobs.blob_exists(locator):
                    logger.warning(f"Object id collision on {object_id}, retrying (attempt {attempt + 1})")
                    continue

                self.blobs.write_blob(locator, container)

                descriptor = ObjectDescriptor(
                    object_id=object_id,
                    original_name=name,
                    size=size,
                    mime_type=mime_type,
                    created_at=utc_now(),
                    ciphertext_locator=locator,
                )

                try:
                    self.catalog.put(descriptor)
                except Exception:
                    self._rollback_blob(locator)
                    raise

                return descriptor

        raise DuplicateIdError(f"Could not allocate an unused object id after {MAX_ID_ATTEMPTS} attempts")

    def _rollback_blob(self, locator: str) -> None:
        try:
            self.blobs.delete_blob(locator)
            logger.info(f"Rolled back blob {locator} after failed descriptor write")
        except StorageIOError as e:
            logger.error(f"Failed to roll back blob {locator}, left for reconcile: {e}")

    @staticmethod
    def _locator_of(descriptor: ObjectDescriptor) -> str:
        """Return the descriptor's blob locator, refusing one that names another object."""
        expected = BlobStorage.locator_for(descriptor.object_id)
        if descriptor.ciphertext_locator != expected:
            raise StorageIOError(
                f"Descriptor {descriptor.object_id} points at foreign blob "
                f"{descriptor.ciphertext_locator!r}"
            )
        return expected

    @contextmanager
    def _staged_plaintext(self, stream: BinaryIO) -> Iterator[Tuple[Path, int]]:
        """
        Copy the stream into a private staging file and shred it on exit.

        Yields:
            (staged file path, plaintext size)
        """
        self.ensure_staging_directory()
        try:
            fd, name = tempfile.mkstemp(prefix=STAGING_PREFIX, dir=self.staging_dir)
        except OSError as e:
            raise StorageIOError(f"Cannot create staging file: {e}") from e

        staged_path = Path(name)
        try:
            size = 0
            try:
                with os.fdopen(fd, 'wb') as f:
                    while True:
                        piece = stream.read(STREAM_PIECE_SIZE)
                        if not piece:
                            break
                        size += len(piece)
                        if size > self.max_upload_bytes:
                            raise PayloadTooLargeError(
                                f"Upload exceeds the {self.max_upload_bytes}-byte limit"
                            )
                        f.write(piece)
            except OSError as e:
                raise StorageIOError(f"Failed to stage upload: {e}") from e

            yield staged_path, size
        finally:
            _shred(staged_path)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get(self, object_id: str) -> ObjectDescriptor:
        return self.catalog.get(object_id)

    def list(self) -> List[ObjectDescriptor]:
        return self.catalog.list()

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def download(self, object_id: str) -> DownloadHandle:
        """
        Verify and decrypt a stored object.

        The blob is read in full under the id lock, so a concurrent delete
        either happens entirely before (NotFoundError) or after the read.

        Args:
            object_id: Object id

        Returns:
            DownloadHandle owning the plaintext; close it when done

        Raises:
            NotFoundError: If the id is unknown
            BlobMissingError: If the descriptor exists but the blob does not
            IntegrityError: If the ciphertext fails authentication
            MalformedContainerError: If the blob is too short to be a container
            StorageIOError: If the descriptor names another object's blob
        """
        with self._locks.hold(object_id):
            descriptor = self.catalog.get(object_id)
            try:
                container = self.blobs.read_blob(self._locator_of(descriptor))
            except BlobMissingError:
                logger.error(f"Catalog/blob desync: blob missing for object {object_id}")
                raise

        try:
            plaintext = self.codec.decrypt(container)
        except (IntegrityError, MalformedContainerError) as e:
            logger.error(f"Refusing to release object {object_id}: {e}")
            raise

        if len(plaintext) != descriptor.size:
            logger.warning(
                f"Size mismatch for object {object_id}: "
                f"descriptor={descriptor.size} plaintext={len(plaintext)}"
            )

        logger.info(f"Decrypted object [object_id={object_id}] size={len(plaintext)}")
        return DownloadHandle(descriptor, plaintext)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, object_id: str) -> None:
        """
        Remove an object's blob and descriptor as one logical step.

        A missing blob is tolerated; the descriptor is still removed.

        Args:
            object_id: Object id

        Raises:
            NotFoundError: If the id is unknown
            StorageIOError: If either removal fails, or the descriptor names
                another object's blob
        """
        with self._locks.hold(object_id):
            descriptor = self.catalog.get(object_id)
            if not self.blobs.delete_blob(self._locator_of(descriptor)):
                logger.warning(f"Blob already missing while deleting object {object_id}")
            self.catalog.delete(object_id)

        logger.info(f"Deleted object [object_id={object_id}]")

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def reconcile(self) -> RecoveryReport:
        """
        Bring catalog and blob storage back into lock-step.

        Removes blobs that have no descriptor and descriptors whose blob is
        missing, each under its id lock so in-flight uploads and deletes are
        never touched half-way.

        Returns:
            RecoveryReport with the removal counts
        """
        report = RecoveryReport()

        for locator in self.blobs.list_locators():
            object_id = BlobStorage.object_id_from_locator(locator)
            with self._locks.hold(object_id):
                if self.catalog.exists(object_id):
                    continue
                if self.blobs.delete_blob(locator):
                    report.orphaned_blobs += 1
                    logger.warning(f"Removed orphaned blob {locator}")

        for object_id in self.catalog.ids():
            with self._locks.hold(object_id):
                try:
                    descriptor = self.catalog.get(object_id)
                except NotFoundError:
                    continue
                except StorageIOError as e:
                    logger.warning(f"Skipping unreadable descriptor {object_id}: {e}")
                    continue

                try:
                    locator = self._locator_of(descriptor)
                except StorageIOError as e:
                    logger.error(f"Skipping descriptor {object_id}: {e}")
                    continue

                try:
                    present = self.blobs.blob_exists(locator)
                except StorageIOError:
                    present = False

                if not present:
                    self.catalog.delete(object_id)
                    report.dangling_descriptors += 1
                    logger.warning(f"Removed descriptor {object_id} whose blob was missing")

        return report

    def purge_staging_area(self) -> int:
        """
        Shred staged plaintext left behind by a crash.

        Only call while no upload is in flight (startup).

        Returns:
            Number of staged files removed
        """
        if not self.staging_dir.exists():
            return 0

        removed = 0
        for path in self.staging_dir.iterdir():
            if path.is_file():
                _shred(path)
                removed += 1
        if removed:
            logger.warning(f"Purged {removed} staged plaintext file(s) left by an earlier run")
        return removed

    def recover(self) -> RecoveryReport:
        """
        Startup recovery: purge staging and temporary files, then reconcile.

        Returns:
            RecoveryReport with all counts
        """
        staged = self.purge_staging_area()
        temporary = self.blobs.purge_temporary_files()
        report = self.reconcile()
        report.staged_files = staged
        report.temporary_blobs = temporary
        logger.info(
            f"Recovery complete: staged={report.staged_files} temporary={report.temporary_blobs} "
            f"orphaned_blobs={report.orphaned_blobs} dangling_descriptors={report.dangling_descriptors}"
        )
        return report


def _shred(path: Path) -> None:
    """Overwrite a staged plaintext file with zeros and unlink it."""
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return
    except OSError as e:
        logger.error(f"Cannot stat staged file {path}: {e}")
        size = 0

    if size:
        try:
            with open(path, 'r+b') as f:
                remaining = size
                zeros = bytes(STREAM_PIECE_SIZE)
                while remaining > 0:
                    step = min(remaining, STREAM_PIECE_SIZE)
                    f.write(zeros[:step])
                    remaining -= step
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.error(f"Failed to overwrite staged file {path}: {e}")

    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to remove staged file {path}, will retry at next startup: {e}")
