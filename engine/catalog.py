"""Metadata catalog: durable object_id -> ObjectDescriptor mapping."""

import json
import os
import secrets
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List

from common.constants import DESCRIPTOR_SUFFIX
from common.logging_config import get_logger
from common.types import ObjectDescriptor
from engine.exceptions import DuplicateIdError, NotFoundError, StorageIOError
from engine.locks import KeyedLock
from engine.utils import is_valid_object_id

logger = get_logger(__name__)


def sort_descriptors(descriptors: Iterable[ObjectDescriptor]) -> List[ObjectDescriptor]:
    """
    Order descriptors newest first, ties broken by ascending id.

    Args:
        descriptors: Descriptors in any order

    Returns:
        New sorted list
    """
    by_id = sorted(descriptors, key=lambda d: d.object_id)
    return sorted(by_id, key=lambda d: d.created_at, reverse=True)


class Catalog(ABC):
    """
    Storage-agnostic catalog interface.

    The lifecycle manager only talks to this interface, so the JSON-file
    backend can be replaced by an embedded key-value store.
    """

    @abstractmethod
    def put(self, descriptor: ObjectDescriptor) -> None:
        """Persist a new descriptor; DuplicateIdError if the id exists."""

    @abstractmethod
    def get(self, object_id: str) -> ObjectDescriptor:
        """Return the descriptor for object_id; NotFoundError if absent."""

    @abstractmethod
    def list(self) -> List[ObjectDescriptor]:
        """Snapshot of all descriptors, newest first."""

    @abstractmethod
    def delete(self, object_id: str) -> None:
        """Remove the descriptor for object_id; NotFoundError if absent."""

    @abstractmethod
    def exists(self, object_id: str) -> bool:
        """Whether a descriptor is stored under object_id."""

    @abstractmethod
    def ids(self) -> List[str]:
        """All stored ids, unordered."""


class JsonFileCatalog(Catalog):
    """
    One JSON record per descriptor in a flat directory.

    put/delete touch a single file and list reads each record once, so no
    operation rewrites a shared index. Writes go through a temporary file and
    os.replace, and each id is guarded by its own lock.
    """

    def __init__(self, directory: Path):
        """
        Initialize the catalog.

        Args:
            directory: Directory holding the descriptor records
        """
        self.directory = Path(directory)
        self._locks = KeyedLock()

    def ensure_directory(self) -> None:
        """Ensure metadata directory exists."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create metadata directory {self.directory}: {e}") from e

    def _record_path(self, object_id: str) -> Path:
        return self.directory / f"{object_id}{DESCRIPTOR_SUFFIX}"

    def put(self, descriptor: ObjectDescriptor) -> None:
        """
        Write a new descriptor durably.

        Args:
            descriptor: Descriptor to persist

        Raises:
            ValueError: If the descriptor id is not a valid object id
            DuplicateIdError: If a record with the same id exists
            StorageIOError: If the write fails
        """
        object_id = descriptor.object_id
        if not is_valid_object_id(object_id):
            raise ValueError(f"Invalid object id: {object_id!r}")

        path = self._record_path(object_id)
        payload = json.dumps(descriptor.to_dict(), indent=2, ensure_ascii=False)

        self.ensure_directory()

        with self._locks.hold(object_id):
            if path.exists():
                raise DuplicateIdError(f"Descriptor {object_id} already exists")

            tmp = path.with_name(f".{path.name}.{secrets.token_hex(4)}.tmp")
            try:
                with open(tmp, 'w', encoding='utf-8') as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, path)
            except OSError as e:
                try:
                    tmp.unlink()
                except OSError:
                    pass
                raise StorageIOError(f"Failed to write descriptor {object_id}: {e}") from e

        logger.debug(f"Stored descriptor [object_id={object_id}]")

    def get(self, object_id: str) -> ObjectDescriptor:
        """
        Load a descriptor by id.

        Args:
            object_id: Object id

        Returns:
            ObjectDescriptor

        Raises:
            NotFoundError: If no record exists (or the id is malformed)
            StorageIOError: If the record cannot be read or parsed
        """
        if not is_valid_object_id(object_id):
            raise NotFoundError(f"File {object_id} not found")

        path = self._record_path(object_id)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise NotFoundError(f"File {object_id} not found") from None
        except json.JSONDecodeError as e:
            raise StorageIOError(f"Descriptor {object_id} is corrupt: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read descriptor {object_id}: {e}") from e

        try:
            return ObjectDescriptor.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageIOError(f"Descriptor {object_id} is corrupt: {e}") from e

    def list(self) -> List[ObjectDescriptor]:
        """
        Enumerate all descriptors.

        Records deleted or found corrupt during the scan are skipped, so a
        concurrent delete never fails a listing.

        Returns:
            Descriptors newest first
        """
        descriptors = []
        for object_id in self.ids():
            try:
                descriptors.append(self.get(object_id))
            except NotFoundError:
                continue
            except StorageIOError as e:
                logger.warning(f"Skipping unreadable descriptor [object_id={object_id}]: {e}")

        return sort_descriptors(descriptors)

    def delete(self, object_id: str) -> None:
        """
        Remove a descriptor.

        Args:
            object_id: Object id

        Raises:
            NotFoundError: If no record exists
            StorageIOError: If the delete fails
        """
        if not is_valid_object_id(object_id):
            raise NotFoundError(f"File {object_id} not found")

        with self._locks.hold(object_id):
            try:
                self._record_path(object_id).unlink()
            except FileNotFoundError:
                raise NotFoundError(f"File {object_id} not found") from None
            except OSError as e:
                raise StorageIOError(f"Failed to delete descriptor {object_id}: {e}") from e

        logger.debug(f"Deleted descriptor [object_id={object_id}]")

    def exists(self, object_id: str) -> bool:
        return is_valid_object_id(object_id) and self._record_path(object_id).exists()

    def ids(self) -> List[str]:
        if not self.directory.exists():
            return []
        try:
            names = os.listdir(self.directory)
        except OSError as e:
            raise StorageIOError(f"Failed to list metadata directory: {e}") from e

        return [
            name[:-len(DESCRIPTOR_SUFFIX)]
            for name in names
            if name.endswith(DESCRIPTOR_SUFFIX) and not name.startswith('.')
        ]


class InMemoryCatalog(Catalog):
    """Dict-backed catalog with the same contract as JsonFileCatalog."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, ObjectDescriptor] = {}

    def put(self, descriptor: ObjectDescriptor) -> None:
        if not is_valid_object_id(descriptor.object_id):
            raise ValueError(f"Invalid object id: {descriptor.object_id!r}")

        with self._lock:
            if descriptor.object_id in self._records:
                raise DuplicateIdError(f"Descriptor {descriptor.object_id} already exists")
            self._records[descriptor.object_id] = descriptor

    def get(self, object_id: str) -> ObjectDescriptor:
        if not is_valid_object_id(object_id):
            raise NotFoundError(f"File {object_id} not found")

        with self._lock:
            descriptor = self._records.get(object_id)
        if descriptor is None:
            raise NotFoundError(f"File {object_id} not found")
        return descriptor

    def list(self) -> List[ObjectDescriptor]:
        with self._lock:
            snapshot = list(self._records.values())
        return sort_descriptors(snapshot)

    def delete(self, object_id: str) -> None:
        if not is_valid_object_id(object_id):
            raise NotFoundError(f"File {object_id} not found")

        with self._lock:
            if self._records.pop(object_id, None) is None:
                raise NotFoundError(f"File {object_id} not found")

    def exists(self, object_id: str) -> bool:
        with self._lock:
            return object_id in self._records

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._records)
