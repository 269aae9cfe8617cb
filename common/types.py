"""Shared data type definitions (ObjectDescriptor)."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


@dataclass(frozen=True)
class ObjectDescriptor:
    """
    Catalog record for one stored object.

    Immutable once written; a re-upload of the same file produces a new
    descriptor with a new object_id.
    """
    object_id: str
    original_name: str
    size: int
    mime_type: str
    created_at: datetime
    ciphertext_locator: str

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize to the on-disk record format.

        Returns:
            Dictionary with camelCase keys
        """
        return {
            "id": self.object_id,
            "originalName": self.original_name,
            "size": self.size,
            "mimeType": self.mime_type,
            "createdAt": self.created_at.isoformat(),
            "ciphertextLocator": self.ciphertext_locator,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ObjectDescriptor":
        """
        Rebuild a descriptor from its on-disk record.

        Args:
            data: Dictionary produced by to_dict()

        Returns:
            ObjectDescriptor instance

        Raises:
            KeyError: If a required field is missing
            ValueError: If createdAt is not an ISO timestamp
        """
        created_at = datetime.fromisoformat(data["createdAt"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return ObjectDescriptor(
            object_id=data["id"],
            original_name=data["originalName"],
            size=int(data["size"]),
            mime_type=data.get("mimeType") or "application/octet-stream",
            created_at=created_at,
            ciphertext_locator=data["ciphertextLocator"],
        )
