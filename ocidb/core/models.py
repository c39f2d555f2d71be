"""Data models for the OCI image catalog."""

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

# JSON-serializable types for database storage
JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list["JsonValue"], dict[str, "JsonValue"]]
JsonDict = dict[str, JsonValue]

MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"


@dataclass
class Image:
    """A pulled image, keyed by its canonical reference string."""

    id: int
    reference: str
    size_bytes: int
    last_used_at: Optional[str] = None
    created_at: Optional[str] = None
    modified_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Image":
        return cls(
            id=row["id"],
            reference=row["reference"],
            size_bytes=row["size_bytes"],
            last_used_at=row["last_used_at"],
            created_at=row["created_at"],
            modified_at=row["modified_at"],
        )


@dataclass
class Manifest:
    """An image manifest belonging to exactly one image."""

    id: int
    image_id: int
    schema_version: int
    media_type: str
    annotations_json: Optional[str] = None
    created_at: Optional[str] = None
    modified_at: Optional[str] = None

    @property
    def annotations(self) -> Optional[JsonDict]:
        """Decoded annotations, or None when the manifest carries none."""
        if self.annotations_json is None:
            return None
        decoded = json.loads(self.annotations_json)
        if not isinstance(decoded, dict):
            raise ValueError(f"Manifest {self.id} annotations are not a JSON object")
        return decoded

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Manifest":
        return cls(
            id=row["id"],
            image_id=row["image_id"],
            schema_version=row["schema_version"],
            media_type=row["media_type"],
            annotations_json=row["annotations_json"],
            created_at=row["created_at"],
            modified_at=row["modified_at"],
        )
