"""
MediaTags - Library Records

Records that reference tags by id. Each carries its direct `tag_ids` plus the
denormalized `tag_ids_with_ancestors` kept in sync by the cascade pass.
"""
from datetime import datetime, timezone
from typing import List, Optional
from bson import ObjectId

from mediatags.core.database.orm import CollectionRecord, Field, ListField


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaggedRecord(CollectionRecord):
    """Shared tag reference fields."""
    tag_ids: List[ObjectId] = ListField(index=True)
    tag_ids_with_ancestors: List[ObjectId] = ListField(index=True)
    date_created: datetime = Field(default_factory=utcnow, index=True)
    date_modified: datetime = Field(default_factory=utcnow)


class File(TaggedRecord, table="files"):
    """
    A media file in the library.

    `thumb` is an opaque reference (path or dict) owned by the thumbnail
    pipeline; tags copy it to pick a representative image.
    """
    path: str = Field(default="", index=True)
    hash: str = Field(default="", index=True)
    thumb: Optional[dict] = Field(default=None)


class FileCollection(TaggedRecord, table="file_collections"):
    title: str = Field(default="")


class FileImportBatch(TaggedRecord, table="file_import_batches"):
    """Tags chosen for an import are kept on the batch until it completes."""
    root_path: str = Field(default="")
