"""
MediaTags - Tag Model

Tags form a DAG: a tag may have several parents and several children.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from bson import ObjectId

from mediatags.core.database.orm import CollectionRecord, Field, ListField
from mediatags.library.models import utcnow

RELATION_FIELDS = ("child_ids", "parent_ids")
OPPOSITE_FIELD = {"child_ids": "parent_ids", "parent_ids": "child_ids"}


class Tag(CollectionRecord, table="tags"):
    """
    Hierarchical tag with multiple parents.

    Adjacency (`parent_ids`/`child_ids`) is the source of truth and is kept
    symmetric. `ancestor_ids`/`descendant_ids`, `count` and `thumb` are
    caches recomputed by the engine and never edited by hand.

    Auto collection name: "tags"
    """
    label: str = Field(default="", unique=True)
    aliases: List[str] = ListField()
    category_id: Optional[ObjectId] = Field(default=None)

    # Adjacency
    parent_ids: List[ObjectId] = ListField(index=True)
    child_ids: List[ObjectId] = ListField(index=True)

    # Closures
    ancestor_ids: List[ObjectId] = ListField()
    descendant_ids: List[ObjectId] = ListField()

    # Derived from files
    count: int = Field(default=0)
    thumb: Optional[dict] = Field(default=None)

    # Auto-tagging pattern; `regex_map` is the legacy shape migrated by repair
    regex: Optional[str] = Field(default=None)
    regex_map: Optional[Dict[str, Any]] = Field(default=None)

    date_created: datetime = Field(default_factory=utcnow)
    date_modified: datetime = Field(default_factory=utcnow)
    last_searched_at: datetime = Field(default_factory=utcnow)

    def relation_ids(self, field: str) -> List[ObjectId]:
        if field not in RELATION_FIELDS:
            raise ValueError(f"Not a relation field: {field}")
        return list(getattr(self, field) or [])

    def __str__(self) -> str:
        return f"Tag: {self.label} ({self.count} files)"
