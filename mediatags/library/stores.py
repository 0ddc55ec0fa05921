"""
MediaTags - Dependent Stores

Files, file collections and import batches reference tags by id. The tag
engine reaches them only through `DependentStore`, so the cascade can be
exercised without a database.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Type
from bson import ObjectId
from loguru import logger

from mediatags.library.models import File, FileCollection, FileImportBatch, TaggedRecord, utcnow


@dataclass
class TagRefs:
    """Tag reference fields of one dependent record."""
    id: ObjectId
    tag_ids: List[ObjectId] = field(default_factory=list)
    tag_ids_with_ancestors: List[ObjectId] = field(default_factory=list)


class DependentStore(ABC):
    """A collection of records that carry `tag_ids` and `tag_ids_with_ancestors`."""

    name: str = "records"

    @abstractmethod
    async def find_ids_by_tag_ids(self, tag_ids: Iterable[ObjectId]) -> List[ObjectId]:
        """
        Ids of records whose direct or ancestor-inclusive tags intersect `tag_ids`.

        Lookup for callers outside the engine, which reads `find_tag_refs` instead.
        """

    @abstractmethod
    async def find_tag_refs(self, ids: Optional[Iterable[ObjectId]] = None,
                            tag_ids: Optional[Iterable[ObjectId]] = None) -> List[TagRefs]:
        """Tag fields of records selected by id and/or by tag intersection."""

    @abstractmethod
    async def update_ancestor_field(self, ids: List[ObjectId], value: List[ObjectId]) -> int:
        """Set `tag_ids_with_ancestors` of every record in `ids` to `value`."""

    @abstractmethod
    async def count_by_ancestor_tag(self, tag_id: ObjectId) -> int:
        """Records whose `tag_ids_with_ancestors` contain `tag_id`."""

    @abstractmethod
    async def find_earliest_thumb_by_ancestor_tag(self, tag_id: ObjectId) -> Optional[Any]:
        """Thumb of the earliest-created record carrying `tag_id` (directly or transitively)."""

    @abstractmethod
    async def add_tag_where(self, has_tag_id: ObjectId, tag_id: ObjectId) -> int:
        """Add `tag_id` to every record whose `tag_ids` contain `has_tag_id`."""

    @abstractmethod
    async def pull_tag(self, tag_id: ObjectId) -> int:
        """Remove `tag_id` from both tag fields of every record."""

    @abstractmethod
    async def add_tags(self, ids: List[ObjectId], tag_ids: List[ObjectId]) -> int:
        """Add direct tags to the given records."""

    @abstractmethod
    async def remove_tags(self, ids: List[ObjectId], tag_ids: List[ObjectId]) -> int:
        """Remove direct tags from the given records."""


class MongoDependentStore(DependentStore):
    """DependentStore over one `TaggedRecord` collection."""

    def __init__(self, record_cls: Type[TaggedRecord], name: Optional[str] = None):
        self.record_cls = record_cls
        self.name = name or record_cls._collection_name

    def _collection(self):
        return self.record_cls.get_collection()

    @staticmethod
    def _intersects(tag_ids: List[ObjectId]) -> Dict[str, Any]:
        return {"$or": [
            {"tag_ids": {"$in": tag_ids}},
            {"tag_ids_with_ancestors": {"$in": tag_ids}},
        ]}

    async def find_ids_by_tag_ids(self, tag_ids) -> List[ObjectId]:
        tag_ids = list(tag_ids)
        if not tag_ids:
            return []
        return await self._collection().distinct("_id", self._intersects(tag_ids))

    async def find_tag_refs(self, ids=None, tag_ids=None) -> List[TagRefs]:
        clauses = []
        if ids is not None:
            ids = list(ids)
            if ids:
                clauses.append({"_id": {"$in": ids}})
        if tag_ids is not None:
            tag_ids = list(tag_ids)
            if tag_ids:
                clauses.append(self._intersects(tag_ids))
        if not clauses:
            return []

        query = clauses[0] if len(clauses) == 1 else {"$or": clauses}
        cursor = self._collection().find(query, {"tag_ids": 1, "tag_ids_with_ancestors": 1})
        refs = []
        async for doc in cursor:
            refs.append(TagRefs(
                id=doc["_id"],
                tag_ids=list(doc.get("tag_ids") or []),
                tag_ids_with_ancestors=list(doc.get("tag_ids_with_ancestors") or []),
            ))
        return refs

    async def update_ancestor_field(self, ids, value) -> int:
        if not ids:
            return 0
        res = await self._collection().update_many(
            {"_id": {"$in": list(ids)}},
            {"$set": {"tag_ids_with_ancestors": list(value)}},
        )
        return res.modified_count

    async def count_by_ancestor_tag(self, tag_id) -> int:
        return await self._collection().count_documents({"tag_ids_with_ancestors": tag_id})

    async def find_earliest_thumb_by_ancestor_tag(self, tag_id) -> Optional[Any]:
        doc = await self._collection().find_one(
            {"tag_ids_with_ancestors": tag_id},
            {"thumb": 1},
            sort=[("date_created", 1)],
        )
        return doc.get("thumb") if doc else None

    async def add_tag_where(self, has_tag_id, tag_id) -> int:
        res = await self._collection().update_many(
            {"tag_ids": has_tag_id},
            {"$addToSet": {"tag_ids": tag_id}, "$set": {"date_modified": utcnow()}},
        )
        logger.debug(f"[{self.name}] added {tag_id} to {res.modified_count} records holding {has_tag_id}")
        return res.modified_count

    async def pull_tag(self, tag_id) -> int:
        res = await self._collection().update_many(
            self._intersects([tag_id]),
            {
                "$pull": {"tag_ids": tag_id, "tag_ids_with_ancestors": tag_id},
                "$set": {"date_modified": utcnow()},
            },
        )
        logger.debug(f"[{self.name}] pulled {tag_id} from {res.modified_count} records")
        return res.modified_count

    async def add_tags(self, ids, tag_ids) -> int:
        if not ids or not tag_ids:
            return 0
        res = await self._collection().update_many(
            {"_id": {"$in": list(ids)}},
            {"$addToSet": {"tag_ids": {"$each": list(tag_ids)}}, "$set": {"date_modified": utcnow()}},
        )
        return res.modified_count

    async def remove_tags(self, ids, tag_ids) -> int:
        if not ids or not tag_ids:
            return 0
        res = await self._collection().update_many(
            {"_id": {"$in": list(ids)}},
            {"$pullAll": {"tag_ids": list(tag_ids)}, "$set": {"date_modified": utcnow()}},
        )
        return res.modified_count


def default_dependent_stores() -> Dict[str, DependentStore]:
    """Mongo-backed stores keyed by the name the engine refers to them with."""
    return {
        "files": MongoDependentStore(File, "files"),
        "collections": MongoDependentStore(FileCollection, "collections"),
        "import_batches": MongoDependentStore(FileImportBatch, "import_batches"),
    }
